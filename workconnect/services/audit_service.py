"""
Audit Service
Handles audit logging for payment state changes
"""

import uuid
from typing import Dict, Any, Optional
from flask import request, has_request_context

from workconnect.extensions import db
from workconnect.models import AuditLog
from workconnect.utils.logger import get_logger

logger = get_logger(__name__)


class AuditService:
    """Service for creating and reading audit logs"""

    @staticmethod
    def log_event(
            payment_id: uuid.UUID,
            event_type: str,
            event_data: Dict[str, Any],
            ip_address: Optional[str] = None,
            user_agent: Optional[str] = None,
            commit: bool = True
    ) -> AuditLog:
        """
        Create an audit log entry

        Args:
            payment_id: UUID of the payment
            event_type: Type of event (e.g., 'payment.initiated', 'payment.completed')
            event_data: Additional event data
            ip_address: IP address of the request
            user_agent: User agent string
            commit: Commit immediately; pass False to join the caller's unit of work

        Returns:
            Created AuditLog object
        """
        # Try to extract request context if not provided
        if has_request_context():
            if not ip_address:
                ip_address = AuditService._get_client_ip()
            if not user_agent:
                user_agent = request.headers.get('User-Agent')

        audit_log = AuditLog(
            payment_id=payment_id,
            event_type=event_type,
            event_data=event_data,
            ip_address=ip_address,
            user_agent=user_agent
        )

        db.session.add(audit_log)

        if commit:
            try:
                db.session.commit()
            except Exception as e:
                db.session.rollback()
                logger.error(f'Failed to create audit log: {str(e)}')
                raise

        return audit_log

    @staticmethod
    def _get_client_ip() -> Optional[str]:
        """
        Get client IP address from request
        Handles proxy headers (X-Forwarded-For, X-Real-IP)
        """
        if not has_request_context():
            return None

        if request.headers.get('X-Forwarded-For'):
            # X-Forwarded-For can contain multiple IPs, get the first one
            ip = request.headers.get('X-Forwarded-For').split(',')[0].strip()
        elif request.headers.get('X-Real-IP'):
            ip = request.headers.get('X-Real-IP')
        else:
            ip = request.remote_addr

        return ip
