from workconnect.models.job import Job, JobApplication
from workconnect.models.payment import Payment, PaymentStatus
from workconnect.models.mpesa_transaction import MpesaTransaction
from workconnect.models.audit_log import AuditLog
from workconnect.models.webhook_event import WebhookEvent

__all__ = ['Job', 'JobApplication', 'Payment', 'PaymentStatus', 'MpesaTransaction', 'AuditLog', 'WebhookEvent']
