import uuid
from datetime import datetime
from sqlalchemy import Uuid
from workconnect.extensions import db


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = db.Column(Uuid, db.ForeignKey('payments.id'), nullable=False, index=True)

    # Event details
    event_type = db.Column(db.String(100), nullable=False)
    event_data = db.Column(db.JSON)

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    # Timestamp
    timestamp = db.Column(db.DateTime, nullable=False, default=datetime.now, index=True)

    def __repr__(self):
        return f'<AuditLog {self.id} - {self.event_type}>'
