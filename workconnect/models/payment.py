import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Uuid

from workconnect.extensions import db


class PaymentStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    FAILED = 'failed'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = db.Column(Uuid, db.ForeignKey('jobs.id'), nullable=False, index=True)

    # Parties
    customer_id = db.Column(db.String(255), nullable=False, index=True)
    worker_id = db.Column(db.String(255), nullable=False, index=True)

    # Payment details
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    # e.g. mpesa:+254712345678:+254798765432:WC-123456
    payment_method = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_date = db.Column(db.DateTime, nullable=False, default=datetime.now)

    # Provider correlation
    mpesa_checkout_request_id = db.Column(db.String(255), unique=True, index=True)
    mpesa_transaction_id = db.Column(db.String(255))

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    audit_logs = db.relationship('AuditLog', backref='payment', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def is_terminal(self) -> bool:
        return self.status in (PaymentStatus.COMPLETED.value, PaymentStatus.FAILED.value)

    def to_dict(self):
        return {
            'id': str(self.id),
            'job_id': str(self.job_id),
            'customer_id': self.customer_id,
            'worker_id': self.worker_id,
            'amount': float(self.amount) if self.amount is not None else None,
            'payment_method': self.payment_method,
            'status': self.status,
            'payment_date': self.payment_date.isoformat() if self.payment_date else None,
            'mpesa_checkout_request_id': self.mpesa_checkout_request_id,
            'mpesa_transaction_id': self.mpesa_transaction_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Payment {self.id} - {self.status}>'
