import uuid
from datetime import datetime

from sqlalchemy import Uuid

from workconnect.extensions import db


class MpesaTransaction(db.Model):
    """STK Push request awaiting (or holding) its final result. Never deleted."""
    __tablename__ = 'mpesa_transactions'

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    checkout_request_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    merchant_request_id = db.Column(db.String(255))

    # Request details
    phone_number = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    account_reference = db.Column(db.String(255))
    transaction_desc = db.Column(db.String(255))

    # Result
    status = db.Column(db.String(20), nullable=False, default='pending', index=True)
    result_code = db.Column(db.String(50))
    result_desc = db.Column(db.Text)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    def __repr__(self):
        return f'<MpesaTransaction {self.checkout_request_id} - {self.status}>'
