import uuid
from datetime import datetime
from sqlalchemy import Uuid
from workconnect.extensions import db


class WebhookEvent(db.Model):
    """One inbound provider callback delivery, kept for audit and retry."""
    __tablename__ = 'webhook_events'

    id = db.Column(Uuid, primary_key=True, default=uuid.uuid4)
    checkout_request_id = db.Column(db.String(255), index=True)

    # Provider information
    provider = db.Column(db.String(50), nullable=False, index=True)
    event_type = db.Column(db.String(100), nullable=False)

    # Webhook data
    payload = db.Column(db.JSON, nullable=False)

    # Processing status
    processed = db.Column(db.Boolean, default=False, index=True)
    retry_count = db.Column(db.Integer, default=0)
    error_message = db.Column(db.Text)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.now)
    processed_at = db.Column(db.DateTime)

    def __repr__(self):
        return f'<WebhookEvent {self.id} - {self.provider}>'
