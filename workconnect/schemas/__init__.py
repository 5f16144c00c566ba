"""
Schemas Package
Marshmallow schemas for request/response validation
"""

from workconnect.schemas.payment_schema import (
    StkPushSchema,
    JobPaymentSchema,
    PaymentSchema,
    MpesaTransactionSchema
)
from workconnect.schemas.webhook_schema import (
    WebhookEventSchema,
    MPesaCallbackSchema
)

__all__ = [
    'StkPushSchema',
    'JobPaymentSchema',
    'PaymentSchema',
    'MpesaTransactionSchema',
    'WebhookEventSchema',
    'MPesaCallbackSchema'
]
