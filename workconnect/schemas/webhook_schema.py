"""
Callback Validation Schemas
"""

from marshmallow import Schema, fields, validates, ValidationError, INCLUDE


class WebhookEventSchema(Schema):
    """Callback event schema for responses"""
    id = fields.UUID(dump_only=True)
    checkout_request_id = fields.Str(dump_only=True)
    provider = fields.Str(dump_only=True)
    event_type = fields.Str(dump_only=True)
    payload = fields.Dict(dump_only=True)
    processed = fields.Bool(dump_only=True)
    retry_count = fields.Int(dump_only=True)
    error_message = fields.Str(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
    processed_at = fields.DateTime(dump_only=True)


class MPesaCallbackSchema(Schema):
    """M-Pesa STK callback validation schema"""

    class Meta:
        unknown = INCLUDE

    Body = fields.Dict(required=True)

    @validates('Body')
    def validate_body(self, value, **kwargs):
        stk = value.get('stkCallback')
        if not isinstance(stk, dict):
            raise ValidationError('Missing stkCallback in Body')
        if not stk.get('CheckoutRequestID'):
            raise ValidationError('Missing CheckoutRequestID in stkCallback')
        if stk.get('ResultCode') is None:
            raise ValidationError('Missing ResultCode in stkCallback')
