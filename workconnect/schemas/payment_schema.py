from marshmallow import Schema, fields, validates, post_load, ValidationError

from workconnect.services.stk_push_service import StkPushRequest


class StkPushSchema(Schema):
    """Bare STK push request schema"""
    phone_number = fields.Str(required=True)
    amount = fields.Decimal(required=True)
    account_reference = fields.Str(required=False, load_default=None)
    transaction_desc = fields.Str(required=False, load_default=None)
    callback_url = fields.Url(required=False, load_default=None, schemes={'https'})

    @validates('amount')
    def validate_amount(self, value, **kwargs):
        if value <= 0:
            raise ValidationError('Amount must be greater than 0')

    @post_load
    def make_request(self, data, **kwargs):
        return StkPushRequest(**data)


class JobPaymentSchema(Schema):
    """Job payment request schema"""
    worker_id = fields.Str(required=True)
    customer_id = fields.Str(required=True)
    amount = fields.Decimal(required=True)
    customer_phone = fields.Str(required=True)
    worker_phone = fields.Str(required=True)

    @validates('amount')
    def validate_amount(self, value, **kwargs):
        if value <= 0:
            raise ValidationError('Amount must be greater than 0')


class PaymentSchema(Schema):
    """Payment response schema"""
    id = fields.UUID(dump_only=True)
    job_id = fields.UUID(dump_only=True)
    customer_id = fields.Str(dump_only=True)
    worker_id = fields.Str(dump_only=True)
    amount = fields.Decimal(places=2, dump_only=True, as_string=True)
    payment_method = fields.Str(dump_only=True)
    status = fields.Str(dump_only=True)
    payment_date = fields.DateTime(dump_only=True)
    mpesa_checkout_request_id = fields.Str(dump_only=True)
    mpesa_transaction_id = fields.Str(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
    updated_at = fields.DateTime(dump_only=True)


class MpesaTransactionSchema(Schema):
    """Pending transaction response schema"""
    checkout_request_id = fields.Str(dump_only=True)
    merchant_request_id = fields.Str(dump_only=True)
    phone_number = fields.Str(dump_only=True)
    amount = fields.Decimal(places=2, dump_only=True, as_string=True)
    account_reference = fields.Str(dump_only=True)
    transaction_desc = fields.Str(dump_only=True)
    status = fields.Str(dump_only=True)
    result_code = fields.Str(dump_only=True)
    result_desc = fields.Str(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
    updated_at = fields.DateTime(dump_only=True)
