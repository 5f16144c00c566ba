"""
Webhook API Endpoints
Handles incoming M-Pesa callbacks
"""

from flask import Blueprint, request, jsonify
from marshmallow import ValidationError

from workconnect.schemas.webhook_schema import MPesaCallbackSchema, WebhookEventSchema
from workconnect.services.callback_service import CallbackService, acknowledgement
from workconnect.utils.logger import get_logger

webhooks_bp = Blueprint('webhooks', __name__)
logger = get_logger(__name__)

callback_schema = MPesaCallbackSchema()
webhook_events_schema = WebhookEventSchema(many=True)


@webhooks_bp.route('/mpesa/callback', methods=['POST'])
def mpesa_callback():
    """
    Receive the STK push result from Safaricom

    Body:
        {"Body": {"stkCallback": {"MerchantRequestID": "...", "CheckoutRequestID": "...",
                                  "ResultCode": 0, "ResultDesc": "...",
                                  "CallbackMetadata": {"Item": [...]}}}}

    The response body is fixed by Daraja: ResultCode "0" acknowledges the
    delivery, anything else asks Safaricom to treat it as failed.
    """
    payload = request.get_json(silent=True)

    if payload is None:
        logger.error('Failed to parse M-Pesa callback payload')
        result = acknowledgement(500, 'Invalid JSON payload')
        return jsonify(result['body']), result['statusCode']

    try:
        callback_schema.load(payload)
    except ValidationError as e:
        logger.error(f'Invalid M-Pesa callback payload: {e.messages}')
        result = acknowledgement(500, 'Invalid callback payload')
        return jsonify(result['body']), result['statusCode']

    result = CallbackService.handle_stk_callback(payload)

    return jsonify(result['body']), result['statusCode']


@webhooks_bp.route('/events', methods=['GET'])
def list_callback_events():
    """
    List stored callback events

    Query Parameters:
        - processed: Filter by processed status (true/false)
        - checkout_request_id: Filter by checkout request
        - page: Page number (default: 1)
        - per_page: Items per page (default: 50)
    """
    processed = request.args.get('processed')
    checkout_request_id = request.args.get('checkout_request_id')
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 50, type=int), 100)

    # Convert string booleans
    if processed is not None:
        processed = processed.lower() == 'true'

    pagination = CallbackService.get_callback_events(
        processed=processed,
        checkout_request_id=checkout_request_id,
        page=page,
        per_page=per_page
    )

    return jsonify({
        'success': True,
        'data': {
            'items': webhook_events_schema.dump(pagination.items),
            'pagination': {
                'page': pagination.page,
                'per_page': pagination.per_page,
                'total': pagination.total,
                'pages': pagination.pages,
                'has_next': pagination.has_next,
                'has_prev': pagination.has_prev
            }
        }
    }), 200


@webhooks_bp.route('/events/<uuid:event_id>/retry', methods=['POST'])
def retry_callback_event(event_id):
    """
    Manually retry processing a callback event

    Path Parameters:
        event_id: Callback event UUID
    """
    try:
        success = CallbackService.process_event(event_id)

        if success:
            return jsonify({
                'success': True,
                'message': 'Callback processed successfully'
            }), 200
        else:
            return jsonify({
                'success': False,
                'message': 'Callback processing failed'
            }), 400

    except ValueError as e:
        return jsonify({
            'success': False,
            'error': str(e)
        }), 404
