from flask_socketio import emit, join_room, leave_room
from workconnect.extensions import socketio
from workconnect.models import Payment
from workconnect.utils.logger import get_logger

logger = get_logger(__name__)


@socketio.on('connect')
def handle_connect():
    """Handle client connection"""
    logger.info('Client connected')
    emit('connected', {'message': 'Connected to WorkConnect payments'})


@socketio.on('disconnect')
def handle_disconnect():
    """Handle client disconnection"""
    logger.info('Client disconnected')


@socketio.on('subscribe_payment')
def handle_subscribe_payment(data):
    """Subscribe to updates for a payment or an STK checkout request"""
    data = data or {}
    room = _room_for(data)
    if room:
        join_room(room)
        emit('subscribed', {
            'message': f'Subscribed to {room}',
            'room': room
        })


@socketio.on('unsubscribe_payment')
def handle_unsubscribe_payment(data):
    """Unsubscribe from payment updates"""
    data = data or {}
    room = _room_for(data)
    if room:
        leave_room(room)
        emit('unsubscribed', {
            'message': f'Unsubscribed from {room}'
        })


def _room_for(data: dict):
    if data.get('payment_id'):
        return f"payment_{data['payment_id']}"
    if data.get('checkout_request_id'):
        return f"checkout_{data['checkout_request_id']}"
    return None


def emit_payment_update(payment: Payment, event_type: str):
    """
    Emit payment update to subscribed clients

    Args:
        payment: Payment object
        event_type: Type of event (e.g., 'payment.completed')
    """
    message = {
        'event_type': event_type,
        'payment': payment.to_dict()
    }

    socketio.emit('payment_update', message, room=f'payment_{payment.id}')

    # Clients that only know the checkout id (right after the push) listen here
    if payment.mpesa_checkout_request_id:
        socketio.emit('payment_update', message, room=f'checkout_{payment.mpesa_checkout_request_id}')
