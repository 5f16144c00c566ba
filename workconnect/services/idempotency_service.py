import json
from functools import wraps
from flask import request, jsonify
from workconnect.extensions import redis_client
from workconnect.utils.validators import validate_idempotency_key


class IdempotencyService:
    """Handle request idempotency using Redis"""

    DEFAULT_TTL = 86400  # 24 hours

    @staticmethod
    def get_key(idempotency_key: str) -> str:
        """Generate Redis key for idempotency"""
        return f'idempotency:{idempotency_key}'

    @staticmethod
    def get_cached_response(idempotency_key: str):
        """Get cached response for idempotency key"""
        key = IdempotencyService.get_key(idempotency_key)
        cached = redis_client.get(key)

        if cached:
            return json.loads(cached)
        return None

    @staticmethod
    def cache_response(idempotency_key: str, response_data: dict, ttl: int = DEFAULT_TTL):
        """Cache response for future idempotent requests"""
        key = IdempotencyService.get_key(idempotency_key)
        redis_client.set(key, json.dumps(response_data), ex=ttl)

    @staticmethod
    def delete_cached_response(idempotency_key: str):
        """Delete cached response"""
        key = IdempotencyService.get_key(idempotency_key)
        redis_client.delete(key)


def idempotent(ttl: int = IdempotencyService.DEFAULT_TTL):
    """
    Decorator to make endpoints idempotent

    A repeated Idempotency-Key replays the stored response instead of sending
    a second STK push to the customer's phone. Only responses below 500 are
    stored, so a request that failed upstream can be retried with the same key.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            idempotency_key = request.headers.get('Idempotency-Key')

            if not idempotency_key:
                return jsonify({
                    'success': False,
                    'error': 'Missing Idempotency-Key header',
                    'message': 'Payment requests require an Idempotency-Key header'
                }), 400

            is_valid, error = validate_idempotency_key(idempotency_key)
            if not is_valid:
                return jsonify({
                    'success': False,
                    'error': 'Invalid Idempotency-Key header',
                    'message': error
                }), 400

            # Same key on different endpoints must not collide
            idempotency_key = f'{request.endpoint}:{idempotency_key}'

            cached = IdempotencyService.get_cached_response(idempotency_key)

            if cached:
                status_code = cached.pop('_status_code', 200)
                return jsonify(cached), status_code

            result = f(*args, **kwargs)

            if isinstance(result, tuple):
                response_data, status_code = result
            else:
                response_data, status_code = result, 200

            if status_code < 500:
                if hasattr(response_data, 'get_json'):
                    response_json = dict(response_data.get_json())
                else:
                    response_json = dict(response_data)

                response_json['_status_code'] = status_code
                IdempotencyService.cache_response(idempotency_key, response_json, ttl)

            return result

        return decorated_function

    return decorator
