"""
Health Check Endpoints
"""

from flask import Blueprint, jsonify
from datetime import datetime
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis

from workconnect.extensions import db, redis_client
from workconnect.providers import get_mpesa_settings

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    Basic health check endpoint

    Returns:
        200 if system is healthy
        503 if system has issues
    """
    health_status = {
        'status': 'healthy',
        'timestamp': datetime.now().isoformat(),
        'service': 'workconnect-payments',
        'version': '1.0.0'
    }

    checks = {}
    overall_healthy = True

    # Database check
    try:
        db.session.execute(text('SELECT 1'))
        checks['database'] = {
            'status': 'healthy',
            'message': 'Database connection OK'
        }
    except SQLAlchemyError as e:
        checks['database'] = {
            'status': 'unhealthy',
            'message': f'Database error: {str(e)}'
        }
        overall_healthy = False

    # Redis check
    try:
        redis_client.set('health_check', 'ok', ex=10)
        redis_value = redis_client.get('health_check')
        if redis_value == 'ok':
            checks['redis'] = {
                'status': 'healthy',
                'message': 'Redis connection OK'
            }
        else:
            checks['redis'] = {
                'status': 'unhealthy',
                'message': 'Redis read/write failed'
            }
            overall_healthy = False
    except redis.RedisError as e:
        checks['redis'] = {
            'status': 'unhealthy',
            'message': f'Redis error: {str(e)}'
        }
        overall_healthy = False

    # Credentials are not a liveness issue, but payments cannot be sent without them
    missing = get_mpesa_settings().missing_credentials()
    checks['mpesa'] = {
        'status': 'configured' if not missing else 'unconfigured',
        'missing': missing
    }

    health_status['checks'] = checks
    health_status['status'] = 'healthy' if overall_healthy else 'unhealthy'

    status_code = 200 if overall_healthy else 503

    return jsonify(health_status), status_code


@health_bp.route('/health/live', methods=['GET'])
def liveness_probe():
    """
    Liveness probe
    Returns 200 if the application is running
    """
    return jsonify({
        'status': 'alive',
        'timestamp': datetime.now().isoformat()
    }), 200
