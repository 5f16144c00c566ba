from flask import Flask, jsonify
from flask_cors import CORS
from marshmallow import ValidationError as SchemaValidationError

from workconnect.config import config
from workconnect.errors import AppError
from workconnect.extensions import db, migrate, redis_client, socketio, celery_app
from workconnect.extentions.celery_extention import init_celery
from workconnect.providers.settings import MpesaSettings
from workconnect.utils.logger import get_logger, configure_app_logging, RequestLogger

logger = get_logger(__name__)


def create_app(config_name='development'):
    """Application factory pattern"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Logging
    configure_app_logging(app)
    RequestLogger(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    redis_client.init_app(app)
    socketio.init_app(app, cors_allowed_origins="*")
    CORS(app)
    init_celery(celery_app, app)

    # M-Pesa settings are read once here and shared by every component
    settings = MpesaSettings.from_config(app.config)
    app.extensions['mpesa_settings'] = settings
    missing = settings.missing_credentials()
    if missing:
        logger.warning(f'M-Pesa credentials not configured: {", ".join(missing)}; payments will be refused')
    logger.info(f'Loaded {settings!r}')

    # Models, tasks and socket handlers register themselves on import
    from workconnect import models  # noqa: F401
    from workconnect.tasks import poll_status_task, retry_failed_callbacks_task  # noqa: F401
    from workconnect.websockets import events  # noqa: F401

    # Register blueprints
    from workconnect.api import register_blueprints
    register_blueprints(app)

    # Error handlers
    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """Register error handlers"""

    @app.errorhandler(AppError)
    def app_error(error):
        if error.status_code >= 500:
            app.logger.error(f'{error.error}: {error.message}')
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SchemaValidationError)
    def schema_error(error):
        return jsonify({'success': False, 'error': 'Validation error', 'details': error.messages}), 400

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found', 'message': str(error)}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'success': False, 'error': 'Internal server error', 'message': str(error)}), 500
