"""
API Blueprints Package
Registers all API blueprints
"""

from workconnect.api.payments import payments_bp
from workconnect.api.webhooks import webhooks_bp, mpesa_callback
from workconnect.api.health import health_bp

# Export blueprints
__all__ = [
    'payments_bp',
    'webhooks_bp',
    'health_bp',
    'register_blueprints'
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app

    Args:
        app: Flask application instance
    """

    url_base : str = '/api/v1'

    app.register_blueprint(payments_bp, url_prefix=f'{url_base}/payments')
    app.register_blueprint(webhooks_bp, url_prefix=f'{url_base}/webhooks')
    app.register_blueprint(health_bp, url_prefix=url_base)

    # Path behind the default MPESA_CALLBACK_URL
    app.add_url_rule('/api/mpesa/callback', endpoint='mpesa_callback', view_func=mpesa_callback, methods=['POST'])
