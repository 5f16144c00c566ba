from flask import current_app

from workconnect.providers.mpesa_provider import MPesaProvider
from workconnect.providers.settings import MpesaSettings

__all__ = ['MPesaProvider', 'MpesaSettings', 'get_mpesa_settings', 'get_mpesa_provider']


def get_mpesa_settings() -> MpesaSettings:
    """Settings built at application start by create_app."""
    settings = current_app.extensions.get('mpesa_settings')
    if settings is None:
        settings = MpesaSettings.from_config(current_app.config)
        current_app.extensions['mpesa_settings'] = settings
    return settings


def get_mpesa_provider() -> MPesaProvider:
    """
    Provider instance shared across requests of one application

    The instance holds the OAuth token cache, so it lives on the app
    rather than being rebuilt per call.
    """
    provider = current_app.extensions.get('mpesa_provider')
    if provider is None:
        provider = MPesaProvider(get_mpesa_settings())
        current_app.extensions['mpesa_provider'] = provider
    return provider
