import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'postgresql://localhost/workconnect_dev')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', REDIS_URL)
    CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', REDIS_URL)
    CELERY_TASK_ALWAYS_EAGER = False
    CALLBACK_RETRY_INTERVAL = timedelta(minutes=1)

    # M-Pesa (Daraja) configuration
    MPESA_CONSUMER_KEY = os.getenv('MPESA_CONSUMER_KEY', '')
    MPESA_CONSUMER_SECRET = os.getenv('MPESA_CONSUMER_SECRET', '')
    MPESA_PASS_KEY = os.getenv('MPESA_PASS_KEY', '')
    MPESA_SHORT_CODE = os.getenv('MPESA_SHORT_CODE', '174379')
    MPESA_CALLBACK_URL = os.getenv('MPESA_CALLBACK_URL', 'https://connectwork.vercel.app/api/mpesa/callback')
    MPESA_ENVIRONMENT = os.getenv('MPESA_ENVIRONMENT', 'sandbox')
    MPESA_COUNTRY_CODE = os.getenv('MPESA_COUNTRY_CODE', '254')
    MPESA_REQUEST_TIMEOUT = int(os.getenv('MPESA_REQUEST_TIMEOUT', '30'))

    # Status polling
    MPESA_POLL_INTERVAL = int(os.getenv('MPESA_POLL_INTERVAL', '5'))
    MPESA_POLL_MAX_ATTEMPTS = int(os.getenv('MPESA_POLL_MAX_ATTEMPTS', '10'))

    # Whether store write failures are reported as success once the provider accepted the request
    MPESA_TOLERATE_PERSISTENCE_ERRORS = _env_bool('MPESA_TOLERATE_PERSISTENCE_ERRORS', True)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False
    MPESA_TOLERATE_PERSISTENCE_ERRORS = _env_bool('MPESA_TOLERATE_PERSISTENCE_ERRORS', False)


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    REDIS_URL = 'redis://localhost:6379/15'
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True

    MPESA_CONSUMER_KEY = 'test_consumer_key'
    MPESA_CONSUMER_SECRET = 'test_consumer_secret'
    MPESA_PASS_KEY = 'test_pass_key'
    MPESA_SHORT_CODE = '174379'
    MPESA_CALLBACK_URL = 'https://example.com/api/v1/webhooks/mpesa/callback'
    MPESA_ENVIRONMENT = 'sandbox'
    MPESA_TOLERATE_PERSISTENCE_ERRORS = True


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
