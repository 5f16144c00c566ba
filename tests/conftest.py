"""
Pytest Configuration and Fixtures
"""
import json
import uuid
from decimal import Decimal
from unittest.mock import Mock

import fakeredis
import pytest

from workconnect import create_app
from workconnect.extensions import db as _db, redis_client as _redis_client
from workconnect.models import Job, JobApplication, Payment, MpesaTransaction, WebhookEvent


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app('testing')

    # Establish application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope='function')
def session(app):
    """Fresh in-memory database for each test"""
    _db.create_all()

    yield _db.session

    _db.session.remove()
    _db.drop_all()


@pytest.fixture(scope="function")
def redis_client(app):
    """
    Fake Redis for tests, swapped in behind the app redis client.
    """
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    _redis_client.client = fake_redis

    yield fake_redis

    fake_redis.flushall()


@pytest.fixture(autouse=True)
def clear_redis(redis_client):
    yield
    redis_client.flushall()


@pytest.fixture(scope='function')
def client(app, session):
    """Create a test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def settings(app):
    return app.extensions['mpesa_settings']


def mock_http_response(json_data, status_code: int = 200) -> Mock:
    """Return a mock requests.Response whose .json() returns json_data."""
    resp = Mock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    if isinstance(json_data, (dict, list)):
        resp.json.return_value = json_data
        resp.text = json.dumps(json_data)
    else:
        resp.json.side_effect = ValueError('No JSON object could be decoded')
        resp.text = json_data or ''
    resp.headers = {"Content-Type": "application/json"}
    return resp


def token_response() -> Mock:
    """Valid Daraja OAuth token response (expires in ~1 hour)."""
    return mock_http_response({"access_token": "daraja_tok_abc", "expires_in": "3599"})


def stk_push_response(checkout_request_id: str = 'ws_CO_191020261200001234') -> Mock:
    return mock_http_response({
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResponseCode": "0",
        "ResponseDescription": "Success. Request accepted for processing",
        "CustomerMessage": "Success. Request accepted for processing"
    })


def stk_query_response(result_code: str, result_desc: str = '') -> Mock:
    return mock_http_response({
        "ResponseCode": "0",
        "ResponseDescription": "The service request has been accepted successsfully",
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": "ws_CO_191020261200001234",
        "ResultCode": result_code,
        "ResultDesc": result_desc
    })


def stk_callback_payload(checkout_request_id: str, result_code: int = 0, receipt: str = 'SJK7QWERTY') -> dict:
    stk = {
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': checkout_request_id,
        'ResultCode': result_code,
        'ResultDesc': 'The service request is processed successfully.' if result_code == 0
        else 'Request cancelled by user',
    }
    if result_code == 0:
        stk['CallbackMetadata'] = {
            'Item': [
                {'Name': 'Amount', 'Value': 1500},
                {'Name': 'MpesaReceiptNumber', 'Value': receipt},
                {'Name': 'TransactionDate', 'Value': 20261019120512},
                {'Name': 'PhoneNumber', 'Value': 254712345678}
            ]
        }
    return {'Body': {'stkCallback': stk}}


@pytest.fixture(scope='function')
def sample_job(session):
    """An in-progress job owned by customer-1"""
    job = Job(
        id=uuid.uuid4(),
        customer_id='customer-1',
        title='Fix kitchen sink',
        status='in_progress',
        payment_status='unpaid'
    )
    session.add(job)
    session.commit()
    return job


@pytest.fixture(scope='function')
def sample_application(session, sample_job):
    """worker-1 accepted for sample_job"""
    application = JobApplication(
        job_id=sample_job.id,
        worker_id='worker-1',
        status='accepted'
    )
    session.add(application)
    session.commit()
    return application


@pytest.fixture(scope='function')
def sample_transaction(session):
    transaction = MpesaTransaction(
        checkout_request_id='ws_CO_191020261200001234',
        merchant_request_id='29115-34620561-1',
        phone_number='254712345678',
        amount=Decimal('1500'),
        account_reference='WC-1234567',
        transaction_desc='Payment for job',
        status='pending'
    )
    session.add(transaction)
    session.commit()
    return transaction


@pytest.fixture(scope='function')
def sample_payment(session, sample_job, sample_application, sample_transaction):
    """Pending payment correlated with sample_transaction"""
    payment = Payment(
        job_id=sample_job.id,
        customer_id='customer-1',
        worker_id='worker-1',
        amount=Decimal('1500.00'),
        payment_method='mpesa:+254712345678:+254798765432:WC-1234567',
        status='pending',
        mpesa_checkout_request_id=sample_transaction.checkout_request_id
    )
    session.add(payment)
    session.commit()
    return payment


@pytest.fixture(scope='function')
def sample_callback_event(session, sample_payment):
    event = WebhookEvent(
        provider='mpesa',
        event_type='stk_callback',
        checkout_request_id=sample_payment.mpesa_checkout_request_id,
        payload=stk_callback_payload(sample_payment.mpesa_checkout_request_id),
        processed=False
    )
    session.add(event)
    session.commit()
    return event
