"""
Integration Tests for M-Pesa callback processing
"""

import json
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from conftest import stk_callback_payload
from workconnect.extensions import db
from workconnect.models import AuditLog, Job, Payment, WebhookEvent
from workconnect.services.callback_service import CallbackService
from workconnect.services.reconciliation_service import ReconciliationService
from workconnect.tasks.retry_failed_callbacks_task import retry_failed_callbacks

CALLBACK_URL = '/api/v1/webhooks/mpesa/callback'
CHECKOUT_ID = 'ws_CO_191020261200001234'


def _post_callback(client, payload, url=CALLBACK_URL):
    return client.post(url, data=json.dumps(payload), headers={'Content-Type': 'application/json'})


class TestMpesaCallback:
    """Integration tests for the callback endpoint"""

    def test_success_callback_completes_payment(self, client, sample_payment, sample_job):
        response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0, receipt='SJK7QWERTY'))

        assert response.status_code == 200
        assert json.loads(response.data) == {'ResultCode': '0', 'ResultDesc': 'Success'}

        db.session.expire_all()
        payment = db.session.get(Payment, sample_payment.id)
        assert payment.status == 'completed'
        assert payment.mpesa_transaction_id == 'SJK7QWERTY'

        job = db.session.get(Job, sample_job.id)
        assert job.status == 'completed'
        assert job.payment_status == 'paid'

        event = WebhookEvent.query.one()
        assert event.processed is True
        assert event.checkout_request_id == CHECKOUT_ID

    def test_failure_callback_fails_payment(self, client, sample_payment, sample_job):
        response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 1032))

        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Payment, sample_payment.id).status == 'failed'
        assert db.session.get(Job, sample_job.id).payment_status == 'unpaid'

    def test_duplicate_delivery_is_harmless(self, client, sample_payment):
        payload = stk_callback_payload(CHECKOUT_ID, 0)

        first = _post_callback(client, payload)
        second = _post_callback(client, payload)

        assert first.status_code == second.status_code == 200
        assert json.loads(second.data)['ResultCode'] == '0'
        assert AuditLog.query.filter_by(payment_id=sample_payment.id).count() == 1
        assert WebhookEvent.query.filter_by(processed=True).count() == 2

    def test_scenario_c_callback_after_poller_failure_is_noop(self, client, sample_payment):
        ReconciliationService.reconcile(CHECKOUT_ID, 'failed', result_code='1032')

        response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 1))

        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Payment, sample_payment.id).status == 'failed'

    def test_callback_without_payment_is_acknowledged_and_kept(self, client, session):
        response = _post_callback(client, stk_callback_payload('ws_CO_unknown', 0))

        assert response.status_code == 200
        event = WebhookEvent.query.one()
        assert event.processed is False
        assert event.retry_count == 1
        assert 'not found' in event.error_message

    def test_malformed_payload_returns_provider_error_shape(self, client, session):
        response = _post_callback(client, {'Body': {}})

        assert response.status_code == 500
        body = json.loads(response.data)
        assert body['ResultCode'] == '1'
        assert body['ResultDesc']

    def test_invalid_json_returns_provider_error_shape(self, client, session):
        response = client.post(CALLBACK_URL, data='not json', headers={'Content-Type': 'application/json'})

        assert response.status_code == 500
        assert json.loads(response.data)['ResultCode'] == '1'

    def test_store_failure_while_recording_returns_500(self, client, sample_payment):
        with patch.object(CallbackService, 'receive_callback',
                          side_effect=OperationalError('INSERT', {}, Exception('db down'))):
            response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0))

        assert response.status_code == 500
        assert json.loads(response.data) == {'ResultCode': '1', 'ResultDesc': 'Failed to record callback'}

    def test_non_object_metadata_returns_provider_error_shape(self, client, sample_payment):
        payload = {'Body': {'stkCallback': {
            'CheckoutRequestID': CHECKOUT_ID,
            'ResultCode': 0,
            'CallbackMetadata': 'oops'
        }}}

        response = _post_callback(client, payload)

        assert response.status_code == 500
        assert json.loads(response.data) == {'ResultCode': '1', 'ResultDesc': 'CallbackMetadata must be an object'}
        assert WebhookEvent.query.count() == 0
        assert db.session.get(Payment, sample_payment.id).status == 'pending'

    def test_unexpected_error_returns_provider_error_shape(self, client, sample_payment):
        with patch.object(CallbackService, 'process_event', side_effect=RuntimeError('boom')):
            response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0))

        assert response.status_code == 500
        assert json.loads(response.data) == {'ResultCode': '1', 'ResultDesc': 'boom'}

    def test_default_callback_path(self, client, sample_payment):
        response = _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0), url='/api/mpesa/callback')

        assert response.status_code == 200
        db.session.expire_all()
        assert db.session.get(Payment, sample_payment.id).status == 'completed'


class TestCallbackRetry:

    def _orphan_event(self, client):
        _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0))
        event = WebhookEvent.query.one()
        event.created_at = datetime.now() - timedelta(minutes=10)
        db.session.commit()
        return event

    def _create_payment(self, sample_job):
        payment = Payment(
            job_id=sample_job.id,
            customer_id='customer-1',
            worker_id='worker-1',
            amount=Decimal('1500.00'),
            payment_method='mpesa:+254712345678:+254798765432:WC-1234567',
            status='pending',
            mpesa_checkout_request_id=CHECKOUT_ID
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    def test_retry_processes_event_once_payment_exists(self, client, sample_job):
        event = self._orphan_event(client)
        payment = self._create_payment(sample_job)

        processed = CallbackService.retry_failed_callbacks()

        assert processed == 1
        db.session.expire_all()
        assert db.session.get(WebhookEvent, event.id).processed is True
        assert db.session.get(Payment, payment.id).status == 'completed'

    def test_retry_waits_for_schedule(self, client, sample_job):
        _post_callback(client, stk_callback_payload(CHECKOUT_ID, 0))
        self._create_payment(sample_job)

        assert CallbackService.retry_failed_callbacks() == 0

    def test_retry_gives_up_after_max_attempts(self, client, sample_job):
        event = self._orphan_event(client)
        event.retry_count = CallbackService.MAX_RETRY_ATTEMPTS
        db.session.commit()
        self._create_payment(sample_job)

        assert CallbackService.retry_failed_callbacks() == 0

    def test_retry_task(self, client, sample_job):
        self._orphan_event(client)
        self._create_payment(sample_job)

        assert retry_failed_callbacks() == 1

    def test_list_events(self, client, session):
        _post_callback(client, stk_callback_payload('ws_CO_unknown', 0))

        response = client.get('/api/v1/webhooks/events?processed=false')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['data']['pagination']['total'] == 1
        assert data['data']['items'][0]['checkout_request_id'] == 'ws_CO_unknown'

    def test_manual_retry_endpoint(self, client, sample_job):
        event = self._orphan_event(client)
        self._create_payment(sample_job)

        response = client.post(f'/api/v1/webhooks/events/{event.id}/retry')

        assert response.status_code == 200
        assert json.loads(response.data)['success'] is True

    def test_manual_retry_unknown_event(self, client, session):
        response = client.post('/api/v1/webhooks/events/00000000-0000-0000-0000-000000000000/retry')

        assert response.status_code == 404
