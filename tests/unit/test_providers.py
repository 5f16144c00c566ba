"""
Unit Tests for the M-Pesa provider layer
========================================
All HTTP goes through MpesaGateway._session.request, so that is the one
patch target. The OAuth call and the Daraja business endpoints arrive on
the same mock in call order.
"""

import base64
import logging
from datetime import datetime
from unittest.mock import patch

import pytest
import requests

from conftest import mock_http_response, token_response, stk_push_response
from workconnect.errors import ConfigError, UpstreamError
from workconnect.providers.auth import TokenAuthority
from workconnect.providers.gateway import MpesaGateway, classify_error
from workconnect.providers.mpesa_provider import MPesaProvider
from workconnect.providers.security import encode_base64, generate_password, generate_timestamp
from workconnect.providers.settings import MpesaSettings, BASE_URLS


def _settings(**overrides) -> MpesaSettings:
    values = dict(
        consumer_key='test_consumer_key',
        consumer_secret='test_consumer_secret',
        pass_key='test_pass_key',
        short_code='174379',
        callback_url='https://example.com/api/v1/webhooks/mpesa/callback',
        environment='sandbox',
    )
    values.update(overrides)
    return MpesaSettings(**values)


# ===========================================================================
# Request signer
# ===========================================================================

class TestRequestSigner:

    def test_password_is_base64_of_concatenation(self):
        password = generate_password('174379', 'passkey', '20261019120000')
        assert password == base64.b64encode(b'174379passkey20261019120000').decode()

    @pytest.mark.parametrize('args', [
        ('174380', 'passkey', '20261019120000'),
        ('174379', 'passkey2', '20261019120000'),
        ('174379', 'passkey', '20261019120001'),
    ])
    def test_changing_any_input_changes_password(self, args):
        assert generate_password(*args) != generate_password('174379', 'passkey', '20261019120000')

    def test_timestamp_format(self):
        assert generate_timestamp(datetime(2026, 1, 2, 3, 4, 5)) == '20260102030405'

    def test_timestamp_defaults_to_now(self):
        timestamp = generate_timestamp()
        assert len(timestamp) == 14
        assert timestamp.isdigit()

    def test_encode_base64_handles_non_ascii(self):
        assert encode_base64('ključ:sécret') == base64.b64encode('ključ:sécret'.encode('utf-8')).decode()

    def test_encode_base64_keeps_lone_surrogates(self):
        encoded = encode_base64('key\ud800')
        assert base64.b64decode(encoded) == 'key\ud800'.encode('utf-8', 'surrogatepass')


# ===========================================================================
# Settings
# ===========================================================================

class TestMpesaSettings:

    def test_base_url_follows_environment(self):
        assert _settings().base_url == BASE_URLS['sandbox']
        assert _settings(environment='production').base_url == 'https://api.safaricom.co.ke'

    def test_unknown_environment_is_config_error(self):
        with pytest.raises(ConfigError):
            _settings(environment='staging')

    def test_missing_credentials_listed(self):
        settings = _settings(consumer_secret='', pass_key='')
        assert settings.missing_credentials() == ['MPESA_CONSUMER_SECRET', 'MPESA_PASS_KEY']
        with pytest.raises(ConfigError):
            settings.require_credentials()

    def test_repr_hides_credentials(self):
        text = repr(_settings())
        assert 'test_consumer_secret' not in text
        assert 'test_pass_key' not in text

    def test_from_config_defaults(self):
        settings = MpesaSettings.from_config({
            'MPESA_CONSUMER_KEY': 'k',
            'MPESA_CONSUMER_SECRET': 's',
            'MPESA_PASS_KEY': 'p',
        })
        assert settings.short_code == '174379'
        assert settings.callback_url == 'https://connectwork.vercel.app/api/mpesa/callback'
        assert settings.environment == 'sandbox'
        assert settings.poll_interval == 5
        assert settings.poll_max_attempts == 10


# ===========================================================================
# Gateway
# ===========================================================================

class TestMpesaGateway:

    def setup_method(self):
        self.gateway = MpesaGateway(_settings())

    def test_success_result(self):
        with patch.object(self.gateway._session, 'request', return_value=stk_push_response('ws_CO_1')) as mock_req:
            result = self.gateway.call('/mpesa/stkpush/v1/processrequest', 'POST', body={'Amount': 1})

        assert result['success'] is True
        assert result['error'] is None
        assert result['data']['CheckoutRequestID'] == 'ws_CO_1'
        method, url = mock_req.call_args[0]
        assert method == 'POST'
        assert url == 'https://sandbox.safaricom.co.ke/mpesa/stkpush/v1/processrequest'
        assert mock_req.call_args[1]['json'] == {'Amount': 1}
        assert mock_req.call_args[1]['timeout'] == 30

    def test_connection_error_is_network_error(self):
        with patch.object(self.gateway._session, 'request', side_effect=requests.ConnectionError('refused')):
            result = self.gateway.call('/oauth/v1/generate')

        assert result['success'] is False
        assert result['error'] == 'network_error'
        assert 'Network error' in result['message']

    def test_timeout_is_network_error(self):
        with patch.object(self.gateway._session, 'request', side_effect=requests.Timeout('read timed out')):
            result = self.gateway.call('/oauth/v1/generate')

        assert result['error'] == 'network_error'

    @pytest.mark.parametrize('status_code', [401, 403])
    def test_unauthorised_status_is_authentication_error(self, status_code):
        resp = mock_http_response({'errorCode': '404.001.03', 'errorMessage': 'Invalid Access Token'}, status_code)
        with patch.object(self.gateway._session, 'request', return_value=resp):
            result = self.gateway.call('/mpesa/stkpushquery/v1/query', 'POST', body={})

        assert result['success'] is False
        assert result['error'] == 'authentication_error'
        assert result['status_code'] == status_code

    def test_error_code_in_body_is_failure_with_data(self):
        resp = mock_http_response({
            'requestId': 'abc',
            'errorCode': '500.001.1001',
            'errorMessage': 'The transaction is being processed'
        }, 500)
        with patch.object(self.gateway._session, 'request', return_value=resp):
            result = self.gateway.call('/mpesa/stkpushquery/v1/query', 'POST', body={})

        assert result['success'] is False
        assert result['error'] == 'upstream_error'
        assert result['message'] == 'The transaction is being processed'
        assert result['data']['errorCode'] == '500.001.1001'

    def test_non_json_body_is_upstream_error(self):
        resp = mock_http_response('<html>Bad Gateway</html>', 502)
        with patch.object(self.gateway._session, 'request', return_value=resp):
            result = self.gateway.call('/mpesa/stkpush/v1/processrequest', 'POST', body={})

        assert result['success'] is False
        assert result['error'] == 'upstream_error'
        assert 'Bad Gateway' in result['message']

    def test_credentials_redacted_in_logs(self, caplog):
        body = {'Password': 'c2VjcmV0', 'BusinessShortCode': '174379'}
        headers = {'Authorization': 'Bearer daraja_tok_abc'}
        with caplog.at_level(logging.DEBUG, logger='workconnect.providers.gateway'):
            with patch.object(self.gateway._session, 'request', return_value=stk_push_response()):
                self.gateway.call('/mpesa/stkpush/v1/processrequest', 'POST', body=body, headers=headers)

        assert 'c2VjcmV0' not in caplog.text
        assert 'daraja_tok_abc' not in caplog.text
        assert '174379' in caplog.text

    @pytest.mark.parametrize('message,status_code,expected', [
        ('Failed to establish a new connection', None, 'network_error'),
        ('Request timeout', None, 'network_error'),
        ('Unauthorized', None, 'authentication_error'),
        ('Invalid Access Token', 400, 'authentication_error'),
        ('Bad Request - Invalid Amount', 400, 'upstream_error'),
        ('anything', 403, 'authentication_error'),
    ])
    def test_classify_error(self, message, status_code, expected):
        assert classify_error(message, status_code) == expected


# ===========================================================================
# Token authority
# ===========================================================================

class TestTokenAuthority:

    def _authority(self, **overrides):
        settings = _settings(**overrides)
        return TokenAuthority(settings, MpesaGateway(settings))

    def test_missing_key_is_config_error_without_network(self):
        authority = self._authority(consumer_key='')
        with patch.object(authority.gateway._session, 'request') as mock_req:
            with pytest.raises(ConfigError):
                authority.get_auth_token()
        mock_req.assert_not_called()

    def test_basic_auth_header_and_endpoint(self):
        authority = self._authority()
        with patch.object(authority.gateway._session, 'request', return_value=token_response()) as mock_req:
            token = authority.get_auth_token()

        assert token == 'daraja_tok_abc'
        method, url = mock_req.call_args[0]
        assert method == 'GET'
        assert url.endswith('/oauth/v1/generate?grant_type=client_credentials')
        expected = base64.b64encode(b'test_consumer_key:test_consumer_secret').decode()
        assert mock_req.call_args[1]['headers']['Authorization'] == f'Basic {expected}'

    def test_token_is_cached(self):
        authority = self._authority()
        with patch.object(authority.gateway._session, 'request', return_value=token_response()) as mock_req:
            authority.get_auth_token()
            authority.get_auth_token()

        assert mock_req.call_count == 1

    def test_invalidate_forces_refresh(self):
        authority = self._authority()
        with patch.object(authority.gateway._session, 'request', return_value=token_response()) as mock_req:
            authority.get_auth_token()
            authority.invalidate()
            authority.get_auth_token()

        assert mock_req.call_count == 2

    def test_response_without_token_is_upstream_error(self):
        authority = self._authority()
        with patch.object(authority.gateway._session, 'request', return_value=mock_http_response({'expires_in': '3599'})):
            with pytest.raises(UpstreamError):
                authority.get_auth_token()

    def test_gateway_failure_is_upstream_error_without_retry(self):
        authority = self._authority()
        with patch.object(authority.gateway._session, 'request',
                          side_effect=requests.ConnectionError('refused')) as mock_req:
            with pytest.raises(UpstreamError) as exc_info:
                authority.get_auth_token()

        assert exc_info.value.kind == 'network_error'
        assert mock_req.call_count == 1


# ===========================================================================
# MPesaProvider
# ===========================================================================

class TestMPesaProvider:

    def setup_method(self):
        self.provider = MPesaProvider(_settings())

    def test_stk_push_body(self):
        with patch.object(self.provider.gateway._session, 'request',
                          side_effect=[token_response(), stk_push_response('ws_CO_1')]) as mock_req:
            result = self.provider.stk_push(
                phone='254712345678',
                amount=151,
                account_reference='WorkConnect Payment',
                transaction_desc='Payment for services',
            )

        assert result['success'] is True
        push_call = mock_req.call_args_list[1]
        body = push_call[1]['json']
        assert push_call[0][1].endswith('/mpesa/stkpush/v1/processrequest')
        assert push_call[1]['headers']['Authorization'] == 'Bearer daraja_tok_abc'
        assert body['BusinessShortCode'] == '174379'
        assert body['TransactionType'] == 'CustomerPayBillOnline'
        assert body['Amount'] == 151
        assert body['PartyA'] == body['PhoneNumber'] == '254712345678'
        assert body['PartyB'] == '174379'
        assert body['CallBackURL'] == 'https://example.com/api/v1/webhooks/mpesa/callback'
        assert body['AccountReference'] == 'WorkConnect '
        assert body['TransactionDesc'] == 'Payment for s'
        assert body['Password'] == generate_password('174379', 'test_pass_key', body['Timestamp'])

    def test_stk_push_callback_override(self):
        with patch.object(self.provider.gateway._session, 'request',
                          side_effect=[token_response(), stk_push_response()]) as mock_req:
            self.provider.stk_push('254712345678', 10, 'ref', 'desc', callback_url='https://other.example/cb')

        assert mock_req.call_args_list[1][1]['json']['CallBackURL'] == 'https://other.example/cb'

    def test_missing_pass_key_raises_before_network(self):
        provider = MPesaProvider(_settings(pass_key=''))
        with patch.object(provider.gateway._session, 'request') as mock_req:
            with pytest.raises(ConfigError):
                provider.stk_push('254712345678', 10, 'ref', 'desc')
        mock_req.assert_not_called()

    def test_token_failure_becomes_structured_result(self):
        with patch.object(self.provider.gateway._session, 'request',
                          return_value=mock_http_response({'errorMessage': 'Unauthorized'}, 401)):
            result = self.provider.query_stk_status('ws_CO_1')

        assert result['success'] is False
        assert result['error'] == 'authentication_error'

    def test_query_body(self):
        with patch.object(self.provider.gateway._session, 'request',
                          side_effect=[token_response(), mock_http_response({'ResultCode': '0'})]) as mock_req:
            self.provider.query_stk_status('ws_CO_1')

        body = mock_req.call_args_list[1][1]['json']
        assert set(body) == {'BusinessShortCode', 'Password', 'Timestamp', 'CheckoutRequestID'}
        assert body['CheckoutRequestID'] == 'ws_CO_1'

    def test_parse_callback_reads_receipt_from_metadata(self):
        parsed = MPesaProvider.parse_stk_callback({
            'Body': {'stkCallback': {
                'CheckoutRequestID': 'ws_CO_1',
                'ResultCode': 0,
                'ResultDesc': 'ok',
                'CallbackMetadata': {'Item': [
                    {'Name': 'Amount', 'Value': 10},
                    {'Name': 'MpesaReceiptNumber', 'Value': 'SJK7QWERTY'},
                ]}
            }}
        })
        assert parsed['result_code'] == '0'
        assert parsed['mpesa_receipt_number'] == 'SJK7QWERTY'
        assert parsed['amount'] == 10

    def test_parse_callback_reads_direct_receipt(self):
        parsed = MPesaProvider.parse_stk_callback({
            'Body': {'stkCallback': {
                'CheckoutRequestID': 'ws_CO_1',
                'ResultCode': '0',
                'ResultDesc': 'ok',
                'MpesaReceiptNumber': 'ABC123'
            }}
        })
        assert parsed['mpesa_receipt_number'] == 'ABC123'

    @pytest.mark.parametrize('payload', [
        {},
        {'Body': {}},
        {'Body': {'stkCallback': {'ResultCode': 0}}},
        ['not', 'a', 'dict'],
        {'Body': 'oops'},
        {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 0, 'CallbackMetadata': 'oops'}}},
        {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 0, 'CallbackMetadata': {'Item': 'oops'}}}},
    ])
    def test_parse_callback_rejects_malformed(self, payload):
        with pytest.raises(ValueError):
            MPesaProvider.parse_stk_callback(payload)
