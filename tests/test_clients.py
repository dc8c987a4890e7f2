"""Tests for the downstream domain client and sync signatures."""
import base64
import hashlib
import hmac
import json
from unittest.mock import MagicMock

import pytest
import requests

from authcenter.clients.domains import DomainServiceClient, decode_sync_secret, sign_body, verify_signature


def _response(status=200, payload=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload or {}
    response.text = json.dumps(payload or {})
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def domain_client(app, domain_settings, session):
    return DomainServiceClient(settings=domain_settings, sync_secret='test-sync-secret',
                               shared_token='shared-token', session=session)


class TestSignatures:

    def test_base64_prefixed_secret_is_decoded(self):
        raw = b'\x00\x01secret-bytes'
        encoded = 'base64:' + base64.b64encode(raw).decode('ascii')
        assert decode_sync_secret(encoded) == raw

    def test_signature_is_hex_hmac_sha256(self):
        raw = b'0123456789abcdef'
        secret = 'base64:' + base64.b64encode(raw).decode('ascii')
        body = b'{"uuid": "x"}'
        assert sign_body(body, secret) == hmac.new(raw, body, hashlib.sha256).hexdigest()

    def test_verify(self):
        body = b'payload'
        signature = sign_body(body, 'test-sync-secret')
        assert verify_signature(body, signature, 'test-sync-secret')
        assert not verify_signature(body + b' ', signature, 'test-sync-secret')
        assert not verify_signature(body, None, 'test-sync-secret')
        assert not verify_signature(body, signature, None)


class TestDomainServiceClient:

    def test_user_status(self, domain_client, session):
        session.request.return_value = _response(payload={'user_status': 'active'})

        assert domain_client.fetch_user_status('ccms', 'u-1', 'a@example.com') == 'active'
        method, url = session.request.call_args[0]
        assert (method, url) == ('POST', 'http://ccms.test/user/status')
        assert session.request.call_args[1]['timeout'] == 3
        assert session.request.call_args[1]['headers']['Authorization'] == 'Bearer shared-token'

    def test_user_status_timeout_is_unknown(self, domain_client, session):
        session.request.side_effect = requests.Timeout()
        assert domain_client.fetch_user_status('ccms', 'u-1', 'a@example.com') is None

    def test_user_status_unexpected_value(self, domain_client, session):
        session.request.return_value = _response(payload={'user_status': 'pending'})
        assert domain_client.fetch_user_status('ccms', 'u-1', 'a@example.com') is None

    def test_activation_only_on_supported_domains(self, domain_client, session):
        assert domain_client.activate_user('solucomp', 'u-1') is False
        session.request.assert_not_called()

    def test_activation(self, domain_client, session):
        session.request.return_value = _response()
        assert domain_client.activate_user('ccms', 'u-1') is True
        method, url = session.request.call_args[0]
        assert url == 'http://ccms.test/users/u-1/activate'
        assert session.request.call_args[1]['headers']['Authorization'] == 'Bearer test-sync-secret'

    def test_activation_failure(self, domain_client, session):
        session.request.return_value = _response(status=500)
        assert domain_client.activate_user('ccms', 'u-1') is False

    def test_deactivation_info(self, domain_client, session):
        session.request.return_value = _response(payload={
            'status': 'success',
            'data': {'deactivated_by': {'name': 'Grace'}, 'deactivation_date': '2024-01-01'},
        })
        info = domain_client.fetch_deactivation_info('jobfinder', 'u-1')
        assert info == {'name': 'Grace', 'domain': 'jobfinder', 'deactivation_date': '2024-01-01'}

    def test_page_permission_sync_is_signed(self, domain_client, session):
        session.request.return_value = _response()
        assert domain_client.sync_page_permission('u-1', '/Admin/cop', 'assign') is True

        kwargs = session.request.call_args[1]
        body = kwargs['data']
        assert json.loads(body) == {'uuid': 'u-1', 'permission': '/Admin/cop', 'action': 'assign'}
        assert kwargs['headers']['X-Auth-Signature'] == sign_body(body, 'test-sync-secret')

    def test_page_permissions_need_bearer(self, domain_client, session):
        assert domain_client.fetch_page_permissions(None, 'u-1') == []
        session.request.assert_not_called()

    def test_page_permissions(self, domain_client, session):
        session.request.return_value = _response(payload={'page_permissions': ['/Admin/cop']})
        assert domain_client.fetch_page_permissions('tok', 'u-1') == ['/Admin/cop']
        assert session.request.call_args[1]['timeout'] == 5

    def test_delete_user_without_route(self, domain_client, session):
        assert domain_client.delete_user('solucomp', 'u-1') is False
        session.request.assert_not_called()

    def test_delete_user(self, domain_client, session):
        session.request.return_value = _response()
        assert domain_client.delete_user('ccms', 'u-1') is True
        method, url = session.request.call_args[0]
        assert (method, url) == ('DELETE', 'http://ccms.test/api/users/u-1')

    def test_missing_sync_secret_skips_signed_calls(self, app, domain_settings, session):
        client = DomainServiceClient(settings=domain_settings, sync_secret='', session=session)
        assert client.sync_page_permission('u-1', '/Admin/cop', 'assign') is False
        session.request.assert_not_called()
