"""Tests for the request gate, logout, token exchange and the domain listing."""
from unittest.mock import patch

from authcenter.clients.domains import DomainServiceClient
from authcenter.services.principal import effective_role
from authcenter.services.token_service import TokenService
from models import db
from models.token_blacklist import BlacklistedToken
from models.user_activity import UserActivity


class TestGate:

    def test_validate_returns_profile(self, client, user, auth_headers):
        response = client.get('/auth/validate', headers=auth_headers(user))
        assert response.status_code == 200
        assert response.get_json()['user']['uuid'] == user.uuid

    def test_missing_token(self, client):
        response = client.get('/auth/validate')
        assert response.status_code == 401
        assert response.get_json() == {'message': 'Token not provided', 'error': 'token_missing'}

    def test_non_bearer_header(self, client, user, token_for):
        response = client.get('/auth/validate', headers={'Authorization': f'Token {token_for(user)}'})
        assert response.status_code == 401

    def test_expired_token(self, client, user):
        token = TokenService(ttl=-60).issue({'sub': user.uuid})
        response = client.get('/auth/validate', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'token_expired'

    def test_deleted_subject(self, client, user, auth_headers):
        headers = auth_headers(user)
        db.session.delete(user)
        db.session.commit()
        assert client.get('/auth/validate', headers=headers).status_code == 401


class TestLogout:

    def test_logout_blacklists_the_token(self, client, user, auth_headers):
        headers = auth_headers(user)

        response = client.post('/auth/logout', headers=headers)
        assert response.status_code == 200
        assert BlacklistedToken.query.count() == 1
        assert UserActivity.query.filter_by(user_id=user.id, event_type='logout').count() == 1

        again = client.get('/auth/validate', headers=headers)
        assert again.status_code == 401
        assert again.get_json()['error'] == 'token_blacklisted'

    def test_other_tokens_survive(self, client, user, auth_headers):
        first, second = auth_headers(user), auth_headers(user)
        client.post('/auth/logout', headers=first)
        assert client.get('/auth/validate', headers=second).status_code == 200


class TestTokenExchange:

    def test_exchange_for_granted_domain(self, client, user, token_for):
        response = client.post('/auth/token/exchange', json={'token': token_for(user), 'key': 'jobfinder'})

        assert response.status_code == 200
        assert response.get_json()['user']['uuid'] == user.uuid
        assert UserActivity.query.filter_by(event_type='Job Finder login').count() == 1

    def test_domain_without_grant(self, client, user, token_for):
        response = client.post('/auth/token/exchange', json={'token': token_for(user), 'key': 'ccms'})
        assert response.status_code == 403

    def test_admin_may_enter_any_domain(self, client, admin, token_for):
        response = client.post('/auth/token/exchange', json={'token': token_for(admin), 'key': 'ccms'})
        assert response.status_code == 200

    def test_unknown_domain_key(self, client, user, token_for):
        response = client.post('/auth/token/exchange', json={'token': token_for(user), 'key': 'nowhere'})
        assert response.status_code == 404

    def test_missing_domain_key(self, client, user, token_for):
        response = client.post('/auth/token/exchange', json={'token': token_for(user)})
        assert response.status_code == 422

    def test_unapproved_user(self, client, make_user, token_for):
        user = make_user(is_approved=False)
        response = client.post('/auth/token/exchange', json={'token': token_for(user), 'key': 'jobfinder'})
        assert response.status_code == 403
        assert response.get_json()['error'] == 'account_not_approved'

    def test_blacklisted_token(self, client, user, token_for):
        token = token_for(user)
        client.post('/auth/logout', headers={'Authorization': f'Bearer {token}'})
        response = client.post('/auth/token/exchange', json={'token': token, 'key': 'jobfinder'})
        assert response.status_code == 401

    def test_rate_limited(self, client, user, token_for):
        token = token_for(user)
        statuses = [
            client.post('/auth/token/exchange', json={'token': token, 'key': 'jobfinder'}).status_code
            for _ in range(11)
        ]
        assert statuses[:10] == [200] * 10
        assert statuses[10] == 429


class TestDomains:

    def test_lists_domains_and_assignments(self, client, user, domains, auth_headers):
        with patch.object(DomainServiceClient, 'fetch_page_permissions', return_value=['/Admin/cop']):
            response = client.get('/auth/domains', headers=auth_headers(user))

        data = response.get_json()
        assert response.status_code == 200
        assert len(data['domains']) == 5
        assert data['assigned_domains'] == [domains['jobfinder'].id]
        assert data['page_permissions'] == ['/Admin/cop']

    def test_unreachable_permissions_service_degrades(self, client, user, auth_headers):
        response = client.get('/auth/domains', headers=auth_headers(user))
        assert response.status_code == 200
        assert response.get_json()['page_permissions'] == []

    def test_admin_is_assigned_everything(self, client, admin, domains, auth_headers):
        data = client.get('/auth/domains', headers=auth_headers(admin)).get_json()
        assert sorted(data['assigned_domains']) == sorted(d.id for d in domains.values())


class TestEffectiveRole:

    def test_roles(self, make_user):
        assert effective_role(None) == 'user'
        assert effective_role(make_user(email='a@example.com', role='admin')) == 'admin'
        assert effective_role(make_user(email='b@example.com', external_role='Admin')) == 'user'
        assert effective_role(make_user(email='c@example.com', external_role='Admin',
                                        user_origin='site_access_info')) == 'admin'


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'healthy'

    def test_unknown_route_is_json(self, client):
        response = client.get('/does-not-exist')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'not_found'
