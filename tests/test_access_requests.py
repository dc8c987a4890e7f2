"""Tests for the access/activation request workflow."""
import json
from unittest.mock import patch

import pytest

from authcenter.clients.domains import DomainServiceClient, sign_body
from models import db
from models.access_request import AccessRequest


@pytest.fixture
def requester(make_user):
    return make_user(email='requester@example.com')


def _create(client, headers, domain, path='/access-requests', **extra):
    body = {'domain_id': domain.id}
    body.update(extra)
    return client.post(path, json=body, headers=headers)


class TestCreate:

    def test_create_request(self, client, requester, domains, auth_headers):
        response = _create(client, auth_headers(requester), domains['ccms'], message='please')

        assert response.status_code == 201
        data = response.get_json()['request']
        assert data['status'] == 'pending'
        assert data['request_type'] == 'access'
        assert data['domain_name'] == 'CCMS'
        assert data['message'] == 'please'

    def test_duplicate_pending_request_reports_existing_id(self, client, requester, domains, auth_headers):
        headers = auth_headers(requester)
        first = _create(client, headers, domains['ccms']).get_json()['request']
        response = _create(client, headers, domains['ccms'])

        assert response.status_code == 409
        data = response.get_json()
        assert data['error'] == 'already_pending'
        assert data['request_id'] == first['id']
        assert AccessRequest.query.count() == 1

    def test_existing_grant_is_rejected(self, client, requester, domains, auth_headers):
        response = _create(client, auth_headers(requester), domains['jobfinder'])
        assert response.status_code == 409
        assert response.get_json()['error'] == 'already_has_access'

    def test_unknown_domain(self, client, requester, auth_headers):
        response = client.post('/access-requests', json={'domain_id': 999}, headers=auth_headers(requester))
        assert response.status_code == 404

    def test_message_length(self, client, requester, domains, auth_headers):
        response = _create(client, auth_headers(requester), domains['ccms'], message='x' * 1001)
        assert response.status_code == 422

    def test_pending_cap(self, app, client, requester, domains, auth_headers):
        app.config['MAX_PENDING_REQUESTS'] = 1
        headers = auth_headers(requester)
        assert _create(client, headers, domains['ccms']).status_code == 201
        response = _create(client, headers, domains['solucomp'])
        assert response.status_code == 429

    def test_requires_authentication(self, client, domains):
        response = client.post('/access-requests', json={'domain_id': domains['ccms'].id})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'token_missing'


class TestActivationRequests:

    def test_needs_existing_grant(self, client, requester, domains, auth_headers):
        response = _create(client, auth_headers(requester), domains['ccms'], path='/activation-requests')
        assert response.status_code == 409
        assert response.get_json()['error'] == 'no_domain_access'

    def test_stores_deactivation_info(self, client, requester, domains, auth_headers):
        info = {'name': 'Grace', 'domain': 'jobfinder', 'deactivation_date': '2024-01-01'}
        with patch.object(DomainServiceClient, 'fetch_deactivation_info', return_value=info):
            response = _create(client, auth_headers(requester), domains['jobfinder'],
                               path='/activation-requests')

        assert response.status_code == 201
        access_request = db.session.get(AccessRequest, response.get_json()['request']['id'])
        assert access_request.request_type == 'activation'
        assert access_request.deactivate_info == info

    def test_already_active(self, client, requester, domains, auth_headers):
        requester.set_external_status('jobfinder', 'active')
        db.session.commit()
        response = _create(client, auth_headers(requester), domains['jobfinder'], path='/activation-requests')
        assert response.get_json()['error'] == 'already_active'

    def test_approve_with_activation_calls_domain(self, client, requester, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['jobfinder'],
                          path='/activation-requests').get_json()['request']

        with patch.object(DomainServiceClient, 'fetch_user_status', return_value='inactive'), \
                patch.object(DomainServiceClient, 'activate_user', return_value=True) as activate:
            response = client.post(f"/access-requests/{created['id']}/approve",
                                   json={'enable_user_activation': True}, headers=auth_headers(admin))

        assert response.status_code == 200
        activate.assert_called_once_with('jobfinder', requester.uuid)
        db.session.refresh(requester)
        assert requester.external_status_for('jobfinder') == 'active'

    def test_retrigger_refused_when_already_active_downstream(self, client, requester, admin, domains,
                                                              auth_headers):
        created = _create(client, auth_headers(requester), domains['jobfinder'],
                          path='/activation-requests').get_json()['request']

        with patch.object(DomainServiceClient, 'fetch_user_status', return_value='active'):
            response = client.post(f"/access-requests/{created['id']}/approve",
                                   json={'enable_user_activation': True}, headers=auth_headers(admin))
        assert response.status_code == 409
        assert response.get_json()['error'] == 'already_active'

    def test_callback_records_downstream_status(self, client, requester, domains):
        body = json.dumps({'user_uuid': requester.uuid, 'domain_key': 'ccms', 'status': 'inactive'}).encode()
        response = client.post('/user-activation-status', data=body, content_type='application/json',
                               headers={'X-Auth-Signature': sign_body(body, 'test-sync-secret')})

        assert response.status_code == 200
        db.session.refresh(requester)
        assert requester.external_status_for('ccms') == 'inactive'


class TestDecisions:

    def test_satellite_approval_fans_out(self, client, requester, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['solucomp_cop']).get_json()['request']

        with patch.object(DomainServiceClient, 'sync_page_permission', return_value=True) as sync:
            response = client.post(f"/access-requests/{created['id']}/approve", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['request']['status'] == 'approved'
        db.session.refresh(requester)
        assert set(requester.domain_keys()) == {'jobfinder', 'solucomp', 'solucomp_cop'}
        sync.assert_called_once_with(requester.uuid, '/Admin/cop', 'assign')

    def test_second_approval_is_a_conflict(self, client, requester, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        headers = auth_headers(admin)
        client.post(f"/access-requests/{created['id']}/approve", headers=headers)

        response = client.post(f"/access-requests/{created['id']}/approve", headers=headers)
        assert response.status_code == 409
        assert response.get_json()['current_status'] == 'approved'

    def test_non_admin_cannot_decide(self, client, requester, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        response = client.post(f"/access-requests/{created['id']}/approve", headers=auth_headers(requester))
        assert response.status_code == 403

    def test_reject_leaves_grants_untouched(self, client, requester, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        response = client.post(f"/access-requests/{created['id']}/reject", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.get_json()['request']['status'] == 'rejected'
        db.session.refresh(requester)
        assert requester.domain_keys() == ['jobfinder']

    def test_resubmit_only_from_rejected(self, client, requester, admin, domains, auth_headers):
        headers = auth_headers(requester)
        created = _create(client, headers, domains['ccms']).get_json()['request']

        pending = client.post(f"/access-requests/{created['id']}/resubmit", headers=headers)
        assert pending.status_code == 409
        assert pending.get_json()['error'] == 'not_rejected'

        client.post(f"/access-requests/{created['id']}/reject", headers=auth_headers(admin))
        response = client.post(f"/access-requests/{created['id']}/resubmit", headers=headers)

        assert response.status_code == 200
        data = response.get_json()['request']
        assert data['status'] == 'pending'
        assert data['message'].startswith('User requested access again for this domain.')

    def test_only_owner_may_resubmit(self, client, requester, make_user, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        client.post(f"/access-requests/{created['id']}/reject", headers=auth_headers(admin))
        other = make_user(email='other@example.com')

        response = client.post(f"/access-requests/{created['id']}/resubmit", headers=auth_headers(other))
        assert response.status_code == 403

    def test_resubmit_respects_pending_cap(self, app, client, requester, admin, domains, auth_headers):
        app.config['MAX_PENDING_REQUESTS'] = 2
        headers = auth_headers(requester)
        first = _create(client, headers, domains['ccms']).get_json()['request']
        _create(client, headers, domains['solucomp'])
        client.post(f"/access-requests/{first['id']}/reject", headers=auth_headers(admin))
        assert _create(client, headers, domains['solucomp_cop']).status_code == 201

        response = client.post(f"/access-requests/{first['id']}/resubmit", headers=headers)

        assert response.status_code == 429
        assert AccessRequest.query.filter_by(user_uuid=requester.uuid, status='pending').count() == 2
        assert db.session.get(AccessRequest, first['id']).status == 'rejected'

    def test_external_status_update(self, client, requester, admin, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        response = client.patch(f"/access-requests/{created['id']}/external-status",
                                json={'external_active_status': 'active'}, headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.get_json()['request']['external_active_status'] == 'active'


class TestReadAndDelete:

    def test_listing_is_scoped_to_owner(self, client, requester, make_user, admin, domains, auth_headers):
        other = make_user(email='other@example.com')
        _create(client, auth_headers(requester), domains['ccms'])
        _create(client, auth_headers(other), domains['solucomp'])

        own = client.get('/access-requests', headers=auth_headers(requester)).get_json()
        everything = client.get('/access-requests', headers=auth_headers(admin)).get_json()

        assert own['total'] == 1
        assert own['un_approved_request_count'] == 2
        assert everything['total'] == 2

    def test_listing_filters(self, client, requester, admin, domains, auth_headers):
        headers = auth_headers(requester)
        first = _create(client, headers, domains['ccms']).get_json()['request']
        _create(client, headers, domains['solucomp'])
        client.post(f"/access-requests/{first['id']}/reject", headers=auth_headers(admin))

        data = client.get('/access-requests?status=rejected', headers=headers).get_json()
        assert [item['id'] for item in data['data']] == [first['id']]

    def test_search_matches_email(self, client, requester, admin, domains, auth_headers):
        _create(client, auth_headers(requester), domains['ccms'])
        data = client.get('/access-requests/search?search=REQUESTER', headers=auth_headers(admin)).get_json()
        assert data['total'] == 1

    def test_search_is_admin_only(self, client, requester, auth_headers):
        response = client.get('/access-requests/search?search=x', headers=auth_headers(requester))
        assert response.status_code == 403

    def test_show_enforces_ownership(self, client, requester, make_user, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        other = make_user(email='other@example.com')

        assert client.get(f"/access-requests/{created['id']}", headers=auth_headers(requester)).status_code == 200
        assert client.get(f"/access-requests/{created['id']}", headers=auth_headers(other)).status_code == 403

    def test_missing_request_is_404_without_id_list(self, client, requester, auth_headers):
        response = client.get('/access-requests/12345', headers=auth_headers(requester))
        assert response.status_code == 404
        assert 'existing_ids' not in response.get_json()

    def test_owner_deletes_pending(self, client, requester, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        response = client.delete(f"/access-requests/{created['id']}", headers=auth_headers(requester))
        assert response.status_code == 200
        assert AccessRequest.query.count() == 0

    def test_other_user_cannot_delete(self, client, requester, make_user, domains, auth_headers):
        created = _create(client, auth_headers(requester), domains['ccms']).get_json()['request']
        other = make_user(email='other@example.com')
        response = client.delete(f"/access-requests/{created['id']}", headers=auth_headers(other))
        assert response.status_code == 403
