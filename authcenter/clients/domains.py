"""HTTP client for the downstream domain applications (ccms, jobfinder, solucomp)."""
import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional

import requests
from flask import current_app

from utils.config import DomainServiceSettings
from utils.exceptions import UpstreamError

logger = logging.getLogger(__name__)

# Domains exposing /users/{uuid}/activate and /users/{uuid}/deactivated-by.
ACTIVATION_DOMAINS = ('ccms', 'jobfinder')


def decode_sync_secret(secret: Optional[str]) -> Optional[bytes]:
    """Return the raw HMAC key for ``SYNC_SECRET`` (base64, optionally ``base64:`` prefixed)."""
    if not secret:
        return None
    value = secret[len('base64:'):] if secret.startswith('base64:') else secret
    try:
        return base64.b64decode(value, validate=True)
    except (ValueError, TypeError):
        return value.encode('utf-8')


def sign_body(body: bytes, secret: Optional[str]) -> Optional[str]:
    key = decode_sync_secret(secret)
    if key is None:
        return None
    return hmac.new(key, body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    expected = sign_body(body, secret)
    if not expected or not signature:
        return False
    return hmac.compare_digest(expected, signature)


class DomainServiceClient:
    """Outbound calls to sibling applications.

    Every call carries an explicit timeout. Failures are logged with the
    url, user and response and turned into a default return value, unless
    the client was built with ``raise_errors=True`` (background jobs that
    retry), in which case the ``UpstreamError`` propagates.
    """

    def __init__(self, settings: Optional[DomainServiceSettings] = None,
                 sync_secret: Optional[str] = None,
                 shared_token: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 raise_errors: bool = False):
        config = current_app.config
        self.settings = settings or config['DOMAIN_SERVICES']
        self.sync_secret = sync_secret if sync_secret is not None else config.get('SYNC_SECRET')
        self.shared_token = shared_token if shared_token is not None else config.get('SSO_SHARED_TOKEN')
        self.session = session or requests.Session()
        self.raise_errors = raise_errors

    def base_url(self, domain_key: str) -> Optional[str]:
        url = self.settings.base_urls.get(domain_key)
        return url.rstrip('/') if url else None

    def _degrade(self, error: UpstreamError, default):
        if self.raise_errors:
            raise error
        return default

    def _request(self, method: str, url: str, user_uuid: str = None,
                 timeout: int = None, **kwargs) -> requests.Response:
        timeout = timeout or self.settings.timeout
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.Timeout as e:
            logger.warning(f"{method} {url} timed out after {timeout}s (user {user_uuid})")
            raise UpstreamError(f"Timeout calling {url}") from e
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed for user {user_uuid}: {e}")
            raise UpstreamError(f"Error calling {url}: {e}") from e

        if not response.ok:
            logger.error(
                f"{method} {url} returned {response.status_code} for user {user_uuid}: "
                f"{response.text[:500]}"
            )
            raise UpstreamError(f"{url} returned {response.status_code}",
                                upstream_status=response.status_code)
        return response

    def _post_signed(self, url: str, payload: Dict[str, Any], user_uuid: str) -> bool:
        body = json.dumps(payload).encode('utf-8')
        signature = sign_body(body, self.sync_secret)
        if signature is None:
            logger.critical(f"SYNC_SECRET is not configured; not calling {url}")
            return False
        try:
            self._request('POST', url, user_uuid=user_uuid, data=body, headers={
                'Content-Type': 'application/json',
                'X-Auth-Signature': signature,
            })
        except UpstreamError as e:
            return self._degrade(e, False)
        return True

    # Activation

    def activate_user(self, domain_key: str, user_uuid: str) -> bool:
        base = self.base_url(domain_key)
        if domain_key not in ACTIVATION_DOMAINS or not base:
            logger.info(f"Domain {domain_key} does not support user activation")
            return False
        if not self.sync_secret:
            logger.error("SYNC_SECRET not configured; cannot activate user")
            return False
        try:
            self._request(
                'POST', f"{base}/users/{user_uuid}/activate",
                user_uuid=user_uuid,
                json={'user_uuid': user_uuid, 'need_active': True},
                headers={'Authorization': f"Bearer {self.sync_secret}", 'Accept': 'application/json'},
            )
        except UpstreamError as e:
            return self._degrade(e, False)
        logger.info(f"User {user_uuid} activated on {domain_key}")
        return True

    def fetch_deactivation_info(self, domain_key: str, user_uuid: str) -> Optional[Dict[str, Any]]:
        base = self.base_url(domain_key)
        if domain_key not in ACTIVATION_DOMAINS or not base or not self.sync_secret:
            return None
        try:
            response = self._request(
                'GET', f"{base}/users/{user_uuid}/deactivated-by",
                user_uuid=user_uuid,
                headers={'Authorization': f"Bearer {self.sync_secret}", 'Accept': 'application/json'},
            )
            data = response.json()
        except UpstreamError as e:
            return self._degrade(e, None)
        except ValueError:
            return None

        if data.get('status') != 'success' or not (data.get('data') or {}).get('deactivated_by'):
            return None
        info = dict(data['data']['deactivated_by'])
        info['domain'] = domain_key
        info['deactivation_date'] = data['data'].get('deactivation_date')
        return info

    def fetch_user_status(self, domain_key: str, user_uuid: str, email: str) -> Optional[str]:
        """Ask the domain whether the user is active there; None when unknown."""
        base = self.base_url(domain_key)
        if not base:
            return None
        try:
            response = self._request(
                'POST', f"{base}/user/status",
                user_uuid=user_uuid,
                timeout=self.settings.status_timeout,
                json={'user_uuid': user_uuid, 'email': email},
                headers={'Authorization': f"Bearer {self.shared_token or ''}"},
            )
            status = response.json().get('user_status')
        except (UpstreamError, ValueError, AttributeError):
            return None
        return status if status in ('active', 'inactive') else None

    # Page permissions

    def fetch_page_permissions(self, bearer_token: Optional[str], user_uuid: str) -> List[Any]:
        url = self.settings.page_permissions_url
        if not url:
            logger.warning("SOLUCOMP_USERPAGE_PERMISSION is not set; cannot fetch page permissions")
            return []
        if not bearer_token:
            logger.warning("Request is missing a bearer token; cannot fetch page permissions")
            return []
        try:
            response = self._request(
                'GET', url, user_uuid=user_uuid,
                timeout=self.settings.permissions_timeout,
                headers={'Authorization': f"Bearer {bearer_token}", 'Accept': 'application/json'},
            )
            return response.json().get('page_permissions', []) or []
        except (UpstreamError, ValueError, AttributeError):
            return []

    def sync_page_permission(self, user_uuid: str, permission: str, action: str) -> bool:
        url = self.settings.page_permission_sync_url
        if not url:
            logger.warning("SOLUCOMP_PAGE_PERMISSION URL is not configured")
            return False
        return self._post_signed(url, {
            'uuid': user_uuid, 'permission': permission, 'action': action,
        }, user_uuid)

    # User lifecycle propagation

    def sync_new_user(self, origin_key: str, payload: Dict[str, Any]) -> bool:
        url = self.settings.new_user_sync_routes.get(origin_key)
        if not url:
            logger.warning(f"No new-user sync URL configured for {origin_key}")
            return False
        return self._post_signed(url, payload, payload.get('uuid'))

    def sync_user_update(self, domain_key: str, payload: Dict[str, Any]) -> bool:
        url = self.settings.update_sync_routes.get(domain_key)
        if not url:
            return False
        try:
            self._request('POST', url, user_uuid=payload.get('uuid'), json=payload)
        except UpstreamError as e:
            return self._degrade(e, False)
        return True

    def delete_user(self, domain_key: str, user_uuid: str) -> bool:
        url = self.settings.delete_user_routes.get(domain_key)
        if not url:
            logger.warning(f"No deletion endpoint configured for domain {domain_key}")
            return False
        try:
            self._request(
                'DELETE', f"{url.rstrip('/')}/{user_uuid}",
                user_uuid=user_uuid,
                headers={'Authorization': f"Bearer {self.sync_secret}"},
            )
        except UpstreamError as e:
            return self._degrade(e, False)
        return True
