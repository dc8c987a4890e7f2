"""Propagation of local changes to the downstream domains.

Each job is a Celery task, enqueued only after the triggering transaction
has committed. A transient downstream failure (timeout, connection error,
non-2xx) raises ``UpstreamError`` and the task is retried with
exponential backoff; a job that still fails after ``MAX_RETRIES`` retries
is logged and dropped. Nothing here ever affects the request that
dispatched it.
"""
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from celery import shared_task
from celery.result import EagerResult

from authcenter.clients.domains import DomainServiceClient
from models import db
from models.access_request import AccessRequest
from models.domain import SATELLITE_PAGE_PERMISSIONS
from models.user import User
from utils.exceptions import UpstreamError

logger = logging.getLogger(__name__)

MAX_RETRIES = 5

RETRY_OPTIONS = dict(
    autoretry_for=(UpstreamError,),
    max_retries=MAX_RETRIES,
    retry_backoff=True,
    retry_backoff_max=600,
)


@dataclass
class DispatchResult:
    job: str
    is_async: bool
    success: Optional[bool] = None
    error: Optional[str] = None


def dispatch(task, *args: Any, **kwargs: Any) -> DispatchResult:
    """Enqueue ``task``; in eager mode it has already run when this returns."""
    try:
        result = task.apply_async(args=args, kwargs=kwargs)
    except Exception as e:
        logger.exception(f"Could not enqueue {task.name}: {e}")
        return DispatchResult(job=task.name, is_async=True, success=False, error=str(e))

    if isinstance(result, EagerResult):
        ok = result.successful()
        return DispatchResult(job=task.name, is_async=False, success=ok,
                              error=None if ok else repr(result.result))

    logger.debug(f"Enqueued {task.name} as {result.id}")
    return DispatchResult(job=task.name, is_async=True)


def _client() -> DomainServiceClient:
    return DomainServiceClient(raise_errors=True)


# Jobs

@shared_task(**RETRY_OPTIONS)
def activate_user_job(access_request_id: int) -> None:
    """Ask the downstream domain to reactivate the requester."""
    access_request = db.session.get(AccessRequest, access_request_id)
    if access_request is None or access_request.user is None or access_request.domain is None:
        logger.warning(f"Activation job: access request {access_request_id} is gone")
        return

    user = access_request.user
    domain_key = access_request.domain.key
    if not _client().activate_user(domain_key, user.uuid):
        logger.error(f"Activation of user {user.uuid} on {domain_key} is not possible")
        return

    user.set_external_status(domain_key, 'active')
    access_request.external_active_status = 'active'
    db.session.commit()
    logger.info(f"User {user.uuid} activated on {domain_key} (request {access_request_id})")


@shared_task(**RETRY_OPTIONS)
def fetch_deactivation_info_job(access_request_id: int) -> None:
    """Store who deactivated the requester downstream, for the admin reviewing the request."""
    access_request = db.session.get(AccessRequest, access_request_id)
    if access_request is None or access_request.domain is None:
        return

    info = _client().fetch_deactivation_info(
        access_request.domain.key, access_request.user_uuid)
    if info:
        access_request.deactivate_info = info
        db.session.commit()
        logger.info(f"Deactivation info stored for access request {access_request_id}")


@shared_task(**RETRY_OPTIONS)
def sync_page_permission_job(user_uuid: str, domain_key: str, action: str) -> None:
    permission = SATELLITE_PAGE_PERMISSIONS.get(domain_key)
    if not permission:
        return
    if _client().sync_page_permission(user_uuid, permission, action):
        logger.info(f"Page permission {permission} {action} synced for {user_uuid}")


@shared_task(**RETRY_OPTIONS)
def propagate_user_update_job(payload: dict, origin: str) -> None:
    """Push a profile update to every domain the user holds, except where it came from.

    A retry re-sends to every target; the sync routes are upserts.
    """
    user = User.query.filter_by(uuid=payload['uuid']).first()
    if user is None:
        logger.warning(f"User {payload['uuid']} not found for update propagation")
        return

    client = _client()
    targets = [key for key in user.domain_keys()
               if key != origin and key in client.settings.update_sync_routes]
    if not targets:
        logger.info(f"No linked domains to propagate update for {user.uuid} (origin {origin})")
        return

    for key in targets:
        if client.sync_user_update(key, payload):
            logger.info(f"User update synced to {key} for {user.uuid}")


@shared_task(**RETRY_OPTIONS)
def sync_new_user_job(user_uuid: str, origin_key: str) -> None:
    user = User.query.filter_by(uuid=user_uuid).first()
    if user is None:
        logger.error(f"User {user_uuid} not found for new user sync")
        return

    _client().sync_new_user(origin_key, {
        'uuid': user.uuid,
        'first_name': user.first_name,
        'last_name': user.last_name,
        'email': user.email,
        'password': user.password_hash,
        'user_origin': user.user_origin,
        'role': user.role,
    })


@shared_task(**RETRY_OPTIONS)
def sync_user_deletion_job(user_uuid: str, domain_keys: Iterable[str]) -> None:
    client = _client()
    for key in domain_keys:
        if client.delete_user(key, user_uuid):
            logger.info(f"User deletion synced to {key} for {user_uuid}")
