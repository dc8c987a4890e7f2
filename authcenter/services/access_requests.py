"""Access request state machine.

States are ``pending``, ``approved`` and ``rejected``. A rejected request
may be resubmitted back to pending; an approved request is terminal
except for the explicit activation re-trigger override on approve.
"""
import logging
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from authcenter.clients.domains import DomainServiceClient
from authcenter.services import propagation
from authcenter.services.grants import attach_domain
from authcenter.services.principal import is_admin
from models import atomic, db
from models.access_request import AccessRequest
from models.domain import SATELLITE_PAGE_PERMISSIONS, Domain
from models.user import User
from utils.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RateLimitError,
)
from utils.timestamps import isoformat, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def pending_count() -> int:
    return AccessRequest.query.filter_by(status='pending').count()


def paginate(query, page: int, per_page: int) -> Dict[str, Any]:
    per_page = max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))
    pagination = query.paginate(page=max(page or 1, 1), per_page=per_page, error_out=False)
    return {
        'data': [item.to_dict() for item in pagination.items],
        'current_page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'last_page': pagination.pages or 1,
    }


def resubmission_note(now=None) -> str:
    now = now or utcnow()
    return ("User requested access again for this domain. Please review it. "
            f"(Automatic message - {now.strftime('%Y-%m-%d %H:%M:%S')})")


class AccessRequestService:

    def __init__(self, max_pending: Optional[int] = None):
        self.max_pending = max_pending or current_app.config.get('MAX_PENDING_REQUESTS', 10)

    # Lookup helpers

    @staticmethod
    def _get(request_id: int) -> AccessRequest:
        access_request = db.session.get(AccessRequest, request_id)
        if access_request is None:
            logger.info(f"Access request {request_id} not found")
            raise NotFoundError("Access request not found", requested_id=request_id)
        return access_request

    @staticmethod
    def _require_admin(user: User) -> None:
        if not is_admin(user):
            raise AuthorizationError("Unauthorized")

    @staticmethod
    def _get_domain(domain_id: int) -> Domain:
        domain = db.session.get(Domain, domain_id)
        if domain is None:
            raise NotFoundError("Domain not found")
        return domain

    def _check_pending_cap(self, user: User) -> None:
        count = AccessRequest.query.filter_by(user_uuid=user.uuid, status='pending').count()
        if count >= self.max_pending:
            raise RateLimitError("You have reached the maximum number of pending requests")

    @staticmethod
    def _existing_pending(user: User, domain: Domain, request_type: str) -> Optional[AccessRequest]:
        return AccessRequest.query.filter_by(
            user_uuid=user.uuid, domain_id=domain.id,
            request_type=request_type, status='pending',
        ).first()

    # Transitions

    def create(self, user: User, domain_id: int, request_type: str = 'access',
               message: Optional[str] = None) -> AccessRequest:
        domain = self._get_domain(domain_id)
        has_grant = user.has_domain(domain.id)

        if request_type == 'access' and has_grant:
            raise ConflictError("You already have access to this domain", error='already_has_access')
        if request_type == 'activation' and not has_grant:
            raise ConflictError("You do not have access to this domain. Please request access first.",
                                error='no_domain_access')

        existing = self._existing_pending(user, domain, request_type)
        if existing:
            label = 'Activation request' if request_type == 'activation' else 'Request'
            raise ConflictError(f"{label} already pending", error='already_pending',
                                request_id=existing.id, created_at=isoformat(existing.created_at))

        if request_type == 'activation' and user.external_status_for(domain.key) == 'active':
            raise ConflictError("You are already active in that domain!", error='already_active',
                                external_status='active', domain_key=domain.key)

        self._check_pending_cap(user)

        access_request = AccessRequest(
            user_uuid=user.uuid,
            user_id=user.id,
            domain_id=domain.id,
            domain_name=domain.name,
            request_type=request_type,
            message=message,
            status='pending',
        )
        try:
            with atomic():
                db.session.add(access_request)
        except IntegrityError:
            # Lost a race with a concurrent identical request.
            existing = self._existing_pending(user, domain, request_type)
            raise ConflictError("Request already pending", error='already_pending',
                                request_id=existing.id if existing else None)

        logger.info(f"{request_type} request {access_request.id} created by {user.uuid} for {domain.key}")
        if request_type == 'activation':
            propagation.dispatch(propagation.fetch_deactivation_info_job, access_request.id)
        return access_request

    def _downstream_active(self, access_request: AccessRequest) -> bool:
        """Whether the requester is already active on the request's domain.

        The locally recorded status wins; otherwise the domain is asked,
        and an unreachable domain counts as not active.
        """
        user, domain = access_request.user, access_request.domain
        if user.external_status_for(domain.key) == 'active':
            return True
        status = DomainServiceClient().fetch_user_status(domain.key, user.uuid, user.email)
        return status == 'active'

    def approve(self, admin: User, request_id: int,
                enable_user_activation: bool = False) -> AccessRequest:
        self._require_admin(admin)
        access_request = self._get(request_id)

        if not access_request.is_pending and not enable_user_activation:
            raise ConflictError("Request already processed", error='already_processed',
                                current_status=access_request.status)

        retrigger_activation = enable_user_activation and access_request.request_type == 'activation'
        if retrigger_activation and self._downstream_active(access_request):
            raise ConflictError("You are already active in that domain!", error='already_active',
                                external_status='active', domain_key=access_request.domain.key)

        with atomic():
            access_request.status = 'approved'
            access_request.acted_by = admin.id
            access_request.acted_at = utcnow()
            added = attach_domain(access_request.user, access_request.domain)

        logger.info(f"Access request {request_id} approved by {admin.uuid}; "
                    f"granted {[d.key for d in added]}")

        if retrigger_activation:
            propagation.dispatch(propagation.activate_user_job, access_request.id)
        for domain in added:
            if domain.key in SATELLITE_PAGE_PERMISSIONS:
                propagation.dispatch(propagation.sync_page_permission_job,
                                     access_request.user_uuid, domain.key, 'assign')
        return access_request

    def reject(self, admin: User, request_id: int) -> AccessRequest:
        self._require_admin(admin)
        access_request = self._get(request_id)
        if not access_request.is_pending:
            raise ConflictError("Request already processed", error='already_processed',
                                current_status=access_request.status)

        with atomic():
            access_request.status = 'rejected'
            access_request.acted_by = admin.id
            access_request.acted_at = utcnow()
        logger.info(f"Access request {request_id} rejected by {admin.uuid}")
        return access_request

    def resubmit(self, user: User, request_id: int) -> AccessRequest:
        access_request = self._get(request_id)
        if access_request.user_uuid != user.uuid:
            raise AuthorizationError("You can only resubmit your own requests")
        if access_request.status != 'rejected':
            raise ConflictError("Only rejected requests can be resubmitted", error='not_rejected',
                                current_status=access_request.status)
        self._check_pending_cap(user)

        try:
            with atomic():
                access_request.status = 'pending'
                access_request.acted_by = None
                access_request.acted_at = None
                access_request.message = resubmission_note()
        except IntegrityError:
            raise ConflictError("Request already pending", error='already_pending')
        logger.info(f"Access request {request_id} resubmitted by {user.uuid}")
        return access_request

    def delete(self, user: User, request_id: int) -> None:
        access_request = self._get(request_id)
        if not is_admin(user):
            if access_request.user_uuid != user.uuid:
                raise AuthorizationError("This action is unauthorized.")
            if not access_request.is_pending:
                raise ConflictError("Only pending requests can be deleted", error='not_pending',
                                    current_status=access_request.status)
        with atomic():
            db.session.delete(access_request)
        logger.info(f"Access request {request_id} deleted by {user.uuid}")

    def get(self, user: User, request_id: int) -> AccessRequest:
        access_request = self._get(request_id)
        if not is_admin(user) and access_request.user_uuid != user.uuid:
            raise AuthorizationError("This action is unauthorized.")
        return access_request

    # Listing

    @staticmethod
    def _apply_filters(query, filters: Dict[str, Any]):
        if filters.get('status'):
            query = query.filter(AccessRequest.status == filters['status'])
        if filters.get('request_type'):
            query = query.filter(AccessRequest.request_type == filters['request_type'])
        if filters.get('domain_id'):
            query = query.filter(AccessRequest.domain_id == filters['domain_id'])
        return query

    def list(self, user: User, filters: Dict[str, Any], page: int = 1,
             per_page: int = DEFAULT_PER_PAGE) -> Dict[str, Any]:
        query = AccessRequest.query
        if not is_admin(user):
            query = query.filter(AccessRequest.user_uuid == user.uuid)
        query = self._apply_filters(query, filters)
        query = query.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())

        response = paginate(query, page, per_page)
        response['un_approved_request_count'] = pending_count()
        return response

    def search(self, admin: User, term: Optional[str], filters: Dict[str, Any],
               page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Dict[str, Any]:
        self._require_admin(admin)
        query = (AccessRequest.query
                 .join(User, AccessRequest.user_id == User.id)
                 .join(Domain, AccessRequest.domain_id == Domain.id))
        if term:
            pattern = f"%{term.lower()}%"
            query = query.filter(or_(
                func.lower(User.first_name).like(pattern),
                func.lower(User.last_name).like(pattern),
                func.lower(User.email).like(pattern),
                func.lower(Domain.name).like(pattern),
                func.lower(AccessRequest.domain_name).like(pattern),
                func.lower(AccessRequest.message).like(pattern),
            ))
        query = self._apply_filters(query, filters)
        query = query.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc())
        return paginate(query, page, per_page)

    # Downstream status

    def update_external_status(self, admin: User, request_id: int, status: str) -> AccessRequest:
        self._require_admin(admin)
        access_request = self._get(request_id)
        with atomic():
            access_request.external_active_status = status
        return access_request

    @staticmethod
    def record_user_activation_status(user_uuid: str, domain_key: str, status: str) -> User:
        domain = Domain.query.filter_by(key=domain_key).first()
        if domain is None:
            logger.warning(f"Activation status for unknown domain {domain_key} (user {user_uuid})")
            raise NotFoundError("Domain not found")
        user = User.query.filter_by(uuid=user_uuid).first()
        if user is None:
            logger.warning(f"Activation status for unknown user {user_uuid} on {domain_key}")
            raise NotFoundError("User not found")

        with atomic():
            user.set_external_status(domain_key, status)
        logger.info(f"User {user_uuid} reported {status} on {domain_key}")
        return user
