"""User/domain grant mutations."""
import logging
from typing import List

from authcenter.services import propagation
from models import atomic
from models.access_request import AccessRequest
from models.domain import SATELLITE_PAGE_PERMISSIONS, SATELLITE_PARENTS, Domain
from models.user import User
from utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def domains_implied_by(domain: Domain) -> List[Domain]:
    """``domain`` plus its parent when it is a satellite."""
    domains = [domain]
    parent_key = SATELLITE_PARENTS.get(domain.key)
    if parent_key:
        parent = Domain.query.filter_by(key=parent_key).first()
        if parent is None:
            logger.warning(f"Parent domain {parent_key} of {domain.key} does not exist")
        else:
            domains.append(parent)
    return domains


def attach_domain(user: User, domain: Domain) -> List[Domain]:
    """Grant ``domain`` (and its parent) to ``user`` without committing.

    Returns the domains that were not already granted; attaching an
    existing grant is a no-op.
    """
    added = []
    for target in domains_implied_by(domain):
        if target not in user.domains:
            user.domains.append(target)
            added.append(target)
    return added


def revoke_domain(user: User, domain: Domain) -> bool:
    if domain not in user.domains:
        return False
    user.domains.remove(domain)
    return True


def settle_pending_requests(user: User, domain: Domain, status: str, actor: User) -> int:
    """Close the user's pending requests for ``domain`` after an admin grant or revoke."""
    now = utcnow()
    pending = AccessRequest.query.filter_by(
        user_id=user.id, domain_id=domain.id, status='pending').all()
    for access_request in pending:
        access_request.status = status
        access_request.acted_by = actor.id
        access_request.acted_at = now
    return len(pending)


def attach_default_domains(user: User, keys) -> List[Domain]:
    attached = []
    for key in dict.fromkeys(k for k in keys if k):
        domain = Domain.query.filter_by(key=key).first()
        if domain is None:
            logger.warning(f"Default domain {key!r} not found")
            continue
        attached.extend(attach_domain(user, domain))
    return attached


def grant_access(admin: User, user: User, domain: Domain) -> List[Domain]:
    """Admin grant: attach the domain and approve any pending requests for it."""
    with atomic():
        added = attach_domain(user, domain)
        settled = settle_pending_requests(user, domain, 'approved', admin)
    logger.info(f"{admin.uuid} granted {domain.key} to {user.uuid} "
                f"(new grants {[d.key for d in added]}, {settled} requests approved)")

    for target in added:
        if target.key in SATELLITE_PAGE_PERMISSIONS:
            propagation.dispatch(propagation.sync_page_permission_job, user.uuid, target.key, 'assign')
    return added


def revoke_access(admin: User, user: User, domain: Domain) -> bool:
    """Admin revoke: the only operation that removes a grant."""
    with atomic():
        removed = revoke_domain(user, domain)
        settled = settle_pending_requests(user, domain, 'rejected', admin)
    logger.info(f"{admin.uuid} revoked {domain.key} from {user.uuid} "
                f"(removed={removed}, {settled} requests rejected)")

    if removed and domain.key in SATELLITE_PAGE_PERMISSIONS:
        propagation.dispatch(propagation.sync_page_permission_job, user.uuid, domain.key, 'revoke')
    return removed
