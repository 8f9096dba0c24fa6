"""Share-link authorization.

``check_link_access`` is total over ``Verdict``: every business outcome
(unknown token, expired link, guest on a paid link, ...) comes back as a
value. Only ``StoreUnavailable`` escapes, so a caller can never mistake an
unreachable store for a denial.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..errors import AccessGateError, Expired, NotFound, Unauthenticated, Unauthorized
from ..models import AccessLink, utcnow
from .links import get_link
from .tokens import group_key_matches
from .visits import record_visit

logger = logging.getLogger(__name__)

NO_LINK = 'no_link'
EXPIRED = 'expired'
NO_USER = 'no_user'
NOT_IN_LIST = 'not_in_list'
BAD_GROUP_KEY = 'group_key_required_or_invalid'

_DENIAL_ERRORS = {
    NO_LINK: NotFound,
    EXPIRED: Expired,
    NO_USER: Unauthenticated,
}


@dataclass(frozen=True)
class Principal:
    id: str
    claims: dict

    @classmethod
    def from_claims(cls, claims: dict) -> 'Principal':
        return cls(id=str(claims['id']), claims=dict(claims))


@dataclass(frozen=True)
class Verdict:
    allowed: bool
    mode: str | None = None
    reason: str | None = None
    expires_at: datetime | None = None

    @classmethod
    def allow(cls, link: AccessLink) -> 'Verdict':
        return cls(True, mode=link.mode, expires_at=link.expires_at_utc)

    @classmethod
    def deny(cls, reason: str, link: AccessLink | None = None) -> 'Verdict':
        return cls(False, reason=reason, expires_at=link.expires_at_utc if link else None)

    def denial_error(self) -> type[AccessGateError] | None:
        """Taxonomy class matching a denial, used for the HTTP status."""
        if self.allowed:
            return None
        return _DENIAL_ERRORS.get(self.reason, Unauthorized)

    def to_dict(self) -> dict:
        out = {'allowed': self.allowed}
        if self.mode:
            out['mode'] = self.mode
        if self.reason:
            out['reason'] = self.reason
        if self.expires_at:
            out['expiresAt'] = self.expires_at.isoformat()
        return out


def is_expired(link: AccessLink, now: datetime, grace: timedelta = timedelta(0)) -> bool:
    expires_at = link.expires_at_utc
    return expires_at is not None and now >= expires_at + grace


def evaluate(link: AccessLink | None, principal: Principal | None, *, group_key: str | None,
             group_key_secret: str, now: datetime, grace: timedelta = timedelta(0)) -> Verdict:
    """Pure decision over an already loaded link; no bookkeeping."""
    if link is None:
        return Verdict.deny(NO_LINK)
    if is_expired(link, now, grace):
        return Verdict.deny(EXPIRED, link)
    if link.is_free:
        return Verdict.allow(link)
    if principal is None:
        return Verdict.deny(NO_USER, link)
    if link.require_group_key:
        hashes = [g.hash for g in link.group_keys]
        if not group_key_matches(group_key, hashes, group_key_secret):
            return Verdict.deny(BAD_GROUP_KEY, link)
        return Verdict.allow(link)
    if link.allows_user(principal.id):
        return Verdict.allow(link)
    return Verdict.deny(NOT_IN_LIST, link)


def check_link_access(token: str, principal: Principal | None, *, visitor_id: str | None = None,
                      group_key: str | None = None, group_key_secret: str = '',
                      now: datetime | None = None, grace_seconds: int = 0) -> Verdict:
    now = now or utcnow()
    link = get_link(token)
    verdict = evaluate(
        link, principal,
        group_key=group_key,
        group_key_secret=group_key_secret,
        now=now,
        grace=timedelta(seconds=grace_seconds),
    )
    if verdict.allowed:
        record_visit(link.id, principal.id if principal else visitor_id)
    else:
        logger.info('link check denied reason=%s link=%s user=%s',
                    verdict.reason, link.id if link else None,
                    principal.id if principal else None)
    return verdict
