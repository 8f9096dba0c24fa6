import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import delete, select

from ..errors import Malformed, NotFound
from ..models import AccessLink, LinkGroupKey, LinkUser, db, utcnow
from .storage import insert_if_absent, store_guard
from .tokens import hash_group_key, issue_access_token

logger = logging.getLogger(__name__)

MODES = ('free', 'paid')


def _as_number(value, name: str) -> float:
    try:
        n = float(value or 0)
    except (TypeError, ValueError):
        raise Malformed(f'{name} must be a number', code='invalid_ttl') from None
    if not math.isfinite(n) or n < 0:
        raise Malformed(f'{name} must be a finite, non-negative number', code='invalid_ttl')
    return n


def _clean_group_keys(group_keys, secret: str) -> list[LinkGroupKey]:
    rows = []
    for g in group_keys or []:
        if not isinstance(g, dict) or not str(g.get('key') or '').strip():
            continue
        rows.append(LinkGroupKey(
            position=len(rows),
            label=str(g.get('label') or 'group')[:64],
            hash=hash_group_key(g['key'], secret),
        ))
    return rows


def create_link(target_id, mode, ttl_hours=None, *, ttl_minutes=0, permanent=False,
                allowed_users=(), group_keys=(), group_key_secret: str,
                default_ttl_hours: int = 24, now: datetime | None = None) -> AccessLink:
    """Create a share link for one content item.

    A link always gets a concrete expiry unless ``permanent`` is passed
    explicitly; a missing ``ttl_hours`` falls back to ``default_ttl_hours``.
    """
    target_id = str(target_id or '').strip()
    if not target_id:
        raise Malformed('targetId is required', code='missing_target')
    if mode not in MODES:
        raise Malformed(f'mode must be one of {", ".join(MODES)}', code='invalid_mode')
    if group_keys and not group_key_secret:
        raise Malformed('group keys need GROUP_KEY_SECRET to be configured', code='group_keys_disabled')

    now = now or utcnow()
    expires_at = None
    if not permanent:
        hours = default_ttl_hours if ttl_hours is None else _as_number(ttl_hours, 'ttlHours')
        minutes = _as_number(ttl_minutes, 'ttlMinutes')
        try:
            expires_at = now + timedelta(hours=hours, minutes=minutes)
        except OverflowError:
            raise Malformed('link lifetime is out of range', code='invalid_ttl') from None

    keys = _clean_group_keys(group_keys, group_key_secret)
    users = sorted({str(u).strip() for u in (allowed_users or []) if str(u).strip()})

    link = AccessLink(
        token=issue_access_token(),
        target_id=target_id,
        is_free=(mode == 'free'),
        expires_at=expires_at,
        require_group_key=(mode == 'paid' and bool(keys)),
        visits=0,
        allowed_users=[LinkUser(user_id=u) for u in users],
        group_keys=keys,
    )
    with store_guard('create link'):
        db.session.add(link)
        db.session.commit()
        # commit expires the row; reload it while connectivity errors still map to 503
        link_id = link.id

    logger.info('link created id=%s target=%s mode=%s expires_at=%s group_keys=%d users=%d',
                link_id, target_id, mode, expires_at, len(keys), len(users))
    return link


def get_link(token: str) -> AccessLink | None:
    with store_guard('load link'):
        return db.session.execute(
            select(AccessLink).where(AccessLink.token == token)
        ).scalar_one_or_none()


def require_link(token: str) -> AccessLink:
    if not token:
        raise Malformed('token is required', code='missing_token')
    link = get_link(token)
    if link is None:
        raise NotFound('no link for this token', code='no_link')
    return link


def revoke_user(token: str, user_id: str) -> int:
    """Drop ``user_id`` from the link's allow-list. Absent ids are fine."""
    link = require_link(token)
    if not str(user_id or '').strip():
        raise Malformed('userId is required', code='missing_user')
    with store_guard('revoke user'):
        removed = db.session.execute(
            delete(LinkUser)
            .where(LinkUser.link_id == link.id, LinkUser.user_id == str(user_id).strip())
        ).rowcount
        db.session.commit()
    logger.info('revoke user link=%s removed=%d', link.id, removed)
    return removed


def grant_user(token: str, user_id: str) -> bool:
    link = require_link(token)
    if not str(user_id or '').strip():
        raise Malformed('userId is required', code='missing_user')
    with store_guard('grant user'):
        added = insert_if_absent(LinkUser, link_id=link.id, user_id=str(user_id).strip())
        db.session.commit()
    logger.info('grant user link=%s added=%s', link.id, added)
    return added


def allowed_user_ids(link: AccessLink) -> set[str]:
    with store_guard('load allow-list'):
        return set(db.session.execute(
            select(LinkUser.user_id).where(LinkUser.link_id == link.id)
        ).scalars())
