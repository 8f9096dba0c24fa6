import logging
from datetime import datetime, timedelta

from sqlalchemy import select, update

from ..errors import Conflict, Malformed, NotFound
from ..models import PrepAccess, PrepAccessRequest, db, utcnow
from .storage import insert_if_absent, store_guard

logger = logging.getLogger(__name__)

DEFAULT_PLAN_DAYS = 30


def normalize_email(email) -> str:
    return str(email or '').strip().lower()


def _key(user_email, exam_id) -> tuple[str, str]:
    email = normalize_email(user_email)
    exam = str(exam_id or '').strip()
    if not email or not exam:
        raise Malformed('userEmail and examId are required', code='missing_fields')
    return email, exam


def find(user_email, exam_id) -> PrepAccess | None:
    email, exam = _key(user_email, exam_id)
    with store_guard('load prep access'):
        return db.session.execute(
            select(PrepAccess).where(PrepAccess.user_email == email, PrepAccess.exam_id == exam)
        ).scalar_one_or_none()


def record_is_active(record: PrepAccess | None, now: datetime) -> bool:
    # archived wins over dates; expiry is computed here, never written back
    if record is None or record.status != 'active':
        return False
    return now < record.expiry_at_utc


def is_active(user_email, exam_id, now: datetime | None = None) -> bool:
    return record_is_active(find(user_email, exam_id), now or utcnow())


def access_status(user_email, exam_id, now: datetime | None = None) -> dict:
    record = find(user_email, exam_id)
    return {
        'active': record_is_active(record, now or utcnow()),
        'expiryAt': record.expiry_at_utc.isoformat() if record else None,
        'status': record.status if record else None,
    }


def _plan_days(plan_days) -> int:
    try:
        days = int(plan_days) if plan_days not in (None, '') else DEFAULT_PLAN_DAYS
    except (TypeError, ValueError):
        raise Malformed('planDays must be an integer', code='invalid_plan_days') from None
    if days <= 0:
        raise Malformed('planDays must be positive', code='invalid_plan_days')
    return days


def _window_end(now: datetime, days: int) -> datetime:
    try:
        return now + timedelta(days=days)
    except OverflowError:
        raise Malformed('planDays is out of range', code='invalid_plan_days') from None


def _open_window(email: str, exam: str, days: int, now: datetime) -> None:
    """Upsert the pair's row as a fresh active window; caller commits."""
    expiry = _window_end(now, days)
    insert_if_absent(PrepAccess, user_email=email, exam_id=exam, start_at=now, expiry_at=expiry,
                     plan_days=days, status='active', cycle=0, updated_at=now)
    db.session.execute(
        update(PrepAccess)
        .where(PrepAccess.user_email == email, PrepAccess.exam_id == exam)
        .values(start_at=now, expiry_at=expiry, plan_days=days, status='active',
                cycle=PrepAccess.cycle + 1, updated_at=now)
    )


def grant(user_email, exam_id, plan_days=None, now: datetime | None = None) -> PrepAccess:
    """Start a fresh active window for the pair, creating the row if needed."""
    email, exam = _key(user_email, exam_id)
    days = _plan_days(plan_days)
    now = now or utcnow()

    with store_guard('grant prep access'):
        _open_window(email, exam, days, now)
        db.session.commit()
        record = find(email, exam)
        cycle = record.cycle
    logger.info('prep access granted exam=%s days=%d cycle=%d', exam, days, cycle)
    return record


def archive(user_email, exam_id) -> int:
    email, exam = _key(user_email, exam_id)
    with store_guard('archive prep access'):
        updated = db.session.execute(
            update(PrepAccess)
            .where(PrepAccess.user_email == email, PrepAccess.exam_id == exam,
                   PrepAccess.status != 'archived')
            .values(status='archived', updated_at=utcnow())
        ).rowcount
        db.session.commit()
    return updated


def archive_expired(now: datetime | None = None) -> int:
    """Housekeeping: flip elapsed active windows to archived."""
    now = now or utcnow()
    with store_guard('archive expired prep access'):
        updated = db.session.execute(
            update(PrepAccess)
            .where(PrepAccess.status == 'active', PrepAccess.expiry_at <= now)
            .values(status='archived', updated_at=now)
        ).rowcount
        db.session.commit()
    logger.info('archived %d expired prep access rows', updated)
    return updated


def request_access(user_email, exam_id, intent=None, note=None,
                   now: datetime | None = None) -> tuple[PrepAccessRequest, bool]:
    """File a request for the owner to review.

    Returns ``(request, created)``; an open request for the same pair is
    handed back instead of opening a second one.
    """
    email, exam = _key(user_email, exam_id)
    intent = intent or 'purchase'
    if intent not in PrepAccessRequest.INTENTS:
        raise Malformed(f'intent must be one of {", ".join(PrepAccessRequest.INTENTS)}', code='invalid_intent')
    now = now or utcnow()
    if is_active(email, exam, now):
        raise Conflict('access already granted', code='already_active')

    with store_guard('file prep access request'):
        pending = db.session.execute(
            select(PrepAccessRequest)
            .where(PrepAccessRequest.user_email == email, PrepAccessRequest.exam_id == exam,
                   PrepAccessRequest.status == 'pending')
            .order_by(PrepAccessRequest.id)
        ).scalars().first()
        if pending is not None:
            return pending, False
        req = PrepAccessRequest(user_email=email, exam_id=exam, intent=intent,
                                note=str(note)[:500] if note else None,
                                status='pending', created_at=now)
        db.session.add(req)
        db.session.commit()
        req_id = req.id
    logger.info('prep access requested id=%s exam=%s intent=%s', req_id, exam, intent)
    return req, True


def list_requests(exam_id=None, status='pending', limit: int = 200) -> list[PrepAccessRequest]:
    status = status or 'pending'
    if status != 'all' and status not in PrepAccessRequest.STATUSES:
        raise Malformed('status must be pending, approved, rejected or all', code='invalid_status')
    stmt = select(PrepAccessRequest)
    if exam_id:
        stmt = stmt.where(PrepAccessRequest.exam_id == str(exam_id).strip())
    if status != 'all':
        stmt = stmt.where(PrepAccessRequest.status == status)
    stmt = stmt.order_by(PrepAccessRequest.created_at.desc(), PrepAccessRequest.id.desc()).limit(limit)
    with store_guard('list prep access requests'):
        return list(db.session.execute(stmt).scalars())


def decide_request(request_id, approve: bool = True, plan_days=None, decided_by: str = 'owner',
                   now: datetime | None = None) -> PrepAccessRequest:
    """Approve (opening an access window) or reject a pending request.

    The status flip and the grant share one transaction; a request that is
    no longer pending raises ``Conflict``.
    """
    try:
        request_id = int(request_id)
    except (TypeError, ValueError):
        raise Malformed('requestId must be an integer', code='invalid_request_id') from None
    days = _plan_days(plan_days) if approve else None
    now = now or utcnow()

    with store_guard('decide prep access request'):
        req = db.session.get(PrepAccessRequest, request_id)
        if req is None:
            raise NotFound('no such request', code='no_request')
        email, exam = req.user_email, req.exam_id
        flipped = db.session.execute(
            update(PrepAccessRequest)
            .where(PrepAccessRequest.id == request_id, PrepAccessRequest.status == 'pending')
            .values(status='approved' if approve else 'rejected', decided_at=now, decided_by=decided_by)
        ).rowcount
        if not flipped:
            db.session.rollback()
            raise Conflict('request was already decided', code='already_decided')
        if approve:
            _open_window(email, exam, days, now)
        db.session.commit()
        db.session.refresh(req)
    logger.info('prep access request id=%s %s exam=%s', request_id,
                'approved' if approve else 'rejected', exam)
    return req
