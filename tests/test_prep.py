from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from access_gate.errors import Conflict, Malformed, NotFound
from access_gate.models import PrepAccess, PrepAccessRequest, db
from access_gate.services import prep

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_unknown_pair_is_inactive(app):
    assert prep.is_active('nobody@example.com', 'exam-1', T0) is False


def test_grant_opens_a_window(app):
    record = prep.grant('Student@Example.com ', 'exam-1', 7, now=T0)
    assert record.user_email == 'student@example.com'
    assert record.status == 'active'
    assert record.expiry_at_utc == T0 + timedelta(days=7)

    assert prep.is_active('student@example.com', 'exam-1', T0 + timedelta(days=6))
    assert not prep.is_active('student@example.com', 'exam-1', T0 + timedelta(days=7))


def test_archived_is_inactive_even_inside_window(app):
    prep.grant('s@example.com', 'exam-1', 30, now=T0)
    assert prep.archive('s@example.com', 'exam-1') == 1
    assert not prep.is_active('s@example.com', 'exam-1', T0 + timedelta(days=1))


def test_archive_is_idempotent(app):
    prep.grant('s@example.com', 'exam-1', 30, now=T0)
    assert prep.archive('s@example.com', 'exam-1') == 1
    assert prep.archive('s@example.com', 'exam-1') == 0
    assert prep.archive('other@example.com', 'exam-1') == 0


def test_reading_never_writes_status_back(app):
    prep.grant('s@example.com', 'exam-1', 1, now=T0)
    assert not prep.is_active('s@example.com', 'exam-1', T0 + timedelta(days=5))
    db.session.expire_all()
    assert PrepAccess.query.one().status == 'active'


def test_regrant_reuses_the_row_and_bumps_cycle(app):
    prep.grant('s@example.com', 'exam-1', 7, now=T0)
    prep.archive('s@example.com', 'exam-1')
    later = T0 + timedelta(days=40)
    record = prep.grant('s@example.com', 'exam-1', 30, now=later)

    assert PrepAccess.query.count() == 1
    assert record.cycle == 2
    assert record.plan_days == 30
    assert prep.is_active('s@example.com', 'exam-1', later + timedelta(days=1))


def test_entitlements_are_per_exam(app):
    prep.grant('s@example.com', 'exam-1', 7, now=T0)
    assert not prep.is_active('s@example.com', 'exam-2', T0)


def test_access_status_shape(app):
    assert prep.access_status('s@example.com', 'exam-1', T0) == {
        'active': False, 'expiryAt': None, 'status': None,
    }
    prep.grant('s@example.com', 'exam-1', 7, now=T0)
    status = prep.access_status('s@example.com', 'exam-1', T0)
    assert status == {
        'active': True,
        'expiryAt': (T0 + timedelta(days=7)).isoformat(),
        'status': 'active',
    }


def test_archive_expired_housekeeping(app):
    prep.grant('old@example.com', 'exam-1', 1, now=T0)
    prep.grant('new@example.com', 'exam-1', 30, now=T0)
    assert prep.archive_expired(T0 + timedelta(days=2)) == 1
    db.session.expire_all()
    statuses = {r.user_email: r.status for r in PrepAccess.query}
    assert statuses == {'old@example.com': 'archived', 'new@example.com': 'active'}


@pytest.mark.parametrize('email, exam_id, days', [
    ('', 'exam-1', 7),
    ('s@example.com', '', 7),
    ('s@example.com', 'exam-1', 0),
    ('s@example.com', 'exam-1', 'week'),
    ('s@example.com', 'exam-1', 10 ** 12),
])
def test_grant_validates_input(app, email, exam_id, days):
    with pytest.raises(Malformed):
        prep.grant(email, exam_id, days, now=T0)


def test_concurrent_first_grants_share_one_row(app):
    n = 6
    db.session.close()

    def one_grant(_):
        with app.app_context():
            return prep.grant('race@example.com', 'exam-1', 7).status

    with ThreadPoolExecutor(max_workers=n) as pool:
        statuses = list(pool.map(one_grant, range(n)))

    assert statuses == ['active'] * n
    db.session.expire_all()
    record = PrepAccess.query.one()
    assert record.cycle == n


def test_request_is_pending_until_decided(app):
    req, created = prep.request_access('Student@Example.com', 'exam-1', now=T0)
    assert created
    assert req.status == 'pending'
    assert req.intent == 'purchase'
    assert req.user_email == 'student@example.com'
    assert not prep.is_active('student@example.com', 'exam-1', T0)


def test_open_request_is_reused(app):
    first, _ = prep.request_access('s@example.com', 'exam-1', now=T0)
    again, created = prep.request_access('s@example.com', 'exam-1', intent='restart', now=T0)
    assert not created
    assert again.id == first.id
    assert PrepAccessRequest.query.count() == 1


def test_request_refused_while_access_is_active(app):
    prep.grant('s@example.com', 'exam-1', 7, now=T0)
    with pytest.raises(Conflict) as err:
        prep.request_access('s@example.com', 'exam-1', now=T0 + timedelta(days=1))
    assert err.value.code == 'already_active'

    # once the window lapses a restart can be requested
    req, created = prep.request_access('s@example.com', 'exam-1', intent='restart', now=T0 + timedelta(days=8))
    assert created
    assert req.intent == 'restart'


def test_request_rejects_unknown_intent(app):
    with pytest.raises(Malformed) as err:
        prep.request_access('s@example.com', 'exam-1', intent='gift')
    assert err.value.code == 'invalid_intent'


def test_approve_opens_window(app):
    req, _ = prep.request_access('s@example.com', 'exam-1', now=T0)
    decided = prep.decide_request(req.id, approve=True, plan_days=10, now=T0)

    assert decided.status == 'approved'
    assert decided.to_dict()['decidedAt'] == T0.isoformat()
    assert prep.is_active('s@example.com', 'exam-1', T0 + timedelta(days=9))
    assert not prep.is_active('s@example.com', 'exam-1', T0 + timedelta(days=10))


def test_reject_leaves_access_closed(app):
    req, _ = prep.request_access('s@example.com', 'exam-1', now=T0)
    decided = prep.decide_request(req.id, approve=False, now=T0)
    assert decided.status == 'rejected'
    assert prep.find('s@example.com', 'exam-1') is None


def test_request_can_only_be_decided_once(app):
    req, _ = prep.request_access('s@example.com', 'exam-1', now=T0)
    prep.decide_request(req.id, approve=False, now=T0)
    with pytest.raises(Conflict) as err:
        prep.decide_request(req.id, approve=True, now=T0)
    assert err.value.code == 'already_decided'
    assert prep.find('s@example.com', 'exam-1') is None


def test_decide_unknown_request(app):
    with pytest.raises(NotFound):
        prep.decide_request(999)
    with pytest.raises(Malformed):
        prep.decide_request('abc')


def test_list_requests_filters(app):
    a, _ = prep.request_access('a@example.com', 'exam-1', now=T0)
    b, _ = prep.request_access('b@example.com', 'exam-2', now=T0 + timedelta(minutes=1))
    c, _ = prep.request_access('c@example.com', 'exam-1', now=T0 + timedelta(minutes=2))
    prep.decide_request(c.id, approve=False, now=T0)

    assert [r.id for r in prep.list_requests()] == [b.id, a.id]
    assert [r.id for r in prep.list_requests(exam_id='exam-1')] == [a.id]
    assert [r.id for r in prep.list_requests(status='rejected')] == [c.id]
    assert [r.id for r in prep.list_requests(exam_id='exam-1', status='all')] == [c.id, a.id]
    with pytest.raises(Malformed):
        prep.list_requests(status='done')
