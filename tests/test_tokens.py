import base64
import json
from datetime import timedelta

import pytest

from access_gate.services.tokens import (
    group_key_matches,
    hash_group_key,
    issue_access_token,
    issue_session,
    verify_session,
)

SECRET = 'unit-session-secret-0123456789abcdef'
OTHER_SECRET = 'another-session-secret-0123456789abc'


def test_access_tokens_are_url_safe_and_long():
    token = issue_access_token()
    assert len(token) >= 32
    assert all(c.isalnum() or c in '-_' for c in token)


def test_access_tokens_do_not_repeat():
    assert len({issue_access_token() for _ in range(500)}) == 500


def test_session_roundtrip_keeps_claims():
    token = issue_session({'id': 42, 'email': 'a@b.c'}, timedelta(minutes=5), secret=SECRET)
    check = verify_session(token, secret=SECRET)
    assert check.ok
    assert check.claims['id'] == '42'
    assert check.claims['email'] == 'a@b.c'
    assert check.claims['exp'] > check.claims['iat']


def test_expired_session_fails_closed():
    token = issue_session({'id': 'u1'}, timedelta(seconds=-30), secret=SECRET)
    check = verify_session(token, secret=SECRET)
    assert not check.ok
    assert check.failure == 'expired'


def test_wrong_secret_is_invalid():
    token = issue_session({'id': 'u1'}, timedelta(minutes=5), secret=OTHER_SECRET)
    assert verify_session(token, secret=SECRET).failure == 'invalid'


def test_tampered_payload_is_invalid():
    token = issue_session({'id': 'u1'}, timedelta(minutes=5), secret=SECRET)
    header, payload, sig = token.split('.')
    claims = json.loads(base64.urlsafe_b64decode(payload + '=='))
    claims['id'] = 'admin'
    forged = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b'=').decode()
    assert verify_session(f'{header}.{forged}.{sig}', secret=SECRET).failure == 'invalid'


@pytest.mark.parametrize('garbage', ['', 'not-a-jwt', 'a.b.c', '....', '\x00\xff'])
def test_malformed_input_never_raises(garbage):
    check = verify_session(garbage, secret=SECRET)
    assert not check.ok
    assert check.failure in ('missing', 'invalid')


def test_missing_token_is_reported_as_missing():
    assert verify_session(None, secret=SECRET).failure == 'missing'


def test_token_without_id_claim_is_invalid():
    import jwt
    token = jwt.encode({'sub': 'x', 'exp': 9999999999}, SECRET, algorithm='HS256')
    assert verify_session(token, secret=SECRET).failure == 'invalid'


def test_issue_session_requires_id():
    with pytest.raises(ValueError):
        issue_session({'email': 'x@y.z'}, timedelta(minutes=1), secret=SECRET)


def test_group_key_hash_strips_whitespace_but_keeps_case():
    assert hash_group_key(' abcd \n', 'k') == hash_group_key('abcd', 'k')
    assert hash_group_key('ABCD', 'k') != hash_group_key('abcd', 'k')
    assert hash_group_key('abcd', 'k1') != hash_group_key('abcd', 'k2')


def test_group_key_matches_any_stored_hash():
    hashes = [hash_group_key('first', 'k'), hash_group_key('second', 'k')]
    assert group_key_matches('second', hashes, 'k')
    assert not group_key_matches('third', hashes, 'k')
    assert not group_key_matches('', hashes, 'k')
    assert not group_key_matches(None, hashes, 'k')
    assert not group_key_matches('first', [], 'k')
