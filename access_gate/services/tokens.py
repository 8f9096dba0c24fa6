import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass, field
from datetime import timedelta

import jwt

ACCESS_TOKEN_BYTES = 24


# Opaque share token: random, looked up in storage, revocable by mutation
def issue_access_token() -> str:
    return secrets.token_urlsafe(ACCESS_TOKEN_BYTES)


@dataclass(frozen=True)
class SessionCheck:
    claims: dict | None = None
    failure: str | None = None  # missing | expired | invalid
    detail: str = field(default='', compare=False)

    @property
    def ok(self) -> bool:
        return self.claims is not None


# Session JWT (HS256 by default)
def issue_session(claims: dict, ttl: timedelta, *, secret: str, algorithm: str = 'HS256') -> str:
    if not claims.get('id'):
        raise ValueError('session claims need an id')
    if not secret:
        raise ValueError('session secret is not configured')
    now = int(time.time())
    payload = dict(claims)
    payload['id'] = str(claims['id'])
    payload['iat'] = now
    payload['exp'] = now + int(ttl.total_seconds())
    return jwt.encode(payload, secret, algorithm=algorithm)


def verify_session(token: str | None, *, secret: str, algorithm: str = 'HS256') -> SessionCheck:
    if not token:
        return SessionCheck(failure='missing')
    if not secret:
        return SessionCheck(failure='invalid', detail='no session secret configured')
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm], options={'require': ['exp']})
    except jwt.ExpiredSignatureError:
        return SessionCheck(failure='expired')
    except jwt.InvalidTokenError as e:
        return SessionCheck(failure='invalid', detail=str(e))
    if not payload.get('id'):
        return SessionCheck(failure='invalid', detail='missing id claim')
    return SessionCheck(claims=payload)


def hash_group_key(key: str, secret: str) -> str:
    """HMAC-SHA256 of the stripped key; matching is case-sensitive."""
    msg = str(key).strip().encode()
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


def group_key_matches(key: str | None, hashes, secret: str) -> bool:
    if not key or not str(key).strip():
        return False
    candidate = hash_group_key(key, secret)
    matched = False
    # no early exit
    for h in hashes:
        if hmac.compare_digest(candidate, h):
            matched = True
    return matched
