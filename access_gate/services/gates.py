import enum
import hmac
import logging
from functools import wraps

from flask import current_app, g, request

from ..errors import Forbidden, Unauthenticated
from .evaluator import Principal
from .tokens import verify_session

logger = logging.getLogger(__name__)

OWNER_HEADERS = ('X-Owner-Key', 'X-Admin-Key')


def settings():
    return current_app.extensions['access_gate']


def check_owner(header_value: str | None, owner_key: str) -> bool:
    if not owner_key or not header_value:
        return False
    return hmac.compare_digest(header_value.encode(), owner_key.encode())


def owner_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        presented = next((request.headers.get(h) for h in OWNER_HEADERS if request.headers.get(h)), None)
        if not check_owner(presented, settings().owner_key):
            logger.warning('owner gate rejected %s %s from %s', request.method, request.path, request.remote_addr)
            raise Forbidden('Forbidden: admin only')
        return view(*args, **kwargs)
    return wrapper


class SessionMode(enum.Enum):
    STRICT = 'strict'      # no valid session -> 401
    OPTIONAL = 'optional'  # no valid session -> guest (principal None)


def bearer_token() -> str | None:
    auth = request.headers.get('Authorization', '')
    if not auth.startswith('Bearer '):
        return None
    return auth[len('Bearer '):].strip() or None


def resolve_principal(mode: SessionMode) -> Principal | None:
    s = settings()
    check = verify_session(bearer_token(), secret=s.session_secret, algorithm=s.session_algorithm)
    if check.ok:
        return Principal.from_claims(check.claims)
    if check.failure != 'missing':
        logger.info('session rejected failure=%s mode=%s %s', check.failure, mode.value, check.detail)
    if mode is SessionMode.STRICT:
        raise Unauthenticated('Invalid or expired session' if check.failure != 'missing' else 'No token provided',
                              code=f'session_{check.failure}')
    return None


def session_gate(mode: SessionMode):
    """Attach ``g.principal`` before the view runs, per the route's mode."""
    if not isinstance(mode, SessionMode):
        raise TypeError('session_gate needs a SessionMode')

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            g.principal = resolve_principal(mode)
            return view(*args, **kwargs)
        wrapper.session_mode = mode
        return wrapper
    return decorator
