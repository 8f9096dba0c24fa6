"""Error taxonomy for the gate.

Only exceptional conditions are raised. Expected authorization outcomes
(expired link, user not listed, ...) are returned as a ``Verdict`` by the
evaluator and never travel through this module.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AccessGateError(Exception):
    status = 500
    code = 'error'

    def __init__(self, message: str = '', code: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {'error': self.code, 'message': self.message}


class NotFound(AccessGateError):
    status = 404
    code = 'not_found'


class Expired(AccessGateError):
    status = 410
    code = 'expired'


class Unauthenticated(AccessGateError):
    status = 401
    code = 'unauthenticated'


class Unauthorized(AccessGateError):
    status = 403
    code = 'unauthorized'


class Forbidden(AccessGateError):
    status = 403
    code = 'forbidden'


class Malformed(AccessGateError):
    status = 400
    code = 'malformed'


class Conflict(AccessGateError):
    status = 409
    code = 'conflict'


class RateLimited(AccessGateError):
    status = 429
    code = 'rate_limited'


class StoreUnavailable(AccessGateError):
    """The backing store could not be reached; never a denial."""

    status = 503
    code = 'store_unavailable'


def register_error_handlers(app):
    @app.errorhandler(AccessGateError)
    def handle_gate_error(err: AccessGateError):
        if isinstance(err, StoreUnavailable):
            logger.error('store unavailable: %s', err.message)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(HTTPException)
    def handle_http_error(err: HTTPException):
        code = (err.name or 'error').lower().replace(' ', '_')
        return jsonify({'error': code, 'message': err.description}), err.code
