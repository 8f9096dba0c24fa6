from flask import Blueprint, g, jsonify, request

from .errors import Malformed
from .services import prep
from .services.evaluator import check_link_access
from .services.gates import SessionMode, session_gate, settings
from .services.rate_limit import check_rate_ip

bp = Blueprint('api', __name__)


def _group_key():
    return (request.headers.get('X-Group-Key')
            or request.cookies.get('gk')
            or request.args.get('key')
            or None)


@bp.get('/links/check')
@session_gate(SessionMode.OPTIONAL)
def check_link():
    ip = request.remote_addr or '0.0.0.0'
    check_rate_ip(ip)

    token = (request.args.get('token') or '').strip()
    if not token:
        raise Malformed('token query parameter is required', code='missing_token')

    s = settings()
    verdict = check_link_access(
        token, g.principal,
        visitor_id=ip,
        group_key=_group_key(),
        group_key_secret=s.group_key_secret,
        grace_seconds=s.expiry_grace_seconds,
    )
    status = 200 if verdict.allowed else verdict.denial_error().status
    return jsonify(verdict.to_dict()), status


@bp.get('/prep/access')
def prep_access():
    email = request.args.get('userEmail') or request.args.get('email')
    exam_id = request.args.get('examId')
    return jsonify(prep.access_status(email, exam_id))


@bp.get('/session')
@session_gate(SessionMode.STRICT)
def whoami():
    return jsonify({'id': g.principal.id, 'claims': g.principal.claims})


@bp.post('/prep/request')
def prep_request():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise Malformed('expected a JSON object', code='bad_body')
    req, created = prep.request_access(
        data.get('userEmail') or data.get('email'),
        data.get('examId'),
        intent=data.get('intent'),
        note=data.get('note'),
    )
    return jsonify({'success': True, 'request': req.to_dict()}), 201 if created else 200
