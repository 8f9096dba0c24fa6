import base64
import io

from flask import Blueprint, jsonify, request, send_file

from .errors import Malformed
from .services import links, prep
from .services.gates import owner_required, settings
from .services.qr import share_qr_png
from .services.visits import visit_summary

bp = Blueprint('admin', __name__)


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise Malformed('expected a JSON object', code='bad_body')
    return data


@bp.get('/ping')
@owner_required
def ping():
    return jsonify({'admin': 'ok'})


@bp.post('/links')
@owner_required
def create_link():
    data = _body()
    s = settings()
    link = links.create_link(
        data.get('targetId') or data.get('lectureId'),
        data.get('mode') or data.get('type') or 'free',
        data.get('ttlHours', data.get('expiresInHours')),
        ttl_minutes=data.get('ttlMinutes', data.get('expiresInMinutes', 0)),
        permanent=data.get('permanent') is True,
        allowed_users=data.get('allowedUsers') or [],
        group_keys=data.get('groupKeys') or [],
        group_key_secret=s.group_key_secret,
        default_ttl_hours=s.default_link_ttl_hours,
    )
    url = s.share_url(link.token)

    # binary QR for Accept: image/png
    if 'image/png' in request.headers.get('Accept', ''):
        return send_file(
            io.BytesIO(share_qr_png(url)), mimetype='image/png', as_attachment=False,
            download_name=f"link_{link.id}.png", etag=False,
        ), 201

    out = {
        'success': True,
        'token': link.token,
        'url': url,
        'mode': link.mode,
        'targetId': link.target_id,
        'expiresAt': link.expires_at_utc.isoformat() if link.expires_at_utc else None,
        'requireGroupKey': link.require_group_key,
    }
    if request.args.get('qr') == '1':
        out['qrPngB64'] = base64.b64encode(share_qr_png(url)).decode('ascii')
    return jsonify(out), 201


@bp.post('/links/revoke-user')
@owner_required
def revoke_user():
    data = _body()
    removed = links.revoke_user(data.get('token'), data.get('userId'))
    return jsonify({'success': True, 'removed': removed})


@bp.post('/links/grant-user')
@owner_required
def grant_user():
    data = _body()
    added = links.grant_user(data.get('token'), data.get('userId'))
    return jsonify({'success': True, 'added': added})


@bp.get('/links/<token>/stats')
@owner_required
def link_stats(token: str):
    link = links.require_link(token)
    out = visit_summary(link)
    out['allowedUsers'] = sorted(links.allowed_user_ids(link))
    return jsonify(out)


@bp.post('/prep/grant')
@owner_required
def prep_grant():
    data = _body()
    record = prep.grant(data.get('userEmail') or data.get('email'), data.get('examId'), data.get('planDays'))
    return jsonify(prep.access_status(record.user_email, record.exam_id))


@bp.post('/prep/archive')
@owner_required
def prep_archive():
    data = _body()
    updated = prep.archive(data.get('userEmail') or data.get('email'), data.get('examId'))
    return jsonify({'success': True, 'updated': updated})


@bp.get('/prep/requests')
@owner_required
def prep_requests():
    items = prep.list_requests(request.args.get('examId'), request.args.get('status', 'pending'))
    return jsonify({'success': True, 'items': [r.to_dict() for r in items]})


@bp.post('/prep/approve')
@owner_required
def prep_approve():
    data = _body()
    approve = data.get('approve', True)
    if not isinstance(approve, bool):
        raise Malformed('approve must be true or false', code='bad_body')
    req = prep.decide_request(data.get('requestId'), approve=approve, plan_days=data.get('planDays'))
    out = {'success': True, 'request': req.to_dict()}
    if approve:
        out['access'] = prep.access_status(req.user_email, req.exam_id)
    return jsonify(out)
