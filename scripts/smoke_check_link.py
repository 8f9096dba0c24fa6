import os
import pathlib
import sys
from datetime import timedelta

# Ensure project root is on PYTHONPATH
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Minimal env for the smoke run (set before importing app so Config reads them)
os.environ.setdefault('OWNER_KEY', 'smoke-owner-key')
os.environ.setdefault('SESSION_SECRET', 'smoke-session-secret-with-enough-bytes')
os.environ.setdefault('GROUP_KEY_SECRET', 'smoke-group-secret')
os.environ.setdefault('DATABASE_URL', 'sqlite:///smoke.db')
os.environ.setdefault('USE_REDIS', '0')

from access_gate import create_app
from access_gate.services.tokens import issue_session

app = create_app()
owner = {'X-Owner-Key': os.environ['OWNER_KEY']}

with app.app_context():
    client = app.test_client()
    s = app.extensions['access_gate']

    # 1) Admin gate
    r = client.post('/admin/links', json={'targetId': 'lec-1', 'mode': 'free', 'ttlHours': 1})
    print('forbidden_status', r.status_code)

    # 2) Free link, guest
    r = client.post('/admin/links', headers=owner, json={'targetId': 'lec-1', 'mode': 'free', 'ttlHours': 1})
    free_token = r.get_json()['token']
    r = client.get(f'/api/links/check?token={free_token}')
    print('free_guest', r.status_code, r.get_json())

    # 3) Paid link, listed user vs guest
    r = client.post('/admin/links', headers=owner,
                    json={'targetId': 'lec-2', 'mode': 'paid', 'ttlHours': 1, 'allowedUsers': ['u1']})
    paid_token = r.get_json()['token']
    session = issue_session({'id': 'u1'}, timedelta(minutes=5), secret=s.session_secret)
    r = client.get(f'/api/links/check?token={paid_token}', headers={'Authorization': f'Bearer {session}'})
    print('paid_listed', r.status_code, r.get_json())
    r = client.get(f'/api/links/check?token={paid_token}')
    print('paid_guest', r.status_code, r.get_json())

    # 4) Stats
    r = client.get(f'/admin/links/{paid_token}/stats', headers=owner)
    print('stats', r.status_code, r.get_json())
