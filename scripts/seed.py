import os, sys, pathlib
from datetime import timedelta
# Ensure project root is on PYTHONPATH when running directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from access_gate import create_app
from access_gate.services import links, prep
from access_gate.services.tokens import issue_session

app = create_app()
with app.app_context():
    s = app.extensions['access_gate']

    free = links.create_link('lecture-demo-1', 'free', 24, group_key_secret=s.group_key_secret)
    paid = links.create_link('lecture-demo-2', 'paid', 24, allowed_users=['demo-user'],
                             group_key_secret=s.group_key_secret)
    prep.grant('demo@example.com', 'demo-exam', 7)

    print('free link:', s.share_url(free.token))
    print('paid link:', s.share_url(paid.token))
    if s.session_secret:
        token = issue_session({'id': 'demo-user', 'email': 'demo@example.com'}, timedelta(hours=1),
                              secret=s.session_secret, algorithm=s.session_algorithm)
        print('session for demo-user:', token)
    else:
        print('SESSION_SECRET not set, skipped demo session')
    print('base url:', os.environ.get('BASE_URL', 'http://localhost:5000'))
