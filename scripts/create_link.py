import os
import sys
import base64
import requests

# Usage: TARGET_ID=<lecture id> [LINK_MODE=paid] [LINK_TTL_HOURS=24] python scripts/create_link.py
# Group keys: GROUP_KEYS="whatsapp:abcd,telegram:efgh"

BASE_URL = os.environ.get('BASE_URL', 'http://localhost:5000')
OWNER_KEY = os.environ.get('OWNER_KEY') or os.environ.get('ADMIN_KEY')

if not OWNER_KEY:
    print('Missing OWNER_KEY (or ADMIN_KEY) in env')
    sys.exit(1)

target_id = os.environ.get('TARGET_ID')
if not target_id:
    print('Missing TARGET_ID in env')
    sys.exit(1)

payload = {
    'targetId': target_id,
    'mode': os.environ.get('LINK_MODE', 'free'),
    'ttlHours': float(os.environ.get('LINK_TTL_HOURS', '24')),
}
if os.environ.get('PERMANENT', '0') == '1':
    payload['permanent'] = True
users = [u for u in os.environ.get('ALLOWED_USERS', '').split(',') if u.strip()]
if users:
    payload['allowedUsers'] = users
keys = []
for raw in os.environ.get('GROUP_KEYS', '').split(','):
    if not raw.strip():
        continue
    label, _, key = raw.partition(':')
    keys.append({'label': label, 'key': key} if key else {'key': label})
if keys:
    payload['groupKeys'] = keys

headers = {'X-Owner-Key': OWNER_KEY}

# If WANT_PNG=1, request the QR image directly
if os.environ.get('WANT_PNG', '0') == '1':
    r = requests.post(f"{BASE_URL}/admin/links", headers={**headers, 'Accept': 'image/png'}, json=payload, timeout=30)
    if r.status_code != 201:
        print('Error:', r.status_code, r.text)
        sys.exit(1)
    out = os.environ.get('OUT', 'link.png')
    with open(out, 'wb') as f:
        f.write(r.content)
    print('PNG saved to', out)
    sys.exit(0)

r = requests.post(f"{BASE_URL}/admin/links?qr=1", headers=headers, json=payload, timeout=30)
if r.status_code != 201:
    print('Error:', r.status_code, r.text)
    sys.exit(1)
res = r.json()
print('url:', res['url'])
print('token:', res['token'])
print('expires_at:', res['expiresAt'] or 'never')
if 'qrPngB64' in res:
    out = os.environ.get('OUT', 'link.png')
    with open(out, 'wb') as f:
        f.write(base64.b64decode(res['qrPngB64']))
    print('PNG saved to', out)
