#!/usr/bin/env python3
import sys, os, json, jwt

# Usage: python scripts/check_session.py <JWT> [SESSION_SECRET|-]
# With '-' (or nothing), SESSION_SECRET / JWT_SECRET from env is used.


def load_secret(hint: str | None):
    if hint and hint != '-':
        return hint
    return os.environ.get('SESSION_SECRET') or os.environ.get('JWT_SECRET')


if len(sys.argv) < 2:
    print("Usage: check_session.py <JWT> [SESSION_SECRET|-]")
    sys.exit(1)

raw = sys.argv[1].strip()
secret = load_secret(sys.argv[2].strip() if len(sys.argv) > 2 else None)
if not secret:
    print("ERROR: no session secret (argument or env SESSION_SECRET)")
    sys.exit(1)

alg = os.environ.get('JWT_ALG', 'HS256')
try:
    payload = jwt.decode(raw, secret, algorithms=[alg])
except jwt.ExpiredSignatureError:
    print("EXPIRED:", json.dumps(jwt.decode(raw, options={'verify_signature': False}), sort_keys=True))
    sys.exit(2)
except jwt.InvalidTokenError as e:
    print("ERROR:", e)
    sys.exit(1)

print(json.dumps(payload, indent=2, sort_keys=True))
