#!/usr/bin/env python3
import sys, json, time, redis

# Usage: python scripts/check_redis.py <REDIS_URL> <IP> [WINDOW_SECONDS]
# Shows the link-check rate-limit counter for a client IP in the current window

if len(sys.argv) < 3:
    print("Usage: check_redis.py <REDIS_URL> <IP> [WINDOW_SECONDS]")
    sys.exit(1)

url = sys.argv[1].strip()
ip = sys.argv[2].strip()
window = int(sys.argv[3]) if len(sys.argv) > 3 else 60

r = redis.from_url(url, decode_responses=True)

key = f"rl:check:{ip}:{int(time.time() // window)}"
count = r.get(key)

print(json.dumps({
    'redis': url,
    'key': key,
    'count': int(count) if count else 0,
    'ttl_s': r.ttl(key),
}, indent=2))
