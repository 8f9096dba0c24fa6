import os
from dataclasses import dataclass


def _read_secret_file(*paths):
    # Secret Files on Render are mounted under /etc/secrets
    for p in paths:
        try:
            with open(p, 'r') as f:
                value = f.read().strip()
        except OSError:
            continue
        if value:
            return value
    return None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    return int(raw)


class Config:
    def __init__(self):
        self.SECRET_KEY = os.environ.get('SECRET_KEY', 'dev')
        self.SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///local.db')
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {'pool_pre_ping': True}
        self.SESSION_SECRET = os.environ.get('SESSION_SECRET') or os.environ.get('JWT_SECRET')
        self.JWT_ALG = os.environ.get('JWT_ALG', 'HS256')
        self.SESSION_TTL_HOURS = _env_int('SESSION_TTL_HOURS', 24 * 7)
        self.OWNER_KEY = (os.environ.get('OWNER_KEY') or os.environ.get('ADMIN_KEY')
                          or os.environ.get('ADMIN_API_KEY'))
        self.GROUP_KEY_SECRET = os.environ.get('GROUP_KEY_SECRET')
        self.BASE_URL = os.environ.get('BASE_URL', 'http://localhost:5000')
        self.SHARE_PATH = os.environ.get('SHARE_PATH', '/classroom/share')
        self.LINK_EXPIRY_GRACE_SECONDS = _env_int('LINK_EXPIRY_GRACE_SECONDS', 0)
        self.DEFAULT_LINK_TTL_HOURS = _env_int('DEFAULT_LINK_TTL_HOURS', 24)
        self.REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
        self.USE_REDIS = os.environ.get('USE_REDIS', '1').lower() not in ('0', 'false', 'no')
        self.CHECK_RATE_LIMIT = _env_int('CHECK_RATE_LIMIT', 60)
        self.CHECK_RATE_WINDOW = _env_int('CHECK_RATE_WINDOW', 60)
        self.LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

        # Optional fallbacks for secrets not passed through the environment
        if not self.SESSION_SECRET:
            self.SESSION_SECRET = _read_secret_file('/etc/secrets/session_secret', 'session.secret')
        if not self.OWNER_KEY:
            self.OWNER_KEY = _read_secret_file('/etc/secrets/owner_key')
        if not self.GROUP_KEY_SECRET:
            self.GROUP_KEY_SECRET = _read_secret_file('/etc/secrets/group_key_secret')
        if (not self.SECRET_KEY) or self.SECRET_KEY == 'dev':
            self.SECRET_KEY = _read_secret_file('/etc/secrets/secret_key') or self.SECRET_KEY


@dataclass(frozen=True)
class GateSettings:
    """Credentials and knobs consumed by the gates, frozen at startup."""

    owner_key: str
    session_secret: str
    session_algorithm: str
    session_ttl_hours: int
    group_key_secret: str
    expiry_grace_seconds: int
    default_link_ttl_hours: int
    share_url_base: str

    @classmethod
    def from_config(cls, config) -> 'GateSettings':
        return cls(
            owner_key=config.get('OWNER_KEY') or '',
            session_secret=config.get('SESSION_SECRET') or '',
            session_algorithm=config.get('JWT_ALG', 'HS256'),
            session_ttl_hours=int(config.get('SESSION_TTL_HOURS', 24 * 7)),
            group_key_secret=config.get('GROUP_KEY_SECRET') or '',
            expiry_grace_seconds=int(config.get('LINK_EXPIRY_GRACE_SECONDS', 0)),
            default_link_ttl_hours=int(config.get('DEFAULT_LINK_TTL_HOURS', 24)),
            share_url_base=f"{config.get('BASE_URL', '').rstrip('/')}{config.get('SHARE_PATH', '')}",
        )

    def share_url(self, token: str) -> str:
        return f"{self.share_url_base}?token={token}"
