"""
Immutable security settings for the authorization core.

Built once from the Flask config by the application factory and passed to
service constructors, so the core never reads process environment itself.
"""
import re
from dataclasses import dataclass
from datetime import timedelta

_DURATION_RE = re.compile(r'^\s*(\d+)\s*([smhd]?)\s*$')
_UNITS = {'': 1, 's': 1, 'm': 60, 'h': 3600, 'd': 86400}


def parse_duration(value):
    """
    Parse a lifetime such as '15m', '7d', '12h', '3600s' or 3600 into a timedelta.

    Raises:
        ValueError: If the value is not a positive duration.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        seconds = int(match.group(1)) * _UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return timedelta(seconds=seconds)


@dataclass(frozen=True)
class SecurityConfig:
    """Secrets and limits used by token, session and credential services."""
    access_secret: str
    refresh_secret: str
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    issuer: str = 'martpos'
    algorithm: str = 'HS256'
    max_refresh_tokens: int = 5
    password_hash_method: str = 'scrypt'
    production: bool = False

    def __post_init__(self):
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("JWT secrets must not be empty")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets")
        if self.max_refresh_tokens < 1:
            raise ValueError("max_refresh_tokens must be at least 1")

    @classmethod
    def from_mapping(cls, config):
        """Build from a Flask config (or any mapping with the same keys)."""
        return cls(
            access_secret=config['JWT_SECRET'],
            refresh_secret=config['JWT_REFRESH_SECRET'],
            access_ttl=parse_duration(config.get('JWT_ACCESS_EXPIRY', '15m')),
            refresh_ttl=parse_duration(config.get('JWT_REFRESH_EXPIRY', '7d')),
            issuer=config.get('JWT_ISSUER', 'martpos'),
            max_refresh_tokens=int(config.get('MAX_REFRESH_TOKENS', 5)),
            password_hash_method=config.get('PASSWORD_HASH_METHOD', 'scrypt'),
            production=config.get('ENV') == 'production',
        )
