"""
Token service: issues and verifies JWT access/refresh pairs.

Access tokens carry the identity claims needed to route a request
(userId, tenantId, email, role). Refresh tokens carry only the userId; role
and tenant are always re-read from the credential store when they are used.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt

from martpos.exceptions import TokenExpiredError, TokenInvalidError
from martpos.utils.timeutils import to_naive_utc

logger = logging.getLogger(__name__)

ACCESS = 'access'
REFRESH = 'refresh'


@dataclass(frozen=True)
class TokenPair:
    """Result of issuing tokens for a user."""
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime, seconds
    issued_at: datetime  # naive UTC
    refresh_expires_at: datetime  # naive UTC
    token_type: str = 'Bearer'

    def to_dict(self):
        return {
            'accessToken': self.access_token,
            'refreshToken': self.refresh_token,
            'tokenType': self.token_type,
            'expiresIn': self.expires_in,
        }


class TokenService:
    """Sign and verify tokens with the secrets held by a SecurityConfig."""

    def __init__(self, config, clock=None):
        self.config = config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _encode(self, claims, secret, ttl, now):
        payload = dict(claims)
        payload.update({
            'jti': uuid.uuid4().hex,
            'iss': self.config.issuer,
            'iat': now,
            'exp': now + ttl,
        })
        return jwt.encode(payload, secret, algorithm=self.config.algorithm)

    def generate_access_token(self, user, now=None):
        now = now or self._clock()
        claims = {
            'userId': user.user_id,
            'tenantId': user.tenant_id,
            'email': user.email,
            'role': user.role,
            'type': ACCESS,
        }
        return self._encode(claims, self.config.access_secret, self.config.access_ttl, now)

    def generate_refresh_token(self, user, now=None):
        now = now or self._clock()
        claims = {'userId': user.user_id, 'type': REFRESH}
        return self._encode(claims, self.config.refresh_secret, self.config.refresh_ttl, now)

    def issue(self, user):
        """Issue an access/refresh pair for ``user``."""
        now = self._clock()
        # JWT timestamps have one-second resolution
        now = now.replace(microsecond=0)
        return TokenPair(
            access_token=self.generate_access_token(user, now),
            refresh_token=self.generate_refresh_token(user, now),
            expires_in=int(self.config.access_ttl.total_seconds()),
            issued_at=to_naive_utc(now),
            refresh_expires_at=to_naive_utc(now + self.config.refresh_ttl),
        )

    def _verify(self, token, secret, expected_type):
        if not token or not isinstance(token, str):
            raise TokenInvalidError(f"Invalid {expected_type} token")
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                options={'require': ['exp', 'iat', 'iss', 'jti']},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError(f"{expected_type.capitalize()} token expired")
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected {expected_type} token: {e.__class__.__name__}")
            raise TokenInvalidError(f"Invalid {expected_type} token")

        if claims.get('type') != expected_type or not claims.get('userId'):
            raise TokenInvalidError(f"Invalid {expected_type} token")
        return claims

    def verify_access(self, token):
        """
        Verify an access token.

        Returns:
            dict: Decoded claims

        Raises:
            TokenExpiredError: Valid signature, past expiry (client should refresh)
            TokenInvalidError: Malformed, tampered or wrong kind of token
        """
        return self._verify(token, self.config.access_secret, ACCESS)

    def verify_refresh(self, token):
        """Verify a refresh token; same failure kinds as verify_access."""
        return self._verify(token, self.config.refresh_secret, REFRESH)

    @staticmethod
    def decode(token):
        """Decode without verification (diagnostics only)."""
        try:
            return jwt.decode(token, options={'verify_signature': False})
        except jwt.InvalidTokenError:
            return None

    @classmethod
    def get_expiry(cls, token):
        """Expiry of a token as naive UTC datetime, or None."""
        claims = cls.decode(token)
        if not claims or 'exp' not in claims:
            return None
        return datetime.fromtimestamp(claims['exp'], tz=timezone.utc).replace(tzinfo=None)
