"""
Session registry: the bounded list of live refresh tokens per user.

A refresh token is usable only while its record is present. Rotation consumes
the record with a compare-and-swap delete, so replaying an already rotated
token finds nothing and is rejected as revoked.
"""
import logging
from datetime import datetime, timezone

from martpos.exceptions import AuthenticationError, AccessDeniedError, TokenExpiredError, TokenInvalidError
from martpos.models import RefreshToken, hash_token, AuditAction, AuditStatus, ResourceType
from martpos.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Stage refresh-token records in the caller's session; the caller commits."""

    def __init__(self, session, config, token_service, credential_store, audit_recorder):
        self.session = session
        self.config = config
        self.tokens = token_service
        self.credentials = credential_store
        self.audit = audit_recorder

    def _query(self, user):
        return self.session.query(RefreshToken).filter(RefreshToken.user_pk == user.id)

    def list_records(self, user):
        """Live records of a user, oldest first."""
        return self._query(user).order_by(RefreshToken.id.asc()).all()

    def count(self, user):
        return self._query(user).count()

    def contains(self, user, token):
        return self._query(user).filter(RefreshToken.token_hash == hash_token(token)).first() is not None

    def add(self, user, token, issued_at, expires_at):
        """Append a record, then evict the oldest beyond the per-user cap."""
        record = RefreshToken(
            user_pk=user.id,
            token_hash=hash_token(token),
            issued_at=issued_at,
            expires_at=expires_at,
        )
        self.session.add(record)
        self.session.flush()
        self._enforce_cap(user)
        return record

    def add_pair(self, user, pair):
        return self.add(user, pair.refresh_token, pair.issued_at, pair.refresh_expires_at)

    def _enforce_cap(self, user):
        rows = self._query(user).with_entities(RefreshToken.id).order_by(RefreshToken.id.desc()).all()
        stale_ids = [row.id for row in rows[self.config.max_refresh_tokens:]]
        if stale_ids:
            self.session.query(RefreshToken).filter(
                RefreshToken.id.in_(stale_ids)
            ).delete(synchronize_session=False)
            self.session.expire(user, ['refresh_tokens'])
            logger.info(f"Evicted {len(stale_ids)} old session(s) of user {user.user_id}")

    def revoke(self, user, token):
        """
        Remove exactly the record matching ``token``.

        Returns:
            bool: True if a record was removed. A missing or unknown token is a no-op.
        """
        if not token:
            return False
        deleted = self._query(user).filter(
            RefreshToken.token_hash == hash_token(token)
        ).delete(synchronize_session=False)
        if deleted:
            self.session.expire(user, ['refresh_tokens'])
        return deleted > 0

    def revoke_all(self, user):
        deleted = self._query(user).delete(synchronize_session=False)
        if deleted:
            self.session.expire(user, ['refresh_tokens'])
            logger.info(f"Revoked {deleted} session(s) of user {user.user_id}")
        return deleted

    def _audit_revoked(self, user, reason):
        self.audit.record(
            action=AuditAction.TOKEN_REVOKED,
            tenant_id=user.tenant_id,
            user_id=user.user_id,
            user_name=user.full_name or None,
            user_role=user.role,
            resource_type=ResourceType.USER.value,
            resource_id=user.user_id,
            details={'reason': reason},
            status=AuditStatus.FAILURE,
            error_message='Invalid refresh token',
        )

    def rotate(self, old_token):
        """
        Exchange a live refresh token for a new pair.

        Returns:
            (AppUser, TokenPair)

        Raises:
            TokenExpiredError: JWT or stored record past expiry
            TokenInvalidError: Bad signature, or token not (or no longer) in the registry
            AuthenticationError: USER_NOT_FOUND
            AccessDeniedError: ACCOUNT_INACTIVE
        """
        claims = self.tokens.verify_refresh(old_token)

        user = self.credentials.get_by_user_id(claims['userId'], for_update=True)
        if user is None:
            raise AuthenticationError('User not found', 'USER_NOT_FOUND')

        token_hash = hash_token(old_token)
        record = self._query(user).filter(RefreshToken.token_hash == token_hash).first()
        if record is None:
            self.session.rollback()
            logger.warning(f"Refresh token reuse or revoked token for user {user.user_id}")
            self._audit_revoked(user, 'Token not found in user session')
            raise TokenInvalidError('Invalid refresh token')

        # The stricter of the embedded and the stored expiry applies
        jwt_expiry = datetime.fromtimestamp(claims['exp'], tz=timezone.utc).replace(tzinfo=None)
        effective_expiry = min(record.expires_at, jwt_expiry)
        if effective_expiry <= utcnow():
            self.session.rollback()
            raise TokenExpiredError('Refresh token expired')

        if not user.is_active:
            self.session.rollback()
            raise AccessDeniedError('Account is not active', 'ACCOUNT_INACTIVE')

        # Compare-and-swap: only one concurrent caller can consume the record
        consumed = self.session.query(RefreshToken).filter(
            RefreshToken.id == record.id,
            RefreshToken.token_hash == token_hash,
        ).delete(synchronize_session=False)
        if consumed != 1:
            self.session.rollback()
            self._audit_revoked(user, 'Token consumed by a concurrent rotation')
            raise TokenInvalidError('Invalid refresh token')
        self.session.expunge(record)

        pair = self.tokens.issue(user)
        self.add_pair(user, pair)
        return user, pair
