"""RefreshToken model - live refresh-token records owned by a user."""
import hashlib
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from martpos.database import Base, BigIntegerPK


def hash_token(token):
    """SHA-256 digest of a token string; equal digests mean equal tokens."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class RefreshToken(Base):
    """
    One live session of a user.

    Only the digest of the token is stored. Records are removed on logout and
    consumed on rotation; the registry keeps at most MAX_REFRESH_TOKENS per user.
    """

    __tablename__ = 'refresh_token'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_pk = Column(BigIntegerPK, ForeignKey('app_user.id', ondelete='CASCADE'), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    # Relationships
    user = relationship('AppUser', back_populates='refresh_tokens')

    def matches(self, token):
        return self.token_hash == hash_token(token)

    def __repr__(self):
        return f"<RefreshToken(id={self.id}, user_pk={self.user_pk}, expires_at={self.expires_at})>"
