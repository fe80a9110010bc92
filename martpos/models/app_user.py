"""AppUser model - identity records for every role on the platform."""
import enum
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from martpos.database import Base, BigIntegerPK

GLOBAL_TENANT_ID = 'global'


class UserRole(enum.Enum):
    """Platform roles, strictly nested: SUPER_ADMIN > SHOP_ADMIN > STAFF."""
    SUPER_ADMIN = 'super_admin'
    SHOP_ADMIN = 'shop_admin'
    STAFF = 'staff'


class UserStatus(enum.Enum):
    """Account states. Deletion is a status change, never a row removal."""
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    SUSPENDED = 'suspended'


class AppUser(Base):
    """AppUser model - one login identity, scoped to a tenant (or 'global')."""

    __tablename__ = 'app_user'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_app_user_tenant_email'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)

    # Profile
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    created_by = Column(String(64), nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    refresh_tokens = relationship(
        'RefreshToken',
        back_populates='user',
        order_by='RefreshToken.id',
        cascade='all, delete-orphan',
    )

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE.value

    def is_super_admin(self):
        """Check if user is the platform super admin."""
        return self.role == UserRole.SUPER_ADMIN.value

    def to_dict(self):
        """Public representation; never includes hashes or tokens."""
        return {
            'userId': self.user_id,
            'tenantId': self.tenant_id,
            'email': self.email,
            'role': self.role,
            'status': self.status,
            'profile': {
                'firstName': self.first_name,
                'lastName': self.last_name,
                'phone': self.phone,
            },
        }

    def __repr__(self):
        return f"<AppUser(user_id='{self.user_id}', email='{self.email}', role='{self.role}')>"
