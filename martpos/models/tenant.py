"""Tenant model - represents each shop using the platform."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime
from sqlalchemy.sql import func
from martpos.database import Base, BigIntegerPK


class TenantStatus(enum.Enum):
    """Lifecycle states of a tenant account."""
    PENDING = 'pending'
    ACTIVE = 'active'
    SUSPENDED = 'suspended'
    CANCELLED = 'cancelled'


class TenantPlan(enum.Enum):
    """Subscription plans."""
    FREE = 'free'
    BASIC = 'basic'
    PROFESSIONAL = 'professional'
    ENTERPRISE = 'enterprise'


class Tenant(Base):
    """Tenant model - each shop/organization."""

    __tablename__ = 'tenant'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False, unique=True, index=True)  # Public identifier
    name = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default=TenantStatus.PENDING.value)
    plan = Column(String(20), nullable=False, default=TenantPlan.FREE.value)

    # Contact
    contact_email = Column(String(255), nullable=True)
    contact_phone = Column(String(50), nullable=True)

    # Settings
    currency = Column(String(10), nullable=False, default='MMK')
    timezone = Column(String(64), nullable=False, default='Asia/Yangon')
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def is_active(self):
        return self.status == TenantStatus.ACTIVE.value

    def to_dict(self):
        return {
            'tenantId': self.tenant_id,
            'name': self.name,
            'status': self.status,
            'plan': self.plan,
        }

    def __repr__(self):
        return f"<Tenant(tenant_id='{self.tenant_id}', name='{self.name}', status='{self.status}')>"
