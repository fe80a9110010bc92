"""Staff model - staff profile with fine-grained permission flags."""
import enum
from dataclasses import dataclass, asdict, fields
from sqlalchemy import Column, String, Boolean, Date, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from martpos.database import Base, BigIntegerPK


class StaffRole(enum.Enum):
    """Job roles on a staff profile (distinct from the platform UserRole)."""
    SHOP_ADMIN = 'shop_admin'
    STAFF = 'staff'
    MANAGER = 'manager'
    CASHIER = 'cashier'


@dataclass(frozen=True)
class StaffPermissions:
    """
    Fixed set of capability flags attached to a staff profile.

    A flag that is not set is a denial.
    """
    can_manage_products: bool = False
    can_manage_sales: bool = False
    can_manage_staff: bool = False
    can_view_reports: bool = False
    can_apply_discount: bool = False
    can_refund: bool = False

    # camelCase names accepted from API payloads
    ALIASES = {
        'canManageProducts': 'can_manage_products',
        'canManageSales': 'can_manage_sales',
        'canManageStaff': 'can_manage_staff',
        'canViewReports': 'can_view_reports',
        'canApplyDiscount': 'can_apply_discount',
        'canRefund': 'can_refund',
    }

    @classmethod
    def names(cls):
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(cls, data, base=None):
        """
        Build a permission set from a dict of flags.

        Unknown flag names raise ValueError instead of being silently ignored.
        Flags missing from ``data`` keep their value from ``base``.
        """
        values = asdict(base) if base is not None else {}
        for key, value in (data or {}).items():
            name = cls.ALIASES.get(key, key)
            if name not in cls.names():
                raise ValueError(f"Unknown permission flag: {key}")
            values[name] = bool(value)
        return cls(**values)

    @classmethod
    def defaults_for(cls, role):
        """Default flags for a newly created profile of the given job role."""
        is_admin = role == StaffRole.SHOP_ADMIN.value
        is_manager = role in (StaffRole.SHOP_ADMIN.value, StaffRole.MANAGER.value)
        return cls(
            can_manage_products=is_admin,
            can_manage_sales=True,
            can_manage_staff=is_admin,
            can_view_reports=is_manager,
            can_apply_discount=is_manager,
            can_refund=is_manager,
        )

    def allows(self, name):
        return bool(getattr(self, name))

    def to_dict(self):
        return {alias: getattr(self, name) for alias, name in self.ALIASES.items()}


class Staff(Base):
    """Staff profile linked one-to-one with an AppUser of the same tenant."""

    __tablename__ = 'staff'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_staff_tenant_email'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    staff_id = Column(String(64), nullable=False, unique=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default=StaffRole.STAFF.value)
    status = Column(String(20), nullable=False, default='active')

    # Permission flags
    can_manage_products = Column(Boolean, nullable=False, default=False)
    can_manage_sales = Column(Boolean, nullable=False, default=True)
    can_manage_staff = Column(Boolean, nullable=False, default=False)
    can_view_reports = Column(Boolean, nullable=False, default=False)
    can_apply_discount = Column(Boolean, nullable=False, default=False)
    can_refund = Column(Boolean, nullable=False, default=False)

    created_by = Column(String(64), nullable=False)
    created_by_role = Column(String(20), nullable=False)
    shift_start = Column(String(5), nullable=True)  # HH:MM
    shift_end = Column(String(5), nullable=True)
    hire_date = Column(Date, nullable=True)
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    @property
    def permissions(self):
        return StaffPermissions(**{name: bool(getattr(self, name)) for name in StaffPermissions.names()})

    @permissions.setter
    def permissions(self, value):
        for name in StaffPermissions.names():
            setattr(self, name, getattr(value, name))

    def to_dict(self):
        return {
            'staffId': self.staff_id,
            'tenantId': self.tenant_id,
            'userId': self.user_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'status': self.status,
            'permissions': self.permissions.to_dict(),
            'shift': {'start': self.shift_start, 'end': self.shift_end},
            'hireDate': self.hire_date.isoformat() if self.hire_date else None,
            'createdBy': self.created_by,
            'createdByRole': self.created_by_role,
        }

    def __repr__(self):
        return f"<Staff(staff_id='{self.staff_id}', tenant_id='{self.tenant_id}', role='{self.role}')>"
