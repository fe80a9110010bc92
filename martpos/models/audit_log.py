"""
Audit Log model for tracking security-relevant actions in the system.
Entries are append-only historical facts: they carry no foreign keys and are
never updated or deleted once written.
"""
from sqlalchemy import Column, String, Text, DateTime, JSON, event
from sqlalchemy.dialects.postgresql import JSONB
import enum

from martpos.database import Base, BigIntegerPK
from martpos.utils.timeutils import utcnow

JSONType = JSON().with_variant(JSONB(), 'postgresql')


class AuditAction(enum.Enum):
    """Closed enumeration of auditable actions."""
    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    TOKEN_REFRESH = "TOKEN_REFRESH"
    TOKEN_REVOKED = "TOKEN_REVOKED"

    # Tenant management
    TENANT_CREATE = "TENANT_CREATE"
    TENANT_UPDATE = "TENANT_UPDATE"
    TENANT_SUSPEND = "TENANT_SUSPEND"
    TENANT_DELETE = "TENANT_DELETE"

    # User management
    USER_CREATE = "USER_CREATE"
    USER_UPDATE = "USER_UPDATE"
    USER_DELETE = "USER_DELETE"
    USER_SUSPEND = "USER_SUSPEND"
    USER_ACTIVATE = "USER_ACTIVATE"

    # Staff management
    STAFF_CREATE = "STAFF_CREATE"
    STAFF_UPDATE = "STAFF_UPDATE"
    STAFF_DELETE = "STAFF_DELETE"
    STAFF_SUSPEND = "STAFF_SUSPEND"

    # Product management
    PRODUCT_CREATE = "PRODUCT_CREATE"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    PRODUCT_DELETE = "PRODUCT_DELETE"
    PRODUCT_STOCK_UPDATE = "PRODUCT_STOCK_UPDATE"

    # Sales
    SALE_CREATE = "SALE_CREATE"
    SALE_UPDATE = "SALE_UPDATE"
    SALE_CANCEL = "SALE_CANCEL"
    SALE_REFUND = "SALE_REFUND"

    # System
    SETTINGS_UPDATE = "SETTINGS_UPDATE"
    EXPORT_DATA = "EXPORT_DATA"
    IMPORT_DATA = "IMPORT_DATA"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class AuditStatus(enum.Enum):
    """Outcome of the audited attempt."""
    SUCCESS = "success"
    FAILURE = "failure"
    WARNING = "warning"


class ResourceType(enum.Enum):
    """Kinds of resources an audit entry can describe."""
    TENANT = "tenant"
    USER = "user"
    STAFF = "staff"
    PRODUCT = "product"
    SALE = "sale"
    SETTINGS = "settings"
    SYSTEM = "system"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id ('global' for platform-level actions).
    """
    __tablename__ = 'audit_log'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    log_id = Column(String(64), nullable=False, unique=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(255))
    user_role = Column(String(20))
    action = Column(String(40), nullable=False, index=True)
    resource_type = Column(String(20))
    resource_id = Column(String(64))
    resource_name = Column(String(255))
    details = Column(JSONType)
    previous_state = Column(JSONType)
    new_state = Column(JSONType)
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    status = Column(String(10), nullable=False, default=AuditStatus.SUCCESS.value)
    error_message = Column(Text)
    extra = Column('metadata', JSONType)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        return {
            'logId': self.log_id,
            'tenantId': self.tenant_id,
            'userId': self.user_id,
            'userName': self.user_name,
            'userRole': self.user_role,
            'action': self.action,
            'resource': {
                'type': self.resource_type,
                'id': self.resource_id,
                'name': self.resource_name,
            },
            'details': self.details or {},
            'previousState': self.previous_state,
            'newState': self.new_state,
            'ipAddress': self.ip_address,
            'status': self.status,
            'errorMessage': self.error_message,
            'metadata': self.extra or {},
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} by user {self.user_id} at {self.created_at}>"


class ImmutableAuditLogError(Exception):
    """Raised on any attempt to modify or delete a persisted audit entry."""


@event.listens_for(AuditLog, 'before_update')
def _reject_update(mapper, connection, target):
    raise ImmutableAuditLogError(f"Audit log entries are append-only ({target.log_id})")


@event.listens_for(AuditLog, 'before_delete')
def _reject_delete(mapper, connection, target):
    raise ImmutableAuditLogError(f"Audit log entries are append-only ({target.log_id})")
