"""Models package - exports all SQLAlchemy models."""
from martpos.models.tenant import Tenant, TenantStatus, TenantPlan
from martpos.models.app_user import AppUser, UserRole, UserStatus, GLOBAL_TENANT_ID
from martpos.models.refresh_token import RefreshToken, hash_token
from martpos.models.staff import Staff, StaffRole, StaffPermissions
from martpos.models.audit_log import (
    AuditLog, AuditAction, AuditStatus, ResourceType, ImmutableAuditLogError
)

__all__ = [
    'Tenant', 'TenantStatus', 'TenantPlan',
    'AppUser', 'UserRole', 'UserStatus', 'GLOBAL_TENANT_ID',
    'RefreshToken', 'hash_token',
    'Staff', 'StaffRole', 'StaffPermissions',
    'AuditLog', 'AuditAction', 'AuditStatus', 'ResourceType', 'ImmutableAuditLogError',
]
