"""
Permission decorators for role-based access control.
Extend require_auth / require_tenant_access with role and staff-flag checks.
"""

from functools import wraps

from flask import g, request

from martpos.blueprints.metrics import record_auth_decision
from martpos.exceptions import MartPosError
from martpos.middleware import authenticate_request
from martpos.models import UserRole
from martpos.services import get_services
from martpos.services.authorization import AuthorizationEngine, ROLE_HIERARCHY


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('super_admin')
        @require_role(UserRole.SUPER_ADMIN, UserRole.SHOP_ADMIN)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = authenticate_request()
            try:
                AuthorizationEngine.require_role(principal, allowed_roles)
            except MartPosError as e:
                record_auth_decision(e.code)
                raise
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def require_staff_permission(permission):
    """
    Decorator to check a fine-grained staff permission flag.

    super_admin and shop_admin pass; staff need the flag, otherwise the
    request fails with the permission's NO_*_PERMISSION code.

    Usage:
        @require_staff_permission(Permission.REFUND)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = authenticate_request()
            try:
                AuthorizationEngine.require_permission(principal, permission)
            except MartPosError as e:
                record_auth_decision(e.code)
                raise
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def super_admin_only(f):
    return require_role(*ROLE_HIERARCHY[UserRole.SUPER_ADMIN.value])(f)


def shop_admin_or_higher(f):
    return require_role(*ROLE_HIERARCHY[UserRole.SHOP_ADMIN.value])(f)


def staff_or_higher(f):
    return require_role(*ROLE_HIERARCHY[UserRole.STAFF.value])(f)


def shop_admin_tenant_scope(f):
    """
    Decorator: expose the JSON body as g.payload with tenantId forced to the
    principal's own tenant for anyone below super admin.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = authenticate_request()
        g.payload = get_services().engine.scope_payload(principal, request.get_json(silent=True) or {})
        return f(*args, **kwargs)
    return decorated_function
