"""
Authorization engine.

Every request runs through the same ordered stages:

    Unauthenticated -> Authenticated -> TenantScoped -> RoleChecked
        -> PermissionChecked -> Admitted

and stops in Denied with a precise error code at the first failing stage.
Principals, tenants and permission flags are reloaded for each request and
never cached, so suspensions and role changes apply immediately.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from martpos.exceptions import (
    MartPosError, AuthenticationError, AccessDeniedError, NotFoundError
)
from martpos.models import Staff, StaffPermissions, UserRole, GLOBAL_TENANT_ID

logger = logging.getLogger(__name__)

# super_admin > shop_admin > staff; "X or higher" means rank >= rank(X)
ROLE_RANK = {
    UserRole.STAFF.value: 1,
    UserRole.SHOP_ADMIN.value: 2,
    UserRole.SUPER_ADMIN.value: 3,
}

# Roles admitted by an "X or higher" check
ROLE_HIERARCHY = {
    role: [r for r, rank in ROLE_RANK.items() if rank >= minimum]
    for role, minimum in ROLE_RANK.items()
}


class Permission(enum.Enum):
    """Fine-grained staff capabilities: (flag on the staff profile, denial code, message)."""
    MANAGE_PRODUCTS = ('can_manage_products', 'NO_PRODUCT_PERMISSION', 'Cannot manage products')
    MANAGE_SALES = ('can_manage_sales', 'NO_SALES_PERMISSION', 'Cannot modify sales')
    MANAGE_STAFF = ('can_manage_staff', 'NO_STAFF_PERMISSION', 'Cannot manage staff')
    VIEW_REPORTS = ('can_view_reports', 'NO_REPORT_PERMISSION', 'Cannot view reports')
    APPLY_DISCOUNT = ('can_apply_discount', 'NO_DISCOUNT_PERMISSION', 'Cannot apply discounts')
    REFUND = ('can_refund', 'NO_REFUND_PERMISSION', 'Cannot process refunds')

    @property
    def flag(self):
        return self.value[0]

    @property
    def denial_code(self):
        return self.value[1]

    @property
    def denial_message(self):
        return f"Permission denied: {self.value[2]}"


class AuthStage(enum.Enum):
    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATED = 'authenticated'
    TENANT_SCOPED = 'tenant_scoped'
    ROLE_CHECKED = 'role_checked'
    PERMISSION_CHECKED = 'permission_checked'
    ADMITTED = 'admitted'
    DENIED = 'denied'


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to one request."""
    user_id: str
    tenant_id: str
    email: str
    role: str
    status: str
    name: str = ''
    permissions: Optional[StaffPermissions] = None

    @property
    def is_super_admin(self):
        return self.role == UserRole.SUPER_ADMIN.value

    def to_dict(self):
        data = {
            'userId': self.user_id,
            'tenantId': self.tenant_id,
            'email': self.email,
            'role': self.role,
            'status': self.status,
        }
        if self.permissions is not None:
            data['permissions'] = self.permissions.to_dict()
        return data


@dataclass
class AuthorizationContext:
    """Outcome of running the authorization stages for a request."""
    stage: AuthStage = AuthStage.UNAUTHENTICATED
    principal: Optional[Principal] = None
    tenant_id: Optional[str] = None
    tenant: object = None
    denial: Optional[MartPosError] = None
    trail: list = field(default_factory=list)

    @property
    def admitted(self):
        return self.stage is AuthStage.ADMITTED

    def advance(self, stage):
        self.trail.append(stage)
        self.stage = stage


def role_at_least(principal, minimum):
    """True if principal's role is ``minimum`` or higher in the hierarchy."""
    minimum = minimum.value if isinstance(minimum, UserRole) else minimum
    return ROLE_RANK.get(principal.role, 0) >= ROLE_RANK[minimum]


def parse_bearer(authorization_header):
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: AUTH_REQUIRED if absent or malformed
    """
    if not authorization_header or not authorization_header.startswith('Bearer '):
        raise AuthenticationError('Authentication required', 'AUTH_REQUIRED')
    token = authorization_header[len('Bearer '):].strip()
    if not token or ' ' in token:
        raise AuthenticationError('Authentication required', 'AUTH_REQUIRED')
    return token


class AuthorizationEngine:
    """Role, tenant-scope and permission checks over freshly loaded state."""

    def __init__(self, session, token_service, credential_store, tenant_directory):
        self.session = session
        self.tokens = token_service
        self.credentials = credential_store
        self.tenants = tenant_directory

    # -- Authenticated ---------------------------------------------------

    def load_principal(self, user):
        permissions = None
        if user.role == UserRole.STAFF.value:
            profile = self.session.query(Staff).filter_by(user_id=user.user_id).first()
            permissions = profile.permissions if profile is not None else StaffPermissions()
        return Principal(
            user_id=user.user_id,
            tenant_id=user.tenant_id,
            email=user.email,
            role=user.role,
            status=user.status,
            name=user.full_name,
            permissions=permissions,
        )

    def authenticate(self, authorization_header):
        """
        Resolve the bearer token of a request to a Principal.

        Raises:
            AuthenticationError: AUTH_REQUIRED, TOKEN_EXPIRED, TOKEN_INVALID, USER_NOT_FOUND
            AccessDeniedError: ACCOUNT_INACTIVE
        """
        token = parse_bearer(authorization_header)
        claims = self.tokens.verify_access(token)

        user = self.credentials.get_by_user_id(claims['userId'])
        if user is None:
            raise AuthenticationError('User not found', 'USER_NOT_FOUND')
        if not user.is_active:
            raise AccessDeniedError('Account is not active', 'ACCOUNT_INACTIVE')
        return self.load_principal(user)

    # -- TenantScoped ----------------------------------------------------

    @staticmethod
    def resolve_tenant_id(principal, path_tenant_id=None, body_tenant_id=None):
        """Requested tenant by precedence: path, body, then the principal's own."""
        return path_tenant_id or body_tenant_id or principal.tenant_id

    @staticmethod
    def scope_tenant(principal, requested_tenant_id=None):
        """
        Target tenant for an operation.

        Non-super-admin principals always operate on their own tenant,
        whatever the client supplied.
        """
        if principal.is_super_admin:
            return requested_tenant_id or principal.tenant_id
        return principal.tenant_id

    def scope_payload(self, principal, payload):
        """Overwrite ``tenantId`` in a request payload for non-super-admin principals."""
        payload = dict(payload or {})
        if not principal.is_super_admin:
            payload['tenantId'] = principal.tenant_id
        return payload

    def require_tenant_access(self, principal, requested_tenant_id=None):
        """
        Check that ``principal`` may act on ``requested_tenant_id``.

        Returns:
            The Tenant record (None for a super admin acting globally).

        Raises:
            AccessDeniedError: TENANT_FORBIDDEN, TENANT_INACTIVE
            NotFoundError: TENANT_NOT_FOUND
        """
        if principal.is_super_admin:
            if requested_tenant_id and requested_tenant_id != GLOBAL_TENANT_ID:
                return self.tenants.get(requested_tenant_id)
            return None

        if requested_tenant_id and requested_tenant_id != principal.tenant_id:
            logger.warning(
                f"Cross-tenant access attempt by {principal.user_id} "
                f"({principal.tenant_id} -> {requested_tenant_id})"
            )
            raise AccessDeniedError('Access denied to this tenant', 'TENANT_FORBIDDEN')

        return self.tenants.require_active(principal.tenant_id)

    # -- RoleChecked -----------------------------------------------------

    @staticmethod
    def require_role(principal, allowed: Iterable):
        allowed = [r.value if isinstance(r, UserRole) else r for r in allowed]
        if principal.role not in allowed:
            raise AccessDeniedError(
                'Insufficient permissions', 'FORBIDDEN',
                payload={'required': allowed, 'current': principal.role},
            )

    @classmethod
    def require_role_at_least(cls, principal, minimum):
        minimum = minimum.value if isinstance(minimum, UserRole) else minimum
        cls.require_role(principal, ROLE_HIERARCHY[minimum])

    # -- PermissionChecked -----------------------------------------------

    @staticmethod
    def has_permission(principal, permission):
        if principal.role in (UserRole.SUPER_ADMIN.value, UserRole.SHOP_ADMIN.value):
            return True
        if principal.permissions is None:
            return False
        return principal.permissions.allows(permission.flag)

    @classmethod
    def require_permission(cls, principal, permission):
        if not cls.has_permission(principal, permission):
            raise AccessDeniedError(permission.denial_message, permission.denial_code)

    # -- full pipeline ---------------------------------------------------

    def admit(self, authorization_header, path_tenant_id=None, body_tenant_id=None,
              roles=None, permission=None):
        """
        Run every stage in order and report where the request ended.

        Never raises for authorization failures: the returned context is in
        DENIED with ``denial`` set to the error for the first failing stage.
        """
        ctx = AuthorizationContext()
        try:
            ctx.principal = self.authenticate(authorization_header)
            ctx.advance(AuthStage.AUTHENTICATED)

            requested = self.resolve_tenant_id(ctx.principal, path_tenant_id, body_tenant_id)
            ctx.tenant = self.require_tenant_access(ctx.principal, requested)
            ctx.tenant_id = self.scope_tenant(ctx.principal, requested)
            ctx.advance(AuthStage.TENANT_SCOPED)

            if roles:
                self.require_role(ctx.principal, roles)
            ctx.advance(AuthStage.ROLE_CHECKED)

            if permission is not None:
                self.require_permission(ctx.principal, permission)
            ctx.advance(AuthStage.PERMISSION_CHECKED)

            ctx.advance(AuthStage.ADMITTED)
        except (AuthenticationError, AccessDeniedError, NotFoundError) as e:
            ctx.denial = e
            ctx.advance(AuthStage.DENIED)
        return ctx
