"""
Authentication service: login, logout, token refresh and account bootstrap.

Handles the credential check, session registration and the audit trail of
every attempt. Primary work is committed before its audit entry is recorded;
on failure the session is rolled back first.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from martpos.exceptions import (
    MartPosError, BusinessLogicError, ConflictError, AccessDeniedError,
    InvalidCredentialsError, NotFoundError
)
from martpos.models import (
    AuditAction, AuditStatus, ResourceType, StaffRole, TenantStatus, TenantPlan,
    UserRole, GLOBAL_TENANT_ID
)
from martpos.services.staff_service import stage_staff_profile

logger = logging.getLogger(__name__)


class AuthService:
    """Authentication flows over the credential, token and session services."""

    def __init__(self, session, config, token_service, credential_store,
                 tenant_directory, session_registry, audit_recorder):
        self.session = session
        self.config = config
        self.tokens = token_service
        self.credentials = credential_store
        self.tenants = tenant_directory
        self.registry = session_registry
        self.audit = audit_recorder

    def _audit_user(self, action, user, status=AuditStatus.SUCCESS, **kwargs):
        self.audit.record(
            action=action,
            tenant_id=user.tenant_id,
            user_id=user.user_id,
            user_name=user.full_name or None,
            user_role=user.role,
            status=status,
            **kwargs
        )

    # -- login / logout --------------------------------------------------

    def _login_failed(self, email, reason, user=None, ip_address=None, user_agent=None):
        self.session.rollback()
        if user is None:
            self.audit.record(
                action=AuditAction.LOGIN_FAILED,
                tenant_id=GLOBAL_TENANT_ID,
                user_id='unknown',
                user_name=email,
                user_role='unknown',
                details={'email': email, 'reason': reason},
                status=AuditStatus.FAILURE,
                error_message=reason,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        else:
            self._audit_user(
                AuditAction.LOGIN_FAILED, user,
                status=AuditStatus.FAILURE,
                resource_type=ResourceType.USER.value,
                resource_id=user.user_id,
                details={'email': email, 'reason': reason},
                error_message=reason,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        logger.info(f"Login failed for {email}: {reason}")

    def login(self, email, password, ip_address=None, user_agent=None):
        """
        Authenticate with email and password and open a new session.

        Unknown email and wrong password fail identically with
        INVALID_CREDENTIALS. The account and tenant status are only checked
        once the password has been verified.

        Returns:
            dict: {'user': ..., 'accessToken', 'refreshToken', 'tokenType', 'expiresIn'}
        """
        if not email or not password:
            raise BusinessLogicError('Email and password are required', 'MISSING_CREDENTIALS')

        user = self.credentials.find_by_email(email)
        if not self.credentials.verify_password(user, password):
            reason = 'User not found' if user is None else 'Invalid password'
            self._login_failed(email, reason, user, ip_address, user_agent)
            raise InvalidCredentialsError()

        if not user.is_active:
            self._login_failed(email, f'Account is {user.status}', user, ip_address, user_agent)
            raise AccessDeniedError('Account is not active', 'ACCOUNT_INACTIVE')

        if not user.is_super_admin():
            tenant = self.tenants.get(user.tenant_id)
            if tenant is None or not tenant.is_active:
                self._login_failed(email, 'Tenant is not active', user, ip_address, user_agent)
                raise AccessDeniedError('Tenant account is not active', 'TENANT_INACTIVE')

        pair = self.tokens.issue(user)
        self.registry.add_pair(user, pair)
        self.credentials.touch_last_login(user)
        self.session.commit()

        self._audit_user(
            AuditAction.LOGIN, user,
            resource_type=ResourceType.USER.value,
            resource_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(f"User {user.user_id} logged in (tenant {user.tenant_id})")

        result = {'user': user.to_dict()}
        result.update(pair.to_dict())
        return result

    def logout(self, principal, refresh_token=None):
        """
        Close the session identified by ``refresh_token``.

        Idempotent: without a token, or with one that is not registered, the
        registry is left untouched and nothing is audited.

        Returns:
            bool: True if a session was removed.
        """
        user = self.credentials.get_by_user_id(principal.user_id)
        if user is None or not refresh_token:
            return False

        removed = self.registry.revoke(user, refresh_token)
        if not removed:
            self.session.rollback()
            return False

        self.session.commit()
        self._audit_user(
            AuditAction.LOGOUT, user,
            resource_type=ResourceType.USER.value,
            resource_id=user.user_id,
        )
        return True

    def refresh(self, refresh_token):
        """
        Rotate a refresh token into a new token pair.

        Raises:
            BusinessLogicError: REFRESH_TOKEN_REQUIRED
            TokenExpiredError, TokenInvalidError, AuthenticationError, AccessDeniedError
        """
        if not refresh_token:
            raise BusinessLogicError('Refresh token is required', 'REFRESH_TOKEN_REQUIRED')

        user, pair = self.registry.rotate(refresh_token)
        self.session.commit()

        self._audit_user(
            AuditAction.TOKEN_REFRESH, user,
            resource_type=ResourceType.USER.value,
            resource_id=user.user_id,
        )
        return pair.to_dict()

    # -- bootstrap -------------------------------------------------------

    def create_super_admin(self, email, password, first_name=None, last_name=None):
        """
        Create the platform super admin. Allowed once.

        Raises:
            BusinessLogicError: MISSING_FIELDS
            ConflictError: SUPER_ADMIN_EXISTS
        """
        if not email or not password:
            raise BusinessLogicError('Email and password are required', 'MISSING_FIELDS')
        if self.credentials.super_admin_exists():
            raise ConflictError('Super admin already exists', 'SUPER_ADMIN_EXISTS')

        user = self.credentials.create_user(
            tenant_id=GLOBAL_TENANT_ID,
            email=email,
            password=password,
            role=UserRole.SUPER_ADMIN,
            first_name=first_name,
            last_name=last_name,
            created_by='system',
        )
        self.session.commit()

        self._audit_user(
            AuditAction.USER_CREATE, user,
            resource_type=ResourceType.USER.value,
            resource_id=user.user_id,
            details={'role': user.role, 'email': user.email},
        )
        logger.info(f"Super admin created: {user.user_id}")
        return {'userId': user.user_id, 'email': user.email, 'role': user.role}

    def create_tenant_and_shop_admin(self, principal, tenant_name, shop_admin_email,
                                     shop_admin_password, shop_admin_name=None,
                                     plan=TenantPlan.FREE.value):
        """
        Create an active tenant together with its first shop admin.

        Tenant, user and staff profile are committed together or not at all.
        Success records TENANT_CREATE (global) and USER_CREATE (new tenant);
        any failure records a failed TENANT_CREATE.
        """
        try:
            if not principal.is_super_admin:
                raise AccessDeniedError('Only super admin can create tenants', 'FORBIDDEN')
            if not tenant_name or not shop_admin_email or not shop_admin_password:
                raise BusinessLogicError('Missing required fields', 'MISSING_FIELDS')

            shop_admin_name = shop_admin_name or shop_admin_email.split('@')[0]
            tenant = self.tenants.create(
                tenant_name,
                plan=plan or TenantPlan.FREE.value,
                status=TenantStatus.ACTIVE.value,
                contact_email=shop_admin_email,
            )
            shop_admin = self.credentials.create_user(
                tenant_id=tenant.tenant_id,
                email=shop_admin_email,
                password=shop_admin_password,
                role=UserRole.SHOP_ADMIN,
                first_name=shop_admin_name,
                created_by=principal.user_id,
            )
            stage_staff_profile(
                self.session,
                tenant_id=tenant.tenant_id,
                user=shop_admin,
                name=shop_admin_name,
                role=StaffRole.SHOP_ADMIN.value,
                created_by=principal.user_id,
                created_by_role=principal.role,
            )
            self.session.commit()
        except (MartPosError, SQLAlchemyError) as e:
            self.session.rollback()
            message = e.message if isinstance(e, MartPosError) else 'Tenant creation failed'
            self.audit.record(
                action=AuditAction.TENANT_CREATE,
                tenant_id=GLOBAL_TENANT_ID,
                user_id=principal.user_id,
                user_name=principal.name or None,
                user_role=principal.role,
                resource_type=ResourceType.TENANT.value,
                resource_name=tenant_name,
                details={'plan': plan, 'shopAdminEmail': shop_admin_email},
                status=AuditStatus.FAILURE,
                error_message=message,
            )
            if isinstance(e, SQLAlchemyError):
                logger.error(f"Tenant creation failed for {tenant_name!r}: {e}")
            raise

        self.audit.record(
            action=AuditAction.TENANT_CREATE,
            tenant_id=GLOBAL_TENANT_ID,
            user_id=principal.user_id,
            user_name=principal.name or None,
            user_role=principal.role,
            resource_type=ResourceType.TENANT.value,
            resource_id=tenant.tenant_id,
            resource_name=tenant.name,
            details={'plan': tenant.plan, 'shopAdminEmail': shop_admin.email},
        )
        self.audit.record(
            action=AuditAction.USER_CREATE,
            tenant_id=tenant.tenant_id,
            user_id=shop_admin.user_id,
            user_name=shop_admin_name,
            user_role=shop_admin.role,
            resource_type=ResourceType.USER.value,
            resource_id=shop_admin.user_id,
            details={'email': shop_admin.email, 'createdBy': principal.role},
        )
        logger.info(f"Tenant {tenant.tenant_id} created by {principal.user_id}")

        return {
            'tenant': tenant.to_dict(),
            'shopAdmin': {
                'userId': shop_admin.user_id,
                'email': shop_admin.email,
                'role': shop_admin.role,
            },
        }

    def set_tenant_status(self, principal, tenant_id, status):
        """
        Change a tenant's status (super admin only).

        Suspension is audited as TENANT_SUSPEND, any other change as TENANT_UPDATE.
        Suspended tenants are locked out on their next request.
        """
        action = (AuditAction.TENANT_SUSPEND if status == TenantStatus.SUSPENDED.value
                  else AuditAction.TENANT_UPDATE)
        previous = None
        try:
            if not principal.is_super_admin:
                raise AccessDeniedError('Only super admin can change tenant status', 'FORBIDDEN')
            tenant = self.tenants.get(tenant_id)
            if tenant is None:
                raise NotFoundError('Tenant not found', 'TENANT_NOT_FOUND')
            previous = tenant.status
            self.tenants.set_status(tenant, status)
            self.session.commit()
        except MartPosError as e:
            self.session.rollback()
            self.audit.record(
                action=action,
                tenant_id=GLOBAL_TENANT_ID,
                user_id=principal.user_id,
                user_role=principal.role,
                resource_type=ResourceType.TENANT.value,
                resource_id=tenant_id,
                details={'status': status},
                status=AuditStatus.FAILURE,
                error_message=e.message,
            )
            raise

        self.audit.record(
            action=action,
            tenant_id=GLOBAL_TENANT_ID,
            user_id=principal.user_id,
            user_name=principal.name or None,
            user_role=principal.role,
            resource_type=ResourceType.TENANT.value,
            resource_id=tenant.tenant_id,
            resource_name=tenant.name,
            previous_state={'status': previous},
            new_state={'status': tenant.status},
        )
        logger.info(f"Tenant {tenant.tenant_id} status {previous} -> {tenant.status}")
        return tenant.to_dict()
