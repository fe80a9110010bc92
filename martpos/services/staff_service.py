"""
Staff service: staff profiles, their permission flags and lifecycle.

Every operation receives an authenticated principal and a tenant id already
scoped by the authorization layer; the tenant must exist as a shop. Each
attempt is audited with its true outcome.
"""
import logging
import secrets
from contextlib import contextmanager
from datetime import date

from martpos.exceptions import (
    BusinessLogicError, ConflictError, AccessDeniedError, NotFoundError
)
from martpos.models import (
    Staff, StaffRole, StaffPermissions, AuditAction, AuditStatus, ResourceType,
    UserRole, UserStatus, GLOBAL_TENANT_ID
)
from martpos.services.credential_store import normalize_email
from martpos.utils.identifiers import generate_public_id

logger = logging.getLogger(__name__)

STAFF_ROLES = {r.value for r in StaffRole}
STAFF_STATUSES = {s.value for s in UserStatus}


def user_role_for(staff_role):
    """Platform role of the login identity behind a staff profile."""
    if staff_role == StaffRole.SHOP_ADMIN.value:
        return UserRole.SHOP_ADMIN.value
    return UserRole.STAFF.value


def parse_permissions(data, role, base=None):
    """
    Permission flags for a profile of ``role``.

    Without ``data`` the defaults of the role apply. Unknown flag names are
    rejected with VALIDATION_ERROR.
    """
    if data is None:
        return base or StaffPermissions.defaults_for(role)
    if not isinstance(data, dict):
        raise BusinessLogicError('permissions must be an object', 'VALIDATION_ERROR')
    try:
        return StaffPermissions.from_mapping(data, base=base or StaffPermissions.defaults_for(role))
    except ValueError as e:
        raise BusinessLogicError(str(e), 'VALIDATION_ERROR')


def validate_role(role):
    if role == UserRole.SUPER_ADMIN.value:
        raise BusinessLogicError('Cannot assign super_admin role', 'INVALID_ROLE')
    if role not in STAFF_ROLES:
        raise BusinessLogicError(f'Invalid role: {role}', 'INVALID_ROLE')
    return role


def stage_staff_profile(session, tenant_id, user, name, role, created_by, created_by_role,
                        permissions=None, phone=None):
    """Stage the staff profile of ``user`` (caller commits)."""
    staff = Staff(
        staff_id=generate_public_id('staff'),
        tenant_id=tenant_id,
        user_id=user.user_id,
        name=name,
        email=user.email,
        phone=phone,
        role=role,
        status=user.status,
        created_by=created_by,
        created_by_role=created_by_role,
    )
    staff.permissions = permissions or StaffPermissions.defaults_for(role)
    session.add(staff)
    session.flush()
    return staff


def _parse_date(value):
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid date: {value}', 'VALIDATION_ERROR')


class StaffService:
    """Staff management within one tenant."""

    def __init__(self, session, credential_store, tenant_directory, session_registry, audit_recorder):
        self.session = session
        self.credentials = credential_store
        self.tenants = tenant_directory
        self.registry = session_registry
        self.audit = audit_recorder

    # -- audit helpers ---------------------------------------------------

    @contextmanager
    def _audited(self, principal, tenant_id, action, staff_id=None):
        """
        Record ``action`` once the block finishes.

        The block fills the yielded dict (resource name, details, snapshots).
        Any exception rolls the session back and is recorded as a failure
        before it propagates.
        """
        outcome = {'resource_id': staff_id}
        try:
            yield outcome
        except Exception as e:
            self.session.rollback()
            self._record(principal, tenant_id, action, outcome,
                         status=AuditStatus.FAILURE, error_message=getattr(e, 'message', None) or str(e))
            raise
        self._record(principal, tenant_id, action, outcome)

    def _record(self, principal, tenant_id, action, outcome, **kwargs):
        self.audit.record(
            action=action,
            tenant_id=tenant_id,
            user_id=principal.user_id,
            user_name=principal.name or None,
            user_role=principal.role,
            resource_type=ResourceType.STAFF.value,
            **outcome,
            **kwargs
        )

    @staticmethod
    def _require_manager(principal, verb):
        if principal.role == UserRole.STAFF.value:
            raise AccessDeniedError(f'Staff cannot {verb} accounts', 'FORBIDDEN')

    @staticmethod
    def _guard_shop_admin(principal, staff, verb):
        if staff.role == StaffRole.SHOP_ADMIN.value and not principal.is_super_admin:
            raise AccessDeniedError(f'Only super_admin can {verb} shop_admin', 'FORBIDDEN')

    def _require_tenant(self, tenant_id):
        """
        Staff always belong to an existing shop tenant.

        Raises:
            BusinessLogicError: TENANT_REQUIRED for the global tenant
            NotFoundError: TENANT_NOT_FOUND
        """
        if not tenant_id or tenant_id == GLOBAL_TENANT_ID:
            raise BusinessLogicError('A shop tenant is required for staff operations', 'TENANT_REQUIRED')
        tenant = self.tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError('Tenant not found', 'TENANT_NOT_FOUND')
        return tenant

    # -- queries ---------------------------------------------------------

    def get(self, tenant_id, staff_id):
        staff = self.session.query(Staff).filter_by(tenant_id=tenant_id, staff_id=staff_id).first()
        if staff is None:
            raise NotFoundError('Staff not found', 'STAFF_NOT_FOUND')
        return staff

    def list(self, tenant_id, role=None, status=None, limit=20, offset=0):
        """
        Staff of a tenant, newest first.

        Returns:
            (list of Staff, total count)
        """
        self._require_tenant(tenant_id)
        query = self.session.query(Staff).filter(Staff.tenant_id == tenant_id)
        if role:
            query = query.filter(Staff.role == role)
        if status:
            query = query.filter(Staff.status == status)
        total = query.count()
        items = query.order_by(Staff.id.desc()).limit(limit).offset(offset).all()
        return items, total

    # -- mutations -------------------------------------------------------

    def create(self, principal, tenant_id, data):
        """
        Create a login identity and its staff profile.

        A random temporary password is generated when none is supplied and
        returned once in the result.
        """
        data = data or {}
        with self._audited(principal, tenant_id, AuditAction.STAFF_CREATE) as outcome:
            outcome['resource_name'] = data.get('name')
            outcome['details'] = {'email': data.get('email'), 'role': data.get('role')}

            self._require_manager(principal, 'create')
            self._require_tenant(tenant_id)
            if not data.get('name') or not data.get('email'):
                raise BusinessLogicError('Name and email are required', 'MISSING_FIELDS')
            role = validate_role(data.get('role') or StaffRole.STAFF.value)
            permissions = parse_permissions(data.get('permissions'), role)

            email = normalize_email(data['email'])
            exists = self.session.query(Staff.id).filter_by(tenant_id=tenant_id, email=email).first()
            if exists is not None or self.credentials.email_taken(tenant_id, email):
                raise ConflictError('Email already registered for this tenant', 'EMAIL_EXISTS')

            password = data.get('password')
            temporary_password = None
            if not password:
                temporary_password = password = secrets.token_urlsafe(9)

            user = self.credentials.create_user(
                tenant_id=tenant_id,
                email=email,
                password=password,
                role=user_role_for(role),
                first_name=data['name'],
                phone=data.get('phone'),
                created_by=principal.user_id,
            )
            staff = stage_staff_profile(
                self.session,
                tenant_id=tenant_id,
                user=user,
                name=data['name'],
                role=role,
                created_by=principal.user_id,
                created_by_role=principal.role,
                permissions=permissions,
                phone=data.get('phone'),
            )
            shift = data.get('shift') or {}
            staff.shift_start = shift.get('start')
            staff.shift_end = shift.get('end')
            staff.hire_date = _parse_date(data.get('hireDate'))
            self.session.commit()

            outcome['resource_id'] = staff.staff_id
            outcome['details']['createdBy'] = principal.role

        logger.info(f"Staff {staff.staff_id} created in tenant {tenant_id} by {principal.user_id}")
        result = {
            'staff': staff.to_dict(),
            'user': {
                'userId': user.user_id,
                'email': user.email,
                'role': user.role,
                'status': user.status,
            },
        }
        if temporary_password:
            result['temporaryPassword'] = temporary_password
        return result

    def update(self, principal, tenant_id, staff_id, data):
        """
        Update the allowed fields of a profile.

        Email, role and status changes are mirrored onto the login identity.
        Leaving the active status revokes every session of the user.
        """
        data = data or {}
        with self._audited(principal, tenant_id, AuditAction.STAFF_UPDATE, staff_id) as outcome:
            self._require_manager(principal, 'update')
            self._require_tenant(tenant_id)
            staff = self.get(tenant_id, staff_id)
            outcome['resource_name'] = staff.name
            previous_state = staff.to_dict()
            user = self.credentials.get_by_user_id(staff.user_id)

            if 'role' in data and data['role'] != staff.role:
                role = validate_role(data['role'])
                if StaffRole.SHOP_ADMIN.value in (role, staff.role) and not principal.is_super_admin:
                    raise AccessDeniedError('Only super_admin can grant or revoke shop_admin', 'FORBIDDEN')
                staff.role = role
                if user is not None:
                    user.role = user_role_for(role)

            if 'email' in data:
                email = normalize_email(data['email'])
                if not email:
                    raise BusinessLogicError('Email cannot be empty', 'VALIDATION_ERROR')
                if email != staff.email:
                    clash = self.session.query(Staff.id).filter(
                        Staff.tenant_id == tenant_id, Staff.email == email, Staff.id != staff.id
                    ).first()
                    if clash is not None or self.credentials.email_taken(tenant_id, email):
                        raise ConflictError('Email already registered for this tenant', 'EMAIL_EXISTS')
                    staff.email = email
                    if user is not None:
                        user.email = email

            if 'name' in data:
                if not data['name']:
                    raise BusinessLogicError('Name cannot be empty', 'VALIDATION_ERROR')
                staff.name = data['name']
            if 'phone' in data:
                staff.phone = data['phone']
            if 'permissions' in data:
                staff.permissions = parse_permissions(data['permissions'], staff.role, base=staff.permissions)
            if 'shift' in data:
                shift = data['shift'] or {}
                staff.shift_start = shift.get('start')
                staff.shift_end = shift.get('end')
            if 'hireDate' in data:
                staff.hire_date = _parse_date(data['hireDate'])

            if 'status' in data and data['status'] != staff.status:
                if data['status'] not in STAFF_STATUSES:
                    raise BusinessLogicError(f"Invalid status: {data['status']}", 'VALIDATION_ERROR')
                self._guard_shop_admin(principal, staff, 'change the status of')
                staff.status = data['status']
                if user is not None:
                    self.credentials.set_status(user, data['status'])
                    if not user.is_active:
                        self.registry.revoke_all(user)

            self.session.commit()
            outcome['previous_state'] = previous_state
            outcome['new_state'] = staff.to_dict()
        return staff

    def _change_status(self, principal, tenant_id, staff_id, action, status, verb, details=None):
        with self._audited(principal, tenant_id, action, staff_id) as outcome:
            if details:
                outcome['details'] = details
            self._require_manager(principal, verb)
            self._require_tenant(tenant_id)
            staff = self.get(tenant_id, staff_id)
            outcome['resource_name'] = staff.name
            if status != UserStatus.ACTIVE.value:
                self._guard_shop_admin(principal, staff, verb)

            staff.status = status
            user = self.credentials.get_by_user_id(staff.user_id)
            revoked = 0
            if user is not None:
                self.credentials.set_status(user, status)
                if status != UserStatus.ACTIVE.value:
                    revoked = self.registry.revoke_all(user)
            self.session.commit()
        logger.info(f"Staff {staff_id} -> {status} by {principal.user_id} ({revoked} sessions revoked)")
        return staff

    def suspend(self, principal, tenant_id, staff_id, reason=''):
        """Suspend a profile and its login; all of the user's sessions end."""
        return self._change_status(
            principal, tenant_id, staff_id, AuditAction.STAFF_SUSPEND,
            UserStatus.SUSPENDED.value, 'suspend', details={'reason': reason or ''},
        )

    def activate(self, principal, tenant_id, staff_id):
        return self._change_status(
            principal, tenant_id, staff_id, AuditAction.USER_ACTIVATE,
            UserStatus.ACTIVE.value, 'activate',
        )

    def delete(self, principal, tenant_id, staff_id):
        """Soft delete: the profile and login become inactive, rows are kept."""
        return self._change_status(
            principal, tenant_id, staff_id, AuditAction.STAFF_DELETE,
            UserStatus.INACTIVE.value, 'delete',
        )
