"""Tenant directory: tenant lookup, creation and the active-status gate."""
import logging

from martpos.exceptions import NotFoundError, AccessDeniedError, BusinessLogicError
from martpos.models import Tenant, TenantStatus, TenantPlan
from martpos.utils.identifiers import generate_tenant_id

logger = logging.getLogger(__name__)


class TenantDirectory:
    """Maps tenant identifiers to their status and plan."""

    def __init__(self, session):
        self.session = session

    def get(self, tenant_id):
        if not tenant_id:
            return None
        return self.session.query(Tenant).filter_by(tenant_id=tenant_id).first()

    def find_by_name(self, name):
        return self.session.query(Tenant).filter_by(name=name).first()

    def require_active(self, tenant_id):
        """
        Return the tenant if it exists and is active.

        Raises:
            NotFoundError: TENANT_NOT_FOUND
            AccessDeniedError: TENANT_INACTIVE
        """
        tenant = self.get(tenant_id)
        if tenant is None:
            raise NotFoundError('Tenant not found', 'TENANT_NOT_FOUND')
        if not tenant.is_active:
            raise AccessDeniedError('Tenant account is not active', 'TENANT_INACTIVE')
        return tenant

    def create(self, name, plan=TenantPlan.FREE.value, status=TenantStatus.PENDING.value,
               contact_email=None):
        """Stage a new tenant (caller commits)."""
        name = (name or '').strip()
        if not name:
            raise BusinessLogicError('Tenant name is required', 'MISSING_FIELDS')
        plan = plan or TenantPlan.FREE.value
        if plan not in {p.value for p in TenantPlan}:
            raise BusinessLogicError(f'Invalid plan: {plan}', 'VALIDATION_ERROR')

        tenant_id = generate_tenant_id(name)
        while self.get(tenant_id) is not None:
            tenant_id = generate_tenant_id(name)

        tenant = Tenant(
            tenant_id=tenant_id,
            name=name,
            status=status,
            plan=plan,
            contact_email=contact_email,
        )
        self.session.add(tenant)
        self.session.flush()
        logger.info(f"Staged tenant {tenant_id} ({name}) plan={plan}")
        return tenant

    def set_status(self, tenant, status):
        if status not in {s.value for s in TenantStatus}:
            raise BusinessLogicError(f'Invalid tenant status: {status}', 'VALIDATION_ERROR')
        tenant.status = status
        return tenant
