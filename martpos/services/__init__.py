"""Service layer: per-request wiring of the authorization core."""
from dataclasses import dataclass

from flask import current_app, g

from martpos.services.audit_service import AuditRecorder
from martpos.services.auth_service import AuthService
from martpos.services.authorization import AuthorizationEngine
from martpos.services.credential_store import CredentialStore
from martpos.services.session_registry import SessionRegistry
from martpos.services.staff_service import StaffService
from martpos.services.tenant_directory import TenantDirectory
from martpos.services.token_service import TokenService


@dataclass
class Services:
    tokens: TokenService
    credentials: CredentialStore
    tenants: TenantDirectory
    sessions: SessionRegistry
    engine: AuthorizationEngine
    auth: AuthService
    staff: StaffService
    audit: AuditRecorder


def build_services(session, config, audit_recorder):
    """Wire every service over one SQLAlchemy session and SecurityConfig."""
    tokens = TokenService(config)
    credentials = CredentialStore(session, config)
    tenants = TenantDirectory(session)
    sessions = SessionRegistry(session, config, tokens, credentials, audit_recorder)
    return Services(
        tokens=tokens,
        credentials=credentials,
        tenants=tenants,
        sessions=sessions,
        engine=AuthorizationEngine(session, tokens, credentials, tenants),
        auth=AuthService(session, config, tokens, credentials, tenants, sessions, audit_recorder),
        staff=StaffService(session, credentials, tenants, sessions, audit_recorder),
        audit=audit_recorder,
    )


def get_services():
    """Services bound to the current app context's database session."""
    if 'services' not in g:
        from martpos.database import get_session
        g.services = build_services(
            get_session(),
            current_app.extensions['security_config'],
            current_app.extensions['audit_recorder'],
        )
    return g.services
