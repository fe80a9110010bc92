"""Middleware for bearer authentication and tenant context."""
from functools import wraps

from flask import g, request

from martpos.blueprints.metrics import record_auth_decision
from martpos.exceptions import MartPosError
from martpos.services import get_services


def _denied(error):
    record_auth_decision(error.code)
    return error


def authenticate_request():
    """
    Resolve the request's bearer token into g.principal.

    The principal is reloaded from the database on every request so that
    suspensions and role changes take effect immediately.
    """
    if g.get('principal') is not None:
        return g.principal
    engine = get_services().engine
    try:
        g.principal = engine.authenticate(request.headers.get('Authorization'))
    except MartPosError as e:
        raise _denied(e)
    return g.principal


def requested_tenant_id(path_tenant_id=None):
    """Tenant named by the request: path parameter, then body field, then query string."""
    body = request.get_json(silent=True) if request.is_json else None
    body_tenant_id = body.get('tenantId') if isinstance(body, dict) else None
    return path_tenant_id or body_tenant_id or request.args.get('tenantId')


def require_auth(f):
    """
    Decorator: Require a valid bearer token.

    Sets g.principal. Fails with AUTH_REQUIRED, TOKEN_EXPIRED, TOKEN_INVALID,
    USER_NOT_FOUND or ACCOUNT_INACTIVE.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        authenticate_request()
        return f(*args, **kwargs)
    return decorated_function


def require_tenant_access(f):
    """
    Decorator: Require access to the tenant the request targets.

    Authenticates if needed, then sets g.tenant_id (scoped: always the
    principal's own tenant unless super admin) and g.tenant.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = authenticate_request()
        engine = get_services().engine
        requested = engine.resolve_tenant_id(principal, requested_tenant_id(kwargs.get('tenant_id')))
        try:
            g.tenant = engine.require_tenant_access(principal, requested)
        except MartPosError as e:
            raise _denied(e)
        g.tenant_id = engine.scope_tenant(principal, requested)
        record_auth_decision()
        return f(*args, **kwargs)
    return decorated_function
