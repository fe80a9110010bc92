"""Authentication blueprint: login, logout, refresh, bootstrap and tenants."""
from flask import Blueprint, request, jsonify, g, current_app

from martpos.decorators.permissions import super_admin_only
from martpos.exceptions import BusinessLogicError, ConflictError
from martpos.middleware import require_auth
from martpos.services import get_services

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login with email and password."""
    current_app.extensions['rate_limiter'].check('login', request.remote_addr)

    data = _json_body()
    email = data.get('email')
    password = data.get('password')
    if not email or not password:
        raise BusinessLogicError('Email and password are required', 'MISSING_CREDENTIALS')

    result = get_services().auth.login(
        email,
        password,
        ip_address=request.remote_addr,
        user_agent=request.headers.get('User-Agent'),
    )
    return jsonify({'success': True, 'data': result})


@auth_bp.route('/logout', methods=['POST'])
@require_auth
def logout():
    """Invalidate the given refresh token. Idempotent."""
    get_services().auth.logout(g.principal, _json_body().get('refreshToken'))
    return jsonify({'success': True, 'message': 'Logged out successfully'})


@auth_bp.route('/refresh', methods=['POST'])
def refresh():
    """Exchange a refresh token for a new token pair."""
    refresh_token = _json_body().get('refreshToken')
    if not refresh_token:
        raise BusinessLogicError('Refresh token is required', 'REFRESH_TOKEN_REQUIRED')
    tokens = get_services().auth.refresh(refresh_token)
    return jsonify({'success': True, 'data': tokens})


@auth_bp.route('/setup', methods=['POST'])
def setup():
    """Create the initial super admin. Disabled once one exists."""
    services = get_services()
    if services.credentials.super_admin_exists():
        raise ConflictError('System has already been set up', 'ALREADY_SETUP')

    data = _json_body()
    if not data.get('email') or not data.get('password'):
        raise BusinessLogicError('Email and password are required', 'MISSING_FIELDS')

    result = services.auth.create_super_admin(
        data['email'],
        data['password'],
        first_name=data.get('firstName'),
        last_name=data.get('lastName'),
    )
    return jsonify({
        'success': True,
        'data': result,
        'message': 'Super admin created successfully. Please login.',
    }), 201


@auth_bp.route('/tenants', methods=['POST'])
@require_auth
def create_tenant():
    """Create a tenant with its shop admin (super admin only)."""
    data = _json_body()
    if not data.get('tenantName') or not data.get('shopAdminEmail') or not data.get('shopAdminPassword'):
        raise BusinessLogicError('Missing required fields', 'MISSING_FIELDS')

    result = get_services().auth.create_tenant_and_shop_admin(
        g.principal,
        tenant_name=data['tenantName'],
        shop_admin_email=data['shopAdminEmail'],
        shop_admin_password=data['shopAdminPassword'],
        shop_admin_name=data.get('shopAdminName'),
        plan=data.get('plan'),
    )
    return jsonify({'success': True, 'data': result}), 201


@auth_bp.route('/tenants/<tenant_id>/status', methods=['PATCH'])
@super_admin_only
def set_tenant_status(tenant_id):
    """Suspend, reactivate or cancel a tenant."""
    status = _json_body().get('status')
    if not status:
        raise BusinessLogicError('status is required', 'MISSING_FIELDS')
    tenant = get_services().auth.set_tenant_status(g.principal, tenant_id, status)
    current_app.logger.info(f"Tenant {tenant_id} set to {status} by {g.principal.user_id}")
    return jsonify({'success': True, 'data': tenant})


@auth_bp.route('/me', methods=['GET'])
@require_auth
def me():
    """Current principal with its tenant."""
    data = g.principal.to_dict()
    if not g.principal.is_super_admin:
        tenant = get_services().tenants.get(g.principal.tenant_id)
        data['tenant'] = tenant.to_dict() if tenant is not None else None
    return jsonify({'success': True, 'data': data})
