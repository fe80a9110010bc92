import pytest
from flask import Blueprint, current_app, g, jsonify

from martpos import create_app, shutdown_app
from martpos.database import get_engine, get_session
from martpos.decorators.permissions import (
    require_staff_permission, shop_admin_tenant_scope, staff_or_higher
)
from martpos.middleware import require_tenant_access
from martpos.models import AuditLog, AuditAction, ResourceType
from martpos.services import get_services
from martpos.services.authorization import Permission

SUPER_ADMIN_EMAIL = 'root@martpos.test'
SHOP_ADMIN_EMAIL = 'owner@acme.test'
PASSWORD = 'correct-horse-battery'


def _pos_blueprint():
    """Sales endpoints guarded the way product and sale handlers are."""
    pos_bp = Blueprint('pos', __name__, url_prefix='/api/sales')

    @pos_bp.route('', methods=['GET'])
    @require_tenant_access
    @require_staff_permission(Permission.MANAGE_SALES)
    def list_sales():
        return jsonify({'success': True, 'data': [], 'tenantId': g.tenant_id})

    @pos_bp.route('', methods=['POST'])
    @staff_or_higher
    @shop_admin_tenant_scope
    @require_staff_permission(Permission.MANAGE_SALES)
    def create_sale():
        return jsonify({'success': True, 'data': g.payload}), 201

    @pos_bp.route('/<sale_id>/refund', methods=['POST'])
    @require_tenant_access
    @require_staff_permission(Permission.REFUND)
    def refund_sale(sale_id):
        current_app.extensions['audit_recorder'].record(
            action=AuditAction.SALE_REFUND,
            tenant_id=g.tenant_id,
            user_id=g.principal.user_id,
            user_role=g.principal.role,
            resource_type=ResourceType.SALE.value,
            resource_id=sale_id,
        )
        return jsonify({'success': True, 'data': {'saleId': sale_id, 'status': 'refunded'}})

    @pos_bp.route('/explode', methods=['POST'])
    @require_tenant_access
    def explode():
        raise RuntimeError('cash drawer jammed')

    return pos_bp


@pytest.fixture(scope='function')
def app(tmp_path):
    """Application on a fresh SQLite file per test."""
    app = create_app('config.TestConfig', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'martpos.db'}",
    })
    app.register_blueprint(_pos_blueprint())
    yield app
    shutdown_app(app)
    get_engine().dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def services(app):
    """Services bound to an app context's session (do not mix with client calls)."""
    with app.app_context():
        yield get_services()
        get_session().remove()


def principal_for(services, user_id):
    return services.engine.load_principal(services.credentials.get_by_user_id(user_id))


@pytest.fixture(scope='function')
def super_admin(app):
    with app.app_context():
        result = get_services().auth.create_super_admin(SUPER_ADMIN_EMAIL, PASSWORD, 'Root', 'Admin')
        get_session().remove()
    return {'user_id': result['userId'], 'email': SUPER_ADMIN_EMAIL, 'password': PASSWORD}


def _create_tenant(app, super_admin, name, email, plan='professional'):
    with app.app_context():
        services = get_services()
        result = services.auth.create_tenant_and_shop_admin(
            principal_for(services, super_admin['user_id']),
            tenant_name=name,
            shop_admin_email=email,
            shop_admin_password=PASSWORD,
            shop_admin_name='Owner',
            plan=plan,
        )
        get_session().remove()
    return {
        'tenant_id': result['tenant']['tenantId'],
        'user_id': result['shopAdmin']['userId'],
        'email': email,
        'password': PASSWORD,
    }


@pytest.fixture(scope='function')
def acme(app, super_admin):
    """Active tenant 'Acme' with its shop admin."""
    return _create_tenant(app, super_admin, 'Acme', SHOP_ADMIN_EMAIL)


@pytest.fixture(scope='function')
def globex(app, super_admin):
    """Second tenant for isolation tests."""
    return _create_tenant(app, super_admin, 'Globex', 'owner@globex.test', plan='basic')


@pytest.fixture(scope='function')
def make_staff(app, acme):
    """Factory: create a staff member in Acme through the staff service."""
    def _make_staff(email='cashier@acme.test', role='cashier', permissions=None, tenant=None):
        tenant = tenant or acme
        data = {'name': email.split('@')[0].title(), 'email': email, 'role': role, 'password': PASSWORD}
        if permissions is not None:
            data['permissions'] = permissions
        with app.app_context():
            services = get_services()
            result = services.staff.create(
                principal_for(services, tenant['user_id']), tenant['tenant_id'], data
            )
            get_session().remove()
        return {
            'staff_id': result['staff']['staffId'],
            'user_id': result['user']['userId'],
            'tenant_id': tenant['tenant_id'],
            'email': email,
            'password': PASSWORD,
        }
    return _make_staff


@pytest.fixture(scope='function')
def login(client):
    """Factory: log in through the API and return the token payload."""
    def _login(account):
        response = client.post('/api/auth/login', json={
            'email': account['email'],
            'password': account['password'],
        })
        assert response.status_code == 200, response.get_json()
        return response.get_json()['data']
    return _login


def bearer(token):
    return {'Authorization': f'Bearer {token}'}


def audit_entries(app, tenant_id=None, action=None):
    """Persisted audit rows in insertion order, as dicts."""
    with app.app_context():
        query = get_session().query(AuditLog)
        if tenant_id:
            query = query.filter(AuditLog.tenant_id == tenant_id)
        if action:
            query = query.filter(AuditLog.action == action.value)
        rows = [row.to_dict() for row in query.order_by(AuditLog.id.asc()).all()]
        get_session().remove()
    return rows
