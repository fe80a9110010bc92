"""
Tenant creation together with its shop admin, and account bootstrap commands.
"""

from conftest import PASSWORD, audit_entries, bearer
from martpos.database import get_session
from martpos.models import AppUser, AuditAction, Staff, Tenant


def create_tenant(client, token, **overrides):
    body = {
        'tenantName': 'Acme',
        'shopAdminEmail': 'owner@acme.test',
        'shopAdminPassword': PASSWORD,
        'shopAdminName': 'Ada Owner',
        'plan': 'professional',
    }
    body.update(overrides)
    return client.post('/api/auth/tenants', json=body, headers=bearer(token))


def count_rows(app, model):
    with app.app_context():
        count = get_session().query(model).count()
        get_session().remove()
    return count


class TestCreateTenant:

    def test_creates_active_tenant_with_shop_admin(self, app, client, login, super_admin):
        root = login(super_admin)

        response = create_tenant(client, root['accessToken'])

        assert response.status_code == 201
        data = response.get_json()['data']
        tenant_id = data['tenant']['tenantId']
        assert tenant_id.startswith('tenant_ACM_')
        assert data['tenant']['status'] == 'active'
        assert data['tenant']['plan'] == 'professional'
        assert data['shopAdmin']['role'] == 'shop_admin'

        with app.app_context():
            user = get_session().query(AppUser).filter_by(user_id=data['shopAdmin']['userId']).one()
            staff = get_session().query(Staff).filter_by(user_id=user.user_id).one()
            assert user.tenant_id == tenant_id
            assert staff.role == 'shop_admin'
            assert staff.permissions.can_manage_staff
            get_session().remove()

        tenant_created = audit_entries(app, 'global', AuditAction.TENANT_CREATE)
        user_created = audit_entries(app, tenant_id, AuditAction.USER_CREATE)
        assert len(tenant_created) == 1
        assert tenant_created[0]['resource']['id'] == tenant_id
        assert tenant_created[0]['userId'] == super_admin['user_id']
        assert len(user_created) == 1
        assert user_created[0]['userId'] == data['shopAdmin']['userId']

    def test_new_shop_admin_can_log_in(self, client, login, super_admin):
        root = login(super_admin)
        create_tenant(client, root['accessToken'])

        tokens = login({'email': 'owner@acme.test', 'password': PASSWORD})

        assert tokens['user']['role'] == 'shop_admin'

    def test_only_super_admin_creates_tenants(self, app, client, login, acme):
        tokens = login(acme)

        response = create_tenant(client, tokens['accessToken'], tenantName='Rogue', shopAdminEmail='x@rogue.test')

        assert response.status_code == 403
        assert response.get_json()['code'] == 'FORBIDDEN'
        failed = audit_entries(app, 'global', AuditAction.TENANT_CREATE)[-1]
        assert failed['status'] == 'failure'
        assert failed['userId'] == acme['user_id']
        assert count_rows(app, Tenant) == 1

    def test_missing_fields(self, client, login, super_admin):
        root = login(super_admin)

        response = create_tenant(client, root['accessToken'], shopAdminPassword='')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'MISSING_FIELDS'

    def test_failure_leaves_no_partial_tenant(self, app, client, login, super_admin):
        root = login(super_admin)

        response = create_tenant(client, root['accessToken'], plan='platinum')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'
        assert count_rows(app, Tenant) == 0
        assert count_rows(app, AppUser) == 1
        assert audit_entries(app, 'global', AuditAction.TENANT_CREATE)[0]['status'] == 'failure'

    def test_requires_authentication(self, client):
        response = client.post('/api/auth/tenants', json={'tenantName': 'Acme'})
        assert response.get_json()['code'] == 'AUTH_REQUIRED'


class TestBootstrapCommands:

    def test_init_accounts_creates_defaults_once(self, app):
        app.config.update(
            SUPER_ADMIN_EMAIL='boot@martpos.test',
            SUPER_ADMIN_PASSWORD=PASSWORD,
            DEFAULT_TENANT_NAME='Corner Shop',
            DEFAULT_SHOP_ADMIN_EMAIL='owner@corner.test',
            DEFAULT_SHOP_ADMIN_PASSWORD=PASSWORD,
        )
        runner = app.test_cli_runner()

        first = runner.invoke(args=['init-accounts'])
        second = runner.invoke(args=['init-accounts'])

        assert first.exit_code == 0, first.output
        assert 'Super admin created: boot@martpos.test' in first.output
        assert 'Default tenant created: tenant_COR_' in first.output
        assert 'Super admin already exists.' in second.output
        assert 'Default tenant already exists.' in second.output
        assert count_rows(app, Tenant) == 1

    def test_init_accounts_can_be_disabled(self, app):
        app.config['ADMIN_AUTO_CREATE'] = False

        result = app.test_cli_runner().invoke(args=['init-accounts'])

        assert 'skipping' in result.output
        assert count_rows(app, AppUser) == 0

    def test_create_super_admin_command(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['create-super-admin', '--email', 'cli@martpos.test',
                                     '--password', PASSWORD])
        again = runner.invoke(args=['create-super-admin', '--email', 'cli2@martpos.test',
                                    '--password', PASSWORD])

        assert result.exit_code == 0, result.output
        assert 'Super admin created.' in result.output
        assert again.exit_code == 1
        assert 'SUPER_ADMIN_EXISTS' in again.output

    def test_create_super_admin_validates_input(self, app):
        result = app.test_cli_runner().invoke(args=['create-super-admin', '--email', 'nope',
                                                    '--password', PASSWORD])
        assert result.exit_code == 1
        assert 'Invalid email' in result.output
