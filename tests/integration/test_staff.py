"""
Staff management endpoints and fine-grained staff permissions.
"""

import pytest

from conftest import PASSWORD, audit_entries, bearer, principal_for
from martpos.database import get_session
from martpos.exceptions import AccessDeniedError, BusinessLogicError, NotFoundError
from martpos.models import AppUser, AuditAction, Staff


@pytest.fixture
def owner_headers(login, acme):
    return bearer(login(acme)['accessToken'])


class TestStaffPermissions:

    def test_cashier_can_sell_but_not_refund(self, app, client, login, make_staff):
        cashier = make_staff()
        headers = bearer(login(cashier)['accessToken'])

        assert client.get('/api/sales', headers=headers).status_code == 200
        response = client.post('/api/sales/sale_1/refund', headers=headers)

        assert response.status_code == 403
        assert response.get_json()['code'] == 'NO_REFUND_PERMISSION'
        assert response.get_json()['error'] == 'Permission denied: Cannot process refunds'
        assert audit_entries(app, cashier['tenant_id'], AuditAction.SALE_REFUND) == []

    def test_granted_flag_allows_refund(self, app, client, login, make_staff):
        cashier = make_staff(permissions={'canRefund': True})
        headers = bearer(login(cashier)['accessToken'])

        response = client.post('/api/sales/sale_1/refund', headers=headers)

        assert response.status_code == 200
        refunds = audit_entries(app, cashier['tenant_id'], AuditAction.SALE_REFUND)
        assert refunds[0]['resource'] == {'type': 'sale', 'id': 'sale_1', 'name': None}

    def test_revoked_flag_applies_to_live_token(self, client, login, owner_headers, make_staff):
        cashier = make_staff()
        headers = bearer(login(cashier)['accessToken'])

        client.put(f"/api/staff/{cashier['staff_id']}", headers=owner_headers,
                   json={'permissions': {'canManageSales': False}})
        response = client.get('/api/sales', headers=headers)

        assert response.status_code == 403
        assert response.get_json()['code'] == 'NO_SALES_PERMISSION'

    def test_shop_admin_holds_every_flag(self, client, owner_headers):
        assert client.post('/api/sales/sale_1/refund', headers=owner_headers).status_code == 200

    def test_staff_cannot_manage_staff(self, client, login, make_staff):
        cashier = make_staff()
        headers = bearer(login(cashier)['accessToken'])

        response = client.get('/api/staff', headers=headers)

        assert response.status_code == 403
        body = response.get_json()
        assert body['code'] == 'FORBIDDEN'
        assert body['current'] == 'staff'

    def test_staff_service_refuses_staff_principal(self, services, make_staff):
        cashier = make_staff()
        principal = principal_for(services, cashier['user_id'])

        with pytest.raises(AccessDeniedError) as exc:
            services.staff.create(principal, cashier['tenant_id'], {'name': 'X', 'email': 'x@acme.test'})
        assert exc.value.message == 'Staff cannot create accounts'


class TestStaffCrud:

    def test_create_staff(self, app, client, owner_headers, acme):
        response = client.post('/api/staff', headers=owner_headers, json={
            'name': 'Carla Cashier',
            'email': 'Carla@Acme.test',
            'role': 'cashier',
            'shift': {'start': '08:00', 'end': '16:00'},
            'hireDate': '2024-03-01',
        })

        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['staff']['email'] == 'carla@acme.test'
        assert data['staff']['tenantId'] == acme['tenant_id']
        assert data['staff']['shift'] == {'start': '08:00', 'end': '16:00'}
        assert data['staff']['hireDate'] == '2024-03-01'
        assert data['staff']['permissions']['canManageSales'] is True
        assert data['staff']['permissions']['canRefund'] is False
        assert data['user']['role'] == 'staff'
        assert data['temporaryPassword']

        login = client.post('/api/auth/login', json={
            'email': 'carla@acme.test', 'password': data['temporaryPassword'],
        })
        assert login.status_code == 200

        created = audit_entries(app, acme['tenant_id'], AuditAction.STAFF_CREATE)
        assert created[-1]['resource']['id'] == data['staff']['staffId']
        assert created[-1]['status'] == 'success'

    def test_supplied_password_is_not_echoed(self, client, owner_headers):
        response = client.post('/api/staff', headers=owner_headers, json={
            'name': 'Ben', 'email': 'ben@acme.test', 'password': PASSWORD,
        })
        assert 'temporaryPassword' not in response.get_json()['data']

    def test_duplicate_email(self, app, client, owner_headers, make_staff, acme):
        make_staff()

        response = client.post('/api/staff', headers=owner_headers, json={
            'name': 'Twin', 'email': 'cashier@acme.test', 'role': 'cashier',
        })

        assert response.status_code == 409
        assert response.get_json()['code'] == 'EMAIL_EXISTS'
        failed = audit_entries(app, acme['tenant_id'], AuditAction.STAFF_CREATE)[-1]
        assert failed['status'] == 'failure'

    def test_missing_fields(self, client, owner_headers):
        response = client.post('/api/staff', headers=owner_headers, json={'name': 'Nobody'})
        assert response.get_json()['code'] == 'MISSING_FIELDS'

    def test_unknown_permission_flag(self, client, owner_headers):
        response = client.post('/api/staff', headers=owner_headers, json={
            'name': 'Eve', 'email': 'eve@acme.test', 'permissions': {'canLaunchRockets': True},
        })
        assert response.status_code == 400
        assert response.get_json()['code'] == 'VALIDATION_ERROR'

    def test_cannot_assign_super_admin(self, client, owner_headers, make_staff):
        cashier = make_staff()

        response = client.put(f"/api/staff/{cashier['staff_id']}", headers=owner_headers,
                              json={'role': 'super_admin'})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_ROLE'

    def test_shop_admin_cannot_promote_to_shop_admin(self, client, owner_headers, make_staff):
        cashier = make_staff()

        response = client.put(f"/api/staff/{cashier['staff_id']}", headers=owner_headers,
                              json={'role': 'shop_admin'})

        assert response.status_code == 403

    def test_update_records_snapshots(self, app, client, owner_headers, make_staff):
        cashier = make_staff()

        response = client.put(f"/api/staff/{cashier['staff_id']}", headers=owner_headers,
                              json={'name': 'Renamed', 'role': 'manager', 'tenantId': 'ignored'})

        assert response.status_code == 200
        assert response.get_json()['data']['role'] == 'manager'
        update = audit_entries(app, cashier['tenant_id'], AuditAction.STAFF_UPDATE)[-1]
        assert update['previousState']['name'] == 'Cashier'
        assert update['newState']['name'] == 'Renamed'

    def test_email_change_moves_login(self, client, owner_headers, make_staff):
        cashier = make_staff()

        client.put(f"/api/staff/{cashier['staff_id']}", headers=owner_headers,
                   json={'email': 'till@acme.test'})

        old = client.post('/api/auth/login', json={'email': cashier['email'], 'password': PASSWORD})
        new = client.post('/api/auth/login', json={'email': 'till@acme.test', 'password': PASSWORD})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_get_and_list_with_filters(self, client, owner_headers, make_staff):
        cashier = make_staff()
        make_staff('manager@acme.test', role='manager')

        one = client.get(f"/api/staff/{cashier['staff_id']}", headers=owner_headers)
        managers = client.get('/api/staff?role=manager', headers=owner_headers)
        page = client.get('/api/staff?limit=1&offset=1', headers=owner_headers)

        assert one.get_json()['data']['email'] == cashier['email']
        assert [s['email'] for s in managers.get_json()['data']] == ['manager@acme.test']
        assert page.get_json()['pagination'] == {'limit': 1, 'offset': 1, 'total': 3}
        assert len(page.get_json()['data']) == 1

    def test_bad_pagination(self, client, owner_headers):
        response = client.get('/api/staff?limit=lots', headers=owner_headers)
        assert response.get_json()['code'] == 'VALIDATION_ERROR'

    def test_unknown_staff(self, client, owner_headers):
        response = client.get('/api/staff/staff_missing', headers=owner_headers)
        assert response.status_code == 404
        assert response.get_json()['code'] == 'STAFF_NOT_FOUND'


class TestStaffLifecycle:

    def test_suspend_ends_sessions(self, app, client, login, owner_headers, make_staff):
        cashier = make_staff()
        tokens = login(cashier)

        response = client.post(f"/api/staff/{cashier['staff_id']}/suspend", headers=owner_headers,
                               json={'reason': 'till shortage'})

        assert response.status_code == 200
        denied = client.get('/api/sales', headers=bearer(tokens['accessToken']))
        assert denied.get_json()['code'] == 'ACCOUNT_INACTIVE'
        refresh = client.post('/api/auth/refresh', json={'refreshToken': tokens['refreshToken']})
        assert refresh.get_json()['code'] == 'TOKEN_INVALID'

        suspended = audit_entries(app, cashier['tenant_id'], AuditAction.STAFF_SUSPEND)
        assert suspended[0]['details'] == {'reason': 'till shortage'}

    def test_activate_restores_login(self, app, client, owner_headers, make_staff):
        cashier = make_staff()
        client.post(f"/api/staff/{cashier['staff_id']}/suspend", headers=owner_headers)

        response = client.post(f"/api/staff/{cashier['staff_id']}/activate", headers=owner_headers)

        assert response.status_code == 200
        login = client.post('/api/auth/login', json={'email': cashier['email'], 'password': PASSWORD})
        assert login.status_code == 200
        assert len(audit_entries(app, cashier['tenant_id'], AuditAction.USER_ACTIVATE)) == 1

    def test_delete_is_soft(self, app, client, owner_headers, make_staff):
        cashier = make_staff()

        response = client.delete(f"/api/staff/{cashier['staff_id']}", headers=owner_headers)

        assert response.status_code == 200
        kept = client.get(f"/api/staff/{cashier['staff_id']}", headers=owner_headers).get_json()['data']
        assert kept['status'] == 'inactive'
        login = client.post('/api/auth/login', json={'email': cashier['email'], 'password': PASSWORD})
        assert login.get_json()['code'] == 'ACCOUNT_INACTIVE'
        assert len(audit_entries(app, cashier['tenant_id'], AuditAction.STAFF_DELETE)) == 1

    def test_shop_admin_cannot_suspend_shop_admin(self, app, services, acme):
        principal = principal_for(services, acme['user_id'])
        items, _ = services.staff.list(acme['tenant_id'], role='shop_admin')

        with pytest.raises(AccessDeniedError) as exc:
            services.staff.suspend(principal, acme['tenant_id'], items[0].staff_id)

        assert exc.value.message == 'Only super_admin can suspend shop_admin'
        failed = audit_entries(app, acme['tenant_id'], AuditAction.STAFF_SUSPEND)
        assert failed[0]['status'] == 'failure'

    def test_super_admin_can_suspend_shop_admin(self, client, login, super_admin, acme):
        root = bearer(login(super_admin)['accessToken'])
        staff = client.get(f"/api/staff?tenantId={acme['tenant_id']}&role=shop_admin", headers=root)
        staff_id = staff.get_json()['data'][0]['staffId']

        response = client.post(f"/api/staff/{staff_id}/suspend?tenantId={acme['tenant_id']}", headers=root)

        assert response.status_code == 200
        login_attempt = client.post('/api/auth/login', json={'email': acme['email'], 'password': PASSWORD})
        assert login_attempt.get_json()['code'] == 'ACCOUNT_INACTIVE'

    def test_invalid_status_value(self, services, acme, make_staff):
        cashier = make_staff()
        principal = principal_for(services, acme['user_id'])

        with pytest.raises(BusinessLogicError):
            services.staff.update(principal, acme['tenant_id'], cashier['staff_id'], {'status': 'on_holiday'})


class TestStaffTenantTarget:

    def test_super_admin_cannot_create_staff_in_unknown_tenant(self, app, client, login, super_admin):
        root = bearer(login(super_admin)['accessToken'])

        response = client.post('/api/staff', headers=root, json={
            'tenantId': 'tenant_NOPE', 'name': 'Ghost', 'email': 'ghost@nope.test',
        })

        assert response.status_code == 404
        assert response.get_json()['code'] == 'TENANT_NOT_FOUND'
        with app.app_context():
            assert get_session().query(AppUser).filter_by(tenant_id='tenant_NOPE').count() == 0
            assert get_session().query(Staff).filter_by(tenant_id='tenant_NOPE').count() == 0
            get_session().remove()
        failed = audit_entries(app, 'tenant_NOPE', AuditAction.STAFF_CREATE)
        assert [entry['status'] for entry in failed] == ['failure']
        assert failed[0]['errorMessage'] == 'Tenant not found'

    def test_super_admin_must_name_a_tenant(self, app, client, login, super_admin):
        root = bearer(login(super_admin)['accessToken'])

        response = client.post('/api/staff', headers=root, json={'name': 'Ghost', 'email': 'ghost@nope.test'})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'TENANT_REQUIRED'
        failed = audit_entries(app, 'global', AuditAction.STAFF_CREATE)
        assert [entry['status'] for entry in failed] == ['failure']
        assert audit_entries(app, action=AuditAction.SYSTEM_ERROR) == []

    def test_listing_unknown_tenant(self, client, login, super_admin):
        root = bearer(login(super_admin)['accessToken'])

        response = client.get('/api/staff?tenantId=tenant_NOPE', headers=root)

        assert response.status_code == 404
        assert response.get_json()['code'] == 'TENANT_NOT_FOUND'

    def test_unknown_tenant_status_change(self, services, super_admin):
        root = principal_for(services, super_admin['user_id'])

        with pytest.raises(NotFoundError) as exc:
            services.staff.suspend(root, 'tenant_NOPE', 'staff_missing')

        assert exc.value.code == 'TENANT_NOT_FOUND'

    def test_unexpected_error_is_audited_as_failure(self, app, services, acme, monkeypatch):
        principal = principal_for(services, acme['user_id'])

        def broken_create_user(**kwargs):
            raise RuntimeError('disk full')
        monkeypatch.setattr(services.credentials, 'create_user', broken_create_user)

        with pytest.raises(RuntimeError):
            services.staff.create(principal, acme['tenant_id'], {'name': 'Dana', 'email': 'dana@acme.test'})

        failed = [entry for entry in audit_entries(app, acme['tenant_id'], AuditAction.STAFF_CREATE)
                  if entry['status'] == 'failure']
        assert len(failed) == 1
        assert failed[0]['errorMessage'] == 'disk full'
