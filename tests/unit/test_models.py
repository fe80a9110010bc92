"""
Unit tests for model-level value objects and identifiers.
"""

import re

import pytest

from martpos.models import StaffPermissions, StaffRole, RefreshToken, hash_token
from martpos.utils.identifiers import generate_public_id, generate_tenant_id, to_base36


class TestStaffPermissions:
    """Tests for the fixed-shape permission flags."""

    def test_unset_flags_deny(self):
        perms = StaffPermissions()
        assert all(not perms.allows(name) for name in StaffPermissions.names())

    def test_defaults_for_cashier(self):
        perms = StaffPermissions.defaults_for(StaffRole.CASHIER.value)
        assert perms.can_manage_sales is True
        assert perms.can_refund is False
        assert perms.can_manage_products is False

    def test_defaults_for_manager(self):
        perms = StaffPermissions.defaults_for(StaffRole.MANAGER.value)
        assert perms.can_view_reports and perms.can_apply_discount and perms.can_refund
        assert not perms.can_manage_staff

    def test_defaults_for_shop_admin_grant_everything(self):
        perms = StaffPermissions.defaults_for(StaffRole.SHOP_ADMIN.value)
        assert all(perms.allows(name) for name in StaffPermissions.names())

    def test_from_mapping_accepts_camel_case_and_keeps_base(self):
        base = StaffPermissions.defaults_for(StaffRole.CASHIER.value)
        perms = StaffPermissions.from_mapping({'canRefund': True}, base=base)
        assert perms.can_refund is True
        assert perms.can_manage_sales is True

    def test_from_mapping_rejects_unknown_flag(self):
        with pytest.raises(ValueError, match='canFly'):
            StaffPermissions.from_mapping({'canFly': True})

    def test_to_dict_uses_api_names(self):
        data = StaffPermissions(can_refund=True).to_dict()
        assert data['canRefund'] is True
        assert set(data) == set(StaffPermissions.ALIASES)


class TestRefreshTokenRecord:

    def test_matches_exact_token_only(self):
        record = RefreshToken(token_hash=hash_token('abc.def.ghi'))
        assert record.matches('abc.def.ghi')
        assert not record.matches('abc.def.ghj')

    def test_hash_is_sha256_hex(self):
        assert re.fullmatch(r'[0-9a-f]{64}', hash_token('token'))


class TestIdentifiers:

    def test_base36(self):
        assert to_base36(0) == '0'
        assert to_base36(35) == 'z'
        assert to_base36(36) == '10'

    def test_public_id_format(self):
        assert re.fullmatch(r'user_[0-9a-z]+_[0-9a-z]{7}', generate_public_id('user'))

    def test_public_ids_are_unique(self):
        ids = {generate_public_id('log') for _ in range(200)}
        assert len(ids) == 200

    def test_tenant_id_uses_name_prefix(self):
        assert re.fullmatch(r'tenant_ACM_[0-9A-Z]+', generate_tenant_id('Acme'))

    def test_tenant_id_ignores_punctuation(self):
        assert generate_tenant_id("A-1 B's Mart").startswith('tenant_A1B_')

    def test_tenant_id_without_alphanumerics(self):
        assert generate_tenant_id('!!!').startswith('tenant_XXX_')
