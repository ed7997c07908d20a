"""
Tests for reading and updating the authentication configuration.
"""

import pytest

from authengine.authentication.audit import get_audit_logs
from authengine.authentication.errors import Conflict, NotFound, ValidationError
from authengine.authentication.service import create_configuration_service
from authengine.models.authentication import AUTH_CONFIG_FIELDS, AuthenticationType, ResourceKind


async def audit_rows(session_factory, resource_kind=ResourceKind.AUTHENTICATION):
    async with session_factory() as db:
        return await get_audit_logs(db, resource_kind=resource_kind)


class TestProvisioning:

    async def test_defaults(self, service, super_admin):
        config = await service.get_auth_config(super_admin)

        assert list(config) == list(AUTH_CONFIG_FIELDS)
        assert config["authentication_type"] == AuthenticationType.INTERNAL
        assert config["ldap_configured"] == 0
        assert config["ldap_default_provider_id"] is None
        assert config["passwd_min_length"] == 8
        assert config["passwd_check_rules"] == 0x18

    async def test_provision_is_idempotent(self, service, super_admin):
        await service.update_auth_config(super_admin, {"passwd_min_length": 12})
        await service.provision()

        config = await service.get_auth_config(super_admin, ["passwd_min_length"])
        assert config == {"passwd_min_length": 12}

    async def test_missing_singleton(self, session_factory, super_admin):
        service = create_configuration_service(session_factory)
        with pytest.raises(NotFound):
            await service.get_auth_config(super_admin)


class TestGet:

    async def test_projection(self, service, user):
        config = await service.get_auth_config(user, ["authentication_type", "saml_sso_url"])
        assert config == {"authentication_type": 0, "saml_sso_url": ""}

    async def test_unknown_field(self, service, user):
        with pytest.raises(ValidationError) as exc_info:
            await service.get_auth_config(user, ["authentication_type", "nope"])
        assert exc_info.value.fields == ["nope"]


class TestDiffMinimality:
    """Only fields whose value differs are persisted and audited."""

    async def test_identical_values_change_nothing(self, service, session_factory, super_admin):
        updated = await service.update_auth_config(
            super_admin,
            {"passwd_min_length": "8", "http_strip_domains": "", "authentication_type": 0},
        )

        assert updated == []
        assert await audit_rows(session_factory) == []

    async def test_only_changed_fields_are_reported(self, service, session_factory, super_admin):
        updated = await service.update_auth_config(
            super_admin,
            {"http_auth_enabled": 0, "passwd_min_length": 10, "saml_slo_url": "https://idp/slo"},
        )

        assert updated == ["saml_slo_url", "passwd_min_length"]
        config = await service.get_auth_config(super_admin)
        assert config["passwd_min_length"] == 10
        assert config["saml_slo_url"] == "https://idp/slo"

        rows = await audit_rows(session_factory)
        assert len(rows) == 1
        assert rows[0].action == "update"
        assert rows[0].actor_id == super_admin.user_id
        assert rows[0].old_value == {"passwd_min_length": 8, "saml_slo_url": ""}
        assert rows[0].new_value == {"passwd_min_length": 10, "saml_slo_url": "https://idp/slo"}

    async def test_strings_compare_exactly(self, service, super_admin):
        await service.update_auth_config(super_admin, {"http_strip_domains": "example.com"})
        updated = await service.update_auth_config(super_admin, {"http_strip_domains": "Example.com"})
        assert updated == ["http_strip_domains"]


class TestValidation:

    async def test_all_violations_reported(self, service, super_admin):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_auth_config(
                super_admin,
                {"authentication_type": 5, "saml_sso_url": "", "unknown": 1},
            )

        assert exc_info.value.fields == ["authentication_type", "saml_sso_url", "unknown"]

    async def test_rejected_update_writes_nothing(self, service, session_factory, super_admin):
        with pytest.raises(ValidationError):
            await service.update_auth_config(super_admin, {"passwd_min_length": 10, "http_auth_enabled": 3})

        config = await service.get_auth_config(super_admin)
        assert config["passwd_min_length"] == 8
        assert await audit_rows(session_factory) == []


class TestPasswordPolicy:
    """Password policy is checked on the effective (min length, rules) pair."""

    async def test_long_minimum_accepts_all_classes(self, service, super_admin):
        updated = await service.update_auth_config(
            super_admin,
            {"passwd_min_length": 255, "passwd_check_rules": 0x07},
        )
        assert updated == ["passwd_min_length", "passwd_check_rules"]

    async def test_short_minimum_rejects_two_classes(self, service, super_admin):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_auth_config(
                super_admin,
                {"passwd_min_length": 1, "passwd_check_rules": 0x03},
            )
        assert exc_info.value.fields == ["passwd_check_rules"]

    async def test_uses_stored_rules_when_only_length_changes(self, service, super_admin):
        await service.update_auth_config(super_admin, {"passwd_check_rules": 0x07})

        with pytest.raises(ValidationError):
            await service.update_auth_config(super_admin, {"passwd_min_length": 2})

        await service.update_auth_config(super_admin, {"passwd_min_length": 3})


class TestConsistency:

    async def test_ldap_authentication_requires_ldap_configured(self, service, super_admin):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_auth_config(super_admin, {"authentication_type": 1})

        assert str(exc_info.value.errors[0]) == (
            'Incorrect value for field "authentication_type": LDAP is not configured.'
        )

    async def test_ldap_configured_requires_a_server(self, service, super_admin):
        with pytest.raises(Conflict):
            await service.update_auth_config(super_admin, {"ldap_configured": 1})

    async def test_enable_ldap(self, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server())

        updated = await service.update_auth_config(
            super_admin,
            {"ldap_configured": 1, "authentication_type": 1},
        )

        assert updated == ["authentication_type", "ldap_configured"]

    async def test_default_must_exist(self, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server())

        with pytest.raises(NotFound):
            await service.update_auth_config(super_admin, {"ldap_default_provider_id": 999})

    async def test_default_cannot_be_cleared_while_servers_exist(self, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server())

        with pytest.raises(Conflict):
            await service.update_auth_config(super_admin, {"ldap_default_provider_id": None})

    async def test_default_can_point_at_another_server(self, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server("first"))
        second = await service.add_provider(super_admin, ldap_server("second"))

        updated = await service.update_auth_config(super_admin, {"ldap_default_provider_id": str(second)})

        assert updated == ["ldap_default_provider_id"]
        config = await service.get_auth_config(super_admin, ["ldap_default_provider_id"])
        assert config["ldap_default_provider_id"] == second
