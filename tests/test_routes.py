"""
API endpoint tests for authentication configuration.

Endpoints tested:
    GET    /api/v1/authentication
    PUT    /api/v1/authentication
    GET    /api/v1/authentication/ldap-servers
    POST   /api/v1/authentication/ldap-servers
    GET    /api/v1/authentication/ldap-servers/<id>
    PATCH  /api/v1/authentication/ldap-servers/<id>
    DELETE /api/v1/authentication/ldap-servers/<id>
    POST   /api/v1/authentication/ldap-servers/<id>/default
    POST   /api/v1/authentication/ldap-servers/test
    GET    /api/v1/authentication/audit
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from authengine.core.dependencies import get_current_actor
from authengine.main import create_app

BASE = "/api/v1/authentication"


@pytest.fixture
def app(service, super_admin):
    app = create_app(service)
    app.dependency_overrides[get_current_actor] = lambda: super_admin
    return app


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestAuthConfigEndpoints:

    async def test_get(self, client):
        response = await client.get(BASE)
        assert response.status_code == 200
        assert response.json()["passwd_min_length"] == 8

    async def test_get_projection(self, client):
        response = await client.get(BASE, params={"fields": ["authentication_type", "ldap_configured"]})
        assert response.json() == {"authentication_type": 0, "ldap_configured": 0}

    async def test_update(self, client):
        response = await client.put(BASE, json={"passwd_min_length": 12, "http_auth_enabled": 0})
        assert response.status_code == 200
        assert response.json() == {"updated": ["passwd_min_length"]}

    async def test_update_validation_error(self, client):
        response = await client.put(BASE, json={"passwd_min_length": 1, "passwd_check_rules": 3})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"] == "Invalid parameters"
        assert error["details"] == [
            'Incorrect value for field "passwd_check_rules": length insufficient for selected requirements.'
        ]

    async def test_update_conflict(self, client):
        response = await client.put(BASE, json={"ldap_configured": 1})
        assert response.status_code == 409
        assert response.json()["error"]["message"] == "At least one LDAP server must exist."

    async def test_update_forbidden(self, app, client, user):
        app.dependency_overrides[get_current_actor] = lambda: user

        response = await client.put(BASE, json={"passwd_min_length": 12})

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "insufficient privilege"

    async def test_unauthenticated(self, app, client):
        app.dependency_overrides.clear()
        response = await client.get(BASE)
        assert response.status_code == 401


class TestLdapServerEndpoints:

    async def test_create_and_list(self, client):
        response = await client.post(
            f"{BASE}/ldap-servers",
            json={
                "name": "AAAA",
                "host": "ldap.example.com",
                "base_dn": "dc=example,dc=com",
                "search_attribute": "uid",
                "bind_password": "s3cret",
            },
        )
        assert response.status_code == 201
        provider_id = response.json()["id"]

        response = await client.get(f"{BASE}/ldap-servers")
        data = response.json()
        assert data["total"] == 1
        assert data["servers"][0]["id"] == provider_id
        assert data["servers"][0]["is_default"] is True
        assert "bind_password" not in data["servers"][0]

    async def test_create_missing_fields(self, client):
        response = await client.post(f"{BASE}/ldap-servers", json={"name": "AAAA"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["message"] == "Invalid LDAP configuration"
        assert error["details"][0] == 'Incorrect value for field "host": cannot be empty.'
        assert len(error["details"]) == 3

    async def test_create_malformed_body(self, client, service, super_admin):
        response = await client.post(f"{BASE}/ldap-servers", json={"name": "x", "port": "abc", "bogus": 1})

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"]["code"] == 400
        assert data["error"]["message"] == "Invalid parameters"
        assert set(data["error"]["details"]) == {
            'Incorrect value for field "port": an integer is expected.',
            'Incorrect value for field "bogus": unexpected parameter.',
        }
        assert "request_id" in data["meta"]
        assert await service.list_providers(super_admin) == []

    async def test_malformed_path_parameter(self, client):
        response = await client.get(f"{BASE}/ldap-servers/abc")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == [
            'Incorrect value for field "provider_id": an integer is expected.'
        ]

    async def test_duplicate_name(self, client, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server())

        response = await client.post(f"{BASE}/ldap-servers", json=ldap_server())
        assert response.status_code == 409

    async def test_get_update_delete(self, client, service, super_admin, ldap_server):
        provider_id = await service.add_provider(super_admin, ldap_server())

        response = await client.get(f"{BASE}/ldap-servers/{provider_id}")
        assert response.status_code == 200
        assert response.json()["name"] == "AAAA"

        response = await client.patch(f"{BASE}/ldap-servers/{provider_id}", json={"port": 636})
        assert response.json() == {"updated": ["port"]}

        response = await client.delete(f"{BASE}/ldap-servers/{provider_id}")
        assert response.status_code == 204

        response = await client.get(f"{BASE}/ldap-servers/{provider_id}")
        assert response.status_code == 404

    async def test_delete_last_server_while_ldap_active(self, client, service, super_admin, ldap_server):
        provider_id = await service.add_provider(super_admin, ldap_server())
        await service.update_auth_config(super_admin, {"ldap_configured": 1, "authentication_type": 1})

        response = await client.delete(f"{BASE}/ldap-servers/{provider_id}")
        assert response.status_code == 409

        response = await client.delete(
            f"{BASE}/ldap-servers/{provider_id}",
            params={"authentication_type": 0},
        )
        assert response.status_code == 204

    async def test_set_default(self, client, service, super_admin, ldap_server):
        await service.add_provider(super_admin, ldap_server("a"))
        second = await service.add_provider(super_admin, ldap_server("b"))

        response = await client.post(f"{BASE}/ldap-servers/{second}/default")
        assert response.json() == {"updated": ["ldap_default_provider_id"]}

        response = await client.post(f"{BASE}/ldap-servers/999/default")
        assert response.status_code == 404

    async def test_test_login(self, client, bind_client, ldap_server):
        response = await client.post(
            f"{BASE}/ldap-servers/test",
            json={**ldap_server(), "test_username": "jdoe", "test_password": "secret"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Login successful", "details": None}
        assert bind_client.requests[0][0].test_username == "jdoe"


class TestAuditEndpoint:

    async def test_list(self, client):
        await client.put(BASE, json={"passwd_min_length": 12})

        response = await client.get(f"{BASE}/audit", params={"resource_kind": "authentication"})

        assert response.status_code == 200
        logs = response.json()["logs"]
        assert len(logs) == 1
        assert logs[0]["old_value"] == {"passwd_min_length": 8}
        assert logs[0]["new_value"] == {"passwd_min_length": 12}
