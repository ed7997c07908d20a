"""
Shared fixtures: a file-backed SQLite database per test and a fully wired
configuration service with a fake LDAP bind client.
"""

from typing import Any, Callable, Dict, List, Tuple

import pytest
import pytest_asyncio

from authengine.authentication.encryption import CredentialEncryption
from authengine.authentication.ldap_client import BindRequest, BindResult
from authengine.authentication.service import ConfigurationService, create_configuration_service
from authengine.authz.gate import Actor, UserType
from authengine.core.database import close_db, create_engine, create_session_factory, init_db

TEST_MASTER_KEY = "test-master-key-for-credential-encryption"


class FakeBindClient:
    """Records bind requests and answers with a fixed result."""

    def __init__(self, result: BindResult = BindResult.SUCCESS):
        self.result = result
        self.requests: List[Tuple[BindRequest, int]] = []

    def bind(self, request: BindRequest, timeout: int) -> BindResult:
        self.requests.append((request, timeout))
        return self.result


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def encryption() -> CredentialEncryption:
    return CredentialEncryption(TEST_MASTER_KEY)


@pytest.fixture
def bind_client() -> FakeBindClient:
    return FakeBindClient()


@pytest_asyncio.fixture
async def service(session_factory, bind_client, encryption) -> ConfigurationService:
    service = create_configuration_service(
        session_factory,
        bind_client=bind_client,
        encryption=encryption,
    )
    await service.provision()
    return service


@pytest.fixture
def super_admin() -> Actor:
    return Actor(user_id=1, username="Admin", user_type=UserType.SUPER_ADMIN)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=2, username="admin", user_type=UserType.ADMIN)


@pytest.fixture
def user() -> Actor:
    return Actor(user_id=3, username="guest", user_type=UserType.USER)


@pytest.fixture
def ldap_server() -> Callable[..., Dict[str, Any]]:
    """Build LDAP server fields with the required ones filled in."""

    def build(name: str = "AAAA", **overrides: Any) -> Dict[str, Any]:
        values = {
            "name": name,
            "host": "ldap.example.com",
            "base_dn": "dc=example,dc=com",
            "search_attribute": "uid",
        }
        values.update(overrides)
        return values

    return build
