"""
Authentication configuration service.

Caller-facing operations. Each mutation authorizes the actor, takes the
registry lock then the store lock, and runs in a single transaction that is
rolled back on any error.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authengine.authentication.audit import AuditRecorder, AuditSink, get_audit_logs
from authengine.authentication.encryption import CredentialEncryption
from authengine.authentication.errors import AuthConfigError, StorageError
from authengine.authentication.groups import GroupReferenceCounter
from authengine.authentication.ldap_client import LdapBindClient, ProviderTestResult
from authengine.authentication.registry import DirectoryRegistry
from authengine.authentication.store import AuthConfigStore
from authengine.authz.gate import Actor, Operation, PermissionGate
from authengine.models.authentication import ResourceKind

logger = structlog.get_logger(__name__)


class ConfigurationService:
    """
    Orchestrates the permission gate, the config store and the directory registry.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gate: PermissionGate,
        store: AuthConfigStore,
        registry: DirectoryRegistry,
    ):
        self._session_factory = session_factory
        self._gate = gate
        self.store = store
        self.registry = registry

    @asynccontextmanager
    async def _mutation(self, operation: Operation) -> AsyncIterator[AsyncSession]:
        async with AsyncExitStack() as stack:
            # Fixed order: registry, then store
            await stack.enter_async_context(self.registry.lock)
            await stack.enter_async_context(self.store.lock)

            async with self._session_factory() as db:
                try:
                    async with db.begin():
                        yield db
                except SQLAlchemyError as e:
                    logger.error("Storage failure", operation=operation.value, error=str(e))
                    raise StorageError("Cannot save changes.") from e
                except StorageError as e:
                    logger.error("Storage failure", operation=operation.value, error=e.message)
                    raise
                except AuthConfigError as e:
                    logger.warning("Change rejected", operation=operation.value, error=e.message)
                    raise

    async def provision(self) -> None:
        """Create the configuration singleton if needed."""
        async with self.store.lock:
            async with self._session_factory() as db:
                async with db.begin():
                    await self.store.provision(db)

    # ===========================================
    # Authentication configuration
    # ===========================================

    async def get_auth_config(self, actor: Actor, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        self._gate.authorize(actor, Operation.GET_AUTH_CONFIG)
        async with self._session_factory() as db:
            return await self.store.get(db, fields)

    async def update_auth_config(self, actor: Actor, proposed: Mapping[str, Any]) -> List[str]:
        """
        Update the authentication configuration.

        Args:
            actor: Acting principal
            proposed: Fields to update; absent fields are left unchanged

        Returns:
            Names of the fields that actually changed
        """
        self._gate.authorize(actor, Operation.UPDATE_AUTH_CONFIG)
        async with self._mutation(Operation.UPDATE_AUTH_CONFIG) as db:
            provider_ids = await self.registry.ids(db)
            return await self.store.update(db, actor, proposed, provider_ids)

    # ===========================================
    # LDAP servers
    # ===========================================

    async def list_providers(self, actor: Actor) -> List[Dict[str, Any]]:
        self._gate.authorize(actor, Operation.LIST_PROVIDERS)
        async with self._session_factory() as db:
            return await self.registry.list(db)

    async def get_provider(self, actor: Actor, provider_id: int) -> Dict[str, Any]:
        self._gate.authorize(actor, Operation.LIST_PROVIDERS)
        async with self._session_factory() as db:
            return await self.registry.get(db, provider_id)

    async def add_provider(self, actor: Actor, candidate: Mapping[str, Any]) -> int:
        self._gate.authorize(actor, Operation.ADD_PROVIDER)
        async with self._mutation(Operation.ADD_PROVIDER) as db:
            return await self.registry.add(db, actor, candidate)

    async def update_provider(self, actor: Actor, provider_id: int, partial: Mapping[str, Any]) -> List[str]:
        self._gate.authorize(actor, Operation.UPDATE_PROVIDER)
        async with self._mutation(Operation.UPDATE_PROVIDER) as db:
            return await self.registry.update(db, actor, provider_id, partial)

    async def remove_provider(
        self,
        actor: Actor,
        provider_id: int,
        authentication_type: Optional[int] = None,
    ) -> None:
        self._gate.authorize(actor, Operation.REMOVE_PROVIDER)
        async with self._mutation(Operation.REMOVE_PROVIDER) as db:
            await self.registry.remove(db, actor, provider_id, authentication_type)

    async def set_default_provider(self, actor: Actor, provider_id: int) -> List[str]:
        self._gate.authorize(actor, Operation.SET_DEFAULT_PROVIDER)
        async with self._mutation(Operation.SET_DEFAULT_PROVIDER) as db:
            return await self.registry.set_default(db, actor, provider_id)

    async def test_provider(
        self,
        actor: Actor,
        candidate: Mapping[str, Any],
        credentials: Mapping[str, Any],
        timeout: Optional[int] = None,
    ) -> ProviderTestResult:
        """
        Try a login with directory settings and test credentials.

        A failed login is reported in the result, not raised. timeout bounds
        the bind in seconds and never exceeds LDAP_TEST_TIMEOUT.
        """
        self._gate.authorize(actor, Operation.TEST_PROVIDER)
        async with self._session_factory() as db:
            return await self.registry.test(db, candidate, credentials, timeout)

    # ===========================================
    # Audit
    # ===========================================

    async def list_audit(
        self,
        actor: Actor,
        resource_kind: Optional[ResourceKind] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        self._gate.authorize(actor, Operation.READ_AUDIT)
        async with self._session_factory() as db:
            logs = await get_audit_logs(db, resource_kind=resource_kind, limit=limit, offset=offset)
            return [log.to_dict() for log in logs]


def create_configuration_service(
    session_factory: async_sessionmaker[AsyncSession],
    bind_client: Optional[LdapBindClient] = None,
    audit_sink: Optional[AuditSink] = None,
    group_counter: Optional[GroupReferenceCounter] = None,
    encryption: Optional[CredentialEncryption] = None,
    gate: Optional[PermissionGate] = None,
    test_timeout: Optional[int] = None,
) -> ConfigurationService:
    """Wire up a configuration service with default collaborators."""
    recorder = AuditRecorder(audit_sink)
    store = AuthConfigStore(recorder)
    registry = DirectoryRegistry(
        store,
        recorder,
        encryption=encryption,
        group_counter=group_counter,
        bind_client=bind_client,
        test_timeout=test_timeout,
    )
    return ConfigurationService(session_factory, gate or PermissionGate(), store, registry)
