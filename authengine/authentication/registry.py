"""
LDAP directory registry.

Owns the ordered collection of LDAP servers (creation order is id order)
and keeps the default pointer of the authentication configuration in step
with it.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.authentication.audit import AuditRecorder
from authengine.authentication.encryption import CredentialEncryption, DecryptionError
from authengine.authentication.errors import (
    Conflict,
    FieldError,
    NotFound,
    StorageError,
    ValidationError,
)
from authengine.authentication.groups import GroupReferenceCounter, SqlGroupReferenceCounter
from authengine.authentication.ldap_client import (
    BindRequest,
    BindResult,
    Ldap3BindClient,
    LdapBindClient,
    ProviderTestResult,
)
from authengine.authentication.store import AuthConfigStore, config_snapshot
from authengine.authentication.validation import (
    DIRECTORY_RULES,
    REQUIRED_DIRECTORY_FIELDS,
    TEST_CREDENTIAL_RULES,
    FieldKind,
    FieldRule,
    FieldValidator,
    values_differ,
)
from authengine.authz.gate import Actor
from authengine.core.config import settings
from authengine.models.authentication import (
    AuditAction,
    AuthenticationType,
    ResourceKind,
    UserDirectory,
)

logger = structlog.get_logger(__name__)

INVALID_LDAP_TITLE = "Invalid LDAP configuration"

# Test checks connection settings first, then the test credentials
TEST_REQUIRED_FIELDS = ("host", "base_dn", "search_attribute", "test_username", "test_password")

TEST_RULES: Dict[str, FieldRule] = {
    "host": DIRECTORY_RULES["host"],
    "base_dn": DIRECTORY_RULES["base_dn"],
    "search_attribute": DIRECTORY_RULES["search_attribute"],
    **TEST_CREDENTIAL_RULES,
    "port": DIRECTORY_RULES["port"],
    "bind_dn": DIRECTORY_RULES["bind_dn"],
    "bind_password": DIRECTORY_RULES["bind_password"],
    "start_tls": DIRECTORY_RULES["start_tls"],
    "search_filter": DIRECTORY_RULES["search_filter"],
    # Form values that play no part in a test bind
    "name": FieldRule(FieldKind.STRING),
    "description": FieldRule(FieldKind.STRING),
    "provider_id": FieldRule(FieldKind.INTEGER, value_range=(1, 2**63 - 1), nullable=True),
}


def next_default(ids: Sequence[int], removed_id: int) -> Optional[int]:
    """
    Pick the default that replaces a removed one.

    The next provider in creation order, wrapping to the first; None when
    nothing remains.
    """
    remaining = sorted(i for i in ids if i != removed_id)
    if not remaining:
        return None
    later = [i for i in remaining if i > removed_id]
    return later[0] if later else remaining[0]


def names_equal(left: str, right: str, case_sensitive: bool) -> bool:
    if case_sensitive:
        return left == right
    return left.casefold() == right.casefold()


class DirectoryRegistry:
    """
    Registry of LDAP user directories.

    Mutations are serialized by the lock and run inside the caller's
    transaction.
    """

    def __init__(
        self,
        store: AuthConfigStore,
        recorder: AuditRecorder,
        encryption: Optional[CredentialEncryption] = None,
        group_counter: Optional[GroupReferenceCounter] = None,
        bind_client: Optional[LdapBindClient] = None,
        test_timeout: Optional[int] = None,
    ):
        self.lock = asyncio.Lock()
        self._store = store
        self._recorder = recorder
        self._encryption = encryption or CredentialEncryption()
        self._group_counter = group_counter or SqlGroupReferenceCounter()
        self._bind_client = bind_client or Ldap3BindClient()
        self._test_timeout = test_timeout or settings.ldap.test_timeout
        self._validator = FieldValidator(DIRECTORY_RULES)
        self._test_validator = FieldValidator(TEST_RULES)

    # ===========================================
    # Reads
    # ===========================================

    async def ids(self, db: AsyncSession) -> List[int]:
        result = await db.execute(select(UserDirectory.userdirectoryid).order_by(UserDirectory.userdirectoryid))
        return list(result.scalars().all())

    async def list(self, db: AsyncSession) -> List[Dict[str, Any]]:
        """List all directories in creation order."""
        result = await db.execute(select(UserDirectory).order_by(UserDirectory.userdirectoryid))
        providers = result.scalars().all()
        if not providers:
            return []

        config = await self._store.load(db)
        return [await self._describe(db, provider, config.ldap_default_provider_id) for provider in providers]

    async def get(self, db: AsyncSession, provider_id: int) -> Dict[str, Any]:
        provider = await self._load(db, provider_id)
        config = await self._store.load(db)
        return await self._describe(db, provider, config.ldap_default_provider_id)

    async def _describe(self, db: AsyncSession, provider: UserDirectory, default_id: Optional[int]) -> Dict[str, Any]:
        data = provider.to_dict()
        data["is_default"] = provider.userdirectoryid == default_id
        data["group_reference_count"] = await self._group_counter.count_groups_using_provider(
            db, provider.userdirectoryid
        )
        return data

    async def _load(self, db: AsyncSession, provider_id: int) -> UserDirectory:
        provider = await db.get(UserDirectory, provider_id)
        if provider is None:
            raise NotFound(f"LDAP server with ID {provider_id} does not exist.")
        return provider

    # ===========================================
    # Mutations
    # ===========================================

    async def add(self, db: AsyncSession, actor: Actor, candidate: Mapping[str, Any]) -> int:
        """
        Add a directory.

        The first directory added while no default is set becomes the default.

        Returns:
            The new directory ID

        Raises:
            ValidationError: If a required field is missing or a value is invalid
            Conflict: If the name is already taken
        """
        values = dict(candidate)
        for field in REQUIRED_DIRECTORY_FIELDS:
            values.setdefault(field, "")
        values = self._validator.validate(values, title=INVALID_LDAP_TITLE)

        config = await self._store.load(db)
        await self._check_unique_name(db, values["name"], bool(config.ldap_case_sensitive))

        bind_password = values.get("bind_password", "")
        provider = UserDirectory(
            name=values["name"],
            description=values.get("description", ""),
            host=values["host"],
            port=values.get("port", settings.ldap.default_port),
            base_dn=values["base_dn"],
            bind_dn=values.get("bind_dn", ""),
            bind_password_enc=self._encryption.encrypt_optional(bind_password),
            search_attribute=values["search_attribute"],
            start_tls=values.get("start_tls", 0),
            search_filter=values.get("search_filter", ""),
        )
        db.add(provider)
        await self._flush(db, "add")

        after = self._snapshot(provider)
        if bind_password:
            after["bind_password"] = bind_password
        await self._recorder.record(
            db,
            actor,
            ResourceKind.DIRECTORY,
            AuditAction.ADD,
            provider.userdirectoryid,
            {},
            after,
            resource_name=provider.name,
        )

        if config.ldap_default_provider_id is None:
            await self._store.write(db, actor, config, {"ldap_default_provider_id": provider.userdirectoryid})

        logger.info("LDAP server added", provider_id=provider.userdirectoryid, name=provider.name)
        return provider.userdirectoryid

    async def update(
        self,
        db: AsyncSession,
        actor: Actor,
        provider_id: int,
        partial: Mapping[str, Any],
    ) -> List[str]:
        """
        Apply a partial update to a directory.

        Returns:
            Names of the fields that actually changed
        """
        provider = await self._load(db, provider_id)
        values = self._validator.validate(partial, title=INVALID_LDAP_TITLE)

        current = self._snapshot(provider)
        current["bind_password"] = self._stored_password(provider)

        merged = {**current, **values}
        empty = [FieldError(f, "cannot be empty") for f in REQUIRED_DIRECTORY_FIELDS if not merged[f]]
        if empty:
            raise ValidationError(empty, title=INVALID_LDAP_TITLE)

        changed = [field for field in values if values_differ(current[field], values[field])]
        if not changed:
            return []

        if "name" in changed:
            config = await self._store.load(db)
            await self._check_unique_name(
                db, values["name"], bool(config.ldap_case_sensitive), exclude_id=provider_id
            )

        for field in changed:
            if field == "bind_password":
                provider.bind_password_enc = self._encryption.encrypt_optional(values[field])
            else:
                setattr(provider, field, values[field])
        await self._flush(db, "update")

        await self._recorder.record(
            db,
            actor,
            ResourceKind.DIRECTORY,
            AuditAction.UPDATE,
            provider_id,
            current,
            values,
            resource_name=provider.name,
        )

        logger.info("LDAP server updated", provider_id=provider_id, fields=changed)
        return changed

    async def remove(
        self,
        db: AsyncSession,
        actor: Actor,
        provider_id: int,
        authentication_type: Optional[int] = None,
    ) -> None:
        """
        Remove a directory.

        Args:
            authentication_type: Replacement authentication type, applied in the
                same transaction; needed when removing the last directory while
                LDAP authentication is active

        Raises:
            NotFound: If the directory does not exist
            Conflict: If user groups reference it, or it is the last directory
                and LDAP authentication would stay active
        """
        provider = await self._load(db, provider_id)

        group_count = await self._group_counter.count_groups_using_provider(db, provider_id)
        if group_count > 0:
            raise Conflict(
                f'Cannot delete LDAP server "{provider.name}": it is used by {group_count} user group(s).'
            )

        config = await self._store.load(db)
        ids = await self.ids(db)

        changes: Dict[str, Any] = {}
        if authentication_type is not None:
            changes.update(self._store.validator.validate({"authentication_type": authentication_type}))
        if config.ldap_default_provider_id == provider_id:
            changes["ldap_default_provider_id"] = next_default(ids, provider_id)

        if len(ids) == 1:
            changes["ldap_configured"] = 0
            if changes.get("authentication_type", config.authentication_type) == AuthenticationType.LDAP:
                raise Conflict("At least one LDAP server must exist.")

        remaining = [i for i in ids if i != provider_id]
        self._store.check_consistency({**config_snapshot(config), **changes}, remaining)

        # The config row must stop pointing at the directory before it is deleted
        if changes:
            await self._store.write(db, actor, config, changes)

        before = self._snapshot(provider)
        await db.delete(provider)
        await self._flush(db, "delete")

        await self._recorder.record(
            db,
            actor,
            ResourceKind.DIRECTORY,
            AuditAction.DELETE,
            provider_id,
            before,
            {},
            resource_name=before["name"],
        )

        logger.info("LDAP server removed", provider_id=provider_id, name=before["name"])

    async def set_default(self, db: AsyncSession, actor: Actor, provider_id: int) -> List[str]:
        """
        Make a directory the default.

        Raises:
            NotFound: If the directory does not exist
        """
        await self._load(db, provider_id)
        config = await self._store.load(db)
        return await self._store.write(db, actor, config, {"ldap_default_provider_id": provider_id})

    # ===========================================
    # Test login
    # ===========================================

    async def test(
        self,
        db: AsyncSession,
        candidate: Mapping[str, Any],
        credentials: Mapping[str, Any],
        timeout: Optional[int] = None,
    ) -> ProviderTestResult:
        """
        Try a login against directory settings that need not be saved.

        When the candidate names a saved directory (provider_id) and carries
        no bind password, the saved password is used. A caller timeout is
        capped by LDAP_TEST_TIMEOUT.

        Raises:
            ValidationError: If settings or credentials are malformed
            NotFound: If provider_id does not exist
        """
        if timeout is not None and timeout < 1:
            raise ValidationError.single("timeout", f"value must be one of 1-{self._test_timeout}")
        timeout = min(timeout, self._test_timeout) if timeout is not None else self._test_timeout

        values = {**candidate, **credentials}
        for field in TEST_REQUIRED_FIELDS:
            values.setdefault(field, "")
        values = self._test_validator.validate(values, title=INVALID_LDAP_TITLE)

        bind_password = values.get("bind_password")
        if bind_password is None:
            bind_password = ""
            if values.get("provider_id") is not None:
                provider = await self._load(db, values["provider_id"])
                bind_password = self._stored_password(provider)

        request = BindRequest(
            host=values["host"],
            port=values.get("port", settings.ldap.default_port),
            base_dn=values["base_dn"],
            search_attribute=values["search_attribute"],
            test_username=values["test_username"],
            test_password=values["test_password"],
            bind_dn=values.get("bind_dn", ""),
            bind_password=bind_password,
            start_tls=bool(values.get("start_tls", 0)),
            search_filter=values.get("search_filter", ""),
        )

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._bind_client.bind, request, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("LDAP test login timed out", host=request.host, timeout=timeout)
            result = BindResult.BIND_FAILED if request.bind_dn else BindResult.ANONYMOUS_BIND_FAILED

        logger.info("LDAP test login finished", host=request.host, port=request.port, result=result.value)
        return ProviderTestResult.from_bind_result(result)

    # ===========================================
    # Helpers
    # ===========================================

    async def _check_unique_name(
        self,
        db: AsyncSession,
        name: str,
        case_sensitive: bool,
        exclude_id: Optional[int] = None,
    ) -> None:
        result = await db.execute(select(UserDirectory.userdirectoryid, UserDirectory.name))
        for existing_id, existing_name in result.all():
            if existing_id != exclude_id and names_equal(existing_name, name, case_sensitive):
                raise Conflict(f'LDAP server "{name}" already exists.')

    def _snapshot(self, provider: UserDirectory) -> Dict[str, Any]:
        data = provider.to_dict()
        data.pop("id")
        return data

    def _stored_password(self, provider: UserDirectory) -> str:
        try:
            return self._encryption.decrypt(provider.bind_password_enc)
        except DecryptionError as e:
            logger.error("Cannot decrypt bind password", provider_id=provider.userdirectoryid)
            raise StorageError("Cannot read stored bind password.") from e

    async def _flush(self, db: AsyncSession, operation: str) -> None:
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to write LDAP server", operation=operation, error=str(e))
            raise StorageError("Cannot save LDAP server.") from e
