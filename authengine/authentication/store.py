"""
Authentication configuration store.

Holds the singleton config row and applies partial updates: validate,
check the password policy, check consistency with the directory registry,
diff against the stored row, persist only what changed and audit it.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.authentication.audit import AuditRecorder
from authengine.authentication.errors import (
    Conflict,
    FieldError,
    NotFound,
    StorageError,
    ValidationError,
)
from authengine.authentication.password_policy import check_password_policy
from authengine.authentication.validation import (
    AUTH_CONFIG_RULES,
    FieldValidator,
    values_differ,
)
from authengine.authz.gate import Actor
from authengine.core.config import settings
from authengine.models.authentication import (
    AUTH_CONFIG_FIELDS,
    AuditAction,
    AuthConfig,
    AuthenticationType,
    ResourceKind,
)

logger = structlog.get_logger(__name__)

SINGLETON_ID = 1


def config_snapshot(config: AuthConfig, fields: Sequence[str] = AUTH_CONFIG_FIELDS) -> Dict[str, Any]:
    return {field: getattr(config, field) for field in fields}


class AuthConfigStore:
    """
    Owner of the authentication configuration singleton.

    One instance is created at startup and shared by reference. The lock
    serializes writers; callers hold it for the whole mutation.
    """

    def __init__(self, recorder: AuditRecorder, validator: Optional[FieldValidator] = None):
        self.lock = asyncio.Lock()
        self.validator = validator or FieldValidator(AUTH_CONFIG_RULES)
        self._recorder = recorder

    async def load(self, db: AsyncSession) -> AuthConfig:
        result = await db.execute(select(AuthConfig).order_by(AuthConfig.configid).limit(1))
        config = result.scalar_one_or_none()
        if config is None:
            raise NotFound("Authentication configuration has not been provisioned.")
        return config

    async def provision(self, db: AsyncSession) -> AuthConfig:
        """
        Create the singleton row with defaults if it does not exist yet.

        Password policy defaults come from PASSWORD_MIN_LENGTH and
        PASSWORD_CHECK_RULES.
        """
        result = await db.execute(select(AuthConfig).limit(1))
        config = result.scalar_one_or_none()
        if config is not None:
            return config

        check_password_policy(settings.password.min_length, settings.password.check_rules)

        config = AuthConfig(
            configid=SINGLETON_ID,
            authentication_type=int(AuthenticationType.INTERNAL),
            ldap_configured=0,
            ldap_default_provider_id=None,
            passwd_min_length=settings.password.min_length,
            passwd_check_rules=settings.password.check_rules,
        )
        db.add(config)
        await db.flush()

        logger.info(
            "Authentication configuration provisioned",
            passwd_min_length=config.passwd_min_length,
            passwd_check_rules=config.passwd_check_rules,
        )
        return config

    async def get(self, db: AsyncSession, fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Get the configuration, projected to the requested fields.

        Args:
            fields: Field names to return; all exposed fields if empty

        Raises:
            ValidationError: If an unknown field is requested
            NotFound: If the configuration was never provisioned
        """
        if fields:
            unknown = [f for f in fields if f not in AUTH_CONFIG_FIELDS]
            if unknown:
                raise ValidationError([FieldError(f, "unexpected parameter") for f in unknown])

        config = await self.load(db)
        return config_snapshot(config, fields or AUTH_CONFIG_FIELDS)

    async def update(
        self,
        db: AsyncSession,
        actor: Actor,
        proposed: Mapping[str, Any],
        provider_ids: Sequence[int],
    ) -> List[str]:
        """
        Apply a partial update.

        Args:
            proposed: Present keys only; a key mapped to None is a request to clear
            provider_ids: Ids of the existing directories

        Returns:
            Names of the fields that actually changed, in declaration order
        """
        values = self.validator.validate(proposed)
        config = await self.load(db)

        effective = {**config_snapshot(config), **values}
        check_password_policy(effective["passwd_min_length"], effective["passwd_check_rules"])
        self.check_consistency(effective, provider_ids)

        return await self.write(db, actor, config, values)

    def check_consistency(self, effective: Mapping[str, Any], provider_ids: Sequence[int]) -> None:
        """Check the effective configuration against the directory registry."""
        default_id = effective["ldap_default_provider_id"]

        if default_id is not None and default_id not in provider_ids:
            raise NotFound(f"LDAP server with ID {default_id} does not exist.")
        if default_id is None and provider_ids:
            raise Conflict("Default LDAP server cannot be cleared while LDAP servers exist.")
        if effective["ldap_configured"] == 1 and not provider_ids:
            raise Conflict("At least one LDAP server must exist.")
        if effective["authentication_type"] == AuthenticationType.LDAP and effective["ldap_configured"] != 1:
            raise ValidationError.single("authentication_type", "LDAP is not configured")

    async def write(
        self,
        db: AsyncSession,
        actor: Actor,
        config: AuthConfig,
        changes: Mapping[str, Any],
    ) -> List[str]:
        """
        Persist the fields of changes that differ from the stored row and audit them.

        Values must already be validated.
        """
        before = config_snapshot(config)
        changed = [field for field in changes if values_differ(before[field], changes[field])]
        if not changed:
            return []

        for field in changed:
            setattr(config, field, changes[field])

        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to update authentication configuration", fields=changed, error=str(e))
            raise StorageError("Cannot update authentication configuration.") from e

        await self._recorder.record(
            db,
            actor,
            ResourceKind.AUTHENTICATION,
            AuditAction.UPDATE,
            config.configid,
            before,
            changes,
        )

        logger.info("Authentication configuration updated", user_id=actor.user_id, fields=changed)
        return changed
