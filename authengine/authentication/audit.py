"""
Audit recording for authentication configuration changes.

A change record keeps only the fields whose value actually changed. Records
are appended in the same transaction as the change they describe, so a
failed append fails the whole mutation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.authentication.encryption import redact_sensitive_fields
from authengine.authentication.errors import StorageError
from authengine.authentication.validation import values_differ
from authengine.authz.gate import Actor
from authengine.models.authentication import AuditAction, AuthAuditLog, ResourceKind

logger = structlog.get_logger(__name__)

UTC = timezone.utc


@dataclass(frozen=True)
class ChangeRecord:
    """Immutable description of one committed change."""
    actor_id: int
    action: AuditAction
    resource_kind: ResourceKind
    resource_id: Optional[int]
    resource_name: Optional[str]
    before: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    after: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def fields(self) -> List[str]:
        return list(self.after) if self.action != AuditAction.DELETE else list(self.before)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "action": self.action.value,
            "resource_kind": self.resource_kind.value,
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "before": dict(self.before),
            "after": dict(self.after),
            "created_at": self.created_at.isoformat(),
        }


class AuditSink(Protocol):
    """Append-only audit log collaborator."""

    async def append(self, db: AsyncSession, record: ChangeRecord) -> None:
        ...


class SqlAuditSink:
    """Writes change records into the auditlog table of the current transaction."""

    async def append(self, db: AsyncSession, record: ChangeRecord) -> None:
        db.add(
            AuthAuditLog(
                actor_id=record.actor_id,
                action=record.action.value,
                resource_kind=record.resource_kind.value,
                resource_id=record.resource_id,
                resource_name=record.resource_name,
                old_value=dict(record.before),
                new_value=dict(record.after),
                created_at=record.created_at,
            )
        )
        await db.flush()


class AuditRecorder:
    """
    Builds change records and appends them to the audit sink.
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or SqlAuditSink()

    async def record(
        self,
        db: AsyncSession,
        actor: Actor,
        resource_kind: ResourceKind,
        action: AuditAction,
        resource_id: Optional[int],
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        resource_name: Optional[str] = None,
    ) -> Optional[ChangeRecord]:
        """
        Record a change.

        Args:
            before: Prior state of the resource (may hold more fields than changed)
            after: Proposed input; fields equal to the prior state are dropped

        Returns:
            The appended record, or None if nothing changed

        Raises:
            StorageError: If the audit log cannot be written
        """
        if action == AuditAction.DELETE:
            old_value = dict(before)
            new_value: Dict[str, Any] = {}
        elif action == AuditAction.ADD:
            old_value = {}
            new_value = dict(after)
        else:
            changed = [key for key in after if values_differ(before.get(key), after[key])]
            if not changed:
                return None
            old_value = {key: before.get(key) for key in changed}
            new_value = {key: after[key] for key in changed}

        record = ChangeRecord(
            actor_id=actor.user_id,
            action=action,
            resource_kind=resource_kind,
            resource_id=resource_id,
            resource_name=resource_name,
            before=MappingProxyType(redact_sensitive_fields(old_value)),
            after=MappingProxyType(redact_sensitive_fields(new_value)),
            created_at=datetime.now(UTC),
        )

        try:
            await self.sink.append(db, record)
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Failed to write audit record",
                resource_kind=resource_kind.value,
                resource_id=resource_id,
                error=str(e),
            )
            raise StorageError("Cannot write audit record.") from e

        logger.info(
            "Configuration change recorded",
            actor_id=actor.user_id,
            action=action.value,
            resource_kind=resource_kind.value,
            resource_id=resource_id,
            fields=record.fields,
        )
        return record


async def get_audit_logs(
    db: AsyncSession,
    resource_kind: Optional[ResourceKind] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuthAuditLog]:
    """Get audit logs, newest first."""
    query = select(AuthAuditLog)
    if resource_kind:
        query = query.where(AuthAuditLog.resource_kind == resource_kind.value)
    query = query.order_by(AuthAuditLog.auditid.desc()).limit(limit).offset(offset)

    result = await db.execute(query)
    return list(result.scalars().all())
