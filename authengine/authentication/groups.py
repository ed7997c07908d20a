"""
Group-reference lookup.

User groups are owned by the user management subsystem; this engine only
asks how many of them point at a directory before removing it.
"""

from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.models.authentication import UserGroup


class GroupReferenceCounter(Protocol):
    async def count_groups_using_provider(self, db: AsyncSession, provider_id: int) -> int:
        ...


class SqlGroupReferenceCounter:
    """Counts usrgrp rows referencing a directory."""

    async def count_groups_using_provider(self, db: AsyncSession, provider_id: int) -> int:
        result = await db.execute(
            select(func.count(UserGroup.usrgrpid)).where(UserGroup.userdirectory_id == provider_id)
        )
        return result.scalar_one()
