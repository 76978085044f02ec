"""Transaction boundary for custody application services."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from custody.ports.exceptions import StorageError


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run the body in one database transaction.

    Commits when the body completes and rolls back when it raises, so a
    failed check never leaves a partial change behind. Driver errors are
    re-raised as StorageError; custody errors pass through unchanged.

    Usage:
        async with unit_of_work(self._session):
            assignment = await self._assignments.get_by_id(assignment_id)
            ...
    """
    try:
        async with session.begin():
            yield session
    except SQLAlchemyError as e:
        raise StorageError(f"Storage operation failed: {type(e).__name__}") from e
