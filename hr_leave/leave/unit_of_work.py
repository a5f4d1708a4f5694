"""Scoped unit of work for ledger mutations.

One unit = per-(employee, category) locks → session → BEGIN → work →
COMMIT, or ROLLBACK on any exception. Nothing a unit wrote is visible to
other sessions until it commits.
"""

from __future__ import annotations

import asyncio
import uuid
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Hashable, Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hr_leave.common.constants import LeaveCategory

LockKey = tuple[uuid.UUID, LeaveCategory]


class AccountLocks:
    """In-process mutexes keyed by ``(employee_id, category)``.

    Serializes read-modify-write of one balance inside this process. On
    PostgreSQL the account row lock (``SELECT … FOR UPDATE``) extends the
    guarantee across processes. Idle keys are dropped automatically.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, keys: Iterable[LockKey]) -> AsyncIterator[None]:
        # Sorted acquisition so two units never wait on each other in a cycle.
        ordered = sorted(set(keys), key=lambda k: (str(k[0]), k[1].value))
        locks = [self._lock_for(key) for key in ordered]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield


class LeaveUnitOfWork:
    """Factory for atomic ledger units over one session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: AccountLocks | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.locks = locks or AccountLocks()

    @asynccontextmanager
    async def begin(self, *keys: LockKey) -> AsyncIterator[AsyncSession]:
        """Yield a session inside one transaction, holding the given locks."""
        async with self.locks.hold(keys):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        yield session
                finally:
                    await session.close()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[AsyncSession]:
        """Yield a session for lookups only; it is always rolled back."""
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.rollback()
                await session.close()
