"""Per-session mutual exclusion

Every mutation of a session (action, skip, join, delete) runs while holding
that session's lock, so a request for session S fully commits or fails
before the next one for S starts. Different sessions never share a lock.
Lock entries are dropped once nobody holds or waits on them.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from storyrelay.core.logging import get_logger

logger = get_logger(__name__)


class SessionLocks:
    """Registry of ``asyncio.Lock`` objects keyed by session id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Serialize the enclosed block against other holders for ``session_id``."""
        # no await between lookup and registration, so this is race free
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        self._holders[session_id] = self._holders.get(session_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            remaining = self._holders[session_id] - 1
            if remaining == 0:
                del self._holders[session_id]
                del self._locks[session_id]
            else:
                self._holders[session_id] = remaining
