"""
Per-conversation mutual exclusion.

Two inbound events for the same conversation (a user double-sending, a
platform redelivering) must not both read the same message count.
Locks are created on demand and dropped once nobody holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager


class ConversationLocks:
    """asyncio.Lock per conversation id. All users must share one event loop."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if self._users[conversation_id] == 0:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def active(self) -> int:
        """Number of conversations with a holder or waiter."""
        return len(self._locks)
