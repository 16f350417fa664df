"""Presence Registry - live connections per session

Process memory only. Nothing here is persisted: after a restart every client
has to authenticate again before it counts as connected.

Leave handlers follow the event bus pattern: subscribers are awaited one by
one and a failing handler is logged without affecting the others.
"""

from typing import Any, Awaitable, Callable, Optional, Protocol

from storyrelay.core.logging import get_logger

logger = get_logger(__name__)


class Channel(Protocol):
    """Anything that can push a JSON message to one client (e.g. a WebSocket)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000) -> None: ...


# (session_id, user_id) of the departed player
LeaveHandler = Callable[[str, str], Awaitable[None]]


class PresenceRegistry:
    """Tracks which roster members hold a live channel, per session."""

    def __init__(self) -> None:
        # {session_id: {user_id: channel}}
        self._sessions: dict[str, dict[str, Channel]] = {}
        self._leave_handlers: list[LeaveHandler] = []

    # === 구독 ===

    def on_leave(self, handler: LeaveHandler) -> None:
        """Register a coroutine called after a player disconnects"""
        self._leave_handlers.append(handler)

    # === 등록 / 해제 ===

    def connect(self, session_id: str, user_id: str, channel: Channel) -> Optional[Channel]:
        """Register ``channel`` for the user, replacing any previous one.

        Returns the replaced channel, if there was one.
        """
        conns = self._sessions.setdefault(session_id, {})
        previous = conns.get(user_id)
        conns[user_id] = channel
        if previous is not None and previous is not channel:
            logger.info("[%s] %s reconnected, old channel replaced", session_id, user_id)
        else:
            logger.debug(
                "[%s] %s connected (%d total)", session_id, user_id, len(conns)
            )
        return previous if previous is not channel else None

    async def disconnect(
        self,
        session_id: str,
        user_id: str,
        channel: Optional[Channel] = None,
    ) -> bool:
        """Remove the user's registration and notify leave handlers.

        When ``channel`` is given and the user has since reconnected on a
        different channel, nothing is removed. Returns True if a registration
        was removed.
        """
        conns = self._sessions.get(session_id)
        if not conns or user_id not in conns:
            return False
        if channel is not None and conns[user_id] is not channel:
            logger.debug("[%s] stale channel for %s ignored", session_id, user_id)
            return False

        del conns[user_id]
        if not conns:
            del self._sessions[session_id]
        logger.info("[%s] %s disconnected", session_id, user_id)

        for handler in list(self._leave_handlers):
            try:
                await handler(session_id, user_id)
            except Exception:
                logger.exception(
                    "Leave handler error: %s (session=%s)",
                    getattr(handler, "__qualname__", handler),
                    session_id,
                )
        return True

    # === 조회 ===

    def is_connected(self, session_id: str, user_id: str) -> bool:
        return user_id in self._sessions.get(session_id, {})

    def channels(self, session_id: str) -> list[tuple[str, Channel]]:
        """Snapshot of ``(user_id, channel)`` pairs for a session."""
        return list(self._sessions.get(session_id, {}).items())
