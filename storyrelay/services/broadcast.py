"""Broadcast Channel - pushes authoritative session state to live clients

Delivery is best-effort and at most once per registered channel. A channel
whose send fails is dropped from the presence registry; its client recovers
by fetching the full state after reconnecting.
"""

from typing import Any, Optional

from storyrelay.core.event_types import EventTypes
from storyrelay.core.logging import get_logger
from storyrelay.core.session.models import SessionState
from storyrelay.services.presence import PresenceRegistry

logger = get_logger(__name__)


class BroadcastChannel:
    """Fan-out over the channels registered in a PresenceRegistry."""

    def __init__(self, presence: PresenceRegistry) -> None:
        self._presence = presence
        presence.on_leave(self.notify_player_left)

    async def publish(self, session_id: str, state: SessionState) -> int:
        """Send the full session state to every connected participant."""
        message = {"type": EventTypes.SESSION_UPDATE, "payload": state.to_document()}
        return await self._send_all(session_id, message)

    async def notify_player_left(self, session_id: str, user_id: str) -> int:
        message = {"type": EventTypes.PLAYER_LEFT, "userId": user_id}
        return await self._send_all(session_id, message, exclude=user_id)

    async def _send_all(
        self,
        session_id: str,
        message: dict[str, Any],
        exclude: Optional[str] = None,
    ) -> int:
        delivered = 0
        failed = []
        for user_id, channel in self._presence.channels(session_id):
            if user_id == exclude:
                continue
            try:
                await channel.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "[%s] %s to %s failed: %s",
                    session_id,
                    message["type"],
                    user_id,
                    exc,
                )
                failed.append((user_id, channel))

        for user_id, channel in failed:
            await self._presence.disconnect(session_id, user_id, channel)

        logger.debug(
            "[%s] %s delivered to %d channel(s)", session_id, message["type"], delivered
        )
        return delivered
