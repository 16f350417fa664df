"""Session WebSocket: authenticate handshake, presence, server pushes.

Protocol:
  client -> {"type": "authenticate", "token": ..., "sessionId": ...}
  server -> {"type": "authenticated", ...} | {"type": "auth_error", "message": ...}
  server -> {"type": "SESSION_UPDATE", "payload": state}
  server -> {"type": "player_left", "userId": ...}
  client -> {"type": "ping"}  server -> {"type": "pong"}
"""

import json
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from storyrelay.core.errors import AuthenticationError, InvalidRequestError, StoryRelayError
from storyrelay.core.event_types import EventTypes
from storyrelay.core.logging import get_logger
from storyrelay.services.identity import IdentityResolver
from storyrelay.services.presence import Channel, PresenceRegistry
from storyrelay.services.turn_coordinator import TurnCoordinator

logger = get_logger(__name__)

router = APIRouter(tags=["ws"])


def _parse_message(raw: str) -> dict[str, Any]:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidRequestError("Message is not valid JSON.") from e
    if not isinstance(message, dict):
        raise InvalidRequestError("Message must be a JSON object.")
    return message


def _authenticate(
    message: dict[str, Any],
    identity: IdentityResolver,
    coordinator: TurnCoordinator,
) -> tuple[str, str]:
    """(session_id, user_id) for a valid handshake message"""
    if message.get("type") != EventTypes.AUTHENTICATE:
        raise AuthenticationError("First message must be 'authenticate'.")

    user_id = identity.resolve(message.get("token"))
    session_id = message.get("sessionId")
    if not isinstance(session_id, str) or not session_id.strip():
        raise AuthenticationError("sessionId is required.")

    # roster members only
    coordinator.check_member(session_id, user_id)
    return session_id, user_id



async def _close_quietly(channel: Channel, code: int) -> None:
    """Close a socket that may already be gone."""
    try:
        await channel.close(code=code)
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Socket already closed")


@router.websocket("/ws")
async def session_socket(websocket: WebSocket) -> None:
    await websocket.accept()

    identity: IdentityResolver = websocket.app.state.identity
    coordinator: TurnCoordinator = websocket.app.state.coordinator
    presence: PresenceRegistry = websocket.app.state.presence

    try:
        raw = await websocket.receive_text()
        session_id, user_id = _authenticate(_parse_message(raw), identity, coordinator)
    except WebSocketDisconnect:
        logger.debug("Socket closed before authentication")
        return
    except StoryRelayError as e:
        logger.info("WebSocket authentication failed: %s", e.message)
        try:
            await websocket.send_json({"type": EventTypes.AUTH_ERROR, "message": e.message})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Client left before the auth error was delivered")
        return
    except Exception:
        logger.exception("WebSocket handshake failed")
        await _close_quietly(websocket, status.WS_1011_INTERNAL_ERROR)
        return

    previous = presence.connect(session_id, user_id, websocket)
    if previous is not None:
        logger.info("[%s] %s reconnected, closing the older socket", session_id, user_id)
        await _close_quietly(previous, status.WS_1008_POLICY_VIOLATION)
    try:
        await websocket.send_json(
            {"type": EventTypes.AUTHENTICATED, "sessionId": session_id, "userId": user_id}
        )
        while True:
            raw = await websocket.receive_text()
            try:
                message = _parse_message(raw)
            except InvalidRequestError as e:
                logger.warning("[%s] bad message from %s: %s", session_id, user_id, e)
                continue

            msg_type = message.get("type")
            if msg_type == EventTypes.PING:
                await websocket.send_json({"type": EventTypes.PONG})
            else:
                logger.debug("[%s] unhandled message type %r", session_id, msg_type)
    except WebSocketDisconnect:
        logger.debug("[%s] %s socket closed", session_id, user_id)
    except Exception:
        logger.exception("[%s] WebSocket error for %s", session_id, user_id)
    finally:
        await presence.disconnect(session_id, user_id, websocket)
