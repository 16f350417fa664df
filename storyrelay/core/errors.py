"""Error taxonomy shared by the coordinator, the store and the API boundary.

Every error carries a stable ``code``, the HTTP status the API layer maps it
to, and a ``retryable`` hint telling the client whether re-fetching state and
trying again can succeed.
"""

from typing import Any, Optional


class StoryRelayError(Exception):
    """Base class for all structured, client-facing errors."""

    code = "internal_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body


class InvalidRequestError(StoryRelayError):
    code = "invalid_request"
    status_code = 400


class AuthenticationError(StoryRelayError):
    code = "unauthenticated"
    status_code = 401


class NotAPlayerError(StoryRelayError):
    code = "not_a_player"
    status_code = 403


class TurnOwnershipError(StoryRelayError):
    code = "not_your_turn"
    status_code = 403


class SessionFullError(StoryRelayError):
    code = "session_full"
    status_code = 403


class SessionNotFoundError(StoryRelayError):
    code = "session_not_found"
    status_code = 404


class TurnConflictError(StoryRelayError):
    """Stale or out-of-range ``fromTurnIndex``. Client should re-fetch state."""

    code = "turn_conflict"
    status_code = 409
    retryable = True


class SessionPausedError(StoryRelayError):
    """No roster member is connected; the session waits for a reconnect."""

    code = "session_paused"
    status_code = 409
    retryable = True


class GenerationFailedError(StoryRelayError):
    """Narrative generation exhausted its retries. Nothing was persisted."""

    code = "generation_failed"
    status_code = 502


# === Narrative generator internals (retried, never reach the client) ===


class GenerationError(Exception):
    """Provider, network or timeout failure for a single generation attempt."""


class MalformedOutputError(Exception):
    """Provider answered, but the output is not valid JSON or misses fields."""
