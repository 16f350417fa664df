"""Message types pushed over the session channel."""


class EventTypes:
    """Wire message type constants"""

    # client -> server
    AUTHENTICATE = "authenticate"
    PING = "ping"

    # server -> client
    AUTHENTICATED = "authenticated"
    AUTH_ERROR = "auth_error"
    PONG = "pong"
    SESSION_UPDATE = "SESSION_UPDATE"
    PLAYER_LEFT = "player_left"
