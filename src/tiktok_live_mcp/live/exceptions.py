"""Exception types for the live connection core.

Caller-facing operations on ``ConnectionManager`` raise these; the MCP tool
layer catches ``LiveError`` at its boundary and turns it into an error result.
"""


class LiveError(Exception):
    """Base exception for all live connection errors."""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(message)


class ConnectError(LiveError):
    """Handshake with the live platform failed or timed out."""

    pass


class NotConnectedError(LiveError):
    """No live subscription exists for the requested key."""

    def __init__(self, key: str, message: str = ""):
        super().__init__(message or f"Not connected to {key}'s livestream", key)


class InvalidKindError(LiveError):
    """Requested history kind is not one of the recognized kinds."""

    def __init__(self, kind: str, key: str = ""):
        self.kind = kind
        super().__init__(f"Unknown history kind: {kind!r}", key)


class ReconnectExhaustedError(LiveError):
    """Reconnection gave up after the maximum number of attempts.

    Internal only: the subscription is evicted and later calls on the key
    see ``NotConnectedError``.
    """

    def __init__(self, key: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Gave up reconnecting to {key}'s livestream after {attempts} attempts", key
        )


class ProcessError(LiveError):
    """Starting or stopping a media process failed."""

    pass
