"""
errors.py: Error taxonomy for the spectator client.

None of these are fatal to the process. ``ConnectError`` propagates out of
``connect()``; the others are caught inside ``tick()`` and surfaced as
status changes and counters.
"""


class SpectatorError(Exception):
    """Base class for all spectator client errors."""


class ConnectError(SpectatorError):
    """The server could not be reached or refused the connection."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"Could not connect to {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class DecodeError(SpectatorError):
    """An inbound frame is not valid JSON or does not match the snapshot schema."""


class ConnectionLost(SpectatorError):
    """
    The socket closed or errored mid-session.

    ``orderly`` is True when the peer closed the stream cleanly. ``data`` holds
    any bytes that were read in the same drain before the loss was seen.
    """

    def __init__(self, reason: str, orderly: bool = False, data: bytes = b""):
        super().__init__(reason)
        self.orderly = orderly
        self.data = data
