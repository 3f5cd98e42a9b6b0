"""
Exception hierarchy for the realtime client

Control-plane errors (construction, connect) are raised to the caller.
Data-plane errors (after connect) are only delivered to error handlers.
"""

from typing import Optional


class RealtimeError(Exception):
    """Base class for every error raised or reported by the client"""


class AuthError(RealtimeError):
    """The credential exchange did not return a token"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DialError(RealtimeError):
    """The websocket could not be opened"""


class InvalidProviderError(RealtimeError, ValueError):
    """Unknown provider selector"""


class InvalidChannelError(RealtimeError, ValueError):
    """Blank or non-string channel name"""


class RuntimeSocketError(RealtimeError):
    """Write failure, unexpected closure or read timeout on an open connection"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class HandlerError(RealtimeError):
    """A quote handler raised while processing a record"""
