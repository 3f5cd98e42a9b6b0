"""
Intrinio Realtime Client

Async websocket client for the Intrinio realtime feed:
- IEX and QUODD providers
- Dynamic channel joins / leaves
- Heartbeat keep-alive
- Records delivered to registered handlers
"""

from .config.settings import FanOutPolicy, RealtimeSettings
from .errors import (
    AuthError,
    DialError,
    HandlerError,
    InvalidChannelError,
    InvalidProviderError,
    RealtimeError,
    RuntimeSocketError,
)
from .models.records import (
    InboundRecord,
    IexQuote,
    IexReply,
    QuoddInfo,
    QuoddQuote,
    QuoddTrade,
    RawRecord,
)
from .providers import Provider
from .ws_client import ConnectionState, RealtimeClient

__version__ = "1.0.0"

__all__ = [
    "RealtimeClient",
    "ConnectionState",
    "Provider",
    "RealtimeSettings",
    "FanOutPolicy",
    "RealtimeError",
    "AuthError",
    "DialError",
    "InvalidProviderError",
    "InvalidChannelError",
    "RuntimeSocketError",
    "HandlerError",
    "InboundRecord",
    "IexQuote",
    "IexReply",
    "QuoddQuote",
    "QuoddTrade",
    "QuoddInfo",
    "RawRecord",
]
