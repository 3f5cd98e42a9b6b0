"""
Provider adapters

Stateless mapping from a provider to its endpoints and wire messages.
The provider is resolved once, when the client is built; after that no code
path can hit an unknown provider.
"""

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Any, Union

from .errors import InvalidProviderError
from .models.records import InboundRecord, parse_iex_record, parse_quodd_record


class Provider(str, Enum):
    IEX = "iex"
    QUODD = "quodd"

    @classmethod
    def parse(cls, value: Union["Provider", str]) -> "Provider":
        """Accept a Provider or its case-insensitive name"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidProviderError(f"Unknown provider: {value!r}")


class ProviderAdapter(ABC):
    """Base adapter; subclasses define endpoints and message shapes"""

    provider: Provider
    auth_url: str
    websocket_url: str

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    @abstractmethod
    def socket_url(self, token: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def join_message(self, channel: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def leave_message(self, channel: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def heartbeat_message(self) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    def parse_record(self, data: Dict[str, Any]) -> InboundRecord:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} provider={self.provider.value}>"


class IexAdapter(ProviderAdapter):
    """
    IEX feed, served over Phoenix channels

    Channels map to topics: two reserved lobby names and one topic per security.
    """

    provider = Provider.IEX
    auth_url = "https://realtime.intrinio.com/auth"
    websocket_url = "wss://realtime.intrinio.com/socket/websocket"

    LOBBY = "$lobby"
    LOBBY_LAST_PRICE = "$lobby_last_price"

    def socket_url(self, token: str) -> str:
        return f"{self.websocket_url}?vsn=1.0.0&token={token}"

    @classmethod
    def parse_topic(cls, channel: str) -> str:
        if channel == cls.LOBBY:
            return "iex:lobby"
        if channel == cls.LOBBY_LAST_PRICE:
            return "iex:lobby:last_price"
        return f"iex:securities:{channel}"

    def _message(self, topic: str, event: str) -> Dict[str, Any]:
        return {
            "topic": topic,
            "event": event,
            "payload": {},
            "ref": None
        }

    def join_message(self, channel: str) -> Dict[str, Any]:
        return self._message(self.parse_topic(channel), "phx_join")

    def leave_message(self, channel: str) -> Dict[str, Any]:
        return self._message(self.parse_topic(channel), "phx_leave")

    def heartbeat_message(self) -> Dict[str, Any]:
        return self._message("phoenix", "heartbeat")

    def parse_record(self, data: Dict[str, Any]) -> InboundRecord:
        return parse_iex_record(data)


class QuoddAdapter(ProviderAdapter):
    """QUODD feed; the heartbeat carries the current Unix time as its ticker"""

    provider = Provider.QUODD
    auth_url = "https://api.intrinio.com/token?type=QUODD"
    websocket_url = "wss://www5.quodd.com/websocket/webStreamer/intrinio"

    def socket_url(self, token: str) -> str:
        return f"{self.websocket_url}/{token}"

    def _message(self, action: str, ticker: Any) -> Dict[str, Any]:
        return {
            "event": action,
            "data": {
                "ticker": ticker,
                "action": action
            }
        }

    def join_message(self, channel: str) -> Dict[str, Any]:
        return self._message("subscribe", channel)

    def leave_message(self, channel: str) -> Dict[str, Any]:
        return self._message("unsubscribe", channel)

    def heartbeat_message(self) -> Dict[str, Any]:
        return self._message("heartbeat", int(self.clock()))

    def parse_record(self, data: Dict[str, Any]) -> InboundRecord:
        return parse_quodd_record(data)


ADAPTERS = {
    Provider.IEX: IexAdapter,
    Provider.QUODD: QuoddAdapter,
}


def get_adapter(provider: Union[Provider, str], **kwargs) -> ProviderAdapter:
    """
    Build the adapter for a provider

    Raises:
        InvalidProviderError: provider is not one of Provider
    """
    adapter_class = ADAPTERS[Provider.parse(provider)]
    return adapter_class(**kwargs)
