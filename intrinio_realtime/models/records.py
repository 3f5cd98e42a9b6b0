"""
Pydantic models for inbound realtime records

Every record keeps the decoded frame untouched in `raw`. Only the envelope
(event, topic, payload/data) is lifted into fields so handlers can branch on
the record class; vendor payload fields are never validated.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class InboundRecord(BaseModel):
    """Base class for every record handed to quote handlers"""
    provider: str = Field(..., description="Provider that produced the record")
    event: Optional[str] = Field(None, description="Vendor event discriminator")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Decoded frame as received")

    def get(self, key: str, default: Any = None) -> Any:
        return self.raw.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.raw[key]


# =============================================
# IEX (Phoenix channels)
# =============================================

class IexQuote(InboundRecord):
    """
    Quote/trade frame pushed on a security or lobby topic
    Example: {"topic": "iex:securities:AAPL", "event": "quote", "payload": {...}}
    """
    topic: str = Field(..., description="Phoenix topic the frame was pushed on")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Vendor payload")

    @property
    def ticker(self) -> Optional[str]:
        """Ticker from the payload, falling back to the topic suffix"""
        ticker = self.payload.get("ticker")
        if ticker:
            return ticker
        if self.topic.startswith("iex:securities:"):
            return self.topic[len("iex:securities:"):]
        return None


class IexReply(InboundRecord):
    """Phoenix system frame (phx_reply, phx_error, phx_close)"""
    topic: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    ref: Optional[Any] = None

    @property
    def status(self) -> Optional[str]:
        return self.payload.get("status")


# =============================================
# QUODD
# =============================================

class QuoddQuote(InboundRecord):
    """Quote frame: {"event": "quote", "data": {...}}"""
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ticker(self) -> Optional[str]:
        return self.data.get("ticker")


class QuoddTrade(InboundRecord):
    """Trade frame: {"event": "trade", "data": {...}}"""
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ticker(self) -> Optional[str]:
        return self.data.get("ticker")


class QuoddInfo(InboundRecord):
    """Informational frame, e.g. subscribe/unsubscribe confirmations"""
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def message(self) -> Optional[str]:
        return self.data.get("message")


class RawRecord(InboundRecord):
    """Anything not recognized above"""


IEX_SYSTEM_EVENTS = {"phx_reply", "phx_error", "phx_close"}


def parse_iex_record(data: Dict[str, Any]) -> InboundRecord:
    """Classify a decoded IEX frame"""
    event = data.get("event")
    topic = data.get("topic")
    payload = data.get("payload")

    if not isinstance(payload, dict) or (topic is not None and not isinstance(topic, str)):
        return RawRecord(provider="iex", event=_as_str(event), raw=data)

    if event in IEX_SYSTEM_EVENTS:
        return IexReply(
            provider="iex",
            event=event,
            topic=topic,
            payload=payload,
            ref=data.get("ref"),
            raw=data
        )

    if event == "quote" and topic:
        return IexQuote(provider="iex", event=event, topic=topic, payload=payload, raw=data)

    return RawRecord(provider="iex", event=_as_str(event), raw=data)


QUODD_RECORD_TYPES = {
    "quote": QuoddQuote,
    "trade": QuoddTrade,
    "info": QuoddInfo,
}


def parse_quodd_record(data: Dict[str, Any]) -> InboundRecord:
    """Classify a decoded QUODD frame"""
    event = data.get("event")
    body = data.get("data")
    record_type = QUODD_RECORD_TYPES.get(event) if isinstance(event, str) else None

    if record_type is None or not isinstance(body, dict):
        return RawRecord(provider="quodd", event=_as_str(event), raw=data)

    return record_type(provider="quodd", event=event, data=body, raw=data)


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
