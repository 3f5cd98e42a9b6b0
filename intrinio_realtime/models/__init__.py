"""
Pydantic models for inbound realtime records
"""

from .records import *

__all__ = [
    "InboundRecord",
    "IexQuote",
    "IexReply",
    "QuoddQuote",
    "QuoddTrade",
    "QuoddInfo",
    "RawRecord",
    "parse_iex_record",
    "parse_quodd_record",
]
