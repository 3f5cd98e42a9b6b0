"""
Subscription Reconciler

Keeps two sets:
1. desired: channels the caller asked for (source of truth)
2. joined: channels a join was sent for without a later leave

A reconciliation pass diffs them and emits the minimal join/leave messages.
Joins go out before leaves within one pass. The feed never acknowledges a
join or leave, so `joined` is an optimistic local record.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .errors import InvalidChannelError
from .providers import ProviderAdapter
from .utils.logger import get_logger

logger = get_logger(__name__)

OutboundMessage = Dict[str, Any]
MessageSink = Callable[[OutboundMessage], None]


def normalize_channel(channel: Any) -> str:
    """Trim a channel name; blank or non-string names are rejected"""
    if not isinstance(channel, str):
        raise InvalidChannelError(f"Channel must be a string, got {type(channel).__name__}")
    name = channel.strip()
    if not name:
        raise InvalidChannelError("Channel name is empty")
    return name


class SubscriptionReconciler:
    """
    Converges the joined set towards the desired set

    Not thread-safe: every call must come from the same logical caller.
    """

    def __init__(self, adapter: ProviderAdapter):
        self.adapter = adapter
        self.desired: Set[str] = set()
        self.joined: Set[str] = set()

        # Metrics
        self.reconciliations_count = 0
        self.total_corrections = 0
        self.last_reconciliation_time: Optional[datetime] = None

    def add(self, channels: Iterable[Any]) -> None:
        names = [normalize_channel(c) for c in channels]
        self.desired.update(names)

    def discard(self, channels: Iterable[Any]) -> None:
        names = [normalize_channel(c) for c in channels]
        self.desired.difference_update(names)

    def clear(self) -> None:
        self.desired.clear()

    def reset_joined(self) -> None:
        """Forget what was joined, e.g. because a fresh socket was opened"""
        self.joined.clear()

    def plan(self) -> Tuple[List[str], List[str]]:
        """Channels to join and to leave, each sorted"""
        to_join = sorted(self.desired - self.joined)
        to_leave = sorted(self.joined - self.desired)
        return to_join, to_leave

    def reconcile(self, sink: Optional[MessageSink]) -> List[OutboundMessage]:
        """
        Run one reconciliation pass

        Args:
            sink: enqueues a message on the live connection, None when disconnected

        Returns:
            Messages handed to the sink, joins first then leaves
        """
        if sink is None:
            logger.debug("skipping_reconciliation_not_connected", desired=len(self.desired))
            return []

        to_join, to_leave = self.plan()

        messages = [self.adapter.join_message(c) for c in to_join]
        messages.extend(self.adapter.leave_message(c) for c in to_leave)

        for message in messages:
            sink(message)

        self.joined = set(self.desired)

        self.reconciliations_count += 1
        self.total_corrections += len(messages)
        self.last_reconciliation_time = datetime.now()

        if messages:
            logger.info(
                "reconciliation_applied",
                joined=len(to_join),
                left=len(to_leave),
                examples=(to_join + to_leave)[:10],
                total_active=len(self.joined)
            )

        return messages

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "reconciliations_count": self.reconciliations_count,
            "total_corrections": self.total_corrections,
            "last_reconciliation": self.last_reconciliation_time.isoformat() if self.last_reconciliation_time else None,
            "desired_count": len(self.desired),
            "joined_count": len(self.joined)
        }
