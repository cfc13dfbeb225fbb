"""
stack.py - Discrete tick scheduler

Messages are bucketed by the tick at which they are processed (`now`) and by
the broker that processes them (`us`). Within a bucket messages are kept in
their total order, so buckets are identical no matter in which order
messages were added.

Design philosophy:
- Fail fast: scheduling into the past or duplicate origins abort the run
- Time only moves forward: add_message(m, current) requires current < m.now
- Memory-bounded runs: with keep_history=False a tick's buckets are dropped
  once its statistics were computed
"""

import bisect
import heapq
import logging
from typing import Dict, Iterable, List, Optional

from brokersim.errors import ClientBrokerAreaError, DuplicateOriginError, PastSchedulingError
from brokersim.model import CLIENT_LATENCY, BrokerId, Tick
from brokersim.stack.message import BSubscriptionUpdate, CEventDelivery, ClientMessage, Message
from brokersim.stack.statistics import MessageCounter, StorelessStatistics

logger = logging.getLogger(__name__)


class Stack:
    """
    Tick -> broker -> ordered message list.

    Args:
        messages: Initial client messages (the workload)
        keep_history: Keep processed ticks in memory after their statistics
            were computed
    """

    def __init__(self, messages: Iterable[ClientMessage], keep_history: bool = True):
        messages = list(messages)
        self.keep_history = keep_history
        self.event_delivery_latency = StorelessStatistics()
        self.subscription_update_delay = StorelessStatistics()
        self.message_counts = MessageCounter()

        self._buckets: Dict[Tick, Dict[BrokerId, List[Message]]] = {}
        self._pending_ticks: List[Tick] = []
        self.max_tick: Tick = 0

        self._validate_client_broker_area(messages)
        self._validate_origins(messages)

        for message in messages:
            self.add_message(message, 0)

        logger.info(f"Stack initialised with {len(messages)} client messages, max tick {self.max_tick}")

    @staticmethod
    def _validate_client_broker_area(messages: List[ClientMessage]):
        """All messages of a client must be processed by the same local broker."""
        local_broker: Dict[str, BrokerId] = {}
        for message in messages:
            client_id = message.origin.client_id
            expected = local_broker.setdefault(client_id, message.us)
            if expected != message.us:
                raise ClientBrokerAreaError(
                    f"Client {client_id} sends {message.kind} at tick {message.origin.tick} to "
                    f"{message.us}, but its first message went to {expected}")

    @staticmethod
    def _validate_origins(messages: List[ClientMessage]):
        seen = set()
        for message in messages:
            if message.origin in seen:
                raise DuplicateOriginError(f"Duplicate message origin {message.origin}")
            seen.add(message.origin)

    def add_message(self, message: Message, current_tick: Tick):
        """
        Schedule a message for processing at message.now by message.us.

        Raises:
            PastSchedulingError: If message.now <= current_tick
        """
        now = message.now
        if now <= current_tick:
            raise PastSchedulingError(
                f"{message.kind} with origin {message.origin} scheduled for tick {now} "
                f"at broker {message.us}, but current tick is already {current_tick}")

        per_broker = self._buckets.get(now)
        if per_broker is None:
            per_broker = {}
            self._buckets[now] = per_broker
            heapq.heappush(self._pending_ticks, now)

        bucket = per_broker.setdefault(message.us, [])
        bisect.insort(bucket, message)

        if now > self.max_tick:
            self.max_tick = now

    def next_tick(self, after: Tick) -> Optional[Tick]:
        """Smallest tick > after that holds messages, or None."""
        heap = self._pending_ticks
        while heap and heap[0] <= after:
            heapq.heappop(heap)
        return heap[0] if heap else None

    def get_messages(self, tick: Tick) -> Dict[BrokerId, List[Message]]:
        """Messages to be processed at tick, per broker (empty dict if none)."""
        return self._buckets.get(tick, {})

    def get_all_messages(self) -> List[Message]:
        """Every retained message, by tick, broker id and message order."""
        result = []
        for tick in sorted(self._buckets):
            per_broker = self._buckets[tick]
            for broker_id in sorted(per_broker):
                result.extend(per_broker[broker_id])
        return result

    def ticks(self) -> List[Tick]:
        return sorted(self._buckets)

    def calculate_storeless_statistics(self, tick: Tick):
        """Fold the messages of tick into the running statistics."""
        per_broker = self._buckets.get(tick)
        if per_broker is None:
            return

        for messages in per_broker.values():
            for message in messages:
                self.message_counts.count_message(message)
                if isinstance(message, CEventDelivery):
                    self.event_delivery_latency.add_value(message.now - message.origin.tick)
                elif isinstance(message, BSubscriptionUpdate):
                    self.subscription_update_delay.add_value(
                        message.now - message.origin.tick - CLIENT_LATENCY)

        if not self.keep_history:
            del self._buckets[tick]

    def __eq__(self, other):
        if not isinstance(other, Stack):
            return NotImplemented
        return self._buckets == other._buckets

    __hash__ = None

    def __repr__(self):
        return f"Stack(ticks={len(self._buckets)}, max_tick={self.max_tick})"
