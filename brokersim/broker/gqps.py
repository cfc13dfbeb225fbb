"""
gqps.py - Grid quorum-based pub/sub (GQPS) strategy

Based on the GQPS system of Sun et al. (2013). Brokers form a square grid;
subscriptions are replicated to a broker's row and column, events are
matched at the publisher's broker and forwarded to its row and column.

A broker that receives an event from its row hands deliveries to the
subscribers' brokers in its column, and vice versa. Any subscriber broker
outside the publisher's row and column is therefore reached on exactly two
paths (via the two grid corners it shares with the publisher); the first
delivery is passed on, the second is dropped.

Differences to the original system:
- Clients only talk to their local broker, so remote subscribers are
  reached through their broker (BEventDelivery).
- Remote subscription replicas are updated immediately instead of on a
  maintenance interval.
"""

from typing import List, Set

from brokersim.broker.base import Broker, BrokerType
from brokersim.errors import RoutingInvariantError
from brokersim.stack.message import (
    BEventDelivery,
    BEventMatching,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventMatching,
    CSubscriptionRemoval,
    CSubscriptionUpdate,
)
from brokersim.stack.target import CTarget


class BrokerGQPS(Broker):
    broker_type = BrokerType.GQPS

    def __init__(self, broker_id, location):
        super().__init__(broker_id, location)
        # Origins delivered once and still waiting for their second copy
        self.pending_deliveries: Set[CTarget] = set()

    def _forward_to_row_and_column(self, message, now, results):
        for target in self.directory.get_b_targets_for_row_and_column(self.broker_id, now):
            results.put(message.forward(target))

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        now = self.start_log(message)
        self.update_subscription(message.origin.client_id, message.subscription)
        self._forward_to_row_and_column(message, now, results)
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        now = self.start_log(message)
        self.remove_subscription(message.origin.client_id, message.topic)
        self._forward_to_row_and_column(message, now, results)
        self.end_log(message)

    def process_c_event_matching(self, message: CEventMatching, results):
        now = self.start_log(message)
        matching = self.match_event(message.origin.client_id, message.event)
        # Remote subscribers are served by the row and column brokers
        self.send_c_event_deliveries(message, matching.get(self.broker_id, ()), now, results)
        self._forward_to_row_and_column(message, now, results)
        self.end_log(message)

    def process_b_subscription_update(self, message: BSubscriptionUpdate, results):
        self.start_log(message)
        self.update_subscription(message.origin.client_id, message.subscription)
        self.end_log(message)

    def process_b_subscription_removal(self, message: BSubscriptionRemoval, results):
        self.start_log(message)
        self.remove_subscription(message.origin.client_id, message.topic)
        self.end_log(message)

    def _delivery_targets(self, message: BEventMatching) -> List[str]:
        grid = self.directory.quorum_grid
        sender = message.brokers[0].broker_id
        if grid.are_in_same_row(self.broker_id, sender):
            return grid.get_other_broker_ids_in_same_column(self.broker_id)
        if grid.are_in_same_column(self.broker_id, sender):
            return grid.get_other_broker_ids_in_same_row(self.broker_id)
        raise RoutingInvariantError(
            f"Broker {self.broker_id} received BEventMatching from {sender}, "
            f"which is neither in its row nor in its column")

    def process_b_event_matching(self, message: BEventMatching, results):
        now = self.start_log(message)
        matching = self.match_event(message.origin.client_id, message.event)
        self.send_c_event_deliveries(message, matching.get(self.broker_id, ()), now, results)

        targets = self._delivery_targets(message)
        for broker_id in targets:
            subscribers = matching.get(broker_id)
            if subscribers:
                target = self.directory.get_b_target(self.broker_id, broker_id, now)
                results.put(message.create_b_event_delivery(subscribers, target))
        self.end_log(message)

    def process_b_event_delivery(self, message: BEventDelivery, results):
        now = self.start_log(message)
        if message.origin in self.pending_deliveries:
            self.pending_deliveries.remove(message.origin)
            self.logger.debug(f"{now}: dropping second delivery of {message.origin}")
        else:
            self.pending_deliveries.add(message.origin)
            self.deliver_b_event_delivery(message, now, results)
        self.end_log(message)

    def validate_state(self) -> List[str]:
        if self.pending_deliveries:
            origins = ", ".join(str(o) for o in sorted(self.pending_deliveries))
            return [f"{len(self.pending_deliveries)} deliveries were only received once: {origins}"]
        return []
