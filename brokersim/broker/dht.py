"""
dht.py - Topic-hashing (DHT) strategy

Every topic has a rendezvous broker picked by consistent hashing.
Subscriptions and events are sent there; the rendezvous broker matches and
hands deliveries to the subscribers' local brokers.
"""

from brokersim.broker.base import Broker, BrokerType
from brokersim.stack.message import (
    BEventDelivery,
    BEventMatching,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventMatching,
    CSubscriptionRemoval,
    CSubscriptionUpdate,
)


class BrokerDHT(Broker):
    broker_type = BrokerType.DHT

    def _route(self, message, topic, now, results) -> bool:
        """Forward message to the topic's rendezvous broker; True if that is us."""
        target = self.directory.get_hashing_b_target(self.broker_id, topic, now)
        if target.broker_id == self.broker_id:
            return True
        results.put(message.forward(target))
        return False

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        now = self.start_log(message)
        if self._route(message, message.subscription.topic, now, results):
            self.update_subscription(message.origin.client_id, message.subscription)
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        now = self.start_log(message)
        if self._route(message, message.topic, now, results):
            self.remove_subscription(message.origin.client_id, message.topic)
        self.end_log(message)

    def process_c_event_matching(self, message: CEventMatching, results):
        now = self.start_log(message)
        if self._route(message, message.event.topic, now, results):
            matching = self.match_event(message.origin.client_id, message.event)
            self.send_event_deliveries(message, matching, now, results)
        self.end_log(message)

    def process_b_subscription_update(self, message: BSubscriptionUpdate, results):
        self.start_log(message)
        self.update_subscription(message.origin.client_id, message.subscription)
        self.end_log(message)

    def process_b_subscription_removal(self, message: BSubscriptionRemoval, results):
        self.start_log(message)
        self.remove_subscription(message.origin.client_id, message.topic)
        self.end_log(message)

    def process_b_event_matching(self, message: BEventMatching, results):
        now = self.start_log(message)
        matching = self.match_event(message.origin.client_id, message.event)
        self.send_event_deliveries(message, matching, now, results)
        self.end_log(message)

    def process_b_event_delivery(self, message: BEventDelivery, results):
        now = self.start_log(message)
        self.deliver_b_event_delivery(message, now, results)
        self.end_log(message)
