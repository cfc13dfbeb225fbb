"""
flooding.py - Flooding strategies

FloodingEvents: subscriptions stay at the subscriber's local broker; every
event is flooded to all brokers, which match it against their local
subscriptions.

FloodingSubscriptions: every subscription is flooded to all brokers; an
event is matched once at the publisher's local broker, which then hands
deliveries to the subscribers' local brokers.
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


class BrokerFloodingEvents(Broker):
    broker_type = BrokerType.FLOODING_EVENTS

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        self.start_log(message)
        self.update_subscription(message.origin.client_id, message.subscription)
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        self.start_log(message)
        self.remove_subscription(message.origin.client_id, message.topic)
        self.end_log(message)

    def process_c_event_matching(self, message: CEventMatching, results):
        now = self.start_log(message)
        matching = self.match_event(message.origin.client_id, message.event)
        local_subscribers = self.validate_subscribers_are_local(matching)
        self.send_c_event_deliveries(message, local_subscribers, now, results)
        self.forward_to_all(message, now, results)
        self.end_log(message)

    def process_b_subscription_update(self, message: BSubscriptionUpdate, results):
        self.start_log(message)
        self.unexpected_message_log(message)
        self.end_log(message)

    def process_b_subscription_removal(self, message: BSubscriptionRemoval, results):
        self.start_log(message)
        self.unexpected_message_log(message)
        self.end_log(message)

    def process_b_event_matching(self, message: BEventMatching, results):
        now = self.start_log(message)
        matching = self.match_event(message.origin.client_id, message.event)
        local_subscribers = self.validate_subscribers_are_local(matching)
        self.send_c_event_deliveries(message, local_subscribers, now, results)
        self.end_log(message)

    def process_b_event_delivery(self, message: BEventDelivery, results):
        self.start_log(message)
        self.unexpected_message_log(message)
        self.end_log(message)


class BrokerFloodingSubscriptions(Broker):
    broker_type = BrokerType.FLOODING_SUBSCRIPTIONS

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        now = self.start_log(message)
        self.update_subscription(message.origin.client_id, message.subscription)
        self.forward_to_all(message, now, results)
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        now = self.start_log(message)
        self.remove_subscription(message.origin.client_id, message.topic)
        self.forward_to_all(message, now, results)
        self.end_log(message)

    def process_c_event_matching(self, message: CEventMatching, results):
        now = self.start_log(message)
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
        self.start_log(message)
        self.unexpected_message_log(message)
        self.end_log(message)

    def process_b_event_delivery(self, message: BEventDelivery, results):
        now = self.start_log(message)
        self.deliver_b_event_delivery(message, now, results)
        self.end_log(message)
