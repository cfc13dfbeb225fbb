"""
disgb.py - Distributed geo-brokering (DisGB) strategies

Like the flooding strategies, but messages only travel to the brokers whose
area intersects a geofence:

DisGBEvents: subscriptions stay local; an event goes to the brokers
affected by its event geofence, since only their clients can receive it.

DisGBSubscriptions: a subscription is replicated to the brokers affected by
its subscription geofence, since only publishers there can match it. When a
subscription is replaced or removed, replicas at brokers that are no longer
affected are withdrawn.
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


class BrokerDisGBEvents(Broker):
    broker_type = BrokerType.DISGB_EVENTS

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

        targets = self.directory.get_b_targets_for_other_affected_brokers(
            self.broker_id, message.event.geofence, now)
        for target in targets:
            results.put(message.forward(target))
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


class BrokerDisGBSubscriptions(Broker):
    broker_type = BrokerType.DISGB_SUBSCRIPTIONS

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        now = self.start_log(message)
        new_geofence = message.subscription.geofence
        old_geofence = self.update_subscription(message.origin.client_id, message.subscription)

        directory = self.directory
        for target in directory.get_b_targets_for_other_affected_brokers(self.broker_id, new_geofence, now):
            results.put(message.forward(target))

        if old_geofence is not None:
            targets = directory.get_b_targets_for_other_formerly_affected_brokers(
                self.broker_id, old_geofence, new_geofence, now)
            for target in targets:
                results.put(message.forward_removal(target))
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        now = self.start_log(message)
        old_geofence = self.remove_subscription(message.origin.client_id, message.topic)
        if old_geofence is not None:
            targets = self.directory.get_b_targets_for_other_affected_brokers(self.broker_id, old_geofence, now)
            for target in targets:
                results.put(message.forward(target))
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
