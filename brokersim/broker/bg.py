"""
bg.py - Broadcast-group (BG) strategy

Brokers form groups around leaders; a single Cloud broker joins the
leaders. Members keep their own clients' subscriptions, leaders relay them
to the Cloud, and the Cloud holds every subscription of the system.

Event flow:
- A publisher's broker matches locally and broadcasts inside its group.
- The group's leader relays the event to the Cloud.
- The Cloud forwards it to every other leader that (or whose members) has
  matching subscribers; those leaders broadcast inside their groups.
"""

from enum import Enum
from typing import List, Optional

from brokersim.broker.base import Broker, BrokerType
from brokersim.errors import ConfigurationError, RoutingInvariantError
from brokersim.model import BrokerId
from brokersim.spatial import Location
from brokersim.stack.message import (
    BEventDelivery,
    BEventMatching,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventMatching,
    CSubscriptionRemoval,
    CSubscriptionUpdate,
)


class Role(Enum):
    MEMBER = "member"
    LEADER = "leader"
    CLOUD = "cloud"


class BrokerBG(Broker):
    broker_type = BrokerType.BG

    def __init__(self, broker_id: BrokerId, location: Location):
        super().__init__(broker_id, location)
        self.role: Optional[Role] = None

    def assign_role(self, role: Role):
        if self.role is not None:
            raise ConfigurationError(
                f"Broker {self.broker_id} already has role {self.role.value}, cannot become {role.value}")
        self.role = role

    @property
    def bg_manager(self):
        return self.directory.bg_manager

    def _require(self, condition: bool, message, reason: str):
        if not condition:
            raise RoutingInvariantError(
                f"{self.role.value} {self.broker_id}: {reason} "
                f"({message.kind} from {message.brokers[0].broker_id}, origin {message.origin})")

    def _upstream(self) -> Optional[BrokerId]:
        """Next broker towards the Cloud, None for the Cloud itself."""
        if self.role is Role.MEMBER:
            return self.bg_manager.get_leader(self.broker_id)
        if self.role is Role.LEADER:
            return self.bg_manager.cloud_broker_id
        return None

    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        now = self.start_log(message)
        upstream = self._upstream()
        if upstream is None:
            self.unexpected_message_log(message)
        else:
            self.update_subscription(message.origin.client_id, message.subscription)
            self.forward_to(message, [upstream], now, results)
        self.end_log(message)

    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        now = self.start_log(message)
        upstream = self._upstream()
        if upstream is None:
            self.unexpected_message_log(message)
        else:
            self.remove_subscription(message.origin.client_id, message.topic)
            self.forward_to(message, [upstream], now, results)
        self.end_log(message)

    def process_c_event_matching(self, message: CEventMatching, results):
        now = self.start_log(message)
        upstream = self._upstream()
        if upstream is None:
            self.unexpected_message_log(message)
            self.end_log(message)
            return

        matching = self.match_event(message.origin.client_id, message.event)
        local_subscribers = self.validate_subscribers_are_local(matching)
        self.send_c_event_deliveries(message, local_subscribers, now, results)
        self.forward_to(message, self.bg_manager.get_other_group_members(self.broker_id), now, results)
        self.forward_to(message, [upstream], now, results)
        self.end_log(message)

    def _relay_subscription_message(self, message, results, apply):
        now = self.start_log(message)
        sender = message.brokers[0].broker_id
        if self.role is Role.MEMBER:
            self.unexpected_message_log(message)
        elif self.role is Role.LEADER:
            self._require(self.bg_manager.message_is_from_own_member(self.broker_id, sender),
                          message, "subscription message does not come from an own member")
            self.forward_to(message, [self.bg_manager.cloud_broker_id], now, results)
        else:
            self._require(self.bg_manager.message_is_from_leader(sender),
                          message, "subscription message does not come from a leader")
            apply()
        self.end_log(message)

    def process_b_subscription_update(self, message: BSubscriptionUpdate, results):
        self._relay_subscription_message(
            message, results,
            lambda: self.update_subscription(message.origin.client_id, message.subscription))

    def process_b_subscription_removal(self, message: BSubscriptionRemoval, results):
        self._relay_subscription_message(
            message, results,
            lambda: self.remove_subscription(message.origin.client_id, message.topic))

    def process_b_event_matching(self, message: BEventMatching, results):
        now = self.start_log(message)
        sender = message.brokers[0].broker_id
        manager = self.bg_manager
        matching = self.match_event(message.origin.client_id, message.event)

        if self.role is Role.MEMBER:
            self._require(manager.message_is_from_group(self.broker_id, sender),
                          message, "event does not come from the own group")
            local_subscribers = self.validate_subscribers_are_local(matching)
            self.send_c_event_deliveries(message, local_subscribers, now, results)

        elif self.role is Role.LEADER:
            local_subscribers = self.validate_subscribers_are_local(matching)
            self.send_c_event_deliveries(message, local_subscribers, now, results)
            if manager.message_is_from_cloud(sender):
                self.forward_to(message, manager.get_other_group_members(self.broker_id), now, results)
            else:
                self._require(manager.message_is_from_own_member(self.broker_id, sender),
                              message, "event neither comes from the Cloud nor from an own member")
                self.forward_to(message, [manager.cloud_broker_id], now, results)

        else:
            self._require(manager.message_is_from_leader(sender),
                          message, "event does not come from a leader")
            self.forward_to(message, self._leaders_to_notify(matching.keys(), sender), now, results)

        self.end_log(message)

    def _leaders_to_notify(self, subscriber_brokers, sender: BrokerId) -> List[BrokerId]:
        """Leaders whose group holds a matching subscriber, except the sender's."""
        manager = self.bg_manager
        leaders: List[BrokerId] = []
        for broker_id in sorted(subscriber_brokers):
            leader = broker_id if manager.is_leader(broker_id) else manager.get_leader(broker_id)
            if leader != sender and leader not in leaders:
                leaders.append(leader)
        return leaders

    def process_b_event_delivery(self, message: BEventDelivery, results):
        self.start_log(message)
        self.unexpected_message_log(message)
        self.end_log(message)
