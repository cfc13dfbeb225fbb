"""
base.py - Common broker contract

A broker owns:
- a replica of client locations (every strategy floods location updates)
- a subscription table whose contents depend on the routing strategy

Strategies override the per-kind handlers. A handler receives the message
and a thread-safe results queue; everything it puts there is scheduled by
the coordinator after the current tick.

Design philosophy:
- One broker is only ever driven by one worker at a time, so broker state
  needs no locking
- Handlers read the directory, never each other's state
- Fatal routing anomalies raise, unexpected but harmless ones are logged
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Set

from brokersim.errors import ConfigurationError, RoutingInvariantError
from brokersim.model import CLIENT_LATENCY, BrokerId, ClientId, Event, Subscription, Tick, Topic
from brokersim.spatial import Geofence, Location
from brokersim.stack.message import (
    BEventDelivery,
    BEventMatching,
    BLocationUpdate,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventDelivery,
    CEventMatching,
    CLocationUpdate,
    CSubscriptionRemoval,
    CSubscriptionUpdate,
    Message,
)
from brokersim.stack.target import CTarget
from brokersim.broker.subscriptions import SubscriptionTable

if TYPE_CHECKING:
    from brokersim.broker.directory import BrokerDirectory


class BrokerType(Enum):
    FLOODING_EVENTS = "BrokerFloodingEvents"
    FLOODING_SUBSCRIPTIONS = "BrokerFloodingSubscriptions"
    DISGB_EVENTS = "BrokerDisGBEvents"
    DISGB_SUBSCRIPTIONS = "BrokerDisGBSubscriptions"
    DHT = "BrokerDHT"
    GQPS = "BrokerGQPS"
    BG = "BrokerBG"

    @classmethod
    def parse(cls, name: str) -> 'BrokerType':
        """Accept either the member name (gqps, FLOODING_EVENTS) or the value (BrokerGQPS)."""
        for broker_type in cls:
            if name.upper() == broker_type.name or name == broker_type.value:
                return broker_type
        valid = ", ".join(t.value for t in cls)
        raise ConfigurationError(f"Unknown broker type '{name}', expected one of: {valid}")


_HANDLERS = {
    BLocationUpdate: 'process_b_location_update',
    BSubscriptionUpdate: 'process_b_subscription_update',
    BSubscriptionRemoval: 'process_b_subscription_removal',
    BEventMatching: 'process_b_event_matching',
    BEventDelivery: 'process_b_event_delivery',
    CLocationUpdate: 'process_c_location_update',
    CSubscriptionUpdate: 'process_c_subscription_update',
    CSubscriptionRemoval: 'process_c_subscription_removal',
    CEventMatching: 'process_c_event_matching',
    CEventDelivery: 'process_c_event_delivery',
}


class Broker(ABC):
    """
    Base class of all routing strategies.

    Args:
        broker_id: Unique broker id
        location: Where the broker is placed
    """

    broker_type: Optional[BrokerType] = None

    def __init__(self, broker_id: BrokerId, location: Location):
        self.broker_id = broker_id
        self.location = location
        self.logger = logging.getLogger(f"brokersim.broker.{broker_id}")
        self.client_locations: Dict[ClientId, Location] = {}
        self.subscriptions = SubscriptionTable()
        self._directory: Optional['BrokerDirectory'] = None

    @property
    def directory(self) -> 'BrokerDirectory':
        if self._directory is None:
            raise RuntimeError(f"Broker {self.broker_id} is not attached to a directory")
        return self._directory

    def attach(self, directory: 'BrokerDirectory'):
        self._directory = directory

    def __repr__(self):
        return f"{type(self).__name__}({self.broker_id!r}, {self.location})"

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    def process_message(self, message: Message, results):
        """Route message to the handler for its kind."""
        handler = getattr(self, _HANDLERS[type(message)])
        handler(message, results)

    def process_messages(self, messages: Iterable[Message], results):
        for message in messages:
            self.process_message(message, results)

    # -----------------------------------------------------------------------
    # Logging helpers
    # -----------------------------------------------------------------------

    def start_log(self, message: Message) -> Tick:
        """Check the message is addressed to this broker and return its tick."""
        if message.us != self.broker_id:
            raise RoutingInvariantError(
                f"{message.kind} for {message.us} (origin {message.origin}) "
                f"was handed to broker {self.broker_id}")
        self.logger.debug(f"{message.now}: start {message.kind} from {message.origin}")
        return message.now

    def end_log(self, message: Message):
        self.logger.debug(f"{message.now}: end {message.kind} from {message.origin}")

    def unexpected_message_log(self, message: Message):
        self.logger.error(
            f"{message.now}: {type(self).__name__} did not expect {message.kind} "
            f"from {message.origin}, ignoring it")

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    def update_location(self, client_id: ClientId, location: Location):
        previous = self.client_locations.get(client_id)
        self.client_locations[client_id] = location
        self.logger.debug(f"Location of {client_id}: {previous} -> {location}")

    def update_subscription(self, client_id: ClientId, subscription: Subscription) -> Optional[Geofence]:
        """Store subscription, returning the geofence of a replaced one."""
        return self.subscriptions.update(client_id, subscription)

    def remove_subscription(self, client_id: ClientId, topic: Topic) -> Optional[Geofence]:
        """Remove the subscription, returning its geofence if one existed."""
        old = self.subscriptions.remove(client_id, topic)
        if old is None:
            self.logger.warning(f"Client {client_id} has no subscription for topic {topic} to remove")
        return old

    def get_local_broker_of(self, client_id: ClientId) -> BrokerId:
        location = self.client_locations.get(client_id)
        if location is None:
            raise RoutingInvariantError(
                f"Broker {self.broker_id} does not know the location of client {client_id}")
        return self.directory.get_local_broker(location)

    def match_event(self, publisher: ClientId, event: Event) -> Dict[BrokerId, Set[ClientId]]:
        """
        Subscribers that should receive event, grouped by their local broker.

        A subscriber matches if it subscribed to the topic, the publisher is
        inside the subscription geofence, and the subscriber's known location
        is inside the event geofence.
        """
        publisher_location = self.client_locations.get(publisher)
        if publisher_location is None:
            self.logger.warning(
                f"Publisher {publisher} has no known location, dropping event on {event.topic}")
            return {}

        matching: Dict[BrokerId, Set[ClientId]] = {}
        for client_id, subscription in self.subscriptions.subscribers_of(event.topic):
            if not subscription.geofence.contains(publisher_location):
                continue
            subscriber_location = self.client_locations.get(client_id)
            if subscriber_location is None or not event.geofence.contains(subscriber_location):
                continue
            local_broker = self.directory.get_local_broker(subscriber_location)
            matching.setdefault(local_broker, set()).add(client_id)

        if not matching and self.directory.get_local_broker(publisher_location) == self.broker_id:
            self.logger.warning(f"Event of {publisher} on topic {event.topic} has no subscribers")
        return matching

    def validate_subscribers_are_local(self, subscribers_per_broker: Dict[BrokerId, Set[ClientId]]) -> Set[ClientId]:
        """Strategies that only hold local subscriptions must only ever match local subscribers."""
        if not subscribers_per_broker:
            return set()
        if len(subscribers_per_broker) != 1 or self.broker_id not in subscribers_per_broker:
            raise RoutingInvariantError(
                f"Broker {self.broker_id} matched subscribers of other brokers: "
                f"{sorted(subscribers_per_broker)}")
        return subscribers_per_broker[self.broker_id]

    # -----------------------------------------------------------------------
    # Sending helpers
    # -----------------------------------------------------------------------

    def forward_to(self, message: Message, broker_ids: Iterable[BrokerId], now: Tick, results):
        for target in self.directory.get_b_targets(self.broker_id, broker_ids, now):
            results.put(message.forward(target))

    def forward_to_all(self, message: Message, now: Tick, results):
        for target in self.directory.get_b_targets_for_other_brokers(self.broker_id, now):
            results.put(message.forward(target))

    def send_c_event_deliveries(self, message, subscribers: Iterable[ClientId], now: Tick, results):
        arrival = now + CLIENT_LATENCY
        for client_id in sorted(subscribers):
            results.put(message.create_c_event_delivery(CTarget(client_id, arrival)))

    def send_event_deliveries(self, message, subscribers_per_broker: Dict[BrokerId, Set[ClientId]],
                              now: Tick, results):
        """Deliver to local subscribers, hand remote ones to their local brokers."""
        for broker_id, subscribers in sorted(subscribers_per_broker.items()):
            if broker_id == self.broker_id:
                self.send_c_event_deliveries(message, subscribers, now, results)
            else:
                target = self.directory.get_b_target(self.broker_id, broker_id, now)
                results.put(message.create_b_event_delivery(subscribers, target))

    def deliver_b_event_delivery(self, message: BEventDelivery, now: Tick, results):
        for client_id in message.subscribers:
            local_broker = self.get_local_broker_of(client_id)
            if local_broker != self.broker_id:
                raise RoutingInvariantError(
                    f"Broker {self.broker_id} got a delivery for {client_id}, "
                    f"whose local broker is {local_broker}")
        for delivery in message.create_c_event_deliveries(now + CLIENT_LATENCY):
            results.put(delivery)

    # -----------------------------------------------------------------------
    # Handlers shared by every strategy
    # -----------------------------------------------------------------------

    def process_c_location_update(self, message: CLocationUpdate, results):
        now = self.start_log(message)
        self.update_location(message.origin.client_id, message.new_location)
        self.forward_to_all(message, now, results)
        self.end_log(message)

    def process_b_location_update(self, message: BLocationUpdate, results):
        self.start_log(message)
        self.update_location(message.origin.client_id, message.new_location)
        self.end_log(message)

    def process_c_event_delivery(self, message: CEventDelivery, results):
        self.start_log(message)
        local_broker = self.get_local_broker_of(message.subscriber.client_id)
        if local_broker != self.broker_id:
            raise RoutingInvariantError(
                f"Broker {self.broker_id} delivered {message.origin} to {message.subscriber.client_id}, "
                f"whose local broker is {local_broker}")
        self.end_log(message)

    # -----------------------------------------------------------------------
    # Strategy-specific handlers
    # -----------------------------------------------------------------------

    @abstractmethod
    def process_c_subscription_update(self, message: CSubscriptionUpdate, results):
        pass

    @abstractmethod
    def process_c_subscription_removal(self, message: CSubscriptionRemoval, results):
        pass

    @abstractmethod
    def process_c_event_matching(self, message: CEventMatching, results):
        pass

    @abstractmethod
    def process_b_subscription_update(self, message: BSubscriptionUpdate, results):
        pass

    @abstractmethod
    def process_b_subscription_removal(self, message: BSubscriptionRemoval, results):
        pass

    @abstractmethod
    def process_b_event_matching(self, message: BEventMatching, results):
        pass

    @abstractmethod
    def process_b_event_delivery(self, message: BEventDelivery, results):
        pass

    def validate_state(self) -> List[str]:
        """Problems with the broker's state after a run (empty if consistent)."""
        return []
