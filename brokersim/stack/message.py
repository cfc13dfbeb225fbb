"""
message.py - Message model

Two families of messages travel through the simulation:
- Client messages (C*): exchanged between a client and its local broker.
  They carry a `processor` BTarget, the broker that receives them.
- Broker messages (B*): exchanged between brokers. They carry a hop list
  `brokers = (sender, receiver)`.

Every message keeps the `origin` CTarget of the client operation that caused
it. `forward(next_target)` is the only way new hops are created, so the
origin travels unchanged across any number of hops.

Messages are totally ordered: first by origin, then by a fixed key (kind,
hop targets, payload ids). Two messages that compare equal under this order
are the same message.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Tuple

from brokersim.model import BrokerId, ClientId, Event, Subscription, Tick, Topic
from brokersim.spatial import Location
from brokersim.stack.target import BTarget, CTarget


class Message:
    """Common behaviour of all message variants."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def us(self) -> BrokerId:
        raise NotImplementedError

    @property
    def now(self) -> Tick:
        raise NotImplementedError

    def _hop_key(self) -> tuple:
        raise NotImplementedError

    def sort_key(self) -> tuple:
        return (self.origin.client_id, self.origin.tick, _KIND_RANK[type(self)], self._hop_key())

    def __lt__(self, other: 'Message') -> bool:
        return self.sort_key() < other.sort_key()

    def __le__(self, other: 'Message') -> bool:
        return self.sort_key() <= other.sort_key()


class ClientMessage(Message):
    """Message between a client and the broker `processor`."""

    @property
    def us(self) -> BrokerId:
        return self.processor.broker_id

    @property
    def now(self) -> Tick:
        return self.processor.tick

    def _hop_key(self) -> tuple:
        return (self.processor.broker_id, self.processor.tick)

    def forward(self, to: BTarget) -> 'BrokerMessage':
        raise NotImplementedError


class BrokerMessage(Message):
    """Message on the hop brokers[0] -> brokers[1]."""

    def __post_init__(self):
        if len(self.brokers) != 2:
            raise ValueError(f"Broker messages need exactly two hop targets, got {len(self.brokers)}")

    @property
    def sender(self) -> BTarget:
        return self.brokers[0]

    @property
    def receiver(self) -> BTarget:
        return self.brokers[1]

    @property
    def us(self) -> BrokerId:
        return self.brokers[1].broker_id

    @property
    def now(self) -> Tick:
        return self.brokers[1].tick

    def _hop_key(self) -> tuple:
        sender, receiver = self.brokers
        return (sender.broker_id, sender.tick, receiver.broker_id, receiver.tick)

    def forward(self, to: BTarget) -> 'BrokerMessage':
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Broker messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=True)
class BLocationUpdate(BrokerMessage):
    new_location: Location
    origin: CTarget
    brokers: Tuple[BTarget, BTarget]

    def forward(self, to: BTarget) -> 'BLocationUpdate':
        return BLocationUpdate(self.new_location, self.origin, (self.brokers[1], to))


@dataclass(frozen=True, eq=True)
class BSubscriptionUpdate(BrokerMessage):
    subscription: Subscription
    origin: CTarget
    brokers: Tuple[BTarget, BTarget]

    def forward(self, to: BTarget) -> 'BSubscriptionUpdate':
        return BSubscriptionUpdate(self.subscription, self.origin, (self.brokers[1], to))


@dataclass(frozen=True, eq=True)
class BSubscriptionRemoval(BrokerMessage):
    topic: Topic
    origin: CTarget
    brokers: Tuple[BTarget, BTarget]

    def forward(self, to: BTarget) -> 'BSubscriptionRemoval':
        return BSubscriptionRemoval(self.topic, self.origin, (self.brokers[1], to))


@dataclass(frozen=True, eq=True)
class BEventMatching(BrokerMessage):
    event: Event
    origin: CTarget
    brokers: Tuple[BTarget, BTarget]

    def forward(self, to: BTarget) -> 'BEventMatching':
        return BEventMatching(self.event, self.origin, (self.brokers[1], to))

    def create_c_event_delivery(self, subscriber: CTarget) -> 'CEventDelivery':
        return CEventDelivery(subscriber, self.origin, self.brokers[1])

    def create_b_event_delivery(self, subscribers: Iterable[ClientId], target: BTarget) -> 'BEventDelivery':
        return BEventDelivery(frozenset(subscribers), self.origin, (self.brokers[1], target))


@dataclass(frozen=True, eq=True)
class BEventDelivery(BrokerMessage):
    subscribers: FrozenSet[ClientId]
    origin: CTarget
    brokers: Tuple[BTarget, BTarget]

    def _hop_key(self) -> tuple:
        return BrokerMessage._hop_key(self) + tuple(sorted(self.subscribers))

    def forward(self, to: BTarget) -> 'BEventDelivery':
        return BEventDelivery(self.subscribers, self.origin, (self.brokers[1], to))

    def create_c_event_deliveries(self, arrival_tick: Tick) -> List['CEventDelivery']:
        """One delivery per subscriber, sent by the receiving broker."""
        return [
            CEventDelivery(CTarget(client_id, arrival_tick), self.origin, self.brokers[1])
            for client_id in sorted(self.subscribers)
        ]


# ---------------------------------------------------------------------------
# Client messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=True)
class CLocationUpdate(ClientMessage):
    new_location: Location
    origin: CTarget
    processor: BTarget

    def forward(self, to: BTarget) -> BLocationUpdate:
        return BLocationUpdate(self.new_location, self.origin, (self.processor, to))


@dataclass(frozen=True, eq=True)
class CSubscriptionUpdate(ClientMessage):
    subscription: Subscription
    origin: CTarget
    processor: BTarget

    def forward(self, to: BTarget) -> BSubscriptionUpdate:
        return BSubscriptionUpdate(self.subscription, self.origin, (self.processor, to))

    def forward_removal(self, to: BTarget) -> BSubscriptionRemoval:
        """Withdraw the previous version of this subscription at `to`."""
        return BSubscriptionRemoval(self.subscription.topic, self.origin, (self.processor, to))


@dataclass(frozen=True, eq=True)
class CSubscriptionRemoval(ClientMessage):
    topic: Topic
    origin: CTarget
    processor: BTarget

    def forward(self, to: BTarget) -> BSubscriptionRemoval:
        return BSubscriptionRemoval(self.topic, self.origin, (self.processor, to))


@dataclass(frozen=True, eq=True)
class CEventMatching(ClientMessage):
    event: Event
    origin: CTarget
    processor: BTarget

    def forward(self, to: BTarget) -> BEventMatching:
        return BEventMatching(self.event, self.origin, (self.processor, to))

    def create_c_event_delivery(self, subscriber: CTarget) -> 'CEventDelivery':
        return CEventDelivery(subscriber, self.origin, self.processor)

    def create_b_event_delivery(self, subscribers: Iterable[ClientId], target: BTarget) -> BEventDelivery:
        return BEventDelivery(frozenset(subscribers), self.origin, (self.processor, target))


@dataclass(frozen=True, eq=True)
class CEventDelivery(ClientMessage):
    """
    Delivery of an event to a subscriber.

    Unlike the other client messages this one travels broker -> client:
    `processor` is the sending broker and `now` is the tick at which the
    subscriber receives it.
    """
    subscriber: CTarget
    origin: CTarget
    processor: BTarget

    @property
    def now(self) -> Tick:
        return self.subscriber.tick

    def _hop_key(self) -> tuple:
        return (self.processor.broker_id, self.processor.tick,
                self.subscriber.client_id, self.subscriber.tick)

    def forward(self, to: BTarget) -> BEventDelivery:
        return BEventDelivery(frozenset([self.subscriber.client_id]), self.origin, (self.processor, to))


BROKER_MESSAGE_KINDS = (
    BLocationUpdate,
    BSubscriptionUpdate,
    BSubscriptionRemoval,
    BEventMatching,
    BEventDelivery,
)

CLIENT_MESSAGE_KINDS = (
    CLocationUpdate,
    CSubscriptionUpdate,
    CSubscriptionRemoval,
    CEventMatching,
    CEventDelivery,
)

# Processing order within a tick: all broker kinds, then all client kinds
PROCESSING_ORDER = BROKER_MESSAGE_KINDS + CLIENT_MESSAGE_KINDS

_KIND_RANK = {kind: rank for rank, kind in enumerate(PROCESSING_ORDER)}
