"""
test_message.py - Unit tests for the message model

Tests:
- Forwarding creates the next hop and keeps the origin
- Total order of messages
- Delivery helpers on matching and delivery messages
"""

import sys
from pathlib import Path

import pytest

_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from brokersim.model import Event, Subscription
from brokersim.spatial import Geofence, Location
from brokersim.stack.message import (
    PROCESSING_ORDER,
    BEventDelivery,
    BEventMatching,
    BLocationUpdate,
    BSubscriptionRemoval,
    BSubscriptionUpdate,
    CEventDelivery,
    CEventMatching,
    CLocationUpdate,
    CSubscriptionUpdate,
)
from brokersim.stack.target import BTarget, CTarget


def _subscription(topic="t"):
    return Subscription(topic, Geofence.circle(Location(0.0, 0.0), 10.0))


class TestForwarding:
    """Test hop creation."""

    def test_client_message_forward_starts_at_processor(self):
        origin = CTarget("c1", 10)
        message = CLocationUpdate(Location(1.0, 2.0), origin, BTarget("b1", 15))
        forwarded = message.forward(BTarget("b2", 20))

        assert isinstance(forwarded, BLocationUpdate)
        assert forwarded.brokers == (BTarget("b1", 15), BTarget("b2", 20))
        assert forwarded.origin == origin
        assert forwarded.new_location == Location(1.0, 2.0)

    def test_origin_survives_many_hops(self):
        """Any number of forwards keeps the origin of the client operation."""
        origin = CTarget("c1", 7)
        message = CSubscriptionUpdate(_subscription(), origin, BTarget("b0", 12)).forward(BTarget("b1", 20))
        for i in range(2, 10):
            message = message.forward(BTarget(f"b{i}", 20 + i))
            assert message.origin == origin
            assert message.sender.broker_id == f"b{i - 1}"
            assert message.us == f"b{i}"
            assert message.now == 20 + i
        assert isinstance(message, BSubscriptionUpdate)
        assert message.subscription == _subscription()

    def test_subscription_update_forward_removal(self):
        origin = CTarget("c1", 7)
        message = CSubscriptionUpdate(_subscription("weather"), origin, BTarget("b0", 12))
        removal = message.forward_removal(BTarget("b1", 20))
        assert isinstance(removal, BSubscriptionRemoval)
        assert removal.topic == "weather"
        assert removal.brokers == (BTarget("b0", 12), BTarget("b1", 20))

    def test_broker_message_requires_two_hop_targets(self):
        with pytest.raises(ValueError, match="two hop targets"):
            BLocationUpdate(Location(0.0, 0.0), CTarget("c1", 1), (BTarget("b1", 5),))

    def test_event_delivery_forward_carries_subscriber(self):
        delivery = CEventDelivery(CTarget("sub", 30), CTarget("pub", 10), BTarget("b1", 25))
        forwarded = delivery.forward(BTarget("b2", 40))
        assert forwarded.subscribers == frozenset(["sub"])
        assert forwarded.origin == CTarget("pub", 10)


class TestAccessors:
    """Test us/now/kind for both message families."""

    def test_client_message_accessors(self):
        message = CLocationUpdate(Location(0.0, 0.0), CTarget("c1", 1), BTarget("b1", 6))
        assert message.us == "b1"
        assert message.now == 6
        assert message.kind == "CLocationUpdate"

    def test_event_delivery_now_is_subscriber_tick(self):
        delivery = CEventDelivery(CTarget("sub", 30), CTarget("pub", 10), BTarget("b1", 25))
        assert delivery.now == 30
        assert delivery.us == "b1"

    def test_broker_message_accessors(self):
        message = BSubscriptionRemoval("t", CTarget("c1", 1), (BTarget("b1", 6), BTarget("b2", 9)))
        assert message.sender == BTarget("b1", 6)
        assert message.receiver == BTarget("b2", 9)
        assert message.us == "b2"
        assert message.now == 9


class TestOrdering:
    """Test the total order used inside stack buckets."""

    def test_ordered_by_origin_first(self):
        a = CLocationUpdate(Location(0.0, 0.0), CTarget("a", 50), BTarget("b1", 55))
        b = CLocationUpdate(Location(0.0, 0.0), CTarget("b", 1), BTarget("b1", 6))
        assert a < b
        assert sorted([b, a]) == [a, b]

    def test_same_origin_ordered_by_kind(self):
        origin = CTarget("c1", 1)
        broker_message = BLocationUpdate(Location(0.0, 0.0), origin, (BTarget("b1", 6), BTarget("b2", 9)))
        client_message = CLocationUpdate(Location(0.0, 0.0), origin, BTarget("b2", 9))
        assert broker_message < client_message

    def test_same_kind_ordered_by_hop(self):
        origin = CTarget("c1", 1)
        event = Event("t", Geofence.circle(Location(0.0, 0.0), 5.0))
        first = BEventMatching(event, origin, (BTarget("b1", 6), BTarget("b2", 9)))
        second = BEventMatching(event, origin, (BTarget("b1", 6), BTarget("b3", 9)))
        assert first < second
        assert first <= first

    def test_processing_order_has_broker_kinds_first(self):
        names = [kind.__name__ for kind in PROCESSING_ORDER]
        assert names[:5] == ["BLocationUpdate", "BSubscriptionUpdate", "BSubscriptionRemoval",
                             "BEventMatching", "BEventDelivery"]
        assert all(name.startswith("C") for name in names[5:])

    def test_equal_messages_are_interchangeable(self):
        a = CSubscriptionUpdate(_subscription(), CTarget("c1", 3), BTarget("b1", 8))
        b = CSubscriptionUpdate(_subscription(), CTarget("c1", 3), BTarget("b1", 8))
        assert a == b
        assert len({a, b}) == 1


class TestDeliveryHelpers:
    """Test creation of deliveries from matching messages."""

    def test_client_matching_creates_local_delivery(self):
        event = Event("t", Geofence.circle(Location(0.0, 0.0), 5.0))
        matching = CEventMatching(event, CTarget("pub", 10), BTarget("b1", 15))
        delivery = matching.create_c_event_delivery(CTarget("sub", 20))
        assert delivery == CEventDelivery(CTarget("sub", 20), CTarget("pub", 10), BTarget("b1", 15))

    def test_broker_matching_delivery_sent_by_receiver(self):
        event = Event("t", Geofence.circle(Location(0.0, 0.0), 5.0))
        matching = BEventMatching(event, CTarget("pub", 10), (BTarget("b1", 15), BTarget("b2", 30)))
        delivery = matching.create_b_event_delivery(["s2", "s1"], BTarget("b3", 45))
        assert isinstance(delivery, BEventDelivery)
        assert delivery.subscribers == frozenset(["s1", "s2"])
        assert delivery.brokers == (BTarget("b2", 30), BTarget("b3", 45))

    def test_b_event_delivery_fans_out_sorted(self):
        delivery = BEventDelivery(frozenset(["s2", "s1"]), CTarget("pub", 10),
                                  (BTarget("b1", 15), BTarget("b2", 30)))
        deliveries = delivery.create_c_event_deliveries(35)
        assert [d.subscriber for d in deliveries] == [CTarget("s1", 35), CTarget("s2", 35)]
        assert all(d.processor == BTarget("b2", 30) for d in deliveries)
        assert all(d.origin == CTarget("pub", 10) for d in deliveries)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
