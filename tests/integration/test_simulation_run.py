#!/usr/bin/env python3
"""
test_simulation_run.py - End-to-end runs through the coordinator

Tests:
- Two-broker FloodingEvents run delivers one event exactly once
- Every strategy delivers the same events to the same subscribers,
  also across broadcast groups
- Runs are deterministic regardless of the worker pool size
- Idle threshold and fatal errors end a run
"""

import sys
from pathlib import Path

import pytest

_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from brokersim.broker import BrokerDirectory, BrokerFloodingEvents, BrokerType, create_broker
from brokersim.config.scenario import BrokerConfig, Scenario, WorkloadConfig
from brokersim.errors import RoutingInvariantError
from brokersim.harness.coordinator import Coordinator
from brokersim.harness.launcher import prepare_simulation_data
from brokersim.model import CLIENT_LATENCY, Event, Subscription
from brokersim.spatial import Geofence, Location
from brokersim.stack.message import CEventDelivery, CEventMatching, CLocationUpdate, CSubscriptionUpdate
from brokersim.stack.stack import Stack
from brokersim.stack.target import BTarget, CTarget

FOUR_BROKERS = {
    "b1": Location(0.0, 0.0),
    "b2": Location(0.0, 20.0),
    "b3": Location(20.0, 0.0),
    "b4": Location(20.0, 20.0),
}
BG_CLIENT_NUMBERS = {"b1": 10, "b2": 5, "b3": 3, "b4": 1}


def _client_message(kind, payload, client_id, tick, directory, location):
    processor = BTarget(directory.get_local_broker(location), tick + CLIENT_LATENCY)
    return kind(payload, CTarget(client_id, tick), processor)


def _deliveries(stack):
    return [m for m in stack.get_all_messages() if isinstance(m, CEventDelivery)]


@pytest.mark.integration
class TestTwoBrokerFloodingEvents:
    """One subscriber and one publisher next to each other."""

    def test_event_delivered_exactly_once(self):
        brokers = [BrokerFloodingEvents("b1", Location(0.0, 0.0)),
                   BrokerFloodingEvents("b2", Location(0.0, 90.0))]
        directory = BrokerDirectory(90, brokers)

        sub_location = Location(0.0, 0.0)
        pub_location = Location(0.0, 1.0)
        messages = [
            _client_message(CSubscriptionUpdate, Subscription("t", Geofence.circle(sub_location, 10.0)),
                            "sub", 0, directory, sub_location),
            _client_message(CLocationUpdate, sub_location, "sub", 1, directory, sub_location),
            _client_message(CLocationUpdate, pub_location, "pub", 2, directory, pub_location),
            _client_message(CEventMatching, Event("t", Geofence.circle(pub_location, 10.0)),
                            "pub", 5, directory, pub_location),
        ]
        stack = Stack(messages)

        last_tick = Coordinator(stack, directory).run()

        deliveries = _deliveries(stack)
        assert len(deliveries) == 1
        delivery = deliveries[0]
        assert delivery.origin == CTarget("pub", 5)
        assert delivery.subscriber.client_id == "sub"
        # Matched at the shared local broker: client latency in and out
        assert delivery.now == 5 + 2 * CLIENT_LATENCY

        assert stack.event_delivery_latency.result().count == 1
        assert stack.event_delivery_latency.result().min == 2 * CLIENT_LATENCY
        # The flooded event reaches b2 last
        assert last_tick == 10 + directory.get_latency_between_brokers("b1", "b2")


def _four_broker_workload(directory):
    """
    sub1 (b1) and sub2 (b2) subscribe near the publisher (b3), far does not
    see it. Expected deliveries: the event to sub1 and sub2.
    """
    clients = {
        "sub1": Location(1.0, 1.0),
        "sub2": Location(1.0, 21.0),
        "pub": Location(21.0, 1.0),
        "far": Location(-60.0, 150.0),
    }
    messages = []
    for tick, (client_id, location) in enumerate(clients.items(), start=1):
        messages.append(_client_message(CLocationUpdate, location, client_id, tick, directory, location))

    for tick, (client_id, radius) in enumerate((("sub1", 50.0), ("sub2", 50.0), ("far", 10.0)), start=1000):
        location = clients[client_id]
        subscription = Subscription("t", Geofence.circle(location, radius))
        messages.append(_client_message(CSubscriptionUpdate, subscription, client_id, tick, directory, location))

    event = Event("t", Geofence.circle(clients["pub"], 50.0))
    messages.append(_client_message(CEventMatching, event, "pub", 5000, directory, clients["pub"]))
    return messages


@pytest.mark.integration
class TestStrategiesAgree:
    """Every routing strategy must reach the same subscribers."""

    @pytest.mark.parametrize("broker_type", list(BrokerType))
    def test_same_deliveries(self, broker_type):
        brokers = [create_broker(broker_type, b, location) for b, location in FOUR_BROKERS.items()]
        client_numbers = BG_CLIENT_NUMBERS if broker_type is BrokerType.BG else None
        directory = BrokerDirectory(10, brokers, client_numbers)
        stack = Stack(_four_broker_workload(directory))

        Coordinator(stack, directory, max_workers=2).run()

        delivered = {(d.origin, d.subscriber.client_id) for d in _deliveries(stack)}
        assert delivered == {(CTarget("pub", 5000), "sub1"), (CTarget("pub", 5000), "sub2")}
        assert len(_deliveries(stack)) == 2
        assert directory.validate_broker_states() == []


# b1 and b2 are too far apart to share a broadcast group
SPREAD_BROKERS = {
    "b1": Location(5.0, 5.0),
    "b2": Location(5.0, 95.0),
    "b3": Location(45.0, 5.0),
    "b4": Location(45.0, 95.0),
}


def _spread_workload(directory):
    """
    pub sits at b3, sub at b2 and sub2 at b4. With BG the event crosses from
    b1's group over the Cloud into b2's group.
    """
    clients = {
        "pub": Location(46.0, 6.0),
        "sub": Location(6.0, 96.0),
        "sub2": Location(46.0, 96.0),
    }
    messages = []
    for tick, (client_id, location) in enumerate(clients.items(), start=1):
        messages.append(_client_message(CLocationUpdate, location, client_id, tick, directory, location))

    for tick, client_id in enumerate(("sub", "sub2"), start=1000):
        location = clients[client_id]
        subscription = Subscription("t", Geofence.circle(location, 90.0))
        messages.append(_client_message(CSubscriptionUpdate, subscription, client_id, tick, directory, location))

    event = Event("t", Geofence.circle(clients["pub"], 90.0))
    messages.append(_client_message(CEventMatching, event, "pub", 5000, directory, clients["pub"]))
    return messages


@pytest.mark.integration
class TestStrategiesAgreeAcrossGroups:
    """Subscribers outside the publisher's broadcast group."""

    def test_bg_forms_two_groups(self):
        brokers = [create_broker(BrokerType.BG, b, location) for b, location in SPREAD_BROKERS.items()]
        directory = BrokerDirectory(10, brokers, BG_CLIENT_NUMBERS)
        assert directory.bg_manager.broadcast_groups == {"b1": ["b3"], "b2": ["b4"]}

    @pytest.mark.parametrize("broker_type", list(BrokerType))
    def test_same_deliveries(self, broker_type):
        brokers = [create_broker(broker_type, b, location) for b, location in SPREAD_BROKERS.items()]
        client_numbers = BG_CLIENT_NUMBERS if broker_type is BrokerType.BG else None
        directory = BrokerDirectory(10, brokers, client_numbers)
        stack = Stack(_spread_workload(directory))

        Coordinator(stack, directory, max_workers=2).run()

        delivered = {(d.origin, d.subscriber.client_id) for d in _deliveries(stack)}
        assert delivered == {(CTarget("pub", 5000), "sub"), (CTarget("pub", 5000), "sub2")}
        assert len(_deliveries(stack)) == 2
        assert directory.validate_broker_states() == []


def _scenario(strategy):
    return Scenario(
        brokers=[BrokerConfig(b, location.lat, location.lon, 2) for b, location in FOUR_BROKERS.items()],
        strategies=[strategy],
        seed=4711,
        experiment_time_ms=150_000,
        field_size=10,
        workload=WorkloadConfig(topics=3, event_geofence_size=30.0, subscription_geofence_size=30.0),
    )


@pytest.mark.integration
class TestDeterminism:
    """Results only depend on the workload."""

    @pytest.mark.parametrize("broker_type", [BrokerType.GQPS, BrokerType.BG, BrokerType.DISGB_SUBSCRIPTIONS])
    def test_worker_count_does_not_change_results(self, broker_type):
        scenario = _scenario(broker_type)

        first = prepare_simulation_data(scenario, broker_type)
        Coordinator(first.stack, first.directory, max_workers=1).run()
        second = prepare_simulation_data(scenario, broker_type)
        Coordinator(second.stack, second.directory, max_workers=4).run()

        assert first.stack == second.stack
        assert first.stack.message_counts.as_dict() == second.stack.message_counts.as_dict()
        assert first.stack.message_counts.get("CEventMatching") > 0

    def test_every_strategy_replays_same_workload(self):
        client_messages = []
        for broker_type in (BrokerType.FLOODING_EVENTS, BrokerType.DHT):
            data = prepare_simulation_data(_scenario(broker_type), broker_type)
            client_messages.append(data.stack.get_all_messages())
        assert client_messages[0] == client_messages[1]


@pytest.mark.integration
class TestRunEnd:
    """Test when and how a run ends."""

    def _single_broker(self):
        return BrokerDirectory(90, [BrokerFloodingEvents("b1", Location(0.0, 0.0))])

    def _two_pings(self, directory):
        location = Location(1.0, 1.0)
        return [
            _client_message(CLocationUpdate, location, "c1", 1, directory, location),
            _client_message(CLocationUpdate, location, "c1", 495, directory, location),
        ]

    def test_idle_threshold_stops_run(self):
        directory = self._single_broker()
        stack = Stack(self._two_pings(directory))
        coordinator = Coordinator(stack, directory, idle_threshold=100)
        assert coordinator.run() == 6
        assert coordinator.processed_ticks == 1

    def test_run_until_stack_is_empty(self):
        directory = self._single_broker()
        stack = Stack(self._two_pings(directory))
        coordinator = Coordinator(stack, directory, idle_threshold=1000)
        assert coordinator.run() == 500
        assert stack.message_counts.get("CLocationUpdate") == 2

    def test_empty_workload(self):
        directory = self._single_broker()
        assert Coordinator(Stack([]), directory).run() is None

    def test_negative_idle_threshold(self):
        with pytest.raises(ValueError, match="idle_threshold"):
            Coordinator(Stack([]), self._single_broker(), idle_threshold=-1)

    def test_broker_failure_aborts_run(self):
        directory = self._single_broker()
        # The broker has never seen a location of the subscriber
        delivery = CEventDelivery(CTarget("sub", 20), CTarget("pub", 10), BTarget("b1", 15))
        stack = Stack([delivery])
        with pytest.raises(RoutingInvariantError, match="does not know the location"):
            Coordinator(stack, directory).run()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
