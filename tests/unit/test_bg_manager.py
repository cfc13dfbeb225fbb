"""
test_bg_manager.py - Unit tests for broadcast-group formation

Latencies are given by a table so group formation does not depend on
geography:
    a - b: 50 ms, c - d: 50 ms, everything else: 200 ms
"""

import sys
from pathlib import Path

import pytest

_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from brokersim.broker.bg import BrokerBG, Role
from brokersim.broker.bg_manager import (
    CLOUD_BROKER_ID,
    BroadcastGroupManager,
    create_cloud_broker,
    form_broadcast_groups,
)
from brokersim.errors import ConfigurationError, RoutingInvariantError
from brokersim.spatial import Location

LATENCIES = {frozenset(("a", "b")): 50, frozenset(("c", "d")): 50}
CLIENT_NUMBERS = {"a": 10, "b": 5, "c": 8, "d": 1}


def latency(x, y):
    if x == y:
        return 0
    return LATENCIES.get(frozenset((x, y)), 200)


def _brokers():
    brokers = {broker_id: BrokerBG(broker_id, Location(0.0, 0.0)) for broker_id in CLIENT_NUMBERS}
    brokers[CLOUD_BROKER_ID] = create_cloud_broker()
    return brokers


class TestFormBroadcastGroups:
    """Test the greedy leader selection."""

    def test_groups(self):
        groups = form_broadcast_groups(CLIENT_NUMBERS, latency)
        assert groups == {"a": ["b"], "c": ["d"]}
        assert list(groups) == ["a", "c"]

    def test_threshold_is_exclusive(self):
        groups = form_broadcast_groups({"x": 2, "y": 1}, lambda p, q: 0 if p == q else 100)
        assert groups == {"x": ["y"]}

    def test_ties_keep_mapping_order(self):
        groups = form_broadcast_groups({"y": 1, "x": 1}, lambda p, q: 0 if p == q else 10)
        assert groups == {"y": ["x"]}

    def test_all_far_apart_are_all_leaders(self):
        groups = form_broadcast_groups(CLIENT_NUMBERS, lambda p, q: 0 if p == q else 500)
        assert groups == {"a": [], "c": [], "b": [], "d": []}


class TestBroadcastGroupManager:
    """Test role assignment and membership queries."""

    def test_roles_assigned(self):
        brokers = _brokers()
        BroadcastGroupManager(brokers, CLIENT_NUMBERS, latency)
        assert brokers[CLOUD_BROKER_ID].role is Role.CLOUD
        assert brokers["a"].role is Role.LEADER
        assert brokers["c"].role is Role.LEADER
        assert brokers["b"].role is Role.MEMBER
        assert brokers["d"].role is Role.MEMBER

    def test_cloud_is_not_a_group_member(self):
        manager = BroadcastGroupManager(_brokers(), CLIENT_NUMBERS, latency)
        assert manager.leaders == ["a", "c"]
        assert not manager.is_leader(CLOUD_BROKER_ID)
        assert not manager.is_member(CLOUD_BROKER_ID)
        assert all(CLOUD_BROKER_ID not in members for members in manager.broadcast_groups.values())

    def test_membership(self):
        manager = BroadcastGroupManager(_brokers(), CLIENT_NUMBERS, latency)
        assert manager.is_leader("a")
        assert manager.is_member("b")
        assert manager.get_leader("d") == "c"
        assert manager.get_other_group_members("a") == ["b"]
        assert manager.get_other_group_members("b") == []

    def test_leader_has_no_leader(self):
        manager = BroadcastGroupManager(_brokers(), CLIENT_NUMBERS, latency)
        with pytest.raises(RoutingInvariantError, match="exactly 1 broadcast group"):
            manager.get_leader("a")

    def test_cloud_has_no_group(self):
        manager = BroadcastGroupManager(_brokers(), CLIENT_NUMBERS, latency)
        with pytest.raises(RoutingInvariantError, match="neither a member nor a leader"):
            manager.get_other_group_members(CLOUD_BROKER_ID)

    def test_sender_queries(self):
        manager = BroadcastGroupManager(_brokers(), CLIENT_NUMBERS, latency)
        assert manager.message_is_from_cloud(CLOUD_BROKER_ID)
        assert manager.message_is_from_leader("c")
        assert not manager.message_is_from_leader("b")
        assert manager.message_is_from_own_leader("b", "a")
        assert not manager.message_is_from_own_leader("b", "c")
        assert manager.message_is_from_own_member("a", "b")
        assert not manager.message_is_from_own_member("a", "d")
        assert manager.message_is_from_group("b", "a")
        assert not manager.message_is_from_group("b", "c")
        assert manager.message_is_from_group("c", "d")

    def test_missing_cloud(self):
        brokers = _brokers()
        del brokers[CLOUD_BROKER_ID]
        with pytest.raises(ConfigurationError, match="Cloud broker"):
            BroadcastGroupManager(brokers, CLIENT_NUMBERS, latency)

    def test_missing_client_numbers(self):
        numbers = dict(CLIENT_NUMBERS)
        del numbers["d"]
        with pytest.raises(ConfigurationError, match=r"client numbers for brokers: \['d'\]"):
            BroadcastGroupManager(_brokers(), numbers, latency)

    def test_client_numbers_for_unknown_broker(self):
        numbers = dict(CLIENT_NUMBERS, x=3)
        with pytest.raises(ConfigurationError, match="unknown brokers"):
            BroadcastGroupManager(_brokers(), numbers, latency)

    def test_role_assigned_only_once(self):
        broker = BrokerBG("a", Location(0.0, 0.0))
        broker.assign_role(Role.MEMBER)
        with pytest.raises(ConfigurationError, match="already has role"):
            broker.assign_role(Role.LEADER)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
