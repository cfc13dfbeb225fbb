"""
bg_manager.py - Broadcast-group formation and membership queries

Group formation is greedy:
1. Walk brokers by descending client count; a broker becomes a leader if its
   latency to every leader chosen so far exceeds LATENCY_THRESHOLD_MS.
2. Every other broker joins the leader it has the lowest latency to.

The Cloud broker sits above all leaders. It lives in Ashburn, Virginia,
where a large share of internet traffic is routed.
"""

import logging
from typing import Callable, Dict, List, Mapping

from brokersim.broker.bg import BrokerBG, Role
from brokersim.errors import ConfigurationError, RoutingInvariantError
from brokersim.model import BrokerId
from brokersim.spatial import Location

logger = logging.getLogger(__name__)

CLOUD_BROKER_ID = "Cloud"
CLOUD_LOCATION = Location(39.022878, -77.464276)

# Should lead to around 10 broadcast groups for world-wide deployments
LATENCY_THRESHOLD_MS = 100


def create_cloud_broker() -> BrokerBG:
    return BrokerBG(CLOUD_BROKER_ID, CLOUD_LOCATION)


def form_broadcast_groups(client_numbers: Mapping[BrokerId, int],
                          latency: Callable[[BrokerId, BrokerId], int],
                          threshold: int = LATENCY_THRESHOLD_MS) -> Dict[BrokerId, List[BrokerId]]:
    """
    Args:
        client_numbers: broker id -> number of clients (ties keep mapping order)
        latency: Latency in ms between two brokers
        threshold: Minimum latency between two leaders

    Returns:
        leader -> members, leaders in selection order
    """
    leaders: List[BrokerId] = []
    for broker_id, _ in sorted(client_numbers.items(), key=lambda item: item[1], reverse=True):
        if all(latency(broker_id, leader) > threshold for leader in leaders):
            leaders.append(broker_id)

    groups: Dict[BrokerId, List[BrokerId]] = {leader: [] for leader in leaders}
    for broker_id in client_numbers:
        if broker_id in groups:
            continue
        nearest = min(leaders, key=lambda leader: latency(broker_id, leader))
        groups[nearest].append(broker_id)

    for leader, members in groups.items():
        if not members:
            logger.debug(f"Leader {leader} does not have a member")
    return groups


class BroadcastGroupManager:
    """
    Forms broadcast groups and assigns roles to the BG brokers.

    Args:
        brokers: Every BG broker of the topology, including the Cloud broker
        client_numbers: broker id -> client count, for every non-Cloud broker
        latency: Latency in ms between two brokers
        cloud_broker_id: Id of the Cloud broker in brokers
    """

    def __init__(self, brokers: Mapping[BrokerId, BrokerBG], client_numbers: Mapping[BrokerId, int],
                 latency: Callable[[BrokerId, BrokerId], int], cloud_broker_id: BrokerId = CLOUD_BROKER_ID):
        self.cloud_broker_id = cloud_broker_id
        if cloud_broker_id not in brokers:
            raise ConfigurationError(f"Cloud broker {cloud_broker_id} is missing from the topology")

        unknown = sorted(b for b in client_numbers if b not in brokers or b == cloud_broker_id)
        if unknown:
            raise ConfigurationError(f"Client numbers given for unknown brokers: {unknown}")
        missing = sorted(b for b in brokers if b != cloud_broker_id and b not in client_numbers)
        if missing:
            raise ConfigurationError(f"Broadcast groups need client numbers for brokers: {missing}")

        self._groups = form_broadcast_groups(client_numbers, latency)
        self._leader_of = {member: leader
                           for leader, members in self._groups.items() for member in members}

        brokers[cloud_broker_id].assign_role(Role.CLOUD)
        for leader, members in self._groups.items():
            brokers[leader].assign_role(Role.LEADER)
            for member in members:
                brokers[member].assign_role(Role.MEMBER)

        logger.info(f"Assigned broadcast groups, there are {len(self._groups)}")

    @property
    def broadcast_groups(self) -> Dict[BrokerId, List[BrokerId]]:
        return {leader: list(members) for leader, members in self._groups.items()}

    @property
    def leaders(self) -> List[BrokerId]:
        return list(self._groups)

    def is_leader(self, broker_id: BrokerId) -> bool:
        return broker_id in self._groups

    def is_member(self, broker_id: BrokerId) -> bool:
        return broker_id in self._leader_of

    def get_leader(self, member_id: BrokerId) -> BrokerId:
        """Leader of the group member_id belongs to."""
        groups = [leader for leader, members in self._groups.items() if member_id in members]
        if len(groups) != 1:
            raise RoutingInvariantError(
                f"A member has to be in exactly 1 broadcast group, {member_id} is in {groups}")
        return groups[0]

    def get_other_group_members(self, broker_id: BrokerId) -> List[BrokerId]:
        """All members for a leader; all other members of the group for a member."""
        if self.is_leader(broker_id):
            return list(self._groups[broker_id])
        if self.is_member(broker_id):
            return [b for b in self._groups[self._leader_of[broker_id]] if b != broker_id]
        raise RoutingInvariantError(f"{broker_id} is neither a member nor a leader")

    def message_is_from_cloud(self, sender_id: BrokerId) -> bool:
        return sender_id == self.cloud_broker_id

    def message_is_from_leader(self, sender_id: BrokerId) -> bool:
        return sender_id in self._groups

    def message_is_from_own_leader(self, member_id: BrokerId, sender_id: BrokerId) -> bool:
        return sender_id == self.get_leader(member_id)

    def message_is_from_own_member(self, leader_id: BrokerId, sender_id: BrokerId) -> bool:
        if leader_id not in self._groups:
            raise RoutingInvariantError(f"Broadcast group has no leader {leader_id}")
        return sender_id in self._groups[leader_id]

    def message_is_from_group(self, broker_id: BrokerId, sender_id: BrokerId) -> bool:
        """For a member: the sender is its leader or a fellow member. For a leader: one of its members."""
        if self.is_member(broker_id):
            leader = self._leader_of[broker_id]
            return sender_id == leader or sender_id in self._groups[leader]
        return sender_id in self._groups.get(broker_id, [])
