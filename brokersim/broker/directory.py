"""
directory.py - Broker topology shared by all brokers

The directory is built in two phases:
1. Base topology: brokers, their locations and the broker areas. The earth
   is cut into square fields of `field_size` degrees and each field is
   assigned to the broker closest to the field's center. Every broker must
   end up with at least one field.
2. Strategy augmentation: BG injects the Cloud broker (which owns no field)
   and forms broadcast groups; DHT gets a consistent-hash ring and GQPS a
   quorum grid over the base brokers.

After construction the directory is read-only, so brokers running on
different worker threads can query it freely.

Latency between brokers is proportional to their great-circle distance:
ceil(km * MS_PER_KM).
"""

import logging
import math
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from brokersim.broker.base import Broker, BrokerType
from brokersim.broker.bg_manager import BroadcastGroupManager, create_cloud_broker
from brokersim.broker.gqps_grid import QuorumGrid
from brokersim.broker.hash_ring import ConsistentHashRing
from brokersim.errors import ConfigurationError
from brokersim.model import BrokerId, Tick, Topic
from brokersim.spatial import (
    MAX_LAT,
    MAX_LON,
    MIN_LAT,
    MIN_LON,
    Geofence,
    Location,
    Rectangle,
    distance_matrix_km,
)
from brokersim.stack.target import BTarget

logger = logging.getLogger(__name__)

MS_PER_KM = 0.021048134571484346
FIELD_EPSILON = 1e-13
HASH_RING_VIRTUAL_NODES = 10


def calculate_fields(field_size: int) -> List[Rectangle]:
    """
    Cut the earth into field_size x field_size degree rectangles, row-major
    from the south-west corner.

    Raises:
        ConfigurationError: If field_size does not divide 90 and 180
    """
    if field_size <= 0 or 90 % field_size != 0 or 180 % field_size != 0:
        raise ConfigurationError(f"Field size {field_size} must divide 90 and 180")

    fields = []
    for lat in range(int(MIN_LAT), int(MAX_LAT), field_size):
        for lon in range(int(MIN_LON), int(MAX_LON), field_size):
            fields.append(Rectangle(lat, lon, lat + field_size - FIELD_EPSILON, lon + field_size - FIELD_EPSILON))
    return fields


def find_broker_closest_to_location(location: Location, broker_locations: Mapping[BrokerId, Location]) -> BrokerId:
    """Nearest broker by great-circle distance; the first one wins ties."""
    closest: Optional[BrokerId] = None
    closest_distance = math.inf
    for broker_id, broker_location in broker_locations.items():
        distance = location.distance_km_to(broker_location)
        if distance < closest_distance:
            closest = broker_id
            closest_distance = distance
    if closest is None:
        raise ConfigurationError("Cannot find a closest broker without brokers")
    return closest


def assign_fields(fields: Sequence[Rectangle], broker_locations: Mapping[BrokerId, Location]) -> Dict[Rectangle, BrokerId]:
    """Assign every field to the broker closest to the field's center."""
    broker_ids = list(broker_locations)
    if not broker_ids:
        raise ConfigurationError("Cannot assign fields without brokers")
    centers = [field.center for field in fields]
    distances = distance_matrix_km(
        [c.lat for c in centers], [c.lon for c in centers],
        [broker_locations[b].lat for b in broker_ids], [broker_locations[b].lon for b in broker_ids],
    )
    # argmin returns the first minimum, matching find_broker_closest_to_location
    closest = np.argmin(distances, axis=1)
    return {field: broker_ids[index] for field, index in zip(fields, closest)}


@dataclass(frozen=True)
class Topology:
    """Base topology, shared by every routing strategy."""
    field_size: int
    brokers: Mapping[BrokerId, Broker]
    broker_locations: Mapping[BrokerId, Location]
    fields: Tuple[Rectangle, ...]
    field_assignments: Mapping[Rectangle, BrokerId]
    broker_areas: Mapping[BrokerId, Tuple[Rectangle, ...]]

    @property
    def broker_ids(self) -> List[BrokerId]:
        return list(self.brokers)

    @classmethod
    def build(cls, field_size: int, brokers: Iterable[Broker]) -> 'Topology':
        """
        Raises:
            ConfigurationError: Invalid field size, duplicate broker ids,
                brokers sharing a location or a broker without any field
        """
        broker_map: Dict[BrokerId, Broker] = {}
        for broker in brokers:
            if broker.broker_id in broker_map:
                raise ConfigurationError(f"Duplicate broker id {broker.broker_id}")
            broker_map[broker.broker_id] = broker
        if not broker_map:
            raise ConfigurationError("A topology needs at least one broker")

        locations = {broker_id: broker.location for broker_id, broker in broker_map.items()}
        placed: Dict[Location, BrokerId] = {}
        for broker_id, location in locations.items():
            if location in placed:
                raise ConfigurationError(
                    f"Brokers {placed[location]} and {broker_id} share location {location}, "
                    f"messages between them would take 0 ms")
            placed[location] = broker_id
        fields = calculate_fields(field_size)
        assignments = assign_fields(fields, locations)

        areas: Dict[BrokerId, List[Rectangle]] = {broker_id: [] for broker_id in broker_map}
        for field in fields:
            areas[assignments[field]].append(field)

        without_area = [broker_id for broker_id, area in areas.items() if not area]
        if without_area:
            raise ConfigurationError(
                f"Brokers {without_area} are not responsible for any field, "
                f"use a smaller field size or move them apart")

        return cls(
            field_size=field_size,
            brokers=MappingProxyType(broker_map),
            broker_locations=MappingProxyType(locations),
            fields=tuple(fields),
            field_assignments=MappingProxyType(assignments),
            broker_areas=MappingProxyType({b: tuple(area) for b, area in areas.items()}),
        )


class BrokerDirectory:
    """
    Args:
        field_size: Edge length of a field in degrees (must divide 90 and 180)
        brokers: All brokers, one routing strategy for the whole topology
        client_numbers: broker id -> client count; required by BG
    """

    def __init__(self, field_size: int, brokers: Iterable[Broker],
                 client_numbers: Optional[Mapping[BrokerId, int]] = None):
        self.topology = Topology.build(field_size, brokers)
        self.field_size = field_size
        self._rows = 180 // field_size
        self._columns = 360 // field_size
        self.client_numbers = dict(client_numbers) if client_numbers is not None else None

        broker_types = {type(broker) for broker in self.topology.brokers.values()}
        if len(broker_types) != 1:
            names = sorted(t.__name__ for t in broker_types)
            raise ConfigurationError(f"All brokers of a topology must use the same strategy, got {names}")
        self.broker_type: BrokerType = next(iter(self.topology.brokers.values())).broker_type

        self._lock = threading.Lock()
        self._hash_ring: Optional[ConsistentHashRing] = None
        self._quorum_grid: Optional[QuorumGrid] = None
        self._bg_manager: Optional[BroadcastGroupManager] = None

        self._augment()

        for broker in self.brokers.values():
            broker.attach(self)
        logger.info(
            f"Directory ready: {len(self.topology.brokers)} {self.broker_type.value} brokers, "
            f"{len(self.topology.fields)} fields of {field_size} degrees")

    def _augment(self):
        brokers = dict(self.topology.brokers)
        locations = dict(self.topology.broker_locations)

        cloud = None
        if self.broker_type is BrokerType.BG:
            if self.client_numbers is None:
                raise ConfigurationError("BrokerBG needs client numbers for the broadcast group formation")
            cloud = create_cloud_broker()
            brokers[cloud.broker_id] = cloud
            locations[cloud.broker_id] = cloud.location

        self.brokers: Mapping[BrokerId, Broker] = MappingProxyType(brokers)
        self.broker_locations: Mapping[BrokerId, Location] = MappingProxyType(locations)
        self._latency_index = {broker_id: i for i, broker_id in enumerate(locations)}
        ids = list(locations)
        lats = [locations[b].lat for b in ids]
        lons = [locations[b].lon for b in ids]
        self._latencies = np.ceil(distance_matrix_km(lats, lons, lats, lons) * MS_PER_KM).astype(np.int64)
        co_located = np.argwhere((self._latencies == 0) & ~np.eye(len(ids), dtype=bool))
        if len(co_located):
            i, j = co_located[0]
            raise ConfigurationError(
                f"Latency between {ids[i]} and {ids[j]} is 0 ms, brokers must not share a location")

        if cloud is not None:
            self._bg_manager = BroadcastGroupManager(
                brokers, self.client_numbers, self.get_latency_between_brokers, cloud.broker_id)
        elif self.broker_type is BrokerType.DHT:
            logger.debug(f"Hash ring with {len(self.hash_ring)} virtual nodes")
        elif self.broker_type is BrokerType.GQPS:
            logger.debug(f"Quorum grid of size {self.quorum_grid.size}")

    # -----------------------------------------------------------------------
    # Strategy structures
    # -----------------------------------------------------------------------

    @property
    def hash_ring(self) -> ConsistentHashRing:
        ring = self._hash_ring
        if ring is None:
            with self._lock:
                if self._hash_ring is None:
                    self._hash_ring = ConsistentHashRing(self.topology.broker_ids, HASH_RING_VIRTUAL_NODES)
                ring = self._hash_ring
        return ring

    @property
    def quorum_grid(self) -> QuorumGrid:
        grid = self._quorum_grid
        if grid is None:
            with self._lock:
                if self._quorum_grid is None:
                    self._quorum_grid = QuorumGrid(self.topology.broker_ids)
                grid = self._quorum_grid
        return grid

    @property
    def bg_manager(self) -> BroadcastGroupManager:
        if self._bg_manager is None:
            raise ConfigurationError("No broadcast groups were formed, the topology is not BrokerBG")
        return self._bg_manager

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def get_broker(self, broker_id: BrokerId) -> Broker:
        return self.brokers[broker_id]

    def get_latency_between_brokers(self, b1: BrokerId, b2: BrokerId) -> int:
        return int(self._latencies[self._latency_index[b1], self._latency_index[b2]])

    def get_field(self, location: Location) -> Rectangle:
        """The field a location falls into; the north pole and antimeridian belong to the last row/column."""
        row = min(int((location.lat - MIN_LAT) // self.field_size), self._rows - 1)
        col = min(int((location.lon - MIN_LON) // self.field_size), self._columns - 1)
        return self.topology.fields[row * self._columns + col]

    def get_local_broker(self, location: Location) -> BrokerId:
        return self.topology.field_assignments[self.get_field(location)]

    def get_broker_area(self, broker_id: BrokerId) -> Tuple[Rectangle, ...]:
        """Fields the broker is responsible for (empty for the Cloud broker)."""
        if broker_id not in self.brokers:
            raise KeyError(f"Unknown broker {broker_id}")
        return self.topology.broker_areas.get(broker_id, ())

    def is_in_broker_area(self, broker_id: BrokerId, location: Location) -> bool:
        return self.get_local_broker(location) == broker_id

    def get_affected_brokers(self, geofence: Geofence) -> List[BrokerId]:
        """Brokers with at least one field intersecting geofence, in topology order."""
        min_lat, _, max_lat, _ = geofence.bounding_box
        first_row = max(0, int((min_lat - MIN_LAT) // self.field_size))
        last_row = min(self._rows - 1, int((max_lat - MIN_LAT) // self.field_size))

        affected = set()
        assignments = self.topology.field_assignments
        for row in range(first_row, last_row + 1):
            for col in range(self._columns):
                field = self.topology.fields[row * self._columns + col]
                owner = assignments[field]
                if owner not in affected and geofence.intersects(field):
                    affected.add(owner)
        return [broker_id for broker_id in self.topology.brokers if broker_id in affected]

    def get_other_affected_brokers(self, us: BrokerId, geofence: Geofence) -> List[BrokerId]:
        return [b for b in self.get_affected_brokers(geofence) if b != us]

    def get_formerly_affected_brokers(self, old: Geofence, new: Optional[Geofence]) -> List[BrokerId]:
        """Brokers affected by old but no longer by new."""
        still_affected = set(self.get_affected_brokers(new)) if new is not None else set()
        return [b for b in self.get_affected_brokers(old) if b not in still_affected]

    def get_other_formerly_affected_brokers(self, us: BrokerId, old: Geofence,
                                            new: Optional[Geofence]) -> List[BrokerId]:
        return [b for b in self.get_formerly_affected_brokers(old, new) if b != us]

    def get_hashing_broker(self, topic: Topic) -> BrokerId:
        return self.hash_ring.route_node(topic)

    # -----------------------------------------------------------------------
    # BTargets: next hops with arrival ticks
    # -----------------------------------------------------------------------

    def get_b_target(self, us: BrokerId, to: BrokerId, now: Tick) -> BTarget:
        return BTarget(to, now + self.get_latency_between_brokers(us, to))

    def get_b_targets(self, us: BrokerId, broker_ids: Iterable[BrokerId], now: Tick) -> List[BTarget]:
        return [self.get_b_target(us, to, now) for to in broker_ids]

    def get_b_targets_for_other_brokers(self, us: BrokerId, now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, [b for b in self.brokers if b != us], now)

    def get_b_targets_for_other_affected_brokers(self, us: BrokerId, geofence: Geofence, now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, self.get_other_affected_brokers(us, geofence), now)

    def get_b_targets_for_other_formerly_affected_brokers(self, us: BrokerId, old: Geofence,
                                                          new: Optional[Geofence], now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, self.get_other_formerly_affected_brokers(us, old, new), now)

    def get_hashing_b_target(self, us: BrokerId, topic: Topic, now: Tick) -> BTarget:
        return self.get_b_target(us, self.get_hashing_broker(topic), now)

    def get_b_targets_for_row(self, us: BrokerId, now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, self.quorum_grid.get_other_broker_ids_in_same_row(us), now)

    def get_b_targets_for_column(self, us: BrokerId, now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, self.quorum_grid.get_other_broker_ids_in_same_column(us), now)

    def get_b_targets_for_row_and_column(self, us: BrokerId, now: Tick) -> List[BTarget]:
        return self.get_b_targets(us, self.quorum_grid.get_other_broker_ids_in_same_row_and_column(us), now)

    # -----------------------------------------------------------------------
    # Post-run checks
    # -----------------------------------------------------------------------

    def validate_broker_states(self) -> List[str]:
        """Log and return inconsistencies left in broker state after a run."""
        problems = []
        for broker in self.brokers.values():
            for problem in broker.validate_state():
                logger.error(f"Broker {broker.broker_id}: {problem}")
                problems.append(f"{broker.broker_id}: {problem}")
        return problems
