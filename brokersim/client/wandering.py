"""
wandering.py - Workload generator for wandering clients

A wandering client starts at a location inside its broker's area, moves
roughly in one direction at 50-100 km/h and never leaves the area of its
initial broker. Its operations rotate:
- every fifth round: a ping (location update) and one subscription per
  topic of its topic subset
- every round: one publication on a random topic of its subset

Consecutive operations are separated by OP_DELAY, which exceeds the highest
latency between any two brokers.
"""

import logging
import random
import string
from dataclasses import dataclass
from typing import List, Optional, Sequence

from brokersim.broker.directory import BrokerDirectory
from brokersim.model import CLIENT_LATENCY, BrokerId, ClientId, Event, Subscription, Tick, Topic
from brokersim.spatial import Geofence, Location
from brokersim.stack.message import ClientMessage, CEventMatching, CLocationUpdate, CSubscriptionUpdate
from brokersim.stack.target import BTarget, CTarget

logger = logging.getLogger(__name__)

MIN_TRAVEL_SPEED = 50.0 / 60 / 60 / 1000  # km per tick (ms)
MAX_TRAVEL_SPEED = 100.0 / 60 / 60 / 1000
MAX_TRAVEL_TIME = 60_000
MAX_WARMUP_TIME = 50_000
OP_DELAY = 1_000
TOPIC_SUBSET_SIZE = 5


def pick_before(start: Tick, end: Tick, rng: random.Random) -> Tick:
    """Random tick strictly after start and strictly before end."""
    return rng.randrange(start + 1, end)


def generate_random_strings(prefix: str, suffix_length: int, amount: int, seed: Optional[int] = None) -> List[str]:
    """Distinct random strings prefix + [a-zA-Z0-9]{suffix_length}, in generation order."""
    if amount <= 0:
        raise ValueError(f"amount must be positive, got {amount}")
    chars = string.ascii_lowercase + string.ascii_uppercase + string.digits
    if amount > len(chars) ** suffix_length:
        raise ValueError(f"Cannot generate {amount} distinct strings with suffix length {suffix_length}")

    rng = random.Random(seed)
    result: List[str] = []
    seen = set()
    while len(result) < amount:
        candidate = prefix + "".join(rng.choice(chars) for _ in range(suffix_length))
        if candidate not in seen:
            seen.add(candidate)
            result.append(candidate)
    return result


@dataclass
class WanderingClient:
    client_id: ClientId
    start_location: Location

    def generate_messages(self, possible_topics: Sequence[Topic], max_tick: Tick,
                          event_geofence_size: float, subscription_geofence_size: float,
                          directory: BrokerDirectory, rng: random.Random) -> List[ClientMessage]:
        """
        Messages of the client up to max_tick.

        Args:
            possible_topics: Topics to draw the client's subset from
            max_tick: No round of operations starts at or after this tick
            event_geofence_size: Radius of event geofences, degrees
            subscription_geofence_size: Radius of subscription geofences, degrees
            directory: Used to find the client's local broker and its area
            rng: Source of randomness
        """
        messages: List[ClientMessage] = []
        direction = rng.uniform(0.0, 360.0)

        current_tick = pick_before(0, MAX_WARMUP_TIME, rng)
        location = self.start_location
        local_broker = directory.get_local_broker(location)

        topics = list(possible_topics)
        rng.shuffle(topics)
        topics = topics[:TOPIC_SUBSET_SIZE]

        messages.append(self._message(CLocationUpdate, location, current_tick, local_broker))
        current_tick += MAX_WARMUP_TIME

        counter = 0
        while current_tick < max_tick:
            if counter % 5 == 0:
                messages.append(self._message(CLocationUpdate, location, current_tick, local_broker))
                current_tick += OP_DELAY

                for topic in topics:
                    subscription = Subscription(topic, Geofence.circle(location, subscription_geofence_size))
                    messages.append(self._message(CSubscriptionUpdate, subscription, current_tick, local_broker))
                    current_tick += 1
                current_tick += OP_DELAY

            topic = topics[rng.randrange(len(topics))]
            event = Event(topic, Geofence.circle(location, event_geofence_size))
            messages.append(self._message(CEventMatching, event, current_tick, local_broker))
            current_tick += 1 + OP_DELAY

            travel_time = pick_before(0, MAX_TRAVEL_TIME, rng)
            current_tick += travel_time
            location = self._next_location(location, travel_time, direction, local_broker, directory, rng)
            counter += 1

        logger.debug(f"Client {self.client_id} prepared {len(messages)} messages")
        return messages

    def _message(self, kind, payload, tick: Tick, local_broker: BrokerId) -> ClientMessage:
        return kind(payload, CTarget(self.client_id, tick), BTarget(local_broker, tick + CLIENT_LATENCY))

    def _next_location(self, location: Location, travel_time: Tick, direction: float,
                       local_broker: BrokerId, directory: BrokerDirectory, rng: random.Random) -> Location:
        speed = rng.uniform(MIN_TRAVEL_SPEED, MAX_TRAVEL_SPEED)
        distance = speed * travel_time

        relax = 1.0
        while True:
            heading = rng.uniform(direction - 10.0 - relax, direction + 10.0 + relax)
            relax += 1.0
            if relax > 32:
                logger.error(f"No location found in the broker area of {local_broker} around {location}")
                return location
            if relax > 30:
                # Stuck at the edge of the area: turn around
                heading += 180.0
            candidate = location.location_in_distance(distance, heading)
            if directory.is_in_broker_area(local_broker, candidate):
                return candidate


def create_clients(directory: BrokerDirectory, client_numbers: dict, rng: random.Random) -> List[WanderingClient]:
    """
    Place client_numbers[broker] clients at random locations in each broker's area.

    Client ids are <broker id>-<n>.
    """
    clients = []
    for broker_id, count in client_numbers.items():
        area = directory.get_broker_area(broker_id)
        for i in range(count):
            field = area[rng.randrange(len(area))]
            start = Location.random_in_geofence(field, rng)
            if start is None or not directory.is_in_broker_area(broker_id, start):
                start = field.center
            clients.append(WanderingClient(f"{broker_id}-{i}", start))
    return clients
