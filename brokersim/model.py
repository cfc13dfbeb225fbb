"""
model.py - Core value types shared by brokers, messages and the stack

Ticks are integer milliseconds of virtual time. Client, broker and topic
identifiers are plain strings compared by value.
"""

from dataclasses import dataclass

from brokersim.spatial import Geofence

Tick = int
ClientId = str
BrokerId = str
Topic = str

# Latency between a client and its local broker, in ms
CLIENT_LATENCY = 5


@dataclass(frozen=True)
class Event:
    """A publication: topic plus the region in which subscribers may receive it."""
    topic: Topic
    geofence: Geofence


@dataclass(frozen=True)
class Subscription:
    """Interest in a topic, restricted to publishers inside the geofence."""
    topic: Topic
    geofence: Geofence
