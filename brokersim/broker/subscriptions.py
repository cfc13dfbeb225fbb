"""
subscriptions.py - Per-broker subscription table

topic -> client -> subscription. At most one subscription per (client,
topic); updating replaces the previous one and reports its geofence so the
routing strategies can withdraw replicas that are no longer needed.
"""

from typing import Dict, Iterator, Optional, Tuple

from brokersim.model import ClientId, Subscription, Topic
from brokersim.spatial import Geofence


class SubscriptionTable:

    def __init__(self):
        self._by_topic: Dict[Topic, Dict[ClientId, Subscription]] = {}

    def update(self, client_id: ClientId, subscription: Subscription) -> Optional[Geofence]:
        """Store subscription, returning the geofence of the one it replaced."""
        per_client = self._by_topic.setdefault(subscription.topic, {})
        old = per_client.get(client_id)
        per_client[client_id] = subscription
        return old.geofence if old is not None else None

    def remove(self, client_id: ClientId, topic: Topic) -> Optional[Geofence]:
        """Drop the client's subscription to topic, returning its geofence."""
        per_client = self._by_topic.get(topic)
        if per_client is None:
            return None
        old = per_client.pop(client_id, None)
        if not per_client:
            del self._by_topic[topic]
        return old.geofence if old is not None else None

    def get(self, client_id: ClientId, topic: Topic) -> Optional[Subscription]:
        return self._by_topic.get(topic, {}).get(client_id)

    def subscribers_of(self, topic: Topic) -> Iterator[Tuple[ClientId, Subscription]]:
        return iter(self._by_topic.get(topic, {}).items())

    def topics(self):
        return self._by_topic.keys()

    def __len__(self):
        return sum(len(per_client) for per_client in self._by_topic.values())
