"""Brokers, routing strategies and the broker directory."""

from brokersim.broker.base import Broker, BrokerType
from brokersim.broker.bg import BrokerBG, Role
from brokersim.broker.bg_manager import BroadcastGroupManager
from brokersim.broker.dht import BrokerDHT
from brokersim.broker.directory import BrokerDirectory, Topology
from brokersim.broker.disgb import BrokerDisGBEvents, BrokerDisGBSubscriptions
from brokersim.broker.flooding import BrokerFloodingEvents, BrokerFloodingSubscriptions
from brokersim.broker.gqps import BrokerGQPS
from brokersim.spatial import Location

BROKER_CLASSES = {
    BrokerType.FLOODING_EVENTS: BrokerFloodingEvents,
    BrokerType.FLOODING_SUBSCRIPTIONS: BrokerFloodingSubscriptions,
    BrokerType.DISGB_EVENTS: BrokerDisGBEvents,
    BrokerType.DISGB_SUBSCRIPTIONS: BrokerDisGBSubscriptions,
    BrokerType.DHT: BrokerDHT,
    BrokerType.GQPS: BrokerGQPS,
    BrokerType.BG: BrokerBG,
}


def create_broker(broker_type: BrokerType, broker_id: str, location: Location) -> Broker:
    """Instantiate the broker class implementing broker_type."""
    return BROKER_CLASSES[broker_type](broker_id, location)


__all__ = [
    'BROKER_CLASSES',
    'BroadcastGroupManager',
    'Broker',
    'BrokerBG',
    'BrokerDHT',
    'BrokerDirectory',
    'BrokerDisGBEvents',
    'BrokerDisGBSubscriptions',
    'BrokerFloodingEvents',
    'BrokerFloodingSubscriptions',
    'BrokerGQPS',
    'BrokerType',
    'Role',
    'Topology',
    'create_broker',
]
