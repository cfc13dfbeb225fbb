"""
export.py - CSV export of simulation results

Files written for a run with base path <base>:
- <base>.csv          one line per recorded message
- <base>_stats.csv    event delivery latency (edl) and subscription update
                      delay (sud) statistics
- <base>_counts.csv   number of messages per kind
- <base>_brokers.csv  broker positions and strategy-specific structure

All files use ';' as separator.
"""

import csv
import logging
from dataclasses import astuple, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from brokersim.broker.base import BrokerType
from brokersim.broker.directory import BrokerDirectory
from brokersim.stack.message import CEventDelivery, Message
from brokersim.stack.stack import Stack
from brokersim.stack.statistics import StorelessStatistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Permutation:
    """Parameters of one run, repeated on every result line."""
    broker_type: str
    number_of_brokers: int
    number_of_clients: int
    number_of_topics: int
    event_geofence_size: float
    subscription_geofence_size: float

    @staticmethod
    def csv_header() -> List[str]:
        return ["brokerType", "numberOfBrokers", "numberOfClients", "numberOfTopics",
                "eventGeofenceSize", "subscriptionGeofenceSize"]

    def csv_values(self) -> List:
        return list(astuple(self))


@dataclass(frozen=True, order=True)
class CSVLine:
    """A received message. Ordered by origin tick, origin and processor tick."""
    origin_tick: int
    origin: str
    processor_tick: int
    type: str
    processor: str

    @classmethod
    def from_message(cls, message: Message) -> 'CSVLine':
        # A CEventDelivery is received by the subscriber, not by a broker
        if isinstance(message, CEventDelivery):
            processor = message.subscriber.client_id
        else:
            processor = message.us
        return cls(message.origin.tick, message.origin.client_id, message.now, message.kind, processor)


def _open_for_writing(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        logger.info(f"Overwriting {path}")
    else:
        logger.info(f"Creating {path}")
    return open(path, 'w', newline='')


def write_messages(path: Path, stack: Stack, permutation: Permutation) -> int:
    """Write every retained message; returns the number of lines written."""
    lines = sorted(CSVLine.from_message(m) for m in stack.get_all_messages())
    with _open_for_writing(path) as f:
        writer = csv.writer(f, delimiter=';')
        writer.writerow(["origin", "originTick", "type", "processor", "processorTick"] + Permutation.csv_header())
        for line in lines:
            writer.writerow([line.origin, line.origin_tick, line.type, line.processor, line.processor_tick]
                            + permutation.csv_values())
    return len(lines)


def write_statistics(path: Path, stack: Stack):
    with _open_for_writing(path) as f:
        writer = csv.writer(f, delimiter=';')
        writer.writerow(["type"] + StorelessStatistics.CSV_HEADER.split(";"))
        for name, statistics in (("edl", stack.event_delivery_latency), ("sud", stack.subscription_update_delay)):
            writer.writerow([name] + statistics.csv_line().split(";"))


def write_counts(path: Path, stack: Stack):
    with _open_for_writing(path) as f:
        writer = csv.writer(f, delimiter=';')
        writer.writerow(["type", "count"])
        for kind, count in stack.message_counts.as_dict().items():
            writer.writerow([kind, count])


def _hashed_topics(directory: BrokerDirectory, topics: Iterable[str]) -> Dict[str, List[str]]:
    per_broker: Dict[str, List[str]] = {}
    for topic in sorted(set(topics)):
        per_broker.setdefault(directory.get_hashing_broker(topic), []).append(topic)
    return per_broker


def write_broker_plot(path: Path, directory: BrokerDirectory, topics: Iterable[str]):
    """
    Broker positions plus, depending on the strategy, quorum members (GQPS),
    leaders (BG), the workload topics each broker hashes (DHT) or broker-area
    fields.
    """
    broker_type = directory.broker_type
    locations = directory.topology.broker_locations
    box_header = ["boxMinX", "boxMinY", "boxMaxX", "boxMaxY"]

    rows = []
    if broker_type is BrokerType.GQPS:
        header = ["brokerId", "lat", "lon", "function", "brokersInQuorum"]
        grid = directory.quorum_grid
        for broker_id, location in locations.items():
            quorum = grid.get_other_broker_ids_in_same_column(broker_id) + grid.get_other_broker_ids_in_same_row(broker_id)
            rows.append([broker_id, location.lat, location.lon, "Broker", ",".join(quorum)])
    elif broker_type is BrokerType.DHT:
        header = ["brokerId", "lat", "lon", "function", "topics"]
        hashed = _hashed_topics(directory, topics)
        for broker_id, location in locations.items():
            rows.append([broker_id, location.lat, location.lon, "Broker", ",".join(hashed.get(broker_id, []))])
    else:
        leader_of: Optional[Dict[str, str]] = None
        if broker_type is BrokerType.BG:
            manager = directory.bg_manager
            leader_of = {b: b if manager.is_leader(b) else manager.get_leader(b) for b in locations}
            header = ["brokerId", "lat", "lon", "function", "leader"] + box_header
        else:
            header = ["brokerId", "lat", "lon", "function"] + box_header

        for broker_id, location in locations.items():
            extra = [leader_of[broker_id]] if leader_of is not None else []
            rows.append([broker_id, location.lat, location.lon, "Broker"] + extra + [""] * 4)
        for field, broker_id in directory.topology.field_assignments.items():
            center = field.center
            extra = [""] if leader_of is not None else []
            rows.append([broker_id, center.lat, center.lon, "BrokerField"] + extra
                        + [field.min_lon, field.min_lat, field.max_lon, field.max_lat])

    rows.sort(key=lambda row: (row[0], row[3]))
    with _open_for_writing(path) as f:
        writer = csv.writer(f, delimiter=';')
        writer.writerow(header)
        writer.writerows(rows)


def save_results(base_path: str, stack: Stack, directory: BrokerDirectory, permutation: Permutation,
                 topics: Iterable[str]) -> List[Path]:
    """Write all result files for one run; returns the written paths."""
    base = Path(base_path)
    paths = [
        base.with_name(base.name + ".csv"),
        base.with_name(base.name + "_stats.csv"),
        base.with_name(base.name + "_counts.csv"),
        base.with_name(base.name + "_brokers.csv"),
    ]
    if stack.keep_history:
        write_messages(paths[0], stack, permutation)
    else:
        logger.info("History was not kept, skipping per-message export")
        paths = paths[1:]
    write_statistics(base.with_name(base.name + "_stats.csv"), stack)
    write_counts(base.with_name(base.name + "_counts.csv"), stack)
    write_broker_plot(base.with_name(base.name + "_brokers.csv"), directory, topics)
    return paths
