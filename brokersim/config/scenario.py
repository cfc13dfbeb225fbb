"""
scenario.py - YAML scenario parser

Parses broker simulation scenarios from YAML files.

Design philosophy:
- Keep it simple: minimal validation, no schema framework
- Fail fast: raise clear exceptions on errors
- No magic: explicit field names, defaults match the reference experiments

Example YAML:
    simulation:
      seed: 112358
      experiment_time_ms: 600000
      field_size: 10
      history: true
      idle_threshold: 100000
      max_workers: 8

    strategies: [BrokerFloodingEvents, BrokerGQPS, BrokerBG]

    brokers:
      - id: berlin
        lat: 52.52
        lon: 13.40
        clients: 20

    workload:
      topics: 10
      event_geofence_size: 50.0
      subscription_geofence_size: 50.0

    output:
      dir: results
      prefix: europe
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from brokersim.broker.base import BrokerType
from brokersim.errors import ConfigurationError

DEFAULT_SEED = 112358
DEFAULT_FIELD_SIZE = 10
DEFAULT_EXPERIMENT_TIME_MS = 600_000
DEFAULT_IDLE_THRESHOLD = 100_000


@dataclass
class BrokerConfig:
    """A broker and the number of clients in its area."""
    id: str
    lat: float
    lon: float
    clients: int = 0

    def __post_init__(self):
        if not (-90.0 <= self.lat <= 90.0):
            raise ValueError(f"Broker {self.id}: lat must be in [-90, 90], got {self.lat}")
        if not (-180.0 <= self.lon <= 180.0):
            raise ValueError(f"Broker {self.id}: lon must be in [-180, 180], got {self.lon}")
        if self.clients < 0:
            raise ValueError(f"Broker {self.id}: clients must be non-negative, got {self.clients}")


@dataclass
class WorkloadConfig:
    topics: int = 10
    event_geofence_size: float = 50.0
    subscription_geofence_size: float = 50.0

    def __post_init__(self):
        if self.topics <= 0:
            raise ValueError(f"workload.topics must be positive, got {self.topics}")
        if self.event_geofence_size < 0 or self.subscription_geofence_size < 0:
            raise ValueError("workload geofence sizes must be non-negative")


@dataclass
class OutputConfig:
    dir: str = "results"
    prefix: str = "brokersim"


@dataclass
class Scenario:
    """
    Broker simulation scenario.

    Attributes:
        brokers: Broker placements with client counts
        strategies: One run per routing strategy
        seed: Random seed for the workload
        experiment_time_ms: Clients start no operation after this tick
        field_size: Edge length of broker-area fields in degrees
        history: Keep every message in memory for the export
        idle_threshold: Consecutive empty ticks that end a run
        max_workers: Worker pool size (None: executor default)
        workload: Topic and geofence parameters
        output: Where results are written (None: not written)
    """
    brokers: List[BrokerConfig]
    strategies: List[BrokerType]
    seed: int = DEFAULT_SEED
    experiment_time_ms: int = DEFAULT_EXPERIMENT_TIME_MS
    field_size: int = DEFAULT_FIELD_SIZE
    history: bool = True
    idle_threshold: int = DEFAULT_IDLE_THRESHOLD
    max_workers: Optional[int] = None
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    output: Optional[OutputConfig] = None

    def __post_init__(self):
        """Validate scenario after initialization."""
        if not self.brokers:
            raise ValueError("No brokers defined in scenario")
        if not self.strategies:
            raise ValueError("No strategy defined in scenario")
        if self.experiment_time_ms <= 0:
            raise ValueError(f"experiment_time_ms must be positive, got {self.experiment_time_ms}")
        if self.field_size <= 0 or 90 % self.field_size != 0 or 180 % self.field_size != 0:
            raise ConfigurationError(f"field_size {self.field_size} must divide 90 and 180")
        if self.idle_threshold < 0:
            raise ValueError(f"idle_threshold must be non-negative, got {self.idle_threshold}")
        if self.max_workers is not None and self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")

        ids = [b.id for b in self.brokers]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate broker ids: {duplicates}")

    @property
    def client_numbers(self) -> Dict[str, int]:
        return {b.id: b.clients for b in self.brokers}


def _parse_strategies(data: Dict[str, Any]) -> List[BrokerType]:
    if 'strategy' in data and 'strategies' in data:
        raise ValueError("Use either 'strategy' or 'strategies', not both")
    if 'strategy' in data:
        names = [data['strategy']]
    elif 'strategies' in data:
        names = data['strategies']
        if not isinstance(names, list):
            raise ValueError("'strategies' must be a list")
    else:
        raise ValueError("Missing required section: 'strategy' or 'strategies'")
    return [BrokerType.parse(str(name)) for name in names]


def _parse_brokers(brokers: Any) -> List[BrokerConfig]:
    if not isinstance(brokers, list):
        raise ValueError("'brokers' section must be a list")

    parsed = []
    for i, broker in enumerate(brokers):
        if not isinstance(broker, dict):
            raise ValueError(f"Broker {i} must be a dict, got {type(broker)}")
        for key in ('id', 'lat', 'lon'):
            if key not in broker:
                raise ValueError(f"Broker {i}: Missing required field '{key}'")
        parsed.append(BrokerConfig(
            id=str(broker['id']),
            lat=float(broker['lat']),
            lon=float(broker['lon']),
            clients=int(broker.get('clients', 0)),
        ))
    return parsed


def load_scenario(yaml_path: str) -> Scenario:
    """
    Load scenario from YAML file.

    Args:
        yaml_path: Path to YAML scenario file

    Returns:
        Scenario object with parsed configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If required fields are missing or invalid
        yaml.YAMLError: If YAML syntax is invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {yaml_path}")

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {yaml_path}: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"Scenario file must contain a YAML dict, got {type(data)}")

    sim = data.get('simulation', {})
    if not isinstance(sim, dict):
        raise ValueError("'simulation' section must be a dict")

    if 'brokers' not in data:
        raise ValueError("Missing required section: 'brokers'")
    brokers = _parse_brokers(data['brokers'])
    strategies = _parse_strategies(data)

    workload_data = data.get('workload', {}) or {}
    if not isinstance(workload_data, dict):
        raise ValueError("'workload' section must be a dict")
    workload = WorkloadConfig(
        topics=int(workload_data.get('topics', 10)),
        event_geofence_size=float(workload_data.get('event_geofence_size', 50.0)),
        subscription_geofence_size=float(workload_data.get('subscription_geofence_size', 50.0)),
    )

    output = None
    if 'output' in data:
        output_data = data['output'] or {}
        if not isinstance(output_data, dict):
            raise ValueError("'output' section must be a dict")
        output = OutputConfig(
            dir=str(output_data.get('dir', 'results')),
            prefix=str(output_data.get('prefix', 'brokersim')),
        )

    max_workers = sim.get('max_workers')
    return Scenario(
        brokers=brokers,
        strategies=strategies,
        seed=int(sim.get('seed', DEFAULT_SEED)),
        experiment_time_ms=int(sim.get('experiment_time_ms', DEFAULT_EXPERIMENT_TIME_MS)),
        field_size=int(sim.get('field_size', DEFAULT_FIELD_SIZE)),
        history=bool(sim.get('history', True)),
        idle_threshold=int(sim.get('idle_threshold', DEFAULT_IDLE_THRESHOLD)),
        max_workers=int(max_workers) if max_workers is not None else None,
        workload=workload,
        output=output,
    )
