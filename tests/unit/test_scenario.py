"""
test_scenario.py - Unit tests for YAML scenario parsing

Tests:
- Loading complete and minimal scenarios
- Defaults for optional sections
- Validation errors for broken files
"""

import sys
from pathlib import Path

import pytest
import yaml

_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from brokersim.broker.base import BrokerType
from brokersim.config.scenario import (
    DEFAULT_SEED,
    BrokerConfig,
    Scenario,
    WorkloadConfig,
    load_scenario,
)
from brokersim.errors import ConfigurationError


def _write(tmp_path, data, name="scenario.yaml"):
    path = tmp_path / name
    with open(path, 'w') as f:
        yaml.dump(data, f)
    return str(path)


def _minimal():
    return {
        'strategy': 'BrokerGQPS',
        'brokers': [
            {'id': 'b1', 'lat': 0.0, 'lon': 0.0, 'clients': 2},
        ],
    }


class TestLoadScenario:
    """Test loading from YAML."""

    def test_minimal_scenario_defaults(self, tmp_path):
        scenario = load_scenario(_write(tmp_path, _minimal()))
        assert scenario.strategies == [BrokerType.GQPS]
        assert scenario.seed == DEFAULT_SEED
        assert scenario.experiment_time_ms == 600_000
        assert scenario.field_size == 10
        assert scenario.history is True
        assert scenario.idle_threshold == 100_000
        assert scenario.max_workers is None
        assert scenario.workload == WorkloadConfig()
        assert scenario.output is None

    def test_full_scenario(self, tmp_path):
        data = {
            'simulation': {
                'seed': 7,
                'experiment_time_ms': 120000,
                'field_size': 5,
                'history': False,
                'idle_threshold': 500,
                'max_workers': 2,
            },
            'strategies': ['BrokerDHT', 'bg'],
            'brokers': [
                {'id': 'berlin', 'lat': 52.52, 'lon': 13.40, 'clients': 3},
                {'id': 'paris', 'lat': 48.86, 'lon': 2.35},
            ],
            'workload': {'topics': 4, 'event_geofence_size': 2.5, 'subscription_geofence_size': 1.0},
            'output': {'dir': 'out', 'prefix': 'run'},
        }
        scenario = load_scenario(_write(tmp_path, data))

        assert scenario.seed == 7
        assert scenario.experiment_time_ms == 120000
        assert scenario.field_size == 5
        assert scenario.history is False
        assert scenario.idle_threshold == 500
        assert scenario.max_workers == 2
        assert scenario.strategies == [BrokerType.DHT, BrokerType.BG]
        assert scenario.brokers[1] == BrokerConfig('paris', 48.86, 2.35, 0)
        assert scenario.client_numbers == {'berlin': 3, 'paris': 0}
        assert scenario.workload.topics == 4
        assert scenario.workload.event_geofence_size == 2.5
        assert (scenario.output.dir, scenario.output.prefix) == ('out', 'run')

    def test_example_scenario_loads(self):
        scenario = load_scenario(str(_project_root / "scenarios" / "europe.yaml"))
        assert len(scenario.brokers) == 9
        assert len(scenario.strategies) == 7

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_scenario(str(tmp_path / "nope.yaml"))

    def test_not_a_dict(self, tmp_path):
        with pytest.raises(ValueError, match="YAML dict"):
            load_scenario(_write(tmp_path, ["a", "b"]))

    def test_missing_brokers(self, tmp_path):
        data = _minimal()
        del data['brokers']
        with pytest.raises(ValueError, match="'brokers'"):
            load_scenario(_write(tmp_path, data))

    def test_missing_broker_field(self, tmp_path):
        data = _minimal()
        del data['brokers'][0]['lat']
        with pytest.raises(ValueError, match="Missing required field 'lat'"):
            load_scenario(_write(tmp_path, data))

    def test_missing_strategy(self, tmp_path):
        data = _minimal()
        del data['strategy']
        with pytest.raises(ValueError, match="'strategy' or 'strategies'"):
            load_scenario(_write(tmp_path, data))

    def test_strategy_and_strategies(self, tmp_path):
        data = _minimal()
        data['strategies'] = ['BrokerDHT']
        with pytest.raises(ValueError, match="not both"):
            load_scenario(_write(tmp_path, data))

    def test_unknown_strategy(self, tmp_path):
        data = _minimal()
        data['strategy'] = 'BrokerTeleport'
        with pytest.raises(ConfigurationError, match="Unknown broker type"):
            load_scenario(_write(tmp_path, data))

    def test_invalid_field_size(self, tmp_path):
        data = _minimal()
        data['simulation'] = {'field_size': 7}
        with pytest.raises(ConfigurationError, match="divide 90 and 180"):
            load_scenario(_write(tmp_path, data))


class TestScenarioValidation:
    """Test dataclass validation."""

    def test_invalid_broker_latitude(self):
        with pytest.raises(ValueError, match="lat must be in"):
            BrokerConfig('b1', 95.0, 0.0)

    def test_negative_clients(self):
        with pytest.raises(ValueError, match="non-negative"):
            BrokerConfig('b1', 0.0, 0.0, -1)

    def test_no_brokers(self):
        with pytest.raises(ValueError, match="No brokers"):
            Scenario(brokers=[], strategies=[BrokerType.DHT])

    def test_duplicate_broker_ids(self):
        brokers = [BrokerConfig('b1', 0.0, 0.0), BrokerConfig('b1', 10.0, 10.0)]
        with pytest.raises(ValueError, match="Duplicate broker ids"):
            Scenario(brokers=brokers, strategies=[BrokerType.DHT])

    def test_invalid_workload(self):
        with pytest.raises(ValueError, match="topics must be positive"):
            WorkloadConfig(topics=0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
