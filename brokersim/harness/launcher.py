"""
launcher.py - Simulation launcher

Builds and runs one simulation per strategy of a scenario:
1. Create the brokers and the directory for the strategy
2. Place clients in the broker areas and generate their workload
3. Run the coordinator
4. Export results (if the scenario has an output section)

Every strategy run starts from a fresh random generator seeded with the
scenario seed, so all strategies replay the identical workload.

Design philosophy:
- Fail-fast during setup (topology errors surface before any run starts)
- A fatal error in one run stops the batch; earlier results are kept
"""

import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from brokersim.broker import BrokerDirectory, BrokerType, create_broker
from brokersim.client.wandering import create_clients, generate_random_strings
from brokersim.config.scenario import Scenario
from brokersim.errors import SimulationInvariantError
from brokersim.harness.coordinator import Coordinator
from brokersim.metrics.export import Permutation, save_results
from brokersim.spatial import Location
from brokersim.stack.stack import Stack

logger = logging.getLogger(__name__)


@dataclass
class SimulationData:
    """Everything a run needs; the stack is updated during the run."""
    stack: Stack
    directory: BrokerDirectory
    permutation: Permutation
    topics: List[str]


@dataclass
class SimulationResult:
    """Results from simulation execution."""
    broker_type: BrokerType
    success: bool
    duration_sec: float
    virtual_time_ms: int = 0
    last_processed_tick: Optional[int] = None
    message_count: int = 0
    output_files: Optional[List[str]] = None
    error_message: Optional[str] = None


def prepare_simulation_data(scenario: Scenario, broker_type: BrokerType) -> SimulationData:
    """Topology and workload of scenario for one strategy."""
    rng = random.Random(scenario.seed)
    topics = generate_random_strings("t-", 9, scenario.workload.topics, scenario.seed)

    brokers = [create_broker(broker_type, b.id, Location(b.lat, b.lon)) for b in scenario.brokers]
    client_numbers = scenario.client_numbers
    directory = BrokerDirectory(
        scenario.field_size, brokers,
        client_numbers if broker_type is BrokerType.BG else None)

    clients = create_clients(directory, client_numbers, rng)
    messages = []
    for client in clients:
        messages.extend(client.generate_messages(
            topics,
            scenario.experiment_time_ms,
            scenario.workload.event_geofence_size,
            scenario.workload.subscription_geofence_size,
            directory, rng))

    stack = Stack(messages, keep_history=scenario.history)
    permutation = Permutation(
        broker_type=broker_type.value,
        number_of_brokers=len(brokers),
        number_of_clients=len(clients),
        number_of_topics=len(topics),
        event_geofence_size=scenario.workload.event_geofence_size,
        subscription_geofence_size=scenario.workload.subscription_geofence_size,
    )
    logger.info(f"Prepared {broker_type.value}: {len(brokers)} brokers, {len(clients)} clients, "
                f"{len(messages)} client messages")
    return SimulationData(stack, directory, permutation, topics)


class SimulationLauncher:
    """
    Runs every strategy of a scenario.

    Args:
        scenario: Parsed scenario configuration
    """

    def __init__(self, scenario: Scenario):
        self.scenario = scenario

    def validate_scenario(self) -> List[str]:
        """
        Build every topology without generating a workload.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for broker_type in self.scenario.strategies:
            brokers = [create_broker(broker_type, b.id, Location(b.lat, b.lon)) for b in self.scenario.brokers]
            client_numbers = self.scenario.client_numbers if broker_type is BrokerType.BG else None
            try:
                BrokerDirectory(self.scenario.field_size, brokers, client_numbers)
            except ValueError as e:
                errors.append(f"{broker_type.value}: {e}")
        return errors

    def _output_base(self, broker_type: BrokerType) -> Optional[str]:
        output = self.scenario.output
        if output is None:
            return None
        return str(Path(output.dir) / f"{output.prefix}_{broker_type.value}")

    def run_strategy(self, broker_type: BrokerType) -> SimulationResult:
        """Prepare, run and export one strategy. Fatal errors propagate."""
        start_wall_time = time.time()
        data = prepare_simulation_data(self.scenario, broker_type)

        coordinator = Coordinator(
            data.stack, data.directory,
            idle_threshold=self.scenario.idle_threshold,
            max_workers=self.scenario.max_workers)
        last_tick = coordinator.run()

        output_files = None
        base = self._output_base(broker_type)
        if base is not None:
            output_files = [str(p) for p in save_results(
                base, data.stack, data.directory, data.permutation, data.topics)]

        return SimulationResult(
            broker_type=broker_type,
            success=True,
            duration_sec=time.time() - start_wall_time,
            virtual_time_ms=last_tick or 0,
            last_processed_tick=last_tick,
            message_count=data.stack.message_counts.total(),
            output_files=output_files,
        )

    def run(self) -> List[SimulationResult]:
        """
        Run every strategy in order.

        A fatal invariant violation ends the batch; the failed run is
        reported with success=False and no further strategy is run.
        """
        results = []
        for broker_type in self.scenario.strategies:
            logger.info(f"Running {broker_type.value}")
            start_wall_time = time.time()
            try:
                results.append(self.run_strategy(broker_type))
            except SimulationInvariantError as e:
                logger.error(f"{broker_type.value} aborted: {e}")
                results.append(SimulationResult(
                    broker_type=broker_type,
                    success=False,
                    duration_sec=time.time() - start_wall_time,
                    error_message=str(e),
                ))
                break
        return results
