"""
brokersim.harness - Simulation orchestration and execution

Provides the tick-driven coordinator and the launcher that runs every
strategy of a scenario.
"""

from .coordinator import Coordinator
from .launcher import SimulationData, SimulationLauncher, SimulationResult, prepare_simulation_data

__all__ = [
    'Coordinator',
    'SimulationData',
    'SimulationLauncher',
    'SimulationResult',
    'prepare_simulation_data',
]
