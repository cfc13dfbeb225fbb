"""
brokersim.config - Scenario and configuration management

Provides YAML-based scenario parsing for broker simulations.
"""

from .scenario import BrokerConfig, OutputConfig, Scenario, WorkloadConfig, load_scenario

__all__ = ['BrokerConfig', 'OutputConfig', 'Scenario', 'WorkloadConfig', 'load_scenario']
