"""
errors.py - Exception hierarchy for brokersim

Two tiers:
- ConfigurationError: the topology or scenario cannot be built
- SimulationInvariantError: a run-time invariant broke; the run is aborted

Soft anomalies (unexpected message kinds, events without subscribers) are
logged by the brokers and never raise.
"""


class ConfigurationError(ValueError):
    """Raised when a topology, strategy structure or scenario is invalid."""
    pass


class SimulationInvariantError(RuntimeError):
    """Base class for fatal invariant violations during a run."""
    pass


class PastSchedulingError(SimulationInvariantError):
    """Raised when a message would be processed at or before the current tick."""
    pass


class DuplicateOriginError(SimulationInvariantError):
    """Raised when two client messages share the same origin (client, tick)."""
    pass


class ClientBrokerAreaError(SimulationInvariantError):
    """Raised when a client's messages are received by more than one local broker."""
    pass


class RoutingInvariantError(SimulationInvariantError):
    """Raised when a broker observes state that only a routing bug can produce."""
    pass
