"""
brokersim - Simulation of geo-distributed publish/subscribe broker networks

Client workloads are replayed against a broker topology that runs one of
seven routing strategies; the simulation records every message together
with event delivery latencies and subscription propagation delays.
"""

__version__ = "0.1.0"
