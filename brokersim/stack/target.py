"""
target.py - Addressing of message hops

A CTarget names a client at a tick and doubles as the origin of every
message a client operation causes. A BTarget names a broker at the tick it
receives (or sent) a message.
"""

from dataclasses import dataclass

from brokersim.model import BrokerId, ClientId, Tick


@dataclass(frozen=True, order=True)
class CTarget:
    client_id: ClientId
    tick: Tick

    def __str__(self):
        return f"{self.client_id}@{self.tick}"


@dataclass(frozen=True, order=True)
class BTarget:
    broker_id: BrokerId
    tick: Tick

    def __str__(self):
        return f"{self.broker_id}@{self.tick}"
