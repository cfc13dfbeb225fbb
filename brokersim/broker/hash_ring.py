"""
hash_ring.py - Consistent hashing of topics onto brokers

Each broker is placed on a 32-bit ring several times (virtual nodes). A key
is owned by the first virtual node at or clockwise after the key's hash.
Hashes are the first four bytes (big-endian) of the MD5 digest, so the
mapping is stable across runs and platforms.
"""

import bisect
import hashlib
from typing import Dict, Iterable, List, Optional


def md5_hash(key: str) -> int:
    digest = hashlib.md5(key.encode('utf-8')).digest()
    return int.from_bytes(digest[:4], 'big')


class ConsistentHashRing:
    """
    Args:
        node_keys: Physical nodes (broker ids) to place on the ring
        virtual_nodes: Replicas per physical node
    """

    def __init__(self, node_keys: Iterable[str], virtual_nodes: int = 10):
        if virtual_nodes < 1:
            raise ValueError(f"virtual_nodes must be positive, got {virtual_nodes}")
        self.virtual_nodes = virtual_nodes
        self._ring: Dict[int, str] = {}
        self._hashes: List[int] = []
        for node_key in node_keys:
            self.add_node(node_key)

    def _existing_replicas(self, node_key: str) -> int:
        return sum(1 for owner in self._ring.values() if owner == node_key)

    def add_node(self, node_key: str, virtual_nodes: Optional[int] = None):
        count = self.virtual_nodes if virtual_nodes is None else virtual_nodes
        existing = self._existing_replicas(node_key)
        for i in range(existing, existing + count):
            self._ring[md5_hash(f"{node_key}-{i}")] = node_key
        self._hashes = sorted(self._ring)

    def remove_node(self, node_key: str):
        self._ring = {h: owner for h, owner in self._ring.items() if owner != node_key}
        self._hashes = sorted(self._ring)

    def route_node(self, key: str) -> Optional[str]:
        """Owner of key, or None if the ring is empty."""
        if not self._hashes:
            return None
        index = bisect.bisect_left(self._hashes, md5_hash(key))
        if index == len(self._hashes):
            index = 0
        return self._ring[self._hashes[index]]

    def __len__(self):
        return len(self._hashes)
