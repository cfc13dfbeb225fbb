"""
gqps_grid.py - Quorum grid for the GQPS strategy

Brokers are laid out row-major on an n x n grid in list order. A broker's
write quorum is its row, its read quorum its column; any row meets any
column in exactly one broker.
"""

import math
from typing import List, NamedTuple, Sequence

from brokersim.errors import ConfigurationError
from brokersim.model import BrokerId


class GridIndex(NamedTuple):
    row: int
    col: int


class QuorumGrid:

    def __init__(self, broker_ids: Sequence[BrokerId]):
        self.broker_ids: List[BrokerId] = list(broker_ids)
        self.size = math.isqrt(len(self.broker_ids))
        if self.size * self.size != len(self.broker_ids):
            raise ConfigurationError(
                f"GQPS needs a square number of brokers, got {len(self.broker_ids)}")
        self._index_of = {broker_id: i for i, broker_id in enumerate(self.broker_ids)}

    def get_row(self, list_index: int) -> int:
        return list_index // self.size

    def get_col(self, list_index: int) -> int:
        return list_index % self.size

    def get_grid_index(self, broker_id: BrokerId) -> GridIndex:
        try:
            list_index = self._index_of[broker_id]
        except KeyError:
            raise ConfigurationError(f"Broker {broker_id} is not part of the GQPS grid") from None
        return GridIndex(self.get_row(list_index), self.get_col(list_index))

    def get_list_index(self, grid_index: GridIndex) -> int:
        return grid_index.row * self.size + grid_index.col

    def are_in_same_row(self, b1: BrokerId, b2: BrokerId) -> bool:
        return self.get_grid_index(b1).row == self.get_grid_index(b2).row

    def are_in_same_column(self, b1: BrokerId, b2: BrokerId) -> bool:
        return self.get_grid_index(b1).col == self.get_grid_index(b2).col

    def get_broker_ids_in_same_row(self, broker_id: BrokerId) -> List[BrokerId]:
        row = self.get_grid_index(broker_id).row
        return [self.broker_ids[self.get_list_index(GridIndex(row, col))] for col in range(self.size)]

    def get_broker_ids_in_same_column(self, broker_id: BrokerId) -> List[BrokerId]:
        col = self.get_grid_index(broker_id).col
        return [self.broker_ids[self.get_list_index(GridIndex(row, col))] for row in range(self.size)]

    def get_other_broker_ids_in_same_row(self, broker_id: BrokerId) -> List[BrokerId]:
        return [b for b in self.get_broker_ids_in_same_row(broker_id) if b != broker_id]

    def get_other_broker_ids_in_same_column(self, broker_id: BrokerId) -> List[BrokerId]:
        return [b for b in self.get_broker_ids_in_same_column(broker_id) if b != broker_id]

    def get_other_broker_ids_in_same_row_and_column(self, broker_id: BrokerId) -> List[BrokerId]:
        return (self.get_other_broker_ids_in_same_row(broker_id)
                + self.get_other_broker_ids_in_same_column(broker_id))
