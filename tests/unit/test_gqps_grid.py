"""
test_gqps_grid.py - Unit tests for the GQPS quorum grid
"""

import sys
from pathlib import Path

import pytest

_project_root = Path(__file__).parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from brokersim.broker.gqps_grid import GridIndex, QuorumGrid
from brokersim.errors import ConfigurationError

# a b c
# d e f
# g h i
IDS = list("abcdefghi")


class TestQuorumGrid:
    """Test the row-major grid layout."""

    def test_size(self):
        assert QuorumGrid(IDS).size == 3

    @pytest.mark.parametrize("count", [2, 5, 8])
    def test_non_square_rejected(self, count):
        with pytest.raises(ConfigurationError, match="square number"):
            QuorumGrid(IDS[:count])

    def test_grid_and_list_index(self):
        grid = QuorumGrid(IDS)
        assert grid.get_grid_index("e") == GridIndex(1, 1)
        assert grid.get_grid_index("g") == GridIndex(2, 0)
        assert grid.get_list_index(GridIndex(2, 0)) == 6
        assert (grid.get_row(5), grid.get_col(5)) == (1, 2)

    def test_unknown_broker(self):
        with pytest.raises(ConfigurationError, match="not part of the GQPS grid"):
            QuorumGrid(IDS).get_grid_index("z")

    def test_rows_and_columns(self):
        grid = QuorumGrid(IDS)
        assert grid.get_broker_ids_in_same_row("e") == ["d", "e", "f"]
        assert grid.get_broker_ids_in_same_column("e") == ["b", "e", "h"]
        assert grid.get_other_broker_ids_in_same_row("e") == ["d", "f"]
        assert grid.get_other_broker_ids_in_same_column("e") == ["b", "h"]
        assert grid.get_other_broker_ids_in_same_row_and_column("a") == ["b", "c", "d", "g"]

    def test_same_row_and_column(self):
        grid = QuorumGrid(IDS)
        assert grid.are_in_same_row("a", "c")
        assert not grid.are_in_same_row("a", "d")
        assert grid.are_in_same_column("b", "h")
        assert not grid.are_in_same_column("b", "i")

    def test_every_row_meets_every_column_once(self):
        grid = QuorumGrid(IDS)
        for x in IDS:
            for y in IDS:
                common = set(grid.get_broker_ids_in_same_row(x)) & set(grid.get_broker_ids_in_same_column(y))
                assert len(common) == 1

    def test_single_broker_has_no_quorum_peers(self):
        grid = QuorumGrid(["solo"])
        assert grid.get_other_broker_ids_in_same_row_and_column("solo") == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
