"""
Tests for row coordinate conversions.
"""

from utils.rows import (
    HEADER_ROW,
    FIRST_DATA_ROW,
    data_position_to_index,
    index_to_anchor_row,
    anchor_row_to_index,
    target_row_for_position,
)


class TestDataPositionToIndex:

    def test_first_data_row_is_excel_row_two(self):
        assert data_position_to_index(0) == 2

    def test_offset_is_constant(self):
        assert data_position_to_index(9) == 11

    def test_first_data_row_follows_header(self):
        assert FIRST_DATA_ROW == HEADER_ROW + 1


class TestIndexToAnchorRow:

    def test_first_data_row_anchors_at_one(self):
        assert index_to_anchor_row(2) == 1

    def test_header_anchors_at_zero(self):
        assert index_to_anchor_row(1) == 0


class TestAnchorRowToIndex:

    def test_anchor_one_is_index_two(self):
        assert anchor_row_to_index(1) == 2

    def test_inverse_of_index_to_anchor_row(self):
        for index in range(2, 50):
            assert anchor_row_to_index(index_to_anchor_row(index)) == index


class TestTargetRowForPosition:

    def test_first_exported_row_is_two(self):
        assert target_row_for_position(0) == 2

    def test_independent_of_source_index(self):
        # Position 3 always lands on row 5, whatever `_index` the product had
        assert target_row_for_position(3) == 5
