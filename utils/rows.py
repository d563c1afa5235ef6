"""
Row coordinate conversions.

Three coordinate systems meet in the import/export pipeline:

    data position  0-based position of a row among the data rows
    _index         1-based Excel row number in the source sheet (header = 1)
    anchor row     0-based row of an embedded image's top-left anchor

Data row N (1-based Excel) has anchor row N - 1, so the first data row is
_index 2 and anchor row 1. All conversions go through these functions.
"""

HEADER_ROW = 1
FIRST_DATA_ROW = HEADER_ROW + 1


def data_position_to_index(position: int) -> int:
    """0-based data row position -> `_index` (1-based Excel row)."""
    return position + FIRST_DATA_ROW


def index_to_anchor_row(index: int) -> int:
    """`_index` -> 0-based image anchor row."""
    return index - 1


def anchor_row_to_index(anchor_row: int) -> int:
    """0-based image anchor row -> `_index`."""
    return anchor_row + 1


def target_row_for_position(position: int) -> int:
    """1-based output sheet row for the position-th exported row."""
    return position + FIRST_DATA_ROW
