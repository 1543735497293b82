from __future__ import annotations

import pytest

from domain.models import DEFAULT_GAP, GridRow
from domain.services.block_store import BlockStore
from domain.services.grid_operations import (
    add_grid_column,
    convert_to_grid,
    dissolve_grid,
    fill_grid_cell,
    normalize_column_widths,
    remove_grid_column,
    set_column_widths,
)
from domain.services.layout_grouper import find_row
from tests.helpers.block_fixtures import grid_layout, ids, make_block, make_store, orders


def _grid(store: BlockStore, row_id: str) -> GridRow:
    row = find_row(store.layout_rows(), row_id)
    assert isinstance(row, GridRow)
    return row


def test_convert_middle_block_into_two_column_grid() -> None:
    store = make_store("A", "B", "C")

    conversion = convert_to_grid(store, "B", 2)

    assert conversion is not None
    new_id = conversion.block_ids[1]
    assert ids(store) == ["A", "B", new_id, "C"]
    assert orders(store) == [0, 1, 2, 3]
    b = store.get("B")
    created = store.get(new_id)
    assert b is not None and created is not None
    assert b.layout is not None and created.layout is not None
    assert (b.layout.row_id, b.layout.position, b.layout.columns, b.layout.gap) == (
        conversion.row_id,
        0,
        2,
        4,
    )
    assert (created.layout.row_id, created.layout.position) == (conversion.row_id, 1)
    assert created.type == "paragraph"
    assert [row.key for row in store.layout_rows()] == ["single-A", conversion.row_id, "single-C"]
    assert store.revision == 1


@pytest.mark.parametrize("columns", [2, 3, 4])
@pytest.mark.parametrize("index", [0, 2, 4])
def test_conversion_shape_holds_anywhere_in_document(columns: int, index: int) -> None:
    store = make_store(*range(1, 6))
    target = store.blocks[index].id

    conversion = convert_to_grid(store, target, columns, gap=2)

    assert conversion is not None
    assert len(store) == 5 + columns - 1
    assert orders(store) == list(range(len(store)))
    grid = _grid(store, conversion.row_id)
    assert grid.columns == columns
    assert grid.gap == 2
    assert grid.holes == ()
    assert grid.is_contiguous
    assert grid.cells[0] is not None and grid.cells[0].id == target
    assert grid.min_order == index


@pytest.mark.parametrize("columns", [0, 1, 5])
def test_convert_rejects_column_count_outside_range(columns: int) -> None:
    store = make_store(1)

    with pytest.raises(ValueError, match="columns"):
        convert_to_grid(store, 1, columns)

    assert ids(store) == [1]
    assert store.revision == 0


def test_convert_respects_configured_maximum() -> None:
    store = make_store(1)

    assert convert_to_grid(store, 1, 6, max_columns=6) is not None
    assert len(store) == 6


def test_convert_unknown_or_grid_block_is_a_no_op() -> None:
    store = make_store(1)
    conversion = convert_to_grid(store, 1, 2)
    assert conversion is not None
    revision = store.revision

    assert convert_to_grid(store, 99, 2) is None
    assert convert_to_grid(store, 1, 3) is None
    assert store.revision == revision


def test_conversion_is_undone_in_one_step() -> None:
    store = make_store(1, 2)
    convert_to_grid(store, 1, 3)

    assert store.undo()

    assert ids(store) == [1, 2]
    block = store.get(1)
    assert block is not None and block.layout is None


def test_fill_grid_cell_places_block_next_to_neighbours() -> None:
    blocks = [
        make_block(1, 0, layout=grid_layout("row_a", 0, columns=3)),
        make_block(2, 1, layout=grid_layout("row_a", 2, columns=3)),
        make_block(3, 2),
    ]
    store = make_store()
    store.replace_all(blocks)

    new_id = fill_grid_cell(store, "row_a", 1, "quote")

    assert new_id is not None
    assert ids(store) == [1, new_id, 2, 3]
    grid = _grid(store, "row_a")
    assert grid.holes == ()
    assert grid.cells[1] is not None and grid.cells[1].type == "quote"


def test_fill_grid_cell_rejects_occupied_and_out_of_range_cells() -> None:
    store = make_store()
    store.replace_all([make_block(1, 0, layout=grid_layout("row_a", 0))])

    assert fill_grid_cell(store, "row_a", 0) is None
    assert fill_grid_cell(store, "missing", 0) is None
    with pytest.raises(ValueError):
        fill_grid_cell(store, "row_a", 2)


def test_set_column_widths_normalizes_and_applies_to_all_members() -> None:
    store = make_store()
    store.replace_all(
        [
            make_block(1, 0, layout=grid_layout("row_a", 0)),
            make_block(2, 1, layout=grid_layout("row_a", 1)),
        ]
    )

    assert set_column_widths(store, "row_a", [1, 3])

    grid = _grid(store, "row_a")
    assert grid.column_widths == (25.0, 75.0)
    assert all(
        member.layout is not None and member.layout.column_widths == (25.0, 75.0)
        for member in grid.members
    )
    with pytest.raises(ValueError):
        set_column_widths(store, "row_a", [50, 25, 25])


def test_dissolve_grid_turns_members_into_single_rows() -> None:
    store = make_store()
    store.replace_all(
        [
            make_block(1, 0, layout=grid_layout("row_a", 0)),
            make_block(2, 1, layout=grid_layout("row_a", 1)),
        ]
    )

    assert dissolve_grid(store, "row_a") == 2

    assert [row.key for row in store.layout_rows()] == ["single-1", "single-2"]


@pytest.mark.parametrize(
    ("widths", "expected"),
    [
        ([], ()),
        ([0, 0], (50.0, 50.0)),
        ([50, 50], (50.0, 50.0)),
        ([1, 1, 2], (25.0, 25.0, 50.0)),
    ],
)
def test_normalize_column_widths(widths: list[float], expected: tuple[float, ...]) -> None:
    assert normalize_column_widths(widths) == expected


def test_add_grid_column_appends_an_empty_cell() -> None:
    store = make_store("A", "B", "C")
    conversion = convert_to_grid(store, "B", 2)
    assert conversion is not None
    revision = store.revision

    columns = add_grid_column(store, conversion.row_id)

    assert columns == 3
    assert store.revision == revision + 1
    grid = _grid(store, conversion.row_id)
    assert grid.columns == 3
    assert grid.holes == (2,)
    assert {member.layout.columns for member in grid.members if member.layout} == {3}


def test_add_grid_column_rescales_custom_widths() -> None:
    store = make_store("A")
    conversion = convert_to_grid(store, "A", 2)
    assert conversion is not None
    set_column_widths(store, conversion.row_id, [50, 50])

    add_grid_column(store, conversion.row_id)

    widths = _grid(store, conversion.row_id).column_widths
    assert widths is not None
    assert len(widths) == 3
    assert sum(widths) == pytest.approx(100)
    assert widths[0] == pytest.approx(widths[1])


def test_add_grid_column_respects_max_columns() -> None:
    store = make_store("A")
    conversion = convert_to_grid(store, "A", 3)
    assert conversion is not None
    add_grid_column(store, conversion.row_id, max_columns=4)
    revision = store.revision

    with pytest.raises(ValueError):
        add_grid_column(store, conversion.row_id, max_columns=4)
    assert store.revision == revision


def test_remove_grid_column_shifts_cells_and_demotes_block() -> None:
    store = make_store("A", "B", "C")
    conversion = convert_to_grid(store, "B", 3)
    assert conversion is not None
    _, middle, last = conversion.block_ids

    assert remove_grid_column(store, conversion.row_id, 1)

    assert ids(store) == ["A", "B", last, middle, "C"]
    assert orders(store) == [0, 1, 2, 3, 4]
    grid = _grid(store, conversion.row_id)
    assert grid.columns == 2
    assert [block.id if block else None for block in grid.cells] == ["B", last]
    demoted = store.get(middle)
    assert demoted is not None and demoted.layout is None
    assert [row.key for row in store.layout_rows()] == [
        "single-A",
        conversion.row_id,
        f"single-{middle}",
        "single-C",
    ]


def test_remove_grid_column_can_delete_the_block() -> None:
    store = make_store("A", "B", "C")
    conversion = convert_to_grid(store, "B", 3)
    assert conversion is not None
    first, _, last = conversion.block_ids

    remove_grid_column(store, conversion.row_id, 0, keep_block=False)

    assert ids(store) == ["A", conversion.block_ids[1], last, "C"]
    assert store.get(first) is None
    grid = _grid(store, conversion.row_id)
    assert [block.id if block else None for block in grid.cells] == [
        conversion.block_ids[1],
        last,
    ]


def test_remove_grid_column_keeps_two_columns_and_undoes_in_one_step() -> None:
    store = make_store("A", "B")
    conversion = convert_to_grid(store, "A", 2)
    assert conversion is not None
    revision = store.revision

    with pytest.raises(ValueError):
        remove_grid_column(store, conversion.row_id, 1)
    with pytest.raises(ValueError):
        remove_grid_column(store, conversion.row_id, 5)
    assert store.revision == revision

    add_grid_column(store, conversion.row_id)
    before = store.blocks
    remove_grid_column(store, conversion.row_id, 0)
    store.undo()

    assert store.blocks == before


def test_convert_without_gap_uses_default_gap() -> None:
    store = make_store("A")

    conversion = convert_to_grid(store, "A", 2, gap=None)

    assert conversion is not None
    assert _grid(store, conversion.row_id).gap == DEFAULT_GAP
