"""Ledger contract.

Enforces the guarantee that after restore (and in tests, after any
mutation) the cell map, ownership records and reverse index agree.
"""

from typing import TYPE_CHECKING, Dict

from shieldgrid.contracts.base import require

if TYPE_CHECKING:
    from shieldgrid.ledger.models import Cell, Coord, OwnershipRecord


def assert_ledger_consistent(
    cells: "Dict[Coord, Cell]",
    records: "Dict[str, OwnershipRecord]",
    owner_index: "Dict[Coord, str]",
    grid_size: int,
) -> None:
    """Enforce ledger invariants.

    Parameters
    ----------
    cells : dict
        Coordinate -> Cell map.
    records : dict
        Transaction id -> OwnershipRecord map.
    owner_index : dict
        Coordinate -> transaction id reverse index.
    grid_size : int
        Side length of the grid.

    Raises
    ------
    ContractViolation
        If any invariant is violated
    """
    for (x, y), cell in cells.items():
        require(
            0 <= x < grid_size and 0 <= y < grid_size,
            f"Ledger contract violated: cell ({x}, {y}) outside grid of size {grid_size}"
        )
        require(
            (cell.x, cell.y) == (x, y),
            f"Ledger contract violated: cell stored at ({x}, {y}) reports ({cell.x}, {cell.y})"
        )

    for coord, txn in owner_index.items():
        require(
            coord in cells,
            f"Ledger contract violated: index entry {coord} -> {txn} has no cell"
        )
        require(
            txn in records,
            f"Ledger contract violated: index entry {coord} -> unknown transaction '{txn}'"
        )
        require(
            coord in records[txn].cell_coords,
            f"Ledger contract violated: transaction '{txn}' does not list {coord}"
        )

    for txn, record in records.items():
        require(
            len(record.cell_coords) > 0,
            f"Ledger contract violated: transaction '{txn}' has no coordinates"
        )

