"""Grid ownership ledger with time-based locking.

Holds the sparse cell map, the ownership records and the
``coordinate -> transaction`` reverse index, and is the only component
allowed to mutate them. Every mutation publishes one event on the
ledger's :class:`~shieldgrid.ledger.events.ChangeBus`.
"""

import logging
import operator
import secrets
import string
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, TYPE_CHECKING

import pandas as pd

from shieldgrid.clock import Clock, SystemClock, epoch_ms
from shieldgrid.colors import normalize_color
from shieldgrid.contracts import ClaimFailure, InvalidClaim, OutOfBounds, assert_ledger_consistent
from shieldgrid.ledger.events import (
    BatchChange,
    CellChange,
    CellChanged,
    CellRemoved,
    ChangeBus,
    FullRefresh,
    LedgerMetadataChanged,
)
from shieldgrid.ledger.models import (
    ANONYMOUS,
    Cell,
    CellSpec,
    Coord,
    OwnershipRecord,
    Snapshot,
    SnapshotCell,
    SnapshotOwnership,
    TransactionView,
    as_scope,
    cell_key,
    parse_key,
)

if TYPE_CHECKING:
    from shieldgrid.schemas import InternalConfig

__all__ = ['GridLedger', 'new_transaction_id']

logger = logging.getLogger(__name__)

_TXN_ALPHABET = string.ascii_uppercase + string.digits
_KEEP = object()


def new_transaction_id(now: datetime) -> str:
    """Issue an id of the form ``TXN-<epoch ms>-<9 uppercase alphanumerics>``."""
    suffix = "".join(secrets.choice(_TXN_ALPHABET) for _ in range(9))
    return f"TXN-{epoch_ms(now)}-{suffix}"


class GridLedger:
    """Authoritative state of one grid.

    A cell with no entry is available. A claimed cell stays locked until
    ``now >= expires_at``; from then on it is logically available. Expiry is
    checked lazily by :meth:`is_available` (which also purges the stale
    entry) and enforced in bulk by :meth:`sweep_expired`.

    Ownership records group the cells claimed together and authorize later
    recolor / restore requests. A coordinate's *currently valid* owner is
    whatever the reverse index says, and only while the cell is live; the
    record itself keeps listing the coordinate after expiry until purged.

    Thread model: single mutator. All calls are expected from one event
    loop (see :class:`shieldgrid.session.GridSession`).

    Example usage::

        ledger = GridLedger(grid_size=10, lock_duration=timedelta(seconds=1))
        txn = ledger.claim([(0, 0, "#FF0000"), (0, 1, "#FF0000")], "a@b.org")
        ledger.recolor(0, 0, "#00FF00", txn)   # True
        ledger.recolor(0, 0, "#00FF00", "TXN-other")   # False
    """

    def __init__(self, grid_size: int, lock_duration: timedelta,
                 clock: Optional[Clock] = None,
                 bus: Optional[ChangeBus] = None,
                 clear_policy: str = "full",
                 default_username: str = ANONYMOUS):
        """Create an empty ledger.

        Parameters
        ----------
        grid_size : int
            Cells per side; valid coordinates are ``0 <= x, y < grid_size``.
        lock_duration : timedelta
            Lock window applied to every claimed cell.
        clock : Clock, optional
            Source of "now". Defaults to the UTC system clock.
        bus : ChangeBus, optional
            Bus to publish on. A private bus is created if omitted.
        clear_policy : {"full", "partial"}
            What :meth:`clear_owned` removes when given explicit coordinates.
        default_username : str
            Username stored on records claimed without one.
        """
        if grid_size < 1:
            raise ValueError(f"grid_size must be positive, got {grid_size}")
        if lock_duration <= timedelta(0):
            raise ValueError("lock_duration must be positive")
        if clear_policy not in ("full", "partial"):
            raise ValueError(f"Unknown clear_policy: {clear_policy!r}")

        self.grid_size = grid_size
        self.lock_duration = lock_duration
        self.clock = clock or SystemClock()
        self.bus = bus or ChangeBus()
        self.clear_policy = clear_policy
        self.default_username = default_username

        self._cells: Dict[Coord, Cell] = {}
        self._records: Dict[str, OwnershipRecord] = {}
        self._owner_index: Dict[Coord, str] = {}

    @classmethod
    def from_config(cls, config: "InternalConfig", clock: Optional[Clock] = None,
                    bus: Optional[ChangeBus] = None) -> "GridLedger":
        return cls(
            grid_size=config.grid.grid_size,
            lock_duration=config.grid.lock_duration,
            clock=clock,
            bus=bus,
            clear_policy=config.ownership.clear_policy,
            default_username=config.ownership.default_username,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_size and 0 <= y < self.grid_size

    def _purge(self, coord: Coord) -> None:
        self._cells.pop(coord, None)
        self._owner_index.pop(coord, None)

    def _live_cell(self, x: int, y: int) -> Optional[Cell]:
        """Live entry at (x, y); an expired entry is purged on the way."""
        cell = self._cells.get((x, y))
        if cell is None:
            return None
        if cell.is_expired(self.clock.now()):
            self._purge((x, y))
            logger.debug("Cell (%d, %d) expired, purged lazily", x, y)
            self.bus.publish(CellRemoved(x, y))
            return None
        return cell

    def is_available(self, x: int, y: int) -> bool:
        """True if no live entry exists at (x, y).

        Purges an expired entry first. Off-grid coordinates are never
        available.
        """
        if not self.in_bounds(x, y):
            return False
        return self._live_cell(x, y) is None

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    @staticmethod
    def parse_cells(cells) -> List[CellSpec]:
        """Normalize a claim cell list to :class:`CellSpec` items.

        Raises
        ------
        InvalidClaim
            ``INVALID_INPUT`` for malformed items, non-integer (or boolean)
            coordinates and unparseable colors.
        """
        try:
            specs = [CellSpec.coerce(c) for c in cells]
            for s in specs:
                if isinstance(s.x, bool) or isinstance(s.y, bool):
                    raise TypeError(f"coordinates must be integers, got ({s.x!r}, {s.y!r})")
            specs = [
                CellSpec(operator.index(s.x), operator.index(s.y), normalize_color(s.color))
                for s in specs
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidClaim(ClaimFailure.INVALID_INPUT, f"Malformed cell list: {e}") from e
        return specs

    def claim(self, cells: Iterable, contact_info: Optional[str] = None, *,
              transaction_id: Optional[str] = None,
              url: Optional[str] = None,
              username: Optional[str] = None,
              original_color: Optional[str] = None) -> str:
        """Lock a batch of available cells under one new ownership record.

        All validation happens before any mutation, so a rejected claim
        leaves the ledger untouched.

        Parameters
        ----------
        cells : iterable
            ``(x, y, color)`` tuples, ``{"x", "y", "color"}`` dicts or
            :class:`CellSpec` items.
        contact_info : str, optional
            Opaque donor-supplied string stored on every cell.
        transaction_id : str, optional
            Id issued by the claim authorization layer. Generated if omitted.
        url, username : str, optional
            Record metadata. ``username`` defaults to the configured
            anonymous label.
        original_color : str, optional
            Color restored by :meth:`restore_original`. Defaults to the
            first cell's color.

        Returns
        -------
        str
            The transaction id of the new record.

        Raises
        ------
        InvalidClaim
            ``INVALID_INPUT`` for an empty or malformed list, duplicate
            coordinates or a reused transaction id; ``ALREADY_TAKEN`` when
            any cell is currently locked (``coords`` lists them).
        OutOfBounds
            If any coordinate is outside the grid.
        """
        specs = self.parse_cells(cells)
        if not specs:
            raise InvalidClaim(ClaimFailure.INVALID_INPUT, "Claim needs at least one cell")

        coords = [(s.x, s.y) for s in specs]
        if len(set(coords)) != len(coords):
            dupes = sorted({c for c in coords if coords.count(c) > 1})
            raise InvalidClaim(ClaimFailure.INVALID_INPUT, f"Duplicate coordinates: {dupes}", dupes)

        off_grid = [c for c in coords if not self.in_bounds(*c)]
        if off_grid:
            raise OutOfBounds(off_grid, self.grid_size)

        if transaction_id is not None and transaction_id in self._records:
            raise InvalidClaim(
                ClaimFailure.INVALID_INPUT, f"Transaction '{transaction_id}' already recorded"
            )

        try:
            base_color = normalize_color(original_color) if original_color else specs[0].color
        except ValueError as e:
            raise InvalidClaim(ClaimFailure.INVALID_INPUT, str(e)) from e

        taken = [c for c in coords if not self.is_available(*c)]
        if taken:
            raise InvalidClaim(
                ClaimFailure.ALREADY_TAKEN,
                f"{len(taken)} of {len(coords)} cell(s) already taken",
                taken,
            )

        now = self.clock.now()
        expires = now + self.lock_duration
        txn = transaction_id or new_transaction_id(now)

        changes = []
        for s in specs:
            cell = Cell(s.x, s.y, s.color, now, expires, contact_info)
            self._cells[(s.x, s.y)] = cell
            self._owner_index[(s.x, s.y)] = txn
            changes.append(CellChange(s.x, s.y, cell))

        self._records[txn] = OwnershipRecord(
            transaction_id=txn,
            cell_coords=frozenset(coords),
            original_color=base_color,
            claimed_at=now,
            url=url,
            username=username or self.default_username,
        )

        logger.info("Claimed %d cell(s) as %s until %s", len(specs), txn, expires.isoformat())
        self.bus.publish(BatchChange(tuple(changes)))
        self.bus.publish(LedgerMetadataChanged(txn))
        return txn

    # ------------------------------------------------------------------
    # Ownership queries
    # ------------------------------------------------------------------

    def owner_of(self, x: int, y: int) -> Optional[str]:
        """Transaction currently owning (x, y), or None if free, expired or orphaned."""
        if not self.in_bounds(x, y) or self._live_cell(x, y) is None:
            return None
        return self._owner_index.get((x, y))

    def is_owned_by(self, x: int, y: int, requesting) -> bool:
        owner = self.owner_of(x, y)
        return owner is not None and owner in as_scope(requesting)

    def get_record(self, transaction_id: str) -> Optional[OwnershipRecord]:
        return self._records.get(transaction_id)

    def get_url(self, x: int, y: int) -> Optional[str]:
        owner = self.owner_of(x, y)
        return self._records[owner].url if owner else None

    def original_color_of(self, x: int, y: int) -> Optional[str]:
        owner = self.owner_of(x, y)
        return self._records[owner].original_color if owner else None

    def _live_cells_of(self, txn: str) -> List[Cell]:
        record = self._records.get(txn)
        if record is None:
            return []
        now = self.clock.now()
        live = []
        for coord in record.cell_coords:
            if self._owner_index.get(coord) != txn:
                continue
            cell = self._cells.get(coord)
            if cell is not None and not cell.is_expired(now):
                live.append(cell)
        return live

    def owned_cells(self, requesting) -> List[Tuple[str, Cell]]:
        """``(transaction_id, cell)`` for every live cell in scope."""
        owned = []
        for txn in sorted(as_scope(requesting)):
            owned.extend((txn, cell) for cell in self._live_cells_of(txn))
        return owned

    def owned_count(self, requesting) -> int:
        return sum(len(self._live_cells_of(txn)) for txn in as_scope(requesting))

    def transactions(self, requesting=None) -> List[TransactionView]:
        """Records that still own at least one live cell, newest first.

        Restricted to ``requesting``'s scope when given.
        """
        ids = as_scope(requesting) if requesting is not None else self._records.keys()
        views = []
        for txn in ids:
            record = self._records.get(txn)
            if record is None:
                continue
            cells = sorted(self._live_cells_of(txn), key=lambda c: (c.y, c.x))
            if cells:
                views.append(TransactionView(
                    transaction_id=txn,
                    claimed_at=record.claimed_at,
                    cells=tuple(cells),
                    original_color=record.original_color,
                    url=record.url,
                    username=record.username,
                ))
        views.sort(key=lambda v: v.claimed_at, reverse=True)
        return views

    def transactions_frame(self, requesting=None) -> pd.DataFrame:
        """Tabular summary of :meth:`transactions` (one row per record)."""
        columns = ["transaction_id", "username", "url", "claimed_at",
                   "cell_count", "original_color", "expires_at"]
        rows = [
            {
                "transaction_id": v.transaction_id,
                "username": v.username,
                "url": v.url,
                "claimed_at": v.claimed_at,
                "cell_count": v.count,
                "original_color": v.original_color,
                "expires_at": max(c.expires_at for c in v.cells),
            }
            for v in self.transactions(requesting)
        ]
        return pd.DataFrame(rows, columns=columns)

    # ------------------------------------------------------------------
    # Cell queries
    # ------------------------------------------------------------------

    def get_cell(self, x: int, y: int) -> Optional[Cell]:
        """Live cell at (x, y) or None. Does not purge."""
        cell = self._cells.get((x, y))
        if cell is None or cell.is_expired(self.clock.now()):
            return None
        return cell

    def all_cells(self) -> List[Cell]:
        now = self.clock.now()
        return [c for c in self._cells.values() if not c.is_expired(now)]

    def __len__(self) -> int:
        return len(self._cells)

    def cells_in_range(self, min_x: int, min_y: int, max_x: int, max_y: int) -> Iterator[Cell]:
        """Live cells with ``min <= coord < max`` on both axes.

        Walks whichever is smaller: the rectangle or the cell map, so cost
        is bounded by the visible area regardless of total grid size.
        """
        now = self.clock.now()
        area = max(0, max_x - min_x) * max(0, max_y - min_y)
        if area <= len(self._cells):
            for y in range(min_y, max_y):
                for x in range(min_x, max_x):
                    cell = self._cells.get((x, y))
                    if cell is not None and not cell.is_expired(now):
                        yield cell
        else:
            for (x, y), cell in list(self._cells.items()):
                if min_x <= x < max_x and min_y <= y < max_y and not cell.is_expired(now):
                    yield cell

    def time_remaining(self, x: int, y: int) -> timedelta:
        cell = self._cells.get((x, y))
        if cell is None:
            return timedelta(0)
        remaining = cell.expires_at - self.clock.now()
        return remaining if remaining > timedelta(0) else timedelta(0)

    @staticmethod
    def format_time_remaining(remaining: timedelta) -> str:
        """Human readable lock time, e.g. ``"2d 5h remaining"``."""
        total = remaining.total_seconds()
        if total <= 0:
            return "Available"
        days = int(total // 86400)
        hours = int((total % 86400) // 3600)
        minutes = int((total % 3600) // 60)
        if days > 0:
            return f"{days}d {hours}h remaining"
        if hours > 0:
            return f"{hours}h {minutes}m remaining"
        return f"{minutes}m remaining"

    @staticmethod
    def cells_bounds(coords: Iterable[Coord]) -> Optional[Tuple[int, int, int, int]]:
        """Inclusive bounding box ``(min_x, min_y, max_x, max_y)``; None if empty."""
        coords = list(coords)
        if not coords:
            return None
        xs = [c[0] for c in coords]
        ys = [c[1] for c in coords]
        return min(xs), min(ys), max(xs), max(ys)

    # ------------------------------------------------------------------
    # Authorized edits
    # ------------------------------------------------------------------

    def _apply_color(self, x: int, y: int, color, requesting, action: str) -> bool:
        if not self.in_bounds(x, y):
            return False
        cell = self._live_cell(x, y)
        if cell is None:
            logger.debug("%s (%d, %d) denied: no live cell", action, x, y)
            return False
        owner = self._owner_index.get((x, y))
        if owner is None or owner not in as_scope(requesting):
            logger.debug("%s (%d, %d) denied: not owned by requester", action, x, y)
            return False
        if color is None:
            color = self._records[owner].original_color
        try:
            color = normalize_color(color)
        except ValueError:
            return False
        updated = cell.with_color(color)
        self._cells[(x, y)] = updated
        self.bus.publish(CellChanged(x, y, updated))
        return True

    def recolor(self, x: int, y: int, new_color, requesting) -> bool:
        """Change the color of a live cell owned by ``requesting``.

        Returns False (never raises) for unowned, expired, off-grid cells
        or unparseable colors. ``expires_at`` is never changed.
        """
        if new_color is None:
            return False
        return self._apply_color(x, y, new_color, requesting, "recolor")

    def restore_original(self, x: int, y: int, requesting) -> bool:
        """Reset an owned cell to its record's original color."""
        return self._apply_color(x, y, None, requesting, "restore")

    # ------------------------------------------------------------------
    # Expiry and removal
    # ------------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Remove every cell with ``expires_at <= now``.

        Returns
        -------
        int
            Number of cells removed. One ``BatchChange`` is published when
            the count is non-zero.
        """
        now = self.clock.now()
        expired = [coord for coord, cell in self._cells.items() if cell.expires_at <= now]
        for coord in expired:
            self._purge(coord)
        if expired:
            logger.info("Sweep removed %d expired cell(s)", len(expired))
            self.bus.publish(BatchChange(tuple(CellChange(x, y, None) for x, y in expired)))
        return len(expired)

    def clear_all(self) -> None:
        """Admin clear: drop every cell and record."""
        n_cells, n_records = len(self._cells), len(self._records)
        self._cells.clear()
        self._records.clear()
        self._owner_index.clear()
        logger.info("Cleared ledger (%d cells, %d records)", n_cells, n_records)
        self.bus.publish(FullRefresh())

    def _remove_owned(self, coords: Iterable[Coord]) -> List[Coord]:
        removed = []
        for coord in coords:
            if coord in self._owner_index:
                self._purge(coord)
                removed.append(coord)
        return removed

    def purge_record(self, transaction_id: str) -> int:
        """Delete a record and every cell it still owns. Returns cells removed."""
        record = self._records.pop(transaction_id, None)
        if record is None:
            return 0
        owned = [c for c in record.cell_coords if self._owner_index.get(c) == transaction_id]
        removed = self._remove_owned(owned)
        logger.info("Purged %s (%d live cell(s))", transaction_id, len(removed))
        if removed:
            self.bus.publish(BatchChange(tuple(CellChange(x, y, None) for x, y in removed)))
        self.bus.publish(LedgerMetadataChanged(transaction_id))
        return len(removed)

    def clear_owned(self, requesting, coords: Optional[Iterable[Coord]] = None) -> int:
        """Release cells owned by ``requesting``.

        With ``clear_policy="full"`` every record in scope is purged along
        with its live cells, whatever ``coords`` says. With ``"partial"``
        only ``coords`` (or every owned coordinate when omitted) are
        released; records left with no coordinates are dropped.

        Returns
        -------
        int
            Number of cells removed.
        """
        scope = as_scope(requesting)
        if self.clear_policy == "full" or coords is None:
            return sum(self.purge_record(txn) for txn in sorted(scope) if txn in self._records)

        targets = [c for c in coords if self._owner_index.get(tuple(c)) in scope]
        touched = {self._owner_index[tuple(c)] for c in targets}
        removed = self._remove_owned(tuple(c) for c in targets)
        for txn in touched:
            record = self._records[txn]
            remaining = record.cell_coords - set(removed)
            if remaining:
                record.cell_coords = frozenset(remaining)
            else:
                del self._records[txn]
        logger.info("Released %d owned cell(s) across %d record(s)", len(removed), len(touched))
        if removed:
            self.bus.publish(BatchChange(tuple(CellChange(x, y, None) for x, y in removed)))
        for txn in sorted(touched):
            self.bus.publish(LedgerMetadataChanged(txn))
        return len(removed)

    def update_record(self, transaction_id: str, *, url=_KEEP, username=_KEEP,
                      original_color=_KEEP) -> bool:
        """Edit record metadata. Unknown transactions or bad colors return False."""
        record = self._records.get(transaction_id)
        if record is None:
            return False
        if original_color is not _KEEP:
            try:
                original_color = normalize_color(original_color)
            except ValueError:
                return False
            record.original_color = original_color
        if url is not _KEEP:
            record.url = url
        if username is not _KEEP:
            record.username = username or self.default_username
        self.bus.publish(LedgerMetadataChanged(transaction_id))
        return True

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> Snapshot:
        """Plain-dict export keyed by ``"x,y"`` and transaction id."""
        return {
            "cells": {cell_key(x, y): cell.to_dict() for (x, y), cell in self._cells.items()},
            "ownership": {txn: rec.to_dict() for txn, rec in self._records.items()},
        }

    def restore(self, snapshot: Optional[Snapshot]) -> Dict[str, int]:
        """Replace all state with ``snapshot``.

        Malformed entries are dropped and logged, never raised. Expired
        cells are swept before the new state goes live, then a
        ``FullRefresh`` is published.

        Returns
        -------
        dict
            Counts: ``cells``, ``records``, ``dropped``, ``expired``.
        """
        snapshot = snapshot if isinstance(snapshot, dict) else {}
        raw_cells = snapshot.get("cells") or {}
        raw_records = snapshot.get("ownership") or {}
        if not isinstance(raw_cells, dict):
            logger.warning("Snapshot 'cells' is %s, expected mapping; ignoring", type(raw_cells).__name__)
            raw_cells = {}
        if not isinstance(raw_records, dict):
            logger.warning("Snapshot 'ownership' is %s, expected mapping; ignoring", type(raw_records).__name__)
            raw_records = {}

        dropped = 0
        cells: Dict[Coord, Cell] = {}
        for key, raw in raw_cells.items():
            try:
                kx, ky = parse_key(str(key))
                entry = SnapshotCell.model_validate(raw)
            except (ValueError, TypeError) as e:
                logger.warning("Dropping malformed cell %r: %s", key, e)
                dropped += 1
                continue
            x = kx if entry.x is None else entry.x
            y = ky if entry.y is None else entry.y
            if (x, y) != (kx, ky) or not self.in_bounds(x, y):
                logger.warning("Dropping cell %r: coordinates (%d, %d) invalid for key", key, x, y)
                dropped += 1
                continue
            cells[(x, y)] = Cell(x, y, entry.color, entry.claimed_at, entry.expires_at, entry.contact_info)

        records: Dict[str, OwnershipRecord] = {}
        for txn, raw in raw_records.items():
            try:
                entry = SnapshotOwnership.model_validate(raw)
            except (ValueError, TypeError) as e:
                logger.warning("Dropping malformed ownership record %r: %s", txn, e)
                dropped += 1
                continue
            coords = frozenset(c for c in entry.cell_coords if self.in_bounds(*c))
            if not coords:
                logger.warning("Dropping ownership record %r: no in-grid coordinates", txn)
                dropped += 1
                continue
            records[str(txn)] = OwnershipRecord(
                transaction_id=str(txn),
                cell_coords=coords,
                original_color=entry.original_color,
                claimed_at=entry.claimed_at,
                url=entry.url,
                username=entry.username or self.default_username,
            )

        # Later claims win a contested coordinate
        owner_index: Dict[Coord, str] = {}
        for record in sorted(records.values(), key=lambda r: r.claimed_at):
            for coord in record.cell_coords:
                if coord in cells:
                    owner_index[coord] = record.transaction_id

        assert_ledger_consistent(cells, records, owner_index, self.grid_size)

        self._cells = cells
        self._records = records
        self._owner_index = owner_index
        expired = self.sweep_expired()

        logger.info(
            "Restored %d cell(s), %d record(s); dropped %d malformed, %d expired",
            len(self._cells), len(self._records), dropped, expired,
        )
        self.bus.publish(FullRefresh())
        return {"cells": len(self._cells), "records": len(self._records),
                "dropped": dropped, "expired": expired}

    def check_consistency(self) -> None:
        """Raise ContractViolation if cells, records and index disagree."""
        assert_ledger_consistent(self._cells, self._records, self._owner_index, self.grid_size)
