"""Change notification bus.

The ledger publishes one event per mutation. Consumers (render loop,
interaction engine, autosave, UI panels) subscribe and receive a
``Subscription`` handle; calling ``unsubscribe()`` (or leaving the ``with``
block) detaches the callback so nothing references a torn-down ledger.

Payload kinds:

- ``CellChanged(x, y, cell)``: one cell created or recolored
- ``BatchChange(changes)``: many cells at once; ``cell is None`` means removed
- ``CellRemoved(x, y)``: one cell purged (lazy expiry, owner clear)
- ``FullRefresh()``: everything may have changed
- ``LedgerMetadataChanged(transaction_id)``: ownership record created or edited

Consumers must treat any other payload as a full refresh; use
:func:`affected_coords`, which returns ``None`` in that case.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Set, Tuple

from shieldgrid.ledger.models import Cell, Coord

__all__ = [
    'CellChanged', 'BatchChange', 'CellChange', 'CellRemoved', 'FullRefresh',
    'LedgerMetadataChanged', 'ChangeBus', 'Subscription', 'affected_coords',
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellChanged:
    x: int
    y: int
    cell: Cell


@dataclass(frozen=True)
class CellChange:
    """One entry of a batch; ``cell`` is None when the coordinate was removed."""
    x: int
    y: int
    cell: Optional[Cell]


@dataclass(frozen=True)
class BatchChange:
    changes: Tuple[CellChange, ...]

    @property
    def removed(self) -> Tuple[Coord, ...]:
        return tuple((c.x, c.y) for c in self.changes if c.cell is None)


@dataclass(frozen=True)
class CellRemoved:
    x: int
    y: int


@dataclass(frozen=True)
class FullRefresh:
    pass


@dataclass(frozen=True)
class LedgerMetadataChanged:
    transaction_id: Optional[str] = None


def affected_coords(event) -> Optional[Set[Coord]]:
    """Coordinates touched by ``event``.

    Returns an empty set for metadata-only events and ``None`` when the
    consumer must assume everything changed (full refresh or unknown payload).
    """
    if isinstance(event, CellChanged):
        return {(event.x, event.y)}
    if isinstance(event, CellRemoved):
        return {(event.x, event.y)}
    if isinstance(event, BatchChange):
        return {(c.x, c.y) for c in event.changes}
    if isinstance(event, LedgerMetadataChanged):
        return set()
    return None


class Subscription:
    """Handle returned by :meth:`ChangeBus.subscribe`."""

    def __init__(self, bus: "ChangeBus", callback: Callable):
        self._bus = bus
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Detach the callback. Safe to call multiple times."""
        if self.active:
            self._bus._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class ChangeBus:
    """Synchronous publish/subscribe fan-out.

    Callbacks run in subscription order on the publishing call stack. A
    failing subscriber is logged and skipped so the remaining subscribers
    still see the event; the ledger mutation itself has already completed.
    """

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(self, callback: Callable) -> Subscription:
        sub = Subscription(self, callback)
        self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        self._subscriptions = [s for s in self._subscriptions if s is not sub]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event) -> None:
        # Copy: callbacks may unsubscribe while we iterate
        for sub in list(self._subscriptions):
            if not sub.active:
                continue
            try:
                sub.callback(event)
            except Exception:
                logger.exception("Change subscriber %r failed on %s", sub.callback, type(event).__name__)

    def clear(self) -> None:
        """Drop every subscription (teardown)."""
        for sub in list(self._subscriptions):
            sub.unsubscribe()
