"""Pointer interaction state machine.

Interprets pointer, wheel and touch input against a :class:`Camera` and a
:class:`GridLedger`: selecting available cells, panning, and painting or
erasing cells owned by the session.

States::

    IDLE --primary on available cell / with modifier--> SELECTING
    IDLE --primary on locked or off-grid cell, or secondary--> PANNING
    IDLE --primary in paint mode on owned cell--> PAINTING
    any  --up / leave--> IDLE
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, TYPE_CHECKING

from shieldgrid.colors import normalize_color
from shieldgrid.contracts import ClaimFailure, InvalidClaim
from shieldgrid.ledger.events import affected_coords
from shieldgrid.ledger.models import Coord, OwnershipScope

if TYPE_CHECKING:
    from shieldgrid.ledger.ledger import GridLedger
    from shieldgrid.schemas import InternalConfig
    from shieldgrid.viewport.camera import Camera

__all__ = ['InteractionEngine', 'InteractionState', 'PointerButton', 'PointerEvent']

logger = logging.getLogger(__name__)


class InteractionState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    PANNING = "panning"
    PAINTING = "painting"


class PointerButton(IntEnum):
    PRIMARY = 0
    MIDDLE = 1
    SECONDARY = 2


@dataclass(frozen=True)
class PointerEvent:
    """Pointer position in viewport pixels plus button and held modifiers."""
    x: float
    y: float
    button: PointerButton = PointerButton.PRIMARY
    modifiers: FrozenSet[str] = field(default_factory=frozenset)


def _noop():
    pass


class InteractionEngine:
    """Selection, pan and paint handling for one session.

    Parameters
    ----------
    ledger : GridLedger
        Ledger queried for availability and mutated by paint / claim.
    camera : Camera
        Camera used for coordinate mapping and mutated by pan / wheel.
    scope : OwnershipScope, optional
        Transactions this session may edit with. Claims committed through
        :meth:`commit_claim` are added to it.
    paint_color : str
        Initial paint color.
    selection_modifiers : iterable of str
        Modifier names that start a rectangle selection without toggling.
    wheel_zoom_in, wheel_zoom_out : float
        Wheel zoom factors for negative / positive ``delta_y``.
    redraw : callable, optional
        Called whenever the picture may have changed.
    """

    def __init__(self, ledger: "GridLedger", camera: "Camera",
                 scope: Optional[OwnershipScope] = None,
                 paint_color: str = "#FF0000",
                 selection_modifiers: Iterable[str] = ("shift", "ctrl"),
                 wheel_zoom_in: float = 1.1, wheel_zoom_out: float = 0.9,
                 redraw: Optional[Callable[[], None]] = None):
        self.ledger = ledger
        self.camera = camera
        self.scope = scope if scope is not None else OwnershipScope()
        self.paint_color = normalize_color(paint_color)
        self.selection_modifiers = frozenset(selection_modifiers)
        self.wheel_zoom_in = wheel_zoom_in
        self.wheel_zoom_out = wheel_zoom_out
        self.redraw = redraw or _noop

        self.state = InteractionState.IDLE
        self.paint_mode = False
        self.erase_mode = False
        self.selection: Set[Coord] = set()
        self.hover: Optional[Coord] = None

        self._anchor: Optional[Coord] = None
        self._dragged = False
        self._last_pointer: Optional[Tuple[float, float]] = None
        self._last_painted: Optional[Coord] = None

        self._subscription = ledger.bus.subscribe(self._on_ledger_change)

    @classmethod
    def from_config(cls, config: "InternalConfig", ledger: "GridLedger", camera: "Camera",
                    scope: Optional[OwnershipScope] = None,
                    redraw: Optional[Callable[[], None]] = None) -> "InteractionEngine":
        return cls(
            ledger, camera, scope,
            paint_color=config.interaction.paint_color,
            selection_modifiers=config.interaction.selection_modifiers,
            wheel_zoom_in=config.viewport.wheel_zoom_in,
            wheel_zoom_out=config.viewport.wheel_zoom_out,
            redraw=redraw,
        )

    def close(self) -> None:
        """Detach from the ledger's bus."""
        self._subscription.unsubscribe()

    # ------------------------------------------------------------------
    # Pointer input
    # ------------------------------------------------------------------

    def pointer_down(self, event: PointerEvent) -> InteractionState:
        gx, gy = self.camera.to_grid(event.x, event.y)
        in_grid = self.camera.is_valid(gx, gy)
        self._last_pointer = (event.x, event.y)
        self._anchor = None
        self._dragged = False

        if event.button != PointerButton.PRIMARY:
            self.state = InteractionState.PANNING
        elif self.paint_mode and in_grid:
            if self.ledger.is_owned_by(gx, gy, self.scope):
                self.state = InteractionState.PAINTING
                self._last_painted = None
                self._paint(gx, gy)
            else:
                self.state = InteractionState.IDLE
        elif self.selection_modifiers & event.modifiers:
            self.state = InteractionState.SELECTING
            self._anchor = (gx, gy)
        elif in_grid and self.ledger.is_available(gx, gy):
            self.state = InteractionState.SELECTING
            self._anchor = (gx, gy)
            self.toggle(gx, gy)
        else:
            self.state = InteractionState.PANNING

        logger.debug("pointer_down (%d, %d) -> %s", gx, gy, self.state.value)
        return self.state

    def pointer_move(self, event: PointerEvent) -> InteractionState:
        gx, gy = self.camera.to_grid(event.x, event.y)
        in_grid = self.camera.is_valid(gx, gy)

        if self.state is InteractionState.PAINTING:
            if in_grid and (gx, gy) != self._last_painted and self.ledger.is_owned_by(gx, gy, self.scope):
                self._paint(gx, gy)
        elif self.state is InteractionState.PANNING:
            lx, ly = self._last_pointer or (event.x, event.y)
            dx, dy = event.x - lx, event.y - ly
            if dx or dy:
                self.camera.pan(dx, dy)
                self.redraw()
        elif self.state is InteractionState.SELECTING:
            # A drag only starts once the pointer leaves the anchor cell
            if in_grid and self._anchor is not None and (self._dragged or (gx, gy) != self._anchor):
                self._dragged = True
                self.select_rect(self._anchor, (gx, gy))
        else:
            hover = (gx, gy) if in_grid else None
            if hover != self.hover:
                self.hover = hover
                self.redraw()

        self._last_pointer = (event.x, event.y)
        return self.state

    def pointer_up(self, event: Optional[PointerEvent] = None) -> InteractionState:
        self._end_gesture()
        return self.state

    def pointer_leave(self) -> InteractionState:
        self._end_gesture()
        self.hover = None
        self.redraw()
        return self.state

    def _end_gesture(self) -> None:
        self.state = InteractionState.IDLE
        self._anchor = None
        self._dragged = False
        self._last_pointer = None
        self._last_painted = None

    def wheel(self, sx: float, sy: float, delta_y: float) -> bool:
        """Zoom at the pointer; positive ``delta_y`` zooms out."""
        factor = self.wheel_zoom_out if delta_y > 0 else self.wheel_zoom_in
        changed = self.camera.zoom_at(sx, sy, factor)
        if changed:
            self.redraw()
        return changed

    # Touch: single touches map onto the primary button, multi-touch is ignored

    def touch_start(self, touches: Sequence[Tuple[float, float]]) -> InteractionState:
        if len(touches) == 1:
            x, y = touches[0]
            return self.pointer_down(PointerEvent(x, y))
        return self.state

    def touch_move(self, touches: Sequence[Tuple[float, float]]) -> InteractionState:
        if len(touches) == 1:
            x, y = touches[0]
            return self.pointer_move(PointerEvent(x, y))
        return self.state

    def touch_end(self) -> InteractionState:
        return self.pointer_up()

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    def set_paint_mode(self, enabled: bool) -> None:
        self.paint_mode = bool(enabled)
        if self.state is InteractionState.PAINTING:
            self._end_gesture()
        self.selection.clear()
        self.redraw()

    def set_erase_mode(self, enabled: bool) -> None:
        self.erase_mode = bool(enabled)

    def set_paint_color(self, color) -> None:
        """Raises ValueError for an unparseable color."""
        self.paint_color = normalize_color(color)

    def _paint(self, x: int, y: int) -> bool:
        if self.erase_mode:
            changed = self.ledger.restore_original(x, y, self.scope)
        else:
            changed = self.ledger.recolor(x, y, self.paint_color, self.scope)
        self._last_painted = (x, y)
        if changed:
            self.redraw()
        return changed

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle(self, x: int, y: int) -> bool:
        """Toggle (x, y) in the selection. Only available cells can be added."""
        if (x, y) in self.selection:
            self.selection.discard((x, y))
        elif self.camera.is_valid(x, y) and self.ledger.is_available(x, y):
            self.selection.add((x, y))
        else:
            return False
        self.redraw()
        return True

    def select_rect(self, start: Coord, end: Coord) -> None:
        """Replace the selection with the available cells of the box start..end."""
        n = self.camera.grid_size
        min_x, max_x = sorted((start[0], end[0]))
        min_y, max_y = sorted((start[1], end[1]))
        min_x, min_y = max(min_x, 0), max(min_y, 0)
        max_x, max_y = min(max_x, n - 1), min(max_y, n - 1)

        self.selection = {
            (x, y)
            for x in range(min_x, max_x + 1)
            for y in range(min_y, max_y + 1)
            if self.ledger.is_available(x, y)
        }
        self.redraw()

    def clear_selection(self) -> None:
        self.selection.clear()
        self.redraw()

    def selected_cells(self) -> List[Coord]:
        """Selection sorted row-major."""
        return sorted(self.selection, key=lambda c: (c[1], c[0]))

    def _prune(self, coords: Optional[Iterable[Coord]] = None) -> List[Coord]:
        candidates = self.selection if coords is None else self.selection.intersection(coords)
        stale = [c for c in candidates if not self.ledger.is_available(*c)]
        if stale:
            self.selection.difference_update(stale)
            logger.debug("Pruned %d unavailable cell(s) from selection", len(stale))
            self.redraw()
        return stale

    def _on_ledger_change(self, event) -> None:
        if not self.selection:
            return
        self._prune(affected_coords(event))

    def commit_claim(self, color, contact_info: Optional[str] = None,
                     transaction_id: Optional[str] = None, url: Optional[str] = None,
                     username: Optional[str] = None) -> str:
        """Claim every selected cell in ``color``.

        Returns
        -------
        str
            Transaction id, also added to this session's scope.

        Raises
        ------
        InvalidClaim
            ``INVALID_INPUT`` for an empty selection. ``ALREADY_TAKEN`` when
            members became unavailable; they are pruned first so the caller
            can offer the remaining selection again.
        """
        if not self.selection:
            raise InvalidClaim(ClaimFailure.INVALID_INPUT, "No cells selected")

        stale = self._prune()
        if stale:
            raise InvalidClaim(
                ClaimFailure.ALREADY_TAKEN,
                f"{len(stale)} selected cell(s) are no longer available",
                sorted(stale),
            )

        cells = [(x, y, color) for x, y in self.selected_cells()]
        txn = self.ledger.claim(
            cells, contact_info,
            transaction_id=transaction_id, url=url, username=username,
        )
        self.scope.add(txn)
        self.selection.clear()
        self.redraw()
        return txn
