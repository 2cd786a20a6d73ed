"""Redraw coalescing.

Any number of ``request_redraw()`` calls between two display refreshes
collapse into a single draw. The loop also listens to a ledger's change bus
so ledger mutations mark the frame dirty without callers having to.
"""

import logging
from typing import Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from shieldgrid.ledger.events import ChangeBus

__all__ = ['RenderLoop']

logger = logging.getLogger(__name__)


class RenderLoop:
    """Dirty-flag render loop.

    Parameters
    ----------
    draw : callable
        Invoked with no arguments to produce one frame.
    bus : ChangeBus, optional
        When given, every published event requests a redraw.
    """

    def __init__(self, draw: Callable[[], object], bus: Optional["ChangeBus"] = None):
        self._draw = draw
        self.dirty = True
        self.frames_drawn = 0
        self.last_result = None
        self._subscription = bus.subscribe(self._on_change) if bus is not None else None

    def request_redraw(self) -> None:
        self.dirty = True

    def _on_change(self, event) -> None:
        self.dirty = True

    def on_display_refresh(self) -> bool:
        """Draw once if dirty.

        Returns
        -------
        bool
            True when a frame was drawn.
        """
        if not self.dirty:
            return False
        # Cleared first so a redraw requested during the draw is kept
        self.dirty = False
        self.last_result = self._draw()
        self.frames_drawn += 1
        return True

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
