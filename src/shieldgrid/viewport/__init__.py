"""Viewport camera and pointer interaction."""

from shieldgrid.viewport.camera import Camera
from shieldgrid.viewport.interaction import (
    InteractionEngine,
    InteractionState,
    PointerButton,
    PointerEvent,
)

__all__ = ['Camera', 'InteractionEngine', 'InteractionState', 'PointerButton', 'PointerEvent']
