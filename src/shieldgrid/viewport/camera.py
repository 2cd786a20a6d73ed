"""Camera: screen <-> grid mapping, zoom, pan and culling.

Screen space is pixels with the origin at the viewport's top-left corner.
A grid cell ``(x, y)`` covers the square whose top-left corner is
``(x * cell_size * scale + offset_x, y * cell_size * scale + offset_y)``
and whose side is ``cell_size * scale`` pixels.
"""

import logging
import math
from typing import Optional, Tuple, TYPE_CHECKING

from shieldgrid.contracts import assert_camera_valid

if TYPE_CHECKING:
    from shieldgrid.schemas import InternalConfig

__all__ = ['Camera']

logger = logging.getLogger(__name__)

# Absorbs float error so to_grid(to_screen(x, y)) lands back on (x, y)
_FLOOR_EPS = 1e-9


class Camera:
    """Viewport camera over a square grid.

    Parameters
    ----------
    grid_size : int
        Cells per side.
    cell_size : float
        Pixels per cell at ``scale == 1``.
    scale : float
        Initial zoom factor.
    min_scale, max_scale : float
        Zoom bounds; every mutation clamps to them.
    center_padding_px : float
        Margin kept around a rectangle fitted by :meth:`center`.
    center_max_scale : float
        Upper zoom bound used by :meth:`center` so a single cell does not
        fill the whole viewport.
    """

    def __init__(self, grid_size: int, cell_size: float = 10.0, scale: float = 0.5,
                 min_scale: float = 0.1, max_scale: float = 10.0,
                 offset_x: float = 0.0, offset_y: float = 0.0,
                 center_padding_px: float = 40.0, center_max_scale: float = 4.0):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        if not 0 < min_scale <= max_scale:
            raise ValueError(f"Invalid scale bounds [{min_scale}, {max_scale}]")

        self.grid_size = grid_size
        self.cell_size = float(cell_size)
        self.min_scale = float(min_scale)
        self.max_scale = float(max_scale)
        self.scale = self._clamp(float(scale))
        self.offset_x = float(offset_x)
        self.offset_y = float(offset_y)
        self.center_padding_px = float(center_padding_px)
        self.center_max_scale = float(center_max_scale)

        assert_camera_valid(self)

    @classmethod
    def from_config(cls, config: "InternalConfig") -> "Camera":
        vp = config.viewport
        return cls(
            grid_size=config.grid.grid_size,
            cell_size=vp.cell_size,
            scale=vp.initial_scale,
            min_scale=vp.min_scale,
            max_scale=vp.max_scale,
            center_padding_px=vp.center_padding_px,
            center_max_scale=vp.center_max_scale,
        )

    def _clamp(self, scale: float) -> float:
        return max(self.min_scale, min(self.max_scale, scale))

    @property
    def cell_px(self) -> float:
        """On-screen side length of one cell."""
        return self.cell_size * self.scale

    @property
    def zoom_percent(self) -> int:
        return int(round(self.scale * 100))

    def state(self) -> Tuple[float, float, float]:
        """``(offset_x, offset_y, scale)``."""
        return self.offset_x, self.offset_y, self.scale

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def to_grid(self, sx: float, sy: float) -> Tuple[int, int]:
        """Grid cell under screen point ``(sx, sy)``. May be off-grid."""
        px = self.cell_px
        gx = math.floor((sx - self.offset_x) / px + _FLOOR_EPS)
        gy = math.floor((sy - self.offset_y) / px + _FLOOR_EPS)
        return gx, gy

    def to_screen(self, gx: float, gy: float) -> Tuple[float, float]:
        """Top-left screen corner of grid cell ``(gx, gy)``."""
        px = self.cell_px
        return gx * px + self.offset_x, gy * px + self.offset_y

    def is_valid(self, x: int, y: int) -> bool:
        return 0 <= x < self.grid_size and 0 <= y < self.grid_size

    # ------------------------------------------------------------------
    # Zoom and pan
    # ------------------------------------------------------------------

    def zoom_at(self, sx: float, sy: float, factor: float) -> bool:
        """Zoom by ``factor`` keeping the grid point under ``(sx, sy)`` fixed.

        Returns
        -------
        bool
            False when clamping left the scale unchanged.
        """
        new_scale = self._clamp(self.scale * factor)
        if new_scale == self.scale:
            return False

        # Continuous grid position under the anchor, in cell units
        gx = (sx - self.offset_x) / self.cell_px
        gy = (sy - self.offset_y) / self.cell_px

        self.scale = new_scale
        self.offset_x = sx - gx * self.cell_px
        self.offset_y = sy - gy * self.cell_px

        assert_camera_valid(self)
        logger.debug("Zoom %.3f at (%.1f, %.1f)", self.scale, sx, sy)
        return True

    def zoom_by(self, factor: float, viewport_w: float, viewport_h: float) -> bool:
        """Button zoom anchored at the viewport center."""
        return self.zoom_at(viewport_w / 2, viewport_h / 2, factor)

    def pan(self, dx: float, dy: float) -> None:
        self.offset_x += dx
        self.offset_y += dy
        assert_camera_valid(self)

    # ------------------------------------------------------------------
    # Culling and centering
    # ------------------------------------------------------------------

    def visible_cell_range(self, viewport_w: float, viewport_h: float) -> Tuple[int, int, int, int]:
        """Cells overlapping the viewport as ``(min_x, min_y, max_x, max_y)``.

        Minimums inclusive, maximums exclusive, all clamped to
        ``[0, grid_size]``. An empty range has ``max == min``.
        """
        px = self.cell_px
        n = self.grid_size

        def clamp(v):
            return max(0, min(n, v))

        min_x = clamp(math.floor(-self.offset_x / px))
        min_y = clamp(math.floor(-self.offset_y / px))
        max_x = clamp(math.ceil((viewport_w - self.offset_x) / px))
        max_y = clamp(math.ceil((viewport_h - self.offset_y) / px))
        return min_x, min_y, max(min_x, max_x), max(min_y, max_y)

    def center(self, rect: Tuple[int, int, int, int], viewport_w: float, viewport_h: float) -> None:
        """Fit the inclusive grid rectangle ``(min_x, min_y, max_x, max_y)`` in the viewport.

        The rectangle's center lands on the viewport center. The scale is the
        largest that keeps ``center_padding_px`` free on every side, capped at
        ``center_max_scale`` and the camera bounds.
        """
        min_x, min_y, max_x, max_y = rect
        width_cells = max_x - min_x + 1
        height_cells = max_y - min_y + 1

        pad = self.center_padding_px
        fit_w = max(viewport_w - 2 * pad, 1.0) / (width_cells * self.cell_size)
        fit_h = max(viewport_h - 2 * pad, 1.0) / (height_cells * self.cell_size)
        self.scale = self._clamp(min(fit_w, fit_h, self.center_max_scale))

        cx = min_x + width_cells / 2
        cy = min_y + height_cells / 2
        self.offset_x = viewport_w / 2 - cx * self.cell_px
        self.offset_y = viewport_h / 2 - cy * self.cell_px

        assert_camera_valid(self)
        logger.debug("Centered on %s at scale %.3f", rect, self.scale)

    def center_grid(self, viewport_w: float, viewport_h: float,
                    scale: Optional[float] = None) -> None:
        """Center the whole grid at the current (or given) scale."""
        if scale is not None:
            self.scale = self._clamp(scale)
        extent = self.grid_size * self.cell_px
        self.offset_x = viewport_w / 2 - extent / 2
        self.offset_y = viewport_h / 2 - extent / 2
        assert_camera_valid(self)

    def __repr__(self) -> str:
        return (f"Camera(scale={self.scale:.3f}, offset=({self.offset_x:.1f}, "
                f"{self.offset_y:.1f}), grid_size={self.grid_size})")
