"""Frame rendering with matplotlib.

Draws the visible part of the grid into an Agg figure sized to the
viewport: a numpy raster for cell fills, patches for ownership badges and
outlines, line collections for grid lines and a text box for the info
overlay. Only cells inside :meth:`Camera.visible_cell_range` are touched,
so frame cost follows the viewport, not the grid.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.collections import PatchCollection
from matplotlib.patches import Polygon, Rectangle

from shieldgrid.colors import to_rgb
from shieldgrid.ledger.models import Coord, as_scope

if TYPE_CHECKING:
    from shieldgrid.ledger.ledger import GridLedger
    from shieldgrid.schemas import InternalConfig
    from shieldgrid.viewport.camera import Camera

__all__ = ['GridRenderer', 'FrameStats', 'render_section_image']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameStats:
    """What one frame contained."""
    visible_range: Tuple[int, int, int, int]
    cells_drawn: int
    claimed_drawn: int
    owned_count: int
    selected_count: int
    badges_drawn: int
    grid_lines: bool
    overlay: Tuple[str, ...]
    output_path: Optional[str] = None


class GridRenderer:
    """Renders grid frames for one viewport size.

    **Layers (bottom to top):**

    1. Background fill
    2. Cell raster: available color or the cell's color
    3. Grid lines, when a cell is wider than ``grid_line_min_px``
    4. Ownership badges (corner triangles) on session-owned cells wider than
       ``badge_min_px``
    5. Selection outlines
    6. Hover outline: badge color if owned, locked color if claimed by
       someone else, available color otherwise
    7. Info overlay: zoom, selection count, owned count, hovered cell

    Example usage::

        renderer = GridRenderer.from_config(config)
        stats = renderer.draw(ledger, camera, scope=session.scope,
                              selection=engine.selection, hover=engine.hover,
                              output_path=dirs["frames"] / "frame_0001")
    """

    def __init__(self, width: int = 800, height: int = 600, dpi: int = 100,
                 output_format: str = "png", show_overlay: bool = True,
                 background_color: str = "#F0F0F0", available_color: str = "#F5F5F5",
                 badge_color: str = "#FFD700", selection_color: str = "#4CAF50",
                 hover_owned_color: str = "#FFD700", hover_locked_color: str = "#FF9800",
                 hover_available_color: str = "#2196F3", grid_line_color: str = "#E0E0E0",
                 grid_line_min_px: float = 5.0, badge_min_px: float = 8.0,
                 section_cell_px: int = 20, section_padding: int = 2):
        self.width = width
        self.height = height
        self.dpi = dpi
        self.output_format = output_format
        self.show_overlay = show_overlay
        self.background_color = background_color
        self.available_color = available_color
        self.badge_color = badge_color
        self.selection_color = selection_color
        self.hover_owned_color = hover_owned_color
        self.hover_locked_color = hover_locked_color
        self.hover_available_color = hover_available_color
        self.grid_line_color = grid_line_color
        self.grid_line_min_px = grid_line_min_px
        self.badge_min_px = badge_min_px
        self.section_cell_px = section_cell_px
        self.section_padding = section_padding

        self._rgb_cache: Dict[str, Tuple[float, float, float]] = {}
        logger.info("GridRenderer initialized (%dx%d, format=%s, dpi=%d)",
                    width, height, output_format, dpi)

    @classmethod
    def from_config(cls, config: "InternalConfig") -> "GridRenderer":
        r = config.render
        return cls(
            width=config.viewport.width,
            height=config.viewport.height,
            dpi=r.dpi,
            output_format=r.output_format,
            show_overlay=r.show_overlay,
            background_color=r.background_color,
            available_color=r.available_color,
            badge_color=r.badge_color,
            selection_color=r.selection_color,
            hover_owned_color=r.hover_owned_color,
            hover_locked_color=r.hover_locked_color,
            hover_available_color=r.hover_available_color,
            grid_line_color=r.grid_line_color,
            grid_line_min_px=r.grid_line_min_px,
            badge_min_px=r.badge_min_px,
            section_cell_px=r.section_cell_px,
            section_padding=r.section_padding,
        )

    def _rgb(self, color: str) -> Tuple[float, float, float]:
        rgb = self._rgb_cache.get(color)
        if rgb is None:
            rgb = self._rgb_cache[color] = to_rgb(color)
        return rgb

    def _line_width_pt(self, px: float) -> float:
        return px * 72.0 / self.dpi

    # ------------------------------------------------------------------
    # Figure helpers
    # ------------------------------------------------------------------

    def _setup_figure(self, width: float, height: float, facecolor: str) -> Tuple[plt.Figure, plt.Axes]:
        """Figure whose data coordinates are screen pixels, y pointing down."""
        fig = plt.figure(figsize=(width / self.dpi, height / self.dpi), dpi=self.dpi,
                         facecolor=facecolor)
        ax = fig.add_axes((0, 0, 1, 1))
        ax.set_xlim(0, width)
        ax.set_ylim(height, 0)
        ax.set_facecolor(facecolor)
        ax.axis('off')
        return fig, ax

    def _save_figure(self, fig: plt.Figure, output_path: Path) -> str:
        """Save figure in configured format."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_file = output_path.with_suffix(f'.{self.output_format}')
        fig.savefig(output_file, dpi=self.dpi, format=self.output_format,
                    facecolor=fig.get_facecolor())
        logger.debug("Frame saved: %s", output_file)
        return str(output_file)

    def _outline(self, ax: plt.Axes, rects: Iterable[Tuple[float, float]], size: float,
                 color: str, width_px: float) -> None:
        patches = [Rectangle(xy, size, size) for xy in rects]
        if patches:
            ax.add_collection(PatchCollection(
                patches, facecolor='none', edgecolor=color,
                linewidth=self._line_width_pt(width_px),
            ))

    # ------------------------------------------------------------------
    # Overlay
    # ------------------------------------------------------------------

    def overlay_lines(self, ledger: "GridLedger", camera: "Camera", scope=None,
                      selection: Iterable[Coord] = (), hover: Optional[Coord] = None) -> List[str]:
        """Text of the info overlay, one entry per line."""
        owned = ledger.owned_count(scope)
        lines = [
            f"Zoom: {camera.zoom_percent}%",
            f"Selected: {len(set(selection))} squares",
        ]
        if owned > 0:
            lines.append(f"You own: {owned} squares")
        if hover is not None:
            x, y = hover
            lines.append(f"Square: ({x}, {y})")
            if ledger.get_cell(x, y) is not None:
                remaining = ledger.time_remaining(x, y)
                lines.append(f"Locked: {ledger.format_time_remaining(remaining)}")
                if ledger.is_owned_by(x, y, scope):
                    lines.append("Your square")
            else:
                lines.append("Status: Available")
        return lines

    # ------------------------------------------------------------------
    # Frame
    # ------------------------------------------------------------------

    def draw(self, ledger: "GridLedger", camera: "Camera", scope=None,
             selection: Iterable[Coord] = (), hover: Optional[Coord] = None,
             output_path: Optional[Path] = None) -> FrameStats:
        """Render one frame.

        Parameters
        ----------
        ledger : GridLedger
            Cell source. Only queried for the visible range.
        camera : Camera
            Camera state for this frame.
        scope : transaction id or iterable of ids, optional
            Session ownership scope, for badges and the overlay.
        selection : iterable of (x, y)
            Selected cells to outline.
        hover : (x, y), optional
            Hovered cell.
        output_path : Path, optional
            Save the frame here (suffix replaced by the output format).

        Returns
        -------
        FrameStats
        """
        scope = as_scope(scope)
        selection = set(selection)
        min_x, min_y, max_x, max_y = camera.visible_cell_range(self.width, self.height)
        nx, ny = max_x - min_x, max_y - min_y
        px = camera.cell_px

        fig, ax = self._setup_figure(self.width, self.height, self.background_color)
        try:
            claimed = 0
            owned_visible: List[Coord] = []
            if nx > 0 and ny > 0:
                raster = np.empty((ny, nx, 3), dtype=float)
                raster[:, :] = self._rgb(self.available_color)
                for cell in ledger.cells_in_range(min_x, min_y, max_x, max_y):
                    raster[cell.y - min_y, cell.x - min_x] = self._rgb(cell.color)
                    claimed += 1
                    if scope and ledger.owner_of(cell.x, cell.y) in scope:
                        owned_visible.append(cell.coord)

                left, top = camera.to_screen(min_x, min_y)
                right, bottom = camera.to_screen(max_x, max_y)
                ax.imshow(raster, extent=(left, right, bottom, top), origin='upper',
                          interpolation='nearest', aspect='auto')

            grid_lines = nx > 0 and ny > 0 and px > self.grid_line_min_px
            if grid_lines:
                xs = [camera.to_screen(x, 0)[0] for x in range(min_x, max_x + 1)]
                ys = [camera.to_screen(0, y)[1] for y in range(min_y, max_y + 1)]
                lw = self._line_width_pt(0.5)
                ax.vlines(xs, top, bottom, colors=self.grid_line_color, linewidths=lw)
                ax.hlines(ys, left, right, colors=self.grid_line_color, linewidths=lw)

            badges = 0
            if owned_visible and px > self.badge_min_px:
                size = max(3.0, px * 0.25)
                triangles = []
                for x, y in owned_visible:
                    sx, sy = camera.to_screen(x, y)
                    triangles.append(Polygon(
                        [(sx + px, sy), (sx + px - size, sy), (sx + px, sy + size)], closed=True
                    ))
                ax.add_collection(PatchCollection(triangles, facecolor=self.badge_color,
                                                  edgecolor='none'))
                badges = len(triangles)

            outline_px = max(2.0, px * 0.1)
            visible_selection = [
                c for c in selection if min_x <= c[0] < max_x and min_y <= c[1] < max_y
            ]
            self._outline(ax, (camera.to_screen(*c) for c in visible_selection), px,
                          self.selection_color, outline_px)

            if hover is not None and min_x <= hover[0] < max_x and min_y <= hover[1] < max_y:
                if ledger.is_owned_by(hover[0], hover[1], scope):
                    hover_color = self.hover_owned_color
                elif ledger.get_cell(*hover) is not None:
                    hover_color = self.hover_locked_color
                else:
                    hover_color = self.hover_available_color
                self._outline(ax, [camera.to_screen(*hover)], px, hover_color, outline_px)

            lines = self.overlay_lines(ledger, camera, scope, selection, hover)
            if self.show_overlay:
                ax.text(
                    20, 20, "\n".join(lines), va='top', ha='left', color='white',
                    fontsize=10, family='sans-serif',
                    bbox=dict(boxstyle='square,pad=0.6', facecolor='black', alpha=0.7,
                              edgecolor='none'),
                )

            saved = self._save_figure(fig, output_path) if output_path is not None else None
        finally:
            plt.close(fig)

        return FrameStats(
            visible_range=(min_x, min_y, max_x, max_y),
            cells_drawn=max(nx, 0) * max(ny, 0),
            claimed_drawn=claimed,
            owned_count=ledger.owned_count(scope),
            selected_count=len(selection),
            badges_drawn=badges,
            grid_lines=grid_lines,
            overlay=tuple(lines),
            output_path=saved,
        )

    # ------------------------------------------------------------------
    # Section image
    # ------------------------------------------------------------------

    def render_section(self, ledger: "GridLedger", transaction_id: str,
                       output_path: Path) -> Optional[str]:
        """Image of the live cells of one transaction.

        The bounding box of the cells is padded by ``section_padding`` cells
        on every side and drawn at ``section_cell_px`` pixels per cell on a
        white background.

        Returns
        -------
        str or None
            Saved path, or None when the transaction owns no live cells.
        """
        views = [v for v in ledger.transactions(transaction_id) if v.transaction_id == transaction_id]
        if not views:
            logger.warning("No live cells for transaction %s, section image skipped", transaction_id)
            return None
        cells = views[0].cells
        min_x, min_y, max_x, max_y = ledger.cells_bounds(c.coord for c in cells)

        pad = self.section_padding
        cols = max_x - min_x + 1 + 2 * pad
        rows = max_y - min_y + 1 + 2 * pad
        size = self.section_cell_px

        raster = np.ones((rows, cols, 3), dtype=float)
        for cell in cells:
            raster[cell.y - min_y + pad, cell.x - min_x + pad] = self._rgb(cell.color)

        fig, ax = self._setup_figure(cols * size, rows * size, "#FFFFFF")
        try:
            ax.imshow(raster, extent=(0, cols * size, rows * size, 0), origin='upper',
                      interpolation='nearest', aspect='auto')
            self._outline(
                ax,
                (((c.x - min_x + pad) * size, (c.y - min_y + pad) * size) for c in cells),
                size, self.grid_line_color, 1.0,
            )
            saved = self._save_figure(fig, output_path)
        finally:
            plt.close(fig)

        logger.info("Section image for %s (%d cells): %s", transaction_id, len(cells), saved)
        return saved


def render_section_image(ledger: "GridLedger", transaction_id: str, output_path: Path,
                         config: Optional["InternalConfig"] = None) -> Optional[str]:
    """Shareable image of one transaction's cells."""
    renderer = GridRenderer.from_config(config) if config is not None else GridRenderer()
    return renderer.render_section(ledger, transaction_id, output_path)
