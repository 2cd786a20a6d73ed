"""Grid session orchestration.

Wires one ledger, camera, interaction engine, render loop and snapshot
store together and drives the periodic work (expiry sweep, display refresh,
autosave, status log) from a cooperative scheduler.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TYPE_CHECKING

from shieldgrid.clock import Clock, SystemClock
from shieldgrid.ledger import (
    ChangeBus,
    CellSpec,
    GridLedger,
    JsonSnapshotStore,
    LocalClaimAuthorizer,
    MemorySnapshotStore,
    OwnershipScope,
    make_store,
)
from shieldgrid.render import FrameStats, GridRenderer, RenderLoop
from shieldgrid.session.scheduler import Scheduler, TaskGroup
from shieldgrid.setup_directories import get_frame_path, get_log_path, get_section_path
from shieldgrid.viewport import Camera, InteractionEngine

if TYPE_CHECKING:
    from shieldgrid.ledger import ClaimAuthorizer, SnapshotStore
    from shieldgrid.schemas import InternalConfig

__all__ = ['GridSession']

logger = logging.getLogger(__name__)

STATUS_INTERVAL_MS = 30 * 1000


class GridSession:
    """One interactive grid: the main entry point for running ``shieldgrid``.

    **Components:**

    - ``ledger``: authoritative cell and ownership state
    - ``camera`` / ``engine``: viewport and pointer interaction
    - ``loop`` / ``renderer``: coalesced frame drawing
    - ``store``: snapshot persistence (SQLite, JSON or memory)

    **Scheduled tasks** (one ``TaskGroup``, canceled together by :meth:`stop`):

    - ``sweep`` every ``grid.sweep_interval_ms``: remove expired cells
    - ``display`` every ``render.frame_interval_ms``: draw if dirty
    - ``autosave`` every ``persistence.autosave_interval_ms``: save if the
      ledger changed since the last save
    - ``status`` every 30 s: log a status line

    **Ownership scope:**

    Every transaction claimed in this session plus every ownership record
    found in the restored snapshot.

    **Logging:**

    :meth:`start` installs file (``logs/session_<id>.log``) and console
    handlers at ``config.logging.level``. :meth:`open` / :meth:`tick` leave
    logging alone, for embedding and tests.

    Example usage::

        session = GridSession(config, output_dirs=dirs)
        session.start(max_runtime=600)   # seconds; Ctrl+C stops earlier

    Headless, driven by hand::

        session = GridSession(config, clock=ManualClock())
        session.open()
        session.engine.pointer_down(PointerEvent(120, 80))
        session.claim_selection("#FF0000", "donor@example.org")
        session.tick()
        session.stop()
    """

    def __init__(self, config: "InternalConfig",
                 store: Optional["SnapshotStore"] = None,
                 clock: Optional[Clock] = None,
                 output_dirs: Optional[Dict[str, Path]] = None,
                 authorizer: Optional["ClaimAuthorizer"] = None):
        """Build the session components. Nothing is loaded or scheduled yet.

        Parameters
        ----------
        config : InternalConfig
            Resolved configuration.
        store : SnapshotStore, optional
            Snapshot store. Defaults to the configured backend inside
            ``output_dirs["snapshots"]``, or an in-memory store when no
            output directories are given.
        clock : Clock, optional
            Time source shared by ledger and scheduler.
        output_dirs : dict, optional
            Directories from ``setup_output_directories()``.
        authorizer : ClaimAuthorizer, optional
            Issues transaction ids for claims. Defaults to a local authorizer
            that confirms every request.
        """
        self.config = config
        self.session_id = config.session_id
        self.clock = clock or SystemClock()
        self.output_dirs = output_dirs

        if store is None:
            if output_dirs is not None:
                store = make_store(config, output_dirs["snapshots"])
            else:
                store = MemorySnapshotStore()
        self.store = store
        self.authorizer = authorizer or LocalClaimAuthorizer(self.clock)

        self.bus = ChangeBus()
        self.ledger = GridLedger.from_config(config, clock=self.clock, bus=self.bus)
        self.camera = Camera.from_config(config)
        self.scope = OwnershipScope()
        self.renderer = GridRenderer.from_config(config)
        self.loop = RenderLoop(self._draw_frame, self.bus)
        self.engine = InteractionEngine.from_config(
            config, self.ledger, self.camera, self.scope, redraw=self.loop.request_redraw
        )

        self.scheduler = Scheduler(self.clock)
        self.tasks = TaskGroup()

        self.frame_count = 0
        self.last_frame: Optional[FrameStats] = None
        self.save_count = 0

        # Lifecycle state
        self._dirty = False
        self._opened = False
        self._stop_event = False
        self._start_time = None
        self._max_duration = None

        self._change_sub = self.bus.subscribe(self._on_ledger_change)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _setup_logging(self):
        """Configure root logging with file and console handlers."""
        log_level = getattr(logging, self.config.logging.level, logging.INFO)

        if self.output_dirs is not None:
            log_path = get_log_path(self.output_dirs, self.session_id)
        else:
            log_path = Path(".") / f"session_{self.session_id}.log"

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Clear existing handlers and add new ones
        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        logger.info("Logging: level=%s, file=%s", self.config.logging.level, log_path)

    def open(self) -> Dict[str, int]:
        """Restore the stored snapshot, center the view and schedule tasks.

        Returns
        -------
        dict
            Restore counts (see :meth:`GridLedger.restore`).
        """
        if self._opened:
            raise RuntimeError(f"Session '{self.session_id}' already open")
        if self._stop_event:
            raise RuntimeError(f"Session '{self.session_id}' was stopped")

        snapshot = self.store.load()
        if snapshot is None:
            logger.info("No stored snapshot for session '%s', starting empty", self.session_id)
        counts = self.ledger.restore(snapshot)
        self._adopt_records()
        self._dirty = counts["expired"] > 0 or counts["dropped"] > 0

        vp = self.config.viewport
        self.camera.center_grid(vp.width, vp.height)

        self.scheduler.every(self.config.grid.sweep_interval_ms, self._sweep,
                             name="sweep", group=self.tasks)
        self.scheduler.every(self.config.render.frame_interval_ms, self.loop.on_display_refresh,
                             name="display", group=self.tasks)
        self.scheduler.every(self.config.persistence.autosave_interval_ms, self._autosave,
                             name="autosave", group=self.tasks)
        self.scheduler.every(STATUS_INTERVAL_MS, self._log_status,
                             name="status", group=self.tasks)

        self._opened = True
        logger.info("Session '%s' open: %d cells, %d owned record(s)",
                    self.session_id, counts["cells"], len(self.scope))
        return counts

    def start(self, max_runtime: Optional[float] = None):
        """Open the session and run the main loop until interrupted.

        Parameters
        ----------
        max_runtime : float, optional
            Maximum runtime in seconds. If None, runs until KeyboardInterrupt.
        """
        self._setup_logging()

        logger.info("=" * 60)
        logger.info("Starting grid session '%s'", self.session_id)
        logger.info("=" * 60)

        self._start_time = time.time()
        self._max_duration = max_runtime

        if self._max_duration:
            logger.info("Max runtime: %.0f seconds", max_runtime)
        else:
            logger.info("Max runtime: Until interrupted")

        self.open()
        try:
            self._main_loop()
        except KeyboardInterrupt:
            logger.info("Shutdown signal received (Ctrl+C)")
        finally:
            self.stop()

    def _main_loop(self):
        """Poll the scheduler, sleeping until the next task is due."""
        while not self._stop_event:
            self.scheduler.run_pending()

            if self._max_duration:
                elapsed = time.time() - self._start_time
                if elapsed > self._max_duration:
                    logger.info("Max duration reached")
                    break

            wait = self.scheduler.time_until_next()
            time.sleep(min(wait.total_seconds(), 1.0) if wait is not None else 1.0)

    def tick(self) -> int:
        """Run due tasks once. Returns how many ran."""
        return self.scheduler.run_pending()

    def stop(self):
        """Cancel tasks, save pending changes and release subscriptions.

        Safe to call multiple times.
        """
        if self._stop_event:
            return

        self._stop_event = True
        logger.info("Stopping session '%s'...", self.session_id)

        self.tasks.cancel()
        self.scheduler.cancel_all()

        if self._opened and self._dirty:
            self.save()

        self.engine.close()
        self.loop.close()
        self._change_sub.unsubscribe()
        self.bus.clear()

        close = getattr(self.store, "close", None)
        if close is not None:
            close()

        elapsed = time.time() - self._start_time if self._start_time else 0
        logger.info("=" * 60)
        logger.info("Session '%s' stopped. Runtime: %.1f seconds, frames: %d, saves: %d",
                    self.session_id, elapsed, self.frame_count, self.save_count)
        logger.info("=" * 60)

    @property
    def running(self) -> bool:
        return self._opened and not self._stop_event

    # ------------------------------------------------------------------
    # Scheduled work
    # ------------------------------------------------------------------

    def _on_ledger_change(self, event) -> None:
        self._dirty = True

    def _sweep(self) -> int:
        return self.ledger.sweep_expired()

    def _autosave(self) -> bool:
        if not self._dirty:
            return False
        self.save()
        return True

    def _draw_frame(self) -> FrameStats:
        output_path = None
        if self.config.render.save_frames and self.output_dirs is not None:
            output_path = get_frame_path(self.output_dirs, self.session_id,
                                         self.frame_count, self.clock.now())
        stats = self.renderer.draw(
            self.ledger, self.camera, scope=self.scope,
            selection=self.engine.selection, hover=self.engine.hover,
            output_path=output_path,
        )
        self.frame_count += 1
        self.last_frame = stats
        return stats

    def _log_status(self):
        """Log current session status."""
        logger.info(
            "Status: cells=%d records=%d owned=%d selected=%d frames=%d zoom=%d%%",
            len(self.ledger.all_cells()),
            len(self.ledger.transactions()),
            self.ledger.owned_count(self.scope),
            len(self.engine.selection),
            self.frame_count,
            self.camera.zoom_percent,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        self.store.save(self.ledger.snapshot())
        self._dirty = False
        self.save_count += 1

    def _adopt_records(self) -> None:
        """Restored records are locally authoritative: all join the scope."""
        for record in self.ledger.transactions():
            self.scope.add(record.transaction_id)

    def export_json(self, path: Path) -> Path:
        """Write the current snapshot as JSON."""
        JsonSnapshotStore(path).save(self.ledger.snapshot())
        logger.info("Exported snapshot to %s", path)
        return Path(path)

    def import_json(self, path: Path) -> Optional[Dict[str, int]]:
        """Replace the ledger with a JSON snapshot.

        Returns
        -------
        dict or None
            Restore counts, or None (ledger untouched) if the file cannot be read.
        """
        snapshot = JsonSnapshotStore(path).load()
        if snapshot is None:
            logger.warning("Import from %s failed, ledger unchanged", path)
            return None
        counts = self.ledger.restore(snapshot)
        self.engine.clear_selection()
        self._adopt_records()
        logger.info("Imported %d cell(s) from %s", counts["cells"], path)
        return counts

    # ------------------------------------------------------------------
    # Claims and owner operations
    # ------------------------------------------------------------------

    def claim_selection(self, color, contact_info: Optional[str] = None,
                        url: Optional[str] = None, username: Optional[str] = None) -> str:
        """Authorize and claim the current selection.

        Raises
        ------
        InvalidClaim
            See :meth:`InteractionEngine.commit_claim`.
        """
        specs = [CellSpec(x, y, color) for x, y in self.engine.selected_cells()]
        txn = self.authorizer.authorize(specs, contact_info) if specs else None
        return self.engine.commit_claim(color, contact_info, transaction_id=txn,
                                        url=url, username=username)

    def claim(self, cells: Iterable, contact_info: Optional[str] = None,
              url: Optional[str] = None, username: Optional[str] = None) -> str:
        """Authorize and claim explicit cells; the transaction joins the scope."""
        specs = self.ledger.parse_cells(cells)
        txn = self.authorizer.authorize(specs, contact_info) if specs else None
        txn = self.ledger.claim(specs, contact_info, transaction_id=txn,
                                url=url, username=username)
        self.scope.add(txn)
        return txn

    def clear_my_cells(self, coords: Optional[Iterable] = None) -> int:
        """Release cells owned by this session per ``ownership.clear_policy``."""
        removed = self.ledger.clear_owned(self.scope, coords)
        for txn in list(self.scope):
            if self.ledger.get_record(txn) is None:
                self.scope.discard(txn)
        return removed

    def my_transactions(self) -> List:
        return self.ledger.transactions(self.scope)

    def render_section(self, transaction_id: str, output_path: Optional[Path] = None) -> Optional[str]:
        """Shareable image of one transaction's live cells."""
        if output_path is None:
            if self.output_dirs is None:
                raise ValueError("output_path required when the session has no output directories")
            output_path = get_section_path(self.output_dirs, transaction_id)
        return self.renderer.render_section(self.ledger, transaction_id, output_path)

    def render_frame(self, output_path: Optional[Path] = None) -> FrameStats:
        """Draw a frame now, bypassing the dirty flag."""
        stats = self.renderer.draw(
            self.ledger, self.camera, scope=self.scope,
            selection=self.engine.selection, hover=self.engine.hover,
            output_path=output_path,
        )
        self.last_frame = stats
        return stats

    # ------------------------------------------------------------------
    # View buttons
    # ------------------------------------------------------------------

    def zoom_in(self) -> bool:
        vp = self.config.viewport
        changed = self.camera.zoom_by(vp.button_zoom_factor, vp.width, vp.height)
        if changed:
            self.loop.request_redraw()
        return changed

    def zoom_out(self) -> bool:
        vp = self.config.viewport
        changed = self.camera.zoom_by(1 / vp.button_zoom_factor, vp.width, vp.height)
        if changed:
            self.loop.request_redraw()
        return changed

    def center_view(self) -> None:
        """Center the whole grid at the current scale."""
        vp = self.config.viewport
        self.camera.center_grid(vp.width, vp.height)
        self.loop.request_redraw()

    def center_on_transaction(self, transaction_id: str) -> bool:
        """Fit the view to one transaction's live cells. False if it has none."""
        views = [v for v in self.ledger.transactions(transaction_id)
                 if v.transaction_id == transaction_id]
        if not views:
            return False
        vp = self.config.viewport
        self.camera.center(self.ledger.cells_bounds(c.coord for c in views[0].cells),
                           vp.width, vp.height)
        self.loop.request_redraw()
        return True

    def clear_all(self) -> None:
        """Admin clear of the whole grid."""
        self.ledger.clear_all()
        self.scope.clear()
        self.engine.clear_selection()

    def __repr__(self) -> str:
        return f"GridSession({self.session_id!r}, running={self.running})"
