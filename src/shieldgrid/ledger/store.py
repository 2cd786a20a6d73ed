"""Snapshot stores.

A store is anything with ``load() -> Snapshot | None`` and ``save(snapshot)``.
``load`` returns ``None`` when nothing was ever saved or the backing file
cannot be read at all; the session then starts with an empty grid.
Individual malformed entries are left for :meth:`GridLedger.restore` to drop.
"""

import copy
import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence, TYPE_CHECKING

from shieldgrid.clock import Clock
from shieldgrid.ledger.ledger import new_transaction_id
from shieldgrid.ledger.models import CellSpec, Snapshot, empty_snapshot

if TYPE_CHECKING:
    from shieldgrid.schemas import InternalConfig

__all__ = [
    'SnapshotStore', 'SQLiteSnapshotStore', 'JsonSnapshotStore', 'MemorySnapshotStore',
    'ClaimAuthorizer', 'LocalClaimAuthorizer', 'make_store',
]

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def load(self) -> Optional[Snapshot]:
        ...

    def save(self, snapshot: Snapshot) -> None:
        ...


class ClaimAuthorizer(Protocol):
    """Confirms a donation and returns the transaction id to claim under.

    The ledger never validates payment; it only records the id it is given.
    """

    def authorize(self, cells: Sequence[CellSpec], contact_info: Optional[str]) -> str:
        ...


class LocalClaimAuthorizer:
    """Authorizer for headless sessions: every request is confirmed."""

    def __init__(self, clock: Clock):
        self.clock = clock

    def authorize(self, cells: Sequence[CellSpec], contact_info: Optional[str]) -> str:
        return new_transaction_id(self.clock.now())


class MemorySnapshotStore:
    """Keeps a deep copy of the last saved snapshot."""

    def __init__(self, initial: Optional[Snapshot] = None):
        self._snapshot = copy.deepcopy(initial) if initial is not None else None
        self.save_count = 0

    def load(self) -> Optional[Snapshot]:
        return copy.deepcopy(self._snapshot)

    def save(self, snapshot: Snapshot) -> None:
        self._snapshot = copy.deepcopy(snapshot)
        self.save_count += 1


class JsonSnapshotStore:
    """Snapshot as one JSON document.

    Also the export/import format. Writes go through a temporary file that
    replaces the target so a crash never leaves half a document behind.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Cannot read snapshot %s: %s", self.path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Snapshot %s is not a JSON object, ignoring", self.path)
            return None
        return data

    def save(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2, sort_keys=True)
        tmp.replace(self.path)
        logger.info("Saved snapshot to %s (%d cells)", self.path, len(snapshot.get("cells", {})))


class SQLiteSnapshotStore:
    """Snapshot persisted in a SQLite database.

    **Database Schema:**

    - ``cells``: one row per cell key (``"x,y"``) with color, ISO timestamps
      and contact info
    - ``ownership``: one row per transaction id; ``cell_coords`` is a JSON
      list of ``[x, y]`` pairs
    - ``snapshot_meta``: single row recording when the snapshot was last
      saved; its absence means "never saved"

    ``save`` replaces all rows inside one transaction.

    **Thread Safety:**

    All methods are serialized by an internal lock.

    **Typical Usage:**

    ::

        store = SQLiteSnapshotStore(dirs["snapshots"] / "default_grid.db")
        ledger.restore(store.load())
        ...
        store.save(ledger.snapshot())
        store.close()
    """

    def __init__(self, db_path: Path | str):
        """Open (and create if needed) the database.

        Parameters
        ----------
        db_path : Path or str
            SQLite file. Parent directories are created.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.Lock()
        self.corrupt_path: Optional[Path] = None

        try:
            self._init_database()
        except sqlite3.DatabaseError as e:
            logger.warning("Snapshot database %s unreadable (%s), starting empty", self.db_path, e)
            self.close()
            self.corrupt_path = self._move_aside()
            self._init_database()
        logger.info("Snapshot store initialized: %s", self.db_path)

    def _move_aside(self) -> Path:
        """Rename an unreadable database file so a fresh one can take its place."""
        target = self.db_path.with_name(self.db_path.name + ".corrupt")
        self.db_path.replace(target)
        logger.warning("Moved unreadable snapshot database to %s", target)
        return target

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self):
        """Create schema if it doesn't exist."""
        conn = self._get_connection()

        with self._lock:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cells (
                    cell_key TEXT PRIMARY KEY,
                    x INTEGER NOT NULL,
                    y INTEGER NOT NULL,
                    color TEXT NOT NULL,
                    claimed_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    contact_info TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ownership (
                    transaction_id TEXT PRIMARY KEY,
                    cell_coords TEXT NOT NULL,
                    original_color TEXT NOT NULL,
                    claimed_at TEXT NOT NULL,
                    url TEXT,
                    username TEXT
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshot_meta (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    saved_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_expires_at ON cells(expires_at)")
            conn.commit()

    def load(self) -> Optional[Snapshot]:
        conn = self._get_connection()
        try:
            with self._lock:
                if conn.execute("SELECT saved_at FROM snapshot_meta WHERE id = 1").fetchone() is None:
                    return None
                cell_rows = conn.execute("SELECT * FROM cells").fetchall()
                own_rows = conn.execute("SELECT * FROM ownership").fetchall()
        except sqlite3.DatabaseError as e:
            logger.warning("Cannot read snapshot database %s: %s", self.db_path, e)
            return None

        snapshot = empty_snapshot()
        for row in cell_rows:
            snapshot["cells"][row["cell_key"]] = {
                "x": row["x"],
                "y": row["y"],
                "color": row["color"],
                "claimed_at": row["claimed_at"],
                "expires_at": row["expires_at"],
                "contact_info": row["contact_info"],
            }
        for row in own_rows:
            try:
                coords = json.loads(row["cell_coords"])
            except json.JSONDecodeError:
                # Left for restore() to drop and report
                coords = None
            snapshot["ownership"][row["transaction_id"]] = {
                "cell_coords": coords,
                "original_color": row["original_color"],
                "claimed_at": row["claimed_at"],
                "url": row["url"],
                "username": row["username"],
            }
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        cells: Dict = snapshot.get("cells", {})
        ownership: Dict = snapshot.get("ownership", {})
        conn = self._get_connection()

        with self._lock:
            with conn:
                conn.execute("DELETE FROM cells")
                conn.execute("DELETE FROM ownership")
                conn.executemany(
                    """INSERT INTO cells
                       (cell_key, x, y, color, claimed_at, expires_at, contact_info)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    [
                        (key, c["x"], c["y"], c["color"], c["claimed_at"],
                         c["expires_at"], c.get("contact_info"))
                        for key, c in cells.items()
                    ],
                )
                conn.executemany(
                    """INSERT INTO ownership
                       (transaction_id, cell_coords, original_color, claimed_at, url, username)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    [
                        (txn, json.dumps(r["cell_coords"]), r["original_color"],
                         r["claimed_at"], r.get("url"), r.get("username"))
                        for txn, r in ownership.items()
                    ],
                )
                conn.execute(
                    "INSERT OR REPLACE INTO snapshot_meta (id, saved_at) VALUES (1, ?)",
                    (datetime.now(timezone.utc).isoformat(),),
                )
        logger.info("Saved snapshot to %s (%d cells, %d records)",
                    self.db_path, len(cells), len(ownership))

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None


def make_store(config: "InternalConfig", snapshot_dir: Optional[Path] = None):
    """Build the store selected by ``config.persistence.backend``.

    File-backed stores live in ``snapshot_dir`` and are named after
    ``persistence.filename_pattern`` formatted with the session id.
    """
    backend = config.persistence.backend
    if backend == "memory":
        return MemorySnapshotStore()
    if snapshot_dir is None:
        raise ValueError(f"Backend '{backend}' needs a snapshot directory")

    stem = config.persistence.filename_pattern.format(session_id=config.session_id)
    if backend == "json":
        return JsonSnapshotStore(Path(snapshot_dir) / f"{stem}.json")
    return SQLiteSnapshotStore(Path(snapshot_dir) / f"{stem}.db")
