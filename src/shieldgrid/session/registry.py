"""Explicit registry of live grid sessions."""

import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, TYPE_CHECKING

from shieldgrid.clock import Clock
from shieldgrid.session.orchestrator import GridSession

if TYPE_CHECKING:
    from shieldgrid.ledger import SnapshotStore
    from shieldgrid.schemas import InternalConfig

__all__ = ['SessionRegistry']

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns every open session, keyed by session id.

    ``create`` opens a session and ``destroy`` stops it, which cancels its
    tasks and releases its bus subscriptions. A destroyed id may be created
    again.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock
        self._sessions: Dict[str, GridSession] = {}

    def create(self, config: "InternalConfig", store: Optional["SnapshotStore"] = None,
               output_dirs: Optional[Dict[str, Path]] = None) -> GridSession:
        """Build and open a session for ``config.session_id``.

        Raises
        ------
        ValueError
            If a session with that id is already registered.
        """
        session_id = config.session_id
        if session_id in self._sessions:
            raise ValueError(f"Session '{session_id}' already exists")

        session = GridSession(config, store=store, clock=self.clock, output_dirs=output_dirs)
        session.open()
        self._sessions[session_id] = session
        logger.info("Registered session '%s' (%d active)", session_id, len(self._sessions))
        return session

    def get(self, session_id: str) -> Optional[GridSession]:
        return self._sessions.get(session_id)

    def destroy(self, session_id: str) -> bool:
        """Stop and forget a session. Returns False for unknown ids."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.stop()
        logger.info("Destroyed session '%s'", session_id)
        return True

    def destroy_all(self) -> int:
        ids = list(self._sessions)
        for session_id in ids:
            self.destroy(session_id)
        return len(ids)

    def tick_all(self) -> int:
        """Run due tasks of every session."""
        return sum(session.tick() for session in list(self._sessions.values()))

    def __contains__(self, session_id) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[GridSession]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)
