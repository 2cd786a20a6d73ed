"""Root-level pytest fixtures for the shieldgrid test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus a manual clock and a small ledger driven by it.
All tests must use these fixtures instead of creating raw dict configs.
"""

import pytest
from datetime import timedelta
from pathlib import Path
import tempfile
import shutil

from shieldgrid.clock import ManualClock
from shieldgrid.ledger import ChangeBus, GridLedger
from shieldgrid.schemas import ParamConfig, UserConfig, resolve_config
from shieldgrid.setup_directories import setup_output_directories


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults.

    Use this as the base for all test configs. Override specific values
    using make_config or by creating custom UserConfig instances.
    """
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides)."""
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_small_grid(make_config):
    ...     config = make_config(GRID_SIZE=10)
    ...     assert config.grid.grid_size == 10
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        if user_overrides:
            user = UserConfig(**user_overrides)
            return resolve_config(param_config, user, None)
        else:
            return resolve_config(param_config, None, None)

    return _make


@pytest.fixture
def small_config(make_config):
    """10 x 10 grid, one second lock, memory store."""
    return make_config(
        GRID_SIZE=10,
        LOCK_DURATION=timedelta(seconds=1),
        PERSISTENCE_BACKEND="memory",
    )


# =============================================================================
# Time and Ledger Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Manual clock starting at 2025-01-01T00:00:00Z."""
    return ManualClock()


@pytest.fixture
def bus():
    return ChangeBus()


@pytest.fixture
def ledger(clock, bus):
    """10 x 10 ledger with a 1000 ms lock on the manual clock."""
    return GridLedger(grid_size=10, lock_duration=timedelta(milliseconds=1000),
                      clock=clock, bus=bus)


@pytest.fixture
def events(bus):
    """List that records every event published on ``bus``."""
    received = []
    bus.subscribe(received.append)
    return received


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def output_dirs(temp_dir):
    """Standard shieldgrid output directory structure.

    Returns dict with keys: base, snapshots, frames, sections, logs
    """
    return setup_output_directories(temp_dir)
