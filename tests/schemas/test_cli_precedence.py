import pytest

from shieldgrid.schemas.cli import CLIConfig
from shieldgrid.schemas.param import ParamConfig
from shieldgrid.schemas.resolve import resolve_config
from shieldgrid.schemas.user import UserConfig

pytestmark = pytest.mark.unit


def test_cli_overrides_do_not_mutate_user():
    user = UserConfig.model_validate({"SESSION_ID": "from_user", "GRID_SIZE": 50, "BASE_DIR": "/tmp"})

    cli = CLIConfig.model_validate({"session_id": "from_cli"})

    internal = resolve_config(ParamConfig(), user, cli)

    # CLI should take precedence
    assert internal.session_id == "from_cli"

    # But the original user model should remain unchanged
    assert user.session_id == "from_user"


def test_cli_grid_size_wins_over_user():
    user = UserConfig(base_dir="/tmp", grid_size=50)
    cli = CLIConfig(grid_size=20)

    config = resolve_config(ParamConfig(), user, cli)

    assert config.grid.grid_size == 20  # CLI wins
    assert config.base_dir == "/tmp"  # User value preserved


def test_cli_backend_wins_over_user():
    user = UserConfig(PERSISTENCE_BACKEND="sqlite", persistence={"autosave_interval_ms": 1000})
    cli = CLIConfig(backend="memory")

    config = resolve_config(ParamConfig(), user, cli)

    assert config.persistence.backend == "memory"
    assert config.persistence.autosave_interval_ms == 1000


def test_cli_log_level_wins_over_user():
    config = resolve_config(ParamConfig(), UserConfig(LOG_LEVEL="warning"), CLIConfig(log_level="DEBUG"))
    assert config.logging.level == "DEBUG"


def test_user_values_survive_unrelated_cli_overrides():
    user = UserConfig(GRID_SIZE=64, CLEAR_POLICY="partial")
    config = resolve_config(ParamConfig(), user, CLIConfig(session_id="other"))

    assert config.grid.grid_size == 64
    assert config.ownership.clear_policy == "partial"
