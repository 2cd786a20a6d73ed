"""Test config resolution and validation with Pydantic."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from shieldgrid.schemas import CLIConfig, InternalConfig, ParamConfig, UserConfig
from shieldgrid.schemas.resolve import deep_merge, resolve_config
from shieldgrid.schemas.user import UserRenderConfig, UserViewportConfig

pytestmark = pytest.mark.unit


class TestConfigResolution:
    """Test resolve_config() precedence and merging."""

    def test_resolve_config_all_defaults(self):
        """Resolving with no user/CLI overrides uses all ParamConfig defaults."""
        config = resolve_config(ParamConfig(), None, None)

        assert isinstance(config, InternalConfig)
        assert config.session_id == "default"
        assert config.grid.grid_size == 1000
        assert config.grid.lock_duration == timedelta(days=7)
        assert config.grid.sweep_interval_ms == 300000
        assert config.viewport.min_scale == 0.1
        assert config.viewport.max_scale == 10.0
        assert config.viewport.initial_scale == 0.5
        assert config.viewport.button_zoom_factor == 1.5
        assert config.persistence.backend == "sqlite"
        assert config.ownership.clear_policy == "full"

    def test_user_config_overrides_param_config(self):
        """UserConfig values override ParamConfig defaults."""
        user = UserConfig(GRID_SIZE=25, LOCK_DURATION=timedelta(hours=1))
        config = resolve_config(ParamConfig(), user, None)

        assert config.grid.grid_size == 25
        assert config.grid.lock_duration == timedelta(hours=1)

    def test_iso_duration_lock(self):
        config = resolve_config(ParamConfig(), UserConfig(LOCK_DURATION="P1D"), None)
        assert config.grid.lock_duration == timedelta(days=1)

    def test_nested_user_sections(self):
        user = UserConfig(
            viewport=UserViewportConfig(width=1024, wheel_zoom_in=1.25),
            render=UserRenderConfig(output_format="PDF", save_frames=True),
        )
        config = resolve_config(ParamConfig(), user, None)

        assert config.viewport.width == 1024
        assert config.viewport.wheel_zoom_in == 1.25
        assert config.viewport.height == 600
        assert config.render.output_format == "pdf"
        assert config.render.save_frames is True

    def test_flat_aliases_beat_nested_defaults(self):
        user = UserConfig(VIEWPORT_WIDTH=640, MIN_SCALE=0.2)
        config = resolve_config(ParamConfig(), user, None)

        assert config.viewport.width == 640
        assert config.viewport.min_scale == 0.2

    def test_dict_inputs(self):
        config = resolve_config({}, {"GRID_SIZE": 12}, {"backend": "json"})

        assert config.grid.grid_size == 12
        assert config.persistence.backend == "json"

    def test_internal_config_is_frozen(self, internal_config):
        with pytest.raises(ValidationError):
            internal_config.session_id = "other"


class TestValidation:
    """Bad values fail at resolution time, never at runtime."""

    def test_min_scale_above_max_scale(self):
        with pytest.raises(ValidationError, match="exceeds max_scale"):
            resolve_config(ParamConfig(), UserConfig(MIN_SCALE=5, MAX_SCALE=1), None)

    def test_initial_scale_outside_bounds(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(MIN_SCALE=1, MAX_SCALE=4), None)

    def test_non_positive_lock_duration(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(LOCK_DURATION=timedelta(0)), None)

    def test_grid_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(GRID_SIZE=0), None)

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(PERSISTENCE_BACKEND="redis"), None)

    def test_bad_render_color(self):
        with pytest.raises(ValidationError):
            resolve_config(ParamConfig(), UserConfig(render={"badge_color": "gold-ish"}), None)

    def test_param_config_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ParamConfig(grid={"grid_size": 10, "cell_count": 3})


def test_deep_merge_nested():
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    merged = deep_merge(base, {"b": {"d": 4}}, {"b": {"e": 5}, "f": 6})

    assert merged == {"a": 1, "b": {"c": 2, "d": 4, "e": 5}, "f": 6}
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}
