"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs in a variety of formats, with aliases
for common naming patterns (e.g., GRID_SIZE -> grid_size, BASE_DIR -> base_dir).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults. Validation is lenient to accept
both uppercase and lowercase keys, integers where floats are expected, etc.
"""

from datetime import timedelta
from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from shieldgrid.colors import normalize_color
from shieldgrid.schemas.base import GridBaseModel


class UserGridConfig(GridBaseModel):
    """User-facing grid config."""
    grid_size: Optional[int] = None
    lock_duration: Optional[timedelta] = None
    sweep_interval_ms: Optional[int] = None


class UserViewportConfig(GridBaseModel):
    """User-facing viewport config."""
    width: Optional[int] = None
    height: Optional[int] = None
    cell_size: Optional[float] = None
    initial_scale: Optional[float] = None
    min_scale: Optional[float] = None
    max_scale: Optional[float] = None
    wheel_zoom_in: Optional[float] = None
    wheel_zoom_out: Optional[float] = None
    button_zoom_factor: Optional[float] = None
    center_padding_px: Optional[float] = None
    center_max_scale: Optional[float] = None


class UserRenderConfig(GridBaseModel):
    """User-facing render config. Colors are passed through to ParamConfig validation."""
    frame_interval_ms: Optional[int] = None
    dpi: Optional[int] = None
    output_format: Optional[str] = None
    save_frames: Optional[bool] = None
    show_overlay: Optional[bool] = None
    background_color: Optional[str] = None
    available_color: Optional[str] = None
    badge_color: Optional[str] = None
    selection_color: Optional[str] = None

    @field_validator("output_format", mode="before")
    @classmethod
    def normalize_format(cls, v):
        """Normalize format names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class UserPersistenceConfig(GridBaseModel):
    """User-facing persistence config."""
    backend: Optional[str] = None
    filename_pattern: Optional[str] = None
    autosave_interval_ms: Optional[int] = None


class UserConfig(GridBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    Usage
    -----
        user_cfg = UserConfig(
            GRID_SIZE=500,
            LOCK_DURATION="P1D",
            BASE_DIR="/data/shieldgrid",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    session_id: Optional[str] = Field(None, alias="SESSION_ID")
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")

    # Grid settings (flat aliases)
    grid_size: Optional[int] = Field(None, alias="GRID_SIZE")
    lock_duration: Optional[timedelta] = Field(None, alias="LOCK_DURATION")
    sweep_interval_ms: Optional[int] = Field(None, alias="SWEEP_INTERVAL_MS")

    # Viewport settings (flat aliases)
    min_scale: Optional[float] = Field(None, alias="MIN_SCALE")
    max_scale: Optional[float] = Field(None, alias="MAX_SCALE")
    viewport_width: Optional[int] = Field(None, alias="VIEWPORT_WIDTH")
    viewport_height: Optional[int] = Field(None, alias="VIEWPORT_HEIGHT")

    # Interaction / ownership / persistence (flat aliases)
    paint_color: Optional[str] = Field(None, alias="PAINT_COLOR")
    clear_policy: Optional[Literal["full", "partial"]] = Field(None, alias="CLEAR_POLICY")
    default_username: Optional[str] = Field(None, alias="DEFAULT_USERNAME")
    persistence_backend: Optional[str] = Field(None, alias="PERSISTENCE_BACKEND")
    log_level: Optional[str] = Field(None, alias="LOG_LEVEL")

    # Nested overrides (advanced users)
    grid: Optional[UserGridConfig] = None
    viewport: Optional[UserViewportConfig] = None
    render: Optional[UserRenderConfig] = None
    persistence: Optional[UserPersistenceConfig] = None

    model_config = GridBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("min_scale", "max_scale", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for scale bounds."""
        if v is not None:
            return float(v)
        return v

    @field_validator("paint_color", mode="before")
    @classmethod
    def normalize_paint_color(cls, v):
        if v is not None:
            return normalize_color(v)
        return v

    @field_validator("persistence_backend", mode="before")
    @classmethod
    def normalize_backend(cls, v):
        """Normalize backend names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict[str, Any]:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides: dict[str, Any] = {}

        if self.session_id is not None:
            overrides["session_id"] = self.session_id
        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        # Grid section
        grid = {}
        if self.grid_size is not None:
            grid["grid_size"] = self.grid_size
        if self.lock_duration is not None:
            grid["lock_duration"] = self.lock_duration
        if self.sweep_interval_ms is not None:
            grid["sweep_interval_ms"] = self.sweep_interval_ms
        if self.grid is not None:
            grid.update(self.grid.model_dump(exclude_none=True))
        if grid:
            overrides["grid"] = grid

        # Viewport section
        viewport = {}
        if self.min_scale is not None:
            viewport["min_scale"] = self.min_scale
        if self.max_scale is not None:
            viewport["max_scale"] = self.max_scale
        if self.viewport_width is not None:
            viewport["width"] = self.viewport_width
        if self.viewport_height is not None:
            viewport["height"] = self.viewport_height
        if self.viewport is not None:
            viewport.update(self.viewport.model_dump(exclude_none=True))
        if viewport:
            overrides["viewport"] = viewport

        if self.paint_color is not None:
            overrides["interaction"] = {"paint_color": self.paint_color}

        ownership = {}
        if self.clear_policy is not None:
            ownership["clear_policy"] = self.clear_policy
        if self.default_username is not None:
            ownership["default_username"] = self.default_username
        if ownership:
            overrides["ownership"] = ownership

        persistence = {}
        if self.persistence_backend is not None:
            persistence["backend"] = self.persistence_backend
        if self.persistence is not None:
            persistence.update(self.persistence.model_dump(exclude_none=True))
        if persistence:
            overrides["persistence"] = persistence

        if self.render is not None:
            render = self.render.model_dump(exclude_none=True)
            if render:
                overrides["render"] = render

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
