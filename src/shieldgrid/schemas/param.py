"""ParamConfig: Expert defaults for shieldgrid.

This module defines the complete default configuration. ALL tunable
parameters must have defaults here. No runtime code should define fallback
values - this is the single source of truth for defaults.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from datetime import timedelta
from typing import Literal, Optional

from pydantic import Field, field_validator

from shieldgrid.colors import normalize_color
from shieldgrid.schemas.base import GridBaseModel


# =============================================================================
# Nested Configuration Models
# =============================================================================

class GridConfig(GridBaseModel):
    """Grid dimensions and lock timing."""
    grid_size: int = Field(1000, ge=1, le=10000, description="Cells per side (grid is square)")
    lock_duration: timedelta = Field(timedelta(days=7), description="How long a claim locks a cell")
    sweep_interval_ms: int = Field(5 * 60 * 1000, ge=1, description="Expiry sweep period")

    @field_validator("lock_duration")
    @classmethod
    def lock_duration_positive(cls, v):
        """Reject zero or negative lock windows."""
        if v <= timedelta(0):
            raise ValueError("lock_duration must be positive")
        return v


class ViewportConfig(GridBaseModel):
    """Camera defaults and zoom behavior."""
    width: int = Field(800, ge=1, description="Viewport width in pixels")
    height: int = Field(600, ge=1, description="Viewport height in pixels")
    cell_size: float = Field(10.0, gt=0, description="Pixels per cell at scale 1")
    initial_scale: float = Field(0.5, gt=0)
    min_scale: float = Field(0.1, gt=0)
    max_scale: float = Field(10.0, gt=0)
    wheel_zoom_in: float = Field(1.1, gt=1.0)
    wheel_zoom_out: float = Field(0.9, gt=0, lt=1.0)
    button_zoom_factor: float = Field(1.5, gt=1.0)
    center_padding_px: float = Field(40.0, ge=0)
    center_max_scale: float = Field(4.0, gt=0)


class InteractionConfig(GridBaseModel):
    """Pointer interaction defaults."""
    paint_color: str = "#FF0000"
    selection_modifiers: list[Literal["shift", "ctrl", "meta", "alt"]] = ["shift", "ctrl"]

    @field_validator("paint_color", mode="before")
    @classmethod
    def normalize_paint_color(cls, v):
        return normalize_color(v)


class RenderConfig(GridBaseModel):
    """Frame rendering configuration."""
    frame_interval_ms: int = Field(16, ge=1, description="Display refresh period")
    dpi: int = Field(100, ge=50)
    output_format: Literal["png", "pdf", "jpeg"] = "png"
    save_frames: bool = False
    show_overlay: bool = True
    background_color: str = "#F0F0F0"
    available_color: str = "#F5F5F5"
    badge_color: str = "#FFD700"
    selection_color: str = "#4CAF50"
    hover_owned_color: str = "#FFD700"
    hover_locked_color: str = "#FF9800"
    hover_available_color: str = "#2196F3"
    grid_line_color: str = "#E0E0E0"
    grid_line_min_px: float = Field(5.0, ge=0)
    badge_min_px: float = Field(8.0, ge=0)
    section_cell_px: int = Field(20, ge=1)
    section_padding: int = Field(2, ge=0)

    @field_validator(
        "background_color", "available_color", "badge_color", "selection_color",
        "hover_owned_color", "hover_locked_color", "hover_available_color",
        "grid_line_color", mode="before",
    )
    @classmethod
    def normalize_colors(cls, v):
        """Accept any matplotlib color spec, store as #RRGGBB."""
        return normalize_color(v)


class PersistenceConfig(GridBaseModel):
    """Snapshot store configuration."""
    backend: Literal["sqlite", "json", "memory"] = "sqlite"
    filename_pattern: str = Field(default="{session_id}_grid")
    autosave_interval_ms: int = Field(5000, ge=1)


class OwnershipConfig(GridBaseModel):
    """Ownership record policy."""
    clear_policy: Literal["full", "partial"] = "full"
    default_username: str = "Anonymous"


class LoggingConfig(GridBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(GridBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all grid parameters.
    Every tunable parameter MUST have a default here.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    session_id: str = "default"
    base_dir: Optional[str] = None
    grid: GridConfig = Field(default_factory=GridConfig)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    interaction: InteractionConfig = Field(default_factory=InteractionConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    ownership: OwnershipConfig = Field(default_factory=OwnershipConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
