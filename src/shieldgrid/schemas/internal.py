"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that runtime code depends on.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from datetime import timedelta
from typing import Literal, Optional

from pydantic import ConfigDict, Field, model_validator

from shieldgrid.schemas.base import GridBaseModel


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalGridConfig(GridBaseModel):
    """Runtime grid configuration."""
    grid_size: int = Field(ge=1)
    lock_duration: timedelta
    sweep_interval_ms: int = Field(ge=1)


class InternalViewportConfig(GridBaseModel):
    """Runtime viewport configuration."""
    width: int
    height: int
    cell_size: float
    initial_scale: float
    min_scale: float
    max_scale: float
    wheel_zoom_in: float
    wheel_zoom_out: float
    button_zoom_factor: float
    center_padding_px: float
    center_max_scale: float

    @model_validator(mode="after")
    def check_scale_bounds(self):
        """min_scale <= initial_scale <= max_scale."""
        if self.min_scale > self.max_scale:
            raise ValueError(
                f"min_scale ({self.min_scale}) exceeds max_scale ({self.max_scale})"
            )
        if not self.min_scale <= self.initial_scale <= self.max_scale:
            raise ValueError(
                f"initial_scale {self.initial_scale} outside "
                f"[{self.min_scale}, {self.max_scale}]"
            )
        return self


class InternalInteractionConfig(GridBaseModel):
    """Runtime interaction configuration."""
    paint_color: str
    selection_modifiers: list[Literal["shift", "ctrl", "meta", "alt"]]


class InternalRenderConfig(GridBaseModel):
    """Runtime render configuration."""
    frame_interval_ms: int
    dpi: int
    output_format: Literal["png", "pdf", "jpeg"]
    save_frames: bool
    show_overlay: bool
    background_color: str
    available_color: str
    badge_color: str
    selection_color: str
    hover_owned_color: str
    hover_locked_color: str
    hover_available_color: str
    grid_line_color: str
    grid_line_min_px: float
    badge_min_px: float
    section_cell_px: int
    section_padding: int


class InternalPersistenceConfig(GridBaseModel):
    """Runtime persistence configuration."""
    backend: Literal["sqlite", "json", "memory"]
    filename_pattern: str
    autosave_interval_ms: int


class InternalOwnershipConfig(GridBaseModel):
    """Runtime ownership policy."""
    clear_policy: Literal["full", "partial"]
    default_username: str


class InternalLoggingConfig(GridBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(GridBaseModel):
    """Authoritative runtime configuration.

    This is the ONLY configuration schema that runtime code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters.

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.grid_size = config.grid.grid_size  # NOT .get()
            self.min_scale = config.viewport.min_scale
    """

    session_id: str
    base_dir: Optional[str] = None
    grid: InternalGridConfig
    viewport: InternalViewportConfig
    interaction: InternalInteractionConfig
    render: InternalRenderConfig
    persistence: InternalPersistenceConfig
    ownership: InternalOwnershipConfig
    logging: InternalLoggingConfig

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,
    )
