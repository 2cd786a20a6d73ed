"""CLIConfig: Command-line operational overrides.

Minimal configuration for operational parameters that commonly change
between runs: session id, output paths, storage backend, verbosity.

This schema handles command-line arguments parsed by argparse.
"""

from typing import Literal, Optional

from pydantic import Field

from shieldgrid.schemas.base import GridBaseModel


class CLIConfig(GridBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.

    Usage
    -----
        cli_cfg = CLIConfig(
            session_id="gallery",
            base_dir="/scratch/shieldgrid",
            log_level="DEBUG",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    session_id: Optional[str] = None
    base_dir: Optional[str] = None
    grid_size: Optional[int] = Field(None, ge=1)
    backend: Optional[Literal["sqlite", "json", "memory"]] = None
    save_frames: Optional[bool] = None
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.session_id is not None:
            overrides["session_id"] = self.session_id
        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)
        if self.grid_size is not None:
            overrides["grid"] = {"grid_size": self.grid_size}
        if self.backend is not None:
            overrides["persistence"] = {"backend": self.backend}
        if self.save_frames is not None:
            overrides["render"] = {"save_frames": self.save_frames}
        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
