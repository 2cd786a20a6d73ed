"""Pydantic configuration schemas for shieldgrid.

This module provides strictly typed configuration models for the grid
ledger, viewport, renderer and session. All configuration validation,
coercion, and normalization happens at schema validation time via Pydantic.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
"""

from shieldgrid.schemas.resolve import resolve_config
from shieldgrid.schemas.internal import InternalConfig
from shieldgrid.schemas.param import ParamConfig
from shieldgrid.schemas.user import UserConfig
from shieldgrid.schemas.cli import CLIConfig

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
]
