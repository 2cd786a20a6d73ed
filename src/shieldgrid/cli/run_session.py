"""Core grid session execution logic.

This module contains the session runner and snapshot maintenance commands,
separated from argument parsing. Scripts are thin wrappers; this is the
real implementation.
"""

import importlib.util
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from shieldgrid.render import FrameStats
from shieldgrid.schemas import CLIConfig, InternalConfig, ParamConfig, UserConfig, resolve_config
from shieldgrid.session import GridSession
from shieldgrid.setup_directories import get_export_path, setup_output_directories

logger = logging.getLogger(__name__)


def load_user_config_dict(config_path: str) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Parameters
    ----------
    config_path : str
        Path to user config Python file containing CONFIG dict.

    Returns
    -------
    dict
        Raw user configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def build_config(user_config_path: Optional[str] = None,
                 cli_args: Optional[Dict[str, Any]] = None,
                 verbose: bool = False) -> InternalConfig:
    """Resolve configuration in precedence Param < User < CLI.

    Parameters
    ----------
    user_config_path : str, optional
        Python file with a CONFIG dict. Defaults only when omitted.
    cli_args : dict, optional
        CLI overrides; keys of :class:`CLIConfig`. None values are dropped.
    verbose : bool
        Force DEBUG logging unless ``log_level`` is given.
    """
    param_cfg = ParamConfig()

    user_cfg_dict = load_user_config_dict(user_config_path) if user_config_path else {}
    user_cfg = UserConfig.model_validate(user_cfg_dict)

    cli_args = dict(cli_args or {})
    if verbose and not cli_args.get("log_level"):
        cli_args["log_level"] = "DEBUG"
    cli_dict = {k: v for k, v in cli_args.items() if v is not None}
    cli_cfg = CLIConfig.model_validate(cli_dict) if cli_dict else CLIConfig()

    return resolve_config(param_cfg, user_cfg, cli_cfg)


def _print_summary(title: str, config: InternalConfig, output_dirs: Dict[str, Path],
                   config_path: Optional[str] = None):
    print(f"\n{'='*60}")
    print(title)
    print('='*60)
    if config_path:
        print(f"Config:  {config_path}")
    print(f"Session: {config.session_id}")
    print(f"Grid:    {config.grid.grid_size} x {config.grid.grid_size}, "
          f"lock {config.grid.lock_duration}")
    print(f"Store:   {config.persistence.backend}")
    print(f"Output:  {output_dirs['base']}")
    print('='*60)


def run_grid_session(
    user_config_path: Optional[str] = None,
    cli_args: Optional[Dict[str, Any]] = None,
    max_runtime: Optional[float] = None,
    rerun: bool = False,
    verbose: bool = False,
) -> None:
    """Run a headless grid session until interrupted.

    1. Loads and resolves configuration (Param < User < CLI)
    2. Sets up output directories
    3. Optionally deletes previous output if rerun=True
    4. Opens the session (restoring the stored snapshot) and runs its
       scheduler: expiry sweep, frame refresh, autosave
    5. Blocks until completion or interruption, then saves

    Parameters
    ----------
    user_config_path : str, optional
        Path to user config file (Python file with CONFIG dict).
    cli_args : dict, optional
        CLI argument overrides. Keys: session_id, base_dir, grid_size,
        backend, save_frames, log_level. All optional.
    max_runtime : float, optional
        Maximum runtime in seconds. If None, runs until KeyboardInterrupt.
    rerun : bool, optional
        If True, delete the output directory before running.
    verbose : bool, optional
        If True, enable DEBUG logging and print full resolved config.

    Examples
    --------
    ::

        run_grid_session("scripts/user_config.py", max_runtime=600)
        run_grid_session(cli_args={"session_id": "demo", "backend": "json"})
    """
    config = build_config(user_config_path, cli_args, verbose)

    if rerun and config.base_dir:
        base_dir_path = Path(config.base_dir)
        if base_dir_path.exists():
            print(f"Cleaning output directory: {base_dir_path}")
            shutil.rmtree(base_dir_path)
            print("Output directory cleaned")

    output_dirs = setup_output_directories(config.base_dir)
    _print_summary("shieldgrid session", config, output_dirs, user_config_path)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(mode="json"), indent=2))
        print('='*60)

    session = GridSession(config, output_dirs=output_dirs)
    session.start(max_runtime=max_runtime)


def _open_session(config: InternalConfig) -> GridSession:
    output_dirs = setup_output_directories(config.base_dir)
    session = GridSession(config, output_dirs=output_dirs)
    session.open()
    return session


def export_snapshot(config: InternalConfig, output_path: Optional[Path] = None) -> Path:
    """Write the stored grid (expired cells swept) to a JSON file."""
    session = _open_session(config)
    try:
        if output_path is None:
            output_path = get_export_path(session.output_dirs, session.clock.now())
        return session.export_json(output_path)
    finally:
        session.stop()


def import_snapshot(config: InternalConfig, input_path: Path) -> Optional[Dict[str, int]]:
    """Replace the stored grid with a JSON snapshot.

    Returns restore counts, or None if the file could not be read.
    """
    session = _open_session(config)
    try:
        counts = session.import_json(input_path)
        if counts is not None:
            session.save()
        return counts
    finally:
        session.stop()


def clear_grid(config: InternalConfig) -> int:
    """Admin clear of the stored grid. Returns the number of cells removed."""
    session = _open_session(config)
    try:
        removed = len(session.ledger.all_cells())
        session.clear_all()
        session.save()
        return removed
    finally:
        session.stop()


def render_snapshot(config: InternalConfig, output_path: Optional[Path] = None,
                    fit_claims: bool = True) -> FrameStats:
    """Render one frame of the stored grid.

    With ``fit_claims`` the camera is centered on the bounding box of all
    live cells; otherwise the whole grid is centered at the initial scale.
    """
    session = _open_session(config)
    try:
        vp = config.viewport
        bounds = session.ledger.cells_bounds(c.coord for c in session.ledger.all_cells())
        if fit_claims and bounds is not None:
            session.camera.center(bounds, vp.width, vp.height)
        if output_path is None:
            output_path = session.output_dirs["frames"] / f"{config.session_id}_snapshot"
        return session.render_frame(output_path)
    finally:
        session.stop()


def transaction_report(config: InternalConfig, csv_path: Optional[Path] = None) -> pd.DataFrame:
    """Table of live transactions, newest first. Optionally written as CSV."""
    session = _open_session(config)
    try:
        df = session.ledger.transactions_frame()
    finally:
        session.stop()
    if csv_path is not None:
        Path(csv_path).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(csv_path, index=False)
        logger.info("Transaction report written: %s (%d rows)", csv_path, len(df))
    return df


def section_image(config: InternalConfig, transaction_id: str,
                  output_path: Optional[Path] = None) -> Optional[str]:
    """Shareable image of one transaction's live cells."""
    session = _open_session(config)
    try:
        return session.render_section(transaction_id, output_path)
    finally:
        session.stop()
