"""
Directory setup for grid sessions.

Flat layout under one base directory:
- snapshots/: persisted ledger state and JSON exports
- frames/SESSION_ID/: rendered frames, timestamped for easy sorting
- sections/: shareable per-transaction images
- logs/: one log file per session
"""

from datetime import datetime, timezone
from pathlib import Path

from shieldgrid.clock import epoch_ms


def setup_output_directories(base_output_dir=None):
    """
    Set up organized output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path, optional
        Base output directory. Defaults to ``./shieldgrid_output``.

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'snapshots', 'frames', 'sections', 'logs'
    """
    if base_output_dir is None:
        base_output_dir = Path.cwd() / "shieldgrid_output"

    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "snapshots": base_output_dir / "snapshots",
        "frames": base_output_dir / "frames",
        "sections": base_output_dir / "sections",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    return directories


def get_frame_path(output_dirs, session_id, frame_number, timestamp=None):
    """
    Get frame image path (suffix is set by the renderer's output format).

    Parameters
    ----------
    output_dirs : dict
        Output directories from setup_output_directories()
    session_id : str
        Session identifier
    frame_number : int
        Sequential frame number
    timestamp : datetime, optional
        Frame time. If None, uses current time.

    Returns
    -------
    Path
        Full path: frames/SESSION_ID/SESSION_ID_HHMMSS_NNNNNN

    Example
    -------
    >>> get_frame_path(dirs, 'default', 12, datetime(2025, 1, 1, 22, 17, 6))
    Path('output/frames/default/default_221706_000012')
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)

    frame_dir = output_dirs["frames"] / session_id
    frame_dir.mkdir(parents=True, exist_ok=True)

    return frame_dir / f"{session_id}_{timestamp.strftime('%H%M%S')}_{frame_number:06d}"


def get_export_path(output_dirs, timestamp=None):
    """
    Get JSON export path, named after the export time in epoch milliseconds.

    Example
    -------
    >>> get_export_path(dirs, datetime(2025, 1, 1, tzinfo=timezone.utc))
    Path('output/snapshots/shieldgrid-1735689600000.json')
    """
    if timestamp is None:
        timestamp = datetime.now(timezone.utc)
    return output_dirs["snapshots"] / f"shieldgrid-{epoch_ms(timestamp)}.json"


def get_section_path(output_dirs, transaction_id):
    """Shareable section image path for one transaction (suffix set by renderer)."""
    section_dir = output_dirs["sections"]
    section_dir.mkdir(parents=True, exist_ok=True)
    return section_dir / f"section_{transaction_id}"


def get_log_path(output_dirs, session_id=None):
    """
    Get session log file path.

    Parameters
    ----------
    output_dirs : dict
        Output directories from setup_output_directories()
    session_id : str, optional
        Session identifier

    Returns
    -------
    Path
        Full path to log file
    """
    log_dir = output_dirs["logs"]
    log_dir.mkdir(parents=True, exist_ok=True)

    if session_id:
        filename = f"session_{session_id}.log"
    else:
        filename = "session_latest.log"

    return log_dir / filename
