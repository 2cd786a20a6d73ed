#!/usr/bin/env python3
"""``shieldgrid`` headless session runner.

Usage:
    python scripts/run_grid_session.py scripts/user_config.py
    python scripts/run_grid_session.py scripts/user_config.py --session-id gallery
    python scripts/run_grid_session.py scripts/user_config.py --backend json --max-runtime 600

Note: User config in scripts/user_config.py, expert defaults in src/shieldgrid/schemas/param.py
"""

import argparse
import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from shieldgrid.cli import run_grid_session


def main():
    parser = argparse.ArgumentParser(description="Run a headless shieldgrid session")
    parser.add_argument("config", nargs="?", help="Path to user config file")
    parser.add_argument("--session-id", help="Override session id")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--grid-size", type=int, help="Override grid size")
    parser.add_argument("--backend", choices=["sqlite", "json", "memory"], help="Snapshot store")
    parser.add_argument("--save-frames", action="store_true", default=None,
                        help="Write every drawn frame to frames/")
    parser.add_argument("--max-runtime", type=float, help="Max runtime in seconds")
    parser.add_argument("--rerun", action="store_true", help="Delete output directory before running")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    run_grid_session(
        args.config,
        cli_args={
            "session_id": args.session_id,
            "base_dir": args.base_dir,
            "grid_size": args.grid_size,
            "backend": args.backend,
            "save_frames": args.save_frames,
        },
        max_runtime=args.max_runtime,
        rerun=args.rerun,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
