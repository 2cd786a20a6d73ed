#!/usr/bin/env python3
"""Snapshot maintenance for a stored grid.

Usage
-----
Export the stored grid to JSON::

    python scripts/grid_tools.py export --config scripts/user_config.py --output grid.json

Import a JSON export (replaces the stored grid)::

    python scripts/grid_tools.py import grid.json --session-id gallery

Render the stored grid, fitted to the claimed cells::

    python scripts/grid_tools.py render --output frames/overview

List live transactions, optionally as CSV::

    python scripts/grid_tools.py report --csv report.csv

Share image of one transaction::

    python scripts/grid_tools.py section TXN-1735689600000-ABCDEFGHI

Clear everything::

    python scripts/grid_tools.py clear --yes
"""

import argparse
import logging
import sys
from pathlib import Path

project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from shieldgrid.cli import (
    build_config,
    clear_grid,
    export_snapshot,
    import_snapshot,
    render_snapshot,
    section_image,
    transaction_report,
)

logger = logging.getLogger(__name__)


def main():
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to user config file")
    common.add_argument("--session-id", help="Override session id")
    common.add_argument("--base-dir", help="Output directory")
    common.add_argument("--backend", choices=["sqlite", "json"], help="Snapshot store")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(description="shieldgrid snapshot tools")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("export", parents=[common], help="Write the stored grid as JSON")
    p.add_argument("--output", type=Path, help="JSON file (default: snapshots/shieldgrid-<ms>.json)")

    p = sub.add_parser("import", parents=[common], help="Replace the stored grid with a JSON file")
    p.add_argument("input", type=Path)

    p = sub.add_parser("render", parents=[common], help="Render the stored grid to an image")
    p.add_argument("--output", type=Path)
    p.add_argument("--whole-grid", action="store_true", help="Do not fit the view to claimed cells")

    p = sub.add_parser("report", parents=[common], help="List live transactions")
    p.add_argument("--csv", type=Path)

    p = sub.add_parser("section", parents=[common], help="Image of one transaction's cells")
    p.add_argument("transaction_id")
    p.add_argument("--output", type=Path)

    p = sub.add_parser("clear", parents=[common], help="Remove every cell and record")
    p.add_argument("--yes", action="store_true", help="Confirm the clear")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    config = build_config(
        args.config,
        cli_args={
            "session_id": args.session_id,
            "base_dir": args.base_dir,
            "backend": args.backend,
        },
        verbose=args.verbose,
    )

    if args.command == "export":
        path = export_snapshot(config, args.output)
        print(f"Exported: {path}")
    elif args.command == "import":
        counts = import_snapshot(config, args.input)
        if counts is None:
            print(f"Could not read {args.input}")
            sys.exit(1)
        print(f"Imported {counts['cells']} cells, {counts['records']} records "
              f"({counts['dropped']} malformed, {counts['expired']} expired dropped)")
    elif args.command == "render":
        stats = render_snapshot(config, args.output, fit_claims=not args.whole_grid)
        print(f"Rendered {stats.claimed_drawn} claimed cells: {stats.output_path}")
    elif args.command == "report":
        df = transaction_report(config, args.csv)
        if df.empty:
            print("No live transactions")
        else:
            print(df.to_string(index=False))
    elif args.command == "section":
        path = section_image(config, args.transaction_id, args.output)
        if path is None:
            print(f"No live cells for {args.transaction_id}")
            sys.exit(1)
        print(f"Section image: {path}")
    elif args.command == "clear":
        if not args.yes:
            print("Refusing to clear without --yes")
            sys.exit(2)
        removed = clear_grid(config)
        print(f"Cleared {removed} cells")


if __name__ == "__main__":
    main()
