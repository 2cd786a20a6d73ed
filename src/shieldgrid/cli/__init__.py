"""Command-line interface modules for shieldgrid sessions.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from shieldgrid.cli.run_session import (
    build_config,
    clear_grid,
    export_snapshot,
    import_snapshot,
    load_user_config_dict,
    render_snapshot,
    run_grid_session,
    section_image,
    transaction_report,
)

__all__ = [
    'run_grid_session',
    'build_config',
    'load_user_config_dict',
    'export_snapshot',
    'import_snapshot',
    'clear_grid',
    'render_snapshot',
    'transaction_report',
    'section_image',
]
