"""shieldgrid User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the session. Expert defaults live in src/shieldgrid/schemas/param.py

Usage:
    python scripts/run_grid_session.py scripts/user_config.py
    python scripts/run_grid_session.py scripts/user_config.py --session-id gallery
    python scripts/grid_tools.py report --config scripts/user_config.py
"""

CONFIG = {
    # ========================================================================
    # SESSION & OUTPUT
    # ========================================================================
    "SESSION_ID": "default",
    "BASE_DIR": "./shieldgrid_output",   # snapshots/, frames/, sections/, logs/

    # ========================================================================
    # GRID
    # ========================================================================
    "GRID_SIZE": 1000,                   # cells per side
    "LOCK_DURATION": "P7D",              # ISO-8601 duration or seconds
    "SWEEP_INTERVAL_MS": 300000,         # expiry sweep every 5 minutes

    # ========================================================================
    # VIEWPORT & INTERACTION
    # ========================================================================
    "MIN_SCALE": 0.1,
    "MAX_SCALE": 10,
    "VIEWPORT_WIDTH": 800,
    "VIEWPORT_HEIGHT": 600,
    "PAINT_COLOR": "#FF0000",

    # ========================================================================
    # OWNERSHIP & PERSISTENCE
    # ========================================================================
    "CLEAR_POLICY": "full",              # "full" or "partial"
    "DEFAULT_USERNAME": "Anonymous",
    "PERSISTENCE_BACKEND": "sqlite",     # "sqlite", "json" or "memory"

    "LOG_LEVEL": "INFO",

    # ========================================================================
    # ADVANCED (nested overrides)
    # ========================================================================
    "render": {
        "save_frames": False,
        "dpi": 100,
    },
    "persistence": {
        "autosave_interval_ms": 5000,
    },
}
