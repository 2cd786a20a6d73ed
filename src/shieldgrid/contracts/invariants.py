"""Formal ledger and viewport invariants.

This file documents what each component MUST guarantee. This is architecture,
not code. Use this file as a reviewer anchor and system reference.
"""

GRID_INVARIANTS = {
    "ledger": [
        "Every cell key lies inside [0, grid_size) on both axes",
        "A cell is expired once now >= expires_at; expired cells are never reported available=False",
        "Every reverse-index entry points at an existing ownership record containing that coordinate",
        "A live cell has at most one reverse-index entry (cells restored without a local record have none)",
        "Claims are atomic: a rejected claim leaves cells, records and index untouched",
        "recolor/restore never change expires_at",
    ],

    "viewport": [
        "min_scale <= scale <= max_scale at all times",
        "to_grid(to_screen(x, y)) == (x, y) under the same camera snapshot",
        "zoom_at keeps the grid point under the anchor fixed (within floor rounding)",
        "visible_cell_range is clamped to [0, grid_size] and never inverted",
    ],

    "interaction": [
        "The selection never contains an unavailable cell after a drag update",
        "Paint/erase re-validate ownership on every touched cell",
        "Disabling paint mode while painting returns the machine to IDLE",
    ],

    "render": [
        "At most one draw per display refresh, and only when dirty",
        "No cell outside visible_cell_range is drawn",
    ],
}

# Which checks run at runtime vs. only in tests
CHECK_REQUIREMENTS = {
    "ledger": "RUNTIME",       # After restore and claim
    "viewport": "RUNTIME",     # After every camera mutation
    "interaction": "TESTS",
    "render": "TESTS",
}
