"""`shieldgrid` - a shared, time-locked, claimable color grid.

Subpackages:
- ledger: Cell map, ownership records, change bus, snapshot stores
- viewport: Camera transforms and pointer interaction state machine
- render: Dirty-flag render loop and matplotlib frame renderer
- session: Scheduler, session orchestrator and registry
- schemas: Pydantic configuration models
- contracts: Invariant enforcement and error taxonomy
"""

__version__ = "0.1.0"
