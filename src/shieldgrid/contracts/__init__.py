"""Grid contracts: fail-fast enforcement of ledger and viewport invariants.

Contracts fail immediately and loudly when a component leaves its state
inconsistent. Expected, user-visible failures (a claim on a taken cell)
are raised as :class:`InvalidClaim` instead.

Key principle:
- Pydantic validates config correctness
- InvalidClaim reports rejected user requests
- Contracts validate internal consistency
"""

from shieldgrid.contracts.failure import ClaimFailure, ContractViolation, InvalidClaim, OutOfBounds
from shieldgrid.contracts.base import require
from shieldgrid.contracts.ledger import assert_ledger_consistent
from shieldgrid.contracts.viewport import assert_camera_valid
from shieldgrid.contracts.invariants import CHECK_REQUIREMENTS, GRID_INVARIANTS

__all__ = [
    "ClaimFailure",
    "ContractViolation",
    "InvalidClaim",
    "OutOfBounds",
    "require",
    "assert_ledger_consistent",
    "assert_camera_valid",
    "GRID_INVARIANTS",
    "CHECK_REQUIREMENTS",
]
