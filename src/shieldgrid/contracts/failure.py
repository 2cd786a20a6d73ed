"""Centralized failure taxonomy.

Contract violations fail fast, loud, and once. Domain failures raised by
the ledger carry a machine-readable reason so callers can distinguish
"already taken" from "invalid input" and re-offer a selection.
"""

from enum import Enum
from typing import Iterable, Tuple


class ClaimFailure(str, Enum):
    """Why a claim was rejected.

    ALREADY_TAKEN: one or more target cells are locked by a live claim
    INVALID_INPUT: empty cell list, duplicate or off-grid coordinates,
                   unparseable colors, or a reused transaction id
    """
    ALREADY_TAKEN = "already_taken"
    INVALID_INPUT = "invalid_input"


class ContractViolation(RuntimeError):
    """Raised when an internal invariant is violated.

    This indicates a bug in ledger or viewport logic, not bad user input.

    Key distinction:
    - ValueError / ValidationError: User/config error (handled by Pydantic)
    - InvalidClaim: Expected, user-visible rejection of a claim
    - ContractViolation: Programmer error
    """
    pass


class InvalidClaim(Exception):
    """A claim was rejected before any cell was touched.

    Attributes
    ----------
    reason : ClaimFailure
        Category of the rejection.
    coords : tuple of (x, y)
        Offending coordinates, if the rejection is about specific cells.
    """

    def __init__(self, reason: ClaimFailure, message: str,
                 coords: Iterable[Tuple[int, int]] = ()):
        super().__init__(message)
        self.reason = ClaimFailure(reason)
        self.coords = tuple(coords)

    @property
    def already_taken(self) -> bool:
        return self.reason is ClaimFailure.ALREADY_TAKEN


class OutOfBounds(InvalidClaim):
    """Coordinates outside ``[0, grid_size)``."""

    def __init__(self, coords: Iterable[Tuple[int, int]], grid_size: int):
        coords = tuple(coords)
        super().__init__(
            ClaimFailure.INVALID_INPUT,
            f"{len(coords)} coordinate(s) outside grid of size {grid_size}: {list(coords)[:5]}",
            coords,
        )
        self.grid_size = grid_size
