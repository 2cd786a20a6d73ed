"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for all contracts.
It enforces semantic invariants of the ledger and viewport.
"""

from shieldgrid.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Enforce a contract.

    Called at component boundaries to verify the preceding operation left
    its guaranteed invariants in place. It is fail-fast: no recovery,
    no fallback, no silence.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ContractViolation is raised.

    message : str
        Error message explaining the contract violation (for debugging).

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug.

    Examples
    --------
    >>> require(camera.min_scale <= camera.scale, "Camera contract: scale below minimum")
    """
    if not condition:
        raise ContractViolation(message)
