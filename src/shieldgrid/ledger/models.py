"""Ledger data model.

Runtime entries (``Cell``, ``OwnershipRecord``) are plain dataclasses kept in
the ledger's dictionaries. Persisted entries are validated through the
Pydantic ``SnapshotCell`` / ``SnapshotOwnership`` models on restore, which
also accept the camelCase field names of older JSON exports
(``expiryTime``, ``squares``, ``originalColor``...).
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, NamedTuple, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shieldgrid.colors import normalize_color

Coord = Tuple[int, int]
Snapshot = Dict[str, Dict[str, Dict[str, Any]]]

ANONYMOUS = "Anonymous"


def cell_key(x: int, y: int) -> str:
    """Storage key for a coordinate, ``"x,y"``."""
    return f"{x},{y}"


def parse_key(key: str) -> Coord:
    """Inverse of :func:`cell_key`.

    Raises
    ------
    ValueError
        If the key is not two comma-separated integers.
    """
    parts = key.split(",")
    if len(parts) != 2:
        raise ValueError(f"Bad cell key: {key!r}")
    return int(parts[0]), int(parts[1])


class CellSpec(NamedTuple):
    """One requested cell in a claim."""
    x: int
    y: int
    color: str

    @classmethod
    def coerce(cls, item: Any) -> "CellSpec":
        """Accept ``CellSpec``, ``(x, y, color)`` tuples or ``{"x", "y", "color"}`` dicts."""
        if isinstance(item, cls):
            return item
        if isinstance(item, dict):
            return cls(item["x"], item["y"], item["color"])
        x, y, color = item
        return cls(x, y, color)


@dataclass(frozen=True)
class Cell:
    """A claimed cell. Immutable; edits replace the entry."""
    x: int
    y: int
    color: str
    claimed_at: datetime
    expires_at: datetime
    contact_info: Optional[str] = None

    @property
    def key(self) -> str:
        return cell_key(self.x, self.y)

    @property
    def coord(self) -> Coord:
        return (self.x, self.y)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def with_color(self, color: str) -> "Cell":
        return replace(self, color=color)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "color": self.color,
            "claimed_at": self.claimed_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "contact_info": self.contact_info,
        }


@dataclass
class OwnershipRecord:
    """Cells claimed together under one transaction.

    ``cell_coords`` is historical: a coordinate stays listed after its cell
    expires. Whether the record still owns it is answered by the ledger's
    reverse index.
    """
    transaction_id: str
    cell_coords: FrozenSet[Coord]
    original_color: str
    claimed_at: datetime
    url: Optional[str] = None
    username: str = ANONYMOUS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cell_coords": [list(c) for c in sorted(self.cell_coords)],
            "original_color": self.original_color,
            "claimed_at": self.claimed_at.isoformat(),
            "url": self.url,
            "username": self.username,
        }


# =============================================================================
# Snapshot validation models
# =============================================================================

def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class SnapshotCell(BaseModel):
    """Persisted cell entry.

    ``x`` / ``y`` may be omitted; the ledger then takes them from the key.
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    x: Optional[int] = None
    y: Optional[int] = None
    color: str
    claimed_at: datetime = Field(validation_alias=AliasChoices("claimed_at", "claimedAt", "timestamp"))
    expires_at: datetime = Field(validation_alias=AliasChoices("expires_at", "expiresAt", "expiryTime"))
    contact_info: Optional[str] = Field(
        None, validation_alias=AliasChoices("contact_info", "contactInfo", "email")
    )

    @field_validator("color", mode="before")
    @classmethod
    def check_color(cls, v):
        return normalize_color(v)

    @field_validator("claimed_at", "expires_at")
    @classmethod
    def force_utc(cls, v):
        return _as_utc(v)


class SnapshotOwnership(BaseModel):
    """Persisted ownership record."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    cell_coords: list[Tuple[int, int]] = Field(
        min_length=1, validation_alias=AliasChoices("cell_coords", "cellCoords", "squares")
    )
    original_color: str = Field(validation_alias=AliasChoices("original_color", "originalColor"))
    claimed_at: datetime = Field(validation_alias=AliasChoices("claimed_at", "claimedAt", "timestamp"))
    url: Optional[str] = None
    username: Optional[str] = None

    @field_validator("cell_coords", mode="before")
    @classmethod
    def coords_from_dicts(cls, v):
        """Accept ``[{"x": 1, "y": 2}]`` as well as ``[[1, 2]]``."""
        if not isinstance(v, list):
            return v
        coords = []
        for c in v:
            if isinstance(c, dict):
                if not {"x", "y"} <= c.keys():
                    raise ValueError(f"coordinate {c!r} needs both 'x' and 'y'")
                c = (c["x"], c["y"])
            coords.append(c)
        return coords

    @field_validator("original_color", mode="before")
    @classmethod
    def check_color(cls, v):
        return normalize_color(v)

    @field_validator("claimed_at")
    @classmethod
    def force_utc(cls, v):
        return _as_utc(v)


def empty_snapshot() -> Snapshot:
    return {"cells": {}, "ownership": {}}


class OwnershipScope:
    """The transaction ids a session may edit with.

    Ledger edit methods accept a bare transaction id, any iterable of ids,
    or one of these.
    """

    def __init__(self, transaction_ids=()):
        self._ids = set(transaction_ids)

    def add(self, transaction_id: str) -> None:
        self._ids.add(transaction_id)

    def discard(self, transaction_id: str) -> None:
        self._ids.discard(transaction_id)

    def clear(self) -> None:
        self._ids.clear()

    def __contains__(self, transaction_id) -> bool:
        return transaction_id in self._ids

    def __iter__(self):
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"OwnershipScope({sorted(self._ids)!r})"


def as_scope(requesting) -> FrozenSet[str]:
    """Normalize a transaction id / iterable of ids / scope to a frozenset."""
    if requesting is None:
        return frozenset()
    if isinstance(requesting, str):
        return frozenset((requesting,))
    return frozenset(requesting)


@dataclass(frozen=True)
class TransactionView:
    """A record together with the cells it still owns."""
    transaction_id: str
    claimed_at: datetime
    cells: Tuple[Cell, ...]
    original_color: str
    url: Optional[str]
    username: str

    @property
    def count(self) -> int:
        return len(self.cells)
