"""Grid ownership ledger, change bus and snapshot stores."""

from shieldgrid.ledger.events import (
    BatchChange,
    CellChange,
    CellChanged,
    CellRemoved,
    ChangeBus,
    FullRefresh,
    LedgerMetadataChanged,
    Subscription,
    affected_coords,
)
from shieldgrid.ledger.ledger import GridLedger, new_transaction_id
from shieldgrid.ledger.models import (
    ANONYMOUS,
    Cell,
    CellSpec,
    OwnershipRecord,
    OwnershipScope,
    TransactionView,
    cell_key,
    empty_snapshot,
    parse_key,
)
from shieldgrid.ledger.store import (
    ClaimAuthorizer,
    JsonSnapshotStore,
    LocalClaimAuthorizer,
    MemorySnapshotStore,
    SnapshotStore,
    SQLiteSnapshotStore,
    make_store,
)

__all__ = [
    'GridLedger', 'new_transaction_id',
    'Cell', 'CellSpec', 'OwnershipRecord', 'OwnershipScope', 'TransactionView',
    'ANONYMOUS', 'cell_key', 'parse_key', 'empty_snapshot',
    'ChangeBus', 'Subscription', 'CellChanged', 'CellChange', 'BatchChange',
    'CellRemoved', 'FullRefresh', 'LedgerMetadataChanged', 'affected_coords',
    'SnapshotStore', 'SQLiteSnapshotStore', 'JsonSnapshotStore', 'MemorySnapshotStore',
    'ClaimAuthorizer', 'LocalClaimAuthorizer', 'make_store',
]
