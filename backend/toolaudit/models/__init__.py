from .storage import StorageLocation, QrLocation
from .inventory import Tool, Toolkit, KitContent
from .audits import (
    AuditCycle,
    AuditSnapshot,
    AuditSnapshotSequence,
    SnapshotImmutableError,
    AUDIT_FREQUENCIES,
    AUDIT_CYCLE_STATUSES,
)

__all__ = [
    'StorageLocation', 'QrLocation',
    'Tool', 'Toolkit', 'KitContent',
    'AuditCycle', 'AuditSnapshot', 'AuditSnapshotSequence', 'SnapshotImmutableError',
    'AUDIT_FREQUENCIES', 'AUDIT_CYCLE_STATUSES',
]
