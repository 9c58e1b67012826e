# Overview: Audit snapshot ingestion: sequence allocation, supervisor gate, frozen inventory copies.

"""
Audit snapshot service.

WHY: A snapshot is the only durable evidence that a storage was audited on
a given day. Once written it is never changed; the EQ5044 report is rebuilt
from these rows.

SEQUENCING:
- Every storage (department + storage name + storage code) has its own
  1-based snapshot counter in audit_snapshot_sequences.
- The counter is advanced with a single UPDATE ... SET next_number =
  next_number + 1, so two audits finishing together cannot claim the
  same number. The unique (storage, sequence_number) constraint on
  audit_snapshots is the backstop.
- Every SUPERVISOR_SIGNOFF_INTERVAL-th snapshot (default 6th) needs a
  supervisor name and employee id.
"""
from __future__ import annotations

import copy

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    AuditCycle,
    AuditSnapshot,
    AuditSnapshotSequence,
    SnapshotImmutableError,
    Tool,
    Toolkit,
)
from ..time_utils import coerce_datetime, utcnow
from ..validation import ValidationError, require_storage_key
from .audit_history import is_supervisor_required
from .audit_progress import is_toolkit_checked
from .concurrency import RETRYABLE_ERRORS, run_with_retry
from . import cycle_service


DEFAULT_SIGNOFF_INTERVAL = 6

COUNT_FIELDS = (
    "total_tools",
    "present_tools",
    "needs_update_tools",
    "missing_tools",
    "toolkits_audited",
    "toolkits_pending",
)

__all__ = [
    "SnapshotValidationError",
    "SnapshotImmutableError",
    "create_snapshot",
    "complete_audit",
    "freeze_storage_inventory",
    "compute_snapshot_counts",
    "list_snapshots",
    "peek_next_sequence_number",
]


class SnapshotValidationError(Exception):
    """Raised when a snapshot cannot be created from the given input."""
    pass


def _signoff_interval() -> int:
    return int(current_app.config.get("SUPERVISOR_SIGNOFF_INTERVAL", DEFAULT_SIGNOFF_INTERVAL))


def _storage_key(department, storage_name, storage_code) -> tuple[str, str, str]:
    try:
        return require_storage_key(department, storage_name, storage_code)
    except ValidationError as exc:
        raise SnapshotValidationError(str(exc)) from exc


def _clean_supervisor(supervisor: dict | None) -> tuple[str, str] | None:
    """(name, employee_id) with both trimmed and non-empty, else None."""
    if not isinstance(supervisor, dict):
        return None
    name = supervisor.get("name")
    employee_id = supervisor.get("employee_id")
    name = name.strip() if isinstance(name, str) else ""
    employee_id = str(employee_id).strip() if employee_id is not None else ""
    if not name or not employee_id:
        return None
    return name, employee_id


def _frozen_copy(value) -> list:
    # Non-list payloads (a dict, a string) would break the report join later
    if not isinstance(value, list):
        return []
    return copy.deepcopy(value)


def _existing_snapshot_count(key: tuple[str, str, str]) -> int:
    department, storage_name, storage_code = key
    return (
        db.session.query(func.count(AuditSnapshot.id))
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .scalar()
        or 0
    )


def peek_next_sequence_number(department: str, storage_name: str, storage_code: str) -> int:
    """
    The number the next snapshot of this storage would get. Read-only.

    Storages that predate the counter table continue from their snapshot count.
    """
    key = (department, storage_name, storage_code)
    current = (
        db.session.query(AuditSnapshotSequence.next_number)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .scalar()
    )
    if current is not None:
        return current
    return _existing_snapshot_count(key) + 1


def _allocate_sequence_number(key: tuple[str, str, str]) -> int:
    """
    Atomically claim the next sequence number for a storage.

    Must run before anything else is staged in the session: a counter
    creation race rolls the session back and retries the UPDATE.
    """
    department, storage_name, storage_code = key
    stmt = (
        update(AuditSnapshotSequence)
        .where(
            AuditSnapshotSequence.department == department,
            AuditSnapshotSequence.storage_name == storage_name,
            AuditSnapshotSequence.storage_code == storage_code,
        )
        .values(next_number=AuditSnapshotSequence.next_number + 1)
    )

    def _claimed() -> int:
        db.session.flush()
        current = (
            db.session.query(AuditSnapshotSequence.next_number)
            .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        return _claimed()

    first = _existing_snapshot_count(key) + 1
    seq = AuditSnapshotSequence(
        department=department,
        storage_name=storage_name,
        storage_code=storage_code,
        next_number=first + 1,
    )
    db.session.add(seq)
    try:
        db.session.flush()
        return first
    except IntegrityError:
        # Another request created the counter first
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _claimed()


def create_snapshot(
    *,
    department: str,
    storage_name: str,
    storage_code: str,
    tool_data=None,
    toolkit_data=None,
    counts: dict | None = None,
    supervisor: dict | None = None,
    cycle_id: int | None = None,
    snapshot_date=None,
) -> AuditSnapshot:
    """
    Append a new audit snapshot for a storage location.

    Args:
        tool_data / toolkit_data: inventory as audited; deep-copied, non-lists become []
        counts: summary counts (see COUNT_FIELDS); missing counts default to 0
        supervisor: {"name": str, "employee_id": str}; required on every 6th snapshot
        cycle_id: audit cycle to attach; defaults to the storage's current cycle
        snapshot_date: defaults to now

    Returns:
        AuditSnapshot: flushed, not committed

    Raises:
        SnapshotValidationError: missing storage key, unknown cycle, bad counts,
            or supervisor sign-off missing when required. When the sign-off
            check fails after a number was claimed, the session has already
            been rolled back.
    """
    key = _storage_key(department, storage_name, storage_code)
    interval = _signoff_interval()
    signoff = _clean_supervisor(supervisor)

    counts = counts or {}
    if not isinstance(counts, dict):
        raise SnapshotValidationError("counts must be an object")
    clean_counts = {}
    for name in COUNT_FIELDS:
        value = counts.get(name, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise SnapshotValidationError(f"{name} must be a non-negative integer")
        clean_counts[name] = value

    when = utcnow()
    if snapshot_date is not None:
        when = coerce_datetime(snapshot_date)
        if when is None:
            raise SnapshotValidationError("snapshot_date must be an ISO-8601 datetime")

    frozen_tools = _frozen_copy(tool_data)
    frozen_kits = _frozen_copy(toolkit_data)

    if cycle_id is not None:
        cycle = db.session.get(AuditCycle, cycle_id)
        if cycle is None:
            raise SnapshotValidationError(f"Audit cycle {cycle_id} not found")
        if (cycle.department, cycle.storage_name, cycle.storage_code) != key:
            raise SnapshotValidationError("Audit cycle belongs to a different storage location")

    # Fail before touching the counter when the gate is already known to apply
    if signoff is None and is_supervisor_required(peek_next_sequence_number(*key), interval):
        raise SnapshotValidationError(
            "Supervisor name and employee_id are required for this audit snapshot"
        )

    def _op() -> AuditSnapshot:
        sequence_number = _allocate_sequence_number(key)
        # A concurrent writer may have moved the counter since the peek;
        # the claimed number is released before rejecting
        if signoff is None and is_supervisor_required(sequence_number, interval):
            db.session.rollback()
            raise SnapshotValidationError(
                f"Supervisor name and employee_id are required for audit snapshot #{sequence_number}"
            )

        resolved_cycle_id = cycle_id
        if resolved_cycle_id is None:
            cycle = cycle_service.find_cycle_for_storage(*key)
            resolved_cycle_id = cycle.id if cycle is not None else None

        snapshot = AuditSnapshot(
            department=key[0],
            storage_name=key[1],
            storage_code=key[2],
            cycle_id=resolved_cycle_id,
            sequence_number=sequence_number,
            snapshot_date=when,
            supervisor_name=signoff[0] if signoff else None,
            supervisor_employee_id=signoff[1] if signoff else None,
            tool_data=frozen_tools,
            toolkit_data=frozen_kits,
            **clean_counts,
        )
        db.session.add(snapshot)
        db.session.flush()
        return snapshot

    return run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (IntegrityError,))


def list_snapshots(
    *,
    department: str | None = None,
    storage_name: str | None = None,
    storage_code: str | None = None,
    cycle_id: int | None = None,
) -> list[AuditSnapshot]:
    """Snapshots oldest first: by sequence number, then date, then creation."""
    query = db.session.query(AuditSnapshot)
    if department:
        query = query.filter(AuditSnapshot.department == department)
    if storage_name:
        query = query.filter(AuditSnapshot.storage_name == storage_name)
    if storage_code:
        query = query.filter(AuditSnapshot.storage_code == storage_code)
    if cycle_id is not None:
        query = query.filter(AuditSnapshot.cycle_id == cycle_id)
    return query.order_by(
        AuditSnapshot.sequence_number.asc(),
        AuditSnapshot.snapshot_date.asc(),
        AuditSnapshot.created_at.asc(),
        AuditSnapshot.id.asc(),
    ).all()


def load_storage_snapshots(department: str, storage_name: str, storage_code: str) -> list[AuditSnapshot]:
    """All snapshots of one storage in time order (report input)."""
    return (
        db.session.query(AuditSnapshot)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .order_by(AuditSnapshot.snapshot_date.asc(), AuditSnapshot.created_at.asc(), AuditSnapshot.id.asc())
        .all()
    )


# =============================================================================
# Complete audit: freeze live inventory into a snapshot
# =============================================================================

def freeze_storage_inventory(department: str, storage_name: str, storage_code: str) -> tuple[list, list]:
    """Serialize the live tools and toolkits (with contents) of one storage."""
    tools = (
        db.session.query(Tool)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .order_by(Tool.id.asc())
        .all()
    )
    toolkits = (
        db.session.query(Toolkit)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .order_by(Toolkit.id.asc())
        .all()
    )
    return [t.to_dict() for t in tools], [k.to_dict(include_contents=True) for k in toolkits]


def compute_snapshot_counts(tool_data: list, toolkit_data: list) -> dict:
    """
    Summary counts over frozen data.

    Tools: present / needs_update / missing (anything else, i.e. still pending).
    Toolkits: audited once completed, pending otherwise.
    """
    present = sum(1 for t in tool_data if t.get("audit_status") == "present")
    needs_update = sum(1 for t in tool_data if t.get("audit_status") == "needs_update")
    audited_kits = sum(1 for k in toolkit_data if is_toolkit_checked(k))
    return {
        "total_tools": len(tool_data),
        "present_tools": present,
        "needs_update_tools": needs_update,
        "missing_tools": len(tool_data) - present - needs_update,
        "toolkits_audited": audited_kits,
        "toolkits_pending": len(toolkit_data) - audited_kits,
    }


def complete_audit(
    *,
    department: str,
    storage_name: str,
    storage_code: str,
    supervisor: dict | None = None,
    cycle_id: int | None = None,
) -> AuditSnapshot:
    """
    Close out an audit run: freeze the storage's current inventory, ingest
    it as a snapshot and advance the linked audit cycle.

    Raises:
        SnapshotValidationError: as create_snapshot, or the storage is empty
    """
    key = _storage_key(department, storage_name, storage_code)
    tool_data, toolkit_data = freeze_storage_inventory(*key)
    if not tool_data and not toolkit_data:
        raise SnapshotValidationError("Storage location has no tools or toolkits to audit")

    snapshot = create_snapshot(
        department=key[0],
        storage_name=key[1],
        storage_code=key[2],
        tool_data=tool_data,
        toolkit_data=toolkit_data,
        counts=compute_snapshot_counts(tool_data, toolkit_data),
        supervisor=supervisor,
        cycle_id=cycle_id,
    )

    if snapshot.cycle is not None:
        cycle_service.record_audit_run(snapshot.cycle, when=snapshot.snapshot_date)

    current_app.logger.info(
        "Audit snapshot #%d recorded for %s / %s / %s",
        snapshot.sequence_number,
        *key,
    )
    return snapshot
