# Overview: Audit cycle scheduling records (create, list, lookup by storage key).

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import AuditCycle, AUDIT_FREQUENCIES
from ..time_utils import coerce_datetime
from ..validation import ValidationError, require_storage_key
from .concurrency import run_with_retry


# Audit runs required per period when the caller does not say
DEFAULT_MAX_CYCLES = {
    "monthly": 12,
    "quarterly": 4,
    "custom": 1,
}


class CycleError(Exception):
    """Raised when audit cycle operations fail."""
    pass


def default_max_cycles(frequency: str) -> int:
    return DEFAULT_MAX_CYCLES.get(frequency, 1)


def create_audit_cycle(
    *,
    department: str,
    storage_name: str,
    storage_code: str,
    next_audit_date,
    storage_type: str = "",
    frequency: str = "monthly",
    max_cycles: int | None = None,
) -> AuditCycle:
    """
    Schedule audits for a storage location.

    Args:
        next_audit_date: datetime, date or ISO string (required)
        frequency: monthly, quarterly or custom
        max_cycles: audit runs per period; defaults by frequency

    Returns:
        AuditCycle: flushed, not committed

    Raises:
        ValidationError: malformed storage key
        CycleError: bad frequency, missing/invalid date or max_cycles
    """
    department, storage_name, storage_code = require_storage_key(
        department, storage_name, storage_code
    )

    if frequency not in AUDIT_FREQUENCIES:
        raise CycleError(
            f"Invalid frequency {frequency!r}. Allowed: {', '.join(AUDIT_FREQUENCIES)}"
        )

    due = coerce_datetime(next_audit_date)
    if due is None:
        raise CycleError("next_audit_date is required and must be an ISO-8601 date")

    if max_cycles is None:
        max_cycles = default_max_cycles(frequency)
    elif isinstance(max_cycles, bool) or not isinstance(max_cycles, int) or max_cycles < 1:
        raise CycleError("max_cycles must be a positive integer")

    def _op():
        cycle = AuditCycle(
            department=department,
            storage_name=storage_name,
            storage_code=storage_code,
            storage_type=(storage_type or "").strip(),
            frequency=frequency,
            max_cycles=max_cycles,
            cycle_number=0,
            next_audit_date=due,
            status="not_started",
        )
        db.session.add(cycle)
        db.session.flush()
        return cycle

    return run_with_retry(_op)


def list_cycles(
    *,
    department: str | None = None,
    storage_name: str | None = None,
    storage_code: str | None = None,
) -> list[AuditCycle]:
    query = db.session.query(AuditCycle)
    if department:
        query = query.filter(AuditCycle.department == department)
    if storage_name:
        query = query.filter(AuditCycle.storage_name == storage_name)
    if storage_code:
        query = query.filter(AuditCycle.storage_code == storage_code)
    return query.order_by(AuditCycle.next_audit_date.asc(), AuditCycle.id.asc()).all()


def find_cycle_for_storage(department: str, storage_name: str, storage_code: str) -> AuditCycle | None:
    """Most recently created cycle for the exact storage key, if any."""
    return (
        db.session.query(AuditCycle)
        .filter_by(department=department, storage_name=storage_name, storage_code=storage_code)
        .order_by(AuditCycle.created_at.desc(), AuditCycle.id.desc())
        .first()
    )


def cycles_by_storage_key(department: str | None = None) -> dict[tuple[str, str, str], AuditCycle]:
    """
    Map every storage key to its current cycle.

    Rows are read oldest first so the newest cycle per key wins the dict slot.
    """
    query = db.session.query(AuditCycle)
    if department:
        query = query.filter(AuditCycle.department == department)
    cycles = query.order_by(AuditCycle.created_at.asc(), AuditCycle.id.asc()).all()
    return {(c.department, c.storage_name, c.storage_code): c for c in cycles}


def record_audit_run(cycle: AuditCycle, *, when: datetime) -> AuditCycle:
    """
    Advance a cycle after a completed audit run.

    The counter wraps back to 1 once a full period (max_cycles runs) is done.
    """
    if cycle is None:
        raise ValidationError("cycle is required")
    number = (cycle.cycle_number or 0) + 1
    if cycle.max_cycles and number > cycle.max_cycles:
        number = 1
    cycle.cycle_number = number
    cycle.last_audit_date = when
    cycle.status = "completed"
    db.session.flush()
    return cycle
