from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from toolaudit.time_utils import to_utc_z


AUDIT_FREQUENCIES = ("monthly", "quarterly", "custom")
AUDIT_CYCLE_STATUSES = ("not_started", "in_progress", "completed", "overdue")


class SnapshotImmutableError(Exception):
    """Raised when something tries to modify or delete a stored audit snapshot."""
    pass


class AuditCycle(db.Model):
    """
    Audit schedule for one storage location.

    Owned by the scheduling side of the application; reporting reads it
    only to label snapshots and to flag overdue storages.
    """
    __tablename__ = "audit_cycles"
    __table_args__ = (
        db.Index("ix_audit_cycles_storage_key", "department", "storage_name", "storage_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department = db.Column(db.String(120), nullable=False)
    storage_name = db.Column(db.String(120), nullable=False)
    storage_code = db.Column(db.String(64), nullable=False)
    storage_type = db.Column(db.String(64), nullable=False, default="")

    frequency = db.Column(db.String(16), nullable=False, default="monthly")
    # How many audit runs the period requires (12 for monthly, 4 for quarterly)
    max_cycles = db.Column(db.Integer, nullable=False, default=12)
    # Runs satisfied so far in the current period
    cycle_number = db.Column(db.Integer, nullable=False, default=0)

    next_audit_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_audit_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="not_started")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "department": self.department,
            "storage_name": self.storage_name,
            "storage_code": self.storage_code,
            "storage_type": self.storage_type,
            "frequency": self.frequency,
            "max_cycles": self.max_cycles,
            "cycle_number": self.cycle_number,
            "next_audit_date": to_utc_z(self.next_audit_date) if self.next_audit_date else None,
            "last_audit_date": to_utc_z(self.last_audit_date) if self.last_audit_date else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditSnapshotSequence(db.Model):
    """
    Atomic per-storage snapshot counter.

    WHY: counting existing snapshots and inserting count+1 lets two
    concurrent audits of the same storage claim the same number.
    """
    __tablename__ = "audit_snapshot_sequences"
    __table_args__ = (
        db.UniqueConstraint(
            "department", "storage_name", "storage_code",
            name="uq_audit_snapshot_sequences_storage",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department = db.Column(db.String(120), nullable=False)
    storage_name = db.Column(db.String(120), nullable=False)
    storage_code = db.Column(db.String(64), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())


class AuditSnapshot(db.Model):
    """
    Frozen record of one completed audit run of a storage location.

    APPEND-ONLY: rows are inserted once and never updated or deleted
    (enforced by the mapper listeners below). tool_data / toolkit_data are
    deep copies of the inventory as it was audited, so editing live tools
    never rewrites history.
    """
    __tablename__ = "audit_snapshots"
    __table_args__ = (
        db.UniqueConstraint(
            "department", "storage_name", "storage_code", "sequence_number",
            name="uq_audit_snapshots_storage_sequence",
        ),
        db.Index("ix_audit_snapshots_storage_date", "department", "storage_name", "storage_code", "snapshot_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department = db.Column(db.String(120), nullable=False)
    storage_name = db.Column(db.String(120), nullable=False)
    storage_code = db.Column(db.String(64), nullable=False)

    cycle_id = db.Column(db.Integer, db.ForeignKey("audit_cycles.id"), nullable=True, index=True)

    # 1-based, strictly increasing per storage; allocated server-side only
    sequence_number = db.Column(db.Integer, nullable=False)
    snapshot_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supervisor_name = db.Column(db.String(120), nullable=True)
    supervisor_employee_id = db.Column(db.String(64), nullable=True)

    tool_data = db.Column(db.JSON, nullable=False, default=list)
    toolkit_data = db.Column(db.JSON, nullable=False, default=list)

    total_tools = db.Column(db.Integer, nullable=False, default=0)
    present_tools = db.Column(db.Integer, nullable=False, default=0)
    needs_update_tools = db.Column(db.Integer, nullable=False, default=0)
    missing_tools = db.Column(db.Integer, nullable=False, default=0)
    toolkits_audited = db.Column(db.Integer, nullable=False, default=0)
    toolkits_pending = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cycle = db.relationship("AuditCycle")

    def __repr__(self) -> str:
        return (
            f"<AuditSnapshot id={self.id} storage={self.storage_code!r} "
            f"sequence={self.sequence_number}>"
        )

    @property
    def supervisor(self) -> dict | None:
        if not self.supervisor_name and not self.supervisor_employee_id:
            return None
        return {"name": self.supervisor_name, "employee_id": self.supervisor_employee_id}

    def to_dict(self, include_data: bool = False) -> dict:
        data = {
            "id": self.id,
            "department": self.department,
            "storage_name": self.storage_name,
            "storage_code": self.storage_code,
            "cycle_id": self.cycle_id,
            "sequence_number": self.sequence_number,
            "snapshot_date": to_utc_z(self.snapshot_date),
            "supervisor": self.supervisor,
            "total_tools": self.total_tools,
            "present_tools": self.present_tools,
            "needs_update_tools": self.needs_update_tools,
            "missing_tools": self.missing_tools,
            "toolkits_audited": self.toolkits_audited,
            "toolkits_pending": self.toolkits_pending,
            "created_at": to_utc_z(self.created_at),
        }
        if include_data:
            data["tool_data"] = self.tool_data or []
            data["toolkit_data"] = self.toolkit_data or []
        return data


@event.listens_for(AuditSnapshot, "before_update")
def _block_snapshot_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise SnapshotImmutableError(f"Audit snapshot {target.id} is immutable and cannot be modified")


@event.listens_for(AuditSnapshot, "before_delete")
def _block_snapshot_delete(mapper, connection, target):
    raise SnapshotImmutableError(f"Audit snapshot {target.id} cannot be deleted")
