from __future__ import annotations

from ..extensions import db
from toolaudit.time_utils import to_utc_z


class StorageLocation(db.Model):
    """
    A physical storage unit (roll cabinet, shelf, cage) within a department.

    KEYING: Items, cycles and snapshots never hold a foreign key to this row.
    They carry the (department, storage_name, storage_code) triple and are
    joined on it, so a storage can be audited before it is formally registered.
    """
    __tablename__ = "storage_locations"
    __table_args__ = (
        db.UniqueConstraint(
            "department", "storage_name", "storage_code",
            name="uq_storage_locations_key",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    department = db.Column(db.String(120), nullable=False, index=True)
    storage_name = db.Column(db.String(120), nullable=False)
    storage_code = db.Column(db.String(64), nullable=False)
    storage_type = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    qr_locations = db.relationship(
        "QrLocation",
        backref="storage_location",
        lazy=True,
        order_by="QrLocation.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<StorageLocation id={self.id} department={self.department!r} "
            f"name={self.storage_name!r} code={self.storage_code!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "department": self.department,
            "storage_name": self.storage_name,
            "storage_code": self.storage_code,
            "storage_type": self.storage_type,
            "is_active": self.is_active,
            "qr_locations": [q.to_dict() for q in self.qr_locations],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class QrLocation(db.Model):
    """A scannable row / drawer / shelf inside a storage location."""
    __tablename__ = "qr_locations"
    __table_args__ = (
        db.UniqueConstraint("storage_location_id", "row_name", name="uq_qr_locations_storage_row"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    storage_location_id = db.Column(
        db.Integer, db.ForeignKey("storage_locations.id"), nullable=False, index=True
    )
    row_name = db.Column(db.String(120), nullable=False)
    # Scan codes are globally unique so a scan resolves without context
    qr_code = db.Column(db.String(128), nullable=False, unique=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "storage_location_id": self.storage_location_id,
            "row_name": self.row_name,
            "qr_code": self.qr_code,
        }
