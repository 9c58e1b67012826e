from __future__ import annotations

from ..extensions import db
from toolaudit.time_utils import to_utc_z, to_iso_date


class StorageKeyMixin:
    """
    Physical placement shared by tools and toolkits.

    qr_location holds the scan code of the row/drawer; NULL means unassigned.
    """
    department = db.Column(db.String(120), nullable=False, index=True)
    storage_name = db.Column(db.String(120), nullable=False)
    storage_code = db.Column(db.String(64), nullable=False)
    storage_type = db.Column(db.String(64), nullable=False, default="")
    qr_location = db.Column(db.String(128), nullable=True)

    def storage_dict(self) -> dict:
        return {
            "department": self.department,
            "storage_name": self.storage_name,
            "storage_code": self.storage_code,
            "storage_type": self.storage_type,
            "qr_location": self.qr_location,
        }


class Tool(StorageKeyMixin, db.Model):
    """
    An individually tracked tool.

    status is the last manually set condition. The calibration override
    ("for_calibration" when due) is computed on read and never stored here.
    """
    __tablename__ = "tools"
    __table_args__ = (
        db.Index("ix_tools_storage_key", "department", "storage_name", "storage_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    eq_number = db.Column(db.String(64), nullable=True, unique=True)
    qty = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(32), nullable=False, default="available", index=True)
    calibration_due_date = db.Column(db.Date, nullable=True)

    audit_status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    last_audited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Tool id={self.id} eq_number={self.eq_number!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "eq_number": self.eq_number,
            "qty": self.qty,
            "status": self.status,
            "calibration_due_date": to_iso_date(self.calibration_due_date),
            "audit_status": self.audit_status,
            "last_audited_at": to_utc_z(self.last_audited_at) if self.last_audited_at else None,
            **self.storage_dict(),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Toolkit(StorageKeyMixin, db.Model):
    """
    A kit of tools audited as one unit.

    AUDIT: a toolkit only counts as audited once its own audit_status is
    "completed", i.e. every content has been checked.
    """
    __tablename__ = "toolkits"
    __table_args__ = (
        db.Index("ix_toolkits_storage_key", "department", "storage_name", "storage_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    kit_number = db.Column(db.String(64), nullable=True, unique=True)
    # Label on the kit case itself (scanning it opens the kit audit)
    qr_code = db.Column(db.String(128), nullable=True, unique=True, index=True)

    status = db.Column(db.String(32), nullable=False, default="available", index=True)
    calibration_due_date = db.Column(db.Date, nullable=True)

    audit_status = db.Column(db.String(32), nullable=False, default="pending", index=True)
    last_audited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    contents = db.relationship(
        "KitContent",
        backref="toolkit",
        lazy=True,
        order_by="KitContent.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Toolkit id={self.id} kit_number={self.kit_number!r} name={self.name!r}>"

    def to_dict(self, include_contents: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "kit_number": self.kit_number,
            "qr_code": self.qr_code,
            "status": self.status,
            "calibration_due_date": to_iso_date(self.calibration_due_date),
            "audit_status": self.audit_status,
            "last_audited_at": to_utc_z(self.last_audited_at) if self.last_audited_at else None,
            **self.storage_dict(),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_contents:
            data["contents"] = [c.to_dict() for c in self.contents]
        return data


class KitContent(db.Model):
    """
    One line inside a toolkit. Has no location of its own: it is wherever
    its parent toolkit is.
    """
    __tablename__ = "kit_contents"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    toolkit_id = db.Column(db.Integer, db.ForeignKey("toolkits.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    eq_number = db.Column(db.String(64), nullable=True)
    qty = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(32), nullable=False, default="available")
    calibration_due_date = db.Column(db.Date, nullable=True)

    audit_status = db.Column(db.String(32), nullable=False, default="pending")
    last_audited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "toolkit_id": self.toolkit_id,
            "name": self.name,
            "eq_number": self.eq_number,
            "qty": self.qty,
            "status": self.status,
            "calibration_due_date": to_iso_date(self.calibration_due_date),
            "audit_status": self.audit_status,
            "last_audited_at": to_utc_z(self.last_audited_at) if self.last_audited_at else None,
        }
