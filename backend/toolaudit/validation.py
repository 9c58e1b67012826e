from __future__ import annotations
from datetime import date, datetime
from toolaudit.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


TOOL_STATUSES = (
    "available",
    "in_use",
    "for_calibration",
    "damaged",
    "lost",
    "maintenance",
    "expired",
)

# Per-item audit marks (tools and kit contents)
ITEM_AUDIT_STATUSES = ("present", "needs_update", "pending")

# Toolkits additionally track progress through their own contents
TOOLKIT_AUDIT_STATUSES = ITEM_AUDIT_STATUSES + ("in_progress", "completed")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate equipment number)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates (calibration due dates, audit schedule)
    if isinstance(coltype, Date):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            try:
                return date.fromisoformat(stripped[:10])
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def require_storage_key(department, storage_name, storage_code) -> tuple[str, str, str]:
    """
    Normalize a (department, storage name, storage code) triple.

    A malformed key is a usage error, distinct from "no data for this storage".
    """
    parts = []
    for label, value in (
        ("department", department),
        ("storage_name", storage_name),
        ("storage_code", storage_code),
    ):
        if value is None or not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{label} is required")
        parts.append(value.strip())
    return parts[0], parts[1], parts[2]


def enforce_rules_item(patch: dict) -> None:
    """
    Business rules for tools and kit contents that SQLAlchemy metadata
    does not capture. Keep these small and centralized.
    """
    if "qty" in patch and patch["qty"] is not None:
        if patch["qty"] < 1:
            raise ValidationError("qty must be >= 1")

    if "status" in patch and patch["status"] is not None:
        if patch["status"] not in TOOL_STATUSES:
            raise ValidationError(
                f"Invalid status {patch['status']!r}. Allowed: {', '.join(TOOL_STATUSES)}"
            )

    if "audit_status" in patch and patch["audit_status"] is not None:
        validate_audit_status(patch["audit_status"])


def validate_audit_status(status: str, *, allowed: tuple[str, ...] = ITEM_AUDIT_STATUSES) -> str:
    if status not in allowed:
        raise ValidationError(
            f"Invalid audit_status {status!r}. Allowed: {', '.join(allowed)}"
        )
    return status
