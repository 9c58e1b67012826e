# Overview: Calibration due-date policy and derived "effective status" of tools and toolkits.

"""
Calibration policy.

Pure functions, no database access. Used for live display (tool and toolkit
listings) and for the status distribution on the storage dashboards.

The effective status is a VIEW: it is never written back to the stored
status, so the last manually set condition survives a calibration window.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from toolaudit.time_utils import DateLike, coerce_datetime, utcnow


DEFAULT_CAL_THRESHOLD_DAYS = 7

STATUS_AVAILABLE = "available"
STATUS_FOR_CALIBRATION = "for_calibration"

_SECONDS_PER_DAY = 24 * 60 * 60


def item_field(item: Any, name: str):
    """Read an attribute from an ORM row or a plain dict (frozen copies, to_dict output)."""
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def is_calibration_due(
    value: DateLike,
    threshold_days: int = DEFAULT_CAL_THRESHOLD_DAYS,
    *,
    now: datetime | None = None,
) -> bool:
    """
    True if the calibration date is within threshold_days of now.

    Dates already in the past are always due. Missing or unparseable dates
    are never due.
    """
    due = coerce_datetime(value)
    if due is None:
        return False

    now = now or utcnow()
    diff_days = (due - now).total_seconds() / _SECONDS_PER_DAY
    return diff_days <= threshold_days


def effective_status(
    stored_status: str | None,
    calibration_date: DateLike,
    threshold_days: int = DEFAULT_CAL_THRESHOLD_DAYS,
    *,
    now: datetime | None = None,
) -> str:
    if is_calibration_due(calibration_date, threshold_days, now=now):
        return STATUS_FOR_CALIBRATION
    return stored_status or STATUS_AVAILABLE


def any_content_due(
    contents: Iterable[Any] | None,
    threshold_days: int = DEFAULT_CAL_THRESHOLD_DAYS,
    *,
    now: datetime | None = None,
) -> bool:
    if not contents:
        return False
    return any(
        is_calibration_due(item_field(c, "calibration_due_date"), threshold_days, now=now)
        for c in contents
    )


def effective_toolkit_status(
    toolkit: Any,
    threshold_days: int = DEFAULT_CAL_THRESHOLD_DAYS,
    *,
    now: datetime | None = None,
) -> str:
    """A toolkit goes to calibration as soon as any one of its contents does."""
    if any_content_due(item_field(toolkit, "contents"), threshold_days, now=now):
        return STATUS_FOR_CALIBRATION
    return effective_status(
        item_field(toolkit, "status"),
        item_field(toolkit, "calibration_due_date"),
        threshold_days,
        now=now,
    )
