from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

DATE_FIELDS = ("occurred_at", "date", "createdAt", "created_at")
OWNER_FIELDS = ("owner_id", "user_id", "userId")
CATEGORY_FIELDS = {
    "income": ("source", "category"),
    "expense": ("category", "source"),
}
DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y", "%d.%m.%Y")


class RecordKind:
    values = {"income", "expense"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid record kind.")
        return normalized

    @classmethod
    def grouping_label(cls, kind: str) -> str:
        return "source" if cls.validate(kind) == "income" else "category"


@dataclass(frozen=True)
class FinancialRecord:
    id: str
    kind: str
    amount: Decimal
    category: str
    occurred_at: Optional[datetime]
    owner_id: int | str | None = None
    notes: Optional[str] = None

    @classmethod
    def from_mapping(cls, kind: str, row: Mapping[str, Any]) -> "FinancialRecord":
        """Build a record from a database row or a serialized payload.

        Dates and amounts that cannot be parsed are coerced instead of
        raising: the date becomes ``None`` and the amount becomes zero.
        """
        normalized_kind = RecordKind.validate(kind)
        record_id = str(row.get("id", ""))
        return cls(
            id=record_id,
            kind=normalized_kind,
            amount=coerce_amount(row.get("amount"), record_id=record_id),
            category=_pick_category(normalized_kind, row),
            occurred_at=coerce_occurred_at(_pick_date(row), record_id=record_id),
            owner_id=_pick_owner(row),
            notes=row.get("notes"),
        )


def coerce_amount(value: Any, record_id: str = "") -> Decimal:
    if isinstance(value, Decimal):
        return value if value.is_finite() else _bad_amount(value, record_id)
    if isinstance(value, bool) or value is None:
        return _bad_amount(value, record_id)
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _bad_amount(value, record_id)
    if not amount.is_finite():
        return _bad_amount(value, record_id)
    return amount


def coerce_occurred_at(value: Any, record_id: str = "") -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        parsed = _from_epoch_millis(value)
        if parsed is not None:
            return parsed
    if isinstance(value, str) and value.strip():
        parsed = _parse_datetime(value.strip())
        if parsed is not None:
            return parsed
    logger.warning("Record %s has an unparsable date %r; treating as undated.", record_id, value)
    return None


def day_of(value: datetime | date) -> date:
    """Truncate an instant to its local calendar day."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def _from_epoch_millis(value: int | float | Decimal) -> Optional[datetime]:
    """Numeric timestamps are milliseconds since the Unix epoch, as JSON clients send them."""
    try:
        return datetime.fromtimestamp(float(value) / 1000)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_datetime(value: str) -> Optional[datetime]:
    try:
        # Accepts offsets and a trailing "Z" as produced by JSON serializers.
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def _pick_date(row: Mapping[str, Any]) -> Any:
    for field in DATE_FIELDS:
        if row.get(field) is not None:
            return row[field]
    return None


def _pick_owner(row: Mapping[str, Any]) -> Any:
    for field in OWNER_FIELDS:
        if row.get(field) is not None:
            return row[field]
    return None


def _pick_category(kind: str, row: Mapping[str, Any]) -> str:
    for field in CATEGORY_FIELDS[kind]:
        value = row.get(field)
        if value is not None:
            return str(value)
    return ""


def _bad_amount(value: Any, record_id: str) -> Decimal:
    logger.warning("Record %s has a non-numeric amount %r; counting it as zero.", record_id, value)
    return ZERO
