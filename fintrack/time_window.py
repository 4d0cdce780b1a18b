from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional

from fintrack.records import FinancialRecord, day_of

DEFAULT_WINDOW = "all"
WINDOW_DAYS = {
    "week": 7,
    "month": 30,
    "year": 365,
}


class TimeWindow:
    values = {"all", *WINDOW_DAYS}

    @classmethod
    def validate(cls, value: str | None) -> str:
        normalized = (value or DEFAULT_WINDOW).strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid time window. Use all, year, month, or week.")
        return normalized


def filter_by_window(
    records: Optional[Iterable[FinancialRecord]],
    now: datetime | date | None = None,
    window: str = DEFAULT_WINDOW,
) -> List[FinancialRecord]:
    normalized_window = TimeWindow.validate(window)
    if records is None:
        return []
    if normalized_window == "all":
        return list(records)

    window_start = day_of(now if now is not None else datetime.now())
    max_days = WINDOW_DAYS[normalized_window]
    return [
        record
        for record in records
        if _within(record, window_start, max_days)
    ]


def days_before(record: FinancialRecord, window_start: date) -> int | None:
    if record.occurred_at is None:
        return None
    return (window_start - day_of(record.occurred_at)).days


def _within(record: FinancialRecord, window_start: date, max_days: int) -> bool:
    diff_days = days_before(record, window_start)
    # Undated and future-dated records never fall inside a bounded window.
    if diff_days is None:
        return False
    return 0 <= diff_days <= max_days
