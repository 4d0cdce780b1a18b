from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from fintrack.records import FinancialRecord, RecordKind, ZERO, day_of
from fintrack.time_window import DEFAULT_WINDOW, TimeWindow, filter_by_window

HUNDRED = Decimal("100")
PERCENT_SCALE = Decimal("0.01")


@dataclass(frozen=True)
class AggregationBucket:
    category: str
    total_amount: Decimal


@dataclass(frozen=True)
class Aggregation:
    total: Decimal = ZERO
    buckets: List[AggregationBucket] = field(default_factory=list)
    record_count: int = 0


@dataclass(frozen=True)
class Summary:
    window: str
    as_of: date
    aggregation: Aggregation
    kind: Optional[str] = None


def aggregate(records: Optional[Iterable[FinancialRecord]]) -> Aggregation:
    total = ZERO
    count = 0
    # dicts keep insertion order, which is the first-seen order of categories.
    totals_by_category: dict[str, Decimal] = {}
    for record in records or ():
        total += record.amount
        count += 1
        totals_by_category[record.category] = (
            totals_by_category.get(record.category, ZERO) + record.amount
        )

    return Aggregation(
        total=total,
        buckets=[
            AggregationBucket(category=category, total_amount=amount)
            for category, amount in totals_by_category.items()
        ],
        record_count=count,
    )


def percentage_of_total(amount: Decimal, total: Decimal) -> Decimal:
    if total == ZERO:
        return ZERO.quantize(PERCENT_SCALE)
    return (amount / total * HUNDRED).quantize(PERCENT_SCALE, rounding=ROUND_HALF_UP)


def summarize(
    records: Optional[Iterable[FinancialRecord]],
    window: str = DEFAULT_WINDOW,
    now: datetime | date | None = None,
    kind: Optional[str] = None,
) -> Summary:
    normalized_window = TimeWindow.validate(window)
    reference = now if now is not None else datetime.now()
    selected = list(records or ())
    if kind is not None:
        kind = RecordKind.validate(kind)
        selected = [record for record in selected if record.kind == kind]

    filtered = filter_by_window(selected, now=reference, window=normalized_window)
    return Summary(
        window=normalized_window,
        as_of=day_of(reference),
        aggregation=aggregate(filtered),
        kind=kind,
    )
