import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from fintrack.records import FinancialRecord
from fintrack.time_window import TimeWindow, filter_by_window

NOW = datetime(2024, 1, 8, 15, 30)


def make_record(record_id: str, occurred_at, category: str = "Salary") -> FinancialRecord:
    return FinancialRecord(
        id=record_id,
        kind="income",
        amount=Decimal("10"),
        category=category,
        occurred_at=occurred_at,
        owner_id=1,
    )


class TimeWindowFilterTests(unittest.TestCase):
    def test_week_includes_record_exactly_seven_days_back(self) -> None:
        record = make_record("r1", datetime(2024, 1, 1))

        self.assertEqual(filter_by_window([record], now=NOW, window="week"), [record])

    def test_week_excludes_record_eight_days_back(self) -> None:
        record = make_record("r1", datetime(2023, 12, 31, 23, 59))

        self.assertEqual(filter_by_window([record], now=NOW, window="week"), [])

    def test_boundary_is_day_granular(self) -> None:
        # Later in the day than "now" but still seven calendar days back.
        record = make_record("r1", datetime(2024, 1, 1, 23, 59))

        self.assertEqual(filter_by_window([record], now=datetime(2024, 1, 8, 0, 1), window="week"), [record])

    def test_record_later_today_counts_as_today(self) -> None:
        record = make_record("r1", datetime(2024, 1, 8, 23, 0))

        self.assertEqual(filter_by_window([record], now=NOW, window="week"), [record])

    def test_future_record_only_in_all(self) -> None:
        record = make_record("r1", datetime(2024, 1, 10))

        for window in ("week", "month", "year"):
            with self.subTest(window=window):
                self.assertEqual(filter_by_window([record], now=NOW, window=window), [])
        self.assertEqual(filter_by_window([record], now=NOW, window="all"), [record])

    def test_month_and_year_limits(self) -> None:
        today = date(2024, 1, 8)
        inside_month = make_record("m-in", datetime.combine(today - timedelta(days=30), datetime.min.time()))
        outside_month = make_record("m-out", datetime.combine(today - timedelta(days=31), datetime.min.time()))
        inside_year = make_record("y-in", datetime.combine(today - timedelta(days=365), datetime.min.time()))
        outside_year = make_record("y-out", datetime.combine(today - timedelta(days=366), datetime.min.time()))
        records = [inside_month, outside_month, inside_year, outside_year]

        self.assertEqual(filter_by_window(records, now=today, window="month"), [inside_month])
        self.assertEqual(
            filter_by_window(records, now=today, window="year"),
            [inside_month, outside_month, inside_year],
        )

    def test_preserves_input_order(self) -> None:
        records = [
            make_record("a", datetime(2024, 1, 2)),
            make_record("b", datetime(2023, 6, 1)),
            make_record("c", datetime(2024, 1, 7)),
            make_record("d", datetime(2024, 1, 5)),
        ]

        filtered = filter_by_window(records, now=NOW, window="week")

        self.assertEqual([record.id for record in filtered], ["a", "c", "d"])

    def test_undated_records_only_in_all(self) -> None:
        record = make_record("r1", None)

        self.assertEqual(filter_by_window([record], now=NOW, window="year"), [])
        self.assertEqual(filter_by_window([record], now=NOW, window="all"), [record])

    def test_none_and_empty_inputs(self) -> None:
        self.assertEqual(filter_by_window(None, now=NOW, window="week"), [])
        self.assertEqual(filter_by_window([], now=NOW, window="all"), [])

    def test_accepts_aware_datetimes(self) -> None:
        occurred_at = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)
        record = make_record("r1", occurred_at)

        self.assertEqual(filter_by_window([record], now=NOW, window="week"), [record])

    def test_same_inputs_give_same_output(self) -> None:
        records = [make_record(str(i), datetime(2024, 1, 1) + timedelta(days=i)) for i in range(10)]

        first = filter_by_window(records, now=NOW, window="week")
        second = filter_by_window(records, now=NOW, window="week")

        self.assertEqual(first, second)

    def test_window_names_are_normalized(self) -> None:
        self.assertEqual(TimeWindow.validate(" Week "), "week")
        self.assertEqual(TimeWindow.validate(None), "all")

    def test_unknown_window_raises(self) -> None:
        with self.assertRaises(ValueError):
            filter_by_window([], now=NOW, window="decade")


if __name__ == "__main__":
    unittest.main()
