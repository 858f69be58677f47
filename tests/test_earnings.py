"""Tests for worker pay quotes and earnings summaries.

Covers:
- quote priority: per-worker figure, flat override, pool split, fallback total
- unset and zero pricing
- display rounding (half up, whole units)
- summarize: earned vs upcoming, rounding applied once on the sum
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from engine.earnings import (
    SOURCE_ADMIN_PER_WORKER,
    SOURCE_ADMIN_TOTAL_POOL,
    SOURCE_FALLBACK_TOTAL,
    SOURCE_WORKER_FLAT,
    display_amount,
    quote,
    summarize,
)


def _booking(rates=None, **fields):
    data = {
        "id": 1,
        "service_type": "Event Staff",
        "status": "ASSIGNED",
        "workers_needed": 3,
        "amount_per_worker": None,
        "number_of_days": None,
        "payment_amount": None,
        "total_amount": None,
    }
    data.update(fields)
    booking = SimpleNamespace(**data)
    booking.flat_rate_for = (rates or {}).get
    return booking


def _assignment(ident):
    return SimpleNamespace(id=ident)


class TestQuotePriority:
    def test_per_worker_figure_wins_over_pool(self) -> None:
        booking = _booking(amount_per_worker=Decimal("6000"), number_of_days=3, payment_amount=Decimal("99999"))
        q = quote(booking, worker_id=7)
        assert q.source == SOURCE_ADMIN_PER_WORKER
        assert q.as_dict() == {"daily_amount": 2000, "total_amount": 6000, "days": 3, "source": SOURCE_ADMIN_PER_WORKER}

    def test_per_worker_figure_needs_days(self) -> None:
        booking = _booking(amount_per_worker=Decimal("6000"), payment_amount=Decimal("9000"))
        q = quote(booking, worker_id=7)
        assert q.source == SOURCE_ADMIN_TOTAL_POOL
        assert q.total_amount == Decimal("3000")

    def test_pool_is_split_across_workers_and_days(self) -> None:
        booking = _booking(payment_amount=Decimal("18000"), workers_needed=3, number_of_days=2)
        q = quote(booking, worker_id=7)
        assert q.source == SOURCE_ADMIN_TOTAL_POOL
        assert q.daily_amount == Decimal("3000")
        assert q.total_amount == Decimal("6000")
        assert q.days == 2

    def test_pool_without_days_is_one_day(self) -> None:
        booking = _booking(payment_amount=Decimal("18000"), workers_needed=3)
        q = quote(booking)
        assert q.days == 1
        assert q.daily_amount == q.total_amount == Decimal("6000")

    def test_flat_override_beats_pool(self) -> None:
        booking = _booking(rates={7: Decimal("750")}, payment_amount=Decimal("18000"))
        q = quote(booking, worker_id=7)
        assert q.source == SOURCE_WORKER_FLAT
        assert q.as_dict()["total_amount"] == 750
        assert q.days == 1

    def test_flat_override_is_per_worker(self) -> None:
        booking = _booking(rates={7: Decimal("750")}, payment_amount=Decimal("18000"))
        assert quote(booking, worker_id=8).source == SOURCE_ADMIN_TOTAL_POOL

    def test_flat_override_loses_to_per_worker_figure(self) -> None:
        booking = _booking(rates={7: Decimal("750")}, amount_per_worker=Decimal("1000"), number_of_days=1)
        assert quote(booking, worker_id=7).source == SOURCE_ADMIN_PER_WORKER

    def test_fallback_total(self) -> None:
        booking = _booking(total_amount=Decimal("1200"))
        q = quote(booking, worker_id=7)
        assert q.source == SOURCE_FALLBACK_TOTAL
        assert q.as_dict() == {"daily_amount": 1200, "total_amount": 1200, "days": 1, "source": SOURCE_FALLBACK_TOTAL}

    def test_no_pricing_means_to_be_discussed(self) -> None:
        assert quote(_booking(), worker_id=7) is None

    def test_zero_amounts_count_as_unset(self) -> None:
        booking = _booking(
            amount_per_worker=Decimal("0"), number_of_days=2,
            payment_amount=Decimal("0"), total_amount=Decimal("0"),
        )
        assert quote(booking, worker_id=7) is None


class TestRounding:
    @pytest.mark.parametrize("value,expected", [
        (Decimal("2.5"), 3),
        (Decimal("2.49"), 2),
        (Decimal("333.3333"), 333),
        (Decimal("1666.6667"), 1667),
    ])
    def test_display_rounds_half_up(self, value, expected) -> None:
        assert display_amount(value) == expected

    def test_quote_keeps_exact_amounts(self) -> None:
        booking = _booking(amount_per_worker=Decimal("1000"), number_of_days=3)
        q = quote(booking)
        assert q.daily_amount != Decimal("333")
        assert display_amount(q.daily_amount * 3) == 1000
        assert q.as_dict()["daily_amount"] == 333


class TestSummarize:
    def test_completed_is_earned_rest_upcoming(self) -> None:
        done = _booking(id=1, status="COMPLETED", amount_per_worker=Decimal("6000"), number_of_days=3)
        next_week = _booking(id=2, status="CONFIRMED", payment_amount=Decimal("900"), workers_needed=3)
        summary = summarize([(done, 7, _assignment(10)), (next_week, 7, _assignment(11))])

        out = summary.as_dict()
        assert out["total_earnings"] == 6300
        assert out["earned"] == 6000
        assert out["upcoming"] == 300
        assert [line["booking_id"] for line in out["breakdown"]] == [1, 2]

    def test_unpriced_bookings_are_counted_not_summed(self) -> None:
        priced = _booking(id=1, total_amount=Decimal("500"))
        unpriced = _booking(id=2)
        out = summarize([(priced, 7, _assignment(10)), (unpriced, 7, _assignment(11))]).as_dict()
        assert out["total_earnings"] == 500
        assert out["unpriced_bookings"] == 1
        assert out["breakdown"][1]["quote"] is None

    def test_sum_is_rounded_once(self) -> None:
        # each share is 333.33..., three of them are exactly 1000
        rows = [
            (_booking(id=i, payment_amount=Decimal("1000"), workers_needed=3), 7, _assignment(i))
            for i in range(1, 4)
        ]
        out = summarize(rows).as_dict()
        assert out["total_earnings"] == 1000
        assert all(line["quote"]["total_amount"] == 333 for line in out["breakdown"])

    def test_empty(self) -> None:
        out = summarize([]).as_dict()
        assert out["total_earnings"] == 0
        assert out["breakdown"] == []
