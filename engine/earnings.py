"""
Worker earnings for a booking.

Pricing on a booking is partially filled in by different people at different
times (business proposal, admin pool, admin per-worker figure, per-worker
overrides). ``quote`` picks exactly one of them, in a fixed priority order,
and every consumer (invitation page, acceptance response, earnings summary)
goes through it.

Amounts stay unrounded Decimals until ``as_dict``/``display_amount`` so that
summing many bookings does not compound rounding error.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

SOURCE_ADMIN_PER_WORKER = "admin_per_worker"
SOURCE_WORKER_FLAT = "worker_flat"
SOURCE_ADMIN_TOTAL_POOL = "admin_total_pool"
SOURCE_FALLBACK_TOTAL = "fallback_total"

_WHOLE_UNIT = Decimal("1")


def _dec(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 don't drag binary noise along
    return Decimal(str(value))


def _is_set(value) -> bool:
    return value is not None and _dec(value) > 0


def display_amount(value: Decimal) -> int:
    """Round to the nearest whole currency unit (half up)."""
    return int(_dec(value).quantize(_WHOLE_UNIT, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class EarningsQuote:
    daily_amount: Decimal
    total_amount: Decimal
    days: int
    source: str

    def as_dict(self) -> dict:
        return {
            "daily_amount": display_amount(self.daily_amount),
            "total_amount": display_amount(self.total_amount),
            "days": self.days,
            "source": self.source,
        }


def _flat_override(booking, worker_id):
    if worker_id is None:
        return None
    lookup = getattr(booking, "flat_rate_for", None)
    if lookup is None:
        return None
    return lookup(worker_id)


def quote(booking, worker_id=None) -> Optional[EarningsQuote]:
    """
    Returns the worker's pay for ``booking`` or None when no pricing is set
    (payment "to be discussed"). First applicable rule wins:

    1. amount_per_worker + number_of_days  -> admin_per_worker
    2. flat override for this worker       -> worker_flat
    3. payment_amount + workers_needed     -> admin_total_pool
    4. total_amount                        -> fallback_total
    """
    per_worker = booking.amount_per_worker
    days = booking.number_of_days

    if _is_set(per_worker) and days:
        total = _dec(per_worker)
        return EarningsQuote(
            daily_amount=total / Decimal(days),
            total_amount=total,
            days=int(days),
            source=SOURCE_ADMIN_PER_WORKER,
        )

    flat = _flat_override(booking, worker_id)
    if _is_set(flat):
        amount = _dec(flat)
        return EarningsQuote(daily_amount=amount, total_amount=amount, days=1, source=SOURCE_WORKER_FLAT)

    pool = booking.payment_amount
    if _is_set(pool) and booking.workers_needed:
        per_worker_total = _dec(pool) / Decimal(booking.workers_needed)
        pool_days = int(days) if days else 1
        return EarningsQuote(
            daily_amount=per_worker_total / Decimal(pool_days),
            total_amount=per_worker_total,
            days=pool_days,
            source=SOURCE_ADMIN_TOTAL_POOL,
        )

    fallback = getattr(booking, "total_amount", None)
    if _is_set(fallback):
        amount = _dec(fallback)
        return EarningsQuote(daily_amount=amount, total_amount=amount, days=1, source=SOURCE_FALLBACK_TOTAL)

    return None


@dataclass
class EarningsSummary:
    total: Decimal = Decimal("0")
    earned: Decimal = Decimal("0")
    upcoming: Decimal = Decimal("0")
    unpriced: int = 0
    lines: List[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total_earnings": display_amount(self.total),
            "earned": display_amount(self.earned),
            "upcoming": display_amount(self.upcoming),
            "unpriced_bookings": self.unpriced,
            "breakdown": self.lines,
        }


def summarize(rows: Iterable) -> EarningsSummary:
    """
    Aggregate ``(booking, worker_id, assignment)`` rows for one worker.

    Bookings already COMPLETED count as earned, everything else as upcoming.
    Totals are summed unrounded and rounded once in ``as_dict``.
    """
    summary = EarningsSummary()
    for booking, worker_id, assignment in rows:
        q = quote(booking, worker_id)
        if q is None:
            summary.unpriced += 1
            summary.lines.append({
                "assignment_id": assignment.id,
                "booking_id": booking.id,
                "service_type": booking.service_type,
                "booking_status": booking.status,
                "quote": None,
            })
            continue

        summary.total += q.total_amount
        if booking.status == "COMPLETED":
            summary.earned += q.total_amount
        else:
            summary.upcoming += q.total_amount

        summary.lines.append({
            "assignment_id": assignment.id,
            "booking_id": booking.id,
            "service_type": booking.service_type,
            "booking_status": booking.status,
            "quote": q.as_dict(),
        })
    return summary
