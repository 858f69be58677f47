"""
Capacity ledger: how many ACCEPTED assignments a booking holds versus how
many workers it needs.

``Booking.accepted_count`` is the ledger's counter and is only ever changed
by ``claim_slot``/``release_slot`` below, each a single conditional UPDATE so
the store itself refuses to go past ``workers_needed`` even if two processes
race. Callers run these inside the per-booking guarded section of
``engine.orchestrator``.
"""
from flask import current_app
from sqlalchemy import func, select, update

from models import db
from models.assignment import Assignment
from models.booking import Booking
from engine.errors import BookingNotFound, InvariantViolation


def _counts(booking_id: int):
    row = db.session.execute(
        select(Booking.accepted_count, Booking.workers_needed).where(Booking.id == booking_id)
    ).first()
    if row is None:
        raise BookingNotFound()
    return row.accepted_count, row.workers_needed


def accepted_count(booking_id: int) -> int:
    return _counts(booking_id)[0]


def has_capacity(booking_id: int) -> bool:
    accepted, needed = _counts(booking_id)
    return accepted < needed


def remaining(booking_id: int) -> int:
    accepted, needed = _counts(booking_id)
    return max(needed - accepted, 0)


def claim_slot(booking: Booking) -> bool:
    """Atomically take one slot. Returns False when the booking is already full."""
    db.session.flush()
    result = db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.accepted_count < Booking.workers_needed)
        .values(accepted_count=Booking.accepted_count + 1)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    db.session.refresh(booking, ["accepted_count"])
    return claimed


def release_slot(booking: Booking) -> bool:
    db.session.flush()
    result = db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.accepted_count > 0)
        .values(accepted_count=Booking.accepted_count - 1)
        .execution_options(synchronize_session=False)
    )
    db.session.refresh(booking, ["accepted_count"])
    return result.rowcount == 1


def verify(booking: Booking) -> int:
    """
    Cross-check the counter against the ACCEPTED rows. A mismatch means the
    exclusion around acceptance was bypassed somewhere; that is never
    corrected here, the caller's transaction must be rolled back.
    """
    db.session.flush()
    actual = db.session.execute(
        select(func.count(Assignment.id)).where(
            Assignment.booking_id == booking.id,
            Assignment.status == "ACCEPTED",
        )
    ).scalar_one()

    if actual > booking.workers_needed or actual != booking.accepted_count:
        current_app.logger.critical(
            "capacity invariant violated for booking %s: accepted rows=%s counter=%s workers_needed=%s",
            booking.id, actual, booking.accepted_count, booking.workers_needed,
        )
        raise InvariantViolation(
            booking_id=booking.id,
            accepted=actual,
            workers_needed=booking.workers_needed,
        )
    return actual
