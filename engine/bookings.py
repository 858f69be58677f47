"""
Booking lifecycle as far as this service drives it.

PENDING -> ASSIGNED happens here (first accepted worker). CONFIRMED,
COMPLETED and CANCELLED are set by the business workflow through
``set_status``; this module only checks the move is legal and keeps
assignments consistent with it.
"""
from decimal import Decimal, InvalidOperation

from flask import current_app

from models.booking import Booking
from engine import assignments
from engine.errors import InvalidBookingState, ValidationError

PENDING = "PENDING"
ASSIGNED = "ASSIGNED"
CONFIRMED = "CONFIRMED"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"

OPEN_STATUSES = (PENDING, ASSIGNED)

TRANSITIONS = {
    PENDING: {ASSIGNED, CONFIRMED, CANCELLED},
    ASSIGNED: {PENDING, CONFIRMED, CANCELLED},
    CONFIRMED: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}

PRICING_FIELDS = ("negotiated_price", "payment_amount", "amount_per_worker", "total_amount")
CONTACT_FIELDS = ("contact_name", "contact_phone", "contact_email")


def is_full(booking: Booking) -> bool:
    return booking.accepted_count >= booking.workers_needed


def accepts_invitations(booking: Booking) -> bool:
    return booking.status in OPEN_STATUSES and not is_full(booking)


def require_open(booking: Booking):
    if booking.status not in OPEN_STATUSES:
        raise InvalidBookingState(f"Booking is {booking.status}", status=booking.status)


def require_invitable(booking: Booking):
    require_open(booking)
    if is_full(booking):
        raise InvalidBookingState("All spots for this booking have been filled", status=booking.status)


def _move(booking: Booking, to_status: str):
    if to_status == booking.status:
        return
    if to_status not in TRANSITIONS.get(booking.status, set()):
        raise InvalidBookingState(
            f"Booking cannot move from {booking.status} to {to_status}",
            status=booking.status,
        )
    booking.status = to_status


def cascade_expire(booking: Booking) -> int:
    """Expire every PENDING assignment left on a booking that just filled up."""
    expired = assignments.expire_pending(assignments.pending_ids(booking.id), assignments.CAPACITY_REACHED)
    if expired:
        current_app.logger.info("booking %s full, expired %s pending invitation(s)", booking.id, expired)
    return expired


def on_accepted(booking: Booking) -> int:
    """Re-evaluate after an acceptance. Returns how many siblings were expired."""
    if booking.status == PENDING and booking.accepted_count > 0:
        _move(booking, ASSIGNED)
    if is_full(booking):
        return cascade_expire(booking)
    return 0


def on_released(booking: Booking):
    if booking.status == ASSIGNED and booking.accepted_count == 0:
        _move(booking, PENDING)


def set_status(booking: Booking, status: str) -> int:
    """External workflow step. Returns how many open assignments were closed."""
    status = (status or "").strip().upper()
    if status not in TRANSITIONS:
        raise ValidationError(f"Unknown booking status: {status}")
    if status == ASSIGNED and booking.accepted_count == 0:
        raise InvalidBookingState("Booking has no accepted workers", status=booking.status)
    if status == PENDING and booking.accepted_count > 0:
        # only a withdrawal of the last accepted worker moves it back
        raise InvalidBookingState("Booking still has accepted workers", status=booking.status)

    _move(booking, status)

    closed = 0
    if status == CANCELLED:
        for a in list(booking.assignments):
            if a.status == assignments.PENDING:
                assignments.cancel(a, assignments.BOOKING_CANCELLED)
                closed += 1
    elif status == CONFIRMED:
        # nobody else can join a confirmed job
        closed = assignments.expire_pending(assignments.pending_ids(booking.id), assignments.CAPACITY_REACHED)
    return closed


def _parse_amount(name, value):
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} must not be negative")
    return amount


def _parse_positive_int(name, value):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a whole number")
    if number <= 0:
        raise ValidationError(f"{name} must be positive")
    return number


def update_requirements(booking: Booking, changes: dict) -> Booking:
    """Apply admin edits to pricing, business contact, number_of_days and workers_needed."""
    for name in PRICING_FIELDS:
        if name in changes:
            setattr(booking, name, _parse_amount(name, changes[name]))

    for name in CONTACT_FIELDS:
        if name in changes:
            value = changes[name]
            if value is not None and not isinstance(value, str):
                raise ValidationError(f"{name} must be text")
            setattr(booking, name, (value or "").strip() or None)

    if "number_of_days" in changes:
        days = changes["number_of_days"]
        booking.number_of_days = None if days in (None, "") else _parse_positive_int("number_of_days", days)

    if "workers_needed" in changes:
        needed = _parse_positive_int("workers_needed", changes["workers_needed"])
        if needed != booking.workers_needed:
            if booking.status in (CONFIRMED, COMPLETED, CANCELLED):
                raise InvalidBookingState("workers_needed is fixed once a booking is confirmed", status=booking.status)
            if needed < booking.accepted_count:
                raise ValidationError(
                    f"workers_needed cannot drop below the {booking.accepted_count} worker(s) already accepted"
                )
            booking.workers_needed = needed
            if is_full(booking):
                cascade_expire(booking)

    return booking
