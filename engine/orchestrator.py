"""
Acceptance orchestrator: what happens when a worker clicks "Accept".

    validate token -> check worker -> [booking lock: re-check capacity ->
    accept -> consume token -> re-evaluate booking -> verify ledger ->
    commit] -> quote

Everything between the brackets runs under the per-booking lock and in one
database transaction, so two workers racing for the last slot end up with
exactly one ACCEPTED and one EXPIRED assignment.
"""
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.exc import OperationalError

from models import db
from models.assignment import Assignment
from models.booking import Booking
from models.invitation_token import InvitationToken
from models.worker import Worker
from engine import assignments, bookings, capacity, tokens
from engine.earnings import EarningsQuote, quote
from engine.errors import (
    AssignmentNotFound,
    BookingNotFound,
    Busy,
    CapacityExceeded,
    Forbidden,
    InvalidBookingState,
    TokenAlreadyUsed,
    TokenExpired,
    ValidationError,
    WorkerNotFound,
)
from engine.locks import booking_guard
from utils.audit import log_event
from utils.notifier import booking_contact, get_notifier


@dataclass
class RedeemResult:
    assignment: Assignment
    booking: Booking
    quote: Optional[EarningsQuote]
    replayed: bool = False
    business_notified: bool = False

    def to_dict(self):
        return {
            "success": True,
            "replayed": self.replayed,
            "business_notified": self.business_notified,
            "assignment": self.assignment.to_dict(),
            "booking": booking_summary(self.booking),
            "quote": self.quote.as_dict() if self.quote else None,
        }


def booking_summary(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "service_type": booking.service_type,
        "location": booking.location,
        "duration": booking.duration,
        "number_of_days": booking.number_of_days,
        "workers_needed": booking.workers_needed,
        "accepted_workers": booking.accepted_count,
        "available_spots": max(booking.workers_needed - booking.accepted_count, 0),
        "status": booking.status,
        "created_at": booking.created_at.isoformat() if booking.created_at else None,
    }


def _worker_id(value) -> int:
    try:
        worker_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("worker_id is required")
    if worker_id <= 0:
        raise ValidationError("worker_id is required")
    return worker_id


def _active_worker(worker_id: int) -> Worker:
    worker = db.session.get(Worker, worker_id)
    if worker is None or not worker.is_active:
        raise WorkerNotFound()
    return worker


def _replay(claims: tokens.TokenClaims, worker_id: int) -> RedeemResult:
    """A used single-use token is only good for re-reading one's own acceptance."""
    a = db.session.get(Assignment, claims.assignment_id) if claims.assignment_id else None
    if a is None or a.status != assignments.ACCEPTED or a.worker_id != worker_id:
        raise TokenAlreadyUsed()
    booking = db.session.get(Booking, a.booking_id)
    return RedeemResult(assignment=a, booking=booking, quote=quote(booking, worker_id), replayed=True)


def _assignment_for_redeem(token: InvitationToken, booking: Booking, worker_id: int):
    """
    Pick the assignment this redemption acts on.

    Returns (assignment, replayed, superseded). ``superseded`` is the worker's
    own PENDING invitation that an open single-use link replaces; the caller
    cancels it only once the acceptance is certain to go ahead.
    """
    mine = assignments.active_for(booking.id, worker_id)

    if token.assignment_id is not None:
        a = db.session.get(Assignment, token.assignment_id, with_for_update=True, populate_existing=True)
        if a is None:
            raise AssignmentNotFound()
        if a.worker_id is None and mine is not None:
            # open link, but this worker already holds an invitation here
            if mine.status == assignments.ACCEPTED:
                return mine, True, None
            return a, False, mine
        return a, False, None

    # multi-use open link: the worker's own assignment, or a fresh one
    if mine is not None:
        return mine, mine.status == assignments.ACCEPTED, None
    a = Assignment(booking_id=booking.id, worker_id=worker_id, status=assignments.PENDING, token_id=token.id)
    db.session.add(a)
    db.session.flush()
    return a, False, None


def _accept_guarded(claims: tokens.TokenClaims, worker_id: int):
    booking = db.session.get(Booking, claims.booking_id, with_for_update=True, populate_existing=True)
    if booking is None:
        raise BookingNotFound()
    token = db.session.get(InvitationToken, claims.token_id, with_for_update=True, populate_existing=True)

    if token.single_use and token.consumed_at is not None:
        # lost a race against a redemption of this very token
        return _replay(claims, worker_id), 0

    assignment, replayed, superseded = _assignment_for_redeem(token, booking, worker_id)
    if replayed or assignment.status != assignments.PENDING:
        assignments.resolve_settled(assignment, worker_id)
        return RedeemResult(assignment=assignment, booking=booking, quote=None, replayed=True), 0

    if tokens.is_lapsed(token):
        assignments.expire(assignment, assignments.TOKEN_LAPSED)
        raise TokenExpired()

    bookings.require_open(booking)

    if not capacity.has_capacity(booking.id):
        assignments.expire(assignment, assignments.CAPACITY_REACHED)
        raise CapacityExceeded()

    if superseded is not None:
        assignments.cancel(superseded, assignments.SUPERSEDED)
    assignments.accept(assignment, booking, worker_id)
    if assignment.token_id is None:
        assignment.token_id = token.id
    tokens.consume(token, worker_id)
    expired = bookings.on_accepted(booking)
    capacity.verify(booking)
    return RedeemResult(assignment=assignment, booking=booking, quote=None, replayed=False), expired


def redeem(raw_token: str, worker_id) -> RedeemResult:
    worker_id = _worker_id(worker_id)

    try:
        claims = tokens.validate(raw_token)
    except TokenAlreadyUsed:
        claims = tokens.validate(raw_token, allow_consumed=True)
        return _replay(claims, worker_id)

    if claims.worker_id is not None and claims.worker_id != worker_id:
        log_event("REDEEM_FORBIDDEN", actor=worker_id, entity="booking", entity_id=claims.booking_id,
                  metadata={"token_id": claims.token_id})
        raise Forbidden()

    worker = _active_worker(worker_id)

    with booking_guard(claims.booking_id):
        try:
            result, expired = _accept_guarded(claims, worker_id)
            db.session.commit()
        except (CapacityExceeded, TokenExpired) as exc:
            # keep the forced EXPIRED on this assignment
            db.session.commit()
            current_app.logger.warning("redeem refused for booking %s worker %s: %s",
                                       claims.booking_id, worker_id, exc.kind)
            log_event("REDEEM_REFUSED", actor=worker_id, entity="booking", entity_id=claims.booking_id,
                      metadata={"kind": exc.kind, "token_id": claims.token_id})
            raise
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.warning("store busy while redeeming for booking %s: %s", claims.booking_id, exc)
            raise Busy(retry_after_seconds=1)
        except Exception:
            db.session.rollback()
            raise

    booking = result.booking
    result.quote = quote(booking, worker_id)

    if result.replayed:
        return result

    current_app.logger.info(
        "worker %s accepted booking %s (%s/%s)",
        worker_id, booking.id, booking.accepted_count, booking.workers_needed,
    )
    log_event(
        "ASSIGNMENT_ACCEPTED",
        actor=worker_id,
        entity="assignment",
        entity_id=result.assignment.id,
        metadata={"booking_id": booking.id, "accepted": booking.accepted_count, "cascade_expired": expired},
    )
    result.business_notified = _notify_business(booking, worker)
    return result


def _accepted_workers(booking_id: int):
    return (
        Worker.query
        .join(Assignment, Assignment.worker_id == Worker.id)
        .filter(Assignment.booking_id == booking_id, Assignment.status == assignments.ACCEPTED)
        .order_by(Assignment.accepted_at.asc())
        .all()
    )


def confirmation_message(booking: Booking, worker: Worker):
    accepted = _accepted_workers(booking.id)
    subject = f"Worker accepted your booking: {booking.service_type}"
    lines = [
        f"Service: {booking.service_type}",
        f"New worker: {worker.name} ({worker.phone or '-'})",
        "",
        f"Accepted workers ({len(accepted)}/{booking.workers_needed}):",
    ]
    lines += [f"- {w.name} ({w.phone or '-'})" for w in accepted]
    lines += [
        "",
        f"Location: {booking.location or '-'}",
        f"Duration: {booking.duration or '-'}",
        "",
    ]
    missing = booking.workers_needed - len(accepted)
    lines.append("All required workers have been assigned!" if missing <= 0 else f"Still need {missing} more worker(s).")
    return subject, "\n".join(lines)


def _notify_business(booking: Booking, worker: Worker) -> bool:
    """Tell the business a worker accepted. Delivery problems never undo the acceptance."""
    contact = booking_contact(booking)
    if contact is None:
        current_app.logger.info("booking %s has no business contact, confirmation not sent", booking.id)
        return False

    subject, body = confirmation_message(booking, worker)
    ok, error = get_notifier().send(contact, subject, body)
    if not ok:
        current_app.logger.warning("business confirmation for booking %s failed: %s", booking.id, error)
    return ok


def details(raw_token: str, worker_id=None) -> dict:
    """Invitation page: booking summary, spots left and the quote. Read-only."""
    claims = tokens.validate(raw_token, allow_consumed=True)
    booking = db.session.get(Booking, claims.booking_id)
    if booking is None:
        raise BookingNotFound()

    viewer = claims.worker_id
    if viewer is None and worker_id not in (None, ""):
        viewer = _worker_id(worker_id)

    assignment = None
    if claims.assignment_id is not None:
        assignment = db.session.get(Assignment, claims.assignment_id)
    elif viewer is not None:
        assignment = assignments.active_for(booking.id, viewer)

    q = quote(booking, viewer)
    spots = max(booking.workers_needed - booking.accepted_count, 0)
    return {
        "success": True,
        "booking": booking_summary(booking),
        "quote": q.as_dict() if q else None,
        "invitation": {
            "single_use": claims.single_use,
            "used": claims.consumed,
            "expires_at": claims.expires_at.isoformat(),
            "worker_id": claims.worker_id,
        },
        "assignment": assignment.to_dict() if assignment else None,
        "message": (
            f"{spots} spot(s) available." if spots and bookings.accepts_invitations(booking)
            else "All spots for this booking have been filled."
        ),
    }


def withdraw(assignment_id: int, reason: str = assignments.WITHDRAWN) -> Assignment:
    """Admin withdrawal. Frees the slot if the worker had already accepted."""
    a = db.session.get(Assignment, assignment_id)
    if a is None:
        raise AssignmentNotFound()

    with booking_guard(a.booking_id):
        try:
            booking = db.session.get(Booking, a.booking_id, with_for_update=True, populate_existing=True)
            a = db.session.get(Assignment, assignment_id, with_for_update=True, populate_existing=True)
            was_accepted = assignments.cancel(a, reason)
            if was_accepted:
                capacity.release_slot(booking)
                bookings.on_released(booking)
            capacity.verify(booking)
            db.session.commit()
        except OperationalError:
            db.session.rollback()
            raise Busy(retry_after_seconds=1)
        except Exception:
            db.session.rollback()
            raise

    log_event("ASSIGNMENT_CANCELLED", actor="admin", entity="assignment", entity_id=assignment_id,
              metadata={"reason": reason, "released_slot": was_accepted})
    return a


def update_booking(booking_id: int, changes: dict) -> Booking:
    """Admin edits: pricing, business contact, workers_needed and workflow status."""
    with booking_guard(booking_id):
        try:
            booking = db.session.get(Booking, booking_id, with_for_update=True, populate_existing=True)
            if booking is None:
                raise BookingNotFound()
            if booking.status in (bookings.COMPLETED, bookings.CANCELLED) and changes:
                raise InvalidBookingState(f"Booking is {booking.status}", status=booking.status)
            bookings.update_requirements(booking, changes)
            if changes.get("status"):
                bookings.set_status(booking, changes["status"])
            capacity.verify(booking)
            db.session.commit()
        except OperationalError:
            db.session.rollback()
            raise Busy(retry_after_seconds=1)
        except Exception:
            db.session.rollback()
            raise

    log_event("BOOKING_UPDATED", actor="admin", entity="booking", entity_id=booking_id,
              metadata={k: v for k, v in changes.items()})
    return booking
