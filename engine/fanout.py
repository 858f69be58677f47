"""
Admin "send links": invite every eligible worker to a booking.

Delivery itself belongs to the notifier; this module decides who gets a
link, issues the tokens and reports how many went out.
"""
from dataclasses import dataclass, field
from typing import List

from flask import current_app

from models import db
from models.booking import Booking
from engine import assignments, orchestrator, tokens
from engine.earnings import quote
from engine.errors import AssignmentNotPending, BookingNotFound, InvalidBookingState
from utils.audit import log_event
from utils.matching import eligible_workers


@dataclass
class FanoutResult:
    notified: int = 0
    total: int = 0
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "workers_notified": self.notified,
            "total_workers": self.total,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def invitation_message(booking: Booking, worker_id, link: str):
    subject = f"New booking request: {booking.service_type}"
    lines = [
        f"Service: {booking.service_type}",
        f"Location: {booking.location or '-'}",
        f"Workers needed: {booking.workers_needed}",
        f"Duration: {booking.duration or '-'}",
    ]
    q = quote(booking, worker_id)
    if q is not None:
        shown = q.as_dict()
        lines.append(f"Pay: {shown['total_amount']} total ({shown['daily_amount']}/day for {shown['days']} day(s))")
    else:
        lines.append("Pay: to be discussed")
    lines += ["", f"Accept here: {link}", "", "First come, first served!"]
    return subject, "\n".join(lines)


def issue_links(booking_id: int, notifier, payment_amount=None, ttl=None) -> FanoutResult:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFound()

    if payment_amount is not None:
        booking = orchestrator.update_booking(booking_id, {"payment_amount": payment_amount})

    workers = eligible_workers(booking)
    result = FanoutResult(total=len(workers))
    for worker in workers:

        mine = assignments.active_for(booking.id, worker.id)
        if mine is not None and mine.status == assignments.ACCEPTED:
            result.skipped.append(worker.id)
            continue

        try:
            issued = tokens.issue(booking.id, worker.id, ttl=ttl)
        except AssignmentNotPending:
            result.skipped.append(worker.id)
            continue
        except InvalidBookingState:
            # filled up or closed while we were sending
            result.skipped.append(worker.id)
            break

        subject, body = invitation_message(booking, worker.id, tokens.invite_link(issued.raw_token))
        ok, error = notifier.send(worker, subject, body)
        if ok:
            result.notified += 1
        else:
            current_app.logger.warning("failed to notify worker %s for booking %s: %s", worker.id, booking.id, error)
            result.failed.append(worker.id)

    log_event("INVITES_SENT", actor="admin", entity="booking", entity_id=booking.id, metadata=result.to_dict())
    return result
