"""
Lifecycle of one worker-to-booking assignment.

    PENDING -> ACCEPTED | EXPIRED | CANCELLED

ACCEPTED happens at most once and is never undone by the acceptance flow;
the only way out of ACCEPTED is an explicit admin withdrawal.
"""
from sqlalchemy import select, update

from models import db, utcnow
from models.assignment import Assignment, ACTIVE_STATUSES
from models.invitation_token import InvitationToken
from engine import capacity
from engine.errors import (
    AssignmentNotPending,
    CapacityExceeded,
    TokenExpired,
)

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
EXPIRED = "EXPIRED"
CANCELLED = "CANCELLED"

# status_reason values
TOKEN_LAPSED = "TOKEN_EXPIRED"
CAPACITY_REACHED = "CAPACITY_REACHED"
WITHDRAWN = "WITHDRAWN"
SUPERSEDED = "SUPERSEDED"
BOOKING_CANCELLED = "BOOKING_CANCELLED"

TRANSITIONS = {
    PENDING: {ACCEPTED, EXPIRED, CANCELLED},
    ACCEPTED: {CANCELLED},  # admin withdrawal only
    EXPIRED: set(),
    CANCELLED: set(),
}


def transition(assignment: Assignment, to_status: str, reason=None):
    if to_status not in TRANSITIONS.get(assignment.status, set()):
        raise AssignmentNotPending(
            f"Assignment is {assignment.status}, cannot move to {to_status}",
            assignment_id=assignment.id,
            status=assignment.status,
        )
    now = utcnow()
    assignment.status = to_status
    assignment.status_reason = reason
    if to_status == ACCEPTED:
        assignment.accepted_at = now
    else:
        assignment.resolved_at = now
    return assignment


def active_for(booking_id: int, worker_id: int):
    return (
        Assignment.query
        .filter(
            Assignment.booking_id == booking_id,
            Assignment.worker_id == worker_id,
            Assignment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Assignment.created_at.desc())
        .first()
    )


def revoke_links(assignment_ids) -> int:
    """Retire every live (unconsumed, unrevoked) token of these assignments."""
    if not assignment_ids:
        return 0
    db.session.flush()
    result = db.session.execute(
        update(InvitationToken)
        .where(
            InvitationToken.assignment_id.in_(list(assignment_ids)),
            InvitationToken.consumed_at.is_(None),
            InvitationToken.revoked_at.is_(None),
        )
        .values(revoked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def expire_pending(assignment_ids, reason: str) -> int:
    """
    PENDING -> EXPIRED for a batch, conditional on still being PENDING so a
    concurrent acceptance is never overwritten.
    """
    ids = list(assignment_ids)
    if not ids:
        return 0
    db.session.flush()
    now = utcnow()
    result = db.session.execute(
        update(Assignment)
        .where(Assignment.id.in_(ids), Assignment.status == PENDING)
        .values(status=EXPIRED, status_reason=reason, resolved_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def pending_ids(booking_id: int):
    return db.session.execute(
        select(Assignment.id).where(Assignment.booking_id == booking_id, Assignment.status == PENDING)
    ).scalars().all()


def expire(assignment: Assignment, reason: str):
    return transition(assignment, EXPIRED, reason)


def cancel(assignment: Assignment, reason: str = WITHDRAWN):
    was_accepted = assignment.status == ACCEPTED
    transition(assignment, CANCELLED, reason)
    db.session.flush()
    return was_accepted


def resolve_settled(assignment: Assignment, worker_id: int) -> bool:
    """
    An accept attempt on an assignment that is no longer PENDING. Returns True
    when it is the caller's own acceptance (idempotent replay), otherwise
    raises the error that tells the worker what actually happened.
    """
    if assignment.status == ACCEPTED:
        if assignment.worker_id == worker_id:
            return True
        raise AssignmentNotPending("This invitation was accepted by another worker")

    if assignment.status == EXPIRED:
        if assignment.status_reason == CAPACITY_REACHED:
            raise CapacityExceeded()
        if assignment.status_reason == TOKEN_LAPSED:
            raise TokenExpired()

    raise AssignmentNotPending(
        f"This invitation is {assignment.status.lower()}",
        status=assignment.status,
        reason=assignment.status_reason,
    )


def accept(assignment: Assignment, booking, worker_id: int) -> bool:
    """
    PENDING -> ACCEPTED, taking one slot from the capacity ledger.

    Must run inside the booking's guarded section; the caller consumes the
    token, re-evaluates the booking and commits. Returns True for an
    idempotent replay of the caller's own earlier acceptance.
    """
    if assignment.status != PENDING:
        return resolve_settled(assignment, worker_id)

    if not capacity.claim_slot(booking):
        expire(assignment, CAPACITY_REACHED)
        raise CapacityExceeded()

    assignment.worker_id = worker_id
    transition(assignment, ACCEPTED)
    return False
