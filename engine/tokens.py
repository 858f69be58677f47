"""
Invitation tokens.

A token is a random URL-safe string handed to a worker once; only its SHA-256
hash is stored. Three shapes exist:

* worker-bound, single use: one PENDING assignment per (booking, worker);
  re-issuing reuses that assignment and revokes its older links.
* open, single use: a PENDING assignment with no worker yet; the first
  worker to redeem it is bound to it.
* open, multi use: no assignment up front; each redeeming worker gets one.

``validate`` never consumes a token, so a worker can reopen the link to look
at the booking as often as they like.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db, utcnow
from models.assignment import Assignment
from models.booking import Booking
from models.invitation_token import InvitationToken
from models.worker import Worker
from security.tokens import hash_token, new_raw_token
from engine import assignments, bookings
from engine.errors import (
    AssignmentNotPending,
    BookingNotFound,
    TokenAlreadyUsed,
    TokenExpired,
    TokenNotFound,
    ValidationError,
    WorkerNotFound,
)
from engine.locks import booking_guard
from utils.audit import log_event


@dataclass(frozen=True)
class IssuedToken:
    raw_token: str
    token_id: int
    booking_id: int
    worker_id: Optional[int]
    assignment_id: Optional[int]
    single_use: bool
    expires_at: datetime

    def to_dict(self):
        return {
            "token": self.raw_token,
            "link": invite_link(self.raw_token),
            "booking_id": self.booking_id,
            "worker_id": self.worker_id,
            "assignment_id": self.assignment_id,
            "single_use": self.single_use,
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class TokenClaims:
    token_id: int
    booking_id: int
    worker_id: Optional[int]
    assignment_id: Optional[int]
    single_use: bool
    consumed: bool
    expires_at: datetime


def invite_link(raw_token: str) -> str:
    base = current_app.config.get("INVITE_BASE_URL", "").rstrip("/")
    return f"{base}/worker/accept-booking?{urlencode({'token': raw_token})}"


def _ttl(ttl) -> timedelta:
    if ttl is None:
        return timedelta(seconds=current_app.config.get("INVITE_TTL_SECONDS", 24 * 60 * 60))
    if not isinstance(ttl, timedelta):
        ttl = timedelta(seconds=int(ttl))
    if ttl.total_seconds() <= 0:
        raise ValidationError("ttl must be positive")
    return ttl


def _find(raw_token: str):
    if not raw_token or not isinstance(raw_token, str):
        return None
    return InvitationToken.query.filter_by(token_hash=hash_token(raw_token)).first()


def _claims(token: InvitationToken) -> TokenClaims:
    return TokenClaims(
        token_id=token.id,
        booking_id=token.booking_id,
        worker_id=token.worker_id,
        assignment_id=token.assignment_id,
        single_use=token.single_use,
        consumed=token.consumed_at is not None,
        expires_at=token.expires_at,
    )


def _assignment_for_issue(booking: Booking, worker_id, single_use: bool):
    if worker_id is None:
        if not single_use:
            return None
        a = Assignment(booking_id=booking.id, worker_id=None, status=assignments.PENDING)
        db.session.add(a)
        return a

    existing = assignments.active_for(booking.id, worker_id)
    if existing is not None and existing.status == assignments.ACCEPTED:
        raise AssignmentNotPending("Worker has already accepted this booking", assignment_id=existing.id)
    if existing is not None:
        # supersede: same assignment, older links stop working
        assignments.revoke_links([existing.id])
        return existing

    a = Assignment(booking_id=booking.id, worker_id=worker_id, status=assignments.PENDING)
    db.session.add(a)
    return a


def issue(booking_id: int, worker_id: Optional[int] = None, ttl=None, single_use: bool = True) -> IssuedToken:
    expires_in = _ttl(ttl)
    if worker_id is not None:
        # a link addressed to one worker is always single use
        single_use = True

    with booking_guard(booking_id):
        booking = db.session.get(Booking, booking_id, populate_existing=True)
        if booking is None:
            raise BookingNotFound()
        bookings.require_invitable(booking)

        if worker_id is not None:
            worker = db.session.get(Worker, worker_id)
            if worker is None or not worker.is_active:
                raise WorkerNotFound()

        raw = new_raw_token()
        try:
            assignment = _assignment_for_issue(booking, worker_id, single_use)
            if assignment is not None:
                db.session.flush()

            now = utcnow()
            token = InvitationToken(
                token_hash=hash_token(raw),
                booking_id=booking.id,
                worker_id=worker_id,
                assignment_id=assignment.id if assignment is not None else None,
                single_use=single_use,
                issued_at=now,
                expires_at=now + expires_in,
            )
            db.session.add(token)
            db.session.flush()
            if assignment is not None:
                assignment.token_id = token.id
            db.session.commit()
        except IntegrityError:
            # uq_assignment_active_worker: another process issued for this worker first
            db.session.rollback()
            raise AssignmentNotPending("An invitation for this worker is already being issued")
        except Exception:
            db.session.rollback()
            raise

    current_app.logger.info(
        "issued invitation %s for booking %s (worker=%s, single_use=%s)",
        token.id, booking_id, worker_id, single_use,
    )
    log_event(
        "INVITE_ISSUED",
        actor="admin",
        entity="booking",
        entity_id=booking_id,
        metadata={"token_id": token.id, "worker_id": worker_id, "assignment_id": token.assignment_id},
    )
    return IssuedToken(
        raw_token=raw,
        token_id=token.id,
        booking_id=token.booking_id,
        worker_id=token.worker_id,
        assignment_id=token.assignment_id,
        single_use=token.single_use,
        expires_at=token.expires_at,
    )


def _lapse(token: InvitationToken):
    """Mark the token's assignment EXPIRED if this token is still its live link."""
    if token.assignment_id is None:
        return
    a = db.session.get(Assignment, token.assignment_id)
    if a is None or a.token_id != token.id or a.status != assignments.PENDING:
        return
    if assignments.expire_pending([a.id], assignments.TOKEN_LAPSED):
        db.session.commit()


def validate(raw_token: str, allow_consumed: bool = False) -> TokenClaims:
    token = _find(raw_token)
    if token is None:
        raise TokenNotFound()

    if token.consumed_at is not None:
        if token.single_use and not allow_consumed:
            raise TokenAlreadyUsed()
        return _claims(token)

    if token.revoked_at is not None:
        raise TokenExpired("This invitation was replaced by a newer link")

    if token.expires_at <= utcnow():
        _lapse(token)
        raise TokenExpired()

    return _claims(token)


def is_lapsed(token: InvitationToken, now=None) -> bool:
    now = now or utcnow()
    return token.revoked_at is not None or token.expires_at <= now


def consume(token: InvitationToken, worker_id: int):
    """Burn a single-use token. Only called from the guarded acceptance section."""
    if not token.single_use:
        return
    if token.consumed_at is not None:
        raise TokenAlreadyUsed()
    token.consumed_at = utcnow()
    token.consumed_by = worker_id


def expire_stale(now=None) -> int:
    """Sweep PENDING assignments whose live link has run out."""
    now = now or utcnow()
    stale = (
        db.session.query(Assignment.id)
        .join(InvitationToken, InvitationToken.id == Assignment.token_id)
        .filter(
            Assignment.status == assignments.PENDING,
            InvitationToken.consumed_at.is_(None),
            InvitationToken.expires_at <= now,
        )
        .all()
    )
    count = assignments.expire_pending([row.id for row in stale], assignments.TOKEN_LAPSED)
    db.session.commit()
    if count:
        current_app.logger.info("expired %s stale invitation(s)", count)
        log_event("INVITES_EXPIRED", actor="system", metadata={"count": count})
    return count
