from flask import Blueprint, jsonify, request

from models import db
from models.assignment import Assignment
from models.booking import Booking
from models.invitation_token import InvitationToken
from models.worker import Worker
from engine import bookings, orchestrator
from engine.earnings import quote, summarize
from utils.matching import is_eligible

workers_bp = Blueprint("workers", __name__, url_prefix="/workers")


# ---------- WORKERS: open invitations and bookings they could take ----------
@workers_bp.get("/<int:worker_id>/invitations")
def worker_invitations(worker_id: int):
    worker = db.session.get(Worker, worker_id)
    if not worker:
        return jsonify(success=False, error="Worker not found"), 404

    try:
        limit = min(max(int(request.args.get("limit", 10)), 1), 50)
    except ValueError:
        return jsonify(success=False, error="limit must be a whole number"), 400

    rows = (
        db.session.query(Assignment, Booking, InvitationToken)
        .join(Booking, Assignment.booking_id == Booking.id)
        .outerjoin(InvitationToken, Assignment.token_id == InvitationToken.id)
        .filter(
            Assignment.worker_id == worker_id,
            Assignment.status == "PENDING",
            Booking.status.in_(bookings.OPEN_STATUSES),
        )
        .order_by(Assignment.created_at.desc())
        .all()
    )
    pending = []
    for assignment, booking, token in rows:
        q_ = quote(booking, worker_id)
        item = assignment.to_dict()
        item["booking"] = orchestrator.booking_summary(booking)
        item["quote"] = q_.as_dict() if q_ else None
        item["expires_at"] = token.expires_at.isoformat() if token else None
        pending.append(item)

    # any assignment at all, including finished ones, means the worker has been offered it already
    seen = {b for (b,) in db.session.query(Assignment.booking_id).filter(Assignment.worker_id == worker_id)}
    candidates = (
        Booking.query
        .filter(Booking.status.in_(bookings.OPEN_STATUSES), Booking.accepted_count < Booking.workers_needed)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
    available = [
        orchestrator.booking_summary(b) for b in candidates
        if b.id not in seen and is_eligible(worker, b.service_type)
    ][:limit]

    return jsonify(
        success=True,
        worker_id=worker_id,
        pending_assignments=pending,
        available_bookings=available,
        total_pending=len(pending),
        total_available=len(available),
    ), 200


# ---------- WORKERS: earnings across accepted bookings ----------
@workers_bp.get("/<int:worker_id>/earnings")
def worker_earnings(worker_id: int):
    worker = db.session.get(Worker, worker_id)
    if not worker:
        return jsonify(success=False, error="Worker not found"), 404

    rows = (
        db.session.query(Assignment, Booking)
        .join(Booking, Assignment.booking_id == Booking.id)
        .filter(Assignment.worker_id == worker_id, Assignment.status == "ACCEPTED")
        .order_by(Assignment.accepted_at.desc())
        .all()
    )
    summary = summarize((booking, worker_id, assignment) for assignment, booking in rows)
    return jsonify(success=True, worker_id=worker_id, data=summary.as_dict()), 200
