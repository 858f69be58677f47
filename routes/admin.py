from decimal import Decimal, InvalidOperation

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from models import db
from models.assignment import Assignment
from models.booking import Booking, BookingWorkerRate
from models.worker import Worker
from security.rbac import require_admin
from engine import capacity, fanout, orchestrator, tokens
from engine.earnings import quote
from utils.audit import log_event
from utils.notifier import get_notifier

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _ttl_from(data):
    ttl = data.get("ttl_seconds")
    if ttl in (None, ""):
        return None
    return int(ttl)


def _latest_per_worker(rows):
    """Newest assignment per worker; open (worker-less) invitations are all kept."""
    seen = set()
    out = []
    for a in rows:
        if a.worker_id is None:
            out.append(a)
            continue
        if a.worker_id in seen:
            continue
        seen.add(a.worker_id)
        out.append(a)
    return out


# ---------- ADMIN: invite every eligible worker ----------
@admin_bp.post("/bookings/<int:booking_id>/send-links")
@require_admin
def send_links(booking_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ttl = _ttl_from(data)
    except (TypeError, ValueError):
        return jsonify(success=False, error="ttl_seconds must be a whole number"), 400

    result = fanout.issue_links(
        booking_id,
        get_notifier(),
        payment_amount=data.get("payment_amount"),
        ttl=ttl,
    )
    if result.total == 0:
        return jsonify(success=False, error="No workers found for this service type", data=result.to_dict()), 404

    message = f"Booking links sent to {result.notified} workers"
    if result.failed:
        message += f", failed for {len(result.failed)} workers"
    return jsonify(success=True, message=message, data=result.to_dict()), 200


# ---------- ADMIN: issue a single invitation ----------
@admin_bp.post("/bookings/<int:booking_id>/invitations")
@require_admin
def issue_invitation(booking_id: int):
    data = request.get_json(silent=True) or {}
    worker_id = data.get("worker_id")
    try:
        ttl = _ttl_from(data)
        worker_id = int(worker_id) if worker_id not in (None, "") else None
    except (TypeError, ValueError):
        return jsonify(success=False, error="worker_id and ttl_seconds must be whole numbers"), 400

    single_use = data.get("single_use", True)
    if not isinstance(single_use, bool):
        return jsonify(success=False, error="single_use must be true or false"), 400
    issued = tokens.issue(booking_id, worker_id, ttl=ttl, single_use=single_use)
    return jsonify(success=True, data=issued.to_dict()), 201


# ---------- ADMIN: who has been invited / accepted ----------
@admin_bp.get("/bookings/<int:booking_id>/assignments")
@require_admin
def list_assignments(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if not booking:
        return jsonify(success=False, error="Booking not found"), 404

    status = request.args.get("status")
    q = Assignment.query.filter_by(booking_id=booking_id)
    if status:
        q = q.filter_by(status=status.upper())
    rows = q.order_by(Assignment.created_at.desc(), Assignment.id.desc()).all()

    if request.args.get("latest", "1") != "0":
        rows = _latest_per_worker(rows)

    out = []
    for a in rows:
        item = a.to_dict()
        q_ = quote(booking, a.worker_id) if a.worker_id else None
        item["quote"] = q_.as_dict() if q_ else None
        out.append(item)

    return jsonify(
        success=True,
        booking=orchestrator.booking_summary(booking),
        accepted_count=capacity.accepted_count(booking_id),
        assignments=out,
    ), 200


# ---------- ADMIN: pricing / workers_needed / workflow status ----------
@admin_bp.patch("/bookings/<int:booking_id>")
@require_admin
def update_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    allowed = {
        "negotiated_price", "payment_amount", "amount_per_worker", "total_amount",
        "number_of_days", "workers_needed", "status",
        "contact_name", "contact_phone", "contact_email",
    }
    changes = {k: v for k, v in data.items() if k in allowed}
    if not changes:
        return jsonify(success=False, error="Nothing to update"), 400

    booking = orchestrator.update_booking(booking_id, changes)
    return jsonify(success=True, booking=orchestrator.booking_summary(booking)), 200


# ---------- ADMIN: per-worker flat pay override ----------
@admin_bp.put("/bookings/<int:booking_id>/worker-rates/<int:worker_id>")
@require_admin
def set_worker_rate(booking_id: int, worker_id: int):
    data = request.get_json(silent=True) or {}
    try:
        amount = Decimal(str(data.get("amount")))
    except InvalidOperation:
        return jsonify(success=False, error="amount must be a number"), 400
    if not amount.is_finite():
        return jsonify(success=False, error="amount must be a number"), 400
    if amount <= 0:
        return jsonify(success=False, error="amount must be positive"), 400

    booking = db.session.get(Booking, booking_id)
    if not booking:
        return jsonify(success=False, error="Booking not found"), 404
    if not db.session.get(Worker, worker_id):
        return jsonify(success=False, error="Worker not found"), 404

    rate = BookingWorkerRate.query.filter_by(booking_id=booking_id, worker_id=worker_id).first()
    if rate:
        rate.amount = amount
    else:
        db.session.add(BookingWorkerRate(booking_id=booking_id, worker_id=worker_id, amount=amount))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(success=False, error="Rate was changed concurrently, retry"), 409

    log_event("WORKER_RATE_SET", actor="admin", entity="booking", entity_id=booking_id,
              metadata={"worker_id": worker_id, "amount": str(amount)})
    q_ = quote(booking, worker_id)
    return jsonify(success=True, quote=q_.as_dict() if q_ else None), 200


# ---------- ADMIN: withdraw an assignment ----------
@admin_bp.post("/assignments/<int:assignment_id>/cancel")
@require_admin
def cancel_assignment(assignment_id: int):
    data = request.get_json(silent=True) or {}
    reason = data.get("reason") or ""
    if not isinstance(reason, str):
        return jsonify(success=False, error="reason must be text"), 400
    reason = reason.strip().upper() or "WITHDRAWN"
    if len(reason) > 32:
        return jsonify(success=False, error="reason too long"), 400

    a = orchestrator.withdraw(assignment_id, reason)
    return jsonify(success=True, message="Assignment cancelled", assignment=a.to_dict()), 200
