from flask import Blueprint, request, jsonify

from engine import orchestrator

invitations_bp = Blueprint("invitations", __name__, url_prefix="/invitations")


# ---------- WORKERS: look at an invitation (does not use it up) ----------
@invitations_bp.get("/<token>")
def invitation_details(token: str):
    worker_id = request.args.get("worker_id")
    return jsonify(orchestrator.details(token, worker_id)), 200


# ---------- WORKERS: accept (OVER-ALLOCATION SAFE) ----------
@invitations_bp.post("/redeem")
def redeem_invitation():
    data = request.get_json(silent=True) or {}
    token = data.get("token") or ""
    worker_id = data.get("worker_id")
    if not isinstance(token, str):
        return jsonify(success=False, error="token must be text"), 400
    token = token.strip()
    if not token or worker_id is None:
        return jsonify(success=False, error="token and worker_id are required"), 400

    result = orchestrator.redeem(token, worker_id)
    body = result.to_dict()
    body["message"] = (
        "You have already accepted this booking" if result.replayed
        else "Booking accepted successfully!"
    )
    if result.business_notified:
        body["message"] += " Business has been notified."
    return jsonify(body), 200
