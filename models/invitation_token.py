from models.db import db, utcnow

class InvitationToken(db.Model):
    __tablename__ = "invitation_tokens"

    id = db.Column(db.Integer, primary_key=True)

    # store only hashed token in DB (never store raw token)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True)  # NULL = open invitation
    assignment_id = db.Column(db.Integer, db.ForeignKey("assignments.id"), nullable=True, index=True)

    single_use = db.Column(db.Boolean, default=True, nullable=False)

    issued_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    consumed_at = db.Column(db.DateTime, nullable=True)
    consumed_by = db.Column(db.Integer, nullable=True)
    revoked_at = db.Column(db.DateTime, nullable=True)  # superseded by a newer link
