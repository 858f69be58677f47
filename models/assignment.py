from models.db import db, utcnow

ASSIGNMENT_STATUSES = ("PENDING", "ACCEPTED", "EXPIRED", "CANCELLED")
ACTIVE_STATUSES = ("PENDING", "ACCEPTED")

_ACTIVE_WHERE = db.text("status IN ('PENDING', 'ACCEPTED') AND worker_id IS NOT NULL")

class Assignment(db.Model):
    __tablename__ = "assignments"

    id = db.Column(db.Integer, primary_key=True)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    # NULL until someone redeems an open invitation
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True, index=True)

    status = db.Column(db.String(20), nullable=False, default="PENDING")
    # status values: PENDING, ACCEPTED, EXPIRED, CANCELLED
    status_reason = db.Column(db.String(32), nullable=True)
    # reasons: TOKEN_EXPIRED, CAPACITY_REACHED, WITHDRAWN, SUPERSEDED, BOOKING_CANCELLED

    # current invitation token for this assignment
    token_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    accepted_at = db.Column(db.DateTime, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    booking = db.relationship("Booking", backref=db.backref("assignments", lazy=True))

    __table_args__ = (
        # One active (PENDING/ACCEPTED) assignment per worker per booking
        db.Index(
            "uq_assignment_active_worker",
            "booking_id",
            "worker_id",
            unique=True,
            sqlite_where=_ACTIVE_WHERE,
            postgresql_where=_ACTIVE_WHERE,
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "worker_id": self.worker_id,
            "status": self.status,
            "status_reason": self.status_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
