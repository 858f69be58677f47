from models.db import db, utcnow

BOOKING_STATUSES = ("PENDING", "ASSIGNED", "CONFIRMED", "COMPLETED", "CANCELLED")

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, nullable=True, index=True)  # owner, managed elsewhere

    service_type = db.Column(db.String(120), nullable=False)
    workers_needed = db.Column(db.Integer, nullable=False)
    duration = db.Column(db.String(80), nullable=True)
    location = db.Column(db.String(255), nullable=True)

    # business contact, told when a worker accepts
    contact_name = db.Column(db.String(120), nullable=True)
    contact_phone = db.Column(db.String(30), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)

    # Pricing (all optional). Amounts in whole currency units, 2dp allowed.
    negotiated_price = db.Column(db.Numeric(12, 2), nullable=True)   # business proposal per worker-day
    payment_amount = db.Column(db.Numeric(12, 2), nullable=True)     # admin pool for the whole job
    amount_per_worker = db.Column(db.Numeric(12, 2), nullable=True)  # admin total per worker
    number_of_days = db.Column(db.Integer, nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)       # legacy undifferentiated total

    # Owned by engine.capacity; never written anywhere else
    accepted_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="PENDING")
    # status values: PENDING, ASSIGNED, CONFIRMED, COMPLETED, CANCELLED

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    worker_rates = db.relationship("BookingWorkerRate", back_populates="booking", lazy=True)

    __table_args__ = (
        db.CheckConstraint("workers_needed > 0", name="ck_booking_workers_needed_positive"),
        db.CheckConstraint("accepted_count >= 0", name="ck_booking_accepted_nonnegative"),
        # Hard business-rule: never more accepted workers than requested
        db.CheckConstraint("accepted_count <= workers_needed", name="ck_booking_accepted_within_capacity"),
    )

    def flat_rate_for(self, worker_id):
        for rate in self.worker_rates:
            if rate.worker_id == worker_id:
                return rate.amount
        return None

    def __repr__(self):
        return f"<Booking {self.id} {self.status} {self.accepted_count}/{self.workers_needed}>"


class BookingWorkerRate(db.Model):
    __tablename__ = "booking_worker_rates"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="worker_rates")

    __table_args__ = (
        db.UniqueConstraint("booking_id", "worker_id", name="uq_booking_worker_rate"),
    )
