from models.db import db, utcnow

class Worker(db.Model):
    __tablename__ = "workers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), nullable=True, unique=True)
    email = db.Column(db.String(255), nullable=True)

    # service slugs, e.g. ["event-staff", "hotel-restaurant-staff"]
    services = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
