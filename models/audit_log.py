from models.db import db, utcnow

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(80), nullable=True)   # worker id, "admin" or "system"
    action = db.Column(db.String(80), nullable=False)  # e.g. INVITE_ISSUED, ASSIGNMENT_ACCEPTED
    entity = db.Column(db.String(80), nullable=True)   # e.g. booking, assignment
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)
