from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    # naive UTC, matching how every DateTime column is stored
    return datetime.now(timezone.utc).replace(tzinfo=None)
