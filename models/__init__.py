from .db import db, utcnow
from .audit_log import AuditLog
from .worker import Worker
from .booking import Booking, BookingWorkerRate
from .assignment import Assignment
from .invitation_token import InvitationToken
