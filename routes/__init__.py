from .health import health_bp
from .invitations import invitations_bp
from .admin import admin_bp
from .workers import workers_bp
