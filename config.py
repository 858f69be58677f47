import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as staffing.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "staffing.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Invitation links: 24 hours by default
    INVITE_TTL_SECONDS = int(os.getenv("INVITE_TTL_SECONDS", str(24 * 60 * 60)))

    # Where workers land when they open an invitation link
    INVITE_BASE_URL = os.getenv("INVITE_BASE_URL", "http://localhost:3000")

    # How long a redeem waits for the per-booking lock before answering Busy
    ACCEPT_LOCK_TIMEOUT_SECONDS = float(os.getenv("ACCEPT_LOCK_TIMEOUT_SECONDS", "5"))

    # Admin routes (admin auth proper lives outside this service)
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

    # Invitation delivery: "log" (default) or "smtp"
    NOTIFIER = os.getenv("NOTIFIER", "log")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Basic app settings
    DEBUG = False
