import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

from flask import current_app


@dataclass(frozen=True)
class Contact:
    """A recipient that is not a worker row, e.g. the business behind a booking."""
    id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


def booking_contact(booking) -> Optional[Contact]:
    if not booking.contact_phone and not booking.contact_email:
        return None
    return Contact(
        id=f"business:{booking.business_id or booking.id}",
        name=booking.contact_name,
        phone=booking.contact_phone,
        email=booking.contact_email,
    )


class Notifier:
    """
    Delivers messages to a worker or a Contact (anything with id, phone and
    email). Returns (ok, error) like the rest of utils.
    """

    def send(self, recipient, subject: str, body: str):
        raise NotImplementedError


class LogNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, recipient, subject: str, body: str):
        self.sent.append((recipient.id, subject, body))
        current_app.logger.info("message for %s (%s): %s", recipient.id, recipient.phone, subject)
        return True, None


class SmtpNotifier(Notifier):
    def send(self, recipient, subject: str, body: str):
        host = current_app.config.get("SMTP_HOST")
        port = current_app.config.get("SMTP_PORT", 587)
        username = current_app.config.get("SMTP_USERNAME")
        password = current_app.config.get("SMTP_PASSWORD")
        from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
        use_tls = current_app.config.get("SMTP_USE_TLS", True)

        if not host or not from_email:
            return False, "Email not configured"
        if not recipient.email:
            return False, "Recipient has no email"

        msg = EmailMessage()
        msg["From"] = from_email
        msg["To"] = recipient.email
        msg["Subject"] = subject
        msg.set_content(body)

        try:
            with smtplib.SMTP(host, port, timeout=10) as server:
                if use_tls:
                    server.starttls()
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
            return True, None
        except (smtplib.SMTPException, OSError) as exc:
            return False, str(exc)


def get_notifier() -> Notifier:
    notifier = current_app.extensions.get("notifier")
    if notifier is not None:
        return notifier
    if current_app.config.get("NOTIFIER") == "smtp":
        return SmtpNotifier()
    return LogNotifier()
