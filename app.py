from flask import Flask, jsonify
from config import Config
from routes import health_bp, invitations_bp, admin_bp, workers_bp

from models import db
from flask_migrate import Migrate
from engine import locks
from engine.errors import EngineError, InvariantViolation


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(invitations_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(workers_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Per-booking acceptance locks
    locks.init_app(app)

    @app.errorhandler(EngineError)
    def _engine_error(exc):
        if isinstance(exc, InvariantViolation):
            app.logger.critical("invariant violation surfaced to client: %s %s", exc.message, exc.details)
        resp = jsonify(exc.to_dict())
        retry_after = exc.details.get("retry_after_seconds")
        if retry_after:
            resp.headers["Retry-After"] = str(retry_after)
        return resp, exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # API only, nothing to render
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from engine import fanout, tokens
from utils.notifier import get_notifier

def register_cli(app):
    @app.cli.command("expire-invitations")
    def expire_invitations():
        """Expire PENDING assignments whose invitation link has run out."""
        count = tokens.expire_stale()
        print(f"{count} invitation(s) expired")

    @app.cli.command("issue-links")
    @click.argument("booking_id", type=int)
    @click.option("--ttl", type=int, default=None, help="Link lifetime in seconds")
    def issue_links(booking_id, ttl):
        """Invite every eligible worker to BOOKING_ID."""
        try:
            result = fanout.issue_links(booking_id, get_notifier(), ttl=ttl)
        except EngineError as exc:
            print(exc.message)
            return
        print(f"{result.notified}/{result.total} workers notified")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
