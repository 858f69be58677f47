import pytest

from app import create_app
from models import db
from models.booking import Booking
from models.worker import Worker
from utils.notifier import LogNotifier

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        # a file database so threads get their own connections
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "staffing-test.db"),
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
        "ADMIN_API_KEY": ADMIN_KEY,
        "INVITE_BASE_URL": "https://staff.example",
        "ACCEPT_LOCK_TIMEOUT_SECONDS": 10,
    })
    app.extensions["notifier"] = LogNotifier()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_headers():
    return {"X-Admin-Key": ADMIN_KEY}


@pytest.fixture
def notifier(app):
    return app.extensions["notifier"]


@pytest.fixture
def make_worker(app):
    def _make(name="Worker", services=("event-staff",), **fields):
        worker = Worker(name=name, services=list(services), **fields)
        db.session.add(worker)
        db.session.commit()
        return worker
    return _make


@pytest.fixture
def make_booking(app):
    def _make(workers_needed=2, service_type="Event Staff", **fields):
        fields.setdefault("location", "Main Hall")
        fields.setdefault("duration", "8 hours")
        booking = Booking(service_type=service_type, workers_needed=workers_needed, **fields)
        db.session.add(booking)
        db.session.commit()
        return booking
    return _make


@pytest.fixture
def reload(app):
    """Fresh copy of a row, bypassing anything cached in the session."""
    def _reload(model, ident):
        db.session.expire_all()
        return db.session.get(model, ident)
    return _reload
