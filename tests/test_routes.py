"""HTTP surface: worker invitation pages, redeem, admin tools, earnings."""

from urllib.parse import parse_qs, urlparse

import pytest

from models import db
from models.assignment import Assignment
from models.booking import Booking
from engine import orchestrator, tokens


def _token_from(body: str) -> str:
    link = next(line for line in body.splitlines() if line.startswith("Accept here: "))
    return parse_qs(urlparse(link[len("Accept here: "):]).query)["token"][0]


@pytest.fixture
def staffed(make_booking, make_worker):
    """A booking for two event staff, three event staff on the books and one nurse."""
    booking = make_booking(workers_needed=2)
    workers = [make_worker(name=f"Staff {i}") for i in range(3)]
    nurse = make_worker(name="Nurse", services=["hospital-staff"])
    return booking, workers, nurse


class TestHealth:
    def test_ok(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"


class TestAdminKey:
    def test_missing(self, client, make_booking) -> None:
        resp = client.post(f"/admin/bookings/{make_booking().id}/send-links")
        assert resp.status_code == 401

    def test_wrong(self, client, make_booking) -> None:
        resp = client.post(f"/admin/bookings/{make_booking().id}/send-links", headers={"X-Admin-Key": "nope"})
        assert resp.status_code == 403

    def test_not_configured(self, app, client, make_booking, admin_headers) -> None:
        app.config["ADMIN_API_KEY"] = None
        resp = client.post(f"/admin/bookings/{make_booking().id}/send-links", headers=admin_headers)
        assert resp.status_code == 503


class TestSendLinks:
    def test_invites_matching_workers(self, client, admin_headers, notifier, staffed) -> None:
        booking, workers, nurse = staffed
        resp = client.post(
            f"/admin/bookings/{booking.id}/send-links",
            json={"payment_amount": 6000},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["workers_notified"] == 3
        assert data["total_workers"] == 3
        assert [worker_id for worker_id, _, _ in notifier.sent] == [w.id for w in workers]
        assert "Pay: 3000 total (3000/day for 1 day(s))" in notifier.sent[0][2]

    def test_no_matching_workers(self, client, admin_headers, make_booking) -> None:
        booking = make_booking(service_type="Construction Workers")
        resp = client.post(f"/admin/bookings/{booking.id}/send-links", headers=admin_headers)
        assert resp.status_code == 404

    def test_unknown_booking(self, client, admin_headers) -> None:
        resp = client.post("/admin/bookings/4040/send-links", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "BOOKING_NOT_FOUND"

    def test_assignment_listing(self, client, admin_headers, staffed) -> None:
        booking, workers, _ = staffed
        client.post(f"/admin/bookings/{booking.id}/send-links", headers=admin_headers)

        resp = client.get(f"/admin/bookings/{booking.id}/assignments", headers=admin_headers)
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["accepted_count"] == 0
        assert sorted(a["worker_id"] for a in body["assignments"]) == [w.id for w in workers]
        assert {a["status"] for a in body["assignments"]} == {"PENDING"}


class TestInvitationFlow:
    def _send(self, client, admin_headers, notifier, booking):
        client.post(f"/admin/bookings/{booking.id}/send-links", json={"payment_amount": 6000}, headers=admin_headers)
        return {worker_id: _token_from(body) for worker_id, _, body in notifier.sent}

    def test_details_then_redeem(self, client, admin_headers, notifier, staffed) -> None:
        booking, workers, _ = staffed
        links = self._send(client, admin_headers, notifier, booking)
        worker = workers[0]

        page = client.get(f"/invitations/{links[worker.id]}")
        assert page.status_code == 200
        body = page.get_json()
        assert body["invitation"]["used"] is False
        assert body["quote"]["source"] == "admin_total_pool"
        assert body["message"] == "2 spot(s) available."

        resp = client.post("/invitations/redeem", json={"token": links[worker.id], "worker_id": worker.id})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["message"] == "Booking accepted successfully!"
        assert body["assignment"]["status"] == "ACCEPTED"
        assert body["booking"]["status"] == "ASSIGNED"
        assert body["quote"]["total_amount"] == 3000

        again = client.post("/invitations/redeem", json={"token": links[worker.id], "worker_id": worker.id})
        assert again.status_code == 200
        assert again.get_json()["replayed"] is True

        page = client.get(f"/invitations/{links[worker.id]}")
        assert page.get_json()["invitation"]["used"] is True

    def test_wrong_worker(self, client, admin_headers, notifier, staffed) -> None:
        booking, workers, _ = staffed
        links = self._send(client, admin_headers, notifier, booking)

        resp = client.post("/invitations/redeem", json={"token": links[workers[0].id], "worker_id": workers[1].id})
        assert resp.status_code == 403
        assert resp.get_json()["kind"] == "FORBIDDEN"

    def test_full_booking(self, client, admin_headers, notifier, staffed) -> None:
        booking, workers, _ = staffed
        links = self._send(client, admin_headers, notifier, booking)
        for w in workers[:2]:
            client.post("/invitations/redeem", json={"token": links[w.id], "worker_id": w.id})

        resp = client.post("/invitations/redeem", json={"token": links[workers[2].id], "worker_id": workers[2].id})
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "CAPACITY_EXCEEDED"

    @pytest.mark.parametrize("payload", [{}, {"token": "abc"}, {"worker_id": 1}, {"token": "  ", "worker_id": 1}])
    def test_missing_fields(self, client, payload) -> None:
        assert client.post("/invitations/redeem", json=payload).status_code == 400

    @pytest.mark.parametrize("token", [123, ["abc"], {"raw": "abc"}])
    def test_token_must_be_text(self, client, token) -> None:
        resp = client.post("/invitations/redeem", json={"token": token, "worker_id": 1})
        assert resp.status_code == 400

    def test_business_is_told(self, client, notifier, make_booking, make_worker) -> None:
        booking, worker = make_booking(contact_phone="5550100"), make_worker()
        issued = tokens.issue(booking.id, worker.id)

        body = client.post("/invitations/redeem", json={"token": issued.raw_token, "worker_id": worker.id}).get_json()
        assert body["business_notified"] is True
        assert body["message"] == "Booking accepted successfully! Business has been notified."
        assert notifier.sent[-1][0] == f"business:{booking.id}"

    def test_unknown_token(self, client, make_worker) -> None:
        resp = client.post("/invitations/redeem", json={"token": "nope", "worker_id": make_worker().id})
        assert resp.status_code == 404
        assert resp.get_json()["kind"] == "TOKEN_NOT_FOUND"
        assert client.get("/invitations/nope").status_code == 404


class TestAdminTools:
    def test_issue_single_invitation(self, client, admin_headers, make_booking, make_worker) -> None:
        booking, worker = make_booking(), make_worker()
        resp = client.post(
            f"/admin/bookings/{booking.id}/invitations",
            json={"worker_id": worker.id, "ttl_seconds": 3600},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["worker_id"] == worker.id
        assert data["link"].endswith(data["token"])

    def test_bad_ttl(self, client, admin_headers, make_booking) -> None:
        resp = client.post(
            f"/admin/bookings/{make_booking().id}/invitations",
            json={"ttl_seconds": "soon"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_patch_booking(self, client, admin_headers, make_booking) -> None:
        booking = make_booking()
        resp = client.patch(f"/admin/bookings/{booking.id}", json={"workers_needed": 4}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["booking"]["workers_needed"] == 4

    def test_patch_rejects_bad_values(self, client, admin_headers, make_booking) -> None:
        booking = make_booking()
        assert client.patch(f"/admin/bookings/{booking.id}", json={}, headers=admin_headers).status_code == 400
        resp = client.patch(f"/admin/bookings/{booking.id}", json={"status": "ON_HOLD"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("single_use", ["false", 0, None])
    def test_single_use_must_be_boolean(self, client, admin_headers, make_booking, single_use) -> None:
        resp = client.post(
            f"/admin/bookings/{make_booking().id}/invitations",
            json={"single_use": single_use},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_multi_use_open_link(self, client, admin_headers, make_booking) -> None:
        resp = client.post(
            f"/admin/bookings/{make_booking().id}/invitations",
            json={"single_use": False},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["single_use"] is False

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity"])
    def test_patch_rejects_non_finite_amounts(self, client, admin_headers, make_booking, amount) -> None:
        booking = make_booking()
        resp = client.patch(f"/admin/bookings/{booking.id}", json={"payment_amount": amount}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION_ERROR"

    def test_patch_back_to_pending_with_accepted_workers(self, client, admin_headers, make_booking, make_worker) -> None:
        booking, worker = make_booking(workers_needed=2), make_worker()
        orchestrator.redeem(tokens.issue(booking.id, worker.id).raw_token, worker.id)

        resp = client.patch(f"/admin/bookings/{booking.id}", json={"status": "PENDING"}, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["kind"] == "INVALID_BOOKING_STATE"

    def test_patch_contact(self, client, admin_headers, make_booking, reload) -> None:
        booking = make_booking()
        resp = client.patch(
            f"/admin/bookings/{booking.id}",
            json={"contact_name": "Grand Hotel", "contact_email": "ops@example.com"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert reload(Booking, booking.id).contact_email == "ops@example.com"

    def test_patch_closed_booking(self, client, admin_headers, make_booking) -> None:
        booking = make_booking(status="CANCELLED")
        resp = client.patch(f"/admin/bookings/{booking.id}", json={"payment_amount": 100}, headers=admin_headers)
        assert resp.status_code == 409

    def test_worker_rate(self, client, admin_headers, make_booking, make_worker) -> None:
        booking, worker = make_booking(payment_amount=9000), make_worker()
        resp = client.put(
            f"/admin/bookings/{booking.id}/worker-rates/{worker.id}",
            json={"amount": 500},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["quote"] == {"daily_amount": 500, "total_amount": 500, "days": 1, "source": "worker_flat"}

        bad = client.put(
            f"/admin/bookings/{booking.id}/worker-rates/{worker.id}",
            json={"amount": "lots"},
            headers=admin_headers,
        )
        assert bad.status_code == 400

    def test_cancel_accepted_assignment(self, client, admin_headers, make_booking, make_worker, reload) -> None:
        booking, worker = make_booking(), make_worker()
        issued = tokens.issue(booking.id, worker.id)
        orchestrator.redeem(issued.raw_token, worker.id)

        resp = client.post(f"/admin/assignments/{issued.assignment_id}/cancel", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["assignment"]["status"] == "CANCELLED"
        assert reload(Booking, booking.id).accepted_count == 0

    @pytest.mark.parametrize("amount", ["NaN", "Infinity"])
    def test_worker_rate_must_be_finite(self, client, admin_headers, make_booking, make_worker, amount) -> None:
        booking, worker = make_booking(), make_worker()
        resp = client.put(
            f"/admin/bookings/{booking.id}/worker-rates/{worker.id}",
            json={"amount": amount},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("reason", [5, ["LATE"], {"why": "LATE"}])
    def test_cancel_reason_must_be_text(self, client, admin_headers, make_booking, make_worker, reload, reason) -> None:
        issued = tokens.issue(make_booking().id, make_worker().id)
        resp = client.post(f"/admin/assignments/{issued.assignment_id}/cancel", json={"reason": reason},
                           headers=admin_headers)
        assert resp.status_code == 400
        assert reload(Assignment, issued.assignment_id).status == "PENDING"

    def test_cancel_unknown_assignment(self, client, admin_headers) -> None:
        resp = client.post("/admin/assignments/999/cancel", headers=admin_headers)
        assert resp.status_code == 404


class TestEarnings:
    def test_summary(self, client, make_booking, make_worker) -> None:
        worker = make_worker()
        done = make_booking(amount_per_worker=6000, number_of_days=3)
        upcoming = make_booking(workers_needed=3, payment_amount=900)
        for booking in (done, upcoming):
            orchestrator.redeem(tokens.issue(booking.id, worker.id).raw_token, worker.id)
        orchestrator.update_booking(done.id, {"status": "CONFIRMED"})
        orchestrator.update_booking(done.id, {"status": "COMPLETED"})

        resp = client.get(f"/workers/{worker.id}/earnings")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["total_earnings"] == 6300
        assert data["earned"] == 6000
        assert data["upcoming"] == 300
        assert len(data["breakdown"]) == 2

    def test_unknown_worker(self, client) -> None:
        assert client.get("/workers/999/earnings").status_code == 404

    def test_no_bookings(self, client, make_worker) -> None:
        data = client.get(f"/workers/{make_worker().id}/earnings").get_json()["data"]
        assert data["total_earnings"] == 0
        assert data["breakdown"] == []


class TestWorkerInvitations:
    def test_pending_and_available(self, client, admin_headers, notifier, staffed, make_booking) -> None:
        booking, workers, _ = staffed
        client.post(f"/admin/bookings/{booking.id}/send-links", json={"payment_amount": 6000}, headers=admin_headers)
        other = make_booking(workers_needed=1, payment_amount=500)
        make_booking(service_type="Hospital Staff")

        resp = client.get(f"/workers/{workers[0].id}/invitations")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["total_pending"] == 1
        pending = body["pending_assignments"][0]
        assert pending["booking_id"] == booking.id
        assert pending["booking"]["available_spots"] == 2
        assert pending["quote"]["total_amount"] == 3000
        assert pending["expires_at"] is not None
        assert [b["id"] for b in body["available_bookings"]] == [other.id]
        assert body["total_available"] == 1

    def test_accepted_and_full_bookings_drop_out(self, client, make_booking, make_worker) -> None:
        worker, rival = make_worker(name="Mine"), make_worker(name="Rival")
        mine = make_booking(workers_needed=1)
        taken = make_booking(workers_needed=1)
        orchestrator.redeem(tokens.issue(mine.id, worker.id).raw_token, worker.id)
        orchestrator.redeem(tokens.issue(taken.id, rival.id).raw_token, rival.id)

        body = client.get(f"/workers/{worker.id}/invitations").get_json()
        assert body["pending_assignments"] == []
        assert body["available_bookings"] == []

    def test_unknown_worker(self, client) -> None:
        assert client.get("/workers/999/invitations").status_code == 404

    def test_bad_limit(self, client, make_worker) -> None:
        assert client.get(f"/workers/{make_worker().id}/invitations?limit=ten").status_code == 400
