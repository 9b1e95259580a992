import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from mytor.api import deps
from mytor.core.config import settings
from mytor.core.exceptions import TransientError
from mytor.core.security import public_rate_limiter
from mytor.main import app
from tests.helpers import PHONE


@pytest.fixture
def client(directory, slot_service, verification, booking_service, workflow):
    app.dependency_overrides[deps.get_business_directory] = lambda: directory
    app.dependency_overrides[deps.get_slot_service] = lambda: slot_service
    app.dependency_overrides[deps.get_verification_service] = lambda: verification
    app.dependency_overrides[deps.get_booking_service] = lambda: booking_service
    app.dependency_overrides[deps.get_workflow] = lambda: workflow
    public_rate_limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    public_rate_limiter.reset()


def _owner_booking(client, start="10:00", **extra):
    payload = {"date": "2030-01-07", "start_time": start, "client_name": "Walk In", "service_id": "haircut"}
    payload.update(extra)
    return client.post("/businesses/b1/appointments", json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_public_business(client):
    response = client.get("/public/salon")
    assert response.status_code == 200
    data = response.json()
    assert data["slug"] == "salon"
    assert [s["id"] for s in data["services"]] == ["haircut", "color"]

    missing = client.get("/public/nowhere")
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_available_slots(client):
    response = client.get("/public/salon/available-slots", params={"date": "2030-01-07", "service_id": "color"})
    assert response.status_code == 200
    data = response.json()
    assert data["duration_minutes"] == 60
    assert data["available_slots"][0] == "09:00"
    assert data["available_slots"][-1] == "16:00"
    assert data["total_slots"] == len(data["available_slots"])

    bad = client.get("/public/salon/available-slots", params={"date": "tomorrow", "service_id": "color"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "validation_error"



def test_public_day_listing_hides_clients(client):
    _owner_booking(client, start="13:00", client_phone=PHONE, note="Allergic to dye")
    _owner_booking(client, start="09:00", end_time="10:00", status="pending")
    cancelled_id = _owner_booking(client, start="11:00").json()["id"]
    client.patch(f"/appointments/{cancelled_id}/status", json={"status": "cancelled"})

    response = client.get("/public/salon/appointments", params={"date": "2030-01-07"})
    assert response.status_code == 200
    data = response.json()
    assert data == [
        {"start_time": "09:00", "end_time": "10:00", "duration_minutes": 60},
        {"start_time": "13:00", "end_time": "13:30", "duration_minutes": 30},
    ]
    assert "Walk In" not in response.text
    assert PHONE not in response.text

    assert client.get("/public/nowhere/appointments", params={"date": "2030-01-07"}).status_code == 404

def test_otp_then_public_booking(client, sender):
    # 1. Unverified -> 401
    payload = {
        "service_id": "haircut",
        "date": "2030-01-07",
        "start_time": "10:00",
        "client_name": "Dana",
        "client_phone": PHONE,
    }
    response = client.post("/public/salon/appointments", json=payload)
    assert response.status_code == 401
    assert response.json()["error"] == "verification_required"

    # 2. Send and verify a code
    response = client.post("/otp/send", json={"phone": "050-123-4567"})
    assert response.status_code == 200
    assert "code" not in response.json()

    response = client.post("/otp/verify", json={"phone": PHONE, "code": sender.last_code()})
    assert response.status_code == 200
    assert response.json()["verified"] is True

    # 3. Booking request
    response = client.post("/public/salon/appointments", json=payload)
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    appointment_id = response.json()["appointment_id"]

    response = client.get(f"/appointments/{appointment_id}")
    assert response.status_code == 200
    assert response.json()["client_verified"] is True
    assert response.json()["end_time"] == "10:30"


def test_otp_errors(client, sender):
    assert client.post("/otp/send", json={"phone": "123"}).status_code == 400

    client.post("/otp/send", json={"phone": PHONE})
    again = client.post("/otp/send", json={"phone": PHONE})
    assert again.status_code == 429
    assert again.headers["Retry-After"] == "60"
    assert again.json()["retry_after"] == 60

    wrong = "1000" if sender.last_code() != "1000" else "1001"
    mismatch = client.post("/otp/verify", json={"phone": PHONE, "code": wrong})
    assert mismatch.status_code == 400
    assert mismatch.json()["error"] == "code_mismatch"


def test_expired_code_is_410(client, sender, clock):
    client.post("/otp/send", json={"phone": PHONE})
    clock.advance(minutes=10)

    response = client.post("/otp/verify", json={"phone": PHONE, "code": sender.last_code()})
    assert response.status_code == 410
    assert response.json()["error"] == "expired_code"


def test_workflow_endpoints(client, sender):
    result = client.post("/public/salon/booking/start").json()
    assert result["draft"]["state"] == "service_selection"
    assert result["error"] is None

    steps = [
        ("service_selection", {"service_id": "haircut"}),
        ("date_selection", {"date": "2030-01-07"}),
        ("time_selection", {"start_time": "15:00"}),
        ("contact_details", {"name": "Dana", "phone": PHONE}),
    ]
    draft = result["draft"]
    for step, payload in steps:
        response = client.post("/public/salon/booking/advance", json={"draft": draft, "step": step, "payload": payload})
        assert response.status_code == 200
        assert response.json()["error"] is None, response.json()
        draft = response.json()["draft"]

    assert draft["state"] == "verification"

    resend = client.post("/public/salon/booking/resend", json={"draft": draft}).json()
    assert resend["error"]["kind"] == "rate_limited"

    done = client.post(
        "/public/salon/booking/advance",
        json={"draft": draft, "step": "verification", "payload": {"code": sender.last_code()}},
    ).json()
    assert done["draft"]["state"] == "committed"
    assert done["draft"]["booking_id"]

    abandoned = client.post("/public/salon/booking/abandon", json={"draft": done["draft"]}).json()
    assert abandoned["error"] is not None


def test_draft_for_other_business_is_rejected(client):
    draft = client.post("/public/salon/booking/start").json()["draft"]
    draft["business_slug"] = "other"

    response = client.post("/public/salon/booking/advance", json={"draft": draft, "step": "service_selection", "payload": {}})
    assert response.status_code == 400


def test_owner_create_and_conflict(client):
    created = _owner_booking(client, end_time="11:00")
    assert created.status_code == 201
    assert created.json()["status"] == "confirmed"
    assert created.json()["duration_minutes"] == 60

    clash = _owner_booking(client, start="10:30")
    assert clash.status_code == 409
    assert clash.json()["error"] == "conflict"
    assert clash.json()["conflicting_start"] == "10:00"

    check = client.post(
        "/businesses/b1/appointments/check-conflict",
        json={"date": "2030-01-07", "start_time": "10:45", "service_id": "haircut"},
    ).json()
    assert check["has_conflict"] is True
    assert check["conflicting_end"] == "11:00"

    free = client.post(
        "/businesses/b1/appointments/check-conflict",
        json={"date": "2030-01-07", "start_time": "11:00", "end_time": "11:30"},
    ).json()
    assert free["has_conflict"] is False

    nearest = client.get("/businesses/b1/nearest-slot", params={"date": "2030-01-07", "time": "10:00", "service_id": "haircut"})
    # 09:30-10:00 only touches the 10:00 booking and is closer than 11:00
    assert nearest.json()["nearest_slot"] == "09:30"


def test_calendar_layout(client):
    _owner_booking(client, start="09:00", end_time="10:00")
    _owner_booking(client, start="10:00", end_time="11:00")
    _owner_booking(client, start="13:00", status="pending")

    response = client.get("/businesses/b1/calendar", params={"date": "2030-01-07"})
    assert response.status_code == 200
    data = response.json()
    assert len(data["bookings"]) == 3
    assert all(entry["width"] == 100 for entry in data["layout"])

    listing = client.get("/businesses/b1/appointments", params={"date": "2030-01-07", "status": "pending"})
    assert len(listing.json()) == 1

    bad_status = client.get("/businesses/b1/appointments", params={"date": "2030-01-07", "status": "lost"})
    assert bad_status.status_code == 400


def test_reschedule_and_status(client):
    booking_id = _owner_booking(client, status="pending").json()["id"]

    moved = client.patch(f"/appointments/{booking_id}", json={"start_time": "12:00"})
    assert moved.status_code == 200
    assert moved.json()["start_time"] == "12:00"

    confirmed = client.patch(f"/appointments/{booking_id}/status", json={"status": "confirmed"})
    assert confirmed.json()["status"] == "confirmed"

    declined = client.patch(f"/appointments/{booking_id}/status", json={"status": "declined"})
    assert declined.status_code == 400

    assert client.get("/appointments/nope").status_code == 404


def test_owner_token_required(client):
    with patch.object(settings, "SECRET_KEY", "s3cret"):
        assert client.get("/businesses/b1/appointments", params={"date": "2030-01-07"}).status_code == 403

        ok = client.get(
            "/businesses/b1/appointments",
            params={"date": "2030-01-07"},
            headers={"X-Owner-Token": "s3cret"},
        )
        assert ok.status_code == 200


def test_public_rate_limit(client):
    with patch.object(public_rate_limiter, "limit", 2):
        assert client.get("/public/salon").status_code == 200
        assert client.get("/public/salon").status_code == 200
        limited = client.get("/public/salon")

    assert limited.status_code == 429
    assert int(limited.headers["Retry-After"]) > 0


def test_transient_error_is_503(client, slot_service):
    with patch.object(slot_service, "get_available_slots", AsyncMock(side_effect=TransientError("Storage is temporarily unavailable"))):
        response = client.get("/public/salon/available-slots", params={"date": "2030-01-07", "service_id": "color"})

    assert response.status_code == 503
    assert response.json() == {"error": "transient_error", "message": "Storage is temporarily unavailable"}
