import pytest
from fastapi.testclient import TestClient

from booking_service import BookingService
import main
from main import app, build_booking_service, get_booking_service
from payload import PayloadCodec
from services import qr_service
from slots import SlotPool

# ------------------ клиент ------------------
client = TestClient(app)


@pytest.fixture(autouse=True)
def booking_service(store, clock):
    service = BookingService(
        SlotPool.from_layout("A", 20, occupied_count=5),
        store,
        codec=PayloadCodec("$"),
        clock=clock,
    )
    app.dependency_overrides[get_booking_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


def book(**overrides):
    data = {
        "vehicle_number": "KA01AB1234",
        "vehicle_type": "Car",
        "owner_name": "Test User",
        "phone": "123456",
        "slot": "A6",
        "duration_hours": 2,
    }
    data.update(overrides)
    return client.post("/api/book", json=data)


# ------------------ ТЕСТЫ ------------------
def test_available_slots():
    response = client.get("/api/slots")
    assert response.status_code == 200
    assert response.json()["available"][:3] == ["A6", "A7", "A8"]
    assert client.get("/api/slots/next").json() == {"slot": "A6"}


def test_create_booking():
    response = book()
    assert response.status_code == 200

    body = response.json()
    assert body["ok"] is True
    assert body["booking"]["slot"] == "A6"
    assert body["booking"]["amount"] == "35.00"
    assert "Booking ID: " + body["booking"]["booking_id"] in body["payload"]
    assert client.get("/api/slots/next").json() == {"slot": "A7"}


def test_booking_taken_slot():
    book()
    response = book(vehicle_number="TN01XX9999")

    assert response.status_code == 409
    assert "already taken" in response.json()["detail"]


def test_booking_missing_fields():
    response = book(owner_name="")
    assert response.status_code == 400
    assert "owner_name" in response.json()["detail"]


def test_booking_without_free_slots(booking_service):
    for slot_id in booking_service.available_slots():
        booking_service.pool.allocate(slot_id, "X")

    response = book(slot=None)
    assert response.status_code == 409
    assert response.json()["detail"] == "No slots available"


def test_list_and_checkout():
    booking_id = book().json()["booking"]["booking_id"]

    bookings = client.get("/api/bookings").json()
    assert len(bookings) == 1
    assert bookings[0]["booking_id"] == booking_id

    response = client.post(f"/api/bookings/{booking_id}/checkout")
    assert response.status_code == 200
    assert response.json()["booking"]["status"] == "CheckedOut"
    assert client.get("/api/bookings").json()[0]["status"] == "CheckedOut"

    assert client.post(f"/api/bookings/{booking_id}/checkout").status_code == 409


def test_cancel_booking():
    booking_id = book().json()["booking"]["booking_id"]
    response = client.post(f"/api/bookings/{booking_id}/cancel")
    assert response.status_code == 200
    assert client.get(f"/api/bookings/{booking_id}").json()["status"] == "Cancelled"


def test_unknown_booking():
    assert client.get("/api/bookings/BK404").status_code == 404
    assert client.get("/api/bookings/BK404/payload").status_code == 404
    assert client.post("/api/bookings/BK404/checkout").status_code == 404


def test_qr_scan_roundtrip():
    booking_id = book().json()["booking"]["booking_id"]

    response = client.get(f"/api/bookings/{booking_id}/qr")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"

    scanned = client.post(
        "/api/scan/image",
        files={"file": ("qr.png", response.content, "image/png")},
    ).json()
    assert scanned["ok"] is True
    assert scanned["payload"]["booking_id"] == booking_id
    assert scanned["payload"]["status"] == "Verified"
    assert scanned["booking"]["status"] == "Booked"


def test_scan_noise_image():
    noise = qr_service.render_png("hello world")
    scanned = client.post(
        "/api/scan/image",
        files={"file": ("qr.png", noise, "image/png")},
    ).json()
    assert scanned == {"ok": False}


def test_scan_camera_unavailable(monkeypatch):
    monkeypatch.setattr("main.camera_service.open_camera", lambda index: None)
    assert client.post("/api/scan/camera").status_code == 503


class StillCamera:
    def __init__(self, text):
        self.text = text
        self.closed = False

    def is_open(self):
        return not self.closed

    def get_frame(self):
        return self.text

    def close(self):
        self.closed = True


def test_scan_camera_finds_booking(monkeypatch, booking_service):
    booking_id = book().json()["booking"]["booking_id"]
    camera = StillCamera(booking_service.payload(booking_id))
    monkeypatch.setattr("main.camera_service.open_camera", lambda index: camera)
    monkeypatch.setattr("main.qr_service.read", lambda frame: frame)

    scanned = client.post("/api/scan/camera").json()
    assert scanned["ok"] is True
    assert scanned["booking"]["booking_id"] == booking_id
    assert camera.closed


def test_restart_keeps_booked_slots(monkeypatch, primary_sessions):
    book()
    monkeypatch.setattr(main, "SessionLocal", primary_sessions)
    monkeypatch.setattr(main, "LegacySessionLocal", primary_sessions)

    restarted = build_booking_service()
    assert "A6" not in restarted.available_slots()
    assert restarted.next_slot() == "A7"
