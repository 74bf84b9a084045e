import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field

from booking_service import BookingRequest, BookingService
from config import settings
from database import LegacySessionLocal, SessionLocal, init_db
from errors import (
    BookingNotFound,
    CheckoutError,
    InvalidTransition,
    NoSlotsAvailable,
    ReserveError,
    SlotNotAvailable,
    UnknownSlot,
)
from payload import PayloadCodec
from scanner import ScanSession, ScanState, scan_image
from services import camera_service, qr_service
from slots import SlotPool
from store import BookingStore

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ================== SERVICE ==================
def build_booking_service() -> BookingService:
    pool = SlotPool.from_layout(
        prefix=settings.SLOT_PREFIX,
        count=settings.SLOT_COUNT,
        occupied_count=settings.PREOCCUPIED_SLOTS,
    )
    store = BookingStore(SessionLocal, LegacySessionLocal)
    service = BookingService(
        pool,
        store,
        codec=PayloadCodec(settings.CURRENCY_SYMBOL),
        max_duration_hours=settings.MAX_DURATION_HOURS,
    )
    service.restore_occupancy()
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        init_db()
    except Exception as e:
        # the store falls back per call; startup must not depend on the database
        logger.warning("Could not create booking tables: %s", e)
    app.state.booking_service = build_booking_service()
    yield


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


# ================== APP ==================
app = FastAPI(lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class BookingIn(BaseModel):
    vehicle_number: str
    vehicle_type: str
    owner_name: str
    phone: str
    slot: Optional[str] = None
    duration_hours: int = Field(default=1)


def _reserve_failure(e: ReserveError) -> HTTPException:
    cause = e.cause
    if isinstance(cause, NoSlotsAvailable):
        return HTTPException(409, "No slots available")
    if isinstance(cause, SlotNotAvailable):
        return HTTPException(409, f"Slot {cause.slot_id} already taken")
    if isinstance(cause, UnknownSlot):
        return HTTPException(400, f"Unknown slot {cause.slot_id}")
    return HTTPException(400, str(cause))


def _checkout_failure(e: CheckoutError) -> HTTPException:
    if isinstance(e.cause, BookingNotFound):
        return HTTPException(404, str(e.cause))
    if isinstance(e.cause, InvalidTransition):
        return HTTPException(409, str(e.cause))
    return HTTPException(400, str(e.cause))


# ================== SLOTS ==================
@app.get("/api/slots")
def slots(service: BookingService = Depends(get_booking_service)):
    return {"available": service.available_slots()}


@app.get("/api/slots/next")
def next_slot(service: BookingService = Depends(get_booking_service)):
    return {"slot": service.next_slot()}


# ================== BOOKINGS ==================
@app.post("/api/book")
def book(data: BookingIn, service: BookingService = Depends(get_booking_service)):
    try:
        booking = service.reserve(BookingRequest(**data.model_dump()))
    except ReserveError as e:
        raise _reserve_failure(e)
    return {
        "ok": True,
        "booking": booking.to_dict(),
        "payload": service.codec.encode(booking),
    }


@app.get("/api/bookings")
def bookings(service: BookingService = Depends(get_booking_service)):
    return [r.to_dict() for r in service.bookings()]


@app.get("/api/bookings/{booking_id}")
def booking_detail(booking_id: str, service: BookingService = Depends(get_booking_service)):
    booking = service.get(booking_id)
    if booking is None:
        raise HTTPException(404, f"Booking {booking_id} not found")
    return booking.to_dict()


@app.get("/api/bookings/{booking_id}/payload")
def booking_payload(booking_id: str, service: BookingService = Depends(get_booking_service)):
    try:
        return {"payload": service.payload(booking_id)}
    except BookingNotFound as e:
        raise HTTPException(404, str(e))


@app.get("/api/bookings/{booking_id}/qr")
def booking_qr(booking_id: str, service: BookingService = Depends(get_booking_service)):
    try:
        text = service.payload(booking_id)
    except BookingNotFound as e:
        raise HTTPException(404, str(e))
    return Response(content=qr_service.render_png(text), media_type="image/png")


@app.post("/api/bookings/{booking_id}/checkout")
def checkout(booking_id: str, service: BookingService = Depends(get_booking_service)):
    try:
        booking = service.checkout(booking_id)
    except CheckoutError as e:
        raise _checkout_failure(e)
    return {"ok": True, "booking": booking.to_dict()}


@app.post("/api/bookings/{booking_id}/cancel")
def cancel(booking_id: str, service: BookingService = Depends(get_booking_service)):
    try:
        booking = service.cancel(booking_id)
    except CheckoutError as e:
        raise _checkout_failure(e)
    return {"ok": True, "booking": booking.to_dict()}


# ================== SCAN ==================
def _scan_result(service: BookingService, fields):
    if fields is None:
        return {"ok": False}
    record = service.verify(fields)
    return {
        "ok": True,
        "payload": fields,
        "booking": record.to_dict() if record else None,
    }


@app.post("/api/scan/image")
async def scan_uploaded_image(
    file: UploadFile = File(...),
    service: BookingService = Depends(get_booking_service),
):
    data = await file.read()
    fields = await run_in_threadpool(scan_image, data, qr_service.read_bytes, service.codec)
    return _scan_result(service, fields)


@app.post("/api/scan/camera")
def scan_camera(service: BookingService = Depends(get_booking_service)):
    session = ScanSession(
        lambda: camera_service.open_camera(settings.CAMERA_INDEX),
        qr_service.read,
        service.codec,
        interval=settings.SCAN_INTERVAL,
        source_key=f"camera:{settings.CAMERA_INDEX}",
    )
    if session.start() is ScanState.SOURCE_UNAVAILABLE:
        raise HTTPException(503, "Camera unavailable, upload a QR image instead")

    event = session.wait(settings.SCAN_TIMEOUT)
    if event is None:
        session.cancel()
        event = session.wait(0)
    if event is None or event.state is not ScanState.FOUND:
        return {"ok": False, "state": session.state.value}
    return _scan_result(service, event.fields)
