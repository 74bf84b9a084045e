import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from errors import (
    BookingNotFound,
    CheckoutError,
    InvalidTransition,
    NoSlotsAvailable,
    ReserveError,
    SlotError,
    ValidationError,
)
from payload import PayloadCodec, has_control_chars
from slots import SlotPool
from store import BookingStore, StoreRecord
from tariffs import compute_amount

logger = logging.getLogger(__name__)

VEHICLE_TYPES = ("Car", "Bike", "SUV", "Van")
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class BookingStatus(str, Enum):
    BOOKED = "Booked"
    CHECKED_OUT = "CheckedOut"
    CANCELLED = "Cancelled"

    def __str__(self):
        return self.value


@dataclass
class BookingRequest:
    vehicle_number: str
    vehicle_type: str
    owner_name: str
    phone: str
    slot: Optional[str] = None
    duration_hours: int = 1


@dataclass
class Booking:
    booking_id: str
    vehicle_number: str
    vehicle_type: str
    owner_name: str
    phone: str
    slot_id: str
    duration_hours: int
    amount: Decimal
    created_at: str
    status: BookingStatus = BookingStatus.BOOKED

    def to_record(self) -> StoreRecord:
        return StoreRecord(
            booking_id=self.booking_id,
            vehicle_number=self.vehicle_number,
            slot_number=self.slot_id,
            name=self.owner_name,
            phone=self.phone,
            in_time=self.created_at,
            duration=f"{self.duration_hours} hrs",
            amount=f"{self.amount:.2f}",
            status=self.status.value,
        )

    @classmethod
    def from_record(cls, record: StoreRecord) -> "Booking":
        hours = record.duration.split()[0] if record.duration else ""
        return cls(
            booking_id=record.booking_id,
            vehicle_number=record.vehicle_number,
            vehicle_type="",
            owner_name=record.name,
            phone=record.phone,
            slot_id=record.slot_number,
            duration_hours=int(hours) if hours.isdigit() else 0,
            amount=Decimal(record.amount or "0"),
            created_at=record.in_time,
            status=BookingStatus(record.status),
        )

    def to_dict(self):
        return {
            "booking_id": self.booking_id,
            "vehicle_number": self.vehicle_number,
            "vehicle_type": self.vehicle_type,
            "owner_name": self.owner_name,
            "phone": self.phone,
            "slot": self.slot_id,
            "duration_hours": self.duration_hours,
            "amount": f"{self.amount:.2f}",
            "in_time": self.created_at,
            "status": self.status.value,
        }


def timestamp_booking_id(now: float) -> str:
    return f"BK{int(now * 1000)}"


class BookingService:
    """Reserve, check out and cancel bookings over one pool and one store."""

    def __init__(
        self,
        pool: SlotPool,
        store: BookingStore,
        codec: Optional[PayloadCodec] = None,
        max_duration_hours: int = 72,
        clock: Callable[[], float] = time.time,
    ):
        self.pool = pool
        self.store = store
        self.codec = codec or PayloadCodec()
        self.max_duration_hours = max_duration_hours
        self._clock = clock
        self._active: Dict[str, Booking] = {}
        self._lock = threading.Lock()

    # ================== VALIDATION ==================
    def _validate(self, request: BookingRequest) -> BookingRequest:
        fields = {
            "vehicle_number": (request.vehicle_number or "").strip(),
            "vehicle_type": (request.vehicle_type or "").strip(),
            "owner_name": (request.owner_name or "").strip(),
            "phone": (request.phone or "").strip(),
        }
        empty = [name for name, value in fields.items() if not value]
        if empty:
            raise ValidationError(f"Please fill in the following required fields: {', '.join(empty)}")
        # every field becomes one line of the QR text block
        slot = (request.slot or "").strip()
        broken = [name for name, value in dict(fields, slot=slot).items() if has_control_chars(value)]
        if broken:
            raise ValidationError(f"Line breaks and control characters are not allowed in: {', '.join(broken)}")
        if fields["vehicle_type"] not in VEHICLE_TYPES:
            raise ValidationError(f"Unknown vehicle type {fields['vehicle_type']}")
        if not 1 <= request.duration_hours <= self.max_duration_hours:
            raise ValidationError(f"Duration must be between 1 and {self.max_duration_hours} hours")

        if not slot:
            if self.pool.peek() is None:
                raise NoSlotsAvailable()
            raise ValidationError("No parking slot selected")

        return BookingRequest(slot=slot, duration_hours=request.duration_hours, **fields)

    # ================== LIFECYCLE ==================
    def reserve(self, request: BookingRequest) -> Booking:
        try:
            request = self._validate(request)
            amount = compute_amount(request.duration_hours, 0)
        except (ValidationError, NoSlotsAvailable) as e:
            raise ReserveError(e) from e

        now = self._clock()
        booking = Booking(
            booking_id=timestamp_booking_id(now),
            vehicle_number=request.vehicle_number,
            vehicle_type=request.vehicle_type,
            owner_name=request.owner_name,
            phone=request.phone,
            slot_id=request.slot,
            duration_hours=request.duration_hours,
            amount=amount,
            created_at=datetime.fromtimestamp(now).strftime(TIME_FORMAT),
        )

        # allocate before persisting: a stored booking always holds its slot
        try:
            self.pool.allocate(booking.slot_id, booking.vehicle_number)
        except SlotError as e:
            raise ReserveError(e) from e

        tier = self.store.insert(booking.to_record())
        with self._lock:
            self._active[booking.booking_id] = booking
        logger.info("Booked %s into %s (%s tier)", booking.booking_id, booking.slot_id, tier.value)
        return booking

    def _close(self, booking_id: str, target: BookingStatus) -> Booking:
        with self._lock:
            booking = self._active.get(booking_id)
            if booking is None:
                record = self.store.lookup(booking_id)
                if record is None:
                    raise CheckoutError(BookingNotFound(booking_id))
                booking = Booking.from_record(record)
                self._active[booking_id] = booking
            if booking.status is not BookingStatus.BOOKED:
                raise CheckoutError(InvalidTransition(booking_id, booking.status.value, target.value))
            booking.status = target

        self._release_slot(booking)
        self.store.update_status(booking.to_record())
        logger.info("Booking %s is now %s", booking_id, target.value)
        return booking

    def _release_slot(self, booking: Booking):
        try:
            slot = self.pool.get(booking.slot_id)
        except SlotError as e:
            logger.warning("Booking %s held unknown slot %s", booking.booking_id, e.slot_id)
            return
        # the slot may have been handed to someone else since this booking was made
        if slot.available or slot.occupant != booking.vehicle_number:
            logger.warning(
                "Booking %s does not hold slot %s (occupant %s), leaving it as is",
                booking.booking_id, booking.slot_id, slot.occupant,
            )
            return
        self.pool.release(booking.slot_id)

    def restore_occupancy(self) -> int:
        """Re-occupy the slots of stored bookings that are still Booked."""
        restored = 0
        for record in self.store.fetch_all():
            if record.status != BookingStatus.BOOKED.value or record.slot_number not in self.pool:
                continue
            try:
                self.pool.allocate(record.slot_number, record.vehicle_number)
            except SlotError as e:
                logger.warning("Stored booking %s: %s", record.booking_id, e)
                continue
            restored += 1
        if restored:
            logger.info("Restored %d occupied slots from the store", restored)
        return restored

    def checkout(self, booking_id: str) -> Booking:
        return self._close(booking_id, BookingStatus.CHECKED_OUT)

    def cancel(self, booking_id: str) -> Booking:
        return self._close(booking_id, BookingStatus.CANCELLED)

    # ================== QUERIES ==================
    def get(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            booking = self._active.get(booking_id)
        if booking is not None:
            return booking
        record = self.store.lookup(booking_id)
        return Booking.from_record(record) if record else None

    def payload(self, booking_id: str) -> str:
        booking = self.get(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return self.codec.encode(booking)

    def verify(self, fields: Dict[str, str]) -> Optional[StoreRecord]:
        """Stored record a validated scan refers to, if any."""
        if not self.codec.validate(fields):
            return None
        record = self.store.lookup(fields["booking_id"])
        if record is None or record.vehicle_number != fields["vehicle_number"]:
            return None
        return record

    def available_slots(self) -> List[str]:
        return self.pool.snapshot()

    def next_slot(self) -> Optional[str]:
        return self.pool.peek()

    def bookings(self) -> List[StoreRecord]:
        return self.store.fetch_all()
