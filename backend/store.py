"""Booking persistence across three tiers.

Tier 1 is the unified ``parking_spots`` table, tier 2 the legacy layout of
the same table (vehicle, status, entry time, amount only) and tier 3 a
list kept in memory. Writes go to the first tier that accepts them; a
remote failure is logged and never reaches the caller. Reads return the
rows of whichever tier answered, never a merge.
"""
import bisect
import logging
import threading
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError

from errors import StoreError
from models import LegacyParkingRecord, ParkingRecord

logger = logging.getLogger(__name__)

MISSING_ID = "N/A"


class Tier(str, Enum):
    PRIMARY = "primary"
    LEGACY = "legacy"
    MEMORY = "memory"
    UNAVAILABLE = "unavailable"


@dataclass
class StoreRecord:
    booking_id: str
    vehicle_number: str
    slot_number: str
    name: str
    phone: str
    in_time: str
    duration: str
    amount: str
    status: str

    def to_dict(self):
        return asdict(self)


class QueryOutcome(NamedTuple):
    tier: Tier
    rows: List[StoreRecord]

    @property
    def answered(self) -> bool:
        return self.tier is not Tier.UNAVAILABLE


UNAVAILABLE = QueryOutcome(Tier.UNAVAILABLE, [])


def _from_primary(row: ParkingRecord) -> StoreRecord:
    return StoreRecord(
        booking_id=row.booking_id,
        vehicle_number=row.vehicle_number,
        slot_number=row.spot_number,
        name=row.name,
        phone=row.phone,
        in_time=row.in_time,
        duration=row.duration,
        amount=row.amount,
        status=row.status,
    )


def _from_legacy(row: LegacyParkingRecord) -> StoreRecord:
    return StoreRecord(
        booking_id=MISSING_ID,
        vehicle_number=row.vehicle_number or "",
        slot_number=str(row.spot_id) if row.spot_id is not None else "",
        name="",
        phone="",
        in_time=row.entry_time or "",
        duration="",
        amount=row.amount or "",
        status=row.status or "",
    )


class BookingStore:
    def __init__(self, primary_sessions, legacy_sessions=None):
        self._primary_sessions = primary_sessions
        self._legacy_sessions = legacy_sessions
        self._memory: List[StoreRecord] = []
        self._lock = threading.RLock()

    # ================== TIER ATTEMPTS ==================
    def _attempt(self, tier: Tier, sessions, work):
        """Run ``work(db)`` once against one tier, raising StoreError on failure."""
        if sessions is None:
            raise StoreError(tier, f"{tier.value} store not configured")
        db = None
        try:
            db = sessions()
            return work(db)
        except SQLAlchemyError as e:
            if db is not None:
                db.rollback()
            raise StoreError(tier, str(e)) from e
        finally:
            if db is not None:
                db.close()

    def _insert_primary(self, record: StoreRecord):
        def work(db):
            db.add(ParkingRecord(
                booking_id=record.booking_id,
                vehicle_number=record.vehicle_number,
                spot_number=record.slot_number,
                name=record.name,
                phone=record.phone,
                in_time=record.in_time,
                duration=record.duration,
                amount=record.amount,
                status=record.status,
            ))
            db.commit()
        self._attempt(Tier.PRIMARY, self._primary_sessions, work)

    def _insert_legacy(self, record: StoreRecord):
        # booking id, slot, name, phone and duration have no column here
        def work(db):
            db.add(LegacyParkingRecord(
                vehicle_number=record.vehicle_number,
                status=record.status,
                entry_time=record.in_time,
                amount=record.amount,
            ))
            db.commit()
        self._attempt(Tier.LEGACY, self._legacy_sessions, work)

    def _read_primary(self) -> QueryOutcome:
        def work(db):
            return [_from_primary(r) for r in db.query(ParkingRecord).all()]
        try:
            return QueryOutcome(Tier.PRIMARY, self._attempt(Tier.PRIMARY, self._primary_sessions, work))
        except StoreError as e:
            logger.warning("Primary store read failed: %s", e)
            return UNAVAILABLE

    def _read_legacy(self) -> QueryOutcome:
        def work(db):
            return [_from_legacy(r) for r in db.query(LegacyParkingRecord).all()]
        try:
            return QueryOutcome(Tier.LEGACY, self._attempt(Tier.LEGACY, self._legacy_sessions, work))
        except StoreError as e:
            logger.warning("Legacy store read failed: %s", e)
            return UNAVAILABLE

    # ================== PUBLIC API ==================
    def insert(self, record: StoreRecord) -> Tier:
        with self._lock:
            try:
                self._insert_primary(record)
                return Tier.PRIMARY
            except StoreError as e:
                logger.warning("Insert with booking columns failed: %s", e)
            try:
                self._insert_legacy(record)
                logger.info("Booking %s stored in legacy layout", record.booking_id)
                return Tier.LEGACY
            except StoreError as e:
                logger.warning("Legacy insert failed: %s", e)
            self._memory.append(replace(record))
            logger.warning("Remote stores unavailable, booking %s kept in memory", record.booking_id)
            return Tier.MEMORY

    def query(self) -> QueryOutcome:
        with self._lock:
            primary = self._read_primary()
            if primary.rows:
                return primary
            legacy = self._read_legacy()
            if legacy.answered:
                return legacy
            if primary.answered:
                return primary
            return QueryOutcome(Tier.MEMORY, [replace(r) for r in self._memory])

    def fetch_all(self) -> List[StoreRecord]:
        return self.query().rows

    def find_by_id(self, booking_id: str) -> Optional[StoreRecord]:
        """Binary search over the in-memory tier, sorted by booking id first.

        Duplicate ids (two bookings in the same millisecond) resolve to the
        first of them in sort order.
        """
        with self._lock:
            # sorted copy, fetch_all still reports insertion order
            ordered = sorted(self._memory, key=lambda r: r.booking_id)
        ids = [r.booking_id for r in ordered]
        i = bisect.bisect_left(ids, booking_id)
        if i < len(ids) and ids[i] == booking_id:
            return replace(ordered[i])
        return None

    def lookup(self, booking_id: str) -> Optional[StoreRecord]:
        def work(db):
            row = db.query(ParkingRecord).filter(ParkingRecord.booking_id == booking_id).first()
            return _from_primary(row) if row else None

        with self._lock:
            try:
                found = self._attempt(Tier.PRIMARY, self._primary_sessions, work)
                if found:
                    return found
            except StoreError as e:
                logger.warning("Primary lookup failed: %s", e)
            return self.find_by_id(booking_id)

    def update_status(self, record: StoreRecord) -> Optional[Tier]:
        def primary_work(db):
            updated = (
                db.query(ParkingRecord)
                .filter(ParkingRecord.booking_id == record.booking_id)
                .update({ParkingRecord.status: record.status})
            )
            db.commit()
            return updated

        def legacy_work(db):
            updated = (
                db.query(LegacyParkingRecord)
                .filter(
                    LegacyParkingRecord.vehicle_number == record.vehicle_number,
                    LegacyParkingRecord.entry_time == record.in_time,
                )
                .update({
                    LegacyParkingRecord.status: record.status,
                    LegacyParkingRecord.exit_time: datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                })
            )
            db.commit()
            return updated

        with self._lock:
            try:
                if self._attempt(Tier.PRIMARY, self._primary_sessions, primary_work):
                    return Tier.PRIMARY
            except StoreError as e:
                logger.warning("Primary status update failed: %s", e)
            try:
                if self._attempt(Tier.LEGACY, self._legacy_sessions, legacy_work):
                    return Tier.LEGACY
            except StoreError as e:
                logger.warning("Legacy status update failed: %s", e)
            for stored in self._memory:
                if stored.booking_id == record.booking_id:
                    stored.status = record.status
                    return Tier.MEMORY
            logger.warning("Status update for %s matched no stored booking", record.booking_id)
            return None

    def memory_records(self) -> List[StoreRecord]:
        with self._lock:
            return [replace(r) for r in self._memory]
