import itertools
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# --- backend on the path ---
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
BACKEND_DIR = os.path.join(BASE_DIR, "backend")
sys.path.insert(0, BACKEND_DIR)

from booking_service import BookingService  # noqa: E402
from database import Base, LegacyBase  # noqa: E402
from payload import PayloadCodec  # noqa: E402
from slots import SlotPool  # noqa: E402
from store import BookingStore  # noqa: E402


def memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


# ------------------ sessions ------------------
@pytest.fixture
def primary_sessions():
    engine = memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def legacy_only_sessions():
    """A database that only has the old spot_id/entry_time layout."""
    engine = memory_engine()
    LegacyBase.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def broken_sessions(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/missing/dir/parking.db")
    yield sessionmaker(bind=engine)
    engine.dispose()


# ------------------ core objects ------------------
@pytest.fixture
def pool():
    return SlotPool.from_layout("A", 20, occupied_count=5)


@pytest.fixture
def store(primary_sessions):
    return BookingStore(primary_sessions, primary_sessions)


@pytest.fixture
def offline_store(broken_sessions):
    return BookingStore(broken_sessions, broken_sessions)


@pytest.fixture
def clock():
    # one second per booking keeps generated ids distinct
    ticks = itertools.count(1_700_000_000)
    return lambda: float(next(ticks))


@pytest.fixture
def service(pool, store, clock):
    return BookingService(pool, store, codec=PayloadCodec("₹"), clock=clock)
