from sqlalchemy import Column, Integer, String

from database import Base, LegacyBase


class ParkingRecord(Base):
    __tablename__ = "parking_spots"

    booking_id = Column(String(32), primary_key=True, index=True)
    vehicle_number = Column(String(20), nullable=False)
    spot_number = Column(String(10), nullable=False)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=False)
    in_time = Column(String(19), nullable=False)
    duration = Column(String(16), nullable=False)
    amount = Column(String(16), nullable=False)
    status = Column(String(16), default="Booked")


class LegacyParkingRecord(LegacyBase):
    __tablename__ = "parking_spots"

    spot_id = Column(Integer, primary_key=True, autoincrement=True)
    vehicle_number = Column(String(20))
    status = Column(String(16))
    entry_time = Column(String(19))
    exit_time = Column(String(19), nullable=True)
    amount = Column(String(16))
