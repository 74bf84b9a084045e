"""Text block carried inside a booking's QR code.

The label strings and their order are the contract between the booking
desk that prints the code and the scanner that reads it back.
"""
import unicodedata
from typing import Dict

from errors import CodecValidationFailure, ValidationError

HEADER = "== QR SMART PARKING =="
FOOTER = "Please scan this code at entry and keep it until check-out."

# (label, field) in wire order
FIELDS = (
    ("Booking ID", "booking_id"),
    ("Vehicle Number", "vehicle_number"),
    ("Owner Name", "owner_name"),
    ("Phone", "phone"),
    ("Parking Slot", "slot"),
    ("Vehicle Type", "vehicle_type"),
    ("Duration", "duration"),
    ("Total Cost", "amount"),
    ("Booking Time", "in_time"),
    ("Status", "status"),
)

REQUIRED = ("booking_id", "vehicle_number")
MARKERS = ("Booking ID:", "Vehicle Number:")
SCANNED_STATUS = "Verified"


def has_control_chars(value: str) -> bool:
    return any(unicodedata.category(ch) in ("Cc", "Zl", "Zp") for ch in value)


def strip_currency(value: str) -> str:
    return "".join(ch for ch in value if unicodedata.category(ch) != "Sc").strip()


class PayloadCodec:
    def __init__(self, currency_symbol: str = "₹"):
        self.currency_symbol = currency_symbol

    def encode(self, booking) -> str:
        values = {
            "booking_id": booking.booking_id,
            "vehicle_number": booking.vehicle_number,
            "owner_name": booking.owner_name,
            "phone": booking.phone,
            "slot": booking.slot_id,
            "vehicle_type": booking.vehicle_type,
            "duration": f"{booking.duration_hours} hours",
            "amount": f"{self.currency_symbol}{booking.amount}",
            "in_time": booking.created_at,
            "status": str(booking.status),
        }
        for field, value in values.items():
            if has_control_chars(value):
                raise ValidationError(f"{field} must be a single line of text")
        lines = [HEADER, ""]
        lines.extend(f"{label}: {values[field]}" for label, field in FIELDS)
        lines.extend(["", FOOTER])
        return "\n".join(lines)

    def decode(self, text: str) -> Dict[str, str]:
        details: Dict[str, str] = {}
        for line in (text or "").splitlines():
            # the label nearest the start of the line owns it
            found = [(line.find(label + ":"), label, field) for label, field in FIELDS]
            found = [f for f in found if f[0] >= 0]
            if not found:
                continue
            _, label, field = min(found)
            if field in details:
                continue
            value = line.split(label + ":", 1)[1].strip()
            if field == "amount":
                value = strip_currency(value)
            details[field] = value
        # a scan proves presentation, not the stored state
        details["status"] = SCANNED_STATUS
        return details

    @staticmethod
    def validate(parsed: Dict[str, str]) -> bool:
        return all(parsed.get(field) for field in REQUIRED)

    @staticmethod
    def is_payload(text) -> bool:
        return bool(text) and all(marker in text for marker in MARKERS)

    def parse(self, text: str) -> Dict[str, str]:
        if not self.is_payload(text):
            raise CodecValidationFailure("Missing booking markers")
        parsed = self.decode(text)
        if not self.validate(parsed):
            raise CodecValidationFailure("Empty booking id or vehicle number")
        return parsed
