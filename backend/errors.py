class ParkingError(Exception):
    """Base class for every error raised by the parking core."""


class ValidationError(ParkingError):
    pass


class InvalidDuration(ValidationError):
    pass


# ================== SLOTS ==================
class SlotError(ParkingError):
    def __init__(self, slot_id: str, message: str = ""):
        self.slot_id = slot_id
        super().__init__(message or slot_id)


class SlotNotAvailable(SlotError):
    def __init__(self, slot_id: str):
        super().__init__(slot_id, f"Slot {slot_id} is not available")


class UnknownSlot(SlotError):
    def __init__(self, slot_id: str):
        super().__init__(slot_id, f"Slot {slot_id} does not exist")


class NoSlotsAvailable(ParkingError):
    def __init__(self):
        super().__init__("No slots available")


# ================== STORAGE / CODEC ==================
class StoreError(ParkingError):
    def __init__(self, tier, message: str):
        self.tier = tier
        super().__init__(message)


class CodecValidationFailure(ParkingError):
    pass


# ================== BOOKINGS ==================
class BookingNotFound(ParkingError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class InvalidTransition(ParkingError):
    def __init__(self, booking_id: str, current: str, target: str):
        self.booking_id = booking_id
        self.current = current
        self.target = target
        super().__init__(f"Booking {booking_id} cannot move from {current} to {target}")


class _OperationError(ParkingError):
    def __init__(self, cause: ParkingError):
        self.cause = cause
        super().__init__(str(cause))


class ReserveError(_OperationError):
    pass


class CheckoutError(_OperationError):
    pass
