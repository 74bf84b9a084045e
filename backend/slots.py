import heapq
import re
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

from errors import SlotNotAvailable, UnknownSlot

_DIGITS = re.compile(r"(\d+)")


def slot_key(slot_id: str):
    """Natural ordering key: "A6" sorts before "A10"."""
    parts = _DIGITS.split(slot_id)
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts if p)


@dataclass
class Slot:
    slot_id: str
    available: bool = True
    occupant: str = ""


class SlotPool:
    """Fixed set of slots; the nearest free slot is always offered first.

    Availability lives in ``_free``; the heap may hold stale entries for
    slots allocated since they were pushed, which ``peek`` discards.
    """

    def __init__(self, slot_ids: Iterable[str], occupied: Optional[Dict[str, str]] = None):
        occupied = occupied or {}
        self._slots: Dict[str, Slot] = {}
        self._free = set()
        self._heap = []
        self._lock = threading.Lock()

        for slot_id in slot_ids:
            if slot_id in self._slots:
                raise ValueError(f"Duplicate slot id {slot_id}")
            occupant = occupied.get(slot_id, "")
            self._slots[slot_id] = Slot(slot_id, available=not occupant, occupant=occupant)
            if not occupant:
                self._free.add(slot_id)
                self._heap.append((slot_key(slot_id), slot_id))
        heapq.heapify(self._heap)

    @classmethod
    def from_layout(cls, prefix: str = "A", count: int = 20, occupied_count: int = 0):
        slot_ids = [f"{prefix}{i}" for i in range(1, count + 1)]
        occupied = {
            f"{prefix}{i}": f"TN01XX{1000 + i}"
            for i in range(1, min(occupied_count, count) + 1)
        }
        return cls(slot_ids, occupied)

    def __len__(self):
        return len(self._slots)

    def __contains__(self, slot_id):
        return slot_id in self._slots

    def _prune(self):
        while self._heap and self._heap[0][1] not in self._free:
            heapq.heappop(self._heap)

    def peek(self) -> Optional[str]:
        with self._lock:
            self._prune()
            return self._heap[0][1] if self._heap else None

    def allocate(self, slot_id: str, occupant: str = "RESERVED") -> None:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                raise UnknownSlot(slot_id)
            if slot_id not in self._free:
                raise SlotNotAvailable(slot_id)
            self._free.discard(slot_id)
            slot.available = False
            slot.occupant = occupant or "RESERVED"
            self._prune()
            # keep stale entries from outgrowing the live ones
            if len(self._heap) > 2 * len(self._free) + 16:
                self._heap = [(slot_key(s), s) for s in self._free]
                heapq.heapify(self._heap)

    def release(self, slot_id: str) -> None:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                raise UnknownSlot(slot_id)
            if slot_id in self._free:
                return
            slot.available = True
            slot.occupant = ""
            self._free.add(slot_id)
            heapq.heappush(self._heap, (slot_key(slot_id), slot_id))

    def snapshot(self) -> List[str]:
        with self._lock:
            heap = list(self._heap)
            free = set(self._free)
        result = []
        while heap:
            _, slot_id = heapq.heappop(heap)
            if slot_id in free:
                free.discard(slot_id)
                result.append(slot_id)
        return result

    def get(self, slot_id: str) -> Slot:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                raise UnknownSlot(slot_id)
            return replace(slot)

    def slots(self) -> List[Slot]:
        with self._lock:
            return [replace(s) for s in sorted(self._slots.values(), key=lambda s: slot_key(s.slot_id))]

    def available_count(self) -> int:
        with self._lock:
            return len(self._free)
