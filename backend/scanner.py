"""Background polling of a frame source for a booking QR code.

A session moves Idle -> Scanning -> Found | Cancelled, or straight to
SourceUnavailable when no frame source can be opened. The worker thread
reports exactly one terminal ``ScanEvent`` through a queue; callers never
share state with it beyond that.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Protocol

from errors import CodecValidationFailure
from payload import PayloadCodec

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    def is_open(self) -> bool: ...

    def get_frame(self): ...

    def close(self) -> None: ...


class ScanState(str, Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    FOUND = "Found"
    CANCELLED = "Cancelled"
    SOURCE_UNAVAILABLE = "SourceUnavailable"


TERMINAL = {ScanState.FOUND, ScanState.CANCELLED, ScanState.SOURCE_UNAVAILABLE}


@dataclass
class ScanEvent:
    state: ScanState
    fields: Dict[str, str] = field(default_factory=dict)


# ================== SOURCE OWNERSHIP ==================
_leases = set()
_leases_lock = threading.Lock()


def _acquire(key) -> bool:
    with _leases_lock:
        if key in _leases:
            return False
        _leases.add(key)
        return True


def _release(key):
    with _leases_lock:
        _leases.discard(key)


# ================== SESSION ==================
class ScanSession:
    def __init__(
        self,
        open_source: Callable[[], Optional[FrameSource]],
        reader: Callable[[object], Optional[str]],
        codec: Optional[PayloadCodec] = None,
        interval: float = 0.1,
        source_key="camera:0",
    ):
        self._open_source = open_source
        self._reader = reader
        self._codec = codec or PayloadCodec()
        self._interval = interval
        self._source_key = source_key

        self._source: Optional[FrameSource] = None
        self._leased = False
        self._state = ScanState.IDLE
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._events: "queue.Queue[ScanEvent]" = queue.Queue(maxsize=1)
        self._worker: Optional[threading.Thread] = None

    @property
    def state(self) -> ScanState:
        return self._state

    def _finish(self, event: ScanEvent) -> bool:
        """Move to a terminal state once; later attempts are ignored."""
        with self._state_lock:
            if self._state in TERMINAL:
                return False
            self._release_source()
            self._state = event.state
        self._events.put(event)
        return True

    def _release_source(self):
        if self._source is not None:
            try:
                self._source.close()
            finally:
                self._source = None
        if self._leased:
            _release(self._source_key)
            self._leased = False

    def start(self) -> ScanState:
        if self._state is not ScanState.IDLE:
            raise RuntimeError(f"Scan session already {self._state.value}")

        self._leased = _acquire(self._source_key)
        if not self._leased:
            logger.warning("Frame source %s is owned by another scan session", self._source_key)
            self._finish(ScanEvent(ScanState.SOURCE_UNAVAILABLE))
            return self._state

        try:
            self._source = self._open_source()
        except Exception as e:
            logger.warning("Opening frame source %s failed: %s", self._source_key, e)
            self._source = None
        if self._source is None or not self._source.is_open():
            logger.warning("Frame source %s unavailable, use a static image instead", self._source_key)
            self._finish(ScanEvent(ScanState.SOURCE_UNAVAILABLE))
            return self._state

        self._state = ScanState.SCANNING
        self._worker = threading.Thread(target=self._run, name="QR-Scanner", daemon=True)
        self._worker.start()
        return self._state

    def _poll_once(self) -> Optional[Dict[str, str]]:
        source = self._source
        if source is None or not source.is_open():
            return None
        text = self._reader(source.get_frame())
        if not text:
            return None
        return self._codec.parse(text)

    def _run(self):
        while not self._stop.is_set():
            try:
                fields = self._poll_once()
            except CodecValidationFailure:
                fields = None
            except Exception as e:
                # unreadable frames are expected while the code is being framed
                logger.debug("Discarding frame: %s", e)
                fields = None
            if fields is not None:
                self._finish(ScanEvent(ScanState.FOUND, fields))
                return
            self._stop.wait(self._interval)

    def cancel(self) -> ScanState:
        self._stop.set()
        if self._worker is not None and self._worker is not threading.current_thread():
            self._worker.join()
        self._finish(ScanEvent(ScanState.CANCELLED))
        return self._state

    def wait(self, timeout: Optional[float] = None) -> Optional[ScanEvent]:
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None


def scan_image(image, reader: Callable[[object], Optional[str]], codec: Optional[PayloadCodec] = None):
    """Decode a single still image; None when it holds no booking payload."""
    codec = codec or PayloadCodec()
    text = reader(image)
    try:
        return codec.parse(text)
    except CodecValidationFailure:
        return None
