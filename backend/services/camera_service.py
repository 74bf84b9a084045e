import logging

import cv2

logger = logging.getLogger(__name__)


class CameraSource:
    """Frame source over an OpenCV capture device."""

    def __init__(self, index: int = 0):
        self.index = index
        self._cap = cv2.VideoCapture(index)

    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def get_frame(self):
        if not self.is_open():
            return None
        ok, frame = self._cap.read()
        return frame if ok else None

    def close(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None


def open_camera(index: int = 0):
    camera = CameraSource(index)
    if not camera.is_open():
        logger.warning("No camera available at index %s", index)
        camera.close()
        return None
    return camera
