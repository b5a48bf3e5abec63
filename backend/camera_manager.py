import threading
from enum import Enum
from typing import Callable, Optional

import cv2

import config
from errors import CaptureDeviceError
from logger_helper import get_logger

logger = get_logger("camera")


class CaptureMode(str, Enum):
    LIVE = "live"
    UPLOAD = "upload"


class CaptureSession:
    """
    Owns the capture device while in live mode.

    The device is held only in LIVE mode and released on every way out:
    switching to upload, close(), or a failed start. A failed start falls
    back to UPLOAD and keeps the error in ``last_error``.
    """

    def __init__(
        self,
        device_index: int = None,
        capture_factory: Callable = cv2.VideoCapture,
        jpeg_quality: int = None
    ):
        self.device_index = config.CAMERA_INDEX if device_index is None else device_index
        self.capture_factory = capture_factory
        self.jpeg_quality = config.SNAPSHOT_JPEG_QUALITY if jpeg_quality is None else jpeg_quality
        self.mode = CaptureMode.UPLOAD
        self.last_error: Optional[CaptureDeviceError] = None
        self._capture = None
        self.lock = threading.Lock()

    @property
    def active_tracks(self) -> int:
        return 1 if self._capture is not None else 0

    def set_mode(self, mode: CaptureMode) -> CaptureMode:
        """Switch mode; returns the mode actually in effect."""
        mode = CaptureMode(mode)
        with self.lock:
            if mode == CaptureMode.LIVE:
                if self._capture is None:
                    self._start()
            else:
                self._release()
                self.mode = CaptureMode.UPLOAD
                self.last_error = None
            return self.mode

    def _start(self):
        self.last_error = None
        cap = None
        try:
            cap = self.capture_factory(self.device_index)
            if not cap.isOpened():
                raise CaptureDeviceError(f"Failed to open camera {self.device_index}")

            # Read test frame
            ret, frame = cap.read()
            if not ret or frame is None:
                raise CaptureDeviceError(f"Failed to read test frame from camera {self.device_index}")
        except (CaptureDeviceError, cv2.error) as e:
            if cap is not None:
                cap.release()
            self.last_error = e if isinstance(e, CaptureDeviceError) else CaptureDeviceError(str(e))
            self.mode = CaptureMode.UPLOAD
            logger.warning("Camera unavailable, falling back to upload: %s", self.last_error)
            return

        self._capture = cap
        self.mode = CaptureMode.LIVE
        logger.info("Camera %s opened", self.device_index)

    def _release(self):
        if self._capture is None:
            return
        try:
            self._capture.release()
        finally:
            self._capture = None
            logger.info("Camera %s released", self.device_index)

    def snapshot(self) -> bytes:
        """Current frame encoded as JPEG."""
        with self.lock:
            if self._capture is None:
                raise CaptureDeviceError("Camera is not live")
            ret, frame = self._capture.read()

        if not ret or frame is None:
            raise CaptureDeviceError(f"Failed to read frame from camera {self.device_index}")

        success, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality])
        if not success:
            raise CaptureDeviceError("Failed to encode frame")
        return buffer.tobytes()

    def close(self):
        with self.lock:
            self._release()
            self.mode = CaptureMode.UPLOAD

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
