"""
Camera barcode scanning.

    IDLE -> REQUESTING_PERMISSION -> STREAMING -> DETECTING -> DECODED
                                                            -> IDLE (close)
    any step may end in ERROR

BarcodeScanner only talks to a CameraSource and a BarcodeDecoder, so it runs
the same against OpenCV + zxing-cpp and against test fakes. Whatever happens,
every track of an opened stream is stopped exactly once.
"""

import enum
import logging
import time
from typing import Optional

from utils.product_lookup import ProductInfo, lookup_product, placeholder_product

logger = logging.getLogger(__name__)

PREFERRED_FACING = 'environment'
DEFAULT_DETECT_TIMEOUT = 30.0


class ScannerState(str, enum.Enum):
    IDLE = 'idle'
    REQUESTING_PERMISSION = 'requesting_permission'
    STREAMING = 'streaming'
    DETECTING = 'detecting'
    DECODED = 'decoded'
    ERROR = 'error'


class ScannerErrorKind(str, enum.Enum):
    CAMERA_UNAVAILABLE = 'camera_unavailable'
    PERMISSION_DENIED = 'permission_denied'


class ScannerError(Exception):
    def __init__(self, kind: ScannerErrorKind, message: str = ''):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value


class ConstraintNotSatisfied(Exception):
    """The camera source has no camera matching the requested facing."""


# ============================================================
# CAMERA / DECODER INTERFACES
# ============================================================

class CameraTrack:
    def stop(self) -> None:
        raise NotImplementedError


class CameraStream:
    """An opened camera stream made of one or more tracks."""

    def __init__(self, tracks=None):
        self.tracks = list(tracks or [])

    def dimensions(self):
        """(width, height) once the stream is producing frames, else None."""
        raise NotImplementedError

    def read_frame(self):
        raise NotImplementedError


class CameraSource:
    def open(self, facing: Optional[str] = None) -> CameraStream:
        """
        Raises:
            ConstraintNotSatisfied: no camera with the requested facing.
            ScannerError: permission denied or no camera at all.
        """
        raise NotImplementedError


class BarcodeDecoder:
    def decode(self, frame) -> list:
        """Barcode texts found in frame, best first."""
        raise NotImplementedError


# ============================================================
# SCANNER
# ============================================================

class BarcodeScanner:

    def __init__(self, camera_source: CameraSource, decoder: BarcodeDecoder,
                 lookup=lookup_product, ready_timeout: float = 5.0,
                 poll_interval: float = 0.05, clock=time.monotonic, sleep=time.sleep):
        self.camera_source = camera_source
        self.decoder = decoder
        self.lookup = lookup
        self.ready_timeout = ready_timeout
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

        self.state = ScannerState.IDLE
        self.error: Optional[ScannerError] = None
        self.barcode: Optional[str] = None
        self.product: Optional[ProductInfo] = None
        self._stream: Optional[CameraStream] = None

    # --------------------------------------------------------
    # lifecycle
    # --------------------------------------------------------

    def start(self) -> 'BarcodeScanner':
        """Open the camera and wait for it to produce frames."""
        self._release()
        self.error = None
        self.barcode = None
        self.product = None
        self.state = ScannerState.REQUESTING_PERMISSION

        try:
            self._stream = self._open_stream()
            self.state = ScannerState.STREAMING
            self._wait_until_ready()
        except ScannerError as e:
            self._fail(e)
            raise

        self.state = ScannerState.DETECTING
        return self

    def _open_stream(self) -> CameraStream:
        try:
            return self.camera_source.open(PREFERRED_FACING)
        except ConstraintNotSatisfied:
            logger.info("No %s-facing camera, falling back to any camera", PREFERRED_FACING)
        except ScannerError as e:
            if e.kind == ScannerErrorKind.PERMISSION_DENIED:
                raise
            logger.info("Preferred camera unavailable (%s), falling back to any camera", e.message)

        try:
            return self.camera_source.open(None)
        except ConstraintNotSatisfied as e:
            raise ScannerError(ScannerErrorKind.CAMERA_UNAVAILABLE, str(e) or 'No camera found') from e

    def _wait_until_ready(self) -> None:
        deadline = self._clock() + self.ready_timeout
        while self._stream.dimensions() is None:
            if self._clock() >= deadline:
                raise ScannerError(
                    ScannerErrorKind.CAMERA_UNAVAILABLE,
                    f'Camera did not start within {self.ready_timeout:g}s'
                )
            self._sleep(self.poll_interval)

    def detect(self, timeout: float = DEFAULT_DETECT_TIMEOUT) -> Optional[ProductInfo]:
        """
        Read frames until a barcode decodes or timeout seconds pass.
        Returns the looked-up product, or None on timeout.
        """
        if self.state != ScannerState.DETECTING:
            raise RuntimeError(f"Cannot detect while {self.state.value}")

        deadline = self._clock() + timeout
        while self._clock() < deadline:
            frame = self._stream.read_frame()
            codes = self.decoder.decode(frame) if frame is not None else []
            if codes:
                return self._on_decoded(codes[0])
            self._sleep(self.poll_interval)
        return None

    def _on_decoded(self, barcode: str) -> ProductInfo:
        self._release()
        self.state = ScannerState.DECODED
        self.barcode = barcode
        logger.info("Decoded barcode %s", barcode)

        self.product = self.lookup(barcode) or placeholder_product(barcode)
        return self.product

    def rescan(self) -> 'BarcodeScanner':
        return self.start()

    def close(self) -> None:
        self._release()
        if self.state != ScannerState.ERROR:
            self.state = ScannerState.IDLE

    def _fail(self, error: ScannerError) -> None:
        self._release()
        self.error = error
        self.state = ScannerState.ERROR
        logger.warning("Scanner error: %s", error.message)

    def _release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        for track in stream.tracks:
            track.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


# ============================================================
# OPENCV + ZXING ADAPTERS
# ============================================================

def _import_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python-headless is required: pip install opencv-python-headless"
        ) from None
    return cv2


class _VideoCaptureTrack(CameraTrack):
    def __init__(self, capture):
        self.capture = capture

    def stop(self) -> None:
        self.capture.release()


class OpenCVCameraStream(CameraStream):
    def __init__(self, capture):
        super().__init__([_VideoCaptureTrack(capture)])
        self._cv2 = _import_cv2()
        self.capture = capture

    def dimensions(self):
        width = int(self.capture.get(self._cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(self.capture.get(self._cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        if width <= 0 or height <= 0:
            return None
        return width, height

    def read_frame(self):
        ok, frame = self.capture.read()
        return frame if ok else None


class OpenCVCameraSource(CameraSource):
    """
    USB / built-in cameras through cv2.VideoCapture.
    A facing preference maps to an ordered list of device indices.
    """

    def __init__(self, facing_indices: Optional[dict] = None, any_indices=(0, 1, 2)):
        self.facing_indices = facing_indices if facing_indices is not None else {PREFERRED_FACING: [1]}
        self.any_indices = list(any_indices)

    def open(self, facing: Optional[str] = None) -> CameraStream:
        cv2 = _import_cv2()

        indices = self.facing_indices.get(facing, []) if facing else self.any_indices
        for index in indices:
            capture = cv2.VideoCapture(index)
            if capture.isOpened():
                logger.info("Opened camera %d (facing=%s)", index, facing)
                return OpenCVCameraStream(capture)
            capture.release()

        if facing:
            raise ConstraintNotSatisfied(f"No {facing}-facing camera")
        raise ScannerError(ScannerErrorKind.CAMERA_UNAVAILABLE, 'No camera found')


class ZXingDecoder(BarcodeDecoder):
    """Linear (1D) barcodes only: EAN, UPC, Code 128/39/93, Codabar, ITF."""

    def __init__(self):
        try:
            import zxingcpp
        except ImportError:
            raise ImportError("zxing-cpp is required: pip install zxing-cpp") from None
        self._zxing = zxingcpp
        fmt = zxingcpp.BarcodeFormat
        self.formats = (
            fmt.EAN13 | fmt.EAN8 | fmt.UPCA | fmt.UPCE | fmt.Code128
            | fmt.Code39 | fmt.Code93 | fmt.Codabar | fmt.ITF
        )

    def decode(self, frame) -> list:
        if frame is None:
            return []
        if getattr(frame, 'ndim', 2) == 3:
            cv2 = _import_cv2()
            frame = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        results = self._zxing.read_barcodes(frame, formats=self.formats)
        return [r.text for r in results if r and r.text]
