"""Tests for the barcode scanner state machine (fake camera) and its OpenCV/ZXing adapters (mocked)."""

import sys
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from utils.barcode_scanner import (
    BarcodeDecoder,
    BarcodeScanner,
    CameraSource,
    CameraStream,
    CameraTrack,
    ConstraintNotSatisfied,
    DEFAULT_DETECT_TIMEOUT,
    OpenCVCameraSource,
    ScannerError,
    ScannerErrorKind,
    ScannerState,
    ZXingDecoder,
)
from utils.product_lookup import ProductInfo

BARCODE_FRAME = 'frame-with-barcode'


class FakeTrack(CameraTrack):
    def __init__(self):
        self.stop_count = 0

    def stop(self):
        self.stop_count += 1


class FakeStream(CameraStream):
    def __init__(self, frames, ready=True):
        super().__init__([FakeTrack(), FakeTrack()])
        self.frames = list(frames)
        self.ready = ready

    def dimensions(self):
        return (640, 480) if self.ready else None

    def read_frame(self):
        return self.frames.pop(0) if self.frames else None


class FakeSource(CameraSource):
    def __init__(self, streams=None, environment_error=None, any_error=None):
        self.streams = list(streams or [])
        self.environment_error = environment_error
        self.any_error = any_error
        self.requests = []

    def open(self, facing=None):
        self.requests.append(facing)
        if facing == 'environment' and self.environment_error is not None:
            raise self.environment_error
        if facing is None and self.any_error is not None:
            raise self.any_error
        return self.streams.pop(0)


class FakeDecoder(BarcodeDecoder):
    def decode(self, frame):
        return ['4901234567894'] if frame == BARCODE_FRAME else []


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def _lookup(barcode):
    return ProductInfo(barcode=barcode, name='Cola', category='Beverages', found=True)


def _scanner(source, lookup=_lookup, ready_timeout=1.0):
    clock = FakeClock()
    return BarcodeScanner(
        source, FakeDecoder(), lookup=lookup, ready_timeout=ready_timeout,
        poll_interval=0.1, clock=clock, sleep=clock.sleep,
    )


def _stop_counts(stream):
    return [track.stop_count for track in stream.tracks]


class TestBarcodeScanner:
    def test_decode_releases_stream_exactly_once(self):
        stream = FakeStream([None, 'blank', BARCODE_FRAME])
        scanner = _scanner(FakeSource([stream]))

        scanner.start()
        assert scanner.state == ScannerState.DETECTING

        product = scanner.detect(timeout=5)

        assert product.name == 'Cola'
        assert scanner.state == ScannerState.DECODED
        assert scanner.barcode == '4901234567894'
        assert _stop_counts(stream) == [1, 1]

        scanner.close()
        assert _stop_counts(stream) == [1, 1]

    def test_close_releases_stream_exactly_once(self):
        stream = FakeStream([])
        scanner = _scanner(FakeSource([stream]))
        scanner.start()

        scanner.close()
        scanner.close()

        assert scanner.state == ScannerState.IDLE
        assert _stop_counts(stream) == [1, 1]

    def test_context_manager_releases_stream(self):
        stream = FakeStream([])
        with _scanner(FakeSource([stream])) as scanner:
            scanner.start()
        assert _stop_counts(stream) == [1, 1]

    def test_detect_timeout_returns_none(self):
        stream = FakeStream(['blank'] * 100)
        scanner = _scanner(FakeSource([stream]))
        scanner.start()

        assert scanner.detect(timeout=1) is None
        assert scanner.state == ScannerState.DETECTING
        assert _stop_counts(stream) == [0, 0]

    def test_detect_gives_up_by_default(self):
        clock = FakeClock()
        scanner = BarcodeScanner(
            FakeSource([FakeStream([])]), FakeDecoder(), lookup=_lookup,
            poll_interval=1.0, clock=clock, sleep=clock.sleep,
        ).start()

        assert scanner.detect() is None
        assert clock.now == DEFAULT_DETECT_TIMEOUT

    def test_streams_do_not_share_tracks(self):
        first, second = CameraStream(), CameraStream()
        first.tracks.append(FakeTrack())
        assert second.tracks == []

    def test_falls_back_to_any_camera(self):
        stream = FakeStream([BARCODE_FRAME])
        source = FakeSource([stream], environment_error=ConstraintNotSatisfied('no rear camera'))
        scanner = _scanner(source)

        scanner.start()

        assert source.requests == ['environment', None]
        assert scanner.state == ScannerState.DETECTING

    def test_permission_denied_fails_immediately(self):
        source = FakeSource(environment_error=ScannerError(ScannerErrorKind.PERMISSION_DENIED))
        scanner = _scanner(source)

        with pytest.raises(ScannerError) as excinfo:
            scanner.start()

        assert excinfo.value.kind == ScannerErrorKind.PERMISSION_DENIED
        assert scanner.state == ScannerState.ERROR
        assert source.requests == ['environment']

    def test_no_camera_at_all(self):
        source = FakeSource(
            environment_error=ConstraintNotSatisfied('no rear camera'),
            any_error=ScannerError(ScannerErrorKind.CAMERA_UNAVAILABLE, 'No camera found'),
        )
        scanner = _scanner(source)

        with pytest.raises(ScannerError) as excinfo:
            scanner.start()

        assert excinfo.value.kind == ScannerErrorKind.CAMERA_UNAVAILABLE
        assert scanner.state == ScannerState.ERROR

    def test_stream_that_never_becomes_ready(self):
        stream = FakeStream([], ready=False)
        scanner = _scanner(FakeSource([stream]), ready_timeout=0.5)

        with pytest.raises(ScannerError) as excinfo:
            scanner.start()

        assert excinfo.value.kind == ScannerErrorKind.CAMERA_UNAVAILABLE
        assert scanner.state == ScannerState.ERROR
        assert _stop_counts(stream) == [1, 1]

    def test_unknown_product_gets_placeholder(self):
        scanner = _scanner(FakeSource([FakeStream([BARCODE_FRAME])]), lookup=lambda barcode: None)
        scanner.start()

        product = scanner.detect(timeout=1)

        assert product.name == 'Item (4901234567894)'
        assert product.category == 'other'

    def test_rescan_opens_a_new_stream(self):
        first, second = FakeStream([BARCODE_FRAME]), FakeStream([])
        scanner = _scanner(FakeSource([first, second]))
        scanner.start()
        scanner.detect(timeout=1)

        scanner.rescan()

        assert scanner.state == ScannerState.DETECTING
        assert scanner.barcode is None
        scanner.close()
        assert _stop_counts(first) == [1, 1]
        assert _stop_counts(second) == [1, 1]

    def test_detect_requires_started_scanner(self):
        scanner = _scanner(FakeSource([]))
        with pytest.raises(RuntimeError):
            scanner.detect(timeout=1)


@pytest.fixture
def mock_cv2():
    """Inject a mock cv2 module into sys.modules."""
    mock = MagicMock()
    with patch.dict(sys.modules, {"cv2": mock}):
        yield mock


class TestOpenCVCameraSource:
    def test_preferred_camera_missing(self, mock_cv2):
        capture = MagicMock()
        capture.isOpened.return_value = False
        mock_cv2.VideoCapture.return_value = capture

        with pytest.raises(ConstraintNotSatisfied):
            OpenCVCameraSource(facing_indices={'environment': [1]}).open('environment')
        capture.release.assert_called_once()

    def test_any_camera_missing(self, mock_cv2):
        capture = MagicMock()
        capture.isOpened.return_value = False
        mock_cv2.VideoCapture.return_value = capture

        with pytest.raises(ScannerError) as excinfo:
            OpenCVCameraSource(any_indices=[0]).open(None)
        assert excinfo.value.kind == ScannerErrorKind.CAMERA_UNAVAILABLE

    def test_open_and_stop(self, mock_cv2):
        capture = MagicMock()
        capture.isOpened.return_value = True
        capture.get.side_effect = lambda prop: 640 if prop == mock_cv2.CAP_PROP_FRAME_WIDTH else 480
        capture.read.return_value = (True, 'frame')
        mock_cv2.VideoCapture.return_value = capture

        stream = OpenCVCameraSource(any_indices=[0]).open(None)

        assert stream.dimensions() == (640, 480)
        assert stream.read_frame() == 'frame'
        for track in stream.tracks:
            track.stop()
        capture.release.assert_called_once()


class TestZXingDecoder:
    def test_decode_returns_texts(self):
        zxing = MagicMock()
        zxing.read_barcodes.return_value = [SimpleNamespace(text='4901234567894'), SimpleNamespace(text='')]

        with patch.dict(sys.modules, {"zxingcpp": zxing}):
            decoder = ZXingDecoder()
            codes = decoder.decode(SimpleNamespace(ndim=2))

        assert codes == ['4901234567894']
        assert zxing.read_barcodes.call_args.kwargs['formats'] is decoder.formats

    def test_no_frame(self):
        with patch.dict(sys.modules, {"zxingcpp": MagicMock()}):
            assert ZXingDecoder().decode(None) == []
