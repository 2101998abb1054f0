import numpy as np
import pytest
from PIL import Image

from lanesight.acquisition import AcquisitionError, ImageAcquisition, SourceType


class FakeCamera:
    def __init__(self, frames):
        self.frames = list(frames)
        self.released = False

    def read(self):
        return self.frames.pop(0) if self.frames else None

    def release(self):
        self.released = True


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "road.png"
    pixels = np.zeros((4, 6, 3), dtype=np.uint8)
    pixels[1, 2] = (10, 20, 30)
    Image.fromarray(pixels, "RGB").save(path)
    return str(path)


def test_image_frames_are_bgr_copies(image_file):
    with ImageAcquisition() as acq:
        acq.init(SourceType.IMAGE_FILE, image_file)
        frame = acq.get_frame()
        assert frame.shape == (4, 6, 3)
        assert frame.dtype == np.uint8
        assert frame[1, 2].tolist() == [30, 20, 10]
        frame[:] = 0
        assert acq.get_frame()[1, 2].tolist() == [30, 20, 10]
        assert acq.image_path == image_file


def test_empty_image_path_raises():
    with pytest.raises(AcquisitionError):
        ImageAcquisition().init(SourceType.IMAGE_FILE, "")


def test_missing_image_raises(tmp_path):
    with pytest.raises(AcquisitionError):
        ImageAcquisition().init(SourceType.IMAGE_FILE, str(tmp_path / "missing.png"))


def test_get_frame_before_init_raises():
    with pytest.raises(AcquisitionError):
        ImageAcquisition().get_frame()


def test_release_uninitializes(image_file):
    acq = ImageAcquisition()
    acq.init(SourceType.IMAGE_FILE, image_file)
    acq.release()
    assert acq.initialized is False
    with pytest.raises(AcquisitionError):
        acq.get_frame()


def test_camera_frames_and_id_parsing():
    first = np.full((2, 2, 3), 1, dtype=np.uint8)
    second = np.full((2, 2, 3), 2, dtype=np.uint8)
    opened = []
    camera = FakeCamera([first, second])

    def opener(camera_id):
        opened.append(camera_id)
        return camera

    acq = ImageAcquisition(camera_opener=opener)
    acq.init(SourceType.CAMERA, "3")
    assert opened == [3]
    assert np.array_equal(acq.get_frame(), second)
    with pytest.raises(AcquisitionError):
        acq.get_frame()
    acq.release()
    assert camera.released is True


def test_camera_default_id_is_zero():
    opened = []
    probe = np.ones((1, 1, 3), dtype=np.uint8)
    frame = np.full((1, 1, 3), 7, dtype=np.uint8)

    def opener(camera_id):
        opened.append(camera_id)
        return FakeCamera([probe, frame])

    acq = ImageAcquisition(camera_opener=opener)
    acq.init(SourceType.CAMERA)
    assert opened == [0]
    assert acq.initialized is True
    assert acq.get_frame().tolist() == [[[7, 7, 7]]]


def test_bad_camera_id_raises():
    acq = ImageAcquisition(camera_opener=lambda i: FakeCamera([]))
    with pytest.raises(AcquisitionError):
        acq.init(SourceType.CAMERA, "front")


def test_camera_without_frames_is_released():
    camera = FakeCamera([])
    acq = ImageAcquisition(camera_opener=lambda i: camera)
    with pytest.raises(AcquisitionError):
        acq.init(SourceType.CAMERA, "0")
    assert camera.released is True
    assert acq.initialized is False


def test_camera_without_backend_raises():
    with pytest.raises(AcquisitionError):
        ImageAcquisition().init(SourceType.CAMERA, "0")