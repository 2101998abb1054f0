"""Frame acquisition from an image file or a camera."""

from __future__ import annotations

import re
from enum import Enum, auto
from typing import Any, Callable, Protocol

import numpy as np
from PIL import Image


class SourceType(Enum):
    """Where frames come from."""

    IMAGE_FILE = auto()
    CAMERA = auto()


class AcquisitionError(RuntimeError):
    """Raised when a source cannot be opened or a frame cannot be read."""


class Camera(Protocol):
    """What a camera backend must offer."""

    def read(self) -> np.ndarray | None: ...

    def release(self) -> None: ...


_LEADING_INT = re.compile(r"\s*[+-]?\d+")


def _parse_camera_id(source: str) -> int:
    match = _LEADING_INT.match(source)
    if match is None:
        raise AcquisitionError(f"Error converting camera ID: {source!r}")
    return int(match.group())


def _load_bgr(path: str) -> np.ndarray:
    try:
        with Image.open(path) as img:
            rgb = np.asarray(img.convert("RGB"), dtype=np.uint8)
    except (OSError, ValueError) as exc:
        raise AcquisitionError(f"Could not load image from {path}") from exc
    return np.ascontiguousarray(rgb[..., ::-1])


class ImageAcquisition:
    """Supplies BGR frames, either copies of a still image or camera reads.

    ``camera_opener`` maps a camera index to an object with ``read()`` and
    ``release()``; without one, camera sources cannot be opened.
    """

    def __init__(self, camera_opener: Callable[[int], Camera | None] | None = None) -> None:
        self._camera_opener = camera_opener
        self._source_type: SourceType | None = None
        self._image: np.ndarray | None = None
        self._image_path: str | None = None
        self._camera: Camera | None = None
        self._initialized = False

    @property
    def image_path(self) -> str | None:
        """Path of the loaded still image, if any."""
        return self._image_path

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self, source_type: SourceType, source: str = "") -> None:
        """Open the source; raises AcquisitionError on failure."""
        self.release()
        self._source_type = source_type
        if source_type is SourceType.IMAGE_FILE:
            if not source:
                raise AcquisitionError("Image path is empty")
            self._image = _load_bgr(source)
            self._image_path = source
        elif source_type is SourceType.CAMERA:
            self._camera = self._open_camera(_parse_camera_id(source) if source else 0)
        else:
            raise AcquisitionError(f"unsupported source type: {source_type!r}")
        self._initialized = True

    def _open_camera(self, camera_id: int) -> Camera:
        if self._camera_opener is None:
            raise AcquisitionError(f"Could not open camera {camera_id}: no camera backend")
        try:
            camera = self._camera_opener(camera_id)
        except Exception as exc:
            raise AcquisitionError(f"Could not open camera {camera_id}") from exc
        if camera is None:
            raise AcquisitionError(f"Could not open camera {camera_id}")
        test_frame = camera.read()
        if test_frame is None or test_frame.size == 0:
            camera.release()
            raise AcquisitionError("Camera opened but cannot read frames")
        return camera

    def get_frame(self) -> np.ndarray:
        """Return the next frame; raises AcquisitionError when none is available."""
        if not self._initialized:
            raise AcquisitionError("Acquisition not initialized")
        if self._source_type is SourceType.IMAGE_FILE:
            assert self._image is not None
            return self._image.copy()
        if self._camera is None:
            raise AcquisitionError("Camera not opened")
        frame = self._camera.read()
        if frame is None or frame.size == 0:
            raise AcquisitionError("Could not read frame from camera")
        return frame

    def release(self) -> None:
        """Close the camera and drop the loaded image."""
        if self._camera is not None:
            self._camera.release()
            self._camera = None
        self._image = None
        self._initialized = False

    def __enter__(self) -> ImageAcquisition:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()