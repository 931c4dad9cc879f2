#
# camera.py: position source collaborators
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements camera and blob tracker interfaces, OpenCV camera, and camera registry
#

"""
Camera Module Overview
======================

This module defines the collaborators which feed pointer positions into a `TrialController`:

    - `CameraInterface`: frame source. Reports its resolution as `(height, width)`, starts and
      stops acquisition through the `play` property, and pushes every acquired frame to `Frame`
      event subscribers.
    - `TrackerInterface`: blob tracker. `track(frame)` returns pointer positions in pixel space,
      preserving pointer identity between calls as long as the pointer count does not change.
      Setting `roi` notifies `Roi` event subscribers.
    - `VideoCamera`: `CameraInterface` implementation on top of `cv2.VideoCapture`.
    - `CameraRegistry`: reference-counted camera factory, which prevents opening the same device
      twice. Create one per process and `close()` it explicitly on shutdown.

Image processing that turns a frame into pointer coordinates is supplied by the application as a
`TrackerInterface` subclass.
"""

import numpy as np, cv2
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union
from . import logger_get
from . import environment as env
from .event_support import EventSource
from .exceptions import DeviceUnavailable
from .scheduler import RepeatingTimer


class CameraInterface(EventSource, ABC):
    """Frame source interface.

    Events:
        Frame(frame): new frame acquired.
        Resolution(resolution): frame resolution changed.
    """

    event_names = ("Frame", "Resolution")

    @property
    @abstractmethod
    def resolution(self) -> Tuple[int, int]:
        """Frame resolution as `(height, width)`."""

    @property
    @abstractmethod
    def play(self) -> bool:
        """Acquisition state."""

    @play.setter
    @abstractmethod
    def play(self, value: bool):
        """Start or stop frame acquisition."""

    def release(self):
        """Release the underlying device."""


class TrackerInterface(EventSource, ABC):
    """Blob tracker interface.

    Events:
        Roi(roi): region of interest changed.
    """

    event_names = ("Roi",)

    def __init__(self):
        super().__init__()
        self._roi: Optional[Any] = None

    @abstractmethod
    def track(self, frame: np.ndarray) -> np.ndarray:
        """Locate pointers in a frame.

        Args:
            frame (np.ndarray): Camera frame.

        Returns:
            np.ndarray: Array of shape `(N, 2)` with `(x, y)` pixel coordinates of each pointer.
        """

    @property
    def roi(self) -> Optional[Any]:
        """Region of interest which delimits the tracking area."""
        return self._roi

    @roi.setter
    def roi(self, region: Optional[Any]):
        self._roi = region
        self._invoke("Roi", region)


class VideoCamera(CameraInterface):
    """Camera backed by `cv2.VideoCapture`.

    Frames are grabbed on a background thread every `frame_interval` seconds while `play` is True
    and delivered to `Frame` event subscribers on that thread.
    """

    def __init__(
        self,
        video_source: Union[int, str, Path, None] = None,
        *,
        frame_interval: float = 1.0 / 30,
        mirror: Tuple[bool, bool] = (False, False),
    ):
        """
        Constructor.

        Args:
            video_source (Union[int, str, Path, None], optional): 0-based camera index, video file
                path or stream URL. If None, `VT_CAMERA_ID` environment variable is used,
                defaulting to camera 0.
            frame_interval (float, optional): Frame acquisition interval in seconds.
            mirror (Tuple[bool, bool], optional): Mirror horizontally and vertically.

        Raises:
            DeviceUnavailable: If the video source cannot be opened.
        """
        super().__init__()
        if video_source is None:
            video_source = env.get_camera_id(0)
        if isinstance(video_source, Path):
            video_source = str(video_source)

        self.source = video_source
        self.mirror = mirror
        self._stream = cv2.VideoCapture(video_source)  # type: ignore[arg-type]
        if not self._stream.isOpened():
            raise DeviceUnavailable(f"Error opening '{video_source}' video stream")
        self._timer = RepeatingTimer(self._grab, frame_interval, name=f"camera-{video_source}")
        self.frame: Optional[np.ndarray] = None
        logger_get().info(
            f"Camera '{video_source}' opened, resolution {self.resolution[1]}x{self.resolution[0]}"
        )

    @property
    def resolution(self) -> Tuple[int, int]:
        return (
            int(self._stream.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            int(self._stream.get(cv2.CAP_PROP_FRAME_WIDTH)),
        )

    @resolution.setter
    def resolution(self, hw: Tuple[int, int]):
        self._stream.set(cv2.CAP_PROP_FRAME_HEIGHT, hw[0])
        self._stream.set(cv2.CAP_PROP_FRAME_WIDTH, hw[1])
        self._invoke("Resolution", self.resolution)

    @property
    def exposure(self) -> float:
        return self._stream.get(cv2.CAP_PROP_EXPOSURE)

    @exposure.setter
    def exposure(self, value: float):
        self._stream.set(cv2.CAP_PROP_EXPOSURE, value)

    @property
    def play(self) -> bool:
        return self._timer.running

    @play.setter
    def play(self, value: bool):
        if value:
            self._timer.start()
        else:
            self._timer.stop()

    def _grab(self):
        ret, frame = self._stream.read()
        if not ret:
            raise DeviceUnavailable(f"Fail to capture frame from '{self.source}'")
        flip_x, flip_y = self.mirror
        if flip_x and flip_y:
            frame = cv2.flip(frame, -1)
        elif flip_x:
            frame = cv2.flip(frame, 1)
        elif flip_y:
            frame = cv2.flip(frame, 0)
        self.frame = frame
        self._invoke("Frame", frame)

    def release(self):
        self._timer.stop()
        self._stream.release()
        logger_get().info(f"Camera '{self.source}' released")


class CameraRegistry:
    """Reference-counted camera factory.

    `acquire()` returns the already opened camera for a known source and bumps its reference
    count; `release()` closes the camera when the last reference is released.
    """

    def __init__(self, factory: Optional[Callable[..., CameraInterface]] = None):
        """
        Constructor.

        Args:
            factory (Callable, optional): Function creating a camera from a source id. Default is
                `VideoCamera`.
        """
        self._factory = VideoCamera if factory is None else factory
        self._cameras: Dict[Any, CameraInterface] = {}
        self._refs: Dict[Any, int] = {}

    def acquire(self, source: Any = 0, **kwargs) -> CameraInterface:
        """Open a camera or return the already opened one for this source.

        Raises:
            DeviceUnavailable: If the camera cannot be opened.
        """
        key = str(source) if isinstance(source, Path) else source
        camera = self._cameras.get(key)
        if camera is None:
            try:
                camera = self._factory(key, **kwargs)
            except DeviceUnavailable:
                raise
            except Exception as e:
                raise DeviceUnavailable(f"Error opening camera '{key}': {e}") from e
            self._cameras[key] = camera
            self._refs[key] = 0
        self._refs[key] += 1
        return camera

    def release(self, camera: CameraInterface):
        """Drop one reference to a camera; the last reference releases the device."""
        for key, cam in self._cameras.items():
            if cam is camera:
                self._refs[key] -= 1
                if self._refs[key] <= 0:
                    del self._cameras[key]
                    del self._refs[key]
                    camera.release()
                return

    def refcount(self, source: Any) -> int:
        return self._refs.get(source, 0)

    def close(self):
        """Release all cameras regardless of reference counts."""
        for camera in self._cameras.values():
            camera.release()
        self._cameras.clear()
        self._refs.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
