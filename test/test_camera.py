#
# test_camera.py: unit tests for camera support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests to test camera registry, event sources and OpenCV camera
#

import pytest
import conftest


def test_camera_registry():
    """
    Test reference counting of shared cameras
    """

    import virtual_tracker

    created: list = []

    def factory(source, **kwargs):
        camera = conftest.FakeCamera()
        created.append((source, kwargs, camera))
        return camera

    registry = virtual_tracker.CameraRegistry(factory)
    c1 = registry.acquire(0, frame_interval=0.1)
    c2 = registry.acquire(0)
    c3 = registry.acquire("video.mp4")
    assert c1 is c2 and c1 is not c3
    assert [(s, k) for s, k, _ in created] == [(0, {"frame_interval": 0.1}), ("video.mp4", {})]
    assert registry.refcount(0) == 2

    registry.release(c1)
    assert registry.refcount(0) == 1 and not c1.released
    registry.release(c2)
    assert registry.refcount(0) == 0 and c1.released

    # reopened after full release
    assert registry.acquire(0) is not c1

    registry.release(conftest.FakeCamera())  # unknown camera is ignored
    registry.close()
    assert c3.released
    assert registry.refcount("video.mp4") == 0


def test_camera_registry_failures():
    """
    Test that factory failures are reported as unavailable device
    """

    import virtual_tracker

    def factory(source, **kwargs):
        raise RuntimeError("no driver")

    with virtual_tracker.CameraRegistry(factory) as registry:
        with pytest.raises(virtual_tracker.DeviceUnavailable):
            registry.acquire(1)
        assert registry.refcount(1) == 0

    # failed controller construction returns the camera to registry
    camera = conftest.FakeCamera()
    registry = virtual_tracker.CameraRegistry(lambda source, **kwargs: camera)
    with pytest.raises(ValueError):
        virtual_tracker.TrialController.open(
            registry, conftest.FakeTracker(), 0, zone_logging="unknown"
        )
    assert registry.refcount(0) == 0
    assert camera.released


def test_video_camera_unavailable(temp_dir):
    """
    Test that a missing video source is reported as unavailable device
    """

    import virtual_tracker

    with pytest.raises(virtual_tracker.DeviceUnavailable):
        virtual_tracker.VideoCamera(temp_dir / "missing.mp4")

    with virtual_tracker.CameraRegistry() as registry:
        with pytest.raises(virtual_tracker.DeviceUnavailable):
            registry.acquire(str(temp_dir / "missing.mp4"))


def test_event_source():
    """
    Test event registration, delivery and handle release
    """

    import virtual_tracker

    tracker = conftest.FakeTracker()
    received: list = []
    h1 = tracker.register("Roi", lambda roi: received.append((1, roi)))
    with tracker.register("Roi", lambda roi: received.append((2, roi))):
        tracker.roi = [0, 0, 1]
    tracker.roi = None
    assert received == [(1, [0, 0, 1]), (2, [0, 0, 1]), (1, None)]

    h1.release()
    tracker.roi = [1, 1, 1]
    assert len(received) == 3

    for name in ("", "Frame", None):
        with pytest.raises(ValueError):
            tracker.register(name, print)

    # unrestricted source accepts any non-empty name
    source = virtual_tracker.EventSource()
    source.register("Anything", print)

    def failing(roi):
        raise RuntimeError("callback error")

    tracker.register("Roi", failing)
    with pytest.raises(RuntimeError):
        tracker.roi = [0, 0, 0.5]
