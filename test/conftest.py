#
# conftest.py - virtual_tracker: pytest configuration file
# Copyright DeGirum Corp. 2025
#
# Contains common pytest configuration and common test fixtures
#
import sys, os, tempfile, pytest, pathlib

# add current directory to sys.path to debug tests locally without package installation
sys.path.insert(0, os.getcwd())

import numpy as np
import virtual_tracker
import logging


def pytest_addoption(parser):
    """Add custom command line options for pytest"""

    parser.addoption(
        "--loglevel",
        action="store",
        default=None,
        help="Set log level (e.g. DEBUG, INFO, WARNING)",
    )


def pytest_configure(config):
    """Configure pytest with custom options"""

    # do not pick up env.ini/.env of the developer machine
    os.environ[virtual_tracker.environment.var_TestMode] = "1"

    loglevel = config.getoption("--loglevel")
    if loglevel:
        virtual_tracker.logger_add_handler(
            level=getattr(logging, loglevel.upper(), logging.ERROR)
        )


class FakeCamera(virtual_tracker.CameraInterface):
    """Camera which delivers frames pushed by the test"""

    def __init__(self, height: int = 100, width: int = 100):
        super().__init__()
        self._resolution = (height, width)
        self._play = False
        self.released = False

    @property
    def resolution(self):
        return self._resolution

    @property
    def play(self):
        return self._play

    @play.setter
    def play(self, value):
        self._play = value

    def push(self, frame=None):
        self._invoke("Frame", np.zeros((1, 1)) if frame is None else frame)

    def release(self):
        self.released = True


class FakeTracker(virtual_tracker.TrackerInterface):
    """Tracker which returns positions assigned by the test"""

    def __init__(self):
        super().__init__()
        self.positions: list = []
        self.frames = 0

    def track(self, frame):
        self.frames += 1
        return np.array(self.positions, dtype=float).reshape(-1, 2)


class FakeTransport(virtual_tracker.TransportInterface):
    """Byte stream transport fed by the test"""

    def __init__(self, data: bytes = b""):
        self.data = bytearray(data)
        self.closed = False
        self.reads: list = []

    def feed(self, data: bytes):
        self.data.extend(data)

    @property
    def bytes_available(self):
        return len(self.data)

    def read(self, size):
        chunk = bytes(self.data[:size])
        del self.data[:size]
        self.reads.append(len(chunk))
        return chunk

    def close(self):
        self.closed = True


@pytest.fixture
def temp_dir():
    """Temporary directory fixture with cleanup"""
    with tempfile.TemporaryDirectory() as directory:
        yield pathlib.Path(directory)
        # cleanup happens automatically when the block exits


@pytest.fixture
def camera():
    """Fake 100x100 camera"""
    return FakeCamera()


@pytest.fixture
def tracker():
    """Fake tracker"""
    return FakeTracker()


@pytest.fixture
def transport():
    """Fake serial transport"""
    return FakeTransport()


@pytest.fixture
def controller(camera, tracker, temp_dir):
    """Trial controller on fake camera and tracker, logging into temporary directory"""
    with virtual_tracker.TrialController(
        camera, tracker, output=temp_dir / "session.csv"
    ) as ctrl:
        yield ctrl
