#
# trial_controller.py: trial state machine for zone-triggered tracking
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements per-frame pointer ingestion, debounced zone events and trial logging
#

"""
Trial Controller Module Overview
================================

This module provides `TrialController`, which turns a stream of tracked pointer positions into
edge-triggered zone enter/exit callbacks and per-trial track records.

Key Features:
    - **Trial lifecycle**: `setup()` configures zones for a trial; `save()` appends the trial's
      records to the session log. The trial number advances on the first `setup()` after a
      successful `save()`
    - **Hysteresis**: an inside/outside flag is kept per (zone, pointer), so a zone callback fires
      once on entry and once on exit, never while a pointer lingers
    - **Interpolated testing**: each pointer's path from the previous frame to the current one is
      tested, so fast crossings of thin zones are detected
    - **Variable pointer count**: pointers may appear and disappear between frames
    - **Durable logging**: every `save()` opens, appends and closes the session log, so a crash
      loses at most the unsaved trial

Typical Usage:
    ```python
    with TrialController(camera, tracker) as controller:
        controller.setup([(zone1, on_zone1), (zone2, on_zone2)])
        controller.play = True
        ...
        controller.save()
        controller.setup([(zone3, on_zone3)])  # trial 2
        ...
        controller.save()
    ```

Session log format (CSV with header `time, x, y, pointer, zone, trial`):
    time and coordinates with 4 decimals, integer pointer index, zone id (0: no zone) and trial
    number.

Key Classes:
    - `TrialController`: trial state machine
    - `TrackRecord`: one logged sample
    - `TrialState`: controller state
"""

import numpy as np, threading, time
from dataclasses import dataclass, astuple
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union
from . import logger_get
from .camera import CameraInterface, CameraRegistry, TrackerInterface
from .config import (
    Key_Camera,
    Key_FrameInterval,
    Key_OutputDir,
    Key_Serial,
    Key_Settings,
    Key_ZoneLogging,
    ZoneLogging_LastHit,
    ZoneLogging_PerZone,
    apply_settings,
    load_session_config,
    load_settings,
    save_settings,
)
from .event_support import EventHandle, EventSource
from .exceptions import DeviceUnavailable
from .log_support import append_lines, create_log
from .math_support import normalize_points, region_to_polygon
from .zone_registry import ZoneEvent, ZoneHandle, ZoneRegistry

ZoneCallback = Optional[Callable[[ZoneEvent], Any]]


class TrialState(Enum):
    """Trial controller state."""

    IDLE = "idle"  # no zones configured or torn down
    CONFIGURED = "configured"  # zones configured, no frame processed yet
    RUNNING = "running"  # frames are being processed


@dataclass
class TrackRecord:
    """One track sample: pointer position and the zone it was in.

    Attributes:
        time (float): Seconds elapsed since the controller was created.
        x (float): Normalized x coordinate.
        y (float): Normalized y coordinate.
        pointer (int): Pointer index.
        zone (int): Zone id, 0 if the pointer was not in the zone.
        trial (int): Trial number.
    """

    time: float
    x: float
    y: float
    pointer: int
    zone: int
    trial: int


class TrialController(EventSource):
    """Trial state machine driven by camera frames.

    Events:
        Position(position): pointer positions changed; `position` is a read-only `(N, 2)` array of
            normalized coordinates.
        Roi(roi): tracker region of interest changed.

    Attributes:
        log_header (str): Session log header line.
    """

    event_names = ("Position", "Roi")
    log_header = "time, x, y, pointer, zone, trial\n"
    app_name = "VirtualTracker"

    def __init__(
        self,
        camera: CameraInterface,
        tracker: TrackerInterface,
        *,
        output: Optional[Union[str, Path]] = None,
        output_dir: Optional[Union[str, Path]] = None,
        zone_logging: str = ZoneLogging_PerZone,
        camera_registry: Optional[CameraRegistry] = None,
        settings_file: Optional[Union[str, Path]] = None,
        single_pointer: bool = False,
    ):
        """
        Constructor.

        Args:
            camera (CameraInterface): Frame source.
            tracker (TrackerInterface): Blob tracker which locates pointers in frames.
            output (Union[str, Path], optional): Session log file. If None, a timestamped file is
                created in `output_dir`.
            output_dir (Union[str, Path], optional): Folder for the session log. If None, the
                `VT_OUTPUT_DIR` environment variable or `~/Documents` is used, with `VirtualTracker`
                sub-folder.
            zone_logging (str, optional): Zone id written to records when a pointer hits several
                zones in one frame: "per_zone" writes each tested zone's own id (or 0) to that
                zone's record; "last_hit" writes the id of the last hit zone to all records of the
                pointer. Default "per_zone".
            camera_registry (CameraRegistry, optional): Registry the camera was acquired from; the
                camera is released to it on `close()`.
            settings_file (Union[str, Path], optional): Camera and tracker settings YAML file.
                Settings are applied at construction and saved back on `close()`.
            single_pointer (bool, optional): Force tracker `quantity` to 1 when applying
                settings; used for sessions synchronized with external triggers.

        Raises:
            DeviceUnavailable: If camera or tracker is missing.
            IOFailure: If the session log cannot be created.
            ValueError: If `zone_logging` is not supported.
        """
        super().__init__()
        if camera is None or tracker is None:
            raise DeviceUnavailable("Position source is not available: camera and tracker are required")
        if zone_logging not in (ZoneLogging_PerZone, ZoneLogging_LastHit):
            raise ValueError(
                f"zone_logging must be '{ZoneLogging_PerZone}' or '{ZoneLogging_LastHit}'"
            )

        self._camera = camera
        self._tracker = tracker
        self._camera_registry = camera_registry
        self._zone_logging = zone_logging
        self._zones = ZoneRegistry()

        self._callbacks: List[ZoneCallback] = []
        self._regions: List[np.ndarray] = []
        self._handles: List[ZoneHandle] = []
        self._state_ids: List[int] = []  # zone id of each row of `_states`
        self._states = np.zeros((0, 0), dtype=bool)  # (zones, pointers) inside flags
        self._records: List[TrackRecord] = []
        self._trial = 1
        self._saved = False
        self._state = TrialState.IDLE
        self._raw = np.zeros((0, 2))
        self._position = self._freeze(np.zeros((0, 2)))
        self._roi: Optional[Any] = None

        # frames arrive on the camera thread; callbacks may re-enter setup()/save()
        self._lock = threading.RLock()
        self._generation = 0  # incremented by every setup()

        self._output = create_log(self.log_header, self.app_name, output, output_dir)

        self._settings_file = None if settings_file is None else Path(settings_file).expanduser()
        if self._settings_file is not None:
            apply_settings(
                load_settings(self._settings_file, single_pointer), camera, tracker
            )

        self._sources: List[EventHandle] = [
            camera.register("Frame", self.on_frame),
            tracker.register("Roi", self._on_roi),
        ]
        self._start_time = time.time()
        logger_get().info(f"Session log: {self._output}")

    @classmethod
    def open(
        cls,
        camera_registry: CameraRegistry,
        tracker: TrackerInterface,
        video_source: Any = 0,
        **kwargs,
    ) -> "TrialController":
        """Acquire a camera from a registry and create a controller which releases it on close.

        Raises:
            DeviceUnavailable: If the camera cannot be opened.
        """
        camera = camera_registry.acquire(video_source, **kwargs.pop("camera_kwargs", {}))
        try:
            return cls(camera, tracker, camera_registry=camera_registry, **kwargs)
        except Exception:
            camera_registry.release(camera)
            raise

    @classmethod
    def from_config(
        cls,
        config: Union[str, Path, dict, None],
        camera_registry: CameraRegistry,
        tracker: TrackerInterface,
    ) -> "TrialController":
        """Create a controller described by session configuration.

        Args:
            config: Session configuration (see `load_session_config()`).
            camera_registry (CameraRegistry): Registry to acquire the camera from.
            tracker (TrackerInterface): Blob tracker.
        """
        cfg = load_session_config(config)
        output_dir = cfg.get(Key_OutputDir)
        return cls.open(
            camera_registry,
            tracker,
            cfg[Key_Camera],
            output_dir=None if output_dir is None else Path(output_dir).expanduser() / cls.app_name,
            zone_logging=cfg[Key_ZoneLogging],
            settings_file=cfg.get(Key_Settings),
            single_pointer=Key_Serial in cfg,
            camera_kwargs={"frame_interval": cfg[Key_FrameInterval]},
        )

    #
    # trial lifecycle
    #

    def setup(self, zones: Sequence[Tuple[Any, ZoneCallback]]):
        """Configure zones for the next trial.

        Advances the trial number if the previous trial was saved, replaces zones, and clears the
        record buffer. When called from a zone callback, processing of the current frame stops.

        Args:
            zones (Sequence[Tuple[Any, Callable]]): `(region, callback)` pairs. A region is a list
                of `(x, y)` vertices, a flat `[x1, y1, x2, y2, ...]` list, or a `[cx, cy, radius]`
                circle, in normalized coordinates. A callback receives a `ZoneEvent`; None means
                no callback.

        Raises:
            InvalidRegion: If any region is malformed; the previous configuration is kept.
        """
        height, width = self._camera.resolution
        cell_size = 1.0 / max(width, height)

        with self._lock:
            regions = []
            callbacks = []
            handles: List[ZoneHandle] = []
            try:
                for region, callback in zones:
                    polygon = region_to_polygon(region)
                    handles.append(self._zones.add(polygon, cell_size, callback))
                    regions.append(polygon)
                    callbacks.append(callback)
            except Exception:
                for h in handles:
                    h.release()
                raise

            # trials end when data is saved and another setup occurs
            if self._saved:
                self._saved = False
                self._trial += 1
                logger_get().info(f"Trial {self._trial} started")

            for h in self._handles:
                h.release()
            self._regions = regions
            self._callbacks = callbacks
            self._handles = handles
            self._states = self._resize(self._states, len(handles), self._states.shape[1])
            self._state_ids = [h.id for h in handles]
            self._records = []
            self._state = TrialState.CONFIGURED
            self._generation += 1
            logger_get().info(f"Trial {self._trial}: {len(handles)} zone(s) configured")

    def save(self):
        """Append buffered records of the current trial to the session log.

        Does nothing if no records were acquired since the last `setup()` or `save()`.

        Raises:
            IOFailure: If the session log cannot be written; buffered records are kept.
        """
        with self._lock:
            if not self._records:
                return
            text = "".join(
                "%.4f, %.4f, %.4f, %i, %i, %i\n" % astuple(r) for r in self._records
            )
            append_lines(self._output, text)
            logger_get().info(
                f"Trial {self._trial}: {len(self._records)} record(s) saved to {self._output}"
            )
            self._records = []
            self._saved = True

    #
    # frame ingestion
    #

    def on_frame(self, frame: np.ndarray):
        """Camera `Frame` event handler: track pointers and ingest their positions."""
        self.on_positions(self._tracker.track(frame))

    def on_positions(self, positions: Union[np.ndarray, Sequence]):
        """Ingest pointer positions of one frame.

        Args:
            positions (Union[np.ndarray, Sequence]): `(x, y)` pixel coordinates of every pointer,
                in tracker order. NaN coordinates denote a lost target.
        """
        raw = np.asarray(positions, dtype=float).reshape(-1, 2)
        with self._lock:
            if np.array_equal(raw, self._raw, equal_nan=True):
                return  # unchanged tracking output

            height, width = self._camera.resolution
            curr = normalize_points(raw, width, height)
            prev = normalize_points(self._raw, width, height)
            n_prev, n_curr = len(prev), len(curr)
            if n_curr > n_prev:
                # new pointers start where they are first seen
                prev = np.concatenate((prev, curr[n_prev:]))
            self._raw = raw

            self._sync_states()
            self._states = self._resize(self._states, self._states.shape[0], n_curr)

            generation = self._generation
            elapsed = time.time() - self._start_time
            for p in range(n_curr):
                if not self._track_pointer(p, prev[p], curr[p], elapsed, generation):
                    break

            if self._state == TrialState.CONFIGURED:
                self._state = TrialState.RUNNING
            self._position = self._freeze(curr)
            self._invoke("Position", self._position)

    def _track_pointer(
        self, p: int, prev: np.ndarray, curr: np.ndarray, elapsed: float, generation: int
    ) -> bool:
        """Test one pointer path against live zones, fire edge callbacks and append records.

        Returns:
            bool: False if a callback reconfigured zones and the frame must not be processed further.
        """
        # callbacks of previous pointers may have released zones
        self._sync_states()
        zones = self._zones.zones
        x, y = float(curr[0]), float(curr[1])
        hits = [zone.mask.test(prev, curr) for zone in zones]
        active = 0
        for r, (zone, hit) in enumerate(zip(zones, hits)):
            if hit:
                active = zone.id
            if hit != self._states[r, p]:
                self._states[r, p] = hit
                logger_get().debug(
                    f"Pointer {p} {'entered' if hit else 'left'} zone {zone.id} at ({x:.4f}, {y:.4f})"
                )
                zone.callback(ZoneEvent(x, y, hit, zone.handle))
                if self._generation != generation:
                    return False
        for zone, hit in zip(zones, hits):
            zone_id = (
                (zone.id if hit else 0)
                if self._zone_logging == ZoneLogging_PerZone
                else active
            )
            self._records.append(TrackRecord(elapsed, x, y, p, zone_id, self._trial))
        return True

    def _sync_states(self):
        """Realign hysteresis rows with live zones after handles were released externally."""
        ids = self._zones.ids
        if ids == self._state_ids:
            return
        states = np.zeros((len(ids), self._states.shape[1]), dtype=bool)
        for r, uid in enumerate(ids):
            if uid in self._state_ids:
                states[r] = self._states[self._state_ids.index(uid)]
        self._states = states
        self._state_ids = ids

    @staticmethod
    def _resize(states: np.ndarray, n_zones: int, n_pointers: int) -> np.ndarray:
        """Resize hysteresis table; new cells are outside, dropped cells are truncated."""
        if states.shape == (n_zones, n_pointers):
            return states
        ret = np.zeros((n_zones, n_pointers), dtype=bool)
        z, p = min(n_zones, states.shape[0]), min(n_pointers, states.shape[1])
        ret[:z, :p] = states[:z, :p]
        return ret

    @staticmethod
    def _freeze(arr: np.ndarray) -> np.ndarray:
        arr = np.array(arr, dtype=float)
        arr.flags.writeable = False
        return arr

    def _on_roi(self, roi: Any):
        self._roi = roi
        self._invoke("Roi", roi)

    #
    # teardown
    #

    def close(self):
        """Detach from frame source, release zones, save settings and release the camera.

        Unsaved records are discarded; call `save()` first to keep them.

        Raises:
            IOFailure: If settings cannot be saved; the camera is released anyway.
        """
        with self._lock:
            if not self._sources:
                return
            for h in self._sources:
                h.release()
            self._sources = []
            for h in self._handles:
                h.release()
            self._handles = []
            self._states = self._resize(self._states, 0, self._states.shape[1])
            self._state_ids = []
            if self._records:
                logger_get().warning(
                    f"Trial {self._trial}: {len(self._records)} unsaved record(s) discarded"
                )
            self._state = TrialState.IDLE
            try:
                if self._settings_file is not None:
                    save_settings(self._settings_file, self._camera, self._tracker)
            finally:
                if self._camera_registry is not None:
                    self._camera_registry.release(self._camera)
                logger_get().info("Trial controller closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    #
    # properties
    #

    @property
    def trial(self) -> int:
        """Current trial number, starting at 1."""
        return self._trial

    @property
    def saved(self) -> bool:
        """Whether the current trial has been saved."""
        return self._saved

    @property
    def state(self) -> TrialState:
        return self._state

    @property
    def position(self) -> np.ndarray:
        """Snapshot of normalized positions of all pointers as read-only `(N, 2)` array."""
        return self._position

    @property
    def records(self) -> List[TrackRecord]:
        """Records buffered for the current trial (copy)."""
        return list(self._records)

    @property
    def zone_states(self) -> np.ndarray:
        """Copy of the (zones, pointers) inside-flag table."""
        return self._states.copy()

    @property
    def zone_ids(self) -> List[int]:
        """Ids of configured zones in test order."""
        return self._zones.ids

    @property
    def regions(self) -> List[np.ndarray]:
        """Polygons configured by the last `setup()`."""
        return list(self._regions)

    @property
    def callbacks(self) -> List[ZoneCallback]:
        """Zone callbacks configured by the last `setup()`."""
        return list(self._callbacks)

    @property
    def handles(self) -> List[ZoneHandle]:
        """Zone handles configured by the last `setup()`."""
        return list(self._handles)

    @property
    def output(self) -> Path:
        """Session log file path."""
        return self._output

    @property
    def camera(self) -> CameraInterface:
        return self._camera

    @property
    def tracker(self) -> TrackerInterface:
        return self._tracker

    @property
    def play(self) -> bool:
        """Camera acquisition state."""
        return self._camera.play

    @play.setter
    def play(self, value: bool):
        self._camera.play = value

    @property
    def roi(self) -> Optional[Any]:
        """Tracker region of interest."""
        return self._roi

    @roi.setter
    def roi(self, region: Optional[Any]):
        self._tracker.roi = region
