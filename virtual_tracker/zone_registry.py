#
# zone_registry.py: registry of hit-testable zones
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements zone registry with handle-based zone lifecycle
#

"""
Zone Registry Module Overview
=============================

This module provides `ZoneRegistry`, the owner of a dynamic set of zones. Each zone couples a
`RegionMask` with a callback which receives a `ZoneEvent` when the zone is hit (or missed).

Key Features:
    - **Unique ids**: zone ids are assigned monotonically and never reused by a registry
    - **Handle lifecycle**: `add()` returns a `ZoneHandle`; releasing it removes the zone.
      Handles reference the registry weakly, so releasing a handle of a discarded registry is a
      no-op
    - **Stateless testing**: `test()` reports the current hit state of every zone without
      remembering previous results; debouncing is the caller's job

Note:
    The result of `test()` is indexed by zone *position* (insertion order), not by zone id.
    Positions shift when zones are removed, so do not memoize positional indices across
    `add()`/`remove()` calls.
"""

import numpy as np
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union
from . import logger_get
from .event_support import Handle
from .region_mask import RegionMask, PointType


@dataclass(frozen=True)
class ZoneEvent:
    """Zone membership event delivered to zone callbacks.

    Attributes:
        x (float): Normalized x coordinate of the pointer.
        y (float): Normalized y coordinate of the pointer.
        state (bool): True when the pointer is inside the zone, False when outside.
        handle (ZoneHandle): Handle of the zone which produced the event.
    """

    x: float
    y: float
    state: bool
    handle: Any


def _void(event: ZoneEvent):
    pass


class ZoneHandle(Handle):
    """Handle returned by `ZoneRegistry.add()`; releasing it removes the zone."""

    def __init__(self, registry: "ZoneRegistry", uid: int):
        super().__init__(registry, uid, "remove")


@dataclass
class Zone:
    """Zone owned by a `ZoneRegistry`.

    Attributes:
        id (int): Unique zone id.
        mask (RegionMask): Rasterized zone region.
        callback (Callable): Function called with `ZoneEvent`.
        handle (ZoneHandle): Handle which removes this zone on release.
    """

    id: int
    mask: RegionMask
    callback: Callable[[ZoneEvent], Any]
    handle: ZoneHandle

    @property
    def region(self) -> np.ndarray:
        """Zone polygon vertices."""
        return self.mask.vertices

    @property
    def significance(self) -> float:
        """Cell size of the zone mask."""
        return self.mask.cell_size


class ZoneRegistry:
    """Dynamic set of zones tested against pointer positions."""

    def __init__(self):
        self._zones: List[Zone] = []
        self._uid = 0

    def add(
        self,
        region: Union[np.ndarray, Sequence],
        cell_size: float,
        callback: Optional[Callable[[ZoneEvent], Any]] = None,
    ) -> ZoneHandle:
        """Add a zone.

        Args:
            region (Union[np.ndarray, Sequence]): Polygon vertices in normalized coordinates.
            cell_size (float): Mask cell size (significance).
            callback (Callable, optional): Function called with a `ZoneEvent`. Default is no-op.

        Returns:
            ZoneHandle: Handle which removes the zone when released.

        Raises:
            InvalidRegion: If the region or cell size is malformed.
        """
        mask = RegionMask(region, cell_size)  # validate before consuming an id
        self._uid += 1
        handle = ZoneHandle(self, self._uid)
        self._zones.append(
            Zone(self._uid, mask, _void if callback is None else callback, handle)
        )
        logger_get().debug(
            f"Zone {self._uid} added: {len(mask.vertices)} vertices, mask {mask.shape}"
        )
        return handle

    def test(
        self,
        p0: PointType,
        p1: Optional[PointType] = None,
        invoke_on_enter: bool = True,
        invoke_on_exit: bool = False,
    ) -> List[bool]:
        """Test a point or segment against all zones.

        Args:
            p0 (PointType): Previous (or single) pointer position.
            p1 (PointType, optional): Current pointer position. If None, `p0` is tested as a point.
            invoke_on_enter (bool, optional): Call zone callback with `state=True` on hit. Default True.
            invoke_on_exit (bool, optional): Call zone callback with `state=False` on miss. Default False.

        Returns:
            List[bool]: Hit flag for each zone, in current zone order.
        """
        x, y = np.asarray(p0 if p1 is None else p1, dtype=float)
        states = []
        # iterate over a snapshot: callbacks may release handles
        for zone in list(self._zones):
            hit = zone.mask.test(p0, p1)
            states.append(hit)
            if (hit and invoke_on_enter) or (not hit and invoke_on_exit):
                zone.callback(ZoneEvent(float(x), float(y), hit, zone.handle))
        return states

    def remove(self, ids: Iterable[int]):
        """Remove zones with given ids; ids not present are ignored."""
        ids = set(ids)
        removed = [z.id for z in self._zones if z.id in ids]
        if removed:
            self._zones = [z for z in self._zones if z.id not in ids]
            logger_get().debug(f"Zones {removed} removed")

    def clear(self):
        """Remove all zones."""
        self.remove(self.ids)

    @property
    def ids(self) -> List[int]:
        """Ids of live zones in current order."""
        return [z.id for z in self._zones]

    @property
    def handles(self) -> List[ZoneHandle]:
        """Handles of live zones in current order."""
        return [z.handle for z in self._zones]

    @property
    def zones(self) -> List[Zone]:
        """Live zones in current order (copy of internal list)."""
        return list(self._zones)

    def __len__(self) -> int:
        return len(self._zones)

    def __contains__(self, uid: int) -> bool:
        return any(z.id == uid for z in self._zones)
