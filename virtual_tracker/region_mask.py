#
# region_mask.py: rasterized polygon region support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements polygon rasterization and point/segment hit-testing
#

"""
Region Mask Module Overview
===========================

This module provides `RegionMask`, a polygon rasterized into a boolean occupancy grid. The grid is
used to answer "does this point, or the path between two points, touch the region?" queries in
constant time per sample.

Key Features:
    - **Configurable granularity**: the grid cell size ("significance") sets the spatial
      resolution of the mask
    - **Boundary-inclusive rasterization**: grid points lying on the polygon boundary count as
      inside
    - **Segment interpolation**: a moving pointer is sampled at least once per traversed cell, so
      thin regions are not skipped when the pointer jumps several cells between two frames
    - **Out-of-grid tolerance**: samples outside the grid are plain misses

Typical Usage:
    ```python
    mask = RegionMask([[-0.1, -0.1], [0.1, -0.1], [0.1, 0.1], [-0.1, 0.1]], 0.01)
    mask.test((0, 0))                  # point test
    mask.test((-0.5, 0), (0.5, 0))     # segment test
    ```
"""

import numpy as np, cv2
from typing import Optional, Sequence, Union
from .exceptions import InvalidRegion

# tolerance for vertices lying on exact multiples of the cell size
_GRID_EPS = 1e-9

PointType = Union[Sequence[float], np.ndarray]


class RegionMask:
    """Polygon rasterized into a boolean grid.

    Cell `(i, j)` of the grid corresponds to the normalized point
    `origin + (j, i) * cell_size`, where `origin` is the lower corner of the polygon bounding box.

    Attributes:
        vertices (np.ndarray): Polygon vertices as `(N, 2)` array, read-only.
        cell_size (float): Linear size of one grid cell in normalized units.
        origin (np.ndarray): Lower corner `(x, y)` of the polygon bounding box.
        mask (np.ndarray): Boolean occupancy grid of shape `(rows, cols)`, read-only.
    """

    def __init__(self, vertices: Union[np.ndarray, Sequence], cell_size: float):
        """
        Constructor.

        Args:
            vertices (Union[np.ndarray, Sequence]): Polygon vertices, at least 3 `(x, y)` pairs.
            cell_size (float): Grid cell size, must be positive.

        Raises:
            InvalidRegion: If vertices do not form a polygon or cell size is not positive.
        """
        try:
            polygon = np.array(vertices, dtype=float)
            cell_size = float(cell_size)
        except (TypeError, ValueError) as e:
            raise InvalidRegion(f"Region is not numeric: {e}") from e

        if polygon.ndim != 2 or polygon.shape[1] != 2 or polygon.shape[0] < 3:
            raise InvalidRegion(
                f"Region must be a list of at least 3 (x, y) vertices, got shape {polygon.shape}"
            )
        if not np.all(np.isfinite(polygon)):
            raise InvalidRegion("Region vertices must be finite numbers")
        if not np.isfinite(cell_size) or cell_size <= 0:
            raise InvalidRegion(f"Cell size must be positive, got {cell_size}")

        polygon.flags.writeable = False
        self.vertices = polygon
        self.cell_size = cell_size
        self.origin = polygon.min(axis=0)

        # translate to origin, scale to cell size and snap to grid points
        grid = np.floor((polygon - self.origin) / cell_size + _GRID_EPS).astype(np.int32)
        cols, rows = grid.max(axis=0) + 1
        mask = np.zeros((rows, cols), dtype=np.uint8)
        # fillPoly fills the interior and draws the outline, so boundary points are inside
        cv2.fillPoly(mask, [grid.reshape(-1, 1, 2)], color=1)
        self.mask = mask.astype(bool)
        self.mask.flags.writeable = False

    @property
    def shape(self) -> tuple:
        """Grid shape as `(rows, cols)`."""
        return self.mask.shape

    def test(self, p0: PointType, p1: Optional[PointType] = None) -> bool:
        """Test whether a point or a segment touches the region.

        The segment from `p0` to `p1` is split into `max(|delta row|, |delta col|, 1)` equal steps
        between the grid indices of the two endpoints and sampled at every step boundary, i.e.
        `steps + 1` samples with both endpoints included. The extra sample makes the end point
        itself always tested, and at least one sample falls into every grid cell the segment
        crosses.

        Args:
            p0 (PointType): Start point `(x, y)` in normalized coordinates.
            p1 (PointType, optional): End point. If None, `p0` is tested as a single point.

        Returns:
            bool: True if at least one sample lies on a region cell.
        """
        o0 = (np.asarray(p0, dtype=float) - self.origin) / self.cell_size
        o1 = o0 if p1 is None else (np.asarray(p1, dtype=float) - self.origin) / self.cell_size

        finite0 = bool(np.all(np.isfinite(o0)))
        finite1 = bool(np.all(np.isfinite(o1)))
        if not (finite0 and finite1):
            # lost target: only a finite endpoint can be tested
            if finite0 or finite1:
                return self._hits(np.floor(o0 if finite0 else o1).reshape(1, 2))
            return False

        i0, j0 = np.floor(o0[1]), np.floor(o0[0])
        i1, j1 = np.floor(o1[1]), np.floor(o1[0])
        steps = int(max(abs(i1 - i0), abs(j1 - j0), 1))
        t = np.linspace(0.0, 1.0, steps + 1)[:, np.newaxis]
        samples = np.floor(o0 + t * (o1 - o0))
        return self._hits(samples)

    def _hits(self, samples: np.ndarray) -> bool:
        cols = samples[:, 0].astype(np.int64)
        rows = samples[:, 1].astype(np.int64)
        rows_n, cols_n = self.mask.shape
        valid = (rows >= 0) & (rows < rows_n) & (cols >= 0) & (cols < cols_n)
        return bool(np.any(self.mask[rows[valid], cols[valid]]))
