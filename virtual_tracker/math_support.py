#
# math_support.py: coordinate and region utilities
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements coordinate normalization and region-to-polygon conversion
#

"""
Math Support Module Overview
===========================

This module provides geometric helpers shared by the zone and trial components.

Coordinates come in two flavors:
    - **Pixel coordinates**: as reported by a blob tracker, origin at the top-left image corner.
    - **Normalized coordinates**: origin at the image center, scaled by the smaller of image width
      and height, so a centered square inscribed into the frame spans [-0.5, 0.5] on both axes.

Key Functions:
    - `normalize_points()`: convert pixel coordinates to normalized coordinates
    - `denormalize_points()`: convert normalized coordinates back to pixel coordinates
    - `region_to_polygon()`: convert a region definition into an `(N, 2)` vertex array
"""

import numpy as np
from typing import Sequence, Union
from .exceptions import InvalidRegion


def normalize_points(points: np.ndarray, width: int, height: int) -> np.ndarray:
    """Convert pixel coordinates into normalized coordinates.

    Args:
        points (np.ndarray): Array of shape `(N, 2)` with `(x, y)` pixel coordinates.
        width (int): Frame width in pixels.
        height (int): Frame height in pixels.

    Returns:
        np.ndarray: Array of shape `(N, 2)` with coordinates centered at the image midpoint and
            scaled by `min(width, height)`.
    """
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    scale = float(min(width, height))
    return (points - np.array([width / 2.0, height / 2.0])) / scale


def denormalize_points(points: np.ndarray, width: int, height: int) -> np.ndarray:
    """Inverse of `normalize_points()`."""
    points = np.asarray(points, dtype=float).reshape(-1, 2)
    scale = float(min(width, height))
    return points * scale + np.array([width / 2.0, height / 2.0])


def region_to_polygon(
    region: Union[np.ndarray, Sequence], n_points: int = 360
) -> np.ndarray:
    """Convert a region definition into a polygon.

    Supported region definitions:
        - sequence of `(x, y)` vertex pairs, at least 3 of them;
        - flat sequence `[x1, y1, x2, y2, ...]` with at least 3 vertices;
        - circle `[cx, cy, radius]`, approximated by `n_points` vertices.

    Args:
        region: Region definition in normalized coordinates.
        n_points (int, optional): Number of vertices used to approximate circles. Default 360.

    Returns:
        np.ndarray: Polygon vertices as `(N, 2)` float array.

    Raises:
        InvalidRegion: If the region cannot be interpreted as a polygon with at least 3 vertices.
    """
    try:
        arr = np.asarray(region, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidRegion(f"Region is not numeric: {e}") from e

    if arr.ndim == 1 and arr.size == 3:
        cx, cy, radius = arr
        if radius <= 0:
            raise InvalidRegion(f"Circle radius must be positive, got {radius}")
        angles = np.linspace(0, 2 * np.pi, n_points, endpoint=False)
        return np.column_stack((cx + radius * np.cos(angles), cy + radius * np.sin(angles)))

    if arr.ndim == 1 and arr.size % 2 == 0:
        arr = arr.reshape(-1, 2)

    if arr.ndim != 2 or arr.shape[1] != 2:
        raise InvalidRegion(f"Region of shape {arr.shape} is not a list of (x, y) vertices")
    if arr.shape[0] < 3:
        raise InvalidRegion(f"Region must have at least 3 vertices, got {arr.shape[0]}")
    if not np.all(np.isfinite(arr)):
        raise InvalidRegion("Region vertices must be finite numbers")
    return arr
