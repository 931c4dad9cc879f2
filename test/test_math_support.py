#
# test_math_support.py: unit tests for coordinate and region utilities
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests to test coordinate normalization and region conversion
#

import numpy as np
import pytest
from typing import List


def test_normalize_points():
    """
    Test for pixel to normalized coordinate conversion
    """

    import virtual_tracker

    test_cases: List[dict] = [
        {"case": "center", "points": [[320, 240]], "wh": (640, 480), "res": [[0, 0]]},
        {"case": "top-left", "points": [[0, 0]], "wh": (640, 480), "res": [[-2 / 3, -0.5]]},
        {
            "case": "portrait",
            "points": [[0, 0], [100, 200]],
            "wh": (100, 200),
            "res": [[-0.5, -1.0], [0.5, 1.0]],
        },
        {"case": "empty", "points": np.zeros((0, 2)), "wh": (640, 480), "res": np.zeros((0, 2))},
    ]

    for ci, case in enumerate(test_cases):
        print(f"\n[{ci + 1}/{len(test_cases)}] Testing: {case['case']}")
        res = virtual_tracker.normalize_points(case["points"], *case["wh"])
        assert res.shape == np.asarray(case["res"]).reshape(-1, 2).shape
        assert np.allclose(res, case["res"]), f"Case `{case['case']}` failed: {res}"
        back = virtual_tracker.denormalize_points(res, *case["wh"])
        assert np.allclose(back, np.asarray(case["points"], dtype=float).reshape(-1, 2))


def test_region_to_polygon():
    """
    Test for region definition conversion
    """

    import virtual_tracker

    square = [[0, 0], [1, 0], [1, 1], [0, 1]]
    test_cases: List[dict] = [
        {"case": "pairs", "region": square, "n": 4},
        {"case": "flat", "region": [0, 0, 1, 0, 1, 1, 0, 1], "n": 4},
        {"case": "triangle", "region": np.array([[0, 0], [1, 0], [0, 1]]), "n": 3},
        {"case": "circle", "region": [0.1, -0.1, 0.2], "n": 360},
        {"case": "two pairs", "region": [[0, 0], [1, 1]], "n": None},
        {"case": "flat two vertices", "region": [0, 0, 1, 1], "n": None},
        {"case": "odd flat", "region": [0, 0, 1, 1, 2], "n": None},
        {"case": "zero radius", "region": [0, 0, 0], "n": None},
        {"case": "negative radius", "region": [0, 0, -1], "n": None},
        {"case": "infinite vertex", "region": [[0, 0], [np.inf, 0], [1, 1]], "n": None},
        {"case": "ragged", "region": [[0, 0], [1], [1, 1]], "n": None},
        {"case": "text", "region": "abc", "n": None},
    ]

    for ci, case in enumerate(test_cases):
        print(f"\n[{ci + 1}/{len(test_cases)}] Testing: {case['case']}")
        if case["n"] is None:
            with pytest.raises(virtual_tracker.InvalidRegion):
                virtual_tracker.region_to_polygon(case["region"])
            continue
        polygon = virtual_tracker.region_to_polygon(case["region"])
        assert polygon.shape == (case["n"], 2), f"Case `{case['case']}` failed"

    circle = virtual_tracker.region_to_polygon([0.1, -0.1, 0.2], n_points=16)
    assert circle.shape == (16, 2)
    assert np.allclose(np.hypot(circle[:, 0] - 0.1, circle[:, 1] + 0.1), 0.2)
