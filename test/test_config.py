#
# test_config.py: unit tests for session configuration support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests to test session configuration validation and settings persistence
#

import jsonschema
import pytest
from typing import List


def test_load_session_config():
    """
    Test session configuration parsing, validation and defaults
    """

    import virtual_tracker

    test_cases: List[dict] = [
        {
            "case": "defaults",
            "config": None,
            "res": {"camera": 0, "zone_logging": "per_zone"},
        },
        {
            "case": "YAML text",
            "config": "camera: video.mp4\nzone_logging: last_hit\n",
            "res": {"camera": "video.mp4", "zone_logging": "last_hit"},
        },
        {
            "case": "dict with serial section",
            "config": {"serial": {"port": "COM3", "read_budget": 16}},
            "res": {
                "camera": 0,
                "serial": {
                    "port": "COM3",
                    "baudrate": 115200,
                    "read_budget": 16,
                    "decode_budget": 128,
                    "interval": 0.002,
                },
            },
        },
        {"case": "unknown key", "config": {"cameras": 1}, "error": True},
        {"case": "bad zone logging", "config": "zone_logging: first\n", "error": True},
        {"case": "zero interval", "config": {"frame_interval": 0}, "error": True},
        {"case": "zero budget", "config": {"serial": {"decode_budget": 0}}, "error": True},
        {"case": "not a mapping", "config": "- 1\n- 2\n", "error": True},
    ]

    for ci, case in enumerate(test_cases):
        print(f"\n[{ci + 1}/{len(test_cases)}] Testing: {case['case']}")
        if case.get("error"):
            with pytest.raises(jsonschema.ValidationError):
                virtual_tracker.load_session_config(case["config"])
            continue
        cfg = virtual_tracker.load_session_config(case["config"])
        for key, value in case["res"].items():
            assert cfg[key] == value, f"Case `{case['case']}` failed for `{key}`"
        assert cfg["frame_interval"] > 0


def test_load_session_config_file(temp_dir):
    """
    Test session configuration loaded from a file and input immutability
    """

    import virtual_tracker

    path = temp_dir / "session.yaml"
    path.write_text("camera: 2\noutput_dir: ~/data\n")
    for config in (path, str(path)):
        cfg = virtual_tracker.load_session_config(config)
        assert cfg["camera"] == 2
        assert cfg["output_dir"] == "~/data"

    src = {"serial": {"port": "COM1"}}
    virtual_tracker.load_session_config(src)
    assert src == {"serial": {"port": "COM1"}}


class Device:
    pass


def test_settings_persistence(temp_dir):
    """
    Test saving, loading and applying of camera and tracker settings
    """

    import virtual_tracker

    path = temp_dir / "settings.yaml"

    # missing file: defaults
    settings = virtual_tracker.load_settings(path)
    assert settings == virtual_tracker.default_settings
    assert settings is not virtual_tracker.default_settings
    assert virtual_tracker.load_settings(None)["tracker"]["hue"] == -2
    assert virtual_tracker.load_settings(path, single_pointer=True)["tracker"]["quantity"] == 1
    assert "quantity" not in virtual_tracker.default_settings["tracker"]

    camera, tracker = Device(), Device()
    camera.exposure = -7
    camera.mirror = (True, False)
    tracker.hue = 10
    tracker.roi = [0.0, 0.0, 0.3]
    tracker.quantity = 3
    virtual_tracker.save_settings(path, camera, tracker)

    settings = virtual_tracker.load_settings(path)
    assert settings["camera"] == {"exposure": -7, "mirror": [True, False]}
    assert settings["tracker"] == {"hue": 10, "roi": [0.0, 0.0, 0.3], "quantity": 3}
    assert virtual_tracker.load_settings(path, single_pointer=True)["tracker"]["quantity"] == 1

    camera2, tracker2 = Device(), Device()
    camera2.exposure = 0
    camera2.mirror = (False, False)
    tracker2.hue = 0
    tracker2.roi = None
    virtual_tracker.apply_settings(settings, camera2, tracker2)
    assert camera2.exposure == -7
    assert camera2.mirror == (True, False)
    assert tracker2.hue == 10
    assert tracker2.roi == [0.0, 0.0, 0.3]
    assert not hasattr(tracker2, "quantity")  # unsupported settings are skipped
