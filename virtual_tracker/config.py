#
# config.py: session configuration support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements session configuration parsing/validation and device settings persistence
#

"""
Session Configuration Module Overview
=====================================

Session configuration is given as YAML text, a path to a YAML file, or an equivalent dictionary,
and is validated against `session_config_schema`. Missing keys are filled with defaults.

**Session Configuration Schema (YAML)**:
```yaml
camera: 0                  # camera index or video source
output_dir: ~/Documents    # root folder for log files
frame_interval: 0.033      # frame acquisition interval, seconds
zone_logging: per_zone     # zone id written to track records: per_zone or last_hit
settings: ~/vt.yaml       # camera and tracker settings file
serial:
    port: COM3             # serial port name
    baudrate: 115200
    read_budget: 128       # max bytes read from the port per tick
    decode_budget: 128     # max queued bytes decoded per tick
    interval: 0.002        # serial tick interval, seconds
```

Device settings (camera exposure, tracker hue, etc.) are persisted between sessions with
`save_settings()` / `load_settings()` and applied with `apply_settings()`.
"""

import yaml, jsonschema, copy
from pathlib import Path
from typing import Any, Dict, Optional, Union
from . import logger_get
from .exceptions import IOFailure

# keys
Key_Camera = "camera"
Key_OutputDir = "output_dir"
Key_FrameInterval = "frame_interval"
Key_ZoneLogging = "zone_logging"
Key_Settings = "settings"
Key_Serial = "serial"
Key_Port = "port"
Key_Baudrate = "baudrate"
Key_ReadBudget = "read_budget"
Key_DecodeBudget = "decode_budget"
Key_Interval = "interval"

# zone logging modes
ZoneLogging_PerZone = "per_zone"
ZoneLogging_LastHit = "last_hit"

# schema YAML
session_config_schema_text = f"""
type: object
additionalProperties: false
properties:
    {Key_Camera}:
        type: [integer, string]
        description: Camera index or video source
    {Key_OutputDir}:
        type: string
        description: Root folder for log files
    {Key_FrameInterval}:
        type: number
        exclusiveMinimum: 0
        description: Frame acquisition interval in seconds
    {Key_ZoneLogging}:
        type: string
        enum: [{ZoneLogging_PerZone}, {ZoneLogging_LastHit}]
        description: Zone id written to track records when several zones are hit
    {Key_Settings}:
        type: string
        description: Camera and tracker settings file, loaded at start and saved at teardown
    {Key_Serial}:
        type: object
        additionalProperties: false
        properties:
            {Key_Port}:
                type: string
                description: Serial port name
            {Key_Baudrate}:
                type: integer
                minimum: 1
            {Key_ReadBudget}:
                type: integer
                minimum: 1
                description: Maximum number of bytes read from the port per tick
            {Key_DecodeBudget}:
                type: integer
                minimum: 1
                description: Maximum number of queued bytes decoded per tick
            {Key_Interval}:
                type: number
                exclusiveMinimum: 0
                description: Serial tick interval in seconds
"""

session_config_schema = yaml.safe_load(session_config_schema_text)

default_serial_config: Dict[str, Any] = {
    Key_Baudrate: 115200,
    Key_ReadBudget: 128,
    Key_DecodeBudget: 128,
    Key_Interval: 0.002,
}

default_session_config: Dict[str, Any] = {
    Key_Camera: 0,
    Key_FrameInterval: 1.0 / 30,
    Key_ZoneLogging: ZoneLogging_PerZone,
}

# persisted device settings
camera_settings = ("resolution", "exposure", "mirror")
tracker_settings = ("hue", "population", "shrink", "area", "roi", "quantity")

default_settings: Dict[str, Dict[str, Any]] = {
    "camera": {"exposure": -5},
    "tracker": {"hue": -2, "population": 0.05, "area": 0.08},
}


def load_session_config(config: Union[str, Path, dict, None]) -> dict:
    """Parse, validate and complete session configuration.

    Args:
        config (Union[str, Path, dict, None]): YAML text, YAML file path, or dictionary.
            None means all defaults.

    Returns:
        dict: Validated configuration with defaults filled in.

    Raises:
        jsonschema.ValidationError: If the configuration does not match `session_config_schema`.
    """
    if config is None:
        cfg: Any = {}
    elif isinstance(config, dict):
        cfg = copy.deepcopy(config)
    elif isinstance(config, Path) or (
        isinstance(config, str) and "\n" not in config and Path(config).is_file()
    ):
        with open(config, "r") as f:
            cfg = yaml.safe_load(f)
    else:
        cfg = yaml.safe_load(config)
    if cfg is None:
        cfg = {}

    jsonschema.validate(instance=cfg, schema=session_config_schema)

    ret = {**default_session_config, **cfg}
    if Key_Serial in cfg:
        ret[Key_Serial] = {**default_serial_config, **cfg[Key_Serial]}
    return ret


def save_settings(filename: Union[str, Path], camera: Any = None, tracker: Any = None):
    """Save camera and tracker settings to a YAML file.

    Only attributes present on the given objects are saved.

    Raises:
        IOFailure: If the file cannot be written.
    """

    def collect(obj, names):
        ret = {}
        for name in names:
            if obj is not None and hasattr(obj, name):
                value = getattr(obj, name)
                if hasattr(value, "tolist"):
                    value = value.tolist()
                elif isinstance(value, tuple):
                    value = list(value)
                ret[name] = value
        return ret

    settings = {
        "camera": collect(camera, camera_settings),
        "tracker": collect(tracker, tracker_settings),
    }
    try:
        with open(filename, "w") as f:
            yaml.safe_dump(settings, f)
    except OSError as e:
        raise IOFailure(f"Cannot save settings to '{filename}': {e}") from e
    logger_get().info(f"Settings saved to {filename}")


def load_settings(
    filename: Optional[Union[str, Path]], single_pointer: bool = False
) -> Dict[str, Dict[str, Any]]:
    """Load camera and tracker settings; return defaults if the file does not exist.

    Args:
        filename (Union[str, Path], optional): Settings YAML file.
        single_pointer (bool, optional): Force tracker `quantity` to 1, as required by sessions
            synchronized with external triggers, which log the first pointer only.
    """
    if filename is not None and Path(filename).is_file():
        with open(filename, "r") as f:
            settings = yaml.safe_load(f) or {}
        ret = {
            "camera": dict(settings.get("camera") or {}),
            "tracker": dict(settings.get("tracker") or {}),
        }
    else:
        ret = copy.deepcopy(default_settings)
    if single_pointer:
        ret["tracker"]["quantity"] = 1
    return ret


def apply_settings(settings: Dict[str, Dict[str, Any]], camera: Any = None, tracker: Any = None):
    """Assign loaded settings to camera and tracker attributes.

    Settings which the target object does not support are skipped with a warning.
    """
    for obj, section in ((camera, "camera"), (tracker, "tracker")):
        if obj is None:
            continue
        for name, value in settings.get(section, {}).items():
            if not hasattr(obj, name):
                logger_get().warning(f"{section} setting '{name}' is not supported, skipped")
                continue
            try:
                setattr(obj, name, tuple(value) if isinstance(value, list) and name != "roi" else value)
            except AttributeError:
                logger_get().warning(f"{section} setting '{name}' is read-only, skipped")
