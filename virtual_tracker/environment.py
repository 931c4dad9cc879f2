#
# environment.py: environment settings support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements functions to operate with various environment settings
#

import dotenv, os
from pathlib import Path
from typing import Optional, Any

# environment variable names
var_TestMode = "TEST_MODE"
var_CameraId = "VT_CAMERA_ID"
var_SerialPort = "VT_SERIAL_PORT"
var_OutputDir = "VT_OUTPUT_DIR"


def reload_env(custom_file: str = "env.ini"):
    """Reload environment variables from file
    custom_file - name of the custom env file to try first;
        CWD, and ../CWD are searched for the file;
        if it is None or does not exist, `.env` file is loaded
    """

    if get_test_mode():
        return

    env_file = dotenv.find_dotenv(custom_file, usecwd=True)

    dotenv.load_dotenv(
        dotenv_path=env_file if env_file else None, override=True
    )  # load environment variables from file


def get_var(var: Optional[str], default_val: Any = None) -> Any:
    """Returns environment variable value"""
    if var is not None and var.isupper():  # treat `var` as env. var. name
        ret = os.getenv(var)
        if ret is None:
            if default_val is None:
                raise Exception(
                    f"Please define environment variable {var} in `.env` or `env.ini` file located in your CWD"
                )
            else:
                ret = default_val
    else:  # treat `var` literally
        ret = var
    return ret


def get_test_mode() -> bool:
    """Returns enable status of test mode from environment"""
    return bool(os.getenv(var_TestMode))


def get_camera_id(default: Any = 0) -> Any:
    """Returns camera index or video source from environment; numeric strings become ints"""
    reload_env()  # reload environment variables from file
    camera_id = get_var(var_CameraId, default)
    if isinstance(camera_id, str) and camera_id.isnumeric():
        camera_id = int(camera_id)
    return camera_id


def get_serial_port() -> str:
    """Returns serial port name from environment"""
    reload_env()  # reload environment variables from file
    return get_var(var_SerialPort)


def get_output_dir(app_name: str) -> Path:
    """Returns the output directory for log files of the given application.

    `VT_OUTPUT_DIR` environment variable takes precedence; default is `~/Documents/<app_name>`.
    """
    reload_env()  # reload environment variables from file
    root = get_var(var_OutputDir, str(Path.home() / "Documents"))
    return Path(root) / app_name
