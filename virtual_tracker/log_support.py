#
# log_support.py: append-only CSV log support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements durable append-only log file helpers
#

import datetime
from pathlib import Path
from typing import Optional, Union
from . import environment as env
from .exceptions import IOFailure


def append_lines(filename: Union[str, Path], text: str):
    """Open file for appending, write text, flush and close.

    No file handle is kept between writes, so an abrupt termination loses at most the write in
    progress.

    Raises:
        IOFailure: On any OS error.
    """
    try:
        with open(filename, "a") as f:
            f.write(text)
            f.flush()
    except OSError as e:
        raise IOFailure(f"Cannot append to '{filename}': {e}") from e


def session_filename(output_dir: Union[str, Path]) -> Path:
    """Return timestamped log file path `<output_dir>/VT<yyyymmddHHMMSS>.csv`."""
    return Path(output_dir) / f"VT{datetime.datetime.now():%Y%m%d%H%M%S}.csv"


def create_log(
    header: str,
    app_name: str,
    output: Optional[Union[str, Path]] = None,
    output_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Create (or extend) a log file and write its header.

    Args:
        header (str): Header line, including the line terminator.
        app_name (str): Sub-folder name used when `output_dir` is not given.
        output (Union[str, Path], optional): Log file path. If None, a timestamped file in
            `output_dir` is used.
        output_dir (Union[str, Path], optional): Log folder. If None, `VT_OUTPUT_DIR` environment
            variable or `~/Documents` is used, with `app_name` sub-folder.

    Returns:
        Path: Log file path.

    Raises:
        IOFailure: If the folder or the file cannot be created.
    """
    if output is None:
        if output_dir is None:
            output_dir = env.get_output_dir(app_name)
        output = session_filename(Path(output_dir).expanduser())
    output = Path(output)
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailure(f"Cannot create folder '{output.parent}': {e}") from e
    append_lines(output, header)
    return output
