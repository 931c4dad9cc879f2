#
# sync_logger.py: external trigger synchronization logger
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements decoder of digital input events received over a serial port
# and logger correlating them with tracked position
#

"""
Sync Logger Module Overview
===========================

This module provides `SyncLogger`, which listens to digital input changes reported by a
microcontroller over a serial port and logs the tracked position at every rising edge. It is used to
synchronize video tracking with electrophysiological, imaging or behavioral data acquired by
another device which shares the same trigger lines.

Protocol:
    One byte per pin change:
        - bits 0-5: pin number (0-63);
        - bit 6: level; 0 means the pin went high, 1 means it went low;
        - bit 7: must be 0. Bytes with bit 7 set belong to an extended protocol which is not
          supported: they are dropped and counted.

Counting:
    Every pin has a toggle counter. The first event of a pin sets its counter to 1 if the pin is
    high, or to 0 if it is low; every following event increments it. Thus even counts correspond
    to low states and odd counts to high states.

Log format (CSV with header `time, x, y, pin, count`):
    One line per rising edge, written with an open-append-close cycle so that a crash loses at
    most the line being written.

Key Classes:
    - `SyncLogger`: decoder and logger
    - `SerialTransport`: pyserial port wrapper
"""

import numpy as np, serial, time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union
from serial.tools import list_ports
from . import logger_get
from . import environment as env
from .config import (
    Key_Baudrate,
    Key_DecodeBudget,
    Key_Interval,
    Key_OutputDir,
    Key_Port,
    Key_ReadBudget,
    Key_Serial,
    default_serial_config,
    load_session_config,
)
from .exceptions import DeviceUnavailable, ProtocolUnsupported
from .log_support import append_lines, create_log
from .scheduler import RepeatingTimer

# protocol masks
PIN_MASK = 0x3F
LEVEL_MASK = 0x40
EXTENDED_MASK = 0x80
PIN_COUNT = 64


def decode_event(value: int) -> Tuple[int, bool]:
    """Decode one protocol byte.

    Args:
        value (int): Received byte.

    Returns:
        Tuple[int, bool]: Pin number and state (True: high).

    Raises:
        ProtocolUnsupported: If the byte belongs to the extended protocol.
    """
    if value & EXTENDED_MASK:
        raise ProtocolUnsupported(value)
    return value & PIN_MASK, (value & LEVEL_MASK) == 0


class TransportInterface(ABC):
    """Byte stream transport consumed by `SyncLogger`."""

    @property
    @abstractmethod
    def bytes_available(self) -> int:
        """Number of bytes which can be read without blocking."""

    @abstractmethod
    def read(self, size: int) -> bytes:
        """Read at most `size` bytes."""

    def close(self):
        """Close the transport."""


class SerialTransport(TransportInterface):
    """Serial port transport on top of pyserial."""

    def __init__(self, port: Optional[str] = None, baudrate: int = 115200, timeout: float = 1e-3):
        """
        Constructor.

        Args:
            port (str, optional): Serial port name. If None, `VT_SERIAL_PORT` environment variable
                is used.
            baudrate (int, optional): Transmission speed. Default 115200.
            timeout (float, optional): Read timeout in seconds. Default 1 ms.

        Raises:
            DeviceUnavailable: If the port cannot be opened.
        """
        if port is None:
            port = env.get_serial_port()
        try:
            self._port = serial.Serial(port, baudrate, timeout=timeout)
        except (serial.SerialException, OSError, ValueError) as e:
            raise DeviceUnavailable(
                f"Could not open serial device '{port}': {e}. "
                f"Available ports: {available_ports()}"
            ) from e
        logger_get().info(f"Serial port '{port}' opened at {baudrate} baud")

    @property
    def bytes_available(self) -> int:
        return self._port.in_waiting

    def read(self, size: int) -> bytes:
        return self._port.read(size)

    def close(self):
        if self._port.is_open:
            self._port.close()
            logger_get().info(f"Serial port '{self._port.port}' closed")


def available_ports() -> list:
    """Returns names of serial ports present in the system."""
    return [p.device for p in list_ports.comports()]


class SyncLogger:
    """Logs tracked position at every rising edge of external digital inputs."""

    log_header = "time, x, y, pin, count\n"
    app_name = "TrackerSync"

    def __init__(
        self,
        transport: TransportInterface,
        position_source: Any,
        *,
        output: Optional[Union[str, Path]] = None,
        output_dir: Optional[Union[str, Path]] = None,
        read_budget: int = default_serial_config[Key_ReadBudget],
        decode_budget: int = default_serial_config[Key_DecodeBudget],
    ):
        """
        Constructor.

        Args:
            transport (TransportInterface): Byte stream with pin events.
            position_source (Any): Object with a `position` attribute, or a callable, returning
                an `(N, 2)` array of normalized positions; the first pointer is logged.
            output (Union[str, Path], optional): Log file. If None, a timestamped file is created in
                `output_dir`.
            output_dir (Union[str, Path], optional): Folder for the log. If None, the
                `VT_OUTPUT_DIR` environment variable or `~/Documents` is used, with `TrackerSync`
                sub-folder.
            read_budget (int, optional): Maximum number of bytes read per tick. Default 128.
            decode_budget (int, optional): Maximum number of queued bytes decoded per tick.
                Default 128.

        Raises:
            IOFailure: If the log file cannot be created.
        """
        if read_budget < 1 or decode_budget < 1:
            raise ValueError("read_budget and decode_budget must be positive")
        self._transport = transport
        self._position_source: Callable[[], Any] = (
            position_source
            if callable(position_source)
            else lambda: position_source.position
        )
        self._read_budget = read_budget
        self._decode_budget = decode_budget
        self._queue = bytearray()
        self._count = np.zeros(PIN_COUNT, dtype=np.int64)
        self._established = np.zeros(PIN_COUNT, dtype=bool)
        self._dropped = 0
        self._timer: Optional[RepeatingTimer] = None

        self._output = create_log(self.log_header, self.app_name, output, output_dir)
        self._start_time = time.time()
        logger_get().info(f"Sync log: {self._output}")

    @classmethod
    def from_config(
        cls, config: Union[str, Path, dict, None], position_source: Any
    ) -> "SyncLogger":
        """Create a logger on a serial port described by session configuration.

        Args:
            config: Session configuration (see `load_session_config()`); `serial` section is used.
            position_source: See constructor.

        Raises:
            DeviceUnavailable: If the serial port cannot be opened.
        """
        cfg = load_session_config(config)
        serial_cfg = cfg.get(Key_Serial, default_serial_config)
        transport = SerialTransport(serial_cfg.get(Key_Port), serial_cfg[Key_Baudrate])
        output_dir = cfg.get(Key_OutputDir)
        try:
            return cls(
                transport,
                position_source,
                output_dir=None if output_dir is None else Path(output_dir).expanduser() / cls.app_name,
                read_budget=serial_cfg[Key_ReadBudget],
                decode_budget=serial_cfg[Key_DecodeBudget],
            )
        except Exception:
            transport.close()
            raise

    def tick(self):
        """Read pending bytes and decode queued events, both within per-tick budgets.

        Undecoded bytes stay queued for the next tick, including the byte whose log line could not
        be written.

        Raises:
            IOFailure: If the log file cannot be written.
        """
        available = min(self._transport.bytes_available, self._read_budget)
        if available > 0:
            self._queue.extend(self._transport.read(available))

        n = min(len(self._queue), self._decode_budget)
        for _ in range(n):
            # dequeue only once processed: a failed write leaves the byte queued
            self._process(self._queue[0])
            del self._queue[0]

    def _process(self, value: int):
        try:
            pin, state = decode_event(value)
        except ProtocolUnsupported as e:
            self._dropped += 1
            logger_get().debug(f"{e}: dropped")
            return

        if self._established[pin]:
            count = int(self._count[pin]) + 1
        else:
            # a high state at start shifts the count by 1
            count = 1 if state else 0

        if state:
            x, y = self._current_position()
            append_lines(
                self._output,
                "%.4f,%.4f,%.4f,%i,%i\n" % (time.time() - self._start_time, x, y, pin, count),
            )
        self._established[pin] = True
        self._count[pin] = count

    def _current_position(self) -> Tuple[float, float]:
        position = np.asarray(self._position_source(), dtype=float).reshape(-1, 2)
        if len(position) == 0:
            return float("nan"), float("nan")
        return float(position[0, 0]), float(position[0, 1])

    def start(self, interval: float = default_serial_config[Key_Interval]) -> RepeatingTimer:
        """Call `tick()` every `interval` seconds on a background thread."""
        if self._timer is None:
            self._timer = RepeatingTimer(self.tick, interval, name="sync-logger")
        return self._timer.start()

    def stop(self):
        """Stop periodic ticks; queued bytes stay queued."""
        if self._timer is not None:
            self._timer.stop()

    def close(self):
        """Stop ticks, then close the transport."""
        self.stop()
        self._transport.close()
        logger_get().info(f"Sync logger closed: {self.summary()}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def counts(self) -> Dict[int, int]:
        """Toggle count of every pin which reported at least one event."""
        return {int(pin): int(self._count[pin]) for pin in np.flatnonzero(self._established)}

    @property
    def dropped(self) -> int:
        """Number of extended protocol bytes dropped."""
        return self._dropped

    @property
    def pending(self) -> int:
        """Number of queued bytes not decoded yet."""
        return len(self._queue)

    @property
    def output(self) -> Path:
        """Log file path."""
        return self._output

    def summary(self) -> str:
        """Pins with positive counts formatted as `P<pin>:<count>` pairs."""
        return " ".join(
            f"P{pin:02d}:{count}" for pin, count in self.counts.items() if count > 0
        )
