"""Serial device setup for serial-term.

Contains:
- log_device_info: Log information about a serial device
- open_serial: Open and configure a serial port
- list_ports: Enumerate serial ports and their /dev/serial/by-id aliases
"""

import logging
import os
from dataclasses import dataclass

import serial
import serial.tools.list_ports

from common.config import SessionConfig

logger = logging.getLogger(__name__)

BY_ID_DIR = "/dev/serial/by-id"


@dataclass
class PortInfo:
    """A serial port found on the system."""

    device: str
    description: str = ""
    hwid: str = ""
    by_id: str | None = None


def log_device_info(device: str) -> None:
    """Log information about a serial device."""
    real_path = os.path.realpath(device)
    if real_path.startswith("/dev/pts/"):
        logger.info(f"Device: {device} -> {real_path} (pty)")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device == real_path]
    if len(ports) == 0:
        logger.info(f"Device: {device} (not in port list)")
        return

    info = ports[0]
    logger.info(f"Device: {info.device}")
    logger.info(f"Description: {info.description}")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")


def open_serial(device: str, config: SessionConfig) -> serial.Serial:
    """Open and configure a serial port.

    Raises serial.SerialException if the port cannot be opened.
    """
    log_device_info(device)
    ser = serial.Serial(
        port=device,
        baudrate=config.baudrate,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=config.rtscts,
        timeout=config.read_timeout_s,
        write_timeout=config.write_timeout_s,
    )
    logger.debug(f"Serial port: {device} baudrate={ser.baudrate}, rtscts={ser.rtscts}")
    return ser


def _by_id_aliases() -> dict[str, str]:
    """Map real device paths to their /dev/serial/by-id symlinks."""
    aliases: dict[str, str] = {}
    try:
        names = sorted(os.listdir(BY_ID_DIR))
    except OSError:
        return aliases
    for name in names:
        link = os.path.join(BY_ID_DIR, name)
        aliases[os.path.realpath(link)] = link
    return aliases


def list_ports() -> list[PortInfo]:
    """Return all serial ports known to the system, sorted by device path."""
    aliases = _by_id_aliases()
    ports = [
        PortInfo(
            device=p.device,
            description=p.description or "",
            hwid=p.hwid or "",
            by_id=aliases.get(os.path.realpath(p.device)),
        )
        for p in serial.tools.list_ports.comports()
    ]
    return sorted(ports, key=lambda p: p.device)
