"""SysEx frame classification and validation.

Frame layout::

    +------+--------------+------------+-----------+---------+-------------+----------+------+
    | F0   | Manufacturer | Machine ID | Device ID | Command |   Payload   | Checksum | F7   |
    | [0]  | [1] 0x3E     | [2] 0x04   | [3]       | [4]     | variable    | 1 byte   | last |
    +------+--------------+------------+-----------+---------+-------------+----------+------+

- Dumps (commands 0x00, 0x01, 0x08) carry a 7-bit additive checksum over
  a fixed window, see :class:`~.commands.MessageType`.
- Requests (commands 0x40, 0x41, 0x48) carry no checksum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..utils.checksum import compute_checksum
from .commands import (
    MACHINE_ID,
    MANUFACTURER_ID,
    MIN_FRAME_SIZE,
    OFF_COMMAND,
    OFF_DEVICE_ID,
    OFF_MACHINE,
    OFF_MANUFACTURER,
    SYSEX_END,
    SYSEX_START,
    Command,
    MessageType,
)
from .errors import (
    IncompleteMessage,
    InvalidChecksum,
    MalformedMessage,
    UnknownCommandByte,
    WrongMachineID,
    WrongManufacturerID,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Result of classifying a complete SysEx frame."""

    message_type: MessageType
    command: Command
    device_id: int
    data: bytes

    @property
    def is_request(self) -> bool:
        return self.command.is_request

    @property
    def is_response(self) -> bool:
        return not self.is_request

    def __repr__(self) -> str:
        polarity = "request" if self.is_request else "response"
        return (
            f"Classification({self.message_type.name}, {polarity}, "
            f"device_id={self.device_id}, len={len(self.data)})"
        )


def classify(data: bytes) -> Classification:
    """Classify and validate a complete SysEx frame.

    Checks run in a fixed order and the first failure wins: framing,
    manufacturer, machine, command, checksum position, checksum value.

    Args:
        data: One complete frame, ``F0`` through ``F7``.

    Returns:
        The resolved :class:`Classification`.

    Raises:
        MalformedMessage: Missing start or end marker.
        IncompleteMessage: Frame truncated before its checksum.
        WrongManufacturerID: Byte 1 is not ``0x3E``.
        WrongMachineID: Byte 2 is not ``0x04``.
        UnknownCommandByte: Byte 4 is not a known command.
        InvalidChecksum: Stored and computed checksums differ.
    """
    data = bytes(data)

    if not data or data[0] != SYSEX_START:
        raise MalformedMessage("Frame does not start with 0xF0", data)
    if len(data) < MIN_FRAME_SIZE:
        raise IncompleteMessage(
            f"Frame is {len(data)} bytes, need at least {MIN_FRAME_SIZE}", data
        )
    if data[-1] != SYSEX_END:
        raise MalformedMessage("Frame does not end with 0xF7", data)

    if data[OFF_MANUFACTURER] != MANUFACTURER_ID:
        raise WrongManufacturerID(data[OFF_MANUFACTURER], data)
    if data[OFF_MACHINE] != MACHINE_ID:
        raise WrongMachineID(data[OFF_MACHINE], data)

    raw_command = data[OFF_COMMAND]
    try:
        command = Command(raw_command)
    except ValueError:
        raise UnknownCommandByte(raw_command, data) from None
    message_type = MessageType.from_command(command)

    if not command.is_request:
        # Checksum byte must sit before the end marker
        if message_type.checksum_index >= len(data) - 1:
            raise IncompleteMessage(
                f"{message_type.name} needs {message_type.frame_length} bytes, "
                f"got {len(data)}",
                data,
            )
        expected = compute_checksum(
            data, message_type.checksum_start, message_type.checksum_end
        )
        received = data[message_type.checksum_index]
        if received != expected:
            raise InvalidChecksum(received, expected, data)

    result = Classification(
        message_type=message_type,
        command=command,
        device_id=data[OFF_DEVICE_ID],
        data=data,
    )
    logger.debug("Classified %d-byte frame as %r", len(data), result)
    return result


def is_request(command: int) -> bool:
    """True only for the three explicit request command bytes."""
    try:
        return Command(command).is_request
    except ValueError:
        return False
