"""Command byte constants, message types, and request builders.

Each dump kind has a response command (sent by the device) and a request
command (sent by the host). Requests are the response command plus 0x40.
"""

from __future__ import annotations

from enum import Enum, IntEnum

from .errors import InvalidProgramNumber

SYSEX_START = 0xF0
SYSEX_END = 0xF7
MANUFACTURER_ID = 0x3E  # Waldorf Electronics GmbH
MACHINE_ID = 0x04       # MiniWorks 4-Pole

HEADER = bytes([SYSEX_START, MANUFACTURER_ID, MACHINE_ID])
MIN_FRAME_SIZE = 6

# Fixed header positions
OFF_MANUFACTURER = 1
OFF_MACHINE = 2
OFF_DEVICE_ID = 3
OFF_COMMAND = 4

PROGRAM_COUNT = 40
MAX_DEVICE_ID = 126


class Command(IntEnum):
    """SysEx command bytes (byte 4 of every frame)."""

    PROGRAM_DUMP = 0x00
    PROGRAM_BULK_DUMP = 0x01
    ALL_DUMP = 0x08
    PROGRAM_DUMP_REQUEST = 0x40
    PROGRAM_BULK_DUMP_REQUEST = 0x41
    ALL_DUMP_REQUEST = 0x48

    @property
    def is_request(self) -> bool:
        return self in REQUEST_COMMANDS


REQUEST_COMMANDS = frozenset({
    Command.PROGRAM_DUMP_REQUEST,
    Command.PROGRAM_BULK_DUMP_REQUEST,
    Command.ALL_DUMP_REQUEST,
})


class MessageType(Enum):
    """Dump kinds with their addressing metadata.

    Value tuple: (response command, request command, checksum start,
    checksum end (exclusive), checksum index, response frame length).
    """

    PROGRAM_DUMP = (Command.PROGRAM_DUMP, Command.PROGRAM_DUMP_REQUEST, 4, 34, 35, 37)
    PROGRAM_BULK_DUMP = (
        Command.PROGRAM_BULK_DUMP, Command.PROGRAM_BULK_DUMP_REQUEST, 4, 34, 35, 37
    )
    ALL_DUMP = (Command.ALL_DUMP, Command.ALL_DUMP_REQUEST, 5, 590, 591, 593)

    def __init__(
        self,
        response_command: Command,
        request_command: Command,
        checksum_start: int,
        checksum_end: int,
        checksum_index: int,
        frame_length: int,
    ) -> None:
        self.response_command = response_command
        self.request_command = request_command
        self.checksum_start = checksum_start
        self.checksum_end = checksum_end
        self.checksum_index = checksum_index
        self.frame_length = frame_length

    @property
    def carries_program_number(self) -> bool:
        return self is not MessageType.ALL_DUMP

    @classmethod
    def from_command(cls, command: int) -> MessageType | None:
        """Look up the dump kind for a request or response command byte."""
        for message_type in cls:
            if command in (message_type.response_command, message_type.request_command):
                return message_type
        return None


def _check_device_id(device_id: int) -> None:
    if not 0 <= device_id <= MAX_DEVICE_ID:
        raise ValueError(f"Device ID must be 0-{MAX_DEVICE_ID}, got {device_id}")


def _check_program(program: int) -> None:
    if not 0 <= program < PROGRAM_COUNT:
        raise InvalidProgramNumber(program)


def build_request(command: Command, payload: bytes = b"", device_id: int = 0) -> bytes:
    """Build a request frame ``F0 3E 04 DEV CMD payload F7``."""
    _check_device_id(device_id)
    return HEADER + bytes([device_id, command.value]) + payload + bytes([SYSEX_END])


def build_program_dump_request(program: int, device_id: int = 0) -> bytes:
    """Ask the device to send one program.

    Args:
        program: Program index 0-39.
        device_id: Target device ID (global setting on the unit).
    """
    _check_program(program)
    return build_request(Command.PROGRAM_DUMP_REQUEST, bytes([program]), device_id)


def build_program_bulk_dump_request(program: int, device_id: int = 0) -> bytes:
    """Ask the device to send one program as part of a bulk transfer."""
    _check_program(program)
    return build_request(Command.PROGRAM_BULK_DUMP_REQUEST, bytes([program]), device_id)


def build_all_dump_request(device_id: int = 0) -> bytes:
    """Ask the device for all 20 programs plus the global settings."""
    return build_request(Command.ALL_DUMP_REQUEST, device_id=device_id)
