"""Protocol error taxonomy.

Every failure raised while classifying, decoding or encoding a SysEx frame
is a :class:`ProtocolError`. Each one keeps the bytes that caused it so
callers can log or display the frame.
"""

from __future__ import annotations


class ProtocolError(Exception):
    """Base class for SysEx classification and codec failures."""

    def __init__(self, message: str, data: bytes = b"") -> None:
        super().__init__(message)
        self.data = bytes(data)

    @property
    def kind(self) -> str:
        return type(self).__name__


class MalformedMessage(ProtocolError):
    """Framing is structurally invalid (bad start or end marker)."""


class IncompleteMessage(ProtocolError):
    """The frame was truncated before its checksum."""


class UnknownCommandByte(ProtocolError):
    """The command byte is not one the device defines."""

    def __init__(self, command: int, data: bytes = b"") -> None:
        super().__init__(f"Unknown command byte 0x{command:02X}", data)
        self.command = command


class WrongManufacturerID(ProtocolError):
    """Byte 1 is not the Waldorf manufacturer ID."""

    def __init__(self, manufacturer_id: int, data: bytes = b"") -> None:
        super().__init__(f"Wrong manufacturer ID 0x{manufacturer_id:02X}", data)
        self.manufacturer_id = manufacturer_id


class WrongMachineID(ProtocolError):
    """Byte 2 is not the MiniWorks machine ID."""

    def __init__(self, machine_id: int, data: bytes = b"") -> None:
        super().__init__(f"Wrong machine ID 0x{machine_id:02X}", data)
        self.machine_id = machine_id


class InvalidChecksum(ProtocolError):
    """The stored checksum does not match the computed one."""

    def __init__(self, received: int, expected: int, data: bytes = b"") -> None:
        super().__init__(
            f"Invalid checksum 0x{received:02X} (expected 0x{expected:02X})", data
        )
        self.received = received
        self.expected = expected


class InvalidProgramNumber(ProtocolError):
    """A program index outside the device's 40 program slots."""

    def __init__(self, number: int, data: bytes = b"") -> None:
        super().__init__(f"Program number must be 0-39, got {number}", data)
        self.number = number
