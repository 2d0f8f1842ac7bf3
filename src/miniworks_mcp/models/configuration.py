"""Machine configuration: the payload of an All Dump.

Layout (offsets relative to the start of the payload, frame byte 5)::

    +---------------------------+-----------------+
    | 20 program blocks         | Global settings |
    | 20 x 29 bytes (0-579)     | 6 bytes         |
    +---------------------------+-----------------+
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .parameters import (
    PROGRAM_BLOCK_SIZE,
    ParameterSet,
    block_from_bytes,
    block_to_bytes,
    check_parameters,
    default_parameters,
    parameters_from_dict,
    parameters_to_dict,
)
from .system import GlobalSettings

ALL_DUMP_PROGRAM_COUNT = 20
PROGRAMS_SIZE = ALL_DUMP_PROGRAM_COUNT * PROGRAM_BLOCK_SIZE  # 580 bytes
PAYLOAD_SIZE = PROGRAMS_SIZE + GlobalSettings.SIZE           # 586 bytes


@dataclass
class MachineConfiguration:
    """All stored programs plus the global settings."""

    programs: list[ParameterSet] = field(
        default_factory=lambda: [default_parameters() for _ in range(ALL_DUMP_PROGRAM_COUNT)]
    )
    globals: GlobalSettings = field(default_factory=GlobalSettings)

    def validate(self) -> None:
        """Raise ``ValueError`` if the configuration cannot be encoded."""
        if len(self.programs) != ALL_DUMP_PROGRAM_COUNT:
            raise ValueError(
                f"All Dump holds {ALL_DUMP_PROGRAM_COUNT} programs, got {len(self.programs)}"
            )
        for params in self.programs:
            check_parameters(params)
        self.globals.validate()

    def to_bytes(self) -> bytes:
        """Serialize to the 586-byte All Dump payload."""
        self.validate()
        buf = bytearray()
        for params in self.programs:
            buf.extend(block_to_bytes(params))
        buf.extend(self.globals.to_bytes())
        return bytes(buf)

    @classmethod
    def from_bytes(cls, data: bytes) -> MachineConfiguration:
        if len(data) < PAYLOAD_SIZE:
            raise ValueError(
                f"All Dump payload must be {PAYLOAD_SIZE} bytes, got {len(data)}"
            )
        programs = [
            block_from_bytes(data[i * PROGRAM_BLOCK_SIZE : (i + 1) * PROGRAM_BLOCK_SIZE])
            for i in range(ALL_DUMP_PROGRAM_COUNT)
        ]
        settings = GlobalSettings.from_bytes(data[PROGRAMS_SIZE:PAYLOAD_SIZE])
        return cls(programs=programs, globals=settings)

    def to_dict(self) -> dict:
        return {
            "programs": [parameters_to_dict(p) for p in self.programs],
            "globals": self.globals.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> MachineConfiguration:
        return cls(
            programs=[parameters_from_dict(p) for p in data["programs"]],
            globals=GlobalSettings.from_dict(data["globals"]),
        )

    def __repr__(self) -> str:
        return (
            f"MachineConfiguration(programs={len(self.programs)}, "
            f"device_id={self.globals.device_id})"
        )
