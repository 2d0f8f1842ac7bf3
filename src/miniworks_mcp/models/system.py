"""Global (machine) settings model.

The six global bytes sit at the end of an All Dump, right before the
checksum::

    +--------------+--------------+-----------+------------------+-------------+-----------+
    | MIDI Channel | MIDI Control | Device ID | Start-up Program | Note Number | Knob Mode |
    | 585          | 586          | 587       | 588              | 589         | 590       |
    +--------------+--------------+-----------+------------------+-------------+-----------+
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import IntEnum
from typing import ClassVar


class MIDIControl(IntEnum):
    """How controller data is sent and received."""

    OFF = 0
    CONTROLS = 1
    SIGNAL = 2  # signal envelope sent as breath controller


class KnobMode(IntEnum):
    JUMP = 0
    RELATIVE = 1


@dataclass
class GlobalSettings:
    """Global settings stored once per device."""

    SIZE: ClassVar[int] = 6
    RANGES: ClassVar[dict[str, tuple[int, int]]] = {
        "midi_channel": (0, 16),
        "midi_control": (0, 2),
        "device_id": (0, 126),
        "startup_program": (0, 39),
        "note_number": (0, 127),
        "knob_mode": (0, 1),
    }

    midi_channel: int = 1
    midi_control: int = MIDIControl.CONTROLS
    device_id: int = 0
    startup_program: int = 1
    note_number: int = 60
    knob_mode: int = KnobMode.RELATIVE

    def validate(self) -> None:
        """Raise ``ValueError`` if any setting is outside its range."""
        for f in fields(self):
            low, high = self.RANGES[f.name]
            value = getattr(self, f.name)
            if not low <= value <= high:
                raise ValueError(f"{f.name} must be {low}-{high}, got {value}")

    def to_bytes(self) -> bytes:
        self.validate()
        return bytes([
            self.midi_channel, int(self.midi_control), self.device_id,
            self.startup_program, self.note_number, int(self.knob_mode),
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> GlobalSettings:
        """Parse the 6 global bytes, clamping out-of-range values."""
        if len(data) < cls.SIZE:
            raise ValueError(f"Global settings need {cls.SIZE} bytes, got {len(data)}")
        values = {}
        for f, raw in zip(fields(cls), data[: cls.SIZE]):
            low, high = cls.RANGES[f.name]
            values[f.name] = max(low, min(high, raw))
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "midi_channel": self.midi_channel,
            "midi_control": MIDIControl(self.midi_control).name.lower(),
            "device_id": self.device_id,
            "startup_program": self.startup_program,
            "note_number": self.note_number,
            "knob_mode": KnobMode(self.knob_mode).name.lower(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> GlobalSettings:
        values = dict(data)
        if isinstance(values.get("midi_control"), str):
            values["midi_control"] = MIDIControl[values["midi_control"].upper()]
        if isinstance(values.get("knob_mode"), str):
            values["knob_mode"] = KnobMode[values["knob_mode"].upper()]
        return cls(**values)
