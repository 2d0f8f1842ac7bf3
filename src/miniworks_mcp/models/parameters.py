"""Program parameter catalogue for the MiniWorks 4-Pole.

A program is 29 single-byte parameters in a fixed wire order. Single
program dumps prefix them with the program number; the All Dump packs
20 programs back to back without it.

Layout of a program block (offsets relative to block start)::

    +-----------+-----------+---------+---------+-----------+-----------+--------+---------+
    | VCF ADSR  | VCA ADSR  | Env Amt | LFO     | Mod Amts  | Mod Srcs  | Levels | Trigger |
    | 0-3       | 4-7       | 8-9     | 10-13   | 14-17     | 18-21     | 22-25  | 26-28   |
    +-----------+-----------+---------+---------+-----------+-----------+--------+---------+
"""

from __future__ import annotations

from enum import Enum, IntEnum

PROGRAM_BLOCK_SIZE = 29

ParameterSet = dict["Parameter", int]


class LFOShape(IntEnum):
    SINE = 0
    TRIANGLE = 1
    SAWTOOTH = 2
    PULSE = 3
    SAMPLE_HOLD = 4


class ModulationSource(IntEnum):
    OFF = 0
    LFO = 1
    LFO_MOD_WHEEL = 2
    LFO_AFTERTOUCH = 3
    LFO_VCA_ENVELOPE = 4
    VCF_ENVELOPE = 5
    VCA_ENVELOPE = 6
    SIGNAL_ENVELOPE = 7
    VELOCITY_VCA_ENVELOPE = 8
    VELOCITY = 9
    KEYTRACK = 10
    PITCH_BEND = 11
    MOD_WHEEL = 12
    AFTERTOUCH = 13
    BREATH_CONTROL = 14
    FOOT_CONTROLLER = 15


class TriggerSource(IntEnum):
    AUDIO = 0
    MIDI = 1
    ALL = 2


class TriggerMode(IntEnum):
    MULTI = 0
    SINGLE = 1


class Parameter(Enum):
    """Program parameter slots.

    Value tuple: (label, block offset, minimum, maximum, default, CC number).
    ``PROGRAM_NUMBER`` has no block offset; it sits in front of the block
    in single program dumps.
    """

    PROGRAM_NUMBER = ("Program Number", None, 0, 39, 0, None)

    VCF_ENVELOPE_ATTACK = ("VCF Envelope Attack", 0, 0, 127, 64, 14)
    VCF_ENVELOPE_DECAY = ("VCF Envelope Decay", 1, 0, 127, 64, 15)
    VCF_ENVELOPE_SUSTAIN = ("VCF Envelope Sustain", 2, 0, 127, 64, 16)
    VCF_ENVELOPE_RELEASE = ("VCF Envelope Release", 3, 0, 127, 64, 17)

    VCA_ENVELOPE_ATTACK = ("VCA Envelope Attack", 4, 0, 127, 64, 18)
    VCA_ENVELOPE_DECAY = ("VCA Envelope Decay", 5, 0, 127, 64, 19)
    VCA_ENVELOPE_SUSTAIN = ("VCA Envelope Sustain", 6, 0, 127, 64, 20)
    VCA_ENVELOPE_RELEASE = ("VCA Envelope Release", 7, 0, 127, 64, 21)

    VCF_ENVELOPE_CUTOFF_AMOUNT = ("VCF Envelope Cutoff Amount", 8, 0, 127, 0, 22)
    VCA_ENVELOPE_VOLUME_AMOUNT = ("VCA Envelope Volume Amount", 9, 0, 127, 0, 23)

    LFO_SPEED = ("LFO Speed", 10, 0, 127, 40, 24)
    LFO_SPEED_MODULATION_AMOUNT = ("LFO Speed Modulation Amount", 11, 0, 127, 64, 26)
    LFO_SHAPE = ("LFO Shape", 12, 0, 4, 0, 25)
    LFO_SPEED_MODULATION_SOURCE = ("LFO Speed Modulation Source", 13, 0, 15, 0, 27)

    CUTOFF_MODULATION_AMOUNT = ("Cutoff Modulation Amount", 14, 0, 127, 64, 70)
    RESONANCE_MODULATION_AMOUNT = ("Resonance Modulation Amount", 15, 0, 127, 64, 72)
    VOLUME_MODULATION_AMOUNT = ("Volume Modulation Amount", 16, 0, 127, 64, 74)
    PANNING_MODULATION_AMOUNT = ("Panning Modulation Amount", 17, 0, 127, 64, 76)

    CUTOFF_MODULATION_SOURCE = ("Cutoff Modulation Source", 18, 0, 15, 0, 71)
    RESONANCE_MODULATION_SOURCE = ("Resonance Modulation Source", 19, 0, 15, 0, 73)
    VOLUME_MODULATION_SOURCE = ("Volume Modulation Source", 20, 0, 15, 0, 75)
    PANNING_MODULATION_SOURCE = ("Panning Modulation Source", 21, 0, 15, 0, 77)

    CUTOFF = ("Cutoff", 22, 0, 127, 127, 78)
    RESONANCE = ("Resonance", 23, 0, 127, 0, 79)
    VOLUME = ("Volume", 24, 0, 127, 127, 9)
    PANNING = ("Panning", 25, 0, 127, 64, 10)

    GATE_TIME = ("Gate Time", 26, 0, 127, 16, 80)
    TRIGGER_SOURCE = ("Trigger Source", 27, 0, 2, 0, 81)
    TRIGGER_MODE = ("Trigger Mode", 28, 0, 1, 0, 82)

    def __init__(
        self,
        label: str,
        offset: int | None,
        minimum: int,
        maximum: int,
        default: int,
        cc: int | None,
    ) -> None:
        self.label = label
        self.offset = offset
        self.minimum = minimum
        self.maximum = maximum
        self.default = default
        self.cc = cc

    @property
    def key(self) -> str:
        """Lower-case name used in JSON files and tool arguments."""
        return self.name.lower()

    @property
    def choices(self) -> type[IntEnum] | None:
        """Named value enumeration for selector parameters, if any."""
        if self is Parameter.LFO_SHAPE:
            return LFOShape
        if self is Parameter.TRIGGER_SOURCE:
            return TriggerSource
        if self is Parameter.TRIGGER_MODE:
            return TriggerMode
        if self in MODULATION_SOURCE_PARAMETERS:
            return ModulationSource
        return None

    def in_range(self, value: int) -> bool:
        return self.minimum <= value <= self.maximum

    def clamp(self, value: int) -> int:
        return max(self.minimum, min(self.maximum, value))

    @classmethod
    def from_key(cls, key: str) -> Parameter:
        """Resolve a parameter from its key, enum name or label."""
        normalized = key.strip().lower().replace(" ", "_").replace("-", "_")
        for parameter in cls:
            if normalized in (parameter.key, parameter.label.lower().replace(" ", "_")):
                return parameter
        raise ValueError(f"Unknown parameter '{key}'")

    @classmethod
    def from_cc(cls, cc: int) -> Parameter | None:
        for parameter in cls:
            if parameter.cc == cc:
                return parameter
        return None


MODULATION_SOURCE_PARAMETERS = frozenset({
    Parameter.LFO_SPEED_MODULATION_SOURCE,
    Parameter.CUTOFF_MODULATION_SOURCE,
    Parameter.RESONANCE_MODULATION_SOURCE,
    Parameter.VOLUME_MODULATION_SOURCE,
    Parameter.PANNING_MODULATION_SOURCE,
})

# Block parameters in wire order
PROGRAM_PARAMETERS: tuple[Parameter, ...] = tuple(
    sorted((p for p in Parameter if p.offset is not None), key=lambda p: p.offset)
)


def default_parameters(program: int | None = None) -> ParameterSet:
    """Return the device's initial program values.

    Args:
        program: If given, include ``PROGRAM_NUMBER`` with this value.
    """
    params: ParameterSet = {}
    if program is not None:
        params[Parameter.PROGRAM_NUMBER] = program
    for parameter in PROGRAM_PARAMETERS:
        params[parameter] = parameter.default
    return params


def check_parameters(params: ParameterSet) -> None:
    """Raise ``ValueError`` for any value outside its declared range."""
    for parameter, value in params.items():
        if not isinstance(parameter, Parameter):
            raise ValueError(f"Not a program parameter: {parameter!r}")
        if not parameter.in_range(value):
            raise ValueError(
                f"{parameter.label} must be {parameter.minimum}-{parameter.maximum}, "
                f"got {value}"
            )


def block_to_bytes(params: ParameterSet) -> bytes:
    """Serialize the 29 block parameters in wire order.

    Missing parameters take their default value. Values are not range
    checked here; callers validate first.
    """
    return bytes(params.get(p, p.default) & 0x7F for p in PROGRAM_PARAMETERS)


def block_from_bytes(data: bytes) -> ParameterSet:
    """Parse a 29-byte program block, clamping each value to its range."""
    if len(data) < PROGRAM_BLOCK_SIZE:
        raise ValueError(
            f"Program block must be {PROGRAM_BLOCK_SIZE} bytes, got {len(data)}"
        )
    return {p: p.clamp(data[p.offset]) for p in PROGRAM_PARAMETERS}


def parameters_to_dict(params: ParameterSet) -> dict:
    """Convert a parameter set to a JSON-serializable dictionary.

    Selector parameters also report the name of the chosen option.
    """
    result: dict = {}
    for parameter, value in params.items():
        choices = parameter.choices
        if choices is not None and value in {c.value for c in choices}:
            result[parameter.key] = {"value": value, "name": choices(value).name.lower()}
        else:
            result[parameter.key] = value
    return result


def parameters_from_dict(data: dict) -> ParameterSet:
    """Inverse of :func:`parameters_to_dict`; accepts plain ints or option names."""
    params: ParameterSet = {}
    for key, raw in data.items():
        parameter = Parameter.from_key(key)
        if isinstance(raw, dict):
            raw = raw["value"]
        if isinstance(raw, str):
            choices = parameter.choices
            if choices is None:
                raise ValueError(f"{parameter.label} takes a number, got {raw!r}")
            try:
                raw = choices[raw.upper()].value
            except KeyError:
                raise ValueError(
                    f"Unknown option {raw!r} for {parameter.label}. "
                    f"Valid: {[c.name.lower() for c in choices]}"
                ) from None
        params[parameter] = int(raw)
    return params
