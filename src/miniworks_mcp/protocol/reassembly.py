"""Reassembly of transport packets into MIDI messages.

The transport hands over byte chunks of any size. SysEx frames may span
many chunks; channel-voice messages are two or three bytes and may also
be split. :class:`PacketReassembler` keeps the partial state between
chunks and emits complete events.

Anomalies are handled locally: a new ``F0`` in the middle of a SysEx
frame discards the partial frame and starts over, stray data bytes and
stray ``F7`` are dropped. Semantic validation of SysEx frames happens
later in :func:`~.framing.classify`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Union, get_args

from .commands import SYSEX_END, SYSEX_START

logger = logging.getLogger(__name__)

NOTE_OFF = 0x80
NOTE_ON = 0x90
POLY_AFTERTOUCH = 0xA0
CONTROL_CHANGE = 0xB0
PROGRAM_CHANGE = 0xC0
CHANNEL_AFTERTOUCH = 0xD0
PITCH_BEND = 0xE0

# Number of data bytes following each channel-voice status nibble
DATA_LENGTHS = {
    NOTE_OFF: 2,
    NOTE_ON: 2,
    POLY_AFTERTOUCH: 2,
    CONTROL_CHANGE: 2,
    PROGRAM_CHANGE: 1,
    CHANNEL_AFTERTOUCH: 1,
    PITCH_BEND: 2,
}

# Data bytes following system common status bytes (F1-F6)
SYSTEM_COMMON_LENGTHS = {0xF1: 1, 0xF2: 2, 0xF3: 1, 0xF4: 0, 0xF5: 0, 0xF6: 0}


@dataclass(frozen=True)
class SysExFrame:
    data: bytes

    def __repr__(self) -> str:
        return f"SysExFrame(len={len(self.data)}, data={self.data[:8].hex(' ')}...)"


@dataclass(frozen=True)
class NoteOn:
    channel: int
    note: int
    velocity: int


@dataclass(frozen=True)
class NoteOff:
    channel: int
    note: int
    velocity: int = 0


@dataclass(frozen=True)
class ControlChange:
    channel: int
    control: int
    value: int


@dataclass(frozen=True)
class ProgramChange:
    channel: int
    program: int


@dataclass(frozen=True)
class PitchBend:
    channel: int
    value: int  # 14-bit, 8192 is centre


@dataclass(frozen=True)
class Aftertouch:
    channel: int
    pressure: int


@dataclass(frozen=True)
class PolyAftertouch:
    channel: int
    note: int
    pressure: int


ChannelMessage = Union[
    NoteOn, NoteOff, ControlChange, ProgramChange, PitchBend, Aftertouch, PolyAftertouch
]
MidiEvent = Union[SysExFrame, ChannelMessage]


class ReassemblyState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


def parse_channel_message(status: int, data: bytes) -> ChannelMessage:
    """Build a channel-voice event from a status byte and its data bytes."""
    kind = status & 0xF0
    channel = status & 0x0F
    expected = DATA_LENGTHS.get(kind)
    if expected is None:
        raise ValueError(f"Not a channel-voice status byte: 0x{status:02X}")
    if len(data) != expected:
        raise ValueError(
            f"Status 0x{status:02X} takes {expected} data bytes, got {len(data)}"
        )

    if kind == NOTE_ON:
        # Note On with velocity 0 is a Note Off by convention
        if data[1] == 0:
            return NoteOff(channel, data[0], 0)
        return NoteOn(channel, data[0], data[1])
    if kind == NOTE_OFF:
        return NoteOff(channel, data[0], data[1])
    if kind == CONTROL_CHANGE:
        return ControlChange(channel, data[0], data[1])
    if kind == PROGRAM_CHANGE:
        return ProgramChange(channel, data[0])
    if kind == CHANNEL_AFTERTOUCH:
        return Aftertouch(channel, data[0])
    if kind == PITCH_BEND:
        return PitchBend(channel, data[0] | (data[1] << 7))
    return PolyAftertouch(channel, data[0], data[1])


def encode_channel_message(message: ChannelMessage) -> bytes:
    """Serialize a channel-voice event to its wire bytes."""
    if not isinstance(message, get_args(ChannelMessage)):
        raise TypeError(f"Not a channel message: {message!r}")
    ch = message.channel & 0x0F
    if isinstance(message, NoteOn):
        return bytes([NOTE_ON | ch, message.note & 0x7F, message.velocity & 0x7F])
    if isinstance(message, NoteOff):
        return bytes([NOTE_OFF | ch, message.note & 0x7F, message.velocity & 0x7F])
    if isinstance(message, ControlChange):
        return bytes([CONTROL_CHANGE | ch, message.control & 0x7F, message.value & 0x7F])
    if isinstance(message, ProgramChange):
        return bytes([PROGRAM_CHANGE | ch, message.program & 0x7F])
    if isinstance(message, Aftertouch):
        return bytes([CHANNEL_AFTERTOUCH | ch, message.pressure & 0x7F])
    if isinstance(message, PitchBend):
        return bytes([PITCH_BEND | ch, message.value & 0x7F, (message.value >> 7) & 0x7F])
    return bytes([POLY_AFTERTOUCH | ch, message.note & 0x7F, message.pressure & 0x7F])


class PacketReassembler:
    """Byte-level state machine turning packets into MIDI events.

    One instance per connection. Not thread-safe; callers serialise
    access (see :class:`~.connection.DeviceConnection`).

    Usage::

        reassembler = PacketReassembler()
        for event in reassembler.feed(chunk):
            ...
    """

    def __init__(self, max_sysex_size: int = 4096) -> None:
        self._max_sysex_size = max_sysex_size
        self._sysex: bytearray | None = None
        self._status: int | None = None  # running status for channel messages
        self._pending = bytearray()
        self._skip = 0  # data bytes of a system common message still to skip

    @property
    def state(self) -> ReassemblyState:
        if self._sysex is None:
            return ReassemblyState.IDLE
        return ReassemblyState.ACCUMULATING

    @property
    def buffered(self) -> int:
        """Number of bytes held in the partial SysEx frame."""
        return len(self._sysex) if self._sysex is not None else 0

    def reset(self) -> None:
        """Discard all partial state, e.g. when the connection drops."""
        if self._sysex is not None:
            logger.debug("Discarding %d-byte partial SysEx frame", len(self._sysex))
        self._sysex = None
        self._status = None
        self._pending.clear()
        self._skip = 0

    def feed(self, chunk: Iterable[int]) -> list[MidiEvent]:
        """Consume one transport packet and return the events it completes."""
        events: list[MidiEvent] = []
        for byte in bytes(chunk):
            event = self._feed_byte(byte)
            if event is not None:
                events.append(event)
        return events

    def _feed_byte(self, byte: int) -> MidiEvent | None:
        if self._sysex is not None:
            return self._accumulate(byte)

        if byte == SYSEX_START:
            self._start_sysex()
            return None

        if byte & 0x80:
            return self._status_byte(byte)

        return self._data_byte(byte)

    def _start_sysex(self) -> None:
        self._sysex = bytearray([SYSEX_START])
        self._status = None
        self._pending.clear()
        self._skip = 0

    def _accumulate(self, byte: int) -> SysExFrame | None:
        if byte == SYSEX_START:
            logger.debug(
                "SysEx start inside %d-byte frame; restarting", len(self._sysex)
            )
            self._start_sysex()
            return None

        self._sysex.append(byte)
        if byte == SYSEX_END:
            frame = SysExFrame(bytes(self._sysex))
            self._sysex = None
            logger.debug("Reassembled %d-byte SysEx frame", len(frame.data))
            return frame

        if len(self._sysex) > self._max_sysex_size:
            logger.warning(
                "SysEx frame exceeded %d bytes without 0xF7; discarding",
                self._max_sysex_size,
            )
            self._sysex = None
        return None

    def _status_byte(self, byte: int) -> None:
        if byte >= 0xF8:
            # Real-time bytes never disturb running status
            return None
        if byte == SYSEX_END:
            logger.debug("Stray 0xF7 outside SysEx; dropped")
            return None
        if byte in SYSTEM_COMMON_LENGTHS:
            self._status = None
            self._pending.clear()
            self._skip = SYSTEM_COMMON_LENGTHS[byte]
            return None

        self._status = byte
        self._pending.clear()
        self._skip = 0
        return None

    def _data_byte(self, byte: int) -> ChannelMessage | None:
        if self._skip:
            self._skip -= 1
            return None
        if self._status is None:
            logger.debug("Data byte 0x%02X without status; dropped", byte)
            return None

        self._pending.append(byte)
        if len(self._pending) < DATA_LENGTHS[self._status & 0xF0]:
            return None

        message = parse_channel_message(self._status, bytes(self._pending))
        self._pending.clear()
        return message


def split_frames(data: bytes) -> list[bytes]:
    """Split a byte stream (e.g. a ``.syx`` file) into its SysEx frames."""
    reassembler = PacketReassembler(max_sysex_size=max(len(data), 1))
    return [e.data for e in reassembler.feed(data) if isinstance(e, SysExFrame)]
