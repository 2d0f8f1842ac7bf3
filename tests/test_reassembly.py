"""Tests for packet reassembly and channel message parsing."""

import pytest

from miniworks_mcp.models.parameters import default_parameters
from miniworks_mcp.protocol.codec import encode
from miniworks_mcp.protocol.reassembly import (
    Aftertouch,
    ControlChange,
    NoteOff,
    NoteOn,
    PacketReassembler,
    PitchBend,
    PolyAftertouch,
    ProgramChange,
    ReassemblyState,
    SysExFrame,
    encode_channel_message,
    parse_channel_message,
    split_frames,
)

FRAME = encode(default_parameters(program=1))


def test_whole_frame_in_one_chunk():
    reassembler = PacketReassembler()
    assert reassembler.feed(FRAME) == [SysExFrame(FRAME)]
    assert reassembler.state is ReassemblyState.IDLE


def test_frame_split_across_chunks():
    reassembler = PacketReassembler()
    assert reassembler.feed(FRAME[:10]) == []
    assert reassembler.state is ReassemblyState.ACCUMULATING
    assert reassembler.buffered == 10
    assert reassembler.feed(FRAME[10:30]) == []
    assert reassembler.feed(FRAME[30:]) == [SysExFrame(FRAME)]
    assert reassembler.buffered == 0


def test_frame_fed_byte_by_byte():
    reassembler = PacketReassembler()
    events = []
    for byte in FRAME:
        events.extend(reassembler.feed(bytes([byte])))
    assert events == [SysExFrame(FRAME)]


def test_two_frames_in_one_chunk():
    reassembler = PacketReassembler()
    assert reassembler.feed(FRAME + FRAME) == [SysExFrame(FRAME), SysExFrame(FRAME)]


def test_start_marker_mid_frame_restarts():
    """A partial frame is discarded when a new 0xF0 arrives."""
    reassembler = PacketReassembler()
    reassembler.feed(bytes([0xF0, 0x3E, 0x04, 0x00]))
    assert reassembler.feed(FRAME) == [SysExFrame(FRAME)]


def test_bytes_inside_frame_kept_verbatim():
    frame = bytes([0xF0, 0x3E, 0xF8, 0x90, 0x01, 0xF7])
    assert PacketReassembler().feed(frame) == [SysExFrame(frame)]


def test_oversized_frame_discarded():
    reassembler = PacketReassembler(max_sysex_size=8)
    assert reassembler.feed(bytes([0xF0] + [0x01] * 10 + [0xF7])) == []
    assert reassembler.state is ReassemblyState.IDLE


def test_stray_end_marker_and_data_dropped():
    reassembler = PacketReassembler()
    assert reassembler.feed(bytes([0xF7, 0x01, 0x02])) == []


def test_channel_messages_between_chunks():
    reassembler = PacketReassembler()
    assert reassembler.feed(bytes([0x90, 60])) == []
    assert reassembler.feed(bytes([100])) == [NoteOn(0, 60, 100)]


def test_running_status():
    reassembler = PacketReassembler()
    events = reassembler.feed(bytes([0xB1, 74, 10, 74, 11, 71, 5]))
    assert events == [
        ControlChange(1, 74, 10),
        ControlChange(1, 74, 11),
        ControlChange(1, 71, 5),
    ]


def test_realtime_does_not_break_running_status():
    reassembler = PacketReassembler()
    events = reassembler.feed(bytes([0x90, 60, 0xF8, 100, 0xFE, 62, 90]))
    assert events == [NoteOn(0, 60, 100), NoteOn(0, 62, 90)]


def test_system_common_data_skipped():
    reassembler = PacketReassembler()
    events = reassembler.feed(bytes([0xF2, 0x10, 0x20, 0xC0, 5]))
    assert events == [ProgramChange(0, 5)]


def test_sysex_interrupts_channel_message():
    reassembler = PacketReassembler()
    events = reassembler.feed(bytes([0x90, 60]) + FRAME + bytes([61, 10]))
    assert events == [SysExFrame(FRAME)]


def test_reset_discards_partial_frame():
    reassembler = PacketReassembler()
    reassembler.feed(FRAME[:12])
    reassembler.reset()
    assert reassembler.state is ReassemblyState.IDLE
    assert reassembler.feed(FRAME[12:]) == []


@pytest.mark.parametrize(
    "status,data,expected",
    [
        (0x92, bytes([60, 0]), NoteOff(2, 60, 0)),
        (0x83, bytes([60, 40]), NoteOff(3, 60, 40)),
        (0xE0, bytes([0x00, 0x40]), PitchBend(0, 8192)),
        (0xD5, bytes([99]), Aftertouch(5, 99)),
        (0xA0, bytes([60, 7]), PolyAftertouch(0, 60, 7)),
    ],
)
def test_parse_channel_message(status, data, expected):
    assert parse_channel_message(status, data) == expected


def test_parse_channel_message_errors():
    with pytest.raises(ValueError):
        parse_channel_message(0xF0, b"")
    with pytest.raises(ValueError):
        parse_channel_message(0x90, bytes([60]))


def test_encode_channel_message():
    assert encode_channel_message(ControlChange(0, 78, 100)) == bytes([0xB0, 78, 100])
    assert encode_channel_message(NoteOff(15, 60)) == bytes([0x8F, 60, 0])
    assert encode_channel_message(PitchBend(1, 8192)) == bytes([0xE1, 0x00, 0x40])


def test_encode_channel_message_rejects_sysex():
    with pytest.raises(TypeError):
        encode_channel_message(SysExFrame(FRAME))
    with pytest.raises(TypeError):
        encode_channel_message(b"\x90\x3c\x64")


def test_split_frames_ignores_noise():
    data = bytes([0x00, 0x12]) + FRAME + bytes([0x90, 60, 100]) + FRAME
    assert split_frames(data) == [FRAME, FRAME]


def test_split_frames_large_all_dump():
    data = bytes([0xF0]) + bytes(5000) + bytes([0xF7])
    assert split_frames(data) == [data]
