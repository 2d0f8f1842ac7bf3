"""Tests for command constants and request builders."""

import pytest

from miniworks_mcp.protocol.commands import (
    Command,
    MessageType,
    build_all_dump_request,
    build_program_bulk_dump_request,
    build_program_dump_request,
)
from miniworks_mcp.protocol.errors import InvalidProgramNumber


def test_command_enum_values():
    assert Command.PROGRAM_DUMP == 0x00
    assert Command.PROGRAM_BULK_DUMP == 0x01
    assert Command.ALL_DUMP == 0x08
    assert Command.PROGRAM_DUMP_REQUEST == 0x40
    assert Command.PROGRAM_BULK_DUMP_REQUEST == 0x41
    assert Command.ALL_DUMP_REQUEST == 0x48


def test_only_request_commands_are_requests():
    """0x00 is a multiple of 0x40 but is a response."""
    requests = {c for c in Command if c.is_request}
    assert requests == {
        Command.PROGRAM_DUMP_REQUEST,
        Command.PROGRAM_BULK_DUMP_REQUEST,
        Command.ALL_DUMP_REQUEST,
    }
    assert not Command.PROGRAM_DUMP.is_request


def test_message_type_metadata():
    assert MessageType.PROGRAM_DUMP.checksum_start == 4
    assert MessageType.PROGRAM_DUMP.checksum_end == 34
    assert MessageType.PROGRAM_DUMP.checksum_index == 35
    assert MessageType.ALL_DUMP.checksum_start == 5
    assert MessageType.ALL_DUMP.checksum_end == 590
    assert MessageType.ALL_DUMP.checksum_index == 591
    assert MessageType.ALL_DUMP.frame_length == 593


def test_message_type_from_command():
    assert MessageType.from_command(0x00) is MessageType.PROGRAM_DUMP
    assert MessageType.from_command(0x40) is MessageType.PROGRAM_DUMP
    assert MessageType.from_command(0x41) is MessageType.PROGRAM_BULK_DUMP
    assert MessageType.from_command(0x48) is MessageType.ALL_DUMP
    assert MessageType.from_command(0x09) is None


def test_build_program_dump_request():
    assert build_program_dump_request(5) == bytes([0xF0, 0x3E, 0x04, 0x00, 0x40, 0x05, 0xF7])


def test_build_program_bulk_dump_request_with_device_id():
    frame = build_program_bulk_dump_request(39, device_id=2)
    assert frame == bytes([0xF0, 0x3E, 0x04, 0x02, 0x41, 39, 0xF7])


def test_build_all_dump_request():
    assert build_all_dump_request(device_id=3) == bytes([0xF0, 0x3E, 0x04, 0x03, 0x48, 0xF7])


@pytest.mark.parametrize("program", [-1, 40, 127])
def test_request_program_bounds(program):
    with pytest.raises(InvalidProgramNumber):
        build_program_dump_request(program)


def test_request_device_id_bounds():
    with pytest.raises(ValueError):
        build_all_dump_request(device_id=127)
