"""File format handlers for .syx and .json patch files.

.syx  : Raw SysEx: one or more complete frames back to back, exactly as
        sent over MIDI. A single program dump is 37 bytes, a full
        All Dump backup 593 bytes.
.json : One program as named parameters, for reading and hand editing.
"""

from __future__ import annotations

import json
from pathlib import Path

from ..protocol.codec import decode, encode, encode_configuration
from ..protocol.commands import MessageType
from ..protocol.reassembly import split_frames
from .configuration import MachineConfiguration
from .parameters import ParameterSet, parameters_from_dict, parameters_to_dict

JSON_FORMAT_VERSION = 1


def export_syx(frames: list[bytes], path: str | Path) -> Path:
    """Write SysEx frames to a .syx file.

    Args:
        frames: Complete frames, each ``F0`` through ``F7``.
        path: Output file path.

    Returns:
        The path written to.
    """
    path = Path(path)
    path.write_bytes(b"".join(bytes(f) for f in frames))
    return path


def import_syx(path: str | Path) -> list[bytes]:
    """Read every SysEx frame from a .syx file.

    Bytes outside of ``F0 ... F7`` pairs are ignored.

    Raises:
        ValueError: If the file holds no complete frame.
    """
    path = Path(path)
    frames = split_frames(path.read_bytes())
    if not frames:
        raise ValueError(f"No SysEx frames found in {path}")
    return frames


def export_program(
    params: ParameterSet,
    path: str | Path,
    device_id: int = 0,
) -> Path:
    """Export one program as a 37-byte Program Dump .syx file."""
    frame = encode(params, MessageType.PROGRAM_DUMP, device_id)
    return export_syx([frame], path)


def import_program(path: str | Path) -> ParameterSet:
    """Import the first program dump found in a .syx file.

    Raises:
        ProtocolError: If the frame fails validation.
        ValueError: If the file holds no program dump.
    """
    for frame in import_syx(path):
        message = decode(frame)
        if message.parameters is not None:
            return message.parameters
    raise ValueError(f"No program dump found in {path}")


def export_all_dump(
    configuration: MachineConfiguration,
    path: str | Path,
    device_id: int = 0,
) -> Path:
    """Export a full machine backup as a 593-byte All Dump .syx file."""
    return export_syx([encode_configuration(configuration, device_id)], path)


def import_all_dump(path: str | Path) -> MachineConfiguration:
    """Import the first All Dump found in a .syx file.

    Raises:
        ProtocolError: If the frame fails validation.
        ValueError: If the file holds no All Dump.
    """
    for frame in import_syx(path):
        message = decode(frame)
        if message.configuration is not None:
            return message.configuration
    raise ValueError(f"No All Dump found in {path}")


def export_program_json(params: ParameterSet, path: str | Path, name: str = "") -> Path:
    """Export one program as JSON.

    The file holds ``format_version``, an optional ``name``, and the
    ``parameters`` mapping keyed by lower-case parameter name.
    """
    path = Path(path)
    document = {
        "format_version": JSON_FORMAT_VERSION,
        "name": name,
        "parameters": parameters_to_dict(params),
    }
    path.write_text(json.dumps(document, indent=2) + "\n")
    return path


def import_program_json(path: str | Path) -> ParameterSet:
    """Import a program written by :func:`export_program_json`.

    Raises:
        ValueError: Not a program document, unsupported version, unknown
            parameter or bad value.
    """
    path = Path(path)
    document = json.loads(path.read_text())
    if not isinstance(document, dict):
        raise ValueError(f"{path} does not hold a JSON object")
    version = document.get("format_version")
    if version != JSON_FORMAT_VERSION:
        raise ValueError(
            f"Unsupported format_version {version!r} (expected {JSON_FORMAT_VERSION})"
        )
    if not isinstance(document.get("parameters"), dict):
        raise ValueError(f"{path} has no 'parameters' object")
    return parameters_from_dict(document["parameters"])
