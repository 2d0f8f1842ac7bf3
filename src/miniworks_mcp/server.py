"""MCP server entry point for the Waldorf MiniWorks 4-Pole.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .models import file_formats
from .models.parameters import (
    PROGRAM_PARAMETERS,
    Parameter,
    ParameterSet,
    check_parameters,
    default_parameters,
    parameters_from_dict,
    parameters_to_dict,
)
from .protocol.codec import DecodedMessage, decode, encode
from .protocol.commands import PROGRAM_COUNT, MessageType
from .protocol.connection import RESPONSE_TIMEOUT, DeviceConnection
from .protocol.errors import ProtocolError
from .transport.midi_port import DEFAULT_PORT_NAME, MidiPort

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "miniworks",
    instructions="MCP server for the Waldorf MiniWorks 4-Pole analog filter",
)

# Global connection state
_port: MidiPort | None = None
_connection: DeviceConnection | None = None
_program_cache: dict[int, ParameterSet] = {}

ALL_DUMP_TIMEOUT = 5.0


def _get_connection() -> DeviceConnection:
    """Get the active device connection, raising if not connected."""
    if _connection is None or _connection.closed or _port is None or not _port.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _connection


def _check_program(program: int) -> dict[str, Any] | None:
    if not 0 <= program < PROGRAM_COUNT:
        return {"error": f"Program must be 0-{PROGRAM_COUNT - 1}"}
    return None


def _message_to_dict(message: DecodedMessage) -> dict[str, Any]:
    result: dict[str, Any] = {
        "type": message.message_type.name.lower(),
        "request": message.is_request,
        "device_id": message.classification.device_id,
    }
    if message.program_number is not None:
        result["program"] = message.program_number
    if message.parameters is not None:
        result["parameters"] = parameters_to_dict(message.parameters)
    if message.configuration is not None:
        result["configuration"] = message.configuration.to_dict()
    return result


def _fetch_program(conn: DeviceConnection, program: int) -> ParameterSet | None:
    dumps = conn.router.sysex_events.subscribe()
    try:
        conn.request_program_dump(program)
        message = conn.wait_for_dump(
            MessageType.PROGRAM_DUMP, RESPONSE_TIMEOUT, subscription=dumps
        )
    finally:
        dumps.close()
    if message is None:
        return None
    _program_cache[program] = message.parameters
    return message.parameters


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def list_ports() -> dict[str, Any]:
    """List the MIDI input and output ports visible to the host."""
    return {
        "inputs": MidiPort.list_input_ports(),
        "outputs": MidiPort.list_output_ports(),
    }


@mcp.tool()
def connect(
    port_name: str = DEFAULT_PORT_NAME,
    output_port_name: str | None = None,
    device_id: int = 0,
) -> dict[str, Any]:
    """Open MIDI ports to the MiniWorks 4-Pole.

    Args:
        port_name: Text contained in the input port name (default "MiniWorks").
        output_port_name: Text contained in the output port name; defaults
            to port_name.
        device_id: SysEx device ID set on the unit (0-126, default 0).
    """
    global _port, _connection
    if not 0 <= device_id <= 126:
        return {"error": "Device ID must be 0-126"}
    if _connection is not None and not _connection.closed and _port.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "input": _port.port_info.input_name,
            "output": _port.port_info.output_name,
        }

    port = MidiPort()
    try:
        info = port.open(port_name, output_port_name)
    except ConnectionError as e:
        return {"error": str(e)}

    _port = port
    _connection = DeviceConnection(port, device_id=device_id)
    return {
        "connected": True,
        "input": info.input_name,
        "output": info.output_name,
        "device_id": device_id,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection and the MIDI ports."""
    global _port, _connection
    if _connection is not None:
        _connection.close()
        _connection = None
    if _port is not None:
        _port.close()
        _port = None
    return {"disconnected": True}


# ─── PROGRAM TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def request_program(program: int) -> dict[str, Any]:
    """Request a program dump from the device and return its parameters.

    Args:
        program: Program number (0-39).
    """
    error = _check_program(program)
    if error:
        return error

    conn = _get_connection()
    params = _fetch_program(conn, program)
    if params is None:
        return {"error": "No response from device"}
    return {"program": program, "parameters": parameters_to_dict(params)}


@mcp.tool()
def get_program(program: int, refresh: bool = False) -> dict[str, Any]:
    """Return a program's parameters, from the cache when possible.

    Args:
        program: Program number (0-39).
        refresh: If True, always read the program from the device.
    """
    error = _check_program(program)
    if error:
        return error

    if not refresh and program in _program_cache:
        return {
            "program": program,
            "cached": True,
            "parameters": parameters_to_dict(_program_cache[program]),
        }
    result = request_program(program)
    if "error" not in result:
        result["cached"] = False
    return result


@mcp.tool()
def request_all_dump() -> dict[str, Any]:
    """Request an All Dump: 20 programs plus the global settings."""
    conn = _get_connection()
    dumps = conn.router.sysex_events.subscribe()
    try:
        conn.request_all_dump()
        message = conn.wait_for_dump(
            MessageType.ALL_DUMP, ALL_DUMP_TIMEOUT, subscription=dumps
        )
    finally:
        dumps.close()
    if message is None:
        return {"error": "No response from device"}

    configuration = message.configuration
    for index, params in enumerate(configuration.programs):
        _program_cache[index] = {Parameter.PROGRAM_NUMBER: index, **params}
    return configuration.to_dict()


@mcp.tool()
def send_program(
    program: int,
    parameters: dict[str, Any] | None = None,
    bulk: bool = False,
) -> dict[str, Any]:
    """Write a program to the device.

    The given parameters are merged over the cached program, or over the
    initial program when nothing is cached.

    Args:
        program: Target program number (0-39).
        parameters: Mapping of parameter name to value, e.g.
            {"cutoff": 90, "lfo_shape": "triangle"}.
        bulk: Send as a Program Bulk Dump instead of a Program Dump.
    """
    error = _check_program(program)
    if error:
        return error

    params = dict(_program_cache.get(program) or default_parameters())
    try:
        params.update(parameters_from_dict(parameters or {}))
    except (KeyError, ValueError) as e:
        return {"error": str(e)}
    params[Parameter.PROGRAM_NUMBER] = program

    message_type = MessageType.PROGRAM_BULK_DUMP if bulk else MessageType.PROGRAM_DUMP
    conn = _get_connection()
    try:
        frame = conn.send_program(params, message_type)
    except (ProtocolError, ValueError) as e:
        return {"error": str(e)}

    _program_cache[program] = params
    return {"sent": True, "program": program, "bytes": len(frame)}


@mcp.tool()
def set_parameter(parameter: str, value: int, channel: int = 0) -> dict[str, Any]:
    """Change one parameter of the sounding program in real time (MIDI CC).

    Args:
        parameter: Parameter name, e.g. "cutoff" or "vcf_envelope_attack".
        value: New value within the parameter's range.
        channel: MIDI channel, 0-15 (the unit's channel 1 is 0).
    """
    try:
        target = Parameter.from_key(parameter)
    except ValueError as e:
        return {"error": str(e)}

    conn = _get_connection()
    try:
        conn.send_parameter(target, value, channel)
    except ValueError as e:
        return {"error": str(e)}
    return {"parameter": target.key, "cc": target.cc, "value": value}


# ─── CODEC TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def decode_sysex(hex_data: str) -> dict[str, Any]:
    """Classify and decode a SysEx frame given as hex.

    Args:
        hex_data: Frame bytes as hex, spaces allowed, e.g. "F0 3E 04 00 40 05 F7".
    """
    try:
        data = bytes.fromhex(hex_data)
    except ValueError:
        return {"error": "Invalid hex string"}

    try:
        message = decode(data)
    except ProtocolError as e:
        return {"error": str(e), "kind": e.kind}
    return _message_to_dict(message)


@mcp.tool()
def encode_program(
    parameters: dict[str, Any],
    program: int = 0,
    device_id: int = 0,
    bulk: bool = False,
) -> dict[str, Any]:
    """Encode parameters as a Program Dump frame without sending it.

    Missing parameters take their initial value.

    Args:
        parameters: Mapping of parameter name to value.
        program: Program number (0-39).
        device_id: Device ID for byte 3 (0-126).
        bulk: Encode as a Program Bulk Dump.
    """
    try:
        params = parameters_from_dict(parameters)
        params[Parameter.PROGRAM_NUMBER] = program
        message_type = (
            MessageType.PROGRAM_BULK_DUMP if bulk else MessageType.PROGRAM_DUMP
        )
        frame = encode(params, message_type, device_id)
    except (ProtocolError, ValueError) as e:
        return {"error": str(e)}
    return {"hex": frame.hex(" ").upper(), "length": len(frame)}


# ─── FILE TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def export_program(program: int, output_path: str) -> dict[str, Any]:
    """Save a program to a .syx or .json file.

    Uses the cached copy when there is one, otherwise reads the device.

    Args:
        program: Program number (0-39).
        output_path: Output path; the suffix selects the format.
    """
    error = _check_program(program)
    if error:
        return error

    path = Path(output_path)
    if path.suffix.lower() not in (".syx", ".json"):
        return {"error": "Output file must end in .syx or .json"}

    params = _program_cache.get(program)
    if params is None:
        params = _fetch_program(_get_connection(), program)
        if params is None:
            return {"error": "No response from device"}

    if path.suffix.lower() == ".json":
        file_formats.export_program_json(params, path, name=f"Program {program}")
    else:
        file_formats.export_program(params, path)
    return {"path": str(path), "program": program}


@mcp.tool()
def import_program(input_path: str, program: int, send: bool = True) -> dict[str, Any]:
    """Load a program from a .syx or .json file into a program slot.

    Args:
        input_path: Path to the .syx or .json file.
        program: Target program number (0-39).
        send: If True, write the program to the device; otherwise only
            update the cache.
    """
    error = _check_program(program)
    if error:
        return error
    path = Path(input_path)
    if not path.exists():
        return {"error": f"File not found: {input_path}"}

    try:
        if path.suffix.lower() == ".json":
            params = file_formats.import_program_json(path)
        else:
            params = file_formats.import_program(path)
        params = {**default_parameters(), **params, Parameter.PROGRAM_NUMBER: program}
        check_parameters(params)
    except (ProtocolError, ValueError) as e:
        return {"error": str(e)}

    if send:
        _get_connection().send_program(params)
    _program_cache[program] = params
    return {"imported": True, "program": program, "sent": send}


@mcp.tool()
def backup_all(output_path: str) -> dict[str, Any]:
    """Download an All Dump and save it as a .syx backup.

    Args:
        output_path: File path for the backup.
    """
    conn = _get_connection()
    dumps = conn.router.sysex_events.subscribe()
    try:
        conn.request_all_dump()
        message = conn.wait_for_dump(
            MessageType.ALL_DUMP, ALL_DUMP_TIMEOUT, subscription=dumps
        )
    finally:
        dumps.close()
    if message is None:
        return {"error": "No response from device"}

    path = file_formats.export_all_dump(message.configuration, output_path, conn.device_id)
    return {"path": str(path), "program_count": len(message.configuration.programs)}


@mcp.tool()
def restore_backup(input_path: str) -> dict[str, Any]:
    """Send an All Dump backup from a .syx file back to the device.

    Args:
        input_path: Path to the .syx backup file.
    """
    if not Path(input_path).exists():
        return {"error": f"File not found: {input_path}"}

    try:
        configuration = file_formats.import_all_dump(input_path)
    except (ProtocolError, ValueError) as e:
        return {"error": str(e)}

    conn = _get_connection()
    conn.send_configuration(configuration)
    for index, params in enumerate(configuration.programs):
        _program_cache[index] = {Parameter.PROGRAM_NUMBER: index, **params}
    return {"restored": True, "program_count": len(configuration.programs)}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("miniworks://device/status")
def resource_device_status() -> str:
    """Connection state and port names."""
    if _connection is None or _connection.closed or _port is None:
        return json.dumps({"connected": False})
    return json.dumps({
        "connected": _port.connected,
        "input": _port.port_info.input_name,
        "output": _port.port_info.output_name,
        "device_id": _connection.device_id,
    })


@mcp.resource("miniworks://catalog/parameters")
def resource_parameter_catalog() -> str:
    """Every program parameter with its range, default and CC number."""
    parameters = []
    for parameter in (Parameter.PROGRAM_NUMBER, *PROGRAM_PARAMETERS):
        entry: dict[str, Any] = {
            "name": parameter.key,
            "label": parameter.label,
            "min": parameter.minimum,
            "max": parameter.maximum,
            "default": parameter.default,
            "cc": parameter.cc,
        }
        if parameter.choices is not None:
            entry["options"] = [c.name.lower() for c in parameter.choices]
        parameters.append(entry)
    return json.dumps({"parameters": parameters, "count": len(parameters)})


@mcp.resource("miniworks://programs/cached")
def resource_cached_programs() -> str:
    """Programs read or written during this session."""
    programs = {
        str(program): parameters_to_dict(_program_cache[program])
        for program in sorted(_program_cache)
    }
    return json.dumps({"programs": programs})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def design_patch(sound: str) -> str:
    """Guide the AI to build a filter program for a described sound.

    Args:
        sound: Description of the target sound, e.g. "slow resonant sweep".
    """
    return f"""Design a MiniWorks 4-Pole program for: {sound}.
Consider:
- Cutoff and resonance as the starting point
- VCF envelope (attack, decay, sustain, release) and its cutoff amount
- LFO speed and shape, and which modulation source drives each target
- Trigger source and mode for how the envelopes fire
- Volume and panning levels

Read the miniworks://catalog/parameters resource for names and ranges.
Use set_parameter to audition changes live, then send_program to store."""


@mcp.prompt()
def explain_program(program: int) -> str:
    """Explain what a stored program does.

    Args:
        program: Program number (0-39).
    """
    return f"""Read program {program} using the get_program tool.
Describe how it will sound and behave:
- Filter character from cutoff, resonance and envelope amount
- Envelope shapes of the VCF and VCA
- What the LFO modulates and through which source
- How the program is triggered (audio, MIDI or both)

Suggest one or two changes that would make it more expressive."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
