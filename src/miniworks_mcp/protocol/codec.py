"""Parameter codec: SysEx dump frames to parameter sets and back.

Program / Program Bulk Dump (37 bytes)::

    F0 3E 04 DEV CMD PRG [29 parameter bytes] CS F7
    0  1  2  3   4   5   6 ........... 34      35 36

All Dump (593 bytes)::

    F0 3E 04 DEV 08 [20 x 29 program bytes] [6 global bytes] CS F7
    0  1  2  3   4  5 ................ 584  585 ....... 590   591 592
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..models.configuration import PAYLOAD_SIZE, MachineConfiguration
from ..models.parameters import (
    PROGRAM_BLOCK_SIZE,
    Parameter,
    ParameterSet,
    block_from_bytes,
    block_to_bytes,
    check_parameters,
)
from ..utils.checksum import compute_checksum
from .commands import HEADER, MAX_DEVICE_ID, PROGRAM_COUNT, SYSEX_END, MessageType
from .errors import IncompleteMessage, InvalidProgramNumber
from .framing import Classification, classify

logger = logging.getLogger(__name__)

OFF_PROGRAM_NUMBER = 5
OFF_PROGRAM_BLOCK = 6
OFF_ALL_DUMP_PAYLOAD = 5


@dataclass
class DecodedMessage:
    """A classified frame together with its decoded payload.

    ``parameters`` is set for program and bulk dumps, ``configuration``
    for All Dumps. Requests carry neither.
    """

    classification: Classification
    parameters: ParameterSet | None = None
    configuration: MachineConfiguration | None = None

    @property
    def message_type(self) -> MessageType:
        return self.classification.message_type

    @property
    def is_request(self) -> bool:
        return self.classification.is_request

    @property
    def program_number(self) -> int | None:
        if self.parameters is not None:
            return self.parameters.get(Parameter.PROGRAM_NUMBER)
        if self.is_request and self.message_type.carries_program_number:
            data = self.classification.data
            if len(data) > OFF_PROGRAM_NUMBER + 1:
                return data[OFF_PROGRAM_NUMBER]
        return None


def decode_parameters(data: bytes, message_type: MessageType) -> ParameterSet:
    """Extract the parameter set from a program or bulk dump frame.

    The frame is assumed to be classified already. Values outside a
    parameter's range are clamped rather than rejected.

    Returns:
        A 30-entry mapping: ``PROGRAM_NUMBER`` followed by the 29 program
        parameters in wire order.
    """
    if message_type is MessageType.ALL_DUMP:
        raise ValueError("All Dump frames decode with decode_configuration()")
    end = OFF_PROGRAM_BLOCK + PROGRAM_BLOCK_SIZE
    if len(data) < end:
        raise IncompleteMessage(
            f"{message_type.name} payload needs {end} bytes, got {len(data)}", data
        )
    params: ParameterSet = {
        Parameter.PROGRAM_NUMBER: Parameter.PROGRAM_NUMBER.clamp(data[OFF_PROGRAM_NUMBER])
    }
    params.update(block_from_bytes(data[OFF_PROGRAM_BLOCK:end]))
    return params


def decode_configuration(data: bytes) -> MachineConfiguration:
    """Decode an All Dump frame into a :class:`MachineConfiguration`."""
    end = OFF_ALL_DUMP_PAYLOAD + PAYLOAD_SIZE
    if len(data) < end:
        raise IncompleteMessage(
            f"All Dump payload needs {end} bytes, got {len(data)}", data
        )
    return MachineConfiguration.from_bytes(data[OFF_ALL_DUMP_PAYLOAD:end])


def decode(data: bytes) -> DecodedMessage:
    """Classify a frame and decode whatever payload it carries.

    Raises:
        ProtocolError: Any classification failure; see :func:`classify`.
    """
    classification = classify(data)
    decoded = DecodedMessage(classification=classification)
    if classification.is_request:
        return decoded

    if classification.message_type is MessageType.ALL_DUMP:
        decoded.configuration = decode_configuration(classification.data)
    else:
        decoded.parameters = decode_parameters(
            classification.data, classification.message_type
        )
    logger.debug(
        "Decoded %s from device %d",
        classification.message_type.name,
        classification.device_id,
    )
    return decoded


def _frame(message_type: MessageType, device_id: int, payload: bytes) -> bytes:
    if not 0 <= device_id <= MAX_DEVICE_ID:
        raise ValueError(f"Device ID must be 0-{MAX_DEVICE_ID}, got {device_id}")
    buf = bytearray(HEADER)
    buf.append(device_id)
    buf.append(message_type.response_command.value)
    buf.extend(payload)
    if len(buf) != message_type.checksum_index:
        raise ValueError(
            f"{message_type.name} payload is {len(payload)} bytes; "
            f"checksum would land at {len(buf)}, not {message_type.checksum_index}"
        )
    buf.append(
        compute_checksum(buf, message_type.checksum_start, message_type.checksum_end)
    )
    buf.append(SYSEX_END)
    return bytes(buf)


def encode(
    params: ParameterSet,
    message_type: MessageType = MessageType.PROGRAM_DUMP,
    device_id: int = 0,
) -> bytes:
    """Encode a parameter set as a program or bulk dump frame.

    Args:
        params: Parameter values. ``PROGRAM_NUMBER`` defaults to 0 and any
            missing program parameter takes its device default.
        message_type: ``PROGRAM_DUMP`` or ``PROGRAM_BULK_DUMP``.
        device_id: Device ID written to byte 3.

    Returns:
        The complete 37-byte frame.

    Raises:
        InvalidProgramNumber: Program number outside 0-39.
        ValueError: Any other value out of range, or an All Dump type.
    """
    if message_type is MessageType.ALL_DUMP:
        raise ValueError("All Dump frames encode with encode_configuration()")

    program = params.get(Parameter.PROGRAM_NUMBER, 0)
    if not 0 <= program < PROGRAM_COUNT:
        raise InvalidProgramNumber(program)
    check_parameters(params)

    payload = bytes([program]) + block_to_bytes(params)
    return _frame(message_type, device_id, payload)


def encode_configuration(configuration: MachineConfiguration, device_id: int = 0) -> bytes:
    """Encode a machine configuration as a 593-byte All Dump frame."""
    return _frame(MessageType.ALL_DUMP, device_id, configuration.to_bytes())
