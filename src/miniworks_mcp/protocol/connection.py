"""Per-connection protocol context.

A :class:`DeviceConnection` ties one MIDI port to one reassembler and
one router. Inbound chunks from the port's thread are funnelled through
:meth:`DeviceConnection.receive_bytes`, which holds a lock so fragments
from concurrent deliveries never interleave.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol

from ..models.configuration import MachineConfiguration
from ..models.parameters import Parameter, ParameterSet
from .codec import DecodedMessage, encode, encode_configuration
from .commands import (
    MessageType,
    build_all_dump_request,
    build_program_bulk_dump_request,
    build_program_dump_request,
)
from .reassembly import ControlChange, PacketReassembler, encode_channel_message
from .router import MessageRouter

logger = logging.getLogger(__name__)

RESPONSE_TIMEOUT = 2.0


class BytePort(Protocol):
    """The transport boundary: raw bytes out, raw chunks pushed in."""

    def send_bytes(self, data: bytes) -> None: ...

    def set_receiver(self, callback: Callable[[bytes], None] | None) -> None: ...


class DeviceConnection:
    """Protocol state for one device link.

    Usage::

        conn = DeviceConnection(port, device_id=0)
        dumps = conn.router.sysex_events.subscribe()
        conn.request_program_dump(3)
        message = conn.wait_for_dump(MessageType.PROGRAM_DUMP, subscription=dumps)
        conn.close()
    """

    def __init__(
        self,
        port: BytePort,
        device_id: int = 0,
        router: MessageRouter | None = None,
        reassembler: PacketReassembler | None = None,
    ) -> None:
        self._port = port
        self.device_id = device_id
        self.router = router or MessageRouter()
        self.reassembler = reassembler or PacketReassembler()
        self._lock = threading.Lock()
        self._closed = False
        port.set_receiver(self.receive_bytes)

    @property
    def closed(self) -> bool:
        return self._closed

    def receive_bytes(self, chunk: bytes) -> None:
        """Entry point for inbound transport packets (any thread)."""
        with self._lock:
            if self._closed:
                return
            events = self.reassembler.feed(chunk)
            self.router.route_all(events)

    def send_bytes(self, data: bytes) -> None:
        """Send raw bytes to the device.

        Raises:
            ConnectionError: If the connection is closed or the port fails.
        """
        if self._closed:
            raise ConnectionError("Connection is closed")
        logger.debug("Sending %d bytes: %s", len(data), data.hex(" "))
        self._port.send_bytes(bytes(data))

    def request_program_dump(self, program: int) -> None:
        self.send_bytes(build_program_dump_request(program, self.device_id))

    def request_program_bulk_dump(self, program: int) -> None:
        self.send_bytes(build_program_bulk_dump_request(program, self.device_id))

    def request_all_dump(self) -> None:
        self.send_bytes(build_all_dump_request(self.device_id))

    def send_program(
        self,
        params: ParameterSet,
        message_type: MessageType = MessageType.PROGRAM_DUMP,
    ) -> bytes:
        """Encode and send a program; returns the frame that was sent."""
        frame = encode(params, message_type, self.device_id)
        self.send_bytes(frame)
        return frame

    def send_configuration(self, configuration: MachineConfiguration) -> bytes:
        frame = encode_configuration(configuration, self.device_id)
        self.send_bytes(frame)
        return frame

    def send_control_change(self, channel: int, control: int, value: int) -> None:
        if not 0 <= channel <= 15:
            raise ValueError(f"MIDI channel must be 0-15, got {channel}")
        if not 0 <= control <= 127 or not 0 <= value <= 127:
            raise ValueError(f"Control and value must be 0-127, got {control}, {value}")
        self.send_bytes(encode_channel_message(ControlChange(channel, control, value)))

    def send_parameter(self, parameter: Parameter, value: int, channel: int = 0) -> None:
        """Change one parameter of the edit buffer live via its CC number."""
        if parameter.cc is None:
            raise ValueError(f"{parameter.label} has no controller number")
        if not parameter.in_range(value):
            raise ValueError(
                f"{parameter.label} must be {parameter.minimum}-{parameter.maximum}, "
                f"got {value}"
            )
        self.send_control_change(channel, parameter.cc, value)

    def wait_for_dump(
        self,
        message_type: MessageType,
        timeout: float = RESPONSE_TIMEOUT,
        subscription=None,
    ) -> DecodedMessage | None:
        """Wait for a valid dump of ``message_type``.

        Args:
            message_type: The dump kind to wait for.
            timeout: Overall deadline in seconds.
            subscription: An existing SysEx subscription. Pass one created
                before sending the request so the reply cannot be missed.

        Returns:
            The decoded dump, or ``None`` on timeout.
        """
        owned = subscription is None
        if owned:
            subscription = self.router.sysex_events.subscribe()
        deadline = time.monotonic() + timeout
        try:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                event = subscription.get(timeout=remaining)
                if event is None:
                    return None
                if not event.ok:
                    continue
                message = event.message
                if message.is_request or message.message_type is not message_type:
                    continue
                return message
        finally:
            if owned:
                subscription.close()

    def close(self) -> None:
        """Tear down reassembly state and every category queue."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.reassembler.reset()
        self.router.close()
        try:
            self._port.set_receiver(None)
        except Exception as e:
            logger.warning("Error detaching from port: %s", e)
        logger.info("Connection closed")
