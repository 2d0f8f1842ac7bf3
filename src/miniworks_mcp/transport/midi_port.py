"""MIDI port connection to the MiniWorks 4-Pole.

Uses ``python-rtmidi``. Input bytes are pushed from rtmidi's callback
thread; SysEx reception is enabled explicitly since rtmidi ignores it by
default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_PORT_NAME = "MiniWorks"


@dataclass
class PortInfo:
    """Names of the opened input and output ports."""

    input_name: str = ""
    output_name: str = ""


def _find_port(names: list[str], wanted: str) -> int:
    wanted_lower = wanted.lower()
    for index, name in enumerate(names):
        if wanted_lower in name.lower():
            return index
    raise ConnectionError(f"No MIDI port matching '{wanted}'. Available: {names}")


class MidiPort:
    """Manages a MIDI input/output pair.

    Usage::

        port = MidiPort()
        port.open("MiniWorks")
        port.set_receiver(lambda chunk: print(chunk.hex(" ")))
        port.send_bytes(frame_bytes)
        port.close()
    """

    def __init__(self) -> None:
        self._midi_in = None
        self._midi_out = None
        self._receiver: Callable[[bytes], None] | None = None
        self._connected = False
        self._port_info = PortInfo()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def port_info(self) -> PortInfo:
        return self._port_info

    @staticmethod
    def list_input_ports() -> list[str]:
        import rtmidi

        midi_in = rtmidi.MidiIn()
        try:
            return midi_in.get_ports()
        finally:
            midi_in.delete()

    @staticmethod
    def list_output_ports() -> list[str]:
        import rtmidi

        midi_out = rtmidi.MidiOut()
        try:
            return midi_out.get_ports()
        finally:
            midi_out.delete()

    def open(
        self,
        input_name: str = DEFAULT_PORT_NAME,
        output_name: str | None = None,
    ) -> PortInfo:
        """Open the first input and output ports whose names contain the given text.

        Args:
            input_name: Substring of the input port name.
            output_name: Substring of the output port name; defaults to
                ``input_name``.

        Raises:
            ConnectionError: If no matching port exists or opening fails.
        """
        import rtmidi

        output_name = output_name or input_name
        midi_in = rtmidi.MidiIn()
        midi_out = rtmidi.MidiOut()
        try:
            in_names = midi_in.get_ports()
            out_names = midi_out.get_ports()
            in_index = _find_port(in_names, input_name)
            out_index = _find_port(out_names, output_name)
            midi_in.open_port(in_index)
            midi_out.open_port(out_index)
        except ConnectionError:
            midi_in.delete()
            midi_out.delete()
            raise
        except Exception as e:
            midi_in.delete()
            midi_out.delete()
            raise ConnectionError(f"Could not open MIDI ports: {e}") from e

        midi_in.ignore_types(sysex=False, timing=True, active_sense=True)
        midi_in.set_callback(self._on_message)

        self._midi_in = midi_in
        self._midi_out = midi_out
        self._connected = True
        self._port_info = PortInfo(
            input_name=in_names[in_index], output_name=out_names[out_index]
        )
        logger.info(
            "Opened MIDI ports: in=%s out=%s",
            self._port_info.input_name,
            self._port_info.output_name,
        )
        return self._port_info

    def close(self) -> None:
        """Close both ports."""
        if not self._connected:
            return

        try:
            self._midi_in.cancel_callback()
            self._midi_in.close_port()
            self._midi_out.close_port()
        except Exception as e:
            logger.warning("Error closing MIDI ports: %s", e)
        finally:
            self._midi_in = None
            self._midi_out = None
            self._connected = False
            logger.info("Disconnected")

    def set_receiver(self, callback: Callable[[bytes], None] | None) -> None:
        """Register the function that receives every inbound byte chunk."""
        self._receiver = callback

    def send_bytes(self, data: bytes) -> None:
        """Send raw bytes (one complete MIDI message) to the device.

        Raises:
            ConnectionError: If not connected or the send fails.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")
        try:
            self._midi_out.send_message(list(data))
        except Exception as e:
            raise ConnectionError(f"MIDI send failed: {e}") from e

    def _on_message(self, event, data=None) -> None:
        message, _delta = event
        receiver = self._receiver
        if receiver is None:
            return
        try:
            receiver(bytes(message))
        except Exception:
            # rtmidi's thread must survive a failing consumer
            logger.exception("Receiver failed on %d-byte chunk", len(message))
