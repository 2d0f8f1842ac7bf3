"""Tests for the rtmidi-backed MidiPort, with rtmidi mocked out."""

import sys
from unittest.mock import MagicMock, patch

import pytest

from miniworks_mcp.transport.midi_port import MidiPort


def _fake_rtmidi(inputs=None, outputs=None):
    module = MagicMock()
    module.MidiIn.return_value.get_ports.return_value = (
        inputs if inputs is not None else ["Midi Through 14:0", "MiniWorks 4-Pole 20:0"]
    )
    module.MidiOut.return_value.get_ports.return_value = (
        outputs if outputs is not None else ["Midi Through 14:0", "MiniWorks 4-Pole 20:0"]
    )
    return module


def _open_port(module):
    port = MidiPort()
    with patch.dict(sys.modules, {"rtmidi": module}):
        port.open("miniworks")
    return port


def test_open_matches_port_by_substring():
    module = _fake_rtmidi()
    port = _open_port(module)

    midi_in = module.MidiIn.return_value
    midi_out = module.MidiOut.return_value
    assert port.connected
    assert port.port_info.input_name == "MiniWorks 4-Pole 20:0"
    midi_in.open_port.assert_called_once_with(1)
    midi_out.open_port.assert_called_once_with(1)
    midi_in.ignore_types.assert_called_once_with(sysex=False, timing=True, active_sense=True)
    midi_in.set_callback.assert_called_once_with(port._on_message)


def test_open_with_separate_output_name():
    module = _fake_rtmidi(outputs=["USB Interface Out", "MiniWorks Out"])
    port = MidiPort()
    with patch.dict(sys.modules, {"rtmidi": module}):
        info = port.open("MiniWorks", "usb")
    assert info.output_name == "USB Interface Out"
    module.MidiOut.return_value.open_port.assert_called_once_with(0)


def test_open_no_matching_port():
    module = _fake_rtmidi(inputs=["Something Else"])
    port = MidiPort()
    with patch.dict(sys.modules, {"rtmidi": module}):
        with pytest.raises(ConnectionError):
            port.open("MiniWorks")
    assert not port.connected
    module.MidiIn.return_value.delete.assert_called_once()


def test_open_backend_failure_wrapped():
    module = _fake_rtmidi()
    module.MidiIn.return_value.open_port.side_effect = RuntimeError("busy")
    port = MidiPort()
    with patch.dict(sys.modules, {"rtmidi": module}):
        with pytest.raises(ConnectionError, match="busy"):
            port.open("MiniWorks")


def test_send_bytes():
    module = _fake_rtmidi()
    port = _open_port(module)
    port.send_bytes(bytes([0xF0, 0x3E, 0x04, 0x00, 0x48, 0xF7]))
    module.MidiOut.return_value.send_message.assert_called_once_with(
        [0xF0, 0x3E, 0x04, 0x00, 0x48, 0xF7]
    )


def test_send_bytes_not_connected():
    with pytest.raises(ConnectionError):
        MidiPort().send_bytes(b"\xb0\x01\x02")


def test_send_bytes_failure_wrapped():
    module = _fake_rtmidi()
    port = _open_port(module)
    module.MidiOut.return_value.send_message.side_effect = RuntimeError("gone")
    with pytest.raises(ConnectionError):
        port.send_bytes(b"\xb0\x01\x02")


def test_callback_forwards_bytes():
    port = _open_port(_fake_rtmidi())
    received = []
    port.set_receiver(received.append)
    port._on_message(([0xF0, 0x3E, 0x04], 0.001))
    assert received == [bytes([0xF0, 0x3E, 0x04])]


def test_callback_without_receiver_is_ignored():
    port = _open_port(_fake_rtmidi())
    port._on_message(([0xB0, 1, 2], 0.0))


def test_callback_survives_receiver_error():
    port = _open_port(_fake_rtmidi())
    port.set_receiver(MagicMock(side_effect=ValueError("boom")))
    port._on_message(([0xB0, 1, 2], 0.0))


def test_close():
    module = _fake_rtmidi()
    port = _open_port(module)
    port.close()
    assert not port.connected
    module.MidiIn.return_value.cancel_callback.assert_called_once()
    module.MidiIn.return_value.close_port.assert_called_once()
    module.MidiOut.return_value.close_port.assert_called_once()
    port.close()


def test_list_ports():
    module = _fake_rtmidi(inputs=["A"], outputs=["B", "C"])
    with patch.dict(sys.modules, {"rtmidi": module}):
        assert MidiPort.list_input_ports() == ["A"]
        assert MidiPort.list_output_ports() == ["B", "C"]
