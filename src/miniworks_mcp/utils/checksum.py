"""Additive 7-bit checksum used by MiniWorks SysEx dumps.

The device sums the bytes of a fixed window and keeps the low seven bits,
so the result is always a legal MIDI data byte (0-127).
"""

from __future__ import annotations

from typing import Protocol


class ChecksumWindow(Protocol):
    """Anything that declares where its checksum lives."""

    checksum_start: int
    checksum_end: int
    checksum_index: int


def compute_checksum(data: bytes, start: int = 0, end: int | None = None) -> int:
    """Compute the checksum of ``data[start:end]``.

    Args:
        data: Frame bytes.
        start: First byte of the window.
        end: Window end (exclusive). Defaults to the end of ``data``.

    Returns:
        Sum of the window masked to 7 bits.

    Raises:
        ValueError: If the window does not fit inside ``data``.
    """
    if end is None:
        end = len(data)
    if not 0 <= start <= end <= len(data):
        raise ValueError(
            f"Checksum window [{start}, {end}) out of bounds for {len(data)} bytes"
        )
    return sum(data[start:end]) & 0x7F


def validate_checksum(data: bytes, window: ChecksumWindow) -> bool:
    """Recompute the checksum over ``window`` and compare with the stored byte.

    Returns ``False`` rather than raising when the frame is too short to
    hold the window or the checksum byte.
    """
    if window.checksum_index >= len(data) or window.checksum_end > len(data):
        return False
    expected = compute_checksum(data, window.checksum_start, window.checksum_end)
    return data[window.checksum_index] == expected
