"""Routing of reassembled MIDI events into per-category delivery queues.

Three categories, each with its own bounded buffer per subscriber:

- SysEx: small buffer, oldest dump dropped first (the newest dump wins).
- Control-Change: medium buffer, oldest value dropped first, preferring
  an older value of the same controller so the latest value of every
  controller survives.
- Note: large buffer, oldest Note-On dropped first together with its
  Note-Off. The release of a note the consumer has already received is
  never dropped; under pressure it is delivered ahead of buffered Note-Ons.

Subscriptions only see events published after they were created. Reads
never block longer than the caller's timeout.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator

from .codec import DecodedMessage, decode
from .errors import ProtocolError
from .reassembly import ControlChange, MidiEvent, NoteOff, NoteOn, SysExFrame

logger = logging.getLogger(__name__)

SYSEX_QUEUE_SIZE = 8
CONTROL_CHANGE_QUEUE_SIZE = 64
NOTE_QUEUE_SIZE = 128


class Category(Enum):
    SYSEX = "sysex"
    CONTROL_CHANGE = "control_change"
    NOTE = "note"


@dataclass(frozen=True)
class SysExEvent:
    """A reassembled SysEx frame with its decode result or error."""

    data: bytes
    message: DecodedMessage | None = None
    error: ProtocolError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        if self.error is not None:
            return f"SysExEvent(error={self.error.kind}, len={len(self.data)})"
        return f"SysExEvent({self.message.message_type.name}, len={len(self.data)})"


class Subscription:
    """One consumer's bounded view of a category.

    Safe for one producer and one or more reading threads.
    """

    def __init__(self, channel: EventChannel, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self._channel = channel
        self._capacity = capacity
        self._buffer: deque = deque()
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    @property
    def category(self) -> Category:
        return self._channel.category

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._buffer)

    def put(self, event: Any) -> None:
        """Add an event, applying the overflow policy. Called by the channel."""
        with self._cond:
            if self._closed:
                return
            if len(self._buffer) >= self._capacity:
                if not self._make_room(event):
                    self.dropped += 1
                    logger.debug("%s queue full; dropped incoming %r", self.category.value, event)
                    return
            self._insert(event)
            self._cond.notify()

    def get(self, timeout: float = 0.0) -> Any | None:
        """Return the next event, or ``None`` if none arrives in time.

        Args:
            timeout: Seconds to wait. ``0`` returns immediately.
        """
        if timeout is None or timeout < 0:
            raise ValueError(f"Timeout must be a non-negative number, got {timeout!r}")
        deadline = time.monotonic() + timeout
        with self._cond:
            while not self._buffer:
                remaining = deadline - time.monotonic()
                if self._closed or remaining <= 0:
                    return None
                self._cond.wait(remaining)
            event = self._buffer.popleft()
            self._delivered(event)
            return event

    def drain(self) -> list:
        """Remove and return everything currently buffered."""
        with self._cond:
            events = list(self._buffer)
            self._buffer.clear()
            for event in events:
                self._delivered(event)
            return events

    def __iter__(self) -> Iterator:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def close(self) -> None:
        """Detach from the channel; buffered events are discarded."""
        self._channel.unsubscribe(self)
        self._shutdown()

    def _shutdown(self) -> None:
        with self._cond:
            self._closed = True
            self._buffer.clear()
            self._cond.notify_all()

    # Overflow policy hooks, called with the condition held

    def _make_room(self, incoming: Any) -> bool:
        """Free one slot for ``incoming``. Return False to reject it instead."""
        evicted = self._buffer.popleft()
        self.dropped += 1
        logger.debug("%s queue full; dropped oldest %r", self.category.value, evicted)
        return True

    def _insert(self, event: Any) -> None:
        self._buffer.append(event)

    def _delivered(self, event: Any) -> None:
        pass


class ControlChangeSubscription(Subscription):
    """Drops an older value of the same controller before anything else."""

    def _make_room(self, incoming: ControlChange) -> bool:
        for i, buffered in enumerate(self._buffer):
            if (buffered.channel, buffered.control) == (incoming.channel, incoming.control):
                del self._buffer[i]
                self.dropped += 1
                return True
        return super()._make_room(incoming)


class NoteSubscription(Subscription):
    """Note queue that keeps releases for notes the consumer has heard.

    ``open_notes`` holds the ``(channel, note)`` keys whose Note-On has been
    delivered but whose Note-Off has not. The first buffered Note-Off for
    such a key is a pending release and is never evicted. Everything else
    (Note-Ons and Note-Offs for notes the consumer never heard) is evicted
    oldest first. Evicting a Note-On takes its Note-Off with it, whether
    that Note-Off is already buffered or still to come.

    Only pending releases may push the buffer past its capacity, and there
    is at most one per open note.
    """

    def __init__(self, channel: EventChannel, capacity: int) -> None:
        super().__init__(channel, capacity)
        self.open_notes: set[tuple[int, int]] = set()
        self._evicted: set[tuple[int, int]] = set()

    def put(self, event: NoteOn | NoteOff) -> None:
        with self._cond:
            if self._closed:
                return
            key = (event.channel, event.note)
            if isinstance(event, NoteOn):
                self._evicted.discard(key)
            elif self._release_of_evicted(key, event):
                return
            if len(self._buffer) < self._capacity:
                self._buffer.append(event)
                self._cond.notify()
                return

            pending = self._is_pending_release(event)
            if self._evict_one():
                if isinstance(event, NoteOff) and self._release_of_evicted(key, event):
                    return
            elif not pending:
                self.dropped += 1
                logger.debug("note queue full; dropped incoming %r", event)
                return
            else:
                logger.debug("note queue holds only pending releases; growing past %d", self._capacity)

            if pending:
                self._insert_release(event)
            else:
                self._buffer.append(event)
            self._cond.notify()

    def _release_of_evicted(self, key: tuple[int, int], event: NoteOff) -> bool:
        if key not in self._evicted:
            return False
        self._evicted.discard(key)
        self.dropped += 1
        logger.debug("dropped %r; its Note-On was evicted", event)
        return True

    def _is_pending_release(self, event: NoteOn | NoteOff) -> bool:
        key = (event.channel, event.note)
        if not isinstance(event, NoteOff) or key not in self.open_notes:
            return False
        return not any((b.channel, b.note) == key for b in self._buffer)

    def _evict_one(self) -> bool:
        seen: set[tuple[int, int]] = set()
        for i, buffered in enumerate(self._buffer):
            key = (buffered.channel, buffered.note)
            if isinstance(buffered, NoteOn):
                del self._buffer[i]
                self.dropped += 1
                logger.debug("note queue full; dropped %r", buffered)
                if not self._drop_release_after(i, key):
                    self._evicted.add(key)
                return True
            if key in seen or key not in self.open_notes:
                del self._buffer[i]
                self.dropped += 1
                logger.debug("note queue full; dropped unmatched %r", buffered)
                return True
            seen.add(key)
        return False

    def _drop_release_after(self, start: int, key: tuple[int, int]) -> bool:
        for i in range(start, len(self._buffer)):
            buffered = self._buffer[i]
            if (buffered.channel, buffered.note) != key:
                continue
            if isinstance(buffered, NoteOn):
                return False
            del self._buffer[i]
            self.dropped += 1
            return True
        return False

    def _insert_release(self, event: NoteOff) -> None:
        # Releases for sounding notes go ahead of buffered Note-Ons
        for i, buffered in enumerate(self._buffer):
            if isinstance(buffered, NoteOn):
                self._buffer.insert(i, event)
                return
        self._buffer.append(event)

    def _delivered(self, event: NoteOn | NoteOff) -> None:
        key = (event.channel, event.note)
        if isinstance(event, NoteOn):
            self.open_notes.add(key)
        else:
            self.open_notes.discard(key)


class EventChannel:
    """Single-producer, multi-consumer fan-out for one category."""

    def __init__(
        self,
        category: Category,
        capacity: int,
        subscription_cls: type[Subscription] = Subscription,
    ) -> None:
        self.category = category
        self.capacity = capacity
        self._subscription_cls = subscription_cls
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Create a subscription that receives events from now on."""
        with self._lock:
            if self._closed:
                raise RuntimeError(f"{self.category.value} channel is closed")
            if capacity is None:
                capacity = self.capacity
            subscription = self._subscription_cls(self, capacity)
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, event: Any) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.put(event)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription._shutdown()


class MessageRouter:
    """Classifies reassembled events and fans them out by category.

    Usage::

        router = MessageRouter()
        dumps = router.sysex_events.subscribe()
        router.route(SysExFrame(frame_bytes))
        event = dumps.get(timeout=1.0)
    """

    def __init__(
        self,
        sysex_capacity: int = SYSEX_QUEUE_SIZE,
        control_change_capacity: int = CONTROL_CHANGE_QUEUE_SIZE,
        note_capacity: int = NOTE_QUEUE_SIZE,
    ) -> None:
        self.sysex_events = EventChannel(Category.SYSEX, sysex_capacity)
        self.control_change_events = EventChannel(
            Category.CONTROL_CHANGE, control_change_capacity, ControlChangeSubscription
        )
        self.note_events = EventChannel(Category.NOTE, note_capacity, NoteSubscription)

    def channel(self, category: Category) -> EventChannel:
        return {
            Category.SYSEX: self.sysex_events,
            Category.CONTROL_CHANGE: self.control_change_events,
            Category.NOTE: self.note_events,
        }[category]

    def route(self, event: MidiEvent) -> None:
        """Deliver one reassembled event to its category."""
        if isinstance(event, SysExFrame):
            self.sysex_events.publish(self._decode(event.data))
        elif isinstance(event, ControlChange):
            self.control_change_events.publish(event)
        elif isinstance(event, (NoteOn, NoteOff)):
            self.note_events.publish(event)
        else:
            logger.debug("No category for %r; ignored", event)

    def route_all(self, events: list[MidiEvent]) -> None:
        for event in events:
            self.route(event)

    def close(self) -> None:
        for channel in (self.sysex_events, self.control_change_events, self.note_events):
            channel.close()

    @staticmethod
    def _decode(data: bytes) -> SysExEvent:
        try:
            message = decode(data)
        except ProtocolError as e:
            logger.warning("Rejected %d-byte SysEx frame: %s", len(data), e)
            return SysExEvent(data=data, error=e)
        return SysExEvent(data=data, message=message)
