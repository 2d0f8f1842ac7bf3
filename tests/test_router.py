"""Tests for per-category routing and overflow policies."""

import threading

import pytest

from miniworks_mcp.models.parameters import default_parameters
from miniworks_mcp.protocol.codec import encode
from miniworks_mcp.protocol.reassembly import (
    ControlChange,
    NoteOff,
    NoteOn,
    ProgramChange,
    SysExFrame,
)
from miniworks_mcp.protocol.router import (
    CONTROL_CHANGE_QUEUE_SIZE,
    NOTE_QUEUE_SIZE,
    SYSEX_QUEUE_SIZE,
    Category,
    MessageRouter,
)


def _dump(program: int) -> SysExFrame:
    return SysExFrame(encode(default_parameters(program=program)))


def test_default_capacities():
    router = MessageRouter()
    assert router.sysex_events.capacity == SYSEX_QUEUE_SIZE
    assert router.control_change_events.capacity == CONTROL_CHANGE_QUEUE_SIZE
    assert router.note_events.capacity == NOTE_QUEUE_SIZE
    assert SYSEX_QUEUE_SIZE < CONTROL_CHANGE_QUEUE_SIZE < NOTE_QUEUE_SIZE


def test_channel_lookup():
    router = MessageRouter()
    assert router.channel(Category.SYSEX) is router.sysex_events
    assert router.channel(Category.NOTE) is router.note_events


def test_sysex_event_decoded():
    router = MessageRouter()
    dumps = router.sysex_events.subscribe()
    router.route(_dump(4))
    event = dumps.get()
    assert event.ok
    assert event.message.program_number == 4


def test_invalid_sysex_delivered_as_error():
    router = MessageRouter()
    dumps = router.sysex_events.subscribe()
    frame = bytearray(_dump(4).data)
    frame[1] = 0x00
    router.route(SysExFrame(bytes(frame)))
    event = dumps.get()
    assert not event.ok
    assert event.error.kind == "WrongManufacturerID"
    assert event.data == bytes(frame)


def test_sysex_drops_oldest():
    router = MessageRouter(sysex_capacity=2)
    dumps = router.sysex_events.subscribe()
    for program in (1, 2, 3):
        router.route(_dump(program))
    assert [e.message.program_number for e in dumps.drain()] == [2, 3]
    assert dumps.dropped == 1


def test_no_replay_for_new_subscription():
    router = MessageRouter()
    router.route(_dump(1))
    dumps = router.sysex_events.subscribe()
    assert dumps.get() is None


def test_subscriptions_are_independent():
    router = MessageRouter()
    first = router.control_change_events.subscribe()
    second = router.control_change_events.subscribe()
    router.route(ControlChange(0, 78, 1))
    assert first.get() == ControlChange(0, 78, 1)
    assert second.get() == ControlChange(0, 78, 1)
    assert first.get() is None


def test_control_change_keeps_latest_value_per_controller():
    router = MessageRouter(control_change_capacity=3)
    controls = router.control_change_events.subscribe()
    router.route_all([
        ControlChange(0, 74, 1),
        ControlChange(0, 71, 5),
        ControlChange(0, 74, 2),
        ControlChange(0, 74, 3),
    ])
    assert list(controls) == [
        ControlChange(0, 71, 5),
        ControlChange(0, 74, 2),
        ControlChange(0, 74, 3),
    ]


def test_control_change_drops_oldest_when_all_distinct():
    router = MessageRouter(control_change_capacity=2)
    controls = router.control_change_events.subscribe()
    router.route_all([
        ControlChange(0, 1, 1),
        ControlChange(0, 2, 2),
        ControlChange(0, 3, 3),
    ])
    assert list(controls) == [ControlChange(0, 2, 2), ControlChange(0, 3, 3)]
    assert controls.dropped == 1


def test_note_on_tracked_when_delivered():
    router = MessageRouter()
    notes = router.note_events.subscribe()
    router.route(NoteOn(0, 60, 100))
    assert notes.open_notes == set()
    notes.get()
    assert notes.open_notes == {(0, 60)}
    router.route(NoteOff(0, 60))
    notes.get()
    assert notes.open_notes == set()


def test_note_off_forced_ahead_of_buffered_note_on():
    router = MessageRouter(note_capacity=2)
    notes = router.note_events.subscribe()
    router.route(NoteOn(0, 60, 100))
    notes.get()

    router.route(NoteOn(0, 61, 100))
    router.route(NoteOn(0, 62, 100))
    router.route(NoteOff(0, 60))

    assert notes.get() == NoteOff(0, 60)
    assert notes.get() == NoteOn(0, 62, 100)
    assert notes.get() is None
    assert notes.dropped == 1


def test_pending_release_never_dropped():
    router = MessageRouter(note_capacity=1)
    notes = router.note_events.subscribe()
    for note in (60, 61):
        router.route(NoteOn(0, note, 100))
        notes.get()

    router.route(NoteOff(0, 60))
    router.route(NoteOff(0, 61))
    router.route(NoteOn(0, 62, 100))

    assert notes.dropped == 1
    assert notes.drain() == [NoteOff(0, 60), NoteOff(0, 61)]
    assert notes.open_notes == set()


def test_unmatched_note_off_evicted_oldest_first():
    router = MessageRouter(note_capacity=4)
    notes = router.note_events.subscribe()
    for i in range(10000):
        router.route(NoteOff(i % 16, i % 128))
        assert len(notes) <= 4

    assert notes.dropped == 9996
    assert notes.drain() == [NoteOff(i % 16, i % 128) for i in range(9996, 10000)]


def test_duplicate_release_is_not_protected():
    router = MessageRouter(note_capacity=1)
    notes = router.note_events.subscribe()
    router.route(NoteOn(0, 60, 100))
    notes.get()

    router.route(NoteOff(0, 60))
    router.route(NoteOff(0, 60))

    assert len(notes) == 1
    assert notes.dropped == 1


def test_evicted_note_on_takes_buffered_note_off():
    router = MessageRouter(note_capacity=2)
    notes = router.note_events.subscribe()
    router.route(NoteOn(0, 60, 100))
    router.route(NoteOff(0, 60))
    router.route(NoteOn(0, 61, 100))

    assert notes.dropped == 2
    assert notes.drain() == [NoteOn(0, 61, 100)]


def test_evicted_note_on_takes_later_note_off():
    router = MessageRouter(note_capacity=2)
    notes = router.note_events.subscribe()
    router.route_all([NoteOn(0, 60, 100), NoteOn(0, 61, 100), NoteOn(0, 62, 100)])
    router.route(NoteOff(0, 60))

    assert notes.dropped == 2
    assert notes.drain() == [NoteOn(0, 61, 100), NoteOn(0, 62, 100)]


def test_note_queue_bounded_without_reader():
    router = MessageRouter(note_capacity=2)
    notes = router.note_events.subscribe()
    for note in range(100):
        router.route(NoteOn(0, note, 100))
        router.route(NoteOff(0, note))
        assert len(notes) <= 2

    assert notes.drain() == [NoteOn(0, 99, 100), NoteOff(0, 99)]


def test_uncategorised_events_ignored():
    router = MessageRouter()
    notes = router.note_events.subscribe()
    controls = router.control_change_events.subscribe()
    router.route(ProgramChange(0, 3))
    assert notes.get() is None
    assert controls.get() is None


def test_get_waits_for_producer():
    router = MessageRouter()
    notes = router.note_events.subscribe()
    timer = threading.Timer(0.05, router.route, args=[NoteOn(0, 64, 1)])
    timer.start()
    try:
        assert notes.get(timeout=2.0) == NoteOn(0, 64, 1)
    finally:
        timer.cancel()


def test_get_times_out():
    notes = MessageRouter().note_events.subscribe()
    assert notes.get(timeout=0.01) is None


@pytest.mark.parametrize("timeout", [-1, None])
def test_get_rejects_bad_timeout(timeout):
    notes = MessageRouter().note_events.subscribe()
    with pytest.raises(ValueError):
        notes.get(timeout=timeout)


def test_subscription_close_detaches():
    router = MessageRouter()
    dumps = router.sysex_events.subscribe()
    assert router.sysex_events.subscriber_count == 1
    dumps.close()
    assert router.sysex_events.subscriber_count == 0
    router.route(_dump(1))
    assert dumps.get() is None


def test_router_close_tears_down_queues():
    router = MessageRouter()
    notes = router.note_events.subscribe()
    router.route(NoteOn(0, 60, 1))
    router.close()
    assert notes.closed
    assert notes.get(timeout=1.0) is None
    with pytest.raises(RuntimeError):
        router.note_events.subscribe()


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        MessageRouter().sysex_events.subscribe(capacity=-1)


def test_zero_capacity_rejected():
    with pytest.raises(ValueError):
        MessageRouter().note_events.subscribe(capacity=0)
