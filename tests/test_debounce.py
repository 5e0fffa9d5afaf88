import threading

import pytest

from door_sensor.debounce import DebounceEngine, DebounceState
from door_sensor.errors import SignalReadError
from door_sensor.signal_source import DrivenSignalSource
from door_sensor.status import SharedStatus, Status


class FixedSource:
    def __init__(self, level: bool):
        self.level = level

    def read(self) -> bool:
        return self.level


class FailingSource:
    """Reads fine once (at engine construction), then fails."""

    def __init__(self):
        self.reads = 0

    def read(self) -> bool:
        self.reads += 1
        if self.reads > 1:
            raise SignalReadError("pin vanished")
        return False


def make_engine(level=False, debounce=2.0, poll=0.1, **kwargs):
    shared = SharedStatus()
    engine = DebounceEngine(FixedSource(level), shared, poll_interval=poll,
                            debounce_delay=debounce, clock=lambda: 0.0, **kwargs)
    return engine, shared


def feed(engine, samples):
    """samples: iterable of (time, level); returns [(time, status)] for emitted events."""
    events = []
    for t, level in samples:
        status = engine.step(level, now=t)
        if status is not None:
            events.append((t, status))
    return events


def test_startup_adopts_first_sample_without_event():
    engine, shared = make_engine(level=True)
    assert engine.state is DebounceState.CLOSED
    assert shared.get() is Status.CLOSED

    engine, shared = make_engine(level=False)
    assert engine.state is DebounceState.IDLE
    assert shared.get() is Status.OPEN


@pytest.mark.parametrize("period", [0.05, 0.1, 0.5, 1.0])
def test_steady_closed_signal_emits_exactly_one_event(period):
    engine, shared = make_engine(level=False, debounce=2.0)
    samples = [(round(k * period, 6), True) for k in range(int(6.0 / period))]

    events = feed(engine, samples)

    assert [status for _, status in events] == [Status.CLOSED]
    assert events[0][0] >= 2.0
    assert engine.state is DebounceState.CLOSED
    assert shared.get() is Status.CLOSED


def test_short_pulse_from_idle_is_rejected():
    engine, shared = make_engine(level=False, debounce=2.0)
    samples = [(t / 10, True) for t in range(0, 15)] + [(t / 10, False) for t in range(15, 60)]

    assert feed(engine, samples) == []
    assert engine.state is DebounceState.IDLE
    assert shared.get() is Status.OPEN


def test_short_dip_from_closed_is_rejected():
    engine, shared = make_engine(level=True, debounce=2.0)
    samples = [(0.0, True), (0.5, False), (1.0, False), (1.9, False), (2.0, True), (10.0, True)]

    assert feed(engine, samples) == []
    assert engine.state is DebounceState.CLOSED
    assert shared.get() is Status.CLOSED


def test_open_confirmed_after_window():
    engine, shared = make_engine(level=True, debounce=2.0)

    events = feed(engine, [(0.0, False), (1.0, False), (2.0, False), (3.0, False)])

    assert events == [(2.0, Status.OPEN)]
    assert engine.state is DebounceState.IDLE
    assert shared.get() is Status.OPEN


def test_window_restarts_after_glitch():
    engine, _ = make_engine(level=False, debounce=2.0)
    samples = [(0.0, True), (1.5, True), (1.6, False), (1.7, True), (3.0, True), (3.7, True)]

    events = feed(engine, samples)

    # Candidate restarted at 1.7, so it only matures at 3.7
    assert events == [(3.7, Status.CLOSED)]


def test_chattering_signal_never_confirms():
    engine, _ = make_engine(level=False, debounce=1.0)
    samples = [(k * 0.3, k % 2 == 0) for k in range(100)]

    assert feed(engine, samples) == []


def test_full_cycle_emits_each_transition_once():
    engine, _ = make_engine(level=False, debounce=1.0)
    samples = ([(t / 10, True) for t in range(0, 30)] +
               [(t / 10, False) for t in range(30, 60)] +
               [(t / 10, True) for t in range(60, 90)])

    statuses = [status for _, status in feed(engine, samples)]

    assert statuses == [Status.CLOSED, Status.OPEN, Status.CLOSED]


def test_confirming_states_transitions():
    engine, _ = make_engine(level=False, debounce=1.0)

    engine.step(True, now=0.0)
    assert engine.state is DebounceState.CONFIRMING_CLOSED
    assert engine.confirmed is Status.OPEN

    engine.step(True, now=1.0)
    assert engine.state is DebounceState.CLOSED

    engine.step(False, now=2.0)
    assert engine.state is DebounceState.CONFIRMING_OPEN
    assert engine.confirmed is Status.CLOSED


def test_rejects_non_positive_timing():
    with pytest.raises(ValueError):
        make_engine(debounce=0)
    with pytest.raises(ValueError):
        make_engine(poll=0)


def test_startup_event_is_first_when_enabled():
    engine, _ = make_engine(level=True, notify_on_startup=True)

    event = next(engine.events())

    assert event.status is Status.CLOSED
    assert event.event_type == "initial_state"


def test_read_error_propagates_from_events():
    engine = DebounceEngine(FailingSource(), SharedStatus(), poll_interval=0.01, debounce_delay=0.05)

    with pytest.raises(SignalReadError):
        list(engine.events())


def test_events_loop_with_driven_source():
    source = DrivenSignalSource(default=False)
    shared = SharedStatus()
    engine = DebounceEngine(source, shared, poll_interval=0.01, debounce_delay=0.05)
    received = []
    got_event = threading.Event()

    def consume():
        for event in engine.events():
            received.append(event)
            got_event.set()

    worker = threading.Thread(target=consume, daemon=True)
    worker.start()

    source.set(True)
    assert got_event.wait(timeout=5)

    engine.stop()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert [e.status for e in received] == [Status.CLOSED]
    assert received[0].event_type == "state_change"
    assert shared.get() is Status.CLOSED
