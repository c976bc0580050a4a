import pytest

from marketdesk.websocket.ledger import SequenceLedger, PendingRequest
from marketdesk.websocket.timers import ManualScheduler, TimerSlot


def test_sequence_numbers_increase_from_one():
    ledger = SequenceLedger()
    assert [ledger.next_sn() for _ in range(4)] == [1, 2, 3, 4]
    assert ledger.peek_sn == 5


def test_reset_restarts_counter_and_clears_pending():
    ledger = SequenceLedger()
    for _ in range(3):
        sn = ledger.next_sn()
        ledger.record(PendingRequest(sn=sn, kind="quote"))

    ledger.reset()

    assert len(ledger) == 0
    assert ledger.next_sn() == 1


def test_take_removes_entry():
    ledger = SequenceLedger()
    ledger.record(PendingRequest(sn=5, kind="quote", params={"codes": ["AAPL.US"]}))

    request = ledger.take(5)

    assert request.params == {"codes": ["AAPL.US"]}
    assert 5 not in ledger
    assert ledger.take(5) is None


def test_duplicate_sequence_number_rejected():
    ledger = SequenceLedger()
    ledger.record(PendingRequest(sn=1, kind="quote"))
    with pytest.raises(ValueError):
        ledger.record(PendingRequest(sn=1, kind="trend"))


def test_manual_scheduler_fires_in_order(replay_clock):
    scheduler = ManualScheduler(replay_clock)
    fired = []
    scheduler.call_later(3.0, lambda: fired.append("reconnect"))
    scheduler.call_later(1.0, lambda: fired.append("retry"))

    scheduler.advance(0.5)
    assert fired == []

    scheduler.advance(3.0)
    assert fired == ["retry", "reconnect"]
    assert replay_clock.monotonic() == pytest.approx(3.5)


def test_cancelled_callback_never_fires(replay_clock):
    scheduler = ManualScheduler(replay_clock)
    fired = []
    handle = scheduler.call_later(1.0, lambda: fired.append(1))
    handle.cancel()

    scheduler.advance(5)

    assert fired == []
    assert scheduler.pending() == 0


def test_timer_slot_rearm_replaces_previous(replay_clock):
    scheduler = ManualScheduler(replay_clock)
    slot = TimerSlot(scheduler, "reconnect")
    fired = []

    slot.arm(3.0, lambda: fired.append("first"))
    slot.arm(3.0, lambda: fired.append("second"))
    scheduler.advance(10)

    assert fired == ["second"]
    assert not slot.armed


def test_repeating_slot_fires_every_interval(replay_clock):
    scheduler = ManualScheduler(replay_clock)
    slot = TimerSlot(scheduler, "heartbeat")
    ticks = []

    slot.arm(10.0, lambda: ticks.append(replay_clock.monotonic()), repeat=True)
    scheduler.advance(35)

    assert ticks == [10.0, 20.0, 30.0]
    assert slot.armed

    slot.cancel()
    scheduler.advance(30)
    assert len(ticks) == 3
