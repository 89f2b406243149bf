import threading

import pytest

from examprep.utils.ticker import RepeatingTicker


def test_ticks_until_cancelled():
    ticked = threading.Event()
    count = []

    def cb():
        count.append(1)
        if len(count) >= 3:
            ticked.set()

    t = RepeatingTicker(0.01, cb).start()
    assert ticked.wait(2.0)
    t.cancel()
    t.join(2.0)
    seen = len(count)
    assert t.cancelled
    assert not t._thread.is_alive()
    assert len(count) == seen


def test_cancel_from_inside_callback_stops_further_ticks():
    calls = []
    done = threading.Event()

    def cb():
        calls.append(1)
        ticker.cancel()
        done.set()

    ticker = RepeatingTicker(0.01, cb)
    ticker.start()
    assert done.wait(2.0)
    ticker.join(2.0)
    assert calls == [1]


def test_failing_callback_stops_the_ticker():
    def cb():
        raise RuntimeError('boom')

    t = RepeatingTicker(0.01, cb).start()
    t.join(2.0)
    assert t.cancelled


def test_cannot_start_twice_or_use_bad_interval():
    t = RepeatingTicker(10, lambda: None).start()
    with pytest.raises(RuntimeError):
        t.start()
    t.cancel()
    with pytest.raises(ValueError):
        RepeatingTicker(0, lambda: None)
