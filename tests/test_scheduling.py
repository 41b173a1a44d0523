import os
import sys
import threading
import time

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.scheduling import IntervalTicker, start_timer


def test_ticker_calls_back_until_cancelled():
    ticks = []
    reached = threading.Event()

    def on_tick():
        ticks.append(1)
        if len(ticks) >= 3:
            reached.set()

    ticker = IntervalTicker(0.01, on_tick)
    ticker.start()
    assert reached.wait(timeout=2.0)
    ticker.cancel()

    count = len(ticks)
    assert not ticker.running
    time.sleep(0.05)
    assert len(ticks) == count


def test_ticker_can_cancel_from_its_callback():
    done = threading.Event()
    holder = {}

    def on_tick():
        holder["ticker"].cancel()
        done.set()

    holder["ticker"] = IntervalTicker(0.01, on_tick)
    holder["ticker"].start()

    assert done.wait(timeout=2.0)
    assert not holder["ticker"].running


def test_ticker_survives_callback_errors():
    calls = []
    reached = threading.Event()

    def on_tick():
        calls.append(1)
        if len(calls) >= 2:
            reached.set()
        raise RuntimeError("tick failed")

    ticker = IntervalTicker(0.01, on_tick)
    ticker.start()
    try:
        assert reached.wait(timeout=2.0)
    finally:
        ticker.cancel()


def test_timer_fires_and_can_be_cancelled():
    fired = threading.Event()
    timer = start_timer(0.01, fired.set)
    assert fired.wait(timeout=2.0)

    cancelled = threading.Event()
    timer = start_timer(0.5, cancelled.set)
    timer.cancel()
    assert not cancelled.wait(timeout=0.6)
    assert timer.daemon
