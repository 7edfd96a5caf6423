"""Tests for the pausable clock."""

import threading

import pytest

from directordeck.clock import Clock


class TestElapsed:
    def test_starts_at_zero(self, clock):
        assert clock.elapsed == 0.0
        assert not clock.running

    def test_advances_while_running(self, clock, fake_time):
        clock.start()
        fake_time.advance(1.25)
        assert clock.elapsed == pytest.approx(1.25)
        assert clock.running

    def test_frozen_while_paused(self, clock, fake_time):
        clock.start()
        fake_time.advance(2.0)
        assert clock.pause() == pytest.approx(2.0)
        fake_time.advance(5.0)
        assert clock.elapsed == pytest.approx(2.0)
        assert not clock.running

    def test_paused_time_excluded(self, clock, fake_time):
        clock.start()
        fake_time.advance(2.0)
        clock.pause()
        fake_time.advance(5.0)
        clock.resume()
        fake_time.advance(1.0)
        assert clock.stop() == pytest.approx(3.0)

    def test_many_cycles_sum_active_intervals(self, clock, fake_time):
        clock.start()
        active = 0.0
        for run, rest in [(0.5, 1.0), (0.25, 3.0), (1.5, 0.1)]:
            fake_time.advance(run)
            active += run
            clock.pause()
            fake_time.advance(rest)
            clock.resume()
        assert clock.elapsed == pytest.approx(active)

    def test_monotonic(self, clock, fake_time):
        clock.start()
        readings = []
        for step in range(10):
            fake_time.advance(0.1)
            if step % 3 == 0:
                clock.pause()
            elif not clock.running:
                clock.resume()
            readings.append(clock.elapsed)
        assert readings == sorted(readings)

    def test_backwards_time_source_does_not_shrink(self, clock, fake_time):
        clock.start()
        fake_time.advance(1.0)
        fake_time.advance(-5.0)
        assert clock.elapsed == pytest.approx(0.0)

    def test_start_resets(self, clock, fake_time):
        clock.start()
        fake_time.advance(4.0)
        clock.stop()
        clock.start()
        assert clock.elapsed == 0.0

    def test_resume_twice_is_harmless(self, clock, fake_time):
        clock.start()
        fake_time.advance(1.0)
        clock.resume()
        fake_time.advance(1.0)
        assert clock.elapsed == pytest.approx(2.0)

    def test_reset(self, clock, fake_time):
        clock.start()
        fake_time.advance(3.0)
        clock.reset()
        assert clock.elapsed == 0.0
        assert not clock.running

    def test_invalid_interval(self):
        with pytest.raises(ValueError, match="interval"):
            Clock(interval=0)


class TestTicks:
    def test_ticks_while_running(self):
        ticked = threading.Event()
        values = []

        def on_tick(elapsed):
            values.append(elapsed)
            if len(values) >= 3:
                ticked.set()

        clock = Clock(interval=0.01, on_tick=on_tick)
        clock.start()
        try:
            assert ticked.wait(timeout=2.0)
        finally:
            clock.stop()
        assert values == sorted(values)

    def test_no_ticks_after_pause(self):
        values = []
        clock = Clock(interval=0.01, on_tick=values.append)
        clock.start()
        clock.pause()
        count = len(values)
        threading.Event().wait(0.05)
        assert len(values) == count

    def test_failing_listener_stops_ticks(self):
        calls = []

        def on_tick(elapsed):
            calls.append(elapsed)
            raise RuntimeError("boom")

        clock = Clock(interval=0.01, on_tick=on_tick)
        clock.start()
        threading.Event().wait(0.1)
        clock.stop()
        assert len(calls) == 1
