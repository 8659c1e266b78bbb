import math
from unittest import mock

import pytest

from mpscentral.timer import Timer


def _ticks(timer, stamps):
    with mock.patch("time.perf_counter", side_effect=stamps):
        for _ in stamps:
            timer.tick()


def test_first_tick_only_starts():
    timer = Timer("t", 4)
    _ticks(timer, [0.0])
    assert timer.tick_count == 0
    assert timer.min_period() == -1.0
    assert timer.max_period() == -1.0


def test_mean_of_empty_is_nan_until_a_period_is_recorded():
    timer = Timer("t", 4)
    empty_mean = timer.mean_period()
    assert str(empty_mean) == "nan"
    assert math.isnan(empty_mean)
    _ticks(timer, [0.0, 2.0])
    assert timer.mean_period() == pytest.approx(2.0)


def test_periods_statistics():
    timer = Timer("t", 4)
    _ticks(timer, [0.0, 2.0, 3.0])
    assert timer.tick_count == 2
    assert timer.max_period() == 2.0
    assert timer.min_period() == pytest.approx(1.0)
    assert timer.mean_period() == pytest.approx(1.5)
    assert timer.all_max_period() == 2.0


def test_buffer_keeps_latest_periods_only():
    timer = Timer("t", 2)
    _ticks(timer, [0.0, 4.0, 5.0, 6.0])
    assert timer.tick_count == 3
    assert timer.max_period() == pytest.approx(1.0)
    assert timer.all_max_period() == 4.0
    assert timer.max_period() < timer.all_max_period()


def test_clear_resets_all_time_max_only():
    timer = Timer("t", 4)
    _ticks(timer, [0.0, 2.0])
    timer.clear()
    assert timer.all_max_period() == 0.0
    assert timer.max_period() == 2.0


def test_stop_then_tick_restarts():
    timer = Timer("t", 4)
    with mock.patch("time.perf_counter", side_effect=[0.0, 1.0, 5.0]):
        timer.tick()
        timer.tick()
        timer.stop()
        timer.tick()
    assert timer.tick_count == 1
    assert timer.max_period() == 1.0


def test_start_is_idempotent():
    timer = Timer("t", 4)
    with mock.patch("time.perf_counter", side_effect=[1.0, 3.0]):
        timer.start()
        timer.start()
        timer.tick()
    assert timer.max_period() == 2.0


def test_countdown():
    timer = Timer("t")
    assert timer.countdown_complete(1.0) is True
    with mock.patch("time.perf_counter", side_effect=[10.0, 10.5, 12.0]):
        timer.start()
        assert timer.countdown_complete(1.0) is False
        assert timer.countdown_complete(1.0) is True
        assert timer.started is False
        assert timer.countdown_complete(1.0) is True


def test_report_without_ticks():
    text = Timer("Time Between Heartbeats", 4).report()
    assert text.startswith("--- Time Between Heartbeats ---")
    assert "Number of ticks     : 0" in text
    assert "Minimum period" not in text


def test_report_with_ticks():
    timer = Timer("t", 4)
    _ticks(timer, [0.0, 2.0])
    text = timer.report()
    assert "Number of ticks     : 1" in text
    assert "Minimum period      : 2e+06 us" in text


def test_invalid_size():
    with pytest.raises(ValueError):
        Timer("t", 0)