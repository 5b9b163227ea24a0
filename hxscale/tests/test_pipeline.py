import threading
from collections import deque

import pytest

from hxscale.errors import Cancelled, InvalidArgument, NoValidData, ReadyTimeout
from hxscale.hx711 import push_moving_average
from hxscale.tests.fakes import NOT_READY


class _StopAfter:
    """Stop signal that flips after ``checks`` negative answers."""

    def __init__(self, checks: int) -> None:
        self.remaining = checks

    def is_set(self) -> bool:
        if self.remaining <= 0:
            return True
        self.remaining -= 1
        return False


def test_median_of_odd_batch(make_chip):
    chip, _ = make_chip([5, 1, 3])

    assert chip.read_median_raw(3) == 3


def test_median_of_even_batch_takes_index_half(make_chip):
    chip, _ = make_chip([5, 1, 3, 9])

    # sorted [1, 3, 5, 9] -> index 2
    assert chip.read_median_raw(4) == 5


def test_median_handles_negative_readings(make_chip):
    chip, _ = make_chip([-200, 50, -8_388_608, 7])

    assert chip.read_median_raw(4) == 7


def test_median_excludes_sentinel_and_failed_reads(make_chip):
    chip, sim = make_chip([7, -1, NOT_READY, 3, 5])

    assert chip.read_median_raw(5) == 5
    assert not sim.values


def test_failed_reads_are_not_retried_within_a_batch(make_chip):
    chip, sim = make_chip([NOT_READY, 4, 8, 100])

    # the batch has three attempts; the failed one is not replaced
    assert chip.read_median_raw(3) == 8
    assert list(sim.values) == [100]


def test_median_without_valid_data_keeps_last_error(make_chip):
    chip, _ = make_chip([-1, NOT_READY])

    with pytest.raises(NoValidData) as excinfo:
        chip.read_median_raw(2)

    assert isinstance(excinfo.value.last_error, ReadyTimeout)


def test_median_of_only_sentinels_has_no_last_error(make_chip):
    chip, _ = make_chip([-1, -1, -1])

    with pytest.raises(NoValidData) as excinfo:
        chip.read_median_raw(3)

    assert excinfo.value.last_error is None


def test_stop_before_first_sample_cancels_without_reading(make_chip):
    chip, sim = make_chip([1, 2, 3])
    stop = threading.Event()
    stop.set()

    with pytest.raises(Cancelled):
        chip.median_raw(3, stop)

    assert sim.conversions == 0
    assert list(sim.values) == [1, 2, 3]


def test_stop_in_the_middle_of_a_batch(make_chip):
    chip, sim = make_chip([1, 2, 3, 4])

    with pytest.raises(Cancelled):
        chip.median_raw(4, _StopAfter(2))

    assert sim.conversions == 2


def test_cancelled_is_distinguishable_from_data_errors(make_chip):
    chip, _ = make_chip([])
    stop = threading.Event()
    stop.set()

    with pytest.raises(Cancelled) as excinfo:
        chip.median_raw(1, stop)

    assert not isinstance(excinfo.value, NoValidData)


def test_read_median_applies_calibration(make_chip):
    chip, _ = make_chip([1000], zero_offset=100, scale_factor=4.5)

    assert chip.read_median(1) == 200.0


def test_read_median_with_negative_scale(make_chip):
    chip, _ = make_chip([-500], zero_offset=500, scale_factor=-2.0)

    assert chip.read_median(1) == 500.0


def test_read_median_then_avg_subtracts_zero_before_averaging(make_chip):
    chip, sim = make_chip([1000, 1000, 1000, 1100, 1100, 1100], zero_offset=100, scale_factor=2.0)

    # ((900 + 1000) / 2) / 2
    assert chip.read_median_then_avg(3, 2) == 475.0
    assert sim.conversions == 6


def test_read_median_then_avg_propagates_batch_failure(make_chip):
    chip, _ = make_chip([10, 10])

    with pytest.raises(NoValidData):
        chip.read_median_then_avg(2, 2)


def test_read_median_then_avg_requires_positive_count(make_chip):
    chip, _ = make_chip([10])

    with pytest.raises(InvalidArgument):
        chip.read_median_then_avg(1, 0)


def test_moving_average_window_is_bounded_fifo():
    window = []
    results = [push_moving_average(window, value, 3) for value in [1.0, 2.0, 3.0, 4.0]]

    assert results == [1.0, 1.5, 2.0, 3.0]
    assert window == [2.0, 3.0, 4.0]


def test_moving_average_accepts_a_deque():
    window = deque([10.0, 20.0])

    assert push_moving_average(window, 30.0, 2) == 25.0
    assert list(window) == [20.0, 30.0]


def test_moving_average_rejects_missing_window_and_bad_capacity():
    with pytest.raises(InvalidArgument):
        push_moving_average(None, 1.0, 3)
    with pytest.raises(InvalidArgument):
        push_moving_average([], 1.0, 0)


def test_read_median_then_moving_avg_uses_caller_window(make_chip):
    chip, _ = make_chip([10, 20, 30, 40], scale_factor=2.0)
    window = []

    results = [chip.read_median_then_moving_avg(1, 3, window) for _ in range(4)]

    assert results == [5.0, 7.5, 10.0, 15.0]
    assert window == [10.0, 15.0, 20.0]


def test_read_median_then_moving_avg_requires_window(make_chip):
    chip, sim = make_chip([10])

    with pytest.raises(InvalidArgument):
        chip.read_median_then_moving_avg(1, 3, None)

    assert sim.conversions == 0


def test_read_median_then_moving_avg_leaves_window_alone_on_error(make_chip):
    chip, _ = make_chip([])
    window = [1.0, 2.0]

    with pytest.raises(NoValidData):
        chip.read_median_then_moving_avg(2, 3, window)

    assert window == [1.0, 2.0]


def test_tare_sets_zero_offset(make_chip):
    chip, _ = make_chip([120, 100, 110, 5000], scale_factor=10.0)

    assert chip.tare(3) == 110
    assert chip.zero_offset == 110
    assert chip.read_median(1) == 489.0


def test_set_calibration_keeps_unspecified_value(make_chip):
    chip, _ = make_chip([1100], zero_offset=100, scale_factor=2.0)

    chip.set_calibration(scale_factor=4.0)

    assert chip.calibration == (100, 4.0)
    assert chip.read_median(1) == 250.0
