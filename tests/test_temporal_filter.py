from __future__ import annotations

import pytest

from ipd_engine.temporal_filter import RobustStream, smooth_sequence


def test_outlier_rejected_after_five_identical_values() -> None:
    stream = RobustStream(window=21, k=3.5)
    for _ in range(5):
        stream.add(20.0)

    estimate = stream.add(20.0 + 3.6)

    assert estimate == 20.0
    assert stream.last_rejected
    assert len(stream) == 5


def test_values_within_floor_threshold_are_accepted() -> None:
    stream = RobustStream(window=21, k=3.5)
    for _ in range(5):
        stream.add(20.0)

    stream.add(23.0)

    assert not stream.last_rejected
    assert len(stream) == 6


def test_no_rejection_before_five_values() -> None:
    stream = RobustStream()
    for v in (10.0, 10.0, 10.0, 10.0):
        stream.add(v)

    estimate = stream.add(1000.0)

    assert len(stream) == 5
    assert estimate == 10.0
    assert not stream.last_rejected


def test_missing_value_keeps_estimate_and_window() -> None:
    stream = RobustStream()
    assert stream.add(None) is None

    for v in (1.0, 2.0, 3.0):
        stream.add(v)
    before = stream.values

    assert stream.add(None) == 2.0
    assert stream.values == before


def test_window_is_capped_and_evicts_oldest() -> None:
    stream = RobustStream(window=21)
    for v in range(40):
        stream.add(float(v % 3))
        assert len(stream) <= 21

    stream = RobustStream(window=3)
    for v in (1.0, 2.0, 3.0, 4.0):
        stream.add(v)
    assert stream.values == [2.0, 3.0, 4.0]


def test_median_of_even_window() -> None:
    stream = RobustStream()
    stream.add(1.0)

    assert stream.add(2.0) == pytest.approx(1.5)


def test_clear_resets_stream() -> None:
    stream = RobustStream()
    for _ in range(6):
        stream.add(50.0)

    stream.clear()

    assert stream.current() is None
    assert len(stream) == 0
    # A fresh stream accepts anything until it holds five values again
    assert stream.add(500.0) == 500.0


def test_mad_scales_threshold_for_noisy_window() -> None:
    stream = RobustStream(k=3.5)
    for v in (100.0, 104.0, 96.0, 108.0, 92.0, 100.0, 104.0, 96.0):
        stream.add(v)
    # median 100, MAD = 1.4826 * 4 ~= 5.93, threshold ~= 20.8
    stream.add(115.0)
    assert not stream.last_rejected

    stream.add(130.0)
    assert stream.last_rejected


def test_invalid_window_raises() -> None:
    with pytest.raises(ValueError):
        RobustStream(window=0)


def test_smooth_sequence_holds_through_spike_and_gap() -> None:
    values = [10.0] * 6 + [80.0, None, 10.0]

    estimates = smooth_sequence(values)

    assert estimates == [10.0] * 9


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_value_is_treated_as_missing(bad) -> None:
    stream = RobustStream(window=21, k=3.5)
    for v in (20.0, 21.0, 22.0):
        stream.add(v)

    estimate = stream.add(bad)

    assert estimate == 21.0
    assert stream.current() == 21.0
    assert stream.values == [20.0, 21.0, 22.0]
    assert not stream.last_rejected
