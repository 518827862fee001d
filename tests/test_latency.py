import pytest

from nfsping.latency import Histogram, LatencyRecorder
from nfsping.target import Target

def recorded(values, mode = LatencyRecorder.HISTOGRAM, interval = False):
    recorder = LatencyRecorder(mode)
    target = Target('filer', '10.0.0.1')
    recorder.prepare(target, count = len(values), interval = interval)
    for index, value in enumerate(values):
        target.record_sent()
        target.record_received()
        recorder.record(target, value, index)
    return recorder, target

def test_small_values_are_exact():
    recorder, target = recorded([10, 20, 30, 40, 100])
    assert recorder.min(target) == 10
    assert recorder.max(target) == 100
    assert recorder.mean(target) == 40

def test_results_mode_statistics():
    recorder, target = recorded([10, 20, 30, 40, 100], LatencyRecorder.RESULTS)
    assert recorder.min(target) == 10
    assert recorder.max(target) == 100
    assert recorder.mean(target) == 40
    assert target.results == [10, 20, 30, 40, 100]

def test_percentiles():
    histogram = Histogram()
    for value in range(1, 101):
        histogram.record(value)
    assert histogram.percentile(50) == 50
    assert histogram.percentile(90) == 90
    assert histogram.percentile(99) == 99
    assert histogram.percentile(100) == 100
    assert histogram.percentile(0) == 1

def test_large_values_keep_three_significant_figures():
    histogram = Histogram()
    histogram.record(123456)
    assert histogram.max == pytest.approx(123456, rel = 1e-3)
    assert histogram.max >= 123456
    assert histogram.min <= 123456

def test_values_above_range_are_clamped():
    histogram = Histogram(highest = 10000)
    histogram.record(50000)
    assert histogram.total_count == 1
    assert histogram.max == histogram.highest_equivalent(10000)

def test_negative_value():
    with pytest.raises(ValueError):
        Histogram().record(-1)

def test_empty_histogram():
    histogram = Histogram()
    assert histogram.min == 0
    assert histogram.max == 0
    assert histogram.mean == 0.0
    assert histogram.percentile(99) == 0

def test_mean_is_exact_above_bucket_resolution():
    histogram = Histogram()
    histogram.record(123456)
    histogram.record(123500)
    assert histogram.mean == 123478

def test_reset_interval_keeps_lifetime_results():
    recorder, target = recorded([100, 200], interval = True)
    assert recorder.summary(target, interval = True).sent == 2
    recorder.reset_interval(target)
    interval = recorder.summary(target, interval = True)
    assert (interval.sent, interval.received, interval.maximum) == (0, 0, 0)
    lifetime = recorder.summary(target)
    assert (lifetime.sent, lifetime.received, lifetime.minimum, lifetime.maximum) == (2, 2, 100, 200)

def test_interval_histogram_is_active():
    recorder, target = recorded([100, 200], interval = True)
    recorder.reset_interval(target)
    target.record_sent()
    target.record_received()
    recorder.record(target, 300)
    assert recorder.percentile(target, 50) == 300
    assert target.histogram.total_count == 3

def test_results_slot_written_once():
    recorder, target = recorded([100], LatencyRecorder.RESULTS)
    with pytest.raises(ValueError):
        recorder.record(target, 200, 0)

def test_results_slot_out_of_range():
    recorder, target = recorded([100], LatencyRecorder.RESULTS)
    with pytest.raises(ValueError):
        recorder.record(target, 200, 1)

def test_results_mode_needs_count():
    recorder = LatencyRecorder(LatencyRecorder.RESULTS)
    with pytest.raises(ValueError):
        recorder.prepare(Target('filer', '10.0.0.1'))

def test_summary_loss():
    recorder, target = recorded([100])
    target.record_sent()
    summary = recorder.summary(target)
    assert (summary.sent, summary.received, summary.loss) == (2, 1, 50)
    assert sorted(summary.percentiles) == [50, 90, 99]
