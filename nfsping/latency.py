'''

This file contains the latency histogram and the per target recorder

'''

import math
import logging
from collections import namedtuple

# microseconds, one minute covers any sane RPC timeout
LOWEST_TRACKABLE = 1
HIGHEST_TRACKABLE = 60000000
SIGNIFICANT_FIGURES = 3

Summary = namedtuple('Summary', ['sent', 'received', 'loss', 'minimum', 'mean', 'maximum', 'percentiles'])

class Histogram:
    '''
        Log-linear histogram of integer values in the style of HdrHistogram.

        Values are kept to `significant_figures` decimal digits. With the
        defaults every value below 2048 gets its own bucket, so small
        latencies are exact; above that each power of two is split into 1024
        buckets.

        Percentile queries rank with int(p / 100 * total + 0.5), at least 1,
        and return the highest value equivalent to the bucket holding that
        rank.
    '''
    def __init__(self, lowest = LOWEST_TRACKABLE, highest = HIGHEST_TRACKABLE, significant_figures = SIGNIFICANT_FIGURES, logger = None):
        if lowest < 1:
            raise ValueError('lowest trackable value must be >= 1')
        if highest < 2 * lowest:
            raise ValueError('highest trackable value must be >= 2 * lowest')
        if not 1 <= significant_figures <= 5:
            raise ValueError('significant figures must be between 1 and 5')
        self.lowest = lowest
        self.highest = highest
        self.significant_figures = significant_figures
        self.logger = logger if logger is not None else logging.getLogger('NFSPING.Histogram')

        largest_single_unit = 2 * 10 ** significant_figures
        sub_bucket_count_magnitude = int(math.ceil(math.log(largest_single_unit, 2)))
        self.sub_bucket_half_count_magnitude = max(sub_bucket_count_magnitude, 1) - 1
        self.unit_magnitude = int(math.floor(math.log(lowest, 2)))
        self.sub_bucket_count = 1 << (self.sub_bucket_half_count_magnitude + 1)
        self.sub_bucket_half_count = self.sub_bucket_count // 2
        self.sub_bucket_mask = (self.sub_bucket_count - 1) << self.unit_magnitude

        smallest_untrackable = self.sub_bucket_count << self.unit_magnitude
        self.bucket_count = 1
        while smallest_untrackable <= highest:
            smallest_untrackable <<= 1
            self.bucket_count += 1
        self.counts_len = (self.bucket_count + 1) * self.sub_bucket_half_count
        self.reset()

    def reset(self):
        self.counts = [0] * self.counts_len
        self.total_count = 0
        self.total = 0
        self.min_value = None
        self.max_value = None

    def bucket_index(self, value):
        # smallest power of two containing value
        pow2ceiling = (value | self.sub_bucket_mask).bit_length()
        return pow2ceiling - self.unit_magnitude - (self.sub_bucket_half_count_magnitude + 1)

    def sub_bucket_index(self, value, bucket_index):
        return value >> (bucket_index + self.unit_magnitude)

    def counts_index(self, bucket_index, sub_bucket_index):
        bucket_base = (bucket_index + 1) << self.sub_bucket_half_count_magnitude
        return bucket_base + (sub_bucket_index - self.sub_bucket_half_count)

    def counts_index_for(self, value):
        bucket_index = self.bucket_index(value)
        return self.counts_index(bucket_index, self.sub_bucket_index(value, bucket_index))

    def value_from_index(self, bucket_index, sub_bucket_index):
        return sub_bucket_index << (bucket_index + self.unit_magnitude)

    def value_at_index(self, index):
        bucket_index = (index >> self.sub_bucket_half_count_magnitude) - 1
        sub_bucket_index = (index & (self.sub_bucket_half_count - 1)) + self.sub_bucket_half_count
        if bucket_index < 0:
            sub_bucket_index -= self.sub_bucket_half_count
            bucket_index = 0
        return self.value_from_index(bucket_index, sub_bucket_index)

    def equivalent_range(self, value):
        bucket_index = self.bucket_index(value)
        sub_bucket_index = self.sub_bucket_index(value, bucket_index)
        if sub_bucket_index >= self.sub_bucket_count:
            bucket_index += 1
        return 1 << (self.unit_magnitude + bucket_index)

    def lowest_equivalent(self, value):
        bucket_index = self.bucket_index(value)
        return self.value_from_index(bucket_index, self.sub_bucket_index(value, bucket_index))

    def highest_equivalent(self, value):
        return self.lowest_equivalent(value) + self.equivalent_range(value) - 1

    def record(self, value, count = 1):
        '''
            Record `count` occurrences of `value`.

            Values above the highest trackable value are clamped to it.
        '''
        if value < 0:
            raise ValueError('Can\'t record negative value {0}'.format(value))
        value = int(value)
        if value > self.highest:
            self.logger.warning('Value {0} above highest trackable value, recording {1}'.format(value, self.highest))
            value = self.highest
        self.counts[self.counts_index_for(value)] += count
        self.total_count += count
        self.total += value * count
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value

    @property
    def min(self):
        if not self.total_count:
            return 0
        return self.lowest_equivalent(self.min_value)

    @property
    def max(self):
        if not self.total_count:
            return 0
        return self.highest_equivalent(self.max_value)

    @property
    def mean(self):
        '''Exact mean of the recorded values, not of their buckets.'''
        if not self.total_count:
            return 0.0
        return self.total / float(self.total_count)

    def percentile(self, percentile):
        if not self.total_count:
            return 0
        percentile = min(max(percentile, 0.0), 100.0)
        count_at_percentile = max(int(percentile / 100.0 * self.total_count + 0.5), 1)
        running = 0
        for index, count in enumerate(self.counts):
            running += count
            if running >= count_at_percentile:
                return self.highest_equivalent(self.value_at_index(index))
        return self.max

class LatencyRecorder:
    '''
        Keeps latency results for targets, either in histograms or in a
        preallocated results list with one slot per round (fping style
        summaries need every individual result).
    '''
    HISTOGRAM = 'histogram'
    RESULTS = 'results'

    # percentiles reported in summaries
    PERCENTILES = (50, 90, 99)

    def __init__(self, mode = HISTOGRAM, **settings):
        if mode not in (self.HISTOGRAM, self.RESULTS):
            raise ValueError('Unknown recorder mode {0}'.format(mode))
        self.mode = mode
        self.lowest = settings.get('lowest', LOWEST_TRACKABLE)
        self.highest = settings.get('highest', HIGHEST_TRACKABLE)
        self.significant_figures = settings.get('significant_figures', SIGNIFICANT_FIGURES)
        self.logger = settings.get('logger', None)

    def new_histogram(self):
        return Histogram(self.lowest, self.highest, self.significant_figures, self.logger)

    def prepare(self, target, count = None, interval = False):
        '''Allocate latency state for a target before polling starts.'''
        target.histogram = self.new_histogram()
        target.interval_histogram = self.new_histogram() if interval else None
        if self.mode == self.RESULTS:
            if not count:
                raise ValueError('Results mode needs a round count')
            target.results = [None] * count
        else:
            target.results = None

    def record(self, target, elapsed_us, round_index = None):
        if elapsed_us < 0:
            raise ValueError('Negative latency {0}'.format(elapsed_us))
        target.histogram.record(elapsed_us)
        if target.interval_histogram is not None:
            target.interval_histogram.record(elapsed_us)
        if target.results is not None:
            if round_index is None or not 0 <= round_index < len(target.results):
                raise ValueError('Round {0} outside the results array'.format(round_index))
            if target.results[round_index] is not None:
                raise ValueError('Round {0} already recorded for {1}'.format(round_index, target.name))
            target.results[round_index] = elapsed_us

    def active(self, target):
        if target.interval_histogram is not None:
            return target.interval_histogram
        return target.histogram

    def recorded(self, target):
        return [us for us in target.results if us is not None]

    def percentile(self, target, percentile):
        return self.active(target).percentile(percentile)

    def min(self, target):
        if self.mode == self.RESULTS:
            return min(self.recorded(target) or [0])
        return self.active(target).min

    def max(self, target):
        if self.mode == self.RESULTS:
            return max(self.recorded(target) or [0])
        return self.active(target).max

    def mean(self, target):
        if self.mode == self.RESULTS:
            recorded = self.recorded(target)
            if not recorded:
                return 0.0
            return sum(recorded) / float(len(recorded))
        return self.active(target).mean

    def reset_interval(self, target):
        if target.interval_histogram is not None:
            target.interval_histogram.reset()
        target.interval_sent = 0
        target.interval_received = 0

    def summary(self, target, interval = False):
        '''
            Aggregate a target's results.

            With `interval` the interval histogram and counters are used,
            otherwise the lifetime ones.
        '''
        if interval:
            sent, received = target.interval_sent, target.interval_received
            histogram = target.interval_histogram if target.interval_histogram is not None else target.histogram
        else:
            sent, received = target.sent, target.received
            histogram = target.histogram
        loss = int((sent - received) * 100 / sent) if sent else 0
        if self.mode == self.RESULTS and not interval:
            minimum, mean, maximum = self.min(target), self.mean(target), self.max(target)
        else:
            minimum, mean, maximum = histogram.min, histogram.mean, histogram.max
        percentiles = dict((p, histogram.percentile(p)) for p in self.PERCENTILES)
        return Summary(sent, received, loss, minimum, mean, maximum, percentiles)
