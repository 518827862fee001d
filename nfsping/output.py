'''

Output formats for probe results and summaries

'''

import sys
import logging
from nfsping import helpers

class Output:
    '''
        Where probe results go. The poller calls success() or loss() for every
        probe, and the summary methods at interval and run boundaries.
    '''
    def __init__(self, **settings):
        self.stream = settings.get('stream', sys.stdout)
        self.logger = settings.get('logger', None)
        if self.logger == None:
            self.logger = logging.getLogger('NFSPING.Output')

    def write(self, line):
        self.stream.write(line + '\n')
        self.stream.flush()

    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        pass

    def loss(self, target, descriptor, timestamp, error = None, round_index = 0):
        self.logger.error('{0} : {1} call failed: {2}'.format(target.display_name, descriptor.protocol, error))

    def interval_summary(self, targets, recorder, descriptor, timestamp):
        pass

    def final_summary(self, targets, recorder, descriptor):
        pass

class AliveOutput(Output):
    '''Single shot mode, like fping without -c.'''
    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('{0} is alive ({1:.2f} ms)'.format(target.display_name, helpers.us2ms(elapsed_us)))

    def loss(self, target, descriptor, timestamp, error = None, round_index = 0):
        Output.loss(self, target, descriptor, timestamp, error, round_index)
        self.write('{0} is dead'.format(target.display_name))

class PingOutput(Output):
    '''Classic ping style output.'''
    def prefix(self, timestamp):
        return ''

    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('{0}{1} : [{2}], {3:.2f} ms ({4:.2f} avg, {5}% loss)'.format(
            self.prefix(timestamp),
            target.display_name,
            round_index,
            helpers.us2ms(elapsed_us),
            helpers.us2ms(target.histogram.mean),
            target.loss))

    def format_summary(self, target, summary):
        return '{0} : xmt/rcv/%loss = {1}/{2}/{3}%, min/avg/max = {4:.2f}/{5:.2f}/{6:.2f}'.format(
            target.display_name,
            summary.sent,
            summary.received,
            summary.loss,
            helpers.us2ms(summary.minimum),
            helpers.us2ms(summary.mean),
            helpers.us2ms(summary.maximum))

    def interval_summary(self, targets, recorder, descriptor, timestamp):
        for target in targets:
            summary = recorder.summary(target, interval = True)
            line = self.format_summary(target, summary)
            line += ', ' + ', '.join('{0}th = {1:.2f}'.format(p, helpers.us2ms(summary.percentiles[p])) for p in sorted(summary.percentiles))
            self.write(self.prefix(timestamp) + line)

    def final_summary(self, targets, recorder, descriptor):
        # blank line between the results and the summary, like ping
        self.stream.write('\n')
        for target in targets:
            self.write(self.format_summary(target, recorder.summary(target)))

class UnixtimeOutput(PingOutput):
    '''Ping output with each line prefixed by a unix timestamp.'''
    def prefix(self, timestamp):
        return '[{0:.6f}] '.format(timestamp)

class FpingOutput(Output):
    '''fping -C style: results now, every individual result in the summary.'''
    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('{0} : [{1}], {2:.2f} ms ({3:.2f} avg, {4}% loss)'.format(
            target.display_name,
            round_index,
            helpers.us2ms(elapsed_us),
            helpers.us2ms(recorder_mean(target)),
            target.loss))

    def final_summary(self, targets, recorder, descriptor):
        self.stream.write('\n')
        width = max([len(target.display_name) for target in targets] or [0])
        for target in targets:
            results = ' '.join('-' if us is None else '{0:.2f}'.format(helpers.us2ms(us)) for us in target.results)
            self.write('{0} : {1}'.format(target.display_name.ljust(width), results))

def recorder_mean(target):
    recorded = [us for us in target.results or [] if us is not None]
    if not recorded:
        return 0.0
    return sum(recorded) / float(len(recorded))

class GraphiteOutput(Output):
    '''Graphite plaintext protocol lines.'''
    def __init__(self, **settings):
        Output.__init__(self, **settings)
        self.prefix = settings.get('prefix', 'nfsping')

    def path(self, target, descriptor):
        return '{0}.{1}.{2}'.format(self.prefix, target.ndqf, descriptor.protocol)

    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('{0}.usec {1} {2}'.format(self.path(target, descriptor), elapsed_us, int(timestamp)))

    def loss(self, target, descriptor, timestamp, error = None, round_index = 0):
        Output.loss(self, target, descriptor, timestamp, error, round_index)
        self.write('{0}.lost 1 {1}'.format(self.path(target, descriptor), int(timestamp)))

    def interval_summary(self, targets, recorder, descriptor, timestamp):
        for target in targets:
            summary = recorder.summary(target, interval = True)
            path = self.path(target, descriptor)
            for p in sorted(summary.percentiles):
                self.write('{0}.p{1} {2} {3}'.format(path, p, summary.percentiles[p], int(timestamp)))
            self.write('{0}.loss {1} {2}'.format(path, summary.loss, int(timestamp)))

class StatsdOutput(GraphiteOutput):
    '''statsd timers and counters.'''
    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('{0}:{1:.3f}|ms'.format(self.path(target, descriptor), helpers.us2ms(elapsed_us)))

    def loss(self, target, descriptor, timestamp, error = None, round_index = 0):
        Output.loss(self, target, descriptor, timestamp, error, round_index)
        self.write('{0}.lost:1|c'.format(self.path(target, descriptor)))

    def interval_summary(self, targets, recorder, descriptor, timestamp):
        pass

class OpentsdbOutput(Output):
    '''OpenTSDB telnet style put lines.'''
    def tags(self, target, descriptor):
        return 'ip={0} name={1} protocol={2}'.format(target.ip_address, target.display_name, descriptor.protocol)

    def success(self, target, descriptor, elapsed_us, timestamp, round_index = 0):
        self.write('put nfsping.usec {0} {1} {2}'.format(int(timestamp), elapsed_us, self.tags(target, descriptor)))

    def loss(self, target, descriptor, timestamp, error = None, round_index = 0):
        Output.loss(self, target, descriptor, timestamp, error, round_index)
        self.write('put nfsping.lost {0} 1 {1}'.format(int(timestamp), self.tags(target, descriptor)))

    def interval_summary(self, targets, recorder, descriptor, timestamp):
        for target in targets:
            summary = recorder.summary(target, interval = True)
            for p in sorted(summary.percentiles):
                self.write('put nfsping.p{0} {1} {2} {3}'.format(p, int(timestamp), summary.percentiles[p], self.tags(target, descriptor)))
            self.write('put nfsping.loss {0} {1} {2}'.format(int(timestamp), summary.loss, self.tags(target, descriptor)))
