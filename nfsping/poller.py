'''

This file contains the polling loop that drives rounds of probes over targets

'''

import time
from nfsping import helpers
from nfsping.latency import LatencyRecorder
from nfsping.output import PingOutput
from nfsping.rpc import connection
from nfsping.rpc import rpcbind

# defaults
NFS_TIMEOUT = 1.0   # seconds per call
NFS_WAIT = 0.001    # seconds between targets
NFS_HERTZ = 10      # rounds per second

class Poller:
    '''
        Sends one probe to every target per round, in list order, and paces
        rounds so the long run average matches the configured frequency.
    '''
    def __init__(self, **settings):
        self.descriptor = settings.get('descriptor', None)
        self.transport = settings.get('transport', 'udp')
        self.timeout = settings.get('timeout', NFS_TIMEOUT)
        self.source_address = settings.get('source_address', '')
        self.pmap_port = settings.get('pmap_port', 111)
        self.count = settings.get('count', None)
        self.loop = settings.get('loop', False)
        self.hertz = settings.get('hertz', NFS_HERTZ)
        self.wait = settings.get('wait', NFS_WAIT)
        self.reconnect = settings.get('reconnect', False)
        self.summary_interval = settings.get('summary_interval', 0)
        self.quiet = settings.get('quiet', False)
        self.auth_unix = settings.get('auth_unix', False)
        self.mode_verbose = settings.get('mode_verbose', False) # verbose mode
        self.mode_debug = settings.get('mode_debug', False) # debug mode
        self.logger = settings.get('logger', None)
        self.recorder = settings.get('recorder', None) or LatencyRecorder()
        self.output = settings.get('output', None) or PingOutput()
        self.connect = settings.get('connect', connection.connect)
        self.disconnect = settings.get('disconnect', connection.disconnect)
        # monotonic nanoseconds for elapsed times, wall clock only for display
        self.clock = settings.get('clock', time.monotonic_ns)
        self.wallclock = settings.get('wallclock', time.time)
        self.sleep = settings.get('sleep', time.sleep)

        # setup logger
        if self.logger == None:
            self.logger = helpers.default_logger('NFSPING', self.mode_debug, self.mode_verbose)

        if self.descriptor is None:
            raise helpers.ConfigurationError('No probe selected')
        if self.count is not None and self.count <= 0:
            raise helpers.ConfigurationError('Zero count, nothing to do!')
        if self.count and self.loop:
            raise helpers.ConfigurationError('Can\'t specify both count and loop!')
        if self.timeout <= 0:
            raise helpers.ConfigurationError('Zero timeout!')
        if self.hertz <= 0:
            raise helpers.ConfigurationError('Polling frequency must be positive!')
        if self.wait < 0:
            raise helpers.ConfigurationError('Negative wait between targets!')
        if self.recorder.mode == LatencyRecorder.RESULTS and not self.count:
            raise helpers.ConfigurationError('Storing every result needs a count')

        self.period = int(1000000000 / self.hertz)
        # interval summaries are counted in rounds
        self.summary_rounds = 0
        if self.summary_interval:
            self.summary_rounds = max(int(self.hertz * self.summary_interval), 1)
        self.rounds = self.count or 1

        self.logger.debug('Probe: {0} ({1} version {2}) over {3}'.format(
            self.descriptor.name, self.descriptor.program, self.descriptor.wire_version, self.transport))
        self.logger.debug('Timeout: {0}s, wait: {1}s, frequency: {2}Hz'.format(self.timeout, self.wait, self.hertz))

    def prepare(self, targets):
        for target in targets:
            if target.histogram is None:
                self.recorder.prepare(target, count = self.count, interval = bool(self.summary_rounds))

    def open_channel(self, target):
        channel = self.connect(target.address,
                self.descriptor.program,
                self.descriptor.wire_version,
                transport = self.transport,
                timeout = self.timeout,
                source_address = self.source_address,
                pmap_port = self.pmap_port,
                logger = helpers.get_child_logger(self.logger, 'RPC'))
        # remember the port so reconnects skip the portmapper
        target.port = channel.address[1]
        if self.auth_unix:
            connection.upgrade_auth(channel, rpcbind.AuthUnix())
        return channel

    def probe(self, target, round_index):
        '''
            Send one probe to a target and account for it.

            Returns:
                bool: True if the target replied
        '''
        timestamp = self.wallclock()
        if target.channel is None:
            try:
                target.channel = self.open_channel(target)
            except helpers.ConnectError as e:
                target.record_sent()
                self.output.loss(target, self.descriptor, timestamp, e, round_index)
                return False

        start = self.clock()
        try:
            self.descriptor.call(target.channel)
        except rpcbind.RPCError as e:
            target.record_sent()
            self.output.loss(target, self.descriptor, timestamp, e, round_index)
            if self.reconnect or e.connection_broken:
                self.logger.debug('{0}: dropping connection after {1}'.format(target.display_name, e))
                target.channel = self.disconnect(target.channel)
            return False
        end = self.clock()

        elapsed_us = helpers.ns2us(end - start)
        target.record_sent()
        target.record_received()
        self.recorder.record(target, elapsed_us, round_index)
        if not self.quiet:
            self.output.success(target, self.descriptor, elapsed_us, timestamp, round_index)
        if self.reconnect:
            target.channel = self.disconnect(target.channel)
        return True

    def pace(self, round_start):
        '''
            Sleep for what is left of the round period. Returns the time
            slept in nanoseconds.
        '''
        elapsed = self.clock() - round_start
        if elapsed >= self.period:
            self.logger.debug('Round took {0:.3f} ms, longer than the {1:.3f} ms period'.format(elapsed / 1e6, self.period / 1e6))
            return 0
        remaining = self.period - elapsed
        self.sleep(remaining / 1e9)
        return remaining

    def run(self, targets, cancel = None):
        '''
            Poll the targets until the count runs out, or forever when
            looping. `cancel` is a threading.Event, checked between rounds.

            Returns:
                bool: True if every probe sent got a reply
        '''
        if not targets:
            raise helpers.ConfigurationError('No targets!')
        self.prepare(targets)

        completed = 0
        try:
            while True:
                round_start = self.clock()
                for index, target in enumerate(targets):
                    self.probe(target, completed)
                    # no pause after the last target
                    if self.wait and index < len(targets) - 1:
                        self.sleep(self.wait)
                completed += 1

                if self.summary_rounds and completed % self.summary_rounds == 0:
                    self.output.interval_summary(targets, self.recorder, self.descriptor, self.wallclock())
                    for target in targets:
                        self.recorder.reset_interval(target)

                if cancel is not None and cancel.is_set():
                    self.logger.info('Stopping after {0} rounds'.format(completed))
                    break
                if not self.loop and completed >= self.rounds:
                    break
                self.pace(round_start)
        finally:
            for target in targets:
                target.channel = self.disconnect(target.channel)

        if self.loop or self.count:
            self.output.final_summary(targets, self.recorder, self.descriptor)

        return all(target.received == target.sent for target in targets)
