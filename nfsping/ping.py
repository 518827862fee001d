#!/usr/bin/env python
import io
import sys
import json
import signal
import socket
import threading
import logging
import logging.handlers
import argparse

from nfsping import helpers
from nfsping import output
from nfsping.latency import LatencyRecorder
from nfsping.poller import Poller
from nfsping.rpc import programs
from nfsping.rpc.programs import RPC
from nfsping.target import resolve_targets

# exit codes
EXIT_SUCCESS = 0
EXIT_LOSS = 1
EXIT_RESOLVE = 2
EXIT_CONFIG = 3
EXIT_ENVIRONMENT = 4

PROTOCOLS = {'nfs': RPC.PROGRAM.NFS,
             'mount': RPC.PROGRAM.MOUNT,
             'portmap': RPC.PROGRAM.PORTMAP,
             'klm': RPC.PROGRAM.KLM,
             'nlm': RPC.PROGRAM.NLM,
             'nfs_acl': RPC.PROGRAM.NFS_ACL,
             'nsm': RPC.PROGRAM.NSM,
             'rquota': RPC.PROGRAM.RQUOTA}

# default settings
SETTINGS = {'PROTOCOL':'nfs',
            'RPC_VERSION':0,
            'COUNT':None,
            'FPING_COUNT':None,
            'LOOP':False,
            'HERTZ':10,
            'WAIT':1,
            'TIMEOUT':1000,
            'USE_TCP':False,
            'PORT':0,
            'SOURCE_ADDRESS':'',
            'RECONNECT':False,
            'SUMMARY_INTERVAL':0,
            'QUIET':False,
            'REVERSE_DNS':False,
            'SHOW_IP':False,
            'ALL_ADDRESSES':False,
            'UNIXTIME':False,
            'GRAPHITE_PREFIX':'',
            'STATSD_PREFIX':'',
            'OPENTSDB':False,
            'AUTH_UNIX':False,
            'SYSLOG_SERVER':None,
            'SYSLOG_PORT':514,
            'MODE_DEBUG':False,
            'MODE_VERBOSE':False}

def parse_cli_arguments(argv = None, settings = SETTINGS):
    parser = argparse.ArgumentParser(description = 'Send NULL RPC calls to NFS servers and report latency', formatter_class = argparse.ArgumentDefaultsHelpFormatter)

    parser.add_argument('TARGETS', nargs = '*', help = 'Servers to probe, read from stdin if none given')

    # which RPC program to probe
    protocol_group = parser.add_argument_group(title = 'Protocol', description = 'RPC program to probe, NFS by default')
    protocols = protocol_group.add_mutually_exclusive_group(required = False)
    protocols.add_argument('-m', '--mount', action = 'store_const', const = 'mount', dest = 'PROTOCOL', help = 'Probe the MOUNT protocol')
    protocols.add_argument('-p', '--portmap', action = 'store_const', const = 'portmap', dest = 'PROTOCOL', help = 'Probe the portmapper')
    protocols.add_argument('-k', '--klm', action = 'store_const', const = 'klm', dest = 'PROTOCOL', help = 'Probe the kernel lock manager')
    protocols.add_argument('-L', '--nlm', action = 'store_const', const = 'nlm', dest = 'PROTOCOL', help = 'Probe the network lock manager')
    protocols.add_argument('-a', '--acl', action = 'store_const', const = 'nfs_acl', dest = 'PROTOCOL', help = 'Probe the NFS ACL protocol')
    protocols.add_argument('-n', '--nsm', action = 'store_const', const = 'nsm', dest = 'PROTOCOL', help = 'Probe the network status monitor')
    protocols.add_argument('-u', '--rquota', action = 'store_const', const = 'rquota', dest = 'PROTOCOL', help = 'Probe the remote quota protocol')
    protocol_group.set_defaults(PROTOCOL = settings['PROTOCOL'])
    protocol_group.add_argument('-V', '--rpc-version', action = 'store', type = int, dest = 'RPC_VERSION', help = 'Protocol version (NFS version for MOUNT), 0 for the protocol default', default = settings['RPC_VERSION'])
    protocol_group.add_argument('-T', '--tcp', action = 'store_true', dest = 'USE_TCP', help = 'Use TCP instead of UDP', default = settings['USE_TCP'])
    protocol_group.add_argument('-P', '--port', action = 'store', type = int, dest = 'PORT', help = 'Service port, 0 asks the portmapper', default = settings['PORT'])
    protocol_group.add_argument('-S', '--source', action = 'store', dest = 'SOURCE_ADDRESS', help = 'Source IP address for requests', default = settings['SOURCE_ADDRESS'])
    protocol_group.add_argument('--auth-unix', action = 'store_true', dest = 'AUTH_UNIX', help = 'Send AUTH_UNIX credentials instead of AUTH_NULL', default = settings['AUTH_UNIX'])

    # timing
    timing_group = parser.add_argument_group(title = 'Timing', description = 'How many probes to send and how fast')
    counts = timing_group.add_mutually_exclusive_group(required = False)
    counts.add_argument('-c', '--count', action = 'store', type = int, dest = 'COUNT', help = 'Number of probes per target, a single alive check if not given', default = settings['COUNT'])
    counts.add_argument('-C', '--fping-count', action = 'store', type = int, dest = 'FPING_COUNT', help = 'Like --count with fping style per result summary', default = settings['FPING_COUNT'])
    counts.add_argument('-l', '--loop', action = 'store_true', dest = 'LOOP', help = 'Loop forever', default = settings['LOOP'])
    timing_group.add_argument('-H', '--hertz', action = 'store', type = float, dest = 'HERTZ', help = 'Polling frequency in rounds per second', default = settings['HERTZ'])
    timing_group.add_argument('-i', '--wait', action = 'store', type = float, dest = 'WAIT', help = 'Milliseconds to wait between targets', default = settings['WAIT'])
    timing_group.add_argument('-t', '--timeout', action = 'store', type = float, dest = 'TIMEOUT', help = 'Call timeout in milliseconds', default = settings['TIMEOUT'])
    timing_group.add_argument('-R', '--reconnect', action = 'store_true', dest = 'RECONNECT', help = 'Reconnect to the server for every probe', default = settings['RECONNECT'])

    # output
    output_group = parser.add_argument_group(title = 'Output', description = 'Output format and target naming')
    formats = output_group.add_mutually_exclusive_group(required = False)
    formats.add_argument('-D', '--unixtime', action = 'store_true', dest = 'UNIXTIME', help = 'Prefix output with a unix timestamp', default = settings['UNIXTIME'])
    formats.add_argument('-G', '--graphite', action = 'store', dest = 'GRAPHITE_PREFIX', help = 'Graphite output with this metric prefix', default = settings['GRAPHITE_PREFIX'])
    formats.add_argument('-E', '--statsd', action = 'store', dest = 'STATSD_PREFIX', help = 'StatsD output with this metric prefix', default = settings['STATSD_PREFIX'])
    formats.add_argument('-O', '--opentsdb', action = 'store_true', dest = 'OPENTSDB', help = 'OpenTSDB output', default = settings['OPENTSDB'])
    output_group.add_argument('-Q', '--summary', action = 'store', type = float, dest = 'SUMMARY_INTERVAL', help = 'Print a summary every n seconds instead of each result', default = settings['SUMMARY_INTERVAL'])
    output_group.add_argument('-q', '--quiet', action = 'store_true', dest = 'QUIET', help = 'Only print summaries', default = settings['QUIET'])
    output_group.add_argument('-d', '--reverse-dns', action = 'store_true', dest = 'REVERSE_DNS', help = 'Display reverse DNS names of targets', default = settings['REVERSE_DNS'])
    output_group.add_argument('-A', '--show-ip', action = 'store_true', dest = 'SHOW_IP', help = 'Display IP addresses of targets', default = settings['SHOW_IP'])
    output_group.add_argument('-M', '--all-addresses', action = 'store_true', dest = 'ALL_ADDRESSES', help = 'Probe every address a name resolves to', default = settings['ALL_ADDRESSES'])

    # logging and configuration
    parser.add_argument('--debug', action = 'store_true', dest = 'MODE_DEBUG', help = 'Log each step of each probe', default = settings['MODE_DEBUG'])
    parser.add_argument('-v', '--verbose', action = 'store_true', dest = 'MODE_VERBOSE', help = 'Log connections and summaries', default = settings['MODE_VERBOSE'])
    parser.add_argument('--syslog', action = 'store', dest = 'SYSLOG_SERVER', help = 'Syslog server', default = settings['SYSLOG_SERVER'])
    parser.add_argument('--syslog-port', action = 'store', type = int, dest = 'SYSLOG_PORT', help = 'Syslog server port', default = settings['SYSLOG_PORT'])
    parser.add_argument('--config', action = 'store', dest = 'JSON_CONFIG', help = 'Configure from a JSON file rather than the command line', default = '')
    parser.add_argument('--dump-config', action = 'store_true', dest = 'DUMP_CONFIG', help = 'Dump the default configuration as a valid input file')
    parser.add_argument('--dump-config-merged', action = 'store_true', dest = 'DUMP_CONFIG_MERGED', help = 'Like --dump-config, but also merge in CLI options')

    return parser.parse_args(argv)

def load_config(path):
    '''Read a JSON settings file, exiting on failure.'''
    try:
        config_file = io.open(path, 'r')
    except IOError:
        fatal(EXIT_CONFIG, 'Failed to open {0}'.format(path))
    try:
        with config_file:
            loaded_config = json.load(config_file)
    except ValueError:
        fatal(EXIT_CONFIG, '{0} does not contain valid JSON'.format(path))
    unknown = [setting for setting in loaded_config if setting not in SETTINGS]
    if unknown:
        fatal(EXIT_CONFIG, '{0}: unknown settings {1}'.format(path, ', '.join(sorted(unknown))))
    return loaded_config

def fatal(code, message):
    sys.stdout.flush()
    sys.stderr.write(message + '\n')
    sys.exit(code)

def setup_logger(args):
    sys_logger = logging.getLogger('NFSPING')
    if args.SYSLOG_SERVER:
        handler = logging.handlers.SysLogHandler(address = (args.SYSLOG_SERVER, int(args.SYSLOG_PORT)))
    else:
        handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s %(message)s')
    handler.setFormatter(formatter)
    for old in list(sys_logger.handlers):
        sys_logger.removeHandler(old)
    sys_logger.addHandler(handler)
    helpers.set_log_level(sys_logger, args.MODE_DEBUG, args.MODE_VERBOSE)
    return sys_logger

def select_descriptor(args):
    program = PROTOCOLS[args.PROTOCOL]
    version = args.RPC_VERSION or programs.default_versions[program]
    return programs.lookup(program, version)

def select_output(args, logger):
    output_logger = helpers.get_child_logger(logger, 'Output')
    if args.FPING_COUNT:
        return output.FpingOutput(logger = output_logger)
    if args.GRAPHITE_PREFIX:
        return output.GraphiteOutput(prefix = args.GRAPHITE_PREFIX, logger = output_logger)
    if args.STATSD_PREFIX:
        return output.StatsdOutput(prefix = args.STATSD_PREFIX, logger = output_logger)
    if args.OPENTSDB:
        return output.OpentsdbOutput(logger = output_logger)
    if args.UNIXTIME:
        return output.UnixtimeOutput(logger = output_logger)
    if args.COUNT or args.LOOP:
        return output.PingOutput(logger = output_logger)
    return output.AliveOutput(logger = output_logger)

def validate(args):
    '''Check the options that argparse can't, before anything is sent.'''
    if (args.COUNT is not None and args.COUNT <= 0) or (args.FPING_COUNT is not None and args.FPING_COUNT <= 0):
        raise helpers.ConfigurationError('Zero count, nothing to do!')
    if args.TIMEOUT <= 0:
        raise helpers.ConfigurationError('Zero timeout!')
    if args.HERTZ <= 0:
        raise helpers.ConfigurationError('Polling frequency must be positive!')
    if args.WAIT < 0:
        raise helpers.ConfigurationError('Negative wait between targets!')
    if args.SUMMARY_INTERVAL < 0:
        raise helpers.ConfigurationError('Negative summary interval!')
    if args.SUMMARY_INTERVAL and not (args.COUNT or args.FPING_COUNT or args.LOOP):
        raise helpers.ConfigurationError('Summaries need a count or loop!')
    if not 0 <= args.PORT <= 65535:
        raise helpers.ConfigurationError('Invalid port {0}'.format(args.PORT))
    if args.SOURCE_ADDRESS:
        try:
            socket.inet_pton(socket.AF_INET, args.SOURCE_ADDRESS)
        except (OSError, ValueError):
            raise helpers.ConfigurationError('Invalid source IP address {0}!'.format(args.SOURCE_ADDRESS))
    if args.PROTOCOL not in PROTOCOLS:
        raise helpers.ConfigurationError('Unknown protocol {0}'.format(args.PROTOCOL))

def make_poller(args, logger):
    validate(args)
    descriptor = select_descriptor(args)
    count = args.FPING_COUNT or args.COUNT or None
    recorder = LatencyRecorder(LatencyRecorder.RESULTS if args.FPING_COUNT else LatencyRecorder.HISTOGRAM,
            logger = helpers.get_child_logger(logger, 'Histogram'))
    return Poller(
            descriptor = descriptor,
            transport = 'tcp' if args.USE_TCP else 'udp',
            timeout = helpers.ms2s(args.TIMEOUT),
            source_address = args.SOURCE_ADDRESS,
            count = count,
            loop = args.LOOP,
            hertz = args.HERTZ,
            wait = helpers.ms2s(args.WAIT),
            reconnect = args.RECONNECT,
            summary_interval = args.SUMMARY_INTERVAL,
            quiet = args.QUIET or bool(args.SUMMARY_INTERVAL),
            auth_unix = args.AUTH_UNIX,
            recorder = recorder,
            output = select_output(args, logger),
            mode_debug = args.MODE_DEBUG,
            mode_verbose = args.MODE_VERBOSE,
            logger = logger)

def main(argv = None):
    settings = dict(SETTINGS)
    cancel = threading.Event()
    previous_handlers = {}
    try:
        # configure
        args = parse_cli_arguments(argv, settings)

        if args.DUMP_CONFIG or args.DUMP_CONFIG_MERGED:
            if args.DUMP_CONFIG:
                dumped = settings
            else:
                # some arguments don't make sense to print
                dumped = dict(args.__dict__)
                for key in ('DUMP_CONFIG', 'DUMP_CONFIG_MERGED', 'JSON_CONFIG', 'TARGETS'):
                    del dumped[key]
            print(json.dumps(dumped, sort_keys = True, indent = 4))
            sys.exit(EXIT_SUCCESS)

        if args.JSON_CONFIG: # load from configuration file if specified
            settings.update(load_config(args.JSON_CONFIG))
            args = parse_cli_arguments(argv, settings) # re-parse, CLI options take precedence

        sys_logger = setup_logger(args)

        try:
            poller = make_poller(args, sys_logger)
        except helpers.ConfigurationError as e:
            fatal(EXIT_CONFIG, str(e))

        names = args.TARGETS
        if not names:
            names = [line.strip() for line in sys.stdin if line.strip()]
        if not names:
            fatal(EXIT_CONFIG, 'No targets!')

        try:
            targets = resolve_targets(names,
                    reverse_dns = args.REVERSE_DNS,
                    show_ip = args.SHOW_IP,
                    all_addresses = args.ALL_ADDRESSES,
                    port = args.PORT)
        except helpers.ResolveError as e:
            fatal(EXIT_RESOLVE, str(e))

        # stop between rounds on ^C or kill
        def handler(signum, frame):
            cancel.set()
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous_handlers[signum] = signal.signal(signum, handler)

        try:
            ok = poller.run(targets, cancel)
        except helpers.ConfigurationError as e:
            fatal(EXIT_CONFIG, str(e))
        except helpers.FatalError as e:
            fatal(EXIT_ENVIRONMENT, str(e))

        sys.exit(EXIT_SUCCESS if ok else EXIT_LOSS)

    except KeyboardInterrupt:
        sys.exit('\nShutting down nfsping...\n')
    finally:
        for signum, previous in previous_handlers.items():
            signal.signal(signum, previous)

if __name__ == '__main__':
    main()
