#!/usr/bin/env python
'''

Check that an NFS server answers a single NULL call

'''

import sys
import argparse

from nfsping import helpers
from nfsping.ping import EXIT_SUCCESS, EXIT_LOSS, EXIT_CONFIG, EXIT_RESOLVE, EXIT_ENVIRONMENT, fatal
from nfsping.rpc import connection
from nfsping.rpc import portmapper
from nfsping.rpc import programs
from nfsping.rpc import rpcbind
from nfsping.rpc.programs import RPC
from nfsping.target import resolve_targets

SETTINGS = {'RPC_VERSION':3,
            'USE_TCP':False,
            'TIMEOUT':1000,
            'SOURCE_ADDRESS':'',
            'MODE_DEBUG':False}

def parse_cli_arguments(argv = None):
    parser = argparse.ArgumentParser(description = 'Check that an NFS server is up', formatter_class = argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('HOST', help = 'NFS server')
    parser.add_argument('-T', '--tcp', action = 'store_true', dest = 'USE_TCP', help = 'Use TCP instead of UDP', default = SETTINGS['USE_TCP'])
    parser.add_argument('-V', '--rpc-version', action = 'store', type = int, dest = 'RPC_VERSION', help = 'NFS version', default = SETTINGS['RPC_VERSION'])
    parser.add_argument('-t', '--timeout', action = 'store', type = float, dest = 'TIMEOUT', help = 'Call timeout in milliseconds', default = SETTINGS['TIMEOUT'])
    parser.add_argument('-S', '--source', action = 'store', dest = 'SOURCE_ADDRESS', help = 'Source IP address for requests', default = SETTINGS['SOURCE_ADDRESS'])
    parser.add_argument('--debug', action = 'store_true', dest = 'MODE_DEBUG', help = 'Log each step of the call', default = SETTINGS['MODE_DEBUG'])
    return parser.parse_args(argv)

def check(host, descriptor, transport, timeout, source_address = '', pmap_port = portmapper.PORTMAPPER.PORT, logger = None):
    '''
        Send one NULL call to host.

        Returns:
            bool: True if the server replied
    '''
    if logger == None:
        logger = helpers.default_logger('NFSUP')
    channel = None
    try:
        channel = connection.connect((host, 0), descriptor.program, descriptor.wire_version,
                transport = transport,
                timeout = timeout,
                source_address = source_address,
                pmap_port = pmap_port,
                logger = helpers.get_child_logger(logger, 'RPC'))
        descriptor.call(channel)
    except (helpers.ConnectError, rpcbind.RPCError) as e:
        logger.error('{0} : {1} call failed: {2}'.format(host, descriptor.protocol, e))
        return False
    finally:
        connection.disconnect(channel)
    return True

def main(argv = None):
    args = parse_cli_arguments(argv)
    logger = helpers.default_logger('NFSUP', mode_debug = args.MODE_DEBUG)

    if args.TIMEOUT <= 0:
        fatal(EXIT_CONFIG, 'Zero timeout!')
    try:
        descriptor = programs.lookup(RPC.PROGRAM.NFS, args.RPC_VERSION)
        targets = resolve_targets([args.HOST])
    except helpers.ConfigurationError as e:
        fatal(EXIT_CONFIG, str(e))
    except helpers.ResolveError as e:
        fatal(EXIT_RESOLVE, str(e))

    try:
        up = check(targets[0].ip_address, descriptor, 'tcp' if args.USE_TCP else 'udp',
                helpers.ms2s(args.TIMEOUT), args.SOURCE_ADDRESS, logger = logger)
    except helpers.FatalError as e:
        fatal(EXIT_ENVIRONMENT, str(e))

    if up:
        print('{0} is up'.format(args.HOST))
    else:
        print('{0} is down'.format(args.HOST))
    sys.exit(EXIT_SUCCESS if up else EXIT_LOSS)

if __name__ == '__main__':
    main()
