'''

Opens RPC channels: portmapper lookup, privileged source port, connect

'''

import errno
import socket
import logging
from nfsping import helpers
from nfsping.rpc import rpcbind
from nfsping.rpc import portmapper

# start in the middle of the reserved range to stay clear of well known ports
PRIVILEGED_START = 666
# IPPORT_RESERVED - 1
PRIVILEGED_MAX = 1023

def bind_source_port(sock, source_address = '', preferred_start = PRIVILEGED_START, logger = None):
    '''
        Bind a socket to an unused reserved port, or an ephemeral port when
        we aren't allowed to use reserved ones.

        Args:
            sock (socket): unbound socket
            source_address (str): local address, '' for any
            preferred_start (int): first port to try

        Returns:
            socket: the bound socket

        Raises:
            PortExhaustedError: every reserved port is in use
            BindError: any other bind failure
    '''
    if logger is None:
        logger = logging.getLogger('NFSPING.RPC')
    port = preferred_start
    for _ in range(PRIVILEGED_MAX):
        try:
            sock.bind((source_address, port))
            logger.debug('Bound to {0}:{1}'.format(source_address or '*', port))
            return sock
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                port += 1
                if port > PRIVILEGED_MAX:
                    port = 1
                continue
            if e.errno in (errno.EACCES, errno.EPERM):
                logger.debug('Not allowed to bind a reserved port, using an ephemeral port')
                try:
                    sock.bind((source_address, 0))
                except OSError as e:
                    raise helpers.BindError('Can\'t bind to {0}: {1}'.format(source_address or '*', e.strerror or e))
                return sock
            raise helpers.BindError('Can\'t bind to {0}:{1}: {2}'.format(source_address or '*', port, e.strerror or e))
    raise helpers.PortExhaustedError('No free reserved ports between 1 and {0}'.format(PRIVILEGED_MAX))

def open_socket(address, transport, timeout, source_address = '', logger = None):
    '''Fresh socket bound to a source port and connected to `address`.'''
    if transport not in rpcbind.RPCBase.TRANSPORTS:
        raise helpers.ConfigurationError('Unknown transport {0}'.format(transport))
    socktype, _ = rpcbind.RPCBase.TRANSPORTS[transport]
    try:
        sock = socket.socket(socket.AF_INET, socktype)
    except OSError as e:
        raise helpers.SocketCreateError('Can\'t create {0} socket: {1}'.format(transport, e.strerror or e))
    try:
        bind_source_port(sock, source_address, logger = logger)
        sock.settimeout(timeout)
        sock.connect(address)
    except helpers.FatalError:
        sock.close()
        raise
    except OSError as e:
        sock.close()
        raise helpers.ConnectError('Can\'t connect to {0}:{1}/{2}: {3}'.format(address[0], address[1], transport, e.strerror or e))
    return sock

def lookup_port(ip, program, version, transport = 'udp', timeout = 1.0, source_address = '', pmap_port = portmapper.PORTMAPPER.PORT, logger = None):
    '''
        Ask the portmapper on `ip` for the port of a program.

        Raises:
            ServiceNotRegisteredError: the program isn't registered
            PortmapError: the portmapper couldn't be reached
    '''
    _, protocol = rpcbind.RPCBase.TRANSPORTS[transport]
    try:
        sock = open_socket((ip, pmap_port), transport, timeout, source_address, logger)
    except helpers.ConnectError as e:
        raise helpers.PortmapError('Portmapper: {0}'.format(e))
    pmap = rpcbind.Channel(sock, (ip, pmap_port), portmapper.PORTMAPPER.PROGRAM, portmapper.PORTMAPPER.VERSION,
            transport, timeout, rpcbind.AuthNone(), logger)
    try:
        port = portmapper.getport(pmap, program, version, protocol)
    except rpcbind.RPCError as e:
        raise helpers.PortmapError('Portmapper on {0}: {1}'.format(ip, e))
    finally:
        disconnect(pmap)
    if logger is not None:
        logger.debug('Portmapper on {0} says program {1} version {2} is on port {3}/{4}'.format(ip, program, version, port, transport))
    return port

def connect(address, program, version, transport = 'udp', timeout = 1.0, source_address = '', pmap_port = portmapper.PORTMAPPER.PORT, logger = None):
    '''
        Make a channel to an RPC program on a server.

        Args:
            address (tuple): (ip, port), port 0 asks the portmapper
            program (int): RPC program number
            version (int): version written into each call
            transport (str): 'udp' or 'tcp'
            timeout (float): per call timeout in seconds
            source_address (str): local address to send from

        Returns:
            Channel: ready to call, using AUTH_NULL

        Raises:
            FatalError: local socket or bind problem
            ConnectError: the server or its portmapper couldn't be reached
    '''
    ip, port = address
    if not port and program == portmapper.PORTMAPPER.PROGRAM:
        port = pmap_port
    if not port:
        port = lookup_port(ip, program, version, transport, timeout, source_address, pmap_port, logger)
    # always a new socket, never reuse one across lookups or reconnects
    sock = open_socket((ip, port), transport, timeout, source_address, logger)
    return rpcbind.Channel(sock, (ip, port), program, version, transport, timeout, rpcbind.AuthNone(), logger)

def disconnect(channel):
    '''Destroy a channel if there is one. Always returns None.'''
    if channel is not None:
        channel.destroy()
    return None

def upgrade_auth(channel, auth):
    '''Swap the authentication context on a channel, e.g. for AUTH_UNIX.'''
    if channel.auth is not None:
        channel.auth.destroy()
    channel.auth = auth
    return channel
