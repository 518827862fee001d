'''

ONC RPC version 2 (RFC1057) call channel used by every nfsping probe

'''

import errno
import io
import os
import random
import socket
import struct
import time
import logging

class RPCBase:
    '''For Constants from RFC1057'''
    class msg_type:
        CALL  = 0
        REPLY = 1

    VERSION2 = 2

    class reply_stat:
        MSG_ACCEPTED = 0
        MSG_DENIED   = 1

    class accept_stat:
        SUCCESS       = 0 # RPC executed successfully
        PROG_UNAVAIL  = 1 # remote hasn't exported program
        PROG_MISMATCH = 2 # remote can't support version #
        PROC_UNAVAIL  = 3 # program can't support procedure
        GARBAGE_ARGS  = 4 # procedure can't decode params
        SYSTEM_ERR    = 5 # errors like memory allocation failure

    class reject_stat:
        RPC_MISMATCH = 0 # RPC version number != 2
        AUTH_ERROR   = 1 # remote can't authenticate caller

    class auth_flavor:
        AUTH_NULL  = 0
        AUTH_UNIX  = 1
        AUTH_SHORT = 2
        AUTH_DES   = 3

    class auth_stat:
        AUTH_BADCRED      = 1  # bad credentials (seal broken)
        AUTH_REJECTEDCRED = 2  # client must begin new session
        AUTH_BADVERF      = 3  # bad verifier (seal broken)
        AUTH_REJECTEDVERF = 4  # verifier expired or replayed
        AUTH_TOOWEAK      = 5  # rejected for security reasons

    class IPPROTO:
        IPPROTO_TCP4 = 6
        IPPROTO_UDP4 = 17

    # TCP record marking
    LAST_FRAGMENT = 1 << 31
    # largest reply record accepted, NULL replies are a few dozen bytes
    MAX_RECORD = 1 << 20
    RECV_CHUNK = 65536

    TRANSPORTS = {
        'tcp': (socket.SOCK_STREAM, IPPROTO.IPPROTO_TCP4),
        'udp': (socket.SOCK_DGRAM, IPPROTO.IPPROTO_UDP4),
    }

accept_stat_labels = {
    RPCBase.accept_stat.PROG_UNAVAIL: 'program unavailable',
    RPCBase.accept_stat.PROG_MISMATCH: 'program/version mismatch',
    RPCBase.accept_stat.PROC_UNAVAIL: 'procedure unavailable',
    RPCBase.accept_stat.GARBAGE_ARGS: 'server can\'t decode arguments',
    RPCBase.accept_stat.SYSTEM_ERR: 'remote system error',
}

class RPCError(Exception):
    '''A call that produced no result.'''
    connection_broken = False

class RPCTimeoutError(RPCError):
    def __init__(self, message, partial = False):
        RPCError.__init__(self, message)
        # a half read TCP record leaves the stream out of step
        self.connection_broken = partial

class RPCTransportError(RPCError):
    def __init__(self, message, err = None):
        RPCError.__init__(self, message)
        self.errno = err

    @property
    def connection_broken(self):
        return self.errno in (errno.EPIPE, errno.ECONNRESET)

class RPCProtocolError(RPCError):
    def __init__(self, message, connection_broken = False):
        RPCError.__init__(self, message)
        self.connection_broken = connection_broken

class RPCAcceptError(RPCError):
    def __init__(self, stat, low = None, high = None):
        message = accept_stat_labels.get(stat, 'accept_stat {0}'.format(stat))
        if low is not None:
            message += ' (low version = {0}, high version = {1})'.format(low, high)
        RPCError.__init__(self, message)
        self.stat = stat
        self.low = low
        self.high = high

class RPCRejectedError(RPCError):
    def __init__(self, stat, auth_stat = None, low = None, high = None):
        if stat == RPCBase.reject_stat.AUTH_ERROR:
            message = 'authentication error (auth_stat {0})'.format(auth_stat)
        else:
            message = 'RPC version mismatch (low version = {0}, high version = {1})'.format(low, high)
        RPCError.__init__(self, message)
        self.stat = stat
        self.auth_stat = auth_stat
        self.low = low
        self.high = high

def pad_length(length):
    '''Bytes of padding after an opaque of `length` bytes.'''
    return (4 - (length % 4)) & ~4

def pack_opaque(data):
    return struct.pack('!I', len(data)) + data + b'\x00' * pad_length(len(data))

def unpack(fmt, body):
    size = struct.calcsize(fmt)
    data = body.read(size)
    if len(data) != size:
        raise RPCProtocolError('Short reply: wanted {0} bytes, got {1}'.format(size, len(data)))
    return struct.unpack(fmt, data)

class AuthNone:
    '''AUTH_NULL, the context every channel starts with.'''
    flavor = RPCBase.auth_flavor.AUTH_NULL

    def credentials(self):
        return struct.pack('!II', self.flavor, 0)

    def verifier(self):
        return struct.pack('!II', RPCBase.auth_flavor.AUTH_NULL, 0)

    def destroy(self):
        pass

class AuthUnix(AuthNone):
    '''AUTH_UNIX credentials, defaults taken from the running process.'''
    flavor = RPCBase.auth_flavor.AUTH_UNIX
    MAX_MACHINE_NAME = 255
    MAX_GROUPS = 16

    def __init__(self, machinename = None, uid = None, gid = None, groups = None, stamp = None):
        self.machinename = machinename if machinename is not None else socket.gethostname()
        self.uid = uid if uid is not None else os.getuid()
        self.gid = gid if gid is not None else os.getgid()
        self.groups = list(groups if groups is not None else os.getgroups())[:self.MAX_GROUPS]
        self.stamp = stamp if stamp is not None else int(time.time()) & 0xffffffff

    def credentials(self):
        name = self.machinename.encode('ascii')[:self.MAX_MACHINE_NAME]
        body  = struct.pack('!I', self.stamp)
        body += pack_opaque(name)
        body += struct.pack('!II', self.uid, self.gid)
        body += struct.pack('!I{0}I'.format(len(self.groups)), len(self.groups), *self.groups)
        return struct.pack('!I', self.flavor) + pack_opaque(body)

class Channel:
    '''
        A connected socket plus authentication context for one program and
        version on one server. Owned by exactly one target.
    '''
    def __init__(self, sock, address, program, version, transport = 'udp', timeout = 1.0, auth = None, logger = None):
        self.sock = sock
        self.address = address
        self.program = program
        self.version = version
        self.transport = transport
        self.auth = auth if auth is not None else AuthNone()
        self.logger = logger if logger is not None else logging.getLogger('NFSPING.RPC')
        self.xid = random.getrandbits(32)
        # set once any byte of the reply record being read has arrived
        self.partial = False
        self.settimeout(timeout)

    def settimeout(self, timeout):
        self.timeout = timeout
        if self.sock is not None:
            self.sock.settimeout(timeout)

    def next_xid(self):
        self.xid = (self.xid + 1) & 0xffffffff
        return self.xid

    def make_call(self, xid, procedure, args = b''):
        req  = struct.pack('!I', xid)
        req += struct.pack('!I', RPCBase.msg_type.CALL)
        # RPC version
        req += struct.pack('!I', RPCBase.VERSION2)
        # target program and version
        req += struct.pack('!II', self.program, self.version)
        req += struct.pack('!I', procedure)
        req += self.auth.credentials()
        req += self.auth.verifier()
        req += args
        return req

    def call(self, procedure, args = b''):
        '''
            Send one call and wait for its reply.

            Args:
                procedure (int): procedure number
                args (bytes): XDR encoded arguments

            Returns:
                bytes: XDR encoded results

            Raises:
                RPCError: no result
        '''
        if self.sock is None:
            raise RPCTransportError('Channel is closed', errno.EBADF)
        xid = self.next_xid()
        request = self.make_call(xid, procedure, args)
        deadline = time.monotonic() + self.timeout
        self.partial = False
        try:
            if self.transport == 'tcp':
                self.sock.sendall(struct.pack('!I', len(request) | RPCBase.LAST_FRAGMENT) + request)
                reply = self.recv_tcp(xid, deadline)
            else:
                self.sock.send(request)
                reply = self.recv_udp(xid, deadline)
        except socket.timeout:
            raise RPCTimeoutError('Timed out after {0:.3f}s'.format(self.timeout), self.partial)
        except OSError as e:
            raise RPCTransportError(e.strerror or str(e), e.errno)
        return self.parse_reply(reply)

    def remaining(self, deadline):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout()
        self.sock.settimeout(remaining)

    def recv_udp(self, xid, deadline):
        while True:
            self.remaining(deadline)
            data = self.sock.recv(65536)
            if len(data) < 4:
                continue
            [reply_xid] = struct.unpack('!I', data[:4])
            if reply_xid == xid:
                return data
            self.logger.debug('Dropping reply with stale xid {0}'.format(reply_xid))

    def recv_exactly(self, length, deadline):
        data = b''
        while len(data) < length:
            self.remaining(deadline)
            chunk = self.sock.recv(min(length - len(data), RPCBase.RECV_CHUNK))
            if not chunk:
                raise RPCTransportError('Connection closed by server', errno.ECONNRESET)
            self.partial = True
            data += chunk
        return data

    def recv_tcp(self, xid, deadline):
        while True:
            record = b''
            last = False
            self.partial = False
            while not last:
                [fragheader] = struct.unpack('!I', self.recv_exactly(4, deadline))
                last = bool(fragheader & RPCBase.LAST_FRAGMENT)
                length = fragheader & ~RPCBase.LAST_FRAGMENT
                if len(record) + length > RPCBase.MAX_RECORD:
                    raise RPCProtocolError('Reply record of {0} bytes is too large'.format(len(record) + length), connection_broken = True)
                record += self.recv_exactly(length, deadline)
            if len(record) < 4:
                continue
            [reply_xid] = struct.unpack('!I', record[:4])
            if reply_xid == xid:
                return record
            self.logger.debug('Dropping reply with stale xid {0}'.format(reply_xid))

    def parse_reply(self, data):
        # use BytesIO so the reply acts like a file
        body = io.BytesIO(data)
        [xid, msg_type] = unpack('!II', body)
        if msg_type != RPCBase.msg_type.REPLY:
            raise RPCProtocolError('Expected a reply, got message type {0}'.format(msg_type))
        [reply_stat] = unpack('!I', body)
        if reply_stat == RPCBase.reply_stat.MSG_ACCEPTED:
            [verf_flavor, verf_length] = unpack('!II', body)
            body.read(verf_length + pad_length(verf_length))
            [state] = unpack('!I', body)
            if state == RPCBase.accept_stat.SUCCESS:
                return body.read()
            if state == RPCBase.accept_stat.PROG_MISMATCH:
                [low, high] = unpack('!II', body)
                raise RPCAcceptError(state, low, high)
            raise RPCAcceptError(state)
        elif reply_stat == RPCBase.reply_stat.MSG_DENIED:
            [state] = unpack('!I', body)
            if state == RPCBase.reject_stat.RPC_MISMATCH:
                [low, high] = unpack('!II', body)
                raise RPCRejectedError(state, low = low, high = high)
            [auth_stat] = unpack('!I', body)
            raise RPCRejectedError(state, auth_stat = auth_stat)
        raise RPCProtocolError('Unknown reply_stat {0}'.format(reply_stat))

    def destroy(self):
        '''Release the authentication context, then the socket.'''
        if self.auth is not None:
            self.auth.destroy()
            self.auth = None
        if self.sock is not None:
            self.sock.close()
            self.sock = None
