'''

In-process RPC server answering NULL calls and portmapper GETPORT requests

'''

import socket
import socketserver
import struct
import threading

import pytest

from nfsping.rpc.rpcbind import RPCBase, pad_length
from nfsping.rpc.portmapper import PMAPPROC
from nfsping.rpc.programs import RPC

# program: versions served
PROGRAMS = {
    RPC.PROGRAM.PORTMAP: [2],
    RPC.PROGRAM.NFS: [2, 3, 4],
    RPC.PROGRAM.MOUNT: [1, 3],
}

def recv_exactly(conn, length):
    data = b''
    while len(data) < length:
        chunk = conn.recv(length - len(data))
        if not chunk:
            return b''
        data += chunk
    return data

class RPCResponder(socketserver.BaseRequestHandler):
    '''Answers every call on one port, playing portmapper too.'''
    def handle(self):
        if isinstance(self.request, socket.socket):
            # tcp
            conn = self.request
            while True:
                header = recv_exactly(conn, 4)
                if not header:
                    return
                [fragheader] = struct.unpack('!I', header)
                length = fragheader & ~RPCBase.LAST_FRAGMENT
                reply = self.reply(recv_exactly(conn, length))
                if reply is not None:
                    conn.sendall(struct.pack('!I', len(reply) | RPCBase.LAST_FRAGMENT) + reply)
        else:
            data, conn = self.request
            reply = self.reply(data)
            if reply is not None:
                conn.sendto(reply, self.client_address)

    def reply(self, data):
        settings = self.server.server_settings
        [xid, msg_type, rpcvers, prog, vers, proc] = struct.unpack('!IIIIII', data[:24])
        [auth_type, auth_length] = struct.unpack('!II', data[24:32])
        offset = 32 + auth_length + pad_length(auth_length)
        [verf_type, verf_length] = struct.unpack('!II', data[offset:offset + 8])
        args = data[offset + 8 + verf_length:]
        self.server.calls.append((prog, vers, proc, auth_type))

        if settings.get('silent', False):
            return None

        resp = struct.pack('!II', xid, RPCBase.msg_type.REPLY)
        if settings.get('deny', False):
            resp += struct.pack('!III', RPCBase.reply_stat.MSG_DENIED, RPCBase.reject_stat.AUTH_ERROR, RPCBase.auth_stat.AUTH_TOOWEAK)
            return resp
        resp += struct.pack('!III', RPCBase.reply_stat.MSG_ACCEPTED, RPCBase.auth_flavor.AUTH_NULL, 0)
        programs = settings.get('programs', PROGRAMS)
        if prog not in programs:
            return resp + struct.pack('!I', RPCBase.accept_stat.PROG_UNAVAIL)
        if vers not in programs[prog]:
            return resp + struct.pack('!III', RPCBase.accept_stat.PROG_MISMATCH, min(programs[prog]), max(programs[prog]))
        resp += struct.pack('!I', RPCBase.accept_stat.SUCCESS)
        if prog == RPC.PROGRAM.PORTMAP and proc == PMAPPROC.GETPORT:
            [want_prog, want_vers, want_prot, _] = struct.unpack('!IIII', args[:16])
            port = 0
            if want_vers in programs.get(want_prog, []):
                port = self.server.server_address[1]
            resp += struct.pack('!I', port)
        return resp

class UDPResponder(socketserver.ThreadingMixIn, socketserver.UDPServer):
    daemon_threads = True
    allow_reuse_address = True

class TCPResponder(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True

SERVERS = {'udp': UDPResponder, 'tcp': TCPResponder}

class Responder:
    '''A running server, its port and the calls it has seen.'''
    def __init__(self, transport, **server_settings):
        self.transport = transport
        self.server = SERVERS[transport](('127.0.0.1', 0), RPCResponder)
        self.server.server_settings = server_settings
        self.server.calls = []
        self.thread = threading.Thread(target = self.server.serve_forever, daemon = True)
        self.thread.start()

    @property
    def port(self):
        return self.server.server_address[1]

    @property
    def calls(self):
        return self.server.calls

    @property
    def settings(self):
        return self.server.server_settings

    def stop(self):
        self.server.shutdown()
        self.server.server_close()

@pytest.fixture(params = ['udp', 'tcp'])
def responder(request):
    server = Responder(request.param)
    yield server
    server.stop()

@pytest.fixture
def udp_responder():
    server = Responder('udp')
    yield server
    server.stop()

@pytest.fixture
def closed_port():
    '''A local port nothing is listening on.'''
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
