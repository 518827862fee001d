'''

Client side of the portmapper (RFC1833 version 2)

'''

import struct
from nfsping import helpers
from nfsping.rpc import rpcbind
from nfsping.rpc.programs import RPC

class PORTMAPPER:
    PROGRAM = RPC.PROGRAM.PORTMAP
    VERSION = 2
    PORT    = 111

class PMAPPROC:
    NULL    = 0
    SET     = 1
    UNSET   = 2
    GETPORT = 3
    DUMP    = 4

def getport(channel, program, version, protocol):
    '''
        Ask the portmapper which port a program is listening on.

        Args:
            channel (Channel): channel to the portmapper
            program (int): RPC program number
            version (int): RPC program version
            protocol (int): IPPROTO_TCP4 or IPPROTO_UDP4

        Returns:
            int: port number

        Raises:
            ServiceNotRegisteredError: the portmapper answered with port 0
            RPCError: the portmapper call failed
    '''
    # prog, vers, prot, port
    args = struct.pack('!IIII', program, version, protocol, 0)
    body = channel.call(PMAPPROC.GETPORT, args)
    if len(body) < 4:
        raise rpcbind.RPCProtocolError('Short GETPORT reply')
    [port] = struct.unpack('!I', body[:4])
    if port == 0:
        raise helpers.ServiceNotRegisteredError('Program {0} version {1}/{2} is not registered with the portmapper on {3}'.format(
            program, version, 'tcp' if protocol == rpcbind.RPCBase.IPPROTO.IPPROTO_TCP4 else 'udp', channel.address[0]))
    return port
