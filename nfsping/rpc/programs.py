'''

RPC program numbers and the table of NULL probes nfsping knows how to send

'''

from nfsping import helpers

class RPC:
    class PROGRAM:
        PORTMAP = 100000
        NFS     = 100003
        MOUNT   = 100005
        RQUOTA  = 100011
        KLM     = 100020
        NLM     = 100021
        NSM     = 100024
        NFS_ACL = 100227

    # every program in the table uses procedure 0 for NULL
    class PMAPPROC:
        NULL    = 0

    class NFS_PROC:
        NFSPROC_NULL = 0

    class MOUNT_PROC:
        NULL    = 0

    class RQUOTA_PROC:
        NULL    = 0

    class KLM_PROC:
        NULL    = 0

    class LOCK_PROC:
        NLMPROC_NULL = 0

    class SM_PROC:
        SM_NULL = 0

    class ACL_PROC:
        ACLPROC_NULL = 0

class ProbeDescriptor:
    '''
        One NULL probe: the program, the version it is selected by, the
        procedure to call and the version written into the call header.
    '''
    __slots__ = ('program', 'version', 'procedure', 'name', 'protocol', 'wire_version')

    def __init__(self, program, version, procedure, name, protocol, wire_version):
        object.__setattr__(self, 'program', program)
        object.__setattr__(self, 'version', version)
        object.__setattr__(self, 'procedure', procedure)
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'protocol', protocol)
        object.__setattr__(self, 'wire_version', wire_version)

    def __setattr__(self, name, value):
        raise AttributeError('ProbeDescriptor is immutable')

    def __repr__(self):
        return 'ProbeDescriptor({0}, {1}, {2})'.format(self.program, self.version, self.name)

    def call(self, channel):
        '''Send the NULL procedure, void in and void out.'''
        return channel.call(self.procedure)

null_procs = {
    (RPC.PROGRAM.NFS, 2): ProbeDescriptor(RPC.PROGRAM.NFS, 2, RPC.NFS_PROC.NFSPROC_NULL, 'nfsproc_null_2', 'nfsv2', 2),
    (RPC.PROGRAM.NFS, 3): ProbeDescriptor(RPC.PROGRAM.NFS, 3, RPC.NFS_PROC.NFSPROC_NULL, 'nfsproc3_null_3', 'nfsv3', 3),
    (RPC.PROGRAM.NFS, 4): ProbeDescriptor(RPC.PROGRAM.NFS, 4, RPC.NFS_PROC.NFSPROC_NULL, 'nfsproc4_null_4', 'nfsv4', 4),
    # MOUNT v1 goes with NFS v2
    (RPC.PROGRAM.MOUNT, 2): ProbeDescriptor(RPC.PROGRAM.MOUNT, 2, RPC.MOUNT_PROC.NULL, 'mountproc_null_1', 'mountv1', 1),
    (RPC.PROGRAM.MOUNT, 3): ProbeDescriptor(RPC.PROGRAM.MOUNT, 3, RPC.MOUNT_PROC.NULL, 'mountproc3_null_3', 'mountv3', 3),
    (RPC.PROGRAM.PORTMAP, 2): ProbeDescriptor(RPC.PROGRAM.PORTMAP, 2, RPC.PMAPPROC.NULL, 'pmapproc_null_2', 'portmap', 2),
    (RPC.PROGRAM.KLM, 1): ProbeDescriptor(RPC.PROGRAM.KLM, 1, RPC.KLM_PROC.NULL, 'klm_null_1', 'klm', 1),
    (RPC.PROGRAM.NLM, 3): ProbeDescriptor(RPC.PROGRAM.NLM, 3, RPC.LOCK_PROC.NLMPROC_NULL, 'nlm_null_3', 'nlmv3', 3),
    (RPC.PROGRAM.NLM, 4): ProbeDescriptor(RPC.PROGRAM.NLM, 4, RPC.LOCK_PROC.NLMPROC_NULL, 'nlm4_null_4', 'nlmv4', 4),
    (RPC.PROGRAM.NFS_ACL, 2): ProbeDescriptor(RPC.PROGRAM.NFS_ACL, 2, RPC.ACL_PROC.ACLPROC_NULL, 'aclproc2_null_2', 'nfs_aclv2', 2),
    (RPC.PROGRAM.NFS_ACL, 3): ProbeDescriptor(RPC.PROGRAM.NFS_ACL, 3, RPC.ACL_PROC.ACLPROC_NULL, 'aclproc3_null_3', 'nfs_aclv3', 3),
    (RPC.PROGRAM.NSM, 1): ProbeDescriptor(RPC.PROGRAM.NSM, 1, RPC.SM_PROC.SM_NULL, 'sm_null_1', 'status', 1),
    (RPC.PROGRAM.RQUOTA, 1): ProbeDescriptor(RPC.PROGRAM.RQUOTA, 1, RPC.RQUOTA_PROC.NULL, 'rquotaproc_null_1', 'rquota', 1),
}

# version picked when the operator selects a protocol without -V
default_versions = {
    RPC.PROGRAM.NFS: 3,
    RPC.PROGRAM.MOUNT: 3,
    RPC.PROGRAM.PORTMAP: 2,
    RPC.PROGRAM.KLM: 1,
    RPC.PROGRAM.NLM: 4,
    RPC.PROGRAM.NFS_ACL: 3,
    RPC.PROGRAM.NSM: 1,
    RPC.PROGRAM.RQUOTA: 1,
}

def lookup(program, version):
    '''
        Find the NULL probe for a program and version.

        Raises:
            UnsupportedProtocolError: the pair is not in the table
    '''
    try:
        return null_procs[(program, version)]
    except KeyError:
        supported = sorted(v for (p, v) in null_procs if p == program)
        if supported:
            raise helpers.UnsupportedProtocolError('Program {0} does not support version {1} (supported: {2})'.format(
                program, version, ', '.join(str(v) for v in supported)))
        raise helpers.UnsupportedProtocolError('Unsupported program {0}'.format(program))
