'''

Probe targets and the name lookups that create them

'''

import socket
from nfsping import helpers

class Target:
    '''One probe destination and everything measured about it.'''
    def __init__(self, name, ip_address, port = 0, ndqf = None, display_name = None):
        self.name = name
        self.ip_address = ip_address
        # 0 until the portmapper has told us
        self.port = port
        # reversed name for metric paths
        self.ndqf = ndqf if ndqf is not None else make_ndqf(name)
        self.display_name = display_name if display_name is not None else name
        self.channel = None
        self.sent = 0
        self.received = 0
        self.interval_sent = 0
        self.interval_received = 0
        self.histogram = None
        self.interval_histogram = None
        self.results = None

    def __repr__(self):
        return 'Target({0}, {1})'.format(self.display_name, self.ip_address)

    @property
    def address(self):
        return (self.ip_address, self.port)

    def record_sent(self):
        self.sent += 1
        self.interval_sent += 1

    def record_received(self):
        if self.received >= self.sent:
            raise ValueError('{0}: more replies than calls'.format(self.display_name))
        self.received += 1
        self.interval_received += 1

    @property
    def loss(self):
        if not self.sent:
            return 0
        return int((self.sent - self.received) * 100 / self.sent)

def is_ip_address(name):
    try:
        socket.inet_pton(socket.AF_INET, name)
    except (OSError, ValueError):
        return False
    return True

def make_ndqf(name):
    '''Metric path for a target: reversed DNS name, or an IP with dots as underscores.'''
    if is_ip_address(name):
        return name.replace('.', '_')
    return helpers.reverse_fqdn(name)

def resolve_targets(names, **settings):
    '''
        Turn host names into Targets.

        Settings:
            reverse_dns (bool): display the reverse looked up name
            show_ip (bool): display the IP address instead of the name
            all_addresses (bool): one target per address a name resolves to
            port (int): known service port, 0 asks the portmapper

        Raises:
            ResolveError: a name doesn't resolve
    '''
    reverse_dns = settings.get('reverse_dns', False)
    show_ip = settings.get('show_ip', False)
    all_addresses = settings.get('all_addresses', False)
    port = settings.get('port', 0)

    targets = []
    for name in names:
        try:
            results = socket.getaddrinfo(name, None, socket.AF_INET, socket.SOCK_DGRAM)
        except socket.gaierror as e:
            raise helpers.ResolveError('{0}: {1}'.format(name, e.strerror))
        addresses = []
        for result in results:
            ip = result[4][0]
            if ip not in addresses:
                addresses.append(ip)
        if not all_addresses:
            addresses = addresses[:1]

        for ip in addresses:
            display = name
            if reverse_dns:
                try:
                    display, _ = socket.getnameinfo((ip, 0), socket.NI_NAMEREQD)
                except (socket.gaierror, socket.herror):
                    display = ip
            if show_ip:
                display = ip
            elif all_addresses and len(addresses) > 1:
                display = '{0}({1})'.format(display, ip)
            targets.append(Target(name, ip, port = port, ndqf = make_ndqf(display if reverse_dns else name), display_name = display))
    return targets
