import pytest

from nfsping import helpers
from nfsping import target as target_module
from nfsping.target import Target, make_ndqf, resolve_targets

def test_ndqf_for_names_and_addresses():
    assert make_ndqf('www.test.com') == 'com.test.www'
    assert make_ndqf('10.1.2.3') == '10_1_2_3'

def test_target_defaults():
    target = Target('filer.example.com', '192.0.2.10')
    assert target.display_name == 'filer.example.com'
    assert target.ndqf == 'com.example.filer'
    assert target.address == ('192.0.2.10', 0)
    assert target.channel is None

def test_loss_percentage():
    target = Target('filer', '192.0.2.10')
    assert target.loss == 0
    for _ in range(3):
        target.record_sent()
    target.record_received()
    assert target.loss == 66

def test_never_more_replies_than_calls():
    target = Target('filer', '192.0.2.10')
    with pytest.raises(ValueError):
        target.record_received()

def test_resolve_ip_address():
    [target] = resolve_targets(['127.0.0.1'], port = 2049)
    assert target.ip_address == '127.0.0.1'
    assert target.address == ('127.0.0.1', 2049)
    assert target.ndqf == '127_0_0_1'

def test_resolve_show_ip(monkeypatch):
    def getaddrinfo(name, port, family, socktype):
        return [(family, socktype, 17, '', ('192.0.2.1', 0)),
                (family, socktype, 17, '', ('192.0.2.2', 0))]
    monkeypatch.setattr(target_module.socket, 'getaddrinfo', getaddrinfo)
    [target] = resolve_targets(['filer.example.com'], show_ip = True)
    assert target.display_name == '192.0.2.1'
    assert target.ndqf == 'com.example.filer'

def test_resolve_all_addresses(monkeypatch):
    def getaddrinfo(name, port, family, socktype):
        return [(family, socktype, 17, '', ('192.0.2.1', 0)),
                (family, socktype, 17, '', ('192.0.2.1', 0)),
                (family, socktype, 17, '', ('192.0.2.2', 0))]
    monkeypatch.setattr(target_module.socket, 'getaddrinfo', getaddrinfo)
    targets = resolve_targets(['filer.example.com'], all_addresses = True)
    assert [t.ip_address for t in targets] == ['192.0.2.1', '192.0.2.2']
    assert targets[1].display_name == 'filer.example.com(192.0.2.2)'

def test_resolve_failure(monkeypatch):
    def getaddrinfo(name, port, family, socktype):
        raise target_module.socket.gaierror(-2, 'Name or service not known')
    monkeypatch.setattr(target_module.socket, 'getaddrinfo', getaddrinfo)
    with pytest.raises(helpers.ResolveError) as excinfo:
        resolve_targets(['nosuchhost.example.com'])
    assert 'nosuchhost.example.com' in str(excinfo.value)
