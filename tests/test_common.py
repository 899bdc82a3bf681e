import ipaddress

import pytest

from meshcni.common import (
    Action,
    ConntrackKeyV4,
    EndpointKey,
    Ip,
    KubeProtocol,
    PolicyKey,
    PolicyProtocol,
    ServiceKeyV4,
    ServiceKeyV6,
    service_key_v4,
    service_key_v6,
)


@pytest.mark.parametrize("address", ["10.1.2.3", "0.0.0.0", "255.255.255.255"])
def test_ipv4_round_trip(address):
    assert Ip.from_address(address).to_address() == ipaddress.IPv4Address(address)


@pytest.mark.parametrize("address", ["fd00::1", "2001:db8::42"])
def test_ipv6_round_trip(address):
    assert Ip.from_address(address).to_address() == ipaddress.IPv6Address(address)


def test_from_u32_matches_from_address():
    addr = ipaddress.IPv4Address("192.168.7.9")
    assert Ip.from_u32(int(addr)) == Ip.from_address(addr)
    assert len(Ip.from_u32(int(addr)).octets) == 16


def test_ipv4_mapped_converts_to_ipv4():
    ip = Ip.from_address("::ffff:10.0.0.1")
    assert ip.to_address() == ipaddress.IPv4Address("10.0.0.1")


def test_ip_rejects_wrong_length():
    with pytest.raises(ValueError):
        Ip(b"\x00" * 4)


@pytest.mark.parametrize("name", ["TCP", "tcp", "Tcp"])
def test_kube_protocol_parse_tcp(name):
    assert KubeProtocol.parse(name) is KubeProtocol.TCP


@pytest.mark.parametrize("name", ["SCTP", "sctp", "Sctp"])
def test_kube_protocol_parse_sctp(name):
    assert KubeProtocol.parse(name) is KubeProtocol.SCTP


@pytest.mark.parametrize("name", ["tCP", "ICMP", ""])
def test_kube_protocol_parse_invalid(name):
    with pytest.raises(ValueError, match="Only TCP, UDP, or SCTP allowed"):
        KubeProtocol.parse(name)


def test_kube_protocol_numbers_and_display():
    assert KubeProtocol.from_number(17) is KubeProtocol.UDP
    assert int(KubeProtocol.SCTP) == 132
    assert str(KubeProtocol.UDP) == "UDP"
    assert f"{KubeProtocol.TCP}" == "TCP"
    with pytest.raises(ValueError):
        KubeProtocol.from_number(1)


def test_kube_protocol_parse_display_round_trip():
    for proto in KubeProtocol:
        assert KubeProtocol.parse(str(proto)) is proto


def test_action_from_value():
    assert Action.from_value(0) is Action.ALLOW
    assert Action.from_value(1) is Action.DENY
    assert Action.from_value(200) is Action.DENY
    assert str(Action.ALLOW) == "ALLOW"


def test_policy_protocol_from_value():
    assert PolicyProtocol.from_value(0) is PolicyProtocol.ANY
    assert PolicyProtocol.from_value(6) is PolicyProtocol.TCP
    assert PolicyProtocol.from_value(132) is PolicyProtocol.SCTP
    assert PolicyProtocol.from_value(99) is PolicyProtocol.UNKNOWN
    assert str(PolicyProtocol.UNKNOWN) == "UNKNOWN"


def test_policy_key_wildcards_default_to_zero():
    key = PolicyKey(src_id=3, dst_id=4)
    assert (key.dst_port, key.proto) == (0, 0)


def test_service_key_constructors():
    assert service_key_v4(1, 80, 6) == ServiceKeyV4(ip=1, port=80, protocol=6)
    assert service_key_v6(1 << 100, 443, 17) == ServiceKeyV6(ip=1 << 100, port=443, protocol=17)


def test_keys_are_hashable_and_equal_by_value():
    table = {service_key_v4(5, 53, 17): "dns"}
    assert table[ServiceKeyV4(5, 53, 17)] == "dns"
    a = ConntrackKeyV4(1, 2, 3, 4, 6)
    assert {a: 1}[ConntrackKeyV4(1, 2, 3, 4, 6)] == 1


@pytest.mark.parametrize(
    "build",
    [
        lambda: service_key_v4(1 << 32, 80, 6),
        lambda: service_key_v4(1, 70000, 6),
        lambda: ConntrackKeyV4(1, 2, 3, 4, 256),
        lambda: EndpointKey(-1, 0),
        lambda: PolicyKey(1, 2, dst_port=1 << 16),
    ],
)
def test_width_validation(build):
    with pytest.raises(ValueError):
        build()