"""Shared data types for the datapath maps: identities, conntrack, policy and services."""

from __future__ import annotations

import ipaddress
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Union

IdentityId = int
Id = int

_PROTOCOL_ERROR = (
    "Protocol provided is not a valid kube protocol. Only TCP, UDP, or SCTP allowed"
)


def _check_unsigned(name: str, value: int, bits: int) -> None:
    if not isinstance(value, int) or not 0 <= value < (1 << bits):
        raise ValueError(f"{name} must fit in an unsigned {bits}-bit integer, got {value!r}")


class _FixedWidth:
    """Validates that integer fields fit the widths of the map layout."""

    _widths: ClassVar[dict[str, int]] = {}

    def __post_init__(self) -> None:
        for field_name, bits in self._widths.items():
            _check_unsigned(field_name, getattr(self, field_name), bits)


class _NamedIntEnum(IntEnum):
    def __str__(self) -> str:
        return self.name

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


@dataclass(frozen=True)
class Ip:
    """A 16-byte address as stored in the maps (native byte order)."""

    octets: bytes

    def __post_init__(self) -> None:
        if len(self.octets) != 16:
            raise ValueError(f"Ip requires 16 octets, got {len(self.octets)}")

    @classmethod
    def from_address(cls, address) -> Ip:
        """Build from an IPv4 or IPv6 address (string or ipaddress object)."""
        parsed = ipaddress.ip_address(address)
        return cls(int(parsed).to_bytes(16, sys.byteorder))

    @classmethod
    def from_u32(cls, value: int) -> Ip:
        """Build from an IPv4 address given as a host-order 32-bit integer."""
        _check_unsigned("value", value, 32)
        return cls(value.to_bytes(16, sys.byteorder))

    def to_address(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        """Return the address, as IPv4 when it is IPv4-compatible or IPv4-mapped."""
        value = int.from_bytes(self.octets, sys.byteorder)
        if value >> 32 in (0, 0xFFFF):
            return ipaddress.IPv4Address(value & 0xFFFFFFFF)
        return ipaddress.IPv6Address(value)


class KubeProtocol(_NamedIntEnum):
    TCP = 6
    UDP = 17
    SCTP = 132

    @classmethod
    def parse(cls, value: str) -> KubeProtocol:
        """Parse a protocol name such as "TCP", "tcp" or "Tcp"."""
        for proto in cls:
            if value in (proto.name, proto.name.lower(), proto.name.capitalize()):
                return proto
        raise ValueError(_PROTOCOL_ERROR)

    @classmethod
    def from_number(cls, value: int) -> KubeProtocol:
        """Map an IP protocol number to a protocol."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(_PROTOCOL_ERROR) from None


@dataclass(frozen=True)
class ConntrackKeyV4(_FixedWidth):
    """Connection key; all fields in host order."""

    src_ip: int
    dst_ip: int
    src_port: int
    dst_port: int
    proto: int

    _widths: ClassVar[dict[str, int]] = {
        "src_ip": 32, "dst_ip": 32, "src_port": 16, "dst_port": 16, "proto": 8,
    }


@dataclass(frozen=True)
class ConntrackValue(_FixedWidth):
    last_seen_ns: int

    _widths: ClassVar[dict[str, int]] = {"last_seen_ns": 64}


@dataclass(frozen=True)
class PolicyKey(_FixedWidth):
    """Policy key; a dst_port or proto of 0 is a wildcard."""

    src_id: int
    dst_id: int
    dst_port: int = 0
    proto: int = 0

    _widths: ClassVar[dict[str, int]] = {
        "src_id": 32, "dst_id": 32, "dst_port": 16, "proto": 8,
    }


@dataclass(frozen=True)
class PolicyValue(_FixedWidth):
    """Policy verdict; 0 allows, 1 denies."""

    action: int

    _widths: ClassVar[dict[str, int]] = {"action": 8}


class Action(_NamedIntEnum):
    ALLOW = 0
    DENY = 1

    @classmethod
    def from_value(cls, value: int) -> Action:
        """0 is allow; every other value is deny."""
        return cls.ALLOW if value == 0 else cls.DENY


class PolicyProtocol(_NamedIntEnum):
    ANY = 0
    TCP = 6
    UDP = 17
    SCTP = 132
    UNKNOWN = 255

    @classmethod
    def from_value(cls, value: int) -> PolicyProtocol:
        """Map a protocol number, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ServiceKeyV4(_FixedWidth):
    ip: int
    port: int
    protocol: int

    _widths: ClassVar[dict[str, int]] = {"ip": 32, "port": 16, "protocol": 8}


@dataclass(frozen=True)
class ServiceKeyV6(_FixedWidth):
    ip: int
    port: int
    protocol: int

    _widths: ClassVar[dict[str, int]] = {"ip": 128, "port": 16, "protocol": 8}


ServiceKey = Union[ServiceKeyV4, ServiceKeyV6]


@dataclass(frozen=True)
class ServiceValue(_FixedWidth):
    id: int
    count: int

    _widths: ClassVar[dict[str, int]] = {"id": 16, "count": 16}


@dataclass(frozen=True)
class EndpointKey(_FixedWidth):
    id: int
    position: int

    _widths: ClassVar[dict[str, int]] = {"id": 16, "position": 16}


@dataclass(frozen=True)
class EndpointValueV4(_FixedWidth):
    ip: int
    port: int
    protocol: int

    _widths: ClassVar[dict[str, int]] = {"ip": 32, "port": 16, "protocol": 8}


@dataclass(frozen=True)
class EndpointValueV6(_FixedWidth):
    ip: int
    port: int
    protocol: int

    _widths: ClassVar[dict[str, int]] = {"ip": 128, "port": 16, "protocol": 8}


EndpointValue = Union[EndpointValueV4, EndpointValueV6]


def service_key_v4(ip: int, port: int, protocol: int) -> ServiceKeyV4:
    """Build an IPv4 service key."""
    return ServiceKeyV4(ip, port, protocol)


def service_key_v6(ip: int, port: int, protocol: int) -> ServiceKeyV6:
    """Build an IPv6 service key."""
    return ServiceKeyV6(ip, port, protocol)