"""Plugin arguments, network configuration, runtime input and result types."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, TypeVar, Union

import semver

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IpInterface = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]

T = TypeVar("T")

CNI_VERSION = semver.Version(0, 4, 0)
SUPPORTED_CNI_VERSIONS = (semver.Version(0, 4, 0),)


def _mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _required(data: dict[str, Any], key: str) -> Any:
    try:
        return data[key]
    except KeyError:
        raise ValueError(f"missing field `{key}`") from None


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _boolean(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")
    return value


def _uint(bits: int) -> Callable[[Any], int]:
    def convert(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected an integer, got {value!r}")
        if not 0 <= value < (1 << bits):
            raise ValueError(f"integer {value} out of range for u{bits}")
        return value

    return convert


def _version(value: Any) -> semver.Version:
    return semver.Version.parse(_string(value))


def _ip(value: Any) -> IpAddress:
    return ipaddress.ip_address(_string(value))


def _network(value: Any) -> IpInterface:
    return ipaddress.ip_interface(_string(value))


def _optional(data: dict[str, Any], key: str, convert: Callable[[Any], T]) -> T | None:
    value = data.get(key)
    return None if value is None else convert(value)


def _list(data: dict[str, Any], key: str, convert: Callable[[Any], T]) -> list[T]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field `{key}` must be a list")
    return [convert(item) for item in value]


def _put(out: dict[str, Any], key: str, value: Any) -> None:
    if value is not None:
        out[key] = value


def _put_list(out: dict[str, Any], key: str, values: list[Any]) -> None:
    if values:
        out[key] = values


class Command(Enum):
    ADD = "ADD"
    DELETE = "DEL"
    CHECK = "CHECK"
    STATUS = "STATUS"
    VERSION = "VERSION"
    GC = "GC"


def parse_command(value: str) -> Command:
    """Parse the CNI_COMMAND value; raises ValueError for unsupported commands."""
    try:
        return Command(value)
    except ValueError:
        raise ValueError(f"command {value} not supported") from None


def parse_key_value(value: str) -> dict[str, str]:
    """Parse "K1=V1;K2=V2" into a dict, skipping entries without "="."""
    result: dict[str, str] = {}
    if not value:
        return result
    for entry in value.split(";"):
        key, sep, val = entry.partition("=")
        if sep:
            result[key] = val
    return result


@dataclass
class Args:
    """Arguments the runtime passes through the environment or the command line."""

    command: Command
    container_id: str
    ifname: str
    paths: str
    net_ns: str | None = None
    args: dict[str, str] = field(default_factory=dict)


@dataclass
class PluginConfig:
    """A plugin entry of a network configuration list; extra keys go to options."""

    type: str
    options: dict[str, Any] = field(default_factory=dict)


def _plugin_from_dict(data: Any) -> PluginConfig:
    data = _mapping(data, "plugin configuration")
    options = {k: v for k, v in data.items() if k != "type"}
    return PluginConfig(type=_string(_required(data, "type")), options=options)


def _plugin_to_dict(plugin: PluginConfig) -> dict[str, Any]:
    return {"type": plugin.type, **plugin.options}


@dataclass
class Config:
    """A network configuration list."""

    cni_version: semver.Version
    name: str
    cni_versions: list[semver.Version] = field(default_factory=list)
    disable_check: bool | None = None
    disable_gc: bool | None = None
    load_only_inlined_plugins: bool | None = None
    plugins: list[PluginConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Config:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "configuration")
        return cls(
            cni_version=_version(_required(data, "cniVersion")),
            name=_string(_required(data, "name")),
            cni_versions=_list(data, "cniVersions", _version),
            disable_check=_optional(data, "disableCheck", _boolean),
            disable_gc=_optional(data, "disableGC", _boolean),
            load_only_inlined_plugins=_optional(data, "loadOnlyInlinedPlugins", _boolean),
            plugins=_list(data, "plugins", _plugin_from_dict),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"cniVersion": str(self.cni_version)}
        _put_list(out, "cniVersions", [str(v) for v in self.cni_versions])
        out["name"] = self.name
        _put(out, "disableCheck", self.disable_check)
        _put(out, "disableGC", self.disable_gc)
        _put(out, "loadOnlyInlinedPlugins", self.load_only_inlined_plugins)
        _put_list(out, "plugins", [_plugin_to_dict(p) for p in self.plugins])
        return out


@dataclass
class PortMapping:
    host_port: int
    container_port: int
    protocol: str


def _port_mapping_from_dict(data: Any) -> PortMapping:
    data = _mapping(data, "port mapping")
    return PortMapping(
        host_port=_uint(16)(_required(data, "hostPort")),
        container_port=_uint(16)(_required(data, "containerPort")),
        protocol=_string(_required(data, "protocol")),
    )


def _port_mapping_to_dict(mapping: PortMapping) -> dict[str, Any]:
    return {
        "hostPort": mapping.host_port,
        "containerPort": mapping.container_port,
        "protocol": mapping.protocol,
    }


@dataclass
class Capabilities:
    port_mappings: list[PortMapping] = field(default_factory=list)


@dataclass
class IpRange:
    subnet: IpInterface
    range_start: IpAddress
    range_end: IpAddress
    gateway: IpAddress


def _ip_range_from_dict(data: Any) -> IpRange:
    data = _mapping(data, "ip range")
    return IpRange(
        subnet=_network(_required(data, "subnet")),
        range_start=_ip(_required(data, "rangeStart")),
        range_end=_ip(_required(data, "rangeEnd")),
        gateway=_ip(_required(data, "gateway")),
    )


def _ip_range_to_dict(ip_range: IpRange) -> dict[str, Any]:
    return {
        "subnet": str(ip_range.subnet),
        "rangeStart": str(ip_range.range_start),
        "rangeEnd": str(ip_range.range_end),
        "gateway": str(ip_range.gateway),
    }


@dataclass
class Interface:
    name: str
    mac: str | None = None
    mtu: int | None = None
    sandbox: str | None = None
    socket_path: str | None = None
    pci_id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Interface:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "interface")
        return cls(
            name=_string(_required(data, "name")),
            mac=_optional(data, "mac", _string),
            mtu=_optional(data, "mtu", _uint(32)),
            sandbox=_optional(data, "sandbox", _string),
            socket_path=_optional(data, "socketPath", _string),
            pci_id=_optional(data, "pciID", _string),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        _put(out, "mac", self.mac)
        _put(out, "mtu", self.mtu)
        _put(out, "sandbox", self.sandbox)
        _put(out, "socketPath", self.socket_path)
        _put(out, "pciID", self.pci_id)
        return out


@dataclass
class IpConfig:
    """An address assigned to an interface; the address keeps its host bits."""

    address: IpInterface
    gateway: IpAddress | None = None
    interface: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> IpConfig:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "ip")
        return cls(
            address=_network(_required(data, "address")),
            gateway=_optional(data, "gateway", _ip),
            interface=_optional(data, "interface", _uint(64)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"address": str(self.address)}
        if self.gateway is not None:
            out["gateway"] = str(self.gateway)
        out["interface"] = self.interface
        return out


@dataclass
class Dns:
    nameservers: list[IpAddress] = field(default_factory=list)
    domain: str | None = None
    search: list[str] = field(default_factory=list)
    options: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Dns:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "dns")
        return cls(
            nameservers=_list(data, "nameservers", _ip),
            domain=_optional(data, "domain", _string),
            search=_list(data, "search", _string),
            options=_list(data, "options", _string),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        _put_list(out, "nameservers", [str(ip) for ip in self.nameservers])
        _put(out, "domain", self.domain)
        _put_list(out, "search", list(self.search))
        _put_list(out, "options", list(self.options))
        return out


@dataclass
class Route:
    dst: IpInterface
    gw: IpAddress | None = None
    mtu: int | None = None
    advmss: int | None = None
    priority: int | None = None
    table: int | None = None
    scope: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> Route:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "route")
        return cls(
            dst=_network(_required(data, "dst")),
            gw=_optional(data, "gw", _ip),
            mtu=_optional(data, "mtu", _uint(16)),
            advmss=_optional(data, "advmss", _uint(16)),
            priority=_optional(data, "priority", _uint(16)),
            table=_optional(data, "table", _uint(16)),
            scope=_optional(data, "scope", _uint(8)),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"dst": str(self.dst)}
        _put(out, "gw", None if self.gw is None else str(self.gw))
        _put(out, "mtu", self.mtu)
        _put(out, "advmss", self.advmss)
        _put(out, "priority", self.priority)
        _put(out, "table", self.table)
        _put(out, "scope", self.scope)
        return out


@dataclass
class Bandwidth:
    """Bandwidth limits: rates in bits per second, bursts in bits."""

    ingress_rate: int | None = None
    ingress_burst: int | None = None
    egress_rate: int | None = None
    egress_burst: int | None = None


_BANDWIDTH_KEYS = (
    ("ingressRate", "ingress_rate"),
    ("ingressBurst", "ingress_burst"),
    ("egressRate", "egress_rate"),
    ("egressBurst", "egress_burst"),
)


def _bandwidth_from_dict(data: Any) -> Bandwidth:
    data = _mapping(data, "bandwidth")
    return Bandwidth(
        **{attr: _optional(data, key, _uint(64)) for key, attr in _BANDWIDTH_KEYS}
    )


def _bandwidth_to_dict(bandwidth: Bandwidth) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, attr in _BANDWIDTH_KEYS:
        _put(out, key, getattr(bandwidth, attr))
    return out


_RUNTIME_CONFIG_KEYS = frozenset(
    {
        "portMappings",
        "ipRanges",
        "bandwidth",
        "dns",
        "ips",
        "mac",
        "infinibandGUID",
        "deviceID",
        "aliases",
    }
)


@dataclass
class RuntimeConfig:
    """Well-known runtime capabilities; other keys are kept in ``other``."""

    port_mappings: list[PortMapping] | None = None
    ip_ranges: list[IpRange] = field(default_factory=list)
    bandwidth: Bandwidth | None = None
    dns: Dns | None = None
    ips: list[IpInterface] = field(default_factory=list)
    mac: str | None = None
    infiniband_guid: str | None = None
    device_id: str | None = None
    aliases: list[str] = field(default_factory=list)
    other: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> RuntimeConfig:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        data = _mapping(data, "runtime configuration")
        port_mappings = None
        if data.get("portMappings") is not None:
            port_mappings = _list(data, "portMappings", _port_mapping_from_dict)
        return cls(
            port_mappings=port_mappings,
            ip_ranges=_list(data, "ipRanges", _ip_range_from_dict),
            bandwidth=_optional(data, "bandwidth", _bandwidth_from_dict),
            dns=_optional(data, "dns", Dns.from_dict),
            ips=_list(data, "ips", _network),
            mac=_optional(data, "mac", _string),
            infiniband_guid=_optional(data, "infinibandGUID", _string),
            device_id=_optional(data, "deviceID", _string),
            aliases=_list(data, "aliases", _string),
            other={k: v for k, v in data.items() if k not in _RUNTIME_CONFIG_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.port_mappings is not None:
            out["portMappings"] = [_port_mapping_to_dict(m) for m in self.port_mappings]
        _put_list(out, "ipRanges", [_ip_range_to_dict(r) for r in self.ip_ranges])
        if self.bandwidth is not None:
            out["bandwidth"] = _bandwidth_to_dict(self.bandwidth)
        if self.dns is not None:
            out["dns"] = self.dns.to_dict()
        _put_list(out, "ips", [str(ip) for ip in self.ips])
        _put(out, "mac", self.mac)
        _put(out, "infinibandGUID", self.infiniband_guid)
        _put(out, "deviceID", self.device_id)
        _put_list(out, "aliases", list(self.aliases))
        out.update(self.other)
        return out


@dataclass
class Input:
    """The configuration the runtime writes to the plugin's standard input."""

    cni_version: semver.Version
    name: str = ""
    runtime_config: RuntimeConfig | None = None
    previous_result: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> Input:
        """Parse from decoded JSON; unknown keys are ignored. Raises ValueError."""
        data = _mapping(data, "input")
        return cls(
            cni_version=_version(_required(data, "cniVersion")),
            name=_optional(data, "name", _string) or "",
            runtime_config=_optional(data, "runtimeConfig", RuntimeConfig.from_dict),
            previous_result=data.get("prevResult"),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"cniVersion": str(self.cni_version), "name": self.name}
        if self.runtime_config is not None:
            out["runtimeConfig"] = self.runtime_config.to_dict()
        _put(out, "prevResult", self.previous_result)
        return out