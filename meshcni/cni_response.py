"""Plugin results, error responses and writing them to standard output."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TextIO, Union

import semver

from meshcni.cni_types import Dns, Interface, IpConfig, Route


class ErrorKind(Enum):
    """Error categories with their CNI error code, message and detail format."""

    IO = (5, "I/O Error", "{}")
    JSON = (6, "JSON Error", "{}")
    EBPF = (101, "EBPF Error", "{}")
    INCOMPATIBLE_VERSION = (1, "Incompatible Version", "incompatible version {}")
    UNSUPPORTED_FIELD = (2, "Incompatible Version", "unsupported field: {}")
    CONTAINER_UNKNOWN = (3, "Incompatible Version", "container unknown: {}")
    INVALID_REQUIRED_ENV_VARIABLES = (
        4,
        "Invalid Required Environment Variables",
        "invalid environment variables: {}",
    )
    INVALID_NETWORK_CONFIG = (7, "Invalid Network Config", "invalid network config: {}")
    TRANSIENT = (11, "Transient Error", "transient error: {}")
    PARSE = (101, "EBPF Error", "parse error: {}")
    NO_PREVIOUS_RESULT = (102, "No Previous Result", "missing previous result: {}")
    MISSING_INTERFACES = (
        103,
        "No Interfaces",
        "cni must be chained after interfaces are created",
    )
    RPC_STATUS = (104, "Tonic", "{}")
    RPC_TRANSPORT = (105, "Tonic Transport", "{}")

    def __init__(self, code: int, msg: str, template: str) -> None:
        self.code = code
        self.msg = msg
        self.template = template


class CniError(Exception):
    """A plugin failure that is reported to the runtime as an error result."""

    def __init__(self, kind: ErrorKind, detail: str = "") -> None:
        super().__init__(kind.template.format(detail))
        self.kind = kind
        self.detail = detail

    def into_response(self, cni_version: semver.Version) -> CniErrorResponse:
        """The error result for this failure."""
        return CniErrorResponse(
            cni_version=cni_version,
            code=self.kind.code,
            msg=self.kind.msg,
            details=str(self),
        )


def _parse_version(value: Any) -> semver.Version:
    if not isinstance(value, str):
        raise ValueError(f"expected a version string, got {value!r}")
    return semver.Version.parse(value)


def _parse_list(data: dict[str, Any], key: str, parse) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field `{key}` must be a list")
    return [parse(item) for item in value]


_SUCCESS_KEYS = frozenset({"cniVersion", "interfaces", "ips", "routes", "dns"})


@dataclass
class Success:
    """A successful ADD or DEL result; unknown keys are kept in ``custom``."""

    cni_version: semver.Version
    interfaces: list[Interface] = field(default_factory=list)
    ips: list[IpConfig] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)
    dns: Dns | None = None
    custom: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> Success:
        """Parse from decoded JSON; raises ValueError on invalid data."""
        if not isinstance(data, dict):
            raise ValueError("result must be a JSON object")
        if "cniVersion" not in data:
            raise ValueError("missing field `cniVersion`")
        dns = data.get("dns")
        return cls(
            cni_version=_parse_version(data["cniVersion"]),
            interfaces=_parse_list(data, "interfaces", Interface.from_dict),
            ips=_parse_list(data, "ips", IpConfig.from_dict),
            routes=_parse_list(data, "routes", Route.from_dict),
            dns=None if dns is None else Dns.from_dict(dns),
            custom={k: v for k, v in data.items() if k not in _SUCCESS_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "cniVersion": str(self.cni_version),
            "interfaces": [iface.to_dict() for iface in self.interfaces],
            "ips": [ip.to_dict() for ip in self.ips],
            "routes": [route.to_dict() for route in self.routes],
            "dns": None if self.dns is None else self.dns.to_dict(),
        }
        out.update(self.custom)
        return out

    def to_json(self) -> str:
        """Compact JSON form of the result."""
        return _dumps(self.to_dict())


@dataclass
class VersionResponse:
    cni_version: semver.Version
    supported_versions: list[semver.Version] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cniVersion": str(self.cni_version),
            "supportedVersions": [str(v) for v in self.supported_versions],
        }


@dataclass
class CniErrorResponse:
    cni_version: semver.Version
    code: int
    msg: str
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "cniVersion": str(self.cni_version),
            "code": self.code,
            "msg": self.msg,
            "details": self.details,
        }


class EmptyResponse(Enum):
    """Results that write nothing to standard output."""

    GC = "GC"
    CHECK = "CHECK"
    STATUS = "STATUS"


Response = Union[Success, CniErrorResponse, VersionResponse, EmptyResponse]


def _dumps(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def write_out(response: Response, stream: TextIO | None = None) -> int:
    """Write the response as JSON and return the process exit code."""
    stream = sys.stdout if stream is None else stream
    if isinstance(response, EmptyResponse):
        out, code = "", 0
    else:
        try:
            out, code = _dumps(response.to_dict()), 0
        except (TypeError, ValueError) as exc:
            out, code = str(exc), 1
    stream.write(out)
    stream.flush()
    return code