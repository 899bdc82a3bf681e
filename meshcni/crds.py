"""Custom resources: Cluster, Identity and MeshEndpoint, with their CRD manifests."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

import yaml

from meshcni.common import (
    EndpointValue,
    EndpointValueV4,
    EndpointValueV6,
    KubeProtocol,
    ServiceKey,
    service_key_v4,
    service_key_v6,
)
from meshcni.k8s import (
    EndpointConditions,
    EndpointSlice,
    Namespace,
    ObjectMeta,
    Pod,
    Service,
    Store,
    sanitize_pod_labels,
)

logger = logging.getLogger(__name__)

GROUP = "mesh-cni.dev"
VERSION = "v1alpha1"
SERVICE_OWNER_LABEL = "kubernetes.io/service-name"
NAME_GROUP_CLUSTER = "clusters.mesh-cni.dev"
NAME_GROUP_MESHENDPOINT = "meshendpoints.mesh-cni.dev"

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class _CustomResource:
    """Accessors shared by the custom resources."""

    metadata: ObjectMeta
    kind: ClassVar[str] = ""

    @property
    def name(self) -> str:
        return self.metadata.name or ""

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


@dataclass
class ClusterSpec:
    """A remote cluster: its unique ID and the ConfigMap holding its kubeconfig."""

    id: int = 0
    config_map_name: str = ""


@dataclass
class ClusterStatus:
    conditions: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class Cluster(_CustomResource):
    spec: ClusterSpec = field(default_factory=ClusterSpec)
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    status: ClusterStatus | None = None

    kind: ClassVar[str] = "Cluster"


@dataclass
class IdentitySpec:
    namespace_labels: dict[str, str] = field(default_factory=dict)
    pod_labels: dict[str, str] = field(default_factory=dict)
    id: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Serialised form, with label maps in sorted key order."""
        return {
            "namespaceLabels": dict(sorted(self.namespace_labels.items())),
            "podLabels": dict(sorted(self.pod_labels.items())),
            "id": self.id,
        }


@dataclass
class Identity(_CustomResource):
    spec: IdentitySpec = field(default_factory=IdentitySpec)
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    kind: ClassVar[str] = "Identity"

    def pod_namespace_labels_match(self, pod: Pod, namespace: Namespace) -> bool:
        """True if the pod's sanitised labels and the namespace's labels match this identity."""
        pod_labels = sanitize_pod_labels(pod.labels)
        return (
            self.spec.pod_labels == pod_labels
            and namespace.labels == self.spec.namespace_labels
        )


@dataclass
class BackendPortMapping:
    ip: IpAddress
    service_port: int
    backend_port: int
    protocol: str

    def __post_init__(self) -> None:
        self.ip = ipaddress.ip_address(self.ip)


@dataclass
class MeshEndpointSpec:
    service_ips: list[IpAddress] = field(default_factory=list)
    backend_port_mappings: list[BackendPortMapping] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.service_ips = [ipaddress.ip_address(ip) for ip in self.service_ips]


@dataclass
class MeshEndpoint(_CustomResource):
    spec: MeshEndpointSpec = field(default_factory=MeshEndpointSpec)
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    kind: ClassVar[str] = "MeshEndpoint"

    def generate_bpf_service_endpoints(self) -> dict[ServiceKey, list[EndpointValue]]:
        """Group backend endpoints by service key; mixed address families are skipped."""
        result: dict[ServiceKey, list[EndpointValue]] = {}
        for service_ip in self.spec.service_ips:
            for mapping in self.spec.backend_port_mappings:
                protocol = int(kube_proto_from_str(mapping.protocol))
                if service_ip.version != mapping.ip.version:
                    continue
                if service_ip.version == 4:
                    key: ServiceKey = service_key_v4(
                        int(service_ip), mapping.service_port, protocol
                    )
                    value: EndpointValue = EndpointValueV4(
                        int(mapping.ip), mapping.backend_port, protocol
                    )
                else:
                    key = service_key_v6(int(service_ip), mapping.service_port, protocol)
                    value = EndpointValueV6(int(mapping.ip), mapping.backend_port, protocol)
                result.setdefault(key, []).append(value)
        return result


def generate_mesh_endpoint_spec(store: Store, service: Service) -> MeshEndpointSpec:
    """Build the MeshEndpoint spec for a service from the endpoint slices it owns."""
    service_ips = _service_ips_from_service(service)
    ports = _service_names_ports_protocols(service)

    mappings = []
    for ep_slice in _endpoint_slices_owned_by_service(store, service):
        for ip in _backend_ips_from_ep_slice(ep_slice):
            for name, service_port, protocol in ports:
                backend_port = _backend_port_from_ep_slice(ep_slice, name, protocol)
                if backend_port is None:
                    continue
                mappings.append(
                    BackendPortMapping(
                        ip=ip,
                        service_port=service_port,
                        backend_port=backend_port,
                        protocol=str(protocol),
                    )
                )
    return MeshEndpointSpec(service_ips=service_ips, backend_port_mappings=mappings)


def kube_proto_from_str(proto: str | None) -> KubeProtocol:
    """Parse a protocol name, defaulting to TCP when missing or unknown."""
    if proto is None:
        return KubeProtocol.TCP
    try:
        return KubeProtocol.parse(proto)
    except ValueError:
        return KubeProtocol.TCP


def _endpoint_slices_owned_by_service(store: Store, service: Service) -> list[EndpointSlice]:
    namespace = service.namespace
    if namespace is None:
        return []
    return [
        ep_slice
        for ep_slice in store.state()
        if ep_slice.labels.get(SERVICE_OWNER_LABEL) == service.name
        and ep_slice.namespace == namespace
    ]


def _endpoint_ready(conditions: EndpointConditions) -> bool:
    return conditions.ready in (True, None) and conditions.terminating is not True


def _service_ips_from_service(service: Service) -> list[IpAddress]:
    result = []
    for ip in service.cluster_ips or []:
        try:
            result.append(ipaddress.ip_address(ip))
        except ValueError:
            logger.warning(
                "failed to parse ClusterIP %s in Service %s/%s",
                ip,
                service.namespace or "",
                service.name,
            )
    return result


def _backend_ips_from_ep_slice(ep_slice: EndpointSlice) -> list[IpAddress]:
    ips = []
    for endpoint in ep_slice.endpoints:
        if endpoint.conditions is None or not _endpoint_ready(endpoint.conditions):
            continue
        for address in endpoint.addresses:
            try:
                ips.append(ipaddress.ip_address(address))
            except ValueError:
                continue
    return ips


def _backend_port_from_ep_slice(
    ep_slice: EndpointSlice, name: str, protocol: KubeProtocol
) -> int | None:
    for port in ep_slice.ports or []:
        if (
            port.name == name
            and port.port is not None
            and kube_proto_from_str(port.protocol) == protocol
        ):
            return port.port & 0xFFFF
    return None


def _service_names_ports_protocols(service: Service) -> list[tuple[str, int, KubeProtocol]]:
    names = []
    for service_port in service.ports or []:
        if service_port.protocol is None:
            continue
        try:
            protocol = KubeProtocol.parse(service_port.protocol)
        except ValueError:
            continue
        names.append((service_port.name or "", service_port.port & 0xFFFF, protocol))
    return names


def _uint_schema(fmt: str, description: str | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"format": fmt, "minimum": 0, "type": "integer"}
    if description:
        schema["description"] = description
    return schema


_LABEL_MAP_SCHEMA = {"additionalProperties": {"type": "string"}, "type": "object"}

_CLUSTER_SPEC_SCHEMA = {
    "properties": {
        "configMapName": {
            "description": "Name of the ConfigMap storing the kubeconfig for the cluster",
            "type": "string",
        },
        "id": _uint_schema("uint32", "Unique ID for the cluster"),
    },
    "required": ["configMapName", "id"],
    "type": "object",
}

_IDENTITY_SPEC_SCHEMA = {
    "properties": {
        "id": _uint_schema("uint32"),
        "namespaceLabels": _LABEL_MAP_SCHEMA,
        "podLabels": _LABEL_MAP_SCHEMA,
    },
    "required": ["id", "namespaceLabels", "podLabels"],
    "type": "object",
}

_MESHENDPOINT_SPEC_SCHEMA = {
    "properties": {
        "backend_port_mappings": {
            "items": {
                "properties": {
                    "backend_port": _uint_schema("uint16"),
                    "ip": {"format": "ip", "type": "string"},
                    "protocol": {"type": "string"},
                    "service_port": _uint_schema("uint16"),
                },
                "required": ["backend_port", "ip", "protocol", "service_port"],
                "type": "object",
            },
            "type": "array",
        },
        "service_ips": {"items": {"format": "ip", "type": "string"}, "type": "array"},
    },
    "required": ["backend_port_mappings", "service_ips"],
    "type": "object",
}


def _crd(kind: str, plural: str, namespaced: bool, spec_schema: dict[str, Any]) -> dict[str, Any]:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{plural}.{GROUP}"},
        "spec": {
            "group": GROUP,
            "names": {
                "categories": [],
                "kind": kind,
                "plural": plural,
                "shortNames": [],
                "singular": kind.lower(),
            },
            "scope": "Namespaced" if namespaced else "Cluster",
            "versions": [
                {
                    "additionalPrinterColumns": [],
                    "name": VERSION,
                    "schema": {
                        "openAPIV3Schema": {
                            "description": (
                                f"Auto-generated derived type for {kind}Spec via `CustomResource`"
                            ),
                            "properties": {"spec": spec_schema},
                            "required": ["spec"],
                            "title": kind,
                            "type": "object",
                        }
                    },
                    "served": True,
                    "storage": True,
                    "subresources": {},
                }
            ],
        },
    }


def _meshendpoint_crd() -> dict[str, Any]:
    return _crd("MeshEndpoint", "meshendpoints", True, _MESHENDPOINT_SPEC_SCHEMA)


def _identity_crd() -> dict[str, Any]:
    return _crd("Identity", "identities", True, _IDENTITY_SPEC_SCHEMA)


def _cluster_crd() -> dict[str, Any]:
    return _crd("Cluster", "clusters", False, _CLUSTER_SPEC_SCHEMA)


def _print_crd(crd: dict[str, Any]) -> None:
    print("---\n" + yaml.safe_dump(crd, sort_keys=False), end="")


def crd_gen_meshendpoint() -> None:
    """Print the MeshEndpoint CRD as a YAML document."""
    _print_crd(_meshendpoint_crd())


def crd_gen_identity() -> None:
    """Print the Identity CRD as a YAML document."""
    _print_crd(_identity_crd())


def crd_gen_cluster() -> None:
    """Print the Cluster CRD as a YAML document."""
    _print_crd(_cluster_crd())


def crd_gen_all() -> None:
    """Print every CRD as a stream of YAML documents."""
    for crd in (_meshendpoint_crd(), _identity_crd(), _cluster_crd()):
        _print_crd(crd)