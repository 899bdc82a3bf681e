"""Identity controller: maps pod and node addresses to identities in the datapath."""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Union

from meshcni.crds import Identity
from meshcni.k8s import Node, Pod, ReconcileAction, Store

logger = logging.getLogger(__name__)

DEFAULT_REQUEUE_SECONDS = 300.0
ERROR_REQUEUE_SECONDS = 5.0

LOCAL_NODE_ID = 10
REMOTE_NODE_ID = 11

IpAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IpNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class IdentityError(Exception):
    """Raised when the identity controller fails."""


class InvalidResource(IdentityError):
    """The reconciled object lacks required fields."""

    def __init__(self, message: str = "encountered invalid resource") -> None:
        super().__init__(message)


class ResourceNotFound(IdentityError):
    """A referenced object is missing from its store."""

    def __init__(self, message: str = "resource not found") -> None:
        super().__init__(message)


class IdentityBpfState(ABC):
    """Writable view of the address-to-identity map."""

    @abstractmethod
    def update(self, key: IpNetwork, value: int) -> None:
        """Insert or replace the identity for an address prefix."""


@dataclass
class IdentityContext:
    node_name: str
    identity_store: Store
    namespace_store: Store
    bpf_maps: IdentityBpfState


def _parse_addresses(addresses: list[str] | None) -> list[IpAddress]:
    result = []
    for address in addresses or []:
        try:
            result.append(ipaddress.ip_address(address))
        except ValueError:
            continue
    return result


def _host_network(ip: IpAddress) -> IpNetwork:
    return ipaddress.ip_network((ip, ip.max_prefixlen))


def node_ips(node: Node) -> list[IpAddress]:
    """The node's addresses that parse as IPs."""
    return _parse_addresses(node.addresses)


def pod_ips(pod: Pod) -> list[IpAddress]:
    """The pod's IPs that parse as addresses."""
    return _parse_addresses(pod.pod_ips)


def _store_ips(ips: list[IpAddress], identity_id: int, ctx: IdentityContext) -> None:
    for ip in ips:
        ctx.bpf_maps.update(_host_network(ip), identity_id)
        logger.debug("Added IP/Identity %s/%s", ip, identity_id)


def reconcile_node(node: Node, ctx: IdentityContext) -> ReconcileAction:
    """Record the node's addresses under the local or remote node identity."""
    logger.info("Started reconciling Node %s", node.name)
    identity_id = LOCAL_NODE_ID if node.name == ctx.node_name else REMOTE_NODE_ID
    _store_ips(node_ips(node), identity_id, ctx)
    return ReconcileAction.requeue(DEFAULT_REQUEUE_SECONDS)


def reconcile_pod(pod: Pod, ctx: IdentityContext) -> ReconcileAction:
    """Record the pod's addresses under the identity matching its labels.

    Raises InvalidResource if the pod has no namespace and ResourceNotFound
    if its namespace or a matching identity is not in the stores.
    """
    if pod.namespace is None:
        raise InvalidResource()
    namespace = ctx.namespace_store.get(pod.namespace)
    if namespace is None:
        raise ResourceNotFound()

    logger.info("Started reconciling Pod %s/%s", namespace.name, pod.name)

    if pod.host_network is True:
        return ReconcileAction.await_change()

    identity: Identity | None = next(
        (
            candidate
            for candidate in ctx.identity_store.state()
            if candidate.namespace == namespace.name
            and candidate.pod_namespace_labels_match(pod, namespace)
        ),
        None,
    )
    if identity is None:
        raise ResourceNotFound()

    logger.info(
        "Matched Identity %s/%s for Pod %s/%s",
        namespace.name,
        identity.name,
        namespace.name,
        pod.name,
    )
    _store_ips(pod_ips(pod), identity.spec.id, ctx)
    return ReconcileAction.requeue(DEFAULT_REQUEUE_SECONDS)


def error_policy(resource, error: Exception) -> ReconcileAction:
    """Log a reconcile failure and requeue shortly."""
    logger.error(
        "reconcile error for %s/%s: %r",
        resource.namespace or "",
        resource.name,
        error,
    )
    return ReconcileAction.requeue(ERROR_REQUEUE_SECONDS)