"""Identity generation controller: derives Identity resources from pod and namespace labels."""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from meshcni.crds import Identity, IdentitySpec
from meshcni.k8s import Namespace, ObjectMeta, Pod, ReconcileAction, Store, sanitize_pod_labels

logger = logging.getLogger(__name__)

MANAGER = "identity-gen-controller"
DEFAULT_REQUEUE_SECONDS = 300.0
ERROR_REQUEUE_SECONDS = 1.0


class IdentityGenError(Exception):
    """Raised when identity generation fails."""


class IdentityClient(ABC):
    """Writes Identity resources to the cluster."""

    @abstractmethod
    def apply(self, namespace: str, identity: Identity) -> None:
        """Server-side apply the identity in the namespace."""

    @abstractmethod
    def delete(self, namespace: str, name: str) -> None:
        """Delete the named identity from the namespace."""


@dataclass
class IdentityGenContext:
    client: IdentityClient
    pods: Store
    identities: Store


def identity_name(spec: IdentitySpec) -> str:
    """Hex SHA-256 of the spec's compact JSON form."""
    payload = json.dumps(spec.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def get_or_generate_identity(
    ctx: IdentityGenContext, namespace: Namespace, pod: Pod
) -> Identity:
    """Return the stored identity for the pod's labels, or a new one with an unused ID."""
    spec = IdentitySpec(
        namespace_labels=dict(namespace.labels),
        pod_labels=sanitize_pod_labels(pod.labels),
        id=0,
    )
    name = identity_name(spec)

    existing = ctx.identities.get(name, namespace.name)
    if existing is not None:
        identity = copy.deepcopy(existing)
        # Server-side apply rejects payloads that carry managedFields.
        identity.metadata.managed_fields = None
        return identity

    used_ids = {identity.spec.id for identity in ctx.identities.state()}
    while True:
        candidate = random.getrandbits(32)
        if candidate not in used_ids:
            break
    spec.id = candidate
    return Identity(spec=spec, metadata=ObjectMeta(name=name))


def reconcile_namespace(namespace: Namespace, ctx: IdentityGenContext) -> ReconcileAction:
    """Apply an identity for every pod in the namespace and delete stale ones."""
    name = namespace.name
    logger.info("reconcile namespace %s", name)

    desired_names: set[str] = set()
    desired: list[Identity] = []
    for pod in ctx.pods.state():
        if pod.namespace != name:
            continue
        identity = get_or_generate_identity(ctx, namespace, pod)
        if identity.metadata.name is not None:
            desired_names.add(identity.metadata.name)
            desired.append(identity)

    for identity in desired:
        if identity.metadata.name is None:
            raise IdentityGenError("invalid resource reconciled")
        ctx.client.apply(name, identity)

    for identity in ctx.identities.state():
        if identity.namespace != name:
            continue
        stale_name = identity.metadata.name
        if stale_name is None or stale_name in desired_names:
            continue
        ctx.client.delete(name, stale_name)

    return ReconcileAction.requeue(DEFAULT_REQUEUE_SECONDS)


def error_policy(resource, error: Exception) -> ReconcileAction:
    """Log a reconcile failure and requeue after a second."""
    logger.error(
        "reconcile error for %s/%s: %r",
        resource.namespace or "",
        resource.name,
        error,
    )
    return ReconcileAction.requeue(ERROR_REQUEUE_SECONDS)