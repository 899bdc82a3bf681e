"""Policy controller: reconciles identities against NetworkPolicies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from meshcni.common import PolicyKey, PolicyValue
from meshcni.crds import Identity
from meshcni.k8s import ReconcileAction, Store
from meshcni.selector import policy_selects_identity

logger = logging.getLogger(__name__)

DEFAULT_REQUEUE_SECONDS = 300.0
ERROR_REQUEUE_SECONDS = 5.0


class PolicyError(Exception):
    """Raised when the policy controller fails."""


class PolicyBpfState(ABC):
    """Writable view of the policy map."""

    @abstractmethod
    def update(self, key: PolicyKey, value: PolicyValue) -> None:
        """Insert or replace a policy entry."""

    @abstractmethod
    def delete(self, key: PolicyKey) -> None:
        """Remove a policy entry."""


@dataclass
class PolicyContext:
    pod_store: Store
    policy_store: Store
    namespace_store: Store
    identity_store: Store
    policy_bpf_state: PolicyBpfState


def reconcile_identity(identity: Identity, ctx: PolicyContext) -> ReconcileAction:
    """Find the policies that select the identity and requeue."""
    logger.info(
        "Started reconciling %s %s/%s",
        Identity.kind,
        identity.namespace or "",
        identity.name,
    )
    selected = [
        policy
        for policy in ctx.policy_store.state()
        if policy_selects_identity(policy, identity)
    ]
    logger.debug("Identity %s selected by %d policies", identity.name, len(selected))
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