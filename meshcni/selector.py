"""Matching of NetworkPolicies and their peers against identities."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from meshcni.crds import Identity
from meshcni.k8s import LabelSelector, ObjectMeta


class PolicyType(Enum):
    INGRESS = "Ingress"
    EGRESS = "Egress"

    @classmethod
    def parse(cls, value: str) -> PolicyType:
        """Parse "Ingress"/"ingress" or "Egress"/"egress"."""
        for policy_type in cls:
            if value in (policy_type.value, policy_type.value.lower()):
                return policy_type
        raise ValueError("Unknown policy type")


@dataclass
class IPBlock:
    cidr: str
    except_: list[str] | None = None


@dataclass
class NetworkPolicyPeer:
    pod_selector: LabelSelector | None = None
    namespace_selector: LabelSelector | None = None
    ip_block: IPBlock | None = None


@dataclass
class NetworkPolicyIngressRule:
    from_: list[NetworkPolicyPeer] | None = None
    ports: list[Any] | None = None


@dataclass
class NetworkPolicyEgressRule:
    to: list[NetworkPolicyPeer] | None = None
    ports: list[Any] | None = None


@dataclass
class NetworkPolicySpec:
    pod_selector: LabelSelector | None = None
    ingress: list[NetworkPolicyIngressRule] | None = None
    egress: list[NetworkPolicyEgressRule] | None = None
    policy_types: list[str] | None = None


@dataclass
class NetworkPolicy:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: NetworkPolicySpec | None = None

    kind: ClassVar[str] = "NetworkPolicy"

    @property
    def name(self) -> str:
        return self.metadata.name or ""

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels


def policy_selects_identity(policy: NetworkPolicy, identity: Identity) -> bool:
    """True if the policy lives in the identity's namespace and its pod selector matches."""
    if policy.namespace is None or identity.namespace is None:
        return False
    if policy.namespace != identity.namespace:
        return False
    if policy.spec is None or policy.spec.pod_selector is None:
        return False
    return label_selector_matches(policy.spec.pod_selector, identity.spec.pod_labels)


def _peers_select_identity(peers: list[NetworkPolicyPeer] | None, identity: Identity) -> bool:
    if not peers:
        return True
    return any(peer_selects_identity(peer, identity) for peer in peers)


def peer_selects_identity(peer: NetworkPolicyPeer, identity: Identity) -> bool:
    """True if the peer's pod and namespace selectors both accept the identity."""
    if peer.pod_selector is None and peer.namespace_selector is None:
        return False
    if peer.namespace_selector is not None and not label_selector_matches(
        peer.namespace_selector, identity.spec.namespace_labels
    ):
        return False
    if peer.pod_selector is not None and not label_selector_matches(
        peer.pod_selector, identity.spec.pod_labels
    ):
        return False
    return True


def label_selector_matches(selector: LabelSelector, labels: dict[str, str]) -> bool:
    """Match labels against a selector; an invalid selector matches nothing."""
    try:
        return selector.matches(labels)
    except ValueError:
        return False


def ingress_rules_select_identity(
    identity: Identity, policy: NetworkPolicy
) -> list[NetworkPolicyIngressRule]:
    """Ingress rules of the policy whose peers select the identity."""
    spec = policy.spec
    if spec is None or not policy_affects_type(spec, PolicyType.INGRESS):
        return []
    return [rule for rule in spec.ingress or [] if _peers_select_identity(rule.from_, identity)]


def egress_rules_select_identity(
    identity: Identity, policy: NetworkPolicy
) -> list[NetworkPolicyEgressRule]:
    """Egress rules of the policy whose peers select the identity."""
    spec = policy.spec
    if spec is None or not policy_affects_type(spec, PolicyType.EGRESS):
        return []
    return [rule for rule in spec.egress or [] if _peers_select_identity(rule.to, identity)]


def policy_affects_type(spec: NetworkPolicySpec, policy_type: PolicyType) -> bool:
    """Whether the spec applies to ingress or egress, with the Kubernetes defaults."""
    if spec.policy_types is None:
        if policy_type is PolicyType.INGRESS:
            return spec.ingress is not None or spec.egress is None
        return spec.egress is not None

    def _parsed(value: str) -> PolicyType | None:
        try:
            return PolicyType.parse(value)
        except ValueError:
            return None

    return any(_parsed(value) is policy_type for value in spec.policy_types)