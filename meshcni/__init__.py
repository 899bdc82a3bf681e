"""Identity, policy, service-endpoint and CNI plugin logic for a Kubernetes network mesh."""

__version__ = "0.1.0"

__all__ = [
    "cluster",
    "cni_response",
    "cni_types",
    "common",
    "crds",
    "identity",
    "identity_gen",
    "k8s",
    "plugin",
    "policy",
    "selector",
    "tables",
]