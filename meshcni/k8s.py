"""Kubernetes object models, label selection and an in-memory reflector store."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar

_VOLATILE_POD_LABELS = (
    "controller-revision-hash",
    "pod-template-hash",
    "pod-template-generation",
)

_SELECTOR_OPERATORS = frozenset({"In", "NotIn", "Exists", "DoesNotExist"})


@dataclass
class ObjectMeta:
    name: str | None = None
    namespace: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    managed_fields: list[Any] | None = None


@dataclass
class _Resource:
    metadata: ObjectMeta = field(default_factory=ObjectMeta)

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
class Namespace(_Resource):
    kind: ClassVar[str] = "Namespace"


@dataclass
class Pod(_Resource):
    host_network: bool | None = None
    pod_ips: list[str] | None = None

    kind: ClassVar[str] = "Pod"


@dataclass
class Node(_Resource):
    addresses: list[str] | None = None

    kind: ClassVar[str] = "Node"


@dataclass
class ServicePort:
    port: int
    name: str | None = None
    protocol: str | None = None


@dataclass
class Service(_Resource):
    cluster_ips: list[str] | None = None
    ports: list[ServicePort] | None = None

    kind: ClassVar[str] = "Service"


@dataclass
class EndpointConditions:
    ready: bool | None = None
    serving: bool | None = None
    terminating: bool | None = None


@dataclass
class Endpoint:
    addresses: list[str] = field(default_factory=list)
    conditions: EndpointConditions | None = None


@dataclass
class EndpointPort:
    name: str | None = None
    port: int | None = None
    protocol: str | None = None


@dataclass
class EndpointSlice(_Resource):
    endpoints: list[Endpoint] = field(default_factory=list)
    ports: list[EndpointPort] | None = None

    kind: ClassVar[str] = "EndpointSlice"


@dataclass
class LabelSelectorRequirement:
    key: str
    operator: str
    values: list[str] | None = None

    def _validate(self) -> None:
        if self.operator not in _SELECTOR_OPERATORS:
            raise ValueError(f"invalid label selector operator: {self.operator!r}")

    def _matches(self, labels: dict[str, str]) -> bool:
        values = self.values or []
        present = self.key in labels
        if self.operator == "In":
            return present and labels[self.key] in values
        if self.operator == "NotIn":
            return not present or labels[self.key] not in values
        if self.operator == "Exists":
            return present
        return not present


@dataclass
class LabelSelector:
    match_labels: dict[str, str] | None = None
    match_expressions: list[LabelSelectorRequirement] | None = None

    def matches(self, labels: dict[str, str]) -> bool:
        """True if every label and expression holds; an empty selector matches all.

        Raises ValueError if an expression has an unknown operator.
        """
        expressions = self.match_expressions or []
        for requirement in expressions:
            requirement._validate()
        if any(labels.get(k) != v for k, v in (self.match_labels or {}).items()):
            return False
        return all(requirement._matches(labels) for requirement in expressions)


class Store:
    """A thread-safe cache of objects keyed by namespace and name."""

    def __init__(self, objects=()) -> None:
        self._lock = threading.Lock()
        self._objects: dict[tuple[str | None, str], Any] = {}
        for obj in objects:
            self.apply(obj)

    @staticmethod
    def _key(obj) -> tuple[str | None, str]:
        name = obj.metadata.name
        if not name:
            raise ValueError("object has no name")
        return obj.metadata.namespace, name

    def apply(self, obj) -> None:
        """Insert or replace an object."""
        key = self._key(obj)
        with self._lock:
            self._objects[key] = obj

    def delete(self, obj) -> None:
        """Remove an object if present."""
        key = self._key(obj)
        with self._lock:
            self._objects.pop(key, None)

    def get(self, name: str, namespace: str | None = None):
        """Return the object with this name and namespace, or None."""
        with self._lock:
            return self._objects.get((namespace, name))

    def state(self) -> list:
        """Return a snapshot of all objects."""
        with self._lock:
            return list(self._objects.values())


@dataclass(frozen=True)
class ReconcileAction:
    """What the controller does after a reconcile: requeue after a delay or wait."""

    requeue_after: float | None = None

    @classmethod
    def requeue(cls, seconds: float) -> ReconcileAction:
        return cls(requeue_after=seconds)

    @classmethod
    def await_change(cls) -> ReconcileAction:
        return cls(requeue_after=None)


def sanitize_pod_labels(labels: dict[str, str]) -> dict[str, str]:
    """Return the labels without those that change between pod revisions."""
    return {k: v for k, v in labels.items() if k not in _VOLATILE_POD_LABELS}