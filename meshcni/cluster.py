"""Cluster controller: tracks remote clusters and shuts down their child controllers."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from meshcni.crds import Cluster
from meshcni.k8s import ReconcileAction

logger = logging.getLogger(__name__)

CLUSTER_FINALIZER = "clusters.mesh-cni.dev/cleanup"
SHUTDOWN_REQUEUE_SECONDS = 5.0
DEFAULT_REQUEUE_SECONDS = 300.0
ERROR_REQUEUE_SECONDS = 5.0


class ClusterError(Exception):
    """Raised when the cluster controller fails."""


class ShutdownState(Enum):
    RUNNING = "running"
    COMPLETED = "completed"


class _SharedShutdown:
    def __init__(self) -> None:
        self.cancel = threading.Event()
        self.completed = threading.Event()


class ClusterCancellation:
    """The controller's side: asks child controllers to stop and sees when they have."""

    def __init__(self, shared: _SharedShutdown) -> None:
        self._shared = shared

    @property
    def cancel_token(self) -> threading.Event:
        return self._shared.cancel

    @property
    def shutdown_state(self) -> ShutdownState:
        if self._shared.completed.is_set():
            return ShutdownState.COMPLETED
        return ShutdownState.RUNNING

    def request_shutdown(self) -> None:
        """Signal the child controllers to stop."""
        self._shared.cancel.set()

    def is_shutdown_complete(self) -> bool:
        return self.shutdown_state is ShutdownState.COMPLETED


class ClusterCancellationHandle:
    """The child controllers' side: watches for cancellation and reports completion."""

    def __init__(self, shared: _SharedShutdown) -> None:
        self._shared = shared

    @property
    def cancel_token(self) -> threading.Event:
        return self._shared.cancel

    def mark_shutdown_complete(self) -> None:
        """Report that the child controllers have stopped."""
        self._shared.completed.set()


def new_cancellation() -> tuple[ClusterCancellation, ClusterCancellationHandle]:
    """Create a linked cancellation and handle pair."""
    shared = _SharedShutdown()
    return ClusterCancellation(shared), ClusterCancellationHandle(shared)


@dataclass
class ClusterContext:
    """Controller state: the child-controller cancellations keyed by cluster name.

    ``is_deleting`` tells whether a cluster is being deleted; without it no
    cluster is treated as being deleted.
    """

    controllers: dict[str, ClusterCancellation] = field(default_factory=dict)
    is_deleting: Optional[Callable[[Cluster], bool]] = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _reconcile_cluster(cluster: Cluster, ctx: ClusterContext) -> ReconcileAction:
    return ReconcileAction.requeue(DEFAULT_REQUEUE_SECONDS)


def reconcile(cluster: Cluster, ctx: ClusterContext) -> ReconcileAction:
    """Apply or clean up the cluster, then requeue after the default interval.

    Raises ClusterError if the cluster has no name.
    """
    if not cluster.metadata.name:
        raise ClusterError("object has no name")
    logger.info("Reconciling Cluster %s", cluster.name)
    deleting = ctx.is_deleting is not None and ctx.is_deleting(cluster)
    if deleting:
        cleanup(cluster, ctx)
    else:
        _reconcile_cluster(cluster, ctx)
    return ReconcileAction.requeue(DEFAULT_REQUEUE_SECONDS)


def cleanup(cluster: Cluster, ctx: ClusterContext) -> ReconcileAction:
    """Stop the cluster's child controllers; requeue until they have finished."""
    name = cluster.name
    with ctx.lock:
        cancellation = ctx.controllers.get(name)
        if cancellation is not None:
            cancellation.request_shutdown()
            if not cancellation.is_shutdown_complete():
                return ReconcileAction.requeue(SHUTDOWN_REQUEUE_SECONDS)
        ctx.controllers.pop(name, None)
    return ReconcileAction.await_change()


def error_policy(resource, error: Exception) -> ReconcileAction:
    """Log a reconcile failure and requeue shortly."""
    logger.error("reconcile error for Cluster %s: %r", resource.name, error)
    return ReconcileAction.requeue(ERROR_REQUEUE_SECONDS)