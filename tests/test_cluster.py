import pytest

from meshcni.cluster import (
    ClusterContext,
    ClusterError,
    ShutdownState,
    cleanup,
    error_policy,
    new_cancellation,
    reconcile,
)
from meshcni.crds import Cluster, ClusterSpec
from meshcni.k8s import ObjectMeta, ReconcileAction


def make_cluster(name="remote-a"):
    return Cluster(spec=ClusterSpec(id=1, config_map_name="kubeconfig"), metadata=ObjectMeta(name=name))


def test_cancellation_pair_is_linked():
    cancellation, handle = new_cancellation()
    assert cancellation.shutdown_state is ShutdownState.RUNNING
    assert not cancellation.is_shutdown_complete()
    assert not handle.cancel_token.is_set()

    cancellation.request_shutdown()
    assert handle.cancel_token.is_set()
    assert not cancellation.is_shutdown_complete()

    handle.mark_shutdown_complete()
    assert cancellation.is_shutdown_complete()
    assert cancellation.shutdown_state is ShutdownState.COMPLETED


def test_cleanup_without_controller_awaits_change():
    ctx = ClusterContext()
    assert cleanup(make_cluster(), ctx) == ReconcileAction.await_change()


def test_cleanup_waits_for_shutdown_then_removes():
    cancellation, handle = new_cancellation()
    ctx = ClusterContext(controllers={"remote-a": cancellation})

    first = cleanup(make_cluster(), ctx)
    assert first.requeue_after == 5
    assert handle.cancel_token.is_set()
    assert "remote-a" in ctx.controllers

    handle.mark_shutdown_complete()
    second = cleanup(make_cluster(), ctx)
    assert second == ReconcileAction.await_change()
    assert ctx.controllers == {}


def test_reconcile_requeues_default():
    cancellation, _ = new_cancellation()
    ctx = ClusterContext(controllers={"remote-a": cancellation})
    action = reconcile(make_cluster(), ctx)
    assert action.requeue_after == 300
    assert not cancellation.cancel_token.is_set()


def test_reconcile_deleting_cluster_runs_cleanup():
    cancellation, handle = new_cancellation()
    handle.mark_shutdown_complete()
    ctx = ClusterContext(controllers={"remote-a": cancellation}, is_deleting=lambda c: True)
    action = reconcile(make_cluster(), ctx)
    assert action.requeue_after == 300
    assert handle.cancel_token.is_set()
    assert ctx.controllers == {}


def test_reconcile_unnamed_cluster_fails():
    with pytest.raises(ClusterError, match="no name"):
        reconcile(make_cluster(name=None), ClusterContext())


def test_error_policy_requeues():
    assert error_policy(make_cluster(), ClusterError("x")).requeue_after == 5