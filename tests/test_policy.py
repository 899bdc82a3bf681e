import pytest

from meshcni.common import PolicyKey, PolicyValue
from meshcni.crds import Identity, IdentitySpec
from meshcni.k8s import LabelSelector, ObjectMeta, Store
from meshcni.policy import (
    PolicyBpfState,
    PolicyContext,
    PolicyError,
    error_policy,
    reconcile_identity,
)
from meshcni.selector import NetworkPolicy, NetworkPolicySpec


class RecordingBpf(PolicyBpfState):
    def __init__(self):
        self.calls = []

    def update(self, key, value):
        self.calls.append(("update", key, value))

    def delete(self, key):
        self.calls.append(("delete", key))


def make_identity():
    return Identity(
        spec=IdentitySpec(namespace_labels={}, pod_labels={"app": "demo"}, id=7),
        metadata=ObjectMeta(name="ident-a", namespace="ns-a"),
    )


def make_context(policies=()):
    return PolicyContext(
        pod_store=Store(),
        policy_store=Store(policies),
        namespace_store=Store(),
        identity_store=Store(),
        policy_bpf_state=RecordingBpf(),
    )


def test_reconcile_identity_requeues_default():
    policy = NetworkPolicy(
        metadata=ObjectMeta(name="p", namespace="ns-a"),
        spec=NetworkPolicySpec(pod_selector=LabelSelector(match_labels={"app": "demo"})),
    )
    ctx = make_context([policy])
    action = reconcile_identity(make_identity(), ctx)
    assert action.requeue_after == 300


def test_reconcile_identity_does_not_touch_map():
    ctx = make_context()
    reconcile_identity(make_identity(), ctx)
    assert ctx.policy_bpf_state.calls == []


def test_error_policy_requeues_quickly():
    action = error_policy(make_identity(), PolicyError("bpf error: boom"))
    assert action.requeue_after == 5


def test_bpf_state_is_abstract():
    with pytest.raises(TypeError):
        PolicyBpfState()


def test_bpf_state_subclass_receives_entries():
    bpf = RecordingBpf()
    key = PolicyKey(src_id=1, dst_id=2)
    bpf.update(key, PolicyValue(action=0))
    bpf.delete(key)
    assert bpf.calls == [("update", key, PolicyValue(action=0)), ("delete", key)]


def test_policy_error_message():
    error = PolicyError("timed out: store initialization")
    assert str(error) == "timed out: store initialization"
    assert error.args == ("timed out: store initialization",)