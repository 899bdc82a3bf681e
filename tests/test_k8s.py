import pytest

from meshcni.k8s import (
    LabelSelector,
    LabelSelectorRequirement,
    Namespace,
    ObjectMeta,
    Pod,
    ReconcileAction,
    Store,
    sanitize_pod_labels,
)

LABELS = {"app": "demo", "tier": "backend"}


def test_sanitize_removes_volatile_labels():
    labels = {
        "app": "demo",
        "controller-revision-hash": "remove",
        "pod-template-hash": "abc",
        "pod-template-generation": "2",
    }
    assert sanitize_pod_labels(labels) == {"app": "demo"}
    assert "pod-template-hash" in labels


def test_sanitize_keeps_clean_labels():
    assert sanitize_pod_labels(LABELS) == LABELS


def test_empty_selector_matches_everything():
    assert LabelSelector().matches(LABELS)
    assert LabelSelector().matches({})


def test_match_labels():
    assert LabelSelector(match_labels={"app": "demo"}).matches(LABELS)
    assert not LabelSelector(match_labels={"app": "api"}).matches(LABELS)
    assert not LabelSelector(match_labels={"zone": "a"}).matches(LABELS)


@pytest.mark.parametrize(
    "requirement, expected",
    [
        (LabelSelectorRequirement("tier", "In", ["backend", "worker"]), True),
        (LabelSelectorRequirement("tier", "In", ["frontend"]), False),
        (LabelSelectorRequirement("missing", "In", ["x"]), False),
        (LabelSelectorRequirement("tier", "NotIn", ["backend"]), False),
        (LabelSelectorRequirement("missing", "NotIn", ["x"]), True),
        (LabelSelectorRequirement("app", "Exists"), True),
        (LabelSelectorRequirement("missing", "Exists"), False),
        (LabelSelectorRequirement("app", "DoesNotExist"), False),
        (LabelSelectorRequirement("missing", "DoesNotExist"), True),
    ],
)
def test_match_expressions(requirement, expected):
    assert LabelSelector(match_expressions=[requirement]).matches(LABELS) is expected


def test_labels_and_expressions_must_all_hold():
    selector = LabelSelector(
        match_labels={"app": "demo"},
        match_expressions=[LabelSelectorRequirement("tier", "In", ["frontend"])],
    )
    assert not selector.matches(LABELS)


def test_invalid_operator_raises():
    selector = LabelSelector(
        match_labels={"app": "other"},
        match_expressions=[LabelSelectorRequirement("app", "Gt", ["1"])],
    )
    with pytest.raises(ValueError):
        selector.matches(LABELS)


def _pod(name, namespace, **labels):
    return Pod(metadata=ObjectMeta(name=name, namespace=namespace, labels=labels))


def test_store_apply_get_and_state():
    store = Store()
    pod = _pod("pod-a", "ns-a", app="demo")
    store.apply(pod)
    assert store.get("pod-a", "ns-a") is pod
    assert store.get("pod-a", "ns-b") is None
    assert store.state() == [pod]


def test_store_replaces_and_deletes():
    store = Store([_pod("pod-a", "ns-a", app="v1")])
    store.apply(_pod("pod-a", "ns-a", app="v2"))
    assert len(store.state()) == 1
    assert store.get("pod-a", "ns-a").labels == {"app": "v2"}
    store.delete(_pod("pod-a", "ns-a"))
    assert store.state() == []


def test_store_cluster_scoped_objects():
    store = Store([Namespace(metadata=ObjectMeta(name="ns-a"))])
    assert store.get("ns-a").name == "ns-a"


def test_store_rejects_unnamed_object():
    with pytest.raises(ValueError):
        Store().apply(Pod())


def test_resource_accessors():
    pod = _pod("pod-a", "ns-a", app="demo")
    assert (pod.name, pod.namespace, pod.labels) == ("pod-a", "ns-a", {"app": "demo"})
    assert Pod().name == ""


def test_reconcile_action():
    assert ReconcileAction.requeue(300).requeue_after == 300
    assert ReconcileAction.await_change().requeue_after is None
    assert ReconcileAction.requeue(5) == ReconcileAction(requeue_after=5)