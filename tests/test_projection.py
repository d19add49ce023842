import pytest

from validation_api.projection import (
    EventType,
    ResourceKind,
    Snapshot,
    ValidationProjection,
    key,
    key_of,
    phase_of,
)


def res(ns, name, **extra):
    obj = {"metadata": {"namespace": ns, "name": name}}
    obj.update(extra)
    return obj


def test_key_joins_namespace_and_name():
    assert key("ns", "a") == "ns/a"


def test_key_of_uses_metadata():
    assert key_of(res("ns", "a")) == key("ns", "a")


def test_key_of_cluster_scoped_has_empty_namespace():
    assert key_of({"metadata": {"name": "a"}}) == key("", "a")


def test_key_of_nameless_is_none():
    assert key_of({"metadata": {"namespace": "ns"}}) is None
    assert key_of({}) is None


def test_phase_of():
    assert phase_of(res("ns", "a", status={"phase": "Passed"})) == "Passed"
    assert phase_of(res("ns", "a")) is None


def test_apply_and_get():
    p = ValidationProjection()
    obj = res("ns", "a", spec={"service": "auth"})
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, obj)
    assert p.get_validation("ns", "a") == obj
    assert p.get_tenant("ns", "a") is None
    assert p.get_scan_job("ns", "a") is None


def test_apply_accepts_string_values():
    p = ValidationProjection()
    obj = res("ns", "t")
    p.apply("AkeylessEphemeralTenant", "InitApply", obj)
    assert p.get_tenant("ns", "t") == obj


def test_delete_removes():
    p = ValidationProjection()
    obj = res("ns", "j")
    p.apply(ResourceKind.SCAN_JOB, EventType.APPLY, obj)
    p.apply(ResourceKind.SCAN_JOB, EventType.DELETE, obj)
    assert p.get_scan_job("ns", "j") is None


def test_init_clears_only_its_kind():
    p = ValidationProjection()
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, res("ns", "a"))
    p.apply(ResourceKind.TENANT, EventType.APPLY, res("ns", "b"))
    p.apply(ResourceKind.VALIDATION, EventType.INIT)
    snap = p.snapshot()
    assert snap.validations == []
    assert len(snap.tenants) == 1


def test_init_done_is_noop():
    p = ValidationProjection()
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, res("ns", "a"))
    p.apply(ResourceKind.VALIDATION, EventType.INIT_DONE)
    assert len(p.snapshot().validations) == 1


def test_nameless_object_ignored():
    p = ValidationProjection()
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, {"metadata": {}})
    assert p.snapshot() == Snapshot()


def test_apply_without_object_raises():
    p = ValidationProjection()
    with pytest.raises(ValueError):
        p.apply(ResourceKind.VALIDATION, EventType.APPLY)


def test_snapshot_ordered_by_key():
    p = ValidationProjection()
    for ns, name in [("z", "a"), ("a", "z"), ("a", "b")]:
        p.apply(ResourceKind.VALIDATION, EventType.APPLY, res(ns, name))
    keys = [key_of(v) for v in p.snapshot().validations]
    assert keys == sorted(keys)
    assert len(keys) == 3


def test_snapshot_is_a_copy():
    p = ValidationProjection()
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, res("ns", "a", spec={"service": "auth"}))
    snap = p.snapshot()
    snap.validations[0]["spec"]["service"] = "changed"
    assert p.get_validation("ns", "a")["spec"]["service"] == "auth"


def test_stored_object_independent_of_input():
    p = ValidationProjection()
    obj = res("ns", "a", spec={"service": "auth"})
    p.apply(ResourceKind.VALIDATION, EventType.APPLY, obj)
    obj["spec"]["service"] = "other"
    assert p.get_validation("ns", "a")["spec"]["service"] == "auth"