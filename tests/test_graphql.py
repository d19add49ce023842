from validation_api.graphql import (
    QueryRoot,
    ScanJobView,
    TenantView,
    ValidationView,
    sdl,
)
from validation_api.projection import EventType, ResourceKind, ValidationProjection


def validation(name, severity=None, verdict="Passed", phase="Gating", ns="ns"):
    status = {"phase": phase, "scanJobs": [{"findingsCount": 2}, {"findingsCount": 5}]}
    if severity is not None:
        status["gateDecision"] = {"severity": severity, "verdict": verdict}
    return {
        "metadata": {"namespace": ns, "name": name},
        "spec": {"service": "auth", "imageDigest": "sha256:abc", "promessaRef": "p1"},
        "status": status,
    }


def projection_with(*objs):
    p = ValidationProjection()
    for o in objs:
        p.apply(ResourceKind.VALIDATION, EventType.APPLY, o)
    return p


def test_validation_view_fields():
    v = ValidationView.from_resource(validation("a", severity="Functional", verdict="Failed"))
    assert v.name == "a"
    assert v.namespace == "ns"
    assert v.service == "auth"
    assert v.image_digest == "sha256:abc"
    assert v.promessa_ref == "p1"
    assert v.phase == "Gating"
    assert v.severity == "Functional"
    assert v.verdict == "Failed"
    assert v.findings_count == 2 + 5


def test_validation_view_without_status():
    v = ValidationView.from_resource({"metadata": {"name": "x"}, "spec": {}})
    assert v.phase == "Unknown"
    assert v.severity is None and v.verdict is None
    assert v.findings_count == 0
    assert v.namespace == ""


def test_tenant_view():
    t = TenantView.from_resource(
        {
            "metadata": {"namespace": "ns", "name": "t"},
            "status": {"phase": "Ready", "ingressUrl": "https://t.example.com", "podsReady": 3, "podsTotal": 4},
        }
    )
    assert (t.phase, t.ingress_url, t.pods_ready, t.pods_total) == ("Ready", "https://t.example.com", 3, 4)
    empty = TenantView.from_resource({"metadata": {"name": "t"}})
    assert (empty.phase, empty.ingress_url, empty.pods_ready) == ("Unknown", None, 0)


def test_scan_job_view():
    j = ScanJobView.from_resource(
        {
            "metadata": {"namespace": "ns", "name": "j"},
            "spec": {"scanner": "Trivy", "scannerClass": "Cve", "parentValidation": "a"},
            "status": {"phase": "Attested", "findingsCount": 9},
        }
    )
    assert (j.scanner, j.scanner_class, j.parent, j.phase, j.findings_count) == (
        "Trivy", "Cve", "a", "Attested", 9,
    )


def test_query_lists_and_lookup():
    p = projection_with(validation("a"), validation("b"))
    q = QueryRoot(p)
    assert [v.name for v in q.validations()] == ["a", "b"]
    assert q.validation("ns", "b").name == "b"
    assert q.validation("ns", "missing") is None
    assert q.ephemeral_tenants() == []
    assert q.scan_jobs() == []


def test_compliance_state_cosmetic_by_default():
    assert QueryRoot(projection_with(validation("a"))).compliance_state() == "Cosmetic"


def test_compliance_state_functional():
    p = projection_with(validation("a", severity="Cosmetic"), validation("b", severity="Functional"))
    assert QueryRoot(p).compliance_state() == "Functional"


def test_compliance_state_critical_wins():
    p = projection_with(validation("a", severity="Functional"), validation("b", severity="Critical"))
    assert QueryRoot(p).compliance_state() == "Critical"


def test_sdl_lists_every_type_and_query():
    text = sdl()
    for name in ("QueryRoot", "ValidationView", "TenantView", "ScanJobView"):
        assert f"type {name} {{" in text
    assert "imageDigest" in text
    assert "ephemeralTenants" in text
    assert "complianceState" in text