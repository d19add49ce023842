"""REST projections of the validation resources, plus the OpenAPI document.

Each function reads the projection and returns JSON-ready data. Lookups
of a single resource raise :class:`NotFound` when it is absent.
"""

from __future__ import annotations

import json
from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from validation_api.projection import ValidationProjection, phase_of

Resource = dict[str, Any]

UNKNOWN_PHASE = "Unknown"
BLOCKING_VERDICTS = frozenset({"Failed", "Quarantined"})
SUMMARY_WINDOW = "30d"
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4"
RESCAN_NOTE = "Rescan request recorded. Controller wire-up lands in P3."


class NotFound(LookupError):
    """Raised when a requested resource is not in the projection."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class ListValidationsQuery:
    """Filters for listing validations; ``since`` is accepted but not enforced."""

    phase: Optional[str] = None
    service: Optional[str] = None
    promessa: Optional[str] = None
    since: Optional[str] = None


@dataclass(frozen=True)
class ListScanJobsQuery:
    """Filters for listing scan jobs (``scanner_class`` is ``scanner-class`` on the wire)."""

    scanner: Optional[str] = None
    scanner_class: Optional[str] = None
    phase: Optional[str] = None


def _status(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("status") or {}


def _spec(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("spec") or {}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _phase_matches(obj: Mapping[str, Any], wanted: str) -> bool:
    current = phase_of(obj)
    return current is not None and current.lower() == wanted.lower()


def _require_validation(projection: ValidationProjection, ns: str, name: str) -> Resource:
    found = projection.get_validation(ns, name)
    if found is None:
        raise NotFound("validation not found")
    return found


# ── Validations ─────────────────────────────────────────────────────


def list_validations(
    projection: ValidationProjection, query: Optional[ListValidationsQuery] = None
) -> list[Resource]:
    """Validations matching the query filters, in key order."""
    q = query or ListValidationsQuery()
    items = projection.snapshot().validations
    if q.phase is not None:
        items = [v for v in items if _phase_matches(v, q.phase)]
    if q.service is not None:
        items = [v for v in items if _spec(v).get("service") == q.service]
    if q.promessa is not None:
        items = [v for v in items if _spec(v).get("promessaRef") == q.promessa]
    return items


def get_validation(projection: ValidationProjection, ns: str, name: str) -> Resource:
    return _require_validation(projection, ns, name)


def get_findings(projection: ValidationProjection, ns: str, name: str) -> list[Any]:
    """Findings of every scan job whose parent is the named validation."""
    validation = _require_validation(projection, ns, name)
    parent = (validation.get("metadata") or {}).get("name") or ""
    return [
        finding
        for job in projection.snapshot().scan_jobs
        if (_spec(job).get("parentValidation") or "") == parent
        for finding in _status(job).get("findings") or []
    ]


def get_evidence(projection: ValidationProjection, ns: str, name: str) -> Any:
    """The evidence-bundle hash, or ``None`` before aggregation."""
    return _status(_require_validation(projection, ns, name)).get("evidenceBundleHash")


def get_gate(projection: ValidationProjection, ns: str, name: str) -> Any:
    """The gate decision, or ``None`` before gating."""
    return _status(_require_validation(projection, ns, name)).get("gateDecision")


def get_outcome_chain(projection: ValidationProjection, ns: str, name: str) -> Any:
    """The outcome receipt reference, or ``None`` when absent."""
    return _status(_require_validation(projection, ns, name)).get("outcomeReceiptRef")


def rescan_ack(ns: str, name: str) -> dict[str, Any]:
    """Acknowledgement body for a rescan request."""
    return {
        "acknowledged": True,
        "namespace": ns,
        "name": name,
        "note": RESCAN_NOTE,
        "ts": _now(),
    }


# ── Tenants ─────────────────────────────────────────────────────────


def list_tenants(projection: ValidationProjection) -> list[Resource]:
    return projection.snapshot().tenants


def get_tenant(projection: ValidationProjection, ns: str, name: str) -> Resource:
    found = projection.get_tenant(ns, name)
    if found is None:
        raise NotFound("tenant not found")
    return found


# ── Scan jobs ───────────────────────────────────────────────────────


def list_scan_jobs(
    projection: ValidationProjection, query: Optional[ListScanJobsQuery] = None
) -> list[Resource]:
    """Scan jobs matching the query filters; comparisons ignore case."""
    q = query or ListScanJobsQuery()
    items = projection.snapshot().scan_jobs
    if q.scanner is not None:
        wanted = q.scanner.lower()
        items = [j for j in items if str(_spec(j).get("scanner") or "").lower() == wanted]
    if q.scanner_class is not None:
        wanted = q.scanner_class.lower()
        items = [j for j in items if str(_spec(j).get("scannerClass") or "").lower() == wanted]
    if q.phase is not None:
        items = [j for j in items if _phase_matches(j, q.phase)]
    return items


def get_scan_job(projection: ValidationProjection, ns: str, name: str) -> Resource:
    found = projection.get_scan_job(ns, name)
    if found is None:
        raise NotFound("scan job not found")
    return found


# ── Compliance ──────────────────────────────────────────────────────


def compliance_summary(projection: ValidationProjection) -> dict[str, Any]:
    """Aggregate compliance state across every observed validation."""
    validations = projection.snapshot().validations
    by_phase: Counter[str] = Counter()
    by_verdict: Counter[str] = Counter()
    blocking: list[str] = []
    state = "Cosmetic"
    for v in validations:
        by_phase[phase_of(v) or UNKNOWN_PHASE] += 1
        gd = _status(v).get("gateDecision")
        if gd is None:
            continue
        verdict = str(gd.get("verdict"))
        by_verdict[verdict] += 1
        if verdict in BLOCKING_VERDICTS:
            blocking.append(_spec(v).get("imageDigest") or "")
            state = "Critical"
        elif state == "Cosmetic" and gd.get("severity") == "Functional":
            state = "Functional"
    return {
        "promessa": (_spec(validations[0]).get("promessaRef") or "") if validations else "",
        "window": SUMMARY_WINDOW,
        "as_of": _now(),
        "total_digests_observed": len(validations),
        "by_phase": dict(sorted(by_phase.items())),
        "by_verdict": dict(sorted(by_verdict.items())),
        "compliance_state": state,
        "blocking": blocking,
    }


def compliance_by_service(projection: ValidationProjection) -> dict[str, dict[str, int]]:
    """Phase counts grouped by service name."""
    grouped: defaultdict[str, Counter[str]] = defaultdict(Counter)
    for v in projection.snapshot().validations:
        grouped[_spec(v).get("service") or ""][phase_of(v) or UNKNOWN_PHASE] += 1
    return {svc: dict(sorted(counts.items())) for svc, counts in sorted(grouped.items())}


# ── Observability ───────────────────────────────────────────────────


def metrics_text() -> str:
    """Prometheus text-format scrape body."""
    return (
        "# HELP validation_api_up 1 if the API is running\n"
        "# TYPE validation_api_up gauge\n"
        "validation_api_up 1\n"
    )


# ── OpenAPI ─────────────────────────────────────────────────────────

_NULLABLE_STRING = {"type": ["string", "null"]}
_ANY_JSON: dict[str, Any] = {}


def _json_response(description: str, schema: Mapping[str, Any]) -> dict[str, Any]:
    return {"description": description, "content": {"application/json": {"schema": dict(schema)}}}


def _array_of(schema: Mapping[str, Any]) -> dict[str, Any]:
    return {"type": "array", "items": dict(schema)}


def _ref(name: str) -> dict[str, Any]:
    return {"$ref": f"#/components/schemas/{name}"}


def _path_param(name: str, description: Optional[str] = None) -> dict[str, Any]:
    param: dict[str, Any] = {
        "name": name,
        "in": "path",
        "required": True,
        "schema": {"type": "string"},
    }
    if description:
        param["description"] = description
    return param


def _query_param(name: str, description: str) -> dict[str, Any]:
    return {
        "name": name,
        "in": "query",
        "required": False,
        "description": description,
        "schema": dict(_NULLABLE_STRING),
    }


def _op(tag: str, operation_id: str, responses: dict[str, Any], parameters=()) -> dict[str, Any]:
    op: dict[str, Any] = {"tags": [tag], "operationId": operation_id, "responses": responses}
    if parameters:
        op["parameters"] = list(parameters)
    return op


_NS_NAME = (
    _path_param("ns", "Namespace"),
    _path_param("name", "AkeylessImageValidation CR name"),
)
_NS_NAME_BARE = (_path_param("ns"), _path_param("name"))
_NOT_FOUND = {"description": "Not found"}

_VALIDATION_QUERY = {
    "phase": "Filter by `.status.phase` — Pending / Scanning / Passed / etc.",
    "service": "Filter by `.spec.service` — auth / uam / kfm / gator / …",
    "promessa": "Filter by `.spec.promessa_ref` — pin to a single promessa.",
    "since": "RFC 3339 timestamp lower bound. Reserved (not yet enforced).",
}
_SCAN_JOB_QUERY = {
    "scanner": "Filter by `.spec.scanner` — Trivy / Grype / Syft / … (PascalCase).",
    "scanner-class": "Filter by `.spec.scannerClass` — Cve / Sast / Dast / Hardening.",
    "phase": "Filter by `.status.phase` — Pending / Running / Attested / etc.",
}


def _paths() -> dict[str, Any]:
    return {
        "/v1/validations": {
            "get": _op(
                "validations",
                "list_validations",
                {"200": _json_response(
                    "AkeylessImageValidation CRs matching the query (JSON arrays of the CR shape).",
                    _array_of(_ANY_JSON),
                )},
                [_query_param(n, d) for n, d in _VALIDATION_QUERY.items()],
            )
        },
        "/v1/validations/{ns}/{name}": {
            "get": _op(
                "validations",
                "get_validation",
                {
                    "200": _json_response("The AkeylessImageValidation CR as JSON", _ANY_JSON),
                    "404": _NOT_FOUND,
                },
                _NS_NAME,
            )
        },
        "/v1/validations/{ns}/{name}/findings": {
            "get": _op(
                "validations",
                "get_findings",
                {
                    "200": _json_response(
                        "Typed ScanFinding rows aggregated across child ScanJob CRs",
                        _array_of(_ANY_JSON),
                    ),
                    "404": {"description": "Validation not found"},
                },
                _NS_NAME,
            )
        },
        "/v1/validations/{ns}/{name}/evidence": {
            "get": _op(
                "validations",
                "get_evidence",
                {
                    "200": _json_response(
                        "BLAKE3 evidence-bundle hash (string) or null if not aggregated yet",
                        _ANY_JSON,
                    ),
                    "404": _NOT_FOUND,
                },
                _NS_NAME_BARE,
            )
        },
        "/v1/validations/{ns}/{name}/gate": {
            "get": _op(
                "validations",
                "get_gate",
                {
                    "200": _json_response(
                        "The typed GateDecision from the SecurityController, or null if "
                        "Gating phase has not been reached",
                        _ANY_JSON,
                    ),
                    "404": _NOT_FOUND,
                },
                _NS_NAME_BARE,
            )
        },
        "/v1/validations/{ns}/{name}/outcome-chain": {
            "get": _op(
                "validations",
                "get_outcome_chain",
                {
                    "200": _json_response(
                        "Typed OutcomeReceiptRef pointing at the signed outcome chain entry "
                        "(BLAKE3 hash, Ed25519 signature, object-store path)",
                        _ANY_JSON,
                    ),
                    "404": _NOT_FOUND,
                },
                _NS_NAME_BARE,
            )
        },
        "/v1/validations/{ns}/{name}/rescan": {
            "post": _op(
                "validations",
                "rescan",
                {"200": _json_response(
                    "Rescan request acknowledged. The controller observes the request and "
                    "re-reconciles on the next tick.",
                    _ref("RescanAck"),
                )},
                _NS_NAME_BARE,
            )
        },
        "/v1/ephemeral-tenants": {
            "get": _op(
                "ephemeral-tenants",
                "list_tenants",
                {"200": _json_response(
                    "Every AkeylessEphemeralTenant CR the informer has observed",
                    _array_of(_ANY_JSON),
                )},
            )
        },
        "/v1/ephemeral-tenants/{ns}/{name}": {
            "get": _op(
                "ephemeral-tenants",
                "get_tenant",
                {
                    "200": _json_response("The AkeylessEphemeralTenant CR as JSON", _ANY_JSON),
                    "404": _NOT_FOUND,
                },
                _NS_NAME_BARE,
            )
        },
        "/v1/scan-jobs": {
            "get": _op(
                "scan-jobs",
                "list_scan_jobs",
                {"200": _json_response("ScanJob CRs matching the query", _array_of(_ANY_JSON))},
                [_query_param(n, d) for n, d in _SCAN_JOB_QUERY.items()],
            )
        },
        "/v1/scan-jobs/{ns}/{name}": {
            "get": _op(
                "scan-jobs",
                "get_scan_job",
                {
                    "200": _json_response("The ScanJob CR as JSON", _ANY_JSON),
                    "404": _NOT_FOUND,
                },
                _NS_NAME_BARE,
            )
        },
        "/v1/compliance-summary": {
            "get": _op(
                "compliance",
                "compliance_summary",
                {"200": _json_response(
                    "Aggregate compliance state across every observed validation run",
                    _ref("ComplianceSummary"),
                )},
            )
        },
        "/v1/compliance-summary/by-service": {
            "get": _op(
                "compliance",
                "compliance_by_service",
                {"200": _json_response(
                    "Phase counts grouped by service name (auth / uam / kfm / ...)", _ANY_JSON
                )},
            )
        },
        "/v1/scanners": {
            "get": _op(
                "scanners",
                "list_scanners",
                {"200": _json_response(
                    "Every scanner kind known to the platform", _array_of(_ref("ScannerImplDto"))
                )},
            )
        },
        "/v1/scanners/{kind}": {
            "get": _op(
                "scanners",
                "get_scanner",
                {
                    "200": _json_response(
                        "The catalog entry for the requested kind", _ref("ScannerImplDto")
                    ),
                    "404": {"description": "Unknown ScannerKind"},
                },
                [_path_param("kind", "ScannerKind variant (PascalCase)")],
            )
        },
        "/v1/healthz": {
            "get": _op(
                "health",
                "healthz",
                {"200": {"description": "Liveness probe — always 200 OK while the binary is alive"}},
            )
        },
        "/v1/readyz": {
            "get": _op(
                "health",
                "readyz",
                {"200": {"description": "Readiness probe — projection is reachable"}},
            )
        },
        "/v1/metrics": {
            "get": _op(
                "health",
                "metrics",
                {"200": {
                    "description": "Prometheus text-format metrics scrape target",
                    "content": {METRICS_CONTENT_TYPE: {"schema": {"type": "string"}}},
                }},
            )
        },
    }


def _object(properties: Mapping[str, Any], required=()) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": dict(properties)}
    if required:
        schema["required"] = list(required)
    return schema


def _schemas() -> dict[str, Any]:
    string = {"type": "string"}
    date_time = {"type": "string", "format": "date-time"}
    count_map = {"type": "object", "additionalProperties": {"type": "integer", "minimum": 0}}
    compliance = {
        "promessa": string,
        "window": string,
        "as_of": date_time,
        "total_digests_observed": {"type": "integer", "minimum": 0},
        "by_phase": count_map,
        "by_verdict": count_map,
        "compliance_state": string,
        "blocking": _array_of(string),
    }
    rescan = {
        "acknowledged": {"type": "boolean"},
        "namespace": string,
        "name": string,
        "note": string,
        "ts": date_time,
    }
    scanner = {
        "kind": string,
        "class": string,
        "default_enabled": {"type": "boolean"},
        "image": string,
        "target_field": string,
        "args_template": _array_of(string),
        "output_format": string,
        "upstream_url": string,
    }
    return {
        "ListValidationsQuery": _object(
            {n: {**_NULLABLE_STRING, "description": d} for n, d in _VALIDATION_QUERY.items()}
        ),
        "ListScanJobsQuery": _object(
            {n: {**_NULLABLE_STRING, "description": d} for n, d in _SCAN_JOB_QUERY.items()}
        ),
        "ComplianceSummary": _object(compliance, compliance),
        "RescanAck": _object(rescan, rescan),
        "ScannerImplDto": _object(scanner, scanner),
    }


_TAGS = (
    ("validations", "AkeylessImageValidation phase machine + per-CR derived data"),
    ("ephemeral-tenants", "AkeylessEphemeralTenant materializer state"),
    ("scan-jobs", "Per-scanner ScanJob CRs + their typed findings"),
    ("compliance", "Aggregate compliance projection across every observed validation"),
    ("scanners", "scanner-catalog substrate: typed (image, args, output format) per ScannerKind"),
    ("health", "Liveness, readiness, metrics scrape"),
)


def openapi_document() -> dict[str, Any]:
    """OpenAPI 3 description of the REST and scanner-catalog surface."""
    return {
        "openapi": "3.1.0",
        "info": {
            "title": "AKEYLESS-VALIDATION-PLATFORM REST API",
            "description": (
                "Typed projection of AkeylessImageValidation / AkeylessEphemeralTenant / "
                "ScanJob CRs, plus the reusable scanner-catalog substrate. Companion to the "
                "gRPC surface at :50051 (validation.v1)."
            ),
            "license": {"name": "MIT"},
            "version": "0.5.0",
        },
        "paths": _paths(),
        "components": {"schemas": _schemas()},
        "tags": [{"name": n, "description": d} for n, d in _TAGS],
    }


def openapi_json() -> str:
    """The OpenAPI document as compact JSON text."""
    return json.dumps(openapi_document(), separators=(",", ":"), ensure_ascii=False)