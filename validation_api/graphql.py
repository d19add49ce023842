"""Read-only query root over the projection, with typed views and SDL."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from validation_api.projection import ValidationProjection, phase_of

UNKNOWN_PHASE = "Unknown"

_SCALARS = {"str": "String", "int": "Int", "bool": "Boolean"}


def _meta(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _status(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("status") or {}


def _spec(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("spec") or {}


def _gate_decision(obj: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    return _status(obj).get("gateDecision")


@dataclass(frozen=True)
class ValidationView:
    name: str
    namespace: str
    service: str
    image_digest: str
    promessa_ref: str
    phase: str
    severity: Optional[str]
    verdict: Optional[str]
    findings_count: int

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> "ValidationView":
        spec = _spec(obj)
        gd = _gate_decision(obj)
        findings = sum(
            int(sj.get("findingsCount") or 0) for sj in _status(obj).get("scanJobs") or []
        )
        return cls(
            name=_meta(obj).get("name") or "",
            namespace=_meta(obj).get("namespace") or "",
            service=spec.get("service") or "",
            image_digest=spec.get("imageDigest") or "",
            promessa_ref=spec.get("promessaRef") or "",
            phase=phase_of(obj) or UNKNOWN_PHASE,
            severity=None if gd is None else str(gd.get("severity") or ""),
            verdict=None if gd is None else str(gd.get("verdict") or ""),
            findings_count=findings,
        )


@dataclass(frozen=True)
class TenantView:
    name: str
    namespace: str
    phase: str
    ingress_url: Optional[str]
    pods_ready: int
    pods_total: int

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> "TenantView":
        status = _status(obj)
        return cls(
            name=_meta(obj).get("name") or "",
            namespace=_meta(obj).get("namespace") or "",
            phase=phase_of(obj) or UNKNOWN_PHASE,
            ingress_url=status.get("ingressUrl"),
            pods_ready=int(status.get("podsReady") or 0),
            pods_total=int(status.get("podsTotal") or 0),
        )


@dataclass(frozen=True)
class ScanJobView:
    name: str
    namespace: str
    scanner: str
    scanner_class: str
    parent: str
    phase: str
    findings_count: int

    @classmethod
    def from_resource(cls, obj: Mapping[str, Any]) -> "ScanJobView":
        spec = _spec(obj)
        return cls(
            name=_meta(obj).get("name") or "",
            namespace=_meta(obj).get("namespace") or "",
            scanner=str(spec.get("scanner") or ""),
            scanner_class=str(spec.get("scannerClass") or ""),
            parent=spec.get("parentValidation") or "",
            phase=phase_of(obj) or UNKNOWN_PHASE,
            findings_count=int(_status(obj).get("findingsCount") or 0),
        )


class QueryRoot:
    """Query operations resolved against a projection."""

    def __init__(self, projection: ValidationProjection) -> None:
        self.projection = projection

    def validations(self) -> list[ValidationView]:
        """Every AkeylessImageValidation observed by the API's informer."""
        return [ValidationView.from_resource(v) for v in self.projection.snapshot().validations]

    def validation(self, namespace: str, name: str) -> Optional[ValidationView]:
        """A single validation by namespace + name."""
        found = self.projection.get_validation(namespace, name)
        return None if found is None else ValidationView.from_resource(found)

    def ephemeral_tenants(self) -> list[TenantView]:
        """Every AkeylessEphemeralTenant currently observed."""
        return [TenantView.from_resource(t) for t in self.projection.snapshot().tenants]

    def scan_jobs(self) -> list[ScanJobView]:
        """Every ScanJob currently observed."""
        return [ScanJobView.from_resource(j) for j in self.projection.snapshot().scan_jobs]

    def compliance_state(self) -> str:
        """Compliance health rollup."""
        state = "Cosmetic"
        for v in self.projection.snapshot().validations:
            gd = _gate_decision(v)
            if gd is None:
                continue
            severity = gd.get("severity")
            if severity == "Critical":
                return "Critical"
            if severity == "Functional" and state == "Cosmetic":
                state = "Functional"
        return state


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _graphql_type(annotation: Any) -> str:
    text = annotation if isinstance(annotation, str) else getattr(annotation, "__name__", str(annotation))
    text = text.strip()
    optional = text.startswith("Optional[") and text.endswith("]")
    if optional:
        text = text[len("Optional["):-1].strip()
    base = _SCALARS[text]
    return base if optional else f"{base}!"


def _object_sdl(cls: type) -> str:
    lines = [f"type {cls.__name__} {{"]
    lines += [f"  {_camel(f.name)}: {_graphql_type(f.type)}" for f in fields(cls)]
    lines.append("}")
    return "\n".join(lines)


def _query_sdl() -> str:
    entries = [
        (QueryRoot.validations, "validations: [ValidationView!]!"),
        (QueryRoot.validation, "validation(namespace: String!, name: String!): ValidationView"),
        (QueryRoot.ephemeral_tenants, "ephemeralTenants: [TenantView!]!"),
        (QueryRoot.scan_jobs, "scanJobs: [ScanJobView!]!"),
        (QueryRoot.compliance_state, "complianceState: String!"),
    ]
    lines = ["type QueryRoot {"]
    for method, decl in entries:
        lines.append(f'  """{method.__doc__}"""')
        lines.append(f"  {decl}")
    lines.append("}")
    return "\n".join(lines)


def sdl() -> str:
    """The schema definition language text for the query schema."""
    blocks = [_query_sdl()]
    blocks += [_object_sdl(cls) for cls in (ScanJobView, TenantView, ValidationView)]
    blocks.append("schema {\n  query: QueryRoot\n}")
    return "\n\n".join(blocks) + "\n"