"""Typed watch-stream frames and their JSON encoding."""

from __future__ import annotations

import dataclasses
import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

from validation_api.mcp import SERVER_VERSION
from validation_api.projection import ValidationProjection


@dataclass(frozen=True)
class ProjectionSize:
    validations: int
    tenants: int
    scan_jobs: int


@dataclass(frozen=True)
class HelloPayload:
    server_version: str
    ts: datetime
    projection_size: ProjectionSize


@dataclass(frozen=True)
class PhaseTransitionPayload:
    kind: str
    namespace: str
    name: str
    from_phase: Optional[str]
    to_phase: str
    ts: datetime


@dataclass(frozen=True)
class GateDecidedPayload:
    namespace: str
    name: str
    severity: str
    verdict: str
    ts: datetime


@dataclass(frozen=True)
class OutcomeAppendedPayload:
    namespace: str
    name: str
    blake3_hash: str
    minio_path: str
    ts: datetime


WatchEvent = Union[HelloPayload, PhaseTransitionPayload, GateDecidedPayload, OutcomeAppendedPayload]

_TAGS: dict[type, str] = {
    HelloPayload: "hello",
    PhaseTransitionPayload: "phaseTransition",
    GateDecidedPayload: "gateDecided",
    OutcomeAppendedPayload: "outcomeAppended",
}
_BY_TAG = {tag: cls for cls, tag in _TAGS.items()}

_TS_RE = re.compile(r"^(?P<base>[^.Zz+]+?)(?:\.(?P<frac>\d+))?(?P<tz>[Zz]|[+-]\d{2}:\d{2})$")


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _format_ts(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(text: str) -> datetime:
    match = _TS_RE.match(text)
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    frac = (match["frac"] or "")[:6].ljust(6, "0")
    tz = match["tz"]
    tz = "+00:00" if tz in ("Z", "z") else tz
    return datetime.fromisoformat(f"{match['base']}.{frac}{tz}").astimezone(timezone.utc)


def _to_wire(value: Any) -> Any:
    if isinstance(value, datetime):
        return _format_ts(value)
    if dataclasses.is_dataclass(value):
        return {_camel(f.name): _to_wire(getattr(value, f.name)) for f in dataclasses.fields(value)}
    return value


def _from_wire(cls: type, data: Any) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{cls.__name__}: expected an object")
    values = {}
    for f in dataclasses.fields(cls):
        wire = _camel(f.name)
        if wire not in data:
            if f.name == "from_phase":
                values[f.name] = None
                continue
            raise ValueError(f"{cls.__name__}: missing field {wire}")
        raw = data[wire]
        if f.name == "ts":
            raw = _parse_ts(raw)
        elif f.name == "projection_size":
            raw = _from_wire(ProjectionSize, raw)
        values[f.name] = raw
    return cls(**values)


def encode_event(event: WatchEvent) -> str:
    """Serialize a frame as compact JSON tagged by ``type``."""
    tag = _TAGS.get(type(event))
    if tag is None:
        raise TypeError(f"not a watch event: {type(event).__name__}")
    return json.dumps({"type": tag, **_to_wire(event)}, separators=(",", ":"))


def decode_event(text: str) -> WatchEvent:
    """Parse a frame produced by :func:`encode_event`."""
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("watch event must be a JSON object")
    cls = _BY_TAG.get(data.get("type"))
    if cls is None:
        raise ValueError(f"unknown watch event type: {data.get('type')!r}")
    return _from_wire(cls, data)


def hello_event(projection: ValidationProjection) -> HelloPayload:
    """The greeting frame sent when a watch socket opens."""
    snap = projection.snapshot()
    return HelloPayload(
        server_version=SERVER_VERSION,
        ts=datetime.now(timezone.utc),
        projection_size=ProjectionSize(
            validations=len(snap.validations),
            tenants=len(snap.tenants),
            scan_jobs=len(snap.scan_jobs),
        ),
    )