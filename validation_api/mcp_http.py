"""JSON-RPC 2.0 MCP endpoint: bearer-token auth plus tool dispatch.

The endpoint accepts ``initialize``, ``tools/list`` and ``tools/call``
and answers from the live projection. Transport code wraps :func:`handle`.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from validation_api.mcp import SERVER_NAME, SERVER_VERSION, McpToolCatalog, ParamType
from validation_api.projection import ValidationProjection, phase_of

log = logging.getLogger(__name__)

UNAUTHORIZED = -32001
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
NOT_FOUND = -32004

PROTOCOL_VERSION = "2024-11-05"
BLOCKING_VERDICTS = frozenset({"Failed", "Quarantined"})


@dataclass(frozen=True)
class McpError:
    code: int
    message: str


@dataclass(frozen=True)
class McpResponse:
    """JSON-RPC 2.0 response envelope."""

    id: Any = None
    result: Any = None
    error: Optional[McpError] = None
    jsonrpc: str = "2.0"

    @classmethod
    def ok(cls, id: Any, result: Any) -> "McpResponse":
        return cls(id=id, result=result)

    @classmethod
    def err(cls, id: Any, code: int, message: str) -> "McpResponse":
        return cls(id=id, error=McpError(code=code, message=str(message)))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.result is not None:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = {"code": self.error.code, "message": self.error.message}
        return out


class McpUnauthorized(Exception):
    """Raised when a request fails authorization; carries the reply."""

    def __init__(self, response: McpResponse) -> None:
        message = response.error.message if response.error else "unauthorized"
        super().__init__(message)
        self.response = response


@dataclass(frozen=True)
class AuthConfig:
    """Bearer-token policy for the endpoint."""

    expected_token: Optional[str] = None
    allow_anonymous: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AuthConfig":
        env = os.environ if environ is None else environ
        return cls(
            expected_token=env.get("MCP_BEARER_TOKEN"),
            allow_anonymous="MCP_ALLOW_ANONYMOUS" in env,
        )


def ct_eq(a: str, b: str) -> bool:
    """Compare two strings in time that depends only on the longer length."""
    aa = a.encode("utf-8")
    bb = b.encode("utf-8")
    n = max(len(aa), len(bb))
    acc = (len(aa) ^ len(bb)) & 0xFF
    for i in range(n):
        x = aa[i] if i < len(aa) else 0
        y = bb[i] if i < len(bb) else 0
        acc |= x ^ y
    return acc == 0


def _header_text(value: Union[str, bytes]) -> Optional[str]:
    """Header value as text, or ``None`` if it holds non-visible-ASCII bytes."""
    if isinstance(value, str):
        try:
            raw = value.encode("latin-1")
        except UnicodeEncodeError:
            return None
    else:
        raw = bytes(value)
    if any(not (b == 0x09 or 0x20 <= b <= 0x7E) for b in raw):
        return None
    return raw.decode("ascii")


def _authorization(headers: Mapping[Any, Any]) -> Optional[Union[str, bytes]]:
    for name, value in headers.items():
        if isinstance(name, bytes):
            name = name.decode("latin-1")
        if name.lower() == "authorization":
            return value
    return None


def authorize(headers: Mapping[Any, Any], cfg: AuthConfig) -> None:
    """Check the request headers against ``cfg``; raise :class:`McpUnauthorized` on failure."""
    if cfg.expected_token is not None:
        raw = _authorization(headers)
        if raw is None:
            log.warning("mcp.unauthorized — Authorization header missing")
            raise McpUnauthorized(McpResponse.err(None, UNAUTHORIZED, "missing bearer token"))
        auth = _header_text(raw)
        if auth is None:
            raise McpUnauthorized(
                McpResponse.err(None, UNAUTHORIZED, "invalid authorization header encoding")
            )
        if not auth.startswith("Bearer "):
            raise McpUnauthorized(
                McpResponse.err(None, UNAUTHORIZED, "Authorization scheme must be Bearer")
            )
        if not ct_eq(auth[len("Bearer "):], cfg.expected_token):
            log.warning("mcp.unauthorized — bearer token mismatch")
            raise McpUnauthorized(McpResponse.err(None, UNAUTHORIZED, "bearer token mismatch"))
        return
    if cfg.allow_anonymous:
        log.warning(
            "mcp.anonymous — MCP_BEARER_TOKEN unset but MCP_ALLOW_ANONYMOUS=1; "
            "do not run this way outside development"
        )
        return
    log.error(
        "mcp.unconfigured — MCP_BEARER_TOKEN env unset; refusing all calls. "
        "Set the env on the deployment from a secret, or set MCP_ALLOW_ANONYMOUS=1 if dev."
    )
    raise McpUnauthorized(
        McpResponse.err(
            None,
            UNAUTHORIZED,
            "MCP endpoint not configured (MCP_BEARER_TOKEN env unset on validation-api pod)",
        )
    )


def initialize_response(id: Any) -> McpResponse:
    return McpResponse.ok(
        id,
        {
            "protocolVersion": PROTOCOL_VERSION,
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "capabilities": {"tools": {"listChanged": False}},
        },
    )


_SCHEMA_TYPES = {ParamType.INT: "integer", ParamType.BOOL: "boolean"}


def tools_list_response(id: Any) -> McpResponse:
    """Every catalog tool in ``tools/list`` form, each with an ``inputSchema``."""
    tools = [
        {
            "name": t.name,
            "description": t.description,
            "inputSchema": {
                "type": "object",
                "properties": {
                    p.name: {
                        "type": _SCHEMA_TYPES.get(p.ty, "string"),
                        "description": p.description,
                    }
                    for p in t.input
                },
                "required": [p.name for p in t.input if p.required],
            },
        }
        for t in McpToolCatalog.canonical().tools
    ]
    return McpResponse.ok(id, {"tools": tools})


def wrap_text_result(summary: str, data: Any) -> dict[str, Any]:
    """Tool result: a text summary block followed by the pretty JSON data."""
    return {
        "content": [
            {"type": "text", "text": summary},
            {
                "type": "text",
                "text": json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False, default=str),
            },
        ],
        "isError": False,
    }


def _str_arg(args: Any, name: str) -> Optional[str]:
    if not isinstance(args, Mapping):
        return None
    value = args.get(name)
    return value if isinstance(value, str) else None


def _status(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("status") or {}


def _spec(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("spec") or {}


def _verdict(obj: Mapping[str, Any]) -> Optional[str]:
    gd = _status(obj).get("gateDecision")
    return None if gd is None else str(gd.get("verdict"))


def _debug_map(counts: Mapping[str, int]) -> str:
    inner = ", ".join(f"{json.dumps(k, ensure_ascii=False)}: {v}" for k, v in counts.items())
    return "{" + inner + "}"


def _list_validations(id: Any, args: Any, p: ValidationProjection) -> McpResponse:
    phase = _str_arg(args, "phase")
    service = _str_arg(args, "service")
    promessa = _str_arg(args, "promessa")

    def keep(v: Mapping[str, Any]) -> bool:
        if phase is not None:
            current = phase_of(v)
            if current is None or current.lower() != phase.lower():
                return False
        if service is not None and _spec(v).get("service") != service:
            return False
        if promessa is not None and _spec(v).get("promessaRef") != promessa:
            return False
        return True

    items = [v for v in p.snapshot().validations if keep(v)]
    return McpResponse.ok(
        id, wrap_text_result(f"Returned {len(items)} AkeylessImageValidation(s).", items)
    )


def _required_ns_name(id: Any, args: Any) -> Union[McpResponse, tuple[str, str]]:
    ns = _str_arg(args, "namespace")
    if ns is None:
        return McpResponse.err(id, INVALID_PARAMS, "missing required arg: namespace")
    name = _str_arg(args, "name")
    if name is None:
        return McpResponse.err(id, INVALID_PARAMS, "missing required arg: name")
    return ns, name


def _get_validation(id: Any, args: Any, p: ValidationProjection) -> McpResponse:
    resolved = _required_ns_name(id, args)
    if isinstance(resolved, McpResponse):
        return resolved
    ns, name = resolved
    found = p.get_validation(ns, name)
    if found is None:
        return McpResponse.err(id, NOT_FOUND, f"not found: {ns}/{name}")
    phase = phase_of(found)
    shown = "None" if phase is None else f"Some({phase})"
    return McpResponse.ok(id, wrap_text_result(f"{ns}/{name}: phase={shown}", found))


def _query_findings(id: Any, args: Any, p: ValidationProjection) -> McpResponse:
    raw = _str_arg(args, "severity")
    severity = None if raw is None else raw.lower()
    findings = [
        f
        for job in p.snapshot().scan_jobs
        for f in _status(job).get("findings") or []
        if severity is None or str(f.get("severity")).lower() == severity
    ]
    n = len(findings)
    if severity is None:
        msg = f"Returned {n} finding(s) across all severities."
    else:
        msg = f"Returned {n} {severity}-severity finding(s)."
    return McpResponse.ok(id, wrap_text_result(msg, findings))


def _compliance_summary(id: Any, p: ValidationProjection) -> McpResponse:
    validations = p.snapshot().validations
    by_phase = dict(sorted(Counter(phase_of(v) or "Unknown" for v in validations).items()))
    by_verdict = dict(
        sorted(Counter(vd for vd in map(_verdict, validations) if vd is not None).items())
    )
    total = len(validations)
    msg = (
        f"Compliance summary: {total} validation(s), "
        f"by_phase={_debug_map(by_phase)}, by_verdict={_debug_map(by_verdict)}"
    )
    data = {"total_validations": total, "by_phase": by_phase, "by_verdict": by_verdict}
    return McpResponse.ok(id, wrap_text_result(msg, data))


def _list_blocked(id: Any, p: ValidationProjection) -> McpResponse:
    blocked = [v for v in p.snapshot().validations if _verdict(v) in BLOCKING_VERDICTS]
    return McpResponse.ok(
        id,
        wrap_text_result(
            f"Returned {len(blocked)} blocked validation(s) (Failed/Quarantined).", blocked
        ),
    )


def _trigger_rescan(id: Any, args: Any) -> McpResponse:
    resolved = _required_ns_name(id, args)
    if isinstance(resolved, McpResponse):
        return resolved
    ns, name = resolved
    ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return McpResponse.ok(
        id,
        wrap_text_result(
            f"Rescan request acknowledged for {ns}/{name}.",
            {"acknowledged": True, "namespace": ns, "name": name, "ts": ts},
        ),
    )


def tools_call_response(id: Any, params: Any, projection: ValidationProjection) -> McpResponse:
    """Run the tool named in ``params`` against the projection."""
    params = params if isinstance(params, Mapping) else {}
    name = params.get("name")
    name = name if isinstance(name, str) else ""
    args = params.get("arguments", {})
    if name == "list_validations":
        return _list_validations(id, args, projection)
    if name == "get_validation":
        return _get_validation(id, args, projection)
    if name == "query_findings":
        return _query_findings(id, args, projection)
    if name == "compliance_summary":
        return _compliance_summary(id, projection)
    if name == "list_blocked":
        return _list_blocked(id, projection)
    if name == "trigger_rescan":
        return _trigger_rescan(id, args)
    return McpResponse.err(id, INVALID_PARAMS, f"unknown tool: {name}")


def _parse_request(body: Union[str, bytes, Mapping[str, Any]]) -> Mapping[str, Any]:
    if isinstance(body, (str, bytes, bytearray)):
        try:
            body = json.loads(body)
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON body: {exc}") from exc
    if not isinstance(body, Mapping):
        raise ValueError("request body must be a JSON object")
    for required in ("jsonrpc", "method"):
        if not isinstance(body.get(required), str):
            raise ValueError(f"request field `{required}` must be a string")
    return body


def handle(
    projection: ValidationProjection,
    headers: Mapping[Any, Any],
    body: Union[str, bytes, Mapping[str, Any]],
    cfg: Optional[AuthConfig] = None,
) -> tuple[int, dict[str, Any]]:
    """Process one request; returns ``(http_status, json_body)``.

    Raises ValueError when the body is not a well-formed request envelope.
    """
    req = _parse_request(body)
    cfg = AuthConfig.from_env() if cfg is None else cfg
    try:
        authorize(headers, cfg)
    except McpUnauthorized as exc:
        return 401, exc.response.to_dict()
    id = req.get("id")
    if req["jsonrpc"] != "2.0":
        return 200, McpResponse.err(id, INVALID_REQUEST, "jsonrpc must be 2.0").to_dict()
    method = req["method"]
    if method == "initialize":
        response = initialize_response(id)
    elif method == "tools/list":
        response = tools_list_response(id)
    elif method == "tools/call":
        response = tools_call_response(id, req.get("params"), projection)
    else:
        response = McpResponse.err(id, METHOD_NOT_FOUND, f"method not found: {method}")
    return 200, response.to_dict()