"""Typed MCP tool catalog and the stdio server that announces it."""

from __future__ import annotations

import enum
import json
import sys
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, TextIO

SERVER_NAME = "akeyless-validation-api"
SERVER_VERSION = "0.1.1"
THEORY_REF = "AKEYLESS-VALIDATION-PLATFORM.md#part-v-the-api-binary"


class ServerTransport(enum.Enum):
    STDIO = "Stdio"
    HTTP_SSE = "HttpSse"


class ParamType(enum.Enum):
    STRING = "String"
    INT = "Int"
    BOOL = "Bool"
    DURATION = "Duration"
    SEVERITY_ENUM = "SeverityEnum"
    PHASE_ENUM = "PhaseEnum"


class ToolOutput(enum.Enum):
    VALIDATION = "Validation"
    VALIDATION_LIST = "ValidationList"
    FINDING_LIST = "FindingList"
    COMPLIANCE_SUMMARY = "ComplianceSummary"
    ACKNOWLEDGEMENT = "Acknowledgement"


@dataclass(frozen=True)
class ToolParam:
    name: str
    ty: ParamType
    required: bool
    description: str


@dataclass(frozen=True)
class McpTool:
    name: str
    description: str
    input: tuple[ToolParam, ...] = ()
    output: ToolOutput = ToolOutput.ACKNOWLEDGEMENT


@dataclass(frozen=True)
class ServerInfo:
    name: str
    version: str
    transport: ServerTransport
    theory_ref: str


def _p(name: str, ty: ParamType, required: bool, description: str) -> ToolParam:
    return ToolParam(name=name, ty=ty, required=required, description=description)


@dataclass(frozen=True)
class McpToolCatalog:
    """The full tool catalog this server exposes."""

    server: ServerInfo
    tools: tuple[McpTool, ...] = field(default_factory=tuple)

    @classmethod
    def canonical(cls) -> "McpToolCatalog":
        ns = _p("namespace", ParamType.STRING, True, "K8s namespace")
        name = _p("name", ParamType.STRING, True, "CR name")
        return cls(
            server=ServerInfo(
                name=SERVER_NAME,
                version=SERVER_VERSION,
                transport=ServerTransport.STDIO,
                theory_ref=THEORY_REF,
            ),
            tools=(
                McpTool(
                    name="list_validations",
                    description=(
                        "List every AkeylessImageValidation the substrate has observed, "
                        "optionally filtered by phase, service, or governing promessa."
                    ),
                    input=(
                        _p("phase", ParamType.PHASE_ENUM, False, "Filter by status.phase"),
                        _p("service", ParamType.STRING, False, "Filter by spec.service"),
                        _p("promessa", ParamType.STRING, False, "Filter by spec.promessaRef"),
                    ),
                    output=ToolOutput.VALIDATION_LIST,
                ),
                McpTool(
                    name="get_validation",
                    description=(
                        "Fetch the full AkeylessImageValidation CR (spec + status) "
                        "by namespace + name."
                    ),
                    input=(ns, name),
                    output=ToolOutput.VALIDATION,
                ),
                McpTool(
                    name="query_findings",
                    description=(
                        "Return ScanFindings across all validations matching the given "
                        "severity + age filters."
                    ),
                    input=(
                        _p("severity", ParamType.SEVERITY_ENUM, False, "Critical | High | Medium | Low"),
                        _p("age_days", ParamType.INT, False, "Minimum age in days"),
                    ),
                    output=ToolOutput.FINDING_LIST,
                ),
                McpTool(
                    name="trigger_rescan",
                    description="Idempotently mark an AkeylessImageValidation for re-reconcile.",
                    input=(ns, name),
                    output=ToolOutput.ACKNOWLEDGEMENT,
                ),
                McpTool(
                    name="compliance_summary",
                    description=(
                        "Aggregate pipeline health across the whole projection — "
                        "counts by phase + verdict + blocking digests."
                    ),
                    output=ToolOutput.COMPLIANCE_SUMMARY,
                ),
                McpTool(
                    name="list_blocked",
                    description="Every validation whose gate verdict is Failed or Quarantined.",
                    output=ToolOutput.VALIDATION_LIST,
                ),
            ),
        )

    def tool(self, name: str) -> Optional[McpTool]:
        return next((t for t in self.tools if t.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": {
                "name": self.server.name,
                "version": self.server.version,
                "transport": self.server.transport.value,
                "theory_ref": self.server.theory_ref,
            },
            "tools": [
                {
                    "name": t.name,
                    "description": t.description,
                    "input": [
                        {
                            "name": p.name,
                            "ty": p.ty.value,
                            "required": p.required,
                            "description": p.description,
                        }
                        for p in t.input
                    ],
                    "output": t.output.value,
                }
                for t in self.tools
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "McpToolCatalog":
        try:
            server = data["server"]
            return cls(
                server=ServerInfo(
                    name=server["name"],
                    version=server["version"],
                    transport=ServerTransport(server["transport"]),
                    theory_ref=server["theory_ref"],
                ),
                tools=tuple(
                    McpTool(
                        name=t["name"],
                        description=t["description"],
                        input=tuple(
                            ToolParam(
                                name=p["name"],
                                ty=ParamType(p["ty"]),
                                required=bool(p["required"]),
                                description=p["description"],
                            )
                            for p in t["input"]
                        ),
                        output=ToolOutput(t["output"]),
                    )
                    for t in data["tools"]
                ),
            )
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed tool catalog: {exc}") from exc


def run_stdio(stdout: Optional[TextIO] = None) -> None:
    """Emit the catalog as one JSON line on stdout."""
    out = sys.stdout if stdout is None else stdout
    out.write(json.dumps(McpToolCatalog.canonical().to_dict(), separators=(",", ":"), ensure_ascii=False))
    out.write("\n")
    out.flush()