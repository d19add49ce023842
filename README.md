# validation-api

A read-only API over three kinds of resources that drive image validation:

- **image validations** (`AkeylessImageValidation`): one per image digest, each
  with a phase, a gate decision, an evidence-bundle hash and an outcome receipt;
- **ephemeral tenants** (`AkeylessEphemeralTenant`): short-lived environments
  that a validation runs against;
- **scan jobs** (`ScanJob`): one per scanner run, carrying findings.

Resources are plain JSON-shaped dictionaries held in an in-memory
`ValidationProjection`. Every response is worked out from that projection; the
HTTP, WebSocket and MCP faces never change it.

## Faces

| Face                 | Where                                                                     |
|----------------------|---------------------------------------------------------------------------|
| REST                 | `/v1/validations`, `/v1/ephemeral-tenants`, `/v1/scan-jobs` and per-item paths |
| Per-validation data  | `/v1/validations/{ns}/{name}/findings`, `/evidence`, `/gate`, `/outcome-chain` |
| Rescan acknowledgement | `POST /v1/validations/{ns}/{name}/rescan`                              |
| Compliance rollups   | `/v1/compliance-summary`, `/v1/compliance-summary/by-service`             |
| Health / metrics     | `/v1/healthz`, `/v1/readyz`, `/v1/metrics` (Prometheus text)              |
| OpenAPI 3 document   | `/v1/openapi.json`                                                        |
| WebSocket            | `/v1/watch`: sends one `hello` frame, then stays open until the client closes |
| MCP over HTTP        | `POST /v1/mcp`: JSON-RPC 2.0 (`initialize`, `tools/list`, `tools/call`)   |

Missing resources answer `404` with a plain-text message. List endpoints take
query filters: `phase`, `service`, `promessa` (and `since`, accepted but not
applied) for validations; `scanner`, `scanner-class` and `phase` for scan jobs.
Phase, scanner and scanner-class filters ignore case. CORS is open to any origin.

## Installing

```
pip install .
pip install ".[test]"   # with the test dependencies
```

## Command line

```
validation-api serve --addr 0.0.0.0:8080   # run the HTTP server (the default command)
validation-api open-api                    # print the OpenAPI document as JSON
validation-api graphql-sdl                 # print the schema description of the query root
validation-api mcp                         # write the MCP tool catalog to stdout as one JSON line
```

`--addr` takes `ip:port` or `[ipv6]:port`; its default comes from
`VALIDATION_API_ADDR`, else `0.0.0.0:8080`. Running `validation-api` with no
subcommand serves on `0.0.0.0:8080`.

## MCP authorisation

`POST /v1/mcp` is closed unless you configure it:

- `MCP_BEARER_TOKEN`: when set, every request needs
  `Authorization: Bearer <that value>`. The value is compared in constant time.
- `MCP_ALLOW_ANONYMOUS`: when the token is unset and this variable is present,
  anonymous calls are accepted. Use this only for local development.
- When neither is set, every call is refused.

Refused calls answer HTTP `401` with JSON-RPC error code `-32001`. The
environment is read on each request unless an `AuthConfig` is passed to
`build_app`.

```
MCP_BEARER_TOKEN=token validation-api serve
curl -s -X POST localhost:8080/v1/mcp \
  -H 'Authorization: Bearer token' \
  -H 'Content-Type: application/json' \
  -d '{"jsonrpc":"2.0","id":1,"method":"tools/list","params":{}}'
```

The tools are `list_validations`, `get_validation`, `query_findings`,
`trigger_rescan`, `compliance_summary` and `list_blocked`. Each result carries
a text summary followed by the data as pretty-printed JSON.

## Using it as a library

```python
from validation_api.projection import ValidationProjection, ResourceKind, EventType
from validation_api.mcp_http import AuthConfig
from validation_api.app import build_app

projection = ValidationProjection()
projection.apply(ResourceKind.VALIDATION, EventType.APPLY, {
    "metadata": {"namespace": "ci", "name": "auth-123"},
    "spec": {"service": "auth", "imageDigest": "sha256:...", "promessaRef": "p1"},
})

app = build_app(projection, AuthConfig(expected_token="token", allow_anonymous=False))
# serve `app` with any ASGI server, e.g. uvicorn
```

- `validation_api.projection`: `ValidationProjection` keys every resource by
  `<namespace>/<name>` and folds `Apply`, `Delete`, `Init`, `InitApply` and
  `InitDone` events through `apply()`. Read it with `snapshot()`,
  `get_validation()`, `get_tenant()` and `get_scan_job()`.
- `validation_api.rest`: the REST projections as plain functions
  (`list_validations`, `get_findings`, `compliance_summary`, ...) that raise
  `NotFound`, plus `openapi_document()` and `openapi_json()`.
- `validation_api.graphql`: `QueryRoot` with `ValidationView`, `TenantView` and
  `ScanJobView`, and `sdl()` for the schema text.
- `validation_api.mcp`: the typed `McpToolCatalog` (`canonical()`, `to_dict()`,
  `from_dict()`) and `run_stdio()`.
- `validation_api.mcp_http`: `handle()` for one JSON-RPC request, returning
  `(status, body)`, and `authorize()`, `AuthConfig`, `McpResponse`.
- `validation_api.ws`: watch frames (`HelloPayload`, `PhaseTransitionPayload`,
  `GateDecidedPayload`, `OutcomeAppendedPayload`) with `encode_event()`,
  `decode_event()` and `hello_event()`.

## What this package does not do

- It does not watch a cluster. Nothing fills the projection on its own; the
  `serve` command starts with an empty projection, and a library user must feed
  it through `apply()`.
- It has no durable storage and no gRPC server.
- There is no GraphQL HTTP endpoint; `QueryRoot` and `sdl()` are usable from
  Python and the command line only.
- The `/v1/scanners` paths appear in the OpenAPI document but are not served.
- The watch socket sends only the `hello` frame; no transition events are emitted.
- Rescan requests, over REST or MCP, are acknowledged but change nothing.
- `validation-api mcp` writes the catalog once and exits; it does not answer
  requests on stdin.