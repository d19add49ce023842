"""HTTP application: REST, watch socket and MCP endpoint over one projection."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from validation_api import rest
from validation_api.mcp_http import AuthConfig, handle
from validation_api.projection import ValidationProjection
from validation_api.ws import encode_event, hello_event

log = logging.getLogger(__name__)

Lookup = Callable[[ValidationProjection, str, str], Any]


def build_app(
    projection: ValidationProjection, auth: Optional[AuthConfig] = None
) -> Starlette:
    """Compose every HTTP route over ``projection``.

    When ``auth`` is omitted the MCP endpoint reads its bearer-token policy
    from the environment on each request.
    """

    def lookup(fn: Lookup) -> Callable[[Request], Any]:
        async def endpoint(request: Request) -> Response:
            ns = request.path_params["ns"]
            name = request.path_params["name"]
            try:
                return JSONResponse(fn(projection, ns, name))
            except rest.NotFound as exc:
                return PlainTextResponse(exc.message, status_code=404)

        return endpoint

    async def list_validations(request: Request) -> Response:
        params = request.query_params
        query = rest.ListValidationsQuery(
            phase=params.get("phase"),
            service=params.get("service"),
            promessa=params.get("promessa"),
            since=params.get("since"),
        )
        return JSONResponse(rest.list_validations(projection, query))

    async def rescan(request: Request) -> Response:
        return JSONResponse(
            rest.rescan_ack(request.path_params["ns"], request.path_params["name"])
        )

    async def list_tenants(request: Request) -> Response:
        return JSONResponse(rest.list_tenants(projection))

    async def list_scan_jobs(request: Request) -> Response:
        params = request.query_params
        query = rest.ListScanJobsQuery(
            scanner=params.get("scanner"),
            scanner_class=params.get("scanner-class"),
            phase=params.get("phase"),
        )
        return JSONResponse(rest.list_scan_jobs(projection, query))

    async def compliance_summary(request: Request) -> Response:
        return JSONResponse(rest.compliance_summary(projection))

    async def compliance_by_service(request: Request) -> Response:
        return JSONResponse(rest.compliance_by_service(projection))

    async def healthz(request: Request) -> Response:
        return PlainTextResponse("ok")

    async def readyz(request: Request) -> Response:
        projection.snapshot()
        return PlainTextResponse("ready")

    async def metrics(request: Request) -> Response:
        return Response(rest.metrics_text(), media_type=rest.METRICS_CONTENT_TYPE)

    async def openapi(request: Request) -> Response:
        return Response(rest.openapi_json(), media_type="application/json")

    async def mcp(request: Request) -> Response:
        import json

        raw = await request.body()
        try:
            body = json.loads(raw)
        except ValueError as exc:
            return PlainTextResponse(f"invalid JSON body: {exc}", status_code=400)
        cfg = auth if auth is not None else AuthConfig.from_env()
        try:
            status, payload = handle(projection, request.headers, body, cfg)
        except ValueError as exc:
            return PlainTextResponse(str(exc), status_code=422)
        return JSONResponse(payload, status_code=status)

    async def watch(websocket: WebSocket) -> None:
        await websocket.accept()
        await websocket.send_text(encode_event(hello_event(projection)))
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break

    routes = [
        Route("/v1/validations", list_validations, methods=["GET"]),
        Route("/v1/validations/{ns}/{name}", lookup(rest.get_validation), methods=["GET"]),
        Route(
            "/v1/validations/{ns}/{name}/findings", lookup(rest.get_findings), methods=["GET"]
        ),
        Route(
            "/v1/validations/{ns}/{name}/evidence", lookup(rest.get_evidence), methods=["GET"]
        ),
        Route("/v1/validations/{ns}/{name}/gate", lookup(rest.get_gate), methods=["GET"]),
        Route(
            "/v1/validations/{ns}/{name}/outcome-chain",
            lookup(rest.get_outcome_chain),
            methods=["GET"],
        ),
        Route("/v1/validations/{ns}/{name}/rescan", rescan, methods=["POST"]),
        Route("/v1/ephemeral-tenants", list_tenants, methods=["GET"]),
        Route("/v1/ephemeral-tenants/{ns}/{name}", lookup(rest.get_tenant), methods=["GET"]),
        Route("/v1/scan-jobs", list_scan_jobs, methods=["GET"]),
        Route("/v1/scan-jobs/{ns}/{name}", lookup(rest.get_scan_job), methods=["GET"]),
        Route("/v1/compliance-summary", compliance_summary, methods=["GET"]),
        Route("/v1/compliance-summary/by-service", compliance_by_service, methods=["GET"]),
        Route("/v1/healthz", healthz, methods=["GET"]),
        Route("/v1/readyz", readyz, methods=["GET"]),
        Route("/v1/metrics", metrics, methods=["GET"]),
        WebSocketRoute("/v1/watch", watch),
        Route("/v1/mcp", mcp, methods=["POST"]),
        Route("/v1/openapi.json", openapi, methods=["GET"]),
    ]
    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )
    ]
    app = Starlette(routes=routes, middleware=middleware)
    app.state.projection = projection
    return app