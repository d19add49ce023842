import json

import pytest

from validation_api.mcp_http import (
    AuthConfig,
    McpResponse,
    McpUnauthorized,
    authorize,
    ct_eq,
    handle,
    initialize_response,
    tools_call_response,
    tools_list_response,
    wrap_text_result,
)
from validation_api.projection import ValidationProjection


def _validation(name, service, promessa, phase, verdict=None):
    status = {"phase": phase}
    if verdict is not None:
        status["gateDecision"] = {"severity": "Cosmetic", "verdict": verdict}
    return {
        "metadata": {"name": name, "namespace": "ns"},
        "spec": {"service": service, "promessaRef": promessa, "imageDigest": f"sha256:{name}"},
        "status": status,
    }


@pytest.fixture
def projection():
    p = ValidationProjection()
    p.apply("AkeylessImageValidation", "Apply", _validation("a", "auth", "p1", "Passed", "Passed"))
    p.apply("AkeylessImageValidation", "Apply", _validation("b", "uam", "p1", "Failed", "Failed"))
    p.apply("AkeylessImageValidation", "Apply", _validation("c", "auth", "p2", "Scanning"))
    p.apply(
        "ScanJob",
        "Apply",
        {
            "metadata": {"name": "sj", "namespace": "ns"},
            "spec": {"parentValidation": "a"},
            "status": {"findings": [{"severity": "Critical", "cveId": "CVE-1"}, {"severity": "Low"}]},
        },
    )
    return p


ANON = AuthConfig(expected_token=None, allow_anonymous=True)


def _data(resp):
    return json.loads(resp.to_dict()["result"]["content"][1]["text"])


def test_ct_eq_basic():
    assert ct_eq("hello", "hello")
    assert not ct_eq("hello", "world")
    assert not ct_eq("hello", "hello!")
    assert not ct_eq("", "x")
    assert ct_eq("", "")


def test_jsonrpc_envelope_ok():
    v = McpResponse.ok(7, {"ok": True}).to_dict()
    assert v["jsonrpc"] == "2.0"
    assert v["id"] == 7
    assert v["result"]["ok"] is True
    assert "error" not in v


def test_jsonrpc_envelope_err():
    v = McpResponse.err(None, -32601, "method not found").to_dict()
    assert v["jsonrpc"] == "2.0"
    assert v["error"]["code"] == -32601
    assert v["error"]["message"] == "method not found"
    assert "result" not in v


def test_initialize_returns_server_info():
    v = initialize_response(1).to_dict()
    assert v["result"]["serverInfo"]["name"] == "akeyless-validation-api"
    assert v["result"]["protocolVersion"] == "2024-11-05"


def test_tools_list_emits_every_catalog_tool_with_input_schema():
    tools = tools_list_response(2).to_dict()["result"]["tools"]
    names = [t["name"] for t in tools]
    for expected in [
        "list_validations",
        "get_validation",
        "query_findings",
        "trigger_rescan",
        "compliance_summary",
        "list_blocked",
    ]:
        assert expected in names
    for t in tools:
        assert t["inputSchema"]["type"] == "object"
        assert isinstance(t["inputSchema"]["properties"], dict)
        assert isinstance(t["inputSchema"]["required"], list)


def test_tools_list_schema_types_and_required():
    tools = {t["name"]: t for t in tools_list_response(3).to_dict()["result"]["tools"]}
    assert tools["query_findings"]["inputSchema"]["properties"]["age_days"]["type"] == "integer"
    assert tools["get_validation"]["inputSchema"]["required"] == ["namespace", "name"]
    assert tools["list_validations"]["inputSchema"]["required"] == []


def test_authorize_rejects_no_token_no_anon():
    cfg = AuthConfig(expected_token=None, allow_anonymous=False)
    with pytest.raises(McpUnauthorized) as info:
        authorize({}, cfg)
    v = info.value.response.to_dict()
    assert v["error"]["code"] == -32001
    assert "MCP endpoint not configured" in v["error"]["message"]


def test_authorize_accepts_anon_when_flag_set():
    assert authorize({}, ANON) is None


def test_authorize_rejects_missing_bearer_when_token_set():
    cfg = AuthConfig(expected_token="secret")
    with pytest.raises(McpUnauthorized) as info:
        authorize({}, cfg)
    assert "missing bearer token" in info.value.response.to_dict()["error"]["message"]


def test_authorize_rejects_wrong_bearer():
    cfg = AuthConfig(expected_token="secret")
    with pytest.raises(McpUnauthorized) as info:
        authorize({"authorization": "Bearer token"}, cfg)
    assert "mismatch" in info.value.response.to_dict()["error"]["message"]


def test_authorize_accepts_matching_bearer():
    cfg = AuthConfig(expected_token="secret")
    assert authorize({"Authorization": "Bearer secret"}, cfg) is None


def test_authorize_rejects_non_bearer_scheme():
    cfg = AuthConfig(expected_token="secret")
    with pytest.raises(McpUnauthorized) as info:
        authorize({"authorization": "Basic placeholder"}, cfg)
    assert "Bearer" in info.value.response.to_dict()["error"]["message"]


def test_auth_config_from_env():
    cfg = AuthConfig.from_env({"MCP_BEARER_TOKEN": "token", "MCP_ALLOW_ANONYMOUS": ""})
    assert cfg.expected_token == "token"
    assert cfg.allow_anonymous is True
    assert AuthConfig.from_env({}) == AuthConfig(expected_token=None, allow_anonymous=False)


def test_wrap_text_result_shape():
    out = wrap_text_result("hi", {"b": 1, "a": [1]})
    assert out["isError"] is False
    assert out["content"][0] == {"type": "text", "text": "hi"}
    assert json.loads(out["content"][1]["text"]) == {"a": [1], "b": 1}


def test_handle_unauthorized_returns_401(projection):
    status, body = handle(
        projection, {}, {"jsonrpc": "2.0", "id": 1, "method": "initialize"}, AuthConfig()
    )
    assert status == 401
    assert body["error"]["code"] == -32001


def test_handle_rejects_wrong_jsonrpc_version(projection):
    status, body = handle(projection, {}, '{"jsonrpc":"1.0","id":4,"method":"initialize"}', ANON)
    assert status == 200
    assert body["id"] == 4
    assert body["error"]["code"] == -32600


def test_handle_unknown_method(projection):
    status, body = handle(projection, {}, {"jsonrpc": "2.0", "id": 5, "method": "nope"}, ANON)
    assert status == 200
    assert body["error"] == {"code": -32601, "message": "method not found: nope"}


def test_handle_malformed_body_raises(projection):
    with pytest.raises(ValueError):
        handle(projection, {}, "{not json", ANON)
    with pytest.raises(ValueError):
        handle(projection, {}, {"jsonrpc": "2.0"}, ANON)


def test_handle_tools_call_with_bearer(projection):
    cfg = AuthConfig(expected_token="secret")
    body = {
        "jsonrpc": "2.0",
        "id": 9,
        "method": "tools/call",
        "params": {"name": "list_validations", "arguments": {"service": "auth"}},
    }
    status, out = handle(projection, {"authorization": "Bearer secret"}, body, cfg)
    assert status == 200
    assert out["id"] == 9
    assert out["result"]["content"][0]["text"] == "Returned 2 AkeylessImageValidation(s)."


def test_list_validations_phase_filter_is_case_insensitive(projection):
    resp = tools_call_response(1, {"name": "list_validations", "arguments": {"phase": "passed"}}, projection)
    items = _data(resp)
    assert [v["metadata"]["name"] for v in items] == ["a"]


def test_list_validations_promessa_filter(projection):
    resp = tools_call_response(1, {"name": "list_validations", "arguments": {"promessa": "p1"}}, projection)
    assert [v["metadata"]["name"] for v in _data(resp)] == ["a", "b"]


def test_get_validation_found_and_missing(projection):
    found = tools_call_response(
        1, {"name": "get_validation", "arguments": {"namespace": "ns", "name": "a"}}, projection
    )
    assert found.to_dict()["result"]["content"][0]["text"] == "ns/a: phase=Some(Passed)"
    missing = tools_call_response(
        1, {"name": "get_validation", "arguments": {"namespace": "ns", "name": "zz"}}, projection
    )
    assert missing.to_dict()["error"] == {"code": -32004, "message": "not found: ns/zz"}
    no_args = tools_call_response(1, {"name": "get_validation"}, projection)
    assert no_args.to_dict()["error"]["message"] == "missing required arg: namespace"


def test_query_findings_by_severity(projection):
    resp = tools_call_response(1, {"name": "query_findings", "arguments": {"severity": "CRITICAL"}}, projection)
    assert resp.to_dict()["result"]["content"][0]["text"] == "Returned 1 critical-severity finding(s)."
    assert _data(resp)[0]["cveId"] == "CVE-1"
    everything = tools_call_response(1, {"name": "query_findings"}, projection)
    assert everything.to_dict()["result"]["content"][0]["text"] == (
        "Returned 2 finding(s) across all severities."
    )


def test_compliance_summary_counts(projection):
    resp = tools_call_response(1, {"name": "compliance_summary"}, projection)
    assert _data(resp) == {
        "total_validations": 3,
        "by_phase": {"Failed": 1, "Passed": 1, "Scanning": 1},
        "by_verdict": {"Failed": 1, "Passed": 1},
    }


def test_list_blocked(projection):
    resp = tools_call_response(1, {"name": "list_blocked"}, projection)
    assert [v["metadata"]["name"] for v in _data(resp)] == ["b"]


def test_trigger_rescan_acknowledges(projection):
    resp = tools_call_response(
        1, {"name": "trigger_rescan", "arguments": {"namespace": "ns", "name": "a"}}, projection
    )
    data = _data(resp)
    assert data["acknowledged"] is True
    assert (data["namespace"], data["name"]) == ("ns", "a")
    assert data["ts"].endswith("Z")


def test_unknown_tool(projection):
    resp = tools_call_response(3, {"name": "frobnicate"}, projection)
    assert resp.to_dict()["error"] == {"code": -32602, "message": "unknown tool: frobnicate"}