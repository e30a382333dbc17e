"""
API tests -- FastAPI endpoints and the perimeter gate via TestClient (no live
server needed).
"""
import pytest
from fastapi.testclient import TestClient

from nest_mcp.api.gate import FORBIDDEN_BODY, is_from_claude
from nest_mcp.api.main import create_app

CLAUDE = {"User-Agent": "Claude-User (+https://claude.ai)"}


@pytest.fixture
def client(typed_settings):
    return TestClient(create_app(typed_settings))


# ── Perimeter gate ───────────────────────────────────────

def test_unknown_client_blocked(client):
    resp = client.get("/health")
    assert resp.status_code == 403
    assert resp.json() == FORBIDDEN_BODY


def test_claude_user_agent_allowed(client):
    resp = client.get("/health", headers=CLAUDE)
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_claude_origin_allowed(client):
    resp = client.get("/health", headers={"Origin": "https://claude.ai"})
    assert resp.status_code == 200


def test_claude_referer_allowed(client):
    resp = client.get("/health", headers={"Referer": "https://claude.ai/chat/abc"})
    assert resp.status_code == 200


def test_mcp_path_is_gated(client):
    resp = client.post("/mcp/", json={})
    assert resp.status_code == 403


def test_well_known_always_allowed(client):
    resp = client.get("/.well-known/oauth-protected-resource")
    assert resp.status_code == 200
    assert resp.json() == {
        "resource": "mcp",
        "authorization_servers": [],
        "bearer_methods_supported": ["header"],
    }


def test_preflight_always_allowed(client):
    resp = client.options(
        "/search",
        headers={"Origin": "https://example.com", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200


def test_gate_can_be_disabled(typed_settings):
    open_settings = typed_settings.model_copy(update={"client_gate_enabled": False})
    resp = TestClient(create_app(open_settings)).get("/health")
    assert resp.status_code == 200


def test_is_from_claude(typed_settings):
    assert is_from_claude({"user-agent": "CLAUDE-bot"}, typed_settings)
    assert is_from_claude({"origin": "https://claude.ai"}, typed_settings)
    assert not is_from_claude({"user-agent": "curl/8.0"}, typed_settings)
    assert not is_from_claude({}, typed_settings)


# ── Catalog ──────────────────────────────────────────────

def test_years(client):
    resp = client.get("/years", headers=CLAUDE)
    assert resp.json() == {"years": list(range(2016, 2025))}


def test_metrics(client):
    data = client.get("/metrics", headers=CLAUDE).json()
    assert len(data["metrics"]) == 44
    assert "revenue" in data["metrics"]


def test_full_catalog(client):
    resp = client.get("/catalog", headers=CLAUDE)
    assert resp.status_code == 200
    data = resp.json()
    assert data["table"] == "companies"
    assert data["layout"] == "typed"
    assert data["categories_column"] == "nace_categories"
    assert [b["years"] for b in data["year_bands"]] == ["2016-2017", "2018", "2019-2020", "2021-2024"]


# ── Search / query ───────────────────────────────────────

def test_search(client):
    resp = client.post("/search", json={"industry_categories": ["62020"]}, headers=CLAUDE)
    assert resp.status_code == 200
    data = resp.json()
    assert data["row_count"] == 2
    assert [r["company_name"] for r in data["rows"]] == ["Nordic_Data 100% AS", "Test Company AS"]
    assert data["params"] == {"category_0": "62020"}


def test_search_validation_error(client):
    resp = client.post("/search", json={"foundation_year_range": [2023, 2020]}, headers=CLAUDE)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_year_range"
    assert body["field"] == "foundation_year_range"


def test_search_unsafe_input(client):
    resp = client.post("/search", json={"name_substring": "x'; DROP TABLE companies; --"}, headers=CLAUDE)
    assert resp.status_code == 400
    assert resp.json()["error"] == "unsafe_character_in_input"


def test_search_unknown_field_rejected(client):
    resp = client.post("/search", json={"city": "Oslo"}, headers=CLAUDE)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert body["field"] == "city"


@pytest.mark.parametrize("payload, field", [
    ({"revenue_range": [5]}, "revenue_range"),
    ({"employee_range": [1, 2, 3]}, "employee_range"),
    ({"foundation_year_range": ["abc", 2020]}, "foundation_year_range"),
    ({"industry_categories": "62010"}, "industry_categories"),
])
def test_search_malformed_arguments_return_payload(client, payload, field):
    resp = client.post("/search", json=payload, headers=CLAUDE)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert body["field"].startswith(field)
    assert body["message"]
    assert all(p["field"].startswith(field) for p in body["problems"])


def test_query_missing_sql_returns_payload(client):
    resp = client.post("/query", json={}, headers=CLAUDE)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "invalid_request"
    assert body["field"] == "sql"


def test_query(client):
    resp = client.post("/query", json={"sql": "SELECT COUNT(*) AS n FROM companies"}, headers=CLAUDE)
    assert resp.status_code == 200
    assert resp.json()["rows"] == [{"n": 3}]


def test_query_unsafe(client):
    resp = client.post("/query", json={"sql": "DROP TABLE companies"}, headers=CLAUDE)
    assert resp.status_code == 400
    assert resp.json()["error"] == "unsafe_query"


def test_query_engine_error(client):
    resp = client.post("/query", json={"sql": "SELECT missing FROM companies"}, headers=CLAUDE)
    assert resp.status_code == 500
    assert resp.json()["error"] == "engine_execution_error"


def test_query_reports_truncation(typed_settings):
    capped = typed_settings.model_copy(update={"raw_query_row_limit": 3})
    resp = TestClient(create_app(capped)).post(
        "/query", json={"sql": "SELECT * FROM range(10)"}, headers=CLAUDE,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["row_count"] == 3
    assert data["truncated"] is True


def test_query_full_result_not_truncated(client):
    resp = client.post("/query", json={"sql": "SELECT * FROM range(2000)"}, headers=CLAUDE)
    data = resp.json()
    assert data["row_count"] == 2000
    assert data["truncated"] is False
