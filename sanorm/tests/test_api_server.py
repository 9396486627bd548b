import pytest
from fastapi.testclient import TestClient

from sanorm.api.models import ErrorEnvelope, SuccessEnvelope
from sanorm.api.server import create_app
from sanorm.config import ModuleConfig, NormalizationConfig, SanitizationConfig
from sanorm.core.sanitization import ConfigError


def _client(**sanitization) -> TestClient:
    sanitization.setdefault("log_violations", False)
    app = create_app(ModuleConfig(sanitization=SanitizationConfig(**sanitization)))
    return TestClient(app)


def test_health_is_wrapped_in_success_envelope():
    r = _client().get("/health")
    assert r.status_code == 200

    body = r.json()
    envelope = SuccessEnvelope.model_validate(body)
    assert envelope.data["ok"] is True
    assert envelope.data["rules"] == ["html", "script", "xss", "trim"]
    assert body["metadata"]["requestId"] == r.headers["x-request-id"]


def test_client_request_id_is_echoed():
    r = _client().get("/health", headers={"X-Request-ID": "req-abc"})
    assert r.headers["x-request-id"] == "req-abc"
    assert r.json()["metadata"]["requestId"] == "req-abc"


def test_oversized_request_id_is_replaced():
    r = _client().get("/health", headers={"X-Request-ID": "x" * 500})
    assert r.headers["x-request-id"] != "x" * 500
    assert len(r.headers["x-request-id"]) == 36


def test_rules_listing():
    r = _client().get("/rules")
    names = [rule["name"] for rule in r.json()["data"]]
    assert "path-traversal" in names
    sql = next(rule for rule in r.json()["data"] if rule["name"] == "sql")
    assert sql["validates"] is True
    assert sql["transforms"] is False


def test_sanitize_endpoint_reports_violations():
    r = _client().post(
        "/sanitize",
        json={"payload": {"name": "<b>x</b>", "tags": [" a "]}, "rules": ["html", "trim"]},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["sanitized"] == {"name": "x", "tags": ["a"]}
    assert data["violations"] == ["name: HTML_INJECTION"]
    assert data["appliedRules"] == ["html", "trim"]


def test_items_pagination_is_clamped_and_unwrapped():
    r = _client().get("/items", params={"page": 0, "limit": 500})
    body = r.json()
    assert len(body["data"]) == 23
    assert body["pagination"] == {
        "page": 1,
        "limit": 100,
        "total": 23,
        "totalPages": 1,
        "hasNext": False,
        "hasPrev": False,
    }


def test_items_second_page():
    body = _client().get("/items", params={"page": 2, "limit": 10}).json()
    assert [item["id"] for item in body["data"]] == list(range(11, 21))
    assert body["pagination"]["totalPages"] == 3
    assert body["pagination"]["hasNext"] is True
    assert body["pagination"]["hasPrev"] is True


def test_echo_returns_sanitized_body():
    r = _client().post("/echo", json={"a": " <b>x</b> ", "n": 3})
    assert r.status_code == 200
    assert r.json()["data"] == {"a": "x", "n": 3}


def test_echo_in_strict_mode_rejects_violations():
    r = _client(strict_mode=True).post("/echo", json={"a": "<b>x</b>"})
    assert r.status_code == 400

    envelope = ErrorEnvelope.model_validate(r.json())
    assert envelope.error.code == "SANITIZATION_VIOLATION"
    assert envelope.error.message == "Input validation failed"
    assert envelope.error.details == {"violations": ["a: HTML_INJECTION"]}
    assert envelope.error.request_id == r.headers["x-request-id"]


def test_echo_rejects_malformed_json():
    r = _client().post("/echo", content=b"{oops", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "SANITIZATION_ERROR"


def test_unknown_route_gets_error_envelope():
    r = _client().get("/nope")
    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "HTTP_404"
    assert body["error"]["message"] == "Not Found"


def test_request_validation_errors_are_normalized():
    r = _client().get("/items", params={"page": "first"})
    assert r.status_code == 422
    body = r.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["details"][0]["loc"] == ["query", "page"]


def test_minimal_format_from_config():
    app = create_app(
        ModuleConfig(
            sanitization=SanitizationConfig(log_violations=False),
            normalization=NormalizationConfig(format="minimal"),
        )
    )
    body = TestClient(app).get("/health").json()
    assert set(body) == {"success", "data"}


def test_create_app_rejects_unknown_rules():
    with pytest.raises(ConfigError):
        create_app(ModuleConfig(sanitization=SanitizationConfig(rules=("html", "nope"))))


def test_create_app_reads_environment(monkeypatch):
    monkeypatch.setenv("SANORM_RULES", "trim")
    monkeypatch.setenv("SANORM_FORMAT", "detailed")
    for name in ("SANORM_CONFIG", "SANORM_STRICT_MODE", "SANORM_REJECT_ON_VIOLATION", "SANORM_ERROR_FORMAT"):
        monkeypatch.delenv(name, raising=False)

    body = TestClient(create_app()).get("/health").json()
    assert body["data"]["rules"] == ["trim"]
    assert body["data"]["options"]["format"] == "detailed"
    assert "server" in body["metadata"]


def test_items_past_the_last_page_is_an_empty_list():
    body = _client().get("/items", params={"page": 5, "limit": 10}).json()
    assert body["data"] == []
    assert body["pagination"]["page"] == 5
    assert body["pagination"]["totalPages"] == 3
    assert body["pagination"]["hasNext"] is False
    assert body["pagination"]["hasPrev"] is True
