# tests/test_metrics_endpoint.py
import logging

from fastapi.testclient import TestClient
from pythonjsonlogger.json import JsonFormatter

from backend import monitoring
from backend.app import app


def test_metrics_endpoint_returns_prometheus_format(monkeypatch):
    monkeypatch.setattr(monitoring, "PROMETHEUS_ENABLED", True)
    client = TestClient(app)
    client.post("/api/submit-requirement", data={})
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "text/plain" in r.headers.get("content-type", "")
    assert "codegen_submissions_total" in r.text
    assert 'outcome="fail"' in r.text


def test_metrics_endpoint_disabled(monkeypatch):
    monkeypatch.setattr(monitoring, "PROMETHEUS_ENABLED", False)
    client = TestClient(app)
    r = client.get("/metrics")
    assert r.status_code == 404


def test_json_logger_uses_json_formatter(monkeypatch):
    monkeypatch.setattr(monitoring, "LOG_AS_JSON", True)
    logger = monitoring.setup_logger("codegen-json-test", level=logging.INFO)
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)


def test_health_still_works():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
