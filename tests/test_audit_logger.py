from __future__ import annotations

import logging

import httpx

from services.audit import AuditLogger


def test_audit_logger_writes_structured_entry(caplog):
    audit = AuditLogger()
    with caplog.at_level(logging.INFO, logger="filegate.audit"):
        audit.record(
            action="view",
            outcome="success",
            principal_id="p-1",
            username="analyst",
            target_id="f-1",
        )

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.audit_entry["action"] == "view"
    assert record.audit_entry["target_id"] == "f-1"
    assert "timestamp" in record.audit_entry


def test_audit_logger_levels_follow_outcome(caplog):
    audit = AuditLogger()
    with caplog.at_level(logging.INFO, logger="filegate.audit"):
        audit.record(action="delete", outcome="denied", reason="NotReleasable")
        audit.record(action="delete", outcome="error", reason="FG-FILE-003")

    assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.ERROR]


def test_disabled_audit_logger_is_silent(caplog):
    audit = AuditLogger(enabled=False)
    with caplog.at_level(logging.DEBUG, logger="filegate.audit"):
        audit.record(action="view", outcome="success")
    assert not caplog.records


def test_audit_forwarding_sends_api_key(monkeypatch):
    sent = []

    def _post(self, url, json=None, headers=None):
        sent.append((url, json, headers))
        return httpx.Response(202)

    monkeypatch.setattr(httpx.Client, "post", _post)
    audit = AuditLogger(forward_url="http://collector/audit", forward_api_key="k-1")
    audit.record(action="edit", outcome="success", target_id="f-9")
    audit.close()

    url, body, headers = sent[0]
    assert url == "http://collector/audit"
    assert body["target_id"] == "f-9"
    assert headers == {"X-API-Key": "k-1"}


def test_audit_forwarding_failure_is_not_raised(monkeypatch):
    def _post(self, url, json=None, headers=None):
        raise httpx.ConnectError("collector down")

    monkeypatch.setattr(httpx.Client, "post", _post)
    audit = AuditLogger(forward_url="http://collector/audit")
    audit.record(action="view", outcome="success")
    audit.close()
