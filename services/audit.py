"""Audit Logger.

Writes structured file-access audit events to the local log and optionally
forwards them to a collector. Fire-and-forget: a failing collector never
fails the operation being audited.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

import httpx

log = logging.getLogger("filegate.audit")

Outcome = Literal["success", "denied", "not_found", "invalid", "error"]


class AuditLogger:
    """Audit logger that writes to local log or forwards to a collector."""

    def __init__(
        self,
        forward_url: Optional[str] = None,
        forward_api_key: Optional[str] = None,
        enabled: bool = True,
        timeout: float = 5.0,
    ):
        self.forward_url = forward_url
        self.forward_api_key = forward_api_key
        self.enabled = enabled
        self.timeout = timeout
        self._client: Optional[httpx.Client] = None

    def log_event(self, event: dict) -> None:
        """Log an audit event."""
        if not self.enabled:
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **event,
        }

        level = logging.INFO if entry.get("outcome") == "success" else logging.WARNING
        if entry.get("outcome") == "error":
            level = logging.ERROR
        log.log(
            level,
            "audit action=%s outcome=%s user=%s target=%s reason=%s",
            entry.get("action"),
            entry.get("outcome"),
            entry.get("username"),
            entry.get("target_id"),
            entry.get("reason"),
            extra={"audit_entry": entry},
        )

        if self.forward_url:
            self._send(entry)

    def _send(self, entry: dict) -> None:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        headers = {}
        if self.forward_api_key:
            headers["X-API-Key"] = self.forward_api_key
        try:
            self._client.post(self.forward_url, json=entry, headers=headers)
        except httpx.HTTPError:
            log.debug("Failed to forward audit entry to collector")

    def record(
        self,
        *,
        action: str,
        outcome: Outcome,
        principal_id: Optional[str] = None,
        username: Optional[str] = None,
        target_id: Optional[str] = None,
        document_id: Optional[str] = None,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.log_event(
            {
                "action": action,
                "outcome": outcome,
                "principal_id": principal_id,
                "username": username,
                "target_id": target_id,
                "document_id": document_id,
                "reason": reason,
                "details": details or {},
            }
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
