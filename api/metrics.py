"""
Prometheus metrics for FileGate.

- File operation outcomes (allowed, denied by reason, not found, invalid)
- Storage inconsistencies needing remediation
"""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# File operations by action, outcome and denial reason
FILE_OPERATIONS = Counter(
    "filegate_file_operations_total",
    "File operations processed, by action and outcome",
    ["action", "outcome", "reason"],
)

# Record/content divergence (never expected, always paged)
STORAGE_INCONSISTENCIES = Counter(
    "filegate_storage_inconsistencies_total",
    "Count of file deletions where record and stored content diverged",
)


def record_operation(action: str, outcome: str, reason: str | None = None) -> None:
    FILE_OPERATIONS.labels(action=action, outcome=outcome, reason=reason or "").inc()


def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
