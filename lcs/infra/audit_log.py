# lcs/infra/audit_log.py
"""
Audit mirror for the dispatch pipeline.

Every audit event and ORBT error record that is appended to the
event/error log is also emitted on a dedicated logger named "audit",
separate from the application log, so it can be routed to its own
file or sink via logging configuration.

The database tables (lcs_event, lcs_err0) stay the source of truth;
this logger is for operators tailing a stream.
"""
from __future__ import annotations

import logging
from typing import Any

_audit_logger = logging.getLogger("audit")


def audit_event(
    action: str,
    *,
    communication_id: str | None = None,
    message_run_id: str | None = None,
    company_id: str | None = None,
    detail: str = "",
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Record an audit event.

    Args:
        action: Action name (e.g., "event.SIGNAL_RECEIVED", "orbt.AUTO_RETRY")
        communication_id: Communication id (None before Step 4)
        message_run_id: Message run id (None before Step 6)
        company_id: Sovereign company the event belongs to
        detail: Human-readable detail
        extra: Additional structured context
    """
    record = {
        "audit_action": action,
        "communication_id": communication_id or "",
        "message_run_id": message_run_id or "",
        "company_id": company_id or "",
        "detail": detail,
    }
    if extra:
        record.update(extra)

    _audit_logger.info(
        f"AUDIT: {action} comm={communication_id or '-'} company={company_id or '-'} {detail}",
        extra=record,
    )
