"""Execution status reporting to the backend.

Runtime images notify the backend when an execution completes or fails so it can
track execution history. Reporting is best-effort: failures are logged and never
change the dispatch result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from floww_runtime.runtime.log_capture import StructuredLogEntry

logger = logging.getLogger(__name__)


def report_execution_status(
    *,
    backend_url: str,
    execution_id: str,
    auth_token: str,
    logs: Sequence[StructuredLogEntry] = (),
    duration_ms: int | None = None,
    error: str | None = None,
    timeout: float = 10.0,
    session: requests.Session | None = None,
) -> bool:
    """POST the execution outcome to `{backend_url}/api/executions/{id}/complete`.

    Returns:
        True if the backend accepted the report.
    """

    url = f"{backend_url.rstrip('/')}/api/executions/{execution_id}/complete"
    body: dict[str, Any] = {"logs": [entry.to_json() for entry in logs]}
    if error is not None:
        body["error"] = {"message": error}
    if duration_ms is not None:
        body["duration_ms"] = duration_ms

    http = session or requests.Session()
    try:
        resp = http.post(
            url,
            json=body,
            headers={"Authorization": f"Bearer {auth_token}"},
            timeout=timeout,
        )
    except requests.RequestException:
        logger.exception("Error reporting execution status", extra={"execution_id": execution_id})
        return False
    finally:
        if session is None:
            http.close()

    if not resp.ok:
        logger.error(
            "Failed to report execution status",
            extra={"execution_id": execution_id, "status_code": resp.status_code},
        )
        return False
    return True
