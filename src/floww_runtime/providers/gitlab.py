"""GitLab REST client handed to handlers through the invocation context.

Covers what merge-request and issue comment handlers typically need: read the
object that triggered them and post a note back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://gitlab.com"


class GitLabClient:
    """Small wrapper around the GitLab v4 API."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
    ) -> None:
        if not token:
            raise ValueError("GitLab token is required")

        self._api_url = f"{base_url.rstrip('/')}/api/v4"
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "PRIVATE-TOKEN": token,
                "Accept": "application/json",
                "User-Agent": "floww-runtime",
            }
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> GitLabClient:
        token = config.get("token") or config.get("access_token") or ""
        base_url = config.get("base_url") or config.get("baseUrl") or DEFAULT_BASE_URL
        return cls(token=str(token), base_url=str(base_url))

    def _project_url(self, project_id: str | int, suffix: str = "") -> str:
        if suffix and not suffix.startswith("/"):
            suffix = "/" + suffix
        return f"{self._api_url}/projects/{quote(str(project_id), safe='')}{suffix}"

    def _get(self, url: str) -> Any:
        resp = self._session.get(url, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def _post(self, url: str, payload: dict[str, Any]) -> Any:
        resp = self._session.post(url, json=payload, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def get_project(self, project_id: str | int) -> dict[str, Any]:
        return self._get(self._project_url(project_id))

    def get_merge_request(self, project_id: str | int, merge_request_iid: int) -> dict[str, Any]:
        return self._get(self._project_url(project_id, f"merge_requests/{merge_request_iid}"))

    def create_merge_request_note(
        self, project_id: str | int, merge_request_iid: int, body: str
    ) -> dict[str, Any]:
        if not body.strip():
            raise ValueError("note body is required")
        url = self._project_url(project_id, f"merge_requests/{merge_request_iid}/notes")
        note = self._post(url, {"body": body})
        logger.info(
            "Posted merge request note",
            extra={"project_id": str(project_id), "merge_request_iid": merge_request_iid},
        )
        return note

    def get_issue(self, project_id: str | int, issue_iid: int) -> dict[str, Any]:
        return self._get(self._project_url(project_id, f"issues/{issue_iid}"))

    def create_issue_note(self, project_id: str | int, issue_iid: int, body: str) -> dict[str, Any]:
        if not body.strip():
            raise ValueError("note body is required")
        return self._post(self._project_url(project_id, f"issues/{issue_iid}/notes"), {"body": body})

    def close(self) -> None:
        self._session.close()
