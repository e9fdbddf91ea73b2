"""Jira Cloud REST client handed to handlers through the invocation context."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests

logger = logging.getLogger(__name__)


def _adf_paragraph(text: str) -> dict[str, Any]:
    """Wrap plain text in an Atlassian Document Format document."""

    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


class JiraClient:
    """Small wrapper around the Jira Cloud v3 API (basic auth with an API token)."""

    def __init__(
        self,
        *,
        instance_url: str,
        email: str,
        api_token: str,
        session: requests.Session | None = None,
    ) -> None:
        if not instance_url:
            raise ValueError("Jira instance_url is required")
        if not email or not api_token:
            raise ValueError("Jira email and api_token are required")

        self._api_url = f"{instance_url.rstrip('/')}/rest/api/3"
        self._session = session or requests.Session()
        self._session.auth = (email, api_token)
        self._session.headers.update(
            {"Accept": "application/json", "User-Agent": "floww-runtime"}
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> JiraClient:
        return cls(
            instance_url=str(config.get("instance_url") or config.get("instanceUrl") or ""),
            email=str(config.get("email") or ""),
            api_token=str(config.get("api_token") or config.get("apiToken") or ""),
        )

    def _url(self, path: str) -> str:
        return f"{self._api_url}/{path.lstrip('/')}"

    def get_issue(self, issue_id_or_key: str, fields: list[str] | None = None) -> dict[str, Any]:
        params = {"fields": ",".join(fields)} if fields else None
        resp = self._session.get(self._url(f"issue/{issue_id_or_key}"), params=params, timeout=30)
        resp.raise_for_status()
        return resp.json()

    def add_comment(self, issue_id_or_key: str, text: str) -> dict[str, Any]:
        if not text.strip():
            raise ValueError("comment text is required")
        resp = self._session.post(
            self._url(f"issue/{issue_id_or_key}/comment"),
            json={"body": _adf_paragraph(text)},
            timeout=30,
        )
        resp.raise_for_status()
        logger.info("Added Jira comment", extra={"issue": issue_id_or_key})
        return resp.json()

    def get_transitions(self, issue_id_or_key: str) -> list[dict[str, Any]]:
        resp = self._session.get(self._url(f"issue/{issue_id_or_key}/transitions"), timeout=30)
        resp.raise_for_status()
        transitions = resp.json().get("transitions")
        return transitions if isinstance(transitions, list) else []

    def transition_issue(self, issue_id_or_key: str, transition_id: str) -> None:
        resp = self._session.post(
            self._url(f"issue/{issue_id_or_key}/transitions"),
            json={"transition": {"id": transition_id}},
            timeout=30,
        )
        resp.raise_for_status()

    def close(self) -> None:
        self._session.close()
