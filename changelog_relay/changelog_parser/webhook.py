"""JSON webhook delivery."""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import requests

DEFAULT_TIMEOUT = 30

SENSITIVE_HEADER_KEYS = (
    "authorization",
    "x-api-key",
    "x-dx-logs-key",
    "api-key",
    "apikey",
    "token",
)


class WebhookError(RuntimeError):
    """Non-2xx response from the webhook endpoint."""

    def __init__(self, status_code: int, body: str, request_details: Mapping[str, Any]) -> None:
        self.status_code = status_code
        self.body = body
        self.request_details = dict(request_details)
        details = json.dumps(self.request_details, indent=2, default=str)
        super().__init__(f"HTTP {status_code}: {body}\n\nRequest Details:\n{details}")


def mask_sensitive_headers(headers: Mapping[str, Any]) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in headers.items():
        lowered = key.lower()
        if any(sensitive in lowered for sensitive in SENSITIVE_HEADER_KEYS):
            masked[key] = f"{str(value)[:4]}..." if value else "[REDACTED]"
        else:
            masked[key] = value
    return masked


def post_json(
    url: str,
    method: str,
    headers: Mapping[str, str] | None,
    body: Mapping[str, Any],
    *,
    session: requests.Session | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Response:
    """Send ``body`` as JSON; raise :class:`WebhookError` unless the status is 2xx."""
    request_headers = {"Content-Type": "application/json", **(headers or {})}
    data = json.dumps(body).encode("utf-8")
    send = session.request if session is not None else requests.request
    response = send(
        (method or "POST").upper(),
        url,
        data=data,
        headers=request_headers,
        timeout=timeout,
    )
    if not 200 <= response.status_code < 300:
        raise WebhookError(
            response.status_code,
            response.text,
            {
                "url": url,
                "method": (method or "POST").upper(),
                "headers": mask_sensitive_headers(request_headers),
                "body": body,
            },
        )
    return response
