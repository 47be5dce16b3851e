"""Shared httpx client construction."""

from __future__ import annotations

from typing import Any

import httpx

from wingman.config import HttpConfig


def make_client(
    http: HttpConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    **kwargs: Any,
) -> httpx.AsyncClient:
    """Build a per-call AsyncClient.

    Certificate validation follows ``http.verify_ssl`` for this client only.
    ``transport`` lets tests substitute ``httpx.MockTransport``.
    """
    return httpx.AsyncClient(
        timeout=http.timeout,
        verify=http.verify_ssl,
        transport=transport,
        **kwargs,
    )


def error_body(response: httpx.Response) -> Any:
    """Best-effort parsed error body: JSON if possible, else trimmed text."""
    try:
        return response.json()
    except ValueError:
        return response.text[:500]
