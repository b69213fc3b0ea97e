# Overview: Factory for outbound httpx clients used by the gateway services.

"""
Outbound HTTP client factory.

Every call to the slicer, the shipping-rate API and the payment gateway
goes through build_client() so that timeouts are configured in one place.
Tests replace this function to route requests to an httpx.MockTransport.
"""

from __future__ import annotations

import httpx
from flask import current_app


def default_timeout() -> float:
    return float(current_app.config.get("HTTP_TIMEOUT_SECONDS", 30))


def build_client(
    base_url: str = "",
    *,
    timeout: float | None = None,
    headers: dict | None = None,
    auth: tuple[str, str] | None = None,
) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=timeout if timeout is not None else default_timeout(),
        headers=headers,
        auth=auth,
    )
