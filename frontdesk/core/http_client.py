"""Shared HTTP client for the appointment service."""

import httpx

from frontdesk.config import settings

# Global client instance, one connection pool for all actor sessions
_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """
    Get or create the appointment service HTTP client.

    Actor headers are sent per request, so the pool is safe to share.

    Returns:
        Async HTTP client bound to the appointment service base URL
    """
    global _http_client

    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            base_url=settings.appointment_service_url,
            timeout=settings.appointment_service_timeout,
            headers={"Accept": "application/json"},
        )

    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client."""
    global _http_client

    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
