"""
Render log client for the /api/logs passthrough.

Fetches the most recent service logs from the Render API and flattens
them to "<timestamp> - <message>" lines.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class RenderLogError(Exception):
    """Logs could not be fetched."""

    pass


class RenderNotConfiguredError(RenderLogError):
    """API key or service id missing."""

    pass


class RenderLogClient:
    """Thin async client for the Render logs endpoint."""

    def __init__(self, config: Any, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def fetch_logs(self) -> str:
        """Fetch recent logs as plain text.

        Raises:
            RenderNotConfiguredError: If API key or service id is missing
            RenderLogError: If the request fails or the body is unexpected
        """
        if not self.config.is_configured:
            raise RenderNotConfiguredError("Render API key or service id not configured")

        try:
            response = await self._client.get(
                f"/v1/services/{self.config.service_id}/logs",
                params={"limit": self.config.log_limit},
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
            response.raise_for_status()
            entries = response.json()
        except httpx.HTTPStatusError as e:
            raise RenderLogError(
                f"Render API returned {e.response.status_code}: {e.response.text}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise RenderLogError(f"Render API request failed: {e}") from e

        if not isinstance(entries, list):
            raise RenderLogError("Render API returned an unexpected body")

        lines = []
        for entry in entries:
            log = entry.get("log", entry) if isinstance(entry, dict) else {}
            lines.append(f"{log.get('timestamp', '')} - {log.get('message', '')}")
        return "\n".join(lines)

    async def close(self) -> None:
        await self._client.aclose()
