from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from clients.types import IngestionResult, IngestionTrigger
from geo.viewport import Viewport
from sync.errors import IngestionError

log = logging.getLogger(__name__)


class IngestionClient(IngestionTrigger):
    """
    Async HTTP client for the viewport ingestion trigger.

    Every failure (transport, status, body) surfaces as `IngestionError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        path: str = "/api/ingest/viewport",
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.path = path
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def trigger(
        self, viewport: Viewport, *, sources: list[str], region: str
    ) -> IngestionResult:
        body = {"bounds": viewport.as_dict(), "sources": list(sources), "region": region}
        try:
            resp = await self._client.post(self.path, json=body)
        except httpx.HTTPError as e:
            raise IngestionError(f"Ingestion request failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise IngestionError(f"Ingestion request failed: {resp.status_code}")

        try:
            payload = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise IngestionError(f"Ingestion returned invalid JSON: {e}") from e

        return IngestionResult(
            added_count=_added_count(payload), region=_region(payload) or region
        )


def _added_count(payload: Any) -> int:
    if not isinstance(payload, dict):
        raise IngestionError("Ingestion response must be an object")
    if payload.get("success") is False:
        reason = payload.get("error") or payload.get("message") or "unknown error"
        raise IngestionError(f"Ingestion reported failure: {reason}")
    raw = payload.get("addedCount")
    if raw is None and isinstance(payload.get("data"), dict):
        raw = payload["data"].get("addedCount")
    if raw is None:
        raise IngestionError("Ingestion response is missing `addedCount`")
    try:
        n = int(raw)
    except (TypeError, ValueError) as e:
        raise IngestionError(f"Invalid addedCount: {raw!r}") from e
    return max(0, n)


def _region(payload: dict[str, Any]) -> str | None:
    r = payload.get("region")
    return str(r) if r else None
