from __future__ import annotations

import json
import logging

import httpx

from clients.types import EntitySource
from entities.decode import decode_entity_list
from entities.types import Entity, EntityFilters
from geo.viewport import Viewport
from sync.errors import NetworkError, ParseError

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 1000


def _flag(v: bool) -> str:
    return "true" if v else "false"


class DataApiClient(EntitySource):
    """
    Async HTTP client for the map entities endpoint.

    Pass `client` to share a connection pool (or a mock transport in tests); otherwise
    the instance owns one and `aclose()` releases it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        path: str = "/api/entities/map",
        limit: int = DEFAULT_LIMIT,
        timeout_s: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.path = path
        self.limit = int(limit)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def params_for(self, viewport: Viewport, filters: EntityFilters) -> dict[str, str]:
        return {
            "bounds": viewport.to_bounds_param(),
            "limit": str(self.limit),
            "showPublic": _flag(filters.show_public),
            "showPrivate": _flag(filters.show_private),
        }

    async def fetch_entities(
        self, viewport: Viewport, filters: EntityFilters
    ) -> list[Entity]:
        try:
            resp = await self._client.get(self.path, params=self.params_for(viewport, filters))
        except httpx.HTTPError as e:
            raise NetworkError(f"Data API request failed: {type(e).__name__}: {e}") from e

        if resp.status_code >= 400:
            raise NetworkError(
                f"Data API request failed: {resp.status_code}", status_code=resp.status_code
            )

        try:
            payload = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Data API returned invalid JSON: {e}") from e

        entities = decode_entity_list(payload)
        log.debug("data api returned %d entities for %s", len(entities), viewport.key())
        return entities
