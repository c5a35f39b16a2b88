"""Web search for the internet context source (Serper API over httpx)."""

import logging
import os
from dataclasses import dataclass

import httpx

from config.config_loader import SearchConfig

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    title: str
    snippet: str
    link: str = ""


class SerperSearch:
    """Google results through serper.dev. Returns no hits without an API key."""

    def __init__(self, config: SearchConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._api_key = os.environ.get(config.api_key_env, "").strip()
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str, num: int | None = None) -> list[SearchHit]:
        """Search the web. A malformed response body yields no hits.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response.
        """
        if not self.enabled:
            logger.info("Web search skipped: %s not set", self._config.api_key_env)
            return []

        payload = {"q": query, "num": num or self._config.num_results}
        headers = {"X-API-KEY": self._api_key, "Content-Type": "application/json"}

        if self._client is not None:
            response = await self._client.post(self._config.url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._config.timeout_sec) as client:
                response = await client.post(self._config.url, json=payload, headers=headers)
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as exc:
            logger.warning("Web search returned a non-JSON body: %s", exc)
            return []
        organic = data.get("organic") if isinstance(data, dict) else None
        if not isinstance(organic, list):
            logger.warning("Web search response has no 'organic' result list")
            return []

        hits = [
            SearchHit(
                title=str(item.get("title", "")),
                snippet=str(item.get("snippet", "")),
                link=str(item.get("link", "")),
            )
            for item in organic
            if isinstance(item, dict)
        ]
        logger.info("Web search '%s': %d hits", query, len(hits))
        return hits
