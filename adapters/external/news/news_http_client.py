import logging
from typing import Any, List, Optional

import httpx

from config.settings import settings
from core.gateways.advisory_gateway import NewsGateway


class NewsHttpClient(NewsGateway):
    """
    Headline feed for the tuner's news digest.

    Accepts either a JSON list or an object with `articles` / `results` /
    `data`; each item may be a string or carry `title` / `headline`.
    Transport and status errors raise httpx errors so the caller's retry
    policy can act on them.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_sec: Optional[float] = None,
    ) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._url = url if url is not None else settings.NEWS_API_URL
        self._api_key = api_key if api_key is not None else settings.NEWS_API_KEY
        self._timeout = float(timeout_sec or settings.NEWS_TIMEOUT_SEC)

    @staticmethod
    def _titles(data: Any) -> List[str]:
        if isinstance(data, dict):
            data = data.get("articles") or data.get("results") or data.get("data") or []
        titles: List[str] = []
        for item in data if isinstance(data, list) else []:
            if isinstance(item, str):
                title = item
            elif isinstance(item, dict):
                title = item.get("title") or item.get("headline") or ""
            else:
                continue
            title = str(title).strip()
            if title:
                titles.append(title)
        return titles

    async def fetch_headlines(self, limit: int = 20) -> List[str]:
        if not self._url:
            return []
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            r = await client.get(self._url, headers=headers)
            r.raise_for_status()
            return self._titles(r.json())[: int(limit)]
