from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from portal_audit.config import USER_AGENT

logger = logging.getLogger(__name__)


@dataclass
class FetchedPage:
    url: str
    status: int
    html: str
    headers: dict[str, str] = field(default_factory=dict)


class PageFetcher:
    """Fetches target-site resources over one shared client.

    The audited page itself is downloaded once per run: concurrent callers of
    ``fetch_html`` for the same URL await the same in-flight request.
    """

    def __init__(self, client: httpx.AsyncClient, timeout_s: float = 15.0, user_agent: str = USER_AGENT):
        self.client = client
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._pages: dict[str, asyncio.Task[FetchedPage]] = {}

    @property
    def headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}

    async def _download(self, url: str) -> FetchedPage:
        response = await self.client.get(url, headers=self.headers, timeout=self.timeout_s, follow_redirects=True)
        return FetchedPage(
            url=str(response.url),
            status=response.status_code,
            html=response.text or "",
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def fetch_html(self, url: str) -> FetchedPage:
        task = self._pages.get(url)
        if task is None:
            task = asyncio.ensure_future(self._download(url))
            self._pages[url] = task
        return await asyncio.shield(task)

    async def exists(self, url: str) -> bool:
        try:
            response = await self.client.get(url, headers=self.headers, timeout=self.timeout_s, follow_redirects=True)
        except Exception as exc:
            logger.debug("existence check failed for %s: %s", url, exc)
            return False
        return response.is_success

    async def probe(self, url: str) -> Optional[httpx.Response]:
        try:
            return await self.client.head(url, headers=self.headers, timeout=self.timeout_s, follow_redirects=True)
        except Exception as exc:
            logger.debug("HEAD probe failed for %s: %s", url, exc)
            return None

    async def get_json(self, url: str) -> Any:
        response = await self.client.get(url, headers=self.headers, timeout=self.timeout_s, follow_redirects=True)
        response.raise_for_status()
        return response.json()
