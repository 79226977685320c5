from __future__ import annotations

import logging
from typing import Optional

import httpx

from portal_audit.config import PAGESPEED_ENDPOINT
from portal_audit.engine.models import LighthouseRun, PerformanceFacts

logger = logging.getLogger(__name__)

# "pwa" is still requested; Google deprecated it, PwaAnalyzer produces the real score.
CATEGORIES = ["performance", "accessibility", "best-practices", "seo", "pwa"]


def build_params(url: str, strategy: str, api_key: str = "") -> list[tuple[str, str]]:
    params = [("url", url), ("strategy", strategy)]
    params.extend(("category", category) for category in CATEGORIES)
    if api_key:
        params.append(("key", api_key))
    return params


class PerformanceAnalyzer:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str = "",
        timeout_s: float = 60.0,
        endpoint: str = PAGESPEED_ENDPOINT,
    ):
        self.client = client
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.endpoint = endpoint

    async def _call(self, url: str, strategy: str) -> Optional[LighthouseRun]:
        try:
            response = await self.client.get(
                self.endpoint,
                params=build_params(url, strategy, self.api_key),
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as exc:
            logger.error("PageSpeed %s error for %s: %s", strategy, url, exc)
            return None

        if not response.is_success:
            logger.error("PageSpeed %s failed for %s: HTTP %s", strategy, url, response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.error("PageSpeed %s returned invalid JSON for %s", strategy, url)
            return None
        if not isinstance(payload, dict):
            return None
        return LighthouseRun.from_payload(payload)

    async def analyze(self, url: str) -> PerformanceFacts:
        # desktop is not queried
        mobile = await self._call(url, "mobile")
        return PerformanceFacts(mobile=mobile, desktop=None)
