from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest

SITE_HTML = """<!doctype html>
<html>
<head>
  <title>Acme Plumbing - Emergency Plumbers in Springfield</title>
  <meta name="description" content="Short description.">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta property="og:title" content="Acme Plumbing">
  <link rel="canonical" href="https://acme.test/">
  <link rel="manifest" href="/manifest.json">
  <script type="application/ld+json">{"@type": "LocalBusiness", "name": "Acme"}</script>
</head>
<body><h1>Plumbing done right</h1></body>
</html>"""


def _pagespeed_payload(
    performance: Optional[float] = 0.9,
    seo: Optional[float] = 0.95,
    accessibility: Optional[float] = 0.88,
    best_practices: Optional[float] = 0.92,
    audits: Optional[dict[str, Any]] = None,
    final_url: str = "https://acme.test/",
) -> dict[str, Any]:
    categories: dict[str, Any] = {}
    for key, score in [
        ("performance", performance),
        ("seo", seo),
        ("accessibility", accessibility),
        ("best-practices", best_practices),
    ]:
        if score is not None:
            categories[key] = {"score": score}
    merged = {
        "largest-contentful-paint": {"numericValue": 3500},
        "first-contentful-paint": {"numericValue": 1200},
        "cumulative-layout-shift": {"numericValue": 0.05},
        "total-blocking-time": {"numericValue": 150},
        "interactive": {"numericValue": 3000},
        "speed-index": {"numericValue": 2000},
        "max-potential-fid": {"numericValue": 90},
        "network-requests": {
            "details": {
                "items": [
                    {"url": "https://acme.test/hero.jpg", "transferSize": 204800},
                    {"url": "https://cdn.vendor.test/lib.js", "transferSize": 51200},
                ]
            }
        },
    }
    merged.update(audits or {})
    return {"lighthouseResult": {"finalUrl": final_url, "categories": categories, "audits": merged}}


def _site_handler(
    pagespeed: Optional[dict[str, Any]] = None,
    pagespeed_status: int = 200,
    html: str = SITE_HTML,
    site_down: bool = False,
    llm_content: Any = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Routes the outbound calls of one audit run to canned responses."""
    psi = pagespeed if pagespeed is not None else _pagespeed_payload()

    def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        if host == "www.googleapis.com":
            return httpx.Response(pagespeed_status, json=psi)
        if host == "api.openai.com":
            if llm_content is None:
                return httpx.Response(500)
            return httpx.Response(200, json={"choices": [{"message": {"content": llm_content}}]})
        if site_down:
            raise httpx.ConnectError("connection refused", request=request)
        if path == "/":
            return httpx.Response(
                200,
                text=html,
                headers={"Content-Type": "text/html", "Strict-Transport-Security": "max-age=31536000"},
            )
        if path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *")
        if path == "/manifest.json":
            return httpx.Response(200, content=json.dumps({"name": "Acme", "icons": []}))
        return httpx.Response(404)

    return handler


@pytest.fixture
def make_client():
    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def pagespeed_payload():
    return _pagespeed_payload


@pytest.fixture
def site_handler():
    return _site_handler


@pytest.fixture
def site_html() -> str:
    return SITE_HTML
