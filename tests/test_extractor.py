from __future__ import annotations

import asyncio

import httpx

from portal_audit.engine.extractor import PageAnalyzer, extract_page_facts
from portal_audit.engine.fetcher import PageFetcher

ALL_HEADERS = {
    "strict-transport-security": "max-age=31536000",
    "x-frame-options": "DENY",
    "x-content-type-options": "nosniff",
    "content-security-policy": "default-src 'self'",
    "referrer-policy": "strict-origin",
}


def test_extracts_seo_fields(site_html):
    facts = extract_page_facts("https://acme.test/", site_html, {})

    assert facts.title == "Acme Plumbing - Emergency Plumbers in Springfield"
    assert facts.title_length == 49
    assert facts.meta_description == "Short description."
    assert facts.meta_description_length == 18
    assert facts.has_h1 and facts.h1_count == 1
    assert facts.h1_text == "Plumbing done right"
    assert facts.canonical == "https://acme.test/"
    assert facts.og_title == "Acme Plumbing"
    assert facts.has_viewport
    assert facts.has_json_ld
    assert facts.schema_markup.types == ["LocalBusiness"]


def test_security_score_all_headers_over_https():
    facts = extract_page_facts("https://acme.test/", "<html></html>", ALL_HEADERS)
    assert facts.security_score == 100


def test_security_score_https_only():
    facts = extract_page_facts("https://acme.test/", "<html></html>", {})

    assert facts.is_https
    assert facts.security_score == 30


def test_security_score_without_https():
    facts = extract_page_facts("http://acme.test/", "<html></html>", ALL_HEADERS)
    assert facts.security_score == 70


def test_page_analyzer_checks_robots_and_sitemap(site_handler, make_client):
    seen: list[str] = []
    handler = site_handler()

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        return handler(request)

    async def scenario():
        async with make_client(recording) as client:
            return await PageAnalyzer(PageFetcher(client)).analyze("https://acme.test/")

    facts = asyncio.run(scenario())

    assert facts.has_robots_txt is True
    assert facts.has_sitemap is False
    assert facts.has_hsts is True
    assert facts.security_score == 45
    assert "GET /robots.txt" in seen and "GET /sitemap.xml" in seen


def test_page_analyzer_degrades_when_site_is_down(site_handler, make_client):
    async def scenario():
        async with make_client(site_handler(site_down=True)) as client:
            return await PageAnalyzer(PageFetcher(client)).analyze("https://acme.test/")

    facts = asyncio.run(scenario())

    assert facts.security_score == 0
    assert facts.is_https is False
    assert facts.schema_markup.found is False
    assert facts.schema_markup.types == []
    assert facts.schema_markup.score == 0


def test_fetcher_downloads_page_once(site_handler, make_client):
    calls = []
    handler = site_handler()

    def counting(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/":
            calls.append(request.headers["user-agent"])
        return handler(request)

    async def scenario():
        async with make_client(counting) as client:
            fetcher = PageFetcher(client)
            return await asyncio.gather(fetcher.fetch_html("https://acme.test/"), fetcher.fetch_html("https://acme.test/"))

    first, second = asyncio.run(scenario())

    assert first is second
    assert calls == ["Mozilla/5.0 (compatible; UptradeAuditBot/1.0)"]
