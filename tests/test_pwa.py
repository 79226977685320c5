from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from portal_audit.engine.fetcher import PageFetcher
from portal_audit.engine.models import ManifestFacts, PwaFacts
from portal_audit.engine.pwa import PwaAnalyzer, generate_pwa_issues, parse_manifest, score_pwa


def test_https_only_site():
    facts = PwaFacts(is_https=True)
    issues = generate_pwa_issues(facts)

    assert score_pwa(facts) == 25
    assert [issue.title for issue in issues] == [
        "Missing Web App Manifest",
        "No Service Worker Detected",
        "Missing Apple Touch Icon",
        "Missing Theme Color",
        "Missing Viewport Meta Tag",
    ]
    assert [issue.points for issue in issues] == [15, 15, 5, 5, 0]


def test_manifest_sub_issues_need_a_parsed_manifest():
    facts = PwaFacts(is_https=True, has_manifest_link=True, manifest=ManifestFacts(has_name=True, has_icons=True))
    titles = [issue.title for issue in generate_pwa_issues(facts)]

    assert "Manifest Missing Start URL" in titles
    assert "Manifest Missing Display Mode" in titles
    assert "Manifest Missing Name" not in titles

    unreadable = PwaFacts(is_https=True, has_manifest_link=True, manifest=None)
    assert not any(t.startswith("Manifest Missing") for t in (i.title for i in generate_pwa_issues(unreadable)))


def test_full_marks():
    facts = PwaFacts(
        is_https=True,
        has_manifest_link=True,
        has_service_worker=True,
        has_apple_touch_icon=True,
        has_theme_color=True,
        has_viewport=True,
        manifest=ManifestFacts(has_name=True, has_icons=True, has_start_url=True, has_display=True),
    )

    assert score_pwa(facts) == 100
    assert generate_pwa_issues(facts) == []


def test_missing_facts_are_treated_as_degraded():
    titles = [issue.title for issue in generate_pwa_issues(None)]
    assert titles[0] == "Site Not Using HTTPS"
    assert len(titles) == 6
    assert titles == [issue.title for issue in generate_pwa_issues(PwaFacts.degraded())]


def test_parse_manifest_rejects_non_objects():
    with pytest.raises(ValueError):
        parse_manifest(["not", "a", "manifest"])

    manifest = parse_manifest({"short_name": "Acme", "icons": [{"src": "/a.png", "sizes": "192x192"}] * 7})
    assert manifest.has_name and manifest.has_icons
    assert len(manifest.icons) == 5


PWA_HTML = """<html><head>
<link rel="manifest" href="/app.webmanifest">
<link rel="apple-touch-icon" href="/icon.png">
<meta name="theme-color" content="#123456">
<meta name="viewport" content="width=device-width">
</head><body></body></html>"""


def _pwa_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/":
        return httpx.Response(200, text=PWA_HTML)
    if request.url.path == "/app.webmanifest":
        body = {"name": "Acme", "icons": [{"src": "/i.png"}], "start_url": "/", "display": "standalone"}
        return httpx.Response(200, content=json.dumps(body))
    if request.url.path == "/sw.js" and request.method == "HEAD":
        return httpx.Response(200, headers={"Content-Type": "application/javascript"})
    return httpx.Response(404)


def test_analyzer_finds_bundled_service_worker(make_client):
    async def scenario():
        async with make_client(_pwa_handler) as client:
            return await PwaAnalyzer(PageFetcher(client)).analyze("https://acme.test/")

    facts = asyncio.run(scenario())

    assert facts.manifest_url == "https://acme.test/app.webmanifest"
    assert facts.has_service_worker
    assert facts.manifest is not None and facts.manifest.has_display
    assert facts.score == 100


def test_analyzer_keeps_going_when_manifest_is_broken(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/app.webmanifest":
            return httpx.Response(200, text="{not json")
        return _pwa_handler(request)

    async def scenario():
        async with make_client(handler) as client:
            return await PwaAnalyzer(PageFetcher(client)).analyze("https://acme.test/")

    facts = asyncio.run(scenario())

    assert facts.has_manifest_link
    assert facts.manifest is None
    # https 25 + link 15 + service worker 15 + touch icon 5 + theme color 5
    assert facts.score == 65


def test_analyzer_degrades_when_site_is_down(site_handler, make_client):
    async def scenario():
        async with make_client(site_handler(site_down=True)) as client:
            return await PwaAnalyzer(PageFetcher(client)).analyze("https://acme.test/")

    facts = asyncio.run(scenario())
    assert facts == PwaFacts.degraded()
