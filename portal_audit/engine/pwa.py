from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from portal_audit.engine.fetcher import PageFetcher
from portal_audit.engine.models import Issue, ManifestFacts, PwaFacts

logger = logging.getLogger(__name__)

SERVICE_WORKER_HINTS = re.compile(r"navigator\.serviceWorker\.register|workbox|sw\.js", re.I)
MAX_MANIFEST_ICONS = 5


@dataclass(frozen=True)
class RubricCheck:
    """One installability check: its score weight and the issue raised when it fails."""

    key: str
    weight: int
    passes: Callable[[PwaFacts], bool]
    issue: Issue
    needs_manifest: bool = False


def _manifest_flag(name: str) -> Callable[[PwaFacts], bool]:
    return lambda facts: bool(facts.manifest and getattr(facts.manifest, name))


RUBRIC: list[RubricCheck] = [
    RubricCheck(
        "https",
        25,
        lambda facts: facts.is_https,
        Issue(
            "Site Not Using HTTPS",
            "critical",
            "HTTPS is required for PWA features and service workers",
            "Install an SSL certificate and redirect HTTP to HTTPS",
        ),
    ),
    RubricCheck(
        "manifest_link",
        15,
        lambda facts: facts.has_manifest_link,
        Issue(
            "Missing Web App Manifest",
            "warning",
            "No manifest.json linked in the HTML",
            'Add a manifest.json file and link it with <link rel="manifest" href="/manifest.json">',
        ),
    ),
    RubricCheck(
        "manifest_name",
        10,
        _manifest_flag("has_name"),
        Issue(
            "Manifest Missing Name",
            "warning",
            "The manifest.json is missing a name or short_name",
            'Add "name" and "short_name" to your manifest.json',
        ),
        needs_manifest=True,
    ),
    RubricCheck(
        "manifest_icons",
        10,
        _manifest_flag("has_icons"),
        Issue(
            "Manifest Missing Icons",
            "warning",
            "The manifest.json has no icons array",
            "Add icons in multiple sizes (192x192 and 512x512 minimum) to your manifest",
        ),
        needs_manifest=True,
    ),
    RubricCheck(
        "manifest_start_url",
        10,
        _manifest_flag("has_start_url"),
        Issue(
            "Manifest Missing Start URL",
            "info",
            "The manifest.json is missing start_url",
            'Add "start_url": "/" to your manifest.json',
        ),
        needs_manifest=True,
    ),
    RubricCheck(
        "manifest_display",
        5,
        _manifest_flag("has_display"),
        Issue(
            "Manifest Missing Display Mode",
            "info",
            "The manifest.json is missing display mode",
            'Add "display": "standalone" or "fullscreen" to your manifest',
        ),
        needs_manifest=True,
    ),
    RubricCheck(
        "service_worker",
        15,
        lambda facts: facts.has_service_worker,
        Issue(
            "No Service Worker Detected",
            "warning",
            "No service worker registration found - required for offline support and PWA installability",
            "Register a service worker to enable offline caching and push notifications",
        ),
    ),
    RubricCheck(
        "apple_touch_icon",
        5,
        lambda facts: facts.has_apple_touch_icon,
        Issue(
            "Missing Apple Touch Icon",
            "info",
            "No apple-touch-icon found for iOS devices",
            'Add <link rel="apple-touch-icon" href="/apple-touch-icon.png"> with a 180x180 icon',
        ),
    ),
    RubricCheck(
        "theme_color",
        5,
        lambda facts: facts.has_theme_color,
        Issue(
            "Missing Theme Color",
            "info",
            "No theme-color meta tag found",
            'Add <meta name="theme-color" content="#yourcolor"> to match your brand',
        ),
    ),
    RubricCheck(
        "viewport",
        0,
        lambda facts: facts.has_viewport,
        Issue(
            "Missing Viewport Meta Tag",
            "info",
            "No viewport meta tag found - the page will not scale on mobile devices",
            'Add <meta name="viewport" content="width=device-width, initial-scale=1">',
        ),
    ),
]


def _applies(check: RubricCheck, facts: PwaFacts) -> bool:
    # manifest sub-checks only mean something once a manifest was actually read
    return not check.needs_manifest or (facts.has_manifest_link and facts.manifest is not None)


def score_pwa(facts: PwaFacts) -> int:
    return sum(check.weight for check in RUBRIC if check.passes(facts))


def generate_pwa_issues(facts: Optional[PwaFacts]) -> list[Issue]:
    facts = facts or PwaFacts.degraded()
    issues: list[Issue] = []
    for check in RUBRIC:
        if not _applies(check, facts) or check.passes(facts):
            continue
        template = check.issue
        issues.append(
            Issue(
                title=template.title,
                severity=template.severity,
                description=template.description,
                recommendation=template.recommendation,
                points=check.weight,
            )
        )
    return issues


def parse_manifest(manifest: Any) -> ManifestFacts:
    if not isinstance(manifest, dict):
        raise ValueError("manifest is not a JSON object")
    icons = manifest.get("icons")
    icons = icons if isinstance(icons, list) else []
    return ManifestFacts(
        has_name=bool(manifest.get("name") or manifest.get("short_name")),
        has_icons=len(icons) > 0,
        has_start_url=bool(manifest.get("start_url")),
        has_display=bool(manifest.get("display")),
        has_theme_color=bool(manifest.get("theme_color")),
        has_background_color=bool(manifest.get("background_color")),
        icons=[
            {"src": icon.get("src"), "sizes": icon.get("sizes")}
            for icon in icons[:MAX_MANIFEST_ICONS]
            if isinstance(icon, dict)
        ],
    )


def _has_rel(soup: BeautifulSoup, rel: str) -> Optional[str]:
    for tag in soup.find_all("link"):
        values = tag.get("rel") or []
        values = [str(v).lower() for v in values] if isinstance(values, list) else str(values).lower().split()
        if rel in values:
            return str(tag.get("href") or "")
    return None


class PwaAnalyzer:
    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def _detect_service_worker(self, url: str, html: str) -> bool:
        if SERVICE_WORKER_HINTS.search(html):
            return True
        # bundled registrations leave no trace in the HTML, look for the file itself
        response = await self.fetcher.probe(urljoin(url, "/sw.js"))
        if response is None or not response.is_success:
            return False
        return "javascript" in response.headers.get("content-type", "").lower()

    async def _load_manifest(self, manifest_url: str) -> Optional[ManifestFacts]:
        try:
            return parse_manifest(await self.fetcher.get_json(manifest_url))
        except Exception as exc:
            logger.warning("Manifest fetch error for %s: %s", manifest_url, exc)
            return None

    async def analyze(self, url: str) -> PwaFacts:
        try:
            page = await self.fetcher.fetch_html(url)
            html = page.html
            soup = BeautifulSoup(html, "lxml")

            facts = PwaFacts(is_https=url.lower().startswith("https"))
            manifest_href = _has_rel(soup, "manifest")
            if manifest_href:
                facts.has_manifest_link = True
                facts.manifest_url = urljoin(url, manifest_href)

            facts.has_service_worker = await self._detect_service_worker(url, html)
            facts.has_apple_touch_icon = _has_rel(soup, "apple-touch-icon") is not None
            facts.has_theme_color = bool(soup.find("meta", attrs={"name": re.compile(r"^theme-color$", re.I)}))
            facts.has_viewport = bool(soup.find("meta", attrs={"name": re.compile(r"^viewport$", re.I)}))

            if facts.manifest_url:
                facts.manifest = await self._load_manifest(facts.manifest_url)

            facts.score = score_pwa(facts)
            return facts
        except Exception as exc:
            logger.error("PWA check error for %s: %s", url, exc)
            return PwaFacts.degraded()
