from __future__ import annotations

import asyncio
import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from portal_audit.engine.fetcher import PageFetcher
from portal_audit.engine.models import PageFacts
from portal_audit.engine.schema_markup import analyze_schema

logger = logging.getLogger(__name__)

SECURITY_WEIGHTS = {
    "is_https": 30,
    "has_hsts": 15,
    "has_xfo": 15,
    "has_xcto": 15,
    "has_csp": 15,
    "has_referrer_policy": 10,
}

SECURITY_HEADERS = {
    "has_hsts": "strict-transport-security",
    "has_xfo": "x-frame-options",
    "has_xcto": "x-content-type-options",
    "has_csp": "content-security-policy",
    "has_referrer_policy": "referrer-policy",
}


def _rel_values(tag) -> list[str]:
    rel = tag.get("rel") or []
    if isinstance(rel, list):
        return [str(v).lower() for v in rel]
    return str(rel).lower().split()


def _text(tag) -> str:
    if not tag:
        return ""
    return " ".join(tag.get_text(" ", strip=True).split())


def _meta_content(soup: BeautifulSoup, attr: str, value: str) -> str:
    tag = soup.find("meta", attrs={attr: re.compile(rf"^{re.escape(value)}$", re.I)})
    if not tag:
        return ""
    return str(tag.get("content") or "").strip()


def _link_href(soup: BeautifulSoup, rel: str) -> str:
    for tag in soup.find_all("link", href=True):
        if rel in _rel_values(tag):
            return str(tag.get("href") or "").strip()
    return ""


def security_score(flags: dict[str, bool]) -> int:
    return sum(weight for name, weight in SECURITY_WEIGHTS.items() if flags.get(name))


def extract_page_facts(url: str, html: str, headers: dict[str, str]) -> PageFacts:
    soup = BeautifulSoup(html or "", "lxml")

    title = _text(soup.find("title"))
    meta_description = _meta_content(soup, "name", "description")
    h1_tags = soup.find_all("h1")

    flags = {name: bool(headers.get(header)) for name, header in SECURITY_HEADERS.items()}
    flags["is_https"] = url.lower().startswith("https")

    schema = analyze_schema(soup, html or "", url)

    return PageFacts(
        title=title,
        title_length=len(title),
        meta_description=meta_description,
        meta_description_length=len(meta_description),
        has_h1=bool(h1_tags),
        h1_count=len(h1_tags),
        h1_text=_text(h1_tags[0]) if h1_tags else "",
        canonical=_link_href(soup, "canonical"),
        og_title=_meta_content(soup, "property", "og:title"),
        og_description=_meta_content(soup, "property", "og:description"),
        og_image=_meta_content(soup, "property", "og:image"),
        has_json_ld=schema.found,
        has_viewport=bool(soup.find("meta", attrs={"name": re.compile(r"^viewport$", re.I)})),
        security_score=security_score(flags),
        schema_markup=schema,
        **flags,
    )


class PageAnalyzer:
    def __init__(self, fetcher: PageFetcher):
        self.fetcher = fetcher

    async def analyze(self, url: str) -> PageFacts:
        # SEO check problems never fail the audit.
        try:
            page = await self.fetcher.fetch_html(url)
            facts = extract_page_facts(url, page.html, page.headers)
            facts.has_robots_txt, facts.has_sitemap = await asyncio.gather(
                self.fetcher.exists(urljoin(url, "/robots.txt")),
                self.fetcher.exists(urljoin(url, "/sitemap.xml")),
            )
            return facts
        except Exception as exc:
            logger.error("SEO check error for %s: %s", url, exc)
            return PageFacts.degraded()
