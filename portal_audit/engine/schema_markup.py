from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from portal_audit.engine.models import SchemaMarkup, SchemaRecommendation

MAX_RECOMMENDATIONS = 5

JSON_LD_TYPE = re.compile(r"^\s*application/ld\+json\s*$", re.I)
SCHEMA_ORG_ITEMTYPE = re.compile(r"^https?://schema\.org/(\w+)", re.I)
ARTICLE_META = re.compile(r"^article:", re.I)
ARTICLE_ROUTE = re.compile(r"^/(insights|blog|articles)/")

FAQ_CUES = ["faq", "frequently asked", "questions"]
ECOMMERCE_CUES = ["add to cart", "buy now", "sku", "quantity", "shopping cart", "checkout"]
SERVICE_CUES = ["services", "what we do", "our services", "pricing", "packages", "get a quote"]

# (schema key, flag name) pairs copied into each detail entry when present
_DETAIL_FLAGS = [
    ("description", "hasDescription"),
    ("image", "hasImage"),
    ("address", "hasAddress"),
    ("aggregateRating", "hasRating"),
    ("review", "hasReviews"),
    ("sameAs", "hasSocialLinks"),
    ("mainEntity", "hasMainEntity"),
    ("hasPart", "hasParts"),
]
_DETAIL_VALUES = ["name", "url", "telephone", "priceRange"]


def _has_type(types: list[str], pattern: str) -> bool:
    regex = re.compile(pattern, re.I)
    return any(regex.search(t) for t in types)


def _contains_any(text: str, cues: list[str]) -> bool:
    return any(cue in text for cue in cues)


def _schema_nodes(parsed: Any) -> list[Any]:
    if isinstance(parsed, dict) and "@graph" in parsed:
        graph = parsed["@graph"]
        return graph if isinstance(graph, list) else [graph]
    if isinstance(parsed, list):
        return parsed
    return [parsed]


def _detail(node: dict[str, Any], types: list[str]) -> dict[str, Any]:
    detail: dict[str, Any] = {"type": ", ".join(types)}
    for key in _DETAIL_VALUES:
        if node.get(key):
            detail[key] = node[key]
    for key, flag in _DETAIL_FLAGS:
        if node.get(key):
            detail[flag] = True
    if node.get("openingHours") or node.get("openingHoursSpecification"):
        detail["hasHours"] = True
    return detail


def collect_json_ld(soup: BeautifulSoup, markup: SchemaMarkup) -> None:
    scripts = soup.find_all("script", attrs={"type": JSON_LD_TYPE})
    markup.count = len(scripts)
    markup.found = markup.count > 0

    for script in scripts:
        try:
            parsed = json.loads(script.get_text() or "")
        except ValueError:
            markup.has_parse_errors = True
            continue

        for node in _schema_nodes(parsed):
            if not isinstance(node, dict) or not node.get("@type"):
                continue
            raw_type = node["@type"]
            types = [str(t) for t in raw_type] if isinstance(raw_type, list) else [str(raw_type)]
            for schema_type in types:
                if schema_type not in markup.types:
                    markup.types.append(schema_type)
            markup.details.append(_detail(node, types))


def collect_microdata(soup: BeautifulSoup, markup: SchemaMarkup) -> None:
    markup.has_microdata = bool(soup.find(attrs={"itemscope": True}) or soup.find(attrs={"itemtype": True}))
    if not markup.has_microdata:
        return
    for tag in soup.find_all(attrs={"itemtype": True}):
        match = SCHEMA_ORG_ITEMTYPE.match(str(tag.get("itemtype") or "").strip())
        if not match:
            continue
        label = f"{match.group(1)} (microdata)"
        if match.group(1) not in markup.types and label not in markup.types:
            markup.types.append(label)


def _has_article_signals(soup: BeautifulSoup, lower_html: str, page_url: str) -> bool:
    path = urlparse(page_url).path.lower()
    if ARTICLE_ROUTE.match(path):
        return True
    if not soup.find("article"):
        return False
    has_time = any((tag.get("datetime") or "").strip() for tag in soup.find_all("time", attrs={"datetime": True}))
    has_meta = bool(soup.find("meta", attrs={"property": ARTICLE_META}))
    return has_time or has_meta or "published" in lower_html


def recommend_schemas(soup: BeautifulSoup, html: str, page_url: str, types: list[str]) -> list[SchemaRecommendation]:
    lower_html = html.lower()
    recommended: list[SchemaRecommendation] = []

    def add(schema_type: str, reason: str) -> None:
        recommended.append(SchemaRecommendation(type=schema_type, reason=reason))

    if not _has_type(types, r"organization|localbusiness|company"):
        add("Organization or LocalBusiness", "Essential for business identity and local SEO")
    if not _has_type(types, r"website"):
        add("WebSite", "Enables sitelinks search box in Google")
    if not _has_type(types, r"webpage|aboutpage|contactpage"):
        add("WebPage", "Helps define page structure")
    if _contains_any(lower_html, FAQ_CUES) and not _has_type(types, r"faqpage"):
        add("FAQPage", "Detected FAQ content - enables FAQ rich results")

    # Service is classified first so a service business never gets a Product hint.
    wants_service = _contains_any(lower_html, SERVICE_CUES) and not _has_type(types, r"service|professionalservice")
    has_service_schema = _has_type(types, r"service|professionalservice|localbusiness")
    if (
        _contains_any(lower_html, ECOMMERCE_CUES)
        and not wants_service
        and not has_service_schema
        and not _has_type(types, r"product")
    ):
        add("Product", "Detected e-commerce content - enables product rich results")
    if wants_service:
        add("Service", "Detected service content - improves service visibility")

    if _has_article_signals(soup, lower_html, page_url) and not _has_type(types, r"article|blogposting|newsarticle"):
        add("Article or BlogPosting", "Detected article content - enables article rich results")

    if ("breadcrumb" in lower_html or "›" in html or "»" in html) and not _has_type(types, r"breadcrumblist"):
        add("BreadcrumbList", "Detected breadcrumbs - enables breadcrumb rich results")

    return recommended[:MAX_RECOMMENDATIONS]


def score_schema(markup: SchemaMarkup) -> int:
    score = 0
    if markup.found:
        score += 30
    if len(markup.types) >= 3:
        score += 20
    elif len(markup.types) >= 1:
        score += 10
    if _has_type(markup.types, r"organization|localbusiness"):
        score += 15
    if _has_type(markup.types, r"website"):
        score += 10
    if _has_type(markup.types, r"webpage"):
        score += 5
    if _has_type(markup.types, r"faqpage|product|article|breadcrumblist"):
        score += 10
    if any(detail.get("hasRating") for detail in markup.details):
        score += 5
    if any(detail.get("hasReviews") for detail in markup.details):
        score += 5
    return min(score, 100)


def analyze_schema(soup: BeautifulSoup, html: str, page_url: str) -> SchemaMarkup:
    markup = SchemaMarkup()
    collect_json_ld(soup, markup)
    collect_microdata(soup, markup)
    markup.recommended = recommend_schemas(soup, html, page_url, markup.types)
    markup.score = score_schema(markup)
    return markup
