"""Report sections derived from the aggregated metrics.

Every function here is pure: it only reads the facts and metrics handed to it
and returns a JSON-ready structure for the stored report.
"""

from __future__ import annotations

import re
from typing import Any, Optional
from urllib.parse import urlparse

from portal_audit.engine.models import AuditMetrics, LighthouseRun, PageFacts, PerformanceFacts
from portal_audit.engine.scoring import round_half_up

INDUSTRY_BENCHMARKS: dict[str, dict[str, int]] = {
    "ecommerce": {"performance": 45, "seo": 78, "accessibility": 82, "bestPractices": 80},
    "saas": {"performance": 55, "seo": 82, "accessibility": 85, "bestPractices": 85},
    "healthcare": {"performance": 40, "seo": 75, "accessibility": 90, "bestPractices": 78},
    "finance": {"performance": 42, "seo": 80, "accessibility": 88, "bestPractices": 82},
    "restaurant": {"performance": 35, "seo": 65, "accessibility": 70, "bestPractices": 72},
    "realestate": {"performance": 38, "seo": 70, "accessibility": 75, "bestPractices": 75},
    "default": {"performance": 50, "seo": 75, "accessibility": 80, "bestPractices": 80},
}

# Core Web Vitals impact coefficients (Google field studies)
CWV_IMPACT = {
    "lcp": {"good": 2500, "poor": 4000, "bounce_rate_increase": 0.12, "conversion_impact": 0.07},
    "cls": {"good": 0.1, "poor": 0.25},
    "tbt": {"good": 200, "poor": 600},
}

RESOURCE_CAPS = {"images": 5, "scripts": 5, "fonts": 5, "stylesheets": 3, "thirdParty": 8}

IMAGE_URL = re.compile(r"\.(jpg|jpeg|png|gif|webp|svg|avif)", re.I)
SCRIPT_URL = re.compile(r"\.js(\?|$)", re.I)
FONT_URL = re.compile(r"\.(woff2?|ttf|otf|eot)", re.I)
STYLESHEET_URL = re.compile(r"\.css(\?|$)", re.I)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def _format_kb(size_kb: int) -> str:
    return f"{size_kb / 1024:.1f} MB" if size_kb > 1024 else f"{size_kb} KB"


def _run(perf: PerformanceFacts) -> LighthouseRun:
    return perf.primary or LighthouseRun()


def extract_resource_breakdown(perf: PerformanceFacts) -> dict[str, Any]:
    run = _run(perf)
    target_origin = _origin(perf.mobile.final_url) if perf.mobile else ""
    buckets: dict[str, list[dict[str, Any]]] = {key: [] for key in RESOURCE_CAPS}

    for request in run.network_requests:
        url = request.url
        size_kb = round_half_up(request.transfer_size / 1024)
        origin = _origin(url)
        is_third_party = bool(target_origin) and bool(origin) and origin != target_origin
        resource = {
            "url": url[:100],
            "sizeKb": size_kb,
            "sizeFormatted": _format_kb(size_kb),
            "isThirdParty": is_third_party,
        }

        if is_third_party and size_kb > 5:
            buckets["thirdParty"].append(resource)
        if IMAGE_URL.search(url):
            buckets["images"].append(resource)
        elif SCRIPT_URL.search(url):
            buckets["scripts"].append(resource)
        elif FONT_URL.search(url):
            buckets["fonts"].append(resource)
        elif STYLESHEET_URL.search(url):
            buckets["stylesheets"].append(resource)

    breakdown: dict[str, Any] = {}
    totals: dict[str, Any] = {}
    for key, cap in RESOURCE_CAPS.items():
        items = sorted(buckets[key], key=lambda r: r["sizeKb"], reverse=True)
        breakdown[key] = items[:cap]
        totals[key] = sum(r["sizeKb"] for r in items)
    totals["total"] = sum(r.transfer_size for r in run.network_requests) / 1024
    breakdown["totals"] = totals
    return breakdown


def extract_opportunities(perf: PerformanceFacts, limit: int = 10) -> list[dict[str, Any]]:
    audits = perf.mobile.audits if perf.mobile else {}
    found = []
    for audit in audits.values():
        if not isinstance(audit, dict):
            continue
        details = audit.get("details") or {}
        score = audit.get("score")
        if details.get("type") != "opportunity" or score is None or score >= 1:
            continue
        savings_ms = details.get("overallSavingsMs")
        found.append(
            {
                "title": audit.get("title"),
                "description": (audit.get("description") or "")[:200],
                "savings": audit.get("displayValue") or "",
                "score": round_half_up((score or 0) * 100),
                "impact": f"{round_half_up(savings_ms)}ms" if savings_ms else "",
            }
        )
    found.sort(key=lambda item: item["score"])
    return found[:limit]


def _a11y_severity(score: float) -> str:
    if score == 0:
        return "critical"
    if score < 0.5:
        return "warning"
    return "info"


def extract_accessibility_issues(perf: PerformanceFacts, limit: int = 10) -> list[dict[str, Any]]:
    run = perf.mobile
    if run is None:
        return []
    issues = []
    for ref in run.accessibility_refs:
        audit = run.audits.get(ref)
        if not isinstance(audit, dict):
            continue
        score = audit.get("score")
        if score is None or score >= 1:
            continue
        items = (audit.get("details") or {}).get("items") or []
        issues.append(
            {
                "title": audit.get("title"),
                "description": (audit.get("description") or "")[:150],
                "severity": _a11y_severity(score),
                "impact": f"Affects {len(items)} element(s)" if items else "",
            }
        )
    return issues[:limit]


def calculate_business_impact(metrics: AuditMetrics) -> dict[str, Any]:
    details: list[dict[str, Any]] = []
    bounce = 0
    conversion = 0

    lcp = CWV_IMPACT["lcp"]
    if metrics.lcp_ms and metrics.lcp_ms > lcp["good"]:
        seconds = metrics.lcp_ms / 1000
        excess = seconds - lcp["good"] / 1000
        lcp_bounce = round_half_up(excess * lcp["bounce_rate_increase"] * 100)
        lcp_conversion = round_half_up(excess * lcp["conversion_impact"] * 100)
        bounce += lcp_bounce
        conversion += lcp_conversion
        details.append(
            {
                "metric": "LCP (Largest Contentful Paint)",
                "value": f"{seconds:.1f}s",
                "target": "<2.5s",
                "impact": f"May increase bounce rate by ~{lcp_bounce}% and reduce conversions by ~{lcp_conversion}%",
                "severity": "critical" if seconds > lcp["poor"] / 1000 else "warning",
            }
        )

    cls = CWV_IMPACT["cls"]
    if metrics.cls_score and metrics.cls_score > cls["good"]:
        severity = "critical" if metrics.cls_score > cls["poor"] else "warning"
        cls_bounce = 15 if severity == "critical" else 8
        bounce += cls_bounce
        conversion += round_half_up(cls_bounce * 0.7)
        details.append(
            {
                "metric": "CLS (Cumulative Layout Shift)",
                "value": f"{metrics.cls_score:.3f}",
                "target": "<0.1",
                "impact": f"Layout instability may frustrate users, increasing bounce rate by ~{cls_bounce}%",
                "severity": severity,
            }
        )

    tbt = CWV_IMPACT["tbt"]
    if metrics.tbt_ms and metrics.tbt_ms > tbt["good"]:
        severity = "critical" if metrics.tbt_ms > tbt["poor"] else "warning"
        tbt_bounce = 10 if severity == "critical" else 5
        bounce += tbt_bounce
        details.append(
            {
                "metric": "TBT (Total Blocking Time)",
                "value": f"{round_half_up(metrics.tbt_ms)}ms",
                "target": "<200ms",
                "impact": f"Page feels unresponsive, potentially losing ~{tbt_bounce}% of visitors",
                "severity": severity,
            }
        )

    if bounce > 0:
        summary = (
            f"Based on your Core Web Vitals, your site may be losing approximately {bounce}% of visitors "
            f"due to slow loading and {conversion}% of potential conversions. Improving these metrics "
            "could significantly increase engagement and revenue."
        )
    else:
        summary = (
            "Your Core Web Vitals are within acceptable ranges! This means your site provides a good user "
            "experience and shouldn't be losing visitors due to performance issues."
        )

    return {
        "summary": summary,
        "details": details,
        "estimatedBounceIncrease": bounce,
        "estimatedConversionLoss": conversion,
        "recommendations": [],
    }


def compare_to_industry(metrics: AuditMetrics, industry: Optional[str] = "default") -> dict[str, Any]:
    key = (industry or "default").strip().lower()
    benchmarks = INDUSTRY_BENCHMARKS.get(key)
    if benchmarks is None:
        key, benchmarks = "default", INDUSTRY_BENCHMARKS["default"]

    rows = [
        ("Performance", metrics.performance, benchmarks["performance"]),
        ("SEO", metrics.seo, benchmarks["seo"]),
        ("Accessibility", metrics.accessibility, benchmarks["accessibility"]),
        ("Best Practices", metrics.best_practices, benchmarks["bestPractices"]),
    ]
    comparisons = [
        {
            "metric": name,
            "score": score,
            "benchmark": benchmark,
            "diff": score - benchmark,
            "percentile": "above average" if score >= benchmark else "below average",
        }
        for name, score, benchmark in rows
    ]

    at_or_above = sum(1 for row in comparisons if row["diff"] >= 0)
    if at_or_above >= 3:
        summary = f"Your website outperforms {round_half_up(at_or_above / 4 * 100)}% of industry averages!"
    else:
        summary = (
            f"Your website is below industry average in {4 - at_or_above} key areas. There's room for improvement."
        )

    return {
        "comparisons": comparisons,
        "summary": summary,
        "industry": "all industries" if key == "default" else key,
    }


LAZY_LOADING_SNIPPET = """<!-- Add loading="lazy" to images below the fold -->
<img src="image.jpg" loading="lazy" alt="Description" width="800" height="600">

<!-- For critical above-fold images, use fetchpriority -->
<img src="hero.jpg" fetchpriority="high" alt="Hero image" width="1200" height="600">"""

SECURITY_HEADERS_SNIPPET = """# Add to your server config or _headers file (Netlify)

/*
  X-Frame-Options: DENY
  X-Content-Type-Options: nosniff
  Referrer-Policy: strict-origin-when-cross-origin
  Strict-Transport-Security: max-age=31536000; includeSubDomains
  Content-Security-Policy: default-src 'self'; script-src 'self' 'unsafe-inline' https:; style-src 'self' 'unsafe-inline' https:; img-src 'self' data: https:;"""

META_DESCRIPTION_SNIPPET = """<!-- Add to <head> section - aim for 120-160 characters -->
<meta name="description" content="Your compelling page description here. Include your main keyword naturally and a call to action. This appears in search results.">"""

LAYOUT_SHIFT_SNIPPET = """<!-- Always specify width and height for images -->
<img src="photo.jpg" width="800" height="600" alt="Description">

<!-- Use aspect-ratio for responsive images -->
<style>
  .responsive-img { width: 100%; height: auto; aspect-ratio: 16 / 9; }
</style>

<!-- Reserve space for ads/embeds -->
<div style="min-height: 250px;"><!-- Ad or embed content --></div>"""


def generate_code_snippets(metrics: AuditMetrics, page: PageFacts, resources: dict[str, Any]) -> list[dict[str, str]]:
    snippets: list[dict[str, str]] = []

    if resources.get("images"):
        snippets.append(
            {
                "title": "Add Lazy Loading to Images",
                "description": "Defer loading of off-screen images to improve initial page load",
                "language": "html",
                "code": LAZY_LOADING_SNIPPET,
            }
        )

    origins = list(dict.fromkeys(o for o in (_origin(r["url"]) for r in resources.get("thirdParty") or []) if o))[:3]
    if origins:
        hints = "\n".join(f'<link rel="preconnect" href="{origin}" crossorigin>' for origin in origins)
        snippets.append(
            {
                "title": "Add Preconnect Hints",
                "description": "Speed up third-party connections by establishing early connections",
                "language": "html",
                "code": f"<!-- Add to <head> section -->\n{hints}",
            }
        )

    if not page.has_csp or not page.has_hsts:
        snippets.append(
            {
                "title": "Add Security Headers",
                "description": "Protect your site with essential security headers",
                "language": "text",
                "code": SECURITY_HEADERS_SNIPPET,
            }
        )

    if not page.meta_description or page.meta_description_length < 120:
        snippets.append(
            {
                "title": "Add/Improve Meta Description",
                "description": "A compelling meta description improves click-through rates from search results",
                "language": "html",
                "code": META_DESCRIPTION_SNIPPET,
            }
        )

    if metrics.cls_score and metrics.cls_score > 0.1:
        snippets.append(
            {
                "title": "Prevent Layout Shift",
                "description": "Set explicit dimensions on images and embeds to prevent layout shift",
                "language": "html",
                "code": LAYOUT_SHIFT_SNIPPET,
            }
        )

    return snippets
