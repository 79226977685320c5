from __future__ import annotations

import re

from portal_audit.engine.models import CoreWebVitals, Issue, PageFacts, SchemaMarkup


def _any_type(schema: SchemaMarkup, pattern: str) -> bool:
    return any(re.search(pattern, t, re.I) for t in schema.types)


def seo_issues(page: PageFacts) -> list[Issue]:
    issues: list[Issue] = []

    if not page.title:
        issues.append(Issue("Missing Page Title", "critical", "No title tag found", "Add a descriptive title tag (30-60 characters)"))
    elif page.title_length > 60:
        issues.append(Issue("Title Too Long", "warning", f"Title is {page.title_length} characters", "Shorten to under 60 characters"))
    elif page.title_length < 30:
        issues.append(Issue("Title Too Short", "warning", f"Title is only {page.title_length} characters", "Expand to 30-60 characters"))

    length = page.meta_description_length
    if not page.meta_description:
        issues.append(
            Issue(
                "Missing Meta Description",
                "critical",
                "No meta description found",
                "Add a compelling meta description (120-160 characters)",
            )
        )
    elif length > 160:
        issues.append(
            Issue(
                "Meta Description Too Long",
                "warning",
                f"Description is {length} characters",
                "Shorten to 120-160 characters",
                details={"currentText": page.meta_description, "currentLength": length, "maxLength": 160},
            )
        )
    elif length < 120:
        issues.append(
            Issue(
                "Meta Description Too Short",
                "info",
                f"Description is only {length} characters",
                "Expand to 120-160 characters",
                details={"currentText": page.meta_description, "currentLength": length, "minLength": 120},
            )
        )

    if not page.has_h1:
        issues.append(Issue("Missing H1 Tag", "critical", "No H1 heading found", "Add one H1 tag with your primary keyword"))
    elif page.h1_count > 1:
        issues.append(Issue("Multiple H1 Tags", "warning", f"Found {page.h1_count} H1 tags", "Use only one H1 per page"))

    if not page.has_robots_txt:
        issues.append(Issue("Missing robots.txt", "warning", "No robots.txt found", "Create a robots.txt file"))
    if not page.has_sitemap:
        issues.append(Issue("Missing Sitemap", "warning", "No sitemap.xml found", "Create and submit an XML sitemap"))
    if not page.og_title:
        issues.append(Issue("Missing Open Graph Tags", "info", "No Open Graph meta tags", "Add og:title, og:description, og:image"))

    issues.extend(schema_issues(page.schema_markup))
    return issues


def schema_issues(schema: SchemaMarkup) -> list[Issue]:
    issues: list[Issue] = []
    if not schema.found:
        issues.append(
            Issue(
                "No Structured Data (Schema Markup)",
                "warning",
                "No JSON-LD or microdata schema found on this page",
                "Add structured data to enable rich snippets in search results. "
                "Start with Organization/LocalBusiness and WebSite schemas.",
            )
        )
    else:
        if not _any_type(schema, r"organization|localbusiness"):
            issues.append(
                Issue(
                    "Missing Organization Schema",
                    "info",
                    "No Organization or LocalBusiness schema found",
                    "Add Organization schema for brand recognition or LocalBusiness for local SEO",
                )
            )
        if not _any_type(schema, r"website"):
            issues.append(
                Issue(
                    "Missing WebSite Schema",
                    "info",
                    "No WebSite schema found",
                    "Add WebSite schema to enable sitelinks search box in Google",
                )
            )
        if schema.has_parse_errors:
            issues.append(
                Issue(
                    "Invalid Schema Markup",
                    "warning",
                    "Some JSON-LD schema contains syntax errors",
                    "Validate your structured data at https://validator.schema.org/",
                )
            )

    for rec in schema.recommended[:2]:
        issues.append(
            Issue(
                f"Consider Adding {rec.type} Schema",
                "info",
                rec.reason,
                f"Add {rec.type} structured data to improve search visibility",
            )
        )
    return issues


def performance_issues(vitals: CoreWebVitals) -> list[Issue]:
    issues: list[Issue] = []
    lcp, fcp, cls, tbt, tti = vitals.lcp_ms, vitals.fcp_ms, vitals.cls_score, vitals.tbt_ms, vitals.tti_ms

    if lcp and lcp > 2500:
        issues.append(
            Issue(
                "Slow LCP",
                "critical" if lcp > 4000 else "warning",
                f"LCP is {lcp / 1000:.1f}s (target: <2.5s)",
                "Optimize largest contentful paint element - usually hero image or text block",
            )
        )
    if fcp and fcp > 1800:
        issues.append(
            Issue(
                "Slow FCP",
                "warning",
                f"FCP is {fcp / 1000:.1f}s (target: <1.8s)",
                "Reduce server response time and eliminate render-blocking resources",
            )
        )
    if cls and cls > 0.1:
        issues.append(
            Issue(
                "Layout Shift",
                "critical" if cls > 0.25 else "warning",
                f"CLS is {cls:.3f} (target: <0.1)",
                "Set explicit dimensions on images, embeds, and ads",
            )
        )
    if tbt and tbt > 200:
        issues.append(
            Issue(
                "High Blocking Time",
                "critical" if tbt > 600 else "warning",
                f"TBT is {int(tbt + 0.5)}ms (target: <200ms)",
                "Reduce JavaScript execution time and break up long tasks",
            )
        )
    if tti and tti > 3800:
        issues.append(
            Issue(
                "Slow Time to Interactive",
                "critical" if tti > 7300 else "warning",
                f"TTI is {tti / 1000:.1f}s (target: <3.8s)",
                "Minimize main-thread work and reduce JavaScript payload",
            )
        )
    return issues


def security_flags(page: PageFacts) -> dict[str, bool]:
    return {
        "https": page.is_https,
        "csp": page.has_csp,
        "xFrameOptions": page.has_xfo,
        "xContentType": page.has_xcto,
        "hsts": page.has_hsts,
        "referrerPolicy": page.has_referrer_policy,
    }
