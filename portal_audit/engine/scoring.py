from __future__ import annotations

import math
from typing import Optional

from portal_audit.engine.checks import performance_issues, security_flags, seo_issues
from portal_audit.engine.models import AuditMetrics, CoreWebVitals, Issue, LighthouseRun, PageFacts, PerformanceFacts

GRADE_THRESHOLDS = [(90, "A"), (80, "B"), (70, "C"), (60, "D")]

SEO_WEIGHT = 0.9
SCHEMA_WEIGHT = 0.1
UNKNOWN_ACCESSIBILITY = 60


def round_half_up(value: float) -> int:
    """Rounds like JavaScript's Math.round, which the portal UI also uses."""
    return int(math.floor(value + 0.5))


def grade_for(overall: int) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if overall >= threshold:
            return grade
    return "F"


def _category(run: Optional[LighthouseRun], key: str) -> int:
    if run is None:
        return 0
    return round_half_up((run.categories.get(key) or 0) * 100)


def fallback_seo_score(page: PageFacts) -> int:
    points = 0
    if page.title and 30 <= page.title_length <= 60:
        points += 15
    elif page.title:
        points += 8
    if page.meta_description and 120 <= page.meta_description_length <= 160:
        points += 15
    elif page.meta_description:
        points += 8
    if page.has_h1 and page.h1_count == 1:
        points += 10
    elif page.has_h1:
        points += 5
    if page.has_robots_txt:
        points += 7
    if page.has_sitemap:
        points += 8
    if page.og_title:
        points += 5
    return min(points + 40, 100)


def blend_seo(traditional: int, schema_score: int) -> int:
    # 90/10 traditional/schema blend
    return round_half_up(traditional * SEO_WEIGHT + schema_score * SCHEMA_WEIGHT)


def priority_actions(
    seo: list[Issue],
    perf: list[Issue],
    accessibility: int,
    security: int,
    best_practices: int,
    schema_found: bool,
    schema_score: int,
) -> list[str]:
    actions: list[str] = []
    if any(issue.severity == "critical" for issue in seo):
        actions.append("Fix critical SEO issues (missing title/description)")
    if any(issue.severity == "critical" for issue in perf):
        actions.append("Address critical performance issues")
    if accessibility < 70:
        actions.append("Improve accessibility (currently failing)")
    elif accessibility < 90:
        actions.append("Enhance accessibility")
    if security < 60:
        actions.append("Add security headers")
    if best_practices < 80:
        actions.append("Follow web best practices")
    if not schema_found or schema_score < 50:
        actions.append("Implement structured data for rich snippets")
    return actions


def insights_summary(overall: int, grade: str, issue_count: int, performance: int) -> str:
    parts = [f"Your website scored {overall}/100 overall (Grade: {grade})."]
    if issue_count > 0:
        parts.append(f"We found {issue_count} issues across SEO and performance that need attention.")
    else:
        parts.append("Great job - no major issues found!")
    if performance < 50:
        parts.append("Performance is a critical concern - your site may be losing visitors due to slow load times.")
    elif performance < 70:
        parts.append("Performance could be improved to provide a better user experience.")
    return " ".join(parts)


def summarize(perf: PerformanceFacts, page: PageFacts, pwa_score: Optional[int] = None) -> AuditMetrics:
    mobile = perf.mobile
    mobile_perf = _category(mobile, "performance")
    # desktop is never fetched, so this is always half the mobile score
    desktop_perf = _category(perf.desktop, "performance")
    performance = round_half_up((mobile_perf + desktop_perf) / 2)

    lighthouse_seo = _category(mobile, "seo")
    vitals = mobile.vitals if mobile else CoreWebVitals()

    schema = page.schema_markup
    traditional = lighthouse_seo or fallback_seo_score(page)
    seo_score = blend_seo(traditional, schema.score or 0)

    security = page.security_score or 0
    accessibility = _category(mobile, "accessibility") or UNKNOWN_ACCESSIBILITY
    best_practices = _category(mobile, "best-practices")
    pwa = pwa_score if pwa_score is not None else 0

    # best practices and PWA are reported but not part of overall
    overall = round_half_up((performance + seo_score + security + accessibility) / 4)
    grade = grade_for(overall)

    seo_list = seo_issues(page)
    perf_list = performance_issues(vitals)

    return AuditMetrics(
        performance=performance,
        performance_mobile=mobile_perf,
        performance_desktop=desktop_perf,
        seo=seo_score,
        lighthouse_seo=lighthouse_seo,
        accessibility=accessibility,
        best_practices=best_practices,
        pwa=pwa,
        security=security,
        overall=overall,
        grade=grade,
        lcp_ms=vitals.lcp_ms,
        fcp_ms=vitals.fcp_ms,
        cls_score=vitals.cls_score,
        tbt_ms=vitals.tbt_ms,
        tti_ms=vitals.tti_ms,
        speed_index_ms=vitals.speed_index_ms,
        fid_ms=vitals.fid_ms,
        seo_issues=seo_list,
        performance_issues=perf_list,
        security_issues=security_flags(page),
        priority_actions=priority_actions(
            seo_list, perf_list, accessibility, security, best_practices, schema.found, schema.score
        ),
        insights_summary=insights_summary(overall, grade, len(seo_list) + len(perf_list), performance),
        schema_markup=schema,
    )
