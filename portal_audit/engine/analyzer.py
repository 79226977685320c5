from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx

from portal_audit.config import Settings
from portal_audit.engine.extractor import PageAnalyzer
from portal_audit.engine.fetcher import PageFetcher
from portal_audit.engine.insights import (
    calculate_business_impact,
    compare_to_industry,
    extract_accessibility_issues,
    extract_opportunities,
    extract_resource_breakdown,
    generate_code_snippets,
)
from portal_audit.engine.models import AuditMetrics, PageFacts, PwaFacts, to_payload
from portal_audit.engine.pagespeed import PerformanceAnalyzer
from portal_audit.engine.pwa import PwaAnalyzer, generate_pwa_issues
from portal_audit.engine.scoring import summarize
from portal_audit.errors import PerformanceUnavailableError, StoreError
from portal_audit.llm import generate_ai_insights
from portal_audit.store import AuditStore

logger = logging.getLogger(__name__)

STALLED_MESSAGE = "Audit stalled - no heartbeat"


@dataclass
class AuditOutcome:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass
class Analyzers:
    performance: Any
    page: Any
    pwa: Any

    @classmethod
    def build(cls, client: httpx.AsyncClient, settings: Settings) -> "Analyzers":
        fetcher = PageFetcher(client, timeout_s=settings.html_timeout_seconds)
        return cls(
            performance=PerformanceAnalyzer(
                client,
                api_key=settings.pagespeed_api_key,
                timeout_s=settings.pagespeed_timeout_seconds,
            ),
            page=PageAnalyzer(fetcher),
            pwa=PwaAnalyzer(fetcher),
        )


def _isolated(name: str, fn: Callable[..., Any], fallback: Any, *args: Any) -> Any:
    try:
        return fn(*args)
    except Exception:
        logger.exception("%s failed, leaving section empty", name)
        return fallback


def score_columns(metrics: AuditMetrics) -> dict[str, Any]:
    return {
        "performance_score": metrics.performance,
        "seo_score": metrics.seo,
        "accessibility_score": metrics.accessibility,
        "best_practices_score": metrics.best_practices,
        "pwa_score": metrics.pwa,
        "score_security": metrics.security,
        "score_overall": metrics.overall,
        "lcp_ms": metrics.lcp_ms,
        "fcp_ms": metrics.fcp_ms,
        "cls_score": metrics.cls_score,
        "tbt_ms": metrics.tbt_ms,
        "tti_ms": metrics.tti_ms,
        "speed_index_ms": metrics.speed_index_ms,
        "fid_ms": metrics.fid_ms,
    }


def build_summary(
    metrics: AuditMetrics,
    page: PageFacts,
    pwa: PwaFacts,
    *,
    resources: dict[str, Any],
    opportunities: list[dict[str, Any]],
    accessibility_issues: list[dict[str, Any]],
    business_impact: dict[str, Any],
    industry_comparison: dict[str, Any],
    code_snippets: list[dict[str, Any]],
    pwa_issues: list[dict[str, Any]],
    ai_insights: Optional[dict[str, Any]],
) -> dict[str, Any]:
    """The ``summary`` blob the portal renders; keys are camelCase."""
    ai = ai_insights or {}
    return {
        "seo": to_payload(page),
        "grade": metrics.grade,
        "metrics": metrics.scores(),
        "pwaChecks": pwa.checks(),
        "pwaIssues": pwa_issues,
        "seoIssues": [issue.to_dict() for issue in metrics.seo_issues],
        "performanceIssues": [issue.to_dict() for issue in metrics.performance_issues],
        "accessibilityIssues": accessibility_issues,
        "securityIssues": metrics.security_issues,
        "priorityActions": ai.get("topPriorities") or metrics.priority_actions,
        "quickWins": ai.get("quickWins") or [],
        "insightsSummary": ai.get("executiveSummary") or metrics.insights_summary,
        "resources": {
            "heaviestImages": resources.get("images", []),
            "heaviestScripts": resources.get("scripts", []),
            "fonts": resources.get("fonts", []),
            "thirdParty": resources.get("thirdParty", []),
            "totals": resources.get("totals", {}),
        },
        "opportunities": opportunities,
        "businessImpact": business_impact,
        "industryComparison": industry_comparison,
        "codeSnippets": code_snippets,
        "aiInsights": ai_insights,
    }


async def _heartbeat(store: AuditStore, audit_id: str, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        try:
            await store.touch_heartbeat(audit_id)
        except StoreError as exc:
            logger.warning("Heartbeat update failed for %s: %s", audit_id, exc)


async def _mark_failed(store: AuditStore, audit_id: str, message: str) -> None:
    try:
        await store.mark_failed(audit_id, message)
    except StoreError as exc:
        logger.error("Could not record failure for %s: %s", audit_id, exc)


async def _pipeline(
    audit_id: str,
    target_url: str,
    store: AuditStore,
    settings: Settings,
    client: httpx.AsyncClient,
    analyzers: Analyzers,
    industry: Optional[str],
) -> AuditOutcome:
    perf, page, pwa = await asyncio.gather(
        analyzers.performance.analyze(target_url),
        analyzers.page.analyze(target_url),
        analyzers.pwa.analyze(target_url),
    )

    if not perf.has_data:
        raise PerformanceUnavailableError()

    logger.info("PWA check score for %s: %s", target_url, pwa.score)
    metrics = summarize(perf, page, pwa.score)

    resources = _isolated("resource breakdown", extract_resource_breakdown, {}, perf)
    opportunities = _isolated("opportunities", extract_opportunities, [], perf)
    accessibility_issues = _isolated("accessibility issues", extract_accessibility_issues, [], perf)
    business_impact = _isolated("business impact", calculate_business_impact, {}, metrics)
    industry_comparison = _isolated("industry comparison", compare_to_industry, {}, metrics, industry)
    code_snippets = _isolated("code snippets", generate_code_snippets, [], metrics, page, resources)
    pwa_issues = _isolated("pwa issues", lambda facts: [i.to_dict() for i in generate_pwa_issues(facts)], [], pwa)

    ai_insights = await generate_ai_insights(
        target_url,
        metrics,
        page,
        resources,
        opportunities,
        accessibility_issues,
        business_impact,
        settings=settings,
        client=client,
    )
    logger.info("All analyses complete for %s", audit_id)

    summary = build_summary(
        metrics,
        page,
        pwa,
        resources=resources,
        opportunities=opportunities,
        accessibility_issues=accessibility_issues,
        business_impact=business_impact,
        industry_comparison=industry_comparison,
        code_snippets=code_snippets,
        pwa_issues=pwa_issues,
        ai_insights=ai_insights,
    )
    await store.mark_complete(audit_id, {**score_columns(metrics), "summary": summary})
    logger.info("Audit %s complete: grade %s, overall %s", audit_id, metrics.grade, metrics.overall)
    return AuditOutcome(
        200,
        {"success": True, "auditId": audit_id, "grade": metrics.grade, "overall": metrics.overall},
    )


async def run_audit(
    audit_id: str,
    store: AuditStore,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    industry: Optional[str] = "default",
    skip_email: bool = False,
    analyzers: Optional[Analyzers] = None,
) -> AuditOutcome:
    """Run one audit job end to end and persist the result.

    Returns the HTTP-shaped outcome of the run. Sub-analyzer problems degrade
    in place; only missing PageSpeed data or an unexpected exception fails the
    job.
    """
    if not audit_id:
        return AuditOutcome(400, {"error": "No audit ID"})

    settings = settings or Settings.from_env()
    logger.info("Starting comprehensive audit: %s%s", audit_id, " (skipEmail=true)" if skip_email else "")

    try:
        job = await store.fetch_audit(audit_id)
    except StoreError as exc:
        logger.error("Audit lookup failed for %s: %s", audit_id, exc)
        job = None
    if job is None:
        logger.error("Audit not found: %s", audit_id)
        return AuditOutcome(404, {"error": "Audit not found"})

    owns_client = client is None
    http = client or httpx.AsyncClient()
    heartbeat: Optional[asyncio.Task[None]] = None
    try:
        await store.mark_running(audit_id)
        heartbeat = asyncio.ensure_future(_heartbeat(store, audit_id, settings.heartbeat_interval_seconds))
        logger.info("Running analysis for: %s", job.target_url)
        return await _pipeline(
            audit_id,
            job.target_url,
            store,
            settings,
            http,
            analyzers or Analyzers.build(http, settings),
            industry,
        )
    except PerformanceUnavailableError as exc:
        logger.error("PageSpeed returned no valid data for %s", job.target_url)
        await _mark_failed(store, audit_id, str(exc))
        return AuditOutcome(500, {"error": "PageSpeed failed"})
    except Exception as exc:
        logger.exception("Audit error for %s", audit_id)
        await _mark_failed(store, audit_id, str(exc))
        return AuditOutcome(500, {"error": str(exc)})
    finally:
        if heartbeat is not None:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass
        if owns_client:
            await http.aclose()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def reap_stale_audits(
    store: AuditStore,
    timeout_s: float,
    now: Optional[datetime] = None,
) -> list[str]:
    """Fail running audits whose heartbeat is older than ``timeout_s``."""
    now = now or datetime.now(timezone.utc)
    reaped: list[str] = []
    for job in await store.list_running():
        last_seen = _parse_timestamp(job.heartbeat_at) or _parse_timestamp(job.created_at)
        if last_seen is not None and (now - last_seen).total_seconds() <= timeout_s:
            continue
        logger.warning("Reaping stalled audit %s (last heartbeat %s)", job.id, job.heartbeat_at)
        await store.mark_failed(job.id, STALLED_MESSAGE)
        reaped.append(job.id)
    return reaped
