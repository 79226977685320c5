from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

import httpx

from portal_audit.config import Settings
from portal_audit.engine.models import AuditMetrics, PageFacts
from portal_audit.engine.scoring import round_half_up
from portal_audit.errors import LLMUnavailableError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior web performance consultant. Provide actionable, business-focused insights. "
    "Always respond with valid JSON only, no markdown code blocks."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def _js_bool(value: bool) -> str:
    return "true" if value else "false"


def build_prompt(
    url: str,
    metrics: AuditMetrics,
    page: PageFacts,
    resources: dict[str, Any],
    opportunities: list[dict[str, Any]],
    business_impact: dict[str, Any],
) -> str:
    totals = resources.get("totals") or {}
    lcp = f"{metrics.lcp_ms / 1000:.2f}s" if metrics.lcp_ms else "N/A"
    cls = f"{metrics.cls_score:.3f}" if metrics.cls_score else "N/A"
    tbt = f"{round_half_up(metrics.tbt_ms)}ms" if metrics.tbt_ms else "N/A"
    top = "\n".join(f"- {o.get('title')}: {o.get('savings')}" for o in opportunities[:5])

    return f"""You are an expert web performance consultant. Analyze this website audit and provide executive-level insights.

Website: {url}

SCORES:
- Performance: {metrics.performance}/100 (Mobile: {metrics.performance_mobile}, Desktop: {metrics.performance_desktop})
- SEO: {metrics.seo}/100
- Accessibility: {metrics.accessibility}/100
- Best Practices: {metrics.best_practices}/100
- Security: {metrics.security}/100
- Overall Grade: {metrics.grade}

CORE WEB VITALS:
- LCP: {lcp} (target: <2.5s)
- CLS: {cls} (target: <0.1)
- TBT: {tbt} (target: <200ms)

SEO FINDINGS:
- Title: "{page.title}" ({page.title_length} chars)
- Meta Description: {page.meta_description_length} chars
- Has Sitemap: {_js_bool(page.has_sitemap)}
- Has Schema/JSON-LD: {_js_bool(page.has_json_ld)}

RESOURCE ANALYSIS:
- Total Page Weight: {round_half_up(totals.get("total") or 0)} KB
- Images: {round_half_up(totals.get("images") or 0)} KB
- JavaScript: {round_half_up(totals.get("scripts") or 0)} KB
- Third-party: {round_half_up(totals.get("thirdParty") or 0)} KB

TOP PERFORMANCE OPPORTUNITIES:
{top}

BUSINESS IMPACT:
{business_impact.get("summary", "")}

Provide a JSON response with:
{{
  "executiveSummary": "2-3 sentence summary for a business owner, focusing on business impact",
  "topPriorities": ["3-5 most impactful actions, in priority order"],
  "quickWins": ["2-3 things that can be fixed in under an hour"],
  "technicalDebt": "1-2 sentences about any underlying technical issues",
  "competitiveAnalysis": "How does this site likely compare to competitors based on these metrics",
  "estimatedROI": "Rough estimate of potential improvement if top issues are fixed"
}}"""


def parse_insights(content: str) -> dict[str, Any]:
    cleaned = _CODE_FENCE.sub("", (content or "").strip()).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LLMUnavailableError("LLM response parsing failed") from exc
    if not isinstance(parsed, dict):
        raise LLMUnavailableError("LLM response format is invalid")
    return parsed


async def request_insights(prompt: str, settings: Settings, client: httpx.AsyncClient) -> dict[str, Any]:
    if not settings.openai_api_key:
        raise LLMUnavailableError("OPENAI_API_KEY is missing")

    try:
        response = await client.post(
            f"{settings.llm_base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {settings.openai_api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": settings.llm_model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": 1000,
                "temperature": 0.7,
            },
            timeout=settings.llm_timeout_seconds,
        )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise LLMUnavailableError(f"LLM request returned status {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise LLMUnavailableError("LLM request failed") from exc

    try:
        content = response.json()["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise LLMUnavailableError("LLM response parsing failed") from exc
    if not isinstance(content, str):
        raise LLMUnavailableError("LLM response format is invalid")
    return parse_insights(content)


async def generate_ai_insights(
    url: str,
    metrics: AuditMetrics,
    page: PageFacts,
    resources: dict[str, Any],
    opportunities: list[dict[str, Any]],
    accessibility_issues: list[dict[str, Any]],
    business_impact: dict[str, Any],
    *,
    settings: Settings,
    client: httpx.AsyncClient,
) -> Optional[dict[str, Any]]:
    """Executive narrative for the report, or None when the model is unavailable.

    ``accessibility_issues`` is accepted for parity with the other report
    sections but is not part of the prompt.
    """
    if not settings.openai_api_key:
        logger.info("No LLM API key, skipping AI insights")
        return None

    prompt = build_prompt(url, metrics, page, resources, opportunities, business_impact)
    try:
        logger.info("Generating AI insights for %s", url)
        insights = await request_insights(prompt, settings, client)
    except LLMUnavailableError as exc:
        logger.warning("AI insights failed: %s", exc)
        return None
    except Exception:
        logger.exception("AI insights failed unexpectedly")
        return None
    logger.info("AI insights generated successfully")
    return insights
