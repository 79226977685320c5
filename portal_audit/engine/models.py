from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

Severity = Literal["critical", "warning", "info"]
AuditStatus = Literal["pending", "running", "complete", "failed"]

_CAMEL_BOUNDARY = re.compile(r"_([a-z0-9])")


def camel_key(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(lambda m: m.group(1).upper(), key)


def camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {camel_key(str(k)): camelize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [camelize(v) for v in value]
    return value


def to_payload(obj: Any) -> Any:
    """Dataclass (or plain value) to the camelCase dict stored in the report."""
    if hasattr(obj, "__dataclass_fields__"):
        obj = asdict(obj)
    return camelize(obj)


@dataclass
class Issue:
    title: str
    severity: Severity
    description: str
    recommendation: str
    details: Optional[dict[str, Any]] = None
    points: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "severity": self.severity,
            "description": self.description,
            "recommendation": self.recommendation,
        }
        if self.details is not None:
            data["details"] = self.details
        if self.points is not None:
            data["points"] = self.points
        return data


@dataclass
class CoreWebVitals:
    lcp_ms: Optional[float] = None
    fcp_ms: Optional[float] = None
    cls_score: Optional[float] = None
    tbt_ms: Optional[float] = None
    tti_ms: Optional[float] = None
    speed_index_ms: Optional[float] = None
    fid_ms: Optional[float] = None


@dataclass
class NetworkRequest:
    url: str
    transfer_size: int = 0


_VITAL_AUDITS = {
    "lcp_ms": "largest-contentful-paint",
    "fcp_ms": "first-contentful-paint",
    "cls_score": "cumulative-layout-shift",
    "tbt_ms": "total-blocking-time",
    "tti_ms": "interactive",
    "speed_index_ms": "speed-index",
    "fid_ms": "max-potential-fid",
}


def _numeric(audits: dict[str, Any], audit_id: str) -> Optional[float]:
    audit = audits.get(audit_id)
    if not isinstance(audit, dict):
        return None
    value = audit.get("numericValue")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


@dataclass
class LighthouseRun:
    """One PageSpeed strategy result, reduced to what the report uses."""

    categories: dict[str, Optional[float]] = field(default_factory=dict)
    vitals: CoreWebVitals = field(default_factory=CoreWebVitals)
    network_requests: list[NetworkRequest] = field(default_factory=list)
    audits: dict[str, Any] = field(default_factory=dict)
    accessibility_refs: list[str] = field(default_factory=list)
    final_url: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "LighthouseRun":
        lighthouse = payload.get("lighthouseResult") or {}
        raw_categories = lighthouse.get("categories") or {}
        audits = lighthouse.get("audits") or {}

        categories: dict[str, Optional[float]] = {}
        for key, category in raw_categories.items():
            if isinstance(category, dict) and "score" in category:
                score = category.get("score")
                categories[key] = float(score) if isinstance(score, (int, float)) else None

        vitals = CoreWebVitals(**{name: _numeric(audits, audit_id) for name, audit_id in _VITAL_AUDITS.items()})

        items = ((audits.get("network-requests") or {}).get("details") or {}).get("items") or []
        requests = [
            NetworkRequest(url=str(item.get("url") or ""), transfer_size=int(item.get("transferSize") or 0))
            for item in items
            if isinstance(item, dict)
        ]

        refs = ((raw_categories.get("accessibility") or {}).get("auditRefs")) or []
        accessibility_refs = [str(ref.get("id")) for ref in refs if isinstance(ref, dict) and ref.get("id")]

        return cls(
            categories=categories,
            vitals=vitals,
            network_requests=requests,
            audits=audits,
            accessibility_refs=accessibility_refs,
            final_url=str(lighthouse.get("finalUrl") or ""),
        )

    def has_performance_score(self) -> bool:
        return "performance" in self.categories


@dataclass
class PerformanceFacts:
    mobile: Optional[LighthouseRun] = None
    desktop: Optional[LighthouseRun] = None

    @property
    def has_data(self) -> bool:
        return any(run is not None and run.has_performance_score() for run in (self.mobile, self.desktop))

    @property
    def primary(self) -> Optional[LighthouseRun]:
        return self.mobile or self.desktop


@dataclass
class SchemaRecommendation:
    type: str
    reason: str


@dataclass
class SchemaMarkup:
    found: bool = False
    count: int = 0
    types: list[str] = field(default_factory=list)
    details: list[dict[str, Any]] = field(default_factory=list)
    recommended: list[SchemaRecommendation] = field(default_factory=list)
    score: int = 0
    has_parse_errors: bool = False
    has_microdata: bool = False


@dataclass
class PageFacts:
    title: str = ""
    title_length: int = 0
    meta_description: str = ""
    meta_description_length: int = 0
    has_h1: bool = False
    h1_count: int = 0
    h1_text: str = ""
    canonical: str = ""
    og_title: str = ""
    og_description: str = ""
    og_image: str = ""
    has_json_ld: bool = False
    has_viewport: bool = False
    has_robots_txt: bool = False
    has_sitemap: bool = False
    is_https: bool = False
    has_hsts: bool = False
    has_xfo: bool = False
    has_xcto: bool = False
    has_csp: bool = False
    has_referrer_policy: bool = False
    security_score: int = 0
    schema_markup: SchemaMarkup = field(default_factory=SchemaMarkup)

    @classmethod
    def degraded(cls) -> "PageFacts":
        return cls(security_score=0, is_https=False, schema_markup=SchemaMarkup())


@dataclass
class ManifestFacts:
    has_name: bool = False
    has_icons: bool = False
    has_start_url: bool = False
    has_display: bool = False
    has_theme_color: bool = False
    has_background_color: bool = False
    icons: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PwaFacts:
    is_https: bool = False
    has_manifest_link: bool = False
    manifest_url: Optional[str] = None
    has_service_worker: bool = False
    has_apple_touch_icon: bool = False
    has_theme_color: bool = False
    has_viewport: bool = False
    manifest: Optional[ManifestFacts] = None
    score: int = 0

    @classmethod
    def degraded(cls) -> "PwaFacts":
        return cls()

    def checks(self) -> dict[str, Any]:
        data = to_payload(self)
        data.pop("score", None)
        return data


@dataclass
class AuditMetrics:
    performance: int
    performance_mobile: int
    performance_desktop: int
    seo: int
    lighthouse_seo: int
    accessibility: int
    best_practices: int
    pwa: int
    security: int
    overall: int
    grade: str
    lcp_ms: Optional[float]
    fcp_ms: Optional[float]
    cls_score: Optional[float]
    tbt_ms: Optional[float]
    tti_ms: Optional[float]
    speed_index_ms: Optional[float]
    fid_ms: Optional[float]
    seo_issues: list[Issue]
    performance_issues: list[Issue]
    security_issues: dict[str, bool]
    priority_actions: list[str]
    insights_summary: str
    schema_markup: SchemaMarkup

    def scores(self) -> dict[str, Any]:
        return {
            "performance": self.performance,
            "performanceMobile": self.performance_mobile,
            "performanceDesktop": self.performance_desktop,
            "seo": self.seo,
            "lighthouseSeo": self.lighthouse_seo,
            "accessibility": self.accessibility,
            "bestPractices": self.best_practices,
            "pwa": self.pwa,
            "security": self.security,
            "overall": self.overall,
            "lcpMs": self.lcp_ms,
            "fcpMs": self.fcp_ms,
            "clsScore": self.cls_score,
            "tbtMs": self.tbt_ms,
            "ttiMs": self.tti_ms,
            "speedIndexMs": self.speed_index_ms,
            "fidMs": self.fid_ms,
        }


@dataclass
class AuditJob:
    id: str
    target_url: str
    status: AuditStatus = "pending"
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    heartbeat_at: Optional[str] = None
    summary: Optional[dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AuditJob":
        return cls(
            id=str(row["id"]),
            target_url=str(row.get("target_url") or ""),
            status=row.get("status") or "pending",
            error_message=row.get("error_message"),
            created_at=_iso(row.get("created_at")),
            completed_at=_iso(row.get("completed_at")),
            heartbeat_at=_iso(row.get("heartbeat_at")),
            summary=row.get("summary"),
        )


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
