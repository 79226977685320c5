from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from rich import print
from rich.logging import RichHandler

from portal_audit.config import Settings
from portal_audit.engine.analyzer import run_audit
from portal_audit.store import MemoryAuditStore


async def audit_one(url: str, industry: str = "default", out_path: Optional[str] = None) -> int:
    settings = Settings.from_env()
    store = MemoryAuditStore()
    audit_id = store.create_audit(url)

    outcome = await run_audit(audit_id, store, settings=settings, industry=industry)
    row = store.row(audit_id)

    if not outcome.ok:
        print(f"[red]Audit failed[/red]: {row.get('error_message') or outcome.body.get('error')}")
        return 1

    summary = row["summary"]
    out = Path(out_path or settings.output_dir / f"audit-{audit_id[:8]}.json")
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    metrics = summary["metrics"]
    print(f"[green]Audit complete[/green] for {url}")
    print(f"Saved: {out}")
    print(f"Grade: [bold]{summary['grade']}[/bold]  Overall: {metrics['overall']}/100")
    print(
        f"Performance {metrics['performance']} | SEO {metrics['seo']} | Accessibility {metrics['accessibility']} | "
        f"Security {metrics['security']} | Best Practices {metrics['bestPractices']} | PWA {metrics['pwa']}"
    )
    if summary["priorityActions"]:
        print("\n[bold]Priority actions:[/bold]")
        for action in summary["priorityActions"]:
            print(f"  - {action}")
    print("\n[bold]Summary:[/bold]\n" + summary["insightsSummary"])
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Audit one website and save the report summary as JSON.")
    parser.add_argument("url")
    parser.add_argument("--industry", default="default")
    parser.add_argument("--out", default=None, help="where to write the summary JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    return asyncio.run(audit_one(args.url, industry=args.industry, out_path=args.out))


if __name__ == "__main__":
    raise SystemExit(main())
