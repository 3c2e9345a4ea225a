from __future__ import annotations
from typing import Sequence, TypeVar

from referrer_insights.config import TOP_N
from referrer_insights.models import Aggregates, ExternalReferral, SearchReferral

Row = TypeVar("Row", SearchReferral, ExternalReferral)


def top_entries(rows: Sequence[Row], n: int = TOP_N) -> list[Row]:
    # sorted() is stable with reverse=True too, so equal counts stay in first-seen order
    return sorted(rows, key=lambda r: r.count, reverse=True)[:n]


def format_report(aggregates: Aggregates, n: int = TOP_N) -> list[str]:
    stats = aggregates.stats
    lines = [
        f"Processed {stats.processed} log entries",
        f"Found {stats.search} search engine referrals",
        f"Found {stats.external} external referrals",
        "",
        "=== TOP SEARCH QUERIES ===",
    ]
    for s in top_entries(aggregates.searches, n):
        lines.append(f'  {s.count}x [{s.engine}] "{s.query}"')

    lines += ["", "=== TOP REFERRER DOMAINS ==="]
    for r in top_entries(aggregates.externals, n):
        flag = "!" if r.is_competitor else " "
        lines.append(f"  {r.count}x {flag} {r.domain}")

    return lines
