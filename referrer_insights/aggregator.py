from __future__ import annotations
import logging
from dataclasses import replace

from referrer_insights.config import SITE_DOMAIN
from referrer_insights.models import (
    EXTERNAL, MALFORMED, NO_REFERRER, SEARCH,
    Aggregates, ExternalMatch, ExternalReferral, RequestRecord,
    RunStats, SearchMatch, SearchReferral, search_key,
)
from referrer_insights.parsers import classify_referrer

logger = logging.getLogger(__name__)


class Aggregator:
    """Per-run accumulation of search and external referrals.

    Rows are keyed by engine + lowercased query and by domain. A repeat
    observation bumps the count and replaces every other field with the most
    recent values; dict insertion order keeps rows in first-seen order.
    """

    def __init__(self, site_domain: str = SITE_DOMAIN):
        self.site_domain = site_domain
        self.stats = RunStats()
        self._searches: dict[str, SearchReferral] = {}
        self._externals: dict[str, ExternalReferral] = {}

    def observe(self, record: RequestRecord | None) -> None:
        if record is None:
            self.stats.bump(MALFORMED)
            return
        if not record.referrer:
            self.stats.bump(NO_REFERRER)
            return

        match = classify_referrer(record.referrer, self.site_domain)
        if isinstance(match, SearchMatch):
            self.add_search(match, record.path, record.client_ip)
            self.stats.bump(SEARCH)
        elif isinstance(match, ExternalMatch):
            self.add_external(match, record.referrer, record.path, record.client_ip)
            self.stats.bump(EXTERNAL)
        else:
            logger.debug("Dropped referrer (%s): %s", match.reason, record.referrer)
            self.stats.bump(match.reason)

    def add_search(self, match: SearchMatch, landing_page: str, ip: str) -> None:
        key = search_key(match.engine, match.query)
        previous = self._searches.get(key)
        self._searches[key] = SearchReferral(
            engine=match.engine,
            query=match.query,
            landing_page=landing_page,
            ip=ip,
            count=previous.count + 1 if previous else 1,
        )

    def add_external(self, match: ExternalMatch, url: str, landing_page: str, ip: str) -> None:
        previous = self._externals.get(match.domain)
        self._externals[match.domain] = ExternalReferral(
            domain=match.domain,
            url=url,
            landing_page=landing_page,
            ip=ip,
            is_competitor=match.is_competitor,
            count=previous.count + 1 if previous else 1,
        )

    def snapshot(self) -> Aggregates:
        return Aggregates(
            searches=tuple(self._searches.values()),
            externals=tuple(self._externals.values()),
            stats=replace(self.stats),
        )
