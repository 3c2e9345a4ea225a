from __future__ import annotations
import re
from urllib.parse import unquote, urlparse

from referrer_insights.config import COMPETITOR_PATTERNS, SEARCH_ENGINES, SITE_DOMAIN
from referrer_insights.models import (
    SELF_REFERRAL, UNCLASSIFIABLE,
    ExternalMatch, NoMatch, RequestRecord, SearchMatch,
)

# Combined log format:
# IP - - [date] "METHOD PATH HTTP/x.x" status size "referrer" "user-agent"
LOG_PATTERN = re.compile(
    r'^(?P<ip>\S+) \S+ \S+ '
    r'\[(?P<time>[^\]]+)\] '
    r'"(?P<method>\S+) (?P<path>\S+) [^"]*" '
    r'(?P<status>\d+) \S+ '
    r'"(?P<referrer>[^"]*)" '
    r'"(?P<agent>[^"]*)"'
)


def parse_log_line(line: str) -> RequestRecord | None:
    """Parse one access-log line. Returns None for lines that don't fit the format."""
    m = LOG_PATTERN.match(line.rstrip("\r\n"))
    if not m:
        return None

    referrer = m.group("referrer")
    return RequestRecord(
        client_ip=m.group("ip"),
        timestamp=m.group("time"),
        method=m.group("method"),
        path=m.group("path"),
        status_code=m.group("status"),
        referrer=referrer if referrer != "-" else None,
        user_agent=m.group("agent"),
    )


def extract_search_query(referrer: str) -> SearchMatch | None:

    for engine, pattern in SEARCH_ENGINES:
        m = pattern.search(referrer)
        if m:
            return SearchMatch(engine, _decode_query(m.group(1)))
    return None


def _decode_query(raw: str) -> str:
    value = raw.replace("+", " ")
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        # broken percent-encoding still counts as a search, keep it undecoded
        return value


def get_domain(url: str) -> str | None:
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    return re.sub(r"^www\.", "", hostname.lower())


def is_competitor(domain: str) -> bool:
    return any(p.search(domain) for p in COMPETITOR_PATTERNS)


def classify_referrer(
    referrer: str,
    site_domain: str = SITE_DOMAIN,
) -> SearchMatch | ExternalMatch | NoMatch:

    search = extract_search_query(referrer)
    if search:
        return search

    domain = get_domain(referrer)
    if not domain:
        return NoMatch(UNCLASSIFIABLE)
    if site_domain in domain:
        return NoMatch(SELF_REFERRAL)

    return ExternalMatch(domain, is_competitor(domain))
