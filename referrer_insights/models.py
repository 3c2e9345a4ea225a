from __future__ import annotations
from dataclasses import dataclass, field

# Outcome of a single log line. RunStats has one counter per outcome.
MALFORMED      = "malformed"
NO_REFERRER    = "no_referrer"
SEARCH         = "search"
EXTERNAL       = "external"
SELF_REFERRAL  = "self_referral"
UNCLASSIFIABLE = "unclassifiable"


@dataclass(frozen=True)
class RequestRecord:
    client_ip: str
    timestamp: str
    method: str
    path: str
    status_code: str
    referrer: str | None
    user_agent: str


@dataclass(frozen=True)
class SearchMatch:
    engine: str
    query: str


@dataclass(frozen=True)
class ExternalMatch:
    domain: str
    is_competitor: bool


@dataclass(frozen=True)
class NoMatch:
    reason: str


@dataclass(frozen=True)
class SearchReferral:
    engine: str
    query: str
    landing_page: str
    ip: str
    count: int = 1

    @property
    def key(self) -> str:
        return search_key(self.engine, self.query)


@dataclass(frozen=True)
class ExternalReferral:
    domain: str
    url: str
    landing_page: str
    ip: str
    is_competitor: bool
    count: int = 1

    @property
    def key(self) -> str:
        return self.domain


@dataclass
class RunStats:
    malformed: int = 0
    no_referrer: int = 0
    search: int = 0
    external: int = 0
    self_referral: int = 0
    unclassifiable: int = 0

    def bump(self, outcome: str, n: int = 1) -> None:
        setattr(self, outcome, getattr(self, outcome) + n)

    @property
    def processed(self) -> int:
        """Lines that carried a referrer."""
        return self.search + self.external + self.self_referral + self.unclassifiable

    @property
    def lines_read(self) -> int:
        return self.processed + self.malformed + self.no_referrer


@dataclass(frozen=True)
class Aggregates:
    searches: tuple[SearchReferral, ...] = ()
    externals: tuple[ExternalReferral, ...] = ()
    stats: RunStats = field(default_factory=RunStats)


def search_key(engine: str, query: str) -> str:
    return f"{engine}:{query.lower()}"
