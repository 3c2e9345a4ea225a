"""
Writes a run's aggregates to the analytics database.

Three tables, three write policies:
- search_engine_referrals: insert, duplicate natural key is skipped
- content_demand: insert, existing term gets the run's count added
- external_referrers: plain insert, every run appends

Each row is written in its own transaction. A failing row is logged and
counted, the rest of the batch still goes through.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from sqlalchemy import (
    Column, DateTime, Integer, MetaData, String, Table, Text, UniqueConstraint,
    create_engine, func, insert,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from referrer_insights.config import MAX_QUERY_LEN, MAX_TERM_LEN, MAX_URL_LEN, UNKNOWN_COUNTRY
from referrer_insights.models import Aggregates, ExternalReferral, SearchReferral

logger = logging.getLogger(__name__)

metadata = MetaData()

search_engine_referrals = Table(
    "search_engine_referrals", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("engine", String(32), nullable=False),
    Column("search_query", String(MAX_QUERY_LEN), nullable=False),
    Column("landing_page", Text),
    Column("ip", String(64)),
    Column("country", String(2)),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
    UniqueConstraint("engine", "search_query", "landing_page", "ip",
                     name="uq_search_engine_referrals_natural_key"),
)

content_demand = Table(
    "content_demand", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("term", String(MAX_TERM_LEN), nullable=False, unique=True),
    Column("source", String(32)),
    Column("search_count", Integer, nullable=False, default=0),
    Column("last_searched", DateTime),
)

external_referrers = Table(
    "external_referrers", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("referrer_domain", String(255), nullable=False),
    Column("referrer_url", String(MAX_URL_LEN)),
    Column("landing_page", Text),
    Column("ip", String(64)),
    Column("country", String(2)),
    Column("created_at", DateTime, server_default=func.current_timestamp()),
)

# dialects with INSERT ... ON CONFLICT support
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass
class PersistResult:
    search_rows: int = 0
    external_rows: int = 0
    failed: int = 0


class Persister:

    def __init__(self, engine: Engine):
        try:
            self._upsert = _UPSERT_INSERTS[engine.dialect.name]
        except KeyError:
            raise ValueError(f"Unsupported database dialect: {engine.dialect.name}") from None
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "Persister":
        engine = create_engine(database_url, pool_pre_ping=True, echo=False)
        return cls(engine)

    def create_tables(self) -> None:
        metadata.create_all(self.engine)

    def persist(self, aggregates: Aggregates) -> PersistResult:
        result = PersistResult()

        for row in aggregates.searches:
            try:
                with self.engine.begin() as conn:
                    self.save_search_referral(conn, row)
                    self.save_content_demand(conn, row)
                result.search_rows += 1
            except SQLAlchemyError as e:
                result.failed += 1
                logger.warning("persistence_failure table=search_engine_referrals key=%s: %s", row.key, e)

        for row in aggregates.externals:
            try:
                with self.engine.begin() as conn:
                    self.save_external_referral(conn, row)
                result.external_rows += 1
            except SQLAlchemyError as e:
                result.failed += 1
                logger.warning("persistence_failure table=external_referrers key=%s: %s", row.key, e)

        logger.info(
            "Saved %d search referrals, %d external referrals (%d failed)",
            result.search_rows, result.external_rows, result.failed,
        )
        return result

    def save_search_referral(self, conn: Connection, row: SearchReferral) -> None:
        stmt = self._upsert(search_engine_referrals).values(
            engine=row.engine,
            search_query=row.query[:MAX_QUERY_LEN],
            landing_page=row.landing_page,
            ip=row.ip,
            country=UNKNOWN_COUNTRY,
        )
        conn.execute(stmt.on_conflict_do_nothing())

    def save_content_demand(self, conn: Connection, row: SearchReferral) -> None:
        # additive across runs: re-processing the same log counts it again
        stmt = self._upsert(content_demand).values(
            term=row.query.lower()[:MAX_TERM_LEN],
            source=row.engine,
            search_count=row.count,
            last_searched=func.current_timestamp(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[content_demand.c.term],
            set_={
                "search_count": content_demand.c.search_count + stmt.excluded.search_count,
                "last_searched": func.current_timestamp(),
            },
        )
        conn.execute(stmt)

    def save_external_referral(self, conn: Connection, row: ExternalReferral) -> None:
        conn.execute(
            insert(external_referrers).values(
                referrer_domain=row.domain,
                referrer_url=row.url[:MAX_URL_LEN],
                landing_page=row.landing_page,
                ip=row.ip,
                country=UNKNOWN_COUNTRY,
            )
        )
