from __future__ import annotations
import logging
import os

import pandas as pd
from pyspark.errors import AnalysisException
from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.types import BooleanType, StringType, StructField, StructType

from referrer_insights.models import (
    EXTERNAL, MALFORMED, NO_REFERRER, SEARCH,
    Aggregates, ExternalMatch, ExternalReferral, RunStats, SearchMatch,
    SearchReferral, search_key,
)
from referrer_insights.parsers import classify_referrer, parse_log_line
from referrer_insights.processor import BaseProcessor, is_s3

logger = logging.getLogger(__name__)


EVENT_SCHEMA = StructType([
    StructField("outcome",       StringType(),  False),
    StructField("key",           StringType(),  True),
    StructField("engine",        StringType(),  True),
    StructField("query",         StringType(),  True),
    StructField("domain",        StringType(),  True),
    StructField("is_competitor", BooleanType(), True),
    StructField("url",           StringType(),  True),
    StructField("landing_page",  StringType(),  True),
    StructField("ip",            StringType(),  True),
])
EVENT_COLUMNS = [f.name for f in EVENT_SCHEMA.fields]


def line_event(line: str, site_domain: str) -> tuple:
    """Classify one raw line into a flat row matching EVENT_SCHEMA."""
    record = parse_log_line(line)
    if record is None:
        return (MALFORMED,) + (None,) * 8
    if not record.referrer:
        return (NO_REFERRER,) + (None,) * 8

    match = classify_referrer(record.referrer, site_domain)
    if isinstance(match, SearchMatch):
        return (SEARCH, search_key(match.engine, match.query), match.engine, match.query,
                None, None, record.referrer, record.path, record.client_ip)
    if isinstance(match, ExternalMatch):
        return (EXTERNAL, match.domain, None, None, match.domain, match.is_competitor,
                record.referrer, record.path, record.client_ip)
    return (match.reason,) + (None,) * 8


def _make_classify_udf(site_domain: str):

    @F.pandas_udf(EVENT_SCHEMA)
    def _udf_classify(lines: pd.Series) -> pd.DataFrame:
        return pd.DataFrame(
            [line_event(line, site_domain) for line in lines],
            columns=EVENT_COLUMNS,
        )

    return _udf_classify


class SparkProcessor(BaseProcessor):

    def describe(self) -> str:
        return f"SparkProcessor | file={self.input_path}"

    def process(self) -> Aggregates:
        if not is_s3(self.input_path) and not os.path.exists(self.input_path):
            raise FileNotFoundError(self.input_path)

        spark = self._get_session()

        events = self._classify(self._read(spark)).cache()
        try:
            stats = self._stats(events)
            searches = self._aggregate_searches(events)
            externals = self._aggregate_externals(events)
        finally:
            events.unpersist()

        logger.info(
            "Spark pipeline complete | lines: %s | search keys: %d | external domains: %d",
            f"{stats.lines_read:,}", len(searches), len(externals),
        )
        return Aggregates(searches=searches, externals=externals, stats=stats)


    def _read(self, spark: SparkSession) -> DataFrame:
        logger.info("Reading: %s", self.input_path)
        path = self.input_path.replace("s3://", "s3a://", 1)
        try:
            df = spark.read.text(path)
        except AnalysisException as e:
            if "Path does not exist" in str(e):
                raise FileNotFoundError(self.input_path) from e
            raise
        # ids grow with file position, which gives first-seen / last-seen order
        return df.withColumn("_seq", F.monotonically_increasing_id())

    def _classify(self, df: DataFrame) -> DataFrame:
        classify = _make_classify_udf(self.site_domain)
        return (
            df
            .withColumn("_ev", classify(F.col("value")))
            .select("_seq", "_ev.*")
        )

    @staticmethod
    def _stats(events: DataFrame) -> RunStats:
        stats = RunStats()
        for row in events.groupBy("outcome").count().collect():
            stats.bump(row["outcome"], row["count"])
        return stats

    @staticmethod
    def _latest(column: str):
        return F.max_by(column, "_seq").alias(column)

    def _aggregate_searches(self, events: DataFrame) -> tuple[SearchReferral, ...]:
        rows = (
            events
            .filter(F.col("outcome") == SEARCH)
            .groupBy("key")
            .agg(
                F.count(F.lit(1)).alias("count"),
                F.min("_seq").alias("first_seen"),
                self._latest("engine"),
                self._latest("query"),
                self._latest("landing_page"),
                self._latest("ip"),
            )
            .orderBy("first_seen")
            .collect()
        )
        return tuple(
            SearchReferral(
                engine=r["engine"], query=r["query"], landing_page=r["landing_page"],
                ip=r["ip"], count=r["count"],
            )
            for r in rows
        )

    def _aggregate_externals(self, events: DataFrame) -> tuple[ExternalReferral, ...]:
        rows = (
            events
            .filter(F.col("outcome") == EXTERNAL)
            .groupBy("key")
            .agg(
                F.count(F.lit(1)).alias("count"),
                F.min("_seq").alias("first_seen"),
                self._latest("domain"),
                self._latest("is_competitor"),
                self._latest("url"),
                self._latest("landing_page"),
                self._latest("ip"),
            )
            .orderBy("first_seen")
            .collect()
        )
        return tuple(
            ExternalReferral(
                domain=r["domain"], url=r["url"], landing_page=r["landing_page"],
                ip=r["ip"], is_competitor=bool(r["is_competitor"]), count=r["count"],
            )
            for r in rows
        )


    @staticmethod
    def _get_session() -> SparkSession:

        return (
            SparkSession.builder
            .appName("ReferrerInsights")
            .config("spark.sql.adaptive.enabled",                            "true")
            .config("spark.sql.adaptive.coalescePartitions.enabled",         "true")
            .config("spark.sql.adaptive.coalescePartitions.minPartitionNum", "1")
            .config("spark.sql.adaptive.advisoryPartitionSizeInBytes",       "134217728")
            .config("spark.sql.adaptive.skewJoin.enabled",                   "true")
            .config("spark.serializer", "org.apache.spark.serializer.KryoSerializer")
            .getOrCreate()
        )
