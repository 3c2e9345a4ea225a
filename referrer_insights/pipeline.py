from __future__ import annotations
import logging

from referrer_insights import config
from referrer_insights.models import Aggregates
from referrer_insights.persister import Persister
from referrer_insights.processor import BaseProcessor, ChunkedProcessor
from referrer_insights.reporter import format_report
from referrer_insights.writer import write_output

logger = logging.getLogger(__name__)


def build_processor(input_path: str, backend: str = config.PROCESSOR) -> BaseProcessor:
    if backend == "spark":
        from referrer_insights.spark_processor import SparkProcessor
        return SparkProcessor(input_path)
    return ChunkedProcessor(input_path)


def run(
    input_path: str,
    persister: Persister | None = None,
    report_output: str | None = None,
    top_n: int = config.TOP_N,
    backend: str = config.PROCESSOR,
) -> Aggregates | None:
    """Read, aggregate, persist, export and print one log file.

    Returns None when the input does not exist; nothing is processed then.
    """
    processor = build_processor(input_path, backend)
    logger.info("Back-end: %s", processor.describe())

    try:
        aggregates = processor.process()
    except FileNotFoundError:
        logger.error("Log file not found: %s", input_path)
        return None

    stats = aggregates.stats
    logger.info(
        "Skipped %d malformed lines, %d without referrer, %d self-referrals, %d unclassifiable",
        stats.malformed, stats.no_referrer, stats.self_referral, stats.unclassifiable,
    )

    if persister is not None:
        persister.persist(aggregates)
        logger.info("Data saved to database")

    if report_output:
        write_output(aggregates, report_output, limit=top_n)

    print("\n".join(format_report(aggregates, top_n)))
    return aggregates
