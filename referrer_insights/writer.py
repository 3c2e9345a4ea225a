from __future__ import annotations

import csv
import io
import logging
from datetime import datetime
from pathlib import Path

from referrer_insights.config import OUTPUT_HEADER, OUTPUT_SUFFIX, TSV_DELIMITER
from referrer_insights.models import Aggregates
from referrer_insights.processor import is_s3, split_s3
from referrer_insights.reporter import top_entries

logger = logging.getLogger(__name__)


def _write_local(content: str, output_path: str) -> None:
    with open(output_path, "w", newline="", encoding="utf-8") as fh:
        fh.write(content)


def _write_s3(content: str, s3_path: str) -> None:
    import boto3
    bucket, key = split_s3(s3_path)
    s3 = boto3.client("s3")
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=content.encode("utf-8"),
        ContentType="text/tab-separated-values",
    )


def write_output(aggregates: Aggregates, output_dir: str, limit: int | None = None) -> str:
    """Export the ranked aggregates as a TSV next to the other run outputs.

    output_dir is a local directory or an s3://bucket/prefix. With limit=None
    every row is written, otherwise only the top `limit` of each kind.
    """
    date_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    filename = f"{date_str}{OUTPUT_SUFFIX}"

    if is_s3(output_dir):
        output_path = f"{output_dir.rstrip('/')}/{filename}"
    else:
        output_path = str(Path(output_dir) / filename)

    n_search = len(aggregates.searches) if limit is None else limit
    n_external = len(aggregates.externals) if limit is None else limit

    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=TSV_DELIMITER)
    writer.writerow(OUTPUT_HEADER)
    for s in top_entries(aggregates.searches, n_search):
        writer.writerow(["search", s.engine, s.query, s.count, ""])
    for r in top_entries(aggregates.externals, n_external):
        writer.writerow(["external", r.domain, r.url, r.count, "yes" if r.is_competitor else "no"])
    content = buf.getvalue()

    if is_s3(output_path):
        _write_s3(content, output_path)
    else:
        _write_local(content, output_path)

    logger.info("Report -> %s  (%d search, %d external rows)",
                output_path, min(n_search, len(aggregates.searches)),
                min(n_external, len(aggregates.externals)))
    return output_path
