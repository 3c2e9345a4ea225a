from __future__ import annotations
import logging
import os
from abc import ABC, abstractmethod
from typing import Iterator

from referrer_insights import config
from referrer_insights.aggregator import Aggregator
from referrer_insights.models import Aggregates
from referrer_insights.parsers import parse_log_line

logger = logging.getLogger(__name__)

# get_object error codes that mean the input is not there
S3_MISSING_CODES = {"NoSuchKey", "NoSuchBucket", "404"}


def is_s3(path: str) -> bool:
    return path.startswith("s3://")


def split_s3(path: str) -> tuple[str, str]:
    bucket, _, key = path[len("s3://"):].partition("/")
    return bucket, key


class BaseProcessor(ABC):

    def __init__(self, input_path: str, site_domain: str | None = None):
        self.input_path = input_path
        self.site_domain = site_domain or config.SITE_DOMAIN

    @abstractmethod
    def process(self) -> Aggregates:
        ...

    @abstractmethod
    def describe(self) -> str:
        ...


class ChunkedProcessor(BaseProcessor):

    def describe(self) -> str:
        return f"ChunkedProcessor | chunk_size={config.CHUNK_SIZE:,} lines | file={self.input_path}"

    def process(self) -> Aggregates:
        aggregator = Aggregator(self.site_domain)

        for chunk in self._iter_chunks():
            for line in chunk:
                aggregator.observe(parse_log_line(line))

        result = aggregator.snapshot()
        logger.info(
            "Read %s lines | malformed: %d | search referrals: %d | external referrals: %d",
            f"{result.stats.lines_read:,}", result.stats.malformed,
            result.stats.search, result.stats.external,
        )
        return result

    def _iter_chunks(self) -> Iterator[list[str]]:
        # chunk size is read per run so tests can shrink it
        chunk_size = config.CHUNK_SIZE
        chunk = []
        for line in self._iter_lines():
            chunk.append(line)
            if len(chunk) == chunk_size:
                yield chunk
                chunk = []
        if chunk:
            yield chunk

    def _iter_lines(self) -> Iterator[str]:
        if is_s3(self.input_path):
            yield from self._iter_s3_lines()
            return

        if not os.path.exists(self.input_path):
            raise FileNotFoundError(self.input_path)
        with open(self.input_path, encoding="utf-8", errors="replace") as fh:
            yield from fh

    def _iter_s3_lines(self) -> Iterator[str]:
        import boto3
        from botocore.exceptions import ClientError
        bucket, key = split_s3(self.input_path)
        s3 = boto3.client("s3")
        try:
            obj = s3.get_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in S3_MISSING_CODES:
                raise FileNotFoundError(self.input_path) from e
            raise
        for raw in obj["Body"].iter_lines():
            yield raw.decode("utf-8", errors="replace")
