from __future__ import annotations
import os
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

try:
    from pyspark.sql import SparkSession
    PYSPARK_AVAILABLE = True
except ImportError:
    PYSPARK_AVAILABLE = False


def _line(ip: str, path: str, referrer: str) -> str:
    return (
        f'{ip} - - [19/Oct/2026:10:15:32 +0000] "GET {path} HTTP/1.1" 200 512 '
        f'"{referrer}" "Mozilla/5.0"'
    )


@unittest.skipUnless(PYSPARK_AVAILABLE, "PySpark not installed — skipping Spark tests")
class TestSparkProcessor(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        from referrer_insights.spark_processor import SparkProcessor
        cls.spark = SparkProcessor._get_session()

    @classmethod
    def tearDownClass(cls):
        cls.spark.stop()

    # ── helpers ─────────────────────

    def _make_log(self, lines: list[str]) -> str:
        f = tempfile.NamedTemporaryFile(
            mode="w", suffix=".log", delete=False, encoding="utf-8"
        )
        f.write("\n".join(lines) + "\n")
        f.close()
        return f.name

    def _run(self, lines: list[str]):
        from referrer_insights.spark_processor import SparkProcessor
        path = self._make_log(lines)
        try:
            return SparkProcessor(path, site_domain="boyvue.com").process()
        finally:
            os.unlink(path)

    def _run_both(self, lines: list[str]):
        from referrer_insights.processor import ChunkedProcessor
        path = self._make_log(lines)
        try:
            return ChunkedProcessor(path, site_domain="boyvue.com").process(), self._run(lines)
        finally:
            os.unlink(path)

    # ── test cases (same as the cases with TestChunkedProcessor) ─────────────────────────────

    def test_five_line_scenario(self):
        result = self._run([
            _line("10.0.0.1", "/v/1", "https://www.google.com/search?q=query-a"),
            _line("10.0.0.2", "/v/2", "https://www.google.com/search?q=query-a"),
            _line("10.0.0.3", "/v/3", "https://www.bing.com/search?q=query-b"),
            _line("10.0.0.4", "/v/4", "https://www.pornhub.com/video/123"),
            _line("10.0.0.5", "/v/5", "https://boyvue.com/category/5"),
        ])
        self.assertEqual(
            [(s.engine, s.query, s.count) for s in result.searches],
            [("google", "query-a", 2), ("bing", "query-b", 1)],
        )
        self.assertEqual(
            [(r.domain, r.count, r.is_competitor) for r in result.externals],
            [("pornhub.com", 1, True)],
        )
        self.assertEqual(result.stats.self_referral, 1)

    def test_last_observation_wins(self):
        result = self._run([
            _line("10.0.0.1", "/a", "https://www.google.com/search?q=Twinks"),
            _line("10.0.0.2", "/b", "https://www.google.com/search?q=twinks"),
        ])
        self.assertEqual(len(result.searches), 1)
        row = result.searches[0]
        self.assertEqual((row.query, row.landing_page, row.ip, row.count), ("twinks", "/b", "10.0.0.2", 2))

    def test_stats_count_skipped_lines(self):
        result = self._run([
            "truncated line",
            _line("10.0.0.1", "/", "-"),
            _line("10.0.0.2", "/", "not a url"),
            _line("10.0.0.3", "/", "https://example.com/"),
        ])
        s = result.stats
        self.assertEqual((s.malformed, s.no_referrer, s.unclassifiable, s.external), (1, 1, 1, 1))

    def test_matches_chunked_backend(self):
        sample = PROJECT_ROOT / "data" / "sample_access.log"
        if not sample.exists():
            self.skipTest(f"Sample file not found: {sample}")
        lines = sample.read_text(encoding="utf-8").splitlines()
        chunked, spark = self._run_both(lines)
        self.assertEqual(spark.searches, chunked.searches)
        self.assertEqual(spark.externals, chunked.externals)
        self.assertEqual(spark.stats, chunked.stats)

    def test_file_not_found(self):
        from referrer_insights.spark_processor import SparkProcessor
        with self.assertRaises(FileNotFoundError):
            SparkProcessor("/nonexistent/access.log").process()

    def test_missing_path_at_read_time(self):
        # remote paths skip the up-front check; the read itself must report them missing
        from referrer_insights.spark_processor import SparkProcessor
        with self.assertRaises(FileNotFoundError):
            SparkProcessor("/nonexistent/access.log")._read(self.spark)



if __name__ == "__main__":
    unittest.main(verbosity=2)
