from __future__ import annotations
import logging
import os
import sys

from referrer_insights.config import DATABASE_URL, LOG_FILE, REPORT_OUTPUT
from referrer_insights.persister import Persister
from referrer_insights.pipeline import run

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main() -> None:
    if len(sys.argv) > 2:
        print(f"python main.py [logs{os.sep}access.log]")
        sys.exit(1)
    # an explicit path wins over LOG_FILE from the environment / .env
    input_path = sys.argv[1] if len(sys.argv) == 2 else LOG_FILE

    persister = None
    if DATABASE_URL:
        persister = Persister.from_url(DATABASE_URL)
        persister.create_tables()
    else:
        logger.warning("DATABASE_URL not set - aggregates will not be persisted")

    result = run(input_path, persister=persister, report_output=REPORT_OUTPUT)
    if result is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
