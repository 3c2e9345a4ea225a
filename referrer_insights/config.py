from __future__ import annotations
import os
import re

from dotenv import load_dotenv

load_dotenv()

LOG_FILE: str = os.getenv("LOG_FILE", "/var/log/apache2/boyvue_access.log")

# Referrers whose domain contains this are our own pages, not traffic sources
SITE_DOMAIN: str = os.getenv("SITE_DOMAIN", "boyvue.com")

DATABASE_URL: str | None = os.getenv("DATABASE_URL")

PROCESSOR: str = os.getenv("PROCESSOR", "chunked")
#PROCESSOR = os.getenv("PROCESSOR", "spark")

REPORT_OUTPUT: str | None = os.getenv("REPORT_OUTPUT")

# Order matters: first pattern that matches wins.
# Each pattern captures the raw (still url-encoded) query parameter value.
SEARCH_ENGINES: list[tuple[str, re.Pattern[str]]] = [
    ("google",     re.compile(r"google(?:\.[a-z]{2,3}){1,2}/search\?(?:.*&)?q=([^&#]+)", re.I)),
    ("bing",       re.compile(r"bing\.com/search\?(?:.*&)?q=([^&#]+)", re.I)),
    ("yahoo",      re.compile(r"search\.yahoo\.com/search[^?]*\?(?:.*&)?p=([^&#]+)", re.I)),
    ("duckduckgo", re.compile(r"duckduckgo\.com/\?(?:.*&)?q=([^&#]+)", re.I)),
    ("yandex",     re.compile(r"yandex(?:\.[a-z]{2,3}){1,2}/search[^?]*\?(?:.*&)?text=([^&#]+)", re.I)),
    ("baidu",      re.compile(r"baidu\.com/s\?(?:.*&)?wd=([^&#]+)", re.I)),
]

# Competitor / adjacent-site watch-list, matched against the referrer domain
COMPETITOR_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.I) for p in (
        r"pornhub\.com", r"xvideos\.com", r"xhamster\.com", r"redtube\.com",
        r"youporn\.com", r"tube8\.com", r"spankbang\.com", r"xnxx\.com",
        r"gaymaletube\.com", r"gaytube\.com", r"boyfriendtv\.com",
        r"xtube\.com", r"gayforit\.eu", r"thisvid\.com", r"ashemaletube\.com",
        r"reddit\.com", r"twitter\.com", r"tumblr\.com",
    )
]

# geo-ip is not resolved, every persisted row gets this placeholder
UNKNOWN_COUNTRY: str = "XX"

MAX_QUERY_LEN: int = 500
MAX_TERM_LEN: int  = 255
MAX_URL_LEN: int   = 1000

TOP_N: int = int(os.getenv("TOP_N", "20"))

CHUNK_SIZE: int = int(os.getenv("CHUNK_SIZE", "10000"))


OUTPUT_SUFFIX: str       = "_ReferrerReport.tab"
OUTPUT_HEADER: list[str] = ["Type", "Source", "Key", "Count", "Competitor"]
TSV_DELIMITER: str       = "\t"
