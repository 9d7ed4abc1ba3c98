"""
Fetcher App - Paginated Search and Rate-Limit-Aware Text Fetching

Responsibilities:
- Walk search pages (capped at 20 per page) up to a target count, deduplicating ids
- Fetch each case's text sequentially with bounded exponential backoff on throttling
- Cool down after failure streaks and periodically, reporting progress as it goes
"""

from casebot.apps.fetcher.backoff import FailureKind, FetchPolicy, classify_failure
from casebot.apps.fetcher.loop import BatchFetcher, fetch_case_texts
from casebot.apps.fetcher.pagination import FetchJob, collect_search_results, dedupe_by_id

__all__ = [
    "BatchFetcher",
    "FailureKind",
    "FetchJob",
    "FetchPolicy",
    "classify_failure",
    "collect_search_results",
    "dedupe_by_id",
    "fetch_case_texts",
]
