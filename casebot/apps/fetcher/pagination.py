"""
Paginated Search Collection

The remote caps search pages at 20 results, so collecting a larger target
means walking pages until the target or the remote total is reached, then
trimming and removing ids repeated across pages.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from casebot.apps.progress import ProgressReporter
from casebot.utils.schemas import SearchHit, SearchPage

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 20

SearchPageFn = Callable[[int, int], Awaitable[SearchPage]]


@dataclass
class FetchJob:
    target_count: int
    page_size: int = MAX_PAGE_SIZE
    consecutive_failures: int = 0
    items_collected: list[SearchHit] = field(default_factory=list)
    total_available: int = 0

    def __post_init__(self) -> None:
        self.page_size = max(1, min(self.page_size, MAX_PAGE_SIZE))

    @property
    def max_pages(self) -> int:
        return math.ceil(self.target_count / self.page_size) if self.target_count > 0 else 0

    def is_complete(self) -> bool:
        collected = len(self.items_collected)
        return collected >= self.target_count or collected >= self.total_available


def dedupe_by_id(hits: Iterable[SearchHit]) -> list[SearchHit]:
    """Drop repeated ids, keeping the first occurrence and the original order."""
    seen: set[str] = set()
    unique = []
    for hit in hits:
        if hit.id in seen:
            continue
        seen.add(hit.id)
        unique.append(hit)
    return unique


async def collect_search_results(
    search_page: SearchPageFn,
    target_count: int,
    page_size: int = MAX_PAGE_SIZE,
    page_delay: float = 0.3,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    reporter: Optional[ProgressReporter] = None,
) -> FetchJob:
    """
    Walk search pages until `target_count` hits are collected.

    Args:
        search_page: Async callable(page, page_size) returning one SearchPage
        target_count: Number of hits wanted
        page_size: Requested page size, capped at 20
        page_delay: Pause between pages
        sleep: Wait primitive
        reporter: Progress sink

    Returns:
        FetchJob whose items_collected is trimmed to target_count and deduplicated
    """
    job = FetchJob(target_count=target_count, page_size=page_size)
    total_pages = job.max_pages

    for page in range(1, total_pages + 1):
        result = await search_page(page, job.page_size)
        job.total_available = result.total_count
        job.items_collected.extend(result.results)

        if reporter is not None:
            await reporter.emit(
                "search",
                f"Searching... page {page}/{total_pages} ({len(job.items_collected)} cases so far)",
                progress=len(job.items_collected),
            )

        if job.is_complete() or not result.results:
            break
        if page < total_pages:
            await sleep(page_delay)

    trimmed = job.items_collected[:target_count]
    job.items_collected = dedupe_by_id(trimmed)
    removed = len(trimmed) - len(job.items_collected)
    if removed:
        logger.warning("Removed duplicate cases", extra={"duplicates": removed})
    return job
