"""
Analysis Pipeline - Search, Fetch, Summarize, Rank

Runs one analysis for a user's keywords and described situation:
1. Paginated search (with an unfiltered retry when filters find nothing)
2. Sequential, rate-limit-aware fetch of each case's text
3. Summaries via the language model, reusing the summary cache
4. Relevance ranking, enriched with case metadata

Progress is reported at every step; the final ranking is stored in the
caller's AnalysisContext for follow-up chat.

Usage:
    pipeline = AnalysisPipeline(client, llm, cache, AnalysisContext(), reporter)
    result = await pipeline.run("refund of ITC", "My client was denied a refund...", count=45)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from casebot.apps.analyzer import AnalysisContext, LLMClient, enrich_rankings, rank_by_relevance, summarize_all
from casebot.apps.client import CentaxClient
from casebot.apps.downloader import html_to_text
from casebot.apps.fetcher import FetchPolicy, collect_search_results, fetch_case_texts
from casebot.apps.progress import ProgressReporter
from casebot.utils.config import settings
from casebot.utils.lookup import load_filter_ids, map_filters
from casebot.utils.schemas import CaseText, RankResult, SearchHit, SearchPage
from casebot.utils.storage import SummaryCache

logger = logging.getLogger(__name__)


class AnalysisPipeline:
    """
    One analysis run over the remote search results.

    Handles:
    - Filter mapping and the unfiltered fallback search
    - The backoff fetch loop over the search hits
    - Cached summarization and ranking
    """

    def __init__(
        self,
        client: CentaxClient,
        llm: LLMClient,
        cache: SummaryCache,
        analysis: AnalysisContext,
        reporter: Optional[ProgressReporter] = None,
        policy: Optional[FetchPolicy] = None,
        filter_ids: Optional[dict[str, dict[str, str]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.llm = llm
        self.cache = cache
        self.analysis = analysis
        self.reporter = reporter or ProgressReporter()
        self.policy = policy or FetchPolicy.from_settings()
        self._filter_ids = filter_ids
        self.sleep = sleep

    @property
    def filter_ids(self) -> dict[str, dict[str, str]]:
        if self._filter_ids is None:
            self._filter_ids = load_filter_ids(settings.FILTERS_CSV)
        return self._filter_ids

    async def search(
        self,
        keywords: str,
        count: int,
        api_filter: dict[str, Any],
        headnote_only: bool,
        sortby: str,
    ) -> list[SearchHit]:
        async def search_page(page: int, page_size: int) -> SearchPage:
            return await self.client.search_cases(
                keywords,
                page=page,
                page_size=page_size,
                sortby=sortby,
                filter=api_filter,
                headnote_only=headnote_only,
            )

        job = await collect_search_results(
            search_page,
            target_count=count,
            page_size=settings.SEARCH_PAGE_SIZE,
            page_delay=settings.SEARCH_PAGE_DELAY,
            sleep=self.sleep,
            reporter=self.reporter,
        )
        return job.items_collected

    async def fetch_one(self, hit: SearchHit) -> CaseText:
        doc = await self.client.get_case_html(hit.id)
        return CaseText(
            id=hit.id,
            filename=hit.heading or hit.id,
            heading=hit.heading,
            court=hit.court,
            date=hit.date,
            text=html_to_text(doc.html_content),
        )

    async def run(
        self,
        keywords: str,
        user_context: str,
        count: int = 100,
        filters: Optional[dict[str, Any]] = None,
    ) -> Optional[RankResult]:
        """
        Run the full analysis.

        Returns:
            The enriched ranking, or None when the search finds nothing

        Raises:
            AuthError, AuthorizationExpiredError: If authentication stays broken
        """
        try:
            return await self._run(keywords, user_context, count, filters or {})
        except Exception as e:
            logger.error("Analysis failed", extra={"error": str(e)}, exc_info=True)
            await self.reporter.emit("error", str(e))
            raise

    async def _run(self, keywords: str, user_context: str, count: int, filters: dict[str, Any]) -> Optional[RankResult]:
        api_filter, headnote_only = map_filters(filters, self.filter_ids)
        sortby = filters.get("sort") or "relevance"
        has_filters = bool(api_filter) or headnote_only

        applied = f" with {len(api_filter) + int(headnote_only)} filters" if has_filters else ""
        await self.reporter.emit("search", f'Searching for "{keywords}"{applied}...')
        logger.info("Search filters", extra={"filters": filters, "api_filter": api_filter, "headnote_only": headnote_only})

        hits = await self.search(keywords, count, api_filter, headnote_only, sortby)
        if not hits and has_filters:
            await self.reporter.emit("search", "Filters too restrictive, retrying without filters...")
            hits = await self.search(keywords, count, {}, False, sortby)

        await self.reporter.emit("search_done", f"Analyzing top {len(hits)} cases.", total=len(hits))
        if not hits:
            await self.reporter.emit("error", "No results found. Try different keywords.")
            return None

        report = await fetch_case_texts(
            hits, self.fetch_one, policy=self.policy, sleep=self.sleep, reporter=self.reporter
        )
        texts = report.texts
        if report.skipped:
            message = f"Read {len(texts)} case texts ({report.skipped} case(s) could not be read). Summarizing..."
        else:
            message = f"Read {len(texts)} case texts. Summarizing..."
        await self.reporter.emit("fetch_done", message, progress=len(texts), total=len(hits))

        await self.reporter.emit(
            "summarize", f"Summarizing {len(texts)} cases via AI (cached summaries skip instantly)..."
        )
        summaries = await summarize_all(texts, self.cache, self.llm, sleep=self.sleep)
        await self.reporter.emit("summarize_done", f"All {len(summaries)} cases summarized.", total=len(summaries))

        await self.reporter.emit("rank", f"Ranking {len(summaries)} cases by relevance to your situation...")
        result = await rank_by_relevance(self.llm, summaries, user_context)
        result = enrich_rankings(result, texts, hits, summaries)

        self.analysis.start(summaries, texts, user_context, result.model_dump_json())

        await self.reporter.emit(
            "done",
            "Analysis complete!",
            data=result.model_dump(),
            total=len(summaries),
        )
        return result
