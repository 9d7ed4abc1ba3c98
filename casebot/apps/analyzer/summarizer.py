"""
Case Summarizer

Summarizes case texts with the language model, consulting the summary cache
first so re-runs only pay for cases not seen before.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from openai import OpenAIError

from casebot.apps.analyzer.llm import LLMClient
from casebot.apps.analyzer.prompts import SUMMARY_SYSTEM
from casebot.utils.config import settings
from casebot.utils.errors import PersistentIOError
from casebot.utils.schemas import CaseSummary, CaseText
from casebot.utils.storage import SummaryCache

logger = logging.getLogger(__name__)


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n...[truncated]"


async def summarize_case(llm: LLMClient, text: str, max_chars: Optional[int] = None) -> str:
    """Ask the model for a 150-200 word structured summary of one case."""
    limit = settings.SUMMARY_MAX_CHARS if max_chars is None else max_chars
    return await llm.complete(
        [
            {"role": "system", "content": SUMMARY_SYSTEM},
            {"role": "user", "content": truncate(text, limit)},
        ],
        temperature=0.2,
        max_tokens=400,
    )


async def summarize_all(
    cases: Sequence[CaseText],
    cache: SummaryCache,
    llm: LLMClient,
    delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict[str, CaseSummary]:
    """
    Summarize every case missing from the cache.

    The cache is saved after each new summary so an interrupted run keeps its
    progress. A case whose summarization fails is logged and left out.

    Args:
        cases: Case texts to summarize
        cache: Summary cache, updated in place
        llm: Language model client
        delay: Pause after each new summary
        sleep: Wait primitive

    Returns:
        Summaries for the given cases, keyed by case id
    """
    delay = settings.SUMMARY_DELAY if delay is None else delay
    new_count = 0
    failed = 0

    for case in cases:
        if case.id in cache:
            logger.debug("Summary cached", extra={"case_id": case.id})
            continue

        try:
            logger.info("Summarizing", extra={"case_id": case.id, "file_name": case.filename})
            summary = await summarize_case(llm, case.text)
        except (OpenAIError, ValueError) as e:
            failed += 1
            logger.error("Summarization failed", extra={"case_id": case.id, "error": str(e)})
            continue

        cache.put(case.id, CaseSummary(filename=case.filename, summary=summary))
        new_count += 1

        try:
            cache.save()
        except PersistentIOError as e:
            logger.warning("Could not save summary cache", extra={"error": str(e)})

        await sleep(delay)

    logger.info("Summaries ready", extra={"total": len(cache), "new": new_count, "failed": failed})

    summaries = {}
    for case in cases:
        cached = cache.get(case.id)
        if cached is not None:
            summaries[case.id] = cached
    return summaries
