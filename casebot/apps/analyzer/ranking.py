"""
Relevance Ranking, Follow-up Chat and Filter Suggestions
"""

import logging
import re
from typing import Any, Mapping, Optional, Sequence

import orjson
from pydantic import ValidationError

from casebot.apps.analyzer.llm import LLMClient
from casebot.apps.analyzer.prompts import CHAT_SYSTEM, FILTER_SYSTEM, RANK_SYSTEM
from casebot.utils.schemas import CaseSummary, CaseText, RankResult, SearchHit

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"```(?:json)?\n?")


def parse_json_reply(content: str) -> Optional[Any]:
    """Decode a JSON reply, tolerating markdown code fences. None if it is not JSON."""
    try:
        return orjson.loads(CODE_FENCE.sub("", content).strip())
    except orjson.JSONDecodeError:
        return None


def _summary_block(summaries: Mapping[str, CaseSummary], separator: str, inline: bool) -> str:
    blocks = []
    for i, (case_id, entry) in enumerate(summaries.items(), 1):
        if inline:
            blocks.append(f"[Case {i}] ID: {case_id} | {entry.filename}\n{entry.summary}")
        else:
            blocks.append(f"[Case {i}] ID: {case_id}\nFile: {entry.filename}\n{entry.summary}")
    return separator.join(blocks)


async def rank_by_relevance(llm: LLMClient, summaries: Mapping[str, CaseSummary], user_context: str) -> RankResult:
    """
    Score each summarized case against the user's situation.

    Returns:
        RankResult; when the model's reply is not valid JSON, `raw` holds it and
        `rankings` is empty
    """
    content = await llm.complete(
        [
            {"role": "system", "content": RANK_SYSTEM},
            {
                "role": "user",
                "content": f"## My Legal Situation\n{user_context}\n\n## Available Cases\n"
                + _summary_block(summaries, "\n\n---\n\n", inline=False),
            },
        ],
        temperature=0.3,
        max_tokens=8000,
    )

    parsed = parse_json_reply(content)
    if not isinstance(parsed, dict):
        logger.warning("Ranking reply was not JSON")
        return RankResult(raw=content)
    try:
        return RankResult(**parsed)
    except (TypeError, ValidationError) as e:
        logger.warning("Ranking reply did not match schema", extra={"error": str(e)})
        return RankResult(raw=content)


def enrich_rankings(
    result: RankResult,
    texts: Sequence[CaseText],
    hits: Sequence[SearchHit],
    summaries: Mapping[str, CaseSummary],
) -> RankResult:
    """Fill heading/court/date/summary on each ranking from what was fetched."""
    by_text = {t.id: t for t in texts}
    by_hit = {h.id: h for h in hits}
    for ranking in result.rankings:
        source = by_text.get(ranking.id) or by_hit.get(ranking.id)
        if source is not None:
            ranking.heading = source.heading or ranking.filename
            ranking.court = source.court
            ranking.date = source.date
        else:
            ranking.heading = ranking.heading or ranking.filename
        entry = summaries.get(ranking.id)
        if entry is not None:
            ranking.summary = entry.summary
    return result


async def chat(
    llm: LLMClient,
    summaries: Mapping[str, CaseSummary],
    history: Sequence[dict[str, str]],
    message: str,
) -> str:
    """Answer a follow-up question with the case summaries in context."""
    system = CHAT_SYSTEM.format(count=len(summaries), cases=_summary_block(summaries, "\n---\n", inline=True))
    messages = [{"role": "system", "content": system}, *history, {"role": "user", "content": message}]
    return await llm.complete(messages, temperature=0.4, max_tokens=2000)


async def get_filter_suggestions(llm: LLMClient, keywords: str, context: str) -> dict[str, list[str]]:
    """Suggest search filters for the keywords and case context. Empty on an unusable reply."""
    content = await llm.complete(
        [
            {"role": "system", "content": FILTER_SYSTEM},
            {"role": "user", "content": f"Keywords: {keywords}\nCase context: {context}"},
        ],
        temperature=0.1,
        max_tokens=500,
    )
    parsed = parse_json_reply(content)
    if not isinstance(parsed, dict):
        logger.error("Failed to parse filter suggestions", extra={"reply": content[:500]})
        return {}
    suggested = parsed.get("suggested_filters") or {}
    return suggested if isinstance(suggested, dict) else {}
