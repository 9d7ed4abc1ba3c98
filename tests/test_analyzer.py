from pathlib import Path

import httpx
import orjson
from openai import APIConnectionError

from casebot.apps.analyzer import AnalysisContext, chat, enrich_rankings, get_filter_suggestions, rank_by_relevance, summarize_all
from casebot.apps.analyzer.ranking import parse_json_reply
from casebot.apps.analyzer.summarizer import truncate
from casebot.utils.schemas import CaseSummary, CaseText, RankResult
from casebot.utils.storage import SummaryCache
from tests.conftest import FakeLLM, hits


def texts(n: int) -> list[CaseText]:
    return [CaseText(id=str(i), filename=f"Case_{i}_ABC.pdf", heading=f"Case {i}", text=f"Judgment {i}") for i in range(1, n + 1)]


def summaries(n: int) -> dict[str, CaseSummary]:
    return {str(i): CaseSummary(filename=f"Case_{i}_ABC.pdf", summary=f"Summary {i}") for i in range(1, n + 1)}


def test_truncate_marks_cut_text():
    assert truncate("abc", 10) == "abc"
    assert truncate("abcdef", 3) == "abc\n...[truncated]"


async def test_summarize_all_persists_each_new_summary(config, sleep):
    cache = SummaryCache(config.SUMMARIES_FILE)
    llm = FakeLLM("Structured summary.")

    result = await summarize_all(texts(3), cache, llm, sleep=sleep)

    assert list(result) == ["1", "2", "3"]
    assert result["2"].summary == "Structured summary."
    assert len(llm.calls) == 3
    assert cache.writes == 3
    assert sleep.calls == [0.5] * 3
    assert set(orjson.loads(Path(config.SUMMARIES_FILE).read_bytes())) == {"1", "2", "3"}


async def test_rerun_over_cached_cases_is_free(config, sleep):
    await summarize_all(texts(3), SummaryCache(config.SUMMARIES_FILE), FakeLLM(), sleep=sleep)

    cache = SummaryCache(config.SUMMARIES_FILE)
    llm = FakeLLM()
    result = await summarize_all(texts(3), cache, llm, sleep=sleep)

    assert len(result) == 3
    assert llm.calls == []
    assert cache.writes == 0


async def test_summarize_failure_leaves_case_out(config, sleep):
    def reply(messages):
        if "Judgment 2" in messages[-1]["content"]:
            raise APIConnectionError(request=httpx.Request("POST", "https://api.openai.test"))
        return "ok"

    cache = SummaryCache(config.SUMMARIES_FILE)
    result = await summarize_all(texts(3), cache, FakeLLM(reply), sleep=sleep)

    assert list(result) == ["1", "3"]
    assert "2" not in cache


async def test_summary_text_is_truncated(config, sleep, monkeypatch):
    from casebot.apps.analyzer import summarizer

    monkeypatch.setattr(summarizer.settings, "SUMMARY_MAX_CHARS", 5)
    llm = FakeLLM()
    await summarize_all(texts(1), SummaryCache(config.SUMMARIES_FILE), llm, sleep=sleep)

    assert llm.calls[0][-1]["content"] == "Judgm\n...[truncated]"


def test_parse_json_reply_strips_code_fences():
    assert parse_json_reply('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_reply("Sorry, I cannot help.") is None


async def test_rank_by_relevance_parses_rankings():
    reply = orjson.dumps(
        {
            "rankings": [
                {"case_number": 1, "id": 1, "filename": "Case_1_ABC.pdf", "score": 90, "reason": "Same issue"},
                {"case_number": 2, "id": "2", "filename": "Case_2_ABC.pdf", "score": 10, "reason": "Unrelated"},
            ],
            "recommendation": "Rely on case 1.",
        }
    ).decode()
    llm = FakeLLM(reply)

    result = await rank_by_relevance(llm, summaries(2), "Refund denied")

    assert [r.id for r in result.rankings] == ["1", "2"]
    assert result.rankings[0].score == 90
    assert result.recommendation == "Rely on case 1."
    assert "Refund denied" in llm.calls[0][1]["content"]
    assert "Summary 2" in llm.calls[0][1]["content"]


async def test_rank_reply_that_is_not_json_is_kept_raw():
    result = await rank_by_relevance(FakeLLM("Case 1 looks best."), summaries(1), "Refund denied")
    assert result.rankings == []
    assert result.raw == "Case 1 looks best."


async def test_rank_reply_with_bad_score_is_kept_raw():
    reply = '{"rankings": [{"id": "1", "score": 250}]}'
    result = await rank_by_relevance(FakeLLM(reply), summaries(1), "Refund denied")
    assert result.rankings == []
    assert result.raw == reply


def test_enrich_rankings_fills_metadata():
    result = RankResult(rankings=[{"id": "1", "filename": "Case_1_ABC.pdf", "score": 80}, {"id": "9", "filename": "other.pdf"}])
    case_hits = hits(2)

    enriched = enrich_rankings(result, [], case_hits, summaries(1))

    assert enriched.rankings[0].heading == "Case 1"
    assert enriched.rankings[0].court == "High Court"
    assert enriched.rankings[0].summary == "Summary 1"
    assert enriched.rankings[1].heading == "other.pdf"


async def test_chat_sends_history_and_summaries():
    llm = FakeLLM("Case 1 applies.")
    history = [{"role": "user", "content": "first"}, {"role": "assistant", "content": "answer"}]

    answer = await chat(llm, summaries(2), history, "Which case is strongest?")

    messages = llm.calls[0]
    assert answer == "Case 1 applies."
    assert "summaries of 2 legal cases" in messages[0]["content"]
    assert messages[1:3] == history
    assert messages[-1] == {"role": "user", "content": "Which case is strongest?"}


async def test_filter_suggestions():
    llm = FakeLLM('{"suggested_filters": {"module": ["GST"], "court": ["High Court"]}}')
    assert await get_filter_suggestions(llm, "refund", "ITC refund denied") == {"module": ["GST"], "court": ["High Court"]}
    assert await get_filter_suggestions(FakeLLM("no idea"), "refund", "ITC") == {}


def test_analysis_context_lifecycle():
    context = AnalysisContext()
    assert not context.ready

    context.start(summaries(1), texts(1), "situation", "ranking")
    context.record("follow-up", "answer")
    assert context.ready
    assert [m["content"] for m in context.history] == ["situation", "ranking", "follow-up", "answer"]

    context.start(summaries(2), texts(2), "new situation", "new ranking")
    assert len(context.history) == 2
