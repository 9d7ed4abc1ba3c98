import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import orjson
import pytest
from fastapi.testclient import TestClient

from casebot.apps.analyzer.prompts import FILTER_SYSTEM, RANK_SYSTEM
from casebot.services.api import create_app
from casebot.services.api.app import ndjson_stream
from casebot.utils.schemas import DownloadResult, ProgressEvent
from casebot.utils.storage import SummaryCache
from tests.conftest import FakeCentaxClient, FakeLLM, hits


def reply(messages):
    system = messages[0]["content"]
    if system == RANK_SYSTEM:
        return '{"rankings": [{"id": "1", "filename": "Case 1", "score": 70, "reason": "Close"}], "recommendation": "Use case 1."}'
    if system == FILTER_SYSTEM:
        return '{"suggested_filters": {"module": ["GST"]}}'
    if system.startswith("You are a legal analyst"):
        return "Summary."
    return "Follow-up answer."


class FakeDownloader:
    async def download_case(self, case_id, title=""):
        return DownloadResult(success=True, id=case_id, path=f"downloads/Case_{case_id}.pdf", size=10)


@pytest.fixture
def api(config, tmp_path, monkeypatch):
    monkeypatch.setattr("casebot.utils.config.settings.FETCH_ITEM_DELAY", 0.0)
    monkeypatch.setattr("casebot.utils.config.settings.SUMMARY_DELAY", 0.0)
    monkeypatch.setattr("casebot.utils.config.settings.SEARCH_PAGE_DELAY", 0.0)
    monkeypatch.setattr("casebot.utils.config.settings.REDIS_URL", "")

    runtime = SimpleNamespace(
        client=FakeCentaxClient(hits(3)),
        downloader=FakeDownloader(),
        llm=FakeLLM(reply),
        cache=SummaryCache(config.SUMMARIES_FILE),
    )

    @asynccontextmanager
    async def factory():
        yield runtime

    downloads = tmp_path / "files"
    downloads.mkdir()
    (downloads / "Case_101_ABC.pdf").write_bytes(b"%PDF-1.4")
    (downloads / "Case_101_ABC.txt").write_text("text")

    with TestClient(create_app(runtime_factory=factory, downloads_dir=str(downloads))) as client:
        yield client


def stream_events(response):
    return [orjson.loads(line) for line in response.text.splitlines() if line.strip()]


def test_health(api):
    assert api.get("/health").json() == {"status": "ok"}


def test_search(api):
    response = api.post("/api/search", json={"query": "refund", "page": 1, "pageSize": 2})
    body = response.json()
    assert response.status_code == 200
    assert body["total_count"] == 3
    assert [h["id"] for h in body["results"]] == ["1", "2"]


def test_search_requires_query(api):
    response = api.post("/api/search", json={})
    assert response.status_code == 400
    assert response.json() == {"error": "Search query is required"}


def test_preview(api):
    body = api.get("/api/case/42/preview").json()
    assert body["id"] == "42"
    assert body["textLength"] > 50


def test_download(api):
    body = api.post("/api/download", json={"caseId": "42", "title": "ABC"}).json()
    assert body["success"] is True
    assert body["id"] == "42"
    assert api.post("/api/download", json={}).status_code == 400


def test_refine(api):
    assert api.post("/api/refine", json={"keywords": "refund", "context": "ITC"}).json() == {
        "suggested": {"module": ["GST"]}
    }
    assert api.post("/api/refine", json={"keywords": "refund"}).status_code == 400


def test_chat_requires_analysis(api):
    response = api.post("/api/chat/message", json={"message": "Which case?"})
    assert response.status_code == 400
    assert response.json() == {"error": "Run analysis first"}


def test_analyze_streams_progress_then_chat(api):
    response = api.post("/api/analyze", json={"keywords": "refund", "context": "Export refund denied", "count": 3})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = stream_events(response)
    steps = [e["step"] for e in events]
    assert steps[0] == "search"
    assert steps[-1] == "done"
    assert "fetch_done" in steps
    assert events[-1]["data"]["recommendation"] == "Use case 1."
    assert events[-1]["data"]["rankings"][0]["heading"] == "Case 1"

    chat = api.post("/api/chat/message", json={"message": "Which case is best?"}).json()
    assert chat == {"type": "chat", "data": "Follow-up answer."}


def test_analyze_with_no_results_streams_error(api):
    api.app.state.runtime.client.hits = []
    api.app.state.runtime.client.total = 0

    events = stream_events(api.post("/api/analyze", json={"keywords": "nothing", "context": "none"}))

    assert events[-1]["step"] == "error"
    assert "No results found" in events[-1]["message"]


def test_analyze_requires_context(api):
    assert api.post("/api/analyze", json={"keywords": "refund"}).status_code == 400


def test_files(api):
    assert api.get("/api/files").json() == [{"filename": "Case_101_ABC.pdf", "id": "101", "size": 8}]


async def test_closing_the_stream_cancels_the_running_analysis():
    queue = asyncio.Queue()
    running = []

    async def produce():
        running.append(asyncio.current_task())
        await queue.put(ProgressEvent(step="search", message="Searching..."))
        await asyncio.Event().wait()

    stream = ndjson_stream(produce, queue)
    first = await stream.__anext__()
    await stream.aclose()
    await asyncio.gather(*running, return_exceptions=True)

    assert orjson.loads(first)["step"] == "search"
    assert running[0].cancelled()


async def test_stream_ends_when_the_analysis_finishes():
    queue = asyncio.Queue()

    async def produce():
        await queue.put(ProgressEvent(step="done", message="Analysis complete"))
        await queue.put(None)

    lines = [line async for line in ndjson_stream(produce, queue)]

    assert [orjson.loads(line)["step"] for line in lines] == ["done"]
