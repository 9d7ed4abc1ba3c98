import base64
import time
from typing import Any, Callable, Optional

import httpx
import orjson
import pytest

from casebot.utils.config import Settings
from casebot.utils.schemas import CaseDocument, SearchHit, SearchPage


def make_token(exp: Optional[float], bearer: bool = False) -> str:
    """Three-part token whose middle segment carries the expiry claim."""

    def segment(data: dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(orjson.dumps(data)).rstrip(b"=").decode("ascii")

    claims = {"sub": "user-1"} if exp is None else {"sub": "user-1", "exp": exp}
    token = f"{segment({'alg': 'HS256', 'typ': 'JWT'})}.{segment(claims)}.signature"
    return f"Bearer {token}" if bearer else token


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested wait."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class Router:
    """httpx.MockTransport handler dispatching on path suffix."""

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, suffix: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[suffix] = handler

    def count(self, suffix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith(suffix))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, handler in self.routes.items():
            if request.url.path.endswith(suffix):
                return handler(request)
        return httpx.Response(404, json={"StatusMsg": "not found"})


class FakeLLM:
    """Minimal stand-in for LLMClient."""

    def __init__(self, reply: Callable[[list[dict[str, str]]], str] | str = "A summary.") -> None:
        self.reply = reply
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages: list[dict[str, str]], temperature: float, max_tokens: int) -> str:
        self.calls.append(messages)
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


class FakeCentaxClient:
    """Serves search pages and documents from memory."""

    def __init__(self, hits: list[SearchHit], total: Optional[int] = None) -> None:
        self.hits = hits
        self.total = len(hits) if total is None else total
        self.search_calls: list[dict[str, Any]] = []
        self.document_calls: list[str] = []

    async def search_cases(self, query: str, page: int = 1, page_size: int = 20, **kwargs: Any) -> SearchPage:
        self.search_calls.append({"query": query, "page": page, "page_size": page_size, **kwargs})
        start = (page - 1) * page_size
        return SearchPage(
            results=self.hits[start:start + page_size], total_count=self.total, page=page, page_size=page_size
        )

    async def get_case_html(self, case_id: str, search_text: str = "") -> CaseDocument:
        self.document_calls.append(case_id)
        return CaseDocument(id=case_id, html_content=f"<p>Judgment text for case {case_id}. " + "x" * 60 + "</p>")


def hits(n: int, start: int = 1) -> list[SearchHit]:
    return [SearchHit(id=str(i), heading=f"Case {i}", court="High Court") for i in range(start, start + n)]


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        CENTAX_BASE_URL="https://api.test",
        CENTAX_PDF_URL="https://pdf.test/render",
        CENTAX_EMAIL="user@example.com",
        CENTAX_PASSWORD="secret",
        CENTAX_MACHINE_ID="0123456789abcdef0123456789abcdef",
        SESSION_FILE=str(tmp_path / "session.json"),
        DOWNLOADS_DIR=str(tmp_path / "downloads"),
        SUMMARIES_FILE=str(tmp_path / "downloads" / "summaries.json"),
        LAST_SEARCH_FILE=str(tmp_path / "downloads" / "last_search.json"),
    )


@pytest.fixture
def fresh_token() -> str:
    return make_token(time.time() + 3600)


@pytest.fixture
def stale_token() -> str:
    return make_token(time.time() + 60)


@pytest.fixture
def router(fresh_token) -> Router:
    router = Router()
    router.add("/centax/getClientIp", lambda r: httpx.Response(200, json={"Data": {"ipAddress": "10.0.0.7"}}))
    router.add("/centax/login", lambda r: httpx.Response(200, json={"Data": {"login_token": fresh_token}}))
    return router


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
