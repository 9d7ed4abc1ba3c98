import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from openai import OpenAIError
from pydantic import BaseModel, Field

from casebot.apps.analyzer import AnalysisContext, chat, get_filter_suggestions
from casebot.apps.downloader import case_id_from_filename, html_to_text
from casebot.apps.pipeline import AnalysisPipeline
from casebot.apps.progress import ProgressReporter
from casebot.apps.runtime import Runtime, open_runtime
from casebot.utils.config import settings
from casebot.utils.errors import CasebotError
from casebot.utils.logging import setup_logging
from casebot.utils.schemas import ProgressEvent

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[[], Any]


class SearchRequest(BaseModel):
    query: str = ""
    page: int = 1
    pageSize: int = 20
    sortby: str = "relevance"
    filter: dict[str, Any] = Field(default_factory=dict)


class DownloadRequest(BaseModel):
    caseId: str = ""
    title: str = ""


class RefineRequest(BaseModel):
    keywords: str = ""
    context: str = ""


class AnalyzeRequest(BaseModel):
    keywords: str = ""
    context: str = ""
    count: int = Field(default=100, ge=1)
    filters: dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    message: str = ""


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def server_error(where: str, e: Exception) -> JSONResponse:
    logger.error(f"{where} error", extra={"error": str(e)})
    return JSONResponse(status_code=500, content={"error": str(e)})


async def ndjson_stream(
    produce: Callable[[], Awaitable[None]], queue: "asyncio.Queue[Optional[ProgressEvent]]"
) -> AsyncIterator[str]:
    """
    Run `produce` in a task and yield its queued events as NDJSON lines until it
    enqueues None. Closing the stream early (client disconnect) cancels the task.
    """
    task = asyncio.create_task(produce())
    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event.model_dump_json(exclude_none=True) + "\n"
        await task
    finally:
        if not task.done():
            task.cancel()


def create_app(runtime_factory: Optional[RuntimeFactory] = None, downloads_dir: Optional[str] = None) -> FastAPI:
    """
    Build the API app.

    Args:
        runtime_factory: Async context manager factory yielding a Runtime
        downloads_dir: Directory listed by /api/files
    """
    factory = runtime_factory or open_runtime
    files_dir = Path(downloads_dir or settings.DOWNLOADS_DIR)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT)
        async with factory() as runtime:
            app.state.runtime = runtime
            app.state.analysis = AnalysisContext()
            logger.info("API ready", extra={"port": settings.API_PORT})
            yield

    app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    def runtime_of(request: Request) -> Runtime:
        return request.app.state.runtime

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/search")
    async def search(body: SearchRequest, request: Request) -> Any:
        if not body.query:
            return bad_request("Search query is required")
        try:
            page = await runtime_of(request).client.search_cases(
                body.query, page=body.page, page_size=body.pageSize, sortby=body.sortby, filter=body.filter
            )
        except CasebotError as e:
            return server_error("Search", e)
        return page.model_dump()

    @app.get("/api/case/{case_id}/preview")
    async def preview(case_id: str, request: Request) -> Any:
        try:
            doc = await runtime_of(request).client.get_case_html(case_id)
        except CasebotError as e:
            return server_error("Preview", e)
        return {"id": case_id, "html": doc.html_content, "textLength": len(html_to_text(doc.html_content))}

    @app.post("/api/download")
    async def download(body: DownloadRequest, request: Request) -> Any:
        if not body.caseId:
            return bad_request("caseId is required")
        result = await runtime_of(request).downloader.download_case(body.caseId, body.title or body.caseId)
        return result.model_dump()

    @app.post("/api/refine")
    async def refine(body: RefineRequest, request: Request) -> Any:
        if not body.keywords:
            return bad_request("keywords is required")
        if not body.context:
            return bad_request("context is required")
        try:
            suggested = await get_filter_suggestions(runtime_of(request).llm, body.keywords, body.context)
        except (OpenAIError, ValueError) as e:
            return server_error("Refine", e)
        logger.info("Generated filter suggestions", extra={"suggested": suggested})
        return {"suggested": suggested}

    @app.post("/api/analyze")
    async def analyze(body: AnalyzeRequest, request: Request) -> Any:
        if not body.keywords:
            return bad_request("keywords is required")
        if not body.context:
            return bad_request("context is required")

        runtime = runtime_of(request)
        queue: asyncio.Queue[Optional[ProgressEvent]] = asyncio.Queue()
        reporter = ProgressReporter.from_settings(callback=queue.put)
        pipeline = AnalysisPipeline(runtime.client, runtime.llm, runtime.cache, request.app.state.analysis, reporter)

        async def produce() -> None:
            try:
                await pipeline.run(body.keywords, body.context, count=body.count, filters=body.filters)
            except Exception as e:
                # the pipeline has already streamed an "error" event
                logger.info("Analysis stream ended with error", extra={"error": str(e)})
            finally:
                await reporter.close()
                await queue.put(None)

        return StreamingResponse(ndjson_stream(produce, queue), media_type="application/x-ndjson")

    @app.post("/api/chat/message")
    async def chat_message(body: ChatRequest, request: Request) -> Any:
        if not body.message:
            return bad_request("message is required")
        analysis: AnalysisContext = request.app.state.analysis
        if not analysis.ready:
            return bad_request("Run analysis first")
        try:
            answer = await chat(runtime_of(request).llm, analysis.summaries, analysis.history, body.message)
        except (OpenAIError, ValueError) as e:
            return server_error("Chat", e)
        analysis.record(body.message, answer)
        return {"type": "chat", "data": answer}

    @app.get("/api/files")
    async def files() -> list[dict[str, Any]]:
        if not files_dir.is_dir():
            return []
        return [
            {"filename": pdf.name, "id": case_id_from_filename(pdf.name), "size": pdf.stat().st_size}
            for pdf in sorted(files_dir.glob("*.pdf"))
        ]

    return app
