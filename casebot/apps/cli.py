"""
Command Line Interface

Usage:
    python -m casebot search "GST pre-deposit" --page 2
    python -m casebot search-download "customs duty exemption" --count 30
    python -m casebot download 101010000000353754 --title "ABC Ltd v. Commissioner"
    python -m casebot download-all
    python -m casebot analyze "refund of ITC" --context "My client was denied..." --count 45
    python -m casebot chat
    python -m casebot login
    python -m casebot generate-texts
    python -m casebot serve
    python -m casebot watch
"""

import argparse
import asyncio
import logging
import math
import sys
from typing import Any, Optional, Sequence

from openai import OpenAIError

from casebot.apps.analyzer import AnalysisContext, chat, rank_by_relevance, summarize_all
from casebot.apps.fetcher import collect_search_results
from casebot.apps.pipeline import AnalysisPipeline
from casebot.apps.progress import ProgressReporter
from casebot.apps.reader import extract_all_texts
from casebot.apps.runtime import open_runtime
from casebot.utils.config import settings
from casebot.utils.errors import CasebotError, PersistentIOError
from casebot.utils.logging import setup_logging
from casebot.utils.mq import ProgressSubscriber
from casebot.utils.schemas import ProgressEvent, RankResult, SearchPage
from casebot.utils.storage import LastSearchStore

logger = logging.getLogger(__name__)

QUIT_WORDS = {"", "quit", "exit"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="casebot", description="Centax Online case downloader and analyzer")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL)
    parser.add_argument("--log-format", default=settings.LOG_FORMAT, choices=["text", "json"])
    sub = parser.add_subparsers(dest="command")

    search = sub.add_parser("search", help="Search for cases by keyword")
    search.add_argument("query", nargs="+")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--size", type=int, default=20)
    search.add_argument("--sort", choices=["relevance", "date"], default="relevance")

    search_download = sub.add_parser("search-download", help="Search and download the top results as PDFs")
    search_download.add_argument("query", nargs="+")
    search_download.add_argument("--count", type=int, default=30)
    search_download.add_argument("--sort", choices=["relevance", "date"], default="relevance")

    download = sub.add_parser("download", help="Download a single case as PDF")
    download.add_argument("case_id")
    download.add_argument("--title", default="")

    sub.add_parser("download-all", help="Download all cases from the last search")
    sub.add_parser("login", help="Test login and display session info")
    sub.add_parser("chat", help="Rank downloaded cases and chat about them")
    sub.add_parser("generate-texts", help="Write missing .txt files for downloaded PDFs")

    analyze = sub.add_parser("analyze", help="Search, read, summarize and rank cases for a situation")
    analyze.add_argument("keywords", nargs="+")
    analyze.add_argument("--context", required=True, help="Description of your legal situation")
    analyze.add_argument("--count", type=int, default=settings.ANALYZE_DEFAULT_COUNT)
    analyze.add_argument("--module", action="append")
    analyze.add_argument("--doc-type", action="append", dest="docType")
    analyze.add_argument("--court", action="append")
    analyze.add_argument("--act", action="append")
    analyze.add_argument("--year-range", dest="yearRange", choices=["last_1_year", "last_3_years", "last_5_years", "all_time"])
    analyze.add_argument("--headnote-only", action="store_true")
    analyze.add_argument("--sort", choices=["relevance", "date"], default="relevance")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.API_HOST)
    serve.add_argument("--port", type=int, default=settings.API_PORT)

    sub.add_parser("watch", help="Print progress events published to Redis")
    return parser


def display_results(page: SearchPage) -> None:
    print(f"\n{'━' * 70}")
    print(f"Found {page.total_count} results (showing page {page.page}, {len(page.results)} items)")
    print(f"{'━' * 70}\n")
    for i, hit in enumerate(page.results):
        print(f"  {(page.page - 1) * page.page_size + i + 1}. {hit.title}")
        for label, value in (("Court", hit.court), ("Date", hit.date), ("Parties", hit.parties)):
            if value:
                print(f"     {label}: {value}")
        print(f"     ID: {hit.id}\n")
    total_pages = math.ceil(page.total_count / page.page_size) if page.page_size else 0
    print(f"  Page {page.page}/{total_pages} | Use --page N to navigate\n")


def display_rankings(result: RankResult) -> None:
    if not result.rankings:
        if result.raw:
            print(result.raw)
        return
    print("\nRelevancy Rankings:\n")
    for ranking in result.rankings:
        filled = round(ranking.score / 5)
        print(f"  {'█' * filled}{'░' * (20 - filled)} {ranking.score:g}/100")
        print(f"  {ranking.heading or ranking.filename}")
        print(f"  {ranking.reason}\n")
    if result.recommendation:
        print(f"\nRecommendation: {result.recommendation}\n")


def _save_last_search(hits: list) -> None:
    try:
        LastSearchStore(settings.LAST_SEARCH_FILE).save(hits)
    except PersistentIOError as e:
        logger.warning("Could not save search results", extra={"error": str(e)})


async def handle_search(args: argparse.Namespace) -> None:
    query = " ".join(args.query)
    print(f'Searching for: "{query}"')
    async with open_runtime() as rt:
        page = await rt.client.search_cases(query, page=args.page, page_size=args.size, sortby=args.sort)
    display_results(page)
    _save_last_search(page.results)


async def handle_search_download(args: argparse.Namespace) -> None:
    query = " ".join(args.query)
    print(f'Searching for: "{query}"')
    async with open_runtime() as rt:
        async def search_page(page: int, page_size: int) -> SearchPage:
            return await rt.client.search_cases(query, page=page, page_size=page_size, sortby=args.sort)

        job = await collect_search_results(search_page, target_count=args.count, page_delay=settings.SEARCH_PAGE_DELAY)
        if not job.items_collected:
            print("No results found")
            return
        print(f"Found {job.total_available} results, downloading {len(job.items_collected)}")
        _save_last_search(job.items_collected)
        await rt.downloader.download_multiple(job.items_collected)


async def handle_download(args: argparse.Namespace) -> int:
    async with open_runtime() as rt:
        result = await rt.downloader.download_case(args.case_id, args.title or args.case_id)
    if result.success:
        print(f"\nDone! PDF saved to: {result.path}")
        return 0
    print(f"\nDownload failed: {result.error}")
    return 1


async def handle_download_all(args: argparse.Namespace) -> int:
    hits = LastSearchStore(settings.LAST_SEARCH_FILE).load()
    if not hits:
        print('No previous search results. Run "search" first.')
        return 1
    async with open_runtime() as rt:
        await rt.downloader.download_multiple(hits)
    return 0


async def handle_login(args: argparse.Namespace) -> None:
    async with open_runtime() as rt:
        session = await rt.sessions.get_session()
        active = await rt.sessions.check_session(session)
    print(f"\nLogged in as {session.email}")
    print(f"  Machine ID: {session.machine_id}")
    print(f"  IP address: {session.ip_address}")
    print(f"  Issued at:  {session.issued_at.isoformat()}")
    print(f"  Active:     {'yes' if active else 'no'}")


async def print_event(event: ProgressEvent) -> None:
    if event.step != "done":
        print(f"  [{event.step}] {event.message}")


async def handle_analyze(args: argparse.Namespace) -> int:
    filters: dict[str, Any] = {
        key: value
        for key, value in (
            ("module", args.module),
            ("docType", args.docType),
            ("court", args.court),
            ("act", args.act),
            ("yearRange", args.yearRange),
            ("sort", args.sort),
        )
        if value
    }
    if args.headnote_only:
        filters["headnoteOnly"] = "yes"

    reporter = ProgressReporter.from_settings(callback=print_event)
    try:
        async with open_runtime() as rt:
            pipeline = AnalysisPipeline(rt.client, rt.llm, rt.cache, AnalysisContext(), reporter)
            result = await pipeline.run(" ".join(args.keywords), args.context, count=args.count, filters=filters)
    finally:
        await reporter.close()

    if result is None:
        return 1
    display_rankings(result)
    return 0


async def _ask(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def handle_chat(args: argparse.Namespace) -> int:
    cases = extract_all_texts()
    if not cases:
        print('Run "search-download <query>" first to download some PDFs.')
        return 1

    async with open_runtime() as rt:
        summaries = await summarize_all(cases, rt.cache, rt.llm)
        if not summaries:
            print("No summaries generated. Check your OpenAI API key.")
            return 1

        analysis = AnalysisContext()
        print(f"\n{len(summaries)} cases loaded and summarized.")
        print("Describe your legal case or situation; I'll rank the downloaded cases by relevance.")
        print('Type "quit" or "exit" to leave.\n')

        while True:
            try:
                question = await _ask("Describe your case: " if not analysis.ready else "Follow-up: ")
            except EOFError:
                break
            if question.lower() in QUIT_WORDS:
                break

            if not analysis.ready:
                print("\nAnalyzing relevance...\n")
                result = await rank_by_relevance(rt.llm, summaries, question)
                display_rankings(result)
                analysis.start(summaries, cases, question, result.model_dump_json())
            else:
                print("\nThinking...\n")
                answer = await chat(rt.llm, summaries, analysis.history, question)
                print(f"{answer}\n")
                analysis.record(question, answer)

    print("\nGoodbye!\n")
    return 0


async def handle_generate_texts(args: argparse.Namespace) -> None:
    async with open_runtime() as rt:
        written = await rt.downloader.generate_texts()
    print(f"\nDone! Wrote {written} text file(s).")


async def handle_watch(args: argparse.Namespace) -> int:
    if not settings.REDIS_URL:
        print("REDIS_URL is not configured.")
        return 1

    subscriber = ProgressSubscriber()
    try:
        async for event in subscriber.events():
            print(f"[{event.ts.isoformat(timespec='seconds')}] {event.step}: {event.message}")
    finally:
        await subscriber.close()
    return 0


HANDLERS = {
    "search": handle_search,
    "search-download": handle_search_download,
    "download": handle_download,
    "download-all": handle_download_all,
    "login": handle_login,
    "analyze": handle_analyze,
    "chat": handle_chat,
    "generate-texts": handle_generate_texts,
    "watch": handle_watch,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(level=args.log_level, format_type=args.log_format)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        import uvicorn

        uvicorn.run("casebot.services.api:app", host=args.host, port=args.port)
        return 0

    try:
        code = asyncio.run(HANDLERS[args.command](args))
    except KeyboardInterrupt:
        return 130
    except (CasebotError, OpenAIError) as e:
        logger.error("Command failed", extra={"command": args.command, "error": str(e)})
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    return code or 0
