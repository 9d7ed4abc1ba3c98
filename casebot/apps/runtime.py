"""
Wires the HTTP client, session manager and remote adapters for one process.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from casebot.apps.analyzer import LLMClient
from casebot.apps.auth.session import SessionManager
from casebot.apps.client import CentaxClient
from casebot.apps.downloader import CaseDownloader
from casebot.utils.config import Settings, settings as default_settings
from casebot.utils.storage import SessionStore, SummaryCache


@dataclass
class Runtime:
    http: httpx.AsyncClient
    sessions: SessionManager
    client: CentaxClient
    downloader: CaseDownloader
    llm: LLMClient
    cache: SummaryCache


@asynccontextmanager
async def open_runtime(
    config: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    llm: Optional[LLMClient] = None,
) -> AsyncIterator[Runtime]:
    config = config or default_settings
    async with httpx.AsyncClient(timeout=config.API_TIMEOUT, transport=transport) as http:
        sessions = SessionManager(http, SessionStore(config.SESSION_FILE), config)
        client = CentaxClient(http, sessions, config)
        yield Runtime(
            http=http,
            sessions=sessions,
            client=client,
            downloader=CaseDownloader(client, config.DOWNLOADS_DIR),
            llm=llm or LLMClient(),
            cache=SummaryCache(config.SUMMARIES_FILE),
        )
