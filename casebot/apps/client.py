"""
Centax API Client

Thin adapter over the remote search, document-text and PDF vendor endpoints.
Every authenticated call goes through authenticated_request(); HTTP failures
are translated into the casebot error taxonomy so the fetch loop can classify
them.

Usage:
    async with httpx.AsyncClient(timeout=60) as http:
        client = CentaxClient(http, SessionManager(http))
        page = await client.search_cases("gst refund", page=1)
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from casebot.apps.auth.request import authenticated_request
from casebot.apps.auth.session import SessionManager, build_headers, build_pdf_headers
from casebot.utils.config import Settings, settings as default_settings
from casebot.utils.errors import (
    AUTH_STATUS_CODES,
    ApiError,
    AuthorizationExpiredError,
    RateLimitError,
    TransientNetworkError,
)
from casebot.utils.schemas import CaseDocument, SearchHit, SearchPage, Session

logger = logging.getLogger(__name__)

MIN_DOCUMENT_LENGTH = 50

EMPTY_FILTER: dict[str, Any] = {
    "subjectList": [], "categoryList": [], "actList": [], "sectionList": [],
    "courtList": [], "benchList": [], "yearOfPublicationList": [],
    "decisionDateFrom": "", "decisionDateTo": "", "apealNo": [],
    "nameOfParty": [], "judgeName": [], "journalList": [], "volume": [],
    "pageNo": [], "laws": [], "state": [], "groupList": [],
    "goodsServiceId": [], "yearList": [], "chapter": [], "rule": [],
    "regulation": [], "author": [],
}


def error_for_status(status_code: int, message: str) -> ApiError:
    """Map an HTTP failure onto the error taxonomy."""
    if status_code in AUTH_STATUS_CODES:
        return AuthorizationExpiredError(message, status_code)
    if status_code == 429 or "limit" in message.lower():
        return RateLimitError(message, status_code)
    return TransientNetworkError(message, status_code)


def _response_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "Request failed"
    if isinstance(body, dict):
        return str(body.get("StatusMsg") or body.get("message") or response.reason_phrase or "Request failed")
    return response.reason_phrase or "Request failed"


def build_search_payload(
    query: str,
    page: int,
    page_size: int,
    sortby: str,
    sortorder: str,
    filter: Optional[dict[str, Any]],
    headnote_only: bool,
) -> dict[str, Any]:
    return {
        "searchData": query,
        "page": page,
        "pageSize": page_size,
        "filter": {**EMPTY_FILTER, **(filter or {})},
        "sortby": sortby,
        "sortorder": sortorder,
        "advanceSearch": {"anyOfSearch": "", "exactSearch": "", "notIncludeSearch": ""},
        "isExcusSearch": False,
        "subjectLabelArr": [],
        "isAdvSearch": False,
        "isheadnoteToggle": headnote_only,
    }


class CentaxClient:
    """Remote search, document and PDF operations for one run."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        manager: SessionManager,
        config: Optional[Settings] = None,
    ) -> None:
        self.http = http
        self.manager = manager
        self.config = config or default_settings

    @property
    def base_url(self) -> str:
        return self.config.CENTAX_BASE_URL.rstrip("/")

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self.http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise error_for_status(response.status_code, _response_message(response))

        try:
            body = response.json()
        except ValueError as e:
            raise TransientNetworkError(f"Invalid JSON from {url}", response.status_code) from e

        if not isinstance(body, dict):
            raise TransientNetworkError(f"Unexpected response shape from {url}", response.status_code)

        status_msg = str(body.get("StatusMsg") or "")
        if not body.get("Data") and "limit" in status_msg.lower():
            raise RateLimitError(status_msg, response.status_code)

        return body

    async def search_cases(
        self,
        query: str,
        page: int = 1,
        page_size: int = 20,
        sortby: str = "relevance",
        sortorder: str = "1",
        filter: Optional[dict[str, Any]] = None,
        headnote_only: bool = False,
    ) -> SearchPage:
        """
        Run one page of a search.

        Args:
            query: Search keywords
            page: 1-based page number
            page_size: Results per page (remote caps at 20)
            sortby: 'relevance' or 'date'
            sortorder: '1' ascending, '0' descending
            filter: Remote filter keys overriding the empty defaults
            headnote_only: Search headnotes only

        Returns:
            SearchPage with normalized hits
        """
        page_size = min(page_size, self.config.SEARCH_PAGE_SIZE)
        payload = build_search_payload(query, page, page_size, sortby, sortorder, filter, headnote_only)

        async def call(session: Session) -> SearchPage:
            body = await self._post(
                f"{self.base_url}/centax/getSearchResult",
                payload,
                build_headers(session, self.config.CENTAX_APP_ID),
            )
            data = body.get("Data")
            if not isinstance(data, dict):
                raise TransientNetworkError("Invalid search response from Centax API")

            hits = []
            for item in data.get("itemarray") or []:
                try:
                    hits.append(SearchHit.from_remote(item))
                except ValueError:
                    logger.warning("Skipping search hit without id", extra={"item": item})
            try:
                total_count = int(data.get("totalCount") or 0)
            except (TypeError, ValueError) as e:
                raise TransientNetworkError("Invalid search response from Centax API: bad totalCount") from e
            return SearchPage(
                results=hits,
                total_count=total_count,
                page=page,
                page_size=page_size,
            )

        return await authenticated_request(self.manager, call)

    async def get_case_html(self, case_id: str, search_text: str = "") -> CaseDocument:
        """
        Fetch the HTML body of one case document.

        Raises:
            TransientNetworkError: If the document is missing or too short
        """
        logger.debug("Fetching document", extra={"case_id": case_id})

        async def call(session: Session) -> CaseDocument:
            body = await self._post(
                f"{self.base_url}/centax/getFileText",
                {"fileID": case_id, "catName": "", "isExcus": False, "searchText": search_text},
                build_headers(session, self.config.CENTAX_APP_ID),
            )
            data = body.get("Data")
            result = data.get("result") if isinstance(data, dict) else None
            if not result:
                raise TransientNetworkError(f"Failed to get document {case_id}")

            if isinstance(result, dict):
                html = result.get("Text") or ""
            else:
                html = result if isinstance(result, str) else ""
            if len(html) < MIN_DOCUMENT_LENGTH:
                raise TransientNetworkError(
                    f"Document {case_id}: HTML content too short ({len(html)} chars)"
                )
            return CaseDocument(id=case_id, html_content=html, metadata=data)

        return await authenticated_request(self.manager, call)

    async def generate_pdf(self, html: str, file_name: str) -> str:
        """
        Render HTML through the PDF vendor.

        Returns:
            Short-lived signed URL of the generated PDF
        """
        session = await self.manager.get_session()
        logger.info("Generating PDF", extra={"file_name": file_name, "html_kb": round(len(html) / 1024, 1)})

        body = await self._post(
            self.config.CENTAX_PDF_URL,
            {
                "html": html,
                "fileName": f"centax/{file_name}",
                "lastQCDate": f"{date.today().isoformat()}T00:00:00",
            },
            build_pdf_headers(session, self.config.CENTAX_APP_ID),
        )
        if body.get("success") and body.get("Data"):
            return str(body["Data"])

        reason = body.get("StatusMsg") or body.get("ResponseType") or "Unknown error"
        raise TransientNetworkError(f"PDF generation failed: {reason}")

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    async def _stream_to_file(self, url: str, dest: Path) -> None:
        async with self.http.stream("GET", url, follow_redirects=True) as response:
            if response.status_code != 200:
                raise TransientNetworkError("Download failed", response.status_code)
            with open(dest, "wb") as f:
                async for chunk in response.aiter_bytes():
                    f.write(chunk)

    async def download_file(self, url: str, dest: str | Path) -> None:
        """
        Download a URL to disk, following redirects.

        The signed URLs from the PDF vendor expire within seconds, so retries are short.
        """
        dest = Path(dest)
        try:
            await self._stream_to_file(url, dest)
        except httpx.TransportError as e:
            dest.unlink(missing_ok=True)
            raise TransientNetworkError(f"Download failed: {e}") from e
        except TransientNetworkError:
            dest.unlink(missing_ok=True)
            raise
