"""
Pydantic Schemas - Data Validation Models

Defines the records that cross module boundaries:
- Session credentials
- Search hits and pages from the remote API
- Case documents, extracted texts and summaries
- Fetch loop reports and download results
- Progress events streamed to the CLI, the HTTP API and Redis

Usage:
    from casebot.utils.schemas import SearchHit

    hit = SearchHit.from_remote(item)
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """Credential bundle authorizing calls to the case-research service."""

    token: str = Field(..., min_length=1, description="Bearer-style token with embedded expiry")
    machine_id: str = Field(..., description="Stable per-device identifier")
    ip_address: str = Field(default="0.0.0.0", description="Client IP reported to the remote")
    issued_at: datetime = Field(default_factory=_utcnow, description="Login timestamp")
    email: Optional[str] = Field(default=None, description="Account the token belongs to")


class SearchHit(BaseModel):
    """One search result, normalized from the remote item shape."""

    id: str
    heading: str = ""
    citation: str = ""
    court: str = ""
    date: str = ""
    summary: str = ""
    parties: str = ""
    act: str = ""
    raw: dict[str, Any] = Field(default_factory=dict)

    @validator("id", pre=True)
    def coerce_id(cls, v: Any) -> str:
        """Remote ids arrive as numbers or strings."""
        if v is None or str(v).strip() == "":
            raise ValueError("search hit has no id")
        return str(v)

    @classmethod
    def from_remote(cls, item: dict[str, Any]) -> "SearchHit":
        return cls(
            id=item.get("Id") or item.get("id"),
            heading=item.get("heading1") or item.get("heading") or "",
            citation=item.get("citation") or "",
            court=item.get("courtName") or item.get("court") or "",
            date=item.get("date") or item.get("decisionDate") or "",
            summary=item.get("summary") or item.get("headnote") or "",
            parties=item.get("partyName") or item.get("parties") or "",
            act=item.get("actName") or "",
            raw=item,
        )

    @property
    def title(self) -> str:
        return self.heading or self.citation or self.id


class SearchPage(BaseModel):
    results: list[SearchHit] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20


class CaseDocument(BaseModel):
    id: str
    html_content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class CaseText(BaseModel):
    """Plain text of one case, ready for summarization."""

    id: str
    filename: str
    heading: str = ""
    court: str = ""
    date: str = ""
    text: str


class CaseSummary(BaseModel):
    filename: str
    summary: str


class Ranking(BaseModel):
    case_number: Optional[int] = None
    id: str
    filename: str = ""
    score: float = Field(default=0, ge=0, le=100)
    reason: str = ""
    heading: str = ""
    court: str = ""
    date: str = ""
    summary: str = ""

    @validator("id", pre=True)
    def coerce_id(cls, v: Any) -> str:
        return str(v)


class RankResult(BaseModel):
    rankings: list[Ranking] = Field(default_factory=list)
    recommendation: str = ""
    raw: Optional[str] = None


class FetchReport(BaseModel):
    """Outcome of one run of the backoff fetch loop."""

    texts: list[CaseText] = Field(default_factory=list)
    processed: int = 0
    skipped: int = 0
    skipped_ids: list[str] = Field(default_factory=list)
    cooldowns: int = 0


class DownloadResult(BaseModel):
    success: bool
    skipped: bool = False
    id: str
    path: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None


class ProgressEvent(BaseModel):
    """Progress event payload.

    Standard format:
    {
        "step": "fetch_progress",
        "message": "Reading case texts (10/45)...",
        "progress": 10,
        "ts": "2025-01-15T03:15:02Z"
    }
    """

    step: str = Field(..., description="Pipeline step")
    message: str = Field(default="", description="Human-readable status")
    progress: Optional[int] = Field(default=None, description="Items completed so far")
    total: Optional[int] = Field(default=None, description="Items in the batch")
    data: Optional[dict[str, Any]] = Field(default=None, description="Final payload")
    ts: datetime = Field(default_factory=_utcnow, description="Timestamp")
