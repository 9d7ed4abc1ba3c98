"""
Backend API Service - FastAPI Application

Responsibilities:
- Expose search, preview and download endpoints over the Centax client
- Stream analysis progress as newline-delimited JSON
- Hold one AnalysisContext per app instance for follow-up chat

Endpoints:
- POST /api/search - One page of search results
- GET /api/case/{case_id}/preview - Case HTML and text length
- POST /api/download - Download one case as PDF
- POST /api/refine - Filter suggestions from the language model
- POST /api/analyze - Search → fetch → summarize → rank (NDJSON stream)
- POST /api/chat/message - Follow-up question about the last analysis
- GET /api/files - Downloaded PDFs
- GET /health - Health check

Usage:
    uvicorn casebot.services.api:app --port 3000
"""

from casebot.services.api.app import create_app

app = create_app()

__all__ = ["app", "create_app"]
