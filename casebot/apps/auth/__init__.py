"""
Authentication - Session Manager and Authenticated Request Wrapper

Responsibilities:
- Cache the login token in the session file and reuse it until 5 minutes before expiry
- Log in with credentials, device fingerprint and client IP when needed
- Retry a remote call exactly once after a forced refresh on 401/403/409
"""

from casebot.apps.auth.request import Outcome, authenticated_request
from casebot.apps.auth.session import SessionManager, build_headers, build_pdf_headers, is_token_fresh

__all__ = [
    "Outcome",
    "SessionManager",
    "authenticated_request",
    "build_headers",
    "build_pdf_headers",
    "is_token_fresh",
]
