"""
Session Manager - Login, Token Caching and Forced Refresh

Holds the current Session for a run. A session is reused while its token's
decoded expiry is more than the safety margin away; otherwise a full login
(credentials + device fingerprint + client IP) replaces it and is written to
the session file.

Usage:
    async with httpx.AsyncClient() as http:
        manager = SessionManager(http)
        session = await manager.get_session()
"""

import base64
import hashlib
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import orjson

from casebot.utils.config import Settings, settings as default_settings
from casebot.utils.errors import AuthError, PersistentIOError
from casebot.utils.schemas import Session
from casebot.utils.storage import SessionStore

logger = logging.getLogger(__name__)

FALLBACK_MACHINE_ID = "028ac7437a5b4cc1bea399674647a0de"
FALLBACK_IP = "0.0.0.0"

# The remote's login form expects a desktop browser fingerprint.
DEVICE_METADATA = {
    "remember_me": False,
    "userAgent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36"
    ),
    "device": "Macintosh",
    "os": "Mac",
    "osVersion": "mac-os-x-15",
    "browser": "Chrome",
    "browserVersion": "144.0.0.0",
    "deviceType": "DESKTOP",
}


def strip_bearer(token: str) -> str:
    token = token.strip()
    if token.startswith("Bearer"):
        token = token[len("Bearer"):]
    return token.strip()


def decode_token_expiry(token: str) -> Optional[float]:
    """
    Read the `exp` claim (epoch seconds) from a three-part, period-delimited token.

    Returns:
        The expiry, or None if the token cannot be decoded or carries no expiry
    """
    parts = strip_bearer(token).split(".")
    if len(parts) != 3:
        return None
    segment = parts[1]
    try:
        payload = orjson.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))
    except (ValueError, orjson.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def is_token_fresh(token: str, now: Optional[float] = None, margin: float = 300) -> bool:
    """True while the token's expiry is more than `margin` seconds in the future."""
    exp = decode_token_expiry(token)
    if exp is None:
        return False
    now = time.time() if now is None else now
    return exp > now + margin


def get_machine_id(configured: Optional[str] = None) -> str:
    """Stable 32-hex-char device identifier."""
    if configured:
        return configured
    try:
        machine_file = Path("/etc/machine-id")
        if machine_file.is_file():
            raw = machine_file.read_text().strip()
        else:
            raw = f"{uuid.getnode():012x}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]
    except OSError:
        logger.warning("Could not derive machine id, using fallback")
        return FALLBACK_MACHINE_ID


def build_headers(session: Session, app_id: str = "2020") -> dict[str, str]:
    """Standard headers for authenticated API requests."""
    return {
        "Content-Type": "application/json",
        "centaxauthorization": session.token,
        "appid": app_id,
        "machineid": session.machine_id,
    }


def build_pdf_headers(session: Session, app_id: str = "2020") -> dict[str, str]:
    """The PDF vendor wants `Bearer<token>` with no space."""
    headers = build_headers(session, app_id)
    headers["centaxauthorization"] = session.token.replace("Bearer ", "Bearer")
    return headers


class SessionManager:
    """
    Owns the current Session for every call in a batch.

    The wrapper in casebot.apps.auth.request asks this object for the session
    on each call, so a refresh triggered by one call is seen by the next.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        store: Optional[SessionStore] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.http = http
        self.config = config or default_settings
        self.store = store or SessionStore(self.config.SESSION_FILE)
        self.clock = clock
        self.session: Optional[Session] = None
        self.login_count = 0

    @property
    def base_url(self) -> str:
        return self.config.CENTAX_BASE_URL.rstrip("/")

    def is_fresh(self, session: Session) -> bool:
        return is_token_fresh(session.token, now=self.clock(), margin=self.config.SESSION_SAFETY_MARGIN)

    async def get_session(self) -> Session:
        """
        Return a usable session, logging in only when the cached one is absent or stale.

        Raises:
            AuthError: If a login is needed and fails
        """
        if self.session is not None and self.is_fresh(self.session):
            return self.session

        stored = self.store.load()
        if stored is not None:
            if self.is_fresh(stored):
                self.session = stored
                return stored
            logger.info("Session expired, re-authenticating")

        return await self.login()

    async def force_refresh(self) -> Session:
        """Discard the persisted session unconditionally and log in again."""
        logger.info("Forcing token refresh")
        self.session = None
        self.store.clear()
        return await self.login()

    async def get_client_ip(self) -> str:
        try:
            response = await self.http.get(f"{self.base_url}/centax/getClientIp")
            response.raise_for_status()
            data = response.json().get("Data")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning("Could not get client IP, using fallback", extra={"error": str(e)})
            return FALLBACK_IP
        if isinstance(data, dict):
            return str(data.get("ipAddress") or FALLBACK_IP)
        return str(data) if data else FALLBACK_IP

    async def login(self) -> Session:
        """
        Exchange credentials and device metadata for a new token.

        Raises:
            AuthError: If credentials are missing or no usable token comes back
        """
        email = self.config.CENTAX_EMAIL
        password = self.config.CENTAX_PASSWORD
        if not email or not password:
            raise AuthError(
                "CENTAX_EMAIL and CENTAX_PASSWORD must be set in the environment or .env file"
            )

        logger.info("Logging in to Centax", extra={"email": email})
        ip_address = await self.get_client_ip()
        machine_id = get_machine_id(self.config.CENTAX_MACHINE_ID)
        payload: dict[str, Any] = {"email": email, "password": password, "ipAddress": ip_address, **DEVICE_METADATA}

        self.login_count += 1
        try:
            response = await self.http.post(
                f"{self.base_url}/centax/login",
                json=payload,
                headers={"Content-Type": "application/json", "appid": self.config.CENTAX_APP_ID, "machineid": machine_id},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Login rejected",
                extra={"status": e.response.status_code, "response": e.response.text[:500]},
            )
            raise AuthError(f"Login failed with status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise AuthError(f"Login failed: {e}") from e

        data = body.get("Data") if isinstance(body, dict) else None
        token = data.get("login_token") if isinstance(data, dict) else None
        if not token or not isinstance(token, str):
            raise AuthError("Login failed: no token in response. Check credentials.")

        session = Session(token=token, machine_id=machine_id, ip_address=ip_address, email=email)
        self.session = session
        logger.info("Login successful")

        try:
            self.store.save(session)
        except PersistentIOError as e:
            logger.warning("Could not persist session", extra={"error": str(e)})

        return session

    async def check_session(self, session: Optional[Session] = None) -> bool:
        """Ask the remote whether the session is still active."""
        session = session or self.session
        if session is None:
            return False
        try:
            response = await self.http.post(
                f"{self.base_url}/centax/check_active_session",
                json={"category": "centax-gst", "ipAddress": session.ip_address},
                headers=build_headers(session, self.config.CENTAX_APP_ID),
            )
            body = response.json()
        except (httpx.HTTPError, ValueError):
            return False
        data = body.get("Data") if isinstance(body, dict) else None
        if isinstance(data, dict) and data.get("is_active_login_session_verified"):
            return True
        return response.status_code == 200
