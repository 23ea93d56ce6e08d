"""
client/store.py
Async HTTP client for the GetLife API.

Holds the current session tokens in memory and broadcasts auth state
changes (INITIAL_SESSION / SIGNED_IN / SIGNED_OUT / TOKEN_REFRESHED) to
subscribers, which is what the session resolver listens to.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class StoreSession:
    access_token: str
    refresh_token: str
    expires_in: int
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")


class StoreRequestError(Exception):
    """Non-2xx answer from the API, or the API could not be reached."""

    def __init__(self, status_code: int, detail: Any, code: Optional[str] = None):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.code = code


AuthListener = Callable[[AuthEvent, Optional[StoreSession]], Awaitable[None]]
Locator = Callable[[], Awaitable[tuple]]


class StoreClient:
    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self._listeners: List[AuthListener] = []
        self.session: Optional[StoreSession] = None

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "StoreClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    # ── Auth events ───────────────────────────────────────────

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to auth events. Returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: AuthEvent, session: Optional[StoreSession]) -> None:
        for listener in list(self._listeners):
            await listener(event, session)

    # ── Transport ─────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        if self.session:
            return {"Authorization": f"Bearer {self.session.access_token}"}
        return {}

    async def request(self, method: str, path: str, **kwargs) -> Any:
        """Send one authenticated request and return the decoded JSON body."""
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            resp = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise StoreRequestError(503, "Store unreachable", code="STORE_UNAVAILABLE") from e

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {"detail": resp.text}
            if not isinstance(body, dict):
                body = {"detail": body}
            raise StoreRequestError(resp.status_code, body.get("detail"), body.get("code"))
        return resp.json() if resp.content else None

    # ── Auth ──────────────────────────────────────────────────

    def _store_session(self, body: dict) -> StoreSession:
        self.session = StoreSession(
            access_token=body["access_token"],
            refresh_token=body["refresh_token"],
            expires_in=body["expires_in"],
            user=body.get("user") or {},
        )
        return self.session

    async def sign_up(self, email: str, password: str, full_name: str, role: str) -> StoreSession:
        body = await self.request(
            "POST",
            "/auth/signup",
            json={"email": email, "password": password, "full_name": full_name, "role": role},
        )
        session = self._store_session(body)
        await self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_in(self, email: str, password: str) -> StoreSession:
        body = await self.request("POST", "/auth/signin", json={"email": email, "password": password})
        session = self._store_session(body)
        await self._emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """Revoke server-side, then forget the local session even if revocation failed."""
        session = self.session
        try:
            if session:
                await self.request("POST", "/auth/signout", json={"refresh_token": session.refresh_token})
        finally:
            self.session = None
            await self._emit(AuthEvent.SIGNED_OUT, None)

    async def refresh_session(self) -> StoreSession:
        if not self.session:
            raise StoreRequestError(401, "No session to refresh", code="AUTH_ERROR")
        body = await self.request(
            "POST", "/auth/refresh", json={"refresh_token": self.session.refresh_token}
        )
        self.session.access_token = body["access_token"]
        self.session.refresh_token = body["refresh_token"]
        self.session.expires_in = body["expires_in"]
        await self._emit(AuthEvent.TOKEN_REFRESHED, self.session)
        return self.session

    async def get_session(self) -> Optional[StoreSession]:
        """
        The current session, confirmed against the API.
        A rejected token clears the local session and yields None.
        """
        if not self.session:
            return None
        try:
            body = await self.request("GET", "/auth/session")
        except StoreRequestError as e:
            if e.status_code != 401:
                raise
            self.session = None
            return None
        self.session.user = body["identity"]
        return self.session

    async def get_profile(self) -> Dict[str, Any]:
        return await self.request("GET", "/auth/me")

    # ── Workflows ─────────────────────────────────────────────

    async def create_order(self, order: Dict[str, Any], locator: Optional[Locator] = None) -> Dict[str, Any]:
        """
        Place an order. When a locator is given, its (latitude, longitude) is
        attached; if locating fails the order is placed without coordinates.
        """
        payload = dict(order)
        if locator is not None:
            try:
                latitude, longitude = await locator()
                payload["latitude"], payload["longitude"] = latitude, longitude
            except Exception as e:
                logger.warning(f"Location unavailable, ordering without coordinates: {e}")
        return await self.request("POST", "/orders", json=payload)

    async def list_banners(self) -> List[Dict[str, Any]]:
        return await self.request("GET", "/banners")
