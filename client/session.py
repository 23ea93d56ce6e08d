"""
client/session.py
Session/profile resolver.

Tracks who is signed in and their profile, and exposes sign-up / sign-in /
sign-out as calls that report failures through AuthResult instead of raising.
`loading` starts True and becomes False once, after the first resolution.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as SchemaError

from client.store import AuthEvent, StoreClient, StoreRequestError, StoreSession
from shared.schemas.schemas import ProfileResponse
from shared.utils.access import ViewDecision, resolve_view

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass
class SessionState:
    identity: Optional[Dict[str, Any]] = None
    session: Optional[StoreSession] = None
    profile: Optional[ProfileResponse] = None
    loading: bool = True


@dataclass(frozen=True)
class AuthResult:
    error: Optional[str] = None
    code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SessionResolver:
    def __init__(self, store: StoreClient, min_password_length: int = MIN_PASSWORD_LENGTH):
        self.store = store
        self.min_password_length = min_password_length
        self.state = SessionState()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        """Subscribe to auth events, then resolve the current session once."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.on_auth_state_change(self._on_auth_event)

        try:
            session = await self.store.get_session()
        except StoreRequestError as e:
            logger.error(f"Initial session lookup failed: {e}")
            self._finish_loading()
            return
        await self._on_auth_event(AuthEvent.INITIAL_SESSION, session)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> "SessionResolver":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    def _finish_loading(self) -> None:
        if self.state.loading:
            self.state.loading = False

    async def _on_auth_event(self, event: AuthEvent, session: Optional[StoreSession]) -> None:
        self.state.session = session
        self.state.identity = session.user if session else None

        if session and event in (AuthEvent.SIGNED_IN, AuthEvent.INITIAL_SESSION):
            await self._fetch_profile()
        elif not session:
            self.state.profile = None

        self._finish_loading()

    async def _fetch_profile(self) -> Optional[ProfileResponse]:
        """A failed lookup leaves profile None, which routes to the auth screen."""
        try:
            self.state.profile = ProfileResponse.model_validate(await self.store.get_profile())
        except (StoreRequestError, SchemaError) as e:
            logger.warning(f"Profile lookup failed: {e}")
            self.state.profile = None
        return self.state.profile

    # ── Auth operations ───────────────────────────────────────

    def _validate(self, email: str, password: str, full_name: Optional[str] = None,
                  confirm_password: Optional[str] = None) -> Optional[AuthResult]:
        if not email or not password or (full_name is not None and not full_name.strip()):
            return AuthResult("Semua field wajib diisi", code="FIELD_REQUIRED")
        if full_name is None:
            return None
        if len(password) < self.min_password_length:
            return AuthResult(
                f"Password minimal {self.min_password_length} karakter", code="PASSWORD_TOO_SHORT"
            )
        if confirm_password is not None and confirm_password != password:
            return AuthResult("Password tidak cocok", code="PASSWORD_MISMATCH")
        return None

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        role: str = "user",
        confirm_password: Optional[str] = None,
    ) -> AuthResult:
        invalid = self._validate(email, password, full_name, confirm_password)
        if invalid:
            return invalid
        try:
            await self.store.sign_up(email, password, full_name.strip(), role)
        except StoreRequestError as e:
            return AuthResult(str(e.detail), code=e.code)
        return AuthResult()

    async def sign_in(self, email: str, password: str) -> AuthResult:
        invalid = self._validate(email, password)
        if invalid:
            return invalid
        try:
            await self.store.sign_in(email, password)
        except StoreRequestError as e:
            return AuthResult(str(e.detail), code=e.code)
        return AuthResult()

    async def sign_out(self) -> AuthResult:
        """Local state is cleared even when the API could not be reached."""
        try:
            await self.store.sign_out()
        except StoreRequestError as e:
            logger.warning(f"Sign-out revocation failed: {e}")
            return AuthResult(str(e.detail), code=e.code)
        finally:
            self.state.identity = None
            self.state.session = None
            self.state.profile = None
        return AuthResult()

    async def refresh_profile(self) -> Optional[ProfileResponse]:
        if not self.state.session:
            return None
        return await self._fetch_profile()

    # ── Routing ───────────────────────────────────────────────

    def view(self, path: Optional[str] = None) -> ViewDecision:
        return resolve_view(
            self.state.profile,
            loading=self.state.loading,
            path=path,
            identity=self.state.identity,
        )
