"""Session identity binder.

Keeps ``{raw_user, anon_id, profile, loading}`` in step with the auth
provider's session for the lifetime of an application session.

Every session change gets a generation number when it is delivered. Its
resolution (derive anon-id, read profile) runs as a task and may only
commit if no newer change has arrived in the meantime, so a slow lookup for
an old session can never overwrite the state of a newer one. ``loading``
starts True and drops to False exactly once: at the first committed
resolution, or when the fallback timer fires if the provider or the store
hangs.

Usage:
    binder = SessionIdentityBinder.from_settings(get_auth_client(), store)
    async with binder:
        await binder.wait_until_loaded()
        if binder.state.phase is Phase.PROFILE_PENDING:
            ...  # send the user to onboarding
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from teamboard.auth.anon_id import AnonIdDeriver, hash_withdrawn_email
from teamboard.auth.errors import (
    NotAuthenticatedError,
    OnboardingRequiredError,
    ProfileStoreError,
)
from teamboard.auth.models import WITHDRAWN_NICKNAME, ActionResult

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

    from teamboard.auth.models import RawIdentity
    from teamboard.auth.protocol import (
        AuthClientProtocol,
        ProfileStoreProtocol,
        Unsubscribe,
    )
    from teamboard.config import Settings
    from teamboard.db.models import Profile

logger = logging.getLogger(__name__)

DEFAULT_LOADING_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Identity state
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ProfileAbsent:
    """No signed-in identity, so no profile to speak of."""


@dataclass(frozen=True)
class ProfilePending:
    """Signed in, but no profile row yet (or it could not be read)."""

    anon_id: str


@dataclass(frozen=True)
class ProfileResolved:
    """Signed in with a stored profile row."""

    profile: Profile


type ProfileState = ProfileAbsent | ProfilePending | ProfileResolved


class Phase(StrEnum):
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    PROFILE_PENDING = "profile_pending"
    PROFILE_RESOLVED = "profile_resolved"


@dataclass(frozen=True)
class IdentityState:
    """Snapshot of who the current user is, as seen by content code.

    Attributes:
        raw_user: The provider identity, or None when signed out.
        anon_id: Derived pseudonymous ID; the only actor reference content
            rows may store.
        profile: Tagged profile state.
        loading: True until the first resolution (or the fallback timer).
    """

    raw_user: RawIdentity | None = None
    anon_id: str | None = None
    profile: ProfileState = ProfileAbsent()
    loading: bool = True

    @property
    def phase(self) -> Phase:
        match self.profile:
            case ProfileResolved():
                return Phase.PROFILE_RESOLVED
            case ProfilePending():
                return Phase.PROFILE_PENDING
            case _:
                return Phase.INITIALIZING if self.loading else Phase.UNAUTHENTICATED

    @property
    def nickname(self) -> str | None:
        if isinstance(self.profile, ProfileResolved):
            return self.profile.profile.nickname
        return None

    @property
    def is_admin(self) -> bool:
        if isinstance(self.profile, ProfileResolved):
            return self.profile.profile.is_admin
        return False

    @property
    def terms_agreed_at(self) -> datetime | None:
        if isinstance(self.profile, ProfileResolved):
            return self.profile.profile.terms_agreed_at
        return None

    @property
    def can_create_content(self) -> bool:
        return (
            self.anon_id is not None
            and self.nickname is not None
            and self.terms_agreed_at is not None
        )


def require_member(state: IdentityState) -> str:
    """Return the anon-id of an onboarded user, or raise.

    Content creation is only allowed once a nickname is set and the terms
    have been accepted.

    Raises:
        NotAuthenticatedError: No resolved anon-id.
        OnboardingRequiredError: Nickname or terms agreement missing.
    """
    if state.anon_id is None:
        raise NotAuthenticatedError()
    missing = []
    if state.nickname is None:
        missing.append("nickname")
    if state.terms_agreed_at is None:
        missing.append("terms_agreed_at")
    if missing:
        raise OnboardingRequiredError(missing)
    return state.anon_id


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _signed_out() -> IdentityState:
    return IdentityState(loading=False)


def _not_authenticated() -> ActionResult:
    return ActionResult.failed("not_authenticated", str(NotAuthenticatedError()))


# ---------------------------------------------------------------------------
# Binder
# ---------------------------------------------------------------------------
class SessionIdentityBinder:
    """Binds auth sessions to anon-ids and profiles.

    One instance per application session, injected wherever identity is
    needed. Collaborators are passed in, so tests can use the mock auth
    client and an in-memory profile store.
    """

    def __init__(
        self,
        auth_client: AuthClientProtocol,
        profiles: ProfileStoreProtocol,
        deriver: AnonIdDeriver,
        *,
        loading_timeout: float = DEFAULT_LOADING_TIMEOUT,
        nickname_min_length: int = 2,
        nickname_max_length: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._auth = auth_client
        self._profiles = profiles
        self._deriver = deriver
        self._loading_timeout = loading_timeout
        self._nickname_min_length = nickname_min_length
        self._nickname_max_length = nickname_max_length
        self._clock = clock

        self._state = IdentityState()
        self._generation = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._loaded = asyncio.Event()
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._listeners: list[Callable[[IdentityState], None]] = []
        # Terms agreement captured before the profile row exists
        self._pending_terms_agreed_at: datetime | None = None
        # Bumped whenever a confirmed write replaces the in-memory profile
        self._profile_writes = 0

    @classmethod
    def from_settings(
        cls,
        auth_client: AuthClientProtocol,
        profiles: ProfileStoreProtocol,
        settings: Settings | None = None,
    ) -> SessionIdentityBinder:
        """Build a binder using the configured salt and timeouts.

        Raises:
            ConfigurationError: If ``IDENTITY__ANON_SALT`` is empty.
        """
        if settings is None:
            from teamboard.config import get_settings

            settings = get_settings()
        return cls(
            auth_client,
            profiles,
            AnonIdDeriver.from_settings(settings),
            loading_timeout=settings.app.loading_timeout_seconds,
            nickname_min_length=settings.identity.nickname_min_length,
            nickname_max_length=settings.identity.nickname_max_length,
        )

    # -- read access -------------------------------------------------------

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def loading(self) -> bool:
        return self._state.loading

    def add_listener(
        self, callback: Callable[[IdentityState], None]
    ) -> Callable[[], None]:
        """Call *callback* with every new state. Returns a remover."""
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback)

    async def wait_until_loaded(self) -> None:
        await self._loaded.wait()

    async def drain(self) -> None:
        """Wait for all in-flight resolutions to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the provider and resolve the current session.

        Returns without waiting for the resolution; use
        ``wait_until_loaded()`` for that.
        """
        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(
            self._loading_timeout, self._on_loading_timeout
        )
        self._unsubscribe = self._auth.subscribe(self.handle_session_change)
        generation = self._next_generation()
        self._spawn(self._restore_session(generation))

    async def stop(self) -> None:
        """Unsubscribe and cancel the fallback timer and in-flight work."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def __aenter__(self) -> SessionIdentityBinder:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # -- session events ----------------------------------------------------

    def handle_session_change(
        self, identity: RawIdentity | None
    ) -> asyncio.Task[None]:
        """Process a session change delivered by the auth provider.

        The change is numbered on arrival; its resolution runs in a task
        and is discarded if a newer change arrives before it completes.
        """
        generation = self._next_generation()
        logger.debug(
            "Session change gen=%d signed_in=%s", generation, identity is not None
        )
        return self._spawn(self._resolve(generation, identity))

    async def _restore_session(self, generation: int) -> None:
        try:
            identity = await self._auth.get_session()
        except Exception:
            logger.warning(
                "Session restore failed; treating as signed out", exc_info=True
            )
            identity = None
        await self._resolve(generation, identity)

    async def _resolve(self, generation: int, identity: RawIdentity | None) -> None:
        if identity is None or not identity.email:
            self._commit(generation, _signed_out())
            return
        if not identity.email_verified:
            logger.warning(
                "Ignoring session with unverified email (gen=%d)", generation
            )
            self._commit(generation, _signed_out())
            return

        anon_id = self._deriver.derive(identity.email)
        writes_before = self._profile_writes
        profile_state: ProfileState
        try:
            profile = await self._profiles.select_by_id(anon_id)
        except Exception:
            # Stay signed in without a profile; a later refresh retries.
            logger.warning(
                "Profile fetch failed for %s; continuing without profile",
                anon_id[:8],
                exc_info=True,
            )
            profile_state = ProfilePending(anon_id)
        else:
            if profile is not None and profile.is_withdrawn:
                await self._reject_withdrawn(generation, anon_id)
                return
            profile_state = (
                ProfilePending(anon_id) if profile is None else ProfileResolved(profile)
            )

        current = self._state
        if (
            self._profile_writes != writes_before
            and current.anon_id == anon_id
            and isinstance(current.profile, ProfileResolved)
        ):
            # A write landed after this read began; the read is older.
            profile_state = current.profile

        self._commit(
            generation,
            IdentityState(raw_user=identity, anon_id=anon_id, profile=profile_state),
        )

    async def _reject_withdrawn(self, generation: int, anon_id: str) -> None:
        if not self._commit(generation, _signed_out()):
            return
        logger.info("Signing out withdrawn profile %s", anon_id[:8])
        try:
            await self._auth.sign_out()
        except Exception:
            logger.warning(
                "Provider sign-out failed for withdrawn profile", exc_info=True
            )

    def _commit(self, generation: int, state: IdentityState) -> bool:
        if generation != self._generation:
            logger.debug(
                "Discarding stale resolution gen=%d (current=%d)",
                generation,
                self._generation,
            )
            return False
        self._set_state(replace(state, loading=False))
        self._mark_loaded()
        return True

    def _on_loading_timeout(self) -> None:
        self._timeout_handle = None
        if self._loaded.is_set():
            return
        logger.warning(
            "Session not resolved within %.1fs; showing signed-out state",
            self._loading_timeout,
        )
        self._set_state(replace(self._state, loading=False))
        self._mark_loaded()

    def _mark_loaded(self) -> None:
        if self._loaded.is_set():
            return
        self._loaded.set()
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _set_state(self, state: IdentityState) -> None:
        self._state = state
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception:
                logger.exception("Identity listener failed")

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _update_profile(self, profile: Profile) -> None:
        """Apply a confirmed write if the same user is still signed in."""
        if self._state.anon_id != profile.id:
            return
        self._profile_writes += 1
        self._set_state(replace(self._state, profile=ProfileResolved(profile)))

    # -- operations --------------------------------------------------------

    async def set_nickname_for_user(self, nickname: str) -> ActionResult:
        """Create or update the profile row with *nickname*.

        The trimmed nickname must be within the configured length bounds and
        not used by any other profile (withdrawn ones included).

        Carries a staged terms agreement into the same upsert. In-memory
        state only changes after the write succeeds.
        """
        state = self._state
        if state.anon_id is None:
            return _not_authenticated()

        nickname = nickname.strip()
        if not nickname:
            return ActionResult.failed("invalid_nickname", "닉네임을 입력해주세요")
        if len(nickname) > self._nickname_max_length:
            return ActionResult.failed(
                "invalid_nickname",
                f"닉네임은 {self._nickname_max_length}자 이하여야 합니다",
            )
        if len(nickname) < self._nickname_min_length:
            return ActionResult.failed(
                "invalid_nickname",
                f"닉네임은 {self._nickname_min_length}자 이상이어야 합니다",
            )
        try:
            taken = await self._profiles.nickname_taken(nickname, state.anon_id)
        except ProfileStoreError as e:
            logger.warning("Nickname lookup failed for %s: %s", state.anon_id[:8], e)
            return ActionResult.failed("profile_fetch_failed", str(e))
        if taken:
            return ActionResult.failed("nickname_taken", "이미 사용 중인 닉네임입니다")

        fields: dict[str, object] = {"nickname": nickname}
        if self._pending_terms_agreed_at is not None:
            fields["terms_agreed_at"] = self._pending_terms_agreed_at

        try:
            profile = await self._profiles.upsert(state.anon_id, **fields)
        except ProfileStoreError as e:
            logger.warning("Nickname update failed for %s: %s", state.anon_id[:8], e)
            return ActionResult.failed("profile_write_failed", str(e))

        self._pending_terms_agreed_at = None
        self._update_profile(profile)
        logger.info("Nickname set for %s", state.anon_id[:8])
        return ActionResult.ok()

    async def agree_to_terms(self) -> ActionResult:
        """Record the terms agreement.

        The timestamp is always staged for the next nickname write; when the
        anon-id is already known it is also upserted straight away.
        """
        agreed_at = self._clock()
        self._pending_terms_agreed_at = agreed_at
        anon_id = self._state.anon_id
        if anon_id is None:
            return ActionResult.ok()

        try:
            profile = await self._profiles.upsert(anon_id, terms_agreed_at=agreed_at)
        except ProfileStoreError as e:
            logger.warning("Terms agreement write failed for %s: %s", anon_id[:8], e)
            return ActionResult.failed("profile_write_failed", str(e))
        self._pending_terms_agreed_at = None
        self._update_profile(profile)
        return ActionResult.ok()

    async def withdraw(self) -> ActionResult:
        """Soft-withdraw the current user and sign out.

        The profile keeps its row: the nickname becomes the withdrawn
        sentinel, ``deleted_at`` is set, and the email hash is stored to
        block re-registration. Posts and comments are not touched.
        """
        state = self._state
        if state.anon_id is None or state.raw_user is None or not state.raw_user.email:
            return _not_authenticated()

        try:
            await self._profiles.upsert(
                state.anon_id,
                deleted_at=self._clock(),
                nickname=WITHDRAWN_NICKNAME,
                withdrawn_email_hash=hash_withdrawn_email(state.raw_user.email),
            )
        except ProfileStoreError as e:
            logger.warning("Withdrawal failed for %s: %s", state.anon_id[:8], e)
            return ActionResult.failed("profile_write_failed", str(e))

        logger.info("Profile %s withdrawn", state.anon_id[:8])
        try:
            await self.sign_out()
        except Exception:
            logger.warning("Provider sign-out failed after withdrawal", exc_info=True)
        return ActionResult.ok()

    async def sign_out(self) -> None:
        """Sign out of the provider, then reset identity state."""
        try:
            await self._auth.sign_out()
        finally:
            self._pending_terms_agreed_at = None
            self._commit(self._next_generation(), _signed_out())

    async def refresh_profile(self) -> ActionResult:
        """Re-run resolution for the current identity (e.g. after a failed
        profile read)."""
        identity = self._state.raw_user
        if identity is None:
            return _not_authenticated()
        await self.handle_session_change(identity)
        return ActionResult.ok()
