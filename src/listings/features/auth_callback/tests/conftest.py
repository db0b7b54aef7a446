"""Shared fixtures for auth callback tests."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import pytest

from src.listings.features.auth_callback.cookies import CookieJar
from src.listings.features.auth_callback.exceptions import (
    ExchangeFailure,
    SchemaCacheError,
    SyncWriteError,
)
from src.listings.features.auth_callback.models import AuthenticatedUser, Profile, Role
from src.listings.features.auth_callback.service import AuthCallbackService

SESSION_COOKIE = "sb-test-auth-token"
VERIFIER_COOKIE = "sb-test-auth-token-code-verifier"


class FakeSessionStore:
    """Session store that writes session cookies into a jar like the real client."""

    def __init__(self, jar: CookieJar, user: AuthenticatedUser | None = None) -> None:
        self.jar = jar
        self.user = user
        self.fail = False
        self.exchanged_codes: list[str] = []
        self.verified: list[dict[str, Any]] = []

    def _persist_session(self) -> None:
        self.jar.remove(VERIFIER_COOKIE)
        self.jar.set(SESSION_COOKIE, "base64-c2Vzc2lvbg")

    def exchange_code(self, code: str) -> Any:
        self.exchanged_codes.append(code)
        if self.fail:
            # The verifier is single-use even when the exchange is rejected
            self.jar.remove(VERIFIER_COOKIE)
            raise ExchangeFailure("invalid or expired code")
        self._persist_session()
        return {"access_token": "access"}

    def verify_otp(self, otp_type, token=None, token_hash=None, email=None) -> Any:
        self.verified.append(
            {"type": otp_type, "token": token, "token_hash": token_hash, "email": email}
        )
        if self.fail:
            raise ExchangeFailure("invalid or expired token")
        self._persist_session()
        return {"access_token": "access"}

    def get_current_user(self) -> AuthenticatedUser | None:
        return self.user


class FakeProfileStore:
    """In-memory ``profiles`` table."""

    def __init__(self) -> None:
        self.rows: dict[UUID, Profile] = {}
        self.reads: list[str] = []
        self.writes: list[tuple[UUID, Role]] = []
        self.schema_cache_failures = 0
        # Profiles that appear only after this many reads (trigger lag)
        self.pending: dict[UUID, tuple[int, Profile]] = {}
        self.fail_writes = False

    def get_profile(self, user_id: UUID, columns: str = "*") -> Profile | None:
        self.reads.append(columns)
        if self.schema_cache_failures:
            self.schema_cache_failures -= 1
            raise SchemaCacheError("Could not find the 'onboarding_completed_at' column in the schema cache")
        if user_id in self.pending:
            remaining, profile = self.pending[user_id]
            if remaining <= 1:
                del self.pending[user_id]
                self.rows[user_id] = profile
            else:
                self.pending[user_id] = (remaining - 1, profile)
        profile = self.rows.get(user_id)
        return profile.model_copy() if profile else None

    def update_role(self, user_id: UUID, role: Role) -> None:
        if self.fail_writes:
            raise SyncWriteError("permission denied for table profiles")
        self.writes.append((user_id, role))
        profile = self.rows[user_id]
        profile.role = role
        profile.account_role = role


class FakeOwnershipStore:
    def __init__(self) -> None:
        self.owned: list[dict[str, Any]] = []
        self.approved: list[dict[str, Any]] = []
        self.calls = 0

    def list_owned_businesses(self, user_id: UUID) -> list[dict[str, Any]]:
        self.calls += 1
        return self.owned

    def list_approved_ownership_requests(self, user_id: UUID) -> list[dict[str, Any]]:
        self.calls += 1
        return self.approved


@pytest.fixture
def user_id() -> UUID:
    """Provide a consistent test user ID."""
    return UUID("123e4567-e89b-12d3-a456-426614174000")


@pytest.fixture
def confirmed_at() -> datetime:
    return datetime(2024, 1, 1, tzinfo=UTC)


@pytest.fixture
def make_user(user_id: UUID, confirmed_at: datetime):
    """Factory for authenticated users."""

    def _make(
        confirmed: bool = True, account_type: Role | None = None
    ) -> AuthenticatedUser:
        return AuthenticatedUser(
            id=user_id,
            email="owner@example.com",
            email_confirmed_at=confirmed_at if confirmed else None,
            metadata_account_type=account_type,
        )

    return _make


@pytest.fixture
def make_profile(user_id: UUID):
    """Factory for stored profiles."""

    def _make(
        role: Role | None = None,
        account_role: Role | None = None,
        onboarding_complete: bool = False,
        onboarding_step: str | None = None,
    ) -> Profile:
        return Profile(
            user_id=user_id,
            role=role,
            account_role=account_role,
            onboarding_complete=onboarding_complete,
            onboarding_step=onboarding_step,
        )

    return _make


@pytest.fixture
def cookie_jar() -> CookieJar:
    return CookieJar(secure=True)


@pytest.fixture
def session_store(cookie_jar: CookieJar) -> FakeSessionStore:
    return FakeSessionStore(cookie_jar)


@pytest.fixture
def profile_store() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def ownership_store() -> FakeOwnershipStore:
    return FakeOwnershipStore()


@pytest.fixture
def service(
    session_store: FakeSessionStore,
    profile_store: FakeProfileStore,
    ownership_store: FakeOwnershipStore,
    cookie_jar: CookieJar,
) -> AuthCallbackService:
    return AuthCallbackService(
        session_store=session_store,
        profile_store=profile_store,
        ownership_store=ownership_store,
        cookie_jar=cookie_jar,
        poll_attempts=2,
        poll_max_wait_seconds=0,
    )
