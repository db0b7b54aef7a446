"""Collaborator contracts used by the auth callback, with Supabase implementations."""

import logging
from typing import Any, Protocol
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client
from supabase_auth.errors import AuthError

from src.listings.features.auth_callback.exceptions import (
    ExchangeFailure,
    ProfileLookupError,
    SchemaCacheError,
    SyncWriteError,
)
from src.listings.features.auth_callback.models import AuthenticatedUser, Profile, Role
from src.listings.services.database import SupabaseQueryBuilder

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
BUSINESS_OWNERS_TABLE = "business_owners"
OWNERSHIP_REQUESTS_TABLE = "business_ownership_requests"

PROFILE_COLUMNS = (
    "user_id, role, account_role, onboarding_step, onboarding_complete, onboarding_completed_at"
)
# Without columns that may not be in the PostgREST schema cache yet
PROFILE_COLUMNS_REDUCED = "user_id, role, account_role, onboarding_step, onboarding_complete"

SCHEMA_CACHE_ERROR_CODES = {"PGRST204", "42703"}


def is_schema_cache_error(error: APIError) -> bool:
    """Whether a PostgREST error comes from a column missing from the schema cache."""
    if error.code in SCHEMA_CACHE_ERROR_CODES:
        return True
    message = " ".join(str(part) for part in (error.message, error.details, error.hint) if part)
    return "schema cache" in message.lower()


class SessionStore(Protocol):
    """Identity provider session operations."""

    def exchange_code(self, code: str) -> Any: ...

    def verify_otp(
        self,
        otp_type: str,
        token: str | None = None,
        token_hash: str | None = None,
        email: str | None = None,
    ) -> Any: ...

    def get_current_user(self) -> AuthenticatedUser | None: ...


class ProfileStore(Protocol):
    """Read/write access to the ``profiles`` table."""

    def get_profile(self, user_id: UUID, columns: str = PROFILE_COLUMNS) -> Profile | None: ...

    def update_role(self, user_id: UUID, role: Role) -> None: ...


class OwnershipStore(Protocol):
    """Read access to business ownership records."""

    def list_owned_businesses(self, user_id: UUID) -> list[dict[str, Any]]: ...

    def list_approved_ownership_requests(self, user_id: UUID) -> list[dict[str, Any]]: ...


class SupabaseSessionStore:
    """``SessionStore`` backed by a request-scoped Supabase auth client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def exchange_code(self, code: str) -> Any:
        try:
            response = self.client.auth.exchange_code_for_session({"auth_code": code})
        except AuthError as e:
            raise ExchangeFailure(f"Code exchange failed: {e}") from e

        if response is None or response.session is None:
            raise ExchangeFailure("Code exchange returned no session")
        return response.session

    def verify_otp(
        self,
        otp_type: str,
        token: str | None = None,
        token_hash: str | None = None,
        email: str | None = None,
    ) -> Any:
        if token and email:
            params: dict[str, Any] = {"email": email, "token": token, "type": otp_type}
        elif token_hash or token:
            # Email links without an address carry the hashed token
            params = {"token_hash": token_hash or token, "type": otp_type}
        else:
            raise ExchangeFailure("No token supplied for OTP verification")

        try:
            response = self.client.auth.verify_otp(params)
        except AuthError as e:
            raise ExchangeFailure(f"OTP verification failed: {e}") from e

        if response is None or response.session is None:
            raise ExchangeFailure("OTP verification returned no session")
        return response.session

    def get_current_user(self) -> AuthenticatedUser | None:
        try:
            response = self.client.auth.get_user()
        except AuthError as e:
            logger.warning(f"Failed to load user after exchange: {e}", extra={"error": str(e)})
            return None

        if response is None or response.user is None:
            return None
        return AuthenticatedUser.from_provider(response.user)


class SupabaseProfileStore:
    """``ProfileStore`` over the ``profiles`` table."""

    def __init__(self, db: SupabaseQueryBuilder) -> None:
        self.db = db

    def get_profile(self, user_id: UUID, columns: str = PROFILE_COLUMNS) -> Profile | None:
        try:
            row = self.db.get_by_field(PROFILES_TABLE, "user_id", str(user_id), columns=columns)
        except APIError as e:
            if is_schema_cache_error(e):
                raise SchemaCacheError(e.message or str(e)) from e
            raise ProfileLookupError(e.message or str(e)) from e
        except Exception as e:
            raise ProfileLookupError(str(e)) from e

        return Profile.from_row(row) if row else None

    def update_role(self, user_id: UUID, role: Role) -> None:
        # Both legacy columns hold the same logical role
        try:
            self.db.update_by_filter(
                PROFILES_TABLE,
                {"user_id": str(user_id)},
                {"role": role.value, "account_role": role.value},
            )
        except Exception as e:
            raise SyncWriteError(str(e)) from e


class SupabaseOwnershipStore:
    """``OwnershipStore`` over the business ownership tables."""

    def __init__(self, db: SupabaseQueryBuilder) -> None:
        self.db = db

    def list_owned_businesses(self, user_id: UUID) -> list[dict[str, Any]]:
        return self.db.list_records(
            BUSINESS_OWNERS_TABLE,
            columns="id, business_id",
            filters={"user_id": str(user_id)},
            limit=1,
        )

    def list_approved_ownership_requests(self, user_id: UUID) -> list[dict[str, Any]]:
        return self.db.list_records(
            OWNERSHIP_REQUESTS_TABLE,
            columns="id, business_id",
            filters={"user_id": str(user_id), "status": "approved"},
            limit=1,
        )
