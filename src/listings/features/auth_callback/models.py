"""Pydantic models for the auth callback feature."""

from datetime import datetime
from enum import Enum
from typing import Any
from urllib.parse import quote, urlencode
from uuid import UUID

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Logical account role, stored in both ``profiles.role`` and ``profiles.account_role``."""

    USER = "user"
    BUSINESS_OWNER = "business_owner"
    UNRESOLVED = "unresolved"


def parse_role(value: Any) -> Role | None:
    """
    Map a stored or metadata role value onto ``Role``.

    Returns None for empty or unrecognised values so callers can tell
    "not set" apart from a real role. ``Role.UNRESOLVED`` is never parsed
    from storage.
    """
    if value == Role.USER.value:
        return Role.USER
    if value == Role.BUSINESS_OWNER.value:
        return Role.BUSINESS_OWNER
    return None


class CallbackType(str, Enum):
    """Purpose of an exchange callback. ``None`` means unspecified."""

    SIGNUP = "signup"
    RECOVERY = "recovery"
    EMAIL_CHANGE = "email_change"
    OAUTH = "oauth"


class CallbackKind(str, Enum):
    """Top-level classification of an inbound callback request."""

    ERROR = "error"
    HASH_FRAGMENT = "hash-fragment-confirmation"
    EXCHANGE = "code-or-token-exchange"


class OnboardingStep(str, Enum):
    """Consumer onboarding wizard steps."""

    INTERESTS = "interests"
    SUBCATEGORIES = "subcategories"
    DEAL_BREAKERS = "deal-breakers"
    COMPLETE = "complete"


class CallbackContext(BaseModel):
    """Query parameters of a single ``/auth/callback`` request. Never persisted."""

    code: str | None = None
    token: str | None = None
    token_hash: str | None = None
    type: CallbackType | None = None
    raw_type: str | None = None
    next: str = "/"
    error: str | None = None
    error_description: str | None = None
    email: str | None = None

    @property
    def has_exchange_artifact(self) -> bool:
        return bool(self.code or self.token or self.token_hash)


class Classification(BaseModel):
    """Result of classifying a callback request."""

    kind: CallbackKind
    type: CallbackType | None = None
    error_message: str | None = None

    @property
    def is_oauth_flow(self) -> bool:
        """OAuth-style flows are explicit ``oauth`` callbacks and unspecified code exchanges."""
        return self.kind == CallbackKind.EXCHANGE and self.type in (CallbackType.OAUTH, None)


class AuthenticatedUser(BaseModel):
    """
    Identity returned by the provider after a successful exchange.

    Attributes:
        id: Provider user UUID
        email: Email used to authenticate
        email_confirmed_at: When the email was confirmed, None if unconfirmed
        metadata_account_type: Role chosen at registration (``user_metadata.account_type``)
    """

    id: UUID
    email: str | None = None
    email_confirmed_at: datetime | None = None
    metadata_account_type: Role | None = None

    @property
    def email_confirmed(self) -> bool:
        return self.email_confirmed_at is not None

    @classmethod
    def from_provider(cls, user: Any) -> "AuthenticatedUser":
        """Build from a supabase-auth ``User`` object."""
        metadata = getattr(user, "user_metadata", None) or {}
        return cls(
            id=user.id,
            email=getattr(user, "email", None),
            email_confirmed_at=getattr(user, "email_confirmed_at", None),
            metadata_account_type=parse_role(metadata.get("account_type")),
        )


class Profile(BaseModel):
    """Application profile row (``profiles`` table), as far as this flow reads it."""

    user_id: UUID
    role: Role | None = None
    account_role: Role | None = None
    onboarding_step: str | None = None
    onboarding_complete: bool = False
    onboarding_completed_at: datetime | None = None

    @property
    def stored_role(self) -> Role | None:
        """Role from storage, ``role`` column first."""
        return self.role or self.account_role

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Profile":
        return cls(
            user_id=row["user_id"],
            role=parse_role(row.get("role")),
            account_role=parse_role(row.get("account_role")),
            onboarding_step=row.get("onboarding_step"),
            onboarding_complete=bool(row.get("onboarding_complete")),
            onboarding_completed_at=row.get("onboarding_completed_at"),
        )


class ResolvedIdentity(BaseModel):
    """Output of the identity resolver."""

    role: Role
    profile: Profile | None = None
    profile_found: bool = False

    @property
    def is_new_user(self) -> bool:
        return not self.profile_found


class CookieMutation(BaseModel):
    """One ``Set-Cookie`` change accumulated during the request."""

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"


class RoutingFacts(BaseModel):
    """Everything the redirect decision engine needs, resolved up front."""

    classification: Classification
    exchange_failed: bool = False
    user_present: bool = False
    is_new_user: bool = False
    role: Role = Role.UNRESOLVED
    email_confirmed: bool = False
    onboarding_complete: bool = False
    onboarding_step: str | None = None
    tie_in: bool = False
    next_path: str = "/"


class RedirectDecision(BaseModel):
    """Where to send the browser, plus the cookies the response must carry."""

    destination_path: str
    query_params: dict[str, str] = Field(default_factory=dict)
    cookies_to_apply: list[CookieMutation] = Field(default_factory=list)

    @property
    def location(self) -> str:
        """Path with the encoded query string."""
        if not self.query_params:
            return self.destination_path
        separator = "&" if "?" in self.destination_path else "?"
        return f"{self.destination_path}{separator}{urlencode(self.query_params, quote_via=quote)}"
