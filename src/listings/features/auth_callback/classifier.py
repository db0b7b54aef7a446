"""Classification of inbound auth callback requests."""

import logging

from src.listings.features.auth_callback.models import (
    CallbackContext,
    CallbackKind,
    CallbackType,
    Classification,
)

logger = logging.getLogger(__name__)

PROVIDER_ERROR_MESSAGES = {
    "access_denied": "Access denied. Please try again.",
    "invalid_request": "Invalid request. Please try again.",
}

# Query-string spellings of each callback purpose
CALLBACK_TYPE_ALIASES = {
    "signup": CallbackType.SIGNUP,
    "recovery": CallbackType.RECOVERY,
    "password_recovery": CallbackType.RECOVERY,
    "email_change": CallbackType.EMAIL_CHANGE,
    "emailchange": CallbackType.EMAIL_CHANGE,
    "oauth": CallbackType.OAUTH,
}

DEFAULT_NEXT_PATH = "/"


def parse_callback_type(raw_type: str | None) -> CallbackType | None:
    """Map the ``type`` query parameter to a ``CallbackType`` (None if absent or unknown)."""
    if not raw_type:
        return None
    return CALLBACK_TYPE_ALIASES.get(raw_type.strip().lower())


def safe_next_path(value: str | None) -> str:
    """
    Restrict ``next`` to a site-relative path.

    Anything that could leave the site falls back to ``/``: absolute URLs,
    protocol-relative ``//host`` paths, encoded slashes, and paths with
    whitespace or control characters (URL parsers drop tab, CR and LF, which
    turns ``/<tab>/host`` into ``//host``).
    """
    if not value:
        return DEFAULT_NEXT_PATH
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        return DEFAULT_NEXT_PATH
    if not value.startswith("/") or value.startswith("//"):
        return DEFAULT_NEXT_PATH
    lowered = value.lower()
    if "://" in lowered or "\\" in value or "%2f%2f" in lowered or "%252f" in lowered:
        return DEFAULT_NEXT_PATH
    return value


def build_callback_context(params: dict[str, str | None]) -> CallbackContext:
    """
    Build a ``CallbackContext`` from raw query parameters.

    Args:
        params: Query parameters of the callback request

    Returns:
        Parsed, never-persisted context for this request
    """
    raw_type = params.get("type") or None
    return CallbackContext(
        code=params.get("code") or None,
        token=params.get("token") or None,
        token_hash=params.get("token_hash") or None,
        type=parse_callback_type(raw_type),
        raw_type=raw_type,
        next=safe_next_path(params.get("next")),
        error=params.get("error") or None,
        error_description=params.get("error_description") or None,
        email=params.get("email") or None,
    )


def provider_error_message(error: str, description: str | None) -> str:
    """User-readable text for a provider error redirect."""
    if error in PROVIDER_ERROR_MESSAGES:
        return PROVIDER_ERROR_MESSAGES[error]
    return description or error


def classify_callback(context: CallbackContext) -> Classification:
    """
    Classify a callback request.

    Priority:
    1. ``error`` present: provider error, terminal, no exchange attempted.
    2. No ``code``/``token``/``token_hash``: legacy hash-fragment confirmation.
    3. Otherwise: code or token exchange, with purpose taken from ``type``.

    Args:
        context: Parsed callback parameters

    Returns:
        Classification for this request
    """
    if context.error:
        logger.warning(
            f"Provider returned error to auth callback: {context.error}",
            extra={"error": context.error, "error_description": context.error_description},
        )
        return Classification(
            kind=CallbackKind.ERROR,
            type=context.type,
            error_message=provider_error_message(context.error, context.error_description),
        )

    if not context.has_exchange_artifact:
        return Classification(kind=CallbackKind.HASH_FRAGMENT, type=context.type)

    callback_type = context.type
    if callback_type is None and not context.code:
        # One-time tokens without a type are email confirmation links
        callback_type = CallbackType.SIGNUP

    return Classification(kind=CallbackKind.EXCHANGE, type=callback_type)
