"""Session exchange for the auth callback.

Code and one-time-token callbacks are exchanged server-side so the session
lands in secure cookies. Legacy confirmation links deliver tokens in the URL
hash, which never reaches the server; for those the route returns a small HTML
page that finishes the sign-in in the browser.
"""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from src.listings.config import settings
from src.listings.features.auth_callback import decision
from src.listings.features.auth_callback.classifier import CALLBACK_TYPE_ALIASES
from src.listings.features.auth_callback.exceptions import ExchangeFailure
from src.listings.features.auth_callback.models import (
    CallbackContext,
    CallbackType,
    Classification,
)
from src.listings.features.auth_callback.stores import SessionStore

logger = logging.getLogger(__name__)

# Provider OTP types per callback purpose; unspecified tokens confirm a signup
OTP_TYPES = {
    CallbackType.SIGNUP: "signup",
    CallbackType.RECOVERY: "recovery",
    CallbackType.EMAIL_CHANGE: "email_change",
    CallbackType.OAUTH: "email",
}


def otp_type_for(callback_type: CallbackType | None) -> str:
    return OTP_TYPES.get(callback_type, "signup")


class SessionExchanger:
    """Turns a code or one-time token into an active provider session."""

    def __init__(self, session_store: SessionStore) -> None:
        self.session_store = session_store

    def exchange(self, context: CallbackContext, classification: Classification) -> None:
        """
        Exchange the request's authorization artifact for a session.

        The session itself is persisted by the provider client through its
        cookie-backed storage; nothing is returned.

        Args:
            context: Parsed callback parameters
            classification: Classification of the request (exchange kind)

        Raises:
            ExchangeFailure: If the code or token is invalid, expired or missing
        """
        if context.code:
            logger.info("Exchanging authorization code for session")
            self.session_store.exchange_code(context.code)
            return

        if context.token or context.token_hash:
            otp_type = otp_type_for(classification.type)
            logger.info(
                f"Verifying one-time token (type={otp_type})",
                extra={"otp_type": otp_type, "has_email": bool(context.email)},
            )
            self.session_store.verify_otp(
                otp_type,
                token=context.token,
                token_hash=context.token_hash,
                email=context.email,
            )
            return

        raise ExchangeFailure("No authorization code or token in callback")


TEMPLATE_DIR = Path(__file__).parent / "templates"
HASH_CONFIRMATION_TEMPLATE = "hash_confirmation.html.j2"


def hash_fragment_destinations() -> dict[str, str]:
    """Client-side redirect targets keyed by callback type."""
    return {
        CallbackType.RECOVERY.value: decision.reset_password().location,
        CallbackType.EMAIL_CHANGE.value: decision.email_changed().location,
        "default": decision.verified_gate().location,
    }


def render_hash_confirmation_page(query_type: str | None = None) -> str:
    """
    Render the HTML page that completes a hash-fragment confirmation.

    Args:
        query_type: ``type`` query parameter, used when the hash has none

    Returns:
        HTML document with an inline confirmation script
    """
    # tojson escapes "<", ">", "&" and "'" so no value can close the inline script
    env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)))
    template = env.get_template(HASH_CONFIRMATION_TEMPLATE)
    return template.render(
        cdn_url=settings.supabase_js_cdn_url,
        type_aliases={alias: value.value for alias, value in CALLBACK_TYPE_ALIASES.items()},
        destinations=hash_fragment_destinations(),
        query_type=query_type,
        error_path=decision.AUTH_ERROR_PATH,
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
    )
