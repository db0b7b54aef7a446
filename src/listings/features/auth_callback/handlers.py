"""API handler for the post-authentication callback."""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from src.listings.features.auth_callback.classifier import build_callback_context
from src.listings.features.auth_callback.cookies import (
    CookieJar,
    RequestCookieStorage,
    propagate_cookies,
)
from src.listings.features.auth_callback.decision import auth_error
from src.listings.features.auth_callback.service import AuthCallbackService, CallbackResult
from src.listings.features.auth_callback.stores import (
    SupabaseOwnershipStore,
    SupabaseProfileStore,
    SupabaseSessionStore,
)
from src.listings.services.database import get_query_builder, get_supabase_session_client
from src.listings.services.rate_limiter import auth_callback_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def absolute_location(request: Request, location: str) -> str:
    """Absolute URL for a site-relative location on the request's own origin."""
    return f"{request.url.scheme}://{request.url.netloc}{location}"


def get_cookie_jar() -> CookieJar:
    """Fresh cookie jar for the current request."""
    return CookieJar()


def get_auth_callback_service(
    request: Request,
    cookie_jar: CookieJar = Depends(get_cookie_jar),
) -> AuthCallbackService:
    """
    Build the callback service and its stores for one request.

    The auth client keeps its session in ``RequestCookieStorage`` so every
    session write ends up in ``cookie_jar``. Table reads and writes go through
    the service-role query builder.
    """
    storage = RequestCookieStorage(request.cookies, cookie_jar)
    session_client = get_supabase_session_client(storage)
    db = get_query_builder()
    return AuthCallbackService(
        session_store=SupabaseSessionStore(session_client),
        profile_store=SupabaseProfileStore(db),
        ownership_store=SupabaseOwnershipStore(db),
        cookie_jar=cookie_jar,
    )


@router.get("/callback", response_class=Response)
@auth_callback_rate_limit
async def auth_callback(
    request: Request,
    service: AuthCallbackService = Depends(get_auth_callback_service),
) -> Response:
    """
    Finish any authentication handshake and redirect the browser.

    Handles provider errors, OAuth code exchange, email OTP links (signup,
    recovery, email change) and legacy hash-fragment confirmations.

    Query Parameters:
        code: One-time authorization code
        token / token_hash: One-time email token
        type: signup | recovery | password_recovery | email_change | emailchange | oauth
        next: Fallback path (default "/")
        error / error_description: Provider error details
        email: Address for raw-token OTP verification

    Returns:
        307 redirect carrying the session cookies, or a 200 HTML page that
        completes hash-fragment confirmations in the browser
    """
    context = build_callback_context(dict(request.query_params))

    try:
        result = await service.handle(context)
    except Exception as e:
        logger.error(
            f"Unexpected error in auth callback: {e}",
            exc_info=True,
            extra={"error_type": "auth_callback_failed"},
        )
        result = CallbackResult(decision=auth_error(), cookies=service.cookie_jar.mutations)

    if result.html is not None:
        response: Response = HTMLResponse(content=result.html)
    else:
        response = RedirectResponse(url=absolute_location(request, result.decision.location))

    return propagate_cookies(response, result.cookies)
