"""Supabase client construction.

Clients are built per request and handed to callers through FastAPI
dependencies; nothing here is cached at module level.
"""

from supabase import Client, ClientOptions, create_client
from supabase_auth import SyncSupportedStorage

from src.listings.config import settings


def get_supabase_client() -> Client:
    """
    Create a Supabase client with the anon key.

    Use this for operations that should respect RLS policies.

    Returns:
        Configured Supabase client with anon key for RLS-protected operations
    """
    return create_client(settings.supabase_url, settings.supabase_anon_key)


def get_supabase_admin_client() -> Client:
    """
    Create a Supabase admin client with the service role key.

    This client bypasses Row-Level Security (RLS) policies and should be used
    for server-side operations that have their own authentication/authorization.

    ⚠️ WARNING: This client has full database access. Only use for trusted server-side operations.

    Returns:
        Configured Supabase client with service role key (bypasses RLS)
    """
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


def get_supabase_session_client(storage: SyncSupportedStorage) -> Client:
    """
    Create an anon-key client whose auth session lives in ``storage``.

    The auth callback passes a cookie-backed storage so that every session the
    client persists during a code exchange or OTP verification becomes a
    ``Set-Cookie`` on the outgoing response.

    Args:
        storage: Session storage adapter for the auth client

    Returns:
        Supabase client using the PKCE flow and the given storage

    Example:
        >>> jar = CookieJar()
        >>> client = get_supabase_session_client(RequestCookieStorage(request.cookies, jar))
        >>> client.auth.exchange_code_for_session({"auth_code": code})
    """
    options = ClientOptions(
        storage=storage,
        flow_type="pkce",
        auto_refresh_token=False,
        persist_session=True,
    )
    return create_client(settings.supabase_url, settings.supabase_anon_key, options=options)
