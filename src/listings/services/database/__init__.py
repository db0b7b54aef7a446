"""Database connection and query helpers."""

from src.listings.services.database.connection import (
    get_supabase_admin_client,
    get_supabase_client,
    get_supabase_session_client,
)
from src.listings.services.database.utils import SupabaseQueryBuilder, get_query_builder

__all__ = [
    "get_supabase_client",
    "get_supabase_admin_client",
    "get_supabase_session_client",
    "SupabaseQueryBuilder",
    "get_query_builder",
]
