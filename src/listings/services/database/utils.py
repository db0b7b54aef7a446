"""Generic database utility functions for Supabase interactions."""

import logging
from typing import Any

from supabase import Client

from src.listings.services.database.connection import get_supabase_admin_client, get_supabase_client

logger = logging.getLogger(__name__)


class SupabaseQueryBuilder:
    """Helper class for building and executing Supabase queries."""

    def __init__(self, client: Client | None = None) -> None:
        """
        Initialize query builder.

        Args:
            client: Supabase client instance (uses default if None)
        """
        self.client = client or get_supabase_client()

    def get_by_field(
        self, table: str, field: str, value: Any, columns: str = "*"
    ) -> dict[str, Any] | None:
        """
        Fetch a single record by field value.

        Args:
            table: Table name
            field: Field name to filter by
            value: Field value
            columns: Columns to select (default: "*")

        Returns:
            First matching record or None

        Example:
            >>> builder = SupabaseQueryBuilder()
            >>> profile = builder.get_by_field("profiles", "user_id", user_id, columns="role")
        """
        response = self.client.table(table).select(columns).eq(field, value).execute()
        return response.data[0] if response.data else None

    def list_records(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        order_desc: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """
        List records with optional filtering, ordering, and pagination.

        Args:
            table: Table name
            columns: Columns to select (default: "*")
            filters: Dictionary of field:value pairs for filtering
            order_by: Column to order by
            order_desc: Order descending (default: True)
            limit: Maximum records to return
            offset: Number of records to skip

        Returns:
            List of record dictionaries

        Example:
            >>> builder = SupabaseQueryBuilder()
            >>> requests = builder.list_records(
            ...     "business_ownership_requests",
            ...     filters={"user_id": user_id, "status": "approved"},
            ...     limit=1
            ... )
        """
        query = self.client.table(table).select(columns)

        if filters:
            for field, value in filters.items():
                query = query.eq(field, value)

        if order_by:
            query = query.order(order_by, desc=order_desc)

        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        response = query.execute()
        return response.data

    def update_by_filter(
        self, table: str, filters: dict[str, Any], data: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """
        Update records matching filters.

        Args:
            table: Table name
            filters: Dictionary of field:value pairs for filtering
            data: Fields to update

        Returns:
            List of updated record dictionaries

        Example:
            >>> builder = SupabaseQueryBuilder()
            >>> updated = builder.update_by_filter(
            ...     "profiles",
            ...     {"user_id": user_id},
            ...     {"role": "business_owner", "account_role": "business_owner"}
            ... )
        """
        query = self.client.table(table).update(data)

        for field, value in filters.items():
            query = query.eq(field, value)

        response = query.execute()
        return response.data


def get_query_builder(client: Client | None = None, use_admin: bool = True) -> SupabaseQueryBuilder:
    """
    Get instance of SupabaseQueryBuilder.

    Args:
        client: Optional Supabase client (uses default if None)
        use_admin: If True (default), uses admin client that bypasses RLS.
                   Set to False for operations that should respect RLS policies.

    Returns:
        SupabaseQueryBuilder instance

    Example:
        >>> db = get_query_builder()  # Uses admin client (bypasses RLS)
        >>> profile = db.get_by_field("profiles", "user_id", user_id)
    """
    if client is None:
        client = get_supabase_admin_client() if use_admin else get_supabase_client()
    return SupabaseQueryBuilder(client)
