"""PostHog analytics service for event tracking."""

import posthog

from src.listings.config import settings


class PostHogService:
    """Service for tracking analytics events via PostHog."""

    def __init__(self) -> None:
        """Initialize PostHog service."""
        if settings.posthog_api_key:
            posthog.api_key = settings.posthog_api_key
            posthog.host = settings.posthog_host

    def capture(self, distinct_id: str, event: str, properties: dict | None = None) -> None:
        """
        Track an event.

        Args:
            distinct_id: Unique identifier for the user
            event: Event name (e.g., "auth_callback_completed")
            properties: Optional event properties

        Example:
            >>> service = PostHogService()
            >>> service.capture(
            ...     "user-123",
            ...     "auth_callback_completed",
            ...     {"flow": "oauth", "destination": "/interests"}
            ... )
        """
        if not settings.posthog_api_key:
            return

        posthog.capture(distinct_id=distinct_id, event=event, properties=properties or {})
