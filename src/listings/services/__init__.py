"""Shared services module for external integrations."""

from src.listings.services.analytics.posthog import PostHogService

__all__ = [
    "PostHogService",
]
