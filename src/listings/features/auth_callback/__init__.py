"""Post-authentication session resolution and redirect routing."""

from src.listings.features.auth_callback.handlers import router

__all__ = ["router"]
