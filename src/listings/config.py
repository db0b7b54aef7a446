"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # System Configuration
    environment: str = "development"
    debug: bool = False
    cors_origins: str = "http://localhost:3000,http://localhost:4173"
    rate_limit_enabled: bool = True

    # Supabase Configuration
    supabase_url: str = "https://test.supabase.co"
    supabase_anon_key: str = "test-anon-key"
    supabase_service_role_key: str = "test-service-role-key"

    # Auth callback
    auth_cookie_secure: bool | None = None  # None = secure only in production
    auth_cookie_domain: str | None = None
    auth_profile_poll_attempts: int = 3
    auth_profile_poll_max_wait_seconds: float = 0.5
    supabase_js_cdn_url: str = "https://cdn.jsdelivr.net/npm/@supabase/supabase-js@2"

    # PostHog Configuration
    posthog_api_key: str | None = None
    posthog_host: str = "https://app.posthog.com"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cookie_secure(self) -> bool:
        """Whether session cookies carry the Secure flag."""
        if self.auth_cookie_secure is not None:
            return self.auth_cookie_secure
        return self.is_production


settings = Settings()
