"""Orchestration of the post-authentication callback."""

import logging

from pydantic import BaseModel, Field
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_exponential

from src.listings.config import settings
from src.listings.features.auth_callback.classifier import classify_callback
from src.listings.features.auth_callback.cookies import CookieJar
from src.listings.features.auth_callback.decision import decide_redirect
from src.listings.features.auth_callback.exceptions import ExchangeFailure
from src.listings.features.auth_callback.identity import IdentityResolver, resolve_role
from src.listings.features.auth_callback.models import (
    AuthenticatedUser,
    CallbackContext,
    CallbackKind,
    Classification,
    CookieMutation,
    Profile,
    RedirectDecision,
    Role,
    RoutingFacts,
)
from src.listings.features.auth_callback.profile_sync import ProfileSynchronizer
from src.listings.features.auth_callback.session import (
    SessionExchanger,
    render_hash_confirmation_page,
)
from src.listings.features.auth_callback.stores import OwnershipStore, ProfileStore, SessionStore
from src.listings.features.auth_callback.tie_in import BusinessTieInChecker
from src.listings.services import PostHogService

logger = logging.getLogger(__name__)


class CallbackResult(BaseModel):
    """Outcome of one callback: a redirect or the hash-fragment HTML page."""

    decision: RedirectDecision | None = None
    html: str | None = None
    cookies: list[CookieMutation] = Field(default_factory=list)


class AuthCallbackService:
    """
    Resolves a callback request into exactly one destination.

    Steps run in order: classify, exchange, resolve identity, check business
    tie-in (new OAuth users only), sync profile role, decide the redirect.
    Collaborators are passed in per request.
    """

    def __init__(
        self,
        session_store: SessionStore,
        profile_store: ProfileStore,
        ownership_store: OwnershipStore,
        cookie_jar: CookieJar,
        poll_attempts: int | None = None,
        poll_max_wait_seconds: float | None = None,
    ) -> None:
        self.session_store = session_store
        self.cookie_jar = cookie_jar
        self.exchanger = SessionExchanger(session_store)
        self.identity_resolver = IdentityResolver(profile_store)
        self.tie_in_checker = BusinessTieInChecker(ownership_store)
        self.synchronizer = ProfileSynchronizer(profile_store)
        self.poll_attempts = (
            settings.auth_profile_poll_attempts if poll_attempts is None else poll_attempts
        )
        self.poll_max_wait_seconds = (
            settings.auth_profile_poll_max_wait_seconds
            if poll_max_wait_seconds is None
            else poll_max_wait_seconds
        )

    async def wait_for_profile(self, user: AuthenticatedUser) -> Profile | None:
        """
        Poll for a profile row the provider trigger may still be creating.

        Bounded by ``poll_attempts`` reads with short exponential backoff.
        Returns None if the row never shows up.
        """
        if self.poll_attempts <= 0:
            return None

        async def _read() -> Profile | None:
            return self.identity_resolver.load_profile(user)

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.poll_attempts),
            wait=wait_exponential(multiplier=0.1, max=self.poll_max_wait_seconds),
            retry=retry_if_result(lambda profile: profile is None),
            retry_error_callback=lambda retry_state: None,
        )
        profile = await retryer(_read)

        if profile is None:
            logger.warning(
                f"Profile for new user {user.id} not created after {self.poll_attempts} reads",
                extra={"user_id": str(user.id), "poll_attempts": self.poll_attempts},
            )
        return profile

    def _result(self, decision: RedirectDecision) -> CallbackResult:
        cookies = self.cookie_jar.mutations
        decision.cookies_to_apply = cookies
        return CallbackResult(decision=decision, cookies=cookies)

    def _track(
        self,
        classification: Classification,
        decision: RedirectDecision,
        user: AuthenticatedUser | None = None,
        **properties: object,
    ) -> None:
        event = (
            "auth_callback_failed"
            if decision.destination_path.startswith("/auth/auth-code-error")
            else "auth_callback_completed"
        )
        PostHogService().capture(
            distinct_id=str(user.id) if user else "anonymous",
            event=event,
            properties={
                "kind": classification.kind.value,
                "type": classification.type.value if classification.type else None,
                "destination": decision.destination_path,
                **properties,
            },
        )

    async def handle(self, context: CallbackContext) -> CallbackResult:
        """
        Handle one callback request.

        Args:
            context: Parsed callback parameters

        Returns:
            Redirect decision or HTML page, with the cookies to attach
        """
        classification = classify_callback(context)

        if classification.kind == CallbackKind.ERROR:
            decision = decide_redirect(
                RoutingFacts(classification=classification, next_path=context.next)
            )
            self._track(classification, decision)
            return self._result(decision)

        if classification.kind == CallbackKind.HASH_FRAGMENT:
            logger.info("No code or token in callback, serving hash-fragment confirmation page")
            return CallbackResult(
                html=render_hash_confirmation_page(context.raw_type),
                cookies=self.cookie_jar.mutations,
            )

        try:
            self.exchanger.exchange(context, classification)
        except ExchangeFailure as e:
            logger.warning(
                f"Auth exchange failed: {e}",
                extra={"error_type": "exchange_failed", "callback_type": classification.type},
            )
            decision = decide_redirect(
                RoutingFacts(
                    classification=classification,
                    exchange_failed=True,
                    next_path=context.next,
                )
            )
            self._track(classification, decision)
            return self._result(decision)

        user = self.session_store.get_current_user()
        if user is None:
            logger.warning("Exchange succeeded but no user is available, using next path")
            decision = decide_redirect(
                RoutingFacts(classification=classification, next_path=context.next)
            )
            self._track(classification, decision)
            return self._result(decision)

        identity = self.identity_resolver.resolve(user)
        profile = identity.profile
        role = identity.role
        tie_in = False

        if identity.is_new_user and classification.is_oauth_flow:
            profile = await self.wait_for_profile(user)
            if profile is not None:
                role = resolve_role(user, profile)
            tie_in = self.tie_in_checker.check(user.id)

        self.synchronizer.sync(user, profile)

        facts = RoutingFacts(
            classification=classification,
            user_present=True,
            is_new_user=identity.is_new_user,
            role=role,
            email_confirmed=user.email_confirmed,
            onboarding_complete=profile.onboarding_complete if profile else False,
            onboarding_step=profile.onboarding_step if profile else None,
            tie_in=tie_in,
            next_path=context.next,
        )
        decision = decide_redirect(facts)

        logger.info(
            f"Auth callback redirecting user {user.id} to {decision.destination_path}",
            extra={
                "user_id": str(user.id),
                "callback_type": classification.type.value if classification.type else None,
                "is_new_user": identity.is_new_user,
                "role": role.value,
                "tie_in": tie_in,
                "destination": decision.location,
            },
        )
        self._track(
            classification,
            decision,
            user,
            is_new_user=identity.is_new_user,
            role=role.value if role != Role.UNRESOLVED else None,
        )
        return self._result(decision)
