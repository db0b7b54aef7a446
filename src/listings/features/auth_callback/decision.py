"""Redirect decision engine for the auth callback.

``decide_redirect`` is a pure function from ``RoutingFacts`` to a
``RedirectDecision``. Rules are evaluated top to bottom and the first match
wins; no I/O happens here.
"""

from src.listings.features.auth_callback.models import (
    CallbackKind,
    CallbackType,
    OnboardingStep,
    RedirectDecision,
    Role,
    RoutingFacts,
)

AUTH_ERROR_PATH = "/auth/auth-code-error"
VERIFY_EMAIL_PATH = "/verify-email"
SELECT_ACCOUNT_TYPE_PATH = "/onboarding/select-account-type"

ONBOARDING_STEP_ROUTES = {
    OnboardingStep.INTERESTS.value: "/interests",
    OnboardingStep.SUBCATEGORIES.value: "/subcategories",
    OnboardingStep.DEAL_BREAKERS.value: "/deal-breakers",
    OnboardingStep.COMPLETE.value: "/complete",
}


def auth_error() -> RedirectDecision:
    return RedirectDecision(destination_path=AUTH_ERROR_PATH)


def provider_error(message: str) -> RedirectDecision:
    return RedirectDecision(destination_path=AUTH_ERROR_PATH, query_params={"error": message})


def reset_password() -> RedirectDecision:
    return RedirectDecision(destination_path="/reset-password", query_params={"verified": "1"})


def email_changed() -> RedirectDecision:
    return RedirectDecision(destination_path="/profile", query_params={"email_changed": "true"})


def verify_email() -> RedirectDecision:
    return RedirectDecision(destination_path=VERIFY_EMAIL_PATH)


def verified_gate() -> RedirectDecision:
    """Neutral page that waits for a role before choosing an onboarding path."""
    return RedirectDecision(destination_path=VERIFY_EMAIL_PATH, query_params={"verified": "1"})


def interests_verified() -> RedirectDecision:
    return RedirectDecision(
        destination_path="/interests",
        query_params={"verified": "1", "email_verified": "true"},
    )


def onboarding_step_route(step: str | None) -> RedirectDecision:
    """Route for the next required onboarding step (``/interests`` when unknown)."""
    path = ONBOARDING_STEP_ROUTES.get(step or "", ONBOARDING_STEP_ROUTES["interests"])
    if path == ONBOARDING_STEP_ROUTES["interests"]:
        return RedirectDecision(destination_path=path, query_params={"verified": "1"})
    return RedirectDecision(destination_path=path)


def _decide_signup(facts: RoutingFacts) -> RedirectDecision:
    if not facts.email_confirmed:
        return verify_email()
    if facts.role == Role.BUSINESS_OWNER:
        return RedirectDecision(destination_path="/my-businesses")
    if facts.role == Role.USER:
        return interests_verified()
    return verified_gate()


def _decide_new_oauth_user(facts: RoutingFacts) -> RedirectDecision:
    if facts.tie_in:
        return RedirectDecision(
            destination_path=SELECT_ACCOUNT_TYPE_PATH,
            query_params={"oauth": "true", "business_tied": "true"},
        )
    if facts.email_confirmed:
        return interests_verified()
    return verify_email()


def _decide_existing_user(facts: RoutingFacts) -> RedirectDecision:
    if facts.classification.is_oauth_flow and facts.role == Role.BUSINESS_OWNER:
        # OAuth never lands a business owner anywhere without explicit confirmation
        return RedirectDecision(
            destination_path=SELECT_ACCOUNT_TYPE_PATH,
            query_params={"mode": "oauth", "existingRole": Role.BUSINESS_OWNER.value},
        )

    if facts.onboarding_complete:
        if facts.role == Role.BUSINESS_OWNER:
            return RedirectDecision(destination_path="/claim-business")
        return RedirectDecision(destination_path="/complete")

    if facts.role == Role.BUSINESS_OWNER:
        return RedirectDecision(destination_path="/claim-business")

    if not facts.email_confirmed:
        return verify_email()

    if facts.role == Role.UNRESOLVED:
        return verified_gate()

    return onboarding_step_route(facts.onboarding_step)


def decide_redirect(facts: RoutingFacts) -> RedirectDecision:
    """
    Pick the single destination for a callback request.

    Args:
        facts: Classification, identity and onboarding facts for the request

    Returns:
        Redirect decision (without cookies; the route attaches those)
    """
    classification = facts.classification

    if classification.kind == CallbackKind.ERROR:
        return provider_error(classification.error_message or "Authentication failed")

    if facts.exchange_failed:
        return auth_error()

    if classification.type == CallbackType.RECOVERY:
        return reset_password()

    if classification.type == CallbackType.EMAIL_CHANGE:
        return email_changed()

    if not facts.user_present:
        return RedirectDecision(destination_path=facts.next_path)

    if classification.type == CallbackType.SIGNUP:
        return _decide_signup(facts)

    if facts.is_new_user and classification.is_oauth_flow:
        return _decide_new_oauth_user(facts)

    if not facts.is_new_user:
        return _decide_existing_user(facts)

    return RedirectDecision(destination_path=facts.next_path)
