"""Role resolution for the authenticated user."""

import logging

from src.listings.features.auth_callback.exceptions import ProfileLookupError, SchemaCacheError
from src.listings.features.auth_callback.models import (
    AuthenticatedUser,
    Profile,
    ResolvedIdentity,
    Role,
)
from src.listings.features.auth_callback.stores import (
    PROFILE_COLUMNS,
    PROFILE_COLUMNS_REDUCED,
    ProfileStore,
)

logger = logging.getLogger(__name__)


def resolve_role(user: AuthenticatedUser, profile: Profile | None) -> Role:
    """
    Resolve a single role from the available signals.

    Priority: registration metadata, then ``profile.role``, then
    ``profile.account_role``. With none of them set the role stays
    ``Role.UNRESOLVED``; it is never defaulted to ``Role.USER``.
    """
    if user.metadata_account_type is not None:
        return user.metadata_account_type
    if profile is not None:
        if profile.role is not None:
            return profile.role
        if profile.account_role is not None:
            return profile.account_role
    return Role.UNRESOLVED


class IdentityResolver:
    """Loads the user's profile and resolves their role."""

    def __init__(self, profile_store: ProfileStore) -> None:
        self.profile_store = profile_store

    def load_profile(self, user: AuthenticatedUser) -> Profile | None:
        """
        Read the user's profile row.

        A schema-cache error is retried once with the reduced column set. Any
        other failure is logged and reported as no profile.

        Args:
            user: Authenticated user

        Returns:
            Profile, or None when absent or unreadable
        """
        try:
            return self.profile_store.get_profile(user.id, columns=PROFILE_COLUMNS)
        except SchemaCacheError as e:
            logger.warning(
                f"Profile read hit stale schema cache, retrying with reduced columns: {e}",
                extra={"user_id": str(user.id), "error_type": "schema_cache"},
            )
        except ProfileLookupError as e:
            logger.error(
                f"Profile lookup failed for user {user.id}: {e}",
                extra={"user_id": str(user.id), "error_type": "profile_lookup_failed"},
            )
            return None

        try:
            return self.profile_store.get_profile(user.id, columns=PROFILE_COLUMNS_REDUCED)
        except (SchemaCacheError, ProfileLookupError) as e:
            logger.error(
                f"Profile lookup retry failed for user {user.id}: {e}",
                extra={"user_id": str(user.id), "error_type": "profile_lookup_failed"},
            )
            return None

    def resolve(self, user: AuthenticatedUser) -> ResolvedIdentity:
        """Load the profile and resolve the user's role."""
        profile = self.load_profile(user)
        role = resolve_role(user, profile)

        logger.info(
            f"Resolved role {role.value} for user {user.id}",
            extra={
                "user_id": str(user.id),
                "role": role.value,
                "profile_found": profile is not None,
                "metadata_account_type": (
                    user.metadata_account_type.value if user.metadata_account_type else None
                ),
            },
        )
        return ResolvedIdentity(role=role, profile=profile, profile_found=profile is not None)
