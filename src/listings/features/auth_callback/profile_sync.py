"""Reconciliation of the stored profile role with registration metadata."""

import logging

from src.listings.features.auth_callback.exceptions import SyncWriteError
from src.listings.features.auth_callback.models import AuthenticatedUser, Profile
from src.listings.features.auth_callback.stores import ProfileStore

logger = logging.getLogger(__name__)


class ProfileSynchronizer:
    """
    Brings ``profiles.role``/``profiles.account_role`` in line with the
    registration-time ``account_type``.

    Idempotent: when the stored role already matches, nothing is written.
    Write failures are logged and swallowed since the in-memory role for the
    current request is already correct.
    """

    def __init__(self, profile_store: ProfileStore) -> None:
        self.profile_store = profile_store

    def sync(self, user: AuthenticatedUser, profile: Profile | None) -> bool:
        """
        Write the metadata role to the profile when they disagree.

        Args:
            user: Authenticated user carrying the metadata role
            profile: Stored profile, or None if no row exists yet

        Returns:
            True if a write was made, False otherwise
        """
        target = user.metadata_account_type
        if target is None or profile is None:
            return False

        if profile.role == target and profile.account_role == target:
            return False

        try:
            self.profile_store.update_role(user.id, target)
        except SyncWriteError as e:
            logger.error(
                f"Failed to sync profile role for user {user.id}: {e}",
                extra={"user_id": str(user.id), "target_role": target.value, "error_type": "sync_write_failed"},
            )
            return False

        profile.role = target
        profile.account_role = target
        logger.info(
            f"Synced profile role for user {user.id} to {target.value}",
            extra={"user_id": str(user.id), "target_role": target.value},
        )
        return True
