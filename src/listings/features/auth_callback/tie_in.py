"""Business tie-in check for brand-new identities."""

import logging
from uuid import UUID

from src.listings.features.auth_callback.stores import OwnershipStore

logger = logging.getLogger(__name__)


class BusinessTieInChecker:
    """
    Determines whether a new user is already tied to a business.

    A user is tied in when they own a business (``business_owners``) or have
    an approved ownership request (``business_ownership_requests``). The two
    reads are independent; a failed read counts as no rows for that table.
    """

    def __init__(self, ownership_store: OwnershipStore) -> None:
        self.ownership_store = ownership_store

    def _has_owned_business(self, user_id: UUID) -> bool:
        try:
            return bool(self.ownership_store.list_owned_businesses(user_id))
        except Exception as e:
            logger.warning(
                f"Owned business lookup failed for user {user_id}: {e}",
                extra={"user_id": str(user_id), "error_type": "tie_in_lookup_failed"},
            )
            return False

    def _has_approved_request(self, user_id: UUID) -> bool:
        try:
            return bool(self.ownership_store.list_approved_ownership_requests(user_id))
        except Exception as e:
            logger.warning(
                f"Ownership request lookup failed for user {user_id}: {e}",
                extra={"user_id": str(user_id), "error_type": "tie_in_lookup_failed"},
            )
            return False

    def check(self, user_id: UUID) -> bool:
        owned = self._has_owned_business(user_id)
        approved = self._has_approved_request(user_id)
        tied = owned or approved

        logger.info(
            f"Business tie-in for user {user_id}: {tied}",
            extra={"user_id": str(user_id), "owned_business": owned, "approved_request": approved},
        )
        return tied
