"""
Tracks which won rewards the user has already looked at, to drive the
unviewed-rewards badge. The viewed set is stored remotely as a whole and
overwritten on every save (last writer wins).
"""

import logging
from typing import Any, Iterable, Mapping, Optional, Set

from client import DearlyAPIError, DearlyClient
from rewards import reward_view_id, unviewed_reward_ids

logger = logging.getLogger("dearly.viewed_rewards")


def load_viewed_rewards(api: DearlyClient, user_id: Optional[str]) -> Set[str]:
    if not user_id:
        return set()
    try:
        return set(api.get_viewed_rewards(user_id))
    except DearlyAPIError as e:
        logger.error("Error loading viewed rewards for %s: %s", user_id, e)
        return set()


def save_viewed_rewards(api: DearlyClient, user_id: Optional[str], ids: Iterable[str]) -> bool:
    """Persist the full viewed set. Failures are logged, not raised."""
    if not user_id:
        logger.info("No user id, not saving viewed rewards")
        return False
    try:
        api.put_viewed_rewards(user_id, sorted(set(ids)))
        return True
    except DearlyAPIError as e:
        logger.error("Error saving viewed rewards for %s: %s", user_id, e)
        return False


class ViewedRewardsTracker:
    def __init__(self, api: DearlyClient, user_id: Optional[str]):
        self.api = api
        self.user_id = user_id
        self.viewed: Set[str] = set()
        self.loading = True

    def load(self) -> Set[str]:
        self.loading = True
        self.viewed = load_viewed_rewards(self.api, self.user_id)
        self.loading = False
        return self.viewed

    def has_unviewed(self, obtained: Iterable[Mapping[str, Any]]) -> bool:
        if self.loading:
            return False
        return bool(unviewed_reward_ids(obtained, self.viewed))

    def mark_all_viewed(self, obtained: Iterable[Mapping[str, Any]]) -> bool:
        """Union the current rewards into the viewed set, then persist it.

        The local set is updated before the save so the badge clears at once.
        """
        current = {reward_view_id(r) for r in obtained}
        if not current or current <= self.viewed:
            return True
        self.viewed = self.viewed | current
        return save_viewed_rewards(self.api, self.user_id, self.viewed)
