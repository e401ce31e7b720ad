from __future__ import annotations

from client import DearlyAPIError
from rewards import obtained_rewards
from tests.game_fixtures import TEST_USER_ID
from viewed_rewards import ViewedRewardsTracker, load_viewed_rewards, save_viewed_rewards


class FailingAPI:
    def __init__(self):
        self.saved = []

    def get_viewed_rewards(self, user_id):
        raise DearlyAPIError("Failed to load viewed rewards", 500)

    def put_viewed_rewards(self, user_id, ids):
        self.saved.append(list(ids))
        raise DearlyAPIError("Failed to save viewed rewards", 500)


def _won_game(game_id, reward_id):
    return {
        "id": game_id,
        "type": "quiz",
        "title": "Quiz",
        "hasReward": True,
        "isCompleted": True,
        "claimedRewardId": reward_id,
        "rewards": [{"id": reward_id, "name": "Coffee"}, {"id": "x2"}, {"id": "x3"}],
    }


def test_save_then_load_round_trip(api):
    assert save_viewed_rewards(api, TEST_USER_ID, ["g2_r1", "g1_r1", "g1_r1"])
    assert load_viewed_rewards(api, TEST_USER_ID) == {"g1_r1", "g2_r1"}


def test_no_user_means_empty_and_no_write(api):
    assert load_viewed_rewards(api, None) == set()
    assert save_viewed_rewards(api, "", ["a_b"]) is False


def test_errors_are_swallowed_into_defaults():
    api = FailingAPI()
    assert load_viewed_rewards(api, TEST_USER_ID) == set()
    assert save_viewed_rewards(api, TEST_USER_ID, ["a_b"]) is False


def test_tracker_hides_badge_while_loading(api):
    tracker = ViewedRewardsTracker(api, TEST_USER_ID)
    obtained = obtained_rewards([_won_game("g1", "r1")])
    assert tracker.has_unviewed(obtained) is False

    tracker.load()
    assert tracker.loading is False
    assert tracker.has_unviewed(obtained) is True


def test_mark_all_viewed_persists_union(api):
    save_viewed_rewards(api, TEST_USER_ID, ["old_reward"])
    tracker = ViewedRewardsTracker(api, TEST_USER_ID)
    tracker.load()

    obtained = obtained_rewards([_won_game("g1", "r1"), _won_game("g2", "r9")])
    assert tracker.mark_all_viewed(obtained) is True
    assert tracker.has_unviewed(obtained) is False
    assert load_viewed_rewards(api, TEST_USER_ID) == {"old_reward", "g1_r1", "g2_r9"}


def test_mark_all_viewed_skips_save_when_nothing_new():
    api = FailingAPI()
    tracker = ViewedRewardsTracker(api, TEST_USER_ID)
    tracker.viewed = {"g1_r1"}
    tracker.loading = False

    assert tracker.mark_all_viewed(obtained_rewards([_won_game("g1", "r1")])) is True
    assert api.saved == []


def test_mark_all_viewed_keeps_local_state_on_save_failure():
    api = FailingAPI()
    tracker = ViewedRewardsTracker(api, TEST_USER_ID)
    tracker.loading = False

    obtained = obtained_rewards([_won_game("g1", "r1")])
    assert tracker.mark_all_viewed(obtained) is False
    assert tracker.viewed == {"g1_r1"}
    assert tracker.has_unviewed(obtained) is False
    assert api.saved == [["g1_r1"]]
