from __future__ import annotations

from completion import (
    DEFAULT_FULFILMENT_MESSAGE,
    claim_id_for,
    claim_reward,
    complete_game,
    fulfil_reward,
    fulfilment_message,
)
from client import DearlyAPIError
from events import GAME_COMPLETED, REFRESH_GAMES
from rewards import resolve_claimed_reward
from tests.game_fixtures import TEST_USER_ID, make_quiz, make_rewards


def _game_with_rewards(api):
    return api.create_game(TEST_USER_ID, {"type": "quiz", **make_quiz(), "hasReward": True,
                                          "rewards": make_rewards()})


def _record(bus, topic):
    seen = []
    bus.subscribe(topic, seen.append)
    return seen


def test_claim_id_prefers_id_then_legacy_id_then_position():
    rewards = [{"name": "A"}, {"_id": "legacy-b", "name": "B"}, {"id": "c", "_id": "old-c", "name": "C"}]
    assert claim_id_for(rewards[2], rewards) == "c"
    assert claim_id_for(rewards[1], rewards) == "legacy-b"
    assert claim_id_for(rewards[0], rewards) == "0"
    assert claim_id_for({"name": "Elsewhere"}, rewards) is None


def test_claim_reward_end_to_end(api, bus, mongo_db):
    game = _game_with_rewards(api)
    completed = _record(bus, GAME_COMPLETED)
    refreshed = _record(bus, REFRESH_GAMES)

    picked = game["rewards"][1]
    result = claim_reward(api, TEST_USER_ID, game, picked, bus=bus)

    assert result["success"] is True
    assert result["claimedRewardId"] == picked["id"]
    saved = result["game"]
    assert saved["isCompleted"] is True
    assert saved["claimedRewardId"] == picked["id"]
    assert resolve_claimed_reward(saved)["name"] == "Reward 2"

    assert completed == [{"gameId": game["id"], "gameType": "quiz", "claimedRewardId": picked["id"]}]
    assert len(refreshed) == 1
    # Claiming also completed the game, so the sender got a notification.
    assert mongo_db["notification"].count_documents({"ownerId": TEST_USER_ID, "type": "game_completion"}) == 1


def test_claim_after_completion_keeps_completed_at(api, bus):
    game = _game_with_rewards(api)
    result = complete_game(api, TEST_USER_ID, game, score=90, receiver_name="Sam", bus=bus)
    assert result["success"] is True
    completed_at = result["game"]["completedAt"]

    claimed = claim_reward(api, TEST_USER_ID, result["game"], result["game"]["rewards"][0])
    assert claimed["success"] is True
    assert claimed["game"]["completedAt"] == completed_at
    assert claimed["game"]["score"] == 90


def test_complete_game_publishes_once(api, bus):
    game = _game_with_rewards(api)
    completed = _record(bus, GAME_COMPLETED)

    assert complete_game(api, TEST_USER_ID, game, bus=bus)["success"] is True
    again = complete_game(api, TEST_USER_ID, game, bus=bus)

    assert again == {"success": False, "error": "Nothing to update"}
    assert completed == [{"gameId": game["id"], "gameType": "quiz"}]


def test_claim_on_game_without_rewards_reports_server_error(api, bus):
    game = api.create_game(TEST_USER_ID, {"type": "quiz", **make_quiz()})
    completed = _record(bus, GAME_COMPLETED)

    result = claim_reward(api, TEST_USER_ID, {**game, "rewards": make_rewards()}, make_rewards()[0], bus=bus)

    assert result == {"success": False, "error": "Game has no rewards to claim"}
    assert completed == []


def test_claim_of_foreign_reward_is_refused(api):
    game = _game_with_rewards(api)
    result = claim_reward(api, TEST_USER_ID, game, {"name": "Not in this game"})
    assert result == {"success": False, "error": "Reward is not part of this game"}


def test_fulfil_reward_uses_receiver_email_and_reward_name(api, bus, mongo_db):
    api.save_receiver_data(TEST_USER_ID, "Sam", "sam@example.com")
    game = _game_with_rewards(api)
    claimed = claim_reward(api, TEST_USER_ID, game, game["rewards"][2])["game"]
    refreshed = _record(bus, REFRESH_GAMES)

    result = fulfil_reward(api, TEST_USER_ID, claimed, bus=bus)

    assert result["success"] is True
    assert result["receiverEmail"] == "sam@example.com"
    assert result["completion"]["rewardFulfilled"] is True
    assert result["completion"]["claimedReward"]["name"] == "Reward 3"
    assert len(refreshed) == 1

    stored = mongo_db["game"].find_one({"_id": game["id"]})
    assert stored["fulfillmentMessage"] == fulfilment_message(claimed["rewards"][2])
    assert "Reward 3" in stored["fulfillmentMessage"]


def test_fulfil_reward_without_receiver_record(api):
    game = _game_with_rewards(api)
    claimed = claim_reward(api, TEST_USER_ID, game, game["rewards"][0])["game"]

    result = fulfil_reward(api, TEST_USER_ID, claimed, message="  Dinner is booked!  ")

    assert result["success"] is True
    assert result["receiverEmail"] is None
    assert api.get_completion(TEST_USER_ID, game["id"])["rewardFulfilled"] is True


def test_fulfil_reward_failure_returns_message(api):
    result = fulfil_reward(api, TEST_USER_ID, {"id": "missing-game"}, email_to_receiver=False)
    assert result == {"success": False, "error": "Game not found"}


def test_fulfilment_message_defaults():
    assert fulfilment_message(None) == DEFAULT_FULFILMENT_MESSAGE
    assert fulfilment_message({"name": ""}) == DEFAULT_FULFILMENT_MESSAGE
    assert fulfilment_message({"name": "Picnic"}).startswith("I've fulfilled your reward: Picnic!")


class _OfflineAPI:
    def complete_game(self, user_id, game_id, body):
        raise DearlyAPIError("Failed to update completion: connection refused")


def test_transport_failure_uses_generic_message():
    result = complete_game(_OfflineAPI(), TEST_USER_ID, {"id": "g1"})
    assert result == {"success": False, "error": "Failed to save your result. Please try again."}
