"""
Game completion on the receiver side and reward fulfilment on the sender side.

The receiver finishes a game, picks one of the three mystery rewards, and the
claim is written with PUT /complete. Later the sender marks the reward as
fulfilled in real life, optionally emailing the receiver. Every helper answers
with a `{"success": ..., ...}` dict and never raises on backend failures.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from client import DearlyAPIError, DearlyClient
from events import GAME_COMPLETED, REFRESH_GAMES, EventBus
from rewards import resolve_claimed_reward

logger = logging.getLogger("dearly.completion")

DEFAULT_FULFILMENT_MESSAGE = "I've fulfilled your reward! I can't wait to share this special moment with you 💝"


def claim_id_for(reward: Mapping[str, Any], rewards: Optional[List[Any]]) -> Optional[str]:
    """Identifier to store in claimedRewardId: id, then _id, then array position."""
    if reward.get("id"):
        return str(reward["id"])
    if reward.get("_id"):
        return str(reward["_id"])
    for pos, r in enumerate(rewards or []):
        if r is reward or r == reward:
            return str(pos)
    return None


def fulfilment_message(reward: Optional[Mapping[str, Any]]) -> str:
    if not reward or not reward.get("name"):
        return DEFAULT_FULFILMENT_MESSAGE
    name = reward["name"]
    return f"I've fulfilled your reward: {name}! I can't wait to share this special moment with you 💝"


def _failure(e: DearlyAPIError, generic: str) -> Dict[str, Any]:
    return {"success": False, "error": e.message if e.status_code else generic}


def complete_game(
    api: DearlyClient,
    user_id: str,
    game: Mapping[str, Any],
    score: Optional[float] = None,
    receiver_name: Optional[str] = None,
    bus: Optional[EventBus] = None,
) -> Dict[str, Any]:
    body = {"isCompleted": True, "score": score, "receiverName": receiver_name}
    try:
        result = api.complete_game(user_id, game["id"], {k: v for k, v in body.items() if v is not None})
    except DearlyAPIError as e:
        logger.error("Error completing game %s: %s", game.get("id"), e)
        return _failure(e, "Failed to save your result. Please try again.")

    if bus is not None:
        bus.publish(GAME_COMPLETED, {"gameId": game["id"], "gameType": game.get("type")})
    return {"success": True, "game": result.get("game")}


def claim_reward(
    api: DearlyClient,
    user_id: str,
    game: Mapping[str, Any],
    reward: Mapping[str, Any],
    bus: Optional[EventBus] = None,
) -> Dict[str, Any]:
    """Record the receiver's pick; completes the game too if it is not yet."""
    claim_id = claim_id_for(reward, game.get("rewards"))
    if claim_id is None:
        return {"success": False, "error": "Reward is not part of this game"}

    body: Dict[str, Any] = {"claimedRewardId": claim_id}
    if not game.get("isCompleted"):
        body["isCompleted"] = True
    try:
        result = api.complete_game(user_id, game["id"], body)
    except DearlyAPIError as e:
        logger.error("Error saving reward claim %s on game %s: %s", claim_id, game.get("id"), e)
        return _failure(e, "Failed to save your reward. Please try again.")

    saved = result.get("game") or {}
    if saved.get("claimedRewardId") != claim_id:
        logger.warning("Reward saved but claimedRewardId not in response for game %s", game.get("id"))
    if bus is not None:
        bus.publish(GAME_COMPLETED, {"gameId": game["id"], "gameType": game.get("type"),
                                     "claimedRewardId": claim_id})
        bus.publish(REFRESH_GAMES)
    return {"success": True, "game": saved, "claimedRewardId": claim_id}


def fulfil_reward(
    api: DearlyClient,
    user_id: str,
    game: Mapping[str, Any],
    message: Optional[str] = None,
    email_to_receiver: bool = True,
    bus: Optional[EventBus] = None,
) -> Dict[str, Any]:
    """Mark the claimed reward fulfilled, emailing the receiver when asked."""
    receiver_email = None
    if email_to_receiver:
        try:
            receiver = api.get_receiver_data(user_id) or {}
            receiver_email = receiver.get("email")
        except DearlyAPIError as e:
            logger.warning("Could not load receiver email for %s: %s", user_id, e)

    body: Dict[str, Any] = {
        "rewardFulfilled": True,
        "emailToReceiver": email_to_receiver,
        "emailMessage": (message or "").strip() or fulfilment_message(resolve_claimed_reward(game)),
    }
    if receiver_email:
        body["receiverEmail"] = receiver_email
    try:
        api.complete_game(user_id, game["id"], body)
        completion = api.get_completion(user_id, game["id"])
    except DearlyAPIError as e:
        logger.error("Error fulfilling reward on game %s: %s", game.get("id"), e)
        return _failure(e, "Failed to send email. Please try again.")

    if bus is not None:
        bus.publish(REFRESH_GAMES)
    return {"success": True, "completion": completion, "receiverEmail": receiver_email}
