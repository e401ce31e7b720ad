"""
Mystery reward resolution.

A completed game records which of its three rewards was claimed in
`claimedRewardId`. Older records used several identifier schemes for that
value (reward ids, Mongo-style `_id`, reward names, the 1-based `index` property, raw array
positions, "reward_index_N" strings), so resolution walks an ordered chain of
strategies and reports which one matched.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

logger = logging.getLogger("dearly.rewards")

REWARD_TYPES = [
    {
        "id": "food-drink",
        "name": "Food / Drink",
        "description": "Coffee dates, dinner, favorite snacks, etc.",
        "icon": "☕",
    },
    {
        "id": "date-outing",
        "name": "Date / Outing",
        "description": "Special dates, activities, adventures together",
        "icon": "📅",
    },
    {
        "id": "emotional-digital",
        "name": "Emotional / Digital Gift",
        "description": "Letter, video, song, or heartfelt message",
        "icon": "💌",
    },
]
REWARD_TYPE_IDS = [t["id"] for t in REWARD_TYPES]
GENERIC_REWARD_ICON = "🎁"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_FIRST_DIGITS = re.compile(r"(\d+)")


def reward_type_name(type_id: Optional[str]) -> str:
    for t in REWARD_TYPES:
        if t["id"] == type_id:
            return t["name"]
    return "Reward"


def reward_type_icon(type_id: Optional[str]) -> str:
    for t in REWARD_TYPES:
        if t["id"] == type_id:
            return t["icon"]
    return GENERIC_REWARD_ICON


class MatchKind(str, Enum):
    BY_ID = "MatchedById"
    BY_INDEX_PROPERTY = "MatchedByIndexProperty"
    BY_POSITION = "MatchedByPosition"
    BY_KEY = "MatchedByKey"
    UNMATCHED = "Unmatched"


@dataclass(frozen=True)
class RewardMatch:
    kind: MatchKind
    reward: Optional[Dict[str, Any]] = None
    position: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.kind is not MatchKind.UNMATCHED


UNMATCHED = RewardMatch(MatchKind.UNMATCHED)


def parse_int_prefix(value: Any) -> Optional[int]:
    """Leading-integer parse: "2" -> 2, "2abc" -> 2, "reward_2" -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    m = _LEADING_INT.match(str(value))
    return int(m.group(1)) if m else None


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _position_lookup(rewards: List[Any], idx: Optional[int]) -> Optional[Dict[str, Any]]:
    if idx is None or idx < 0 or idx >= len(rewards):
        return None
    return rewards[idx]


def match_claimed_reward(game: Optional[Mapping[str, Any]]) -> RewardMatch:
    """Resolve `game["claimedRewardId"]` against `game["rewards"]`.

    Strategies, first match wins: exact id/_id/name, `index` property, leading
    integer as array position, first digit run as array position ("reward_index_2"),
    string key for map-shaped legacy rewards. Never raises.
    """
    if not isinstance(game, Mapping):
        return UNMATCHED

    claimed = game.get("claimedRewardId")
    rewards = game.get("rewards")
    if _is_blank(claimed) or not rewards:
        return UNMATCHED

    if isinstance(rewards, Mapping):
        # Map-shaped rewards only ever occur in legacy records.
        reward = rewards.get(str(claimed))
        if isinstance(reward, Mapping):
            return RewardMatch(MatchKind.BY_KEY, reward)
        _log_unmatched(game, list(rewards.values()))
        return UNMATCHED

    if not isinstance(rewards, list):
        return UNMATCHED

    claimed_str = str(claimed)
    for pos, r in enumerate(rewards):
        if not isinstance(r, Mapping):
            continue
        # Some receivers stored the reward name instead of an id.
        if r.get("id") == claimed or r.get("_id") == claimed or r.get("name") == claimed:
            return RewardMatch(MatchKind.BY_ID, r, pos)

    for pos, r in enumerate(rewards):
        if not isinstance(r, Mapping):
            continue
        if r.get("index") is not None and str(r["index"]) == claimed_str:
            return RewardMatch(MatchKind.BY_INDEX_PROPERTY, r, pos)

    idx = parse_int_prefix(claimed)
    reward = _position_lookup(rewards, idx)
    if isinstance(reward, Mapping):
        return RewardMatch(MatchKind.BY_POSITION, reward, idx)

    digits = _FIRST_DIGITS.search(claimed_str)
    if digits:
        idx = int(digits.group(1))
        reward = _position_lookup(rewards, idx)
        if isinstance(reward, Mapping):
            return RewardMatch(MatchKind.BY_POSITION, reward, idx)

    _log_unmatched(game, rewards)
    return UNMATCHED


def _log_unmatched(game: Mapping[str, Any], rewards: List[Any]) -> None:
    available = [
        {
            "position": pos,
            "id": (r or {}).get("id") or (r or {}).get("_id"),
            "index": (r or {}).get("index"),
            "name": (r or {}).get("name") or (r or {}).get("title"),
        }
        for pos, r in enumerate(rewards)
        if r is None or isinstance(r, Mapping)
    ]
    logger.warning(
        "Reward not found for claimedRewardId=%r on game %s (rewards=%d, available=%s)",
        game.get("claimedRewardId"),
        game.get("id"),
        len(rewards),
        available,
    )


def resolve_claimed_reward(game: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    return match_claimed_reward(game).reward


def obtained_rewards(games: Optional[Iterable[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    """Rewards the receiver has won, decorated with the game they came from."""
    out: List[Dict[str, Any]] = []
    for game in games or []:
        if not isinstance(game, Mapping):
            continue
        if game.get("hasReward") is not True or game.get("isCompleted") is not True:
            continue
        if _is_blank(game.get("claimedRewardId")):
            logger.info("Game %s completed but no reward claimed yet", game.get("id"))
            continue
        rewards = game.get("rewards")
        values = rewards.values() if isinstance(rewards, Mapping) else (rewards or [])
        if not any(r is not None for r in values):
            continue

        reward = resolve_claimed_reward(game)
        if reward is None:
            continue

        out.append({
            **reward,
            "id": reward.get("id") or reward.get("_id") or game.get("claimedRewardId"),
            "title": reward.get("title") or reward.get("name") or reward.get("typeName"),
            "gameTitle": game.get("title") or "Game",
            "gameType": game.get("type"),
            "gameId": game.get("id"),
            "completedAt": game.get("completedAt"),
            "fulfilled": bool(game.get("rewardFulfilled")),
        })
    return out


def reward_view_id(reward: Mapping[str, Any]) -> str:
    game_id = reward.get("gameId") or ""
    reward_id = reward.get("id") or reward.get("_id") or ""
    return f"{game_id}_{reward_id}"


def unviewed_reward_ids(obtained: Iterable[Mapping[str, Any]], viewed_ids: Set[str]) -> Set[str]:
    return {reward_view_id(r) for r in obtained} - set(viewed_ids)


def has_unviewed_rewards(obtained: Iterable[Mapping[str, Any]], viewed_ids: Set[str]) -> bool:
    return bool(unviewed_reward_ids(obtained, viewed_ids))


def assign_reward_ids(rewards: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    """Give every reward a stable id and its 1-based slot index on write."""
    if rewards is None:
        return None
    normalized = []
    for pos, reward in enumerate(rewards):
        r = {k: v for k, v in reward.items() if v is not None}
        r.setdefault("id", uuid.uuid4().hex)
        r.setdefault("index", pos + 1)
        if not r.get("typeName"):
            r["typeName"] = reward_type_name(r.get("type"))
        normalized.append(r)
    return normalized
