"""
Reward setup form flow.

Phase one picks a reward type for each of the three slots, phase two fills
in the details. The three rewards are only handed to the caller as a whole.
"""

import copy
import logging
from typing import Any, Callable, Dict, List, Optional

from config import REWARD_SLOTS
from rewards import REWARD_TYPE_IDS, reward_type_name

logger = logging.getLogger("dearly.reward_setup")

TYPE_SELECTION = "typeSelection"
DETAILS = "details"

EDITABLE_FIELDS = ("name", "description", "isPhysical", "instructions")
DEFAULT_TYPES = ["food-drink", "date-outing", "emotional-digital"]


class RewardSetupError(ValueError):
    pass


def blank_reward(type_id: str, slot: int) -> Dict[str, Any]:
    return {
        "type": type_id,
        "typeName": reward_type_name(type_id),
        "name": "",
        "description": "",
        "isPhysical": type_id != "emotional-digital",
        "instructions": "",
        "index": slot + 1,
    }


class RewardSetupFlow:
    def __init__(
        self,
        on_complete: Optional[Callable[[List[Dict[str, Any]]], Any]] = None,
        initial_rewards: Optional[List[Dict[str, Any]]] = None,
        mode: str = "create",
        skip_type_selection: bool = False,
    ):
        self.on_complete = on_complete
        self.mode = mode
        self.error: Optional[str] = None
        self.came_from_details = False

        has_initial = isinstance(initial_rewards, list) and len(initial_rewards) == REWARD_SLOTS
        self.has_initial_rewards = has_initial

        if has_initial:
            self.selected_types = [r.get("type") or "" for r in initial_rewards]
            self.rewards = [
                {
                    "type": r.get("type") or "",
                    "typeName": r.get("typeName") or reward_type_name(r.get("type")),
                    "name": r.get("name") or "",
                    "description": r.get("description") or "",
                    "isPhysical": r["isPhysical"] if r.get("isPhysical") is not None else True,
                    "instructions": r.get("instructions") or "",
                    "index": slot + 1,
                    **({"id": r["id"]} if r.get("id") else {}),
                }
                for slot, r in enumerate(initial_rewards)
            ]
        elif skip_type_selection:
            self.selected_types = list(DEFAULT_TYPES)
            self.rewards = [blank_reward(t, slot) for slot, t in enumerate(DEFAULT_TYPES)]
        else:
            self.selected_types = [""] * REWARD_SLOTS
            self.rewards = [
                {"type": "", "name": "", "description": "", "isPhysical": True, "instructions": ""}
                for _ in range(REWARD_SLOTS)
            ]

        self.step = DETAILS if has_initial or skip_type_selection else TYPE_SELECTION

    def _fail(self, message: str):
        self.error = message
        raise RewardSetupError(message)

    def _check_slot(self, slot: int):
        if not 0 <= slot < REWARD_SLOTS:
            self._fail(f"Reward slot must be between 0 and {REWARD_SLOTS - 1}")

    # ---------------------- type selection

    def select_type(self, slot: int, type_id: str) -> List[str]:
        """Pick a type for a slot; picking the same type again clears it."""
        if self.step != TYPE_SELECTION:
            self._fail("Reward types can only be chosen during type selection")
        self._check_slot(slot)
        if type_id not in REWARD_TYPE_IDS:
            self._fail(f"Unknown reward type: {type_id}")
        self.selected_types[slot] = "" if self.selected_types[slot] == type_id else type_id
        return list(self.selected_types)

    def confirm_types(self) -> List[Dict[str, Any]]:
        if len([t for t in self.selected_types if t]) != REWARD_SLOTS:
            self._fail("Please select a reward type for each choice")
        self.error = None
        self.rewards = [blank_reward(t, slot) for slot, t in enumerate(self.selected_types)]
        self.step = DETAILS
        self.came_from_details = False
        return self.rewards

    def change_types(self):
        """Go back from the details form to type selection (edit mode)."""
        if self.step != DETAILS:
            return
        self.step = TYPE_SELECTION
        self.came_from_details = True

    def back(self) -> bool:
        """Returns True if the flow handled it, False if the caller should leave."""
        if self.step == TYPE_SELECTION and self.came_from_details and (
            self.mode == "edit" or self.has_initial_rewards
        ):
            self.step = DETAILS
            return True
        return False

    # ---------------------- details

    def update_reward(self, slot: int, field: str, value: Any) -> Dict[str, Any]:
        if self.step != DETAILS:
            self._fail("Reward details can only be edited after choosing types")
        self._check_slot(slot)
        if field not in EDITABLE_FIELDS:
            self._fail(f"Field cannot be edited: {field}")
        self.rewards[slot] = {**self.rewards[slot], field: value}
        return self.rewards[slot]

    def complete(self) -> List[Dict[str, Any]]:
        if self.step != DETAILS:
            self._fail("Please choose the reward types first")
        if any(not str(r.get("name") or "").strip() for r in self.rewards):
            self._fail("Please fill in the name for all 3 rewards")
        self.error = None

        result = copy.deepcopy(self.rewards)
        logger.debug("Reward setup complete: %s", [r["type"] for r in result])
        if self.on_complete is not None:
            self.on_complete(result)
        return result
