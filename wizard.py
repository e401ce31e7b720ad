"""
Game creation, editing and type conversion flows.

GameWizard walks a sender through gameType -> gameSetup -> rewardPrompt ->
rewardSetup -> complete; memory-match games skip gameSetup because they need
no data beyond a fixed title. GameReplacementFlow converts an existing game
to the other type, either by copying a game of that type onto it or, when
none exists, by creating the new content in place.

Persistence failures never move the flow; they leave a generic message on
`error` for the UI to show and the user retries the step.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import config
from client import DearlyAPIError, DearlyClient
from events import GAME_CREATED, REFRESH_GAMES, EventBus
from reward_setup import RewardSetupFlow

logger = logging.getLogger("dearly.wizard")

GAME_TYPE = "gameType"
GAME_SETUP = "gameSetup"
REWARD_PROMPT = "rewardPrompt"
REWARD_SETUP = "rewardSetup"
COMPLETE = "complete"


class WizardError(ValueError):
    pass


def validate_quiz_setup(data: Dict[str, Any]) -> Dict[str, Any]:
    """Clean quiz creator output; incomplete questions are dropped."""
    title = str(data.get("title") or "").strip()
    if not title:
        raise WizardError("Please enter a quiz title")

    questions = []
    for q in data.get("questions") or []:
        question = str(q.get("question") or "").strip()
        correct = str(q.get("correctAnswer") or "").strip()
        wrong = [str(w).strip() for w in q.get("wrongAnswers") or [] if str(w or "").strip()]
        if question and correct and len(wrong) >= 2:
            questions.append({"question": question, "correctAnswer": correct, "wrongAnswers": wrong})

    if not questions:
        raise WizardError(
            "Please add at least one complete question with a correct answer and at least 2 wrong answers"
        )
    return {"title": title, "questions": questions, "settings": dict(data.get("settings") or {})}


def available_game_types(existing_games: List[Dict[str, Any]], from_extras: bool = False) -> Optional[List[str]]:
    """Types the sender may still create; None means unrestricted."""
    if from_extras:
        return list(config.GAME_TYPES)
    taken = {g.get("type") for g in existing_games or []}
    available = [t for t in config.GAME_TYPES if t not in taken]
    return available or None


class GameWizard:
    def __init__(
        self,
        api: DearlyClient,
        user_id: str,
        bus: Optional[EventBus] = None,
        edit_game: Optional[Dict[str, Any]] = None,
        from_extras: bool = False,
        existing_games: Optional[List[Dict[str, Any]]] = None,
        on_game_created: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ):
        self.api = api
        self.user_id = user_id
        self.bus = bus
        self.edit_game = edit_game
        self.from_extras = from_extras
        self.existing_games = existing_games if existing_games is not None else []
        self.on_game_created = on_game_created

        self.step = GAME_TYPE
        self.game_type: Optional[str] = None
        self.game_data: Optional[Dict[str, Any]] = None
        self.wants_reward: Optional[bool] = None
        self.reward_data: Optional[List[Dict[str, Any]]] = None
        self.error: Optional[str] = None
        self.saved_game: Optional[Dict[str, Any]] = None

        if edit_game and from_extras:
            self.game_type = edit_game.get("type")
            self.game_data = {
                "title": edit_game.get("title"),
                "questions": edit_game.get("questions"),
                "pairs": edit_game.get("pairs"),
                "settings": edit_game.get("settings") or {},
            }
            self.wants_reward = bool(edit_game.get("hasReward"))
            self.reward_data = edit_game.get("rewards") or None

    @property
    def is_edit(self) -> bool:
        return self.edit_game is not None

    def load_existing_games(self) -> List[Dict[str, Any]]:
        try:
            self.existing_games = self.api.list_games(self.user_id)
        except DearlyAPIError as e:
            logger.error("Error fetching games: %s", e)
        return self.existing_games

    def available_types(self) -> Optional[List[str]]:
        return available_game_types(self.existing_games, self.from_extras)

    def _require(self, step: str):
        if self.step != step:
            raise WizardError(f"Expected step {step}, wizard is at {self.step}")

    # ---------------------- transitions

    def select_game_type(self, game_type: str) -> str:
        self._require(GAME_TYPE)
        if game_type not in config.GAME_TYPES:
            raise WizardError(f"Unknown game type: {game_type}")
        self.game_type = game_type
        if game_type == "memory-match":
            if not self.edit_game or not self.game_data:
                self.game_data = {"title": config.MEMORY_MATCH_TITLE, "pairs": None, "settings": {}}
            self.step = REWARD_PROMPT
        else:
            self.step = GAME_SETUP
        return self.step

    def complete_game_setup(self, data: Dict[str, Any]) -> str:
        self._require(GAME_SETUP)
        self.game_data = validate_quiz_setup(data)
        self.step = REWARD_PROMPT
        return self.step

    def answer_reward_prompt(self, wants_reward: bool) -> bool:
        """Yes moves to reward setup; No saves the game without rewards."""
        self._require(REWARD_PROMPT)
        self.wants_reward = bool(wants_reward)
        if self.wants_reward:
            self.step = REWARD_SETUP
            return True
        return self._complete(None)

    def start_reward_setup(self) -> RewardSetupFlow:
        self._require(REWARD_SETUP)
        initial = self.reward_data if self.is_edit else None
        return RewardSetupFlow(
            on_complete=self.complete_reward_setup,
            initial_rewards=initial,
            mode="edit" if self.is_edit else "create",
        )

    def complete_reward_setup(self, rewards: List[Dict[str, Any]]) -> bool:
        self._require(REWARD_SETUP)
        if not isinstance(rewards, list) or len(rewards) != config.REWARD_SLOTS:
            raise WizardError(f"Exactly {config.REWARD_SLOTS} rewards are required")
        self.reward_data = rewards
        return self._complete(rewards)

    def back(self) -> str:
        if self.step == GAME_SETUP:
            self.step = GAME_TYPE
        elif self.step == REWARD_PROMPT:
            self.step = GAME_SETUP if self.game_type == "quiz" else GAME_TYPE
        elif self.step == REWARD_SETUP:
            self.step = REWARD_PROMPT
        return self.step

    # ---------------------- persistence

    def build_payload(self, rewards: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
        return {
            **(self.game_data or {}),
            "type": self.game_type,
            "rewards": rewards or None,
            "hasReward": bool(rewards),
        }

    def _complete(self, rewards: Optional[List[Dict[str, Any]]]) -> bool:
        payload = self.build_payload(rewards)
        try:
            if self.is_edit:
                game = self.api.update_game(self.user_id, self.edit_game["id"], payload)
            else:
                game = self.api.create_game(self.user_id, payload)
        except DearlyAPIError as e:
            logger.error("Error saving game: %s", e)
            self.error = e.message if e.status_code else "Failed to save game. Please try again."
            return False

        self.error = None
        self.saved_game = game
        self.step = COMPLETE
        if self.on_game_created is not None:
            self.on_game_created(game)
        if self.bus is not None:
            self.bus.publish(GAME_CREATED, game)
        return True


# ---------------------- conversion


class ConversionState(str, Enum):
    IDLE = "Idle"
    IN_FLIGHT = "InFlight"
    DONE = "Done"
    FAILED = "Failed"


class ConversionRequest:
    """At most one side-effecting conversion at a time."""

    def __init__(self):
        self.state = ConversionState.IDLE
        self.error: Optional[str] = None
        self.exception: Optional[DearlyAPIError] = None
        self.result: Any = None

    def start(self, action: Callable[[], Any]) -> bool:
        if self.state is ConversionState.IN_FLIGHT:
            logger.debug("Conversion already in flight, ignoring")
            return False
        self.state = ConversionState.IN_FLIGHT
        self.error = None
        try:
            self.result = action()
        except DearlyAPIError as e:
            self.state = ConversionState.FAILED
            self.error = e.message
            self.exception = e
            return False
        self.state = ConversionState.DONE
        return True

    def reset(self):
        self.state = ConversionState.IDLE
        self.error = None
        self.exception = None
        self.result = None


MEMORY_MATCH_CONVERSION = {
    "title": config.MEMORY_MATCH_TITLE,
    "type": "memory-match",
    "questions": None,
    "pairs": None,
    "settings": {},
    "rewards": None,
    "hasReward": False,
}

REPLACE_IDLE = "idle"
CHOOSING_TYPE = "choosingType"
CONFIRMING = "confirming"
CHOOSING_GAME = "choosingGame"
QUIZ_CREATOR = "quizCreator"


class GameReplacementFlow:
    """Swap an existing game for one of the other type."""

    def __init__(self, api: DearlyClient, user_id: str, games: Optional[List[Dict[str, Any]]] = None,
                 bus: Optional[EventBus] = None):
        self.api = api
        self.user_id = user_id
        self.games = games if games is not None else []
        self.bus = bus
        self.conversion = ConversionRequest()
        self.error: Optional[str] = None
        self._reset()

    def _reset(self):
        self.state = REPLACE_IDLE
        self.game_to_replace: Optional[Dict[str, Any]] = None
        self.current_game_type: Optional[str] = None
        self.pending_game_type: Optional[str] = None
        self.selected_game_type: Optional[str] = None

    def cancel(self):
        self._reset()

    def refresh_games(self) -> List[Dict[str, Any]]:
        try:
            self.games = self.api.list_games(self.user_id)
        except DearlyAPIError as e:
            logger.error("Error fetching games: %s", e)
        return self.games

    def games_of_type(self, game_type: str) -> List[Dict[str, Any]]:
        return [g for g in self.games if g.get("type") == game_type]

    def show_game_type_selection(self, game: Dict[str, Any]) -> List[str]:
        self.game_to_replace = game
        self.current_game_type = game.get("type")
        self.state = CHOOSING_TYPE
        return self.available_types()

    def available_types(self) -> List[str]:
        return [t for t in config.GAME_TYPES if t != self.current_game_type]

    def select_replacement_type(self, game_type: str):
        if self.state != CHOOSING_TYPE:
            raise WizardError("Choose a game to replace first")
        if game_type not in self.available_types():
            raise WizardError(f"Cannot convert to {game_type}")
        self.pending_game_type = game_type
        self.state = CONFIRMING

    def confirmation_message(self) -> str:
        current = config.GAME_TYPE_LABELS.get(self.current_game_type, self.current_game_type)
        target = config.GAME_TYPE_LABELS.get(self.pending_game_type, self.pending_game_type)
        return (
            f"This will convert your {current} to a {target}. The current game data will be "
            "replaced. This action cannot be undone."
        )

    def decline_conversion(self):
        self.pending_game_type = None
        self.state = CHOOSING_TYPE

    def confirm_conversion(self) -> str:
        if self.state != CONFIRMING:
            raise WizardError("Nothing to confirm")
        self.selected_game_type = self.pending_game_type
        self.pending_game_type = None
        return self.sync()

    def sync(self) -> str:
        """Re-evaluate where the flow goes for the selected type.

        May be called repeatedly (e.g. whenever the games list changes); the
        automatic memory-match conversion still only runs once.
        """
        if self.selected_game_type is None or self.game_to_replace is None:
            return self.state
        if self.games_of_type(self.selected_game_type):
            self.state = CHOOSING_GAME
        elif self.selected_game_type == "quiz":
            self.state = QUIZ_CREATOR
        elif self.conversion.state is not ConversionState.IN_FLIGHT:
            self._auto_convert_to_memory_match()
        return self.state

    def _put_replacement(self, body: Dict[str, Any], failure: str) -> bool:
        game_id = self.game_to_replace["id"]

        def action():
            return self.api.update_game(self.user_id, game_id, body)

        ok = self.conversion.start(action)
        if not ok:
            if self.conversion.state is ConversionState.FAILED:
                logger.error("Error replacing game %s: %s", game_id, self.conversion.error)
                exc = self.conversion.exception
                self.error = exc.message if exc is not None and exc.status_code else failure
                self._reset()
                self.conversion.reset()
            return False

        result = self.conversion.result
        self.error = None
        self._reset()
        self.conversion.reset()
        self.refresh_games()
        if self.bus is not None:
            self.bus.publish(REFRESH_GAMES, result)
        return True

    def _auto_convert_to_memory_match(self) -> bool:
        return self._put_replacement(dict(MEMORY_MATCH_CONVERSION), "Failed to convert game. Please try again.")

    def select_replacement_game(self, game: Dict[str, Any]) -> bool:
        if self.state != CHOOSING_GAME:
            raise WizardError("No replacement game is being chosen")
        body = {
            "title": game.get("title"),
            "type": game.get("type"),
            "questions": game.get("questions") or None,
            "pairs": game.get("pairs") or None,
            "settings": game.get("settings") or {},
            "rewards": game.get("rewards") or None,
            "hasReward": bool(game.get("hasReward")),
        }
        return self._put_replacement(body, "Failed to replace game. Please try again.")

    def submit_quiz(self, quiz_data: Dict[str, Any]) -> bool:
        if self.state != QUIZ_CREATOR:
            raise WizardError("Quiz creator is not open")
        quiz = validate_quiz_setup(quiz_data)
        body = {
            **quiz,
            "type": "quiz",
            "pairs": None,
            "rewards": self.game_to_replace.get("rewards") or None,
            "hasReward": bool(self.game_to_replace.get("hasReward")),
        }
        return self._put_replacement(body, "Failed to update game. Please try again.")


# ---------------------- direct game management


def save_game_changes(api: DearlyClient, user_id: str, game_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    clean = {k: v for k, v in updates.items() if v is not None}
    try:
        return {"success": True, "data": api.update_game(user_id, game_id, clean)}
    except DearlyAPIError as e:
        logger.error("Error updating game %s: %s", game_id, e)
        return {"success": False, "error": e.message}


def update_game_rewards(api: DearlyClient, user_id: str, game: Dict[str, Any],
                        rewards: List[Dict[str, Any]]) -> Dict[str, Any]:
    if len(rewards) != config.REWARD_SLOTS:
        raise WizardError(f"Exactly {config.REWARD_SLOTS} rewards are required")
    return save_game_changes(api, user_id, game["id"], {"rewards": rewards, "hasReward": True})


def delete_game(api: DearlyClient, user_id: str, game: Dict[str, Any]) -> Dict[str, Any]:
    try:
        api.delete_game(user_id, game["id"])
        return {"success": True}
    except DearlyAPIError as e:
        logger.error("Error deleting game %s: %s", game.get("id"), e)
        return {"success": False, "error": e.message or "Failed to delete game"}
