"""
Database Schemas for Dearly

Each Pydantic model corresponds to a MongoDB collection or a request body.
Field names are snake_case in Python and camelCase on the wire, matching the
documents the web client has always written.

Request bodies keep only their declared fields. Ownership, completion state
and document ids are set by the routes, never taken from a body.

Collections defined:
- Game -> "game"
- ReceiverData -> "receiver"
- Notification -> "notification"
- ViewedRewards -> "viewed_rewards"
- UserProfile -> "user"
- ReceiverAccountLink -> "receiver_account"
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GameType = Literal["quiz", "memory-match"]
RewardType = Literal["food-drink", "date-outing", "emotional-digital"]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Reward(WireModel):
    # Older rewards carry extra display fields (title, icon); keep them.
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(None, description="Stable reward id, assigned on write")
    legacy_id: Optional[str] = Field(None, alias="_id", description="Identifier used by older records")
    type: RewardType
    type_name: Optional[str] = Field(None, description="Display name of the reward type")
    name: str = Field(..., min_length=1)
    description: Optional[str] = ""
    is_physical: bool = True
    instructions: Optional[str] = ""
    index: Optional[int] = Field(None, ge=1, le=3, description="1-based slot position")


class QuizQuestion(WireModel):
    question: str
    correct_answer: str
    wrong_answers: List[str] = Field(default_factory=list)


class MemoryPair(WireModel):
    item1: str
    item2: str


class Game(WireModel):
    type: GameType
    title: str = Field(..., min_length=1)
    questions: Optional[List[QuizQuestion]] = None
    pairs: Optional[List[MemoryPair]] = None
    settings: Dict[str, Any] = Field(default_factory=dict)
    has_reward: bool = False
    rewards: Optional[List[Reward]] = None
    letter_id: Optional[str] = None

    @field_validator("rewards")
    @classmethod
    def exactly_three_rewards(cls, v):
        if v is not None and len(v) != 3:
            raise ValueError("rewards must contain exactly 3 entries")
        return v


class GameUpdate(WireModel):
    """Partial update; explicitly sent nulls clear the field."""

    type: Optional[GameType] = None
    title: Optional[str] = None
    questions: Optional[List[QuizQuestion]] = None
    pairs: Optional[List[MemoryPair]] = None
    settings: Optional[Dict[str, Any]] = None
    has_reward: Optional[bool] = None
    rewards: Optional[List[Reward]] = None
    letter_id: Optional[str] = None

    @field_validator("rewards")
    @classmethod
    def exactly_three_rewards(cls, v):
        if v is not None and len(v) != 3:
            raise ValueError("rewards must contain exactly 3 entries")
        return v


class CompletionUpdate(WireModel):
    is_completed: Optional[bool] = None
    claimed_reward_id: Optional[str] = None
    score: Optional[float] = None
    receiver_name: Optional[str] = None
    reward_fulfilled: Optional[bool] = None
    email_to_receiver: bool = False
    email_message: Optional[str] = None
    receiver_email: Optional[str] = None


class ViewedRewards(WireModel):
    viewed_reward_ids: List[str] = Field(default_factory=list)


class ReceiverData(WireModel):
    name: Optional[str] = Field(None, description="Receiver display name")
    email: Optional[str] = Field(None, description="Receiver email address")


class Notification(WireModel):
    # Type-specific fields (letterTitle, receiverName, date, ...) ride along.
    model_config = ConfigDict(extra="allow")

    type: str
    message: Optional[str] = ""
    read: bool = False


class UserProfile(WireModel):
    email: str = Field(..., description="Sign-in email address")
    first_name: Optional[str] = ""
    last_name: Optional[str] = ""
    display_name: Optional[str] = None
    email_verified: bool = False


class UserProfileUpdate(WireModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email_verified: Optional[bool] = None


class GoogleUser(WireModel):
    user_id: str = Field(..., min_length=1)
    email: str
    display_name: Optional[str] = ""


class ReceiverAccountLink(WireModel):
    receiver_email: Optional[str] = None
    letter_id: Optional[str] = None
    sender_user_id: Optional[str] = None
    token: Optional[str] = None
