"""Core domain models.

Characters, sessions and chat messages are stored in the document store as
``model_dump()`` output. Pydantic validates every document on the way back
in, so a snapshot pushed by the store can always be trusted to have the
right shape.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

class Identity(BaseModel):
    """Who is acting on this client. An empty uid means anonymous."""

    uid: str
    nickname: str = ""

    @classmethod
    def anonymous(cls, nickname: str = "Anonymous") -> Identity:
        return cls(uid="", nickname=nickname)

    @property
    def is_anonymous(self) -> bool:
        return not self.uid


# ---------------------------------------------------------------------------
# Character
# ---------------------------------------------------------------------------

class CharacterStats(BaseModel):
    strength: int = 50
    constitution: int = 50
    size: int = 50
    dexterity: int = 50
    appearance: int = 50
    intelligence: int = 50
    power: int = 50
    education: int = 50
    movement: int = 8  # derived; see rules.movement_rate


class CharacterVitals(BaseModel):
    """Current vitals. Negative values are tolerated; nothing is clamped."""

    hp: int = 10
    mp: int = 10
    sanity: int = 50
    initial_sanity: int = 50
    luck: int = 50
    temporary_insanity: bool = False
    indefinite_insanity: bool = False
    major_wound: bool = False
    dying: bool = False
    pulp_hp: bool = False


class DerivedAttributes(BaseModel):
    damage_bonus: str = "0"
    build: int = 0


class Weapon(BaseModel):
    id: str
    name: str = ""
    skill: str = ""
    damage: str = ""
    range: str = ""
    attacks: str = ""
    ammo: str = ""
    malf: str = ""


class Talent(BaseModel):
    id: str
    name: str = ""
    effect: str = ""


class Backstory(BaseModel):
    personal_description: str = ""
    traits: str = ""
    ideology: str = ""
    injuries: str = ""
    people: str = ""
    phobias: str = ""
    locations: str = ""
    possessions: str = ""
    encounters: str = ""
    gear: str = ""
    cash: str = ""
    spending: str = ""
    assets: str = ""
    memo: str = ""


class Character(BaseModel):
    """A player character (investigator) sheet."""

    id: str
    name: str
    owner: str  # Identity.uid of the only client allowed to edit
    portrait_url: str = ""
    player_name: str = ""
    age: int = 25
    sex: str = ""
    height: str = ""
    family: str = "0"
    stats: CharacterStats = Field(default_factory=CharacterStats)
    vitals: CharacterVitals = Field(default_factory=CharacterVitals)
    derived: DerivedAttributes = Field(default_factory=DerivedAttributes)
    skills: dict[str, int] = Field(default_factory=dict)
    expressions: dict[str, str] = Field(default_factory=dict)
    weapons: list[Weapon] = Field(default_factory=list)
    talents: list[Talent] = Field(default_factory=list)
    backstory: Backstory = Field(default_factory=Backstory)
    mental_condition: str = "Composed"


# ---------------------------------------------------------------------------
# Session scene
# ---------------------------------------------------------------------------

class SceneAsset(BaseModel):
    """A named entry in one of the scene catalogs (background, music, handout)."""

    name: str
    url: str


class SceneData(BaseModel):
    background_url: str = ""
    backgrounds: list[SceneAsset] = Field(default_factory=list)
    music_url: str = ""
    music: list[SceneAsset] = Field(default_factory=list)
    active_handout: str | None = None  # None → no handout displayed
    handouts: list[SceneAsset] = Field(default_factory=list)


class SessionData(BaseModel):
    id: str
    keeper_id: str
    created_at: int = 0
    scene: SceneData = Field(default_factory=SceneData)


# ---------------------------------------------------------------------------
# Resolver outcomes
# ---------------------------------------------------------------------------

ResultClass = Literal[
    "success-critical",
    "success-extreme",
    "success-hard",
    "success-regular",
    "fumble",
    "failure",
]

CompactClass = Literal["success", "failure", "fumble"]


class CheckOutcome(BaseModel):
    """Result of a single check against a skill value."""

    roll: int
    skill_value: int
    hard_value: int
    extreme_value: int
    result_text: str
    result_class: ResultClass

    @property
    def is_success(self) -> bool:
        return self.result_class.startswith("success")


class RollOutcome(BaseModel):
    """One of the five levels reported by a bonus/penalty check."""

    roll: int
    text: str
    result_class: CompactClass


class BonusPenaltyOutcome(BaseModel):
    skill_value: int
    hard_value: int
    extreme_value: int
    all_rolls: list[int]
    results: dict[str, RollOutcome]  # keys: p2, p1, p0, n1, n2


# ---------------------------------------------------------------------------
# Chat messages: closed union discriminated by `type`
# ---------------------------------------------------------------------------

class _ChatBase(BaseModel):
    id: str | None = None  # assigned by the store on append
    timestamp: int | None = None  # assigned by the store on append


class NarrationMessage(_ChatBase):
    type: Literal["desc"] = "desc"
    text: str


class HtmlMessage(_ChatBase):
    type: Literal["html"] = "html"
    text: str


class DiceMessage(_ChatBase):
    type: Literal["dice"] = "dice"
    sender: str
    text: str


class OocDiceMessage(_ChatBase):
    type: Literal["ooc-dice"] = "ooc-dice"
    sender: str
    text: str


class OocChatMessage(_ChatBase):
    type: Literal["ooc-chat"] = "ooc-chat"
    sender: str
    text: str


class VnChatMessage(_ChatBase):
    """In-character line shown with the speaker's portrait."""

    type: Literal["vn-chat"] = "vn-chat"
    sender: str
    text: str
    character_id: str | None = None
    portrait_url: str | None = None


class IcChatMessage(_ChatBase):
    """Legacy in-character chat line; read-only, never produced by the core."""

    type: Literal["ic-chat"] = "ic-chat"
    sender: str
    text: str


class SkillCheckMessage(_ChatBase):
    type: Literal["skill"] = "skill"
    sender: str
    skill_name: str
    skill_value: int
    hard_value: int
    extreme_value: int
    roll: int
    result_text: str
    result_class: ResultClass


class BonusPenaltyMessage(_ChatBase):
    type: Literal["bns_pnl_skill"] = "bns_pnl_skill"
    sender: str
    skill_name: str
    skill_value: int
    hard_value: int
    extreme_value: int
    all_rolls: list[int]
    results: dict[str, RollOutcome]


ChatMessage = Annotated[
    Union[
        NarrationMessage,
        HtmlMessage,
        DiceMessage,
        OocDiceMessage,
        OocChatMessage,
        VnChatMessage,
        IcChatMessage,
        SkillCheckMessage,
        BonusPenaltyMessage,
    ],
    Field(discriminator="type"),
]

_chat_adapter: TypeAdapter[ChatMessage] = TypeAdapter(ChatMessage)

MessageType = Literal[
    "desc", "html", "dice", "ooc-dice", "ooc-chat",
    "vn-chat", "ic-chat", "skill", "bns_pnl_skill",
]

OOC_TYPES: frozenset[str] = frozenset({"ooc-chat", "ooc-dice"})


def parse_chat_message(data: dict[str, Any]) -> ChatMessage:
    """Validate a stored chat document into the matching message class."""
    return _chat_adapter.validate_python(data)
