"""Session façade — every write a client makes goes through here.

Store layout:

    sessions/{session_id}                     SessionData (keeper, scene)
    sessions/{session_id}/characters/{id}     Character
    sessions/{session_id}/chat/{id}           ChatMessage (append-only)

Flow for any user action: validate input → run the pure rules → write the
result once. Nothing is retried; a StoreError reaches the caller as-is.

Authorization is a client-side convention only. Ownership and keeper checks
compare identity strings before a write is attempted; the store itself
accepts writes from anyone holding the session id.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from pydantic import ValidationError

from obscura import rules
from obscura.dice import roll_dice
from obscura.export import export_log
from obscura.models import (
    OOC_TYPES,
    BonusPenaltyMessage,
    Character,
    ChatMessage,
    DiceMessage,
    HtmlMessage,
    Identity,
    NarrationMessage,
    OocChatMessage,
    OocDiceMessage,
    SceneAsset,
    SceneData,
    SessionData,
    SkillCheckMessage,
    VnChatMessage,
    parse_chat_message,
)
from obscura.randomness import RandomSource, SystemRandom
from obscura.store import (
    MISSING,
    DocumentStore,
    Query,
    Unsubscribe,
    apply_patch,
    split_path,
    strip_missing,
)

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
SESSION_ID_LENGTH = 6
SESSION_ID_ATTEMPTS = 5
DEFAULT_CHAT_WINDOW = 100

NARRATION_SENDER = "Narration"
ANONYMOUS_SENDER = "Anonymous"

# Character fields no client may write directly
PROTECTED_FIELDS = ("id", "owner", "derived", "stats.movement", "vitals.initial_sanity")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class NotAuthorized(PermissionError):
    """The acting identity may not perform this write (advisory check)."""


class SessionNotFound(LookupError):
    """No session exists with the requested id."""


class InvalidEdit(ValueError):
    """A character or scene edit failed validation; nothing was written."""


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def session_path(session_id: str) -> str:
    return f"sessions/{session_id}"


def characters_path(session_id: str) -> str:
    return f"sessions/{session_id}/characters"


def character_path(session_id: str, character_id: str) -> str:
    return f"sessions/{session_id}/characters/{character_id}"


def chat_path(session_id: str) -> str:
    return f"sessions/{session_id}/chat"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class SessionContext:
    """Everything an operation needs to know about who is acting, and where.

    Passed explicitly to every operation instead of reading identity or the
    current session from ambient storage.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: Identity,
        session_id: str,
        keeper_id: str,
        rng: RandomSource | None = None,
        chat_window: int = DEFAULT_CHAT_WINDOW,
    ) -> None:
        self.store = store
        self.identity = identity
        self.session_id = session_id
        self.keeper_id = keeper_id
        self.rng = rng or SystemRandom()
        self.chat_window = chat_window

    @property
    def is_keeper(self) -> bool:
        return not self.identity.is_anonymous and self.identity.uid == self.keeper_id

    def owns(self, character: Character) -> bool:
        return not self.identity.is_anonymous and self.identity.uid == character.owner


def _require_identity(identity: Identity, action: str) -> None:
    if identity.is_anonymous:
        raise NotAuthorized(f"An anonymous identity cannot {action}")


def _require_keeper(ctx: SessionContext, action: str) -> None:
    if not ctx.is_keeper:
        logger.warning("refused %s by non-keeper uid=%r", action, ctx.identity.uid)
        raise NotAuthorized(f"Only the keeper can {action}")


def _require_owner(ctx: SessionContext, character: Character) -> None:
    if not ctx.owns(character):
        logger.warning(
            "refused edit of character %s by uid=%r", character.id, ctx.identity.uid
        )
        raise NotAuthorized(f"Only the owner can edit {character.name!r}")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def generate_session_id(rng: RandomSource) -> str:
    return "".join(
        SESSION_ID_ALPHABET[rng.roll_uniform(0, len(SESSION_ID_ALPHABET) - 1)]
        for _ in range(SESSION_ID_LENGTH)
    )


async def create_session(
    store: DocumentStore,
    identity: Identity,
    rng: RandomSource | None = None,
    chat_window: int = DEFAULT_CHAT_WINDOW,
) -> SessionContext:
    """Create a session with `identity` as keeper and an empty scene."""
    _require_identity(identity, "create a session")
    rng = rng or SystemRandom()
    for _ in range(SESSION_ID_ATTEMPTS):
        session_id = generate_session_id(rng)
        if await store.get(session_path(session_id)) is None:
            break
    else:
        raise RuntimeError(f"No free session id after {SESSION_ID_ATTEMPTS} attempts")

    session = SessionData(
        id=session_id,
        keeper_id=identity.uid,
        created_at=int(time.time() * 1000),
        scene=SceneData(),
    )
    await store.put(session_path(session_id), session.model_dump())
    logger.info("created session %s keeper=%s", session_id, identity.uid)
    return SessionContext(store, identity, session_id, identity.uid, rng, chat_window)


async def join_session(
    store: DocumentStore,
    identity: Identity,
    session_id: str,
    rng: RandomSource | None = None,
    chat_window: int = DEFAULT_CHAT_WINDOW,
) -> SessionContext:
    """Open an existing session. Fails closed: unknown ids write nothing."""
    session_id = session_id.strip().upper()
    try:
        split_path(session_id)
    except ValueError:
        raise SessionNotFound(f"Session {session_id!r} not found") from None
    doc = await store.get(session_path(session_id))
    if doc is None:
        raise SessionNotFound(f"Session {session_id!r} not found")
    session = SessionData.model_validate(doc)
    return SessionContext(store, identity, session_id, session.keeper_id, rng, chat_window)


async def load_session(ctx: SessionContext) -> SessionData:
    doc = await ctx.store.get(session_path(ctx.session_id))
    if doc is None:
        raise SessionNotFound(f"Session {ctx.session_id!r} not found")
    return SessionData.model_validate(doc)


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------

async def create_character(
    ctx: SessionContext, name: str, player_name: str | None = None
) -> Character:
    """Create a character from the starting template, owned by the caller."""
    _require_identity(ctx.identity, "create a character")
    character = rules.new_character(
        character_id=uuid.uuid4().hex,
        name=name.strip(),
        owner=ctx.identity.uid,
        player_name=ctx.identity.nickname if player_name is None else player_name,
    )
    await ctx.store.put(character_path(ctx.session_id, character.id), character.model_dump())
    return character


def _lookup(data: Any, dotted: str) -> Any:
    for key in dotted.split("."):
        if not isinstance(data, dict) or key not in data:
            return MISSING
        data = data[key]
    return data


def _overlaps(dotted: str, other: str) -> bool:
    """True when one path equals or contains the other ("stats" and "stats.movement")."""
    return (
        dotted == other
        or dotted.startswith(other + ".")
        or other.startswith(dotted + ".")
    )


def _check_path(dotted: str) -> None:
    if not dotted or any(not part for part in dotted.split(".")):
        raise InvalidEdit(f"Invalid field path {dotted!r}")
    for protected in PROTECTED_FIELDS:
        if _overlaps(dotted, protected):
            raise InvalidEdit(f"{dotted!r} cannot be edited directly")
    parts = dotted.split(".")
    if parts[0] == "skills" and len(parts) > 2:
        raise InvalidEdit(f"Skill names cannot contain '.': {dotted!r}")


def _check_skill(name: Any, value: Any) -> None:
    if not isinstance(name, str) or not name or "." in name:
        raise InvalidEdit(f"Invalid skill name {name!r}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEdit(f"Skill value must be an integer, got {value!r}")


def build_character_patch(character: Character, fields: dict[str, Any]) -> dict[str, Any]:
    """Validate an edit and return the store patch for it.

    The edit is applied to a copy of the character and re-validated, so a
    non-numeric stat or an unknown field is refused before anything is
    written. Values are taken back from the validated copy. When the edit
    touches STR, SIZ, DEX or age, the refreshed derived values ride along in
    the same patch.
    """
    fields = strip_missing(fields)
    if not fields:
        raise InvalidEdit("Empty edit")
    for dotted in fields:
        _check_path(dotted)
    for dotted, value in fields.items():
        if dotted.startswith("skills."):
            _check_skill(dotted[len("skills."):], value)
        elif dotted == "skills":
            if not isinstance(value, dict):
                raise InvalidEdit(f"Skills must be a map, got {value!r}")
            for name, points in value.items():
                _check_skill(name, points)

    candidate = apply_patch(character.model_dump(), fields)
    try:
        updated = Character.model_validate(candidate)
    except ValidationError as e:
        raise InvalidEdit(str(e)) from e

    normalised = updated.model_dump()
    patch: dict[str, Any] = {}
    for dotted in fields:
        value = _lookup(normalised, dotted)
        if value is MISSING:
            raise InvalidEdit(f"Unknown field {dotted!r}")
        patch[dotted] = value

    if any(_overlaps(dotted, field) for dotted in patch for field in rules.DERIVED_INPUTS):
        patch.update(rules.recompute_patch(updated))
    return patch


async def update_character(
    ctx: SessionContext, character: Character, fields: dict[str, Any]
) -> dict[str, Any]:
    """Owner-only edit of one or more character fields. Returns the patch written."""
    _require_owner(ctx, character)
    patch = build_character_patch(character, fields)
    await ctx.store.patch(character_path(ctx.session_id, character.id), patch)
    return patch


def reconcile_patch(character: Character) -> dict[str, Any]:
    """Writes needed after loading a character document.

    `character` must come from Character.model_validate(stored_document):
    missing fields are detected through pydantic's fields-set tracking.
    Backfills vitals flags absent from older documents, refreshes derived
    values, and persists the stat-derived skill defaults the first time
    they are missing so later stat changes don't move them.
    """
    patch: dict[str, Any] = {}
    for name, info in type(character.vitals).model_fields.items():
        if info.annotation is bool and name not in character.vitals.model_fields_set:
            patch[f"vitals.{name}"] = getattr(character.vitals, name)
    if "derived" not in character.model_fields_set:
        fresh = rules.calculate_derived(character.stats, character.age)
        patch["derived"] = {"damage_bonus": fresh.damage_bonus, "build": fresh.build}
    patch.update(rules.recompute_patch(character))
    for name, value in rules.missing_dynamic_defaults(character).items():
        patch[f"skills.{name}"] = value
    return patch


async def reconcile_character(ctx: SessionContext, character: Character) -> dict[str, Any]:
    """Run reconcile_patch and write it. Only the owner writes; others get {}."""
    if not ctx.owns(character):
        return {}
    patch = reconcile_patch(character)
    if patch:
        await ctx.store.patch(character_path(ctx.session_id, character.id), patch)
        logger.debug("reconciled character %s fields=%s", character.id, sorted(patch))
    return patch


async def override_initial_sanity(
    ctx: SessionContext, character: Character, value: int
) -> None:
    """Keeper-only correction of the sanity recorded at creation."""
    _require_keeper(ctx, "override initial sanity")
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidEdit(f"Initial sanity must be an integer, got {value!r}")
    await ctx.store.patch(
        character_path(ctx.session_id, character.id), {"vitals.initial_sanity": value}
    )


# ---------------------------------------------------------------------------
# Chat and rolls
# ---------------------------------------------------------------------------

async def post_message(ctx: SessionContext, message: ChatMessage) -> ChatMessage:
    """Append a message to the chat log; the store assigns id and timestamp."""
    doc = message.model_dump(exclude={"id", "timestamp"})
    stored = await ctx.store.append(chat_path(ctx.session_id), doc)
    return parse_chat_message(stored)


async def roll_skill(
    ctx: SessionContext, sender: str, skill_name: str, skill_value: int
) -> SkillCheckMessage:
    outcome = rules.roll_check(skill_value, ctx.rng)
    logger.debug(
        "check %s=%d roll=%d → %s", skill_name, skill_value, outcome.roll, outcome.result_class
    )
    message = SkillCheckMessage(sender=sender, skill_name=skill_name, **outcome.model_dump())
    return await post_message(ctx, message)


async def roll_bonus_penalty_skill(
    ctx: SessionContext, sender: str, skill_name: str, skill_value: int
) -> BonusPenaltyMessage:
    outcome = rules.roll_bonus_penalty(skill_value, ctx.rng)
    logger.debug("bonus/penalty %s=%d rolls=%s", skill_name, skill_value, outcome.all_rolls)
    message = BonusPenaltyMessage(sender=sender, skill_name=skill_name, **outcome.model_dump())
    return await post_message(ctx, message)


async def roll_character_skill(
    ctx: SessionContext,
    character: Character,
    skill_name: str,
    bonus_penalty: bool = False,
) -> SkillCheckMessage | BonusPenaltyMessage:
    """Roll against the character's live skill value (defaults resolved)."""
    value = rules.skill_value(character, skill_name)
    if bonus_penalty:
        return await roll_bonus_penalty_skill(ctx, character.name, skill_name, value)
    return await roll_skill(ctx, character.name, skill_name, value)


async def roll_dice_expression(
    ctx: SessionContext, expression: str, sender: str, ooc: bool = False
) -> DiceMessage | OocDiceMessage:
    """Roll free-form dice. Invalid notation raises before anything is written."""
    result = roll_dice(expression, ctx.rng)
    cls = OocDiceMessage if ooc else DiceMessage
    return await post_message(ctx, cls(sender=sender, text=result.describe()))


async def send_chat(
    ctx: SessionContext, text: str, acting: Character | None = None
) -> ChatMessage | None:
    """Route one line from the main chat box.

    "/r <dice>"   → dice roll
    "/html <x>"   → raw markup decoration
    "/<anything>" → narration line, stored verbatim (e.g. "/title ...")
    otherwise     → in-character line, spoken by `acting` or the narrator
    """
    text = text.strip()
    if not text:
        return None
    if text.startswith("/r "):
        sender = acting.name if acting else ANONYMOUS_SENDER
        return await roll_dice_expression(ctx, text[3:].strip(), sender)
    if text.startswith("/html "):
        return await post_message(ctx, HtmlMessage(text=text[6:]))
    if text.startswith("/"):
        return await post_message(ctx, NarrationMessage(text=text))
    message = VnChatMessage(
        text=text,
        sender=acting.name if acting else NARRATION_SENDER,
        character_id=acting.id if acting else None,
        portrait_url=acting.portrait_url if acting else None,
    )
    return await post_message(ctx, message)


async def send_ooc(ctx: SessionContext, text: str) -> OocChatMessage | None:
    text = text.strip()
    if not text:
        return None
    sender = ctx.identity.nickname or ANONYMOUS_SENDER
    return await post_message(ctx, OocChatMessage(sender=sender, text=text))


# ---------------------------------------------------------------------------
# Scene (keeper only, last write wins per field)
# ---------------------------------------------------------------------------

async def update_scene(ctx: SessionContext, **fields: Any) -> dict[str, Any]:
    """Patch scene fields. MISSING values are dropped; None is kept (it clears)."""
    _require_keeper(ctx, "change the scene")
    fields = strip_missing(fields)
    unknown = set(fields) - set(SceneData.model_fields)
    if unknown:
        raise InvalidEdit(f"Unknown scene fields: {sorted(unknown)}")
    if not fields:
        return {}
    try:
        checked = SceneData.model_validate(fields)
    except ValidationError as e:
        raise InvalidEdit(str(e)) from e
    dumped = checked.model_dump()
    patch = {f"scene.{name}": dumped[name] for name in fields}
    await ctx.store.patch(session_path(ctx.session_id), patch)
    return patch


async def set_background(ctx: SessionContext, url: str) -> None:
    await update_scene(ctx, background_url=url)


async def play_music(ctx: SessionContext, url: str) -> None:
    await update_scene(ctx, music_url=url)


async def show_handout(ctx: SessionContext, url: str | None) -> None:
    """Display a handout to everyone, or hide it with None."""
    await update_scene(ctx, active_handout=url)


async def _add_asset(
    ctx: SessionContext, catalog: str, name: str, url: str, default_name: str
) -> list[SceneAsset]:
    _require_keeper(ctx, "change the scene")
    if not url.strip():
        raise InvalidEdit("Asset url is required")
    session = await load_session(ctx)
    assets = list(getattr(session.scene, catalog))
    assets.append(SceneAsset(name=name.strip() or default_name, url=url.strip()))
    await update_scene(ctx, **{catalog: assets})
    return assets


async def add_background(ctx: SessionContext, name: str, url: str) -> list[SceneAsset]:
    return await _add_asset(ctx, "backgrounds", name, url, "New Background")


async def add_music(ctx: SessionContext, name: str, url: str) -> list[SceneAsset]:
    return await _add_asset(ctx, "music", name, url, "Untitled Track")


async def add_handout(ctx: SessionContext, name: str, url: str) -> list[SceneAsset]:
    return await _add_asset(ctx, "handouts", name, url, "New Handout")


# ---------------------------------------------------------------------------
# SessionView: live, read-only copy of one session
# ---------------------------------------------------------------------------

class SessionView:
    """Holds the latest snapshots of a session and its two collections.

    Each snapshot replaces the local copy outright. Documents that fail
    validation are logged and left out rather than breaking the view.
    """

    def __init__(self, ctx: SessionContext) -> None:
        self.ctx = ctx
        self.session: SessionData | None = None
        self.characters: list[Character] = []
        self.messages: list[ChatMessage] = []
        self._unsubscribers: list[Unsubscribe] = []

    async def open(self) -> None:
        store, sid = self.ctx.store, self.ctx.session_id
        self._unsubscribers.append(await store.subscribe(session_path(sid), self._on_session))
        self._unsubscribers.append(
            await store.subscribe(characters_path(sid), self._on_characters)
        )
        chat_query = Query(order_by="timestamp", limit=self.ctx.chat_window, descending=True)
        self._unsubscribers.append(
            await store.subscribe(chat_path(sid), self._on_chat, chat_query)
        )

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # -- snapshot handlers -------------------------------------------------

    def _on_session(self, snapshot: dict[str, Any] | None) -> None:
        if snapshot is None:
            self.session = None
            return
        try:
            self.session = SessionData.model_validate(snapshot)
        except ValidationError as e:
            logger.warning("Ignoring malformed session snapshot: %s", e)

    def _on_characters(self, snapshot: list[dict[str, Any]]) -> None:
        characters = []
        for doc in snapshot:
            try:
                characters.append(Character.model_validate(doc))
            except ValidationError as e:
                logger.warning("Ignoring malformed character %r: %s", doc.get("id"), e)
        self.characters = characters

    def _on_chat(self, snapshot: list[dict[str, Any]]) -> None:
        messages = []
        for doc in snapshot[: self.ctx.chat_window]:
            try:
                messages.append(parse_chat_message(doc))
            except ValidationError as e:
                logger.warning("Ignoring malformed chat message %r: %s", doc.get("id"), e)
        messages.sort(key=lambda m: m.timestamp or 0)
        self.messages = messages

    # -- queries -----------------------------------------------------------

    def character(self, character_id: str) -> Character | None:
        for character in self.characters:
            if character.id == character_id:
                return character
        return None

    def owned_characters(self) -> list[Character]:
        return [c for c in self.characters if self.ctx.owns(c)]

    def story_log(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.type not in OOC_TYPES]

    def ooc_log(self) -> list[ChatMessage]:
        return [m for m in self.messages if m.type in OOC_TYPES]

    def export_log(self, include_ooc: bool = False) -> str:
        """HTML page of the story log, or of every message with include_ooc."""
        messages = self.messages if include_ooc else self.story_log()
        return export_log(self.ctx.session_id, messages)

    async def reconcile_owned(self) -> None:
        """Reconcile every character this identity owns."""
        for character in self.owned_characters():
            await reconcile_character(self.ctx, character)
