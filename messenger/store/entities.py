"""
messenger.store.entities — Pydantic Entities & the Snapshot Document
=====================================================================

Every record in the shared document, plus the document itself.

Wire format is the JSON the snapshot server stores: camelCase keys,
integer epoch-millisecond timestamps, five top-level collections
(``users``, ``conversations``, ``roles``, ``countryBans``, ``ads``).
Python code uses snake_case attributes; aliases handle the translation.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

from messenger.constants import DEFAULT_ROLE_ID

logger = logging.getLogger(__name__)


class _Entity(BaseModel):
    """Shared config: camelCase aliases, unknown keys ignored, assignments validated."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )


def _validate_records(
    value: Any, handler: ValidatorFunctionWrapHandler, label: str,
) -> list[Any]:
    """Validate a collection one record at a time.

    A record with invalid optional fields is repaired by dropping those
    fields (they fall back to their defaults); a record that still fails
    is skipped.  Only a collection that is not a list at all is an error.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        return handler(value)

    kept: list[Any] = []
    for item in value:
        try:
            kept.extend(handler([item]))
            continue
        except ValidationError as exc:
            bad_keys = {
                err["loc"][1] for err in exc.errors()
                if len(err["loc"]) > 1 and isinstance(err["loc"][1], str)
            }
        if isinstance(item, dict) and bad_keys:
            repaired = {k: v for k, v in item.items() if k not in bad_keys}
            try:
                kept.extend(handler([repaired]))
            except ValidationError:
                pass
            else:
                logger.warning(
                    "Repaired %s record %r: reset %s",
                    label, item.get("id"), ", ".join(sorted(bad_keys)),
                )
                continue
        record_id = item.get("id") if isinstance(item, dict) else item
        logger.warning("Skipping invalid %s record %r", label, record_id)
    return kept


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Modifier(enum.StrEnum):
    """Closed set of per-user behavioral flags."""
    ALWAYS_ONLINE = "ALWAYS_ONLINE"
    VIP = "VIP"
    CANT_CHAT = "CANT_CHAT"
    CANT_SEE_MESSAGES = "CANT_SEE_MESSAGES"


_MODIFIER_VALUES = frozenset(m.value for m in Modifier)


class UserStatus(enum.StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"
    BUSY = "busy"


class MessageKind(enum.StrEnum):
    TEXT = "text"
    IMAGE = "image"
    SYSTEM = "system"


class BanKind(enum.StrEnum):
    """Geo-ban kinds, evaluated against the sender's country code."""
    FULL_CHAT = "FULL_CHAT"
    ROLE_INTERACTION = "ROLE_INTERACTION"
    USERNAME = "USERNAME"


CensorshipLevel = Literal["low", "medium", "max"]
Language = Literal["en", "ru", "fr", "es", "zh"]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class UserPreferences(_Entity):
    theme_color: Literal["blue", "purple", "emerald", "rose", "amber"] = "blue"
    wallpaper: str = ""
    bubble_style: Literal["rounded", "modern"] = "rounded"
    font_size: Literal["small", "medium", "large"] = "medium"
    density: Literal["compact", "comfortable"] = "comfortable"
    privacy_mode: bool = False
    language: Language = "en"
    censorship_enabled: bool = False
    censorship_level: CensorshipLevel = "medium"


class User(_Entity):
    id: str
    username: str
    display_name: str
    password_hash: str | None = None
    role: str = DEFAULT_ROLE_ID
    avatar_url: str = ""
    status: UserStatus = UserStatus.OFFLINE
    last_seen: int = 0
    blocked_user_ids: list[str] = Field(default_factory=list)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    is_banned: bool = False
    is_verified: bool = False
    country: str = "US"
    auto_message: str | None = None
    modifiers: list[Modifier] = Field(default_factory=list)

    @field_validator("modifiers", mode="before")
    @classmethod
    def _known_modifiers(cls, value: Any) -> list[str]:
        """Drop modifier strings outside the closed set and de-duplicate."""
        if value is None:
            return []
        known: list[str] = []
        for item in value:
            if item not in _MODIFIER_VALUES:
                logger.warning("Dropping unknown user modifier %r", item)
                continue
            if item not in known:
                known.append(item)
        return known

    @field_validator("country", mode="before")
    @classmethod
    def _normalize_country(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    def has_modifier(self, modifier: Modifier) -> bool:
        return modifier in self.modifiers

    @property
    def effective_status(self) -> UserStatus:
        """Stored status, except ``online`` whenever ALWAYS_ONLINE is set."""
        if self.has_modifier(Modifier.ALWAYS_ONLINE):
            return UserStatus.ONLINE
        return self.status

    def has_blocked(self, user_id: str) -> bool:
        return user_id in self.blocked_user_ids


class Role(_Entity):
    id: str
    name: str
    description: str = ""
    color: str = "gray"
    is_system: bool = False


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------
class Reaction(_Entity):
    emoji: str
    user_id: str


class Message(_Entity):
    id: str
    sender_id: str
    content: str
    timestamp: int
    kind: MessageKind = Field(default=MessageKind.TEXT, alias="type")
    reactions: list[Reaction] = Field(default_factory=list)
    reply_to_id: str | None = None


class Conversation(_Entity):
    id: str
    participants: list[str] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    unread_count: dict[str, int] = Field(default_factory=dict)
    last_message_timestamp: int = 0
    is_group: bool = False
    # Group-only fields
    name: str | None = None
    avatar_url: str | None = None
    admin_ids: list[str] = Field(default_factory=list)
    muted_users: dict[str, int] = Field(default_factory=dict)
    typing_users: list[str] = Field(default_factory=list)

    @field_validator("messages", mode="wrap")
    @classmethod
    def _tolerate_bad_messages(
        cls, value: Any, handler: ValidatorFunctionWrapHandler,
    ) -> list[Message]:
        return _validate_records(value, handler, "message")

    def other_participant(self, user_id: str) -> str | None:
        """First participant that is not *user_id* (direct conversations)."""
        return next((p for p in self.participants if p != user_id), None)

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id == message_id), None)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------
class CountryBan(_Entity):
    id: str
    country_code: str
    kind: BanKind = Field(alias="type")
    target_role_id: str | None = None
    target_user_id: str | None = None


class Ad(_Entity):
    id: str
    name: str
    text: str
    poster_url: str = ""
    link: str | None = None


# ---------------------------------------------------------------------------
# Snapshot — the whole shared document
# ---------------------------------------------------------------------------
class Snapshot(_Entity):
    users: list[User] = Field(default_factory=list)
    conversations: list[Conversation] = Field(default_factory=list)
    roles: list[Role] = Field(default_factory=list)
    country_bans: list[CountryBan] = Field(default_factory=list)
    ads: list[Ad] = Field(default_factory=list)

    @field_validator("users", "conversations", "roles", "country_bans", "ads", mode="wrap")
    @classmethod
    def _tolerate_bad_records(
        cls, value: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo,
    ) -> list[Any]:
        return _validate_records(value, handler, info.field_name)

    @classmethod
    def from_document(cls, raw: Any) -> Snapshot:
        """Validate a raw JSON document.

        Invalid records are repaired or skipped one by one; pydantic
        ValidationError is raised only when the document itself is not an
        object or a collection is not a list.
        """
        return cls.model_validate(raw)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON document the server stores."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
