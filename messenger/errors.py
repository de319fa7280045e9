"""
messenger.errors — Exception taxonomy
======================================

Three families, handled differently by callers:

* :class:`InvalidOperation` — local validation failures.  Raised
  synchronously to the initiating caller, never retried.
* :class:`PolicyRejection` — the moderation engine refused a message.
  Each kind carries a stable ``code`` the consumer maps to user-facing
  text.
* :class:`TransportError` — snapshot read/write failures.  Only the sync
  controller sees these; it flips to offline mode instead of re-raising.
"""

from __future__ import annotations


class MessengerError(Exception):
    """Root of every error raised by the messenger core."""


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
class InvalidOperation(MessengerError):
    """A request that can never succeed against the current state."""


class DuplicateUsername(InvalidOperation):
    def __init__(self, username: str) -> None:
        super().__init__(f"Username already taken: {username!r}")
        self.username = username


class NotFound(InvalidOperation):
    """Lookup by id failed."""

    entity = "Entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"{self.entity} not found: {entity_id!r}")
        self.entity_id = entity_id


class UserNotFound(NotFound):
    entity = "User"


class ConversationNotFound(NotFound):
    entity = "Conversation"


class MessageNotFound(NotFound):
    entity = "Message"


class RoleNotFound(NotFound):
    entity = "Role"


class AdNotFound(NotFound):
    entity = "Ad"


class BanNotFound(NotFound):
    entity = "Country ban"


class RoleExists(InvalidOperation):
    def __init__(self, role_id: str) -> None:
        super().__init__(f"Role already exists: {role_id!r}")
        self.role_id = role_id


class SystemRoleProtected(InvalidOperation):
    def __init__(self, role_id: str) -> None:
        super().__init__(f"Cannot delete system role {role_id!r}")
        self.role_id = role_id


class NoValidMembers(InvalidOperation):
    def __init__(self) -> None:
        super().__init__("No valid members to add")


class InvalidMuteDuration(InvalidOperation):
    def __init__(self, duration_minutes: int) -> None:
        super().__init__(f"Invalid mute duration: {duration_minutes}")
        self.duration_minutes = duration_minutes


class ProtectedField(InvalidOperation):
    """The caller may not change this account field."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Field {field!r} cannot be changed here")
        self.field = field


class InvalidField(InvalidOperation):
    """A new value failed entity validation."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid value for {field!r}: {reason}")
        self.field = field
        self.reason = reason


class NotGroupAdmin(InvalidOperation):
    def __init__(self, user_id: str, group_id: str) -> None:
        super().__init__(f"User {user_id!r} is not an admin of group {group_id!r}")
        self.user_id = user_id
        self.group_id = group_id


class NotParticipant(InvalidOperation):
    def __init__(self, user_id: str, conversation_id: str) -> None:
        super().__init__(
            f"User {user_id!r} is not a participant of {conversation_id!r}"
        )
        self.user_id = user_id
        self.conversation_id = conversation_id


class InvalidCredentials(InvalidOperation):
    def __init__(self) -> None:
        super().__init__("Invalid password")


class AccountBanned(InvalidOperation):
    def __init__(self, username: str) -> None:
        super().__init__(f"Account is banned: {username!r}")
        self.username = username


class InvalidBanTarget(InvalidOperation):
    """A country ban is missing the target its kind requires."""


class NotSignedIn(InvalidOperation):
    def __init__(self) -> None:
        super().__init__("No user is signed in")


class AdminRequired(InvalidOperation):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id!r} is not an administrator")
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Moderation policy
# ---------------------------------------------------------------------------
class PolicyRejection(MessengerError):
    """The moderation policy engine refused the action."""

    code = "policyRejected"
    message = "Unable to send message."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.message)


class ChatRestricted(PolicyRejection):
    code = "chatRestricted"
    message = "You are restricted from sending messages."


class Muted(PolicyRejection):
    code = "messageMuted"
    message = "You are muted in this group."


class RegionChatBanned(PolicyRejection):
    code = "chatRestrictedRegion"
    message = "Chat is unavailable in your region."


class RegionUserBanned(PolicyRejection):
    code = "userRestrictedRegion"
    message = "Your account is restricted from chatting in your region."


class RegionRoleBanned(PolicyRejection):
    code = "roleRestrictedRegion"
    message = "You cannot message users with this role from your region."


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------
class TransportError(MessengerError):
    """Snapshot read or write failed (network, status, or payload)."""
