"""
messenger.services.assistant_service — AI Assistant Replies
============================================================

The three built-in assistant accounts answer any message sent to them in
a direct conversation.  The text itself comes from a pluggable
:class:`TextCompletionService`; this module only drives the exchange::

    user message ─► typing on ─► completion ─► typing off ─► assistant reply

A missing completion service yields :data:`OFFLINE_TEXT`; a failing one
yields :data:`APOLOGY_TEXT`.  Neither case raises.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from messenger.errors import MessengerError
from messenger.services import conversation_service
from messenger.store.entities import Conversation, Message, MessageKind
from messenger.store.entity_store import EntityStore

logger = logging.getLogger(__name__)

ASSISTANT_PERSONAS: dict[str, str] = {
    "ai-assistant": "gemini",
    "deepseek-assistant": "deepseek",
    "chatgpt-assistant": "chatgpt",
}

SYSTEM_INSTRUCTIONS: dict[str, str] = {
    "gemini": (
        "You are the 4 Messenger AI Assistant. Be helpful, concise, and friendly. "
        "Keep responses short enough for a chat interface."
    ),
    "deepseek": (
        "You are DeepSeek AI, an intelligent assistant focused on deep reasoning "
        "and coding. You are precise, logical, and slightly formal. "
        "Keep responses concise."
    ),
    "chatgpt": (
        "You are ChatGPT, a helpful and creative AI assistant. You are "
        "conversational, empathetic, and knowledgeable. "
        "Keep responses natural and concise."
    ),
}

OFFLINE_TEXT = "I'm currently offline (API key missing). Please configure the completion service."
APOLOGY_TEXT = "Sorry, I encountered an error processing your request."
EMPTY_TEXT = "I couldn't generate a response."
IMAGE_TEXT = "I received your image! (Visual analysis pending)"


class TextCompletionService(Protocol):
    """Anything that can turn a prompt into a reply."""

    async def complete(self, prompt: str, system_instruction: str) -> str: ...


def assistant_for(conv: Conversation, sender_id: str) -> str | None:
    """The assistant id on the other side of a direct chat, if any."""
    if conv.is_group:
        return None
    other = conv.other_participant(sender_id)
    return other if other in ASSISTANT_PERSONAS else None


async def generate_reply(
    prompt: str,
    persona: str,
    completion: TextCompletionService | None,
) -> str:
    if completion is None:
        return OFFLINE_TEXT
    instruction = SYSTEM_INSTRUCTIONS.get(persona, SYSTEM_INSTRUCTIONS["gemini"])
    try:
        text = await completion.complete(prompt, instruction)
    except Exception:
        logger.exception("Completion service failed for persona %s", persona)
        return APOLOGY_TEXT
    return text or EMPTY_TEXT


async def respond(
    store: EntityStore,
    conversation_id: str,
    trigger: Message,
    completion: TextCompletionService | None,
    on_change: Callable[[], Awaitable[None]] | None = None,
) -> Message | None:
    """Answer *trigger* if it was sent to an assistant; None otherwise.

    *on_change* is awaited after each visible state change (typing on,
    then the reply, or typing off when the reply is rejected) so the
    caller can persist it.
    """
    conv = store.get_conversation(conversation_id)
    if conv is None:
        return None
    assistant_id = assistant_for(conv, trigger.sender_id)
    if assistant_id is None:
        return None

    if trigger.kind == MessageKind.IMAGE:
        # Only the default assistant acknowledges images
        if ASSISTANT_PERSONAS[assistant_id] != "gemini":
            return None
        prompt = None
    elif trigger.kind == MessageKind.TEXT:
        prompt = trigger.content
    else:
        return None

    conversation_service.set_typing(store, conversation_id, assistant_id, True)
    if on_change is not None:
        await on_change()

    if prompt is None:
        text = IMAGE_TEXT
    else:
        text = await generate_reply(prompt, ASSISTANT_PERSONAS[assistant_id], completion)

    conversation_service.set_typing(store, conversation_id, assistant_id, False)
    try:
        reply = conversation_service.send_message(store, conversation_id, assistant_id, text)
    except MessengerError as exc:
        logger.warning("Assistant %s could not reply in %s: %s", assistant_id, conversation_id, exc)
        if on_change is not None:
            await on_change()
        return None
    if on_change is not None:
        await on_change()
    logger.debug("Assistant %s replied in %s", assistant_id, conversation_id)
    return reply
