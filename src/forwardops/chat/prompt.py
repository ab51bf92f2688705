"""Chat prompt construction and conversation title generation."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from forwardops.chat.session import ChatMessage, ChatSession
from forwardops.rag.llm_client import PROVIDER_ERRORS, complete

logger = structlog.get_logger(logger_name=__name__)

MAX_HISTORY_MESSAGES = 10
DEFAULT_TITLE = "New Conversation"

_SYSTEM_TEMPLATE = """\
You are ForwardOps AI, a trauma-informed virtual Veterans Service Officer. \
Use this context to inform your responses:

{context}

Guidelines:
1. Speak like a veteran helping another veteran
2. Be clear, direct, and practical
3. Use markdown for better readability
4. Focus on actionable steps
5. Reference VA policies when relevant
6. Break down complex topics
7. Maintain a supportive tone
8. If unsure, acknowledge limitations and suggest seeking official VA guidance
9. When referencing documents:
   - Quote relevant sections directly
   - Explain technical terms
   - Highlight important dates
   - Identify required actions
   - Cite specific document names"""

_TITLE_SYSTEM = (
    "You are a title generator. Generate a concise, descriptive title (maximum 6 words) "
    "for this conversation. Respond with ONLY the title, no additional text or punctuation."
)


def system_prompt(context: str) -> str:
    return _SYSTEM_TEMPLATE.format(context=context)


def build_chat_messages(
    session: ChatSession,
    user_message: str,
    context: str,
    max_history: int = MAX_HISTORY_MESSAGES,
) -> list[dict[str, str]]:
    """Return the completion message list: system prompt, recent history, user turn."""
    messages = [{"role": "system", "content": system_prompt(context)}]
    messages.extend(m.as_dict() for m in session.recent_messages(max_history))
    messages.append({"role": "user", "content": user_message})
    return messages


def generate_title(
    messages: Sequence[ChatMessage],
    model: str = "openai/gpt-3.5-turbo",
    num_retries: int = 3,
) -> str:
    """Return a title of at most six words for the conversation.

    Uses the last three non-system messages. Falls back to
    DEFAULT_TITLE when there is nothing to summarise or the call fails.
    """
    recent = [m for m in messages if m.role != "system"][-3:]
    if not recent:
        return DEFAULT_TITLE
    transcript = "\n".join(f"{m.role}: {m.content}" for m in recent)
    try:
        title = complete(
            model,
            [
                {"role": "system", "content": _TITLE_SYSTEM},
                {"role": "user", "content": transcript},
            ],
            max_tokens=20,
            temperature=0.7,
            num_retries=num_retries,
        )
    except PROVIDER_ERRORS as exc:
        logger.warning("Title generation failed", error=type(exc).__name__)
        return DEFAULT_TITLE
    words = title.strip().strip("\"'").split()
    return " ".join(words[:6]) if words else DEFAULT_TITLE


def answer(
    session: ChatSession,
    user_message: str,
    context: str,
    model: str = "openai/gpt-4-turbo-preview",
    max_history: int = MAX_HISTORY_MESSAGES,
    num_retries: int = 3,
) -> str:
    """Run one chat turn: detect mode, call the model, record both messages."""
    session.detect_and_switch(user_message)
    messages = build_chat_messages(session, user_message, context, max_history)
    reply = complete(
        model, messages, max_tokens=4_096, temperature=0.7, num_retries=num_retries
    )
    session.add_message("user", user_message)
    session.add_message("assistant", reply)
    return reply
