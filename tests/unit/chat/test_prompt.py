"""Tests for chat prompt construction and title generation."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import litellm

from forwardops.chat.modes import AssistantMode
from forwardops.chat.prompt import (
    DEFAULT_TITLE,
    answer,
    build_chat_messages,
    generate_title,
    system_prompt,
)
from forwardops.chat.session import ChatMessage, ChatSession


def _mock_completion(text: str):
    mock_response = MagicMock()
    mock_response.choices[0].message.content = text
    return patch("forwardops.rag.llm_client.litellm.completion", return_value=mock_response)


def test_system_prompt_embeds_context():
    prompt = system_prompt("Relevant document sections:\n\nknee findings")
    assert "knee findings" in prompt
    assert prompt.startswith("You are ForwardOps AI")
    assert "Cite specific document names" in prompt


def test_build_chat_messages_layout():
    session = ChatSession(owner_id="user-1")
    session.add_message("user", "earlier question")
    session.add_message("assistant", "earlier answer")
    messages = build_chat_messages(session, "new question", "CTX")
    assert messages[0]["role"] == "system"
    assert "CTX" in messages[0]["content"]
    assert messages[1:] == [
        {"role": "user", "content": "earlier question"},
        {"role": "assistant", "content": "earlier answer"},
        {"role": "user", "content": "new question"},
    ]


def test_build_chat_messages_history_limit():
    session = ChatSession(owner_id="user-1")
    for i in range(15):
        session.add_message("user", f"m{i}")
    messages = build_chat_messages(session, "now", "", max_history=10)
    assert len(messages) == 12
    assert messages[1]["content"] == "m5"


def test_generate_title_truncates_to_six_words():
    messages = [ChatMessage("user", "Help with my knee claim")]
    with _mock_completion('"Knee Claim Help For A Veteran Today"') as mock_c:
        title = generate_title(messages)
    assert title == "Knee Claim Help For A Veteran"
    kwargs = mock_c.call_args.kwargs
    assert kwargs["max_tokens"] == 20
    assert kwargs["temperature"] == 0.7


def test_generate_title_uses_last_three_non_system_messages():
    messages = [ChatMessage("user", f"m{i}") for i in range(5)]
    messages.append(ChatMessage("system", "Switched to Claims Assistant."))
    with _mock_completion("Title") as mock_c:
        generate_title(messages)
    transcript = mock_c.call_args.kwargs["messages"][1]["content"]
    assert transcript == "user: m2\nuser: m3\nuser: m4"


def test_generate_title_no_messages():
    assert generate_title([]) == DEFAULT_TITLE


def test_generate_title_provider_failure():
    exc = litellm.APIConnectionError(message="down", llm_provider="openai", model="gpt-3.5-turbo")
    with patch("forwardops.rag.llm_client.litellm.completion", side_effect=exc):
        assert generate_title([ChatMessage("user", "hi")]) == DEFAULT_TITLE


def test_generate_title_empty_reply():
    with _mock_completion("  "):
        assert generate_title([ChatMessage("user", "hi")]) == DEFAULT_TITLE


def test_answer_records_turn_and_switches_mode():
    session = ChatSession(owner_id="user-1")
    with _mock_completion("Here's how to appeal.") as mock_c:
        reply = answer(session, "How do I appeal my rating?", "CTX")
    assert reply == "Here's how to appeal."
    assert session.mode == AssistantMode.CLAIMS
    assert [m.role for m in session.messages] == ["system", "user", "assistant"]
    sent = mock_c.call_args.kwargs["messages"]
    assert sent[-1] == {"role": "user", "content": "How do I appeal my rating?"}
    assert all(m["role"] != "system" or "CTX" in m["content"] for m in sent)
