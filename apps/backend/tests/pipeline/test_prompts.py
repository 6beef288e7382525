"""Tests for generation prompt composition."""

from __future__ import annotations

from schemas.pipeline import ConversationMessage
from services.pipeline.prompts import (
    ASSISTANT_TRUNCATE_CHARS,
    HISTORY_LIMIT,
    PLACEHOLDER_ARTIFACT,
    SYSTEM_PROMPT,
    compose_generation_prompt,
    format_conversation,
)
from services.pipeline.validator import validate_pipeline
from tests.fixtures.pipeline_fixtures import sample_metadata


class TestComposeGenerationPrompt:
    def test_sections_appear_in_order(self) -> None:
        prompt = compose_generation_prompt(
            "load sales daily",
            sample_metadata(),
            (ConversationMessage(role="user", content="earlier question"),),
        )

        order = [
            prompt.index("SYSTEM:\n"),
            prompt.index("METADATA:\n"),
            prompt.index("CONVERSATION HISTORY:"),
            prompt.index("USER REQUEST:\nload sales daily"),
        ]
        assert order == sorted(order)
        assert SYSTEM_PROMPT in prompt
        assert '"_tableSchemas"' in prompt
        assert '"sales_lakehouse"' in prompt

    def test_history_is_omitted_when_empty(self) -> None:
        prompt = compose_generation_prompt("x", sample_metadata())

        assert "CONVERSATION HISTORY" not in prompt


class TestFormatConversation:
    def test_keeps_only_recent_messages(self) -> None:
        messages = [
            ConversationMessage(role="user", content=f"message {i}") for i in range(15)
        ]
        rendered = format_conversation(messages)

        assert "message 4" not in rendered
        assert "message 5" in rendered
        assert rendered.count("[User]:") == HISTORY_LIMIT
        assert rendered.rstrip().endswith("---")

    def test_truncates_long_assistant_messages_only(self) -> None:
        long_text = "y" * (ASSISTANT_TRUNCATE_CHARS + 50)
        rendered = format_conversation(
            [
                ConversationMessage(role="user", content=long_text),
                ConversationMessage(role="assistant", content=long_text),
            ]
        )

        assert f"[User]: {long_text}" in rendered
        truncated = "y" * ASSISTANT_TRUNCATE_CHARS + "... [truncated]"
        assert f"[Assistant]: {truncated}\n" in rendered

    def test_legacy_message_shape_is_accepted(self) -> None:
        message = ConversationMessage.model_validate({"type": "ai", "content": "hi"})

        assert message.role == "assistant"


def test_placeholder_artifact_passes_validation() -> None:
    assert validate_pipeline(PLACEHOLDER_ARTIFACT).is_valid is True
