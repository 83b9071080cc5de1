"""Tests for the addressing resolver."""

from __future__ import annotations

import pytest

from chatrelay.core.addressing import should_respond

BOT_ID = 42


def resolve(text, private=False, reply_to=None, respond_to_name=False):
    return should_respond(
        text,
        chat_is_private=private,
        reply_to_author_id=reply_to,
        bot_handle="@Bot",
        bot_user_id=BOT_ID,
        respond_to_name=respond_to_name,
        personality_name="Nova",
    )


class TestTruthTable:
    def test_mention_prefix_strips_handle(self):
        decision = resolve("@Bot hello")
        assert decision.respond is True
        assert decision.prompt == "hello"

    def test_reply_to_bot(self):
        decision = resolve("hello", reply_to=BOT_ID)
        assert decision.respond is True
        assert decision.prompt == "hello"

    def test_private_chat_always_answers(self):
        decision = resolve("hello", private=True, respond_to_name=False)
        assert decision.respond is True
        assert decision.prompt == "hello"

    def test_name_match_when_enabled(self):
        decision = resolve("hey Nova, how are you", respond_to_name=True)
        assert decision.respond is True
        assert decision.prompt == "hey Nova, how are you"

    def test_plain_group_message_ignored(self):
        assert resolve("hello", respond_to_name=False).respond is False


class TestEdgeCases:
    def test_mention_is_case_insensitive(self):
        decision = resolve("@BOT   what time is it  ")
        assert decision.respond is True
        assert decision.prompt == "what time is it"

    def test_mention_not_at_start_is_not_addressing(self):
        assert resolve("hello @Bot").respond is False

    def test_name_ignored_when_disabled(self):
        assert resolve("hey Nova", respond_to_name=False).respond is False

    def test_name_match_case_insensitive(self):
        assert resolve("NOVA?", respond_to_name=True).respond is True

    def test_reply_to_third_party_in_group_ignored(self):
        assert resolve("hello", reply_to=7, respond_to_name=True).respond is False

    def test_reply_to_third_party_with_name(self):
        assert resolve("nova, what do you think", reply_to=7, respond_to_name=True).respond is True

    def test_unknown_bot_id_never_matches_reply(self):
        decision = should_respond(
            "hello",
            chat_is_private=False,
            reply_to_author_id=None,
            bot_handle="@Bot",
            bot_user_id=None,
            respond_to_name=False,
            personality_name="Nova",
        )
        assert decision.respond is False

    @pytest.mark.parametrize("text", ["@bot /status", "@Bot/status"])
    def test_status_after_mention(self, text):
        decision = resolve(text)
        assert decision.respond is True
        assert decision.prompt == "/status"
