"""Tests for the message and session models."""

import pytest

from guide_models import (
    ChatMessage,
    ChatSession,
    InvalidTransition,
    MessageState,
    Sender,
    UnsupportedFileType,
    UploadedFile,
    VideoState,
    bot_message,
    next_message_id,
    placeholder_message,
    system_message,
    user_message,
    welcome_message,
)
from guide_phrases import initial_suggestions

from conftest import png_bytes


class TestMessageIds:
    def test_ids_strictly_increase(self):
        ids = [next_message_id() for _ in range(50)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 50


class TestPlaceholderLifecycle:
    def test_placeholder_starts_pending_and_loading(self):
        msg = placeholder_message()
        assert msg.sender == Sender.BOT
        assert msg.state == MessageState.PENDING
        assert msg.is_loading
        assert msg.is_placeholder

    def test_streaming_keeps_loading(self):
        msg = placeholder_message().advance(MessageState.STREAMING, text="Hel")
        assert msg.text == "Hel"
        assert msg.is_loading

    def test_streaming_can_repeat(self):
        msg = placeholder_message().advance(MessageState.STREAMING, text="a")
        msg = msg.advance(MessageState.STREAMING, text="ab")
        assert msg.text == "ab"

    def test_resolve_clears_loading(self):
        msg = placeholder_message().advance(MessageState.RESOLVED, text="Done")
        assert not msg.is_loading
        assert not msg.is_placeholder

    def test_advance_returns_copy(self):
        original = placeholder_message()
        original.advance(MessageState.FAILED, text="Sorry")
        assert original.state == MessageState.PENDING
        assert original.text == ""

    @pytest.mark.parametrize("terminal", [MessageState.RESOLVED, MessageState.FAILED])
    def test_terminal_states_are_final(self, terminal):
        msg = placeholder_message().advance(terminal)
        with pytest.raises(InvalidTransition):
            msg.advance(MessageState.STREAMING)

    def test_cannot_go_back_to_pending(self):
        msg = placeholder_message().advance(MessageState.STREAMING)
        with pytest.raises(InvalidTransition):
            msg.advance(MessageState.PENDING)

    def test_plain_message_cannot_stream(self):
        with pytest.raises(InvalidTransition):
            bot_message("hi").advance(MessageState.STREAMING)


class TestVideoLifecycle:
    def test_generating_to_done(self):
        msg = placeholder_message(video_state=VideoState.GENERATING)
        done = msg.with_video_state(VideoState.DONE, video_url="https://v")
        assert done.video_state == VideoState.DONE
        assert done.video_url == "https://v"

    def test_done_is_final(self):
        msg = placeholder_message(video_state=VideoState.GENERATING).with_video_state(VideoState.DONE)
        with pytest.raises(InvalidTransition):
            msg.with_video_state(VideoState.FAILED)


class TestConstructors:
    def test_user_message_without_files(self):
        msg = user_message("hello")
        assert msg.sender == Sender.USER
        assert msg.files is None

    def test_system_message_flag(self):
        assert system_message("note").is_system

    def test_welcome_message_carries_suggestions(self):
        msg = welcome_message(initial_suggestions("en-US"))
        assert msg.is_welcome
        assert msg.text == ""
        assert [s.text for s in msg.suggestions][0] == "Today's Briefing"
        assert msg.suggestions[0].prompt


class TestUploadedFile:
    def test_image_from_path(self, tmp_path):
        path = tmp_path / "om_beach.png"
        path.write_bytes(png_bytes())
        staged = UploadedFile.from_path(path)
        assert staged.is_image
        assert staged.image_bytes() == png_bytes()
        assert staged.preview_url.startswith("data:image/png;base64,")

    def test_text_from_path(self, tmp_path):
        path = tmp_path / "itinerary.txt"
        path.write_text("Day 1: Kudle Beach", encoding="utf-8")
        staged = UploadedFile.from_path(path)
        assert staged.is_text
        assert staged.data == "Day 1: Kudle Beach"

    def test_other_types_rejected(self, tmp_path):
        path = tmp_path / "ticket.pdf"
        path.write_bytes(b"%PDF-1.4")
        with pytest.raises(UnsupportedFileType):
            UploadedFile.from_path(path)


class TestChatSession:
    def test_find_and_count(self):
        first = user_message("one")
        session = ChatSession(
            id="s1",
            title="New Chat",
            messages=[first, bot_message("reply"), user_message("two")],
        )
        assert session.find(first.id) is first
        assert session.find(-1) is None
        assert session.user_message_count == 2

    def test_round_trips_through_json(self):
        session = ChatSession(id="s1", title="t", messages=[placeholder_message()])
        restored = ChatSession.model_validate(session.model_dump(mode="json"))
        assert restored.messages[0].state == MessageState.PENDING
        assert isinstance(restored.messages[0], ChatMessage)
