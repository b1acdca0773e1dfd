"""Tests for the conversation engine."""

import asyncio

import pytest

from guide_brain import GuideBrain, build_history, strip_inline_images
from guide_gemini import ReplyChunk
from guide_models import (
    MessageState,
    Source,
    bot_message,
    system_message,
    user_message,
    welcome_message,
)
from guide_phrases import (
    CHAT_FAILURE,
    SUMMARIZING,
    SUMMARY_FAILED,
    SUSTAINABILITY_TIPS,
    initial_suggestions,
)

from conftest import image_file, text_file


@pytest.fixture
def brain(store, backend):
    guide_brain = GuideBrain(store, backend, tip_delay=0)
    yield guide_brain
    guide_brain.close()


class TestHistory:
    def test_skips_system_welcome_and_empty(self):
        history = build_history([
            welcome_message(initial_suggestions("en-US")),
            user_message("Best beach?"),
            system_message("🌱 tip"),
            bot_message("  "),
            bot_message("Half Moon Beach."),
        ])
        assert [c.role for c in history] == ["user", "model"]
        assert history[1].parts[0].text == "Half Moon Beach."

    def test_files_become_inline_parts(self):
        history = build_history([user_message("look", [image_file(), text_file()])])
        parts = history[0].parts
        assert len(parts) == 3
        assert parts[1].inline_data.mime_type == "image/png"
        assert parts[2].inline_data.data == b"Bring sunscreen."

    def test_strip_inline_images(self):
        assert strip_inline_images("Here ![beach](http://x/y.png) it is") == "Here  it is"


class TestHandle:
    def test_built_on_start_for_active_session(self, brain, store, backend):
        assert brain.chat_session_id == store.active_id
        assert backend.conversations[0]["language_code"] == "en-US"

    def test_rebuilt_when_active_session_changes(self, brain, store, backend):
        session = store.new_session("te-IN")
        assert brain.chat_session_id == session.id
        assert backend.conversations[-1]["language_code"] == "te-IN"

    def test_rebuilt_with_history_after_outside_writes(self, brain, store, backend):
        store.append_messages(store.active_id, user_message("Trip Plan"), bot_message("Day 1..."))
        asyncio.run(brain.submit("And day 2?"))

        history = backend.conversations[-1]["history"]
        assert [c.parts[0].text for c in history] == ["Trip Plan", "Day 1..."]

    def test_own_turns_do_not_force_rebuild(self, brain, backend):
        asyncio.run(brain.submit("one"))
        asyncio.run(brain.submit("two"))
        assert len(backend.conversations) == 1


class TestSubmit:
    def test_streams_into_placeholder(self, brain, store, backend):
        deltas = []
        brain.on_delta = deltas.append
        backend.replies.append([ReplyChunk("Gokarna ", []), ReplyChunk("is lovely.", [])])

        reply = asyncio.run(brain.submit("Tell me about Gokarna"))

        assert deltas == ["Gokarna ", "is lovely."]
        assert reply.state == MessageState.RESOLVED
        assert reply.text == "Gokarna is lovely."
        assert not reply.is_loading
        assert store.active_session.messages[-1].id == reply.id

    def test_sources_deduplicated_by_uri(self, brain, backend):
        beach = Source(uri="https://maps.example/om", title="Om Beach")
        backend.replies.append([
            ReplyChunk("a", [beach]),
            ReplyChunk("b", [Source(uri="https://web.example/g", title="Guide"), beach]),
        ])
        reply = asyncio.run(brain.submit("beaches"))
        assert [s.uri for s in reply.sources] == ["https://maps.example/om", "https://web.example/g"]

    def test_failure_replaces_placeholder_with_localized_apology(self, brain, store, backend):
        store.set_language(store.active_id, "kn-IN")
        backend.replies.append([ReplyChunk("partial", []), RuntimeError("quota")])

        reply = asyncio.run(brain.submit("ಹವಾಮಾನ?"))

        assert reply.state == MessageState.FAILED
        assert reply.text == CHAT_FAILURE["kn-IN"]
        assert not reply.is_loading

    def test_chat_survives_failure(self, brain, backend):
        backend.replies.append([RuntimeError("boom")])
        asyncio.run(brain.submit("first"))
        reply = asyncio.run(brain.submit("second"))
        assert reply.state == MessageState.RESOLVED
        assert len(backend.conversations) == 1

    def test_first_message_names_session(self, brain, store):
        question = "Where can I rent a scooter in Gokarna town for the whole week?"
        asyncio.run(brain.submit(question))
        assert store.active_session.title == question[:40]
        assert len(store.active_session.title) == 40

    def test_location_and_text_file_prefix_prompt(self, store, backend):
        located = GuideBrain(store, backend, location=(14.55, 74.31))
        try:
            asyncio.run(located.submit("Cafes nearby?", [text_file(content="vegetarian only")]))
        finally:
            located.close()

        sent = backend.sent_parts[0][0].text
        assert sent.startswith('Context from file "notes.txt":\nvegetarian only')
        assert "latitude: 14.55, longitude: 74.31" in sent
        assert sent.endswith('My request: "Cafes nearby?"')

    def test_images_sent_after_text(self, brain, backend):
        asyncio.run(brain.submit("What is this?", [image_file()]))
        parts = backend.sent_parts[0]
        assert parts[0].text == "What is this?"
        assert parts[1].inline_data.mime_type == "image/png"

    def test_deleted_session_mid_stream_is_left_alone(self, brain, store, backend):
        sid = store.active_id

        async def reply_then_delete(chat, parts):
            yield ReplyChunk("first", [])
            store.new_session()
            store.delete(sid)
            yield ReplyChunk(" second", [])

        backend.stream_reply = reply_then_delete
        reply = asyncio.run(brain.submit("hello"))
        assert reply is None
        assert store.get(sid) is None


class TestSustainabilityTips:
    def _chat(self, brain, count):
        async def go():
            for i in range(count):
                await brain.submit(f"question {i}")
            await brain.wait_idle()
        asyncio.run(go())

    def tips(self, store):
        return [m for m in store.active_session.messages if m.is_system]

    def test_tip_after_fifth_reply(self, brain, store):
        self._chat(brain, 5)
        tips = self.tips(store)
        assert len(tips) == 1
        assert tips[0].text == SUSTAINABILITY_TIPS["en-US"]
        assert store.active_session.messages[-1].is_system

    def test_no_tip_before_fifth(self, brain, store):
        self._chat(brain, 4)
        assert self.tips(store) == []

    def test_counter_resets_after_tip(self, brain, store):
        self._chat(brain, 10)
        assert len(self.tips(store)) == 2

    def test_failed_fifth_reply_skips_tip(self, brain, store, backend):
        backend.replies.extend([[ReplyChunk("ok", [])]] * 4 + [[RuntimeError("down")]])
        self._chat(brain, 5)
        assert self.tips(store) == []

    def test_counter_resyncs_on_session_switch(self, brain, store):
        self._chat(brain, 3)
        first = store.active_id
        store.new_session()
        store.select(first)
        assert brain.user_turns == 3

    def test_tips_are_not_sent_as_history(self, brain, store, backend):
        self._chat(brain, 5)
        store.append_messages(store.active_id, bot_message("canned"))
        asyncio.run(brain.submit("more"))
        history = backend.conversations[-1]["history"]
        assert all("🌱" not in c.parts[0].text for c in history)


class TestSummaries:
    def test_summary_replaces_notice(self, brain, store, backend):
        backend.summary = "Beaches, temple, sunsets."
        message = asyncio.run(brain.summarize("a long reply"))

        messages = store.active_session.messages
        assert message.text == "📝 **Summary**\n\nBeaches, temple, sunsets."
        assert messages[-1].id == message.id
        assert not any(m.text == SUMMARIZING for m in messages)

    def test_summary_failure_leaves_apology(self, brain, store, backend):
        backend.summary_error = RuntimeError("offline")
        assert asyncio.run(brain.summarize("text")) is None

        messages = store.active_session.messages
        assert messages[-1].is_system
        assert messages[-1].text == SUMMARY_FAILED
        assert not any(m.text == SUMMARIZING for m in messages)
