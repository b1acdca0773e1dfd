"""
Guide Brain Module
==================
The conversation engine: one Gemini chat per active session.

- The chat is seeded with the session's saved turns and a system
  instruction naming the session language
- Replies stream into a placeholder message as they arrive
- Search and Maps citations are collected and attached once the reply ends
- Every fifth user turn earns a sustainability tip shortly after the reply

A failed reply only replaces the placeholder with an apology. The chat
handle is kept and the next message goes through it again.
"""

import asyncio
import re
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Set, Tuple

from google.genai import types

from guide_memory import SessionStore, StoreEvent
from guide_models import (
    ChatMessage,
    ChatSession,
    MessageState,
    Sender,
    Source,
    UploadedFile,
    bot_message,
    placeholder_message,
    user_message,
)
from guide_phrases import (
    CHAT_FAILURE,
    SUMMARIZING,
    SUMMARY_FAILED,
    SUSTAINABILITY_TIPS,
    localized,
)

TIP_EVERY_N_TURNS = 5
TIP_DELAY_SECONDS = 0.5

_INLINE_IMAGE_MARKDOWN = re.compile(r"!\[.*?\]\(.*?\)")


def strip_inline_images(text: str) -> str:
    """Drop ![alt](url) markdown; the guide never renders model-linked images."""
    return _INLINE_IMAGE_MARKDOWN.sub("", text).strip()


def message_to_content(message: ChatMessage) -> Optional[types.Content]:
    """Turn a saved message into a Gemini history turn, or None if it isn't one."""
    if message.is_system or message.is_welcome:
        return None
    if not message.text.strip() and not message.files:
        return None

    parts = []
    if message.text:
        parts.append(types.Part(text=message.text))
    for file in message.files or []:
        data = file.image_bytes() if file.is_image else file.data.encode("utf-8")
        parts.append(types.Part.from_bytes(data=data, mime_type=file.mime_type))

    role = "user" if message.sender == Sender.USER else "model"
    return types.Content(role=role, parts=parts)


def build_history(messages: List[ChatMessage]) -> List[types.Content]:
    history = []
    for message in messages:
        content = message_to_content(message)
        if content is not None:
            history.append(content)
    return history


class GuideBrain:
    """
    Keeps the Gemini chat handle in step with the active session.
    """

    def __init__(self,
                 store: SessionStore,
                 backend,
                 location: Optional[Tuple[float, float]] = None,
                 tip_delay: float = TIP_DELAY_SECONDS):
        """
        Args:
            store: The session store (the only place messages are written)
            backend: GeminiBackend, or anything with the same methods
            location: (latitude, longitude) if known
            tip_delay: Seconds between a fifth reply and its tip
        """
        self.store = store
        self.backend = backend
        self.location = location
        self.tip_delay = tip_delay

        self.chat = None
        self.chat_session_id: Optional[str] = None
        self.user_turns = 0

        # Called with each text delta while a reply streams (terminal printing)
        self.on_delta: Optional[Callable[[str], None]] = None

        self._stale = False
        self._writing = False
        self._tasks: Set[asyncio.Task] = set()

        self._unsubscribe = store.subscribe(self._on_store_event)
        self.rebuild()

    def close(self):
        self._unsubscribe()

    # ========== HANDLE MANAGEMENT ==========

    def _on_store_event(self, event: StoreEvent, session_id: Optional[str]):
        if event == StoreEvent.ACTIVE_CHANGED:
            self.rebuild()
        elif event == StoreEvent.LANGUAGE_CHANGED and session_id == self.store.active_id:
            self.rebuild()
        elif session_id == self.chat_session_id and not self._writing:
            # Someone else added turns (images, canned replies, summaries)
            self._stale = True

    @contextmanager
    def _own_writes(self):
        self._writing = True
        try:
            yield
        finally:
            self._writing = False

    def rebuild(self):
        """Start a fresh chat for the active session and re-sync the tip counter."""
        session = self.store.active_session
        if session is None:
            self.chat = None
            self.chat_session_id = None
            return
        self._start_chat(session)
        self.user_turns = session.user_message_count % TIP_EVERY_N_TURNS

    def _start_chat(self, session: ChatSession):
        history = build_history(session.messages)
        self.chat = self.backend.start_conversation(session.language_code, history)
        self.chat_session_id = session.id
        self._stale = False
        print(f"🧠 Chat ready: \"{session.title}\" ({len(history)} turns, {session.language_code})")

    # ========== PROMPT BUILDING ==========

    def build_prompt(self, prompt_text: str, files: List[UploadedFile]) -> str:
        if self.location:
            latitude, longitude = self.location
            prompt_text = (
                f"My current location is latitude: {latitude}, longitude: {longitude}. "
                f"Please use this for any location-based queries.\n\nMy request: \"{prompt_text}\""
            )
        for file in files:
            if file.is_text:
                prompt_text = f"Context from file \"{file.name}\":\n{file.data}\n\nMy question: {prompt_text}"
        return prompt_text

    def build_parts(self, prompt_text: str, files: List[UploadedFile]) -> List[types.Part]:
        parts = [types.Part(text=self.build_prompt(prompt_text, files))]
        for file in files:
            if file.is_image:
                parts.append(types.Part.from_bytes(data=file.image_bytes(), mime_type=file.mime_type))
        return parts

    # ========== CONVERSATION ==========

    async def submit(self,
                     text: str,
                     files: Optional[List[UploadedFile]] = None,
                     prompt: Optional[str] = None) -> Optional[ChatMessage]:
        """
        Send one user turn on the active session and stream the reply.

        Args:
            text: Shown in the chat as the user's message
            files: Attachments (images inlined, text files prepended as context)
            prompt: Sent to Gemini instead of `text` when given

        Returns:
            The finished bot message, or None if the session vanished
        """
        files = list(files or [])
        session = self.store.active_session
        if session is None:
            return None

        if self.chat is None or self._stale or self.chat_session_id != session.id:
            self._start_chat(session)

        placeholder = placeholder_message()
        self.user_turns += 1
        with self._own_writes():
            self.store.append_messages(session.id, user_message(text, files), placeholder)
            self.store.derive_title(session.id, text)

        parts = self.build_parts(prompt or text, files)
        resolved = await self._stream_reply(session.id, session.language_code, placeholder.id, parts)

        if resolved is not None and resolved.state == MessageState.RESOLVED:
            if self.user_turns >= TIP_EVERY_N_TURNS:
                self.user_turns = 0
                self._schedule_tip(session.id, session.language_code)
        return resolved

    async def _stream_reply(self, session_id: str, language_code: str,
                            placeholder_id: int, parts: List[types.Part]) -> Optional[ChatMessage]:
        accumulated = ""
        sources: Dict[str, Source] = {}

        try:
            async for chunk in self.backend.stream_reply(self.chat, parts):
                accumulated += chunk.text
                for source in chunk.sources:
                    sources[source.uri] = source
                self._advance(session_id, placeholder_id, MessageState.STREAMING, text=accumulated)
                if self.on_delta and chunk.text:
                    self.on_delta(chunk.text)
        except Exception as e:
            print(f"   ❌ Reply failed: {e}")
            return self._advance(session_id, placeholder_id, MessageState.FAILED,
                                 text=localized(CHAT_FAILURE, language_code))

        return self._advance(
            session_id, placeholder_id, MessageState.RESOLVED,
            text=strip_inline_images(accumulated),
            sources=list(sources.values()),
        )

    def _advance(self, session_id: str, message_id: int,
                 state: MessageState, **changes) -> Optional[ChatMessage]:
        with self._own_writes():
            session = self.store.replace_message(
                session_id, message_id, lambda m: m.advance(state, **changes)
            )
        return session.find(message_id) if session else None

    # ========== SUSTAINABILITY TIPS ==========

    def _schedule_tip(self, session_id: str, language_code: str):
        async def deliver():
            await asyncio.sleep(self.tip_delay)
            with self._own_writes():
                self.store.add_system_message(localized(SUSTAINABILITY_TIPS, language_code), session_id)

        task = asyncio.create_task(deliver())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self):
        """Wait for delayed tips still in flight."""
        while self._tasks:
            tasks = list(self._tasks)
            await asyncio.gather(*tasks)
            self._tasks.difference_update(tasks)

    # ========== SUMMARIES ==========

    async def summarize(self, text: str) -> Optional[ChatMessage]:
        """Post a "Summarizing..." notice, then swap it for the summary (or an apology)."""
        session_id = self.store.active_id
        if not session_id:
            return None

        self.store.add_system_message(SUMMARIZING, session_id)

        def is_notice(message: ChatMessage) -> bool:
            return message.is_system and message.text == SUMMARIZING

        try:
            print("📝 Summarizing...")
            summary = await self.backend.summarize(text)
        except Exception as e:
            print(f"   ❌ Summary failed: {e}")
            self.store.remove_messages(session_id, is_notice)
            self.store.add_system_message(SUMMARY_FAILED, session_id)
            return None

        message = bot_message(f"📝 **Summary**\n\n{summary}")
        self.store.update_messages(
            session_id,
            lambda prev: [m for m in prev if not is_notice(m)] + [message],
        )
        return message
