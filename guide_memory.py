"""
Guide Memory Module
===================
Holds every chat session and which one is active, and persists them:
- Session list (all conversations, their messages and languages)
- Active session id
- Boolean settings (text-to-speech toggle)

The store is the single writer of session state. Every other component
mutates messages through update_session() (a read-modify-write against the
latest list), so edits land in the order their events were processed and
nobody holds a divergent copy across an await.

Every change is written through to storage immediately.
"""

import json
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from guide_models import (
    ChatMessage,
    ChatSession,
    GeneratedImage,
    Sender,
    next_message_id,
    system_message,
    welcome_message,
)
from guide_phrases import (
    DEFAULT_LANGUAGE,
    DEFAULT_SESSION_TITLE,
    Language,
    find_language,
    initial_suggestions,
)

SESSIONS_KEY = "gokarna-all-chats"
ACTIVE_ID_KEY = "gokarna-active-chat-id"
TTS_KEY = "gokarna-tts-enabled"

TITLE_LENGTH = 40


class StoreEvent(Enum):
    SESSIONS_CHANGED = "sessions"     # Added, removed, renamed
    ACTIVE_CHANGED = "active"         # A different session is active
    LANGUAGE_CHANGED = "language"     # A session's language switched
    MESSAGE_UPDATED = "message"       # A session's message list changed


# =============================================================================
# STORAGE BACKENDS
# =============================================================================

class KeyValueStorage:
    """
    Synchronous key-value persistence.

    Subclasses provide get/set/remove of JSON-compatible values; the typed
    helpers below are what the store calls.
    """

    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError

    def load_sessions(self) -> Optional[List[Dict[str, Any]]]:
        value = self.get(SESSIONS_KEY)
        return value if isinstance(value, list) else None

    def save_sessions(self, sessions: List[Dict[str, Any]]):
        self.set(SESSIONS_KEY, sessions)

    def load_active_id(self) -> Optional[str]:
        value = self.get(ACTIVE_ID_KEY)
        return value if isinstance(value, str) else None

    def save_active_id(self, session_id: str):
        self.set(ACTIVE_ID_KEY, session_id)

    def load_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        return value if isinstance(value, bool) else default

    def save_bool(self, key: str, value: bool):
        self.set(key, bool(value))


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage for tests and throwaway runs."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.values: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def set(self, key: str, value: Any):
        self.values[key] = json.loads(json.dumps(value))

    def remove(self, key: str):
        self.values.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """
    One JSON document per key inside a directory.

    Writes go to a temp file, are fsync'd and then renamed over the old
    document, so a crash never leaves half a session list on disk.
    """

    def __init__(self, directory):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Any:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def set(self, key: str, value: Any):
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def remove(self, key: str):
        path = self._path(key)
        if path.exists():
            path.unlink()


# =============================================================================
# SESSION STORE
# =============================================================================

Listener = Callable[[StoreEvent, Optional[str]], None]


class SessionStore:
    """
    Process-wide conversation state with write-through persistence.
    """

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage or MemoryStorage()
        self._sessions: List[ChatSession] = []
        self._active_id: Optional[str] = None
        self._tts_enabled = False
        self._listeners: List[Listener] = []

    # ========== LIFECYCLE ==========

    def init(self):
        """Restore sessions from storage, or start with one default session."""
        try:
            self._tts_enabled = self.storage.load_bool(TTS_KEY, False)
        except (ValueError, OSError) as e:
            print(f"⚠️  Read-aloud setting unreadable ({e}); using off")
            self._tts_enabled = False

        sessions = []
        try:
            raw = self.storage.load_sessions()
            if raw:
                sessions = [ChatSession.model_validate(item) for item in raw]
        except (ValidationError, ValueError, TypeError, OSError) as e:
            print(f"⚠️  Saved chats could not be loaded ({e}); starting fresh")
            self.storage.remove(SESSIONS_KEY)
            sessions = []

        if sessions:
            self._sessions = sessions
            try:
                last_active = self.storage.load_active_id()
            except (ValueError, OSError) as e:
                print(f"⚠️  Last active chat unreadable ({e}); opening the first one")
                last_active = None
            active = self.get(last_active) if last_active else None
            self._active_id = (active or sessions[0]).id
            if active is None:
                self.storage.save_active_id(self._active_id)
            print(f"📚 Loaded {len(sessions)} chat session(s)")
            return

        session = self._make_session(DEFAULT_LANGUAGE)
        self._sessions = [session]
        self._active_id = session.id
        self._persist()
        print("✨ Started a new chat")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: StoreEvent, session_id: Optional[str]):
        for listener in list(self._listeners):
            listener(event, session_id)

    def _persist(self):
        self.storage.save_sessions([s.model_dump(mode="json") for s in self._sessions])
        if self._active_id:
            self.storage.save_active_id(self._active_id)

    def _make_session(self, language_code: str) -> ChatSession:
        return ChatSession(
            id=str(next_message_id()),
            title=DEFAULT_SESSION_TITLE,
            messages=[welcome_message(initial_suggestions(language_code))],
            language_code=language_code,
        )

    # ========== READS ==========

    @property
    def sessions(self) -> List[ChatSession]:
        return list(self._sessions)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_session(self) -> Optional[ChatSession]:
        return self.get(self._active_id) if self._active_id else None

    @property
    def active_language(self) -> Language:
        session = self.active_session
        return find_language(session.language_code if session else DEFAULT_LANGUAGE)

    def get(self, session_id: Optional[str]) -> Optional[ChatSession]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def generated_images(self) -> List[GeneratedImage]:
        """Every image the bot produced across all sessions, newest first."""
        images = []
        for session in self._sessions:
            for message in session.messages:
                if message.sender == Sender.BOT and message.images:
                    for src in message.images:
                        images.append(GeneratedImage(src=src, session_id=session.id, message_id=message.id))
        images.reverse()
        return images

    # ========== THE UPDATE PATH ==========

    def update_session(self, session_id: str,
                       update: Callable[[ChatSession], ChatSession],
                       event: StoreEvent = StoreEvent.MESSAGE_UPDATED) -> Optional[ChatSession]:
        """
        Apply `update` to the latest copy of a session and persist.

        A session that no longer exists (deleted while a request was in
        flight) is left alone and None is returned.
        """
        for i, session in enumerate(self._sessions):
            if session.id == session_id:
                updated = update(session)
                self._sessions[i] = updated
                self._persist()
                self._notify(event, session_id)
                return updated
        return None

    def update_messages(self, session_id: str,
                        update: Callable[[List[ChatMessage]], List[ChatMessage]]) -> Optional[ChatSession]:
        return self.update_session(
            session_id,
            lambda s: s.model_copy(update={"messages": update(list(s.messages))}),
        )

    def append_messages(self, session_id: str, *messages: ChatMessage) -> Optional[ChatSession]:
        """Append messages, dropping the welcome placeholder once real turns begin."""
        return self.update_messages(
            session_id,
            lambda prev: [m for m in prev if not m.is_welcome] + list(messages),
        )

    def replace_message(self, session_id: str, message_id: int,
                        update: Callable[[ChatMessage], ChatMessage]) -> Optional[ChatSession]:
        return self.update_messages(
            session_id,
            lambda prev: [update(m) if m.id == message_id else m for m in prev],
        )

    def remove_messages(self, session_id: str,
                        predicate: Callable[[ChatMessage], bool]) -> Optional[ChatSession]:
        return self.update_messages(session_id, lambda prev: [m for m in prev if not predicate(m)])

    def add_system_message(self, text: str, session_id: Optional[str] = None) -> Optional[ChatMessage]:
        """Append a notice. The welcome message stays so its quick-start chips remain on offer."""
        target = session_id or self._active_id
        if not target:
            return None
        message = system_message(text)
        if self.update_messages(target, lambda prev: prev + [message]) is None:
            return None
        return message

    # ========== SESSION OPERATIONS ==========

    def set_language(self, session_id: str, language_code: str) -> Optional[ChatSession]:
        return self.update_session(
            session_id,
            lambda s: s.model_copy(update={"language_code": language_code}),
            event=StoreEvent.LANGUAGE_CHANGED,
        )

    def derive_title(self, session_id: str, text: str):
        """Name a session after its first user message while it still has the default title."""
        session = self.get(session_id)
        if session is None or session.title != DEFAULT_SESSION_TITLE:
            return
        if session.user_message_count > 1:
            return
        title = text[:TITLE_LENGTH]
        if title.strip():
            self.update_session(
                session_id,
                lambda s: s.model_copy(update={"title": title}),
                event=StoreEvent.SESSIONS_CHANGED,
            )

    def rename(self, session_id: str, title: str) -> bool:
        if not title.strip():
            return False
        return self.update_session(
            session_id,
            lambda s: s.model_copy(update={"title": title.strip()}),
            event=StoreEvent.SESSIONS_CHANGED,
        ) is not None

    def new_session(self, language_code: Optional[str] = None) -> ChatSession:
        """Start a new chat in the given (or current) language and make it active."""
        session = self._make_session(language_code or self.active_language.code)
        self._sessions.append(session)
        self._active_id = session.id
        self._persist()
        self._notify(StoreEvent.SESSIONS_CHANGED, session.id)
        self._notify(StoreEvent.ACTIVE_CHANGED, session.id)
        return session

    def select(self, session_id: str) -> bool:
        if self.get(session_id) is None:
            return False
        if session_id != self._active_id:
            self._active_id = session_id
            self._persist()
            self._notify(StoreEvent.ACTIVE_CHANGED, session_id)
        return True

    def delete(self, session_id: str) -> bool:
        """
        Delete a session. If it was active, the first remaining session
        becomes active; deleting the last one leaves a fresh default chat.
        """
        if self.get(session_id) is None:
            return False

        self._sessions = [s for s in self._sessions if s.id != session_id]
        was_active = session_id == self._active_id
        if not self._sessions:
            fresh = self._make_session(DEFAULT_LANGUAGE)
            self._sessions = [fresh]
            self._active_id = fresh.id
        elif was_active:
            self._active_id = self._sessions[0].id

        self._persist()
        self._notify(StoreEvent.SESSIONS_CHANGED, session_id)
        if was_active:
            self._notify(StoreEvent.ACTIVE_CHANGED, self._active_id)
        return True

    def clear_all(self) -> ChatSession:
        fresh = self._make_session(DEFAULT_LANGUAGE)
        self._sessions = [fresh]
        self._active_id = fresh.id
        self._persist()
        self._notify(StoreEvent.SESSIONS_CHANGED, fresh.id)
        self._notify(StoreEvent.ACTIVE_CHANGED, fresh.id)
        return fresh

    # ========== SETTINGS ==========

    @property
    def tts_enabled(self) -> bool:
        return self._tts_enabled

    def set_tts_enabled(self, enabled: bool):
        self._tts_enabled = bool(enabled)
        self.storage.save_bool(TTS_KEY, self._tts_enabled)
