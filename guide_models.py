"""
Guide Models Module
===================
The data the guide keeps about conversations:
- ChatSession: one persisted thread with its own language
- ChatMessage: a single turn, including placeholder/video lifecycle
- UploadedFile: an attachment staged for one submission
- Suggestion / Source / GeneratedImage: display data

Placeholders follow a small state machine so a streaming reply can only
move forward:

    pending -> streaming -> resolved
       |           |
       +-----------+-----> failed

Video messages have their own one-way lifecycle: generating -> done | failed.
"""

import base64
import mimetypes
import time
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


class MessageState(str, Enum):
    """Lifecycle of a bot placeholder."""
    PENDING = "pending"        # Created on dispatch, nothing received yet
    STREAMING = "streaming"    # At least one chunk applied
    RESOLVED = "resolved"      # Final text/images attached
    FAILED = "failed"          # Replaced by a failure notice


class VideoState(str, Enum):
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


class InvalidTransition(ValueError):
    """A message was asked to move backwards in its lifecycle."""


class UnsupportedFileType(ValueError):
    """Only images and plain text can be attached."""


_STATE_TRANSITIONS: Dict[Optional[MessageState], set] = {
    None: {MessageState.PENDING},
    MessageState.PENDING: {MessageState.STREAMING, MessageState.RESOLVED, MessageState.FAILED},
    MessageState.STREAMING: {MessageState.STREAMING, MessageState.RESOLVED, MessageState.FAILED},
    MessageState.RESOLVED: set(),
    MessageState.FAILED: set(),
}

_VIDEO_TRANSITIONS: Dict[Optional[VideoState], set] = {
    None: {VideoState.GENERATING},
    VideoState.GENERATING: {VideoState.DONE, VideoState.FAILED},
    VideoState.DONE: set(),
    VideoState.FAILED: set(),
}


class Source(BaseModel):
    """A grounding citation (web page or map place)."""
    uri: str
    title: str = ""


class Suggestion(BaseModel):
    text: str
    icon: str = "sparkle"
    prompt: Optional[str] = None


class UploadedFile(BaseModel):
    """
    An attachment staged for one submission.

    data is base64 for images and the raw text for text/plain files.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str
    data: str
    preview_url: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @property
    def is_text(self) -> bool:
        return self.mime_type == "text/plain"

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    @classmethod
    def from_path(cls, path) -> "UploadedFile":
        """
        Stage a file from disk.

        Raises:
            UnsupportedFileType: for anything other than images and plain text
            OSError: if the file can't be read
        """
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        if mime_type and mime_type.startswith("image/"):
            encoded = base64.b64encode(path.read_bytes()).decode("ascii")
            return cls(
                name=path.name,
                mime_type=mime_type,
                data=encoded,
                preview_url=f"data:{mime_type};base64,{encoded}",
            )
        if mime_type == "text/plain":
            return cls(name=path.name, mime_type=mime_type, data=path.read_text(encoding="utf-8"))
        raise UnsupportedFileType(f"Unsupported file type: {mime_type or path.suffix or 'unknown'}")


class ChatMessage(BaseModel):
    id: int
    text: str = ""
    sender: Sender
    suggestions: Optional[List[Suggestion]] = None
    images: Optional[List[str]] = None
    sources: Optional[List[Source]] = None
    is_loading: bool = False
    files: Optional[List[UploadedFile]] = None
    is_welcome: bool = False
    is_system: bool = False
    state: Optional[MessageState] = None
    video_state: Optional[VideoState] = None
    video_url: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.state in (MessageState.PENDING, MessageState.STREAMING)

    def advance(self, state: MessageState, **changes) -> "ChatMessage":
        """
        Return a copy moved to `state` with `changes` applied.

        Raises:
            InvalidTransition: if the move is not allowed from the current state
        """
        if state not in _STATE_TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Message {self.id}: {self.state.value if self.state else 'none'} -> {state.value}"
            )
        changes["state"] = state
        changes["is_loading"] = state in (MessageState.PENDING, MessageState.STREAMING)
        return self.model_copy(update=changes)

    def with_video_state(self, video_state: VideoState, **changes) -> "ChatMessage":
        if video_state not in _VIDEO_TRANSITIONS[self.video_state]:
            raise InvalidTransition(
                f"Message {self.id}: video {self.video_state.value if self.video_state else 'none'} "
                f"-> {video_state.value}"
            )
        changes["video_state"] = video_state
        return self.model_copy(update=changes)


class ChatSession(BaseModel):
    id: str
    title: str
    messages: List[ChatMessage] = Field(default_factory=list)
    language_code: str = "en-US"

    def find(self, message_id: int) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if m.sender == Sender.USER)


class GeneratedImage(BaseModel):
    """Gallery view of one bot image; derived, never stored."""
    src: str
    session_id: str
    message_id: int


# =============================================================================
# MESSAGE CONSTRUCTORS
# =============================================================================

_last_message_id = 0


def next_message_id() -> int:
    """Millisecond timestamp id, bumped so ids never repeat or go backwards."""
    global _last_message_id
    candidate = int(time.time() * 1000)
    if candidate <= _last_message_id:
        candidate = _last_message_id + 1
    _last_message_id = candidate
    return candidate


def user_message(text: str, files: Optional[List[UploadedFile]] = None) -> ChatMessage:
    return ChatMessage(id=next_message_id(), text=text, sender=Sender.USER, files=files or None)


def bot_message(text: str, **fields) -> ChatMessage:
    return ChatMessage(id=next_message_id(), text=text, sender=Sender.BOT, **fields)


def placeholder_message(**fields) -> ChatMessage:
    return ChatMessage(
        id=next_message_id(),
        text="",
        sender=Sender.BOT,
        is_loading=True,
        state=MessageState.PENDING,
        **fields,
    )


def system_message(text: str) -> ChatMessage:
    return ChatMessage(id=next_message_id(), text=text, sender=Sender.BOT, is_system=True)


def welcome_message(suggestions: List[Dict]) -> ChatMessage:
    return ChatMessage(
        id=next_message_id(),
        text="",
        sender=Sender.BOT,
        suggestions=[Suggestion(**s) for s in suggestions],
        is_welcome=True,
    )
