"""
Guide Gemini Module
===================
The one place that talks to Google's generative AI API (google-genai SDK).

Capabilities the rest of the guide relies on:
- start_conversation(): a chat handle seeded with history + system instruction
- stream_reply(): incremental text chunks with grounding citations
- generate_image() / edit_image(): Gemini image model, inline image or text back
- generate_video() / poll_video_job(): Veo long-running job
- summarize(): one-shot summary
- connect_realtime(): Live API duplex audio connection

Nothing here retries. Callers decide how a failure is shown to the user.
"""

import os
from typing import Any, AsyncIterator, List, NamedTuple, Optional

from google import genai
from google.genai import types

from guide_models import Source, UploadedFile
from guide_phrases import LIVE_SYSTEM_PROMPT, build_system_instruction

DEFAULT_CHAT_MODEL = "gemini-2.5-pro"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
DEFAULT_VIDEO_MODEL = "veo-3.1-fast-generate-preview"
DEFAULT_SUMMARY_MODEL = "gemini-2.5-flash"
DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"

LIVE_VOICE = "Zephyr"

SAFETY_SETTINGS = [
    types.SafetySetting(category="HARM_CATEGORY_HARASSMENT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_HATE_SPEECH", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_SEXUALLY_EXPLICIT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
    types.SafetySetting(category="HARM_CATEGORY_DANGEROUS_CONTENT", threshold="BLOCK_MEDIUM_AND_ABOVE"),
]


# =============================================================================
# ERRORS
# =============================================================================

class BackendError(Exception):
    """Base class for failures the guide turns into user-facing messages."""


class SafetyBlocked(BackendError):
    """The model refused on safety grounds."""


class RequestBlocked(BackendError):
    """The prompt was blocked for an explicit, non-safety reason."""

    def __init__(self, reason: str):
        self.reason = reason
        readable = reason.lower().replace("_", " ")
        super().__init__(f"Request was blocked due to: {readable}.")


class EmptyImageResult(BackendError):
    def __init__(self):
        super().__init__("No image was returned from the API.")


class VideoResultMissing(BackendError):
    def __init__(self):
        super().__init__("Video generation completed but no download link was found.")


# =============================================================================
# RESULT SHAPES
# =============================================================================

class ReplyChunk(NamedTuple):
    text: str
    sources: List[Source]


class ImageResult(NamedTuple):
    image_data: Optional[bytes] = None
    mime_type: Optional[str] = None
    text: Optional[str] = None
    block_reason: Optional[str] = None
    finish_reason: Optional[str] = None


class VideoJob(NamedTuple):
    done: bool
    result_uri: Optional[str]
    operation: Any


def _enum_name(value) -> Optional[str]:
    if value is None:
        return None
    return getattr(value, "name", None) or str(value)


def extract_sources(chunk) -> List[Source]:
    """
    Pull web and map citations out of a response chunk's grounding metadata.
    Entries without a URI are dropped.
    """
    sources = []
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return sources

    metadata = getattr(candidates[0], "grounding_metadata", None)
    grounding_chunks = getattr(metadata, "grounding_chunks", None) if metadata else None
    if not grounding_chunks:
        return sources

    for grounding in grounding_chunks:
        web = getattr(grounding, "web", None)
        if web is not None:
            uri = getattr(web, "uri", None)
            if uri:
                sources.append(Source(uri=uri, title=getattr(web, "title", None) or uri))
            continue

        maps = getattr(grounding, "maps", None)
        if maps is None:
            continue
        places = getattr(maps, "place_answer_sources", None)
        if isinstance(places, list):
            for place in places:
                uri = getattr(place, "uri", None)
                if uri:
                    title = getattr(place, "display_name", None) or getattr(place, "title", None) or uri
                    sources.append(Source(uri=uri, title=title))
        elif getattr(maps, "uri", None):
            sources.append(Source(uri=maps.uri, title=getattr(maps, "title", None) or maps.uri))

    return sources


def parse_image_response(response) -> ImageResult:
    """Reduce a generate_content response to the fields the artist cares about."""
    feedback = getattr(response, "prompt_feedback", None)
    block_reason = _enum_name(getattr(feedback, "block_reason", None)) if feedback else None

    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ImageResult(block_reason=block_reason)

    candidate = candidates[0]
    finish_reason = _enum_name(getattr(candidate, "finish_reason", None))
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []

    texts = []
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return ImageResult(
                image_data=inline.data,
                mime_type=getattr(inline, "mime_type", None) or "image/png",
                block_reason=block_reason,
                finish_reason=finish_reason,
            )
        if getattr(part, "text", None):
            texts.append(part.text)

    return ImageResult(
        text="".join(texts) or None,
        block_reason=block_reason,
        finish_reason=finish_reason,
    )


# =============================================================================
# BACKEND
# =============================================================================

class GeminiBackend:
    """
    Thin async wrapper around google-genai for everything the guide asks of Gemini.
    """

    def __init__(self,
                 api_key: str = None,
                 chat_model: str = None,
                 image_model: str = None,
                 video_model: str = None,
                 summary_model: str = None,
                 live_model: str = None):
        """
        Args:
            api_key: Google API key (defaults to GOOGLE_API_KEY, then API_KEY)
            *_model: Model overrides (default to GUIDE_*_MODEL env vars, then built-ins)
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY")
        if not self.api_key:
            raise ValueError(
                "GOOGLE_API_KEY not set. "
                "Get one from https://aistudio.google.com/apikey"
            )

        self.chat_model = chat_model or os.getenv("GUIDE_CHAT_MODEL", DEFAULT_CHAT_MODEL)
        self.image_model = image_model or os.getenv("GUIDE_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)
        self.video_model = video_model or os.getenv("GUIDE_VIDEO_MODEL", DEFAULT_VIDEO_MODEL)
        self.summary_model = summary_model or os.getenv("GUIDE_SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL)
        self.live_model = live_model or os.getenv("GUIDE_LIVE_MODEL", DEFAULT_LIVE_MODEL)

        self.client = genai.Client(api_key=self.api_key)

        print(f"🧠 Gemini ready ({self.chat_model})")
        print(f"   🎨 Images: {self.image_model}")
        print(f"   🎬 Video: {self.video_model}")
        print(f"   🎙️  Live: {self.live_model}")

    # ========== CHAT ==========

    def start_conversation(self, language_code: str, history: List[types.Content]):
        """Create a chat handle. No network traffic happens until the first message."""
        return self.client.aio.chats.create(
            model=self.chat_model,
            config=types.GenerateContentConfig(
                system_instruction=build_system_instruction(language_code),
                tools=[
                    types.Tool(google_search=types.GoogleSearch()),
                    types.Tool(google_maps=types.GoogleMaps()),
                ],
                safety_settings=SAFETY_SETTINGS,
            ),
            history=history,
        )

    async def stream_reply(self, chat, parts: List[types.Part]) -> AsyncIterator[ReplyChunk]:
        """Yield text deltas (with any citations) until the model finishes its turn."""
        stream = await chat.send_message_stream(parts)
        async for chunk in stream:
            yield ReplyChunk(text=chunk.text or "", sources=extract_sources(chunk))

    # ========== IMAGES ==========

    async def generate_image(self, prompt: str) -> ImageResult:
        response = await self.client.aio.models.generate_content(
            model=self.image_model,
            contents=[types.Part(text=prompt)],
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                safety_settings=SAFETY_SETTINGS,
            ),
        )
        return parse_image_response(response)

    async def edit_image(self, file: UploadedFile, prompt: str) -> ImageResult:
        # Image first, then instruction: the model treats this as an edit of that image
        response = await self.client.aio.models.generate_content(
            model=self.image_model,
            contents=[
                types.Part.from_bytes(data=file.image_bytes(), mime_type=file.mime_type),
                types.Part(text=prompt),
            ],
            config=types.GenerateContentConfig(
                response_modalities=["IMAGE"],
                safety_settings=SAFETY_SETTINGS,
            ),
        )
        return parse_image_response(response)

    # ========== VIDEO ==========

    @staticmethod
    def _to_job(operation) -> VideoJob:
        uri = None
        response = getattr(operation, "response", None)
        videos = getattr(response, "generated_videos", None) if response else None
        if videos:
            video = getattr(videos[0], "video", None)
            uri = getattr(video, "uri", None)
        return VideoJob(done=bool(getattr(operation, "done", False)), result_uri=uri, operation=operation)

    async def generate_video(self, file: UploadedFile, prompt: str, aspect_ratio: str) -> VideoJob:
        operation = await self.client.aio.models.generate_videos(
            model=self.video_model,
            prompt=prompt,
            image=types.Image(image_bytes=file.image_bytes(), mime_type=file.mime_type),
            config=types.GenerateVideosConfig(
                number_of_videos=1,
                resolution="720p",
                aspect_ratio=aspect_ratio,
            ),
        )
        return self._to_job(operation)

    async def poll_video_job(self, job: VideoJob) -> VideoJob:
        operation = await self.client.aio.operations.get(job.operation)
        return self._to_job(operation)

    def video_url(self, uri: str) -> str:
        """Make a download link playable by appending the API key."""
        joiner = "&" if "?" in uri else "?"
        return f"{uri}{joiner}key={self.api_key}"

    # ========== TEXT ==========

    async def summarize(self, text: str) -> str:
        response = await self.client.aio.models.generate_content(
            model=self.summary_model,
            contents=f"Summarize the following text concisely:\n\n{text}",
        )
        return (response.text or "").strip()

    # ========== LIVE ==========

    def live_config(self) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=["AUDIO"],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            output_audio_transcription=types.AudioTranscriptionConfig(),
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=LIVE_VOICE)
                )
            ),
            system_instruction=types.Content(parts=[types.Part(text=LIVE_SYSTEM_PROMPT)]),
        )

    def connect_realtime(self, config: Optional[types.LiveConnectConfig] = None):
        """Async context manager yielding a Live API session."""
        return self.client.aio.live.connect(model=self.live_model, config=config or self.live_config())
