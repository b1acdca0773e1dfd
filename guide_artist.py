"""
Guide Artist Module
===================
Image generation, image editing and image-to-video for the guide.

Every request follows the same shape:
1. Append the user's turn and a loading placeholder
2. Call Gemini (image model) or Veo (video model)
3. Resolve that one placeholder, with the result or with a readable apology

Images come back inline. They are stored on the message as data URIs and
also dropped into the gallery folder as PNGs.

Video is a long-running job: submit, then check every poll_interval seconds
until Veo says it's done. There is no timeout.
"""

import asyncio
import base64
import os
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from PIL import Image

from guide_gemini import (
    EmptyImageResult,
    ImageResult,
    RequestBlocked,
    SafetyBlocked,
    VideoResultMissing,
)
from guide_memory import SessionStore
from guide_models import (
    ChatMessage,
    MessageState,
    UploadedFile,
    VideoState,
    placeholder_message,
    user_message,
)
from guide_phrases import IMAGE_FAILURES, VIDEO_NEEDS_ONE_IMAGE

load_dotenv()

ASPECT_RATIOS = ("16:9", "9:16")
VIDEO_POLL_SECONDS = 10.0

GENERATED_TEXT = "Here is the image I generated for you:"
EDITED_TEXT = "Here's the edited image:"
VIDEO_TEXT = "Here is the generated video:"

_SAFETY_FINISH_REASONS = {"SAFETY", "IMAGE_SAFETY"}


def failure_variant(error: Exception) -> str:
    """Which apology fits: safety, empty, blocked, or generic."""
    if isinstance(error, SafetyBlocked) or "safety" in str(error).lower():
        return "safety"
    if isinstance(error, EmptyImageResult):
        return "empty"
    if isinstance(error, RequestBlocked):
        return "blocked"
    return "generic"


def _as_base64(data) -> str:
    if isinstance(data, str):
        return data
    return base64.b64encode(data).decode("ascii")


class GuideArtist:
    """
    Coordinates image and video requests against the session store.
    """

    def __init__(self,
                 store: SessionStore,
                 backend,
                 output_dir: str = None,
                 poll_interval: float = VIDEO_POLL_SECONDS):
        """
        Args:
            store: Session store; placeholders are written through it
            backend: GeminiBackend, or anything with the same methods
            output_dir: Gallery folder (defaults to GUIDE_ART_DIR or guide_art)
            poll_interval: Seconds between video status checks
        """
        self.store = store
        self.backend = backend
        self.poll_interval = poll_interval

        self.output_dir = Path(output_dir or os.getenv("GUIDE_ART_DIR", "guide_art"))
        self.output_dir.mkdir(parents=True, exist_ok=True)

        print(f"🎨 Artist ready (gallery: {self.output_dir})")

    def get_gallery_path(self) -> str:
        return str(self.output_dir)

    # ========== IMAGES ==========

    async def generate_image(self, session_id: str, prompt: str, style: str) -> Optional[ChatMessage]:
        """
        Paint `prompt` in `style`. The style choice is recorded as the user's turn.
        """
        final_prompt = f"A {style.lower()} of: {prompt}"
        placeholder = placeholder_message()
        self.store.append_messages(session_id, user_message(style), placeholder)

        print(f"🎨 Generating image ({style})")
        print(f"   Prompt: \"{prompt[:60]}{'...' if len(prompt) > 60 else ''}\"")
        try:
            result = await self.backend.generate_image(final_prompt)
            changes = self._interpret(result, GENERATED_TEXT, placeholder.id)
        except Exception as e:
            print(f"   ❌ Image generation failed: {e}")
            return self._fail(session_id, placeholder.id, IMAGE_FAILURES[failure_variant(e)]["generate"])

        return self._resolve(session_id, placeholder.id, **changes)

    async def edit_image(self, session_id: str, instruction: str, file: UploadedFile) -> Optional[ChatMessage]:
        """Apply a text instruction to one uploaded image."""
        placeholder = placeholder_message()
        self.store.append_messages(
            session_id,
            user_message(f"(Edit Prompt: {instruction})", [file]),
            placeholder,
        )

        print(f"🎨 Editing {file.name}")
        print(f"   Instruction: \"{instruction[:60]}{'...' if len(instruction) > 60 else ''}\"")
        try:
            result = await self.backend.edit_image(file, instruction)
            changes = self._interpret(result, EDITED_TEXT, placeholder.id)
        except Exception as e:
            print(f"   ❌ Image edit failed: {e}")
            return self._fail(session_id, placeholder.id, IMAGE_FAILURES[failure_variant(e)]["edit"])

        return self._resolve(session_id, placeholder.id, **changes)

    def _interpret(self, result: ImageResult, success_text: str, message_id: int) -> dict:
        """
        Turn a backend result into message fields.

        Raises:
            SafetyBlocked / RequestBlocked: the prompt was refused
            EmptyImageResult: neither an image nor an explanation came back
        """
        if result.block_reason:
            if "safety" in result.block_reason.lower():
                raise SafetyBlocked(f"Request was blocked due to: {result.block_reason.lower()}.")
            raise RequestBlocked(result.block_reason)

        if result.image_data:
            mime_type = result.mime_type or "image/png"
            encoded = _as_base64(result.image_data)
            self._save_to_gallery(encoded, message_id)
            return {"text": success_text, "images": [f"data:{mime_type};base64,{encoded}"]}

        if result.text and result.text.strip():
            # The model explained instead of drawing; show that
            return {"text": result.text}

        if result.finish_reason in _SAFETY_FINISH_REASONS:
            raise SafetyBlocked(f"Image withheld: {result.finish_reason.lower()}")
        raise EmptyImageResult()

    def _save_to_gallery(self, encoded: str, message_id: int) -> Optional[Path]:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filepath = self.output_dir / f"gokarna_{timestamp}_{message_id}.png"
        try:
            image = Image.open(BytesIO(base64.b64decode(encoded)))
            image.save(str(filepath), format="PNG")
        except (OSError, ValueError) as e:
            print(f"   ⚠️ Could not save image to gallery: {e}")
            return None
        print(f"   ✅ Image saved: {filepath}")
        return filepath

    # ========== VIDEO ==========

    async def generate_video(self,
                             session_id: str,
                             files: List[UploadedFile],
                             prompt: str,
                             aspect_ratio: str = "16:9") -> Optional[ChatMessage]:
        """
        Animate exactly one staged image with Veo.

        Returns:
            The resolved message, or None when the staged files don't fit
        """
        if aspect_ratio not in ASPECT_RATIOS:
            raise ValueError(f"Aspect ratio must be one of {', '.join(ASPECT_RATIOS)}")

        if len(files) != 1 or not files[0].is_image:
            self.store.add_system_message(VIDEO_NEEDS_ONE_IMAGE, session_id)
            return None

        file = files[0]
        placeholder = placeholder_message(video_state=VideoState.GENERATING)
        self.store.append_messages(
            session_id,
            user_message(f"(Video Prompt: {prompt})", [file]),
            placeholder,
        )

        print(f"🎬 Generating video from {file.name} ({aspect_ratio}, 720p)")
        try:
            job = await self.backend.generate_video(file, prompt, aspect_ratio)
            polls = 0
            while not job.done:
                await asyncio.sleep(self.poll_interval)
                job = await self.backend.poll_video_job(job)
                polls += 1
                print(f"   ⏳ Still rendering... ({polls})")

            if not job.result_uri:
                raise VideoResultMissing()
            url = self.backend.video_url(job.result_uri)
        except Exception as e:
            print(f"   ❌ Video generation failed: {e}")
            reason = str(e) or "An unknown error occurred."
            return self._update(
                session_id, placeholder.id,
                lambda m: m.advance(
                    MessageState.FAILED,
                    text=f"Sorry, I couldn't generate the video. Error: {reason}",
                ).with_video_state(VideoState.FAILED),
            )

        print("   ✅ Video ready")
        return self._update(
            session_id, placeholder.id,
            lambda m: m.advance(MessageState.RESOLVED, text=VIDEO_TEXT, video_url=url)
                       .with_video_state(VideoState.DONE),
        )

    # ========== PLACEHOLDER RESOLUTION ==========

    def _update(self, session_id: str, message_id: int, update) -> Optional[ChatMessage]:
        session = self.store.replace_message(session_id, message_id, update)
        return session.find(message_id) if session else None

    def _resolve(self, session_id: str, message_id: int, **changes) -> Optional[ChatMessage]:
        return self._update(session_id, message_id, lambda m: m.advance(MessageState.RESOLVED, **changes))

    def _fail(self, session_id: str, message_id: int, text: str) -> Optional[ChatMessage]:
        return self._update(session_id, message_id, lambda m: m.advance(MessageState.FAILED, text=text))
