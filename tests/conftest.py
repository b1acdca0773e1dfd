"""Shared fixtures: an in-memory store and a scripted Gemini backend."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from guide_gemini import ImageResult, ReplyChunk, VideoJob
from guide_memory import MemoryStorage, SessionStore
from guide_models import UploadedFile


def png_bytes(size=(4, 4), color=(255, 128, 0)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def image_file(name="beach.png") -> UploadedFile:
    return UploadedFile(
        name=name,
        mime_type="image/png",
        data=base64.b64encode(png_bytes()).decode("ascii"),
    )


def text_file(name="notes.txt", content="Bring sunscreen.") -> UploadedFile:
    return UploadedFile(name=name, mime_type="text/plain", data=content)


class FakeBackend:
    """
    Stands in for GeminiBackend. Each reply is a list of ReplyChunk, or an
    exception raised after the chunks before it were yielded.
    """

    def __init__(self):
        self.replies = []
        self.conversations = []
        self.sent_parts = []
        self.image_results = []
        self.image_calls = []
        self.video_jobs = []
        self.video_calls = []
        self.summary = "Short version."
        self.summary_error = None
        self.api_key = "test-key"

    def start_conversation(self, language_code, history):
        chat = {"language_code": language_code, "history": history}
        self.conversations.append(chat)
        return chat

    async def stream_reply(self, chat, parts):
        self.sent_parts.append(parts)
        script = self.replies.pop(0) if self.replies else [ReplyChunk("Namaste!", [])]
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

    async def generate_image(self, prompt):
        self.image_calls.append(("generate", prompt))
        return self._next_image()

    async def edit_image(self, file, prompt):
        self.image_calls.append(("edit", file.name, prompt))
        return self._next_image()

    def _next_image(self):
        result = self.image_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def generate_video(self, file, prompt, aspect_ratio):
        self.video_calls.append((file.name, prompt, aspect_ratio))
        return self._next_job()

    async def poll_video_job(self, job):
        return self._next_job()

    def _next_job(self):
        job = self.video_jobs.pop(0)
        if isinstance(job, Exception):
            raise job
        return job

    def video_url(self, uri):
        return f"{uri}?key={self.api_key}"

    async def summarize(self, text):
        if self.summary_error:
            raise self.summary_error
        return self.summary


@pytest.fixture
def store():
    session_store = SessionStore(MemoryStorage())
    session_store.init()
    return session_store


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def png_image():
    return ImageResult(image_data=png_bytes(), mime_type="image/png")


@pytest.fixture
def done_video():
    return VideoJob(done=True, result_uri="https://example.com/video.mp4", operation=None)
