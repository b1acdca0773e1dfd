"""Tests for image and video generation."""

import asyncio

import pytest

from guide_artist import (
    EDITED_TEXT,
    GENERATED_TEXT,
    VIDEO_TEXT,
    GuideArtist,
    failure_variant,
)
from guide_gemini import (
    EmptyImageResult,
    ImageResult,
    RequestBlocked,
    SafetyBlocked,
    VideoJob,
)
from guide_models import MessageState, VideoState
from guide_phrases import IMAGE_FAILURES, VIDEO_NEEDS_ONE_IMAGE

from conftest import image_file, text_file


@pytest.fixture
def artist(store, backend, tmp_path):
    return GuideArtist(store, backend, output_dir=str(tmp_path / "gallery"), poll_interval=0)


class TestFailureVariant:
    @pytest.mark.parametrize("error,variant", [
        (SafetyBlocked("no"), "safety"),
        (RuntimeError("Response blocked by SAFETY filter"), "safety"),
        (EmptyImageResult(), "empty"),
        (RequestBlocked("OTHER"), "blocked"),
        (RuntimeError("503"), "generic"),
    ])
    def test_variants(self, error, variant):
        assert failure_variant(error) == variant


class TestGenerateImage:
    def test_success_attaches_data_uri_and_saves_png(self, artist, store, backend, png_image, tmp_path):
        backend.image_results.append(png_image)
        message = asyncio.run(artist.generate_image(store.active_id, "Om Beach", "Pixel Art"))

        assert backend.image_calls == [("generate", "A pixel art of: Om Beach")]
        assert message.state == MessageState.RESOLVED
        assert message.text == GENERATED_TEXT
        assert message.images[0].startswith("data:image/png;base64,")
        assert len(list((tmp_path / "gallery").glob("gokarna_*.png"))) == 1

        user_turn = store.active_session.messages[-2]
        assert user_turn.text == "Pixel Art"

    def test_text_only_reply_is_shown(self, artist, store, backend):
        backend.image_results.append(ImageResult(text="I can describe it instead."))
        message = asyncio.run(artist.generate_image(store.active_id, "x", "Anime"))
        assert message.state == MessageState.RESOLVED
        assert message.text == "I can describe it instead."
        assert not message.images

    @pytest.mark.parametrize("result,variant", [
        (ImageResult(block_reason="SAFETY"), "safety"),
        (ImageResult(block_reason="PROHIBITED_CONTENT"), "blocked"),
        (ImageResult(finish_reason="IMAGE_SAFETY"), "safety"),
        (ImageResult(), "empty"),
    ])
    def test_refusals_map_to_apologies(self, artist, store, backend, result, variant):
        backend.image_results.append(result)
        message = asyncio.run(artist.generate_image(store.active_id, "x", "Anime"))
        assert message.state == MessageState.FAILED
        assert message.text == IMAGE_FAILURES[variant]["generate"]

    def test_backend_error_is_generic(self, artist, store, backend):
        backend.image_results.append(RuntimeError("timeout"))
        message = asyncio.run(artist.generate_image(store.active_id, "x", "Anime"))
        assert message.text == IMAGE_FAILURES["generic"]["generate"]
        assert not message.is_loading


class TestEditImage:
    def test_edit_records_instruction_with_image(self, artist, store, backend, png_image):
        backend.image_results.append(png_image)
        message = asyncio.run(artist.edit_image(store.active_id, "add boats", image_file()))

        user_turn = store.active_session.messages[-2]
        assert user_turn.text == "(Edit Prompt: add boats)"
        assert user_turn.files[0].name == "beach.png"
        assert message.text == EDITED_TEXT

    def test_edit_failure_uses_edit_wording(self, artist, store, backend):
        backend.image_results.append(ImageResult(block_reason="SAFETY"))
        message = asyncio.run(artist.edit_image(store.active_id, "x", image_file()))
        assert message.text == IMAGE_FAILURES["safety"]["edit"]


class TestGenerateVideo:
    def test_polls_until_done(self, artist, store, backend):
        backend.video_jobs.extend([
            VideoJob(done=False, result_uri=None, operation="op"),
            VideoJob(done=False, result_uri=None, operation="op"),
            VideoJob(done=True, result_uri="https://files.example/v.mp4", operation="op"),
        ])
        message = asyncio.run(
            artist.generate_video(store.active_id, [image_file()], "waves rolling in", "9:16")
        )

        assert backend.video_calls == [("beach.png", "waves rolling in", "9:16")]
        assert backend.video_jobs == []
        assert message.state == MessageState.RESOLVED
        assert message.video_state == VideoState.DONE
        assert message.video_url == "https://files.example/v.mp4?key=test-key"
        assert message.text == VIDEO_TEXT
        assert store.active_session.messages[-2].text == "(Video Prompt: waves rolling in)"

    def test_missing_link_fails(self, artist, store, backend):
        backend.video_jobs.append(VideoJob(done=True, result_uri=None, operation="op"))
        message = asyncio.run(artist.generate_video(store.active_id, [image_file()], "pan"))

        assert message.state == MessageState.FAILED
        assert message.video_state == VideoState.FAILED
        assert message.text == (
            "Sorry, I couldn't generate the video. "
            "Error: Video generation completed but no download link was found."
        )

    def test_poll_error_fails(self, artist, store, backend):
        backend.video_jobs.extend([
            VideoJob(done=False, result_uri=None, operation="op"),
            RuntimeError("quota exceeded"),
        ])
        message = asyncio.run(artist.generate_video(store.active_id, [image_file()], "pan"))
        assert message.video_state == VideoState.FAILED
        assert message.text.endswith("Error: quota exceeded")

    @pytest.mark.parametrize("files", [
        [],
        [text_file()],
        [image_file("a.png"), image_file("b.png")],
    ])
    def test_needs_exactly_one_image(self, artist, store, backend, files):
        assert asyncio.run(artist.generate_video(store.active_id, files, "pan")) is None
        assert store.active_session.messages[-1].text == VIDEO_NEEDS_ONE_IMAGE
        assert backend.video_calls == []

    def test_rejects_unknown_aspect_ratio(self, artist, store):
        with pytest.raises(ValueError):
            asyncio.run(artist.generate_video(store.active_id, [image_file()], "pan", "1:1"))

    def test_deleted_session_is_left_alone(self, artist, store, backend):
        sid = store.active_id

        async def slow_poll(job):
            store.new_session()
            store.delete(sid)
            return VideoJob(done=True, result_uri="https://files.example/v.mp4", operation="op")

        backend.video_jobs.append(VideoJob(done=False, result_uri=None, operation="op"))
        backend.poll_video_job = slow_poll
        assert asyncio.run(artist.generate_video(sid, [image_file()], "pan")) is None
        assert store.get(sid) is None
