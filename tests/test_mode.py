"""Tests for start-up configuration, stages and terminal rendering."""

from guide_mode import (
    ChatStage,
    get_stage,
    get_stage_display_name,
    is_live_stage,
    load_config,
    location_from_env,
    parse_args,
    set_stage,
)
from guide_models import Source, bot_message, system_message, user_message
from main import render_message, render_suggestions

from conftest import image_file


class TestStage:
    def test_switching_stage(self):
        set_stage(ChatStage.LIVE_CHAT)
        try:
            assert is_live_stage()
            assert "LIVE" in get_stage_display_name()
        finally:
            set_stage(ChatStage.CHAT)
        assert get_stage() == ChatStage.CHAT
        assert not is_live_stage()


class TestConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GUIDE_DATA_DIR", raising=False)
        monkeypatch.delenv("GUIDE_LATITUDE", raising=False)
        config = load_config(parse_args([]))
        assert config.start_stage == ChatStage.CHAT
        assert config.tts_allowed
        assert config.data_dir == "~/.gokarna_guide"

    def test_flags(self, tmp_path):
        config = load_config(parse_args(["--live", "--no-tts", "--data-dir", str(tmp_path)]))
        assert config.start_stage == ChatStage.LIVE_CHAT
        assert not config.tts_allowed
        assert config.data_dir == str(tmp_path)

    def test_location_from_env(self, monkeypatch):
        monkeypatch.setenv("GUIDE_LATITUDE", "14.5479")
        monkeypatch.setenv("GUIDE_LONGITUDE", "74.3188")
        assert location_from_env() == (14.5479, 74.3188)

    def test_unreadable_location_is_ignored(self, monkeypatch):
        monkeypatch.setenv("GUIDE_LATITUDE", "north")
        monkeypatch.setenv("GUIDE_LONGITUDE", "74.3")
        assert location_from_env() is None

    def test_missing_longitude(self, monkeypatch):
        monkeypatch.setenv("GUIDE_LATITUDE", "14.5")
        monkeypatch.delenv("GUIDE_LONGITUDE", raising=False)
        assert location_from_env() is None


class TestRendering:
    def test_bot_reply_with_sources(self):
        message = bot_message(
            "Try Namaste Cafe.",
            sources=[Source(uri="https://maps.example/n", title="Namaste Cafe")],
        )
        rendered = render_message(message)
        assert rendered.startswith("Guide: Try Namaste Cafe.")
        assert "Namaste Cafe: https://maps.example/n" in rendered

    def test_user_message_lists_files(self):
        rendered = render_message(user_message("edit this", [image_file()]))
        assert rendered.splitlines() == ["You: edit this", "   📎 beach.png"]

    def test_system_notice(self):
        assert "Summarizing..." in render_message(system_message("Summarizing..."))

    def test_suggestions_are_numbered(self):
        message = bot_message("Pick one", suggestions=[{"text": "Anime"}, {"text": "Pop Art"}])
        assert render_suggestions(message) == "#1 Anime  #2 Pop Art"
