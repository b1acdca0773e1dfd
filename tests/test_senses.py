"""Tests for microphone helpers, dictation and speech cleanup."""

import asyncio

import numpy as np
import pytest
from scipy.io import wavfile

from guide_senses import (
    GuideEars,
    MicrophoneUnavailable,
    dictate,
    float_to_pcm16,
    pcm16_to_float,
)
from guide_voice import clean_text_for_speech


class TestPcm:
    def test_float_to_pcm16_clips_and_scales(self):
        data = float_to_pcm16(np.array([0.0, 1.0, -1.0, 2.0], dtype=np.float32))
        assert np.frombuffer(data, dtype="<i2").tolist() == [0, 32767, -32767, 32767]

    def test_pcm16_to_float(self):
        data = np.array([0, 16384, -32768], dtype="<i2").tobytes()
        assert pcm16_to_float(data).tolist() == [0.0, 0.5, -1.0]


class TestGuideEars:
    def test_callback_forwards_frames(self):
        ears = GuideEars()
        frames = []
        ears._on_frame = frames.append
        ears._audio_callback(np.full((4, 1), 0.1, dtype=np.float32), 4, None, None)
        assert len(frames) == 1
        assert ears._smoothed_rms == pytest.approx(0.1)

    def test_callback_buffers_only_while_listening(self):
        ears = GuideEars()
        block = np.zeros((4, 1), dtype=np.float32)
        ears._audio_callback(block, 4, None, None)
        assert ears._audio_buffer == []
        ears.is_listening = True
        ears._audio_callback(block, 4, None, None)
        assert len(ears._audio_buffer) == 1

    def test_save_audio_writes_16bit_wav(self, tmp_path):
        ears = GuideEars(sample_rate=16000)
        path = ears.save_audio_to_file(np.zeros(1600, dtype=np.float32), str(tmp_path / "a.wav"))
        rate, data = wavfile.read(path)
        assert rate == 16000
        assert data.dtype == np.int16
        assert len(data) == 1600


class FakeEars:
    def __init__(self, audio):
        self.audio = audio
        self.started = False
        self.stopped = False

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def record_until_silence(self):
        return self.audio

    def save_audio_to_file(self, audio, filename=None):
        self.path = self.tmp / "utterance.wav"
        self.path.write_bytes(b"RIFF")
        return str(self.path)


class FakeTranscriber:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def transcribe(self, path, language_code):
        self.calls.append(language_code)
        return self.text


class TestDictate:
    def test_returns_trimmed_transcript_and_cleans_up(self, tmp_path):
        ears = FakeEars(np.ones(10, dtype=np.float32))
        ears.tmp = tmp_path
        transcriber = FakeTranscriber("  Om Beach kaise jaayein?  ")

        text = asyncio.run(dictate(ears, transcriber, "hi-IN"))

        assert text == "Om Beach kaise jaayein?"
        assert transcriber.calls == ["hi-IN"]
        assert ears.started and ears.stopped
        assert not ears.path.exists()

    def test_silence_is_no_speech(self, tmp_path):
        ears = FakeEars(None)
        with pytest.raises(MicrophoneUnavailable) as info:
            asyncio.run(dictate(ears, FakeTranscriber("x"), "en-US"))
        assert info.value.reason == "no-speech"
        assert ears.stopped

    def test_unintelligible_is_no_speech(self, tmp_path):
        ears = FakeEars(np.ones(10, dtype=np.float32))
        ears.tmp = tmp_path
        with pytest.raises(MicrophoneUnavailable) as info:
            asyncio.run(dictate(ears, FakeTranscriber(""), "en-US"))
        assert info.value.reason == "no-speech"


class TestCleanTextForSpeech:
    def test_strips_bold_links_and_decoration(self):
        text = "🌴 **Day 1**\n━━━━━━━━━━━━━━━━━━\n📍 See [map](https://maps.example) • Om Beach"
        cleaned = clean_text_for_speech(text)
        assert "**" not in cleaned
        assert "https://" not in cleaned
        assert "🌴" not in cleaned and "📍" not in cleaned and "•" not in cleaned
        assert ". " in cleaned
        assert cleaned.startswith("Day 1")

    def test_plain_text_unchanged(self):
        assert clean_text_for_speech("Sunset is at 6:40 PM.") == "Sunset is at 6:40 PM."
