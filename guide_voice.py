"""
Guide Voice Module
==================
Reads the guide's replies aloud.

ElevenLabs renders the speech and pygame plays it. Without an ElevenLabs
key (or if the call fails) the macOS `say` command is used instead.

Markdown and the decorative emoji of the canned trip plan are stripped
before anything is spoken. cancel() stops playback immediately.
"""

import io
import os
import platform
import re
import subprocess
import threading
from typing import Optional

_SEPARATOR = "━━━━━━━━━━━━━━━━━━"
_MARKDOWN_LINK = re.compile(r"\[.*?\]\(.*?\)")
_DECORATIVE = re.compile(r"🌴|🌅|🏖️|🕉️|📍|🚗|🎯|🕓|⚠️|🧭|🛏️|👍|👎|•")


def clean_text_for_speech(text: str) -> str:
    """Remove what a speech engine would read out literally."""
    text = text.replace("**", "")
    text = _MARKDOWN_LINK.sub(" ", text)
    text = text.replace(_SEPARATOR, ". ")
    text = _DECORATIVE.sub(" ", text)
    return text.strip()


class GuideVoice:
    """
    Text-to-speech with ElevenLabs, interruptible at any point.
    """

    def __init__(self,
                 api_key: str = None,
                 voice_id: str = None,
                 model_id: str = "eleven_turbo_v2_5"):
        """
        Args:
            api_key: ElevenLabs API key (defaults to ELEVENLABS_API_KEY)
            voice_id: ElevenLabs voice (defaults to ELEVENLABS_VOICE_ID)
            model_id: ElevenLabs model; turbo v2.5 covers the Indian languages
        """
        self.api_key = api_key or os.getenv("ELEVENLABS_API_KEY")
        self.voice_id = voice_id or os.getenv("ELEVENLABS_VOICE_ID")
        self.model_id = model_id

        self._client = None
        self._pygame_initialized = False
        self._system_process: Optional[subprocess.Popen] = None
        self._cancelled = threading.Event()
        self._is_speaking = False

        if not (self.api_key and self.voice_id):
            print("⚠️  ELEVENLABS_API_KEY / ELEVENLABS_VOICE_ID not set. Using system voice.")

    def is_speaking(self) -> bool:
        return self._is_speaking

    def _init_elevenlabs(self):
        if self._client is not None or not self.api_key:
            return
        from elevenlabs import ElevenLabs
        self._client = ElevenLabs(api_key=self.api_key)
        print("🎤 ElevenLabs initialized.")

    def _init_pygame(self):
        if self._pygame_initialized:
            return
        import pygame
        pygame.mixer.init()
        self._pygame_initialized = True

    def speak(self, text: str, language_code: str = "en-US"):
        """Blocking: speak `text` until done or cancelled."""
        spoken = clean_text_for_speech(text)
        if not spoken:
            return

        self._cancelled.clear()
        self._is_speaking = True
        try:
            if self.api_key and self.voice_id:
                try:
                    self._speak_elevenlabs(spoken, language_code)
                    return
                except Exception as e:
                    print(f"⚠️  ElevenLabs error: {e}")
            if not self._cancelled.is_set():
                self._speak_system(spoken)
        finally:
            self._is_speaking = False

    def speak_async(self, text: str, language_code: str = "en-US") -> threading.Thread:
        thread = threading.Thread(target=self.speak, args=(text, language_code), daemon=True)
        thread.start()
        return thread

    def _speak_elevenlabs(self, text: str, language_code: str):
        self._init_elevenlabs()
        self._init_pygame()
        import pygame

        print(f"🗣️  Guide ({language_code}): \"{text[:50]}{'...' if len(text) > 50 else ''}\"")
        audio = self._client.text_to_speech.convert(
            voice_id=self.voice_id,
            text=text,
            model_id=self.model_id,
            output_format="mp3_22050_32",
        )
        audio_bytes = b"".join(audio)
        if self._cancelled.is_set():
            return

        pygame.mixer.music.load(io.BytesIO(audio_bytes))
        pygame.mixer.music.play()
        clock = pygame.time.Clock()
        while pygame.mixer.music.get_busy() and not self._cancelled.is_set():
            clock.tick(30)

    def _speak_system(self, text: str):
        """Fallback to the macOS `say` command."""
        if platform.system() != "Darwin":
            print("   (System TTS not available on this platform)")
            return
        print(f"🗣️  [System TTS] Guide: \"{text[:50]}{'...' if len(text) > 50 else ''}\"")
        self._system_process = subprocess.Popen(["say", text])
        try:
            self._system_process.wait()
        finally:
            self._system_process = None

    def cancel(self):
        """Stop whatever is being spoken right now."""
        self._cancelled.set()
        if self._pygame_initialized:
            import pygame
            pygame.mixer.music.stop()
        process = self._system_process
        if process is not None and process.poll() is None:
            process.terminate()
