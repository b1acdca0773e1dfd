"""
Guide Senses Module
===================
Microphone input for the guide:
1. Dictation: record until the speaker goes quiet, then transcribe
2. Live frames: fixed-size float frames pushed onto an asyncio queue

Voice activity is judged on a smoothed RMS against a noise floor that
calibrates itself while nobody is talking.

sounddevice is imported when the microphone is opened, so the rest of
the guide runs on machines without PortAudio.
"""

import asyncio
import os
import tempfile
import time
from collections import deque
from typing import Callable, Optional

import numpy as np
from scipy.io import wavfile

MIC_SAMPLE_RATE = 16000
LIVE_FRAME_SIZE = 4096


class MicrophoneUnavailable(RuntimeError):
    """
    The microphone could not be used.

    reason is one of: not-allowed, no-speech, audio-capture, unsupported, other
    """

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        super().__init__(f"{reason}: {detail}" if detail else reason)


# =============================================================================
# PCM CONVERSION
# =============================================================================

def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Float samples in [-1, 1] to little-endian signed 16-bit PCM."""
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * 32767).astype("<i2").tobytes()


def pcm16_to_float(data: bytes) -> np.ndarray:
    """Little-endian signed 16-bit PCM to float32 samples in [-1, 1)."""
    return np.frombuffer(data, dtype="<i2").astype(np.float32) / 32768.0


# =============================================================================
# MICROPHONE
# =============================================================================

class GuideEars:
    """
    Microphone handler with smoothed voice activity detection.
    """

    def __init__(self,
                 device_index: int = None,
                 sample_rate: int = MIC_SAMPLE_RATE,
                 base_threshold: float = 0.015,
                 silence_duration: float = 3.0,
                 smoothing_window: int = 5):
        """
        Args:
            device_index: Which microphone to use (None = default)
            sample_rate: Capture rate in Hz
            base_threshold: Starting voice threshold before calibration
            silence_duration: Seconds of quiet that end a dictation
            smoothing_window: Frames averaged for the RMS
        """
        self.device_index = device_index
        self.sample_rate = sample_rate
        self.base_threshold = base_threshold
        self.silence_duration = silence_duration

        self.is_running = False
        self.is_listening = False
        self._stream = None
        self._on_frame: Optional[Callable[[np.ndarray], None]] = None

        self._audio_buffer = []
        self._rms_history = deque(maxlen=smoothing_window)
        self._smoothed_rms = 0.0

        self._noise_samples = deque(maxlen=100)
        self._effective_threshold = base_threshold

    def _audio_callback(self, indata, frames, time_info, status):
        """Runs on the audio thread for every captured block."""
        if status:
            print(f"⚠️  Audio status: {status}")

        chunk = indata[:, 0].copy()

        rms = float(np.sqrt(np.mean(chunk ** 2))) if len(chunk) else 0.0
        self._rms_history.append(rms)
        self._smoothed_rms = float(np.mean(self._rms_history))

        if not self.is_listening and rms < self._effective_threshold * 1.5:
            self._noise_samples.append(rms)
            if len(self._noise_samples) >= 50:
                noise_floor = float(np.percentile(list(self._noise_samples), 75))
                self._effective_threshold = max(noise_floor * 5.0, 0.003)

        if self.is_listening:
            self._audio_buffer.append(chunk)

        if self._on_frame is not None:
            self._on_frame(chunk)

    def start(self, block_size: int = None, on_frame: Callable[[np.ndarray], None] = None):
        """
        Open the input stream.

        Args:
            block_size: Samples per callback (default 100 ms)
            on_frame: Called from the audio thread with each block

        Raises:
            MicrophoneUnavailable: no audio backend, no permission, or device busy
        """
        if self._stream is not None:
            return

        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise MicrophoneUnavailable("unsupported", str(e))

        self._on_frame = on_frame
        print("👂 Opening microphone...")
        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                device=self.device_index,
                blocksize=block_size or int(self.sample_rate * 0.1),
                callback=self._audio_callback,
            )
            self._stream.start()
        except Exception as e:
            self._stream = None
            self._on_frame = None
            lowered = str(e).lower()
            if "permission" in lowered or "not authorized" in lowered:
                raise MicrophoneUnavailable("not-allowed", str(e))
            raise MicrophoneUnavailable("audio-capture", str(e))

        self.is_running = True
        print(f"👂 Microphone active ({self.sample_rate} Hz)")

    def stream_frames(self, loop: asyncio.AbstractEventLoop, frames: asyncio.Queue,
                      frame_size: int = LIVE_FRAME_SIZE):
        """Push every captured frame onto `frames`, safely across the audio thread."""
        self.start(
            block_size=frame_size,
            on_frame=lambda chunk: loop.call_soon_threadsafe(frames.put_nowait, chunk),
        )

    def stop(self):
        self.is_running = False
        self.is_listening = False
        self._on_frame = None
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            print("👂 Microphone stopped.")

    def record_until_silence(self,
                             silence_duration: float = None,
                             max_duration: float = 60.0,
                             no_speech_timeout: float = 8.0) -> Optional[np.ndarray]:
        """
        Blocking: record until the speaker has been quiet for silence_duration.

        Returns:
            Float samples, or None if nobody spoke
        """
        if silence_duration is None:
            silence_duration = self.silence_duration

        print(f"🎙️  Listening (threshold: {self._effective_threshold:.4f})...")
        self._audio_buffer = []
        self.is_listening = True

        start_time = time.time()
        speech_started = False
        silence_start = None

        while (time.time() - start_time) < max_duration:
            now = time.time()
            if self._smoothed_rms > self._effective_threshold:
                if not speech_started:
                    speech_started = True
                    print("   📢 Speech detected")
                silence_start = None
            elif speech_started:
                if silence_start is None:
                    silence_start = now
                elif now - silence_start > silence_duration:
                    print(f"   🔇 End of speech ({now - silence_start:.1f}s quiet)")
                    break
            elif now - start_time > no_speech_timeout:
                break
            time.sleep(0.05)

        self.is_listening = False

        if not speech_started or not self._audio_buffer:
            return None

        audio = np.concatenate(self._audio_buffer)
        print(f"🎙️  Captured {len(audio) / self.sample_rate:.1f} seconds")
        return audio

    def save_audio_to_file(self, audio: np.ndarray, filename: str = None) -> str:
        """Write samples to a 16-bit WAV file (temp file by default)."""
        if filename is None:
            fd, filename = tempfile.mkstemp(suffix=".wav")
            os.close(fd)

        if audio.dtype == np.float32:
            audio = (np.clip(audio, -1.0, 1.0) * 32767).astype(np.int16)
        else:
            audio = audio.astype(np.int16)

        wavfile.write(filename, self.sample_rate, audio)
        return filename


# =============================================================================
# TRANSCRIPTION
# =============================================================================

class TranscriptionService:
    """
    Speech-to-text with Google Speech Recognition, in the chat's language.
    """

    def __init__(self):
        self._recognizer = None

    def transcribe(self, audio_file_path: str, language_code: str = "en-US") -> str:
        """
        Returns:
            The transcript, or "" if nothing intelligible was said

        Raises:
            MicrophoneUnavailable: the recognition service could not be reached
        """
        import speech_recognition as sr

        if self._recognizer is None:
            self._recognizer = sr.Recognizer()
            self._recognizer.energy_threshold = 300
            self._recognizer.dynamic_energy_threshold = False

        with sr.AudioFile(audio_file_path) as source:
            audio = self._recognizer.record(source)

        try:
            return self._recognizer.recognize_google(audio, language=language_code)
        except sr.UnknownValueError:
            print("   (Speech not understood)")
            return ""
        except sr.RequestError as e:
            raise MicrophoneUnavailable("other", str(e))


async def dictate(ears: GuideEars, transcriber: TranscriptionService, language_code: str) -> str:
    """
    Record one utterance and transcribe it without blocking the event loop.

    Raises:
        MicrophoneUnavailable: device trouble, or "no-speech" when nothing was heard
    """
    loop = asyncio.get_running_loop()
    ears.start()
    try:
        audio = await loop.run_in_executor(None, ears.record_until_silence)
    finally:
        ears.stop()

    if audio is None:
        raise MicrophoneUnavailable("no-speech")

    path = ears.save_audio_to_file(audio)
    try:
        text = await loop.run_in_executor(None, transcriber.transcribe, path, language_code)
    finally:
        os.remove(path)

    if not text.strip():
        raise MicrophoneUnavailable("no-speech")
    return text.strip()
