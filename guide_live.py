"""
Guide Live Module
=================
Spoken conversation with Gemini over the Live API.

    idle -> connecting -> connected -> closed
                 |             |
                 +-------------+----> error

Three tasks run while connected, joined by two queues:

    microphone --(outbound queue)--> sender   --> Gemini
    Gemini     --> receiver --(inbound queue)--> dispatcher

The dispatcher keeps a running transcript (what the user said, what the
guide said) and queues the guide's audio back-to-back on a 24 kHz output
stream. When the user talks over the guide, Gemini sends an interruption
and everything still queued is dropped at once.

A failed connection or microphone is terminal for that conversation;
start a new one to try again.
"""

import asyncio
import base64
import threading
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np
from google.genai import types
from pydantic import BaseModel

from guide_senses import (
    LIVE_FRAME_SIZE,
    MIC_SAMPLE_RATE,
    GuideEars,
    MicrophoneUnavailable,
    float_to_pcm16,
    pcm16_to_float,
)

OUTPUT_SAMPLE_RATE = 24000
INPUT_MIME_TYPE = f"audio/pcm;rate={MIC_SAMPLE_RATE}"


class LiveStatus(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    ERROR = "error"


class TranscriptTurn(BaseModel):
    user: str = ""
    bot: str = ""
    is_final: bool = False


# =============================================================================
# PLAYBACK
# =============================================================================

class AudioOutput:
    """
    Mono float32 output stream that mixes clips at their scheduled time.

    The clock is the number of frames rendered so far, so scheduling and
    playback agree on "now" exactly.
    """

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE, device: int = None):
        self.sample_rate = sample_rate
        self.device = device
        self._stream = None
        self._frames_rendered = 0
        self._clips: List[Tuple[int, np.ndarray]] = []
        self._lock = threading.Lock()

    def start(self):
        if self._stream is not None:
            return
        import sounddevice as sd
        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=1,
            dtype="float32",
            device=self.device,
            callback=self._callback,
        )
        self._stream.start()
        print(f"🔊 Speaker open ({self.sample_rate} Hz)")

    def clock(self) -> float:
        return self._frames_rendered / self.sample_rate

    def play_at(self, samples: np.ndarray, start_time: float):
        with self._lock:
            self._clips.append((int(round(start_time * self.sample_rate)), samples))

    def _callback(self, outdata, frames, time_info, status):
        block = np.zeros(frames, dtype=np.float32)
        block_start = self._frames_rendered
        block_end = block_start + frames

        with self._lock:
            remaining = []
            for start, samples in self._clips:
                end = start + len(samples)
                if end <= block_start:
                    continue
                if start < block_end:
                    lo = max(start, block_start)
                    hi = min(end, block_end)
                    block[lo - block_start:hi - block_start] += samples[lo - start:hi - start]
                if end > block_end:
                    remaining.append((start, samples))
            self._clips = remaining

        outdata[:, 0] = np.clip(block, -1.0, 1.0)
        self._frames_rendered = block_end

    def pending_clips(self) -> int:
        with self._lock:
            return len(self._clips)

    def stop_all(self):
        with self._lock:
            self._clips = []

    def close(self):
        self.stop_all()
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            print("🔊 Speaker closed.")


class PlaybackScheduler:
    """
    Places each incoming clip right after the previous one.

    start = max(next_start, now); next_start = start + duration
    """

    def __init__(self, clock: Callable[[], float], output=None):
        self.clock = clock
        self.output = output
        self.next_start = 0.0
        self.scheduled: List[Tuple[float, float]] = []

    def schedule(self, duration: float) -> float:
        now = self.clock()
        self.scheduled = [(s, d) for s, d in self.scheduled if s + d > now]
        start = max(self.next_start, now)
        self.next_start = start + duration
        self.scheduled.append((start, duration))
        return start

    def play(self, samples: np.ndarray, sample_rate: int = OUTPUT_SAMPLE_RATE) -> float:
        start = self.schedule(len(samples) / sample_rate)
        if self.output is not None:
            self.output.play_at(samples, start)
        return start

    def interrupt(self):
        """Drop every queued or playing clip and forget the schedule."""
        if self.output is not None:
            self.output.stop_all()
        self.scheduled = []
        self.next_start = 0.0


# =============================================================================
# CONVERSATION
# =============================================================================

def _inline_audio(server_content) -> Optional[bytes]:
    model_turn = getattr(server_content, "model_turn", None)
    parts = getattr(model_turn, "parts", None) if model_turn else None
    if not parts:
        return None
    inline = getattr(parts[0], "inline_data", None)
    data = getattr(inline, "data", None) if inline else None
    if not data:
        return None
    if isinstance(data, str):
        return base64.b64decode(data)
    return data


class LiveConversation:
    """
    One live spoken conversation. Run it once; create a new one to reconnect.
    """

    def __init__(self,
                 backend,
                 ears: GuideEars = None,
                 output: AudioOutput = None,
                 on_update: Callable[["LiveConversation"], None] = None):
        """
        Args:
            backend: GeminiBackend (connect_realtime is used)
            ears: Microphone (defaults to a 16 kHz GuideEars)
            output: Speaker mixer (defaults to a 24 kHz AudioOutput)
            on_update: Called after every status change and server message
        """
        self.backend = backend
        self.ears = ears or GuideEars(sample_rate=MIC_SAMPLE_RATE)
        self.output = output or AudioOutput(OUTPUT_SAMPLE_RATE)
        self.scheduler = PlaybackScheduler(self.output.clock, self.output)
        self.on_update = on_update

        self.status = LiveStatus.IDLE
        self.error: Optional[str] = None
        self.transcripts: List[TranscriptTurn] = []

        self.inbound: Optional[asyncio.Queue] = None
        self.outbound: Optional[asyncio.Queue] = None

        self._input_text = ""
        self._output_text = ""
        self._stop: Optional[asyncio.Event] = None

    def _set_status(self, status: LiveStatus):
        self.status = status
        print(f"🎙️  Live: {status.value}")
        if self.on_update:
            self.on_update(self)

    # ========== LIFECYCLE ==========

    async def run(self):
        """Connect, converse until stop() or the server closes, then tear everything down."""
        if self.status != LiveStatus.IDLE:
            raise RuntimeError("A live conversation can only be started once")

        self._stop = asyncio.Event()
        self.inbound = asyncio.Queue()
        self.outbound = asyncio.Queue()
        self._set_status(LiveStatus.CONNECTING)
        loop = asyncio.get_running_loop()

        try:
            async with self.backend.connect_realtime() as session:
                self.ears.stream_frames(loop, self.outbound, LIVE_FRAME_SIZE)
                self.output.start()
                self._set_status(LiveStatus.CONNECTED)
                await self._converse(session)
            self._teardown()
            self._set_status(LiveStatus.CLOSED)
        except asyncio.CancelledError:
            self._teardown()
            self._set_status(LiveStatus.CLOSED)
            raise
        except MicrophoneUnavailable as e:
            print(f"   ❌ Microphone unavailable: {e}")
            self.error = e.reason
            self._teardown()
            self._set_status(LiveStatus.ERROR)
        except Exception as e:
            print(f"   ❌ Live session error: {e}")
            self.error = str(e) or e.__class__.__name__
            self._teardown()
            self._set_status(LiveStatus.ERROR)

    async def _converse(self, session):
        workers = [
            asyncio.create_task(self._send_frames(session)),
            asyncio.create_task(self._receive_messages(session)),
            asyncio.create_task(self._dispatch_messages()),
        ]
        stopper = asyncio.create_task(self._stop.wait())
        tasks = workers + [stopper]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # Messages received before the hang-up still count
        while not self.inbound.empty():
            self.handle_server_message(self.inbound.get_nowait())

        for task in done:
            if task is not stopper and task.exception() is not None:
                raise task.exception()

    def stop(self):
        """Ask a running conversation to hang up."""
        if self._stop is not None:
            self._stop.set()

    def _teardown(self):
        self.ears.stop()
        self.output.close()
        self.scheduler.interrupt()

    # ========== CHANNELS ==========

    async def _send_frames(self, session):
        while True:
            frame = await self.outbound.get()
            await session.send_realtime_input(
                audio=types.Blob(data=float_to_pcm16(frame), mime_type=INPUT_MIME_TYPE)
            )

    async def _receive_messages(self, session):
        # receive() ends after each completed turn; an empty pass means the server hung up
        while True:
            received = 0
            async for message in session.receive():
                received += 1
                await self.inbound.put(message)
            if received == 0:
                return

    async def _dispatch_messages(self):
        while True:
            message = await self.inbound.get()
            self.handle_server_message(message)

    # ========== SERVER MESSAGES ==========

    def handle_server_message(self, message):
        content = getattr(message, "server_content", None)
        if content is None:
            return

        input_transcription = getattr(content, "input_transcription", None)
        if input_transcription is not None and input_transcription.text is not None:
            self._input_text = input_transcription.text
            last = self.transcripts[-1] if self.transcripts else None
            if last is not None and not last.is_final:
                last.user = self._input_text
            else:
                self.transcripts.append(TranscriptTurn(user=self._input_text))

        output_transcription = getattr(content, "output_transcription", None)
        if output_transcription is not None and output_transcription.text is not None:
            self._output_text += output_transcription.text
            if self.transcripts:
                self.transcripts[-1].bot = self._output_text

        if getattr(content, "turn_complete", False):
            if self.transcripts:
                self.transcripts[-1].is_final = True
            self._input_text = ""
            self._output_text = ""

        audio = _inline_audio(content)
        if audio:
            self.play_audio(audio)

        if getattr(content, "interrupted", False):
            self.scheduler.interrupt()

        if self.on_update:
            self.on_update(self)

    def play_audio(self, pcm: bytes) -> float:
        """Queue one 24 kHz PCM16 clip; returns its start time on the output clock."""
        pcm = pcm[:len(pcm) - len(pcm) % 2]
        return self.scheduler.play(pcm16_to_float(pcm), OUTPUT_SAMPLE_RATE)
