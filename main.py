#!/usr/bin/env python3
"""
Gokarna Guide - Travel Assistant for Gokarna, Karnataka
=======================================================
A terminal chat with Gemini that can:
1. Answer with Google Search and Maps grounding, streamed as it types
2. Paint or edit images, and turn a photo into a short video
3. Speak in six languages, read replies aloud and take dictation
4. Hold a live spoken conversation

Chats are saved between runs (see GUIDE_DATA_DIR).

Usage:
    python3 main.py             # Chat
    python3 main.py --live      # Start in a live conversation
    python3 main.py --no-tts    # Never read replies aloud
"""

import asyncio
import shlex
from typing import List, Optional, Set

from guide_mode import (
    ChatStage,
    get_stage_display_name,
    load_config,
    parse_args,
    set_stage,
)
from guide_artist import GuideArtist
from guide_brain import GuideBrain
from guide_gemini import GeminiBackend
from guide_live import LiveConversation, LiveStatus
from guide_memory import JsonFileStorage, SessionStore
from guide_models import ChatMessage, MessageState, Sender, UnsupportedFileType, UploadedFile
from guide_phrases import (
    FILE_UNREADABLE,
    LOCATION_UNAVAILABLE,
    MIC_ERRORS,
)
from guide_router import IntentRouter, RouteKind
from guide_senses import GuideEars, MicrophoneUnavailable, TranscriptionService, dictate
from guide_voice import GuideVoice

HELP_TEXT = """Commands:
  /new                      Start a new chat
  /sessions                 List chats
  /select <n>               Switch to chat n
  /rename <title>           Rename the current chat
  /delete [n]               Delete chat n (default: current)
  /clear                    Delete every chat
  /attach <path>            Stage an image or .txt file for the next message
  /files                    Show staged files
  /unstage                  Drop staged files
  /video <prompt> [--portrait]  Animate the one staged image
  /summarize                Summarize the last reply
  /gallery                  List generated images
  /tts                      Toggle read-aloud
  /mic                      Dictate a message
  /live                     Live spoken conversation (Enter to hang up)
  /help                     This help
  /quit                     Exit
  #<n>                      Pick suggestion n from the last reply"""


def render_message(message: ChatMessage) -> str:
    if message.is_welcome:
        return ""
    if message.is_system:
        return f"   ℹ️  {message.text}"

    who = "You" if message.sender == Sender.USER else "Guide"
    lines = [f"{who}: {message.text}" if message.text else f"{who}:"]
    for file in message.files or []:
        lines.append(f"   📎 {file.name}")
    for image in message.images or []:
        lines.append(f"   🖼️  image ({len(image) // 1024} KB data URI)")
    if message.video_url:
        lines.append(f"   🎬 {message.video_url}")
    if message.sources:
        lines.append("   Sources:")
        for source in message.sources:
            lines.append(f"     - {source.title}: {source.uri}")
    return "\n".join(lines)


def render_suggestions(message: ChatMessage) -> str:
    return "  ".join(f"#{i + 1} {s.text}" for i, s in enumerate(message.suggestions or []))


class GokarnaGuide:
    """
    The complete guide: store, Gemini, router, media, speech.
    """

    def __init__(self, config):
        print("=" * 60)
        print("  🌴 GOKARNA GUIDE")
        print("  Initializing...")
        print("=" * 60)

        self.config = config
        self.store = SessionStore(JsonFileStorage(config.data_dir))
        self.store.init()

        self.backend = GeminiBackend()
        self.brain = GuideBrain(self.store, self.backend, location=config.location)
        self.artist = GuideArtist(self.store, self.backend, output_dir=config.art_dir)
        self.voice = GuideVoice() if config.tts_allowed else None
        self.router = IntentRouter(self.store, self.brain, self.artist, voice=self.voice)

        self.ears = GuideEars()
        self.transcriber = TranscriptionService()

        self.staged_files: List[UploadedFile] = []
        self._background: Set[asyncio.Task] = set()
        self._shown_ids: Set[int] = set()

        self._streamed = False
        self.brain.on_delta = self._print_delta

        print(f"  Stage: {get_stage_display_name()}")
        print("=" * 60)
        print()

    # ========== OUTPUT ==========

    def _show_new_messages(self):
        """Print messages of the active chat that haven't been shown (or have just settled)."""
        session = self.store.active_session
        if session is None:
            return
        for message in session.messages:
            if message.id in self._shown_ids or message.is_loading:
                continue
            self._shown_ids.add(message.id)
            text = render_message(message)
            if text:
                print(text)
            if message.suggestions:
                print(f"   {render_suggestions(message)}")

    def _show_session(self):
        session = self.store.active_session
        self._shown_ids = set()
        print(f"\n💬 {session.title}  [{self.store.active_language.native_name}]")
        print("-" * 60)
        self._show_new_messages()

    def _speak_latest(self):
        if not self.voice or not self.store.tts_enabled:
            return
        session = self.store.active_session
        if not session or not session.messages:
            return
        last = session.messages[-1]
        if last.sender == Sender.BOT and not last.is_system and last.text:
            self.voice.speak_async(last.text, session.language_code)

    def _notice(self, text: str):
        self.store.add_system_message(text)
        self._show_new_messages()

    # ========== SUBMISSIONS ==========

    def _print_delta(self, text: str):
        if not self._streamed:
            print("Guide: ", end="")
            self._streamed = True
        print(text, end="", flush=True)

    async def send(self, text: str, prompt: Optional[str] = None):
        files, self.staged_files = self.staged_files, []
        session = self.store.active_session
        if session:
            self._shown_ids.update(m.id for m in session.messages if not m.is_loading)

        self._streamed = False
        route = await self.router.submit(text, files, prompt=prompt)
        if self._streamed:
            print()

        session = self.store.active_session
        if session is None:
            return
        for message in session.messages:
            if message.id in self._shown_ids:
                continue
            if message.sender == Sender.USER:
                # Typed by the user; already on screen
                self._shown_ids.add(message.id)
            elif (route.kind == RouteKind.CONVERSE and self._streamed
                    and message.state == MessageState.RESOLVED):
                self._shown_ids.add(message.id)
                for source in message.sources or []:
                    print(f"     - {source.title}: {source.uri}")
        self._show_new_messages()
        self._speak_latest()

    async def pick_suggestion(self, index: int):
        session = self.store.active_session
        with_chips = [m for m in session.messages if m.suggestions] if session else []
        if not with_chips:
            print("   (No suggestions to pick from)")
            return
        chips = with_chips[-1].suggestions
        if not 0 <= index < len(chips):
            print(f"   (Pick 1-{len(chips)})")
            return
        chip = chips[index]
        print(f"You: {chip.text}")
        await self.send(chip.text, prompt=chip.prompt)

    def _run_in_background(self, coroutine):
        task = asyncio.create_task(coroutine)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _video(self, args: List[str]):
        portrait = "--portrait" in args
        prompt = " ".join(a for a in args if a != "--portrait").strip()
        if not prompt:
            print("   Usage: /video <prompt> [--portrait]")
            return
        files, self.staged_files = self.staged_files, []
        session_id = self.store.active_id

        async def render():
            await self.artist.generate_video(session_id, files, prompt, "9:16" if portrait else "16:9")
            self._show_new_messages()

        self._run_in_background(render())
        print("   🎬 Video started; keep chatting, it will appear here when ready.")

    async def _summarize(self):
        session = self.store.active_session
        replies = [m for m in session.messages
                   if m.sender == Sender.BOT and not m.is_system and m.text and not m.is_loading]
        if not replies:
            print("   (Nothing to summarize yet)")
            return
        await self.brain.summarize(replies[-1].text)
        self._show_new_messages()

    async def _dictate(self):
        language = self.store.active_language
        print(f"🎙️  Speak now ({language.name})... stops after 3 seconds of quiet")
        try:
            text = await dictate(self.ears, self.transcriber, language.code)
        except MicrophoneUnavailable as e:
            self._notice(MIC_ERRORS.get(e.reason, MIC_ERRORS["other"]))
            return
        print(f"You: {text}")
        await self.send(text)

    async def _live(self):
        if self.voice:
            self.voice.cancel()
        set_stage(ChatStage.LIVE_CHAT)
        print(f"\n{get_stage_display_name()}  (press Enter to hang up)")

        printed = {"turns": 0}

        def on_update(conversation: LiveConversation):
            finals = [t for t in conversation.transcripts if t.is_final]
            for turn in finals[printed["turns"]:]:
                print(f"   You: {turn.user}")
                print(f"   Guide: {turn.bot}")
            printed["turns"] = len(finals)

        conversation = LiveConversation(self.backend, on_update=on_update)
        loop = asyncio.get_running_loop()
        session_task = asyncio.create_task(conversation.run())
        hang_up = loop.run_in_executor(None, input)

        await asyncio.wait([session_task, hang_up], return_when=asyncio.FIRST_COMPLETED)
        conversation.stop()
        await session_task

        if conversation.status == LiveStatus.ERROR:
            print(f"   ❌ Live conversation failed: {conversation.error}")
            if conversation.error in MIC_ERRORS:
                self.store.add_system_message(MIC_ERRORS[conversation.error])
        if not hang_up.done():
            print("   (Press Enter to return to chat)")
        await hang_up

        set_stage(ChatStage.CHAT)
        print(f"\n{get_stage_display_name()}")
        self._show_session()

    # ========== COMMANDS ==========

    def _session_at(self, arg: str):
        try:
            index = int(arg) - 1
        except ValueError:
            return None
        sessions = self.store.sessions
        return sessions[index] if 0 <= index < len(sessions) else None

    async def handle_command(self, line: str) -> bool:
        """Returns False when the guide should exit."""
        try:
            parts = shlex.split(line)
        except ValueError:
            parts = line.split()
        command, args = parts[0].lower(), parts[1:]

        if command in ("/quit", "/exit"):
            return False

        if command == "/help":
            print(HELP_TEXT)
        elif command == "/new":
            if self.voice:
                self.voice.cancel()
            self.store.new_session()
            self._show_session()
        elif command == "/sessions":
            for i, session in enumerate(self.store.sessions):
                marker = "▶" if session.id == self.store.active_id else " "
                print(f" {marker} {i + 1}. {session.title}  ({session.language_code}, {len(session.messages)} messages)")
        elif command == "/select":
            session = self._session_at(args[0]) if args else None
            if session is None:
                print("   Usage: /select <n>  (see /sessions)")
            else:
                if self.voice:
                    self.voice.cancel()
                self.store.select(session.id)
                self._show_session()
        elif command == "/rename":
            if not self.store.rename(self.store.active_id, " ".join(args)):
                print("   Usage: /rename <title>")
        elif command == "/delete":
            session = self._session_at(args[0]) if args else self.store.active_session
            if session is None:
                print("   Usage: /delete [n]")
            else:
                self.store.delete(session.id)
                print(f"   🗑️  Deleted \"{session.title}\"")
                self._show_session()
        elif command == "/clear":
            if self.voice:
                self.voice.cancel()
            self.store.clear_all()
            self._show_session()
        elif command == "/attach":
            if not args:
                print("   Usage: /attach <path>")
            else:
                self._attach(" ".join(args))
        elif command == "/files":
            if not self.staged_files:
                print("   (No files staged)")
            for file in self.staged_files:
                print(f"   📎 {file.name} ({file.mime_type})")
        elif command == "/unstage":
            self.staged_files = []
            print("   Staged files cleared.")
        elif command == "/video":
            await self._video(args)
        elif command == "/summarize":
            await self._summarize()
        elif command == "/gallery":
            images = self.store.generated_images()
            print(f"   🖼️  {len(images)} image(s); saved copies in {self.artist.get_gallery_path()}")
            for image in images:
                session = self.store.get(image.session_id)
                print(f"     - \"{session.title if session else '?'}\" message {image.message_id}")
        elif command == "/tts":
            if not self.voice:
                print("   Read-aloud is disabled for this run (--no-tts).")
            else:
                self.store.set_tts_enabled(not self.store.tts_enabled)
                if not self.store.tts_enabled:
                    self.voice.cancel()
                print(f"   🔈 Read-aloud {'on' if self.store.tts_enabled else 'off'}")
        elif command == "/mic":
            await self._dictate()
        elif command == "/live":
            await self._live()
        else:
            print(f"   Unknown command {command}. Try /help")
        return True

    def _attach(self, path: str):
        try:
            file = UploadedFile.from_path(path)
        except UnsupportedFileType as e:
            print(f"   ⚠️ {e}. Attach images or .txt files.")
            return
        except OSError as e:
            print(f"   ⚠️ {e}")
            self._notice(FILE_UNREADABLE)
            return
        self.staged_files.append(file)
        print(f"   📎 Staged {file.name} ({file.mime_type})")

    # ========== MAIN LOOP ==========

    async def run(self):
        if self.config.location is None:
            self.store.add_system_message(LOCATION_UNAVAILABLE)
        self._show_session()
        print("   Type a message, pick a suggestion with #n, or /help\n")

        if self.config.start_stage == ChatStage.LIVE_CHAT:
            await self._live()

        loop = asyncio.get_running_loop()
        try:
            while True:
                line = await loop.run_in_executor(None, input, "> ")
                line = line.strip()
                if not line:
                    continue
                if line.startswith("/"):
                    if not await self.handle_command(line):
                        break
                elif line.startswith("#") and line[1:].isdigit():
                    await self.pick_suggestion(int(line[1:]) - 1)
                else:
                    await self.send(line)
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            print("\n👋 Signing off...")
            if self.voice:
                self.voice.cancel()
            await self.brain.wait_idle()
            self.brain.close()


async def main():
    """Entry point."""
    config = load_config(parse_args())
    guide = GokarnaGuide(config)
    await guide.run()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
