"""
Guide Mode Module - Chat Stage / Live Stage
===========================================
Which screen the guide is on, plus start-up configuration:

CHAT STAGE (default):
- Typed (or dictated) messages, images, video, summaries
- Sessions are saved and can be switched

LIVE STAGE:
- Spoken back-and-forth with Gemini over the Live API
- Nothing from a live conversation is saved

Configuration comes from the command line first, then environment
variables (a .env file is honoured), then built-in defaults.
"""

import argparse
import os
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

from dotenv import load_dotenv


class ChatStage(Enum):
    CHAT = "chat"
    LIVE_CHAT = "live-chat"


# Global stage state
_current_stage: ChatStage = ChatStage.CHAT


def set_stage(stage: ChatStage):
    global _current_stage
    _current_stage = stage


def get_stage() -> ChatStage:
    return _current_stage


def is_live_stage() -> bool:
    return _current_stage == ChatStage.LIVE_CHAT


def get_stage_display_name() -> str:
    if is_live_stage():
        return "🎙️  LIVE CONVERSATION"
    return "💬 CHAT"


# ============================================================================
# Configuration
# ============================================================================

DEFAULT_DATA_DIR = "~/.gokarna_guide"
DEFAULT_ART_DIR = "guide_art"


class GuideConfig(NamedTuple):
    data_dir: str
    art_dir: str
    location: Optional[Tuple[float, float]]
    tts_allowed: bool
    start_stage: ChatStage


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Usage:
        python3 main.py                 # Chat stage
        python3 main.py --live          # Start in a live conversation
        python3 main.py --data-dir DIR  # Keep sessions somewhere else
        python3 main.py --no-tts        # Never read replies aloud
    """
    parser = argparse.ArgumentParser(
        description="Gokarna Guide - travel assistant for Gokarna, Karnataka",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  GOOGLE_API_KEY            Gemini key (required; API_KEY also accepted)
  GUIDE_DATA_DIR            Where sessions are saved (default ~/.gokarna_guide)
  GUIDE_ART_DIR             Gallery folder (default guide_art)
  GUIDE_LATITUDE/LONGITUDE  Your location for nearby searches
  ELEVENLABS_API_KEY        Voice for read-aloud replies
        """,
    )
    parser.add_argument("--live", action="store_true", help="Start in the live conversation stage")
    parser.add_argument("--data-dir", default=None, help="Session storage directory")
    parser.add_argument("--no-tts", action="store_true", help="Disable read-aloud for this run")
    return parser.parse_args(argv)


def location_from_env() -> Optional[Tuple[float, float]]:
    latitude = os.getenv("GUIDE_LATITUDE")
    longitude = os.getenv("GUIDE_LONGITUDE")
    if not latitude or not longitude:
        return None
    try:
        return float(latitude), float(longitude)
    except ValueError:
        print(f"⚠️  Ignoring unreadable location: {latitude}, {longitude}")
        return None


def load_config(args: argparse.Namespace) -> GuideConfig:
    load_dotenv()
    return GuideConfig(
        data_dir=args.data_dir or os.getenv("GUIDE_DATA_DIR", DEFAULT_DATA_DIR),
        art_dir=os.getenv("GUIDE_ART_DIR", DEFAULT_ART_DIR),
        location=location_from_env(),
        tts_allowed=not args.no_tts,
        start_stage=ChatStage.LIVE_CHAT if args.live else ChatStage.CHAT,
    )
