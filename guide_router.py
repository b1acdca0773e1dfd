"""
Guide Router Module
===================
Decides what one submission means before anything talks to Gemini.

Rules are checked top to bottom and the first match wins:

    1. LANGUAGE_SWITCH  "switch to Hindi", "respond in Tamil", ...
    2. ART_STYLE        a style name while an image prompt is waiting
    3. IMAGE_EDIT       one image attached plus an instruction
    4. IMAGE_INTENT     "draw the sunset at Om Beach" (not "how do you draw...")
    5. TRIP_PLAN        the localized "Trip Plan" chip label
    6. CONVERSE         everything else goes to the conversation engine

Only CONVERSE (and the media routes) reach the network. The other routes
answer from canned phrases.
"""

import re
from enum import Enum
from typing import List, NamedTuple, Optional

from guide_models import Suggestion, UploadedFile, bot_message, user_message
from guide_phrases import (
    ART_STYLE_QUESTION,
    ART_STYLES,
    LANGUAGE_CONFIRMATIONS,
    LANGUAGES,
    TRIP_PLAN_PROMPT,
    Language,
    language_by_name,
    localized,
    trip_plan_labels,
)

_LANGUAGE_NAMES = "|".join(lang.name.lower() for lang in LANGUAGES)

LANGUAGE_SWITCH_PATTERN = re.compile(
    rf"\b(?:in|speak|talk in|use|change to|switch to|respond in)\s+({_LANGUAGE_NAMES})\b",
    re.IGNORECASE,
)

IMAGE_REQUEST_PATTERN = re.compile(
    r"\b(generate|create|draw|make|imagine|show me|give me|produce|render|paint|picture|photo"
    r"|drawing|painting|illustration|artwork|sketch|portrait)\b",
    re.IGNORECASE,
)

# "how do you draw...", "explain how to create..." are questions, not requests
IMAGE_META_QUESTION_PATTERN = re.compile(
    r"\b(what|how|why|explain|describe)\b.{0,50}\b(to|do you|is it possible to)\s*(generate|create|draw|make|edit)",
    re.IGNORECASE,
)


class RouteKind(Enum):
    IGNORE = "ignore"
    LANGUAGE_SWITCH = "language_switch"
    ART_STYLE = "art_style"
    IMAGE_EDIT = "image_edit"
    IMAGE_INTENT = "image_intent"
    TRIP_PLAN = "trip_plan"
    CONVERSE = "converse"


class Route(NamedTuple):
    kind: RouteKind
    language: Optional[Language] = None
    style: Optional[str] = None
    file: Optional[UploadedFile] = None


def classify(text: str,
             files: List[UploadedFile],
             language_code: str,
             pending_prompt: Optional[str] = None) -> Route:
    """
    Pick exactly one route for a submission. Pure: no side effects.

    A request to switch to the language already in use is not a switch and
    falls through to the remaining rules.
    """
    files = files or []
    stripped = text.strip()

    if not stripped and not files:
        return Route(RouteKind.IGNORE)

    match = LANGUAGE_SWITCH_PATTERN.search(stripped)
    if match:
        target = language_by_name(match.group(1))
        if target and target.code != language_code:
            return Route(RouteKind.LANGUAGE_SWITCH, language=target)

    if pending_prompt and text in ART_STYLES:
        return Route(RouteKind.ART_STYLE, style=text)

    if len(files) == 1 and files[0].is_image and stripped:
        return Route(RouteKind.IMAGE_EDIT, file=files[0])

    if (IMAGE_REQUEST_PATTERN.search(stripped)
            and not IMAGE_META_QUESTION_PATTERN.search(stripped)
            and not files):
        return Route(RouteKind.IMAGE_INTENT)

    if stripped.lower() in trip_plan_labels() and not files:
        return Route(RouteKind.TRIP_PLAN)

    return Route(RouteKind.CONVERSE)


class IntentRouter:
    """
    Applies the route for each submission against the active session.

    Holds the one piece of router state: the image prompt waiting for an
    art style choice.
    """

    def __init__(self, store, brain, artist, voice=None):
        self.store = store
        self.brain = brain
        self.artist = artist
        self.voice = voice
        self.pending_image_prompt: Optional[str] = None

    async def submit(self,
                     text: str,
                     files: Optional[List[UploadedFile]] = None,
                     prompt: Optional[str] = None) -> Route:
        """
        Handle one submission.

        Args:
            text: What the user typed (or the chip label they picked)
            files: Attachments staged for this submission
            prompt: Text to send to Gemini instead of `text` (suggestion chips)

        Returns:
            The route that fired
        """
        if self.voice:
            self.voice.cancel()

        files = list(files or [])
        session = self.store.active_session
        if session is None:
            return Route(RouteKind.IGNORE)

        route = classify(text, files, session.language_code, self.pending_image_prompt)
        if route.kind == RouteKind.IGNORE:
            return route

        if route.kind == RouteKind.LANGUAGE_SWITCH:
            self._switch_language(session.id, text, route.language)
            return route

        if route.kind == RouteKind.ART_STYLE:
            image_prompt = self.pending_image_prompt
            self.pending_image_prompt = None
            await self.artist.generate_image(session.id, image_prompt, route.style)
            return route

        # Anything else supersedes a style question left unanswered
        self.pending_image_prompt = None

        if route.kind == RouteKind.IMAGE_EDIT:
            await self.artist.edit_image(session.id, text, route.file)

        elif route.kind == RouteKind.IMAGE_INTENT:
            self.pending_image_prompt = text
            print(f"🎨 Image idea waiting for a style: \"{text[:60]}\"")
            self.store.append_messages(
                session.id,
                user_message(text),
                bot_message(
                    ART_STYLE_QUESTION,
                    suggestions=[Suggestion(text=style, icon="palette") for style in ART_STYLES],
                ),
            )

        elif route.kind == RouteKind.TRIP_PLAN:
            self.store.append_messages(
                session.id,
                user_message(text),
                bot_message(localized(TRIP_PLAN_PROMPT, session.language_code)),
            )

        else:
            await self.brain.submit(text, files, prompt=prompt)

        return route

    def _switch_language(self, session_id: str, text: str, language: Language):
        print(f"🌐 Switching chat language to {language.name} ({language.code})")
        self.store.append_messages(session_id, user_message(text))
        self.store.set_language(session_id, language.code)
        self.store.append_messages(
            session_id,
            bot_message(localized(LANGUAGE_CONFIRMATIONS, language.code)),
        )
