from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .contracts import ChatTurn, CompletionRequest, ProviderId, Role
from .errors import ConfigurationError
from .gateway import ProviderGateway


class MoodType(str, Enum):
    HAPPY = "happy"
    CALM = "calm"
    SAD = "sad"
    ENERGETIC = "energetic"
    HEALING = "healing"


MOOD_ANALYSIS_PROMPT = """You are a mood analysis assistant. Analyse the user's text and judge their emotional state.

Return a JSON object with these fields:
- mood: one of happy, calm, sad, energetic, healing
- confidence: a number between 0 and 1
- keywords: an array of the words that express the emotion

Return only the JSON, no other text."""

CHAT_SYSTEM_PROMPT = """You are the MoodTune companion, a warm and empathetic listener.

- Be gentle and accepting, never preachy
- Listen well and offer emotional support
- Give mild suggestions when it fits
- Remember the moods the user has shared before

Reply like a friend would: short, natural, not formal. An occasional emoji is fine."""

INSIGHT_PROMPT = """You are an emotion analysis expert. Based on the user's mood records over a period, describe their emotional patterns.

Produce a friendly report that covers:
1. A summary of the overall emotional state
2. Patterns or rhythms you notice
3. Gentle suggestions for staying mentally healthy

Keep the tone warm and encouraging and avoid negative judgement."""

PERIOD_LABELS = {"week": "this week", "month": "this month", "year": "this year"}
RECENT_MOOD_LIMIT = 5
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class MoodAnalysis:
    mood: MoodType = MoodType.CALM
    confidence: float = 0.5
    keywords: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"mood": self.mood.value, "confidence": self.confidence, "keywords": list(self.keywords)}


def parse_mood_analysis(text: str) -> MoodAnalysis:
    """Read the model's JSON verdict; anything unusable falls back to a calm default."""
    m = _JSON_OBJECT_RE.search(text or "")
    if not m:
        return MoodAnalysis()
    try:
        data = json.loads(m.group(0))
    except ValueError:
        return MoodAnalysis()
    if not isinstance(data, dict):
        return MoodAnalysis()

    try:
        mood = MoodType(data.get("mood"))
    except ValueError:
        mood = MoodType.CALM

    confidence = data.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        confidence = 0.5
    confidence = min(1.0, max(0.0, float(confidence)))

    raw_keywords = data.get("keywords")
    keywords = tuple(k for k in raw_keywords if isinstance(k, str)) if isinstance(raw_keywords, list) else ()

    return MoodAnalysis(mood=mood, confidence=confidence, keywords=keywords)


async def analyze_mood(
    gateway: ProviderGateway,
    provider: ProviderId | str,
    credential: str,
    text: str,
    *,
    timeout: float | None = None,
) -> MoodAnalysis:
    if not text or len(text.strip()) < 2:
        raise ConfigurationError("Text is too short to analyse.")
    request = CompletionRequest(
        provider=provider,
        credential=credential,
        turns=(
            ChatTurn(role=Role.SYSTEM, content=MOOD_ANALYSIS_PROMPT),
            ChatTurn(role=Role.USER, content=text),
        ),
        max_tokens=200,
        temperature=0.3,
    )
    result = await gateway.complete(request, timeout=timeout)
    return parse_mood_analysis(result.content)


def build_chat_request(
    provider: ProviderId | str,
    credential: str,
    message: str,
    history: Iterable[ChatTurn] = (),
    recent_moods: Iterable[Mapping[str, Any]] = (),
) -> CompletionRequest:
    """Companion chat turn list: system prompt, caller's history, new message.

    ``recent_moods`` are mappings with ``mood_type`` and ``content`` keys,
    newest first; only the first few are folded into the system prompt.
    """
    if not message:
        raise ConfigurationError("Message must not be empty.")

    system = CHAT_SYSTEM_PROMPT
    moods = list(recent_moods)[:RECENT_MOOD_LIMIT]
    if moods:
        lines = [f'- {m.get("mood_type")}: "{m.get("content") or "(no text)"}"' for m in moods]
        system += "\n\nThe user's recent mood records:\n" + "\n".join(lines)

    turns = (
        ChatTurn(role=Role.SYSTEM, content=system),
        *history,
        ChatTurn(role=Role.USER, content=message),
    )
    return CompletionRequest(
        provider=provider,
        credential=credential,
        turns=turns,
        max_tokens=500,
        temperature=0.8,
    )


def build_insight_request(
    provider: ProviderId | str,
    credential: str,
    entries: list[Mapping[str, Any]],
    period: str,
) -> CompletionRequest:
    if not entries:
        raise ConfigurationError("No mood records to analyse.")

    records = [
        {"date": e.get("date"), "mood": e.get("mood"), "content": e.get("content") or "(no text)"}
        for e in entries
    ]
    prompt = (
        f"{INSIGHT_PROMPT}\n\n"
        f"Period: {PERIOD_LABELS.get(period, period)}\n"
        f"Number of records: {len(entries)}\n\n"
        f"Mood records:\n{json.dumps(records, ensure_ascii=False, indent=2)}\n\n"
        "Write a short, warm and encouraging insight report (under 300 words)."
    )
    return CompletionRequest(
        provider=provider,
        credential=credential,
        turns=(ChatTurn(role=Role.USER, content=prompt),),
        max_tokens=800,
        temperature=0.7,
    )
