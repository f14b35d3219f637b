"""
revIsion RSC v1.0 — Delivery Technique Mapper

Maps the learner's modality profile to the set of delivery techniques the
tutor is allowed to use. This lives in code, not prompts, so it is
enforceable: the whitelist is rendered into every directive.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from revision_tutor.tutor.types import LearningStyle

logger = logging.getLogger("revision.delivery_techniques")


class Technique(str, Enum):
    IMAGERY = "imagery"                          # Visual scenarios, mental pictures
    DIAGRAM_DESCRIPTION = "diagram_description"  # Text-based diagrams
    FLASHCARD = "flashcard"                      # Q&A front/back cards
    DEFINITION = "definition"                    # Precise definitions
    EXAM_STYLE = "exam_style"                    # Mark scheme language
    AUDIO_EXPLANATION = "audio_explanation"      # Spoken-style explanation
    SPOKEN_PROMPT = "spoken_prompt"              # Conversational prompts
    STEP_SEQUENCE = "step_sequence"              # Numbered steps
    REAL_WORLD_ACTION = "real_world_action"      # Practical application


STYLE_TECHNIQUES: dict[str, frozenset[Technique]] = {
    "visual": frozenset({Technique.IMAGERY, Technique.DIAGRAM_DESCRIPTION, Technique.FLASHCARD}),
    "read_write": frozenset({Technique.FLASHCARD, Technique.DEFINITION, Technique.EXAM_STYLE}),
    "auditory": frozenset({Technique.AUDIO_EXPLANATION, Technique.SPOKEN_PROMPT}),
    "kinesthetic": frozenset({Technique.STEP_SEQUENCE, Technique.REAL_WORLD_ACTION}),
}

BASELINE_TECHNIQUES = frozenset({
    Technique.DEFINITION,
    Technique.FLASHCARD,
    Technique.STEP_SEQUENCE,
})


@dataclass(frozen=True)
class TechniqueBehaviour:
    description: str
    allowed: tuple[str, ...]
    forbidden: tuple[str, ...]


TECHNIQUE_BEHAVIOUR: dict[Technique, TechniqueBehaviour] = {
    Technique.IMAGERY: TechniqueBehaviour(
        "Describe visual scenarios and mental pictures",
        (
            "Use phrases like 'picture this', 'imagine', 'visualise'",
            "Describe what things look like spatially",
            "Create mental images with detailed descriptions",
        ),
        (
            "Waffle verbally without visual anchors",
            "Suggest listening tasks",
        ),
    ),
    Technique.DIAGRAM_DESCRIPTION: TechniqueBehaviour(
        "Create text-based diagram descriptions",
        (
            "Describe layouts and arrangements in text",
            "Use spatial language (left, right, above, flows to)",
            "Create simple ASCII-style diagrams if helpful",
        ),
        ("Assume the student can see actual images",),
    ),
    Technique.FLASHCARD: TechniqueBehaviour(
        "Generate Q&A flashcard format",
        (
            'Output flashcards as JSON: {"type": "flashcard", "front": "...", "back": "..."}',
            "Keep flashcards concise and testable",
            "Focus on key facts and definitions",
        ),
        ("Create long, essay-style content",),
    ),
    Technique.DEFINITION: TechniqueBehaviour(
        "Use precise, textbook-style definitions",
        (
            "Use bullet point definitions",
            "Include technical terms with explanations",
            "Reference mark scheme language",
        ),
        ("Use vague or imprecise language",),
    ),
    Technique.EXAM_STYLE: TechniqueBehaviour(
        "Use mark scheme language and exam technique",
        (
            "Reference how marks are awarded",
            "Use command words (describe, explain, evaluate)",
            "Structure answers like exam responses",
        ),
        ("Be casual or conversational",),
    ),
    Technique.AUDIO_EXPLANATION: TechniqueBehaviour(
        "Write in spoken, listenable language",
        (
            "Keep sentences short and spoken-style",
            "Avoid visual references",
            "Use natural speech patterns",
        ),
        (
            "Use complex nested sentences",
            "Reference diagrams or visuals",
            "Use bullet points",
        ),
    ),
    Technique.SPOKEN_PROMPT: TechniqueBehaviour(
        "Conversational, rhythmic prompts",
        (
            "Use memorable phrases and patterns",
            "Ask questions conversationally",
            "Include natural pauses (commas, short sentences)",
        ),
        ("Lecture-style monologues",),
    ),
    Technique.STEP_SEQUENCE: TechniqueBehaviour(
        "Break content into numbered steps",
        (
            "Number each step clearly",
            "Focus on actions and processes",
            "Use verbs (do this, then do that)",
        ),
        ("Dump information without structure",),
    ),
    Technique.REAL_WORLD_ACTION: TechniqueBehaviour(
        "Practical, real-world application",
        (
            "Use action metaphors",
            "Ask 'imagine doing this'",
            "Connect to tangible experiences",
        ),
        (
            "Abstract theoretical explanations",
            "Passive descriptions",
        ),
    ),
}


def get_allowed_techniques(profile: Optional[LearningStyle]) -> frozenset[Technique]:
    """Union of techniques over the profile's primary styles, or the baseline set."""
    if profile is None:
        return BASELINE_TECHNIQUES

    techniques: set[Technique] = set()
    for style in profile.primary_styles:
        techniques |= STYLE_TECHNIQUES.get(style, frozenset())

    return frozenset(techniques) if techniques else BASELINE_TECHNIQUES


def build_technique_instructions(techniques: Iterable[Technique]) -> str:
    """Render the whitelist in enum order, then the technique rules."""
    allowed = set(techniques)
    lines = ["ALLOWED DELIVERY TECHNIQUES:", ""]

    for technique in Technique:
        if technique not in allowed:
            continue
        behaviour = TECHNIQUE_BEHAVIOUR[technique]
        lines.append(f"{technique.value.upper()}:")
        lines.append(f"  {behaviour.description}")
        lines.append("  You MAY:")
        lines.extend(f"    - {item}" for item in behaviour.allowed)
        lines.append("  You must NOT:")
        lines.extend(f"    - {item}" for item in behaviour.forbidden)
        lines.append("")

    lines.append("TECHNIQUE RULES:")
    lines.append("- You may ONLY use the techniques listed above")
    lines.append("- Do not use techniques not in your allowed list")
    lines.append("- Match your delivery to the student's learning style")
    return "\n".join(lines)


# ─── Audit (best effort, never enforced) ─────────────────────────────────────

_DETECTORS: list[tuple[Technique, re.Pattern]] = [
    (Technique.IMAGERY, re.compile(r"picture|imagine|visuali[sz]e", re.IGNORECASE)),
    (Technique.FLASHCARD, re.compile(r'"front"|"back"|flashcard', re.IGNORECASE)),
    (Technique.AUDIO_EXPLANATION, re.compile(r"listen|audio|out loud", re.IGNORECASE)),
    (Technique.STEP_SEQUENCE, re.compile(r"step\s*\d|first.*then.*finally", re.IGNORECASE | re.DOTALL)),
    (Technique.REAL_WORLD_ACTION, re.compile(r"in real life|real world|hands-on", re.IGNORECASE)),
    (Technique.EXAM_STYLE, re.compile(r"mark scheme|marks|exam", re.IGNORECASE)),
    (Technique.DEFINITION, re.compile(r"definition|defined as|means that", re.IGNORECASE)),
]


def detect_used_techniques(text: str) -> set[Technique]:
    """Lexical guess at which techniques a response used. Audit only."""
    return {technique for technique, pattern in _DETECTORS if pattern.search(text)}


# ─── Flashcards ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Flashcard:
    front: str
    back: str
    type: str = "flashcard"


_FLASHCARD_RE = re.compile(r'\{[^{}]*"type"\s*:\s*"flashcard"[^{}]*\}')


def parse_flashcards(text: str) -> list[Flashcard]:
    """Extract flashcard JSON objects from a tutor message, skipping malformed ones."""
    cards = []
    for match in _FLASHCARD_RE.finditer(text):
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.debug(f"Skipping malformed flashcard: {match.group(0)[:60]}")
            continue
        front, back = data.get("front"), data.get("back")
        if isinstance(front, str) and isinstance(back, str) and front and back:
            cards.append(Flashcard(front=front, back=back))
    return cards
