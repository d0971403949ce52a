"""
prompts.py — Prompt construction for every generation call of a reading.

All builders are pure: the same inputs always give the same prompt string.
Each prompt names the position's narrative role, asks the model to address the
user by name, sets a target length band and forbids repeating earlier content.
Earlier cards are listed so interpretations continue one story.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from .tarot_core import DrawnCard, Position

_ROLE = """### ROLE
You are a friendly, warm tarot reader. Speak like a trusted friend: relaxed but respectful.
"""

POSITION_ROLES: Dict[Position, str] = {
    Position.PAST_PRESENT: "past / present situation",
    Position.INNER: "inner feelings / subconscious",
    Position.FUTURE: "future / outcome",
    Position.SUPPLEMENTARY: "supplementary message",
}

_POSITION_TASKS: Dict[Position, str] = {
    Position.PAST_PRESENT: "Describe the current situation this card reveals.",
    Position.INNER: (
        "Within the situation shown by the earlier card, describe what {name} "
        "feels deep inside. Continue naturally from the earlier card and offer a new angle."
    ),
    Position.FUTURE: (
        "Show how the situation and the feelings of the earlier cards meet, and "
        "what flow lies ahead. Keep the story connected and end on a hopeful note."
    ),
    Position.SUPPLEMENTARY: "Explain briefly what extra message this card adds to the reading.",
}

# Target length in characters
_POSITION_LENGTHS: Dict[Position, int] = {
    Position.PAST_PRESENT: 100,
    Position.INNER: 100,
    Position.FUTURE: 100,
    Position.SUPPLEMENTARY: 50,
}

SYNTHESIS_LENGTH = 150
ADVICE_LENGTH = 50
FORTUNE_LENGTH = 50
OPENING_LENGTH = 30
TITLE_LENGTH = 100
SHORT_TITLE_LENGTH = 30


def _rules(user_name: str, length: int, extra: Sequence[str] = ()) -> str:
    lines = [
        "### RULES",
        f"- Address the user as \"{user_name}\" (never drop the name)",
        f"- Around {length} characters, concise",
        "- Natural conversational tone, never stiff or robotic",
        "- Never repeat anything already said in this reading",
    ]
    lines.extend(f"- {r}" for r in extra)
    return "\n".join(lines)


def _situation(user_name: str, concern: str) -> List[str]:
    return [
        "### SITUATION",
        f"User: {user_name}",
        f"Concern: \"{concern.strip()}\"",
    ]


def _card_line(d: DrawnCard) -> str:
    return f"- {d.card.name} ({POSITION_ROLES[d.position]})"


def build_position_prompt(
    position: Position,
    concern: str,
    user_name: str,
    drawn: Sequence[DrawnCard],
) -> str:
    """
    Prompt for interpreting the last card of `drawn` at `position`.

    `drawn` is the ordered draw so far; every earlier card is listed by name so
    the interpretation continues from them.
    """
    if not drawn:
        raise ValueError("drawn must contain the card being interpreted")
    current = drawn[-1]
    earlier = drawn[:-1]

    lines = _situation(user_name, concern)
    lines.append("")
    lines.append("### CARDS")
    if position is Position.SUPPLEMENTARY and earlier:
        lines.append("Cards already drawn: " + ", ".join(d.card.name for d in earlier))
    else:
        lines.extend(_card_line(d) for d in earlier)
    lines.append(f"Current card: {current.card.name}")
    lines.append(f"Keyword: {current.card.keyword}")
    lines.append(f"Meaning: {current.card.meaning}")
    lines.append("")
    lines.append("### TASK")
    lines.append(f"This card stands for the {POSITION_ROLES[position]}.")
    lines.append(_POSITION_TASKS[position].format(name=user_name))
    lines.append("")

    extra = ["Connect naturally with the earlier cards"] if earlier and position is not Position.SUPPLEMENTARY else []
    return _ROLE + "\n" + "\n".join(lines) + "\n" + _rules(user_name, _POSITION_LENGTHS[position], extra)


def build_synthesis_prompt(concern: str, user_name: str, drawn: Sequence[DrawnCard]) -> str:
    """Closing synthesis over the three spread cards."""
    spread = [d for d in drawn if d.position is not Position.SUPPLEMENTARY]
    lines = _situation(user_name, concern)
    lines.append("")
    lines.append("### CARDS")
    lines.extend(f"- {POSITION_ROLES[d.position]}: {d.card.name}" for d in spread)
    lines.append("")
    lines.append("### TASK")
    lines.append("Weave the story these cards tell into one overall reading.")
    lines.append("")
    extra = [
        "Flow naturally from past to present to future",
        "Close hopefully and positively",
        "At the end, gently suggest drawing a supplementary card",
    ]
    return _ROLE + "\n" + "\n".join(lines) + "\n" + _rules(user_name, SYNTHESIS_LENGTH, extra)


def build_advice_prompt(concern: str, user_name: str, drawn: Sequence[DrawnCard]) -> str:
    lines = _situation(user_name, concern)
    lines.append("Cards drawn: " + ", ".join(d.card.name for d in drawn))
    lines.append("")
    lines.append("### TASK")
    lines.append("Based on the cards, give warm and practical advice.")
    lines.append("")
    return "\n".join(lines) + "\n" + _rules(user_name, ADVICE_LENGTH, ["Exactly one concrete action"])


def build_fortune_prompt(user_name: str, drawn: Sequence[DrawnCard]) -> str:
    lines = [
        "### SITUATION",
        f"User: {user_name}",
        "Cards drawn: " + ", ".join(d.card.name for d in drawn),
        "",
        "### TASK",
        "Based on these cards, suggest a way to improve their luck.",
        "",
    ]
    return "\n".join(lines) + "\n" + _rules(
        user_name, FORTUNE_LENGTH, ["Only one recommended colour or one action"]
    )


def build_opening_prompt(concern: str) -> str:
    return f"""Read the following tarot question and write what a tarot master would naturally say before shuffling.

Question: "{concern.strip()}"

Requirements:
- Capture the core topic of the question
- Form: "So this is about ... Let me shuffle the cards."
- Within {OPENING_LENGTH} characters
- Warm, empathetic tone

Remark:"""


def build_title_prompt(concern: str) -> str:
    return f"""Summarize the following question naturally within {TITLE_LENGTH} characters:
"{concern.strip()}"
Only the essentials:"""


def clean_remark(text: str) -> str:
    """Strip whitespace and quote characters the model likes to wrap remarks in."""
    return text.strip().replace('"', "").replace("'", "")


def short_title(concern: str) -> str:
    """Archive title: first 30 characters, "..." when truncated."""
    c = concern.strip()
    return c[:SHORT_TITLE_LENGTH] + ("..." if len(c) > SHORT_TITLE_LENGTH else "")
