"""Reduce arbitrary candidate choices to the three buttons the player sees."""

from collections.abc import Sequence

from fortune_teller.sanitizer import sanitize

CHOICE_COUNT = 3

DEFAULT_CHOICES: tuple[str, str, str] = (
    "Ask about the shadows",
    "Request a bone reading",
    "Politely take your leave",
)
FILLER_CHOICE = "Contemplate in silence"


def normalize(candidates: Sequence[str] | None) -> list[str]:
    """Return exactly three clean choices.

    Empty input gets the default triple. Otherwise each candidate is sanitized
    and the first three non-empty, not-yet-seen entries are kept (exact,
    case-sensitive match); the rest is padded with the filler.
    """
    if not candidates:
        return list(DEFAULT_CHOICES)

    results: list[str] = []
    for candidate in candidates:
        if len(results) >= CHOICE_COUNT:
            break
        cleaned = sanitize(candidate)
        if cleaned and cleaned not in results:
            results.append(cleaned)

    while len(results) < CHOICE_COUNT:
        results.append(FILLER_CHOICE)
    return results
