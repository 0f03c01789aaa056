"""Fixed model instructions and Handlebars rendering for player-turn prompts."""

from collections.abc import Callable
from typing import Any

import pybars

FORMAT_INSTRUCTIONS = (
    'Respond ONLY with valid JSON. Format: {"spoken":"...","choices":["...","...","..."]}. '
    '"spoken" must contain only the words you will say aloud (no descriptive actions, '
    "no labels like 'Bartholomew:'). "
    '"choices" must be an array of exactly three short, distinct player options. '
    "Do not include any extra text before or after the JSON."
)

RETRY_REMINDER = (
    "That response was not valid JSON. Reply again using ONLY the schema "
    '{"spoken":"...","choices":["...","...","..."]} with exactly three choices.'
)

# Triple-stash: choices and prompts are plain text, not HTML.
DEFAULT_CHOICE_PROMPT = "{{{choice}}}"
DEFAULT_INTRO_CHOICE_PROMPT = (
    "{{#if user_prompt}}"
    '{{{user_prompt}}}\nThe visitor selects "{{{choice}}}".'
    "{{else}}"
    'The visitor selects "{{{choice}}}". '
    "Continue the reading with eerie insight and present three options."
    "{{/if}}"
)


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_system_prompt(persona_prompt: str) -> str:
    """Persona prompt followed by the JSON format contract."""
    base = persona_prompt.strip() if persona_prompt else ""
    if not base:
        return FORMAT_INSTRUCTIONS
    return f"{base}\n\n{FORMAT_INSTRUCTIONS}"


def choice_message(template_str: str, choice: str, user_prompt: str = "") -> str:
    """Render the user turn sent when the player picks a choice."""
    context = {
        "choice": choice.strip(),
        "user_prompt": user_prompt.strip() if user_prompt else "",
    }
    return render_prompt(template_str, context).strip()
