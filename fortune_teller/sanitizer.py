"""Strip stage directions from text that will be spoken or displayed."""

import re

# *grins*, [laughs], (leans closer); no nesting
_ACTION_MARKUP = re.compile(r"\*[^*]+\*|\[[^\]]+\]|\([^)]+\)")
_SPACE_RUNS = re.compile(r" {2,}")


def sanitize(raw: str | None) -> str:
    """Remove action markup, collapse doubled spaces and trim.

    Never fails; blank input gives "". Applying it twice changes nothing.
    """
    if not raw or not raw.strip():
        return ""
    text = _ACTION_MARKUP.sub("", raw.strip())
    return _SPACE_RUNS.sub(" ", text).strip()
