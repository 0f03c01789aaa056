"""Fortune teller conversation core.

    sanitizer    — strip stage directions from spoken/displayed text
    parser       — layered extraction of {spoken, choices} from model output
    choices      — normalize to exactly three player choices
    payloads     — chat and speech request bodies, stability snapping
    orchestrator — conversation state machine, retries, single-flight
    playback     — clip playback with skippable intro, background music
"""

from .config import FortuneConfig, load_config  # noqa: F401
from .orchestrator import MAX_RETRIES, Orchestrator, State  # noqa: F401
from .parser import parse  # noqa: F401
