"""Collaborator interfaces for whatever renders the fortune teller.

The core never draws anything. A host provides a DialogueUI (text + three
choice buttons) and optionally an Animator that receives the talking flag,
and forwards player input back as Orchestrator.select_choice(index) and
Orchestrator.request_skip().
"""

from __future__ import annotations

from typing import Protocol


class DialogueUI(Protocol):
    def display_text(self, text: str) -> None: ...

    def present_choices(self, choices: list[str]) -> None: ...

    def set_interactable(self, interactable: bool) -> None: ...

    def set_visible(self, visible: bool) -> None: ...


class Animator(Protocol):
    def set_bool(self, name: str, value: bool) -> None: ...


class DialogueView:
    """Wraps a DialogueUI and applies the hide_dialogue_ui setting.

    While hidden, choices are never shown or made interactable; text updates
    still go through so a host can keep subtitles elsewhere.
    """

    def __init__(self, ui: DialogueUI, hidden: bool = False) -> None:
        self._ui = ui
        self._hidden = hidden

    @property
    def hidden(self) -> bool:
        return self._hidden

    def show_text(self, text: str) -> None:
        self._ui.display_text(text)

    def show_choices(self, choices: list[str]) -> None:
        self._ui.present_choices(list(choices))
        self.set_choices_visible(True)
        self.set_choices_interactable(True)

    def set_choices_visible(self, visible: bool) -> None:
        self._ui.set_visible(visible and not self._hidden)

    def set_choices_interactable(self, interactable: bool) -> None:
        self._ui.set_interactable(interactable and not self._hidden)

    def lock_choices(self) -> None:
        self.set_choices_interactable(False)
        self.set_choices_visible(False)
