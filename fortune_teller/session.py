"""Per-conversation state owned by the orchestrator.

A Session is created once per conversation and passed to the Orchestrator; there
is no module-level state. The transcript it holds is the literal payload sent to
the chat backend, so it only ever grows.
"""

from __future__ import annotations

from collections.abc import Iterator

from fortune_teller.models import ChatMessage, Role


class ConversationLog:
    """Append-only transcript whose first entry is always the system prompt."""

    def __init__(self, system_prompt: str) -> None:
        self._messages: list[ChatMessage] = [ChatMessage(role="system", content=system_prompt)]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self._messages)

    def __getitem__(self, index: int) -> ChatMessage:
        return self._messages[index]

    def snapshot(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def append(self, role: Role, content: str) -> ChatMessage | None:
        """Append a trimmed message. Blank content is ignored."""
        if role == "system":
            raise ValueError("The system prompt is fixed at the start of the log")
        if not content or not content.strip():
            return None
        message = ChatMessage(role=role, content=content.strip())
        self._messages.append(message)
        return message

    def append_user(self, content: str) -> ChatMessage | None:
        return self.append("user", content)

    def append_assistant(self, content: str) -> ChatMessage | None:
        return self.append("assistant", content)


class Session:
    """The log, the single-flight flag and the choices currently on screen."""

    def __init__(self, system_prompt: str) -> None:
        self.log = ConversationLog(system_prompt)
        self.request_in_flight = False
        self.awaiting_intro_choice = False
        self.current_choices: list[str] = []

    def choice_at(self, index: int) -> str | None:
        if index < 0 or index >= len(self.current_choices):
            return None
        choice = self.current_choices[index]
        return choice if choice.strip() else None
