from __future__ import annotations

from dataclasses import dataclass

from .api_schemas import Message
from .parse import split_command_args


@dataclass(frozen=True, slots=True)
class CommandEvent:
    command: str
    args_text: str
    message: Message

    @property
    def chat_id(self) -> int:
        return self.message.chat.id

    @property
    def sender_id(self) -> int | None:
        sender = self.message.from_
        return sender.id if sender is not None else None

    @property
    def args(self) -> tuple[str, ...]:
        return split_command_args(self.args_text)
