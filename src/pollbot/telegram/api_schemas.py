"""Msgspec models for Telegram Bot API payloads (subset used by pollbot)."""

from __future__ import annotations

import msgspec

__all__ = [
    "CallbackQuery",
    "Chat",
    "Contact",
    "Envelope",
    "File",
    "Location",
    "Message",
    "PhotoSize",
    "ResponseParameters",
    "Update",
    "User",
    "UserProfilePhotos",
]


class ResponseParameters(msgspec.Struct, forbid_unknown_fields=False):
    retry_after: int | None = None
    migrate_to_chat_id: int | None = None


class Envelope(msgspec.Struct, forbid_unknown_fields=False):
    ok: bool
    result: msgspec.Raw = msgspec.field(default_factory=lambda: msgspec.Raw(b"null"))
    description: str | None = None
    error_code: int | None = None
    parameters: ResponseParameters | None = None


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str | None = None
    title: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Contact(msgspec.Struct, forbid_unknown_fields=False):
    phone_number: str
    first_name: str
    last_name: str | None = None
    user_id: int | None = None


class Location(msgspec.Struct, forbid_unknown_fields=False):
    latitude: float
    longitude: float


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    from_: User | None = msgspec.field(default=None, name="from")
    date: int | None = None
    text: str | None = None
    contact: Contact | None = None
    location: Location | None = None


class CallbackQueryMessage(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat


class CallbackQuery(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    from_: User = msgspec.field(name="from")
    message: CallbackQueryMessage | None = None
    data: str | None = None


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: Message | None = None
    edited_message: Message | None = None
    callback_query: CallbackQuery | None = None


class PhotoSize(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str
    file_unique_id: str | None = None
    width: int = 0
    height: int = 0
    file_size: int | None = None


class UserProfilePhotos(msgspec.Struct, forbid_unknown_fields=False):
    total_count: int
    photos: list[list[PhotoSize]] = msgspec.field(default_factory=list)


class File(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str
    file_unique_id: str | None = None
    file_size: int | None = None
    file_path: str | None = None
