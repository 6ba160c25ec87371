"""
Conversation data model.

A conversation is an ordered sequence of :class:`Message` objects. Order is
preserved all the way into the model's chat template, and images are
collected in conversation order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class MessageRole(str, Enum):
    """Chat roles; the values are the names chat templates expect."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class ImageData:
    """Opaque encoded image bytes (PNG, JPEG or BMP)."""

    data: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))

    @classmethod
    def from_file(cls, path: str) -> ImageData:
        with open(path, "rb") as f:
            return cls(f.read())

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"ImageData({len(self.data)} bytes)"


@dataclass(frozen=True)
class Message:
    """
    One chat message.

    Args:
        role: Who is speaking
        content: Message text
        images: Images attached to this message

    Example:
        >>> Message(MessageRole.USER, "What is in this picture?",
        ...         images=(ImageData.from_file("cat.png"),))
    """

    role: MessageRole
    content: str
    images: tuple[ImageData, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.role, MessageRole):
            object.__setattr__(self, "role", MessageRole(self.role))
        object.__setattr__(
            self,
            "images",
            tuple(img if isinstance(img, ImageData) else ImageData(img) for img in self.images),
        )

    @classmethod
    def user(cls, content: str, images: Iterable[Any] = ()) -> Message:
        return cls(MessageRole.USER, content, tuple(images))

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(MessageRole.ASSISTANT, content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def from_dict(cls, message: dict[str, Any]) -> Message:
        """Build a message from an OpenAI-style ``{"role", "content"}`` dict."""
        return cls(
            role=MessageRole(message.get("role", "user")),
            content=message.get("content", "") or "",
            images=tuple(message.get("images", ())),
        )

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


MessageLike = Union[Message, dict]


def coerce_conversation(items: Iterable[MessageLike]) -> list[Message]:
    """
    Convert a sequence of messages or message dicts into ``Message`` objects.

    Raises:
        ValueError: If an item is neither a ``Message`` nor a dict, or has an
            unknown role
    """
    conversation: list[Message] = []
    for item in items:
        if isinstance(item, Message):
            conversation.append(item)
        elif isinstance(item, dict):
            conversation.append(Message.from_dict(item))
        else:
            raise ValueError(
                f"Cannot convert {type(item).__name__} to a chat message. "
                "Expected Message or dict with 'role' and 'content'."
            )
    return conversation


def collect_images(conversation: Sequence[Message]) -> list[ImageData]:
    """Return every image of the conversation in order."""
    return [image for message in conversation for image in message.images]
