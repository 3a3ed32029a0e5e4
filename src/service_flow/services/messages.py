"""
Error and warning collections for service runs.

Every service run owns two ``Messages`` collections, ``errors`` and
``warnings``. Adding a message may request that later steps are skipped
(break) or that the run's transaction is rolled back at close (rollback).
Per-message flags win over the collection defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from service_flow.services.exceptions import MessageError


@dataclass(frozen=True)
class Message:
    """
    A single error or warning.

    Attributes:
        key: Field the message belongs to, or ``"base"`` for the whole operation
        text: Human-readable message text
        break_execution: Explicit break flag, ``None`` to use the collection default
        rollback: Explicit rollback flag, ``None`` to use the collection default
    """

    key: str
    text: str
    break_execution: Optional[bool] = None
    rollback: Optional[bool] = None

    def __str__(self) -> str:
        return self.text


MessageInput = Union[str, Message, List[Union[str, Message]]]


class Messages:
    """
    Ordered collection of messages grouped by key.

    Args:
        break_on_add: Default break flag for added messages
        rollback_on_add: Default rollback flag for added messages
    """

    def __init__(self, break_on_add: bool = False, rollback_on_add: bool = False):
        self.break_on_add = break_on_add
        self.rollback_on_add = rollback_on_add
        self.break_requested = False
        self.rollback_requested = False
        self._messages: Dict[str, List[Message]] = {}

    def add(
        self,
        key: str,
        text: MessageInput,
        break_execution: Optional[bool] = None,
        rollback: Optional[bool] = None,
    ) -> None:
        """
        Record one or more messages under ``key``.

        Args:
            key: Field name or ``"base"``
            text: Non-blank string, a Message, or a list of either
            break_execution: Overrides the break flag for these messages
            rollback: Overrides the rollback flag for these messages

        Raises:
            MessageError: A text is missing, not a string, or blank
        """
        items = list(text) if isinstance(text, (list, tuple)) else [text]
        if not items:
            raise MessageError(f"Message for `{key}` must be a non-empty string")

        messages = [self._build(key, item, break_execution, rollback) for item in items]
        for message in messages:
            self._messages.setdefault(str(key), []).append(message)
            if self._resolve(message.break_execution, self.break_on_add):
                self.break_requested = True
            if self._resolve(message.rollback, self.rollback_on_add):
                self.rollback_requested = True

    def copy_from(
        self,
        source: Any,
        break_execution: Optional[bool] = None,
        rollback: Optional[bool] = None,
    ) -> None:
        """
        Merge messages from another collection, a service, or a mapping.

        Explicit flags on copied messages are kept unless overridden here;
        unset flags fall back to this collection's defaults.

        Raises:
            MessageError: ``source`` is not a supported message source
        """
        for key, items in _iter_source(source):
            if items:
                self.add(key, items, break_execution=break_execution, rollback=rollback)

    def any(self) -> bool:
        return bool(self._messages)

    def count(self) -> int:
        """Total number of messages across all keys."""
        return sum(len(items) for items in self._messages.values())

    def keys(self) -> List[str]:
        return list(self._messages)

    def items(self) -> Iterator[Tuple[str, List[Message]]]:
        return iter(self._messages.items())

    def to_dict(self) -> Dict[str, List[str]]:
        return {key: [m.text for m in items] for key, items in self._messages.items()}

    def full_message(self) -> str:
        """Render all messages as ``"key: text; key: text"``."""
        return "; ".join(
            f"{key}: {message.text}"
            for key, items in self._messages.items()
            for message in items
        )

    def __getitem__(self, key: str) -> List[Message]:
        return list(self._messages.get(key, []))

    def __contains__(self, key: object) -> bool:
        return key in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[str]:
        return iter(self._messages)

    def __bool__(self) -> bool:
        return self.any()

    def __repr__(self) -> str:
        return f"Messages({self.to_dict()!r})"

    def _build(
        self,
        key: str,
        item: Any,
        break_execution: Optional[bool],
        rollback: Optional[bool],
    ) -> Message:
        if isinstance(item, Message):
            text = item.text
            break_execution = item.break_execution if break_execution is None else break_execution
            rollback = item.rollback if rollback is None else rollback
        else:
            text = item
        if not isinstance(text, str) or not text.strip():
            raise MessageError(f"Message for `{key}` must be a non-empty string")
        return Message(str(key), text, break_execution, rollback)

    @staticmethod
    def _resolve(flag: Optional[bool], default: bool) -> bool:
        return default if flag is None else flag


def _iter_source(source: Any) -> Iterator[Tuple[str, Any]]:
    # Services expose their errors collection
    errors = getattr(source, "errors", None)
    if isinstance(errors, Messages):
        source = errors

    if isinstance(source, Messages):
        for key, items in source.items():
            yield key, list(items)
    elif isinstance(source, Mapping):
        for key, items in source.items():
            yield key, items
    else:
        raise MessageError(f"Don't know how to copy messages from {source!r}")
