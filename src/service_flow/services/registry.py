"""
Ordered, inheritance-aware registries for service definitions.

Each service class records its own edits (define, insert, remove) per kind.
The effective view for a class is its parent's effective view with those
edits replayed in order. Views are memoized and handed out read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar
from weakref import WeakKeyDictionary

from service_flow.services.exceptions import (
    DuplicateDefinitionError,
    InsertionTargetError,
    StepDefinitionError,
)

T = TypeVar("T")


@dataclass(frozen=True)
class _Edit(Generic[T]):
    action: str  # "define" or "remove"
    name: str
    item: Optional[T] = None
    before: Optional[str] = None
    after: Optional[str] = None


class DefinitionRegistry(Generic[T]):
    """
    Registry of one definition kind (arguments, outputs or steps).

    Args:
        kind: Human-readable kind used in error messages ("argument", "step", ...)
        allow_redefinition: Whether a name may be defined again, replacing
            the existing entry in place
    """

    def __init__(self, kind: str, allow_redefinition: bool = False):
        self.kind = kind
        self.allow_redefinition = allow_redefinition
        self._edits: "WeakKeyDictionary[type, List[_Edit[T]]]" = WeakKeyDictionary()
        self._views: "WeakKeyDictionary[type, Mapping[str, T]]" = WeakKeyDictionary()

    def register(self, cls: type) -> None:
        """Make ``cls`` a participant; it starts with no own edits."""
        self._edits.setdefault(cls, [])

    def parent_of(self, cls: type) -> Optional[type]:
        """Nearest registered ancestor of ``cls`` in method resolution order."""
        for klass in cls.__mro__[1:]:
            if klass in self._edits:
                return klass
        return None

    def effective(self, cls: type) -> Mapping[str, T]:
        """Return the read-only, ordered view of definitions for ``cls``."""
        view = self._views.get(cls)
        if view is None:
            view = MappingProxyType(self._build(cls))
            self._views[cls] = view
        return view

    def define(
        self,
        cls: type,
        name: str,
        item: T,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> None:
        """
        Record a definition for ``cls``.

        Raises:
            StepDefinitionError: Both ``before`` and ``after`` were given
            DuplicateDefinitionError: ``name`` exists and redefinition is not allowed
            InsertionTargetError: The ``before``/``after`` target does not exist
        """
        if before is not None and after is not None:
            raise StepDefinitionError(
                f"Cannot specify both before and after for {self.kind} `{name}`",
                service=cls.__qualname__,
                name=name,
            )

        current = self.effective(cls)
        if name in current and not self.allow_redefinition:
            raise DuplicateDefinitionError(
                f"{self.kind.capitalize()} `{name}` is already defined; "
                f"each {self.kind} must have a unique name",
                service=cls.__qualname__,
                name=name,
            )

        target = before if before is not None else after
        if target is not None and target not in current:
            raise InsertionTargetError(
                f"Cannot find target {self.kind} `{target}`",
                service=cls.__qualname__,
                name=name,
                available=current.keys(),
            )

        self.register(cls)
        self._edits[cls].append(_Edit("define", name, item, before, after))
        self._invalidate(cls)

    def undefine(self, cls: type, name: str) -> None:
        """Record removal of ``name`` for ``cls`` and its subclasses."""
        self.register(cls)
        self._edits[cls].append(_Edit("remove", name))
        self._invalidate(cls)

    def _build(self, cls: type) -> Dict[str, Any]:
        parent = self.parent_of(cls)
        result: Dict[str, Any] = dict(self.effective(parent)) if parent else {}
        for edit in self._edits.get(cls, ()):
            if edit.action == "remove":
                result.pop(edit.name, None)
            else:
                result = _apply_define(result, edit)
        return result

    def _invalidate(self, cls: type) -> None:
        for klass in list(self._views.keys()):
            if issubclass(klass, cls):
                del self._views[klass]


def _apply_define(entries: Dict[str, Any], edit: _Edit) -> Dict[str, Any]:
    target = edit.before if edit.before is not None else edit.after

    if target is None or target not in entries or target == edit.name:
        # Plain define, or a redefinition without repositioning; an ancestor
        # may have removed the target since, in which case the entry goes last
        entries[edit.name] = edit.item
        return entries

    entries.pop(edit.name, None)
    rebuilt: Dict[str, Any] = {}
    for key, value in entries.items():
        if edit.before is not None and key == target:
            rebuilt[edit.name] = edit.item
        rebuilt[key] = value
        if edit.after is not None and key == target:
            rebuilt[edit.name] = edit.item
    return rebuilt
