"""
Typed argument and output slots for services.

``Argument`` and ``Output`` are data descriptors: declared in a class body
they expose the value stored in the running service's ``arguments`` or
``outputs`` record. Values are checked against the declared type before
the steps run (arguments) and after a successful run (outputs).
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import MutableMapping
from functools import cached_property
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, get_origin

from pydantic import TypeAdapter, ValidationError

from service_flow.services.exceptions import ArgTypeError, DefinitionError
from service_flow.services.types import MISSING

_COLLECTION_TYPES = (tuple, list, set, frozenset)


class FieldValues(MutableMapping):
    """Map-backed record of field values for one service instance.

    Supports both ``values["name"]`` and ``values.name`` access.
    """

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        object.__setattr__(self, "_values", dict(initial or {}))

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._values[name] = value

    def __delitem__(self, name: str) -> None:
        del self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any) -> None:
        self._values[name] = value

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __repr__(self) -> str:
        return f"FieldValues({self._values!r})"


class Field:
    """
    Base class for a typed, named slot on a service.

    Args:
        type: A class, a tuple/list/set of alternative classes, or any type
            expression pydantic can validate (``Annotated[int, Gt(0)]``,
            ``Literal["a", "b"]``, ``list[int]``...)
        optional: Accept an absent or ``None`` value
        default: Literal default, deep-copied for every run
        default_factory: Callable producing the default; called with the
            running service when it takes a positional parameter
    """

    kind = "field"
    store = ""

    def __init__(
        self,
        type: Any = MISSING,
        *,
        optional: bool = False,
        default: Any = MISSING,
        default_factory: Optional[Callable[..., Any]] = None,
    ):
        if default is not MISSING and default_factory is not None:
            raise DefinitionError(
                f"Cannot specify both default and default_factory for {self.kind}"
            )
        if default_factory is not None and not callable(default_factory):
            raise DefinitionError(f"default_factory for {self.kind} must be callable")

        self.type = type
        self.optional = optional
        self.default = default
        self.default_factory = default_factory
        self.name: Optional[str] = None
        self._frozen = False

    def __setattr__(self, attr: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"{type(self).__name__} `{self.name}` is immutable")
        object.__setattr__(self, attr, value)

    def __set_name__(self, owner: type, name: str) -> None:
        self.bind(name)

    def bind(self, name: str) -> "Field":
        """Attach the field name; the descriptor is immutable afterwards."""
        if self._frozen:
            if self.name != name:
                raise DefinitionError(
                    f"{type(self).__name__} is already bound to `{self.name}`", name=name
                )
            return self
        self.name = name
        self._frozen = True
        return self

    def __get__(self, instance: Any, owner: Optional[type] = None) -> Any:
        if instance is None:
            return self
        return getattr(instance, self.store).get(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        if not getattr(instance, "_accepts_field_writes", True):
            raise AttributeError(
                f"{type(instance).__qualname__} {self.kind} `{self.name}` can only "
                "be set while the service runs"
            )
        getattr(instance, self.store)[self.name] = value

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING or self.default_factory is not None

    @property
    def has_type(self) -> bool:
        return self.type is not MISSING and self.type is not None

    @cached_property
    def _classes(self) -> Optional[Tuple[type, ...]]:
        if _is_class(self.type):
            return (self.type,)
        if isinstance(self.type, _COLLECTION_TYPES) and all(
            _is_class(item) for item in self.type
        ):
            return tuple(self.type)
        return None

    @cached_property
    def _adapter(self) -> TypeAdapter:
        return TypeAdapter(self.type)

    def load_default(self, service: Any) -> Any:
        """Produce this field's default value for ``service``."""
        if self.default_factory is not None:
            if _takes_instance(self.default_factory):
                return self.default_factory(service)
            return self.default_factory()
        return copy.deepcopy(self.default)

    def check(self, value: Any, service_name: str) -> Any:
        """
        Validate ``value`` against the declared type.

        Returns:
            The value to store; type expressions validated by pydantic may
            return a coerced value

        Raises:
            ArgTypeError: The value does not conform
        """
        if not self.has_type:
            return value

        classes = self._classes
        if classes is not None:
            candidates = classes
            if isinstance(value, bool) and bool not in classes:
                # True/False are ints in Python, but not for field checks
                candidates = tuple(cls for cls in classes if cls is not int)
            if candidates and isinstance(value, candidates):
                return value
            raise ArgTypeError(
                f"{service_name} {self.kind} `{self.name}` must be one of "
                f"{', '.join(cls.__name__ for cls in classes)} "
                f"(got {type(value).__name__})"
            )

        try:
            return self._adapter.validate_python(value)
        except ValidationError as exc:
            raise ArgTypeError(
                f"{service_name} {self.kind} `{self.name}` must match "
                f"{_describe(self.type)} (got {type(value).__name__}): "
                f"{_first_error(exc)}"
            ) from exc

    def __repr__(self) -> str:
        parts = [f"name={self.name!r}"]
        if self.has_type:
            parts.append(f"type={_describe(self.type)}")
        if self.optional:
            parts.append("optional=True")
        if self.has_default:
            parts.append("has_default=True")
        return f"{type(self).__name__}({', '.join(parts)})"


class Argument(Field):
    """
    A service input.

    Args:
        context: Propagate the value to services chained from this one via
            ``with_(self)`` unless the child receives it explicitly
    """

    kind = "argument"
    store = "arguments"

    def __init__(
        self,
        type: Any = MISSING,
        *,
        optional: bool = False,
        default: Any = MISSING,
        default_factory: Optional[Callable[..., Any]] = None,
        context: bool = False,
    ):
        super().__init__(
            type, optional=optional, default=default, default_factory=default_factory
        )
        self.context = context


class Output(Field):
    """A service result, set by steps and checked after a successful run."""

    kind = "output"
    store = "outputs"


def load_defaults(service: Any, fields: Mapping[str, Field], values: FieldValues) -> None:
    """Fill every absent value that has a default, in definition order."""
    for name, field in fields.items():
        if name not in values and field.has_default:
            values[name] = field.load_default(service)


def validate_values(
    service_name: str, fields: Mapping[str, Field], values: FieldValues
) -> None:
    """
    Check every field in ``values`` against its definition.

    Absent or ``None`` values pass when the field is optional and are
    stored as ``None``. Coerced values are written back to ``values``.
    """
    for name, field in fields.items():
        value = values.get(name)
        if value is None and field.optional:
            values[name] = None
            continue
        checked = field.check(value, service_name)
        if name in values or checked is not None:
            values[name] = checked


def _is_class(type_: Any) -> bool:
    # Parameterized generics such as list[int] are not isinstance() targets
    return isinstance(type_, type) and get_origin(type_) is None


def _takes_instance(factory: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(factory)
    except (TypeError, ValueError):
        return False
    required = [
        param
        for param in signature.parameters.values()
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
        and param.default is param.empty
    ]
    return bool(required)


def _describe(type_: Any) -> str:
    if _is_class(type_):
        return type_.__name__
    return repr(type_).replace("typing.", "")


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    return errors[0].get("msg", str(exc))
