"""
Definition-time checks for argument, output and step names.

Names become attributes on the service class, so they must be plain
identifiers that do not shadow the service API or one another.
"""

import keyword
from typing import Any, Mapping

from service_flow.services.exceptions import (
    InvalidNameError,
    MissingTypeError,
    ReservedNameError,
)
from service_flow.services.types import MISSING, CallbackEvent

# Instance API of Service
INSTANCE_METHODS = frozenset(
    {
        "arguments",
        "outputs",
        "errors",
        "warnings",
        "config",
        "parent",
        "execution_id",
        "status",
        "executed_steps",
        "skipped_steps",
        "successful",
        "success",
        "failed",
        "stopped",
        "has_errors",
        "has_warnings",
        "present",
        "stop",
        "done",
        "stop_immediately",
        "fail",
        "fail_immediately",
        "call",
    }
)

# Class API of Service
CLASS_METHODS = frozenset(
    {
        "run",
        "run_strict",
        "with_",
        "define_argument",
        "define_output",
        "define_step",
        "remove_argument",
        "remove_output",
        "remove_step",
        "add_callback",
        "service_config",
        "argument_definitions",
        "output_definitions",
        "step_definitions",
        "callbacks_for",
        "mro",
    }
)

CALLBACK_METHODS = frozenset(event.value for event in CallbackEvent)

RESERVED_NAMES = INSTANCE_METHODS | CLASS_METHODS | CALLBACK_METHODS


def validate_name(name: Any, kind: str, service_cls: type) -> None:
    """
    Check that ``name`` can be used for a definition of ``kind``.

    Raises:
        InvalidNameError: Not a string, not an identifier, a keyword, or private
        ReservedNameError: Shadows part of the service API
    """
    service = service_cls.__qualname__
    if not isinstance(name, str):
        raise InvalidNameError(
            f"{kind.capitalize()} name must be a str, got "
            f"{type(name).__name__} ({name!r})",
            service=service,
        )
    if not name.isidentifier() or keyword.iskeyword(name):
        raise InvalidNameError(
            f"{kind.capitalize()} name `{name}` is not a valid identifier",
            service=service,
            name=name,
        )
    if name.startswith("_"):
        raise InvalidNameError(
            f"{kind.capitalize()} name `{name}` must not start with an underscore",
            service=service,
            name=name,
        )
    if name in RESERVED_NAMES:
        raise ReservedNameError(
            f"Cannot use `{name}` as {kind} name - it conflicts with the service API",
            service=service,
            name=name,
        )


def validate_name_conflicts(
    name: str, kind: str, service_cls: type, views: Mapping[str, Mapping[str, Any]]
) -> None:
    """
    Reject ``name`` when another definition kind already uses it.

    Args:
        views: kind -> effective definitions for ``service_cls``
    """
    for other_kind, definitions in views.items():
        if other_kind != kind and name in definitions:
            raise ReservedNameError(
                f"Cannot use `{name}` as {kind} name - "
                f"it is already defined as {_article(other_kind)} {other_kind}",
                service=service_cls.__qualname__,
                name=name,
            )


def validate_type_required(name: str, kind: str, type_: Any, config: Any) -> None:
    """Raise MissingTypeError when ``type_`` is missing and the config requires one."""
    if type_ is not MISSING:
        return
    option = "require_arg_type" if kind == "argument" else "require_output_type"
    if getattr(config, option):
        raise MissingTypeError(
            f"{kind.capitalize()} `{name}` must have a type specified "
            f"({option} is enabled)",
            name=name,
        )


def _article(word: str) -> str:
    return "an" if word[:1] in "aeiou" else "a"
