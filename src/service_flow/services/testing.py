"""
Assertion helpers for testing services with pytest.

Each helper raises AssertionError with a readable message, so it can be
used directly in a test body::

    result = CreateOrder.run(customer_id=7)
    assert_error_on(result, "customer_id", "is blank")
    assert_step_skipped(result, "send_confirmation")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Type

from service_flow.services.base import Service
from service_flow.services.types import MISSING, CallbackEvent, Unless, When


def assert_error_on(service: Service, key: str, text: Optional[str] = None) -> None:
    """Assert ``service`` recorded an error under ``key`` (with ``text`` when given)."""
    _assert_message_on(service, "errors", key, text)


def assert_warning_on(service: Service, key: str, text: Optional[str] = None) -> None:
    """Assert ``service`` recorded a warning under ``key`` (with ``text`` when given)."""
    _assert_message_on(service, "warnings", key, text)


def _assert_message_on(service: Service, kind: str, key: str, text: Optional[str]) -> None:
    messages = getattr(service, kind)
    if key not in messages:
        raise AssertionError(
            f"expected {type(service).__qualname__} to have {kind} on `{key}`, "
            f"got {messages.to_dict()!r}"
        )
    if text is not None:
        texts = [message.text for message in messages[key]]
        if text not in texts:
            raise AssertionError(
                f"expected {kind} on `{key}` to include {text!r}, got {texts!r}"
            )


def assert_step_executed(service: Service, *names: str, ordered: bool = False) -> None:
    """Assert every step in ``names`` ran; with ``ordered`` also check their order."""
    missing = [name for name in names if name not in service.executed_steps]
    if missing:
        raise AssertionError(
            f"expected steps {missing!r} to run, executed: {service.executed_steps!r}"
        )
    if ordered:
        positions = [service.executed_steps.index(name) for name in names]
        if positions != sorted(positions):
            raise AssertionError(
                f"expected steps to run in order {list(names)!r}, "
                f"executed: {service.executed_steps!r}"
            )


def assert_step_skipped(service: Service, *names: str) -> None:
    """Assert every step in ``names`` was skipped and did not run."""
    for name in names:
        if name in service.executed_steps or name not in service.skipped_steps:
            raise AssertionError(
                f"expected step `{name}` to be skipped, executed: "
                f"{service.executed_steps!r}, skipped: {service.skipped_steps!r}"
            )


def defines_argument(
    service_cls: Type[Service],
    name: str,
    type: Any = MISSING,
    optional: Optional[bool] = None,
    default: Any = MISSING,
    context: Optional[bool] = None,
) -> None:
    """Assert ``service_cls`` declares argument ``name`` with the given attributes."""
    field = service_cls.argument_definitions().get(name)
    if field is None:
        raise AssertionError(
            f"expected {service_cls.__qualname__} to define argument `{name}`, "
            f"arguments: {list(service_cls.argument_definitions())!r}"
        )
    _check_field(field, type, optional, default)
    if context is not None and field.context != context:
        raise AssertionError(f"expected argument `{name}` context={context}")


def defines_output(
    service_cls: Type[Service],
    name: str,
    type: Any = MISSING,
    optional: Optional[bool] = None,
    default: Any = MISSING,
) -> None:
    """Assert ``service_cls`` declares output ``name`` with the given attributes."""
    field = service_cls.output_definitions().get(name)
    if field is None:
        raise AssertionError(
            f"expected {service_cls.__qualname__} to define output `{name}`, "
            f"outputs: {list(service_cls.output_definitions())!r}"
        )
    _check_field(field, type, optional, default)


def _check_field(field: Any, type_: Any, optional: Optional[bool], default: Any) -> None:
    if type_ is not MISSING and field.type != type_:
        raise AssertionError(
            f"expected {field.kind} `{field.name}` type {type_!r}, got {field.type!r}"
        )
    if optional is not None and field.optional != optional:
        raise AssertionError(f"expected {field.kind} `{field.name}` optional={optional}")
    if default is not MISSING and field.default != default:
        raise AssertionError(
            f"expected {field.kind} `{field.name}` default {default!r}, "
            f"got {field.default!r}"
        )


def defines_step(
    service_cls: Type[Service],
    *names: str,
    always: Optional[bool] = None,
    when: Any = None,
    unless: Any = None,
    ordered: bool = False,
) -> None:
    """
    Assert ``service_cls`` declares the steps in ``names``.

    ``always``/``when``/``unless`` are checked on every named step; ``when``
    and ``unless`` compare against the method name or callable given to
    ``@step``.
    """
    steps = service_cls.step_definitions()
    missing = [name for name in names if name not in steps]
    if missing:
        raise AssertionError(
            f"expected {service_cls.__qualname__} to define steps {missing!r}, "
            f"steps: {list(steps)!r}"
        )

    for name in names:
        definition = steps[name]
        if always is not None and definition.always != always:
            raise AssertionError(f"expected step `{name}` always={always}")
        if when is not None and not _condition_is(definition.condition, When, when):
            raise AssertionError(f"expected step `{name}` when={when!r}")
        if unless is not None and not _condition_is(definition.condition, Unless, unless):
            raise AssertionError(f"expected step `{name}` unless={unless!r}")

    if ordered:
        order = list(steps)
        positions = [order.index(name) for name in names]
        if positions != sorted(positions):
            raise AssertionError(f"expected steps in order {list(names)!r}, got {order!r}")


def _condition_is(condition: Any, kind: type, expected: Any) -> bool:
    if not isinstance(condition, kind):
        return False
    predicate = condition.predicate
    return getattr(predicate, "name", None) == expected or getattr(predicate, "fn", None) is expected


@dataclass
class RecordedCallback:
    event: CallbackEvent
    args: Tuple[Any, ...]


class CallbackRecorder:
    """
    Records every callback fired for a service class.

    ``watch`` returns a throwaway subclass with recording callbacks attached,
    leaving the original class untouched::

        recorder = CallbackRecorder()
        result = recorder.watch(CreateOrder).run(customer_id=7)
        assert recorder.fired(CallbackEvent.ON_SERVICE_SUCCESS)
    """

    def __init__(self) -> None:
        self.calls: List[RecordedCallback] = []

    def watch(self, service_cls: Type[Service]) -> Type[Service]:
        watched = type(f"Watched{service_cls.__name__}", (service_cls,), {})
        for event in CallbackEvent:
            watched.add_callback(event, self._handler(event))
        return watched

    def _handler(self, event: CallbackEvent) -> Any:
        if event.is_around:

            def around(service: Service, *args: Any) -> Any:
                *step_args, proceed = args
                self.calls.append(RecordedCallback(event, tuple(step_args)))
                return proceed()

            return around

        def handler(service: Service, *args: Any) -> None:
            self.calls.append(RecordedCallback(event, args))

        return handler

    def events(self) -> List[str]:
        return [call.event.value for call in self.calls]

    def fired(self, event: Any, *args: Any) -> bool:
        """Whether ``event`` fired, optionally with exactly ``args``."""
        event = CallbackEvent(event)
        return any(
            call.event == event and (not args or call.args == args) for call in self.calls
        )

    def clear(self) -> None:
        self.calls.clear()
