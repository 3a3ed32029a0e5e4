"""
Lifecycle callbacks for services.

Callbacks are registered per class, either by decorating methods in the
class body (``@before_step_run``) or with ``Service.add_callback(event, fn)``.
A class sees its ancestors' callbacks first, then its own. Around callbacks
receive a ``proceed`` callable as their last argument and nest with the
ancestor's handler outermost.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Tuple, Union
from weakref import WeakKeyDictionary

from service_flow.services.exceptions import CallbackError
from service_flow.services.types import CallbackEvent, Closure, MethodRef

CallbackEntry = Union[MethodRef, Closure]

# Attribute set on decorated methods, listing the events they handle
CALLBACK_MARKER = "__service_callbacks__"


def to_event(event: Union[str, CallbackEvent]) -> CallbackEvent:
    """Normalise an event name, raising CallbackError for unknown events."""
    try:
        return CallbackEvent(event)
    except ValueError:
        valid = ", ".join(e.value for e in CallbackEvent)
        raise CallbackError(
            f"Unknown callback event `{event}`; expected one of: {valid}"
        ) from None


class CallbackRegistry:
    """Per-class ordered callback lists, one list per event."""

    def __init__(self) -> None:
        self._own: "WeakKeyDictionary[type, Dict[CallbackEvent, List[CallbackEntry]]]" = (
            WeakKeyDictionary()
        )

    def register(self, cls: type) -> None:
        self._own.setdefault(cls, {})

    def add(self, cls: type, event: Union[str, CallbackEvent], entry: CallbackEntry) -> None:
        event = to_event(event)
        if isinstance(entry, Closure) and not callable(entry.fn):
            raise CallbackError(
                f"Callback for `{event.value}` on {cls.__qualname__} must be callable"
            )
        self.register(cls)
        self._own[cls].setdefault(event, []).append(entry)

    def effective(self, cls: type, event: Union[str, CallbackEvent]) -> Tuple[CallbackEntry, ...]:
        """Callbacks for ``event`` visible on ``cls``, ancestors first."""
        event = to_event(event)
        entries: List[CallbackEntry] = []
        for klass in reversed(cls.__mro__):
            own = self._own.get(klass)
            if own:
                entries.extend(own.get(event, ()))
        return tuple(entries)


class CallbackDispatcher:
    """Fires the callbacks registered for one running service."""

    def __init__(self, registry: CallbackRegistry, service: Any):
        self.registry = registry
        self.service = service

    def fire(self, event: CallbackEvent, *args: Any) -> None:
        """Call every handler for a plain event in registration order."""
        for entry in self.registry.effective(type(self.service), event):
            self._invoke(entry, *args)

    def around(self, event: CallbackEvent, body: Callable[[], Any], *args: Any) -> Any:
        """Run ``body`` wrapped in the around handlers registered for ``event``."""
        call = body
        for entry in reversed(self.registry.effective(type(self.service), event)):
            call = self._wrap(event, entry, call, args)
        return call()

    def _wrap(
        self,
        event: CallbackEvent,
        entry: CallbackEntry,
        inner: Callable[[], Any],
        args: Tuple[Any, ...],
    ) -> Callable[[], Any]:
        def wrapped() -> Any:
            calls = 0
            inner_result = None

            def proceed() -> Any:
                nonlocal calls, inner_result
                calls += 1
                if calls > 1:
                    raise CallbackError(
                        f"{_describe(entry)} called proceed more than once for `{event.value}`"
                    )
                inner_result = inner()
                return inner_result

            self._invoke(entry, *args, proceed)
            if calls == 0:
                raise CallbackError(
                    f"{_describe(entry)} returned without calling proceed for `{event.value}`"
                )
            return inner_result

        return wrapped

    def _invoke(self, entry: CallbackEntry, *args: Any) -> Any:
        if isinstance(entry, Closure):
            return entry.fn(self.service, *args)
        return entry.resolve(self.service)(*args)


def _describe(entry: CallbackEntry) -> str:
    if isinstance(entry, MethodRef):
        return f"Callback method `{entry.name}`"
    return f"Callback {getattr(entry.fn, '__qualname__', repr(entry.fn))}"


def _marker(event: CallbackEvent) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        if not callable(fn):
            raise CallbackError(f"@{event.value} must decorate a method")
        events = list(getattr(fn, CALLBACK_MARKER, ()))
        events.append(event)
        setattr(fn, CALLBACK_MARKER, tuple(events))
        return fn

    decorator.__name__ = event.value
    decorator.__doc__ = f"Register the decorated method as a `{event.value}` callback."
    return decorator


before_step_run = _marker(CallbackEvent.BEFORE_STEP_RUN)
after_step_run = _marker(CallbackEvent.AFTER_STEP_RUN)
around_step_run = _marker(CallbackEvent.AROUND_STEP_RUN)
on_step_success = _marker(CallbackEvent.ON_STEP_SUCCESS)
on_step_failure = _marker(CallbackEvent.ON_STEP_FAILURE)
on_step_crash = _marker(CallbackEvent.ON_STEP_CRASH)
before_service_run = _marker(CallbackEvent.BEFORE_SERVICE_RUN)
after_service_run = _marker(CallbackEvent.AFTER_SERVICE_RUN)
around_service_run = _marker(CallbackEvent.AROUND_SERVICE_RUN)
on_service_success = _marker(CallbackEvent.ON_SERVICE_SUCCESS)
on_service_failure = _marker(CallbackEvent.ON_SERVICE_FAILURE)
