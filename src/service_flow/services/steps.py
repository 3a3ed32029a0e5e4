"""
Step declarations and the step execution engine.

Steps are service methods marked with ``@step``. The engine runs them in
definition order, skipping steps whose condition does not hold and, once
the run is halted, every step not marked ``always``.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from service_flow.services.callbacks import CallbackDispatcher
from service_flow.services.exceptions import StepDefinitionError, StopExecution
from service_flow.services.fields import Field
from service_flow.services.types import (
    CallbackEvent,
    Closure,
    Condition,
    MethodRef,
    Predicate,
    RunStatus,
    Unless,
    When,
)

if TYPE_CHECKING:
    from service_flow.services.base import Service

# Attribute set on methods decorated with @step
STEP_MARKER = "__service_step__"

ConditionSpec = Union[str, Callable[..., Any], None]


@dataclass(frozen=True)
class StepDefinition:
    """Immutable metadata for one service step.

    Attributes:
        name: Step name; the service method with this name is the step body
        condition: ``When``/``Unless`` wrapping a predicate, or ``None``
        always: Run even after the service was stopped or broke on a message
    """

    name: str
    condition: Optional[Condition] = None
    always: bool = False


@dataclass(frozen=True)
class StepOptions:
    """Options captured by ``@step`` until the owning class registers the step."""

    always: bool = False
    when: ConditionSpec = None
    unless: ConditionSpec = None
    before: Optional[str] = None
    after: Optional[str] = None


def step(
    fn: Optional[Callable[..., Any]] = None,
    *,
    always: bool = False,
    when: ConditionSpec = None,
    unless: ConditionSpec = None,
    before: Optional[str] = None,
    after: Optional[str] = None,
) -> Any:
    """
    Mark a service method as a step.

    Usable bare (``@step``) or with options::

        @step(when="send_email", always=False)
        def notify(self): ...

    Args:
        always: Run the step even when the service is halted
        when: Method/field name or callable; the step runs when it is truthy
        unless: Method/field name or callable; the step runs when it is falsy
        before: Insert this step before an existing step
        after: Insert this step after an existing step
    """
    options = StepOptions(always=always, when=when, unless=unless, before=before, after=after)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if not callable(func):
            raise StepDefinitionError("@step must decorate a method")
        setattr(func, STEP_MARKER, options)
        return func

    if fn is not None:
        return decorator(fn)
    return decorator


def build_condition(
    name: str, when: ConditionSpec, unless: ConditionSpec
) -> Optional[Condition]:
    """
    Turn ``when``/``unless`` options into a Condition.

    Raises:
        StepDefinitionError: Both options given, or one is neither a name nor callable
    """
    if when is not None and unless is not None:
        raise StepDefinitionError(
            f"Step `{name}` cannot have both when and unless", name=name
        )
    if when is not None:
        return When(_to_predicate(name, "when", when))
    if unless is not None:
        return Unless(_to_predicate(name, "unless", unless))
    return None


def _to_predicate(name: str, option: str, value: Any) -> Predicate:
    if isinstance(value, str):
        return MethodRef(value)
    if callable(value):
        return Closure(value)
    raise StepDefinitionError(
        f"Step `{name}` {option} must be a method name or a callable, "
        f"got {type(value).__name__}",
        name=name,
    )


def evaluate_condition(condition: Optional[Condition], service: "Service") -> bool:
    """Return True when a step guarded by ``condition`` should run."""
    if condition is None:
        return True
    result = bool(_evaluate_predicate(condition.predicate, service))
    if isinstance(condition, Unless):
        return not result
    return result


def _evaluate_predicate(predicate: Predicate, service: "Service") -> Any:
    if isinstance(predicate, Closure):
        return predicate.fn(service)

    static = inspect.getattr_static(type(service), predicate.name, None)
    if isinstance(static, Field):
        return predicate.resolve(service)
    try:
        value = predicate.resolve(service)
    except AttributeError:
        raise StepDefinitionError(
            f"Condition `{predicate.name}` is neither a method nor a field",
            service=type(service).__qualname__,
            name=predicate.name,
        ) from None
    return value() if callable(value) else value


class StepEngine:
    """
    Runs the effective steps of one service instance.

    Args:
        service: The running service
        dispatcher: Callback dispatcher bound to ``service``
        logger: Bound structlog logger
    """

    def __init__(self, service: "Service", dispatcher: CallbackDispatcher, logger: Any):
        self.service = service
        self.dispatcher = dispatcher
        self.logger = logger

    def run(self) -> None:
        """
        Execute every step in order.

        An unexpected fault fires ``on_step_crash`` and then propagates;
        no further steps run, including always-run ones.
        """
        steps: Mapping[str, StepDefinition] = type(self.service).step_definitions()

        for definition in steps.values():
            if self._halted() and not definition.always:
                self._skip(definition, "halted")
                continue
            if not evaluate_condition(definition.condition, self.service):
                self._skip(definition, "condition")
                continue

            try:
                self._run_step(definition)
            except StopExecution:
                self._mark_stopped(definition.name)
            except Exception as exc:
                self._crash(definition, exc)
                raise

    def _crash(self, definition: StepDefinition, exc: Exception) -> None:
        self.logger.error(
            "service.step.crashed",
            step=definition.name,
            error=str(exc),
            exception_type=f"{exc.__class__.__module__}.{exc.__class__.__name__}",
        )
        try:
            self.dispatcher.fire(CallbackEvent.ON_STEP_CRASH, definition.name, exc)
        except StopExecution:
            # A hard stop from a crash handler does not replace the crash
            self._mark_stopped(definition.name)

    def _run_step(self, definition: StepDefinition) -> None:
        service = self.service
        errors_before = service.errors.count()
        step_start = datetime.now(timezone.utc)

        self.logger.info("service.step.started", step=definition.name)
        self.dispatcher.fire(CallbackEvent.BEFORE_STEP_RUN, definition.name)
        self.dispatcher.around(
            CallbackEvent.AROUND_STEP_RUN,
            lambda: self._call_body(definition),
            definition.name,
        )
        self.dispatcher.fire(CallbackEvent.AFTER_STEP_RUN, definition.name)
        service.executed_steps.append(definition.name)

        failed = service.errors.count() > errors_before
        if failed:
            self.dispatcher.fire(CallbackEvent.ON_STEP_FAILURE, definition.name)
        else:
            self.dispatcher.fire(CallbackEvent.ON_STEP_SUCCESS, definition.name)

        duration_ms = int((datetime.now(timezone.utc) - step_start).total_seconds() * 1000)
        self.logger.info(
            "service.step.completed",
            step=definition.name,
            duration_ms=duration_ms,
            errors=service.errors.count(),
            warnings=service.warnings.count(),
            failed=failed,
        )

    def _call_body(self, definition: StepDefinition) -> None:
        body = self._resolve_body(definition)
        try:
            body()
        except StopExecution:
            self._mark_stopped(definition.name)

    def _resolve_body(self, definition: StepDefinition) -> Callable[[], Any]:
        body = getattr(self.service, definition.name, None)
        if body is None or not callable(body):
            available = ", ".join(type(self.service).step_definitions())
            raise StepDefinitionError(
                f"Step `{definition.name}` has no method to run; steps: [{available}]",
                service=type(self.service).__qualname__,
                name=definition.name,
            )
        return body

    def _halted(self) -> bool:
        service = self.service
        return (
            service.stopped()
            or service.errors.break_requested
            or service.warnings.break_requested
        )

    def _skip(self, definition: StepDefinition, reason: str) -> None:
        self.service.skipped_steps.append(definition.name)
        self.logger.info("service.step.skipped", step=definition.name, reason=reason)

    def _mark_stopped(self, step_name: str) -> None:
        self.service.status = RunStatus.STOPPED
        self.logger.info("service.stopped", step=step_name, immediately=True)
