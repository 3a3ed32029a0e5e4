"""
Core data types shared by the service framework.

Holds the run status enum, the callback event names, and the small tagged
variants used for step conditions and callback entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Union

# Message key reserved for errors that concern the whole operation
BASE_KEY = "base"


class _Missing:
    """Sentinel for 'no value supplied', distinct from None."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class RunStatus(str, Enum):
    """Lifecycle of a single service run.

    Values:
        PENDING: Instance created, steps not started
        RUNNING: Steps are being executed
        STOPPED: ``stop``/``stop_immediately``/``fail_immediately`` was called
        FINISHED: Step iteration completed without a stop request
    """

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"
    FINISHED = "finished"


class CallbackEvent(str, Enum):
    """Lifecycle events a callback may be attached to."""

    BEFORE_STEP_RUN = "before_step_run"
    AFTER_STEP_RUN = "after_step_run"
    AROUND_STEP_RUN = "around_step_run"
    ON_STEP_SUCCESS = "on_step_success"
    ON_STEP_FAILURE = "on_step_failure"
    ON_STEP_CRASH = "on_step_crash"
    BEFORE_SERVICE_RUN = "before_service_run"
    AFTER_SERVICE_RUN = "after_service_run"
    AROUND_SERVICE_RUN = "around_service_run"
    ON_SERVICE_SUCCESS = "on_service_success"
    ON_SERVICE_FAILURE = "on_service_failure"

    @property
    def is_around(self) -> bool:
        return self in (CallbackEvent.AROUND_STEP_RUN, CallbackEvent.AROUND_SERVICE_RUN)


@dataclass(frozen=True)
class MethodRef:
    """Reference to a service method or field, resolved on the running instance."""

    name: str

    def resolve(self, service: Any) -> Any:
        """Return the attribute named ``name`` on ``service``."""
        return getattr(service, self.name)


@dataclass(frozen=True)
class Closure:
    """A plain callable invoked with the running service as first argument."""

    fn: Callable[..., Any]


Predicate = Union[MethodRef, Closure]


@dataclass(frozen=True)
class When:
    """Run the step only when the predicate is truthy."""

    predicate: Predicate


@dataclass(frozen=True)
class Unless:
    """Run the step only when the predicate is falsy."""

    predicate: Predicate


Condition = Union[When, Unless]
