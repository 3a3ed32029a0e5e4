"""
service-flow - declarative multi-step services.

A service declares typed arguments, an ordered list of steps and typed
outputs. Running it validates the arguments, executes the steps while
collecting errors and warnings, and returns the finished instance.

Example Usage:
    >>> from service_flow import Argument, Output, Service, step
    >>>
    >>> class Greet(Service):
    ...     name = Argument(str)
    ...     greeting = Output(str)
    ...
    ...     @step
    ...     def build(self):
    ...         self.greeting = f"Hello, {self.name}"
    >>>
    >>> Greet.run(name="Ada").greeting
    'Hello, Ada'
"""

from service_flow.services import (
    BASE_KEY,
    ArgTypeError,
    Argument,
    CallbackError,
    DefinitionError,
    Message,
    MessageError,
    Messages,
    Output,
    RunStatus,
    Service,
    ServiceConfig,
    ServiceError,
    ServiceFailedError,
    after_service_run,
    after_step_run,
    around_service_run,
    around_step_run,
    before_service_run,
    before_step_run,
    configure,
    get_config,
    on_service_failure,
    on_service_success,
    on_step_crash,
    on_step_failure,
    on_step_success,
    reset_config,
    step,
)

__version__ = "0.1.0"

__all__ = [
    "BASE_KEY",
    "ArgTypeError",
    "Argument",
    "CallbackError",
    "DefinitionError",
    "Message",
    "MessageError",
    "Messages",
    "Output",
    "RunStatus",
    "Service",
    "ServiceConfig",
    "ServiceError",
    "ServiceFailedError",
    "after_service_run",
    "after_step_run",
    "around_service_run",
    "around_step_run",
    "before_service_run",
    "before_step_run",
    "configure",
    "get_config",
    "on_service_failure",
    "on_service_success",
    "on_step_crash",
    "on_step_failure",
    "on_step_success",
    "reset_config",
    "step",
]
