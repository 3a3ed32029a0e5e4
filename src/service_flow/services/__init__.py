"""
Declarative service framework.

Public surface for declaring and running services: the Service base class,
field descriptors, the step decorator, callback decorators, messages and
the error taxonomy.
"""

from service_flow.services.base import Service
from service_flow.services.callbacks import (
    after_service_run,
    after_step_run,
    around_service_run,
    around_step_run,
    before_service_run,
    before_step_run,
    on_service_failure,
    on_service_success,
    on_step_crash,
    on_step_failure,
    on_step_success,
)
from service_flow.services.chain import ServiceChain
from service_flow.services.exceptions import (
    ArgTypeError,
    CallbackError,
    DefinitionError,
    DuplicateDefinitionError,
    InsertionTargetError,
    InvalidNameError,
    MessageError,
    MissingTypeError,
    NoStepsError,
    ReservedNameError,
    ServiceError,
    ServiceFailedError,
    StepDefinitionError,
    StopExecution,
)
from service_flow.services.fields import Argument, FieldValues, Output
from service_flow.services.messages import Message, Messages
from service_flow.services.service_config import (
    ServiceConfig,
    configure,
    get_config,
    reset_config,
)
from service_flow.services.steps import StepDefinition, step
from service_flow.services.types import (
    BASE_KEY,
    CallbackEvent,
    Closure,
    MethodRef,
    RunStatus,
    Unless,
    When,
)

__all__ = [
    "BASE_KEY",
    "ArgTypeError",
    "Argument",
    "CallbackError",
    "CallbackEvent",
    "Closure",
    "DefinitionError",
    "DuplicateDefinitionError",
    "FieldValues",
    "InsertionTargetError",
    "InvalidNameError",
    "Message",
    "MessageError",
    "Messages",
    "MethodRef",
    "MissingTypeError",
    "NoStepsError",
    "Output",
    "ReservedNameError",
    "RunStatus",
    "Service",
    "ServiceChain",
    "ServiceConfig",
    "ServiceError",
    "ServiceFailedError",
    "StepDefinition",
    "StepDefinitionError",
    "StopExecution",
    "Unless",
    "When",
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
