"""
Exception hierarchy for the service framework.

Definition errors surface while a service class is being declared. Type
errors, callback errors and step crashes surface while a service runs.
Business errors are collected as data and only become exceptions when a
service is configured with ``raise_on_error`` or ``raise_on_warning``.
"""

from typing import TYPE_CHECKING, Any, Iterable, Optional

if TYPE_CHECKING:
    from service_flow.services.messages import Messages


class ServiceError(Exception):
    """Base exception for all service-related errors."""

    pass


class DefinitionError(ServiceError):
    """
    Raised when a service class declaration is invalid.

    Args:
        message: Error description
        service: Name of the service class being declared (optional)
        name: Name of the argument, step or output involved (optional)
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.service = service
        self.name = name

        # Build contextual error message
        context_parts = []
        if service:
            context_parts.append(f"service='{service}'")
        if name:
            context_parts.append(f"name='{name}'")

        if context_parts:
            full_message = f"{message} ({', '.join(context_parts)})"
        else:
            full_message = message

        super().__init__(full_message)


class InvalidNameError(DefinitionError):
    """Raised when a definition name is not a usable identifier."""

    pass


class ReservedNameError(DefinitionError):
    """Raised when a name collides with the service API or another definition kind."""

    pass


class DuplicateDefinitionError(DefinitionError):
    """Raised when a name is defined twice in a registry that forbids it."""

    pass


class InsertionTargetError(DefinitionError):
    """
    Raised when ``before``/``after`` names a definition that does not exist.

    Args:
        message: Error description
        available: Names that could have been used as a target
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        name: Optional[str] = None,
        available: Iterable[str] = (),
    ):
        self.available = list(available)
        if self.available:
            message = f"{message}; available: {', '.join(self.available)}"
        super().__init__(message, service=service, name=name)


class MissingTypeError(DefinitionError):
    """Raised when an argument or output is declared without a type while types are required."""

    pass


class StepDefinitionError(DefinitionError):
    """Raised for malformed step declarations and missing step methods."""

    pass


class NoStepsError(DefinitionError):
    """Raised when a service with no steps is run."""

    pass


class ArgTypeError(ServiceError):
    """
    Raised when an argument or output value does not match its declared type.

    Also used for unknown keyword arguments and for invalid ``with_`` parents.
    Never collected as a message.
    """

    pass


class CallbackError(ServiceError):
    """Raised for invalid callback registrations and malformed around handlers."""

    pass


class MessageError(ServiceError):
    """Raised when an error or warning cannot be recorded."""

    pass


class ServiceFailedError(ServiceError):
    """
    Raised after a run when the service is configured to raise on its messages.

    Args:
        service: The finished service instance
        messages: The collection that triggered the raise (errors or warnings)
    """

    def __init__(self, service: Any, messages: "Messages"):
        self.service = service
        self.errors = messages
        super().__init__(messages.full_message())


class StopExecution(BaseException):
    """
    Internal hard-stop signal raised by ``stop_immediately``.

    Derives from BaseException so ``except Exception`` blocks inside step
    bodies do not intercept it. The step engine always catches it.
    """

    pass
