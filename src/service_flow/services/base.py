"""
Service base class and run orchestration.

A service declares typed arguments, ordered steps and typed outputs::

    class CreateOrder(Service):
        customer_id = Argument(int)
        notify = Argument(bool, default=True)

        order = Output(dict)

        @step
        def build_order(self):
            self.order = {"customer_id": self.customer_id}

        @step(when="notify")
        def send_confirmation(self):
            ...

    result = CreateOrder.run(customer_id=7)
    result.successful()

``run`` resolves configuration, validates arguments, runs the steps inside
the configured transaction, validates outputs, and applies the error and
warning policy. Business errors are returned as data on the instance unless
``raise_on_error``/``raise_on_warning`` is set.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple, Union

from service_flow.services.callbacks import (
    CALLBACK_MARKER,
    CallbackDispatcher,
    CallbackEntry,
    CallbackRegistry,
)
from service_flow.services.chain import ServiceChain
from service_flow.services.exceptions import (
    ArgTypeError,
    NoStepsError,
    ServiceFailedError,
    StopExecution,
)
from service_flow.services.fields import (
    Argument,
    Field,
    FieldValues,
    Output,
    load_defaults,
    validate_values,
)
from service_flow.services.messages import Messages, MessageInput
from service_flow.services.registry import DefinitionRegistry
from service_flow.services.service_config import (
    ServiceConfig,
    class_layers,
    get_config,
    resolve_config,
)
from service_flow.services.steps import (
    STEP_MARKER,
    ConditionSpec,
    StepDefinition,
    StepEngine,
    StepOptions,
    build_condition,
)
from service_flow.services.types import (
    BASE_KEY,
    MISSING,
    CallbackEvent,
    Closure,
    MethodRef,
    RunStatus,
)
from service_flow.services.validation import (
    validate_name,
    validate_name_conflicts,
    validate_type_required,
)
from service_flow.utils.logging import get_logger, sanitize_for_logging

logger = get_logger(__name__)

_arguments: DefinitionRegistry[Argument] = DefinitionRegistry("argument", allow_redefinition=True)
_outputs: DefinitionRegistry[Output] = DefinitionRegistry("output", allow_redefinition=True)
_steps: DefinitionRegistry[StepDefinition] = DefinitionRegistry("step")
_callbacks = CallbackRegistry()


class Service:
    """
    Base class for services.

    Class attributes:
        service_config: Policy overrides for this class and its subclasses,
            merged over the global configuration (see ServiceConfig)

    Instance attributes:
        arguments: Validated argument values
        outputs: Output values set by the steps
        errors: Error messages; any error makes the run fail
        warnings: Warning messages; never fail the run
        status: RunStatus of the run
        executed_steps: Names of the steps that ran, in order
        skipped_steps: Names of the steps that were skipped, in order
        config: Effective ServiceConfig for the run
        parent: Service this one was chained from with ``with_``, if any
    """

    service_config: ClassVar[Mapping[str, Any]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for registry in (_arguments, _outputs, _steps):
            registry.register(cls)
        _callbacks.register(cls)

        # Unknown or malformed policy keys fail when the class is declared
        ServiceConfig.model_validate(class_layers(cls))

        for name, value in list(vars(cls).items()):
            if isinstance(value, Argument):
                cls._define_field(_arguments, name, value)
            elif isinstance(value, Output):
                cls._define_field(_outputs, name, value)
            else:
                options = getattr(value, STEP_MARKER, None)
                if isinstance(options, StepOptions):
                    cls._define_step(name, options)
                for event in getattr(value, CALLBACK_MARKER, ()):
                    entry = MethodRef(name)
                    # An override of a decorated method is already registered upstream
                    if entry not in _callbacks.effective(cls, event):
                        _callbacks.add(cls, event, entry)

    # ------------------------------------------------------------------
    # Class-level declaration API
    # ------------------------------------------------------------------

    @classmethod
    def define_argument(
        cls,
        name: str,
        type: Any = MISSING,
        *,
        optional: bool = False,
        default: Any = MISSING,
        default_factory: Optional[Callable[..., Any]] = None,
        context: bool = False,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> Argument:
        """Declare an argument after the class was created."""
        field = Argument(
            type,
            optional=optional,
            default=default,
            default_factory=default_factory,
            context=context,
        )
        cls._define_field(_arguments, name, field, before=before, after=after)
        return field

    @classmethod
    def define_output(
        cls,
        name: str,
        type: Any = MISSING,
        *,
        optional: bool = False,
        default: Any = MISSING,
        default_factory: Optional[Callable[..., Any]] = None,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> Output:
        """Declare an output after the class was created."""
        field = Output(
            type, optional=optional, default=default, default_factory=default_factory
        )
        cls._define_field(_outputs, name, field, before=before, after=after)
        return field

    @classmethod
    def define_step(
        cls,
        name: str,
        fn: Optional[Callable[..., Any]] = None,
        *,
        always: bool = False,
        when: ConditionSpec = None,
        unless: ConditionSpec = None,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> StepDefinition:
        """
        Declare a step after the class was created.

        Args:
            fn: Step body, installed as a method named ``name``; omit it
                when the class already has that method
        """
        options = StepOptions(always=always, when=when, unless=unless, before=before, after=after)
        definition = cls._define_step(name, options)
        if fn is not None:
            setattr(cls, name, fn)
        return definition

    @classmethod
    def remove_argument(cls, name: str) -> None:
        _arguments.undefine(cls, name)

    @classmethod
    def remove_output(cls, name: str) -> None:
        _outputs.undefine(cls, name)

    @classmethod
    def remove_step(cls, name: str) -> None:
        _steps.undefine(cls, name)

    @classmethod
    def add_callback(cls, event: Union[str, CallbackEvent], fn: Callable[..., Any]) -> None:
        """
        Register ``fn`` for ``event``; it is called with the service first.

        Around callbacks also receive a ``proceed`` callable as their last
        argument and must call it.
        """
        _callbacks.add(cls, event, Closure(fn))

    @classmethod
    def argument_definitions(cls) -> Mapping[str, Argument]:
        return _arguments.effective(cls)

    @classmethod
    def output_definitions(cls) -> Mapping[str, Output]:
        return _outputs.effective(cls)

    @classmethod
    def step_definitions(cls) -> Mapping[str, StepDefinition]:
        return _steps.effective(cls)

    @classmethod
    def callbacks_for(cls, event: Union[str, CallbackEvent]) -> Tuple[CallbackEntry, ...]:
        return _callbacks.effective(cls, event)

    @classmethod
    def _definition_views(cls) -> Dict[str, Mapping[str, Any]]:
        return {
            "argument": _arguments.effective(cls),
            "output": _outputs.effective(cls),
            "step": _steps.effective(cls),
        }

    @classmethod
    def _define_field(
        cls,
        registry: DefinitionRegistry,
        name: str,
        field: Field,
        before: Optional[str] = None,
        after: Optional[str] = None,
    ) -> None:
        validate_name(name, field.kind, cls)
        validate_name_conflicts(name, field.kind, cls, cls._definition_views())
        config = get_config().merged(class_layers(cls))
        validate_type_required(name, field.kind, field.type, config)

        field.bind(name)
        registry.define(cls, name, field, before=before, after=after)
        if vars(cls).get(name) is not field:
            setattr(cls, name, field)

    @classmethod
    def _define_step(cls, name: str, options: StepOptions) -> StepDefinition:
        validate_name(name, "step", cls)
        validate_name_conflicts(name, "step", cls, cls._definition_views())
        definition = StepDefinition(
            name=name,
            condition=build_condition(name, options.when, options.unless),
            always=options.always,
        )
        _steps.define(cls, name, definition, before=options.before, after=options.after)
        return definition

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    @classmethod
    def run(cls, **kwargs: Any) -> "Service":
        """Run the service and return the finished instance."""
        return cls._execute(kwargs)

    @classmethod
    def run_strict(cls, **kwargs: Any) -> "Service":
        """Run the service, raising ServiceFailedError when it records errors."""
        return cls._execute(kwargs, overrides={"raise_on_error": True})

    @classmethod
    def with_(
        cls,
        parent_or_config: Union["Service", Mapping[str, Any], None] = None,
        config: Optional[Mapping[str, Any]] = None,
    ) -> ServiceChain:
        """
        Prepare a run with a parent service and/or config overrides.

        A Service parent shares its context arguments and transaction
        provider with the child and receives the child's messages. A
        mapping only overrides configuration.

        Raises:
            ArgTypeError: ``parent_or_config`` is neither a Service nor a mapping
        """
        overrides: Dict[str, Any] = dict(config or {})
        parent: Optional[Service] = None
        if isinstance(parent_or_config, Service):
            parent = parent_or_config
        elif isinstance(parent_or_config, Mapping):
            overrides = {**parent_or_config, **overrides}
        elif parent_or_config is not None:
            raise ArgTypeError(
                f"{type(parent_or_config).__name__} - must be a Service instance "
                "or a config mapping"
            )
        return ServiceChain(cls, parent=parent, overrides=overrides)

    @classmethod
    def _execute(
        cls,
        kwargs: Mapping[str, Any],
        parent: Optional["Service"] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> "Service":
        config = resolve_config(cls, overrides)
        if (
            parent is not None
            and config.transaction_provider is None
            and parent.config.transaction_provider is not None
        ):
            config = config.merged({"transaction_provider": parent.config.transaction_provider})

        service = cls(config, parent=parent)
        service._load_arguments(kwargs)
        service._call()
        return service

    def __init__(self, config: Optional[ServiceConfig] = None, parent: Optional["Service"] = None):
        config = config or resolve_config(type(self))
        self.config = config
        self.parent = parent
        self.arguments = FieldValues()
        self.outputs = FieldValues()
        self.errors = Messages(
            break_on_add=config.break_on_error,
            rollback_on_add=config.errors_rollback,
        )
        self.warnings = Messages(
            break_on_add=config.break_on_warning,
            rollback_on_add=config.warnings_rollback,
        )
        self.status = RunStatus.PENDING
        self.executed_steps: List[str] = []
        self.skipped_steps: List[str] = []
        self.execution_id = uuid.uuid4().hex[:12]
        self._accepts_field_writes = False
        self._logger = logger.bind(
            service=type(self).__qualname__, execution_id=self.execution_id
        )

    def _load_arguments(self, kwargs: Mapping[str, Any]) -> None:
        cls = type(self)
        definitions = cls.argument_definitions()

        unknown = [name for name in kwargs if name not in definitions]
        if unknown:
            raise ArgTypeError(
                f"{cls.__qualname__} got unexpected argument(s): {', '.join(unknown)}; "
                f"expected: {', '.join(definitions) or 'none'}"
            )

        if self.parent is not None:
            parent_definitions = type(self.parent).argument_definitions()
            for name, field in parent_definitions.items():
                if (
                    field.context
                    and name in definitions
                    and name not in kwargs
                    and self.parent.arguments.get(name) is not None
                ):
                    self.arguments[name] = self.parent.arguments[name]

        for name, value in kwargs.items():
            self.arguments[name] = value

        load_defaults(self, cls.output_definitions(), self.outputs)
        load_defaults(self, definitions, self.arguments)
        validate_values(cls.__qualname__, definitions, self.arguments)

    def _call(self) -> None:
        cls = type(self)
        if not cls.step_definitions():
            raise NoStepsError(
                "Service has no steps defined; declare at least one @step",
                service=cls.__qualname__,
            )

        self._logger.info(
            "service.started",
            steps=list(cls.step_definitions()),
            parent=type(self.parent).__qualname__ if self.parent else None,
        )
        self._logger.debug(
            "service.arguments", arguments=sanitize_for_logging(self.arguments.to_dict())
        )

        transaction = self._begin_transaction()
        try:
            self._run_lifecycle()
        except BaseException:
            if transaction is not None:
                try:
                    transaction.rollback()
                except Exception as rollback_exc:
                    self._logger.error(
                        "service.transaction.rollback_failed",
                        error=str(rollback_exc),
                        exception_type=type(rollback_exc).__name__,
                    )
                else:
                    self._logger.info(
                        "service.transaction.rolled_back", reason="exception"
                    )
            raise
        if transaction is not None:
            if self.errors.rollback_requested or self.warnings.rollback_requested:
                transaction.rollback()
                self._logger.info("service.transaction.rolled_back", reason="messages")
            else:
                transaction.commit()
                self._logger.info("service.transaction.committed")

        self._copy_messages_to_parent()

        self._logger.info(
            "service.completed",
            status=self.status.value,
            successful=self.successful(),
            errors=self.errors.count(),
            warnings=self.warnings.count(),
            executed_steps=len(self.executed_steps),
            skipped_steps=len(self.skipped_steps),
        )

        if self.config.raise_on_error and self.errors.any():
            raise ServiceFailedError(self, self.errors)
        if self.config.raise_on_warning and self.warnings.any():
            raise ServiceFailedError(self, self.warnings)

    def _run_lifecycle(self) -> None:
        cls = type(self)
        dispatcher = CallbackDispatcher(_callbacks, self)
        engine = StepEngine(self, dispatcher, self._logger)

        self.status = RunStatus.RUNNING
        self._accepts_field_writes = True
        try:
            try:
                dispatcher.fire(CallbackEvent.BEFORE_SERVICE_RUN)
                dispatcher.around(CallbackEvent.AROUND_SERVICE_RUN, engine.run)
            except StopExecution:
                self.status = RunStatus.STOPPED
            if self.status == RunStatus.RUNNING:
                self.status = RunStatus.FINISHED

            dispatcher.fire(CallbackEvent.AFTER_SERVICE_RUN)
            if self.successful():
                dispatcher.fire(CallbackEvent.ON_SERVICE_SUCCESS)
            else:
                dispatcher.fire(CallbackEvent.ON_SERVICE_FAILURE)
        finally:
            self._accepts_field_writes = False

        if self.successful():
            validate_values(cls.__qualname__, cls.output_definitions(), self.outputs)

    def _begin_transaction(self) -> Any:
        provider = self.config.transaction_provider
        if not self.config.use_transactions or provider is None:
            return None
        return provider.begin()

    def _copy_messages_to_parent(self) -> None:
        parent = self.parent
        if parent is None:
            return
        if self.config.load_errors and self.errors.any():
            parent.errors.copy_from(self.errors)
            self._logger.info(
                "service.messages.copied", kind="errors", count=self.errors.count()
            )
        if self.config.load_warnings and self.warnings.any():
            parent.warnings.copy_from(self.warnings)
            self._logger.info(
                "service.messages.copied", kind="warnings", count=self.warnings.count()
            )

    # ------------------------------------------------------------------
    # Step-facing API
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Skip the remaining non-always steps; the current step finishes."""
        if self.status != RunStatus.STOPPED:
            self.status = RunStatus.STOPPED
            self._logger.info("service.stopped", immediately=False)

    done = stop

    def stop_immediately(self) -> None:
        """Abort the current step now and skip the remaining non-always steps."""
        self.status = RunStatus.STOPPED
        raise StopExecution()

    def fail(self, text: MessageInput) -> None:
        """Record a ``base`` error."""
        self.errors.add(BASE_KEY, text)

    def fail_immediately(self, text: MessageInput) -> None:
        """Record a ``base`` error and stop immediately."""
        self.errors.add(BASE_KEY, text)
        self.stop_immediately()

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------

    def successful(self) -> bool:
        return not self.errors.any()

    success = successful

    def failed(self) -> bool:
        return self.errors.any()

    def stopped(self) -> bool:
        return self.status == RunStatus.STOPPED

    def has_errors(self) -> bool:
        return self.errors.any()

    def has_warnings(self) -> bool:
        return self.warnings.any()

    def present(self, name: str) -> bool:
        """
        Return True when the argument or output ``name`` holds a truthy value.

        Raises:
            AttributeError: ``name`` is not an argument or output of this service
        """
        cls = type(self)
        if name in cls.argument_definitions():
            return bool(self.arguments.get(name))
        if name in cls.output_definitions():
            return bool(self.outputs.get(name))
        raise AttributeError(f"{cls.__qualname__} has no argument or output `{name}`")

    def __repr__(self) -> str:
        return (
            f"<{type(self).__qualname__} status={self.status.value} "
            f"errors={self.errors.count()} warnings={self.warnings.count()}>"
        )
