"""
Layered configuration for service runs.

A run's effective ServiceConfig is built from four layers, later layers
winning:

1. environment-backed ``Settings`` (``SERVICE_FLOW_*`` variables)
2. the global layer set with ``configure()``
3. ``service_config`` dicts declared on the class and its ancestors
4. per-run overrides passed through ``Service.with_({...})``
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from service_flow.config import get_settings

_global_overrides: Dict[str, Any] = {}


class ServiceConfig(BaseModel):
    """
    Policy options for a single service run.

    Args:
        use_transactions: Wrap the run in ``transaction_provider``
        load_errors: Copy errors to the chaining parent
        break_on_error: Default break flag for added errors
        raise_on_error: Raise ServiceFailedError after a run with errors
        rollback_on_error: Default rollback flag for added errors
        load_warnings: Copy warnings to the chaining parent
        break_on_warning: Default break flag for added warnings
        raise_on_warning: Raise ServiceFailedError after a run with warnings
        rollback_on_warning: Default rollback flag for added warnings
        require_arg_type: Arguments must declare a type
        require_output_type: Outputs must declare a type
        transaction_provider: Object with ``begin()`` returning a transaction
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    use_transactions: bool = Field(default=True)
    load_errors: bool = Field(default=True)
    break_on_error: bool = Field(default=True)
    raise_on_error: bool = Field(default=False)
    rollback_on_error: bool = Field(default=True)
    load_warnings: bool = Field(default=True)
    break_on_warning: bool = Field(default=False)
    raise_on_warning: bool = Field(default=False)
    rollback_on_warning: bool = Field(default=False)
    require_arg_type: bool = Field(default=True)
    require_output_type: bool = Field(default=True)
    transaction_provider: Optional[Any] = Field(
        default=None, description="TransactionProvider used when use_transactions is on"
    )

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "ServiceConfig":
        """Return a new config with ``overrides`` applied on top of this one."""
        if not overrides:
            return self
        return ServiceConfig.model_validate({**dict(self), **normalize_options(overrides)})

    @property
    def errors_rollback(self) -> bool:
        return self.use_transactions and self.rollback_on_error

    @property
    def warnings_rollback(self) -> bool:
        return self.use_transactions and self.rollback_on_warning


def normalize_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Expand the ``require_type`` shorthand into both ``require_*_type`` keys."""
    normalized = dict(options)
    if "require_type" in normalized:
        value = normalized.pop("require_type")
        normalized.setdefault("require_arg_type", value)
        normalized.setdefault("require_output_type", value)
    return normalized


def configure(**options: Any) -> ServiceConfig:
    """
    Change the global configuration layer.

    Options are validated against ServiceConfig before they are stored, so
    an unknown key raises pydantic's ValidationError and leaves the global
    layer untouched.

    Returns:
        The new global ServiceConfig
    """
    candidate = {**_global_overrides, **normalize_options(options)}
    config = ServiceConfig.model_validate({**get_settings().service_defaults(), **candidate})
    _global_overrides.clear()
    _global_overrides.update(candidate)
    return config


def get_config() -> ServiceConfig:
    """Return the global ServiceConfig (settings plus ``configure()`` overrides)."""
    return ServiceConfig.model_validate(
        {**get_settings().service_defaults(), **_global_overrides}
    )


def reset_config() -> None:
    """Drop every ``configure()`` override."""
    _global_overrides.clear()


def class_layers(service_cls: type) -> Dict[str, Any]:
    """Merge ``service_config`` dicts declared along the class's MRO, ancestors first."""
    merged: Dict[str, Any] = {}
    for klass in reversed(service_cls.__mro__):
        layer = vars(klass).get("service_config")
        if layer:
            merged.update(normalize_options(layer))
    return merged


def resolve_config(
    service_cls: type, overrides: Optional[Mapping[str, Any]] = None
) -> ServiceConfig:
    """Build the effective ServiceConfig for one run of ``service_cls``."""
    return get_config().merged(class_layers(service_cls)).merged(overrides)
