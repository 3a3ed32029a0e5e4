"""Tests for the layered service configuration."""

import pytest
from pydantic import ValidationError

from service_flow.config import get_settings
from service_flow.services.service_config import (
    ServiceConfig,
    class_layers,
    configure,
    get_config,
    normalize_options,
    reset_config,
    resolve_config,
)


@pytest.mark.unit
def test_defaults_match_documented_policy():
    config = get_config()

    assert config.use_transactions is True
    assert config.load_errors is True
    assert config.break_on_error is True
    assert config.raise_on_error is False
    assert config.rollback_on_error is True
    assert config.load_warnings is True
    assert config.break_on_warning is False
    assert config.raise_on_warning is False
    assert config.rollback_on_warning is False
    assert config.require_arg_type is True
    assert config.require_output_type is True
    assert config.transaction_provider is None


@pytest.mark.unit
def test_environment_changes_global_defaults(monkeypatch):
    monkeypatch.setenv("SERVICE_FLOW_BREAK_ON_ERROR", "false")
    monkeypatch.setenv("SERVICE_FLOW_RAISE_ON_WARNING", "true")
    get_settings.cache_clear()

    config = get_config()

    assert config.break_on_error is False
    assert config.raise_on_warning is True


@pytest.mark.unit
def test_configure_and_reset():
    configure(raise_on_error=True)
    assert get_config().raise_on_error is True

    configure(break_on_warning=True)
    assert get_config().raise_on_error is True
    assert get_config().break_on_warning is True

    reset_config()
    assert get_config().raise_on_error is False


@pytest.mark.unit
def test_configure_rejects_unknown_keys_without_side_effects():
    configure(raise_on_error=True)

    with pytest.raises(ValidationError):
        configure(raise_everything=True)

    assert get_config().raise_on_error is True


@pytest.mark.unit
def test_require_type_shorthand_expands():
    assert normalize_options({"require_type": False}) == {
        "require_arg_type": False,
        "require_output_type": False,
    }
    assert normalize_options({"require_type": False, "require_arg_type": True}) == {
        "require_arg_type": True,
        "require_output_type": False,
    }


@pytest.mark.unit
def test_rollback_defaults_depend_on_transactions():
    assert ServiceConfig().errors_rollback is True
    assert ServiceConfig(use_transactions=False).errors_rollback is False
    assert ServiceConfig(rollback_on_warning=True).warnings_rollback is True


@pytest.mark.unit
def test_resolution_order_global_class_overrides():
    class Base:
        service_config = {"raise_on_error": True, "load_errors": False}

    class Derived(Base):
        service_config = {"load_errors": True}

    configure(break_on_warning=True, raise_on_error=False)

    assert class_layers(Derived) == {"raise_on_error": True, "load_errors": True}

    config = resolve_config(Derived, {"load_warnings": False})
    assert config.break_on_warning is True
    assert config.raise_on_error is True
    assert config.load_errors is True
    assert config.load_warnings is False


@pytest.mark.unit
def test_merged_keeps_provider_identity():
    provider = object()
    config = ServiceConfig().merged({"transaction_provider": provider})

    assert config.merged({"raise_on_error": True}).transaction_provider is provider
