"""Tests for step declaration and the step execution engine."""

import pytest

from service_flow.services import Argument, RunStatus, Service, step
from service_flow.services.exceptions import NoStepsError, StepDefinitionError
from service_flow.services.steps import StepDefinition
from service_flow.services.types import Closure, MethodRef, Unless, When
from service_flow.services.testing import assert_step_executed, assert_step_skipped


class ThreeSteps(Service):
    """Steps a, b (always) and c, with a configurable action in a."""

    action = Argument(str, default="none")
    log = Argument(list, default_factory=list)

    @step
    def a(self):
        self.log.append("a:start")
        if self.action == "stop":
            self.stop()
        elif self.action == "stop_immediately":
            self.stop_immediately()
        elif self.action == "fail":
            self.fail("Something went wrong")
        elif self.action == "fail_immediately":
            self.fail_immediately("Something went wrong")
        elif self.action == "warn":
            self.warnings.add("base", "careful")
        self.log.append("a:end")

    @step(always=True)
    def b(self):
        self.log.append("b")

    @step
    def c(self):
        self.log.append("c")


@pytest.mark.unit
def test_all_steps_run_in_order():
    result = ThreeSteps.run()

    assert result.log == ["a:start", "a:end", "b", "c"]
    assert result.executed_steps == ["a", "b", "c"]
    assert result.status == RunStatus.FINISHED
    assert not result.stopped()


@pytest.mark.unit
def test_soft_stop_finishes_current_step_and_runs_only_always_steps():
    result = ThreeSteps.run(action="stop")

    assert result.log == ["a:start", "a:end", "b"]
    assert result.stopped()
    assert result.successful()
    assert_step_skipped(result, "c")


@pytest.mark.unit
def test_hard_stop_aborts_current_step_and_runs_always_steps():
    result = ThreeSteps.run(action="stop_immediately")

    assert result.log == ["a:start", "b"]
    assert result.status == RunStatus.STOPPED
    assert result.successful()
    assert_step_executed(result, "a", "b", ordered=True)
    assert_step_skipped(result, "c")


@pytest.mark.unit
def test_error_breaks_execution_but_always_steps_run():
    result = ThreeSteps.run(action="fail")

    assert result.log == ["a:start", "a:end", "b"]
    assert result.failed()
    assert result.errors.to_dict() == {"base": ["Something went wrong"]}
    assert result.status == RunStatus.FINISHED


@pytest.mark.unit
def test_fail_immediately_records_error_and_stops():
    result = ThreeSteps.run(action="fail_immediately")

    assert result.log == ["a:start", "b"]
    assert result.failed()
    assert result.stopped()


@pytest.mark.unit
def test_warnings_do_not_break_by_default():
    result = ThreeSteps.run(action="warn")

    assert result.log == ["a:start", "a:end", "b", "c"]
    assert result.successful()
    assert result.has_warnings()


@pytest.mark.unit
def test_break_on_warning_skips_later_steps():
    result = ThreeSteps.with_({"break_on_warning": True}).run(action="warn")

    assert result.log == ["a:start", "a:end", "b"]
    assert result.successful()


@pytest.mark.unit
def test_errors_do_not_break_when_disabled():
    result = ThreeSteps.with_({"break_on_error": False}).run(action="fail")

    assert result.log == ["a:start", "a:end", "b", "c"]
    assert result.failed()


class CatchesEverything(Service):
    log = Argument(list, default_factory=list)

    @step
    def guarded(self):
        try:
            self.stop_immediately()
        except Exception:
            self.log.append("caught")
        self.log.append("continued")

    @step
    def later(self):
        self.log.append("later")


@pytest.mark.unit
def test_hard_stop_is_not_caught_by_except_exception():
    result = CatchesEverything.run()

    assert result.log == []
    assert result.stopped()


class Conditional(Service):
    enabled = Argument(bool, default=True)
    log = Argument(list, default_factory=list)

    def is_weekend(self):
        return False

    @step(when="enabled")
    def by_field(self):
        self.log.append("by_field")

    @step(unless="is_weekend")
    def by_method(self):
        self.log.append("by_method")

    @step(when=lambda service: len(service.log) > 5)
    def by_callable(self):
        self.log.append("by_callable")

    @step(unless="enabled", always=True)
    def always_but_conditional(self):
        self.log.append("always_but_conditional")


@pytest.mark.unit
def test_conditions_use_fields_methods_and_callables():
    result = Conditional.run()

    assert result.log == ["by_field", "by_method"]
    assert result.skipped_steps == ["by_callable", "always_but_conditional"]

    disabled = Conditional.run(enabled=False)
    assert disabled.log == ["by_method", "always_but_conditional"]


@pytest.mark.unit
def test_step_definitions_capture_conditions():
    steps = Conditional.step_definitions()

    assert steps["by_field"] == StepDefinition("by_field", When(MethodRef("enabled")))
    assert steps["by_method"].condition == Unless(MethodRef("is_weekend"))
    assert isinstance(steps["by_callable"].condition.predicate, Closure)
    assert steps["always_but_conditional"].always


@pytest.mark.unit
def test_unknown_condition_name_raises():
    class Broken(Service):
        @step(when="does_not_exist")
        def body(self):
            pass

    with pytest.raises(StepDefinitionError, match="neither a method nor a field"):
        Broken.run()


class Crashing(Service):
    log = Argument(list, default_factory=list)

    @step
    def explode(self):
        raise ValueError("boom")

    @step
    def regular(self):
        self.log.append("regular")

    @step(always=True)
    def cleanup(self):
        self.log.append("cleanup")


@pytest.mark.unit
def test_crash_reraises_without_running_later_steps():
    log = []

    with pytest.raises(ValueError, match="boom"):
        Crashing.run(log=log)

    assert log == []


class CrashingAfterStop(Service):
    log = Argument(list, default_factory=list)

    @step
    def halt(self):
        self.stop()

    @step(always=True)
    def explode(self):
        raise KeyError("cleanup fault")

    @step(always=True)
    def cleanup(self):
        self.log.append("cleanup")


@pytest.mark.unit
def test_crash_in_always_step_reraises_that_fault():
    log = []

    with pytest.raises(KeyError, match="cleanup fault"):
        CrashingAfterStop.run(log=log)

    assert log == []


class Extended(ThreeSteps):
    @step(after="a")
    def a2(self):
        self.log.append("a2")


class Trimmed(Extended):
    pass


Trimmed.remove_step("c")


@pytest.mark.unit
def test_subclass_inserts_and_removes_steps():
    assert list(Extended.step_definitions()) == ["a", "a2", "b", "c"]
    assert list(Trimmed.step_definitions()) == ["a", "a2", "b"]
    assert list(ThreeSteps.step_definitions()) == ["a", "b", "c"]

    assert Trimmed.run().log == ["a:start", "a:end", "a2", "b"]


@pytest.mark.unit
def test_define_step_installs_method_programmatically():
    class Programmatic(Service):
        log = Argument(list, default_factory=list)

        @step
        def first(self):
            self.log.append("first")

    Programmatic.define_step("zeroth", lambda self: self.log.append("zeroth"), before="first")

    assert Programmatic.run().log == ["zeroth", "first"]


@pytest.mark.unit
def test_step_without_method_fails_at_run_time():
    class MissingMethod(Service):
        @step
        def present(self):
            pass

    MissingMethod.define_step("absent")

    with pytest.raises(StepDefinitionError, match="no method to run"):
        MissingMethod.run()


@pytest.mark.unit
def test_service_without_steps_cannot_run():
    class Empty(Service):
        pass

    with pytest.raises(NoStepsError):
        Empty.run()
