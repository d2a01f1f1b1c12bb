from __future__ import annotations

import pytest

from launchcore.domain import ConditionEvaluationError
from launchcore.services.conditions import (
    Condition,
    IfCondition,
    UnlessCondition,
    VariableEquals,
    VariableNotEquals,
    as_condition,
)
from launchcore.services.context import LaunchContext


@pytest.fixture
def ctx() -> LaunchContext:
    c = LaunchContext()
    c.set("use_sim", "true")
    c.set("mode", "fast")
    return c


@pytest.mark.parametrize("text, expected", [("true", True), ("1", True), ("False", False), ("0", False)])
def test_if_condition_literals(ctx, text, expected):
    assert IfCondition(text).evaluate(ctx) is expected
    assert UnlessCondition(text).evaluate(ctx) is (not expected)


def test_if_condition_with_substitution(ctx):
    assert IfCondition("$use_sim").evaluate(ctx) is True


def test_non_boolean_text_is_an_evaluation_error(ctx):
    with pytest.raises(ConditionEvaluationError):
        IfCondition("$mode").evaluate(ctx)


def test_unresolvable_reference_is_an_evaluation_error(ctx):
    with pytest.raises(ConditionEvaluationError):
        IfCondition("$missing").evaluate(ctx)


def test_variable_equals(ctx):
    assert VariableEquals("mode", "fast").evaluate(ctx)
    assert VariableNotEquals("mode", "slow").evaluate(ctx)
    assert VariableEquals("absent", None).evaluate(ctx)
    assert not VariableEquals("mode", None).evaluate(ctx)


def test_callable_predicate(ctx):
    cond = as_condition(lambda c: c.get("mode") == "fast")
    assert isinstance(cond, Condition)
    assert cond.evaluate(ctx) is True


def test_predicate_exceptions_are_wrapped(ctx):
    def broken(c):
        raise KeyError("x")

    with pytest.raises(ConditionEvaluationError):
        Condition(broken).evaluate(ctx)
