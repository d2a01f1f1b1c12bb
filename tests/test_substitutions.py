from __future__ import annotations

import sys

import pytest

from launchcore.domain import SubstitutionResolutionError
from launchcore.services.context import LaunchContext
from launchcore.services.substitutions import (
    Command,
    EnvironmentVariable,
    TextSubstitution,
    Variable,
    normalize,
    parse_template,
    perform_substitutions,
)


@pytest.fixture
def ctx() -> LaunchContext:
    c = LaunchContext(environment={"HOME_DIR": "/home/ana"})
    c.set("who", "ana")
    c.set("where", "home")
    return c


def test_template_references_are_resolved(ctx):
    assert perform_substitutions(ctx, "$who is at $where") == "ana is at home"
    assert perform_substitutions(ctx, "${who}s") == "anas"
    assert perform_substitutions(ctx, "$who-x") == "ana-x"


def test_double_dollar_is_literal(ctx):
    assert perform_substitutions(ctx, "$$who costs $$5") == "$who costs $5"
    assert perform_substitutions(ctx, "price: 5$") == "price: 5$"


def test_parse_template_splits_text_and_variables():
    parts = parse_template("a $x b")
    assert [type(p) for p in parts] == [TextSubstitution, Variable, TextSubstitution]
    assert [type(p) for p in parse_template("")] == [TextSubstitution]


def test_nested_lists_concatenate(ctx):
    value = ["[", [Variable("who"), "@", ["$where"]], "]"]
    assert perform_substitutions(ctx, value) == "[ana@home]"


def test_resolution_is_lazy(ctx):
    subs = normalize("value=$later")
    ctx.set("later", "1")
    assert perform_substitutions(ctx, subs) == "value=1"
    ctx.set("later", "2")
    assert perform_substitutions(ctx, subs) == "value=2"


def test_missing_variable_raises_resolution_error(ctx):
    with pytest.raises(SubstitutionResolutionError):
        perform_substitutions(ctx, "$nobody")


def test_variable_default_is_used_when_unbound(ctx):
    assert perform_substitutions(ctx, Variable("nobody", default="$who")) == "ana"


def test_structured_values_are_stringified(ctx):
    ctx.set("n", 3)
    assert perform_substitutions(ctx, ["n=", Variable("n")]) == "n=3"


def test_environment_lookup(ctx):
    assert perform_substitutions(ctx, EnvironmentVariable("HOME_DIR")) == "/home/ana"
    assert perform_substitutions(ctx, EnvironmentVariable("NOPE", default="x")) == "x"
    with pytest.raises(SubstitutionResolutionError):
        perform_substitutions(ctx, EnvironmentVariable("NOPE"))


def test_command_output_capture(ctx):
    cmd = Command([sys.executable, "-c", "print('hi $who')"])
    assert perform_substitutions(ctx, cmd) == "hi ana"


def test_command_failure_is_resolution_error(ctx):
    with pytest.raises(SubstitutionResolutionError):
        perform_substitutions(ctx, Command([sys.executable, "-c", "import sys; sys.exit(2)"]))


def test_command_stderr_policy(ctx):
    script = "import sys; sys.stderr.write('warn'); print('out')"
    with pytest.raises(SubstitutionResolutionError):
        perform_substitutions(ctx, Command([sys.executable, "-c", script]))
    assert perform_substitutions(ctx, Command([sys.executable, "-c", script], on_stderr="ignore")) == "out"

