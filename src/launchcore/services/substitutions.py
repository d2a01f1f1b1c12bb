"""Lazy text interpolation resolved against the LaunchContext when an action runs.

Any textual field of an action accepts a plain string, a :class:`Substitution`,
or a (possibly nested) list of both. Plain strings are templates: ``$name`` and
``${name}`` reference variables, ``$$`` is a literal dollar sign. Nested lists
concatenate.
"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Union, TYPE_CHECKING

from launchcore.domain import LaunchError, SubstitutionResolutionError, UndeclaredVariable

if TYPE_CHECKING:
    from launchcore.services.context import LaunchContext

_log = logging.getLogger("launchcore.substitutions")

_TEMPLATE_RE = re.compile(r"\$\$|\$\{([A-Za-z_][\w.\-]*)\}|\$([A-Za-z_]\w*)")


class Substitution:
    def perform(self, context: "LaunchContext") -> str:
        raise NotImplementedError

    def describe(self) -> str:
        return repr(self)


SomeSubstitutions = Union[str, Substitution, Sequence[Union[str, Substitution, Sequence[Any]]]]


class TextSubstitution(Substitution):
    def __init__(self, text: str) -> None:
        self.text = text

    def perform(self, context: "LaunchContext") -> str:
        return self.text

    def describe(self) -> str:
        return repr(self.text)

    def __repr__(self) -> str:
        return f"TextSubstitution({self.text!r})"


class Variable(Substitution):
    """Value of a context variable; ``default`` (itself substitutable) is used when it is unbound."""

    def __init__(self, name: str, default: Optional[SomeSubstitutions] = None) -> None:
        self.name = name
        self.default = None if default is None else normalize(default)

    def perform(self, context: "LaunchContext") -> str:
        try:
            value = context.get(self.name)
        except UndeclaredVariable as e:
            if self.default is not None:
                return perform_substitutions(context, self.default)
            raise SubstitutionResolutionError(f"cannot resolve variable '{self.name}'", cause=e) from e
        return value if isinstance(value, str) else str(value)

    def describe(self) -> str:
        return f"${{{self.name}}}"

    def __repr__(self) -> str:
        return f"Variable({self.name!r})"


class EnvironmentVariable(Substitution):
    """Lookup in the process environment of the current scope."""

    def __init__(self, name: SomeSubstitutions, default: Optional[SomeSubstitutions] = None) -> None:
        self.name = normalize(name)
        self.default = None if default is None else normalize(default)

    def perform(self, context: "LaunchContext") -> str:
        name = perform_substitutions(context, self.name)
        value = context.environment.get(name)
        if value is None:
            if self.default is None:
                raise SubstitutionResolutionError(f"environment variable '{name}' is not set")
            return perform_substitutions(context, self.default)
        return value

    def __repr__(self) -> str:
        return f"EnvironmentVariable({self.name!r})"


class Command(Substitution):
    """Captured stdout of a command run at resolution time.

    on_stderr: "fail" (any stderr output is an error), "warn", "ignore", "capture"
    (stderr is appended to the result).
    """

    def __init__(self, command: SomeSubstitutions, *, on_stderr: str = "fail") -> None:
        if on_stderr not in ("fail", "warn", "ignore", "capture"):
            raise ValueError(f"unsupported on_stderr={on_stderr!r}")
        self.command = normalize_list(command) if isinstance(command, (list, tuple)) else [normalize(command)]
        self.on_stderr = on_stderr

    def perform(self, context: "LaunchContext") -> str:
        parts = [perform_substitutions(context, p) for p in self.command]
        argv = shlex.split(parts[0]) if len(parts) == 1 else parts
        try:
            res = subprocess.run(argv, capture_output=True, text=True, env=dict(context.environment), check=False)
        except OSError as e:
            raise SubstitutionResolutionError(f"command {argv!r} could not run", cause=e) from e
        if res.returncode != 0:
            raise SubstitutionResolutionError(f"command {argv!r} exited with {res.returncode}: {res.stderr.strip()}")
        out = res.stdout
        if res.stderr:
            if self.on_stderr == "fail":
                raise SubstitutionResolutionError(f"command {argv!r} wrote to stderr: {res.stderr.strip()}")
            if self.on_stderr == "warn":
                _log.warning("substitution.command_stderr", extra={"extra": {"argv": argv, "stderr": res.stderr}})
            elif self.on_stderr == "capture":
                out += res.stderr
        return out.rstrip("\n")

    def __repr__(self) -> str:
        return f"Command({self.command!r})"


# ---------- нормализация и вычисление ----------


def parse_template(text: str) -> List[Substitution]:
    out: List[Substitution] = []
    pos = 0
    buf = ""
    for m in _TEMPLATE_RE.finditer(text):
        buf += text[pos : m.start()]
        pos = m.end()
        if m.group(0) == "$$":
            buf += "$"
            continue
        if buf:
            out.append(TextSubstitution(buf))
            buf = ""
        out.append(Variable(m.group(1) or m.group(2)))
    buf += text[pos:]
    if buf or not out:
        out.append(TextSubstitution(buf))
    return out


def normalize(value: Any) -> List[Substitution]:
    """Turn any accepted textual value into a flat list of substitutions (concatenated on perform)."""
    if isinstance(value, Substitution):
        return [value]
    if isinstance(value, str):
        return parse_template(value)
    if isinstance(value, (list, tuple)):
        out: List[Substitution] = []
        for item in value:
            out.extend(normalize(item))
        return out
    if value is None:
        raise TypeError("None is not a substitutable value")
    return [TextSubstitution(str(value))]


def normalize_list(values: Iterable[Any]) -> List[List[Substitution]]:
    """Normalize each element separately (e.g. argv: one element per argument)."""
    return [normalize(v) for v in values]


def iter_fragments(context: "LaunchContext", subs: Iterable[Substitution]) -> Iterator[str]:
    for sub in subs:
        try:
            yield sub.perform(context)
        except LaunchError:
            raise
        except Exception as e:
            raise SubstitutionResolutionError(f"substitution {sub!r} failed", cause=e) from e


def perform_substitutions(context: "LaunchContext", value: Any) -> str:
    subs = value if _is_normalized(value) else normalize(value)
    return "".join(iter_fragments(context, subs))


def _is_normalized(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, Substitution) for v in value)
