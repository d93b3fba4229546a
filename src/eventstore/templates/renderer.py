"""Render title/message templates against event parameters with Jinja2."""

import operator
from functools import lru_cache
from numbers import Number
from typing import Any, List, Mapping, Optional, Tuple

from jinja2 import StrictUndefined, Template as JinjaTemplate, TemplateError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import ImmutableSandboxedEnvironment

from eventstore.errors import RenderError
from eventstore.templates.store import TemplateStore

# Largest sequence a template may build with `*`; far above the stored message size
MAX_REPEAT_LENGTH = 100_000
MAX_EXPONENT = 1_000

_BINOPS = {
    "*": operator.mul,
    "**": operator.pow,
}


class _BoundedSandbox(ImmutableSandboxedEnvironment):
    """Sandbox that refuses mutation of parameters and oversized `*` / `**` results."""

    intercepted_binops = frozenset(_BINOPS)

    def call_binop(self, context, operator_name, left, right):
        if operator_name == "*":
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, bytes, list, tuple)) and isinstance(count, int):
                    if len(seq) * count > MAX_REPEAT_LENGTH:
                        raise SecurityError(f"repeated sequence longer than {MAX_REPEAT_LENGTH}")
        elif operator_name == "**":
            if isinstance(right, Number) and not isinstance(right, complex) and abs(right) > MAX_EXPONENT:
                raise SecurityError(f"exponent larger than {MAX_EXPONENT}")
        return _BINOPS[operator_name](left, right)


class TemplateRenderer:
    """
    Plain-text variable substitution for event templates.

    Parameters are available as ``{{ parameters.name }}`` and, for short
    templates, as ``{{ name }}``. Referencing an undefined variable, writing
    malformed syntax or any error raised while the template runs becomes a
    RenderError instead of yielding an empty string.
    """

    def __init__(self, cache_size: int = 256):
        self._environment = _BoundedSandbox(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._compile = lru_cache(maxsize=cache_size)(self._environment.from_string)

    def compile(self, text: str) -> JinjaTemplate:
        try:
            return self._compile(text)
        except TemplateError as e:
            raise RenderError(_describe(e)) from e
        except Exception as e:
            raise RenderError(f"template: {type(e).__name__}: {e}") from e

    def render(self, text: str, parameters: Optional[Mapping[str, Any]] = None) -> str:
        parameters = parameters or {}
        template = self.compile(text)
        context = dict(parameters)
        context["parameters"] = parameters
        try:
            return template.render(context)
        except TemplateError as e:
            raise RenderError(_describe(e)) from e
        except Exception as e:
            # Raised by calls on parameter values inside an expression
            raise RenderError(f"template: {type(e).__name__}: {e}") from e


def _describe(error: TemplateError) -> str:
    text = error.message or type(error).__name__
    lineno = getattr(error, "lineno", None)
    if lineno:
        return f"template:{lineno}: {text}"
    return f"template: {text}"


def check_templates(store: TemplateStore, renderer: TemplateRenderer) -> List[Tuple[str, str, str]]:
    """Compile every template and return (code, field, error) for each syntax problem."""
    problems: List[Tuple[str, str, str]] = []
    for code in store.codes():
        template = store[code]
        for field in ("title", "message"):
            try:
                renderer.compile(getattr(template, field))
            except RenderError as e:
                problems.append((code, field, str(e)))
    return problems
