"""ValueLowerer — literal constants to Python literal text."""

from __future__ import annotations

from typing import Callable

from .. import ast
from ..errors import InvariantViolation
from ._base import Lowered, fmt_number, quote


class ValueLowerer:
    """Lowers :class:`ast.Value` literals, tagging each with its wrap type."""

    def __init__(self):
        self._VALUE_DISPATCH: dict[type, Callable[[ast.Value], Lowered]] = {
            ast.StringValue: self._lower_string,
            ast.NumberValue: self._lower_number,
            ast.BoolValue: self._lower_bool,
            ast.ConstantValue: self._lower_constant,
            ast.ListValue: self._lower_list_value,
        }

    def lower_value(self, value: ast.Value) -> Lowered:
        handler = self._VALUE_DISPATCH.get(type(value))
        if handler is None:
            # images, audio and refs never reach lowering
            raise InvariantViolation(
                f"{type(value).__name__} cannot be lowered as a literal"
            )
        return handler(value)

    def _lower_string(self, value: ast.StringValue) -> Lowered:
        return Lowered.unknown(quote(value.value))

    def _lower_number(self, value: ast.NumberValue) -> Lowered:
        return Lowered.unknown(fmt_number(value.value))

    def _lower_bool(self, value: ast.BoolValue) -> Lowered:
        # bools cannot be subclassed, so the runtime treats them as wrapped
        return Lowered.wrapped("True" if value.value else "False")

    def _lower_constant(self, value: ast.ConstantValue) -> Lowered:
        if value.value == ast.Constant.PI:
            return Lowered.unknown("math.pi")
        return Lowered.unknown("math.e")

    def _lower_list_value(self, value: ast.ListValue) -> Lowered:
        items = [self.lower_value(v).text for v in value.values]
        return Lowered.unknown(f"[{', '.join(items)}]")
