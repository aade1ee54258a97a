"""Shared lowering primitives: the wrap-type lattice and text helpers."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .. import constants

_PY_IDENT_RE = re.compile(constants.PY_IDENT_PATTERN)


class WrapType(Enum):
    """Whether a lowered expression is already a runtime-wrapped value."""

    UNKNOWN = "unknown"
    WRAPPED = "wrapped"


@dataclass(frozen=True)
class Lowered:
    text: str
    wrap_type: WrapType = WrapType.UNKNOWN

    @classmethod
    def wrapped(cls, text: str) -> Lowered:
        return cls(text, WrapType.WRAPPED)

    @classmethod
    def unknown(cls, text: str) -> Lowered:
        return cls(text, WrapType.UNKNOWN)


def wrap(lowered: Lowered) -> str:
    """Text of *lowered*, routed through ``snap.wrap`` unless already wrapped."""
    if lowered.wrap_type is WrapType.WRAPPED:
        return lowered.text
    return f"{constants.WRAP_FN}({lowered.text})"


def common_wrap_type(a: WrapType, b: WrapType) -> WrapType:
    return a if a is b else WrapType.UNKNOWN


def is_py_ident(name: str) -> bool:
    return _PY_IDENT_RE.match(name) is not None


_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def escape(text: str) -> str:
    """Escape *text* for embedding inside a single-quoted Python string."""
    return "".join(_ESCAPES.get(ch, ch) for ch in text)


def quote(text: str) -> str:
    return f"'{escape(text)}'"


def fmt_number(value: float) -> str:
    """Canonical decimal text: integral values drop the fractional part."""
    if math.isnan(value):
        return "math.nan"
    if math.isinf(value):
        return "math.inf" if value > 0 else "-math.inf"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def fmt_comment(comment: Optional[str]) -> str:
    if comment is None:
        return ""
    return " # " + comment.replace("\n", " -- ")


def indent(code: str) -> str:
    """Indent every non-empty line of *code* by one level."""
    return "\n".join(
        constants.INDENT + line if line else line for line in code.split("\n")
    )
