"""Translation error taxonomy.

Every user-facing failure is a :class:`TranslateError` subclass carrying
enough context to locate the offending construct.  Breaches of internal
invariants (states the parser contract rules out) raise
:class:`InvariantViolation`, which is deliberately *not* a
``TranslateError``.
"""

from __future__ import annotations

from typing import Any


class TranslateError(Exception):
    """Base class for all translation failures."""

    kind: str = "Translate"

    def __init__(self, message: str = "", node: Any = None):
        super().__init__(message or self.kind)
        self.node = node


class ParseError(TranslateError):
    kind = "Parse"


class NoRolesError(TranslateError):
    kind = "NoRoles"


class UnsupportedExprError(TranslateError):
    kind = "UnsupportedExpr"

    def __init__(self, node: Any):
        super().__init__(f"unsupported expression: {type(node).__name__}", node)


class UnsupportedStmtError(TranslateError):
    kind = "UnsupportedStmt"

    def __init__(self, node: Any):
        super().__init__(f"unsupported statement: {type(node).__name__}", node)


class UnsupportedHatError(TranslateError):
    kind = "UnsupportedHat"

    def __init__(self, node: Any):
        super().__init__(f"unsupported hat block: {type(node).__name__}", node)


class UpvarsError(TranslateError):
    kind = "Upvars"


class AnyMessageError(TranslateError):
    kind = "AnyMessage"


class RingTypeQueryError(TranslateError):
    kind = "RingTypeQuery"


class CommandRingError(TranslateError):
    kind = "CommandRing"


class TellAskClosureError(TranslateError):
    kind = "TellAskClosure"


class UnknownImageFormatError(TranslateError):
    kind = "UnknownImageFormat"


class InvariantViolation(RuntimeError):
    """An AST reached the core in a shape the parser never produces."""
