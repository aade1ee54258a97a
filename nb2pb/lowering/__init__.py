"""AST → Python source lowering, layered leaves-first."""

from ._base import Lowered, WrapType, wrap  # noqa: F401
from .values import ValueLowerer  # noqa: F401
from .expressions import ExpressionLowerer  # noqa: F401
from .statements import StatementLowerer  # noqa: F401
from .hats import ScriptLowerer  # noqa: F401
