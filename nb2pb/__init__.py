"""NetsBlox → PyBlox translator package."""

from .api import translate, parse_project  # noqa: F401
from .assembler import translate_project  # noqa: F401
from .errors import TranslateError, InvariantViolation  # noqa: F401
from .parser_types import ParserConfig  # noqa: F401
