"""Library entry points: NetsBlox XML in, PyBlox project JSON out.

:func:`translate` is what the ``nb2pb`` command runs; :func:`parse_project`
stops after parsing for callers that want the resolved AST.
"""

from __future__ import annotations

import logging
from typing import Optional

from . import ast, constants
from .assembler import translate_project
from .parser import XmlProjectParser
from .parser_types import ParserConfig

logger = logging.getLogger(__name__)


def parse_project(xml: str, config: Optional[ParserConfig] = None) -> ast.Project:
    """Parse NetsBlox project XML into a resolved AST.

    Args:
        xml: A ``<room>``, ``<role>`` or ``<project>`` document.
        config: Parser options (RPC argument metadata).

    Returns:
        The resolved project tree.

    Raises:
        ParseError: The XML is malformed or uses unsupported blocks.
    """
    return XmlProjectParser(config).parse(xml)


def translate(
    xml: str,
    config: Optional[ParserConfig] = None,
    sprite_editor_type: str = constants.EDITOR_SPRITE,
) -> tuple[str, str]:
    """Translate NetsBlox project XML into the PyBlox JSON envelope.

    Args:
        xml: A ``<room>``, ``<role>`` or ``<project>`` document.
        config: Parser options (RPC argument metadata).
        sprite_editor_type: Editor ``type`` emitted for non-stage entities.

    Returns:
        ``(project_name, envelope_json)``.

    Raises:
        TranslateError: Parsing or lowering failed; the first failure aborts.
    """
    logger.info("Translating project XML (%d chars)", len(xml))
    project = parse_project(xml, config)
    return translate_project(project, sprite_editor_type=sprite_editor_type)
