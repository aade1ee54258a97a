"""Command-line entry point: ``nb2pb project.xml > project.json``."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .api import translate
from .errors import TranslateError
from .parser_types import ParserConfig

logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nb2pb",
        description="Translate a NetsBlox project into a PyBlox project",
    )
    parser.add_argument("file", help="NetsBlox project file (.xml)")
    parser.add_argument(
        "--rpc-metadata",
        type=Path,
        default=None,
        help='JSON file of RPC argument names: {"Service": {"rpc": ["arg", ...]}}',
    )
    parser.add_argument(
        "--editor-type",
        default=constants.EDITOR_SPRITE,
        choices=[constants.EDITOR_SPRITE, constants.EDITOR_TURTLE],
        help="Editor type emitted for sprites (default: sprite)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log translation progress to stderr",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    try:
        args = build_arg_parser().parse_args(argv)
    except SystemExit as exc:
        # argparse has already printed usage or help
        return 0 if exc.code == 0 else 1

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    if not args.file.endswith(".xml"):
        print(f"error: expected a .xml project file, got {args.file!r}", file=sys.stderr)
        return 1

    try:
        xml = Path(args.file).read_text(encoding="utf-8")
        config = ParserConfig.from_rpc_metadata_file(args.rpc_metadata) if args.rpc_metadata else None
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    try:
        _, content = translate(xml, config=config, sprite_editor_type=args.editor_type)
    except TranslateError as exc:
        logger.info("Translation of %s failed (%s)", args.file, exc.kind)
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(content)
    return 0


if __name__ == "__main__":
    sys.exit(main())
