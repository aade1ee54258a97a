"""Costume image probing and envelope encoding."""

from __future__ import annotations

import base64
import io
import logging
import re
from typing import Optional

from PIL import Image, UnidentifiedImageError

from . import ast
from .errors import InvariantViolation, UnknownImageFormatError

logger = logging.getLogger(__name__)

_SVG_SNIFF_BYTES = 2000
_SVG_TAG_RE = re.compile(r"<svg\b[^>]*>", re.DOTALL)
# plain or px lengths only; stroke-width and friends never match
_SVG_WIDTH_RE = re.compile(r"(?<![-\w:])width\s*=\s*[\"']([0-9.]+)(?:px)?[\"']")
_SVG_HEIGHT_RE = re.compile(r"(?<![-\w:])height\s*=\s*[\"']([0-9.]+)(?:px)?[\"']")
_SVG_VIEWBOX_RE = re.compile(
    r"(?<![-\w:])viewBox\s*=\s*[\"']\s*[-0-9.]+[ ,]+[-0-9.]+[ ,]+"
    r"([0-9.]+)[ ,]+([0-9.]+)\s*[\"']"
)


def _probe_svg_size(content: bytes) -> Optional[tuple[float, float]]:
    head = content[:_SVG_SNIFF_BYTES].decode("utf-8", errors="ignore")
    tag_match = _SVG_TAG_RE.search(head)
    if tag_match is None:
        return None
    tag = tag_match.group(0)
    width_match = _SVG_WIDTH_RE.search(tag)
    height_match = _SVG_HEIGHT_RE.search(tag)
    if width_match and height_match:
        return float(width_match.group(1)), float(height_match.group(1))
    viewbox_match = _SVG_VIEWBOX_RE.search(tag)
    if viewbox_match:
        return float(viewbox_match.group(1)), float(viewbox_match.group(2))
    return None


def probe_image_size(content: bytes) -> tuple[float, float]:
    """Return the intrinsic ``(width, height)`` of an encoded image.

    Raster formats are read with Pillow; SVG documents are sized from their
    ``width``/``height`` attributes or ``viewBox``.

    Raises:
        UnknownImageFormatError: The bytes are not a recognised image.
    """
    svg_size = _probe_svg_size(content)
    if svg_size is not None:
        return svg_size
    try:
        with Image.open(io.BytesIO(content)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise UnknownImageFormatError(
            f"unrecognised image data ({len(content)} bytes)"
        ) from exc
    return float(width), float(height)


def costume_center(image: ast.ImageValue) -> list[float]:
    """Runtime center offset of a costume: ``[cx - w/2, -(cy - h/2)]``.

    The editor-space center defaults to the middle of the image.
    """
    width, height = probe_image_size(image.content)
    cx, cy = image.center if image.center is not None else (width / 2, height / 2)
    return [cx - width / 2, height / 2 - cy]


def encode_costume(payload: ast.Value):
    """JSON-ready image entry for a costume payload."""
    if isinstance(payload, ast.StringValue):
        return payload.value
    if isinstance(payload, ast.ImageValue):
        logger.debug("Encoding image costume %r (%d bytes)", payload.name, len(payload.content))
        return {
            "img": base64.b64encode(payload.content).decode("ascii"),
            "center": costume_center(payload),
        }
    raise InvariantViolation(f"{type(payload).__name__} is not a costume payload")
