"""Block-language names → unique Python identifiers."""

from __future__ import annotations

import keyword
import re

_INVALID_RUN_RE = re.compile(r"[^A-Za-z0-9_]+")

# names the emitted code relies on at module / class scope
RESERVED_NAMES: frozenset[str] = frozenset(
    {
        "snap",
        "nb",
        "time",
        "math",
        "images",
        "globals",
        "self",
        "nothrow",
        "get_error",
        "onstart",
        "onkey",
        "onmouse",
        "NoYield",
        "costumes",
        "last_answer",
        "kwargs",
        # builtins and comprehension variables referenced by emitted code
        "_",
        "x",
        "y",
        "abs",
        "input",
        "len",
        "max",
        "min",
        "range",
        "round",
        "print",
        "str",
        "sum",
        "Exception",
        "RuntimeError",
    }
)

# sprite attributes and methods the runtime defines on every entity
ENTITY_RESERVED_NAMES: frozenset[str] = RESERVED_NAMES | frozenset(
    {
        "pos",
        "x_pos",
        "y_pos",
        "heading",
        "scale",
        "visible",
        "costume",
        "drawing",
        "pen_color",
        "pen_size",
        "forward",
        "turn_left",
        "turn_right",
        "keep_on_stage",
        "say",
        "stamp",
        "write",
        "clone",
        "get_image",
        "is_touching",
    }
)


def to_identifier(name: str) -> str:
    """Collapse *name* into a valid (not necessarily unique) identifier.

    Runs of characters that cannot appear in an identifier become a single
    ``_``; leading/trailing underscores introduced that way are trimmed.
    """
    ident = _INVALID_RUN_RE.sub("_", name).strip("_")
    if not ident:
        return "_"
    if ident[0].isdigit():
        ident = "_" + ident
    if keyword.iskeyword(ident) or keyword.issoftkeyword(ident):
        ident += "_"
    return ident


class NameAllocator:
    """Hands out stable, collision-free identifiers within one namespace.

    The same source name always maps to the same identifier; distinct source
    names that collapse to the same identifier get ``_2``, ``_3``, ... suffixes.
    """

    def __init__(self, reserved: frozenset[str] = RESERVED_NAMES):
        self._by_name: dict[str, str] = {}
        self._taken: set[str] = set(reserved)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> str:
        existing = self._by_name.get(name)
        if existing is not None:
            return existing
        ident = self.fresh(name)
        self._by_name[name] = ident
        return ident

    def fresh(self, name: str) -> str:
        """Allocate a new identifier for *name* without remembering the mapping."""
        base = to_identifier(name)
        ident = base
        n = 2
        while ident in self._taken:
            ident = f"{base}_{n}"
            n += 1
        self._taken.add(ident)
        return ident

    def reserve(self, ident: str) -> None:
        self._taken.add(ident)

    @property
    def taken(self) -> frozenset[str]:
        return frozenset(self._taken)
