"""Runtime names, editor kinds and formatting fixed by the PyBlox target."""

from __future__ import annotations

RUNTIME_MODULE = "netsblox"
RUNTIME_NAMESPACE = "snap"

WRAP_FN = "snap.wrap"
NO_YIELD_CONTEXT = "NoYield"

INDENT = "    "
EMPTY_SUITE = "pass"

PY_IDENT_PATTERN = r"^[_A-Za-z][_A-Za-z0-9]*$"

POLL_INTERVAL_SECS = "0.05"

LOCAL_MESSAGE_PREFIX = "local::"

BLOCK_SOURCES: tuple[str, ...] = ("netsblox://assets/default-blocks.json",)
RUNTIME_IMPORTS: tuple[str, ...] = ("time", "math")

EDITOR_GLOBAL = "global"
EDITOR_STAGE = "stage"
EDITOR_SPRITE = "sprite"
EDITOR_TURTLE = "turtle"

GLOBAL_EDITOR_NAME = "global"

COSTUME_KEY_TEMPLATE = "{entity}_cst_{costume}"

STAGE_LAST_ANSWER_FIELD = "last_answer"
