"""ScriptLowerer — event hats to decorated handler definitions."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .. import ast, constants
from ..errors import AnyMessageError, UnsupportedHatError
from ._base import escape, fmt_comment, indent, quote
from .statements import StatementLowerer

logger = logging.getLogger(__name__)

_MOUSE_EVENTS: dict[type, str] = {
    ast.MouseDown: "down",
    ast.MouseUp: "up",
    ast.ScrollDown: "scroll-down",
    ast.ScrollUp: "scroll-up",
}

_CONDITION_POLL_TEMPLATE = """\
@onstart(){comment}
def my_onstart{idx}(self):
    while True:
        try:
            time.sleep({interval})
            if {condition}:
                self.my_oncondition{idx}()
        except Exception as e:
            import traceback, sys
            print(traceback.format_exc(), file = sys.stderr)
def my_oncondition{idx}(self):
"""


class ScriptLowerer(StatementLowerer):
    """Turns a hat + body into one handler fragment of an entity editor.

    ``idx`` is the 1-based position the script will take among the entity's
    recorded scripts; it keeps handler names unique within the entity.
    """

    def __init__(self, stage_name: str):
        super().__init__(stage_name)
        self._HAT_DISPATCH: dict[type, Callable[[ast.Hat, int], str]] = {
            ast.OnFlag: lambda h, idx: f"@onstart(){fmt_comment(h.comment)}\ndef my_onstart_{idx}(self):\n",
            ast.OnClone: lambda h, idx: (
                f"@onstart(when='clone'){fmt_comment(h.comment)}\ndef my_onstart_{idx}(self):\n"
            ),
            ast.OnKey: lambda h, idx: (
                f"@onkey({quote(h.key)}){fmt_comment(h.comment)}\ndef my_onkey_{idx}(self):\n"
            ),
            ast.MouseDown: self._lower_mouse_hat,
            ast.MouseUp: self._lower_mouse_hat,
            ast.ScrollDown: self._lower_mouse_hat,
            ast.ScrollUp: self._lower_mouse_hat,
            ast.When: self._lower_condition_hat,
            ast.LocalMessage: self._lower_local_message_hat,
            ast.NetworkMessage: self._lower_network_message_hat,
        }

    def lower_hat(self, hat: ast.Hat, idx: int) -> str:
        """Decorator and ``def`` header for *hat*, ending in a newline."""
        handler = self._HAT_DISPATCH.get(type(hat))
        if handler is None:
            raise UnsupportedHatError(hat)
        return handler(hat, idx)

    def lower_script(self, script: ast.Script, idx: int) -> Optional[str]:
        """Full handler text for *script*, or ``None`` for a hatless stack."""
        if script.hat is None:
            logger.debug("Dropping hatless script with %d statement(s)", len(script.stmts))
            return None
        header = self.lower_hat(script.hat, idx)
        return header + indent(self.lower_stmts(script.stmts))

    def _lower_mouse_hat(self, hat: ast.Hat, idx: int) -> str:
        event = _MOUSE_EVENTS[type(hat)]
        return f"@onmouse('{event}'){fmt_comment(hat.comment)}\ndef my_onmouse_{idx}(self, x, y):\n"

    def _lower_condition_hat(self, hat: ast.When, idx: int) -> str:
        return _CONDITION_POLL_TEMPLATE.format(
            comment=fmt_comment(hat.comment),
            idx=idx,
            interval=constants.POLL_INTERVAL_SECS,
            condition=self._wrapped(hat.condition),
        )

    def _lower_local_message_hat(self, hat: ast.LocalMessage, idx: int) -> str:
        if hat.msg_type is None:
            raise AnyMessageError("cannot listen for any local message", hat)
        channel = quote(constants.LOCAL_MESSAGE_PREFIX + hat.msg_type)
        return f"@nb.on_message({channel}){fmt_comment(hat.comment)}\ndef my_on_message_{idx}(self, **kwargs):\n"

    def _lower_network_message_hat(self, hat: ast.NetworkMessage, idx: int) -> str:
        lines = [
            f"@nb.on_message({quote(hat.msg_type)}){fmt_comment(hat.comment)}",
            f"def my_on_message_{idx}(self, **kwargs):",
        ]
        for field in hat.fields:
            lines.append(f"{constants.INDENT}{field.trans_name} = snap.wrap(kwargs['{escape(field.name)}'])")
        header = "\n".join(lines) + "\n"
        if hat.fields:
            header += "\n"
        return header
