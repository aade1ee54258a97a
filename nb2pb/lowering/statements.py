"""StatementLowerer — statement sequences to indented Python source."""

from __future__ import annotations

import logging
from typing import Callable

from .. import ast, constants
from ..errors import InvariantViolation, UnsupportedStmtError
from ._base import fmt_comment, indent, quote, wrap
from .expressions import COSTUME_INDEX, ExpressionLowerer

logger = logging.getLogger(__name__)


class StatementLowerer(ExpressionLowerer):
    """Lowers statements and statement sequences.

    Every handler returns the statement's source without a trailing newline;
    :meth:`lower_stmt` appends the statement comment to its first line.
    """

    def __init__(self, stage_name: str):
        super().__init__(stage_name)
        self._STMT_DISPATCH: dict[type, Callable[[ast.Stmt], str]] = {
            ast.DeclareLocals: self._lower_declare_locals,
            ast.Assign: lambda s: f"{self.lower_var(s.var)} = {self._wrapped(s.value)}",
            ast.AddAssign: lambda s: f"{self.lower_var(s.var)} += {self._wrapped(s.value)}",
            # list mutation
            ast.ListAssign: self._lower_list_assign,
            ast.ListAssignLast: lambda s: f"{self._wrapped(s.list)}.last = {self._raw(s.value)}",
            ast.ListAssignRandom: lambda s: f"{self._wrapped(s.list)}.rand = {self._raw(s.value)}",
            ast.ListInsert: self._lower_list_insert,
            ast.ListInsertLast: lambda s: f"{self._wrapped(s.list)}.append({self._wrapped(s.value)})",
            ast.ListInsertRandom: lambda s: f"{self._wrapped(s.list)}.insert_rand({self._raw(s.value)})",
            ast.ListRemove: lambda s: f"del {self._wrapped(s.list)}[{self._wrapped(s.index)} - snap.wrap(1)]",
            ast.ListRemoveLast: lambda s: f"{self._wrapped(s.list)}.pop()",
            ast.ListRemoveAll: lambda s: f"{self._wrapped(s.list)}.clear()",
            # control flow
            ast.Warp: lambda s: self._block(f"with {constants.NO_YIELD_CONTEXT}():", s.stmts),
            ast.If: lambda s: self._block(f"if {self._wrapped(s.condition)}:", s.then),
            ast.IfElse: self._lower_if_else,
            ast.InfLoop: lambda s: self._block("while True:", s.stmts),
            ast.ForLoop: self._lower_for_loop,
            ast.ForeachLoop: lambda s: self._block(
                f"for {self.lower_var(s.var)} in {self._wrapped(s.items)}:", s.stmts
            ),
            ast.Repeat: lambda s: self._block(f"for _ in range(+{self._wrapped(s.times)}):", s.stmts),
            ast.UntilLoop: lambda s: self._block(f"while not {self._wrapped(s.condition)}:", s.stmts),
            ast.TryCatch: self._lower_try_catch,
            ast.Throw: lambda s: f"raise RuntimeError(str({self._wrapped(s.error)}))",
            ast.WaitUntil: self._lower_wait_until,
            ast.Sleep: lambda s: f"time.sleep(+{self._wrapped(s.seconds)})",
            ast.Return: lambda s: f"return {self._wrapped(s.value)}",
            # looks and motion
            ast.SetCostume: self._lower_set_costume,
            ast.NextCostume: lambda s: (
                "if self.costumes: self.costume = list(self.costumes.values())["
                f"({COSTUME_INDEX} + 1) % len(self.costumes)]"
            ),
            ast.SetX: lambda s: f"self.x_pos = {self._raw(s.value)}",
            ast.SetY: lambda s: f"self.y_pos = {self._raw(s.value)}",
            ast.ChangeX: lambda s: f"self.x_pos += {self._raw(s.delta)}",
            ast.ChangeY: lambda s: f"self.y_pos += {self._raw(s.delta)}",
            ast.Goto: self._lower_goto,
            ast.GotoXY: lambda s: f"self.pos = ({self._raw(s.x)}, {self._raw(s.y)})",
            ast.Forward: lambda s: f"self.forward({self._raw(s.distance)})",
            ast.TurnRight: lambda s: f"self.turn_right({self._raw(s.angle)})",
            ast.TurnLeft: lambda s: f"self.turn_left({self._raw(s.angle)})",
            ast.SetHeading: lambda s: f"self.heading = {self._raw(s.value)}",
            ast.BounceOffEdge: lambda s: "self.keep_on_stage(bounce = True)",
            # messaging and speech
            ast.SendLocalMessage: self._lower_send_local,
            ast.SendNetworkMessage: self._lower_send_network,
            ast.Say: self._lower_speech,
            ast.Think: self._lower_speech,
            # calls
            ast.RunRpc: lambda s: self.lower_rpc(s.service, s.rpc, s.args),
            ast.RunFn: lambda s: self.lower_fn_call(s.function, s.args, s.upvars),
            ast.RunClosure: lambda s: self.lower_closure_call(s, s.closure, s.args, s.new_entity),
            ast.CloneStmt: lambda s: f"{self._raw(s.target)}.clone()",
            # sensing
            ast.Ask: lambda s: (
                f"{self.stage_name}.{constants.STAGE_LAST_ANSWER_FIELD} = snap.wrap(input({self._raw(s.prompt)}))"
            ),
            ast.ResetTimer: lambda s: f"{self.stage_name}.timer = 0",
            # pen, size and visibility
            ast.SetVisible: lambda s: f"self.visible = {s.value}",
            ast.SetPenDown: lambda s: f"self.drawing = {s.value}",
            ast.PenClear: lambda s: f"{self.stage_name}.clear_drawings()",
            ast.SetPenColor: lambda s: "self.pen_color = '#{:02x}{:02x}{:02x}'".format(*s.color[:3]),
            ast.SetPenSize: lambda s: f"self.pen_size = {self._raw(s.value)}",
            ast.ChangePenSize: lambda s: f"self.pen_size += {self._raw(s.delta)}",
            ast.SetSize: lambda s: f"self.scale = {self._wrapped(s.value)} / 100",
            ast.ChangeSize: lambda s: f"self.scale += {self._wrapped(s.delta)} / 100",
            ast.Stamp: lambda s: "self.stamp()",
            ast.Write: lambda s: f"self.write({self._raw(s.content)}, size = {self._raw(s.font_size)})",
        }

    def lower_stmts(self, stmts: list[ast.Stmt]) -> str:
        """Lower a statement sequence; the empty sequence becomes ``pass``."""
        if not stmts:
            return constants.EMPTY_SUITE
        return "\n".join(self.lower_stmt(stmt) for stmt in stmts)

    def lower_stmt(self, stmt: ast.Stmt) -> str:
        handler = self._STMT_DISPATCH.get(type(stmt))
        if handler is None:
            logger.debug("No lowering for statement %s", type(stmt).__name__)
            raise UnsupportedStmtError(stmt)
        code = handler(stmt)
        if stmt.comment is None:
            return code
        first, sep, rest = code.partition("\n")
        return f"{first}{fmt_comment(stmt.comment)}{sep}{rest}"

    # ── helpers ──────────────────────────────────────────────────

    def _raw(self, expr: ast.Expr) -> str:
        return self.lower_expr(expr).text

    def _block(self, header: str, body: list[ast.Stmt]) -> str:
        return f"{header}\n{indent(self.lower_stmts(body))}"

    # ── handlers ─────────────────────────────────────────────────

    def _lower_declare_locals(self, stmt: ast.DeclareLocals) -> str:
        if not stmt.vars:
            return constants.EMPTY_SUITE
        return "\n".join(f"{var.trans_name} = snap.wrap(0)" for var in stmt.vars)

    def _lower_list_assign(self, stmt: ast.ListAssign) -> str:
        target = self._wrapped(stmt.list)
        index = self._wrapped(stmt.index)
        return f"{target}[{index} - snap.wrap(1)] = {self._raw(stmt.value)}"

    def _lower_list_insert(self, stmt: ast.ListInsert) -> str:
        target = self._wrapped(stmt.list)
        index = self._wrapped(stmt.index)
        return f"{target}.insert({index} - snap.wrap(1), {self._raw(stmt.value)})"

    def _lower_if_else(self, stmt: ast.IfElse) -> str:
        code = self._block(f"if {self._wrapped(stmt.condition)}:", stmt.then)
        otherwise = stmt.otherwise
        if len(otherwise) == 1 and isinstance(otherwise[0], (ast.If, ast.IfElse)):
            # nested conditional renders as "el" + "if ..."
            return f"{code}\nel{self.lower_stmt(otherwise[0])}"
        return f"{code}\n{self._block('else:', otherwise)}"

    def _lower_for_loop(self, stmt: ast.ForLoop) -> str:
        header = (
            f"for {self.lower_var(stmt.var)} in "
            f"snap.sxrange({self._raw(stmt.start)}, {self._raw(stmt.stop)}):"
        )
        return self._block(header, stmt.stmts)

    def _lower_try_catch(self, stmt: ast.TryCatch) -> str:
        code = self._block("try:", stmt.code)
        handler = self._block(f"except Exception as {stmt.var.trans_name}:", stmt.handler)
        return f"{code}\n{handler}"

    def _lower_wait_until(self, stmt: ast.WaitUntil) -> str:
        return (
            f"while not {self._wrapped(stmt.condition)}:\n"
            f"{constants.INDENT}time.sleep({constants.POLL_INTERVAL_SECS})"
        )

    def _lower_set_costume(self, stmt: ast.SetCostume) -> str:
        if stmt.costume is None:
            return "self.costume = None"
        return f"self.costume = {self._raw(stmt.costume)}"

    def _lower_goto(self, stmt: ast.Goto) -> str:
        target = stmt.target
        if (
            isinstance(target, ast.Literal)
            and isinstance(target.value, ast.ListValue)
            and len(target.value.values) == 2
        ):
            x, y = (self.lower_value(v).text for v in target.value.values)
            return f"self.pos = ({x}, {y})"
        return f"self.pos = {self._raw(target)}"

    def _lower_send_local(self, stmt: ast.SendLocalMessage) -> str:
        if stmt.wait or stmt.target is not None:
            raise InvariantViolation("local messages are broadcast without waiting")
        msg_type = stmt.msg_type
        if isinstance(msg_type, ast.Literal) and isinstance(msg_type.value, ast.StringValue):
            return f"nb.send_message({quote(constants.LOCAL_MESSAGE_PREFIX + msg_type.value.value)})"
        return f"nb.send_message('{constants.LOCAL_MESSAGE_PREFIX}' + str({self._raw(msg_type)}))"

    def _lower_send_network(self, stmt: ast.SendNetworkMessage) -> str:
        kwargs = self.lower_kwargs(stmt.values, ", ")
        return f"nb.send_message({quote(stmt.msg_type)}, {self._raw(stmt.target)}{kwargs})"

    def _lower_speech(self, stmt) -> str:
        content = self._raw(stmt.content)
        if stmt.duration is None:
            return f"self.say(str({content}))"
        return f"self.say(str({content}), duration = {self._raw(stmt.duration)})"
