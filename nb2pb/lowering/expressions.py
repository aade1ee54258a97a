"""ExpressionLowerer — expression variants to ``(text, wrap_type)`` pairs."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .. import ast
from ..errors import (
    CommandRingError,
    RingTypeQueryError,
    TellAskClosureError,
    UnsupportedExprError,
    UpvarsError,
)
from ._base import (
    Lowered,
    WrapType,
    common_wrap_type,
    escape,
    is_py_ident,
    quote,
    wrap,
)
from .values import ValueLowerer

logger = logging.getLogger(__name__)

_SPLIT_SEPARATORS: dict[ast.SplitMode, str] = {
    ast.SplitMode.LF: "'\\n'",
    ast.SplitMode.CR: "'\\r'",
    ast.SplitMode.TAB: "'\\t'",
    ast.SplitMode.LETTER: "''",
}

_SPLIT_HELPERS: dict[ast.SplitMode, str] = {
    ast.SplitMode.WORD: "snap.split_words",
    ast.SplitMode.CSV: "snap.split_csv",
    ast.SplitMode.JSON: "snap.split_json",
}

# 0-based position of the worn costume in the costume map, -1 when absent
COSTUME_INDEX = (
    "(list(self.costumes.values()).index(self.costume) if self.costume in self.costumes.values() else -1)"
)


class ExpressionLowerer(ValueLowerer):
    """Lowers every expression variant.

    ``stage_name`` is the translated name of the role's stage; stage-level
    readings (mouse, dimensions, GPS, answer, timer) are attribute reads on it.
    """

    def __init__(self, stage_name: str):
        super().__init__()
        self.stage_name = stage_name
        self._EXPR_DISPATCH: dict[type, Callable[[ast.Expr], Lowered]] = {
            ast.Literal: lambda e: self.lower_value(e.value),
            ast.Variable: lambda e: Lowered.wrapped(self.lower_var(e.var)),
            ast.This: lambda e: Lowered.wrapped("self"),
            ast.Entity: lambda e: Lowered.wrapped(e.trans_name),
            ast.MakeList: self._lower_make_list,
            # unary
            ast.Neg: lambda e: Lowered.wrapped(f"(-{self._wrapped(e.value)})"),
            ast.Not: self._runtime_call("snap.lnot", "value"),
            ast.Abs: self._builtin_call("abs", "value"),
            ast.Round: self._builtin_call("round", "value"),
            ast.Floor: self._builtin_call("math.floor", "value"),
            ast.Ceil: self._builtin_call("math.ceil", "value"),
            ast.Sign: self._runtime_call("snap.sign", "value"),
            ast.Sqrt: self._runtime_call("snap.sqrt", "value"),
            ast.Sin: self._runtime_call("snap.sin", "value"),
            ast.Cos: self._runtime_call("snap.cos", "value"),
            ast.Tan: self._runtime_call("snap.tan", "value"),
            ast.Asin: self._runtime_call("snap.asin", "value"),
            ast.Acos: self._runtime_call("snap.acos", "value"),
            ast.Atan: self._runtime_call("snap.atan", "value"),
            # binary
            ast.Atan2: self._runtime_call("snap.atan2", "y", "x"),
            ast.Log: self._runtime_call("snap.log", "value", "base"),
            ast.Sub: self._infix("-"),
            ast.Div: self._infix("/"),
            ast.Mod: self._infix("%"),
            ast.Pow: self._infix("**", "base", "power"),
            ast.And: self._infix("and"),
            ast.Or: self._infix("or"),
            ast.Less: self._infix("<"),
            ast.LessEq: self._infix("<="),
            ast.Eq: self._infix("=="),
            ast.Neq: self._infix("!="),
            ast.Greater: self._infix(">"),
            ast.GreaterEq: self._infix(">="),
            ast.Identical: self._runtime_call("snap.identical", "left", "right"),
            ast.Conditional: self._lower_conditional,
            ast.Random: self._runtime_call("snap.rand", "a", "b"),
            ast.Range: self._runtime_call("snap.srange", "start", "stop"),
            # variadic
            ast.Add: self._lower_add,
            ast.Mul: self._lower_mul,
            ast.Min: self._builtin_call("min", "values"),
            ast.Max: self._builtin_call("max", "values"),
            ast.StrCat: self._lower_str_cat,
            ast.ListCat: self._lower_list_cat,
            # text
            ast.StrLen: lambda e: Lowered.unknown(f"len({self.lower_expr(e.value).text})"),
            ast.StrGet: lambda e: self._lower_index(e.string, e.index),
            ast.StrGetLast: lambda e: self._attr(e.string, "last"),
            ast.StrGetRandom: lambda e: Lowered.wrapped(f"snap.choice({self._wrapped(e.string)})"),
            ast.TextSplit: self._lower_text_split,
            ast.UnicodeToChar: self._runtime_call("snap.get_chr", "value"),
            ast.CharToUnicode: self._runtime_call("snap.get_ord", "value"),
            # lists
            ast.ListLen: lambda e: Lowered.unknown(f"len({self.lower_expr(e.value).text})"),
            ast.ListFind: self._lower_list_find,
            ast.ListGet: lambda e: self._lower_index(e.list, e.index),
            ast.ListGetLast: lambda e: self._attr(e.list, "last"),
            ast.ListGetRandom: lambda e: Lowered.wrapped(f"snap.choice({self._wrapped(e.list)})"),
            ast.ListContains: self._lower_list_contains,
            ast.ListIsEmpty: lambda e: Lowered.wrapped(f"(len({self._wrapped(e.value)}) == 0)"),
            ast.ListRank: lambda e: Lowered.unknown(f"len({self._wrapped(e.value)}.shape)"),
            ast.ListDims: lambda e: self._attr(e.value, "shape"),
            ast.ListFlatten: lambda e: self._attr(e.value, "flat"),
            ast.ListColumns: lambda e: self._attr(e.value, "T"),
            ast.ListCsv: lambda e: self._attr(e.value, "csv"),
            ast.ListJson: lambda e: self._attr(e.value, "json"),
            ast.ListReverse: lambda e: Lowered.wrapped(f"{self._wrapped(e.value)}[::-1]"),
            ast.ListLines: self._lower_list_lines,
            ast.ListCdr: lambda e: Lowered.wrapped(f"{self._wrapped(e.value)}[1:]"),
            ast.ListCons: self._lower_list_cons,
            ast.ListCopy: lambda e: Lowered.unknown(f"[*{self._wrapped(e.value)}]"),
            ast.ListReshape: self._lower_list_reshape,
            ast.ListCombinations: self._lower_list_combinations,
            ast.Map: self._lower_map,
            ast.Keep: self._lower_keep,
            ast.FindFirst: self._lower_find_first,
            ast.Combine: self._lower_combine,
            # types
            ast.TypeQuery: self._lower_type_query,
            # calls and closures
            ast.CallFn: lambda e: Lowered.wrapped(self.lower_fn_call(e.function, e.args, e.upvars)),
            ast.CallRpc: lambda e: Lowered.unknown(self.lower_rpc(e.service, e.rpc, e.args)),
            ast.CallClosure: lambda e: Lowered.wrapped(self.lower_closure_call(e, e.closure, e.args, e.new_entity)),
            ast.Closure: self._lower_closure,
            ast.RpcError: lambda e: Lowered.unknown("(get_error() or '')"),
            ast.Clone: lambda e: Lowered.wrapped(f"{self.lower_expr(e.target).text}.clone()"),
            # sprite and stage state
            ast.XPos: lambda e: Lowered.unknown("self.x_pos"),
            ast.YPos: lambda e: Lowered.unknown("self.y_pos"),
            ast.Heading: lambda e: Lowered.unknown("self.heading"),
            ast.MouseX: lambda e: Lowered.unknown(f"{self.stage_name}.mouse_pos[0]"),
            ast.MouseY: lambda e: Lowered.unknown(f"{self.stage_name}.mouse_pos[1]"),
            ast.StageWidth: lambda e: Lowered.unknown(f"{self.stage_name}.width"),
            ast.StageHeight: lambda e: Lowered.unknown(f"{self.stage_name}.height"),
            ast.Latitude: lambda e: Lowered.unknown(f"{self.stage_name}.gps_location[0]"),
            ast.Longitude: lambda e: Lowered.unknown(f"{self.stage_name}.gps_location[1]"),
            ast.KeyDown: lambda e: Lowered.wrapped(f"{self.stage_name}.is_key_down({quote(e.key)})"),
            ast.Answer: lambda e: Lowered.wrapped(f"{self.stage_name}.last_answer"),
            ast.Timer: lambda e: Lowered.unknown(f"{self.stage_name}.timer"),
            ast.PenDown: lambda e: Lowered.wrapped("self.drawing"),
            ast.Size: lambda e: Lowered.wrapped("(self.scale * 100)"),
            ast.IsVisible: lambda e: Lowered.wrapped("self.visible"),
            ast.CostumeNumber: lambda e: Lowered.unknown(f"({COSTUME_INDEX} + 1)"),
            ast.ImageOfEntity: lambda e: Lowered.wrapped(f"{self.lower_expr(e.entity).text}.get_image()"),
            ast.ImageOfDrawings: lambda e: Lowered.wrapped(f"{self.stage_name}.get_drawings()"),
            ast.IsTouchingEntity: lambda e: Lowered.wrapped(f"self.is_touching({self.lower_expr(e.entity).text})"),
        }

    # ── entry points ─────────────────────────────────────────────

    def lower_expr(self, expr: ast.Expr) -> Lowered:
        handler = self._EXPR_DISPATCH.get(type(expr))
        if handler is None:
            logger.debug("No lowering for expression %s", type(expr).__name__)
            raise UnsupportedExprError(expr)
        return handler(expr)

    def lower_var(self, var: ast.VariableRef) -> str:
        if var.location == ast.VarLocation.FIELD:
            return f"self.{var.trans_name}"
        if var.location == ast.VarLocation.GLOBAL:
            return f"globals()['{var.trans_name}']"
        return var.trans_name

    def lower_kwargs(
        self,
        kwargs: list[tuple[str, ast.Expr]],
        prefix: str,
        wrap_values: bool = False,
    ) -> str:
        """Encode ``(name, expr)`` pairs as Python keyword arguments.

        Names that are valid identifiers become ``name = value``; the rest go
        into a trailing ``**{ 'name': value }`` splat.  Returns ``""`` (and
        drops *prefix*) when there are no arguments at all.
        """
        ident_args: list[str] = []
        other_args: list[str] = []
        for name, expr in kwargs:
            lowered = self.lower_expr(expr)
            value = wrap(lowered) if wrap_values else lowered.text
            if is_py_ident(name):
                ident_args.append(f"{name} = {value}")
            else:
                other_args.append(f"'{escape(name)}': {value}")

        if ident_args and other_args:
            return f"{prefix}{', '.join(ident_args)}, **{{ {', '.join(other_args)} }}"
        if ident_args:
            return f"{prefix}{', '.join(ident_args)}"
        if other_args:
            return f"{prefix}**{{ {', '.join(other_args)} }}"
        return ""

    def lower_rpc(self, service: str, rpc: str, args: list[tuple[str, ast.Expr]]) -> str:
        kwargs = self.lower_kwargs(args, ", ")
        return f"nothrow(nb.call)({quote(service)}, {quote(rpc)}{kwargs})"

    def lower_fn_call(
        self,
        function: ast.FnRef,
        args: list[ast.Expr],
        upvars: list[ast.VariableRef],
    ) -> str:
        if upvars:
            raise UpvarsError(
                f"call to {function.name!r} writes back {len(upvars)} upvar(s)"
            )
        trans_args = ", ".join(self._wrapped(arg) for arg in args)
        if function.location == ast.FnLocation.METHOD:
            return f"self.{function.trans_name}({trans_args})"
        return f"{function.trans_name}({trans_args})"

    def lower_closure_call(
        self,
        node,
        closure: ast.Expr,
        args: list[ast.Expr],
        new_entity: Optional[ast.Expr],
    ) -> str:
        if new_entity is not None:
            raise TellAskClosureError("closures cannot be run on another entity", node)
        trans_args = ", ".join(self._wrapped(arg) for arg in args)
        return f"{self._wrapped(closure)}({trans_args})"

    # ── helpers ──────────────────────────────────────────────────

    def _wrapped(self, expr: ast.Expr) -> str:
        return wrap(self.lower_expr(expr))

    def _infix(self, op: str, left: str = "left", right: str = "right"):
        def lower(expr: ast.Expr) -> Lowered:
            lhs = self._wrapped(getattr(expr, left))
            rhs = self._wrapped(getattr(expr, right))
            return Lowered.wrapped(f"({lhs} {op} {rhs})")

        return lower

    def _runtime_call(self, fn: str, *fields: str):
        """``snap.fn(a, b)`` over raw operands; the runtime returns wrapped values."""

        def lower(expr: ast.Expr) -> Lowered:
            args = ", ".join(self.lower_expr(getattr(expr, f)).text for f in fields)
            return Lowered.wrapped(f"{fn}({args})")

        return lower

    def _builtin_call(self, fn: str, field: str):
        """``fn(wrap(a))`` for builtins that dispatch to the wrapper's dunders."""

        def lower(expr: ast.Expr) -> Lowered:
            return Lowered.wrapped(f"{fn}({self._wrapped(getattr(expr, field))})")

        return lower

    def _attr(self, target: ast.Expr, attr: str) -> Lowered:
        return Lowered.wrapped(f"{self._wrapped(target)}.{attr}")

    def _lower_index(self, target: ast.Expr, index: ast.Expr) -> Lowered:
        return Lowered.wrapped(
            f"{self._wrapped(target)}[{self._wrapped(index)} - snap.wrap(1)]"
        )

    def _variadic_items(self, values: ast.Expr) -> Optional[list[Lowered]]:
        """Items of a syntactic list argument, or ``None`` for any other shape."""
        if isinstance(values, ast.Literal) and isinstance(values.value, ast.ListValue):
            return [self.lower_value(v) for v in values.value.values]
        if isinstance(values, ast.MakeList):
            return [self.lower_expr(v) for v in values.values]
        return None

    # ── lists and variadics ──────────────────────────────────────

    def _lower_make_list(self, expr: ast.MakeList) -> Lowered:
        items = [self.lower_expr(v).text for v in expr.values]
        return Lowered.unknown(f"[{', '.join(items)}]")

    def _lower_add(self, expr: ast.Add) -> Lowered:
        items = self._variadic_items(expr.values)
        if items is None:
            return Lowered.unknown(f"sum({self._wrapped(expr.values)})")
        if not items:
            return Lowered.unknown("0")
        return Lowered.wrapped(f"({' + '.join(wrap(i) for i in items)})")

    def _lower_mul(self, expr: ast.Mul) -> Lowered:
        items = self._variadic_items(expr.values)
        if items is None:
            return Lowered.wrapped(f"snap.prod({self._wrapped(expr.values)})")
        if not items:
            return Lowered.unknown("1")
        return Lowered.wrapped(f"({' * '.join(wrap(i) for i in items)})")

    def _lower_str_cat(self, expr: ast.StrCat) -> Lowered:
        items = self._variadic_items(expr.values)
        if items is None:
            return Lowered.unknown(f"''.join(str(x) for x in {self._wrapped(expr.values)})")
        if not items:
            return Lowered.unknown("''")
        return Lowered.unknown(f"({' + '.join(f'str({wrap(i)})' for i in items)})")

    def _lower_list_cat(self, expr: ast.ListCat) -> Lowered:
        items = self._variadic_items(expr.lists)
        if items is None:
            return Lowered.unknown(f"snap.append({self._wrapped(expr.lists)})")
        return Lowered.unknown(f"[{', '.join(f'*{wrap(i)}' for i in items)}]")

    def _lower_conditional(self, expr: ast.Conditional) -> Lowered:
        then = self.lower_expr(expr.then)
        otherwise = self.lower_expr(expr.otherwise)
        condition = self._wrapped(expr.condition)
        return Lowered(
            f"({then.text} if {condition} else {otherwise.text})",
            common_wrap_type(then.wrap_type, otherwise.wrap_type),
        )

    def _lower_list_find(self, expr: ast.ListFind) -> Lowered:
        value = self.lower_expr(expr.value).text
        return Lowered.wrapped(f"({self._wrapped(expr.list)}.index({value}) + snap.wrap(1))")

    def _lower_list_contains(self, expr: ast.ListContains) -> Lowered:
        return Lowered.wrapped(f"({self._wrapped(expr.value)} in {self._wrapped(expr.list)})")

    def _lower_list_lines(self, expr: ast.ListLines) -> Lowered:
        return Lowered.unknown(f"'\\n'.join(str(x) for x in {self._wrapped(expr.value)})")

    def _lower_list_cons(self, expr: ast.ListCons) -> Lowered:
        item = self.lower_expr(expr.item).text
        return Lowered.unknown(f"[{item}, *{self._wrapped(expr.list)}]")

    def _lower_list_reshape(self, expr: ast.ListReshape) -> Lowered:
        dims = self.lower_expr(expr.dims).text
        return Lowered.wrapped(f"{self._wrapped(expr.value)}.reshaped({dims})")

    def _lower_list_combinations(self, expr: ast.ListCombinations) -> Lowered:
        items = self._variadic_items(expr.sources)
        if items is None:
            return Lowered.wrapped(f"snap.combinations(*{self.lower_expr(expr.sources).text})")
        return Lowered.wrapped(f"snap.combinations({', '.join(i.text for i in items)})")

    def _lower_map(self, expr: ast.Map) -> Lowered:
        f = self._wrapped(expr.f)
        return Lowered.unknown(f"[{f}(x) for x in {self._wrapped(expr.list)}]")

    def _lower_keep(self, expr: ast.Keep) -> Lowered:
        f = self._wrapped(expr.f)
        return Lowered.unknown(f"[x for x in {self._wrapped(expr.list)} if {f}(x)]")

    def _lower_find_first(self, expr: ast.FindFirst) -> Lowered:
        f = self.lower_expr(expr.f).text
        return Lowered.wrapped(f"{self._wrapped(expr.list)}.index_where({f})")

    def _lower_combine(self, expr: ast.Combine) -> Lowered:
        f = self.lower_expr(expr.f).text
        return Lowered.wrapped(f"{self._wrapped(expr.list)}.fold({f})")

    # ── text ─────────────────────────────────────────────────────

    def _lower_text_split(self, expr: ast.TextSplit) -> Lowered:
        text = self.lower_expr(expr.text).text
        if expr.mode == ast.SplitMode.CUSTOM:
            if expr.separator is None:
                raise UnsupportedExprError(expr)
            separator = self.lower_expr(expr.separator).text
            return Lowered.wrapped(f"snap.split({text}, {separator})")
        if expr.mode in _SPLIT_SEPARATORS:
            return Lowered.wrapped(f"snap.split({text}, {_SPLIT_SEPARATORS[expr.mode]})")
        return Lowered.wrapped(f"{_SPLIT_HELPERS[expr.mode]}({text})")

    # ── types and closures ───────────────────────────────────────

    def _lower_type_query(self, expr: ast.TypeQuery) -> Lowered:
        if expr.ty in ast.RING_VALUE_TYPES:
            raise RingTypeQueryError(f"cannot query for {expr.ty.value} rings", expr)
        value = self.lower_expr(expr.value).text
        return Lowered.wrapped(f"snap.is_{expr.ty.value}({value})")

    def _lower_closure(self, expr: ast.Closure) -> Lowered:
        if len(expr.stmts) != 1 or not isinstance(expr.stmts[0], ast.Return):
            raise CommandRingError("only single-return reporter rings are supported", expr)
        params = ", ".join(p.trans_name for p in expr.params)
        head = f"lambda {params}" if params else "lambda"
        return Lowered.wrapped(f"({head}: {self._wrapped(expr.stmts[0].value)})")
