"""ScriptParser — Snap/NetsBlox block XML → statement and expression AST.

Dispatch is keyed by block selector (the ``s`` attribute).  Each handler
receives the block element and its input slots in order; a selector missing
from every table is a :class:`ParseError`.
"""

from __future__ import annotations

import logging
import re
from functools import reduce
from typing import Callable, Optional
from xml.etree.ElementTree import Element

from . import ast
from .errors import ParseError
from .naming import RESERVED_NAMES, NameAllocator
from .parser_types import BlockSignature, EntityContext, ParserConfig, RoleContext

logger = logging.getLogger(__name__)

_NON_INPUT_TAGS: frozenset[str] = frozenset({"comment", "receiver"})
_BLOCK_PARAM_RE = re.compile(r"%'[^']*'")
_BLOCK_SLOT_RE = re.compile(r"%'[^']*'|%\w+")

_E = ast.ConstantValue(value=ast.Constant.E)

_MONADIC_UNARY: dict[str, type[ast.Expr]] = {
    "abs": ast.Abs,
    "neg": ast.Neg,
    "sign": ast.Sign,
    "ceiling": ast.Ceil,
    "floor": ast.Floor,
    "sqrt": ast.Sqrt,
    "sin": ast.Sin,
    "cos": ast.Cos,
    "tan": ast.Tan,
    "asin": ast.Asin,
    "acos": ast.Acos,
    "atan": ast.Atan,
}
_LOG_BASES: dict[str, ast.Value] = {
    "ln": _E,
    "log": ast.NumberValue(value=10),
    "lg": ast.NumberValue(value=2),
}
_EXP_BASES: dict[str, ast.Value] = {
    "e^": _E,
    "10^": ast.NumberValue(value=10),
    "2^": ast.NumberValue(value=2),
}

_SPLIT_OPTIONS: dict[str, ast.SplitMode] = {
    "letter": ast.SplitMode.LETTER,
    "word": ast.SplitMode.WORD,
    "line": ast.SplitMode.LF,
    "tab": ast.SplitMode.TAB,
    "cr": ast.SplitMode.CR,
    "csv": ast.SplitMode.CSV,
    "json": ast.SplitMode.JSON,
}

_LIST_ATTRIBUTES: dict[str, type[ast.Expr]] = {
    "length": ast.ListLen,
    "rank": ast.ListRank,
    "dimensions": ast.ListDims,
    "flatten": ast.ListFlatten,
    "columns": ast.ListColumns,
    "reverse": ast.ListReverse,
    "lines": ast.ListLines,
    "csv": ast.ListCsv,
    "json": ast.ListJson,
}

_TYPE_OPTIONS: dict[str, ast.ValueType] = {
    "number": ast.ValueType.NUMBER,
    "text": ast.ValueType.TEXT,
    "Boolean": ast.ValueType.BOOL,
    "list": ast.ValueType.LIST,
    "sprite": ast.ValueType.SPRITE,
    "costume": ast.ValueType.COSTUME,
    "sound": ast.ValueType.SOUND,
    "command": ast.ValueType.COMMAND,
    "reporter": ast.ValueType.REPORTER,
    "predicate": ast.ValueType.PREDICATE,
}

_INTERACTION_HATS: dict[str, type[ast.Hat]] = {
    "pressed": ast.MouseDown,
    "clicked": ast.MouseUp,
    "scrolled-down": ast.ScrollDown,
    "scrolled-up": ast.ScrollUp,
}

_RANDOM_OPTIONS: frozenset[str] = frozenset({"random", "any"})


# ── element helpers ──────────────────────────────────────────────


def inputs(el: Element) -> list[Element]:
    """Input slots of a block, in order."""
    return [child for child in el if child.tag not in _NON_INPUT_TAGS]


def option(el: Element) -> Optional[str]:
    if el.tag != "l":
        return None
    opt = el.find("option")
    return None if opt is None else (opt.text or "")


def slot_text(el: Element) -> str:
    """Text of a literal slot, whether typed in or picked from a menu."""
    if el.tag != "l":
        raise ParseError(f"expected a literal slot, found <{el.tag}>")
    opt = option(el)
    return opt if opt is not None else (el.text or "")


def comment_of(el: Element) -> Optional[str]:
    comment = el.find("comment")
    return None if comment is None else (comment.text or "")


def block_key(spec: str) -> str:
    """Match key shared by a block definition and its call sites."""
    return " ".join(_BLOCK_SLOT_RE.sub("%", spec).split())


def block_label(spec: str) -> str:
    """Human label of a block definition with parameter slots removed."""
    return " ".join(_BLOCK_PARAM_RE.sub(" ", spec).split())


def block_param_names(spec: str) -> list[str]:
    return [m[2:-1] for m in _BLOCK_PARAM_RE.findall(spec)]


def parse_color(text: str) -> tuple[int, int, int, int]:
    """``"r,g,b[,a]"`` with a float alpha in [0, 1] → RGBA bytes."""
    try:
        parts = [float(p) for p in text.split(",")]
    except ValueError as exc:
        raise ParseError(f"malformed color {text!r}") from exc
    if len(parts) == 3:
        parts.append(1.0)
    if len(parts) != 4:
        raise ParseError(f"malformed color {text!r}")
    r, g, b, a = parts
    return int(r), int(g), int(b), round(a * 255)


class ScriptParser:
    """Parses the bodies belonging to one entity of one role.

    Local variables live in a stack of scopes (scripts, custom block bodies,
    rings); unresolved names fall through to the entity's fields and then to
    the role's globals.
    """

    def __init__(self, role: RoleContext, entity: EntityContext, config: ParserConfig):
        self.role = role
        self.entity = entity
        self.config = config
        self._names = NameAllocator(RESERVED_NAMES | role.names.taken)
        self._scopes: list[dict[str, ast.VariableDef]] = [{}]
        self._implicit_params: Optional[list[ast.VariableDef]] = None

        self._HAT_DISPATCH: dict[str, Callable[[Element, list[Element]], ast.Hat]] = {
            "receiveGo": lambda el, a: ast.OnFlag(),
            "receiveOnClone": lambda el, a: ast.OnClone(),
            "receiveKey": lambda el, a: ast.OnKey(key=slot_text(a[0])),
            "receiveInteraction": self._parse_interaction_hat,
            "receiveCondition": lambda el, a: ast.When(condition=self.parse_expr(a[0])),
            "receiveMessage": self._parse_message_hat,
            "receiveSocketMessage": self._parse_socket_message_hat,
        }

        self._STMT_DISPATCH: dict[str, Callable[[Element, list[Element]], ast.Stmt]] = {
            # variables
            "doDeclareVariables": self._parse_declare_locals,
            "doSetVar": lambda el, a: ast.Assign(var=self.resolve_var(slot_text(a[0])), value=self.parse_expr(a[1])),
            "doChangeVar": lambda el, a: ast.AddAssign(
                var=self.resolve_var(slot_text(a[0])), value=self.parse_expr(a[1])
            ),
            # control
            "doWarp": lambda el, a: ast.Warp(stmts=self.parse_body(a[0])),
            "doIf": lambda el, a: ast.If(condition=self.parse_expr(a[0]), then=self.parse_body(a[1])),
            "doIfElse": lambda el, a: ast.IfElse(
                condition=self.parse_expr(a[0]),
                then=self.parse_body(a[1]),
                otherwise=self.parse_body(a[2]),
            ),
            "doForever": lambda el, a: ast.InfLoop(stmts=self.parse_body(a[0])),
            "doRepeat": lambda el, a: ast.Repeat(times=self.parse_expr(a[0]), stmts=self.parse_body(a[1])),
            "doUntil": lambda el, a: ast.UntilLoop(condition=self.parse_expr(a[0]), stmts=self.parse_body(a[1])),
            "doFor": self._parse_for,
            "doForEach": self._parse_for_each,
            "doTryCatch": self._parse_try_catch,
            "doThrow": lambda el, a: ast.Throw(error=self.parse_expr(a[0])),
            "doWaitUntil": lambda el, a: ast.WaitUntil(condition=self.parse_expr(a[0])),
            "doWait": lambda el, a: ast.Sleep(seconds=self.parse_expr(a[0])),
            "doReport": lambda el, a: ast.Return(value=self.parse_expr(a[0])),
            # messaging
            "doBroadcast": self._parse_broadcast,
            "doBroadcastAndWait": self._reject("broadcast and wait"),
            "doSocketMessage": self._parse_socket_message,
            # motion
            "forward": lambda el, a: ast.Forward(distance=self.parse_expr(a[0])),
            "turn": lambda el, a: ast.TurnRight(angle=self.parse_expr(a[0])),
            "turnLeft": lambda el, a: ast.TurnLeft(angle=self.parse_expr(a[0])),
            "setHeading": lambda el, a: ast.SetHeading(value=self.parse_expr(a[0])),
            "gotoXY": lambda el, a: ast.GotoXY(x=self.parse_expr(a[0]), y=self.parse_expr(a[1])),
            "doGotoObject": self._parse_goto,
            "setXPosition": lambda el, a: ast.SetX(value=self.parse_expr(a[0])),
            "setYPosition": lambda el, a: ast.SetY(value=self.parse_expr(a[0])),
            "changeXPosition": lambda el, a: ast.ChangeX(delta=self.parse_expr(a[0])),
            "changeYPosition": lambda el, a: ast.ChangeY(delta=self.parse_expr(a[0])),
            "bounceOffEdge": lambda el, a: ast.BounceOffEdge(),
            # looks
            "doSwitchToCostume": self._parse_switch_costume,
            "doWearNextCostume": lambda el, a: ast.NextCostume(),
            "doSayFor": lambda el, a: ast.Say(content=self.parse_expr(a[0]), duration=self.parse_expr(a[1])),
            "bubble": lambda el, a: ast.Say(content=self.parse_expr(a[0])),
            "doThinkFor": lambda el, a: ast.Think(content=self.parse_expr(a[0]), duration=self.parse_expr(a[1])),
            "doThink": lambda el, a: ast.Think(content=self.parse_expr(a[0])),
            "show": lambda el, a: ast.SetVisible(value=True),
            "hide": lambda el, a: ast.SetVisible(value=False),
            "changeScale": lambda el, a: ast.ChangeSize(delta=self.parse_expr(a[0])),
            "setScale": lambda el, a: ast.SetSize(value=self.parse_expr(a[0])),
            # pen
            "clear": lambda el, a: ast.PenClear(),
            "down": lambda el, a: ast.SetPenDown(value=True),
            "up": lambda el, a: ast.SetPenDown(value=False),
            "setColor": lambda el, a: ast.SetPenColor(color=parse_color(a[0].text or "")),
            "changeSize": lambda el, a: ast.ChangePenSize(delta=self.parse_expr(a[0])),
            "setSize": lambda el, a: ast.SetPenSize(value=self.parse_expr(a[0])),
            "doStamp": lambda el, a: ast.Stamp(),
            "write": lambda el, a: ast.Write(content=self.parse_expr(a[0]), font_size=self.parse_expr(a[1])),
            # sensing
            "doAsk": lambda el, a: ast.Ask(prompt=self.parse_expr(a[0])),
            "doResetTimer": lambda el, a: ast.ResetTimer(),
            "createClone": lambda el, a: ast.CloneStmt(target=self._parse_entity(a[0])),
            # lists
            "doAddToList": lambda el, a: ast.ListInsertLast(list=self.parse_expr(a[1]), value=self.parse_expr(a[0])),
            "doDeleteFromList": self._parse_list_delete,
            "doInsertInList": self._parse_list_insert,
            "doReplaceInList": self._parse_list_replace,
            # calls
            "doRun": lambda el, a: ast.RunClosure(closure=self.parse_expr(a[0]), args=self._call_args(a[1:])),
            "doTellTo": lambda el, a: ast.RunClosure(
                new_entity=self._parse_entity(a[0]),
                closure=self.parse_expr(a[1]),
                args=self._call_args(a[2:]),
            ),
            "doRunRPC": lambda el, a: ast.RunRpc(**self._parse_rpc(a)),
        }

        self._EXPR_DISPATCH: dict[str, Callable[[Element, list[Element]], ast.Expr]] = {
            # arithmetic
            "reportVariadicSum": self._variadic(ast.Add),
            "reportSum": self._pair(ast.Add),
            "reportVariadicProduct": self._variadic(ast.Mul),
            "reportProduct": self._pair(ast.Mul),
            "reportVariadicMin": self._variadic(ast.Min),
            "reportMin": self._pair(ast.Min),
            "reportVariadicMax": self._variadic(ast.Max),
            "reportMax": self._pair(ast.Max),
            "reportDifference": self._binary(ast.Sub),
            "reportQuotient": self._binary(ast.Div),
            "reportModulus": self._binary(ast.Mod),
            "reportPower": self._binary(ast.Pow, "base", "power"),
            "reportMonadic": self._parse_monadic,
            "reportRound": self._unary(ast.Round),
            "reportAtan2": self._binary(ast.Atan2, "y", "x"),
            "reportRandom": self._binary(ast.Random, "a", "b"),
            "reportNumbers": self._binary(ast.Range, "start", "stop"),
            # comparison and logic
            "reportLessThan": self._binary(ast.Less),
            "reportVariadicLessThan": self._binary(ast.Less),
            "reportLessThanOrEquals": self._binary(ast.LessEq),
            "reportVariadicLessThanOrEquals": self._binary(ast.LessEq),
            "reportEquals": self._binary(ast.Eq),
            "reportVariadicEquals": self._binary(ast.Eq),
            "reportNotEquals": self._binary(ast.Neq),
            "reportVariadicNotEquals": self._binary(ast.Neq),
            "reportGreaterThan": self._binary(ast.Greater),
            "reportVariadicGreaterThan": self._binary(ast.Greater),
            "reportGreaterThanOrEquals": self._binary(ast.GreaterEq),
            "reportVariadicGreaterThanOrEquals": self._binary(ast.GreaterEq),
            "reportIsIdentical": self._binary(ast.Identical),
            "reportAnd": self._binary(ast.And),
            "reportVariadicAnd": self._chain(ast.And),
            "reportOr": self._binary(ast.Or),
            "reportVariadicOr": self._chain(ast.Or),
            "reportNot": self._unary(ast.Not),
            "reportBoolean": lambda el, a: self.parse_expr(a[0]),
            "reportIfElse": lambda el, a: ast.Conditional(
                condition=self.parse_expr(a[0]),
                then=self.parse_expr(a[1]),
                otherwise=self.parse_expr(a[2]),
            ),
            # text
            "reportJoinWords": self._variadic(ast.StrCat),
            "reportStringSize": self._unary(ast.StrLen),
            "reportLetter": self._parse_letter,
            "reportTextSplit": self._parse_text_split,
            "reportUnicode": self._unary(ast.CharToUnicode),
            "reportUnicodeAsLetter": self._unary(ast.UnicodeToChar),
            # lists
            "reportNewList": lambda el, a: self._variadic_arg(a),
            "reportCONS": lambda el, a: ast.ListCons(item=self.parse_expr(a[0]), list=self.parse_expr(a[1])),
            "reportCDR": self._unary(ast.ListCdr),
            "reportListItem": self._parse_list_item,
            "reportListAttribute": self._parse_list_attribute,
            "reportListLength": self._unary(ast.ListLen),
            "reportListIndex": lambda el, a: ast.ListFind(value=self.parse_expr(a[0]), list=self.parse_expr(a[1])),
            "reportListContainsItem": lambda el, a: ast.ListContains(
                list=self.parse_expr(a[0]), value=self.parse_expr(a[1])
            ),
            "reportListIsEmpty": self._unary(ast.ListIsEmpty),
            "reportConcatenatedLists": self._variadic(ast.ListCat, "lists"),
            "reportReshape": lambda el, a: ast.ListReshape(value=self.parse_expr(a[0]), dims=self._variadic_arg(a[1:])),
            "reportCrossproduct": self._variadic(ast.ListCombinations, "sources"),
            "reportMap": lambda el, a: ast.Map(f=self.parse_expr(a[0]), list=self.parse_expr(a[1])),
            "reportKeepItems": lambda el, a: ast.Keep(f=self.parse_expr(a[0]), list=self.parse_expr(a[1])),
            "reportFindFirst": lambda el, a: ast.FindFirst(f=self.parse_expr(a[0]), list=self.parse_expr(a[1])),
            "reportCombine": lambda el, a: ast.Combine(list=self.parse_expr(a[0]), f=self.parse_expr(a[1])),
            "reportIsA": self._parse_type_query,
            # rings and calls
            "reifyReporter": lambda el, a: self._parse_ring(a, command=False),
            "reifyPredicate": lambda el, a: self._parse_ring(a, command=False),
            "reifyScript": lambda el, a: self._parse_ring(a, command=True),
            "evaluate": lambda el, a: ast.CallClosure(closure=self.parse_expr(a[0]), args=self._call_args(a[1:])),
            "reportAskFor": lambda el, a: ast.CallClosure(
                new_entity=self._parse_entity(a[0]),
                closure=self.parse_expr(a[1]),
                args=self._call_args(a[2:]),
            ),
            "getJSFromRPCStruct": lambda el, a: ast.CallRpc(**self._parse_rpc(a)),
            "reportRPCError": lambda el, a: ast.RpcError(),
            "newClone": lambda el, a: ast.Clone(target=self._parse_entity(a[0])),
            # sprite and stage state
            "xPosition": lambda el, a: ast.XPos(),
            "yPosition": lambda el, a: ast.YPos(),
            "direction": lambda el, a: ast.Heading(),
            "reportMouseX": lambda el, a: ast.MouseX(),
            "reportMouseY": lambda el, a: ast.MouseY(),
            "reportStageWidth": lambda el, a: ast.StageWidth(),
            "reportStageHeight": lambda el, a: ast.StageHeight(),
            "reportLatitude": lambda el, a: ast.Latitude(),
            "reportLongitude": lambda el, a: ast.Longitude(),
            "reportKeyPressed": lambda el, a: ast.KeyDown(key=slot_text(a[0])),
            "getLastAnswer": lambda el, a: ast.Answer(),
            "getTimer": lambda el, a: ast.Timer(),
            "getPenDown": lambda el, a: ast.PenDown(),
            "getScale": lambda el, a: ast.Size(),
            "reportShown": lambda el, a: ast.IsVisible(),
            "getCostumeIdx": lambda el, a: ast.CostumeNumber(),
            "reportImageOfObject": lambda el, a: ast.ImageOfEntity(entity=self._parse_entity(a[0])),
            "reportPenTrailsAsCostume": lambda el, a: ast.ImageOfDrawings(),
            "reportTouchingObject": lambda el, a: ast.IsTouchingEntity(entity=self._parse_entity(a[0])),
        }

    # ── scopes ───────────────────────────────────────────────────

    def declare_local(self, name: str) -> ast.VariableDef:
        var = ast.VariableDef(name=name, trans_name=self._names.get(name))
        self._scopes[-1][name] = var
        return var

    def resolve_var(self, name: str) -> ast.VariableRef:
        for scope in reversed(self._scopes):
            var = scope.get(name)
            if var is not None:
                return ast.VariableRef(name=name, trans_name=var.trans_name, location=ast.VarLocation.LOCAL)
        var = self.entity.fields.get(name)
        if var is not None:
            return ast.VariableRef(name=name, trans_name=var.trans_name, location=ast.VarLocation.FIELD)
        var = self.role.globals.get(name)
        if var is not None:
            return ast.VariableRef(name=name, trans_name=var.trans_name, location=ast.VarLocation.GLOBAL)
        raise ParseError(f"unknown variable {name!r} in {self.entity.name!r}")

    def _local_ref(self, var: ast.VariableDef) -> ast.VariableRef:
        return ast.VariableRef(name=var.name, trans_name=var.trans_name, location=ast.VarLocation.LOCAL)

    # ── entry points ─────────────────────────────────────────────

    def parse_function(self, signature: BlockSignature) -> ast.Function:
        self._scopes = [{}]
        params = [self.declare_local(name) for name in signature.param_names]
        body = signature.definition.find("script")
        return ast.Function(
            name=signature.name,
            trans_name=signature.trans_name,
            params=params,
            stmts=self.parse_body(body),
        )

    def parse_script(self, script: Element) -> ast.Script:
        self._scopes = [{}]
        blocks = inputs(script)
        hat: Optional[ast.Hat] = None
        if blocks and self._is_hat(blocks[0]):
            hat = self.parse_hat(blocks[0])
            blocks = blocks[1:]
        return ast.Script(hat=hat, stmts=[self.parse_stmt(block) for block in blocks])

    def parse_body(self, el: Optional[Element]) -> list[ast.Stmt]:
        """Statements of a C-slot; an empty or missing slot has none."""
        if el is None:
            return []
        if el.tag == "l" and not (el.text or "").strip() and len(el) == 0:
            return []
        if el.tag != "script":
            raise ParseError(f"expected a script slot, found <{el.tag}>")
        return [self.parse_stmt(block) for block in inputs(el)]

    def _is_hat(self, el: Element) -> bool:
        selector = el.get("s", "")
        return el.tag == "block" and (selector in self._HAT_DISPATCH or selector.startswith("receive"))

    def parse_hat(self, el: Element) -> ast.Hat:
        selector = el.get("s", "")
        handler = self._HAT_DISPATCH.get(selector)
        if handler is None:
            logger.debug("Unrecognised hat block %s", selector)
            hat: ast.Hat = ast.UnknownHat(name=selector)
        else:
            hat = self._apply(handler, el, selector)
        comment = comment_of(el)
        if comment is not None:
            hat = hat.model_copy(update={"comment": comment})
        return hat

    def parse_stmt(self, el: Element) -> ast.Stmt:
        if el.tag == "custom-block":
            stmt: ast.Stmt = self._parse_custom_call(el, statement=True)
        elif el.tag == "block" and el.get("s"):
            selector = el.get("s", "")
            handler = self._STMT_DISPATCH.get(selector)
            if handler is None:
                raise ParseError(f"unknown command block {selector!r}")
            stmt = self._apply(handler, el, selector)
        else:
            raise ParseError(f"unexpected <{el.tag}> in statement position")
        comment = comment_of(el)
        if comment is not None:
            stmt = stmt.model_copy(update={"comment": comment})
        return stmt

    def parse_expr(self, el: Element) -> ast.Expr:
        tag = el.tag
        if tag == "l":
            return self._parse_literal_slot(el)
        if tag == "bool":
            return ast.Literal(value=ast.BoolValue(value=(el.text or "").strip() == "true"))
        if tag == "color":
            return ast.Literal(value=ast.StringValue(value=el.text or ""))
        if tag == "list":
            return ast.MakeList(values=[self.parse_expr(item) for item in inputs(el)])
        if tag == "autolambda":
            body = inputs(el)
            if len(body) != 1:
                raise ParseError("empty reporter ring")
            return self.parse_expr(body[0])
        if tag == "custom-block":
            return self._parse_custom_call(el, statement=False)
        if tag == "block":
            var = el.get("var")
            if var is not None:
                return ast.Variable(var=self.resolve_var(var))
            selector = el.get("s", "")
            handler = self._EXPR_DISPATCH.get(selector)
            if handler is None:
                raise ParseError(f"unknown reporter block {selector!r}")
            return self._apply(handler, el, selector)
        raise ParseError(f"unexpected <{tag}> in expression position")

    def _apply(self, handler: Callable, el: Element, selector: str):
        try:
            return handler(el, inputs(el))
        except IndexError as exc:
            raise ParseError(f"block {selector!r} is missing inputs") from exc

    def _parse_literal_slot(self, el: Element) -> ast.Expr:
        opt = option(el)
        if opt is not None:
            return ast.Literal(value=ast.StringValue(value=opt))
        boolean = el.find("bool")
        if boolean is not None:
            return self.parse_expr(boolean)
        text = el.text or ""
        if not text and self._implicit_params is not None:
            return self._implicit_slot()
        return ast.Literal(value=ast.StringValue(value=text))

    # ── handler factories ────────────────────────────────────────

    def _unary(self, cls: type[ast.Expr]):
        return lambda el, a: cls(value=self.parse_expr(a[0]))

    def _operands(self, args: list[Element]) -> tuple[ast.Expr, ast.Expr]:
        if len(args) == 1 and args[0].tag == "list":
            args = inputs(args[0])
        if len(args) != 2:
            raise ParseError(f"expected two operands, found {len(args)}")
        return self.parse_expr(args[0]), self.parse_expr(args[1])

    def _binary(self, cls: type[ast.Expr], left: str = "left", right: str = "right"):
        def parse(el: Element, args: list[Element]) -> ast.Expr:
            lhs, rhs = self._operands(args)
            return cls(**{left: lhs, right: rhs})

        return parse

    def _pair(self, cls: type[ast.Expr]):
        def parse(el: Element, args: list[Element]) -> ast.Expr:
            lhs, rhs = self._operands(args)
            return cls(values=ast.MakeList(values=[lhs, rhs]))

        return parse

    def _variadic_arg(self, args: list[Element]) -> ast.Expr:
        """A variadic input: an inline ``<list>`` of slots, or one list-valued reporter."""
        if not args:
            return ast.MakeList(values=[])
        if args[0].tag == "list":
            return ast.MakeList(values=[self.parse_expr(item) for item in inputs(args[0])])
        return self.parse_expr(args[0])

    def _variadic(self, cls: type[ast.Expr], field: str = "values"):
        return lambda el, a: cls(**{field: self._variadic_arg(a)})

    def _chain(self, cls: type[ast.Expr]):
        def parse(el: Element, args: list[Element]) -> ast.Expr:
            items = inputs(args[0]) if args and args[0].tag == "list" else args
            if not items:
                raise ParseError(f"{el.get('s')!r} needs at least one operand")
            operands = [self.parse_expr(item) for item in items]
            return reduce(lambda lhs, rhs: cls(left=lhs, right=rhs), operands)

        return parse

    def _reject(self, what: str):
        def parse(el: Element, args: list[Element]) -> ast.Stmt:
            raise ParseError(f"{what} is not supported")

        return parse

    def _call_args(self, args: list[Element]) -> list[ast.Expr]:
        if args and args[0].tag == "list":
            args = inputs(args[0])
        return [self.parse_expr(arg) for arg in args]

    # ── hats ─────────────────────────────────────────────────────

    def _parse_interaction_hat(self, el: Element, args: list[Element]) -> ast.Hat:
        interaction = slot_text(args[0])
        cls = _INTERACTION_HATS.get(interaction)
        if cls is None:
            return ast.UnknownHat(name=f"receiveInteraction:{interaction}")
        return cls()

    def _parse_message_hat(self, el: Element, args: list[Element]) -> ast.Hat:
        opt = option(args[0])
        if opt == "any message":
            return ast.LocalMessage(msg_type=None)
        return ast.LocalMessage(msg_type=slot_text(args[0]))

    def _parse_socket_message_hat(self, el: Element, args: list[Element]) -> ast.Hat:
        msg_type = slot_text(args[0])
        if len(args) > 1 and args[1].tag == "list":
            names = [slot_text(item) for item in inputs(args[1])]
        else:
            names = self.role.message_types.get(msg_type, [])
        return ast.NetworkMessage(msg_type=msg_type, fields=[self.declare_local(name) for name in names])

    # ── statements ───────────────────────────────────────────────

    def _parse_declare_locals(self, el: Element, args: list[Element]) -> ast.Stmt:
        names = [slot_text(item) for item in inputs(args[0])] if args else []
        return ast.DeclareLocals(vars=[self.declare_local(name) for name in names])

    def _parse_for(self, el: Element, args: list[Element]) -> ast.Stmt:
        var = self.declare_local(slot_text(args[0]))
        return ast.ForLoop(
            var=self._local_ref(var),
            start=self.parse_expr(args[1]),
            stop=self.parse_expr(args[2]),
            stmts=self.parse_body(args[3]),
        )

    def _parse_for_each(self, el: Element, args: list[Element]) -> ast.Stmt:
        var = self.declare_local(slot_text(args[0]))
        return ast.ForeachLoop(
            var=self._local_ref(var),
            items=self.parse_expr(args[1]),
            stmts=self.parse_body(args[2]),
        )

    def _parse_try_catch(self, el: Element, args: list[Element]) -> ast.Stmt:
        code = self.parse_body(args[0])
        var = self.declare_local(slot_text(args[1]))
        return ast.TryCatch(code=code, var=self._local_ref(var), handler=self.parse_body(args[2]))

    def _parse_broadcast(self, el: Element, args: list[Element]) -> ast.Stmt:
        if len(args) > 1 and not self._targets_everyone(args[1]):
            raise ParseError("broadcasts to specific sprites are not supported")
        return ast.SendLocalMessage(msg_type=self.parse_expr(args[0]))

    def _targets_everyone(self, el: Element) -> bool:
        if el.tag == "list":
            return not inputs(el)
        return el.tag == "l" and slot_text(el) in ("", "all")

    def _parse_socket_message(self, el: Element, args: list[Element]) -> ast.Stmt:
        msg_type = slot_text(args[0])
        target = self.parse_expr(args[1])
        rest = args[2:]
        if len(rest) == 1 and rest[0].tag == "list":
            rest = inputs(rest[0])
        fields = self.role.message_types.get(msg_type)
        if rest and fields is None:
            raise ParseError(f"unknown message type {msg_type!r}")
        if len(rest) > len(fields or []):
            raise ParseError(f"too many values for message type {msg_type!r}")
        values = [(name, self.parse_expr(value)) for name, value in zip(fields or [], rest)]
        return ast.SendNetworkMessage(msg_type=msg_type, target=target, values=values)

    def _parse_goto(self, el: Element, args: list[Element]) -> ast.Stmt:
        if args[0].tag == "l":
            raise ParseError(f"go to {slot_text(args[0])!r} is not supported")
        target = self.parse_expr(args[0])
        if isinstance(target, ast.MakeList) and len(target.values) == 2:
            return ast.GotoXY(x=target.values[0], y=target.values[1])
        return ast.Goto(target=target)

    def _parse_switch_costume(self, el: Element, args: list[Element]) -> ast.Stmt:
        if option(args[0]) == "Turtle":
            return ast.SetCostume(costume=None)
        return ast.SetCostume(costume=self.parse_expr(args[0]))

    def _parse_list_delete(self, el: Element, args: list[Element]) -> ast.Stmt:
        target = self.parse_expr(args[1])
        which = option(args[0])
        if which == "last":
            return ast.ListRemoveLast(list=target)
        if which == "all":
            return ast.ListRemoveAll(list=target)
        return ast.ListRemove(list=target, index=self.parse_expr(args[0]))

    def _parse_list_insert(self, el: Element, args: list[Element]) -> ast.Stmt:
        value = self.parse_expr(args[0])
        target = self.parse_expr(args[2])
        which = option(args[1])
        if which == "last":
            return ast.ListInsertLast(list=target, value=value)
        if which in _RANDOM_OPTIONS:
            return ast.ListInsertRandom(list=target, value=value)
        return ast.ListInsert(list=target, index=self.parse_expr(args[1]), value=value)

    def _parse_list_replace(self, el: Element, args: list[Element]) -> ast.Stmt:
        target = self.parse_expr(args[1])
        value = self.parse_expr(args[2])
        which = option(args[0])
        if which == "last":
            return ast.ListAssignLast(list=target, value=value)
        if which in _RANDOM_OPTIONS:
            return ast.ListAssignRandom(list=target, value=value)
        return ast.ListAssign(list=target, index=self.parse_expr(args[0]), value=value)

    # ── expressions ──────────────────────────────────────────────

    def _parse_monadic(self, el: Element, args: list[Element]) -> ast.Expr:
        fn = slot_text(args[0])
        value = self.parse_expr(args[1])
        if fn in _MONADIC_UNARY:
            return _MONADIC_UNARY[fn](value=value)
        if fn in _LOG_BASES:
            return ast.Log(value=value, base=ast.Literal(value=_LOG_BASES[fn]))
        if fn in _EXP_BASES:
            return ast.Pow(base=ast.Literal(value=_EXP_BASES[fn]), power=value)
        if fn == "id":
            return value
        raise ParseError(f"unknown monadic function {fn!r}")

    def _parse_letter(self, el: Element, args: list[Element]) -> ast.Expr:
        string = self.parse_expr(args[1])
        which = option(args[0])
        if which == "last":
            return ast.StrGetLast(string=string)
        if which in _RANDOM_OPTIONS:
            return ast.StrGetRandom(string=string)
        return ast.StrGet(string=string, index=self.parse_expr(args[0]))

    def _parse_text_split(self, el: Element, args: list[Element]) -> ast.Expr:
        text = self.parse_expr(args[0])
        which = option(args[1])
        if which is None:
            return ast.TextSplit(text=text, mode=ast.SplitMode.CUSTOM, separator=self.parse_expr(args[1]))
        mode = _SPLIT_OPTIONS.get(which)
        if mode is None:
            raise ParseError(f"unknown split mode {which!r}")
        return ast.TextSplit(text=text, mode=mode)

    def _parse_list_item(self, el: Element, args: list[Element]) -> ast.Expr:
        target = self.parse_expr(args[1])
        which = option(args[0])
        if which == "last":
            return ast.ListGetLast(list=target)
        if which in _RANDOM_OPTIONS:
            return ast.ListGetRandom(list=target)
        return ast.ListGet(list=target, index=self.parse_expr(args[0]))

    def _parse_list_attribute(self, el: Element, args: list[Element]) -> ast.Expr:
        attribute = slot_text(args[0])
        cls = _LIST_ATTRIBUTES.get(attribute)
        if cls is None:
            raise ParseError(f"unknown list attribute {attribute!r}")
        return cls(value=self.parse_expr(args[1]))

    def _parse_type_query(self, el: Element, args: list[Element]) -> ast.Expr:
        kind = slot_text(args[1])
        ty = _TYPE_OPTIONS.get(kind)
        if ty is None:
            raise ParseError(f"unknown type {kind!r}")
        return ast.TypeQuery(value=self.parse_expr(args[0]), ty=ty)

    def _parse_entity(self, el: Element) -> ast.Expr:
        if el.tag != "l":
            return self.parse_expr(el)
        name = slot_text(el)
        if name == "myself":
            return ast.This()
        entity = self.role.entities.get(name)
        if entity is None:
            raise ParseError(f"unknown sprite {name!r}")
        return entity

    def _parse_rpc(self, args: list[Element]) -> dict:
        service, rpc = slot_text(args[0]), slot_text(args[1])
        rest = args[2:]
        if len(rest) == 1 and rest[0].tag == "list":
            rest = inputs(rest[0])
        if not rest:
            return {"service": service, "rpc": rpc, "args": []}
        names = self.config.rpc_args(service, rpc)
        if names is None:
            raise ParseError(f"no argument names known for RPC {service}.{rpc}")
        if len(rest) > len(names):
            raise ParseError(f"RPC {service}.{rpc} takes {len(names)} argument(s), got {len(rest)}")
        return {
            "service": service,
            "rpc": rpc,
            "args": [(name, self.parse_expr(value)) for name, value in zip(names, rest)],
        }

    def _parse_custom_call(self, el: Element, statement: bool):
        spec = el.get("s", "")
        key = block_key(spec)
        signature = self.entity.methods.get(key) or self.role.functions.get(key)
        if signature is None:
            raise ParseError(f"unknown custom block {spec!r}")
        args: list[ast.Expr] = []
        upvars: list[ast.VariableRef] = []
        for i, slot in enumerate(inputs(el)):
            if i in signature.upvar_slots:
                upvars.append(self._local_ref(self.declare_local(slot_text(slot))))
            else:
                args.append(self.parse_expr(slot))
        if statement:
            return ast.RunFn(function=signature.ref, args=args, upvars=upvars)
        return ast.CallFn(function=signature.ref, args=args, upvars=upvars)

    # ── rings ────────────────────────────────────────────────────

    def _parse_ring(self, args: list[Element], command: bool) -> ast.Closure:
        body = args[0] if args else None
        formal = [slot_text(item) for item in inputs(args[1])] if len(args) > 1 else []

        saved_implicit = self._implicit_params
        self._scopes.append({})
        try:
            params = [self.declare_local(name) for name in formal]
            self._implicit_params = None if formal else []
            if command:
                stmts = self.parse_body(body)
            else:
                if body is None:
                    raise ParseError("empty reporter ring")
                stmts = [ast.Return(value=self.parse_expr(body))]
            if self._implicit_params:
                params = self._implicit_params
        finally:
            self._implicit_params = saved_implicit
            self._scopes.pop()
        return ast.Closure(params=params, stmts=stmts)

    def _implicit_slot(self) -> ast.Expr:
        """An empty slot inside a parameterless ring becomes the next parameter."""
        var = self.declare_local(f"#{len(self._implicit_params) + 1}")
        self._implicit_params.append(var)
        return ast.Variable(var=self._local_ref(var))
