"""Resolved project AST — the tree the lowering core consumes.

Identifiers (``trans_name``) are already valid Python identifiers and every
variable / function reference carries its resolved location.  One model per
variant; lowerers dispatch on the concrete class.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Node(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── references ───────────────────────────────────────────────────


class VarLocation(str, Enum):
    LOCAL = "local"
    FIELD = "field"
    GLOBAL = "global"


class FnLocation(str, Enum):
    GLOBAL = "global"
    METHOD = "method"


class VariableDef(Node):
    name: str
    trans_name: str


class VariableRef(Node):
    name: str
    trans_name: str
    location: VarLocation


class FnRef(Node):
    name: str
    trans_name: str
    location: FnLocation


# ── values ───────────────────────────────────────────────────────


class Constant(str, Enum):
    PI = "pi"
    E = "e"


class Value(Node):
    pass


class StringValue(Value):
    value: str


class NumberValue(Value):
    value: float


class BoolValue(Value):
    value: bool


class ConstantValue(Value):
    value: Constant


class ListValue(Value):
    values: list[Value] = []


class ImageValue(Value):
    content: bytes
    center: Optional[tuple[float, float]] = None
    name: str = ""


class AudioValue(Value):
    content: bytes
    name: str = ""


class RefValue(Value):
    ref_id: int


# ── expressions ──────────────────────────────────────────────────


class ValueType(str, Enum):
    BOOL = "bool"
    TEXT = "text"
    NUMBER = "number"
    LIST = "list"
    SPRITE = "sprite"
    COSTUME = "costume"
    SOUND = "sound"
    COMMAND = "command"
    REPORTER = "reporter"
    PREDICATE = "predicate"


RING_VALUE_TYPES: frozenset[ValueType] = frozenset(
    {ValueType.COMMAND, ValueType.REPORTER, ValueType.PREDICATE}
)


class SplitMode(str, Enum):
    CUSTOM = "custom"
    LF = "lf"
    CR = "cr"
    TAB = "tab"
    LETTER = "letter"
    WORD = "word"
    CSV = "csv"
    JSON = "json"


class Expr(Node):
    pass


class Literal(Expr):
    value: Value


class Variable(Expr):
    var: VariableRef


class This(Expr):
    pass


class Entity(Expr):
    name: str
    trans_name: str


class MakeList(Expr):
    values: list[Expr] = []


# unary numeric / logic


class Neg(Expr):
    value: Expr


class Not(Expr):
    value: Expr


class Abs(Expr):
    value: Expr


class Sign(Expr):
    value: Expr


class Sqrt(Expr):
    value: Expr


class Round(Expr):
    value: Expr


class Floor(Expr):
    value: Expr


class Ceil(Expr):
    value: Expr


class Sin(Expr):
    value: Expr


class Cos(Expr):
    value: Expr


class Tan(Expr):
    value: Expr


class Asin(Expr):
    value: Expr


class Acos(Expr):
    value: Expr


class Atan(Expr):
    value: Expr


# binary numeric / logic / comparison


class Atan2(Expr):
    y: Expr
    x: Expr


class Sub(Expr):
    left: Expr
    right: Expr


class Div(Expr):
    left: Expr
    right: Expr


class Mod(Expr):
    left: Expr
    right: Expr


class Pow(Expr):
    base: Expr
    power: Expr


class Log(Expr):
    value: Expr
    base: Expr


class And(Expr):
    left: Expr
    right: Expr


class Or(Expr):
    left: Expr
    right: Expr


class Less(Expr):
    left: Expr
    right: Expr


class LessEq(Expr):
    left: Expr
    right: Expr


class Eq(Expr):
    left: Expr
    right: Expr


class Neq(Expr):
    left: Expr
    right: Expr


class Greater(Expr):
    left: Expr
    right: Expr


class GreaterEq(Expr):
    left: Expr
    right: Expr


class Identical(Expr):
    left: Expr
    right: Expr


class Conditional(Expr):
    condition: Expr
    then: Expr
    otherwise: Expr


class Random(Expr):
    a: Expr
    b: Expr


class Range(Expr):
    start: Expr
    stop: Expr


# variadic


class Add(Expr):
    values: Expr


class Mul(Expr):
    values: Expr


class Min(Expr):
    values: Expr


class Max(Expr):
    values: Expr


class StrCat(Expr):
    values: Expr


class ListCat(Expr):
    lists: Expr


# text


class StrLen(Expr):
    value: Expr


class StrGet(Expr):
    string: Expr
    index: Expr


class StrGetLast(Expr):
    string: Expr


class StrGetRandom(Expr):
    string: Expr


class TextSplit(Expr):
    text: Expr
    mode: SplitMode
    separator: Optional[Expr] = None


class UnicodeToChar(Expr):
    value: Expr


class CharToUnicode(Expr):
    value: Expr


# lists


class ListLen(Expr):
    value: Expr


class ListFind(Expr):
    list: Expr
    value: Expr


class ListGet(Expr):
    list: Expr
    index: Expr


class ListGetLast(Expr):
    list: Expr


class ListGetRandom(Expr):
    list: Expr


class ListContains(Expr):
    list: Expr
    value: Expr


class ListIsEmpty(Expr):
    value: Expr


class ListRank(Expr):
    value: Expr


class ListDims(Expr):
    value: Expr


class ListFlatten(Expr):
    value: Expr


class ListColumns(Expr):
    value: Expr


class ListReverse(Expr):
    value: Expr


class ListLines(Expr):
    value: Expr


class ListCsv(Expr):
    value: Expr


class ListJson(Expr):
    value: Expr


class ListCdr(Expr):
    value: Expr


class ListCons(Expr):
    item: Expr
    list: Expr


class ListCopy(Expr):
    value: Expr


class ListReshape(Expr):
    value: Expr
    dims: Expr


class ListCombinations(Expr):
    sources: Expr


class Map(Expr):
    f: Expr
    list: Expr


class Keep(Expr):
    f: Expr
    list: Expr


class FindFirst(Expr):
    f: Expr
    list: Expr


class Combine(Expr):
    list: Expr
    f: Expr


# type queries


class TypeQuery(Expr):
    value: Expr
    ty: ValueType


# calls and closures


class CallFn(Expr):
    function: FnRef
    args: list[Expr] = []
    upvars: list[VariableRef] = []


class CallRpc(Expr):
    service: str
    rpc: str
    args: list[tuple[str, Expr]] = []


class CallClosure(Expr):
    closure: Expr
    args: list[Expr] = []
    new_entity: Optional[Expr] = None


class Closure(Expr):
    params: list[VariableDef] = []
    captures: list[VariableRef] = []
    stmts: list[Stmt] = []


class RpcError(Expr):
    pass


class Clone(Expr):
    target: Expr


# sprite / stage state


class XPos(Expr):
    pass


class YPos(Expr):
    pass


class Heading(Expr):
    pass


class MouseX(Expr):
    pass


class MouseY(Expr):
    pass


class StageWidth(Expr):
    pass


class StageHeight(Expr):
    pass


class Latitude(Expr):
    pass


class Longitude(Expr):
    pass


class KeyDown(Expr):
    key: str


class Answer(Expr):
    pass


class Timer(Expr):
    pass


class PenDown(Expr):
    pass


class Size(Expr):
    pass


class IsVisible(Expr):
    pass


class CostumeNumber(Expr):
    pass


class ImageOfEntity(Expr):
    entity: Expr


class ImageOfDrawings(Expr):
    pass


class IsTouchingEntity(Expr):
    entity: Expr


# ── statements ───────────────────────────────────────────────────


class Stmt(Node):
    comment: Optional[str] = None


class DeclareLocals(Stmt):
    vars: list[VariableDef] = []


class Assign(Stmt):
    var: VariableRef
    value: Expr


class AddAssign(Stmt):
    var: VariableRef
    value: Expr


class ListAssign(Stmt):
    list: Expr
    index: Expr
    value: Expr


class ListAssignLast(Stmt):
    list: Expr
    value: Expr


class ListAssignRandom(Stmt):
    list: Expr
    value: Expr


class ListInsert(Stmt):
    list: Expr
    index: Expr
    value: Expr


class ListInsertLast(Stmt):
    list: Expr
    value: Expr


class ListInsertRandom(Stmt):
    list: Expr
    value: Expr


class ListRemove(Stmt):
    list: Expr
    index: Expr


class ListRemoveLast(Stmt):
    list: Expr


class ListRemoveAll(Stmt):
    list: Expr


class Warp(Stmt):
    stmts: list[Stmt] = []


class If(Stmt):
    condition: Expr
    then: list[Stmt] = []


class IfElse(Stmt):
    condition: Expr
    then: list[Stmt] = []
    otherwise: list[Stmt] = []


class InfLoop(Stmt):
    stmts: list[Stmt] = []


class ForLoop(Stmt):
    var: VariableRef
    start: Expr
    stop: Expr
    stmts: list[Stmt] = []


class ForeachLoop(Stmt):
    var: VariableRef
    items: Expr
    stmts: list[Stmt] = []


class Repeat(Stmt):
    times: Expr
    stmts: list[Stmt] = []


class UntilLoop(Stmt):
    condition: Expr
    stmts: list[Stmt] = []


class TryCatch(Stmt):
    code: list[Stmt] = []
    var: VariableRef
    handler: list[Stmt] = []


class Throw(Stmt):
    error: Expr


class WaitUntil(Stmt):
    condition: Expr


class Sleep(Stmt):
    seconds: Expr


class Return(Stmt):
    value: Expr


class SetCostume(Stmt):
    costume: Optional[Expr] = None


class NextCostume(Stmt):
    pass


class SetX(Stmt):
    value: Expr


class SetY(Stmt):
    value: Expr


class ChangeX(Stmt):
    delta: Expr


class ChangeY(Stmt):
    delta: Expr


class Goto(Stmt):
    target: Expr


class GotoXY(Stmt):
    x: Expr
    y: Expr


class Forward(Stmt):
    distance: Expr


class TurnRight(Stmt):
    angle: Expr


class TurnLeft(Stmt):
    angle: Expr


class SetHeading(Stmt):
    value: Expr


class BounceOffEdge(Stmt):
    pass


class SendLocalMessage(Stmt):
    msg_type: Expr
    target: Optional[Expr] = None
    wait: bool = False


class SendNetworkMessage(Stmt):
    msg_type: str
    target: Expr
    values: list[tuple[str, Expr]] = []


class Say(Stmt):
    content: Expr
    duration: Optional[Expr] = None


class Think(Stmt):
    content: Expr
    duration: Optional[Expr] = None


class RunRpc(Stmt):
    service: str
    rpc: str
    args: list[tuple[str, Expr]] = []


class RunFn(Stmt):
    function: FnRef
    args: list[Expr] = []
    upvars: list[VariableRef] = []


class RunClosure(Stmt):
    closure: Expr
    args: list[Expr] = []
    new_entity: Optional[Expr] = None


class CloneStmt(Stmt):
    target: Expr


class Ask(Stmt):
    prompt: Expr


class ResetTimer(Stmt):
    pass


class SetVisible(Stmt):
    value: bool


class SetPenDown(Stmt):
    value: bool


class PenClear(Stmt):
    pass


class SetPenColor(Stmt):
    color: tuple[int, int, int, int]


class SetPenSize(Stmt):
    value: Expr


class ChangePenSize(Stmt):
    delta: Expr


class SetSize(Stmt):
    value: Expr


class ChangeSize(Stmt):
    delta: Expr


class Stamp(Stmt):
    pass


class Write(Stmt):
    content: Expr
    font_size: Expr


# ── hats ─────────────────────────────────────────────────────────


class Hat(Node):
    comment: Optional[str] = None


class OnFlag(Hat):
    pass


class OnClone(Hat):
    pass


class OnKey(Hat):
    key: str


class MouseDown(Hat):
    pass


class MouseUp(Hat):
    pass


class ScrollDown(Hat):
    pass


class ScrollUp(Hat):
    pass


class When(Hat):
    condition: Expr


class LocalMessage(Hat):
    msg_type: Optional[str] = None


class NetworkMessage(Hat):
    msg_type: str
    fields: list[VariableDef] = []


class UnknownHat(Hat):
    name: str


# ── project structure ────────────────────────────────────────────


class VarDefInit(Node):
    var: VariableDef
    init: Value


class Costume(Node):
    name: str
    trans_name: str
    init: Value


class Function(Node):
    name: str
    trans_name: str
    params: list[VariableDef] = []
    stmts: list[Stmt] = []


class Script(Node):
    hat: Optional[Hat] = None
    stmts: list[Stmt] = []


class EntityDef(Node):
    name: str
    trans_name: str
    active_costume: Optional[int] = None
    visible: bool = True
    color: tuple[int, int, int, int] = (80, 80, 80, 255)
    pos: tuple[float, float] = (0.0, 0.0)
    heading: float = 90.0
    scale: float = 1.0
    costumes: list[Costume] = []
    fields: list[VarDefInit] = []
    funcs: list[Function] = []
    scripts: list[Script] = []


class Role(Node):
    name: str
    stage_size: Optional[tuple[int, int]] = None
    entities: list[EntityDef] = []
    globals: list[VarDefInit] = []
    funcs: list[Function] = []


class Project(Node):
    name: str
    roles: list[Role] = []


def variants(base: type[Node]) -> list[type[Node]]:
    """Return every concrete (leaf) subclass of *base* defined in this module."""
    leaves: list[type[Node]] = []
    pending = list(base.__subclasses__())
    while pending:
        cls = pending.pop(0)
        children = cls.__subclasses__()
        if children:
            pending.extend(children)
        else:
            leaves.append(cls)
    return leaves


for _model in (*variants(Value), *variants(Expr), *variants(Stmt), *variants(Hat)):
    _model.model_rebuild()
for _model in (VarDefInit, Costume, Function, Script, EntityDef, Role, Project):
    _model.model_rebuild()
