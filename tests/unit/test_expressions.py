"""Tests for expression lowering and the wrap-type lattice."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from nb2pb import ast
from nb2pb.errors import (
    CommandRingError,
    RingTypeQueryError,
    TellAskClosureError,
    UnsupportedExprError,
    UpvarsError,
)
from nb2pb.lowering import WrapType

from tests.unit.conftest import COSTUMES, literal_list, make_list, num, text, var, vdef


def _fn(name: str, location: ast.FnLocation = ast.FnLocation.GLOBAL) -> ast.FnRef:
    return ast.FnRef(name=name, trans_name=name, location=location)


class TestVariables:
    def test_local(self, lowerer):
        result = lowerer.lower_expr(var("a"))
        assert result.text == "a"
        assert result.wrap_type == WrapType.WRAPPED

    def test_field(self, lowerer):
        assert lowerer.lower_expr(var("f", ast.VarLocation.FIELD)).text == "self.f"

    def test_global(self, lowerer):
        assert lowerer.lower_expr(var("g", ast.VarLocation.GLOBAL)).text == "globals()['g']"

    def test_this_and_entity(self, lowerer):
        assert lowerer.lower_expr(ast.This()).text == "self"
        assert lowerer.lower_expr(ast.Entity(name="Sprite (2)", trans_name="Sprite_2")).text == "Sprite_2"


class TestVariadicPeephole:
    def test_sum_of_literal_list(self, lowerer):
        values = literal_list(*(ast.StringValue(value=v) for v in ("2", "4", "7")))
        result = lowerer.lower_expr(ast.Add(values=values))
        assert result.text == "(snap.wrap('2') + snap.wrap('4') + snap.wrap('7'))"
        assert result.wrap_type == WrapType.WRAPPED

    def test_product_of_make_list(self, lowerer):
        result = lowerer.lower_expr(ast.Mul(values=make_list(var("a"), num(3))))
        assert result.text == "(a * snap.wrap(3))"
        assert result.wrap_type == WrapType.WRAPPED

    @pytest.mark.parametrize(
        "node, identity",
        [
            (ast.Add(values=literal_list()), "0"),
            (ast.Mul(values=literal_list()), "1"),
            (ast.StrCat(values=literal_list()), "''"),
            (ast.ListCat(lists=literal_list()), "[]"),
            (ast.Add(values=make_list()), "0"),
            (ast.Mul(values=make_list()), "1"),
        ],
    )
    def test_empty_list_gives_identity(self, lowerer, node, identity):
        result = lowerer.lower_expr(node)
        assert result.text == identity
        assert result.wrap_type == WrapType.UNKNOWN

    def test_opaque_list_uses_reducers(self, lowerer):
        xs = var("xs")
        assert lowerer.lower_expr(ast.Add(values=xs)) == lowerer.lower_expr(ast.Add(values=xs))
        assert lowerer.lower_expr(ast.Add(values=xs)).text == "sum(xs)"
        assert lowerer.lower_expr(ast.Mul(values=xs)).text == "snap.prod(xs)"
        assert lowerer.lower_expr(ast.StrCat(values=xs)).text == "''.join(str(x) for x in xs)"
        assert lowerer.lower_expr(ast.ListCat(lists=xs)).text == "snap.append(xs)"

    def test_opaque_reducer_wrap_types(self, lowerer):
        xs = var("xs")
        assert lowerer.lower_expr(ast.Add(values=xs)).wrap_type == WrapType.UNKNOWN
        assert lowerer.lower_expr(ast.Mul(values=xs)).wrap_type == WrapType.WRAPPED

    def test_string_join_chain(self, lowerer):
        result = lowerer.lower_expr(ast.StrCat(values=make_list(text("a"), var("b"))))
        assert result.text == "(str(snap.wrap('a')) + str(b))"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_list_concat_chain(self, lowerer):
        result = lowerer.lower_expr(ast.ListCat(lists=make_list(var("a"), var("b"))))
        assert result.text == "[*a, *b]"

    def test_min_and_max_wrap_their_argument(self, lowerer):
        assert lowerer.lower_expr(ast.Min(values=var("xs"))).text == "min(xs)"
        assert lowerer.lower_expr(ast.Max(values=make_list(num(1)))).text == "max(snap.wrap([1]))"


class TestOperators:
    def test_infix_wraps_operands(self, lowerer):
        result = lowerer.lower_expr(ast.Sub(left=var("a"), right=num(1)))
        assert result.text == "(a - snap.wrap(1))"
        assert result.wrap_type == WrapType.WRAPPED

    def test_power(self, lowerer):
        assert lowerer.lower_expr(ast.Pow(base=num(2), power=var("n"))).text == "(snap.wrap(2) ** n)"

    def test_negation_is_parenthesised(self, lowerer):
        assert lowerer.lower_expr(ast.Neg(value=num(3))).text == "(-snap.wrap(3))"

    def test_comparison_and_logic(self, lowerer):
        assert lowerer.lower_expr(ast.LessEq(left=var("a"), right=var("b"))).text == "(a <= b)"
        assert lowerer.lower_expr(ast.And(left=var("a"), right=var("b"))).text == "(a and b)"
        assert lowerer.lower_expr(ast.Identical(left=var("a"), right=num(1))).text == "snap.identical(a, 1)"

    def test_runtime_functions_take_raw_operands(self, lowerer):
        assert lowerer.lower_expr(ast.Not(value=var("a"))).text == "snap.lnot(a)"
        assert lowerer.lower_expr(ast.Sqrt(value=num(4))).text == "snap.sqrt(4)"
        assert lowerer.lower_expr(ast.Atan2(y=num(1), x=num(2))).text == "snap.atan2(1, 2)"
        assert lowerer.lower_expr(ast.Random(a=num(1), b=num(10))).text == "snap.rand(1, 10)"
        assert lowerer.lower_expr(ast.Range(start=num(1), stop=num(5))).text == "snap.srange(1, 5)"

    def test_logarithm_base(self, lowerer):
        node = ast.Log(value=text("10"), base=ast.Literal(value=ast.ConstantValue(value=ast.Constant.E)))
        assert lowerer.lower_expr(node).text == "snap.log('10', math.e)"

    def test_builtins_take_wrapped_operands(self, lowerer):
        assert lowerer.lower_expr(ast.Abs(value=num(-1))).text == "abs(snap.wrap(-1))"
        assert lowerer.lower_expr(ast.Floor(value=var("a"))).text == "math.floor(a)"


class TestConditional:
    def test_shared_wrapped_tag(self, lowerer):
        node = ast.Conditional(condition=var("c"), then=var("a"), otherwise=var("b"))
        result = lowerer.lower_expr(node)
        assert result.text == "(a if c else b)"
        assert result.wrap_type == WrapType.WRAPPED

    def test_shared_unknown_tag(self, lowerer):
        node = ast.Conditional(condition=var("c"), then=num(1), otherwise=num(2))
        result = lowerer.lower_expr(node)
        assert result.text == "(1 if c else 2)"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_mixed_tags_are_unknown(self, lowerer):
        node = ast.Conditional(condition=num(1), then=var("a"), otherwise=num(2))
        result = lowerer.lower_expr(node)
        assert result.text == "(a if snap.wrap(1) else 2)"
        assert result.wrap_type == WrapType.UNKNOWN


class TestTextAndLists:
    def test_length_is_unknown(self, lowerer):
        result = lowerer.lower_expr(ast.StrLen(value=var("s")))
        assert result.text == "len(s)"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_one_based_indexing(self, lowerer):
        assert lowerer.lower_expr(ast.ListGet(list=var("l"), index=num(1))).text == "l[snap.wrap(1) - snap.wrap(1)]"
        assert lowerer.lower_expr(ast.StrGet(string=text("ab"), index=var("i"))).text == (
            "snap.wrap('ab')[i - snap.wrap(1)]"
        )

    def test_last_and_random(self, lowerer):
        assert lowerer.lower_expr(ast.ListGetLast(list=var("l"))).text == "l.last"
        assert lowerer.lower_expr(ast.StrGetRandom(string=var("s"))).text == "snap.choice(s)"
        assert lowerer.lower_expr(ast.ListGetRandom(list=var("l"))).text == "snap.choice(l)"

    def test_find_and_contains(self, lowerer):
        assert lowerer.lower_expr(ast.ListFind(list=var("l"), value=text("a"))).text == "(l.index('a') + snap.wrap(1))"
        assert lowerer.lower_expr(ast.ListContains(list=var("l"), value=text("a"))).text == "(snap.wrap('a') in l)"

    def test_list_shape_accessors(self, lowerer):
        l = var("l")
        assert lowerer.lower_expr(ast.ListIsEmpty(value=l)).text == "(len(l) == 0)"
        assert lowerer.lower_expr(ast.ListRank(value=l)).text == "len(l.shape)"
        assert lowerer.lower_expr(ast.ListDims(value=l)).text == "l.shape"
        assert lowerer.lower_expr(ast.ListColumns(value=l)).text == "l.T"
        assert lowerer.lower_expr(ast.ListReverse(value=l)).text == "l[::-1]"
        assert lowerer.lower_expr(ast.ListCdr(value=l)).text == "l[1:]"
        assert lowerer.lower_expr(ast.ListCopy(value=l)).text == "[*l]"
        assert lowerer.lower_expr(ast.ListLines(value=l)).text == "'\\n'.join(str(x) for x in l)"

    def test_cons_and_reshape(self, lowerer):
        assert lowerer.lower_expr(ast.ListCons(item=num(1), list=var("l"))).text == "[1, *l]"
        node = ast.ListReshape(value=var("l"), dims=make_list(num(2), num(3)))
        assert lowerer.lower_expr(node).text == "l.reshaped([2, 3])"

    def test_combinations(self, lowerer):
        node = ast.ListCombinations(sources=make_list(var("a"), var("b")))
        assert lowerer.lower_expr(node).text == "snap.combinations(a, b)"
        assert lowerer.lower_expr(ast.ListCombinations(sources=var("v"))).text == "snap.combinations(*v)"

    def test_higher_order(self, lowerer):
        f, l = var("f"), var("l")
        assert lowerer.lower_expr(ast.Map(f=f, list=l)).text == "[f(x) for x in l]"
        assert lowerer.lower_expr(ast.Keep(f=f, list=l)).text == "[x for x in l if f(x)]"
        assert lowerer.lower_expr(ast.FindFirst(f=f, list=l)).text == "l.index_where(f)"
        assert lowerer.lower_expr(ast.Combine(list=l, f=f)).text == "l.fold(f)"

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (ast.SplitMode.LF, r"snap.split(s, '\n')"),
            (ast.SplitMode.TAB, r"snap.split(s, '\t')"),
            (ast.SplitMode.LETTER, "snap.split(s, '')"),
            (ast.SplitMode.WORD, "snap.split_words(s)"),
            (ast.SplitMode.CSV, "snap.split_csv(s)"),
            (ast.SplitMode.JSON, "snap.split_json(s)"),
        ],
    )
    def test_text_split_modes(self, lowerer, mode, expected):
        assert lowerer.lower_expr(ast.TextSplit(text=var("s"), mode=mode)).text == expected

    def test_custom_split(self, lowerer):
        node = ast.TextSplit(text=var("s"), mode=ast.SplitMode.CUSTOM, separator=text(","))
        assert lowerer.lower_expr(node).text == "snap.split(s, ',')"

    def test_unicode(self, lowerer):
        assert lowerer.lower_expr(ast.UnicodeToChar(value=num(65))).text == "snap.get_chr(65)"
        assert lowerer.lower_expr(ast.CharToUnicode(value=text("A"))).text == "snap.get_ord('A')"


class TestTypeQueries:
    def test_value_type(self, lowerer):
        node = ast.TypeQuery(value=var("v"), ty=ast.ValueType.NUMBER)
        assert lowerer.lower_expr(node).text == "snap.is_number(v)"

    @pytest.mark.parametrize("ty", sorted(ast.RING_VALUE_TYPES, key=lambda t: t.value))
    def test_ring_types_are_rejected(self, lowerer, ty):
        with pytest.raises(RingTypeQueryError):
            lowerer.lower_expr(ast.TypeQuery(value=var("v"), ty=ty))


class TestCalls:
    def test_rpc_with_keyword_args(self, lowerer):
        node = ast.CallRpc(service="Weather", rpc="temperature", args=[("latitude", num(1)), ("longitude", num(2))])
        result = lowerer.lower_expr(node)
        assert result.text == "nothrow(nb.call)('Weather', 'temperature', latitude = 1, longitude = 2)"
        assert result.wrap_type == WrapType.UNKNOWN

    def test_rpc_without_args(self, lowerer):
        node = ast.CallRpc(service="PublicRoles", rpc="getPublicRoleId")
        assert lowerer.lower_expr(node).text == "nothrow(nb.call)('PublicRoles', 'getPublicRoleId')"

    def test_rpc_error(self, lowerer):
        assert lowerer.lower_expr(ast.RpcError()).text == "(get_error() or '')"

    def test_global_function(self, lowerer):
        node = ast.CallFn(function=_fn("foo"), args=[num(1), var("a")])
        assert lowerer.lower_expr(node).text == "foo(snap.wrap(1), a)"

    def test_method(self, lowerer):
        node = ast.CallFn(function=_fn("bar", ast.FnLocation.METHOD))
        assert lowerer.lower_expr(node).text == "self.bar()"

    def test_upvars_are_rejected(self, lowerer):
        node = ast.CallFn(function=_fn("foo"), upvars=[var("a").var])
        with pytest.raises(UpvarsError):
            lowerer.lower_expr(node)

    def test_closure_call(self, lowerer):
        node = ast.CallClosure(closure=var("f"), args=[num(1)])
        assert lowerer.lower_expr(node).text == "f(snap.wrap(1))"

    def test_closure_call_on_other_entity_is_rejected(self, lowerer):
        node = ast.CallClosure(closure=var("f"), new_entity=ast.Entity(name="s", trans_name="s"))
        with pytest.raises(TellAskClosureError) as exc_info:
            lowerer.lower_expr(node)
        assert exc_info.value.node is node

    def test_clone(self, lowerer):
        node = ast.Clone(target=ast.Entity(name="Sprite", trans_name="Sprite"))
        assert lowerer.lower_expr(node).text == "Sprite.clone()"


class TestClosures:
    def test_reporter_ring(self, lowerer):
        body = ast.Add(values=make_list(var("x"), num(1)))
        node = ast.Closure(params=[vdef("x")], stmts=[ast.Return(value=body)])
        result = lowerer.lower_expr(node)
        assert result.text == "(lambda x: (x + snap.wrap(1)))"
        assert result.wrap_type == WrapType.WRAPPED

    def test_parameterless_ring(self, lowerer):
        node = ast.Closure(stmts=[ast.Return(value=num(5))])
        assert lowerer.lower_expr(node).text == "(lambda: snap.wrap(5))"

    def test_command_ring_is_rejected(self, lowerer):
        node = ast.Closure(stmts=[ast.Forward(distance=num(10))])
        with pytest.raises(CommandRingError):
            lowerer.lower_expr(node)


class TestEntityState:
    def test_stage_readings_go_through_the_stage(self, lowerer):
        assert lowerer.lower_expr(ast.MouseX()).text == "Stage.mouse_pos[0]"
        assert lowerer.lower_expr(ast.Longitude()).text == "Stage.gps_location[1]"
        assert lowerer.lower_expr(ast.StageWidth()).text == "Stage.width"
        assert lowerer.lower_expr(ast.Answer()).text == "Stage.last_answer"
        assert lowerer.lower_expr(ast.KeyDown(key="space")).text == "Stage.is_key_down('space')"
        assert lowerer.lower_expr(ast.ImageOfDrawings()).text == "Stage.get_drawings()"

    def test_sprite_readings(self, lowerer):
        assert lowerer.lower_expr(ast.XPos()).text == "self.x_pos"
        assert lowerer.lower_expr(ast.Size()).text == "(self.scale * 100)"
        assert lowerer.lower_expr(ast.IsVisible()).wrap_type == WrapType.WRAPPED
        assert lowerer.lower_expr(ast.IsTouchingEntity(entity=ast.This())).text == "self.is_touching(self)"

    @pytest.mark.parametrize("worn, number", [("cat", 1), ("fox", 3), (None, 0)])
    def test_costume_number_is_one_based(self, lowerer, worn, number):
        sprite = SimpleNamespace(costumes=dict(COSTUMES), costume=worn)
        assert eval(lowerer.lower_expr(ast.CostumeNumber()).text, {"self": sprite}) == number


class TestKeywordArguments:
    def test_identifier_and_other_names(self, lowerer):
        kwargs = [("x", num(1)), ("bad name", num(2))]
        assert lowerer.lower_kwargs(kwargs, ", ") == ", x = 1, **{ 'bad name': 2 }"

    def test_identifiers_only(self, lowerer):
        assert lowerer.lower_kwargs([("a", num(1)), ("_b2", num(2))], ", ") == ", a = 1, _b2 = 2"

    def test_other_names_only(self, lowerer):
        assert lowerer.lower_kwargs([("2x", num(1)), ("it's", num(2))], "") == "**{ '2x': 1, 'it\\'s': 2 }"

    def test_no_arguments_drops_prefix(self, lowerer):
        assert lowerer.lower_kwargs([], ", ") == ""

    def test_wrapped_values(self, lowerer):
        assert lowerer.lower_kwargs([("a", num(1))], "", wrap_values=True) == "a = snap.wrap(1)"


class TestDispatchCoverage:
    def test_every_expression_variant_has_a_handler(self, lowerer):
        missing = [cls.__name__ for cls in ast.variants(ast.Expr) if cls not in lowerer._EXPR_DISPATCH]
        assert missing == []

    def test_missing_handler_raises_with_node(self, lowerer):
        del lowerer._EXPR_DISPATCH[ast.Timer]
        node = ast.Timer()
        with pytest.raises(UnsupportedExprError) as exc_info:
            lowerer.lower_expr(node)
        assert exc_info.value.node is node
        assert exc_info.value.kind == "UnsupportedExpr"
