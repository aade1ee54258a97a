"""Shared AST builders for the lowering and assembler tests."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from nb2pb import ast
from nb2pb.lowering import ScriptLowerer

STAGE = "Stage"

# costume map as an emitted entity declares it: name -> costume object
COSTUMES = {"a": "cat", "b": "dog", "c": "fox"}


@pytest.fixture
def lowerer() -> ScriptLowerer:
    return ScriptLowerer(STAGE)


def num(value: float) -> ast.Literal:
    return ast.Literal(value=ast.NumberValue(value=value))


def text(value: str) -> ast.Literal:
    return ast.Literal(value=ast.StringValue(value=value))


def boolean(value: bool) -> ast.Literal:
    return ast.Literal(value=ast.BoolValue(value=value))


def ref(name: str, location: ast.VarLocation = ast.VarLocation.LOCAL) -> ast.VariableRef:
    return ast.VariableRef(name=name, trans_name=name, location=location)


def var(name: str, location: ast.VarLocation = ast.VarLocation.LOCAL) -> ast.Variable:
    return ast.Variable(var=ref(name, location))


def vdef(name: str) -> ast.VariableDef:
    return ast.VariableDef(name=name, trans_name=name)


def literal_list(*values: ast.Value) -> ast.Literal:
    return ast.Literal(value=ast.ListValue(values=list(values)))


def make_list(*items: ast.Expr) -> ast.MakeList:
    return ast.MakeList(values=list(items))


def png_bytes(width: int, height: int) -> bytes:
    """A real PNG of the given size, encoded by Pillow."""
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), (255, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()


def entity(name: str, **kwargs) -> ast.EntityDef:
    return ast.EntityDef(name=name, trans_name=name, **kwargs)


def role(*entities: ast.EntityDef, **kwargs) -> ast.Role:
    return ast.Role(name=kwargs.pop("name", "myRole"), entities=list(entities), **kwargs)
