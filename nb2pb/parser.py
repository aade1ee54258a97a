"""Project parsing layer — NetsBlox room/project XML → resolved AST."""

from __future__ import annotations

import base64
import binascii
import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Optional
from xml.etree.ElementTree import Element

from . import ast
from .blocks import ScriptParser, block_key, block_label, block_param_names, inputs, parse_color
from .errors import ParseError
from .naming import ENTITY_RESERVED_NAMES, RESERVED_NAMES, NameAllocator
from .parser_types import BlockSignature, EntityContext, ParserConfig, RoleContext

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = "data:"
_BASE64_MARKER = ";base64,"
_UPVAR_INPUT_TYPE = "%upvar"


class ProjectParser(ABC):
    """Abstract front-end producing a resolved :class:`ast.Project`."""

    @abstractmethod
    def parse(self, source: str) -> ast.Project: ...


class XmlProjectParser(ProjectParser):
    """Parses ``<room>``, ``<role>`` and bare ``<project>`` documents."""

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()

    def parse(self, source: str) -> ast.Project:
        try:
            root = ET.fromstring(source)
        except ET.ParseError as exc:
            raise ParseError(f"malformed project XML: {exc}") from exc

        if root.tag == "room":
            name = root.get("name", "untitled")
            roles = [self._parse_role_element(el) for el in root.findall("role")]
        elif root.tag == "role":
            name = root.get("name", "untitled")
            roles = [self._parse_role_element(root)]
        elif root.tag == "project":
            name = root.get("name", "untitled")
            roles = [self.parse_role(root, None, name)]
        else:
            raise ParseError(f"expected <room>, <role> or <project>, found <{root.tag}>")

        logger.info("Parsed project %r (%d role(s))", name, len(roles))
        return ast.Project(name=name, roles=roles)

    def _parse_role_element(self, role_el: Element) -> ast.Role:
        project = role_el.find("project")
        if project is None:
            raise ParseError(f"role {role_el.get('name')!r} has no project")
        return self.parse_role(project, role_el.find("media"), role_el.get("name") or project.get("name", "untitled"))

    # ── roles ────────────────────────────────────────────────────

    def parse_role(self, project: Element, media: Optional[Element], name: str) -> ast.Role:
        stage = project.find("stage")
        if stage is None:
            raise ParseError(f"role {name!r} has no stage")
        sprites = stage.findall("sprites/sprite")
        entity_els = [stage, *sprites]
        logger.debug("Parsing role %r: stage + %d sprite(s)", name, len(sprites))

        ctx = RoleContext(names=NameAllocator(RESERVED_NAMES))
        entity_ctxs: list[EntityContext] = []
        for el in entity_els:
            entity_name = el.get("name") or ("Stage" if el is stage else "Sprite")
            if entity_name in ctx.entities:
                raise ParseError(f"duplicate sprite name {entity_name!r}")
            trans_name = ctx.names.fresh(entity_name)
            ctx.entities[entity_name] = ast.Entity(name=entity_name, trans_name=trans_name)
            entity_ctxs.append(
                EntityContext(name=entity_name, trans_name=trans_name, names=NameAllocator(ENTITY_RESERVED_NAMES))
            )

        lists = index_lists(project)
        globals_ = self._parse_variables(project.find("variables"), ctx.names, lists)
        for var, _ in globals_:
            ctx.globals[var.name] = var
        self._register_blocks(project.find("blocks"), ctx.names, ast.FnLocation.GLOBAL, ctx.functions)
        ctx.message_types = self._parse_message_types(project.find("messageTypes"))

        media_by_id = self._index_media(media, project)

        entity_fields: list[list[tuple[ast.VariableDef, ast.Value]]] = []
        for el, entity_ctx in zip(entity_els, entity_ctxs):
            fields = self._parse_variables(el.find("variables"), entity_ctx.names, lists)
            for var, _ in fields:
                entity_ctx.fields[var.name] = var
            entity_fields.append(fields)
            self._register_blocks(el.find("blocks"), entity_ctx.names, ast.FnLocation.METHOD, entity_ctx.methods)

        global_scope = EntityContext(name="", trans_name="", names=NameAllocator(ENTITY_RESERVED_NAMES))
        global_parser = ScriptParser(ctx, global_scope, self.config)
        funcs = [global_parser.parse_function(sig) for sig in ctx.functions.values()]

        entities = [
            self.parse_entity(el, entity_ctx, ctx, fields, media_by_id, is_stage=el is stage)
            for el, entity_ctx, fields in zip(entity_els, entity_ctxs, entity_fields)
        ]

        return ast.Role(
            name=name,
            stage_size=self._stage_size(stage),
            entities=entities,
            globals=[ast.VarDefInit(var=var, init=init) for var, init in globals_],
            funcs=funcs,
        )

    def _stage_size(self, stage: Element) -> Optional[tuple[int, int]]:
        width, height = stage.get("width"), stage.get("height")
        if width is None or height is None:
            return None
        return int(_number_attr(stage, "width", 0)), int(_number_attr(stage, "height", 0))

    def _parse_variables(
        self, variables: Optional[Element], names: NameAllocator, lists: dict[str, Element]
    ) -> list[tuple[ast.VariableDef, ast.Value]]:
        if variables is None:
            return []
        parsed = []
        for el in variables.findall("variable"):
            var_name = el.get("name")
            if not var_name:
                raise ParseError("variable without a name")
            var = ast.VariableDef(name=var_name, trans_name=names.fresh(var_name))
            children = list(el)
            init = parse_value(children[0], lists) if children else ast.NumberValue(value=0)
            parsed.append((var, init))
        return parsed

    def _register_blocks(
        self,
        blocks: Optional[Element],
        names: NameAllocator,
        location: ast.FnLocation,
        into: dict[str, BlockSignature],
    ) -> None:
        if blocks is None:
            return
        for definition in blocks.findall("block-definition"):
            spec = definition.get("s", "")
            label = block_label(spec)
            input_types = [el.get("type", "") for el in definition.findall("inputs/input")]
            into[block_key(spec)] = BlockSignature(
                name=label,
                trans_name=names.fresh(label),
                location=location,
                param_names=block_param_names(spec),
                upvar_slots=frozenset(i for i, ty in enumerate(input_types) if ty == _UPVAR_INPUT_TYPE),
                definition=definition,
            )

    def _parse_message_types(self, message_types: Optional[Element]) -> dict[str, list[str]]:
        if message_types is None:
            return {}
        parsed: dict[str, list[str]] = {}
        for el in message_types.findall("messageType"):
            msg_name = el.findtext("name")
            if msg_name is None:
                raise ParseError("message type without a name")
            parsed[msg_name] = [field.text or "" for field in el.findall("fields/field")]
        return parsed

    def _index_media(self, media: Optional[Element], project: Element) -> dict[str, Element]:
        """Costume elements addressable by ``mediaID`` or XML ``id``."""
        index: dict[str, Element] = {}
        if media is not None:
            for el in media:
                media_id = el.get("mediaID")
                if media_id is not None:
                    index[media_id] = el
        for el in project.iter("costume"):
            el_id = el.get("id")
            if el_id is not None:
                index.setdefault(el_id, el)
        return index

    # ── entities ─────────────────────────────────────────────────

    def parse_entity(
        self,
        el: Element,
        entity: EntityContext,
        role: RoleContext,
        fields: list[tuple[ast.VariableDef, ast.Value]],
        media_by_id: dict[str, Element],
        is_stage: bool,
    ) -> ast.EntityDef:
        logger.debug("Parsing entity %r", entity.name)
        costumes = self._parse_costumes(el.find("costumes"), entity, media_by_id)
        costume_idx = int(_number_attr(el, "costume", 0))
        if not 0 <= costume_idx <= len(costumes):
            raise ParseError(f"{entity.name!r} wears costume {costume_idx} of {len(costumes)}")

        scripts_parser = ScriptParser(role, entity, self.config)
        funcs = [scripts_parser.parse_function(sig) for sig in entity.methods.values()]
        scripts = [scripts_parser.parse_script(script) for script in el.findall("scripts/script")]

        attrs = {}
        if not is_stage:
            attrs = {
                "pos": (_number_attr(el, "x", 0.0), _number_attr(el, "y", 0.0)),
                "heading": _number_attr(el, "heading", 90.0),
                "scale": _number_attr(el, "scale", 1.0),
                "visible": el.get("hidden", "false") != "true",
            }
            if el.get("color"):
                attrs["color"] = parse_color(el.get("color", ""))

        return ast.EntityDef(
            name=entity.name,
            trans_name=entity.trans_name,
            active_costume=costume_idx - 1 if costume_idx > 0 else None,
            costumes=costumes,
            fields=[ast.VarDefInit(var=var, init=init) for var, init in fields],
            funcs=funcs,
            scripts=scripts,
            **attrs,
        )

    def _parse_costumes(
        self,
        costumes: Optional[Element],
        entity: EntityContext,
        media_by_id: dict[str, Element],
    ) -> list[ast.Costume]:
        if costumes is None:
            return []
        names = NameAllocator(frozenset())
        parsed = []
        for item in costumes.findall("list/item"):
            children = list(item)
            if not children:
                continue
            el = children[0]
            if el.tag == "ref":
                key = el.get("mediaID") or el.get("id") or ""
                target = media_by_id.get(key)
                if target is None:
                    raise ParseError(f"{entity.name!r} references unknown costume {key!r}")
                el = target
            if el.tag != "costume":
                raise ParseError(f"unexpected <{el.tag}> in the costume list of {entity.name!r}")
            costume_name = el.get("name", "costume")
            parsed.append(
                ast.Costume(name=costume_name, trans_name=names.fresh(costume_name), init=parse_costume_image(el))
            )
        return parsed


# ── values ───────────────────────────────────────────────────────


def index_lists(project: Element) -> dict[str, Element]:
    """Every ``<list id="...">`` in *project*, the targets of ``<ref id="..."/>``."""
    return {el.get("id", ""): el for el in project.iter("list") if el.get("id")}


def parse_value(
    el: Element, lists: Optional[dict[str, Element]] = None, resolving: frozenset[str] = frozenset()
) -> ast.Value:
    """A literal initialiser: ``<l>``, ``<bool>``, ``<list>`` or ``<ref>``.

    ``<ref id="n"/>`` points back at a list serialised earlier in the
    document; it is resolved to a copy of that list's contents, so the
    result never holds a :class:`ast.RefValue`.
    """
    if el.tag == "l":
        return ast.StringValue(value=el.text or "")
    if el.tag == "bool":
        return ast.BoolValue(value=(el.text or "").strip() == "true")
    if el.tag == "list":
        if el.get("id"):
            resolving = resolving | {el.get("id", "")}
        items = el.findall("item")
        if not items and el.get("struct") == "atomic":
            # flat lists serialise as comma-separated text
            text = el.text or ""
            return ast.ListValue(values=[ast.StringValue(value=v) for v in text.split(",")] if text else [])
        return ast.ListValue(values=[_list_item_value(item, lists, resolving) for item in items])
    if el.tag == "ref":
        ref_id = el.get("id", "")
        if ref_id in resolving:
            raise ParseError(f"list {ref_id!r} contains itself")
        target = (lists or {}).get(ref_id)
        if target is None:
            raise ParseError(f"reference to unknown list {ref_id!r}")
        return parse_value(target, lists, resolving)
    raise ParseError(f"unsupported variable value <{el.tag}>")


def _list_item_value(item: Element, lists: Optional[dict[str, Element]], resolving: frozenset[str]) -> ast.Value:
    children = inputs(item)
    if not children:
        return ast.StringValue(value=item.text or "")
    return parse_value(children[0], lists, resolving)


def parse_costume_image(el: Element) -> ast.Value:
    """``data:`` base64 images become image records; anything else is an asset reference."""
    image = el.get("image", "")
    name = el.get("name", "")
    if not image.startswith(_DATA_URL_PREFIX) or _BASE64_MARKER not in image:
        return ast.StringValue(value=image)
    try:
        content = base64.b64decode(image.split(_BASE64_MARKER, 1)[1], validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ParseError(f"costume {name!r} has malformed image data") from exc
    center = None
    if el.get("center-x") is not None and el.get("center-y") is not None:
        center = (_number_attr(el, "center-x", 0.0), _number_attr(el, "center-y", 0.0))
    return ast.ImageValue(content=content, center=center, name=name)


def _number_attr(el: Element, attr: str, default: float) -> float:
    raw = el.get(attr)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ParseError(f"<{el.tag}> has a non-numeric {attr}={raw!r}") from exc
