"""Project assembler — walks roles and entities into the JSON envelope."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from . import ast, constants
from .errors import InvariantViolation, NoRolesError
from .images import encode_costume
from .lowering import ScriptLowerer, wrap
from .lowering._base import fmt_number, indent

logger = logging.getLogger(__name__)


@dataclass
class EntityRecord:
    """Per-entity accumulator used while a role is being translated."""

    name: str
    scripts: list[str] = field(default_factory=list)
    fields: list[tuple[str, str]] = field(default_factory=list)
    funcs: list[ast.Function] = field(default_factory=list)
    costumes: list[tuple[str, ast.Value]] = field(default_factory=list)

    active_costume: Optional[int] = None
    visible: bool = True
    color: tuple[int, int, int, int] = (80, 80, 80, 255)
    pos: tuple[float, float] = (0.0, 0.0)
    heading: float = 90.0
    scale: float = 1.0

    @classmethod
    def from_entity(cls, entity: ast.EntityDef) -> EntityRecord:
        return cls(
            name=entity.trans_name,
            funcs=list(entity.funcs),
            active_costume=entity.active_costume,
            visible=entity.visible,
            color=entity.color,
            pos=entity.pos,
            heading=entity.heading,
            scale=entity.scale,
        )


@dataclass
class RoleRecord:
    name: str
    entities: list[EntityRecord] = field(default_factory=list)


def _params(names: list[str]) -> str:
    return ", ".join(names)


class ProjectAssembler:
    """Translates a resolved :class:`ast.Project` into envelope JSON.

    Each role is lowered independently; the first entity of a role is its
    stage and every lowerer for that role reads stage state through the
    stage's translated name.
    """

    def __init__(self, sprite_editor_type: str = constants.EDITOR_SPRITE):
        self.sprite_editor_type = sprite_editor_type

    def assemble(self, project: ast.Project) -> tuple[str, str]:
        if not project.roles:
            raise NoRolesError(f"project {project.name!r} has no roles")
        roles = [self.assemble_role(role) for role in project.roles]
        content = json.dumps({"roles": roles}, separators=(",", ":"))
        logger.info("Assembled project %r (%d role(s), %d bytes)", project.name, len(roles), len(content))
        return project.name, content

    def assemble_role(self, role: ast.Role) -> dict[str, Any]:
        logger.info("Translating role %r (%d entities)", role.name, len(role.entities))
        if not role.entities:
            raise InvariantViolation(f"role {role.name!r} has no stage")

        record = RoleRecord(name=role.name)
        stage: Optional[EntityRecord] = None
        lowerer: Optional[ScriptLowerer] = None
        for entity in role.entities:
            entity_record = EntityRecord.from_entity(entity)
            if stage is None:
                stage = copy.deepcopy(entity_record)
                lowerer = ScriptLowerer(stage.name)
            self._record_entity(entity, entity_record, lowerer)
            record.entities.append(entity_record)

        editors = [
            {
                "type": constants.EDITOR_GLOBAL,
                "name": constants.GLOBAL_EDITOR_NAME,
                "value": self.global_editor(role, lowerer),
            }
        ]
        for i, entity_record in enumerate(record.entities):
            editors.append(
                {
                    "type": constants.EDITOR_STAGE if i == 0 else self.sprite_editor_type,
                    "name": entity_record.name,
                    "value": self.entity_editor(entity_record, i == 0, lowerer),
                }
            )

        return {
            "name": record.name,
            "stage_size": list(role.stage_size) if role.stage_size is not None else None,
            "block_sources": list(constants.BLOCK_SOURCES),
            "blocks": [],
            "imports": list(constants.RUNTIME_IMPORTS),
            "editors": editors,
            "images": self.images(record),
        }

    # ── per-entity accumulation ──────────────────────────────────

    def _record_entity(
        self,
        entity: ast.EntityDef,
        record: EntityRecord,
        lowerer: ScriptLowerer,
    ) -> None:
        logger.debug(
            "Recording entity %r: %d costume(s), %d field(s), %d script(s)",
            entity.trans_name,
            len(entity.costumes),
            len(entity.fields),
            len(entity.scripts),
        )
        for costume in entity.costumes:
            record.costumes.append((costume.trans_name, costume.init))
        for var in entity.fields:
            record.fields.append((var.var.trans_name, wrap(lowerer.lower_value(var.init))))
        for script in entity.scripts:
            code = lowerer.lower_script(script, len(record.scripts) + 1)
            if code is not None:
                record.scripts.append(code)

    # ── editors ──────────────────────────────────────────────────

    def global_editor(self, role: ast.Role, lowerer: ScriptLowerer) -> str:
        content = f"from {constants.RUNTIME_MODULE} import {constants.RUNTIME_NAMESPACE}\n\n"
        for var in role.globals:
            content += f"{var.var.trans_name} = {wrap(lowerer.lower_value(var.init))}\n"
        if role.globals:
            content += "\n"
        for func in role.funcs:
            params = _params([p.trans_name for p in func.params])
            body = indent(lowerer.lower_stmts(func.stmts))
            content += f"def {func.trans_name}({params}):\n{body}\n\n"
        return content

    def entity_editor(self, record: EntityRecord, is_stage: bool, lowerer: ScriptLowerer) -> str:
        content = ""
        if is_stage:
            content += f"{constants.STAGE_LAST_ANSWER_FIELD} = snap.wrap('')\n\n"

        if record.costumes:
            content += "costumes = {\n"
            for costume, _ in record.costumes:
                key = constants.COSTUME_KEY_TEMPLATE.format(entity=record.name, costume=costume)
                content += f"{constants.INDENT}'{costume}': images.{key},\n"
            content += "}\n\n"

        for name, value in record.fields:
            content += f"{name} = {value}\n"
        if record.fields:
            content += "\n"

        content += "def __init__(self):\n"
        if not is_stage:
            r, g, b, _ = record.color
            content += indent(
                f"self.pos = ({fmt_number(record.pos[0])}, {fmt_number(record.pos[1])})\n"
                f"self.heading = {fmt_number(record.heading)}\n"
                f"self.pen_color = ({r}, {g}, {b})\n"
                f"self.scale = {fmt_number(record.scale)}\n"
                f"self.visible = {record.visible}"
            ) + "\n"
        content += f"{constants.INDENT}self.costume = {self._active_costume(record)}\n"
        content += "\n"

        for func in record.funcs:
            params = _params(["self"] + [p.trans_name for p in func.params])
            body = indent(lowerer.lower_stmts(func.stmts))
            content += f"def {func.trans_name}({params}):\n{body}\n\n"

        for script in record.scripts:
            content += script + "\n\n"
        return content

    def _active_costume(self, record: EntityRecord) -> str:
        if record.active_costume is None:
            return "None"
        if not 0 <= record.active_costume < len(record.costumes):
            raise InvariantViolation(
                f"entity {record.name!r} wears costume {record.active_costume} of {len(record.costumes)}"
            )
        return f"self.costumes['{record.costumes[record.active_costume][0]}']"

    # ── images ───────────────────────────────────────────────────

    def images(self, record: RoleRecord) -> dict[str, Any]:
        images: dict[str, Any] = {}
        for entity in record.entities:
            for costume, payload in entity.costumes:
                key = constants.COSTUME_KEY_TEMPLATE.format(entity=entity.name, costume=costume)
                images[key] = encode_costume(payload)
        return images


def translate_project(project: ast.Project, sprite_editor_type: str = constants.EDITOR_SPRITE) -> tuple[str, str]:
    """Assemble *project* into ``(project_name, envelope_json)``."""
    return ProjectAssembler(sprite_editor_type).assemble(project)
