"""Parser configuration and symbol tables (pure data, no parsing logic)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from xml.etree.ElementTree import Element

from . import ast
from .naming import NameAllocator


@dataclass(frozen=True)
class ParserConfig:
    """Groups parser options.

    ``rpc_metadata`` maps service name → RPC name → ordered argument names.
    RPC blocks only carry positional slots, so keyword names come from here.
    """

    rpc_metadata: dict[str, dict[str, tuple[str, ...]]] = field(default_factory=dict)

    def rpc_args(self, service: str, rpc: str) -> Optional[tuple[str, ...]]:
        return self.rpc_metadata.get(service, {}).get(rpc)

    @classmethod
    def from_rpc_metadata_file(cls, path: Path) -> ParserConfig:
        """Load ``{"Service": {"rpc": ["arg", ...]}}`` JSON."""
        raw = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            rpc_metadata={
                service: {rpc: tuple(args) for rpc, args in rpcs.items()}
                for service, rpcs in raw.items()
            }
        )


@dataclass
class BlockSignature:
    """A custom block definition, registered before any body is parsed."""

    name: str
    trans_name: str
    location: ast.FnLocation
    param_names: list[str]
    upvar_slots: frozenset[int]
    definition: Element

    @property
    def ref(self) -> ast.FnRef:
        return ast.FnRef(name=self.name, trans_name=self.trans_name, location=self.location)


@dataclass
class RoleContext:
    """Role-wide symbols: globals, global blocks, entities, message types."""

    names: NameAllocator
    globals: dict[str, ast.VariableDef] = field(default_factory=dict)
    functions: dict[str, BlockSignature] = field(default_factory=dict)
    entities: dict[str, ast.Entity] = field(default_factory=dict)
    message_types: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class EntityContext:
    """Symbols scoped to one stage or sprite."""

    name: str
    trans_name: str
    names: NameAllocator
    fields: dict[str, ast.VariableDef] = field(default_factory=dict)
    methods: dict[str, BlockSignature] = field(default_factory=dict)
