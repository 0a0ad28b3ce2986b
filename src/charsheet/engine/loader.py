from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Tuple
import json
import yaml
from pydantic import TypeAdapter
from .schema_models import AbilityDefinition, DicePoolDefinition, ResourceDefinition

AbilityAdapter = TypeAdapter(AbilityDefinition)
ResourceAdapter = TypeAdapter(ResourceDefinition)
DicePoolAdapter = TypeAdapter(DicePoolDefinition)

def _load_file(path: Path) -> dict | list:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in [".yaml", ".yml"]:
        return yaml.safe_load(text) or {}
    return json.loads(text)

def _iter_files(root: Path, exts: Tuple[str, ...] = (".json", ".yaml", ".yml")) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in exts)

def _iter_records(path: Path) -> Iterable[dict]:
    # a file holds either one definition or a list of them
    data = _load_file(path)
    if isinstance(data, list):
        yield from data
    elif data:
        yield data

@dataclass
class ContentIndex:
    abilities: Dict[str, AbilityDefinition] = field(default_factory=dict)
    resources: Dict[str, ResourceDefinition] = field(default_factory=dict)
    dice_pools: Dict[str, DicePoolDefinition] = field(default_factory=dict)

    def get_ability(self, aid: str) -> AbilityDefinition:
        return self.abilities[aid]

    def get_resource(self, rid: str) -> ResourceDefinition:
        return self.resources[rid]

    def get_dice_pool(self, pid: str) -> DicePoolDefinition:
        return self.dice_pools[pid]

def _load_dir(root: Path, adapter: TypeAdapter, label: str) -> dict:
    out: dict = {}
    for fp in _iter_files(root):
        for rec in _iter_records(fp):
            obj = adapter.validate_python(rec)
            if obj.id in out:
                raise RuntimeError(f"Duplicate {label} id {obj.id} in {fp}")
            out[obj.id] = obj
    return out

def load_content(base_dir: Path) -> ContentIndex:
    return ContentIndex(
        abilities=_load_dir(base_dir / "abilities", AbilityAdapter, "ability"),
        resources=_load_dir(base_dir / "resources", ResourceAdapter, "resource"),
        dice_pools=_load_dir(base_dir / "dice_pools", DicePoolAdapter, "dice pool"),
    )
