from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import json
import time
from typing import List, Optional

from ..util.paths import user_dir
from .models import Character

SAVE_ROOT = user_dir() / "saves"
SAVE_FORMAT_VERSION = 1

@dataclass
class SaveMeta:
    slot_id: str
    character_id: str
    character_name: str
    format_version: int
    last_played_ts: float

def _slot_dir(slot_id: str, root: Path) -> Path:
    return root / slot_id

def list_saves(root: Path = SAVE_ROOT) -> List[SaveMeta]:
    root.mkdir(parents=True, exist_ok=True)
    metas: List[SaveMeta] = []
    for slot in root.iterdir():
        if not slot.is_dir():
            continue
        meta_path = slot / "meta.json"
        if not meta_path.exists():
            continue
        data = json.loads(meta_path.read_text(encoding="utf-8"))
        metas.append(SaveMeta(
            slot_id=slot.name,
            character_id=data.get("character_id", "unknown"),
            character_name=data.get("character_name", ""),
            format_version=data.get("format_version", 0),
            last_played_ts=data.get("last_played_ts", 0.0),
        ))
    metas.sort(key=lambda m: m.last_played_ts, reverse=True)
    return metas

def latest_save(root: Path = SAVE_ROOT) -> Optional[SaveMeta]:
    saves = list_saves(root)
    return saves[0] if saves else None

def save_character(slot_id: str, character: Character, root: Path = SAVE_ROOT) -> None:
    sd = _slot_dir(slot_id, root)
    sd.mkdir(parents=True, exist_ok=True)
    (sd / "save.json").write_text(character.model_dump_json(indent=2), encoding="utf-8")
    meta = {
        "character_id": character.id,
        "character_name": character.name,
        "format_version": SAVE_FORMAT_VERSION,
        "last_played_ts": time.time(),
    }
    (sd / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

def load_character(slot_id: str, root: Path = SAVE_ROOT) -> Character:
    sd = _slot_dir(slot_id, root)
    return Character.model_validate_json((sd / "save.json").read_text(encoding="utf-8"))

def delete_save(slot_id: str, root: Path = SAVE_ROOT) -> None:
    sd = _slot_dir(slot_id, root)
    if not sd.exists():
        return
    for p in sd.iterdir():
        if p.is_file():
            p.unlink()
    sd.rmdir()
