from __future__ import annotations
from pathlib import Path
from pydantic import BaseModel
from typing import Literal, Optional

from ..util.paths import user_dir

SETTINGS_PATH = user_dir() / "settings.json"

class Settings(BaseModel):
    rng_seed_mode: Literal["fixed", "random"] = "random"
    rng_seed: int = 1337  # used when rng_seed_mode == "fixed"
    mana_resource_id: str = "mana"
    slot_resource_id: str = "pilfered_power"
    default_content_dir: Optional[str] = None
    save_root: Optional[str] = None
    activity_log_size: int = 500

def load_settings(path: Path = SETTINGS_PATH) -> Settings:
    if path.exists():
        return Settings.model_validate_json(path.read_text(encoding="utf-8"))
    path.parent.mkdir(parents=True, exist_ok=True)
    s = Settings()
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
    return s

def save_settings(s: Settings, path: Path = SETTINGS_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(s.model_dump_json(indent=2), encoding="utf-8")
