from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Literal, Optional, Union
from typing_extensions import Annotated
from uuid import uuid4
from pydantic import BaseModel, Field

from .dice import DiceRollResult

def _now() -> datetime:
    return datetime.now(timezone.utc)

class ResourceSpend(BaseModel):
    resource_id: str
    resource_name: str
    amount: int

class _EntryBase(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=_now)
    description: str = ""

class SpellCastEntry(_EntryBase):
    type: Literal["spell"] = "spell"
    spell_name: str
    school: Optional[str] = None
    tier: int
    action_cost: int = 0
    resource: Optional[ResourceSpend] = None

class DiceRollEntry(_EntryBase):
    type: Literal["roll"] = "roll"
    label: str
    formula: str
    total: int
    advantage_level: int = 0
    num_criticals: int = 0
    is_fumble: bool = False

class EffectEntry(_EntryBase):
    type: Literal["effect"] = "effect"
    source: str
    effect_type: str
    value: Optional[int] = None
    success: bool = True

LogEntry = Annotated[Union[SpellCastEntry, DiceRollEntry, EffectEntry], Field(discriminator="type")]

class ActivityLog:
    def __init__(self, max_entries: int = 500) -> None:
        self.entries: List[LogEntry] = []
        self.max_entries = max_entries

    def create_spell_cast_entry(self, spell_name: str, school: Optional[str], tier: int,
                                action_cost: int, resource: Optional[ResourceSpend] = None) -> SpellCastEntry:
        desc = f"Cast {spell_name}" + (f" at tier {tier}" if tier > 0 else " (cantrip)")
        if resource:
            desc += f" using {resource.amount} {resource.resource_name}"
        return SpellCastEntry(spell_name=spell_name, school=school, tier=tier, action_cost=action_cost,
                              resource=resource, description=desc)

    def create_dice_roll_entry(self, label: str, roll: DiceRollResult, advantage_level: int = 0) -> DiceRollEntry:
        formula = roll.substituted_formula or roll.formula
        desc = f"{label}: {formula} = {roll.total}"
        if roll.num_criticals:
            desc += f" ({roll.num_criticals} critical)"
        if roll.is_fumble:
            desc += " (fumble)"
        return DiceRollEntry(label=label, formula=formula, total=roll.total, advantage_level=advantage_level,
                             num_criticals=roll.num_criticals, is_fumble=roll.is_fumble, description=desc)

    def create_effect_entry(self, source: str, effect_type: str, value: Optional[int], success: bool,
                            description: str) -> EffectEntry:
        return EffectEntry(source=source, effect_type=effect_type, value=value, success=success, description=description)

    def add_log_entry(self, entry: LogEntry) -> None:
        self.entries.append(entry)
        if len(self.entries) > self.max_entries:
            del self.entries[: len(self.entries) - self.max_entries]

    def recent(self, n: int = 10) -> List[LogEntry]:
        return list(self.entries[-n:])
