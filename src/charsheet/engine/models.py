from __future__ import annotations
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, computed_field, model_validator

from .schema_models import AbilityDefinition, DicePoolDefinition, ResourceDefinition, MAX_TIER

class Attributes(BaseModel):
    strength: int = 0
    dexterity: int = 0
    intelligence: int = 0
    will: int = 0

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump()

class HitPoints(BaseModel):
    max: int = 10
    current: int = 10
    temporary: int = 0

    @model_validator(mode="after")
    def _validate(self):
        if self.max < 0 or self.current < 0 or self.temporary < 0:
            raise ValueError("hit points must be non-negative")
        return self

class ActionTracker(BaseModel):
    current: int = 3
    base: int = 3
    bonus: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.base + self.bonus

class ResourceInstance(BaseModel):
    definition: ResourceDefinition
    current: int = 0
    sort_order: int = 0

class DicePoolInstance(BaseModel):
    definition: DicePoolDefinition
    current_dice: List[int] = Field(default_factory=list)
    sort_order: int = 0

class Character(BaseModel):
    id: str
    name: str
    level: int = 1
    class_id: Optional[str] = None
    attributes: Attributes = Field(default_factory=Attributes)
    hit_points: HitPoints = Field(default_factory=HitPoints)
    action_tracker: ActionTracker = Field(default_factory=ActionTracker)
    in_encounter: bool = False
    tier_access: int = 0
    resources: List[ResourceInstance] = Field(default_factory=list)
    dice_pools: List[DicePoolInstance] = Field(default_factory=list)
    abilities: List[AbilityDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate(self):
        if not 0 <= self.tier_access <= MAX_TIER:
            raise ValueError(f"tier_access must be within 0..{MAX_TIER}")
        ids = [r.definition.id for r in self.resources]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate resource ids on character")
        return self

    def get_resource(self, resource_id: str) -> Optional[ResourceInstance]:
        for rs in self.resources:
            if rs.definition.id == resource_id:
                return rs
        return None

    def get_dice_pool(self, pool_id: str) -> Optional[DicePoolInstance]:
        for pool in self.dice_pools:
            if pool.definition.id == pool_id:
                return pool
        return None

    def get_ability(self, ability_id: str) -> Optional[AbilityDefinition]:
        return next((a for a in self.abilities if a.id == ability_id), None)
