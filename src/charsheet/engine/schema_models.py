from __future__ import annotations
from typing import List, Literal, Optional, Union
from typing_extensions import Annotated
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import Field as PField

IDStr = Annotated[str, PField(pattern=r"^[A-Za-z0-9_.:-]+$")]
Expr = Union[str, int]  # dice formula or flat integer

AbilityKind = Literal["spell", "action"]
ResetCondition = Literal["safe_rest", "encounter_end", "turn_end", "never", "manual"]
ResetType = Literal["to_max", "to_zero", "to_default"]
DieSize = Literal[4, 6, 8, 10, 12, 20]
RiskLevel = Literal["none", "low", "medium", "high"]

MAX_TIER = 9

# -----------------------------
# Bounds (fixed value or formula over attributes)

class FixedBound(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["fixed"] = "fixed"
    value: int

class FormulaBound(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["formula"] = "formula"
    expression: str

    @model_validator(mode="after")
    def _validate(self):
        if not self.expression.strip():
            raise ValueError("formula bound requires a non-empty expression")
        return self

Bound = Annotated[Union[FixedBound, FormulaBound], Field(discriminator="type")]

# -----------------------------
# Resource / dice pool definitions

class ResourceDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: IDStr
    name: str
    description: str = ""
    min_value: Bound = Field(default_factory=lambda: FixedBound(value=0))
    max_value: Bound
    reset_condition: ResetCondition = "safe_rest"
    reset_type: ResetType = "to_max"
    reset_value: Optional[int] = None

    @model_validator(mode="after")
    def _validate(self):
        if isinstance(self.min_value, FixedBound) and isinstance(self.max_value, FixedBound):
            if self.max_value.value < self.min_value.value:
                raise ValueError("max_value must be >= min_value")
        if self.reset_type == "to_default" and self.reset_value is None:
            raise ValueError("reset_type 'to_default' requires reset_value")
        return self

class DicePoolDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: IDStr
    name: str
    dice_size: DieSize = 6
    max_dice: Bound
    reset_condition: ResetCondition = "encounter_end"
    reset_type: Literal["to_zero", "to_max"] = "to_zero"

# -----------------------------
# Resource costs

class FixedResourceCost(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["fixed"] = "fixed"
    resource_id: str
    amount: int = 1

    @model_validator(mode="after")
    def _validate(self):
        if self.amount < 0:
            raise ValueError("resource_cost.amount must be >= 0")
        return self

class VariableResourceCost(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["variable"] = "variable"
    resource_id: str
    min_amount: int = 1
    max_amount: Optional[int] = None

    @model_validator(mode="after")
    def _validate(self):
        if self.min_amount < 0:
            raise ValueError("resource_cost.min_amount must be >= 0")
        if self.max_amount is not None and self.max_amount < self.min_amount:
            raise ValueError("resource_cost.max_amount must be >= min_amount")
        return self

ResourceCost = Annotated[Union[FixedResourceCost, VariableResourceCost], Field(discriminator="type")]

# -----------------------------
# Effects (closed tagged union)

class DamageEffect(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["damage"] = "damage"
    dice_formula: Expr

class HealingEffect(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["healing"] = "healing"
    dice_formula: Expr

class TempHPEffect(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["tempHP"] = "tempHP"
    dice_formula: Expr

class ResourceChangeEffect(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["resourceChange"] = "resourceChange"
    resource_id: str
    dice_formula: Expr

class DicePoolChangeEffect(BaseModel):
    model_config = ConfigDict(frozen=True)
    type: Literal["dicePoolChange"] = "dicePoolChange"
    pool_id: str
    dice_formula: Expr

Effect = Annotated[
    Union[DamageEffect, HealingEffect, TempHPEffect, ResourceChangeEffect, DicePoolChangeEffect],
    Field(discriminator="type")
]

# -----------------------------
# Abilities

class AbilityDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: IDStr
    name: str
    description: str = ""
    kind: AbilityKind = "spell"
    school: Optional[str] = None
    tier: int = 0
    category: str = "utility"
    action_cost: int = 0
    dice_formula: Optional[str] = None
    scaling_bonus: Optional[str] = None   # cantrips: added per 5 character levels
    upcast_bonus: Optional[str] = None    # tiered: added per tier above base
    resource_cost: Optional[ResourceCost] = None
    effects: List[Effect] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate(self):
        errs: list[str] = []
        if not 0 <= self.tier <= MAX_TIER:
            errs.append(f"tier must be within 0..{MAX_TIER}")
        if self.action_cost < 0:
            errs.append("action_cost must be >= 0")
        if self.tier == 0 and self.upcast_bonus:
            errs.append("cantrips cannot declare upcast_bonus (use scaling_bonus)")
        if errs:
            raise ValueError("; ".join(errs))
        return self

    @property
    def is_cantrip(self) -> bool:
        return self.tier == 0
