from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Literal, Optional, Union
from typing_extensions import Annotated
from pydantic import BaseModel, Field, TypeAdapter

from .activity_log import ResourceSpend
from .dice import DiceRollResult
from .effects_runtime import EffectResult
from .errors import ErrorKind
from .schema_models import AbilityDefinition, RiskLevel

if TYPE_CHECKING:
    from .state import CastingEnvironment

CastingMethodType = Literal["mana", "slot"]

class ManaCastingOptions(BaseModel):
    method_type: Literal["mana"] = "mana"
    target_tier: int
    advantage_level: int = 0

class SlotCastingOptions(BaseModel):
    """Slot casts always resolve at the character's highest unlocked tier."""
    method_type: Literal["slot"] = "slot"
    advantage_level: int = 0

CastingOptions = Annotated[Union[ManaCastingOptions, SlotCastingOptions], Field(discriminator="method_type")]
CastingOptionsAdapter = TypeAdapter(CastingOptions)

class CastingCost(BaseModel):
    can_afford: bool
    description: str
    warning_message: Optional[str] = None
    risk_level: RiskLevel = "none"
    resource_cost: Optional[ResourceSpend] = None

class CastingResult(BaseModel):
    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    effective_tier: Optional[int] = None
    consequences: List[str] = Field(default_factory=list)
    roll: Optional[DiceRollResult] = None
    effect_results: List[EffectResult] = Field(default_factory=list)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "CastingResult":
        return cls(success=False, error=error, error_kind=kind)

@dataclass
class CastingContext:
    ability: AbilityDefinition
    options: Union[ManaCastingOptions, SlotCastingOptions]
    env: "CastingEnvironment" = field(repr=False)
