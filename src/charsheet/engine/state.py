from __future__ import annotations
import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional
from pydantic import BaseModel, Field

from .activity_log import ActivityLog
from .dice import DiceEvaluator
from .effects_runtime import EffectResolver
from .loader import ContentIndex
from .models import ActionTracker, Attributes, Character, DicePoolInstance, HitPoints, ResourceInstance
from .resources_runtime import ResourceLedger

logger = logging.getLogger(__name__)

@dataclass
class CastingEnvironment:
    """Collaborators bound to one character copy for the duration of a single operation."""
    ledger: ResourceLedger
    dice: DiceEvaluator
    effects: EffectResolver
    log: ActivityLog

def build_environment(character: Character, rng: random.Random, log: Optional[ActivityLog] = None) -> CastingEnvironment:
    ledger = ResourceLedger(character, rng)
    dice = DiceEvaluator(rng, variables=ledger.formula_variables)
    log = log if log is not None else ActivityLog()
    return CastingEnvironment(ledger=ledger, dice=dice, effects=EffectResolver(ledger, dice, log), log=log)

class CharacterPatch(BaseModel):
    """What a committed operation changed; handed to the persistence callback."""
    character_id: str
    resources: Dict[str, int] = Field(default_factory=dict)
    dice_pools: Dict[str, List[int]] = Field(default_factory=dict)
    hit_points: Optional[HitPoints] = None
    action_tracker: Optional[ActionTracker] = None
    in_encounter: Optional[bool] = None

    @property
    def is_empty(self) -> bool:
        return not (self.resources or self.dice_pools or self.hit_points or self.action_tracker
                    or self.in_encounter is not None)

def diff_characters(before: Character, after: Character) -> CharacterPatch:
    patch = CharacterPatch(character_id=after.id)
    for rs in after.resources:
        old = before.get_resource(rs.definition.id)
        if old is None or old.current != rs.current:
            patch.resources[rs.definition.id] = rs.current
    for pool in after.dice_pools:
        old_pool = before.get_dice_pool(pool.definition.id)
        if old_pool is None or old_pool.current_dice != pool.current_dice:
            patch.dice_pools[pool.definition.id] = list(pool.current_dice)
    if before.hit_points != after.hit_points:
        patch.hit_points = after.hit_points.model_copy()
    if before.action_tracker != after.action_tracker:
        patch.action_tracker = after.action_tracker.model_copy()
    if before.in_encounter != after.in_encounter:
        patch.in_encounter = after.in_encounter
    return patch

class Transaction:
    def __init__(self, env: CastingEnvironment):
        self.env = env
        self.rolled_back = False

    def rollback(self) -> None:
        self.rolled_back = True

class CharacterSession:
    """
    Sole owner of the active character.

    Operations never touch the owned character directly: `transaction()` hands out a
    deep copy, and the copy replaces the owned character only when the block exits
    normally without `rollback()`. The lock serialises check-then-spend sequences, so
    two callers can never both pass an affordability check for the same resource.
    """

    def __init__(self, character: Character, *, rng: Optional[random.Random] = None,
                 log: Optional[ActivityLog] = None,
                 on_commit: Optional[Callable[[Character, CharacterPatch], None]] = None):
        self._character = character
        self.rng = rng or random.Random()
        self.log = log if log is not None else ActivityLog()
        self.on_commit = on_commit
        self._lock = threading.RLock()

    @property
    def character(self) -> Character:
        return self._character

    def preview(self) -> CastingEnvironment:
        """Read-only environment over a throwaway copy (for cost previews and availability checks)."""
        with self._lock:
            return build_environment(self._character.model_copy(deep=True), self.rng, ActivityLog())

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            draft = self._character.model_copy(deep=True)
            buffer = ActivityLog()
            tx = Transaction(build_environment(draft, self.rng, buffer))
            yield tx
            if tx.rolled_back:
                logger.debug("transaction on %s rolled back", draft.id)
                return
            patch = diff_characters(self._character, draft)
            self._character = draft
            for entry in buffer.entries:
                self.log.add_log_entry(entry)
            if self.on_commit is not None and not patch.is_empty:
                self.on_commit(draft, patch)

def default_spellcaster(content: ContentIndex) -> Character:
    resources = [ResourceInstance(definition=content.get_resource(rid), current=cur, sort_order=i)
                 for i, (rid, cur) in enumerate([("mana", 8), ("pilfered_power", 2)]) if rid in content.resources]
    pools = [DicePoolInstance(definition=pd, current_dice=[], sort_order=i)
             for i, pd in enumerate(content.dice_pools.values())]
    return Character(
        id="pc.vesper", name="Vesper", level=3, class_id="mage",
        attributes=Attributes(strength=0, dexterity=1, intelligence=3, will=2),
        hit_points=HitPoints(max=20, current=20, temporary=0),
        tier_access=2,
        resources=resources, dice_pools=pools,
        abilities=list(content.abilities.values()),
    )
