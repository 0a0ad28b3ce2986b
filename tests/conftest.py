import random
import pytest

from charsheet.engine.casting_runtime import CastingDispatcher, default_registry
from charsheet.engine.models import (
    ActionTracker, Attributes, Character, DicePoolInstance, HitPoints, ResourceInstance,
)
from charsheet.engine.schema_models import (
    AbilityDefinition, DicePoolDefinition, FixedBound, FixedResourceCost, ResourceDefinition,
)
from charsheet.engine.state import CharacterSession

MANA = ResourceDefinition(id="mana", name="Mana", max_value=FixedBound(value=10))
SLOTS = ResourceDefinition(id="pilfered_power", name="Pilfered Power", max_value=FixedBound(value=3))
FURY = DicePoolDefinition(id="fury_dice", name="Fury Dice", dice_size=6, max_dice=FixedBound(value=4))

class SequenceRandom(random.Random):
    """Fake RNG: randint hands out queued values in order."""

    def __init__(self):
        super().__init__(0)
        self.values: list[int] = []

    def queue(self, *values: int) -> "SequenceRandom":
        self.values.extend(values)
        return self

    def randint(self, a: int, b: int) -> int:
        if not self.values:
            raise AssertionError("SequenceRandom exhausted")
        v = self.values.pop(0)
        assert a <= v <= b, f"queued {v} outside {a}..{b}"
        return v

@pytest.fixture
def rng():
    return SequenceRandom()

@pytest.fixture
def make_ability():
    def _make(aid: str = "spell.test", tier: int = 1, cost: bool = True, **kw) -> AbilityDefinition:
        if cost and tier > 0:
            kw.setdefault("resource_cost", FixedResourceCost(resource_id="mana", amount=1))
        name = kw.pop("name", aid.split(".")[-1].replace("_", " ").title())
        return AbilityDefinition(id=aid, name=name, tier=tier, **kw)
    return _make

@pytest.fixture
def make_character():
    def _make(*, mana=10, slots=None, tier_access=3, abilities=(), level=5, hp=(20, 20, 0),
              in_encounter=False, actions=3, fury=()) -> Character:
        resources = [ResourceInstance(definition=MANA, current=mana, sort_order=0)]
        if slots is not None:
            resources.append(ResourceInstance(definition=SLOTS, current=slots, sort_order=1))
        return Character(
            id="pc.test", name="Test Mage", level=level,
            attributes=Attributes(strength=4, dexterity=1, intelligence=3, will=2),
            hit_points=HitPoints(max=hp[0], current=hp[1], temporary=hp[2]),
            action_tracker=ActionTracker(current=actions),
            in_encounter=in_encounter, tier_access=tier_access,
            resources=resources,
            dice_pools=[DicePoolInstance(definition=FURY, current_dice=list(fury))],
            abilities=list(abilities),
        )
    return _make

@pytest.fixture
def make_dispatcher(rng):
    def _make(character: Character):
        session = CharacterSession(character, rng=rng)
        return CastingDispatcher(session, default_registry()), session
    return _make
