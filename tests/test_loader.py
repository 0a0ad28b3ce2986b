from pathlib import Path

import pytest
from pydantic import ValidationError

from charsheet.engine.loader import load_content
from charsheet.engine.schema_models import AbilityDefinition, DamageEffect, FormulaBound, ResourceDefinition
from charsheet.engine.state import default_spellcaster
from charsheet.tools.validate import check_content

CONTENT_DIR = Path(__file__).resolve().parents[1] / "src" / "charsheet" / "content"

def test_bundled_content_loads_and_validates():
    content = load_content(CONTENT_DIR)
    assert {"mana", "pilfered_power"} <= set(content.resources)
    assert "fury_dice" in content.dice_pools
    fireball = content.get_ability("spell.fireball")
    assert fireball.tier == 3
    assert isinstance(fireball.effects[0], DamageEffect)
    assert check_content(content) == []

def test_default_spellcaster():
    pc = default_spellcaster(load_content(CONTENT_DIR))
    assert pc.get_resource("mana").current == 8
    assert pc.get_resource("pilfered_power").current == 2
    assert pc.tier_access == 2
    assert pc.get_ability("spell.magic_missile") is not None

def test_duplicate_ids_rejected(tmp_path):
    (tmp_path / "abilities").mkdir()
    for name in ("a.yaml", "b.yaml"):
        (tmp_path / "abilities" / name).write_text("id: spell.x\nname: X\n", encoding="utf-8")
    with pytest.raises(RuntimeError, match="Duplicate ability id spell.x"):
        load_content(tmp_path)

def test_json_and_missing_dirs(tmp_path):
    (tmp_path / "resources").mkdir()
    (tmp_path / "resources" / "ki.json").write_text(
        '{"id": "ki", "name": "Ki", "max_value": {"type": "fixed", "value": 4}}', encoding="utf-8")
    content = load_content(tmp_path)
    assert content.get_resource("ki").max_value.value == 4
    assert content.abilities == {}

def test_check_content_flags_dangling_references(tmp_path):
    content = load_content(tmp_path)
    content.abilities["spell.bad"] = AbilityDefinition.model_validate({
        "id": "spell.bad", "name": "Bad", "tier": 1, "dice_formula": "1d6+FOO",
        "resource_cost": {"type": "fixed", "resource_id": "mana"},
        "effects": [{"type": "dicePoolChange", "pool_id": "ghost", "dice_formula": 1}],
    })
    errs = check_content(content)
    assert any("unknown variable 'FOO'" in e for e in errs)
    assert any("missing resource id 'mana'" in e for e in errs)
    assert any("missing dice pool id 'ghost'" in e for e in errs)

def test_check_content_flags_unknown_variables(tmp_path):
    content = load_content(tmp_path)
    content.resources["focus"] = ResourceDefinition(
        id="focus", name="Focus", max_value=FormulaBound(expression="LVL * 2 + RANK"))
    content.abilities["spell.swarm"] = AbilityDefinition.model_validate({
        "id": "spell.swarm", "name": "Swarm", "dice_formula": "HIVEd4+LVL",
    })
    errs = check_content(content)
    assert errs == [
        "resource focus.max_value: unknown variable 'RANK' in 'LVL * 2 + RANK'",
        "ability spell.swarm.dice_formula: unknown variable 'HIVE' in 'HIVEd4+LVL'",
    ]

@pytest.mark.parametrize("data,msg", [
    ({"id": "s", "name": "S", "tier": 10}, "tier must be within 0..9"),
    ({"id": "s", "name": "S", "tier": 0, "upcast_bonus": "1d4"}, "cantrips cannot declare upcast_bonus"),
    ({"id": "s", "name": "S", "effects": [{"type": "teleport", "dice_formula": 1}]}, "teleport"),
])
def test_ability_schema_errors(data, msg):
    with pytest.raises(ValidationError, match=msg):
        AbilityDefinition.model_validate(data)
