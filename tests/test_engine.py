from pathlib import Path

import pytest
from typer.testing import CliRunner

from charsheet.cli import app
from charsheet.engine.engine import CharacterEngine
from charsheet.engine.settings import Settings

CONTENT_DIR = Path(__file__).resolve().parents[1] / "src" / "charsheet" / "content"

@pytest.fixture
def make_engine(tmp_path, rng):
    def _make():
        return CharacterEngine(Settings(rng_seed_mode="fixed"), content_root=CONTENT_DIR,
                               rng=rng, save_root=tmp_path / "saves")
    return _make

def test_status(make_engine):
    eng = make_engine()
    assert eng.execute("status") == ["Vesper (Lv 3) | HP 20/20 (+0 temp) | Actions 3/3 | Tier access 2"]
    assert "Mana: 8/9" in eng.execute("resources")

def test_cast_command(make_engine, rng):
    eng = make_engine()
    rng.queue(1, 2, 3, 1, 1, 1)
    out = eng.execute("cast spell.magic_missile")
    assert out == [
        "Magic Missile cast via Mana (tier 1)",
        "Spent 1 Mana",
        "Rolled 3d4+3 = 9",
        "- Deal 3d4+3 damage: 6",
    ]
    assert eng.character.get_resource("mana").current == 7
    assert eng.character.hit_points.current == 14

def test_upcast_command(make_engine, rng):
    eng = make_engine()
    rng.queue(1, 1, 1, 1, 2, 2, 2)
    out = eng.execute("cast spell.magic_missile mana 2")
    assert out[0] == "Magic Missile cast via Mana (tier 2)"
    assert "Rolled 3d4+3+1d4+1 = 8" in out
    assert eng.character.get_resource("mana").current == 6

def test_cast_failure_is_reported(make_engine):
    eng = make_engine()
    assert eng.execute("cast spell.fireball") == ["Cannot cast spell.fireball: Mana is not available"]
    assert eng.execute("cast spell.nope slot")[0] == "Cannot cast spell.nope: Ability spell.nope not found"
    assert eng.execute("cast spell.fireball mana x") == ["Invalid tier: x"]

def test_cost_and_methods(make_engine):
    eng = make_engine()
    assert eng.execute("cost spell.cure_wounds slot") == ["spell.cure_wounds via slot: 1 Slot (cast at tier 2)"]
    assert eng.execute("cost spell.cure_wounds mana 2") == ["spell.cure_wounds via mana: 2 Mana"]
    assert eng.execute("cost spell.fireball") == ["spell.fireball cannot be cast via mana."]
    methods = eng.execute("methods spell.fire_bolt")
    assert [m.split(":")[0] for m in methods] == ["mana", "slot"]

def test_roll_uses_character_variables(make_engine, rng):
    eng = make_engine()
    rng.queue(3, 4)
    assert eng.execute("roll 2d6 + INT") == ["Roll: 2d6+3 = 10"]
    assert eng.execute("log") == ["Roll: 2d6+3 = 10"]
    assert eng.execute("roll BOGUS+1d6")[0].startswith("Failed to evaluate dice formula")

def test_encounter_and_rest(make_engine, rng):
    eng = make_engine()
    assert eng.execute("encounter start") == ["Encounter started (3 actions)."]
    rng.queue(2, 3, 4)
    assert eng.execute("cast spell.cure_wounds slot")[0] == "Cure Wounds cast via Slot Casting (tier 2)"
    assert eng.character.action_tracker.current == 1
    assert eng.character.get_resource("pilfered_power").current == 1
    assert eng.execute("encounter end")[0] == "Encounter ended."
    assert not eng.character.in_encounter
    eng.execute("rest")
    assert eng.character.get_resource("pilfered_power").current == 3
    assert eng.character.get_resource("mana").current == 9

def test_autosave_and_reload(make_engine, rng):
    eng = make_engine()
    assert eng.execute("save") == ["No active slot."]
    eng.start_new("slot1")
    rng.queue(1, 1, 1, 1, 1, 1)
    eng.execute("cast spell.magic_missile")

    other = make_engine()
    assert other.load_slot("slot1") == ["Loaded save: slot1"]
    assert other.character.get_resource("mana").current == 7
    assert other.load_slot("missing") == ["Error: Save slot 'missing' not found."]
    assert other.continue_latest() == ["Loaded save: slot1"]

def test_misc_commands(make_engine):
    eng = make_engine()
    assert eng.execute("dance") == ["Unknown command: dance"]
    assert eng.execute("help")[0].startswith("Commands:")
    assert eng.execute("expr stats")[0].startswith("expr-cache:")
    assert eng.execute("quit") == ["Exiting..."]
    assert eng.should_quit

def test_cli_roll():
    runner = CliRunner()
    result = runner.invoke(app, ["roll", "2d6+1", "--seed", "3"])
    assert result.exit_code == 0
    assert result.stdout.startswith("2d6+1 = ")

    result = runner.invoke(app, ["roll", "2d6+FOO"])
    assert result.exit_code == 1

def test_cli_validate_bundled_content():
    result = CliRunner().invoke(app, ["content", "validate", str(CONTENT_DIR)])
    assert result.exit_code == 0
    assert "Content validated successfully" in result.stdout
