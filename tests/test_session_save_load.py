import itertools

from charsheet.engine.models import Character
from charsheet.engine.save import delete_save, latest_save, list_saves, load_character, save_character
from charsheet.engine.settings import Settings, load_settings, save_settings
from charsheet.engine.state import CharacterSession, diff_characters

def test_resources_and_dice_pools_round_trip(make_character, make_ability):
    pc = make_character(mana=7, slots=2, fury=[6, 1, 3], abilities=[make_ability(tier=2)])
    restored = Character.model_validate_json(pc.model_dump_json())
    assert restored == pc
    assert [(r.definition.id, r.current) for r in restored.resources] == [("mana", 7), ("pilfered_power", 2)]
    assert restored.dice_pools[0].current_dice == [6, 1, 3]

def test_save_slots(make_character, tmp_path, monkeypatch):
    clock = itertools.count(100)
    monkeypatch.setattr("charsheet.engine.save.time.time", lambda: float(next(clock)))
    pc = make_character(mana=3, fury=[2])
    save_character("slot1", pc, tmp_path)
    save_character("slot2", pc.model_copy(update={"name": "Other"}), tmp_path)

    assert load_character("slot1", tmp_path) == pc
    assert {m.slot_id for m in list_saves(tmp_path)} == {"slot1", "slot2"}
    assert latest_save(tmp_path).slot_id == "slot2"

    delete_save("slot2", tmp_path)
    assert [m.slot_id for m in list_saves(tmp_path)] == ["slot1"]
    assert list_saves(tmp_path)[0].character_name == "Test Mage"

def test_latest_save_empty(tmp_path):
    assert latest_save(tmp_path / "none") is None

def test_transaction_rollback(make_character):
    pc = make_character(mana=5)
    session = CharacterSession(pc)
    with session.transaction() as tx:
        tx.env.ledger.spend_resource("mana", 3)
        tx.rollback()
    assert session.character.get_resource("mana").current == 5

def test_transaction_exception_discards_draft(make_character):
    session = CharacterSession(make_character(mana=5))
    try:
        with session.transaction() as tx:
            tx.env.ledger.spend_resource("mana", 3)
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert session.character.get_resource("mana").current == 5

def test_diff_characters(make_character):
    before = make_character(mana=5, fury=[1])
    after = before.model_copy(deep=True)
    after.resources[0].current = 2
    after.dice_pools[0].current_dice.append(4)
    after.in_encounter = True
    patch = diff_characters(before, after)
    assert patch.resources == {"mana": 2}
    assert patch.dice_pools == {"fury_dice": [1, 4]}
    assert patch.in_encounter is True
    assert patch.hit_points is None
    assert diff_characters(before, before.model_copy(deep=True)).is_empty

def test_settings_persist(tmp_path):
    path = tmp_path / "settings.json"
    s = load_settings(path)
    assert path.exists()
    assert s.slot_resource_id == "pilfered_power"
    save_settings(Settings(rng_seed_mode="fixed", rng_seed=7), path)
    assert load_settings(path).rng_seed == 7

def test_user_dir_override(tmp_path, monkeypatch):
    from charsheet.util.paths import user_dir
    monkeypatch.setenv("CHARSHEET_HOME", str(tmp_path))
    assert user_dir() == tmp_path
    monkeypatch.delenv("CHARSHEET_HOME")
    assert user_dir().name == ".charsheet"
