from __future__ import annotations
import logging
import random
from pathlib import Path
from typing import Optional

from ..util.paths import content_dir
from .activity_log import ActivityLog
from .casting_runtime import CastingDispatcher, OptionsLike, default_registry
from .effects_runtime import get_effect_preview
from .errors import CharsheetError
from .expr import expr_cache_info
from .loader import ContentIndex, load_content
from .models import Character
from .save import SAVE_ROOT, latest_save, list_saves, load_character, save_character
from .settings import Settings, load_settings
from .state import CharacterPatch, CharacterSession, default_spellcaster

logger = logging.getLogger(__name__)

HELP_TEXT = ("Commands: status, resources, abilities, methods <id>, cost <id> [mana|slot] [tier], "
             "cast <id> [mana|slot] [tier], roll <formula>, rest, encounter start|end, log, save, quit")

class CharacterEngine:
    """Text-command facade over the casting engine for one active character."""

    def __init__(self, settings: Optional[Settings] = None, *, content_root: Optional[Path] = None,
                 rng: Optional[random.Random] = None, save_root: Optional[Path] = None):
        self.settings: Settings = settings or load_settings()
        if content_root is None:
            content_root = Path(self.settings.default_content_dir) if self.settings.default_content_dir else content_dir()
        self.content: ContentIndex = load_content(content_root)
        self.rng = rng or random.Random(self._get_rng_seed())
        if save_root is None:
            save_root = Path(self.settings.save_root) if self.settings.save_root else SAVE_ROOT
        self.save_root = save_root
        self.log = ActivityLog(self.settings.activity_log_size)
        self.registry = default_registry(self.settings.mana_resource_id, self.settings.slot_resource_id)
        self.slot_id: Optional[str] = None
        self.should_quit = False
        self._bind(default_spellcaster(self.content))

    def _get_rng_seed(self) -> int:
        if self.settings.rng_seed_mode == "random":
            return random.randint(0, 2**32 - 1)
        return self.settings.rng_seed

    def _bind(self, character: Character) -> None:
        self.session = CharacterSession(character, rng=self.rng, log=self.log, on_commit=self._on_commit)
        self.dispatcher = CastingDispatcher(self.session, self.registry)

    def _on_commit(self, character: Character, patch: CharacterPatch) -> None:
        logger.debug("committed %s: %s", character.id, patch.model_dump(exclude_none=True))
        if self.slot_id:
            save_character(self.slot_id, character, self.save_root)

    @property
    def character(self) -> Character:
        return self.session.character

    # ------- save slots -------
    def start_new(self, slot_id: str = "slot1", character: Optional[Character] = None) -> list[str]:
        character = character or default_spellcaster(self.content)
        self._bind(character)
        self.slot_id = slot_id
        save_character(slot_id, character, self.save_root)
        return [f"New character: {character.name}", f"Saved to slot {slot_id}"]

    def load_slot(self, slot_id: str) -> list[str]:
        if not any(m.slot_id == slot_id for m in list_saves(self.save_root)):
            return [f"Error: Save slot '{slot_id}' not found."]
        try:
            character = load_character(slot_id, self.save_root)
        except (OSError, ValueError) as e:
            return [f"Error loading save slot '{slot_id}': {e}"]
        self._bind(character)
        self.slot_id = slot_id
        return [f"Loaded save: {slot_id}"]

    def continue_latest(self) -> list[str]:
        meta = latest_save(self.save_root)
        if not meta:
            return ["No saves found."]
        return self.load_slot(meta.slot_id)

    def save_current(self) -> list[str]:
        if not self.slot_id:
            return ["No active slot."]
        save_character(self.slot_id, self.character, self.save_root)
        return ["Character saved."]

    # ------- casting -------
    def _options(self, ability_id: str, method: str, tier: Optional[int], advantage: int) -> OptionsLike:
        opts: dict = {"method_type": method, "advantage_level": advantage}
        if method == "mana":
            ability = self.character.get_ability(ability_id)
            opts["target_tier"] = tier if tier is not None else (ability.tier if ability else 0)
        return opts

    def cast(self, ability_id: str, method: str = "mana", tier: Optional[int] = None, advantage: int = 0) -> list[str]:
        result = self.dispatcher.cast_ability(ability_id, self._options(ability_id, method, tier, advantage))
        if not result.success:
            return [f"Cannot cast {ability_id}: {result.error}"]
        ability = self.character.get_ability(ability_id)
        name = ability.name if ability else ability_id
        info = self.dispatcher.get_method_info(method) or {"display_name": method}
        label = "cantrip" if result.effective_tier == 0 else f"tier {result.effective_tier}"
        out = [f"{name} cast via {info['display_name']} ({label})"]
        out += result.consequences
        for er in result.effect_results:
            if er.success:
                out.append(f"- {get_effect_preview(er.effect)}: {er.value}")
        return out

    def cost(self, ability_id: str, method: str = "mana", tier: Optional[int] = None) -> list[str]:
        cost = self.dispatcher.calculate_cost(ability_id, self._options(ability_id, method, tier, 0))
        if cost is None:
            return [f"{ability_id} cannot be cast via {method}."]
        line = f"{ability_id} via {method}: {cost.description}"
        if cost.warning_message:
            line += f" ({cost.warning_message})"
        return [line]

    def methods(self, ability_id: str) -> list[str]:
        if self.character.get_ability(ability_id) is None:
            return [f"Ability {ability_id} not found"]
        available = self.dispatcher.get_available_methods(ability_id)
        if not available:
            return [f"No casting methods available for {ability_id}."]
        out = []
        for mt in available:
            info = self.dispatcher.get_method_info(mt) or {}
            out.append(f"{mt}: {info.get('display_name', mt)} - {info.get('description', '')}")
        return out

    def roll(self, formula: str, advantage: int = 0) -> list[str]:
        dice = self.session.preview().dice
        try:
            result = dice.evaluate(formula, advantage_level=advantage)
        except CharsheetError as e:
            return [str(e)]
        entry = self.log.create_dice_roll_entry("Roll", result, advantage)
        self.log.add_log_entry(entry)
        return [entry.description]

    # ------- rest / encounters -------
    def rest(self) -> list[str]:
        with self.session.transaction() as tx:
            out = tx.env.ledger.reset_resources("safe_rest")
        return out or ["Nothing to recover."]

    def start_encounter(self) -> list[str]:
        with self.session.transaction() as tx:
            tx.env.ledger.start_encounter()
        return [f"Encounter started ({self.character.action_tracker.current} actions)."]

    def end_encounter(self) -> list[str]:
        with self.session.transaction() as tx:
            out = tx.env.ledger.end_encounter()
        return ["Encounter ended."] + out

    # ------- readouts -------
    def status(self) -> list[str]:
        c = self.character
        hp, actions = c.hit_points, c.action_tracker
        line = (f"{c.name} (Lv {c.level}) | HP {hp.current}/{hp.max} (+{hp.temporary} temp) "
                f"| Actions {actions.current}/{actions.total} | Tier access {c.tier_access}")
        if c.in_encounter:
            line += " | In encounter"
        return [line]

    def resources(self) -> list[str]:
        info = self.session.preview().ledger.resources_summary()
        if not info:
            return ["No resources."]
        return [f"{k}: {v}" for k, v in info.items()]

    def abilities(self) -> list[str]:
        out = []
        for a in sorted(self.character.abilities, key=lambda a: (a.tier, a.name)):
            label = "cantrip" if a.is_cantrip else f"tier {a.tier}"
            out.append(f"{a.id}: {a.name} ({label}, {a.action_cost} actions)")
        return out or ["No abilities known."]

    def execute(self, cmd: str) -> list[str]:
        c = cmd.lower().strip()
        args = cmd.split()[1:]
        out: list[str] = []
        if c in ("help", "?"):
            out.append(HELP_TEXT)
        elif c == "expr stats":
            out.append(expr_cache_info())
        elif c.startswith("status"):
            out += self.status()
        elif c.startswith("resources"):
            out += self.resources()
        elif c.startswith("abilities"):
            out += self.abilities()
        elif c.startswith(("cast", "cost")):
            if not args:
                out.append(f"Usage: {c.split()[0]} <ability_id> [mana|slot] [tier]")
            else:
                method = args[1].lower() if len(args) > 1 else "mana"
                tier = None
                if len(args) > 2:
                    if not args[2].isdigit():
                        return [f"Invalid tier: {args[2]}"]
                    tier = int(args[2])
                if c.startswith("cast"):
                    out += self.cast(args[0], method, tier)
                else:
                    out += self.cost(args[0], method, tier)
        elif c.startswith("methods"):
            out += self.methods(args[0]) if args else ["Usage: methods <ability_id>"]
        elif c.startswith("roll"):
            _, _, formula = cmd.strip().partition(" ")
            out += self.roll(formula.strip()) if formula.strip() else ["Usage: roll <formula> (e.g., roll 2d6+STR)"]
        elif c.startswith("rest"):
            out += self.rest()
        elif c == "encounter start":
            out += self.start_encounter()
        elif c == "encounter end":
            out += self.end_encounter()
        elif c.startswith("log"):
            out += [e.description for e in self.log.recent(10)] or ["(log is empty)"]
        elif c.startswith("save"):
            out += self.save_current()
        elif c in ("quit", "exit"):
            self.should_quit = True
            out.append("Exiting...")
        else:
            out.append(f"Unknown command: {cmd}")
        return out
