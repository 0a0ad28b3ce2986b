from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Set
import typer
from pydantic import ValidationError

from charsheet.engine.dice import tokenize
from charsheet.engine.errors import DiceFormulaError
from charsheet.engine.expr import ATTRIBUTE_ALIASES, _compile_expr, character_variables
from charsheet.engine.loader import ContentIndex, load_content
from charsheet.engine.schema_models import (
    DicePoolChangeEffect, FormulaBound, ResourceChangeEffect,
)
from charsheet.util.paths import content_dir as default_content_dir

app = typer.Typer(add_completion=False)

# Names a dice formula may reference besides resource ids
KNOWN_VARIABLES = {
    "str", "dex", "int", "wil", "strength", "dexterity", "intelligence", "will", "level", "lvl",
}

# Bounds are evaluated against attributes and level only, case as written
BOUND_VARIABLES = set(character_variables({full: 0 for full in ATTRIBUTE_ALIASES.values()}, 0))

def _check_formula(formula: str | int | None, *, where: str, resources: Set[str]) -> List[str]:
    if formula is None or isinstance(formula, int):
        return []
    try:
        tokens = tokenize(formula)
    except DiceFormulaError as e:
        return [f"{where}: {e}"]
    errs: List[str] = []
    for tok in tokens:
        name = tok.text if tok.kind == "variable" else tok.count_variable
        if name and name.lower() not in KNOWN_VARIABLES and name not in resources:
            errs.append(f"{where}: unknown variable '{name}' in '{formula}'")
    return errs

def _check_bound(bound, *, where: str) -> List[str]:
    if not isinstance(bound, FormulaBound):
        return []
    try:
        names = _compile_expr(bound.expression).variables()
    except Exception as e:
        return [f"{where}: invalid expression syntax: {e}"]
    return [f"{where}: unknown variable '{name}' in '{bound.expression}'"
            for name in names if name not in BOUND_VARIABLES]

def check_content(content: ContentIndex) -> List[str]:
    """Cross-reference and formula checks over already schema-valid content."""
    errs: List[str] = []
    resources = set(content.resources)
    for rd in content.resources.values():
        errs += _check_bound(rd.min_value, where=f"resource {rd.id}.min_value")
        errs += _check_bound(rd.max_value, where=f"resource {rd.id}.max_value")
    for pd in content.dice_pools.values():
        errs += _check_bound(pd.max_dice, where=f"dice pool {pd.id}.max_dice")
    for ab in content.abilities.values():
        for field in ("dice_formula", "scaling_bonus", "upcast_bonus"):
            errs += _check_formula(getattr(ab, field), where=f"ability {ab.id}.{field}", resources=resources)
        if ab.resource_cost is not None and ab.resource_cost.resource_id not in resources:
            errs.append(f"ability {ab.id}: missing resource id '{ab.resource_cost.resource_id}'")
        for i, eff in enumerate(ab.effects):
            where = f"ability {ab.id}.effects[{i}]"
            errs += _check_formula(eff.dice_formula, where=where, resources=resources)
            if isinstance(eff, ResourceChangeEffect) and eff.resource_id not in resources:
                errs.append(f"{where}: missing resource id '{eff.resource_id}'")
            if isinstance(eff, DicePoolChangeEffect) and eff.pool_id not in content.dice_pools:
                errs.append(f"{where}: missing dice pool id '{eff.pool_id}'")
    return errs

@app.command("validate")
def validate_content(content_root: Optional[Path] = typer.Argument(None, help="Content directory (defaults to bundled content)")):
    root = content_root or default_content_dir()
    try:
        content = load_content(root)
    except (ValidationError, RuntimeError) as e:
        typer.echo(f"[ERROR] {e}", err=True)
        raise typer.Exit(code=1)
    errs = check_content(content)
    for msg in errs:
        typer.echo(f"[ERROR] {msg}", err=True)
    if errs:
        raise typer.Exit(code=1)
    typer.echo(f"Content validated successfully ({len(content.abilities)} abilities, "
               f"{len(content.resources)} resources, {len(content.dice_pools)} dice pools).")

if __name__ == "__main__":
    app()
