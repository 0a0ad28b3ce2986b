import logging
import random
from typing import Optional

import typer

from charsheet.engine.dice import DiceEvaluator
from charsheet.engine.engine import CharacterEngine
from charsheet.engine.save import delete_save
from charsheet.tools.validate import app as content_app

app = typer.Typer(add_completion=False)
app.add_typer(content_app, name="content")

logger = logging.getLogger(__name__)

def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")):
    setup_logging(verbose)

def _engine(slot: Optional[str]) -> CharacterEngine:
    eng = CharacterEngine()
    if slot:
        lines = eng.load_slot(slot)
        if eng.slot_id != slot:
            for line in lines:
                typer.echo(line, err=True)
            raise typer.Exit(code=1)
    return eng

def _echo(lines: list[str]) -> None:
    for line in lines:
        typer.echo(line)

@app.command()
def roll(formula: str,
         advantage: int = typer.Option(0, "--advantage", "-a", help="Positive for advantage, negative for disadvantage"),
         seed: Optional[int] = typer.Option(None, "--seed")):
    """Roll a free-standing dice formula (no character variables)."""
    dice = DiceEvaluator(random.Random(seed))
    try:
        result = dice.evaluate(formula, advantage_level=advantage)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    line = f"{result.substituted_formula} = {result.total}"
    if result.num_criticals:
        line += f" ({result.num_criticals} critical)"
    if result.is_fumble:
        line += " (fumble)"
    typer.echo(line)

@app.command()
def cast(ability_id: str,
         method: str = typer.Option("mana", "--method", "-m"),
         tier: Optional[int] = typer.Option(None, "--tier", "-t"),
         advantage: int = typer.Option(0, "--advantage", "-a"),
         slot: Optional[str] = typer.Option(None, "--slot")):
    _echo(_engine(slot).cast(ability_id, method, tier, advantage))

@app.command()
def cost(ability_id: str,
         method: str = typer.Option("mana", "--method", "-m"),
         tier: Optional[int] = typer.Option(None, "--tier", "-t"),
         slot: Optional[str] = typer.Option(None, "--slot")):
    _echo(_engine(slot).cost(ability_id, method, tier))

@app.command()
def methods(ability_id: str, slot: Optional[str] = typer.Option(None, "--slot")):
    _echo(_engine(slot).methods(ability_id))

@app.command()
def status(slot: Optional[str] = typer.Option(None, "--slot")):
    eng = _engine(slot)
    _echo(eng.status() + eng.resources())

@app.command()
def new(slot: str = typer.Option("slot1", "--slot")):
    _echo(CharacterEngine().start_new(slot))

@app.command()
def delete(slot: str):
    delete_save(slot, CharacterEngine().save_root)
    typer.echo(f"Deleted save: {slot}")

@app.command()
def play(slot: Optional[str] = typer.Option(None, "--slot")):
    """Interactive command loop over the active character."""
    eng = _engine(slot) if slot else CharacterEngine()
    if not slot:
        _echo(eng.continue_latest())
    while not eng.should_quit:
        _echo(eng.execute(typer.prompt(">")))

if __name__ == "__main__":
    app()
