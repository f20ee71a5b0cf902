import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.logging import RichHandler
from typing import Optional
from datetime import datetime
from pydantic import ValidationError
import asyncio
import logging

from memoracard.config import settings
from memoracard.database import SessionLocal, init_db, drop_db
from memoracard.crud import (
    create_deck, find_deck, list_decks, rename_deck, delete_deck,
    add_card, get_card, get_cards_for_deck, update_card_content, delete_card
)
from memoracard.errors import MemoraCardError, SnapshotError, StorageError
from memoracard.schemas import CardCreate, CardRating, DeckCreate, DeckResponse, Flashcard, SessionSummary
from memoracard.store import SqlRecordStore
from memoracard.study_session import StudySession, start_study_session
from memoracard.utils import as_utc, utcnow

app = typer.Typer(help="MemoraCard - spaced-repetition flashcards in your terminal")
console = Console()

RATING_KEYS = {
    "1": CardRating.AGAIN, "a": CardRating.AGAIN, "again": CardRating.AGAIN,
    "2": CardRating.HARD, "h": CardRating.HARD, "hard": CardRating.HARD,
    "3": CardRating.GOOD, "g": CardRating.GOOD, "good": CardRating.GOOD,
    "4": CardRating.EASY, "e": CardRating.EASY, "easy": CardRating.EASY,
}
RATING_STYLES = {
    CardRating.AGAIN: "red",
    CardRating.HARD: "dark_orange",
    CardRating.GOOD: "green",
    CardRating.EASY: "blue",
}

@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    """Configure logging and make sure the tables exist"""
    logging.basicConfig(
        level="DEBUG" if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)]
    )
    init_db()

def _validation_message(e: ValidationError) -> str:
    error = e.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ()))
    return f"{field}: {error['msg']}" if field else error["msg"]

def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "Never"
    return as_utc(value).astimezone().strftime("%Y-%m-%d %H:%M")

def _format_duration(seconds: int) -> str:
    return f"{seconds // 60}m {seconds % 60}s"

@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")

@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DECKS AND CARDS. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    console.print("[yellow]Dropping all tables...[/yellow]")
    drop_db()
    console.print("[yellow]Recreating tables...[/yellow]")
    init_db()
    console.print("[green]✓[/green] Database reset complete! All data deleted.")

@app.command("create-deck")
def create_deck_command(name: str = typer.Option(..., prompt="Deck name")):
    """Create a new deck"""
    db = SessionLocal()
    try:
        deck = create_deck(db, DeckCreate(name=name))
        console.print(f"[green]✓[/green] Deck created! ID: {deck.id}")
    except ValidationError as e:
        console.print(f"[red]✗[/red] {_validation_message(e)}")
    finally:
        db.close()

@app.command("list-decks")
def list_decks_command():
    """List all decks with card and due counts"""
    db = SessionLocal()
    try:
        decks = list_decks(db)
        if not decks:
            console.print("[yellow]No decks yet. Create one with 'create-deck'.[/yellow]")
            return

        now = utcnow()
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Cards", justify="right")
        table.add_column("Due", style="yellow", justify="right")
        table.add_column("Last studied", style="green")

        for deck in (DeckResponse.model_validate(d) for d in decks):
            cards = [Flashcard.model_validate(c) for c in get_cards_for_deck(db, deck.id)]
            due = sum(1 for c in cards if c.is_due(now))
            table.add_row(deck.id, deck.name, str(deck.card_count), str(due), _format_time(deck.last_studied_at))

        console.print(table)
    finally:
        db.close()

@app.command("rename-deck")
def rename_deck_command(
    deck: str = typer.Argument(..., help="Deck ID or name"),
    name: str = typer.Option(..., prompt="New deck name")
):
    """Rename a deck"""
    db = SessionLocal()
    try:
        db_deck = find_deck(db, deck)
        if not db_deck:
            console.print(f"[red]✗[/red] Deck '{deck}' not found")
            return
        rename_deck(db, db_deck.id, DeckCreate(name=name))
        console.print(f"[green]✓[/green] Deck renamed to '{name.strip()}'")
    except ValidationError as e:
        console.print(f"[red]✗[/red] {_validation_message(e)}")
    finally:
        db.close()

@app.command("delete-deck")
def delete_deck_command(deck: str = typer.Argument(..., help="Deck ID or name")):
    """Delete a deck and all of its cards"""
    db = SessionLocal()
    try:
        db_deck = find_deck(db, deck)
        if not db_deck:
            console.print(f"[red]✗[/red] Deck '{deck}' not found")
            return
        if not typer.confirm(f"Delete '{db_deck.name}' and its {db_deck.card_count} cards?"):
            console.print("[yellow]Cancelled.[/yellow]")
            return
        delete_deck(db, db_deck.id)
        console.print("[green]✓[/green] Deck deleted")
    finally:
        db.close()

@app.command("add-card")
def add_card_command(
    deck: str = typer.Argument(..., help="Deck ID or name"),
    question: str = typer.Option(..., prompt="Question"),
    answer: str = typer.Option(..., prompt="Answer")
):
    """Add a card to a deck"""
    db = SessionLocal()
    try:
        db_deck = find_deck(db, deck)
        if not db_deck:
            console.print(f"[red]✗[/red] Deck '{deck}' not found")
            return
        card = add_card(db, db_deck.id, CardCreate(question=question, answer=answer))
        console.print(f"[green]✓[/green] Card added to '{db_deck.name}'! ID: {card.id}")
    except ValidationError as e:
        console.print(f"[red]✗[/red] {_validation_message(e)}")
    finally:
        db.close()

@app.command("edit-card")
def edit_card_command(
    card_id: str,
    question: Optional[str] = typer.Option(None, help="New question"),
    answer: Optional[str] = typer.Option(None, help="New answer")
):
    """Edit a card's question and/or answer"""
    db = SessionLocal()
    try:
        card = get_card(db, card_id)
        if not card:
            console.print(f"[red]✗[/red] Card {card_id} not found")
            return
        content = CardCreate(question=question or card.question, answer=answer or card.answer)
        update_card_content(db, card_id, content)
        console.print("[green]✓[/green] Card updated")
    except ValidationError as e:
        console.print(f"[red]✗[/red] {_validation_message(e)}")
    finally:
        db.close()

@app.command("delete-card")
def delete_card_command(card_id: str):
    """Delete a card"""
    db = SessionLocal()
    try:
        delete_card(db, card_id)
        console.print("[green]✓[/green] Card deleted")
    except MemoraCardError as e:
        console.print(f"[red]✗[/red] {e}")
    finally:
        db.close()

@app.command("list-cards")
def list_cards_command(deck: str = typer.Argument(..., help="Deck ID or name")):
    """List a deck's cards with their review schedule"""
    db = SessionLocal()
    try:
        db_deck = find_deck(db, deck)
        if not db_deck:
            console.print(f"[red]✗[/red] Deck '{deck}' not found")
            return
        cards = [Flashcard.model_validate(c) for c in get_cards_for_deck(db, db_deck.id)]

        console.print(f"\n[bold]{db_deck.name}[/bold] ({len(cards)} cards)\n")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Question", style="cyan")
        table.add_column("Answer", style="green")
        table.add_column("Due", style="yellow")
        table.add_column("Interval", justify="right")
        table.add_column("Ease", justify="right")

        now = utcnow()
        for card in cards:
            due = "Now" if card.is_due(now) else _format_time(card.due_date)
            table.add_row(
                card.id,
                card.question[:50],
                card.answer[:50],
                due,
                f"{card.interval}d",
                f"{card.ease_factor:.2f}"
            )

        console.print(table)
    finally:
        db.close()

def _show_progress(deck_name: str, session: StudySession, card: Flashcard):
    remaining = session.remaining_count()
    ahead = "" if card.is_due(utcnow()) else " [dim](Reviewing ahead)[/dim]"
    console.print(f"\n[bold]{deck_name}[/bold] - {remaining} cards remaining{ahead}")
    console.print(ProgressBar(total=100, completed=session.progress() * 100, width=40))

def _show_summary(summary: SessionSummary):
    console.print("\n[green]✓[/green] [bold]Session Complete![/bold]")
    console.print(f"You studied {summary.total_studied} cards\n")

    table = Table(show_header=False)
    table.add_column("Stat", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Passed", str(summary.correct_count))
    table.add_row("Again", str(summary.incorrect_count))
    table.add_row("Accuracy", f"{summary.accuracy}%")
    table.add_row("Time", _format_duration(summary.duration_seconds))
    console.print(table)

    breakdown = Table(title="Rating Breakdown", show_header=False)
    breakdown.add_column("Rating")
    breakdown.add_column("Count", justify="right")
    for rating in CardRating:
        style = RATING_STYLES[rating]
        breakdown.add_row(f"[{style}]{rating.value.capitalize()}[/{style}]", str(summary.cards_by_rating.get(rating.value, 0)))
    console.print(breakdown)

def _prompt_rating():
    """Ask for a rating; returns a CardRating, or "q"/"x" to pause/abandon"""
    buttons = "  ".join(
        f"[{RATING_STYLES[r]}]{i}) {r.value.capitalize()}[/{RATING_STYLES[r]}]"
        for i, r in enumerate(CardRating, 1)
    )
    console.print(buttons)
    while True:
        choice = typer.prompt("Rating", default="", show_default=False).strip().lower()
        if choice in ("q", "x"):
            return choice
        if choice in RATING_KEYS:
            return RATING_KEYS[choice]
        console.print("[red]✗[/red] Choose 1-4 (again/hard/good/easy)")

async def _study_loop(deck_id: str, deck_name: str):
    session = await start_study_session(SqlRecordStore(), deck_id)
    if session.resumed:
        console.print("[yellow]Resuming your previous session...[/yellow]")

    while True:
        card = session.current_card()
        if card is None:
            if session.is_finished():
                _show_summary(session.summary())
                if typer.confirm("\nStudy again?", default=False):
                    await session.restart()
                    continue
                return
            if session.total_session_cards:
                # Queue emptied but finalizing failed earlier
                await session.finish()
                continue
            console.print("[yellow]No cards to study. All cards are up to date![/yellow]")
            await session.exit()
            return

        _show_progress(deck_name, session, card)
        console.print(Panel(card.question, title="Question", border_style="magenta"))
        action = typer.prompt(
            "Enter to reveal, q to pause, x to abandon", default="", show_default=False
        ).strip().lower()
        if action not in ("q", "x"):
            console.print(Panel(card.answer, title="Answer", border_style="green"))
            action = _prompt_rating()

        if action == "q":
            console.print("[yellow]Session paused. Run 'study' again to resume.[/yellow]")
            return
        if action == "x":
            await session.exit()
            console.print("[yellow]Session abandoned.[/yellow]")
            return
        rating = action

        try:
            await session.rate(rating)
        except SnapshotError as e:
            console.print(f"[yellow]![/yellow] {e}")
        except StorageError as e:
            console.print(f"[red]✗[/red] Could not save your rating: {e}. Please try again.")

@app.command()
def study(deck: str = typer.Argument(..., help="Deck ID or name")):
    """Study a deck: reveal each card, then rate how well you knew it"""
    db = SessionLocal()
    try:
        db_deck = find_deck(db, deck)
        if not db_deck:
            console.print(f"[red]✗[/red] Deck '{deck}' not found")
            return
        deck_id, deck_name = db_deck.id, db_deck.name
    finally:
        db.close()

    try:
        asyncio.run(_study_loop(deck_id, deck_name))
    except MemoraCardError as e:
        console.print(f"[red]✗[/red] Error: {e}")
        raise typer.Exit(code=1)

if __name__ == "__main__":
    app()
