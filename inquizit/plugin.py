from . import db
from typing import Any, Optional

try:
    import llm  # type: ignore
    hookimpl = llm.hookimpl  # type: ignore
except ImportError:
    import pluggy
    hookimpl = pluggy.HookimplMarker("llm")

@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click

    @cli.command("qz-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the quizit database."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("qz-import-cards")  # type: ignore[misc]
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def import_cards(path: str) -> None:
        """Import cards and their seed bundles from a JSON file."""
        if not db.is_db_initialized():
            db.init_db()
        count = db.import_cards_json(path)
        click.echo(f"{count} new cards imported from {path}.")

    @cli.command("qz-generate")  # type: ignore[misc]
    @click.argument("card_id")
    @click.argument("second_card_id", required=False)
    @click.option("--model", default="gpt-4o-mini", help="LLM model name to use for generation")
    def generate(card_id: str, second_card_id: Optional[str], model: str) -> None:
        """Generate a quizit for one card, or for two cards at once."""
        from . import quizits
        import llm  # type: ignore
        llm_model = llm.get_model(model)
        if second_card_id:
            quizit = quizits.generate_paired_quizit(card_id, second_card_id, llm_model)
        else:
            quizit = quizits.generate_single_card_quizit(card_id, llm_model)

        for face in quizit.faces:
            if face.quizitData is not None:
                click.echo(f"Quizit #{face.quizitData.quizitId}:")
                click.echo(face.quizitData.quizit)
            elif face.conceptData is not None:
                click.echo("")
                click.echo(f"[{face.conceptData.id}] {face.conceptData.title}")
                click.echo(face.conceptData.reasoning)

    @cli.command("qz-history")  # type: ignore[misc]
    @click.argument("card_id")
    @click.option("--limit", default=10, help="Number of quizits to show")
    def history(card_id: str, limit: int) -> None:
        """Show recent quizits generated for a card."""
        rows = db.get_quizits_for_card(card_id, limit=limit)
        if not rows:
            click.echo(f"No quizits found for {card_id}.")
            return
        for row in rows:
            slot = 1 if row.card_id_1 == card_id else 2
            recognition = row.card_1_recognition_score if slot == 1 else row.card_2_recognition_score
            reasoning = row.card_1_reasoning_score if slot == 1 else row.card_2_reasoning_score
            partner = row.card_id_2 if slot == 1 else row.card_id_1
            click.echo(f"#{row.id} {row.created_at:%Y-%m-%d %H:%M} perm={row.permutation_index_1 if slot == 1 else row.permutation_index_2} "
                       f"seed={row.seed_bundle_index} rec={recognition} reas={reasoning}"
                       f"{f' with {partner}' if partner else ''}")

    @cli.command("qz-session")  # type: ignore[misc]
    @click.argument("session_id")
    def show_session(session_id: str) -> None:
        """Print a session's mode and per-card usage table."""
        from .errors import SessionExpiredOrNotFound
        from .session_store import SpacedRepetitionMode, get_store
        store = get_store()
        try:
            record = store.get(session_id)
        except SessionExpiredOrNotFound as e:
            raise click.ClickException(str(e))

        click.echo(f"Session {record.session_id} ({record.mode_name}, revision {record.revision})")
        if record.theme:
            click.echo(f"Theme: {record.theme}")
        if isinstance(record.mode, SpacedRepetitionMode):
            click.echo(f"User: {record.mode.user_id}  cursor {record.mode.cursor}/{len(record.mode.queue)}")
        else:
            click.echo(f"Turn: {record.mode.turn_counter}")

        for usage in store.get_card_usage(record):
            last = "-" if usage.last_used_turn is None else usage.last_used_turn
            click.echo(f"  {usage.card_id}: uses={usage.total_uses} last={last} "
                       f"rec={usage.recognition_score:.2f} reas={usage.reasoning_score:.2f}")
