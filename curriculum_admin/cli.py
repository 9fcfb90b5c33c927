"""CLI interface for the curriculum admin console"""
import asyncio
import json
import logging
import time
import traceback
from pathlib import Path
from typing import Awaitable, Callable, Dict, Tuple

import click

from .config import CONSOLE_RULE_NAME, DATABASE_URL, LOG_LEVEL
from .console import AdminConsole, open_console, seed_admin_rule
from .errors import AdminConsoleError
from .models import Classified, Document, Failed, KINDS, ManagedEntity

logger = logging.getLogger(__name__)

KIND_CHOICE = click.Choice(sorted(KINDS))


def parse_assignments(assignments: Tuple[str, ...]) -> Dict[str, str]:
    """Parse ``field=value`` arguments"""
    fields = {}
    for item in assignments:
        if '=' not in item:
            raise click.BadParameter(f"Expected field=value, got '{item}'")
        name, value = item.split('=', 1)
        fields[name.strip()] = value
    return fields


def format_entity(entity: ManagedEntity) -> str:
    label = entity.get(KINDS[entity.kind].label_field)
    extras = ", ".join(
        f"{name}={value}" for name, value in entity.fields.items()
        if value not in ("", None) and name != KINDS[entity.kind].label_field
    )
    marker = " [DELETED]" if entity.deleted else ""
    return f"{entity.id}  {label}{marker}" + (f"  ({extras})" if extras else "")


def run_console(ctx: click.Context, action: Callable[[AdminConsole], Awaitable[int]]) -> None:
    """Open the console, run an async action and exit with its status"""
    params = ctx.find_root().params

    async def runner() -> int:
        console, engine = await open_console(params['database_url'], params['rule'])
        try:
            return await action(console)
        except AdminConsoleError as e:
            click.echo(f"Error: {e}", err=True)
            return 1
        finally:
            await engine.dispose()

    try:
        code = asyncio.run(runner())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        if params.get('verbose'):
            traceback.print_exc()
        code = 1
    ctx.exit(code)


@click.group()
@click.option('--database-url', default=DATABASE_URL, show_default=True,
              help='SQLAlchemy async database URL')
@click.option('--rule', default=CONSOLE_RULE_NAME,
              help='User rule held by the acting principal (e.g. Administrator)')
@click.option('--verbose', '-v', is_flag=True,
              help='Verbose output')
def main(database_url: str, rule: str, verbose: bool):
    """
    Administrative console for curriculum standards and institutions.

    Examples:

    \b
    # Create tables and the Administrator rule
    curriculum-admin init-db

    \b
    # Extract BNCC skills from a PDF, leaving out candidates 1 and 3
    curriculum-admin --rule Administrator extract bncc.pdf --exclude 1 --exclude 3

    \b
    # Soft delete and restore
    curriculum-admin --rule Administrator delete bncc_item <id>
    curriculum-admin --rule Administrator restore bncc_item <id>
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command('init-db')
@click.pass_context
def init_db(ctx: click.Context):
    """Create tables and seed the Administrator rule."""
    async def action(console: AdminConsole) -> int:
        created = await seed_admin_rule(console.stores)
        click.echo("Database ready" + (" (Administrator rule created)" if created else ""))
        return 0

    run_console(ctx, action)


@main.command()
@click.argument('pdf_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--exclude', '-x', type=int, multiple=True,
              help='Index of a candidate to leave out (repeatable)')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Save extracted candidates to a JSON file')
@click.option('--yes', '-y', is_flag=True,
              help='Save the selection without asking')
@click.pass_context
def extract(ctx: click.Context, pdf_path: Path, exclude: Tuple[int, ...], output: Path, yes: bool):
    """Extract BNCC skills from a PDF, review and save the selection."""
    async def action(console: AdminConsole) -> int:
        document = Document.from_path(pdf_path)
        click.echo(f"Processing: {pdf_path.name}")

        start_ts = time.perf_counter()
        outcome = await console.extract(document)
        click.echo(f"  Time: {time.perf_counter() - start_ts:.2f}s")

        if isinstance(outcome, Failed):
            click.echo(f"Error processing document: {outcome.reason}", err=True)
            return 1
        if not isinstance(outcome, Classified) or not console.review.can_commit:
            click.echo(outcome.message or "No BNCC skills found.")
            console.review.discard()
            return 0

        review = console.review
        click.echo(f"Found {len(review.candidates)} BNCC skill(s):")
        for index, candidate in enumerate(review.candidates):
            click.echo(f"  [{index}] {candidate.code}  {candidate.component or ''}  "
                       f"{candidate.grade or ''}  {(candidate.description or '')[:80]}")

        if output:
            with open(output, 'w', encoding='utf-8') as f:
                json.dump([c.model_dump() for c in review.candidates], f, indent=2, ensure_ascii=False)
            click.echo(f"  Candidates saved to: {output}")

        for index in set(exclude):
            review.toggle(index)

        selected = review.selected_candidates()
        if not selected:
            click.echo("Nothing selected; no items saved.")
            review.discard()
            return 0
        if not yes and not click.confirm(f"Save {len(selected)} selected item(s)?", default=True):
            review.discard()
            click.echo("Discarded.")
            return 0

        result = await review.commit()
        click.echo(result.summary())
        return 0 if result.succeeded else 1

    run_console(ctx, action)


@main.command('list')
@click.argument('kind', type=KIND_CHOICE)
@click.option('--include-deleted', '-d', is_flag=True, help='Also show deleted records')
@click.option('--search', '-s', help='Case-insensitive text search')
@click.option('--filter', '-f', 'filters', multiple=True, help='Exact match, field=value (repeatable)')
@click.pass_context
def list_entities(ctx: click.Context, kind: str, include_deleted: bool, search: str, filters: Tuple[str, ...]):
    """List records of KIND."""
    async def action(console: AdminConsole) -> int:
        controller = console.controller(kind)
        records = await controller.list(
            include_deleted=include_deleted, search=search, filters=parse_assignments(filters)
        )
        if not await controller.authorization_state():
            click.echo("(read-only: administrator rule required to make changes)")
        if not records:
            click.echo("No records found.")
        for record in records:
            click.echo(format_entity(record))
        return 0

    run_console(ctx, action)


@main.command()
@click.argument('kind', type=KIND_CHOICE)
@click.argument('assignments', nargs=-1)
@click.pass_context
def create(ctx: click.Context, kind: str, assignments: Tuple[str, ...]):
    """Create a record of KIND from field=value pairs."""
    async def action(console: AdminConsole) -> int:
        entity = await console.controller(kind).create(parse_assignments(assignments))
        click.echo(f"Created {format_entity(entity)}")
        return 0

    run_console(ctx, action)


@main.command()
@click.argument('kind', type=KIND_CHOICE)
@click.argument('entity_id')
@click.argument('assignments', nargs=-1)
@click.pass_context
def update(ctx: click.Context, kind: str, entity_id: str, assignments: Tuple[str, ...]):
    """Update a record of KIND from field=value pairs."""
    async def action(console: AdminConsole) -> int:
        entity = await console.controller(kind).update(entity_id, parse_assignments(assignments))
        click.echo(f"Updated {format_entity(entity)}")
        return 0

    run_console(ctx, action)


def _lifecycle_command(name: str, help_text: str):
    @main.command(name, help=help_text)
    @click.argument('kind', type=KIND_CHOICE)
    @click.argument('entity_id')
    @click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
    @click.pass_context
    def command(ctx: click.Context, kind: str, entity_id: str, yes: bool):
        async def action(console: AdminConsole) -> int:
            controller = console.controller(kind)
            if name == 'delete':
                pending = await controller.request_delete(entity_id)
            else:
                pending = await controller.request_restore(entity_id)
            if not yes and not click.confirm(pending.prompt, default=False):
                click.echo("Cancelled.")
                return 0
            entity = await controller.confirm(pending)
            click.echo(format_entity(entity))
            return 0

        run_console(ctx, action)

    return command


delete = _lifecycle_command('delete', "Soft delete a record of KIND.")
restore = _lifecycle_command('restore', "Restore a soft-deleted record of KIND.")


if __name__ == '__main__':
    main()
