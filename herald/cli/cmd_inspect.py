"""Contact listing, name resolution and mention preview commands."""

import asyncio
import sys

import click
from rich.table import Table

from . import cli
from .shared import console, open_store


@cli.command()
@click.option("--groups", is_flag=True, help="List groups instead of direct contacts")
def contacts(groups):
    """List stored contacts or groups."""
    async def _contacts():
        _, store = open_store()
        records = await store.list_records(is_group=groups)
        if not records:
            console.print("[dim]Nothing stored yet.[/dim]")
            return

        table = Table(title="Groups" if groups else "Contacts")
        table.add_column("Address", style="bold")
        table.add_column("Name")
        if groups:
            table.add_column("Members", justify="right")
        table.add_column("Messages", justify="right")
        table.add_column("Language")

        for r in records:
            row = [r.entity_id, r.profile.display_name or "[dim]unknown[/dim]"]
            if groups:
                row.append(str(r.profile.member_count or len(r.participants)))
            row += [str(r.stats.message_count), r.preferences.language]
            table.add_row(*row)
        console.print(table)

    asyncio.run(_contacts())


@cli.command()
@click.argument("name")
def resolve(name):
    """Resolve NAME to a stored address."""
    async def _resolve():
        from herald.resolver import IdentityResolver

        settings, store = open_store()
        resolver = IdentityResolver(store, match=settings.resolver_match)
        return await resolver.resolve_name_to_address(name)

    address = asyncio.run(_resolve())
    if address is None:
        console.print(f"[yellow]No address found for '{name}'[/yellow]")
        sys.exit(1)
    console.print(f"[green]{name}[/green] → {address}")


@cli.command()
@click.argument("text")
def mentions(text):
    """Preview mention extraction for TEXT."""
    from herald.dispatcher import normalize_address
    from herald.language import detect_language, detect_relay_intent
    from herald.mentions import RegexMentionExtractor

    extractor = RegexMentionExtractor()
    found = extractor.extract(text)
    payload = extractor.strip_mentions(text, found.numbers, found.names)

    table = Table(show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for number in found.numbers:
        table.add_row("Number", f"{number} → {normalize_address(number) or '[red]invalid[/red]'}")
    for name in found.names:
        table.add_row("Name", name)
    if not found:
        table.add_row("Mentions", "[dim]none[/dim]")
    table.add_row("Payload", payload or "[dim](empty)[/dim]")
    table.add_row("Language", detect_language(payload or text))
    table.add_row("Relay intent", "yes" if detect_relay_intent(text, payload) else "no")
    console.print(table)
