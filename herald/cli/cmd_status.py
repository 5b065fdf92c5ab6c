"""Status command."""

import asyncio

from rich.table import Table

from . import cli
from .shared import console, open_store


@cli.command()
def status():
    """Show Herald status."""
    async def _status():
        from herald import __version__ as herald_version

        settings, store = open_store()
        counts = await store.counts()

        table = Table(title=f"Herald Status v{herald_version}", show_header=False, padding=(0, 2))
        table.add_column("Key", style="bold")
        table.add_column("Value")

        table.add_row("Version", herald_version)
        table.add_row("Data dir", settings.data_dir)
        table.add_row("Contacts", str(counts["direct"]))
        table.add_row("Groups", str(counts["groups"]))
        table.add_row("Messages", str(counts["messages"]))
        table.add_row("Relay language", settings.relay_language)
        table.add_row("Name matching", settings.resolver_match)
        if settings.ai_enabled and settings.llm_api_key:
            table.add_row("AI", f"[green]{settings.llm_model}[/green] @ {settings.llm_base_url}")
        else:
            table.add_row("AI", "[yellow]disabled (no API key)[/yellow]")
        auto = []
        if settings.auto_reply_enabled and settings.group_auto_reply:
            auto.append("groups")
        if settings.auto_reply_enabled and settings.direct_auto_reply:
            auto.append("direct")
        table.add_row("Auto-reply", ", ".join(auto) or "off")

        console.print(table)

    asyncio.run(_status())
