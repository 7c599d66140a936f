"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from aagl_cli.core.inspector import InstalledAddOn
from aagl_cli.core.orchestrator import PipelineResult
from aagl_cli.models.config import VOICE_LANGS, LauncherConfig
from aagl_cli.models.metadata import VersionMetadata, available_versions
from aagl_cli.models.stats import DownloadStats
from aagl_cli.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `aagl-cli init` to create a configuration file.",
            "• Check the values with `aagl-cli --show-config`.",
        ],
        "MetadataUnavailableError": [
            "• Check your internet connection.",
            "• The versions server might be temporarily unavailable.",
            "• Verify `versions_uri` in the configuration file.",
        ],
        "MetadataResponseError": [
            "• The versions server rejected the request or changed its format.",
            "• Run `aagl-cli --clear-cache` and try again.",
        ],
        "TargetNotFoundError": [
            "• Your installed version is too old for an incremental update.",
            "• Re-run with `--full-fallback` to download the full package.",
        ],
        "TransportError": [
            "• A download failed. Already downloaded parts are kept.",
            "• Run the same command again to resume.",
        ],
        "UnpackError": [
            "• The downloaded archive is damaged. Delete it and try again.",
            "• Check the free space of the game directory.",
        ],
        "PrerequisiteError": [
            "• Make sure wine is installed and `wineboot` is on your PATH.",
            "• Set `wineboot` in the configuration file to its full path.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: LauncherConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Channel:", f"[green]{config.channel}[/green]")
    table.add_row("Versions URI:", f"[dim]{config.versions_uri}[/dim]")
    table.add_row("Game Directory:", str(config.game_path))
    table.add_row("Prefix Directory:", str(config.prefix_path))
    table.add_row("Voice Packages:", ", ".join(config.selected_voices) or "none")
    table.add_row("Cache TTL:", f"{config.cache_ttl_hours:g}h")
    table.add_row(
        "Verify Checksums:", "✓ Enabled" if config.verify_checksums else "✗ Disabled"
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_status_table(
    metadata: VersionMetadata,
    game_version: str | None,
    installed: list[InstalledAddOn],
):
    """Displays installed versions next to what the server offers."""
    console = Console()
    latest = metadata.latest.version

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()

    table.add_row("Latest Version:", f"[green]{latest}[/green]")
    table.add_row("Known Versions:", ", ".join(available_versions(metadata)))
    if metadata.pre_download:
        table.add_row(
            "Pre-download:",
            f"[magenta]{metadata.pre_download.latest.version} available[/magenta]",
        )
    else:
        table.add_row("Pre-download:", "[dim]not available[/dim]")

    if game_version is None:
        table.add_row("Installed Game:", "[yellow]not installed[/yellow]")
    else:
        color = "green" if game_version == latest else "yellow"
        table.add_row("Installed Game:", f"[{color}]{game_version}[/{color}]")

    voices = Table(box=box.SIMPLE, show_edge=False)
    voices.add_column("Voice", style="cyan")
    voices.add_column("Version")
    voices.add_column("Source", style="dim")
    by_locale = {add_on.locale: add_on for add_on in installed}
    for locale, folder in VOICE_LANGS.items():
        add_on = by_locale.get(locale)
        if add_on is None:
            voices.add_row(f"{locale} ({folder})", "[dim]not installed[/dim]", "")
            continue
        color = "green" if add_on.version == latest else "yellow"
        source = "estimated" if add_on.source == "footprint" else "marker"
        voices.add_row(
            f"{locale} ({folder})", f"[{color}]{add_on.version}[/{color}]", source
        )

    content = Table.grid(padding=(1, 0))
    content.add_row(table)
    content.add_row(voices)
    console.print(Panel(content, title="[bold]Installation Status[/bold]", expand=False))


def print_summary_panel(
    stats: DownloadStats, result: PipelineResult, duration_s: float, predownload: bool
):
    """Displays the final summary of the update session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Downloaded:", f"[bold green]{stats.packages_downloaded}[/bold green]"
    )

    skip_sections = []
    if stats.packages_skipped_complete > 0:
        skip_sections.append(
            f"[yellow]{stats.packages_skipped_complete} (downloaded)[/yellow]"
        )
    if stats.packages_skipped_current > 0:
        skip_sections.append(
            f"[yellow]{stats.packages_skipped_current} (up to date)[/yellow]"
        )
    if skip_sections:
        stats_table.add_row("○ Skipped:", " + ".join(skip_sections))

    if result.error is not None:
        stats_table.add_row(
            "✗ Failed At:", f"[bold red]{result.failed_state.value}[/bold red]"
        )

    stats_table.add_row("", "")  # Spacer

    stats_table.add_row(
        "Total Size:", f"[cyan]{format_size(stats.bytes_transferred)}[/cyan]"
    )
    avg_speed = stats.bytes_transferred / duration_s if duration_s > 0 else 0
    stats_table.add_row(
        "Avg. Speed:", f"[magenta]{format_size(int(avg_speed))}/s[/magenta]"
    )
    if stats.peak_speed_bps > 0:
        stats_table.add_row(
            "Peak Speed:",
            f"[magenta]{format_size(int(stats.peak_speed_bps))}/s[/magenta]",
        )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    total_cache = stats.cache_hits + stats.cache_misses
    if total_cache > 0:
        stats_table.add_row(
            "Metadata Cache:",
            f"[green]{stats.cache_hits} hit(s)[/green], {stats.cache_misses} miss(es)",
        )

    if not result.ok:
        title = "✗ [bold]Update Aborted[/bold]"
        border_color = "red"
    elif result.nothing_to_do:
        title = "○ [bold]Nothing To Do[/bold]"
        border_color = "yellow"
    else:
        title = (
            "⬇ [bold]Pre-download Complete![/bold]"
            if predownload
            else "✓ [bold]Update Complete![/bold]"
        )
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
    console.print()
