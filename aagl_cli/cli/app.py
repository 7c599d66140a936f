"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from aagl_cli import __version__
from aagl_cli.api.client import VersionsAPIClient
from aagl_cli.core.completion import DownloadCompletionChecker
from aagl_cli.core.inspector import InstalledStateInspector
from aagl_cli.core.orchestrator import UpdateMode, UpdateOrchestrator
from aagl_cli.core.prefix import PrefixManager
from aagl_cli.core.resolver import full_package_fallback
from aagl_cli.exceptions import AaglCliError
from aagl_cli.media.downloader import Downloader, DownloadStream, close_connection_pool
from aagl_cli.models.config import CHANNELS, VOICE_LANGS, LauncherConfig
from aagl_cli.models.stats import DownloadStats
from aagl_cli.storage.cache import CacheManager
from aagl_cli.storage.config_manager import ConfigManager

from .formatters import (
    print_config,
    print_status_table,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("aagl_cli")

app = typer.Typer(
    name="aagl-cli",
    help=(
        "Resolve, download and pre-download game and voice package updates. "
        "Use 'aagl-cli <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "aagl-cli"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _make_client(config: LauncherConfig, stats: DownloadStats | None = None):
    cache = CacheManager(
        Path(config.config_path),
        max_age_seconds=config.cache_ttl_seconds,
        stats_callback=stats.record_cache if stats else None,
    )
    return VersionsAPIClient(
        config.versions_uri,
        config.channel,
        cache=cache,
        ttl_seconds=config.cache_ttl_seconds,
    )


def _make_inspector(config: LauncherConfig) -> InstalledStateInspector:
    return InstalledStateInspector(
        config.game_path, config.data_path, config.voice_path
    )


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the versions metadata cache and exit."
    ),
):
    """Game update and pre-download CLI"""
    if version:
        console.print(f"[bold]aagl-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("aagl_cli").setLevel(log_level)

    if clear_cache:
        cache = CacheManager(CONFIG_DIR)
        console.print("[cyan]Clearing versions metadata cache...[/cyan]")
        files_count = len(list(cache.cache_dir.glob("*.json")))
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} entries removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]aagl-cli init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_config(CONFIG_FILE, config.model_dump(exclude={"config_path"}))
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    versions_uri: str = typer.Argument(..., help="URL of the versions resource."),
    game_dir: Path = typer.Option(  # noqa: B008
        ..., "--game-dir", "-g", help="Directory the game is installed into."
    ),
    prefix_dir: Path = typer.Option(  # noqa: B008
        ..., "--prefix-dir", "-p", help="Wine prefix directory."
    ),
    channel: str = typer.Option(
        "global", "--channel", "-c", help=f"One of: {', '.join(CHANNELS)}."
    ),
    voices: list[str] = typer.Option(  # noqa: B008
        ["en-us"],
        "--voice",
        help=f"Voice package to keep updated (repeatable): {', '.join(VOICE_LANGS)}.",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {
        "versions_uri": versions_uri,
        "game_dir": str(game_dir.expanduser()),
        "prefix_dir": str(prefix_dir.expanduser()),
        "channel": channel,
        "selected_voices": voices,
    }
    config_manager = ConfigManager(CONFIG_FILE)
    config_manager.save_new_config(settings)
    try:
        config_manager.load_config()
    except AaglCliError as e:
        console.print(f"[red]✗ The new configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Check for updates with: [cyan]aagl-cli status[/cyan]")


@app.command()
def status(
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Ignore the cached versions metadata."
    ),
):
    """Show installed versions next to the latest ones."""

    async def _status_async():
        config = ConfigManager(CONFIG_FILE).load_config()
        client = _make_client(config)
        inspector = _make_inspector(config)
        try:
            metadata = await client.get_metadata(force_refresh=refresh)
            game_version = await inspector.current_game_version()
            installed = await inspector.list_installed(metadata.latest.version)
        finally:
            await client.close()
        print_status_table(metadata, game_version, installed)

    try:
        asyncio.run(_status_async())
    except AaglCliError as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        raise typer.Exit(code=1) from e


def _run_pipeline(
    mode: UpdateMode, voices: list[str] | None, full_fallback: bool
) -> None:
    cli_options = {"selected_voices": voices} if voices else None
    config = ConfigManager(CONFIG_FILE).load_config(cli_options)
    predownload = mode is UpdateMode.PREDOWNLOAD

    async def _pipeline_async():
        stats = DownloadStats()
        client = _make_client(config, stats)
        downloader = Downloader(max_attempts=config.max_attempts)

        def stream_factory(artifact, skip_unpack: bool) -> DownloadStream:
            return DownloadStream(
                artifact.path,
                config.game_path,
                file_name=artifact.file_name,
                expected_size=artifact.size,
                skip_unpack=skip_unpack,
                downloader=downloader,
            )

        orchestrator = UpdateOrchestrator(
            client,
            _make_inspector(config),
            DownloadCompletionChecker(config.game_path, config.verify_checksums),
            stream_factory,
            selected_locales=config.selected_voices,
            mode=mode,
            prerequisite=PrefixManager(config.prefix_path, config.wineboot),
            on_target_not_found=(
                full_package_fallback(predownload) if full_fallback else None
            ),
            stats=stats,
        )

        start_time = time.monotonic()
        try:
            async with ProgressManager(console, predownload) as progress_manager:
                result = await orchestrator.run(progress_manager.handle)
        finally:
            await close_connection_pool()
            await client.close()

        print_summary_panel(stats, result, time.monotonic() - start_time, predownload)
        if not result.ok:
            raise typer.Exit(code=1)

    asyncio.run(_pipeline_async())


@app.command()
def predownload(
    voices: list[str] | None = typer.Option(  # noqa: B008
        None, "--voice", help="Override the configured voice packages (repeatable)."
    ),
    full_fallback: bool = typer.Option(
        False,
        "--full-fallback",
        help="Download the full package when no diff matches the installed version.",
    ),
):
    """Pre-download the upcoming game and voice package update."""
    _run_pipeline(UpdateMode.PREDOWNLOAD, voices, full_fallback)


@app.command()
def update(
    voices: list[str] | None = typer.Option(  # noqa: B008
        None, "--voice", help="Override the configured voice packages (repeatable)."
    ),
    full_fallback: bool = typer.Option(
        False,
        "--full-fallback",
        help="Download the full package when no diff matches the installed version.",
    ),
):
    """Download and install the latest game and voice packages."""
    _run_pipeline(UpdateMode.UPDATE, voices, full_fallback)


@app.command(name="delete-voice")
def delete_voice(
    locale: str = typer.Argument(..., help=f"One of: {', '.join(VOICE_LANGS)}."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Delete an installed voice package."""
    if locale not in VOICE_LANGS:
        console.print(f"[red]✗ Unknown voice package '{locale}'.[/red]")
        raise typer.Exit(code=1)
    if not force and not typer.confirm(
        f"Delete the {VOICE_LANGS[locale]} ({locale}) voice package?"
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    config = ConfigManager(CONFIG_FILE).load_config()
    asyncio.run(_make_inspector(config).remove(locale))


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        config_manager = ConfigManager(CONFIG_FILE)
        config = config_manager.load_config()
        print_validation_table(config)
    except AaglCliError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def diagnose():
    """Diagnose common configuration, prefix and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[red]✗ Config file not found.[/] Run [cyan]aagl-cli init[/cyan].")
        raise typer.Exit(code=1)
    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration file is valid and can be loaded.")
    except AaglCliError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    async def _checks() -> bool:
        ok = True
        if await PrefixManager(config.prefix_path, config.wineboot).exists():
            console.print(f"[green]✓[/] Wine prefix found at: [dim]{config.prefix_path}[/dim]")
        else:
            console.print(
                "[yellow]○ Wine prefix not created yet; it will be created on the "
                "next download.[/yellow]"
            )

        console.print("\n[dim]Testing connectivity to the versions server...[/dim]")
        client = _make_client(config)
        try:
            metadata = await client.get_metadata(force_refresh=True)
            console.print(
                f"[green]✓[/] Versions server reachable (latest "
                f"{metadata.latest.version})."
            )
        except AaglCliError as e:
            console.print(f"[red]✗ Versions server check failed: {e}[/red]")
            ok = False
        finally:
            await client.close()
        return ok

    if not asyncio.run(_checks()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
