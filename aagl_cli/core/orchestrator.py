"""
The update pipeline: prefix check, game package, then every selected voice
package, one stream at a time.

The pipeline is a finite state machine. Each state has a handler, and the next
state is looked up in `TRANSITIONS` from the handler's outcome. Any
`AaglCliError` moves the machine to ABORTED; whatever was already downloaded
stays on disk, and the completion checker keeps the next run from fetching it
again.
"""

import inspect
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from aagl_cli.api.client import VersionsAPIClient
from aagl_cli.exceptions import AaglCliError, PrerequisiteError, TargetNotFoundError
from aagl_cli.media.downloader import unpack_archive
from aagl_cli.models.events import DownloadProgress, StreamEvent
from aagl_cli.models.metadata import AddOnPackage, PackageDescriptor, VersionMetadata
from aagl_cli.models.stats import DownloadStats

from .completion import DownloadCompletionChecker
from .inspector import InstalledStateInspector
from .resolver import (
    Resolution,
    ResolutionStatus,
    resolve_add_on_target,
    resolve_download_target,
)

log = logging.getLogger(__name__)


class UpdateMode(Enum):
    PREDOWNLOAD = "predownload"
    UPDATE = "update"


class PipelineState(Enum):
    ENSURE_PREREQUISITE = "ensure_prerequisite"
    RESOLVE_BASE_TARGET = "resolve_base_target"
    STREAM_BASE_DOWNLOAD = "stream_base_download"
    RESOLVE_ADD_ON_TARGETS = "resolve_add_on_targets"
    STREAM_ADD_ON_DOWNLOADS = "stream_add_on_downloads"
    DONE = "done"
    ABORTED = "aborted"


class Outcome(Enum):
    ADVANCE = "advance"
    NOTHING_TO_DO = "nothing_to_do"


TRANSITIONS: dict[tuple[PipelineState, Outcome], PipelineState] = {
    (PipelineState.ENSURE_PREREQUISITE, Outcome.ADVANCE): PipelineState.RESOLVE_BASE_TARGET,
    (PipelineState.RESOLVE_BASE_TARGET, Outcome.ADVANCE): PipelineState.STREAM_BASE_DOWNLOAD,
    (PipelineState.RESOLVE_BASE_TARGET, Outcome.NOTHING_TO_DO): PipelineState.DONE,
    (PipelineState.STREAM_BASE_DOWNLOAD, Outcome.ADVANCE): PipelineState.RESOLVE_ADD_ON_TARGETS,
    (PipelineState.RESOLVE_ADD_ON_TARGETS, Outcome.ADVANCE): PipelineState.STREAM_ADD_ON_DOWNLOADS,
    (PipelineState.STREAM_ADD_ON_DOWNLOADS, Outcome.ADVANCE): PipelineState.DONE,
}

TERMINAL_STATES = (PipelineState.DONE, PipelineState.ABORTED)


@dataclass(frozen=True)
class StateChanged:
    state: PipelineState


@dataclass(frozen=True)
class StageEvent:
    """A download lifecycle event; `locale` is None for the game package."""

    locale: str | None
    event: StreamEvent


@dataclass(frozen=True)
class PipelineAborted:
    failed_state: PipelineState
    error: AaglCliError


PipelineEvent = StateChanged | StageEvent | PipelineAborted


@dataclass
class PipelineResult:
    state: PipelineState
    nothing_to_do: bool = False
    failed_state: PipelineState | None = None
    error: AaglCliError | None = None
    downloaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE


class Prerequisite(Protocol):
    async def exists(self) -> bool: ...

    async def create(self) -> None: ...


class StreamLike(Protocol):
    def events(self) -> AsyncIterator[StreamEvent]: ...


StreamFactory = Callable[[PackageDescriptor | AddOnPackage, bool], StreamLike]
NotFoundPolicy = Callable[[Resolution, VersionMetadata], Resolution | None]


class UpdateOrchestrator:
    """
    Runs the pipeline once. Iterate `events()` to observe it, or call `run()`
    with an optional subscriber.
    """

    def __init__(
        self,
        metadata_client: VersionsAPIClient,
        inspector: InstalledStateInspector,
        checker: DownloadCompletionChecker,
        stream_factory: StreamFactory,
        selected_locales: Sequence[str] = (),
        mode: UpdateMode = UpdateMode.PREDOWNLOAD,
        prerequisite: Prerequisite | None = None,
        on_target_not_found: NotFoundPolicy | None = None,
        stats: DownloadStats | None = None,
    ):
        """
        Args:
            metadata_client: Source of the channel's version metadata.
            inspector: Reads installed versions from disk.
            checker: Detects artifacts that are already downloaded.
            stream_factory: Builds a download stream for an artifact; the bool
                argument is `skip_unpack`.
            selected_locales: Voice packages to handle, in order.
            mode: PREDOWNLOAD fetches the pre-release archives without
                unpacking; UPDATE installs the latest version, unpacking archives
                that are already downloaded instead of fetching them again.
            prerequisite: Environment that must exist before downloading.
            on_target_not_found: Policy consulted when no target matches the
                installed version. Returning None aborts the run.
            stats: Session statistics to update.
        """
        self.metadata_client = metadata_client
        self.inspector = inspector
        self.checker = checker
        self.stream_factory = stream_factory
        self.selected_locales = list(selected_locales)
        self.mode = mode
        self.prerequisite = prerequisite
        self.on_target_not_found = on_target_not_found
        self.stats = stats or DownloadStats()

        self._state = PipelineState.ENSURE_PREREQUISITE
        self._outcome = Outcome.ADVANCE
        self._result: PipelineResult | None = None
        self._metadata: VersionMetadata | None = None
        self._base: Resolution | None = None
        self._add_ons: list[Resolution] = []
        self._downloaded: list[str] = []
        self._skipped: list[str] = []
        self._handlers = {
            PipelineState.ENSURE_PREREQUISITE: self._ensure_prerequisite,
            PipelineState.RESOLVE_BASE_TARGET: self._resolve_base_target,
            PipelineState.STREAM_BASE_DOWNLOAD: self._stream_base_download,
            PipelineState.RESOLVE_ADD_ON_TARGETS: self._resolve_add_on_targets,
            PipelineState.STREAM_ADD_ON_DOWNLOADS: self._stream_add_on_downloads,
        }

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def result(self) -> PipelineResult | None:
        return self._result

    @property
    def predownload(self) -> bool:
        return self.mode is UpdateMode.PREDOWNLOAD

    async def events(self) -> AsyncIterator[PipelineEvent]:
        if self._state is not PipelineState.ENSURE_PREREQUISITE:
            raise RuntimeError("An orchestrator can only run once.")

        nothing_to_do = False
        while self._state not in TERMINAL_STATES:
            yield StateChanged(self._state)
            self._outcome = Outcome.ADVANCE
            try:
                step = self._handlers[self._state]()
                if inspect.isasyncgen(step):
                    async for event in step:
                        yield event
                else:
                    await step
            except AaglCliError as e:
                failed_state = self._state
                log.error(f"[red]✗ Update aborted during {failed_state.value}: {e}[/red]")
                self._state = PipelineState.ABORTED
                self._result = PipelineResult(
                    PipelineState.ABORTED,
                    failed_state=failed_state,
                    error=e,
                    downloaded=list(self._downloaded),
                    skipped=list(self._skipped),
                )
                yield PipelineAborted(failed_state, e)
                return

            nothing_to_do = nothing_to_do or self._outcome is Outcome.NOTHING_TO_DO
            self._state = TRANSITIONS[(self._state, self._outcome)]

        self._result = PipelineResult(
            PipelineState.DONE,
            nothing_to_do=nothing_to_do,
            downloaded=list(self._downloaded),
            skipped=list(self._skipped),
        )
        yield StateChanged(self._state)

    async def run(
        self, subscriber: Callable[[PipelineEvent], None] | None = None
    ) -> PipelineResult:
        async for event in self.events():
            if subscriber:
                subscriber(event)
        return self._result

    # --- State handlers ---

    async def _ensure_prerequisite(self) -> None:
        if self.prerequisite is None or await self.prerequisite.exists():
            return
        await self.prerequisite.create()
        if not await self.prerequisite.exists():
            raise PrerequisiteError("Prefix creation finished but the prefix is missing.")

    async def _resolve_base_target(self) -> None:
        self._metadata = await self.metadata_client.get_metadata()
        current = await self.inspector.current_game_version()

        if not self.predownload and current == self._metadata.latest.version:
            log.info(f"[green]✓ Game is up to date ({current}).[/green]")
            self._skipped.append("game")
            self.stats.packages_skipped_current += 1
            return

        resolution = resolve_download_target(self._metadata, current, self.predownload)
        if resolution.status is ResolutionStatus.NO_PRE_DOWNLOAD:
            log.info("[yellow]No pre-download is available right now.[/yellow]")
            self._outcome = Outcome.NOTHING_TO_DO
            return

        self._base = self._require(resolution, current, "game")
        log.debug(
            f"Game target: {self._base.target.kind.value} package "
            f"'{self._base.artifact.file_name}' -> {self._base.target.to_version}"
        )

    async def _stream_base_download(self):
        if self._base is None:
            return
        if await self.checker.is_complete(self._base.target):
            self._skipped.append("game")
            self.stats.packages_skipped_complete += 1
            if self.predownload:
                log.info("[dim]Game package is already downloaded.[/dim]")
            else:
                await self._install_downloaded(self._base.artifact)
            return
        async for event in self._stream(self._base, None):
            yield event

    async def _resolve_add_on_targets(self) -> None:
        installed = {
            add_on.locale: add_on.version
            for add_on in await self.inspector.list_installed(
                self._metadata.latest.version, self.selected_locales
            )
        }

        self._add_ons = []
        for locale in self.selected_locales:
            version = installed.get(locale)
            if not self.predownload and version == self._metadata.latest.version:
                log.info(f"[green]✓ {locale} voice package is up to date.[/green]")
                self._skipped.append(locale)
                self.stats.packages_skipped_current += 1
                continue

            resolution = resolve_add_on_target(
                self._metadata, locale, version, self.predownload
            )
            self._add_ons.append(
                self._require(resolution, version, f"{locale} voice package")
            )

    async def _stream_add_on_downloads(self):
        for resolution in self._add_ons:
            locale = resolution.locale
            if await self.checker.is_complete(resolution.target, [locale]):
                self._skipped.append(locale)
                self.stats.packages_skipped_complete += 1
                if self.predownload:
                    log.info(f"[dim]{locale} voice package is already downloaded.[/dim]")
                    continue
                await self._install_downloaded(resolution.artifact)
            else:
                async for event in self._stream(resolution, locale):
                    yield event

            if not self.predownload:
                await self.inspector.write_marker(locale, resolution.target.to_version)

    # --- Helpers ---

    def _require(
        self, resolution: Resolution, current: str | None, what: str
    ) -> Resolution:
        """Returns a found resolution, consulting the not-found policy otherwise."""
        if resolution.found:
            return resolution

        if self.on_target_not_found is not None:
            replacement = self.on_target_not_found(resolution, self._metadata)
            if replacement is not None and replacement.found:
                log.info(
                    f"[yellow]No diff for {what} {current}; using "
                    f"{replacement.target.kind.value} package instead.[/yellow]"
                )
                return replacement

        if resolution.status is ResolutionStatus.ADD_ON_NOT_FOUND:
            raise TargetNotFoundError(
                f"The server does not provide a {what} for this update."
            )
        raise TargetNotFoundError(
            f"No update for {what} from version {current} is available."
        )

    async def _install_downloaded(
        self, artifact: PackageDescriptor | AddOnPackage
    ) -> None:
        """Unpacks an archive left by a pre-download or an interrupted install."""
        log.info(f"[cyan]Installing already downloaded '{artifact.file_name}'...[/cyan]")
        download_dir = self.checker.download_dir
        await unpack_archive(download_dir / artifact.file_name, download_dir)

    async def _stream(self, resolution: Resolution, locale: str | None):
        artifact = resolution.artifact
        stream = self.stream_factory(artifact, self.predownload)
        async for event in stream.events():
            if isinstance(event, DownloadProgress):
                self.stats.add_transferred(event.bytes_delta)
            yield StageEvent(locale, event)

        self.stats.packages_downloaded += 1
        self._downloaded.append(locale or "game")
        log.info(f"[green]✓ Downloaded '{artifact.file_name}'[/green]")
