"""
Renders orchestrator events as a Rich progress bar, one task per package.
"""

import logging

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from aagl_cli.core.orchestrator import (
    PipelineAborted,
    PipelineEvent,
    StageEvent,
    StateChanged,
)
from aagl_cli.models.events import DownloadFinished, DownloadProgress, DownloadStarted
from aagl_cli.utils.formatting import describe_stage

log = logging.getLogger("aagl_cli")


class ProgressManager:
    """
    Subscribes to an `UpdateOrchestrator` and shows speed, ETA, percentage and
    totals for the package currently being transferred.
    """

    def __init__(self, console: Console, predownload: bool = True):
        self.console = console
        self.predownload = predownload

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            DownloadColumn(),
            "•",
            TransferSpeedColumn(),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._task_id: TaskID | None = None

    def handle(self, event: PipelineEvent) -> None:
        """Orchestrator subscriber."""
        if isinstance(event, StateChanged):
            log.debug(f"Pipeline state: {event.state.value}")
        elif isinstance(event, StageEvent):
            self._handle_stream_event(event)
        elif isinstance(event, PipelineAborted):
            self._finish_task()

    def _handle_stream_event(self, stage_event: StageEvent) -> None:
        event = stage_event.event
        if isinstance(event, DownloadStarted):
            self._finish_task()
            self._task_id = self.progress.add_task(
                describe_stage(stage_event.locale, self.predownload),
                total=event.bytes_total,
                start=True,
            )
        elif isinstance(event, DownloadProgress) and self._task_id is not None:
            self.progress.update(
                self._task_id, completed=event.bytes_done, total=event.bytes_total
            )
        elif isinstance(event, DownloadFinished):
            self._finish_task()

    def _finish_task(self) -> None:
        if self._task_id is not None:
            self.progress.stop_task(self._task_id)
            self._task_id = None

    async def __aenter__(self):
        self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._finish_task()
        self.progress.stop()
