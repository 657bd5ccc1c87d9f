"""CLI progress display for transfer operations.

This module provides a Rich-based progress display that follows the
per-file events emitted by a Delivery.
"""

from typing import Optional, Union

from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.engine import Delivery
from .sync.events import DOWNLOAD, UPLOAD
from .sync.models import DownloadOutcome, UploadOutcome
from .utils import format_size

Outcome = Union[UploadOutcome, DownloadOutcome]


class TransferProgressDisplay:
    """Rich-based progress display for a batch upload or download.

    The display counts completed files and shows the last key handled,
    along with how many were skipped as identical and how many bytes moved.
    """

    def __init__(self, delivery: Delivery, event: str = UPLOAD, total: Optional[int] = None):
        """Initialize the progress display.

        Args:
            delivery: Delivery whose events drive the display
            event: Per-file event to follow (``upload`` or ``download``)
            total: Number of files expected, if known
        """
        if event not in (UPLOAD, DOWNLOAD):
            raise ValueError(f"Progress can only follow per-file events, not {event!r}")
        self.delivery = delivery
        self.event = event
        self.total = total
        self.transferred = 0
        self.skipped = 0
        self.bytes_transferred = 0
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None

    def _format_stats(self) -> str:
        return (
            f"{self.skipped} unchanged, {format_size(self.bytes_transferred)} transferred"
        )

    def _handle_outcome(self, outcome: Outcome) -> None:
        """Handle a per-file event from the delivery.

        Args:
            outcome: Upload or download outcome
        """
        if outcome.is_identical:
            self.skipped += 1
        else:
            self.transferred += 1
            self.bytes_transferred += outcome.size

        if self._progress is not None and self._task is not None:
            self._progress.update(
                self._task,
                advance=1,
                description=outcome.key,
                stats=self._format_stats(),
            )

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        verb = "Uploading" if self.event == UPLOAD else "Downloading"
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[stats]}"),
            TimeElapsedColumn(),
            refresh_per_second=4,
            transient=True,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task(
            f"{verb}...", total=self.total, stats=self._format_stats()
        )
        self.delivery.on(self.event, self._handle_outcome)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        self.delivery.off(self.event, self._handle_outcome)
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
