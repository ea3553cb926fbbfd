"""Rich progress display for uploads."""

from typing import Dict, Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class RichUploadProgress:
    """ProgressCallback rendering one transfer bar per object key.

    Use as a context manager around the upload call; bars are only drawn
    for blobs that actually get uploaded (dedup hits never start a bar).
    """

    def __init__(self, console: Optional[Console] = None):
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._tasks: Dict[str, TaskID] = {}

    def __enter__(self) -> "RichUploadProgress":
        self._progress.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.stop()

    def on_upload_start(self, key: str, total: int) -> None:
        self._tasks[key] = self._progress.add_task(f"↑ {key}", total=total)

    def on_progress(self, key: str, transferred: int) -> None:
        task = self._tasks.get(key)
        if task is not None:
            self._progress.update(task, completed=transferred)

    def on_upload_complete(self, key: str) -> None:
        task = self._tasks.pop(key, None)
        if task is not None:
            self._progress.stop_task(task)
