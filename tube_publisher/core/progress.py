"""
Progress bar handling for tube-publisher using Rich library.

Bars are built on a common base class and theme:
    - UploadProgressBar: bytes acknowledged by the resumable endpoint

Usage:
    from tube_publisher.core.progress import UploadProgressBar

    with UploadProgressBar(total=session.total_length) as progress:
        session.upload(source, progress_callback=progress.update)
"""

from abc import ABC, abstractmethod
from typing import Optional

from rich import get_console
from rich.console import JustifyMethod, OverflowMethod
from rich.highlighter import Highlighter
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    Task,
    TaskID,
)
from rich.style import StyleType
from rich.text import Text
from rich.theme import Theme

from tube_publisher.utils import format_file_size


# =============================================================================
# Common Theme
# =============================================================================

PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(204,0,0)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(204,0,0)",
    "progress.percentage": "white",
})


# =============================================================================
# Custom Column
# =============================================================================

class SizedTextColumn(ProgressColumn):
    """
    Text column truncated with an ellipsis past a fixed width.
    """

    def __init__(
        self,
        text_format: str,
        style: StyleType = "none",
        justify: JustifyMethod = "left",
        markup: bool = True,
        highlighter: Optional[Highlighter] = None,
        overflow: Optional[OverflowMethod] = None,
        width: int = 20,
    ) -> None:
        self.text_format = text_format
        self.justify: JustifyMethod = justify
        self.style = style
        self.markup = markup
        self.highlighter = highlighter
        self.overflow: Optional[OverflowMethod] = overflow
        self.width = width
        super().__init__()

    def render(self, task: Task) -> Text:
        """Render the column."""
        _text = self.text_format.format(task=task)
        if self.markup:
            text = Text.from_markup(_text, style=self.style, justify=self.justify)
        else:
            text = Text(_text, style=self.style, justify=self.justify)
        if self.highlighter:
            self.highlighter.highlight(text)

        text.truncate(max_width=self.width, overflow=self.overflow, pad=True)
        return text


# =============================================================================
# Base Progress Bar
# =============================================================================

class BaseProgressBar(ABC):
    """
    Abstract base class for all progress bars.

    Provides common functionality:
    - Rich Progress instance with the shared theme
    - Context manager support (__enter__/__exit__)
    - Manual start/stop control

    Subclasses must implement:
    - _get_status_text(): Return formatted status string
    - update(): Update progress with bar-specific logic
    """

    def __init__(
        self,
        total: int,
        description: str,
        status_width: int = 35
    ):
        """
        Initialize the progress bar.

        Args:
            total: Total amount of work (bytes or items).
            description: Description to show on the left.
            status_width: Width of the status column.
        """
        self.total = total
        self.description = description
        self.completed = 0

        self.console = get_console()
        self.console.push_theme(PROGRESS_THEME)

        self.progress = Progress(
            SizedTextColumn(
                "[white]{task.description}",
                overflow="ellipsis",
                width=15,
            ),
            SizedTextColumn(
                "{task.fields[status]}",
                width=status_width,
                style="white",
            ),
            BarColumn(bar_width=40, finished_style="green"),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )

        self.task_id: Optional[TaskID] = None
        self._started = False

    def __enter__(self) -> "BaseProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        """Start the progress bar (can be called manually)."""
        if not self._started:
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                completed=self.completed,
                status=self._get_status_text(),
            )
            self._started = True

    def stop(self) -> None:
        """Stop the progress bar."""
        if self._started:
            self.progress.stop()
            self._started = False

    def _update_progress(self) -> None:
        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._get_status_text(),
            )

    @abstractmethod
    def _get_status_text(self) -> str:
        pass

    @abstractmethod
    def update(self, *args, **kwargs) -> None:
        pass


# =============================================================================
# Upload Progress Bar
# =============================================================================

class UploadProgressBar(BaseProgressBar):
    """
    Progress bar for one resumable upload.

    update() takes the acknowledged byte offset, so the bar can be passed
    directly as the session's progress callback. A resumed upload starts
    at its resume offset rather than at zero.

    Example:
        Uploading       128.0 MB / 1.2 GB          ━━━━━━━━━━━━━━━━━  10%
    """

    def __init__(self, total: int, description: str = "Uploading"):
        super().__init__(total=total, description=description)

    def _get_status_text(self) -> str:
        return f"{format_file_size(self.completed)} / {format_file_size(self.total)}"

    def update(self, offset: int) -> None:
        """
        Args:
            offset: Bytes acknowledged so far.
        """
        self.completed = offset
        self._update_progress()


__all__ = [
    "PROGRESS_THEME",
    "SizedTextColumn",
    "BaseProgressBar",
    "UploadProgressBar",
]
