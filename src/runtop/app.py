"""runtop - Textual viewer for live reports."""

import tempfile
from pathlib import Path

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import Footer, Static

from runtop.config import MonitorConfig
from runtop.controller import Controller, State
from runtop.log import configure
from runtop.models import Report
from runtop.provider import MetricsProvider, PsutilProvider
from runtop.ranking import resolve_sort_field
from runtop.render import render

# Sort names cycled by the "s" binding
SORT_CYCLE = ("reds_diff", "memory", "msgq", "reds", "percent", "pid", "name", "status")


class ReportView(Static):
    """Widget showing the most recent report as fixed-width text."""

    DEFAULT_CSS = """
    ReportView {
        width: auto;
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ReportView."""
        super().__init__("Waiting for first report...", *args, **kwargs)
        self._report: Report | None = None
        self._text: str = ""

    @property
    def report(self) -> Report | None:
        return self._report

    @property
    def text(self) -> str:
        """The last rendered report text."""
        return self._text

    def show(self, report: Report, sort: str | None, human: bool, limit: int | None) -> None:
        """Render report and display it."""
        self._report = report
        self._text = render(report, sort=sort, human=human, limit=limit)
        self.update(Text(self._text, no_wrap=True))


class RuntopApp(App):
    """Main runtop application."""

    TITLE = "runtop"
    SUB_TITLE = "Process Monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #report-container {
        height: 1fr;
        border: solid $primary;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
        ("p", "toggle_pause", "Pause"),
        ("h", "toggle_human", "Human"),
    ]

    def __init__(
        self,
        provider: MetricsProvider | None = None,
        config: MonitorConfig | None = None,
        poll_rate: float = 0.5,
    ) -> None:
        """
        Initialize the RuntopApp.

        Args:
            provider: Metrics source (defaults to PsutilProvider).
            config: Monitor configuration. Reporting is switched off since the
                app renders reports itself.
            poll_rate: How often to look for a new report (seconds).
        """
        super().__init__()
        config = (config or MonitorConfig(interval=2000, first_interval=100)).with_options(
            reporting=False
        )
        self._controller = Controller(provider or PsutilProvider(), config)
        self._poll_rate = poll_rate
        self._shown: Report | None = None

    @property
    def controller(self) -> Controller:
        return self._controller

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        with ScrollableContainer(id="report-container"):
            yield ReportView(id="report-view")
        yield Footer()

    def on_mount(self) -> None:
        """Start the controller and poll it for new reports."""
        self._controller.start()
        self.set_interval(self._poll_rate, self._check_for_updates)

    def on_unmount(self) -> None:
        self._controller.shutdown(wait=False)

    def _check_for_updates(self) -> None:
        """Show the controller's latest report if it changed."""
        report = self._controller.report
        if report is not None and report is not self._shown:
            self._refresh_view(report)

    def _refresh_view(self, report: Report) -> None:
        config = self._controller.config
        view = self.query_one("#report-view", ReportView)
        view.show(report, sort=config.sort, human=config.human, limit=config.limit)
        self._shown = report

    def action_sort(self) -> None:
        """Cycle to the next sort field."""
        current = self._controller.config.sort
        names = [resolve_sort_field(name) for name in SORT_CYCLE]
        index = names.index(current) if current in names else -1
        name = SORT_CYCLE[(index + 1) % len(SORT_CYCLE)]
        self._controller.set_options(sort=name)
        if self._shown is not None:
            self._refresh_view(self._shown)
        self.notify(f"Sort: {name}")

    def action_toggle_pause(self) -> None:
        """Pause or resume collection."""
        if self._controller.state is State.RUNNING:
            self._controller.pause()
            self.sub_title = "Process Monitor (paused)"
        else:
            self._controller.start()
            self.sub_title = "Process Monitor"

    def action_toggle_human(self) -> None:
        """Switch between raw and humanized memory figures."""
        self._controller.set_options(human=not self._controller.config.human)
        if self._shown is not None:
            self._refresh_view(self._shown)

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._controller.shutdown(wait=False)
        self.exit()


def main() -> None:
    """Entry point for the runtop viewer."""
    configure(path=Path(tempfile.gettempdir()) / "runtop.log")
    app = RuntopApp()
    app.run()


if __name__ == "__main__":
    main()
