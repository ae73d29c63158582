"""Rich logging configuration for plangraph."""

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install as install_rich_traceback
from typing import Any, Dict, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .graph.models import AgentCall
    from .settings import Settings


STATE_STYLES = {
    "queued": "dim",
    "ready": "cyan",
    "running": "yellow",
    "finished": "green",
    "error": "bold red",
}


def setup_rich_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    show_path: bool = True,
    show_time: bool = True,
    rich_tracebacks: bool = True,
    console: Optional[Console] = None,
    use_stderr: bool = False,
    file_level: str = "DEBUG",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    file_compression: str = "zip"
) -> Console:
    """Setup rich logging with loguru.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file for detailed logs
        show_path: Show file path in console logs
        show_time: Show timestamp in console logs
        rich_tracebacks: Enable rich tracebacks with syntax highlighting
        console: Optional Rich Console instance (creates new if None)
        use_stderr: Force output to stderr instead of stdout
        file_level: Logging level for the file sink
        file_rotation: Rotation size for the file sink
        file_retention: Retention period for rotated files
        file_compression: Compression format for rotated files

    Returns:
        Console instance used for logging
    """
    if console is None:
        console = Console(stderr=use_stderr)

    if rich_tracebacks:
        install_rich_traceback(
            show_locals=True,
            width=console.width,
            extra_lines=3,
            theme="monokai",
            word_wrap=True,
            console=console
        )

    # Remove default loguru handlers
    logger.remove()

    logger.add(
        RichHandler(
            console=console,
            rich_tracebacks=rich_tracebacks,
            tracebacks_show_locals=True,
            markup=False,
            show_time=show_time,
            show_level=True,
            show_path=show_path
        ),
        format="{message}",
        level=level
    )

    if log_file:
        logger.add(
            log_file,
            rotation=file_rotation,
            retention=file_retention,
            compression=file_compression,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=file_level
        )

    return console


def configure_from_settings(settings: "Settings", console: Optional[Console] = None) -> Console:
    """Apply the logging fields of a Settings instance."""
    return setup_rich_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        show_path=settings.log_show_path,
        show_time=settings.log_show_time,
        rich_tracebacks=settings.log_rich_tracebacks,
        console=console,
        file_level=settings.log_file_level,
        file_rotation=settings.log_file_rotation,
        file_retention=settings.log_file_retention,
        file_compression=settings.log_file_compression
    )


def build_run_table(calls: Sequence["AgentCall"], title: str = "Agent calls") -> Table:
    """Build a table with one row per agent call.

    The detail column holds the error message for failed calls and the
    output field names for finished ones.
    """
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Call", style="cyan", no_wrap=True)
    table.add_column("Agent")
    table.add_column("State")
    table.add_column("Detail", overflow="fold")

    for call in calls:
        state = call.state.value
        if call.error_message is not None:
            detail = call.error_message
        elif call.outputs is not None:
            detail = ", ".join(call.outputs) or "(empty)"
        else:
            detail = ""
        table.add_row(
            call.id,
            call.agent_name,
            f"[{STATE_STYLES.get(state, 'white')}]{state}[/]",
            detail
        )

    return table


def log_run_table(
    calls: Sequence["AgentCall"],
    title: str = "Agent calls",
    console: Optional[Console] = None
) -> None:
    """Print the state of a call list as a rich table.

    Args:
        calls: Call list snapshot
        title: Table title
        console: Console instance (creates new if None)
    """
    if console is None:
        console = Console()

    if not calls:
        console.print("[yellow]No agent calls to display[/yellow]")
        return

    console.print(build_run_table(calls, title=title))


def log_metrics(metrics: Dict[str, Any], title: str = "Execution", console: Optional[Console] = None):
    """Log metrics in a formatted table.

    Args:
        metrics: Dictionary of metrics
        title: Title for the metrics display
        console: Console instance (creates new if None)
    """
    if console is None:
        console = Console()

    table = Table(title=title, show_header=True, header_style="bold green")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    for key, value in metrics.items():
        if isinstance(value, (dict, list)):
            continue
        formatted_key = key.replace("_", " ").title()
        table.add_row(formatted_key, str(value))

    console.print(table)
