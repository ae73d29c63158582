"""Tests for the rich logging helpers."""

from io import StringIO

from loguru import logger
from rich.console import Console

from conftest import finished, make_call
from plangraph.graph import CallState
from plangraph.logging_config import build_run_table, configure_from_settings, log_metrics, log_run_table, setup_rich_logging
from plangraph.settings import Settings


def _console():
    return Console(file=StringIO(), width=120, force_terminal=False)


def test_setup_rich_logging_writes_to_console_and_file(tmp_path):
    console = _console()
    log_file = tmp_path / "plangraph.log"

    returned = setup_rich_logging(
        level="INFO",
        log_file=str(log_file),
        rich_tracebacks=False,
        console=console
    )
    logger.info("[TEST] hello")
    logger.debug("[TEST] file only")
    logger.remove()

    assert returned is console
    assert "[TEST] hello" in console.file.getvalue()
    assert "[TEST] file only" not in console.file.getvalue()
    assert "[TEST] file only" in log_file.read_text()


def test_configure_from_settings():
    console = _console()
    settings = Settings(log_level="WARNING", log_rich_tracebacks=False)

    configure_from_settings(settings, console=console)
    logger.info("[TEST] quiet")
    logger.warning("[TEST] loud")
    logger.remove()

    output = console.file.getvalue()
    assert "[TEST] loud" in output
    assert "[TEST] quiet" not in output


def test_run_table_rows():
    calls = [
        finished("run-1-call_1", {"rows": [], "count": 0}),
        make_call("run-1-call_2", state=CallState.ERROR, error_message="boom"),
        finished("run-1-call_3", {}),
        make_call("run-1-call_4", {"x": "call_2.outputs"}),
    ]

    table = build_run_table(calls, title="Run run-1")

    assert table.row_count == 4
    assert table.title == "Run run-1"

    console = _console()
    log_run_table(calls, console=console)
    output = console.file.getvalue()
    assert "rows, count" in output
    assert "boom" in output
    assert "(empty)" in output
    assert "queued" in output


def test_empty_run_table_and_metrics():
    console = _console()

    log_run_table([], console=console)
    log_metrics({"total_calls": 3, "outputs": {"a": 1}}, console=console)

    output = console.file.getvalue()
    assert "No agent calls to display" in output
    assert "Total Calls" in output
    assert "Outputs" not in output
