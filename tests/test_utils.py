"""Unit tests for logging, progress and filesystem helpers."""

import json
import logging

from graph_monitor.utils import configure_logging, ensure_dir, log_progress, write_json


def test_log_progress_reports_every_pace_percent(caplog):
    """Progress is logged each time another pace percent is examined."""
    logger = logging.getLogger("graph_monitor.test_progress")
    with caplog.at_level(logging.INFO, logger="graph_monitor.test_progress"):
        for examined in range(1, 11):
            log_progress(logger, "save", examined, 10, pace=50.0)
    messages = [r.getMessage() for r in caplog.records]
    assert messages == [
        "progress (save): 50% :: examined : 5/10",
        "progress (save): 100% :: examined : 10/10",
    ]


def test_log_progress_ignores_empty_totals(caplog):
    """Nothing is logged when there is nothing to examine."""
    with caplog.at_level(logging.INFO):
        log_progress(logging.getLogger("graph_monitor"), "save", 0, 0)
    assert caplog.records == []


def test_configure_logging_sets_root_level():
    """The root logger takes the requested level name in any case."""
    configure_logging("debug")
    assert logging.getLogger().level == logging.DEBUG
    configure_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING


def test_write_json_creates_parent_directory(tmp_path):
    """write_json creates missing directories and writes sorted keys."""
    path = tmp_path / "a" / "b" / "analysis.json"
    write_json(str(path), {"numnodes": 3, "cc_vertexsets": 1})
    assert json.loads(path.read_text()) == {"cc_vertexsets": 1, "numnodes": 3}
    ensure_dir(str(tmp_path / "a"))
    assert path.exists()
