"""Log formatting — JSON lines carry context fields passed through extra=."""

import json
import logging

from tutorassist.infrastructure.observability import HANDLER_NAME, JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("tutorassist.jobs", logging.WARNING, __file__, 1, "job %s failed", ("j1",), None)
    record.__dict__.update(extra)
    return record


def test_json_line_includes_context_fields():
    line = json.loads(JSONFormatter().format(_record(job_id="j1", attempt=2, workspace_id=None)))
    assert line["message"] == "job j1 failed"
    assert line["level"] == "WARNING"
    assert line["job_id"] == "j1"
    assert line["attempt"] == 2
    assert "workspace_id" not in line


def test_unknown_extra_keys_are_not_emitted():
    line = json.loads(JSONFormatter().format(_record(secret_token="abc")))
    assert "secret_token" not in line


def test_setup_logging_replaces_its_own_handler():
    root = logging.getLogger()
    original_level = root.level
    try:
        setup_logging("DEBUG", "json")
        setup_logging("warning", "text")
        ours = [h for h in root.handlers if h.get_name() == HANDLER_NAME]
        assert len(ours) == 1
        assert not isinstance(ours[0].formatter, JSONFormatter)
        assert root.level == logging.WARNING
    finally:
        for handler in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
            root.removeHandler(handler)
        root.setLevel(original_level)
