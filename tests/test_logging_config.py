"""Structured logging — formatter output."""

import json
import logging

from qagate.middleware.logging_config import JSONFormatter, ReadableFormatter


def _record(**extra):
    record = logging.LogRecord(
        "qagate.services.release_service", logging.INFO, __file__, 10,
        "Release %s approved", (3,), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_domain_fields():
    out = json.loads(JSONFormatter().format(_record(
        event_type="release_approved", release_id=3, actor="release-manager", unrelated="x",
    )))
    assert out["message"] == "Release 3 approved"
    assert out["level"] == "INFO"
    assert out["event_type"] == "release_approved"
    assert out["release_id"] == 3
    assert out["actor"] == "release-manager"
    assert "unrelated" not in out
    assert "waiver_id" not in out


def test_readable_formatter_shows_event_type():
    line = ReadableFormatter().format(_record(event_type="release_approved"))
    assert "[release_approved]" in line
    assert "Release 3 approved" in line


def test_service_logs_carry_event_type(caplog, project):
    from qagate.services import release_service

    with caplog.at_level(logging.INFO, logger="qagate.services.release_service"):
        release_service.create_release(project.id, "R-2026.10")
    events = [getattr(r, "event_type", None) for r in caplog.records]
    assert "release_created" in events
