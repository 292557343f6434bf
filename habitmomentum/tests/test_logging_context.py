import json
import logging

from habitmomentum.core.logging import JsonFormatter, RequestIdFilter, log_event, request_id_ctx_var


def _record(msg="sweep.daily.complete", **extra):
    record = logging.LogRecord("habitmomentum", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_request_id_filter_uses_context_var():
    token = request_id_ctx_var.set("rid-42")
    try:
        record = _record()
        RequestIdFilter().filter(record)
    finally:
        request_id_ctx_var.reset(token)
    assert record.request_id == "rid-42"


def test_json_formatter_ships_structured_fields():
    record = _record(request_id="rid-1", habit_id="h1", processed=3, errors=0, unrelated="x")
    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "sweep.daily.complete"
    assert payload["request_id"] == "rid-1"
    assert payload["habit_id"] == "h1"
    assert payload["processed"] == 3
    assert "unrelated" not in payload


def test_log_event_attaches_ids_and_truncates(caplog):
    with caplog.at_level(logging.INFO, logger="habitmomentum"):
        log_event("warning", "momentum.repaired", habit_id="h9", extra={"note": "x" * 600})

    record = next(r for r in caplog.records if r.getMessage() == "momentum.repaired")
    assert record.levelno == logging.WARNING
    assert record.habit_id == "h9"
    assert record.note.endswith("...<truncated>")
