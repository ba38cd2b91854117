from __future__ import annotations

import io
import json
import logging

import pytest

from relikit.core.log import ContextFilter, HumanFormatter, JsonFormatter, get_logger, log_context, swallow, warn_once

pytestmark = pytest.mark.unit


@pytest.fixture
def captured():
    """Attach a private handler to relikit.logtest; yields (adapter, stream, handler)."""
    log = get_logger("logtest")
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter())
    log.logger.addHandler(handler)
    try:
        yield log, stream, handler
    finally:
        log.logger.removeHandler(handler)


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_fields_and_context_land_on_the_record(captured):
    log, stream, _ = captured
    with log_context(queue="record.create", correlation_id="c-1", operation=None):
        log.info("worker.created", record_id=7)

    (doc,) = _lines(stream)
    assert doc["event"] == "worker.created"
    assert doc["record_id"] == 7
    assert doc["queue"] == "record.create"
    assert doc["correlation_id"] == "c-1"
    assert "operation" not in doc
    assert doc["level"] == "info"


def test_context_is_restored_after_block(captured):
    log, stream, _ = captured
    with log_context(message_id="m-1"):
        pass
    log.info("after")
    (doc,) = _lines(stream)
    assert "message_id" not in doc


def test_reserved_field_names_are_prefixed(captured):
    log, stream, _ = captured
    log.info("cache.miss", name="ada")
    (doc,) = _lines(stream)
    assert doc["field_name"] == "ada"
    assert doc["logger"] == "relikit.logtest"


def test_swallow_logs_and_suppresses(captured):
    log, stream, _ = captured
    with swallow(logger=log, level=logging.WARNING, code="cache.set.error", msg="cache write failed"):
        raise RuntimeError("redis down")
    (doc,) = _lines(stream)
    assert doc["event"] == "cache.set.error"
    assert doc["error"] == {"type": "RuntimeError", "message": "redis down"}


def test_warn_once_emits_a_single_line(captured):
    log, stream, _ = captured
    for _ in range(3):
        warn_once(log, "logtest.once.unique", "only once", queue="q")
    assert len(_lines(stream)) == 1


def test_human_formatter_puts_context_last(captured):
    log, stream, handler = captured
    handler.setFormatter(HumanFormatter())
    with log_context(queue="record.update"):
        log.warning("worker.retry", attempt=1)
    line = stream.getvalue().strip()
    assert "worker.retry attempt=1" in line
    assert line.endswith("[queue=record.update]")
