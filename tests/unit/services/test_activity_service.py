from __future__ import annotations

import json
import logging

from sqlalchemy.exc import OperationalError

from forecourt.core.logging import LogContext, build_log_event
from forecourt.core.logging_config import JsonFormatter
from forecourt.services.activity_service import ActivityService


def test_build_log_event_normalizes_context():
    payload = build_log_event("deal.created", LogContext(tenant_id=1, deal_id=5), deal_number="D00005")

    assert payload["event"] == "deal.created"
    assert payload["tenant_id"] == 1
    assert payload["deal_id"] == 5
    assert payload["user_id"] is None
    assert payload["deal_number"] == "D00005"


def test_emit_persists_activity_row(session, seeded):
    service = ActivityService(session)

    entry = service.emit("deal.created", LogContext(tenant_id=seeded.tenant_id, deal_id=42), deal_number="D00042")

    assert entry is not None
    (row,) = service.list_for_deal(seeded.tenant_id, 42)
    assert row.event == "deal.created"
    assert row.payload["deal_number"] == "D00042"


def test_emit_failure_is_logged_and_swallowed(session, seeded, monkeypatch, caplog):
    def _broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    monkeypatch.setattr(session, "commit", _broken_commit)

    with caplog.at_level(logging.WARNING):
        entry = ActivityService(session).emit("deal.signed", LogContext(tenant_id=seeded.tenant_id, deal_id=1))

    assert entry is None
    assert "activity.emit.failed" in caplog.text


def test_json_formatter_includes_context_fields():
    record = logging.LogRecord("forecourt", logging.INFO, __file__, 1, "deal.completed", None, None)
    record.event = "deal.completed"
    record.deal_id = 9

    line = json.loads(JsonFormatter().format(record))

    assert line["message"] == "deal.completed"
    assert line["event"] == "deal.completed"
    assert line["deal_id"] == 9
    assert "tenant_id" not in line
