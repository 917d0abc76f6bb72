import json
import logging

from telegram_relay.logging_utils import EndpointFilter, JsonFormatter


def _record(msg: str, args: object = None, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("telegram_relay.api", logging.WARNING, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context_fields() -> None:
    record = _record("telegram_send_failed", endpoint="sendMessage", status_code=502, symbol="x")

    payload = json.loads(JsonFormatter().format(record))

    assert payload["msg"] == "telegram_send_failed"
    assert payload["level"] == "WARNING"
    assert payload["endpoint"] == "sendMessage"
    assert payload["status_code"] == 502
    assert "symbol" not in payload


def test_endpoint_filter_drops_matching_access_lines() -> None:
    f = EndpointFilter("/health")
    line = '%s - "%s %s HTTP/%s" %d'

    assert f.filter(_record(line, ("127.0.0.1:5000", "GET", "/health", "1.1", 200))) is False
    assert f.filter(_record(line, ("127.0.0.1:5000", "POST", "/send", "1.1", 200))) is True
    assert f.filter(_record("plain message")) is True
