"""
Unit tests for the logging context and the JSON formatter.
"""

import json
import logging

import pytest

from src.core.logging.logger import ActionContextFilter, JSONFormatter, LogContext, get_log_context


def make_record(**extra):
    record = logging.LogRecord("src.modules.slots.service", logging.INFO, __file__, 1, "Spin resolved", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_binds_and_resets(self):
        with LogContext(player="dachsfan", action="spin") as ctx:
            assert get_log_context()["player"] == "dachsfan"
            assert len(ctx.correlation_id) == 8

        assert get_log_context() == {}

    def test_nested_context_keeps_correlation_id(self):
        with LogContext(player="alice", action="duel_accept") as outer:
            with LogContext(action="achievements") as inner:
                assert inner.correlation_id == outer.correlation_id
                assert get_log_context()["player"] == "alice"

    @pytest.mark.asyncio
    async def test_async_usage(self):
        async with LogContext(player="bob", action="purchase", correlation_id="abc12345"):
            assert get_log_context()["correlation_id"] == "abc12345"


@pytest.mark.unit
class TestJSONFormatter:
    def test_context_and_extra_fields(self):
        # Arrange
        record = make_record(points=5)
        with LogContext(player="dachsfan", action="spin", correlation_id="c0ffee00"):
            ActionContextFilter().filter(record)

        # Act
        document = json.loads(JSONFormatter().format(record))

        # Assert
        assert document["player"] == "dachsfan"
        assert document["correlation_id"] == "c0ffee00"
        assert document["extra"] == {"points": 5}

    def test_missing_context_is_omitted(self):
        record = make_record()
        ActionContextFilter().filter(record)

        document = json.loads(JSONFormatter().format(record))

        assert "player" not in document
        assert "extra" not in document
