"""
Unit tests for the log stream aggregator.
"""

import json
import logging

import pytest

from core.domain.errors import LogParseError
from core.services.log_stream import LogStreamAggregator, parse_log_message


def _msg(text: str) -> str:
    return json.dumps({"log": text})


class TestParseLogMessage:
    def test_extracts_log_field(self):
        assert parse_log_message('{"log": "Build started"}') == "Build started"

    def test_accepts_bytes(self):
        assert parse_log_message(b'{"log": "x"}') == "x"

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "{}",
            '{"log": 5}',
            '["log"]',
            '{"message": "x"}',
            {"log": "already a dict"},
            None,
            42,
        ],
    )
    def test_malformed_payloads_raise(self, raw):
        with pytest.raises(LogParseError):
            parse_log_message(raw)


class TestLogStreamAggregator:
    def test_preserves_arrival_order(self):
        aggregator = LogStreamAggregator()
        n = 50
        for i in range(1, n + 1):
            aggregator.on_message(_msg(str(i)))

        assert aggregator.lines == [str(i) for i in range(1, n + 1)]
        assert [entry.index for entry in aggregator.entries] == list(range(n))

    def test_malformed_message_is_isolated(self, caplog):
        aggregator = LogStreamAggregator()
        with caplog.at_level(logging.WARNING, logger="core.services.log_stream"):
            aggregator.on_message(_msg("1"))
            aggregator.on_message(_msg("2"))
            assert aggregator.on_message("{broken") is None
            aggregator.on_message(_msg("3"))

        assert aggregator.lines == ["1", "2", "3"]
        assert aggregator.discarded == 1
        assert any("Discarding malformed log message" in r.getMessage() for r in caplog.records)

    def test_duplicates_are_kept(self):
        aggregator = LogStreamAggregator()
        aggregator.on_message(_msg("same"))
        aggregator.on_message(_msg("same"))
        assert aggregator.lines == ["same", "same"]
        assert len(aggregator) == 2

    def test_scroll_hook_receives_each_new_entry(self):
        seen = []
        aggregator = LogStreamAggregator(scroll_to_latest=seen.append)

        aggregator.on_message(_msg("a"))
        aggregator.on_message("nope")
        aggregator.on_message(_msg("b"))

        assert [entry.text for entry in seen] == ["a", "b"]
        assert seen[-1] == aggregator.entries[-1]

    def test_entries_snapshot_is_read_only(self):
        aggregator = LogStreamAggregator()
        aggregator.on_message(_msg("a"))
        snapshot = aggregator.entries
        aggregator.on_message(_msg("b"))
        assert len(snapshot) == 1
        assert isinstance(snapshot, tuple)
