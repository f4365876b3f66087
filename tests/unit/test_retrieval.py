"""Tests for output retrieval."""

import pytest

from cmdgate.core.config import LoggingConfig
from cmdgate.core.exceptions import LogErrorType, LogRetrievalError, ParameterError
from cmdgate.logs.retrieval import OutputRetriever, summarize_entry
from cmdgate.logs.storage import LogStorage

OUTPUT = "".join(f"line {i}\n" for i in range(1, 11))


def make_retriever(**config_kwargs) -> tuple[OutputRetriever, str]:
    config = LoggingConfig(**config_kwargs)
    storage = LogStorage(config)
    entry = storage.store_log("seq 10", "bash", "/srv", OUTPUT, "", 0)
    return OutputRetriever(storage, config), entry.id


class TestLookups:
    """Test entry lookup and simple reads."""

    def test_unknown_id(self):
        retriever, _ = make_retriever()

        with pytest.raises(LogRetrievalError) as exc_info:
            retriever.read_full("nope")

        assert exc_info.value.error_type == LogErrorType.LOG_NOT_FOUND
        assert exc_info.value.message == "Log entry not found: nope. It may have expired."

    def test_read_full(self):
        retriever, eid = make_retriever()
        assert retriever.read_full(eid) == OUTPUT

    def test_read_range_numbered(self):
        retriever, eid = make_retriever()
        assert retriever.read_range(eid, 2, 3) == "Lines 2-3 of 10:\n\n2: line 2\n3: line 3"

    def test_read_range_respects_max_return_lines(self):
        retriever, eid = make_retriever(max_return_lines=3)
        with pytest.raises(LogRetrievalError, match="maximum line limit of 3"):
            retriever.read_range(eid, 1, 10)

    def test_search(self):
        retriever, eid = make_retriever()
        result = retriever.search(eid, "line 7", context_lines=0)
        assert result.text.endswith(">>> 7: line 7 <<<")

    def test_list_recent(self):
        config = LoggingConfig()
        storage = LogStorage(config)
        ids = [storage.store_log(f"cmd {i}", "bash", "/srv", "x", "", 0).id for i in range(4)]
        storage.store_log("other", "wsl", "/srv", "x", "", 0)
        retriever = OutputRetriever(storage, config)

        assert [e.id for e in retriever.list_recent(2, shell="bash")] == ids[-2:]
        assert len(retriever.list_recent(100)) == 5

    @pytest.mark.parametrize("n", [0, 101, True, "5"])
    def test_list_recent_bounds(self, n):
        retriever, _ = make_retriever()
        with pytest.raises(ParameterError):
            retriever.list_recent(n)

    def test_summarize_entry(self):
        config = LoggingConfig()
        storage = LogStorage(config)
        entry = storage.store_log("ls", "bash", "/srv", "a\n", "", 0)

        summary = summarize_entry(entry)

        assert summary["execution_id"] == entry.id
        assert summary["total_lines"] == 1
        assert "combined_output" not in summary


class TestGetCommandOutput:
    """Test the line- and byte-bounded view."""

    def test_whole_output(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid)

        assert result.text == OUTPUT.rstrip("\n")
        assert result.metadata["total_lines"] == 10
        assert result.metadata["returned_lines"] == 10
        assert result.metadata["was_truncated"] is False
        assert result.metadata["command"] == "seq 10"
        assert result.metadata["file_path"] is None

    def test_byte_budget_stops_at_whole_line(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid, max_bytes=20)

        assert result.text == "line 1\nline 2\nline 3"
        assert result.metadata["returned_lines"] == 3
        assert result.metadata["truncated_by_bytes"] is True
        assert result.metadata["truncated_by_lines"] is False

    def test_line_cap_adds_header(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid, max_lines=2)

        assert result.text == "[Output truncated to 2 lines of 10]\nline 1\nline 2"
        assert result.metadata["truncated_by_lines"] is True
        assert result.metadata["returned_lines"] == 2

    def test_nothing_fits(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid, max_lines=2, max_bytes=10)

        assert result.text == "[Output truncated to fit 10 bytes]"
        assert result.metadata["returned_lines"] == 0
        assert result.metadata["was_truncated"] is True

    def test_requested_caps_clamped_to_config(self):
        retriever, eid = make_retriever(max_return_lines=5)

        result = retriever.get_command_output(eid, max_lines=50)

        assert result.metadata["returned_lines"] == 5
        assert result.text.startswith("[Output truncated to 5 lines of 10]")

    def test_negative_range(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid, start_line=-3)

        assert result.text == "line 8\nline 9\nline 10"

    def test_search_filter_is_case_insensitive(self):
        retriever, eid = make_retriever()

        result = retriever.get_command_output(eid, search="LINE 1")

        assert result.text == "line 1\nline 10"

    def test_search_without_matches(self):
        retriever, eid = make_retriever()

        with pytest.raises(LogRetrievalError) as exc_info:
            retriever.get_command_output(eid, search="missing")
        assert exc_info.value.error_type == LogErrorType.NO_MATCHES

    def test_invalid_range(self):
        retriever, eid = make_retriever()

        with pytest.raises(LogRetrievalError) as exc_info:
            retriever.get_command_output(eid, start_line=4, end_line=2)
        assert exc_info.value.error_type == LogErrorType.INVALID_RANGE

    @pytest.mark.parametrize("kwargs", [{"max_lines": 0}, {"max_bytes": -5}])
    def test_non_positive_caps(self, kwargs):
        retriever, eid = make_retriever()
        with pytest.raises(ParameterError):
            retriever.get_command_output(eid, **kwargs)

    def test_file_path_exposed_only_when_configured(self, tmp_path):
        config = LoggingConfig(log_directory=str(tmp_path), expose_full_path=True)
        storage = LogStorage(config)
        entry = storage.store_log("ls", "bash", "/srv", "a\n", "", 0)

        result = OutputRetriever(storage, config).get_command_output(entry.id)

        assert result.metadata["file_path"] == storage.get_log(entry.id).file_path
        assert result.metadata["file_path"] is not None
