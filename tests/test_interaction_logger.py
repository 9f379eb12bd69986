# tests/test_interaction_logger.py
import json
import os
import stat
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest
from pydantic import ValidationError

from llmeval.models.enums import InteractionStatus
from llmeval.models.log import CANCELLED_EMPTY_TEXT, GenerationStats, LogEntry
from llmeval.services.interaction_logger import (
    InMemoryInteractionLogger,
    InteractionLogger,
    log_file_name,
)
from llmeval.utils.errors import LogReadError


def _log(il, i, **overrides):
    kwargs = dict(
        user_prompt=f"question {i}",
        model_response=f"answer {i}",
        model_info="Phi-3.5-mini (offline)",
        tokens_per_second=float(i),
        prompt_tokens=i,
        response_tokens=2 * i,
        processing_time=i / 10,
    )
    kwargs.update(overrides)
    il.log_interaction(**kwargs)


@pytest.mark.logger
class TestWritePath:

    def test_log_file_location_and_name(self, interaction_logger, log_dir, clock):
        path = interaction_logger.get_log_file_path()
        assert path.parent == log_dir
        assert path.name == f"teacher_log_{clock.now.astimezone().date().isoformat()}.jsonl"

    def test_file_created_owner_only_at_construction(self, interaction_logger):
        path = interaction_logger.get_log_file_path()
        assert path.exists()
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_construction_is_idempotent(self, interaction_logger, log_dir, clock):
        _log(interaction_logger, 1)
        interaction_logger.flush()
        second = InteractionLogger(log_dir, user_id="student01", clock=clock)
        try:
            assert len(second.get_all_log_entries()) == 1
            assert stat.S_IMODE(os.stat(second.get_log_file_path()).st_mode) == 0o600
        finally:
            second.close()

    def test_round_trip_preserves_every_field(self, interaction_logger, clock):
        interaction_logger.log_interaction(
            user_prompt="What is 5+5?",
            model_response="10",
            model_info="Test Model | Teacher: Ms Smith",
            tokens_per_second=25.5,
            prompt_tokens=5,
            response_tokens=1,
            processing_time=1.25,
        )
        interaction_logger.flush()

        [entry] = interaction_logger.get_all_log_entries()
        assert entry.timestamp == clock.now
        assert entry.session_id == interaction_logger.session_id
        assert entry.user_id == "student01"
        assert entry.user_prompt == "What is 5+5?"
        assert entry.model_response == "10"
        assert entry.model_info == "Test Model | Teacher: Ms Smith"
        assert entry.generation_stats.tokens_per_second == 25.5
        assert entry.generation_stats.prompt_tokens == 5
        assert entry.generation_stats.response_tokens == 1
        assert entry.generation_stats.processing_time == 1.25
        assert entry.status == InteractionStatus.COMPLETE

    def test_zero_statistics_round_trip(self, interaction_logger):
        interaction_logger.log_interaction("hi", "", "m", status=InteractionStatus.ERRORED, error_reason="boom")
        interaction_logger.flush()
        [entry] = interaction_logger.get_all_log_entries()
        stats = entry.generation_stats
        assert (stats.tokens_per_second, stats.prompt_tokens, stats.response_tokens, stats.processing_time) == (0, 0, 0, 0)
        assert entry.status == InteractionStatus.ERRORED
        assert entry.error_reason == "boom"

    def test_on_disk_shape_is_camel_case_json_lines(self, interaction_logger):
        _log(interaction_logger, 3)
        interaction_logger.flush()
        lines = interaction_logger.get_log_file_path().read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert set(record) >= {"timestamp", "sessionId", "userId", "userPrompt", "modelResponse",
                               "modelInfo", "generationStats", "status"}
        assert set(record["generationStats"]) == {"tokensPerSecond", "promptTokens", "responseTokens", "processingTime"}
        assert record["timestamp"].startswith("2025-08-07T12:00:00")

    def test_concurrent_writes_all_land(self, interaction_logger):
        n = 50
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: _log(interaction_logger, i), range(n)))
        interaction_logger.flush()

        entries = interaction_logger.get_all_log_entries()
        assert len(entries) == n
        by_prompt = {e.user_prompt: e for e in entries}
        assert len(by_prompt) == n
        for i in range(n):
            entry = by_prompt[f"question {i}"]
            assert entry.model_response == f"answer {i}"
            assert entry.generation_stats.prompt_tokens == i
            assert entry.generation_stats.response_tokens == 2 * i
            assert entry.generation_stats.tokens_per_second == float(i)

    def test_writes_keep_call_order(self, interaction_logger, clock):
        for i in range(20):
            _log(interaction_logger, i)
            clock.advance(1)
        interaction_logger.flush()
        raw = [json.loads(line)["userPrompt"]
               for line in interaction_logger.get_log_file_path().read_text(encoding="utf-8").splitlines()]
        assert raw == [f"question {i}" for i in range(20)]

    def test_timestamps_never_go_backwards(self, interaction_logger, clock):
        _log(interaction_logger, 1)
        first_time = clock.now
        clock.advance(-30)
        _log(interaction_logger, 2)
        interaction_logger.flush()
        first, second = interaction_logger.get_all_log_entries()
        assert first.timestamp == first_time
        assert second.timestamp == first_time

    def test_negative_statistics_are_recorded_as_zero(self, interaction_logger):
        _log(interaction_logger, 1, tokens_per_second=-5.0, prompt_tokens=-3)
        interaction_logger.flush()
        [entry] = interaction_logger.get_all_log_entries()
        assert entry.user_prompt == "question 1"
        assert entry.generation_stats.tokens_per_second == 0.0
        assert entry.generation_stats.prompt_tokens == 0
        assert entry.generation_stats.response_tokens == 2

    @pytest.mark.parametrize("bad", [float("inf"), float("-inf"), float("nan"), "fast", None])
    def test_non_finite_statistics_still_round_trip(self, interaction_logger, bad):
        _log(interaction_logger, 1, tokens_per_second=bad, processing_time=bad)
        interaction_logger.flush()

        raw = json.loads(interaction_logger.get_log_file_path().read_text(encoding="utf-8"))
        assert raw["generationStats"]["tokensPerSecond"] == 0.0
        assert raw["generationStats"]["processingTime"] == 0.0

        [entry] = interaction_logger.get_all_log_entries()
        assert entry.generation_stats.tokens_per_second == 0.0
        assert entry.generation_stats.processing_time == 0.0
        assert entry.generation_stats.prompt_tokens == 1

    def test_stats_model_rejects_non_finite_values(self):
        with pytest.raises(ValidationError):
            GenerationStats(tokens_per_second=float("inf"))
        with pytest.raises(ValidationError):
            GenerationStats(processing_time=float("nan"))

    def test_write_failure_is_swallowed(self, log_dir, clock):
        log_dir.mkdir(parents=True)
        (log_dir / log_file_name(clock.now.astimezone().date())).mkdir()
        il = InteractionLogger(log_dir, user_id="student01", clock=clock)
        try:
            _log(il, 1)
            il.flush()
        finally:
            il.close()

    def test_closed_logger_drops_entries(self, interaction_logger):
        interaction_logger.close()
        _log(interaction_logger, 1)
        assert interaction_logger.get_all_log_entries() == []

    def test_queued_writes_complete_on_close(self, interaction_logger):
        for i in range(10):
            _log(interaction_logger, i)
        interaction_logger.close()
        assert len(interaction_logger.get_all_log_entries()) == 10


@pytest.mark.logger
class TestSessions:

    def test_session_is_stable_until_reset(self, interaction_logger):
        session = interaction_logger.session_id
        _log(interaction_logger, 1)
        _log(interaction_logger, 2)
        interaction_logger.flush()
        assert {e.session_id for e in interaction_logger.get_all_log_entries()} == {session}

    def test_new_session_does_not_touch_written_entries(self, interaction_logger):
        old_session = interaction_logger.session_id
        _log(interaction_logger, 1)
        _log(interaction_logger, 2)
        new_session = interaction_logger.start_new_session()
        _log(interaction_logger, 3)
        interaction_logger.flush()

        assert new_session != old_session
        assert interaction_logger.session_id == new_session
        old_entries = interaction_logger.get_log_entries_for_session(old_session)
        new_entries = interaction_logger.get_log_entries_for_session(new_session)
        assert [e.user_prompt for e in old_entries] == ["question 1", "question 2"]
        assert [e.user_prompt for e in new_entries] == ["question 3"]

    def test_session_filter_is_exact_subset(self, interaction_logger):
        _log(interaction_logger, 1)
        interaction_logger.start_new_session()
        _log(interaction_logger, 2)
        interaction_logger.flush()
        everything = interaction_logger.get_all_log_entries()
        session = interaction_logger.session_id
        assert interaction_logger.get_log_entries_for_session(session) == [e for e in everything if e.session_id == session]
        assert interaction_logger.get_log_entries_for_session("no-such-session") == []

    def test_user_filter(self, interaction_logger):
        _log(interaction_logger, 1)
        interaction_logger.flush()
        assert len(interaction_logger.get_log_entries_for_user("student01")) == 1
        assert interaction_logger.get_log_entries_for_user("someone-else") == []


@pytest.mark.logger
class TestReadPath:

    def test_missing_file_means_no_entries(self, interaction_logger):
        interaction_logger.get_log_file_path().unlink()
        assert interaction_logger.get_all_log_entries() == []
        assert interaction_logger.get_all_log_entries(date(2000, 1, 1)) == []

    def test_corrupt_lines_are_skipped(self, interaction_logger):
        _log(interaction_logger, 1)
        interaction_logger.flush()
        path = interaction_logger.get_log_file_path()
        valid_line = path.read_text(encoding="utf-8")
        with open(path, "a", encoding="utf-8") as handle:
            handle.write("this is not json {\n")
            handle.write('{"userPrompt": "missing fields"}\n')
            handle.write("\n")
        with open(path, "ab") as handle:
            handle.write(b"\xff\xfe broken bytes\n")
        with open(path, "a", encoding="utf-8") as handle:
            handle.write(valid_line)
            handle.write(valid_line[: len(valid_line) // 2])

        entries = interaction_logger.get_all_log_entries()
        assert len(entries) == 2
        assert all(e.user_prompt == "question 1" for e in entries)

    def test_unreadable_file_raises_log_read_error(self, interaction_logger):
        path = interaction_logger.get_log_file_path()
        path.unlink()
        path.mkdir()
        with pytest.raises(LogReadError):
            interaction_logger.get_all_log_entries()
        with pytest.raises(LogReadError):
            interaction_logger.get_log_entries_for_session(interaction_logger.session_id)

    def test_reads_older_days(self, interaction_logger, clock):
        first_day = interaction_logger.today()
        _log(interaction_logger, 1)
        interaction_logger.flush()
        clock.advance(24 * 3600)
        _log(interaction_logger, 2)
        interaction_logger.flush()

        second_day = interaction_logger.today()
        assert interaction_logger.available_log_days() == [second_day, first_day]
        assert [e.user_prompt for e in interaction_logger.get_all_log_entries()] == ["question 2"]
        assert [e.user_prompt for e in interaction_logger.get_all_log_entries(first_day)] == ["question 1"]

    def test_legacy_records_infer_status(self, interaction_logger):
        legacy = [
            {"modelResponse": CANCELLED_EMPTY_TEXT, "expected": InteractionStatus.CANCELLED},
            {"modelResponse": "Half an answer\n\n[GENERATION CANCELLED - Response incomplete]",
             "expected": InteractionStatus.CANCELLED},
            {"modelResponse": "Failed: model not loaded", "expected": InteractionStatus.ERRORED},
            {"modelResponse": "Some text\n\n[Error: out of memory]", "expected": InteractionStatus.ERRORED},
            {"modelResponse": "10", "expected": InteractionStatus.COMPLETE},
        ]
        path = interaction_logger.get_log_file_path()
        with open(path, "a", encoding="utf-8") as handle:
            for record in legacy:
                handle.write(json.dumps({
                    "timestamp": "2025-08-07T10:15:30Z",
                    "sessionId": "8F0C7A52-0000-0000-0000-000000000000",
                    "userId": "jonathan",
                    "userPrompt": "What is 5+5?",
                    "modelResponse": record["modelResponse"],
                    "modelInfo": "Phi-3.5-mini (offline)",
                    "generationStats": {"tokensPerSecond": 0, "promptTokens": 0,
                                        "responseTokens": 0, "processingTime": 0},
                }) + "\n")

        entries = interaction_logger.get_all_log_entries()
        assert [e.status for e in entries] == [r["expected"] for r in legacy]
        assert entries[0].model_response == CANCELLED_EMPTY_TEXT


@pytest.mark.logger
class TestReadOnlyLogger:

    def test_creates_nothing(self, log_dir, clock):
        reader = InteractionLogger(log_dir, user_id="teacher", clock=clock, read_only=True)
        assert not log_dir.exists()
        assert reader.get_all_log_entries() == []
        assert reader.available_log_days() == []

    def test_reads_what_the_writer_wrote_without_touching_it(self, interaction_logger, log_dir, clock):
        _log(interaction_logger, 1)
        interaction_logger.flush()
        path = interaction_logger.get_log_file_path()
        before = os.stat(path)

        reader = InteractionLogger(log_dir, user_id="teacher", clock=clock, read_only=True)
        assert [e.user_prompt for e in reader.get_all_log_entries()] == ["question 1"]
        after = os.stat(path)
        assert (after.st_mtime_ns, after.st_size) == (before.st_mtime_ns, before.st_size)

    def test_drops_writes(self, log_dir, clock):
        reader = InteractionLogger(log_dir, user_id="teacher", clock=clock, read_only=True)
        _log(reader, 1)
        reader.flush()
        reader.close()
        assert not log_dir.exists()


@pytest.mark.logger
@pytest.mark.skipif(not (hasattr(os, "chflags") and hasattr(stat, "UF_HIDDEN")),
                    reason="platform has no hidden file flag")
def test_log_file_is_hidden_where_supported(interaction_logger):
    assert os.stat(interaction_logger.get_log_file_path()).st_flags & stat.UF_HIDDEN


@pytest.mark.logger
class TestInMemoryLogger:

    def test_same_contract_without_files(self, clock):
        il = InMemoryInteractionLogger(user_id="student02", clock=clock)
        _log(il, 1)
        session = il.start_new_session()
        _log(il, 2)
        assert [e.user_prompt for e in il.get_all_log_entries()] == ["question 1", "question 2"]
        assert [e.user_prompt for e in il.get_log_entries_for_session(session)] == ["question 2"]
        assert il.get_log_file_path() is None
        assert il.available_log_days() == [il.today()]

    def test_entries_are_immutable(self, clock):
        il = InMemoryInteractionLogger(user_id="student02", clock=clock)
        _log(il, 1)
        [entry] = il.get_all_log_entries()
        with pytest.raises(Exception):
            entry.model_response = "changed"
        assert isinstance(entry, LogEntry)
