import os
import stat
from datetime import datetime, timezone

import pytest

from hearth.config.memory import CompactionSettings
from hearth.runtime.memory.compaction import (
    SUMMARY_PREFIX,
    ContextCompactor,
    FactNoteWriter,
    build_cue_pattern,
    estimate_tokens,
    find_fact_sentences,
    fit_summary,
    render_fact_note,
    render_summary,
)
from hearth.runtime.memory.errors import InvalidParameterError, StorageError
from hearth.runtime.memory.models import TranscriptEntry


class RecordingSink:
    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def __call__(self, facts):
        self.calls.append(list(facts))
        return f"workspace/memory/facts-{len(self.calls)}.md"


class FailingSink:
    def __call__(self, facts):
        raise StorageError("disk full")


def _entry(i: int, role: str, content: str) -> TranscriptEntry:
    return TranscriptEntry(id=f"e{i}", timestamp=1_000 + i, role=role, content=content)


def _cost(entries) -> int:
    return sum(estimate_tokens(e.content) for e in entries)


def _history():
    return [
        _entry(1, "user", "I always prefer dark mode in every editor. ok."),
        _entry(2, "tool", "The tool output is important and long enough."),
        _entry(3, "assistant", "x" * 200),
        _entry(4, "user", "y" * 160),
        _entry(5, "assistant", "z" * 100),
    ]


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_within_budget_is_a_noop():
    sink = RecordingSink()
    history = _history()
    result = ContextCompactor(sink).compact(history, token_budget=1_000)

    assert result.retained_entries == history
    assert result.extracted_facts == []
    assert result.note_path is None
    assert not result.compacted
    assert sink.calls == []


def test_keeps_recent_entries_and_prepends_summary():
    sink = RecordingSink()
    history = _history()
    result = ContextCompactor(sink).compact(history, token_budget=100)

    summary, *recent = result.retained_entries
    assert [e.id for e in recent] == ["e4", "e5"]
    assert summary.role == "assistant"
    assert summary.id.startswith("summary-")
    assert summary.timestamp == history[0].timestamp
    assert summary.content == SUMMARY_PREFIX + "I always prefer dark mode in every editor]"

    assert result.extracted_facts == ["I always prefer dark mode in every editor"]
    assert sink.calls == [["I always prefer dark mode in every editor"]]
    assert result.note_path == "workspace/memory/facts-1.md"
    assert result.compacted
    assert _cost(result.retained_entries) <= 100


def test_tool_entries_are_not_mined_for_facts():
    sink = RecordingSink()
    result = ContextCompactor(sink).compact(_history(), token_budget=100)
    assert all("tool output" not in fact for fact in sink.calls[0])
    assert all("tool output" not in fact for fact in result.extracted_facts)


def test_summary_is_trimmed_to_fit_budget_but_note_keeps_all_facts():
    sink = RecordingSink()
    history = [
        _entry(i, "user", "This fact is important and " + "very " * 20 + f"long {i}.")
        for i in range(1, 4)
    ]
    history.append(_entry(4, "assistant", "r" * 260))
    result = ContextCompactor(sink).compact(history, token_budget=100)

    summary, *recent = result.retained_entries
    assert _cost(result.retained_entries) <= 100
    assert [e.id for e in recent] == ["e4"]
    assert summary.content.startswith(SUMMARY_PREFIX + "This fact is important and very")
    assert summary.content.endswith("...]")
    assert len(sink.calls[0]) == 3
    assert len(result.extracted_facts) == 3


def test_small_headroom_still_keeps_a_shortened_summary():
    sink = RecordingSink()
    history = [
        _entry(1, "user", "The deployment target is always the staging cluster first. " * 2),
        _entry(2, "assistant", "x" * 40),
    ]
    result = ContextCompactor(sink).compact(history, token_budget=20)

    summary, recent = result.retained_entries
    assert summary.id.startswith("summary-")
    assert summary.content == SUMMARY_PREFIX + "The deployment tar...]"
    assert recent.id == "e2"
    assert _cost(result.retained_entries) <= 20
    assert result.extracted_facts
    assert sink.calls[0][0] == "The deployment target is always the staging cluster first"


def test_fit_summary_bounds():
    assert fit_summary([], 10) is None
    assert fit_summary(["some fact here"], 0) is None
    assert fit_summary(["alpha fact", "beta fact"], 100) == render_summary(["alpha fact", "beta fact"])
    assert fit_summary(["alpha fact", "beta fact"], 8) == render_summary(["alpha fact"])
    assert fit_summary(["a much longer fact than fits"], 5) == SUMMARY_PREFIX + "]"


def test_returned_facts_are_capped_and_truncated():
    sink = RecordingSink()
    settings = CompactionSettings(max_facts=2, max_fact_chars=20)
    older = _entry(
        1,
        "user",
        "My favourite language is definitely Python for scripting. "
        "The deploy target should always be the staging cluster first. "
        "Release notes must mention every breaking change explicitly.",
    )
    history = [older, _entry(2, "assistant", "q" * 400)]
    result = ContextCompactor(sink, settings).compact(history, token_budget=120)

    assert len(sink.calls[0]) == 3
    assert len(result.extracted_facts) == 2
    for short, full in zip(result.extracted_facts, sink.calls[0]):
        assert short == full[:20] + "..."


def test_history_without_facts_writes_no_note():
    sink = RecordingSink()
    history = [_entry(1, "user", "x" * 400), _entry(2, "assistant", "y" * 40)]
    result = ContextCompactor(sink).compact(history, token_budget=20)

    assert sink.calls == []
    assert result.note_path is None
    assert [e.id for e in result.retained_entries] == ["e2"]


def test_negative_budget_is_rejected():
    with pytest.raises(InvalidParameterError):
        ContextCompactor(RecordingSink()).compact(_history(), token_budget=-1)


def test_sink_failure_aborts_compaction():
    history = _history()
    with pytest.raises(StorageError):
        ContextCompactor(FailingSink()).compact(history, token_budget=100)
    assert len(history) == 5


def test_fact_sentences_follow_cue_and_length_rules():
    pattern = build_cue_pattern(["is", "refers to"])
    entries = [
        _entry(1, "user", "It is ok. The term refers  to a shared meaning! Nothing matches here?"),
        _entry(2, "tool", "This is a tool line that would match."),
    ]
    facts = find_fact_sentences(entries, cue_pattern=pattern, min_sentence_chars=10)
    assert facts == ["The term refers  to a shared meaning"]


def test_cue_words_match_whole_words_only():
    pattern = build_cue_pattern(["is"])
    assert pattern.search("this island") is None
    assert pattern.search("That IS true") is not None


def test_fact_note_writer_persists_markdown(tmp_path):
    writer = FactNoteWriter(tmp_path / "memory")
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    path = writer.write(["Users prefer tabs", "Deploys happen on Fridays"], extracted_at=when)

    assert path.parent == tmp_path / "memory"
    assert path.name.startswith(f"facts-{int(when.timestamp() * 1000)}-")
    assert path.read_text(encoding="utf-8") == render_fact_note(
        ["Users prefer tabs", "Deploys happen on Fridays"], when
    )
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_render_fact_note_layout():
    when = datetime(2024, 5, 1, tzinfo=timezone.utc)
    text = render_fact_note(["one fact", "two fact"], when)
    assert text == (
        "# Extracted Facts\n\n"
        "Extracted at: 2024-05-01T00:00:00+00:00\n\n"
        "- one fact\n"
        "- two fact\n"
    )


def test_fact_note_writer_wraps_os_errors(tmp_path):
    blocker = tmp_path / "memory"
    blocker.write_text("not a directory", encoding="utf-8")
    with pytest.raises(StorageError):
        FactNoteWriter(blocker).write(["anything at all"])
