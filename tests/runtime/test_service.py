import pytest

from hearth.config.memory import MemoryConfig
from hearth.runtime.memory.errors import InvalidParameterError, SessionNotFoundError
from hearth.runtime.memory.service import MemoryService
from hearth.runtime.memory.telemetry import RecordingTelemetryClient


def _service(tmp_path, **kwargs) -> MemoryService:
    return MemoryService(config=MemoryConfig(workspace_root=tmp_path), **kwargs)


def _write_note(service: MemoryService, rel: str, text: str):
    path = service.workspace.memory_dir / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_service_initializes_workspace_layout(tmp_path):
    service = _service(tmp_path)
    for rel in ("sessions", "workspace", "workspace/memory", "logs"):
        assert (tmp_path / rel).is_dir()
    assert service.workspace.root == tmp_path.resolve()


def test_index_workspace_indexes_markdown_recursively(tmp_path):
    service = _service(tmp_path)
    _write_note(service, "a.md", "Kubernetes deployment checklist")
    _write_note(service, "sub/b.md", "Postgres vacuum schedule")
    _write_note(service, "c.txt", "ignored kubernetes text")

    assert service.index_workspace() == 2
    assert service.index.document_ids() == ["workspace/memory/a.md", "workspace/memory/sub/b.md"]

    [hit] = service.search("kubernetes")
    assert hit.path == "workspace/memory/a.md"


def test_index_workspace_drops_vanished_notes(tmp_path):
    service = _service(tmp_path)
    _write_note(service, "a.md", "alpha note")
    gone = _write_note(service, "b.md", "beta note")
    service.add_document("workspace/extra.md", "manually added beta")
    assert service.index_workspace() == 2

    gone.unlink()
    assert service.index_workspace() == 1
    assert "workspace/memory/b.md" not in service.index
    # documents outside the notes directory are left alone
    assert "workspace/extra.md" in service.index


def test_index_workspace_skips_undecodable_files(tmp_path, caplog):
    service = _service(tmp_path)
    _write_note(service, "good.md", "readable note")
    (service.workspace.memory_dir / "bad.md").write_bytes(b"\xff\xfe\xfa")

    assert service.index_workspace() == 1
    assert "workspace/memory/bad.md" not in service.index
    assert any(r.getMessage() == "Failed to index file" for r in caplog.records)


def test_add_document_rejects_paths_outside_workspace(tmp_path):
    service = _service(tmp_path)
    with pytest.raises(InvalidParameterError):
        service.add_document("../outside.md", "nope")

    service.add_document("workspace/memory/virtual.md", "virtual note about redis")
    assert [r.path for r in service.search("redis")] == ["workspace/memory/virtual.md"]


def test_build_system_prompt_combines_bootstrap_and_notes(tmp_path):
    service = _service(tmp_path)
    service.workspace.persona_path.write_text("You are Hearth.", encoding="utf-8")
    _write_note(service, "a.md", "The user deploys with Terraform")
    service.index_workspace()

    prompt = service.build_system_prompt("terraform")
    assert prompt.startswith("You are Hearth.")
    assert "## Relevant Context" in prompt
    assert "[From workspace/memory/a.md]:\nThe user deploys with Terraform" in prompt

    assert service.build_system_prompt("unrelated") == "You are Hearth."


def test_session_create_refreshes_bootstrap(tmp_path):
    service = _service(tmp_path)
    assert service.load_bootstrap() == ""

    service.workspace.profile_path.write_text("Name: Sam", encoding="utf-8")
    service.session_create()
    assert service.bootstrap.content.profile == "Name: Sam"


def test_session_lifecycle(tmp_path):
    service = _service(tmp_path)
    session = service.session_create()
    service.session_append(session.id, role="user", content="hello")
    service.session_append(session.id, role="assistant", content="hi")

    assert [e.content for e in service.session_history(session.id)] == ["hello", "hi"]
    assert service.session_load(session.id).message_count == 2
    assert [s.id for s in service.session_list()] == [session.id]

    report = service.session_repair(session.id)
    assert report.repaired is False
    assert report.recovered == 2

    service.session_delete(session.id)
    assert service.session_list() == []
    with pytest.raises(SessionNotFoundError):
        service.session_history(session.id)


def test_session_compact_flushes_and_indexes_facts(tmp_path):
    service = _service(tmp_path)
    session = service.session_create()
    service.session_append(session.id, role="user", content="I always prefer dark mode in every editor.")
    service.session_append(session.id, role="assistant", content="x" * 200)
    service.session_append(session.id, role="user", content="y" * 160)
    service.session_append(session.id, role="assistant", content="z" * 100)

    result = service.session_compact(session.id, token_budget=100)

    assert result.note_path.startswith("workspace/memory/facts-")
    note = service.workspace.resolve(result.note_path)
    assert "- I always prefer dark mode in every editor" in note.read_text(encoding="utf-8")
    assert result.note_path in service.index

    history = service.session_history(session.id)
    assert [e.id for e in history] == [e.id for e in result.retained_entries]
    assert history[0].content.startswith("[Context Summary: ")

    assert [r.path for r in service.search("dark mode editor")] == [result.note_path]


def test_session_compact_within_budget_leaves_log_alone(tmp_path):
    service = _service(tmp_path)
    session = service.session_create()
    service.session_append(session.id, role="user", content="short")
    before = session.transcript_path.read_bytes()

    result = service.session_compact(session.id)
    assert not result.compacted
    assert session.transcript_path.read_bytes() == before


def test_operations_emit_spans(tmp_path):
    telemetry = RecordingTelemetryClient()
    service = _service(tmp_path, telemetry=telemetry)
    session = service.session_create()

    service.index_workspace()
    service.search("anything")
    service.compact([], token_budget=10)
    service.session_repair(session.id)

    assert telemetry.names() == [
        "memory.index_workspace",
        "memory.search",
        "memory.compact",
        "transcript.repair",
    ]
    assert all(attrs["success"] for _, attrs in telemetry.spans)


def test_failed_operation_span_records_error(tmp_path):
    telemetry = RecordingTelemetryClient()
    service = _service(tmp_path, telemetry=telemetry)

    with pytest.raises(InvalidParameterError):
        service.compact([], token_budget=-5)

    [(name, attrs)] = telemetry.spans
    assert name == "memory.compact"
    assert attrs["success"] is False
    assert attrs["error"] == "InvalidParameterError"
