import threading
from pathlib import Path

import pytest

from services.errors import ConflictError, ValidationError
from services.narration_service import NarrationService
from tts.types import SynthesisResult, TimelineSegment, TtsExtractionError, TtsPollError, TtsRemoteError
from utils.fingerprint import content_fingerprint


class _FakeClient:
    def __init__(self, audio=b"ID3audio", error=None, gate=None):
        self.audio = audio
        self.error = error
        self.gate = gate
        self.started = threading.Event()
        self.calls = []

    def synthesize_result(self, text):
        self.calls.append(text)
        self.started.set()
        if self.gate is not None:
            assert self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return SynthesisResult(
            audio=self.audio,
            segments=[TimelineSegment("Hello", 0, 300), TimelineSegment("world", 300, 700)],
            task_id="t1",
            file_id="42",
        )


@pytest.fixture
def make_service(repository, task_manager, audio_dir):
    def _make(client):
        return NarrationService(repository, client, task_manager, audio_dir)
    return _make


def _finish(task_manager):
    assert task_manager.join(timeout=5)


def test_new_content_returns_pending_record(make_service, repository, task_manager):
    client = _FakeClient()
    service = make_service(client)

    article = service.resolve("Greeting", "Hello world")

    assert article.status == "pending"
    assert article.content_hash == content_fingerprint("Hello world")
    _finish(task_manager)

    loaded = repository.find_by_id(article.id)
    assert loaded.status == "completed"
    assert Path(loaded.audio_path).read_bytes() == b"ID3audio"
    assert Path(loaded.audio_path).name == f"audio_{article.id}_{article.content_hash[:8]}.mp3"
    assert [s.text for s in loaded.sentences] == ["Hello", "world"]
    assert service.in_flight() == frozenset()


def test_second_submission_is_cache_hit(make_service, task_manager):
    client = _FakeClient()
    service = make_service(client)

    first = service.resolve("Greeting", "Hello world")
    _finish(task_manager)
    second = service.resolve("Other title", "Hello world")

    assert second.id == first.id
    assert second.content_hash == first.content_hash
    assert second.status == "completed"
    assert len(client.calls) == 1


@pytest.mark.parametrize("error", [
    TtsRemoteError(1002, "rate limit", "submit"),
    TtsPollError("poll deadline exceeded"),
    TtsExtractionError("no mp3 entry"),
])
def test_remote_failure_marks_failed(make_service, repository, task_manager, audio_dir, error):
    client = _FakeClient(error=error)
    service = make_service(client)

    article = service.resolve("Greeting", "Hello world")
    _finish(task_manager)

    loaded = repository.find_by_id(article.id)
    assert loaded.status == "failed"
    assert loaded.audio_path == ""
    assert list(audio_dir.iterdir()) == []


def test_failed_record_is_retried_on_resubmit(make_service, repository, task_manager):
    client = _FakeClient(error=TtsRemoteError(1002, "rate limit", "submit"))
    service = make_service(client)
    article = service.resolve("Greeting", "Hello world")
    _finish(task_manager)

    client.error = None
    again = service.resolve("Greeting", "Hello world")
    _finish(task_manager)

    assert again.id == article.id
    assert repository.find_by_id(article.id).status == "completed"
    assert len(client.calls) == 2


def test_missing_file_triggers_regeneration(make_service, repository, task_manager):
    client = _FakeClient()
    service = make_service(client)
    article = service.resolve("Greeting", "Hello world")
    _finish(task_manager)

    Path(repository.find_by_id(article.id).audio_path).unlink()
    client.gate = threading.Event()
    client.started.clear()
    again = service.resolve("Greeting", "Hello world")
    assert again.status == "completed"  # 返回的是提交前的记录

    # 重新合成期间记录回到 processing，音频路径被清空
    assert client.started.wait(5)
    in_progress = repository.find_by_id(article.id)
    assert in_progress.status == "processing"
    assert in_progress.audio_path == ""

    client.gate.set()
    _finish(task_manager)

    loaded = repository.find_by_id(article.id)
    assert loaded.status == "completed"
    assert Path(loaded.audio_path).is_file()
    assert len(client.calls) == 2


def test_concurrent_identical_submissions_share_one_attempt(make_service, repository, task_manager):
    gate = threading.Event()
    client = _FakeClient(gate=gate)
    service = make_service(client)

    first = service.resolve("Greeting", "Hello world")
    assert client.started.wait(5)

    # 合成已开始，记录处于 processing
    with pytest.raises(ConflictError) as exc:
        service.resolve("Greeting", "Hello world")
    assert exc.value.article_id == first.id
    assert content_fingerprint("Hello world") in service.in_flight()

    gate.set()
    _finish(task_manager)

    assert len(client.calls) == 1
    assert repository.find_by_id(first.id).status == "completed"


def test_queued_attempt_is_joined_not_duplicated(repository, audio_dir):
    from workers.task_queue import TaskManager

    # 单线程池先被占住，第二个正文的任务只能排队（状态仍是 pending）
    manager = TaskManager(max_workers=1)
    blocker = threading.Event()
    manager.submit(blocker.wait, "blocker", 5)

    client = _FakeClient()
    service = NarrationService(repository, client, manager, audio_dir)
    try:
        first = service.resolve("Greeting", "Hello world")
        second = service.resolve("Greeting", "Hello world")
        assert second.id == first.id
        assert second.status == "pending"
    finally:
        blocker.set()
        manager.shutdown(wait=True)

    assert len(client.calls) == 1
    assert repository.find_by_id(first.id).status == "completed"


def test_processing_record_from_elsewhere_conflicts(make_service, repository):
    service = make_service(_FakeClient())
    article, _ = repository.find_or_create("T", "Hello world", content_fingerprint("Hello world"))
    repository.claim_for_processing(article.id)

    with pytest.raises(ConflictError):
        service.resolve("T", "Hello world")


@pytest.mark.parametrize("title,content", [("", "body"), ("   ", "body"), ("T", ""), ("T", " \n ")])
def test_blank_input_is_rejected(make_service, repository, title, content):
    service = make_service(_FakeClient())
    with pytest.raises(ValidationError):
        service.resolve(title, content)
    assert repository.list_summaries() == []


def test_import_existing_links_legacy_audio(make_service, repository, tmp_path, audio_dir):
    legacy = tmp_path / "old.mp3"
    legacy.write_bytes(b"legacy")
    client = _FakeClient()
    service = make_service(client)

    article = service.import_existing("Old", "Old content", legacy)

    assert article.status == "completed"
    assert Path(article.audio_path) == audio_dir / "legacy_old.mp3"
    assert (audio_dir / "legacy_old.mp3").read_bytes() == b"legacy"

    # 之后同样的正文直接命中缓存
    again = service.resolve("Old", "Old content")
    assert again.status == "completed"
    assert client.calls == []


def test_non_utf8_text_is_rejected(make_service, repository):
    service = make_service(_FakeClient())
    with pytest.raises(ValidationError):
        service.resolve("T", "bad \ud800 text")
    with pytest.raises(ValidationError):
        service.resolve("bad \udfff title", "Hello world")
    assert repository.list_summaries() == []


def test_submit_failure_does_not_leave_stale_in_flight_entry(make_service, repository, task_manager):
    client = _FakeClient()
    service = make_service(client)
    task_manager.shutdown(wait=True)

    with pytest.raises(RuntimeError):
        service.resolve("Greeting", "Hello world")
    assert service.in_flight() == frozenset()

    # 换一个可用的任务池后，同一正文可以正常重新提交
    from workers.task_queue import TaskManager

    service.task_manager = TaskManager(max_workers=1)
    try:
        article = service.resolve("Greeting", "Hello world")
        assert service.task_manager.join(timeout=5)
    finally:
        service.task_manager.shutdown(wait=True)
    assert repository.find_by_id(article.id).status == "completed"
    assert len(client.calls) == 1


def test_claim_error_marks_record_failed(make_service, repository, task_manager, monkeypatch):
    from sqlalchemy.exc import OperationalError

    client = _FakeClient()
    service = make_service(client)

    def locked(article_id):
        raise OperationalError("UPDATE articles", {}, Exception("database is locked"))

    monkeypatch.setattr(repository, "claim_for_processing", locked)
    article = service.resolve("Greeting", "Hello world")
    _finish(task_manager)

    loaded = repository.find_by_id(article.id)
    assert loaded.status == "failed"
    assert loaded.audio_path == ""
    assert client.calls == []
    assert service.in_flight() == frozenset()
