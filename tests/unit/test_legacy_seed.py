import json

from services.legacy_seed import seed_legacy_manifest
from services.narration_service import NarrationService
from tts.types import SynthesisResult


class _FakeClient:
    def __init__(self):
        self.calls = []

    def synthesize_result(self, text):
        self.calls.append(text)
        return SynthesisResult(audio=b"fresh")


def _write_manifest(root, articles):
    (root / "articles").mkdir()
    (root / "audio").mkdir()
    path = root / "manifest.json"
    path.write_text(json.dumps({"articles": articles}), encoding="utf-8")
    return path


def test_seed_links_existing_audio_and_queues_the_rest(repository, task_manager, audio_dir, tmp_path):
    legacy_root = tmp_path / "legacy"
    legacy_root.mkdir()
    manifest = _write_manifest(legacy_root, [
        {"id": "a1", "title": "With audio", "markdown": "articles/a1.md", "audio": "audio/a1.mp3"},
        {"id": "a2", "title": "No audio", "markdown": "articles/a2.md", "audio": "audio/missing.mp3"},
        {"id": "a3", "title": "Broken", "markdown": "articles/none.md"},
        "junk",
    ])
    (legacy_root / "articles" / "a1.md").write_text("# First", encoding="utf-8")
    (legacy_root / "articles" / "a2.md").write_text("# Second", encoding="utf-8")
    (legacy_root / "audio" / "a1.mp3").write_bytes(b"old-audio")

    client = _FakeClient()
    service = NarrationService(repository, client, task_manager, audio_dir)

    summary = seed_legacy_manifest(service, manifest)
    assert task_manager.join(timeout=5)

    assert summary == {"linked": 1, "queued": 1, "cached": 0, "skipped": 2}
    assert (audio_dir / "legacy_a1.mp3").read_bytes() == b"old-audio"
    assert client.calls == ["# Second"]
    statuses = {a["title"]: a["status"] for a in repository.list_summaries()}
    assert statuses == {"With audio": "completed", "No audio": "completed"}

    # 再跑一次：全部命中缓存
    again = seed_legacy_manifest(service, manifest)
    assert again == {"linked": 1, "queued": 0, "cached": 1, "skipped": 2}
    assert len(client.calls) == 1


def test_seed_missing_manifest_is_noop(repository, task_manager, audio_dir, tmp_path):
    service = NarrationService(repository, _FakeClient(), task_manager, audio_dir)
    summary = seed_legacy_manifest(service, tmp_path / "nope.json")
    assert summary == {"linked": 0, "queued": 0, "cached": 0, "skipped": 0}
    assert repository.list_summaries() == []


def test_seed_invalid_manifest_is_logged(repository, task_manager, audio_dir, tmp_path):
    path = tmp_path / "manifest.json"
    path.write_text("{broken", encoding="utf-8")
    service = NarrationService(repository, _FakeClient(), task_manager, audio_dir)
    assert seed_legacy_manifest(service, path)["skipped"] == 0
