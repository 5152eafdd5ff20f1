import json

from routecode.models import TokenUsage
from routecode.session import HistoryStore


def test_save_then_load(tmp_path):
    store = HistoryStore(tmp_path / ".agent_history.json")
    messages = [{"role": "user", "content": "héllo"}, {"role": "assistant", "content": "hi"}]

    store.save(messages, TokenUsage(120, 30))
    loaded, usage = store.load()

    assert loaded == messages
    assert usage == TokenUsage(120, 30)
    raw = store.path.read_text(encoding="utf-8")
    assert "héllo" in raw
    assert json.loads(raw)["tokens"] == {"input": 120, "output": 30}


def test_missing_file_is_empty(tmp_path):
    store = HistoryStore(tmp_path / "none.json")

    assert not store.exists()
    assert store.load() == ([], TokenUsage())


def test_corrupt_file_is_ignored(tmp_path):
    path = tmp_path / "h.json"
    path.write_text("{not json", encoding="utf-8")

    assert HistoryStore(path).load() == ([], TokenUsage())


def test_unexpected_shapes_are_filtered(tmp_path):
    path = tmp_path / "h.json"
    path.write_text(json.dumps({
        "messages": [{"role": "user", "content": "ok"}, "junk", {"content": "no role"}],
        "tokens": {"input": "x"},
    }), encoding="utf-8")

    messages, usage = HistoryStore(path).load()

    assert messages == [{"role": "user", "content": "ok"}]
    assert usage == TokenUsage()


def test_top_level_list_is_ignored(tmp_path):
    path = tmp_path / "h.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert HistoryStore(path).load() == ([], TokenUsage())


def test_clear_removes_file(tmp_path):
    store = HistoryStore(tmp_path / "h.json")
    store.save([], TokenUsage())

    store.clear()
    store.clear()

    assert not store.exists()
