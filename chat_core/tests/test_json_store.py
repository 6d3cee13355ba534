import json

import pytest

from chat_core.domain.conversation import Conversation
from chat_core.domain.exceptions import JsonParseError, StorageError
from chat_core.infrastructure.storage.json_store import load_conversation, save_conversation


@pytest.mark.parametrize("count", [0, 1, 5])
def test_save_and_load_reproduces_messages(tmp_path, cfg, conv, count):
    texts = ["", "多字节 ✓", 'quote " and \\ backslash', "line\nbreak", "plain"]
    for i in range(count):
        conv.add_message(["user", "assistant", "system"][i % 3], texts[i])
    path = tmp_path / "chat.json"
    save_conversation(conv, path)

    fresh = Conversation(api_key="k", cfg=cfg)
    fresh.add_user("will be replaced")
    assert load_conversation(fresh, path) == count
    assert [(m.role, m.content) for m in fresh.messages] == [(m.role, m.content) for m in conv.messages]


def test_file_holds_messages_only(tmp_path, conv):
    conv.set_temperature(1.2)
    conv.add_user("hi")
    path = tmp_path / "chat.json"
    save_conversation(conv, path)
    assert json.loads(path.read_text(encoding="utf-8")) == [{"role": "user", "content": "hi"}]


def test_bad_entries_skipped(tmp_path, conv):
    path = tmp_path / "chat.json"
    path.write_text(
        json.dumps([
            {"role": "user", "content": "ok"},
            {"role": "user"},
            {"content": "no role"},
            {"role": 1, "content": "x"},
            "not an object",
            {"role": "assistant", "content": "fine"},
        ]),
        encoding="utf-8",
    )
    assert load_conversation(conv, path) == 2
    assert [m.content for m in conv.messages] == ["ok", "fine"]


def test_invalid_file_leaves_messages(tmp_path, conv):
    conv.add_user("keep me")
    path = tmp_path / "chat.json"
    path.write_text('{"role": "user"}', encoding="utf-8")
    with pytest.raises(JsonParseError):
        load_conversation(conv, path)
    path.write_text("not json", encoding="utf-8")
    with pytest.raises(JsonParseError):
        load_conversation(conv, path)
    assert [m.content for m in conv.messages] == ["keep me"]


def test_missing_file(tmp_path, conv):
    with pytest.raises(StorageError):
        load_conversation(conv, tmp_path / "missing.json")


def test_invalid_utf8_file_leaves_messages(tmp_path, conv):
    conv.add_user("keep me")
    path = tmp_path / "chat.json"
    path.write_bytes(b'[{"role":"user","content":"\xff\xfe"}]')
    with pytest.raises(JsonParseError):
        load_conversation(conv, path)
    assert [m.content for m in conv.messages] == ["keep me"]


def test_unencodable_content_leaves_no_temp_file(tmp_path, conv):
    conv.add_user("a\ud800b")
    path = tmp_path / "chat.json"
    with pytest.raises(StorageError):
        save_conversation(conv, path)
    assert not path.exists()
    assert list(tmp_path.iterdir()) == []
