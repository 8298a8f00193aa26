"""Unit tests for history assembly."""

import base64

import pytest

from modelhub.core.history import assemble_messages, mime_type_for

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


@pytest.fixture
def stored_png(blobs):
    return blobs.save(PNG_BYTES, prefix="image", suffix=".png")


class TestAssembleMessages:

    def test_system_prompt_first_and_current_turn_last(self, store, blobs, chat_session):
        store.add_message(chat_session, "user", "earlier question")
        store.add_message(chat_session, "assistant", "earlier answer")

        messages = assemble_messages(store, blobs, chat_session, None, "Be brief.", "new question")

        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "earlier question"},
            {"role": "assistant", "content": "earlier answer"},
            {"role": "user", "content": "new question"},
        ]

    def test_empty_system_prompt_skipped(self, store, blobs):
        messages = assemble_messages(store, blobs, None, None, "", "hello")
        assert messages == [{"role": "user", "content": "hello"}]

    def test_pending_message_excluded_by_id(self, store, blobs, chat_session):
        store.add_message(chat_session, "user", "same text")
        pending_id = store.add_message(chat_session, "user", "same text")

        messages = assemble_messages(store, blobs, chat_session, pending_id, "", "same text")

        # One prior duplicate survives; the pending row is not replayed
        assert [m["content"] for m in messages] == ["same text", "same text"]

    def test_ascending_order_preserved(self, store, blobs, chat_session):
        for i in range(5):
            store.add_message(chat_session, "user" if i % 2 == 0 else "assistant", f"turn {i}")

        messages = assemble_messages(store, blobs, chat_session, None, "", "now")

        assert [m["content"] for m in messages[:-1]] == [f"turn {i}" for i in range(5)]

    def test_history_disabled(self, store, blobs, chat_session):
        store.add_message(chat_session, "user", "earlier")
        messages = assemble_messages(store, blobs, chat_session, None, "", "now", use_history=False)
        assert messages == [{"role": "user", "content": "now"}]

    def test_user_image_inlined_as_data_uri(self, store, blobs, chat_session, stored_png):
        store.add_message(chat_session, "user", "look at this", image_path=stored_png)

        messages = assemble_messages(store, blobs, chat_session, None, "", "and now?")

        content = messages[0]["content"]
        assert content[0] == {"type": "text", "text": "look at this"}
        url = content[1]["image_url"]["url"]
        assert url == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    def test_assistant_image_not_inlined(self, store, blobs, chat_session, stored_png):
        store.add_message(chat_session, "assistant", "Generated image", image_path=stored_png)
        messages = assemble_messages(store, blobs, chat_session, None, "", "thanks")
        assert messages[0]["content"] == "Generated image"

    def test_missing_image_skipped_silently(self, store, blobs, chat_session):
        store.add_message(chat_session, "user", "gone", image_path="/uploads/missing.png")
        messages = assemble_messages(store, blobs, chat_session, None, "", "hi")
        assert messages[0] == {"role": "user", "content": "gone"}

    def test_current_turn_with_image(self, store, blobs, stored_png):
        messages = assemble_messages(store, blobs, None, None, "", "describe", image_path=stored_png)
        content = messages[-1]["content"]
        assert content[0]["text"] == "describe"
        assert content[1]["type"] == "image_url"


class TestMimeType:

    @pytest.mark.parametrize("ref,expected", [
        ("/uploads/a.png", "image/png"),
        ("/uploads/a.PNG", "image/png"),
        ("/uploads/a.jpg", "image/jpeg"),
        ("/uploads/a.webp", "image/jpeg"),
    ])
    def test_inferred_from_extension(self, ref, expected):
        assert mime_type_for(ref) == expected
