import functools
import json

import httpx
import pytest

from epa_tutor.catalog import get_section
from epa_tutor.config import Settings
from epa_tutor.portfolio import new_document, update_section
from epa_tutor.tutor import (
    CLEARED, GREETING, GeminiClient, InFlightSlot, MissingCredentialError,
    ProviderError, RequestInFlightError, TutorChat, build_draft_prompt,
    client_factory, draft_section,
)


def _reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def mock_factory(handler, calls=None):
    def recording(request):
        if calls is not None:
            calls.append(request)
        return handler(request)
    return functools.partial(GeminiClient, transport=httpx.MockTransport(recording))


class FakeClient:
    def __init__(self, text="Generated paragraph.", on_generate=None):
        self.text = text
        self.on_generate = on_generate
        self.closed = False
        self.contents = None

    def generate(self, contents):
        self.contents = contents
        if self.on_generate:
            self.on_generate()
        return self.text

    def close(self):
        self.closed = True


# --- client ---


def test_generate_posts_contents_and_key():
    calls = []
    client = mock_factory(lambda r: httpx.Response(200, json=_reply("Ohm's law is V = IR.")), calls)("k-123")
    text = client.generate([{"role": "user", "parts": [{"text": "What is Ohm's law?"}]}])
    client.close()
    assert text == "Ohm's law is V = IR."
    request = calls[0]
    assert request.url.params["key"] == "k-123"
    assert request.url.path.endswith("/models/gemini-1.5-flash:generateContent")
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][0]["text"] == "What is Ohm's law?"
    assert body["generationConfig"]["maxOutputTokens"] == 1000


def test_client_requires_key():
    with pytest.raises(MissingCredentialError):
        GeminiClient("")


def test_http_error_becomes_provider_error():
    factory = mock_factory(lambda r: httpx.Response(400, json={"error": {"message": "API key not valid"}}))
    with factory("bad") as client:
        with pytest.raises(ProviderError, match="API key not valid"):
            client.generate([])


def test_network_error_becomes_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)
    with mock_factory(handler)("k") as client:
        with pytest.raises(ProviderError):
            client.generate([])


def test_malformed_response_becomes_provider_error():
    with mock_factory(lambda r: httpx.Response(200, json={"candidates": []}))("k") as client:
        with pytest.raises(ProviderError):
            client.generate([])


def test_client_factory_uses_settings():
    settings = Settings(gemini_model="gemini-test", gemini_base_url="https://example.test/v1",
                        max_output_tokens=42)
    client = client_factory(settings)("key")
    assert client.url == "https://example.test/v1/models/gemini-test:generateContent"
    assert client.max_output_tokens == 42
    client.close()


# --- in-flight slot ---


def test_slot_rejects_second_request():
    slot = InFlightSlot()
    slot.begin()
    with pytest.raises(RequestInFlightError):
        slot.begin()


def test_slot_released_after_failure():
    slot = InFlightSlot()
    with pytest.raises(RuntimeError):
        with slot.request():
            raise RuntimeError("boom")
    assert slot.in_flight is False
    slot.begin()


def test_slot_invalidate_marks_stale():
    slot = InFlightSlot()
    generation = slot.begin()
    slot.invalidate()
    assert slot.is_current(generation) is False


# --- chat ---


def test_chat_starts_with_greeting():
    chat = TutorChat(lambda key: FakeClient())
    assert [t.text for t in chat.transcript] == [GREETING]


def test_chat_turn_appends_message_and_reply():
    calls = []
    chat = TutorChat(mock_factory(lambda r: httpx.Response(200, json=_reply("Use a CO2 extinguisher.")), calls))
    reply = chat.send("Which extinguisher for electrical fires?", "k")
    assert reply.text == "Use a CO2 extinguisher."
    assert [(t.role, t.text) for t in chat.transcript[1:]] == [
        ("user", "Which extinguisher for electrical fires?"),
        ("model", "Use a CO2 extinguisher."),
    ]
    sent = json.loads(calls[0].content)["contents"]
    assert [c["role"] for c in sent] == ["model", "user"]


def test_chat_resends_history():
    clients = []

    def factory(key):
        clients.append(FakeClient(text=f"reply {len(clients)}"))
        return clients[-1]

    chat = TutorChat(factory)
    chat.send("first", "k")
    chat.send("second", "k")
    texts = [c["parts"][0]["text"] for c in clients[1].contents]
    assert texts == [GREETING, "first", "reply 0", "second"]
    assert all(c.closed for c in clients)


def test_chat_missing_key_makes_no_request():
    calls = []
    chat = TutorChat(mock_factory(lambda r: httpx.Response(200, json=_reply("x")), calls))
    with pytest.raises(MissingCredentialError):
        chat.send("hello", "")
    assert calls == []
    assert len(chat.transcript) == 1


def test_chat_ignores_blank_message():
    chat = TutorChat(lambda key: FakeClient())
    assert chat.send("   ", "k") is None
    assert len(chat.transcript) == 1


def test_chat_failure_adds_no_reply():
    chat = TutorChat(mock_factory(lambda r: httpx.Response(429, json={"error": {"message": "quota"}})))
    with pytest.raises(ProviderError):
        chat.send("hello", "k")
    assert [t.role for t in chat.transcript] == ["model", "user"]
    assert chat.busy is False


def test_chat_rejects_while_in_flight():
    chat = TutorChat(lambda key: FakeClient())
    chat.slot.begin()
    with pytest.raises(RequestInFlightError):
        chat.send("hello", "k")


def test_chat_discards_reply_after_clear():
    chat = TutorChat(lambda key: FakeClient(on_generate=lambda: chat.clear()))
    assert chat.send("hello", "k") is None
    assert [t.text for t in chat.transcript] == [CLEARED]


# --- draft assist ---


def test_build_draft_prompt_mentions_hints():
    section = get_section("health_safety")
    prompt = build_draft_prompt(section, "I wore PPE.")
    assert section.prompt in prompt
    assert "I wore PPE." in prompt
    assert "S1, K2, B1, B2, B6, B7" in prompt


def test_draft_replaces_section_text(store):
    doc = new_document(created_ms=1)
    update_section(doc, "task", "I replaced a contactor.")
    store.add_document(doc)
    fake = FakeClient(text="I isolated the supply and proved dead before replacing the contactor coil.")
    text = draft_section(store, doc.id, "task", "k", lambda key: fake)
    assert text == fake.text
    saved = store.get_document(doc.id)
    assert saved.sections["task"] == fake.text
    assert "task" in saved.completed_sections
    assert "I replaced a contactor." in fake.contents[0]["parts"][0]["text"]
    assert fake.closed


def test_draft_requires_key(store):
    doc = new_document(created_ms=1)
    store.add_document(doc)
    with pytest.raises(MissingCredentialError):
        draft_section(store, doc.id, "task", "", lambda key: FakeClient())


def test_draft_failure_leaves_text_unchanged(store):
    doc = new_document(created_ms=1)
    update_section(doc, "intro", "Original text.")
    store.add_document(doc)
    factory = mock_factory(lambda r: httpx.Response(500, json={"error": {"message": "internal"}}))
    with pytest.raises(ProviderError):
        draft_section(store, doc.id, "intro", "k", factory)
    assert store.get_document(doc.id).sections["intro"] == "Original text."


def test_draft_discarded_when_document_deleted(store):
    doc = new_document(created_ms=1)
    store.add_document(doc)
    fake = FakeClient(on_generate=lambda: store.delete_document(doc.id))
    assert draft_section(store, doc.id, "intro", "k", lambda key: fake) is None
    assert store.documents == []


def test_draft_discarded_when_slot_invalidated(store):
    doc = new_document(created_ms=1)
    store.add_document(doc)
    slot = InFlightSlot()
    fake = FakeClient(on_generate=slot.invalidate)
    assert draft_section(store, doc.id, "intro", "k", lambda key: fake, slot=slot) is None
    assert store.get_document(doc.id).sections == {}
