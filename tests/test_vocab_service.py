import asyncio
import json

import pytest

from conftest import FakeGemini, failing, raw_item
from deutschpro.errors import BackendUnavailableError
from deutschpro.vocab_service import (
    TUTOR_FALLBACK_REPLY,
    fetch_batch_chunk,
    fetch_quiz_batch,
    fetch_word_details,
    generate_speech,
    tutor_reply,
)


def chunk(*words, **kwargs):
    return json.dumps([raw_item(w, **kwargs) for w in words])


def run(coro):
    return asyncio.run(coro)


def batch(client, level="B1", count=8, exclude=None, **kwargs):
    kwargs.setdefault("cooldown_seconds", 0)
    return run(fetch_quiz_batch(client, level, count, exclude or [], **kwargs))


def test_single_full_chunk_finishes_in_one_call():
    words = ["Haus", "Hund", "Baum", "Tisch", "Stuhl", "Fenster", "Tür", "Dach"]
    client = FakeGemini([chunk(*words)])

    items = batch(client, "B1", 8)

    assert [i.word for i in items] == words
    assert len(client.prompts) == 1
    assert "EXACTLY 8" in client.prompts[0]
    assert "Level: B1" in client.prompts[0]


def test_stalled_backend_stops_at_loop_ceiling_with_short_result():
    client = FakeGemini([chunk("Haus", "Hund", "Baum", "Tisch", "Stuhl")], default=chunk("Haus", "hund"))

    items = batch(client, "B1", 8, max_loops=6)

    assert len(items) == 5
    assert len(client.prompts) == 6


def test_empty_chunks_do_not_raise():
    client = FakeGemini(default="[]")
    assert batch(client, "A1", 8, max_loops=3) == []
    assert len(client.prompts) == 3


def test_never_returns_more_than_requested():
    client = FakeGemini([chunk("Haus", "Hund", "Baum", "Tisch", "Stuhl", "Fenster", "Tür", "Dach")])

    items = batch(client, "A2", 3)

    assert len(items) == 3
    assert "EXACTLY 3" in client.prompts[0]


def test_chunks_are_capped_and_remaining_count_shrinks():
    first = [f"Wort{i}" for i in range(8)]
    second = [f"Satz{i}" for i in range(4)]
    client = FakeGemini([chunk(*first), chunk(*second)])

    items = batch(client, "B2", 12)

    assert len(items) == 12
    assert "EXACTLY 8" in client.prompts[0]
    assert "EXACTLY 4" in client.prompts[1]


def test_exclusions_are_case_insensitive_and_grow():
    client = FakeGemini([chunk("haus", "Hund", "Baum"), chunk("baum", "Katze")])

    items = batch(client, "A1", 3, exclude=["HAUS"])

    words = [i.word for i in items]
    assert words == ["Hund", "Baum", "Katze"]
    assert "Hund" in client.prompts[1] and "Baum" in client.prompts[1]


def test_returned_items_are_pairwise_unique():
    client = FakeGemini([chunk("Bank", "bank", "BANK", "Ufer"), chunk("Ufer", "Geld")])

    items = batch(client, "B1", 3)

    keys = [(i.word.lower(), i.type) for i in items]
    assert len(set(keys)) == len(keys)
    assert [i.word for i in items] == ["Bank", "Ufer", "Geld"]


def test_only_recent_exclusions_reach_the_prompt():
    exclude = [f"alt{i}" for i in range(150)]
    client = FakeGemini([chunk("Neu")])

    batch(client, "C1", 1, exclude=exclude, exclusion_window=100)

    prompt = client.prompts[0]
    assert "alt149" in prompt
    assert "alt50," in prompt
    assert "alt49," not in prompt


def test_truncated_chunk_is_repaired():
    text = chunk("Haus", "Hund")[:-20]
    client = FakeGemini([text, chunk("Baum")])

    items = batch(client, "A1", 2)

    assert [i.word for i in items] == ["Haus", "Baum"]


def test_every_call_failing_raises():
    client = FakeGemini([failing()] * 4)
    with pytest.raises(BackendUnavailableError):
        batch(client, "B1", 8, max_loops=4)


def test_partial_failures_are_absorbed():
    client = FakeGemini([failing(), chunk("Haus"), failing()])

    items = batch(client, "B1", 2, max_loops=3)

    assert [i.word for i in items] == ["Haus"]


def test_count_is_validated():
    with pytest.raises(ValueError):
        batch(FakeGemini(), "B1", 0)
    with pytest.raises(ValueError):
        batch(FakeGemini(), "B1", 101)
    with pytest.raises(ValueError):
        batch(FakeGemini(), "D1", 5)


def test_chunk_normalises_items():
    raw = json.dumps(
        [
            raw_item("gehen", type="verb", level="Z9"),
            {"word": "kaputt"},
            raw_item("mit", type="preposition", cases=["Dativ"]),
        ]
    )
    items = run(fetch_batch_chunk(FakeGemini([raw]), "A2", 8, []))

    assert [i.word for i in items] == ["gehen", "mit"]
    verb = items[0]
    assert verb.level == "A2"
    assert verb.conjugation is not None and verb.conjugation.present3rd == ""
    assert items[1].cases == ["Dativ"]
    assert items[0].id != items[1].id


def test_word_lookup_returns_item_with_flag():
    reply = json.dumps({**raw_item("Fahrrad", level="A1"), "exists": True})
    result = run(fetch_word_details(FakeGemini([reply]), "Fahrrad"))

    assert result is not None
    assert result.exists is True
    assert result.word == "Fahrrad" and result.gender == "das"
    assert '"Fahrrad"' in result.model_dump_json(by_alias=True)


def test_word_lookup_non_existent_word():
    result = run(fetch_word_details(FakeGemini([json.dumps({"exists": False})]), "Blorp"))
    assert result is not None
    assert result.exists is False


def test_word_lookup_failures_return_none():
    assert run(fetch_word_details(FakeGemini([failing()]), "Haus")) is None
    assert run(fetch_word_details(FakeGemini(["not json"]), "Haus")) is None


def test_tutor_reply_uses_mastered_words_and_history():
    from deutschpro.schemas import ChatMessage

    client = FakeGemini(chat_reply="  Sehr gut!  ")
    history = [ChatMessage(role="model", text="Hallo!")]

    reply = run(tutor_reply(client, ["Haus", "Hund"], history, "Ich habe einen Hund."))

    assert reply == "Sehr gut!"
    call = client.chat_calls[0]
    assert "Haus, Hund" in call["system"]
    assert call["history"] == [{"role": "model", "text": "Hallo!"}]
    assert call["message"] == "Ich habe einen Hund."


def test_tutor_reply_falls_back_on_empty_text():
    assert run(tutor_reply(FakeGemini(chat_reply=""), [], [], "Hallo")) == TUTOR_FALLBACK_REPLY


def test_generate_speech_prefixes_language_and_swallows_errors():
    client = FakeGemini(speech="AAAA")
    assert run(generate_speech(client, "der Hund")) == "AAAA"
    assert client.speech_calls == ["German: der Hund"]
    assert run(generate_speech(FakeGemini(speech_error=failing()), "Haus")) is None


@pytest.mark.parametrize("option", ["chunk_size", "max_loops", "exclusion_window"])
def test_zero_loop_settings_are_rejected(option):
    client = FakeGemini([chunk("Haus")])
    with pytest.raises(ValueError):
        batch(client, "B1", 1, **{option: 0})
    assert client.prompts == []


def test_tutor_reply_falls_back_on_null_text():
    assert run(tutor_reply(FakeGemini(chat_reply=None), [], [], "Hallo")) == TUTOR_FALLBACK_REPLY
