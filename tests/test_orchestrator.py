import threading

import pytest

from prompts.personas import PEPPER, SANTA
from server.errors import SpeechServiceError
from server.orchestrator import TurnOrchestrator, TurnRequest, wish_from_utterance
from server.prompting import PromptBuilder


def test_gift_fragment_is_recorded_and_stripped(make_orchestrator, store):
    orch, _ = make_orchestrator('A red bike! {"gift":{"item":"red bike","details":{"color":"red"}}}')
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="I want a red bike"))
    assert result.reply_text == "A red bike!"
    assert not result.degraded
    gifts = store.gifts("kid")
    assert [(g.item, g.details) for g in gifts] == [("red bike", {"color": "red"})]


def test_name_fragment_is_stored_for_pepper(make_orchestrator, store):
    orch, chat = make_orchestrator('Hi Emma!\n{"child":{"name":"Emma"}}', "Welcome back!")
    orch.handle_turn(TurnRequest(child_id="kid", utterance_text="I'm Emma"))
    assert store.get_profile("kid").name == "Emma"

    orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hello again"))
    system_prompt = chat.calls[1][0]["content"]
    assert "The child's first name is Emma" in system_prompt


def test_name_fragment_ignored_for_santa(make_orchestrator, store):
    orch, _ = make_orchestrator('Hi Emma!\n{"child":{"name":"Emma"}}', persona=SANTA)
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="I'm Emma"))
    assert store.get_profile("kid").name is None
    assert result.name is None


def test_empty_model_reply_uses_default_greeting(make_orchestrator):
    orch, _ = make_orchestrator('{"gift":{"item":"kite"}}')
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="kite please"))
    assert result.reply_text == PEPPER.default_greeting


def test_model_failure_falls_back_and_records_wish(make_orchestrator, store, quota_error):
    orch, _ = make_orchestrator(quota_error)
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="I want a puzzle"))
    assert result.degraded
    assert "insufficient_quota" in result.reason
    assert 'I heard: "I want a puzzle"' in result.reply_text
    assert [g.item for g in store.gifts("kid")] == ["puzzle"]


def test_fallback_is_deterministic(make_orchestrator, quota_error):
    orch, _ = make_orchestrator(quota_error, quota_error)
    a = orch.handle_turn(TurnRequest(child_id="x", utterance_text="hello"))
    b = orch.handle_turn(TurnRequest(child_id="y", utterance_text="hello"))
    assert a.reply_text == b.reply_text
    assert a.reply_text


def test_any_exception_from_chat_client_falls_back(make_orchestrator, store):
    orch, _ = make_orchestrator(RuntimeError("socket closed"))
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hi"))
    assert result.degraded
    assert store.gifts("kid") == []


def test_unknown_child_never_throws(make_orchestrator, store):
    orch, _ = make_orchestrator("Hello there!")
    result = orch.handle_turn(TurnRequest(child_id="brand-new", utterance_text="hi"))
    assert result.reply_text == "Hello there!"
    assert store.get_profile("brand-new").name is None
    assert "brand-new" in store.child_ids()


def test_blank_input_still_gets_a_turn(make_orchestrator, store):
    orch, chat = make_orchestrator("Hee hee, hello?")
    result = orch.handle_turn(TurnRequest(child_id="  ", utterance_text=""))
    assert result.reply_text == "Hee hee, hello?"
    assert chat.calls[0][1]["content"] == ""
    assert "demo-child" in store.child_ids()
    assert any(i.startswith("InvalidInput") for i in result.issues)


def test_name_hint_used_when_nothing_stored(make_orchestrator, store):
    orch, chat = make_orchestrator("Hi Sam!")
    orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hi", child_display_name_hint="Sam"))
    assert "The child's first name is Sam" in chat.calls[0][0]["content"]
    # hints are not persisted
    assert store.get_profile("kid").name is None


def test_stored_name_beats_hint(make_orchestrator, store):
    store.set_name("kid", "Emma")
    orch, chat = make_orchestrator("Hi!")
    orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hi", child_display_name_hint="Em"))
    assert "The child's first name is Emma" in chat.calls[0][0]["content"]


def test_malformed_fragment_reaches_caller_verbatim(make_orchestrator, store):
    orch, _ = make_orchestrator('Okay! {"gift": not json}')
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="x"))
    assert result.reply_text == 'Okay! {"gift": not json}'
    assert store.gifts("kid") == []
    assert result.issues


@pytest.mark.parametrize("text,item", [
    ("I want a puzzle", "puzzle"),
    ("Santa, I would like the big red truck!", "big red truck"),
    ("i wish for some snow.", "snow"),
    ("I WANT AN elephant", "elephant"),
    ("hello santa", None),
    ("", None),
])
def test_wish_from_utterance(text, item):
    assert wish_from_utterance(text) == item


def test_speak_applies_persona_voice(make_orchestrator, fake_speech):
    speech = fake_speech()
    orch, _ = make_orchestrator(persona=SANTA, speech=speech)
    assert orch.speak("Be good") == b"ID3fake-mp3"
    text, voice, speed = speech.spoken[0]
    assert text.startswith("Ho ho ho! Be good")
    assert voice == SANTA.tts_voice


def test_speak_propagates_speech_errors(make_orchestrator, fake_speech):
    orch, _ = make_orchestrator(speech=fake_speech(fail=True))
    with pytest.raises(SpeechServiceError):
        orch.speak("hi")


def test_deeply_nested_reply_never_raises(make_orchestrator, store):
    reply = 'Ok! {"gift":' + "[" * 100000 + "]" * 100000 + "}"
    orch, _ = make_orchestrator(reply)
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hi"))
    assert result.reply_text == reply
    assert not result.degraded
    assert store.gifts("kid") == []
    assert any("RecursionError" in i for i in result.issues)


def test_extractor_crash_returns_raw_reply(make_orchestrator, store, monkeypatch):
    def boom(raw, learn_names=True):
        raise MemoryError("too big")

    monkeypatch.setattr("server.orchestrator.extract", boom)
    orch, _ = make_orchestrator("Hee hee, hello!")
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="hi"))
    assert result.reply_text == "Hee hee, hello!"
    assert result.issues[-1].startswith("FragmentParseFailed: MemoryError")
    assert store.gifts("kid") == []


def test_no_fact_lock_held_during_model_call(store):
    store.set_name("kid", "Emma")

    class WritesDuringCall:
        """Another turn for the same child writes while this one waits on the model."""

        def __init__(self):
            self.finished = False

        def complete(self, messages):
            t = threading.Thread(target=store.append_gift, args=("kid", "kite"))
            t.start()
            t.join(timeout=2)
            self.finished = not t.is_alive()
            return 'Sure! {"gift":{"item":"drum"}}'

    chat = WritesDuringCall()
    orch = TurnOrchestrator(store=store, chat_client=chat, persona=PEPPER,
                            builder=PromptBuilder(), default_child_id="demo-child")
    result = orch.handle_turn(TurnRequest(child_id="kid", utterance_text="I want a drum"))
    assert chat.finished
    assert result.reply_text == "Sure!"
    assert [g.item for g in store.gifts("kid")] == ["kite", "drum"]
