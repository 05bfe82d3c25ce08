# server/orchestrator.py
"""
One conversational turn:

    BUILD_PROMPT -> CALL_MODEL -> EXTRACT_AND_RECORD | FALLBACK -> RESPOND

handle_turn() always returns a reply. Facts are read before the model call and
written after it returns, so no fact-store lock is held while waiting on the
network.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

from prompts.personas import Persona, PEPPER
from server import config
from server.errors import FragmentParseFailed, InvalidInput
from server.fragments import Extraction, GiftFragment, NameFragment, extract
from server.prompting import PromptBuilder
from services.fact_store import FactStore, KnownFacts

_WISH_RE = re.compile(r"\bi (?:want|would like|wish for) (.+)", re.IGNORECASE)
_ARTICLE_RE = re.compile(r"^(?:a|an|the|some)\s+", re.IGNORECASE)


@dataclass
class TurnRequest:
    child_id: str = ""
    utterance_text: str = ""
    child_display_name_hint: Optional[str] = None


@dataclass
class TurnResult:
    reply_text: str
    degraded: bool = False
    reason: Optional[str] = None
    gift: Optional[GiftFragment] = None
    name: Optional[NameFragment] = None
    issues: List[str] = field(default_factory=list)


def wish_from_utterance(text: str) -> Optional[str]:
    """
    Local stand-in for the model: "I want a puzzle" -> "puzzle".
    Returns None when no wish phrase is found.
    """
    m = _WISH_RE.search(text or "")
    if not m:
        return None
    item = m.group(1).strip().rstrip(".!?,;:").strip()
    item = _ARTICLE_RE.sub("", item).strip()
    return item or None


class TurnOrchestrator:
    def __init__(
        self,
        store: FactStore,
        chat_client,
        persona: Persona = PEPPER,
        builder: Optional[PromptBuilder] = None,
        speech=None,
        default_child_id: Optional[str] = None,
    ):
        self.store = store
        self.chat_client = chat_client
        self.persona = persona
        self.builder = builder or PromptBuilder(fenced=config.FENCED_FRAGMENTS)
        self.speech = speech
        self.default_child_id = default_child_id or config.DEFAULT_CHILD_ID

    def _normalize(self, request: TurnRequest, issues: List[str]) -> TurnRequest:
        child_id = (request.child_id or "").strip()
        if not child_id:
            issues.append(f"{InvalidInput.__name__}: missing child id")
            child_id = self.default_child_id
        utterance = request.utterance_text or ""
        if not utterance.strip():
            issues.append(f"{InvalidInput.__name__}: empty utterance")
        hint = (request.child_display_name_hint or "").strip() or None
        return TurnRequest(child_id=child_id, utterance_text=utterance,
                           child_display_name_hint=hint)

    def _known_facts(self, request: TurnRequest) -> KnownFacts:
        facts = self.store.known_facts(request.child_id)
        if facts.name is None and request.child_display_name_hint:
            return KnownFacts(name=request.child_display_name_hint, gift_items=facts.gift_items)
        return facts

    def handle_turn(self, request: TurnRequest) -> TurnResult:
        issues: List[str] = []
        request = self._normalize(request, issues)

        # BUILD_PROMPT
        messages = self.builder.build_messages(
            self.persona, self._known_facts(request), request.utterance_text
        )

        # CALL_MODEL
        try:
            raw = self.chat_client.complete(messages)
        except Exception as e:
            return self._fallback(request, f"{type(e).__name__}: {e}", issues)

        # EXTRACT_AND_RECORD
        try:
            extraction: Extraction = extract(raw, learn_names=self.persona.learns_names)
        except Exception as e:
            print("[chat] extraction failed; replying with raw text:", repr(e))
            extraction = Extraction(
                cleaned_text=raw,
                issues=[f"{FragmentParseFailed.__name__}: {type(e).__name__}: {e}"],
            )
        issues.extend(extraction.issues)
        if extraction.gift:
            self.store.append_gift(request.child_id, extraction.gift.item, extraction.gift.details)
            print(f"[facts] gift for {request.child_id}: {extraction.gift.item}")
        if extraction.name and self.persona.learns_names:
            self.store.set_name(request.child_id, extraction.name.name)
            print(f"[facts] name for {request.child_id}: {extraction.name.name}")
        for issue in extraction.issues:
            print("[chat] fragment skipped:", issue)

        reply = extraction.cleaned_text
        if not reply.strip():
            reply = self.persona.default_greeting

        # RESPOND
        return TurnResult(
            reply_text=reply,
            gift=extraction.gift,
            name=extraction.name if self.persona.learns_names else None,
            issues=issues,
        )

    def _fallback(self, request: TurnRequest, reason: str, issues: List[str]) -> TurnResult:
        print("[fallback] model call failed; using local reply:", reason)
        reply = self.persona.fallback_template.format(utterance=request.utterance_text)
        gift = None
        item = wish_from_utterance(request.utterance_text)
        if item:
            self.store.append_gift(request.child_id, item)
            gift = GiftFragment(item=item)
            print(f"[facts] gift for {request.child_id} (heuristic): {item}")
        else:
            # first reference still creates the child's entry
            self.store.get_profile(request.child_id)
        return TurnResult(reply_text=reply, degraded=True, reason=reason, gift=gift, issues=issues)

    def speak(self, text: str) -> bytes:
        """Persona-flavoured speech for a reply. Raises SpeechServiceError."""
        if self.speech is None:
            raise RuntimeError("no speech service configured")
        spoken = f"{self.persona.speech_prefix}{text}{self.persona.speech_suffix}"
        return self.speech.synthesize(spoken, voice=self.persona.tts_voice,
                                      speed=self.persona.tts_speed)
