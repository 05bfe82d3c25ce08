# server/prompting.py
from __future__ import annotations
from typing import List, Dict

from prompts.personas import Persona
from services.fact_store import KnownFacts


class PromptBuilder:
    """
    Builds the system prompt (and the Chat Completions message array) for one turn.
    Provides:
      - build(persona, known_facts) -> system prompt text
      - build_messages(persona, known_facts, utterance) -> messages for the API
    Pure: nothing here touches the fact store.
    """

    # --- Shared blocks ---
    TONE_RULES = (
        "Keep every reply to 1-3 short sentences. Be warm and encouraging. "
        "Never shame, scold, or frighten the child. Plain spoken text only, no lists or markdown."
    )

    GIFT_RULE = (
        "If the child mentions a gift wish, end your reply with exactly one JSON object "
        'on its own line, shaped like {"gift":{"item": string, "details": object}}, for example: '
        '{"gift":{"item":"red bike","details":{"color":"red"}}}'
    )

    NAME_RULE = (
        "Once you learn or confirm the child's first name, end your reply with a JSON object "
        'on its own line, shaped like {"child":{"name": string}}, for example: {"child":{"name":"Emma"}}'
    )

    ASK_NAME = "If you do not know the child's first name yet, politely ask for it."

    BOTH_RULE = (
        "If both JSON objects apply in one reply, put the gift object on the second-to-last line "
        "and the child object on the last line. Never merge them into one object."
    )

    FENCE_RULE = (
        "Wrap the trailing JSON line(s) in a fenced block that starts with ```json and ends with ```. "
        "Nothing may follow the closing fence."
    )

    def __init__(self, fenced: bool = False):
        self.fenced = fenced

    def _known_name_block(self, name: str) -> str:
        return (
            f"The child's first name is {name}. Use it warmly now and then. "
            "Never ask for their name again."
        )

    def _wish_list_block(self, items) -> str:
        listed = ", ".join(items)
        return (
            f"Already on this child's wish list: {listed}. "
            "Only add a gift JSON object for a new wish."
        )

    # ------- Public builders -------
    def build(self, persona: Persona, known_facts: KnownFacts) -> str:
        blocks = [persona.voice, self.TONE_RULES, self.GIFT_RULE]
        if persona.learns_names:
            if known_facts.name:
                blocks.append(self._known_name_block(known_facts.name))
            else:
                blocks.append(self.ASK_NAME)
            blocks.append(self.NAME_RULE)
            blocks.append(self.BOTH_RULE)
        elif known_facts.name:
            blocks.append(self._known_name_block(known_facts.name))
        if known_facts.gift_items:
            blocks.append(self._wish_list_block(known_facts.gift_items))
        if self.fenced:
            blocks.append(self.FENCE_RULE)
        return "\n\n".join(blocks)

    def build_messages(
        self,
        persona: Persona,
        known_facts: KnownFacts,
        utterance: str,
    ) -> List[Dict[str, str]]:
        """System prompt plus the utterance as the only user turn (no history)."""
        return [
            {"role": "system", "content": self.build(persona, known_facts)},
            {"role": "user", "content": utterance or ""},
        ]
