from typing import Dict, List, Optional

from openai import OpenAI

from server import config
from server.errors import ModelCallFailed


class ChatClient:
    """
    One Chat Completions call per turn. No fallback model and no retries:
    any failure surfaces as ModelCallFailed and the caller decides what to say.
    """

    def __init__(self, model: Optional[str] = None, client: Optional[OpenAI] = None):
        self.model = model or config.CHAT_MODEL
        self._client = client

    @property
    def client(self) -> OpenAI:
        # built on first use so the app imports without a key
        if self._client is None:
            self._client = OpenAI(api_key=config.OPENAI_API_KEY or None)
        return self._client

    def complete(self, messages: List[Dict[str, str]]) -> str:
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except Exception as e:
            raise ModelCallFailed(f"{type(e).__name__}: {e}") from e
        choices = getattr(resp, "choices", None)
        if not choices:
            raise ModelCallFailed("malformed response: no choices")
        message = getattr(choices[0], "message", None)
        if message is None:
            raise ModelCallFailed("malformed response: no message")
        return (message.content or "").strip()
