import io
import mimetypes
from typing import Optional, Protocol

from openai import OpenAI

from server import config
from server.errors import SpeechServiceError


class SpeechService(Protocol):
    def synthesize(self, text: str, voice: Optional[str] = None,
                   speed: Optional[float] = None) -> bytes: ...

    def transcribe(self, audio: bytes, filename: str) -> str: ...


def audio_filename(filename: Optional[str], content_type: Optional[str]) -> str:
    """Whisper wants an audio extension; guess one from the upload if missing."""
    name = (filename or "").strip() or "audio"
    if "." in name.rsplit("/", 1)[-1]:
        return name
    ext = mimetypes.guess_extension(content_type or "") or ".m4a"
    return name + ext


class OpenAISpeechService:
    def __init__(self, client: Optional[OpenAI] = None):
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=config.OPENAI_API_KEY or None)
        return self._client

    def synthesize(self, text, voice=None, speed=None) -> bytes:
        kwargs = {
            "model": config.TTS_MODEL,
            "voice": voice or config.TTS_VOICE,
            "input": text,
            "response_format": "mp3",
        }
        if speed:
            kwargs["speed"] = speed
        try:
            with self.client.audio.speech.with_streaming_response.create(**kwargs) as resp:
                blob = io.BytesIO(resp.read())
        except Exception as e:
            raise SpeechServiceError(f"tts: {type(e).__name__}: {e}") from e
        return blob.getvalue()

    def transcribe(self, audio, filename) -> str:
        try:
            stt = self.client.audio.transcriptions.create(
                model=config.TRANSCRIBE_MODEL,
                file=(filename, audio),
            )
        except Exception as e:
            raise SpeechServiceError(f"stt: {type(e).__name__}: {e}") from e
        return (getattr(stt, "text", "") or "").strip()
