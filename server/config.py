# server/config.py
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Model routing (single attempt, no fallback model)
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o-mini")

# TTS + STT defaults
TTS_MODEL = os.getenv("TTS_MODEL", "gpt-4o-mini-tts")
TTS_VOICE = os.getenv("TTS_VOICE", "alloy")
TRANSCRIBE_MODEL = os.getenv("TRANSCRIBE_MODEL", "whisper-1")

# Persona + fragments
PERSONA = os.getenv("PERSONA", "pepper")
DEFAULT_CHILD_ID = os.getenv("DEFAULT_CHILD_ID", "demo-child")
FENCED_FRAGMENTS = os.getenv("FENCED_FRAGMENTS", "0").lower() in ("1", "true", "yes")

# Files / URLs
BASE_DIR = Path(__file__).resolve().parents[1]
PUBLIC_DIR = Path(os.getenv("PUBLIC_DIR", str(BASE_DIR / "public"))).resolve()
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")

# CORS
ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",")
]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8787"))
