# Copyright (c) 2025 sprowii
import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _resolve_redis_url(raw_url: str) -> str:
    if ".upstash.io" in raw_url and raw_url.startswith("redis://"):
        return "rediss" + raw_url[len("redis") :]
    return raw_url


REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
if REDIS_URL:
    REDIS_URL = _resolve_redis_url(REDIS_URL)

TG_TOKEN = os.getenv("TG_TOKEN")
WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")
PUBLIC_URL = os.getenv("PUBLIC_URL")
if PUBLIC_URL and PUBLIC_URL.endswith("/"):
    PUBLIC_URL = PUBLIC_URL[:-1]


def _load_api_keys() -> List[str]:
    keys: List[str] = []
    idx = 1
    while True:
        key = os.getenv(f"GEMINI_API_KEY_{idx}")
        if not key:
            break
        keys.append(key)
        idx += 1
    return keys


API_KEYS = _load_api_keys()

MODELS: List[str] = [
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-2.0-flash",
]

LLM_TIMEOUT_SEC = float(os.getenv("LLM_TIMEOUT_SEC", 15))

MODERATOR_PERSONA_PROMPT = """
You are a helpful group management bot assistant.
Keep answers short and friendly. When asked for JSON, reply with JSON only.
""".strip()

FLASK_HOST = "0.0.0.0"
FLASK_PORT = int(os.getenv("PORT", 10000))
