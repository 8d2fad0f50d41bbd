# Copyright (c) 2025 sprowii
"""Клиент классификации текста поверх Gemini.

Любая ошибка модели (таймаут, квота, битый JSON) превращается в нейтральный
результат: для антиспама это "не спам", поэтому недоступность модели никогда
не наказывает пользователей. Classified.available позволяет отличить ответ
модели от подставленного значения.
"""
import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from google import genai

from groupwarden.config import API_KEYS, LLM_TIMEOUT_SEC, MODELS, MODERATOR_PERSONA_PROMPT
from groupwarden.logging_config import log

T = TypeVar("T")

TRANSLATION_FAILED = "Не удалось перевести текст"
SUMMARY_FAILED = "Не удалось сделать краткий пересказ"
RESPONSE_FAILED = "Извините, сейчас не получается ответить."


@dataclass
class Classified(Generic[T]):
    """Результат запроса к модели.

    available=False означает, что value - запасное значение, а error
    содержит причину.
    """
    value: T
    available: bool = True
    error: Optional[str] = None


@dataclass
class SpamVerdict:
    is_spam: bool = False
    confidence: float = 0.0
    reason: str = "Analysis failed"


@dataclass
class SentimentVerdict:
    sentiment: str = "neutral"
    score: float = 0.0
    emotions: List[str] = field(default_factory=list)


@dataclass
class ModerationVerdict:
    should_moderate: bool = False
    categories: List[str] = field(default_factory=list)
    severity: int = 0


# ============================================================================
# GEMINI
# ============================================================================

current_key_idx = 0
current_model_idx = 0
_clients: Dict[int, genai.Client] = {}


def _get_client(idx: int) -> genai.Client:
    if not API_KEYS:
        raise RuntimeError("Не заданы API ключи для Gemini")
    idx = idx % len(API_KEYS)
    client = _clients.get(idx)
    if client is None:
        client = genai.Client(api_key=API_KEYS[idx])
        _clients[idx] = client
    return client


def _response_text(response: Any) -> str:
    text = getattr(response, "text", None)
    if text:
        return text.strip()
    texts = []
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            if getattr(part, "text", None):
                texts.append(part.text)
    return "\n".join(texts).strip()


def gemini_generate(prompt: str) -> str:
    """Один запрос к Gemini с перебором ключей и моделей.

    Raises:
        RuntimeError: нет ключей или все ключи/модели вернули ошибку
    """
    global current_key_idx, current_model_idx

    if not API_KEYS:
        raise RuntimeError("Не заданы API ключи для Gemini")

    for model_offset in range(len(MODELS)):
        model_idx = (current_model_idx + model_offset) % len(MODELS)
        model_name = MODELS[model_idx]
        for key_attempt in range(len(API_KEYS)):
            key_idx = (current_key_idx + key_attempt) % len(API_KEYS)
            try:
                response = _get_client(key_idx).models.generate_content(
                    model=model_name,
                    contents=[{"role": "user", "parts": [{"text": prompt}]}],
                    config={"system_instruction": {"parts": [{"text": MODERATOR_PERSONA_PROMPT}]}},
                )
                text = _response_text(response)
                if not text:
                    raise ValueError("Пустой ответ модели")
                current_key_idx, current_model_idx = key_idx, model_idx
                return text
            except Exception as exc:
                error_text = str(exc).lower()
                if "rate limit" in error_text or "quota" in error_text:
                    log.info(f"Rate limit on key {key_idx + 1}, model {model_name}. Trying next...")
                else:
                    log.warning(f"Request failed: key {key_idx + 1}, model {model_name}: {exc}")
    raise RuntimeError("All API keys/models failed")


# ============================================================================
# РАЗБОР ОТВЕТОВ
# ============================================================================

_FENCE_REGEX = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json(text: str) -> Dict[str, Any]:
    """Достать JSON-объект из ответа модели: чистый, в ``` блоке или внутри текста.

    Raises:
        ValueError: объект не найден
    """
    candidates = [text.strip()]
    candidates.extend(m.strip() for m in _FENCE_REGEX.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError(f"В ответе модели нет JSON-объекта: {text[:80]!r}")


def _pick(data: Dict[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return default


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


# ============================================================================
# КЛИЕНТ
# ============================================================================

class ClassificationClient:
    """Спам, тональность, модерация, перевод, пересказ и ответы.

    Args:
        generate: Синхронная функция prompt -> текст ответа (по умолчанию Gemini)
        timeout: Предел ожидания одного запроса в секундах
    """

    def __init__(self, generate: Optional[Callable[[str], str]] = None, timeout: float = LLM_TIMEOUT_SEC):
        self.generate = generate or gemini_generate
        self.timeout = timeout

    async def _ask(self, prompt: str) -> str:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(loop.run_in_executor(None, self.generate, prompt), self.timeout)

    async def _ask_json(self, operation: str, prompt: str, build: Callable[[Dict[str, Any]], T], fallback: T) -> Classified[T]:
        try:
            text = await self._ask(prompt)
            return Classified(build(extract_json(text)))
        except asyncio.TimeoutError:
            log.warning(f"{operation}: таймаут модели ({self.timeout} с), используется запасной результат")
            return Classified(fallback, available=False, error="timeout")
        except Exception as exc:
            log.warning(f"{operation}: ошибка модели, используется запасной результат: {exc}")
            return Classified(fallback, available=False, error=str(exc))

    async def _ask_text(self, operation: str, prompt: str, fallback: str) -> Classified[str]:
        try:
            text = (await self._ask(prompt)).strip()
            if not text:
                raise ValueError("Пустой ответ модели")
            return Classified(text)
        except asyncio.TimeoutError:
            log.warning(f"{operation}: таймаут модели ({self.timeout} с)")
            return Classified(fallback, available=False, error="timeout")
        except Exception as exc:
            log.warning(f"{operation}: ошибка модели: {exc}")
            return Classified(fallback, available=False, error=str(exc))

    async def classify_spam(self, text: str) -> Classified[SpamVerdict]:
        prompt = (
            "Analyze this message for spam content. Consider promotional content, scams, "
            "excessive links, repetitive text, and inappropriate content.\n\n"
            f'Message: "{text}"\n\n'
            'Respond with JSON only: {"is_spam": boolean, "confidence": number (0-1), "reason": "brief explanation"}'
        )

        def build(data: Dict[str, Any]) -> SpamVerdict:
            return SpamVerdict(
                is_spam=bool(_pick(data, "is_spam", "isSpam", default=False)),
                confidence=float(_pick(data, "confidence", default=0.0)),
                reason=str(_pick(data, "reason", default="No specific reason")),
            )

        return await self._ask_json("classify_spam", prompt, build, SpamVerdict())

    async def classify_sentiment(self, text: str) -> Classified[SentimentVerdict]:
        prompt = (
            "Analyze the sentiment and emotions in this message.\n\n"
            f'Message: "{text}"\n\n'
            'Respond with JSON only: {"sentiment": "positive|negative|neutral", '
            '"score": number (-1 to 1), "emotions": ["emotion1", "emotion2"]}'
        )

        def build(data: Dict[str, Any]) -> SentimentVerdict:
            return SentimentVerdict(
                sentiment=str(_pick(data, "sentiment", default="neutral")).lower(),
                score=float(_pick(data, "score", default=0.0)),
                emotions=_string_list(_pick(data, "emotions", default=[])),
            )

        return await self._ask_json("classify_sentiment", prompt, build, SentimentVerdict())

    async def classify_moderation(self, text: str) -> Classified[ModerationVerdict]:
        prompt = (
            "Analyze this content for moderation. Check for hate speech, harassment, violence, "
            "adult content, and other inappropriate material.\n\n"
            f'Content: "{text}"\n\n'
            'Respond with JSON only: {"should_moderate": boolean, "categories": ["category1"], "severity": number (1-10)}'
        )

        def build(data: Dict[str, Any]) -> ModerationVerdict:
            return ModerationVerdict(
                should_moderate=bool(_pick(data, "should_moderate", "shouldModerate", default=False)),
                categories=_string_list(_pick(data, "categories", default=[])),
                severity=int(_pick(data, "severity", default=0)),
            )

        return await self._ask_json("classify_moderation", prompt, build, ModerationVerdict())

    async def translate(self, text: str, target_language: str) -> Classified[str]:
        prompt = (
            f'Translate this text to {target_language}:\n\n"{text}"\n\n'
            "Only respond with the translation, no additional text."
        )
        return await self._ask_text("translate", prompt, TRANSLATION_FAILED)

    async def summarize(self, text: str, max_length: int = 100) -> Classified[str]:
        prompt = (
            f'Summarize this text in maximum {max_length} characters:\n\n"{text}"\n\n'
            "Provide a concise summary that captures the main points."
        )
        return await self._ask_text("summarize", prompt, SUMMARY_FAILED)

    async def respond(self, context: str, message: str) -> Classified[str]:
        prompt = (
            "Based on the context and user message, provide a helpful response.\n\n"
            f'Context: {context}\nUser message: "{message}"\n\n'
            "Provide a helpful, friendly response (max 200 characters):"
        )
        return await self._ask_text("respond", prompt, RESPONSE_FAILED)
