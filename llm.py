# llm.py — text-generation collaborator (Gemini REST by default, OpenAI optional)
#
# Callers send a free-text prompt and get free text back. Nothing here validates
# the shape of the answer; question_bank.parse_questions does that.

import json
import os
import threading
from typing import Any, Dict, List, Optional

import requests

LLM_PROVIDER      = (os.getenv("LLM_PROVIDER") or "gemini").strip().lower()
GEMINI_MODEL      = (os.getenv("GEMINI_MODEL") or "gemini-2.0-flash").strip()
GEMINI_API_BASE   = (os.getenv("GEMINI_API_BASE") or "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
OPENAI_QGEN_MODEL = (os.getenv("OPENAI_QGEN_MODEL") or "gpt-4o-mini").strip()
OPENAI_API_BASE   = (os.getenv("OPENAI_API_BASE") or "https://api.openai.com/v1").rstrip("/")
LLM_TIMEOUT_SEC   = int(os.getenv("LLM_TIMEOUT_SEC") or 90)
LLM_MAX_TOKENS    = int(os.getenv("LLM_MAX_TOKENS") or 8192)


def parse_keys(raw: Optional[str]) -> List[str]:
    """Accepts a JSON array (["k1","k2"]) or a comma/semicolon separated list."""
    raw = (raw or "").strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            print(f"[llm] could not parse key list: {e}", flush=True)
            return []
        return [str(k).strip() for k in data if str(k).strip()]
    return [k.strip() for part in raw.split(";") for k in part.split(",") if k.strip()]


class RotatingKeys:
    """Round-robin over provider keys; safe to share between request threads."""

    def __init__(self, keys: List[str]):
        self._keys = list(keys)
        self._index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def next(self) -> str:
        with self._lock:
            if not self._keys:
                raise RuntimeError("No LLM API key configured.")
            key = self._keys[self._index]
            self._index = (self._index + 1) % len(self._keys)
            return key

    def replace(self, keys: List[str]):
        with self._lock:
            self._keys = list(keys)
            self._index = 0
        print(f"[llm] API keys updated. Total: {len(keys)}", flush=True)


class TextGenerator:
    def __init__(self, provider: str, keys: RotatingKeys, model: str,
                 timeout: int = LLM_TIMEOUT_SEC, session: Optional[requests.Session] = None):
        if provider not in ("gemini", "openai"):
            raise ValueError(f"Unsupported LLM provider '{provider}'")
        self.provider = provider
        self.keys = keys
        self.model = model
        self.timeout = timeout
        self.http = session or requests.Session()

    def generate(self, prompt: str) -> str:
        """One call, one key, no retry. Raises on transport/HTTP errors."""
        key = self.keys.next()
        if self.provider == "openai":
            return self._openai(key, prompt)
        return self._gemini(key, prompt)

    def _gemini(self, key: str, prompt: str) -> str:
        r = self.http.post(
            f"{GEMINI_API_BASE}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": key, "Content-Type": "application/json"},
            json={
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": 0.4, "maxOutputTokens": LLM_MAX_TOKENS},
            },
            timeout=self.timeout,
        )
        r.raise_for_status()
        return gemini_text(r.json())

    def _openai(self, key: str, prompt: str) -> str:
        r = self.http.post(
            f"{OPENAI_API_BASE}/chat/completions",
            headers={"Authorization": f"Bearer {key}", "Content-Type": "application/json"},
            json={
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0.4,
                "max_tokens": LLM_MAX_TOKENS,
            },
            timeout=self.timeout,
        )
        r.raise_for_status()
        data = r.json()
        return ((data.get("choices") or [{}])[0].get("message") or {}).get("content") or ""


def gemini_text(data: Dict[str, Any]) -> str:
    candidates = (data or {}).get("candidates") or []
    if not candidates:
        return ""
    parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
    return "".join(str(p.get("text") or "") for p in parts if isinstance(p, dict))


def create_text_generator() -> TextGenerator:
    if LLM_PROVIDER == "openai":
        keys = parse_keys(os.getenv("OPENAI_API_KEYS") or os.getenv("OPENAI_API_KEY"))
        model = OPENAI_QGEN_MODEL
    else:
        keys = parse_keys(os.getenv("GEMINI_API_KEYS") or os.getenv("GEMINI_API_KEY"))
        model = GEMINI_MODEL
    if not keys:
        print(f"[llm] no API keys configured for provider '{LLM_PROVIDER}'", flush=True)
    return TextGenerator(LLM_PROVIDER, RotatingKeys(keys), model)
