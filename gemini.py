import os
import json
import logging
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_API_URL = os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_TIMEOUT = int(os.getenv("GEMINI_TIMEOUT", "120"))

GEMINI_MODELS = {
    "CODE_REVIEW": os.getenv("GEMINI_MODEL_CODE_REVIEW", "gemini-2.5-flash"),
    "DATABASE": os.getenv("GEMINI_MODEL_DATABASE", "gemini-2.5-flash"),
    "CFO": os.getenv("GEMINI_MODEL_CFO", "gemini-2.5-flash"),
    "PITCH": os.getenv("GEMINI_MODEL_PITCH", "gemini-2.5-pro"),
    "SPY": os.getenv("GEMINI_MODEL_SPY", "gemini-2.5-pro"),
    "NEWS": os.getenv("GEMINI_MODEL_NEWS", "gemini-2.5-flash"),
    "VC_ROAST": os.getenv("GEMINI_MODEL_VC_ROAST", "gemini-2.5-flash"),
    "EQUITY": os.getenv("GEMINI_MODEL_EQUITY", "gemini-2.5-flash"),
}

# USD per 1M tokens
TOKEN_COSTS = {
    "gemini-2.5-flash": {"input": 0.075, "output": 0.30},
    "gemini-2.5-pro": {"input": 1.25, "output": 10.00},
}

PLACEHOLDER_TEXT = "Gemini API key not configured. Returning placeholder analysis."


class GeminiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def calculate_cost(model_name: str, input_tokens: int, output_tokens: int) -> float:
    costs = TOKEN_COSTS.get(model_name, TOKEN_COSTS["gemini-2.5-flash"])
    return (input_tokens / 1_000_000) * costs["input"] + (output_tokens / 1_000_000) * costs["output"]


def empty_usage() -> Dict[str, Any]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0, "cost": 0.0}


def generate_content(
    model_name: str,
    prompt: str,
    temperature: float = 0.7,
    top_p: float = 0.95,
    top_k: int = 40,
    max_output_tokens: int = 8192,
) -> Tuple[str, Dict[str, Any]]:
    """Single-turn generation. Returns (text, usage)."""
    if not GEMINI_API_KEY:
        # Demo mode: callers fall back to their default objects
        return PLACEHOLDER_TEXT, empty_usage()

    url = f"{GEMINI_API_URL}/models/{model_name}:generateContent"
    headers = {"x-goog-api-key": GEMINI_API_KEY, "Content-Type": "application/json"}
    payload = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": temperature,
            "topP": top_p,
            "topK": top_k,
            "maxOutputTokens": max_output_tokens,
        },
    }

    resp = requests.post(url, headers=headers, data=json.dumps(payload), timeout=GEMINI_TIMEOUT)
    if resp.status_code >= 400:
        try:
            message = resp.json().get("error", {}).get("message", resp.text)
        except ValueError:
            message = resp.text
        logger.error("Gemini API error %s: %s", resp.status_code, message)
        raise GeminiError(f"Gemini API error: {message}", status=resp.status_code)

    data = resp.json()
    candidates = data.get("candidates") or []
    parts = (candidates[0].get("content") or {}).get("parts", []) if candidates else []
    text = "".join(p.get("text", "") for p in parts)

    meta = data.get("usageMetadata") or {}
    prompt_tokens = meta.get("promptTokenCount", 0)
    completion_tokens = meta.get("candidatesTokenCount", 0)
    usage = {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": meta.get("totalTokenCount", 0),
        "cost": calculate_cost(model_name, prompt_tokens, completion_tokens),
    }
    return text, usage


def extract_json(content: str) -> Optional[Dict[str, Any]]:
    """Parse the outermost {...} span of an LLM reply. None when absent or invalid."""
    if not content:
        return None
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    try:
        parsed = json.loads(content[start : end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None
